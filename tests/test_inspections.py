"""
Inspection tests: checklist deductions, grade mapping and scored
inspection records.
"""

import pytest

from storeops.core.exceptions import NotFoundError, ValidationError
from storeops.models import db
from storeops.models.inspection import (
    BASE_SCORE,
    DEFAULT_GRADE_MAPPING,
    InspectionMaster,
    InspectionResult,
    grade_for_score,
    item_deduction,
)
from storeops.services import inspection_service

CHECKLIST = [
    {"label": "地面髒亂", "deduction": 2},
    {"label": "標價錯誤", "deduction": 1.5},
    {"label": "過期商品", "deduction": 5},
]


@pytest.fixture()
def template(admin):
    tpl = inspection_service.create_template(admin, {
        "section": "A", "section_name": "賣場", "item_name": "環境整潔",
        "max_score": 10, "checklist_items": CHECKLIST,
    })
    db.session.commit()
    return tpl


# ═════════════════════════════════════════════════════════════════════════════
# Scoring helpers
# ═════════════════════════════════════════════════════════════════════════════


class TestDeduction:
    def test_quantity_multiplies(self):
        assert item_deduction(CHECKLIST, ["地面髒亂", "標價錯誤"], {"標價錯誤": 3}) == 6.5

    def test_quantity_clamped_to_one(self):
        assert item_deduction(CHECKLIST, ["過期商品"], {"過期商品": 0}) == 5
        assert item_deduction(CHECKLIST, ["過期商品"], {"過期商品": "x"}) == 5

    def test_unknown_labels_ignored(self):
        assert item_deduction(CHECKLIST, ["不存在"]) == 0


class TestGrade:
    @pytest.mark.parametrize("score,grade", [
        (220, 10), (216, 9), (215, 9), (191, 8), (190.5, 7),
        (121, 1), (120.9, 0), (0, 0),
    ])
    def test_default_mapping(self, score, grade):
        assert grade_for_score(score) == grade

    def test_custom_mapping(self):
        mapping = [(10, 200), (5, 100), (0, 0)]
        assert grade_for_score(150, mapping) == 5

    def test_default_has_eleven_grades(self):
        assert sorted(g for g, _ in DEFAULT_GRADE_MAPPING) == list(range(11))


class TestGradeMapping:
    def test_default_flag(self):
        mappings, is_default = inspection_service.get_grade_mapping()
        assert is_default is True
        assert mappings[0] == {"grade": 10, "min_score": 220}

    def test_requires_eleven(self, admin):
        with pytest.raises(ValidationError):
            inspection_service.replace_grade_mapping(admin, [{"grade": 10, "min_score": 200}])

    def test_rejects_duplicates(self, admin):
        mappings = [{"grade": 10, "min_score": 200}] * 11
        with pytest.raises(ValidationError):
            inspection_service.replace_grade_mapping(admin, mappings)

    def test_replace_and_use(self, admin, make_store):
        mappings = [{"grade": g, "min_score": g * 20} for g in range(11)]
        inspection_service.replace_grade_mapping(admin, mappings)
        db.session.commit()
        rows, is_default = inspection_service.get_grade_mapping()
        assert is_default is False
        assert [r["grade"] for r in rows] == list(range(10, -1, -1))

        store = make_store("A01")
        inspection = inspection_service.create_inspection(admin, {
            "store_id": store.id, "inspection_date": "2024-03-05", "results": [],
        })
        # 220 with no deductions is above every custom threshold
        assert inspection.grade == 10


# ═════════════════════════════════════════════════════════════════════════════
# Inspections
# ═════════════════════════════════════════════════════════════════════════════


class TestInspections:
    def test_scored_from_selections(self, admin, template, make_store):
        store = make_store("A01")
        inspection = inspection_service.create_inspection(admin, {
            "store_id": store.id,
            "inspection_date": "2024-03-05",
            "results": [{
                "template_id": template.id,
                "selected_items": ["地面髒亂", "過期商品"],
                "quantities": {"地面髒亂": 2},
            }],
        })
        db.session.commit()
        assert inspection.total_score == BASE_SCORE - 9
        assert inspection.grade == 8
        result = InspectionResult.query.one()
        assert result.deduction_amount == 9
        assert result.given_score == 1
        assert result.is_improvement is True

    def test_given_score_floors_at_zero(self, admin, template, make_store):
        store = make_store("A01")
        inspection_service.create_inspection(admin, {
            "store_id": store.id, "inspection_date": "2024-03-05",
            "results": [{
                "template_id": template.id,
                "selected_items": ["過期商品"], "quantities": {"過期商品": 4},
            }],
        })
        assert InspectionResult.query.one().given_score == 0

    def test_unknown_template(self, admin, make_store):
        store = make_store("A01")
        with pytest.raises(ValidationError):
            inspection_service.create_inspection(admin, {
                "store_id": store.id, "inspection_date": "2024-03-05",
                "results": [{"template_id": 999, "selected_items": []}],
            })

    def test_unknown_store(self, admin):
        with pytest.raises(NotFoundError):
            inspection_service.create_inspection(admin, {
                "store_id": 999, "inspection_date": "2024-03-05",
            })

    def test_bad_date(self, admin, make_store):
        store = make_store("A01")
        with pytest.raises(ValidationError):
            inspection_service.create_inspection(admin, {
                "store_id": store.id, "inspection_date": "05/03/2024",
            })

    def test_delete_removes_results(self, admin, template, make_store):
        store = make_store("A01")
        inspection = inspection_service.create_inspection(admin, {
            "store_id": store.id, "inspection_date": "2024-03-05",
            "results": [{"template_id": template.id, "selected_items": ["標價錯誤"]}],
        })
        db.session.commit()
        inspection_service.delete_inspection(inspection.id)
        db.session.commit()
        assert InspectionMaster.query.count() == 0
        assert InspectionResult.query.count() == 0

    def test_template_soft_delete(self, admin, template):
        inspection_service.deactivate_template(template.id)
        db.session.commit()
        assert inspection_service.list_templates() == []
        assert len(inspection_service.list_templates(include_inactive=True)) == 1


class TestInspectionApi:
    def test_create_and_list(self, client, auth_headers, member, template, make_store):
        store = make_store("A01")
        headers = auth_headers(member)
        res = client.post("/api/v1/inspections", json={
            "store_id": store.id, "inspection_date": "2024-03-05",
            "results": [{"template_id": template.id, "selected_items": ["標價錯誤"]}],
        }, headers=headers)
        assert res.status_code == 201
        body = res.get_json()["inspection"]
        assert body["total_score"] == 218.5
        assert len(body["results"]) == 1

        res = client.get(f"/api/v1/inspections?store_id={store.id}", headers=headers)
        assert res.get_json()["total"] == 1

    def test_templates_admin_only(self, client, auth_headers, member):
        res = client.get("/api/v1/inspection-templates", headers=auth_headers(member))
        assert res.status_code == 403

    def test_template_update_needs_permission(self, client, auth_headers, member, grant, template):
        headers = auth_headers(member)
        res = client.put(f"/api/v1/inspection-templates/{template.id}",
                         json={"max_score": 20}, headers=headers)
        assert res.status_code == 403
        grant(member, "inspection.template.manage")
        res = client.put(f"/api/v1/inspection-templates/{template.id}",
                         json={"max_score": 20}, headers=headers)
        assert res.status_code == 200
        assert template.max_score == 20
