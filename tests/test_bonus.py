"""
Bonus ledger tests: support bonus replacement, talent cultivation,
meal allowance and transport expense.
"""

import pytest

from storeops.core.exceptions import ValidationError
from storeops.models import db
from storeops.models.staff import MealAllowanceRecord, MonthlyStaffStatus, StoreEmployee, SupportStaffBonus
from storeops.services import bonus_service


@pytest.fixture()
def store(make_store):
    return make_store("S01")


def _staff(store, code, year_month="202403", **fields):
    row = MonthlyStaffStatus(
        year_month=year_month, store_id=store.id, employee_code=code,
        employee_name=fields.pop("employee_name", f"員工{code}"), **fields,
    )
    db.session.add(row)
    db.session.commit()
    return row


# ═════════════════════════════════════════════════════════════════════════════
# Support staff bonus
# ═════════════════════════════════════════════════════════════════════════════


class TestSupportBonus:
    def test_replaces_month(self, manager):
        bonus_service.replace_support_bonus(manager, "202403", [
            {"employee_code": "A1", "employee_name": "甲", "bonus_amount": 500},
            {"employee_code": "A2", "employee_name": "乙", "bonus_amount": 300},
        ])
        db.session.commit()
        bonus_service.replace_support_bonus(manager, "202403", [
            {"employee_code": "b1", "employee_name": "丙", "bonus_amount": "800"},
        ])
        db.session.commit()

        rows = bonus_service.list_support_bonus("202403")
        assert [(r.employee_code, r.bonus_amount) for r in rows] == [("B1", 800.0)]

    def test_other_months_untouched(self, manager):
        bonus_service.replace_support_bonus(manager, "202402", [
            {"employee_code": "A1", "employee_name": "甲", "bonus_amount": 100},
        ])
        bonus_service.replace_support_bonus(manager, "202403", [
            {"employee_code": "A2", "employee_name": "乙", "bonus_amount": 200},
        ])
        db.session.commit()
        assert SupportStaffBonus.query.count() == 2

    def test_invalid_row_keeps_old_set(self, manager):
        bonus_service.replace_support_bonus(manager, "202403", [
            {"employee_code": "A1", "employee_name": "甲", "bonus_amount": 500},
        ])
        db.session.commit()
        with pytest.raises(ValidationError):
            bonus_service.replace_support_bonus(manager, "202403", [
                {"employee_code": "A2", "employee_name": "乙"},
                {"employee_code": "A3"},
            ])
        db.session.rollback()
        assert [r.employee_code for r in bonus_service.list_support_bonus("202403")] == ["A1"]

    def test_bad_year_month(self):
        with pytest.raises(ValidationError):
            bonus_service.list_support_bonus("2024-03")

    def test_endpoint_requires_store_manager_or_above(self, client, auth_headers, member):
        res = client.post("/api/v1/support-bonus", json={
            "year_month": "202403",
            "bonuses": [{"employee_code": "A1", "employee_name": "甲", "bonus_amount": 1}],
        }, headers=auth_headers(member))
        assert res.status_code == 403
        assert SupportStaffBonus.query.count() == 0

    def test_endpoint_for_store_manager(self, client, auth_headers, make_profile):
        store_manager = make_profile(job_title="店長")
        res = client.post("/api/v1/support-bonus", json={
            "year_month": "202403",
            "bonuses": [{"employee_code": "A1", "employee_name": "甲", "bonus_amount": 1}],
        }, headers=auth_headers(store_manager))
        assert res.status_code == 200
        assert res.get_json()["count"] == 1


# ═════════════════════════════════════════════════════════════════════════════
# Talent cultivation
# ═════════════════════════════════════════════════════════════════════════════


class TestTalentCultivation:
    def test_target_required_for_positive_bonus(self, store):
        _staff(store, "E1")
        with pytest.raises(ValidationError):
            bonus_service.save_talent_cultivation("202403", store.id, [
                {"employee_code": "E1", "employee_name": "員工E1", "cultivation_bonus": 1000},
            ])

    def test_partial_failures_reported(self, store):
        _staff(store, "E1")
        count, errors = bonus_service.save_talent_cultivation("202403", store.id, [
            {"employee_code": "e1", "employee_name": "員工E1",
             "cultivation_bonus": 1000, "cultivation_target": "新人小王"},
            {"employee_code": "E9", "employee_name": "員工E9",
             "cultivation_bonus": 500, "cultivation_target": "新人小李"},
        ])
        db.session.commit()
        assert count == 1
        assert len(errors) == 1 and "E9" in errors[0]

        rows = bonus_service.list_talent_cultivation("202403", store.id)
        assert rows == [{
            "id": rows[0]["id"], "employee_code": "E1", "employee_name": "員工E1",
            "cultivation_bonus": 1000.0, "cultivation_target": "新人小王",
        }]

    def test_all_failed(self, store):
        with pytest.raises(ValidationError):
            bonus_service.save_talent_cultivation("202403", store.id, [
                {"employee_code": "E9", "employee_name": "x", "cultivation_bonus": 0},
            ])

    def test_list_requires_store(self, client, auth_headers, member):
        res = client.get("/api/v1/talent-cultivation?year_month=202403",
                         headers=auth_headers(member))
        assert res.status_code == 400

    def test_save_forbidden_for_member(self, client, auth_headers, member, store):
        row = _staff(store, "E1", talent_cultivation_bonus=1000,
                     talent_cultivation_target="新人小王")
        res = client.post("/api/v1/talent-cultivation", json={
            "year_month": "202403", "store_id": store.id,
            "bonuses": [{"employee_code": "E1", "employee_name": "員工E1",
                         "cultivation_bonus": 99999, "cultivation_target": "x"}],
        }, headers=auth_headers(member))
        assert res.status_code == 403
        db.session.refresh(row)
        assert row.talent_cultivation_bonus == 1000

    @pytest.mark.parametrize("job_title", ["店長", "督導"])
    def test_save_for_store_runners(self, client, auth_headers, make_profile, store, job_title):
        row = _staff(store, "E1")
        runner = make_profile(job_title=job_title)
        res = client.post("/api/v1/talent-cultivation", json={
            "year_month": "202403", "store_id": store.id,
            "bonuses": [{"employee_code": "E1", "employee_name": "員工E1",
                         "cultivation_bonus": 800, "cultivation_target": "新人小王"}],
        }, headers=auth_headers(runner))
        assert res.status_code == 200
        assert res.get_json()["count"] == 1
        db.session.refresh(row)
        assert row.talent_cultivation_bonus == 800


# ═════════════════════════════════════════════════════════════════════════════
# Meal allowance & transport
# ═════════════════════════════════════════════════════════════════════════════


class TestMealAllowance:
    def _payload(self, store, **overrides):
        data = {
            "year_month": "202403", "store_id": store.id, "record_date": "15",
            "employee_code": "E1", "employee_name": "員工E1",
            "work_hours": "09:00-21:00", "meal_period": "晚餐", "employee_type": "正職",
        }
        data.update(overrides)
        return data

    def test_required_fields(self, member, store):
        with pytest.raises(ValidationError) as exc:
            bonus_service.create_meal_allowance(member, self._payload(store, meal_period=""))
        assert "meal_period" in exc.value.details

    def test_create_and_delete(self, client, auth_headers, member, store):
        headers = auth_headers(member)
        res = client.post("/api/v1/meal-allowance", json=self._payload(store), headers=headers)
        assert res.status_code == 201
        record_id = res.get_json()["data"]["id"]

        res = client.get(f"/api/v1/meal-allowance?year_month=202403&store_id={store.id}",
                         headers=headers)
        assert [r["id"] for r in res.get_json()["data"]] == [record_id]

        res = client.delete(f"/api/v1/meal-allowance/{record_id}", headers=headers)
        assert res.status_code == 200
        assert MealAllowanceRecord.query.count() == 0

    def test_employee_picker_merges_sources(self, store):
        _staff(store, "E1", employee_name="甲")
        db.session.add_all([
            StoreEmployee(employee_code="E1", employee_name="甲", store_id=store.id,
                          is_pharmacist=True, is_active=True),
            StoreEmployee(employee_code="E2", employee_name="乙", store_id=store.id,
                          is_active=True),
            StoreEmployee(employee_code="E3", employee_name="丙", store_id=store.id,
                          is_active=False),
        ])
        db.session.commit()
        rows = bonus_service.list_meal_allowance_employees("202403", store.id)
        assert [(r["employee_code"], r["is_pharmacist"]) for r in rows] == [
            ("E1", True), ("E2", False),
        ]


class TestTransportExpense:
    def test_only_positive_rows(self, store):
        _staff(store, "E1", monthly_transport_expense=1200, transport_expense_notes="高鐵")
        _staff(store, "E2", monthly_transport_expense=0)
        rows = bonus_service.list_transport_expense("202403", store.id)
        assert [(r["employee_code"], r["transport_expense"], r["expense_notes"]) for r in rows] == [
            ("E1", 1200.0, "高鐵"),
        ]
