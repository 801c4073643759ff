"""
Employee tests: master data, movement effects and promotion propagation
into monthly staff rows.
"""

from datetime import date

import pytest

from storeops.core.exceptions import ConflictError, ValidationError
from storeops.models import db
from storeops.models.staff import (
    EmployeeMovementHistory,
    EmployeePromotionHistory,
    MonthlyStaffStatus,
    StoreEmployee,
)
from storeops.services import employee_service


@pytest.fixture()
def store(make_store):
    return make_store("S01")


@pytest.fixture()
def employee(store):
    emp = employee_service.create_employee({
        "employee_code": "e100",
        "employee_name": "陳藥師",
        "current_position": "專員",
        "store_id": store.id,
        "is_pharmacist": True,
    })
    db.session.commit()
    return emp


def _monthly(store, year_month, code="E100", position="專員"):
    row = MonthlyStaffStatus(
        year_month=year_month, store_id=store.id, employee_code=code,
        employee_name="陳藥師", position=position,
    )
    db.session.add(row)
    db.session.commit()
    return row


# ═════════════════════════════════════════════════════════════════════════════
# Master data
# ═════════════════════════════════════════════════════════════════════════════


class TestEmployees:
    def test_code_normalized(self, employee):
        assert employee.employee_code == "E100"
        assert employee.status == "active"
        assert employee.position == employee.current_position == "專員"

    def test_duplicate_code(self, employee):
        with pytest.raises(ConflictError):
            employee_service.create_employee({"employee_code": " E100 ", "employee_name": "重複"})

    def test_required_fields(self):
        with pytest.raises(ValidationError):
            employee_service.create_employee({"employee_code": "E200"})

    def test_update_syncs_monthly_rows(self, employee, store):
        first = _monthly(store, "202401")
        second = _monthly(store, "202402")
        employee_service.update_employee("e100", {
            "employee_name": "陳大明", "current_position": "副店長",
        })
        db.session.commit()
        for row in (first, second):
            db.session.refresh(row)
            assert row.employee_name == "陳大明"
            assert row.position == "副店長"


# ═════════════════════════════════════════════════════════════════════════════
# Movements
# ═════════════════════════════════════════════════════════════════════════════


class TestMovements:
    def test_promotion_propagates_from_effective_month(self, member, employee, store):
        before = _monthly(store, "202402")
        same = _monthly(store, "202403")
        after = _monthly(store, "202404")

        employee_service.record_movements(member, [{
            "employee_code": "E100", "employee_name": "陳藥師",
            "movement_type": "promotion", "position": "店長",
            "effective_date": "2024-03-15",
        }])
        db.session.commit()

        for row in (before, same, after):
            db.session.refresh(row)
        assert before.position == "專員"
        assert same.position == "店長"
        assert after.position == "店長"
        assert employee.current_position == "店長"

        movement = EmployeeMovementHistory.query.one()
        assert (movement.old_value, movement.new_value) == ("專員", "店長")
        promo = EmployeePromotionHistory.query.one()
        assert promo.effective_date == date(2024, 3, 15)

    def test_resignation_deactivates(self, member, employee):
        employee_service.record_movements(member, [{
            "employee_code": "E100", "employee_name": "陳藥師",
            "movement_type": "resignation", "effective_date": "2024-05-31",
        }])
        db.session.commit()
        assert employee.status == "resigned"
        assert employee.is_active is False
        assert employee_service.list_employees() == []

    def test_leave_and_return(self, member, employee):
        employee_service.record_movements(member, [{
            "employee_code": "E100", "employee_name": "陳藥師",
            "movement_type": "leave_without_pay", "effective_date": "2024-01-01",
        }])
        assert employee.status == "leave_without_pay"
        employee_service.record_movements(member, [{
            "employee_code": "E100", "employee_name": "陳藥師",
            "movement_type": "return_to_work", "effective_date": "2024-04-01",
        }])
        db.session.commit()
        assert employee.status == "active"
        assert EmployeeMovementHistory.query.count() == 2

    def test_probation_is_history_only(self, member, employee):
        employee_service.record_movements(member, [{
            "employee_code": "E100", "employee_name": "陳藥師",
            "movement_type": "pass_probation", "effective_date": "2024-02-01",
        }])
        db.session.commit()
        assert employee.status == "active"
        assert EmployeePromotionHistory.query.count() == 0

    def test_promotion_needs_position(self, member, employee):
        with pytest.raises(ValidationError):
            employee_service.record_movements(member, [{
                "employee_code": "E100", "employee_name": "陳藥師",
                "movement_type": "promotion", "effective_date": "2024-02-01",
            }])

    def test_batch_validated_before_writing(self, member, employee):
        with pytest.raises(ValidationError):
            employee_service.record_movements(member, [
                {"employee_code": "E100", "employee_name": "陳藥師",
                 "movement_type": "pass_probation", "effective_date": "2024-02-01"},
                {"employee_code": "E100", "employee_name": "陳藥師",
                 "movement_type": "transfer", "effective_date": "2024-02-01"},
            ])
        db.session.rollback()
        assert EmployeeMovementHistory.query.count() == 0

    def test_batch_endpoint_requires_permission(self, client, auth_headers, member, employee):
        payload = {"movements": [{
            "employee_code": "E100", "employee_name": "陳藥師",
            "movement_type": "pass_probation", "effective_date": "2024-02-01",
        }]}
        res = client.post("/api/v1/employee-movements/batch", json=payload,
                          headers=auth_headers(member))
        assert res.status_code == 403
        assert res.get_json()["required"] == "employee.promotion.create"

    def test_batch_endpoint(self, client, auth_headers, member, employee, grant):
        grant(member, "employee.promotion.create")
        payload = {"movements": [{
            "employee_code": "E100", "employee_name": "陳藥師",
            "movement_type": "pass_probation", "effective_date": "2024-02-01",
        }]}
        res = client.post("/api/v1/employee-movements/batch", json=payload,
                          headers=auth_headers(member))
        assert res.status_code == 201
        assert res.get_json()["count"] == 1


# ═════════════════════════════════════════════════════════════════════════════
# Promotions
# ═════════════════════════════════════════════════════════════════════════════


class TestPromotions:
    def test_store_scoped_old_position(self, member, employee, make_store):
        other = make_store("S99")
        rows = employee_service.record_promotions(member, [{
            "employee_code": "E100", "employee_name": "陳藥師",
            "position": "副店長", "effective_date": "2024-06-01",
        }], store_id=other.id)
        db.session.commit()
        # not found in the other store, so no old position is known
        assert rows[0].old_position is None
        assert employee.current_position == "副店長"

    def test_global_promotion(self, client, auth_headers, member, employee, grant):
        grant(member, "employee.promotion.create")
        res = client.post("/api/v1/promotions/batch-global", json={"promotions": [{
            "employee_code": "E100", "employee_name": "陳藥師",
            "position": "店長", "effective_date": "2024-06-01",
        }]}, headers=auth_headers(member))
        assert res.status_code == 201
        promo = EmployeePromotionHistory.query.one()
        assert (promo.old_position, promo.new_position) == ("專員", "店長")
        assert StoreEmployee.query.filter_by(employee_code="E100").one().position == "店長"

    def test_store_batch_requires_store(self, client, auth_headers, member, grant):
        grant(member, "employee.promotion.create")
        res = client.post("/api/v1/promotions/batch", json={"promotions": []},
                          headers=auth_headers(member))
        assert res.status_code == 400
