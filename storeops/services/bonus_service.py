"""Bonus & expense ledgers — support bonus, talent cultivation, meal allowance, transport.

Transaction policy: flush() only; the route handler commits. The support
bonus batch deletes the month's rows and inserts the new set in the same
transaction, so a failed insert leaves the old set in place.
"""
import logging

from storeops.core.exceptions import NotFoundError, ValidationError
from storeops.models import db
from storeops.models.staff import (
    MealAllowanceRecord,
    MonthlyStaffStatus,
    StoreEmployee,
    SupportStaffBonus,
)
from storeops.utils.helpers import normalize_code, parse_year_month, to_float

logger = logging.getLogger(__name__)


def _require_year_month(value):
    year_month = parse_year_month(value)
    if year_month is None:
        raise ValidationError("月份格式錯誤", details={"year_month": "expected YYYYMM"})
    return year_month


# ── Support staff bonus ──────────────────────────────────────────────────────


def list_support_bonus(year_month):
    year_month = _require_year_month(year_month)
    return (
        SupportStaffBonus.query.filter_by(year_month=year_month)
        .order_by(SupportStaffBonus.employee_code)
        .all()
    )


def replace_support_bonus(actor, year_month, bonuses):
    """Replace the whole month's support bonus set."""
    year_month = _require_year_month(year_month)
    if not isinstance(bonuses, list) or not bonuses:
        raise ValidationError("缺少必要參數", details={"bonuses": "required"})
    for bonus in bonuses:
        if not bonus.get("employee_code") or not bonus.get("employee_name"):
            raise ValidationError(
                f"員工 {bonus.get('employee_code') or bonus.get('employee_name') or ''} 資料不完整"
            )

    SupportStaffBonus.query.filter_by(year_month=year_month).delete()
    rows = [
        SupportStaffBonus(
            year_month=year_month,
            employee_code=normalize_code(bonus["employee_code"]),
            employee_name=bonus["employee_name"],
            bonus_amount=to_float(bonus.get("bonus_amount"), 0.0),
            created_by=actor.id,
        )
        for bonus in bonuses
    ]
    db.session.add_all(rows)
    db.session.flush()
    logger.info("Support bonus for %s replaced with %d rows", year_month, len(rows))
    return rows


# ── Talent cultivation bonus ─────────────────────────────────────────────────


def list_talent_cultivation(year_month, store_id):
    year_month = _require_year_month(year_month)
    rows = (
        MonthlyStaffStatus.query
        .filter_by(year_month=year_month, store_id=store_id)
        .filter(MonthlyStaffStatus.talent_cultivation_bonus > 0)
        .order_by(MonthlyStaffStatus.employee_code)
        .all()
    )
    return [
        {
            "id": r.id,
            "employee_code": r.employee_code,
            "employee_name": r.employee_name,
            "cultivation_bonus": r.talent_cultivation_bonus,
            "cultivation_target": r.talent_cultivation_target or "",
        }
        for r in rows
    ]


def save_talent_cultivation(year_month, store_id, bonuses):
    """Update each employee's cultivation bonus on the month's status row.

    Per-employee failures are collected; returns ``(count, errors)``.
    """
    year_month = _require_year_month(year_month)
    if not store_id or not isinstance(bonuses, list) or not bonuses:
        raise ValidationError("缺少必要參數")
    for bonus in bonuses:
        amount = to_float(bonus.get("cultivation_bonus"), 0.0)
        if not bonus.get("employee_code") or not bonus.get("employee_name"):
            raise ValidationError(f"員工 {bonus.get('employee_code') or ''} 資料不完整")
        if amount > 0 and not (bonus.get("cultivation_target") or "").strip():
            raise ValidationError(
                f"員工 {bonus.get('employee_code')} 資料不完整（需包含育才對象）"
            )

    count = 0
    errors = []
    for bonus in bonuses:
        code = normalize_code(bonus["employee_code"])
        row = MonthlyStaffStatus.query.filter_by(
            year_month=year_month, store_id=store_id, employee_code=code
        ).first()
        if row is None:
            errors.append(f"員工 {code} 在該月份沒有狀態記錄")
            continue
        row.talent_cultivation_bonus = to_float(bonus.get("cultivation_bonus"), 0.0)
        row.talent_cultivation_target = bonus.get("cultivation_target")
        count += 1

    if count == 0:
        raise ValidationError(f"所有更新都失敗了。錯誤：{'; '.join(errors)}")
    db.session.flush()
    return count, errors


# ── Meal allowance ───────────────────────────────────────────────────────────

MEAL_ALLOWANCE_REQUIRED = (
    "year_month", "store_id", "record_date", "employee_name",
    "work_hours", "meal_period", "employee_type",
)


def list_meal_allowance(year_month, store_id):
    year_month = _require_year_month(year_month)
    return (
        MealAllowanceRecord.query
        .filter_by(year_month=year_month, store_id=store_id)
        .order_by(MealAllowanceRecord.record_date, MealAllowanceRecord.created_at,
                  MealAllowanceRecord.id)
        .all()
    )


def create_meal_allowance(actor, data):
    missing = [f for f in MEAL_ALLOWANCE_REQUIRED if not data.get(f)]
    if missing:
        raise ValidationError("缺少必要欄位", details={f: "required" for f in missing})
    record = MealAllowanceRecord(
        year_month=_require_year_month(data["year_month"]),
        store_id=data["store_id"],
        record_date=str(data["record_date"]),
        employee_code=normalize_code(data.get("employee_code")) or None,
        employee_name=data["employee_name"],
        work_hours=str(data["work_hours"]),
        meal_period=data["meal_period"],
        employee_type=data["employee_type"],
        created_by=actor.id,
    )
    db.session.add(record)
    db.session.flush()
    return record


def delete_meal_allowance(record_id):
    record = db.session.get(MealAllowanceRecord, record_id)
    if record is None:
        raise NotFoundError("MealAllowanceRecord", record_id, message="找不到記錄")
    db.session.delete(record)
    db.session.flush()


def list_meal_allowance_employees(year_month, store_id):
    """The month's staff plus the store's active employees, unique by code or name."""
    year_month = _require_year_month(year_month)
    pharmacists = {
        e.employee_code: bool(e.is_pharmacist)
        for e in StoreEmployee.query.filter_by(store_id=store_id).all()
    }
    staff = (
        MonthlyStaffStatus.query.filter_by(year_month=year_month, store_id=store_id)
        .order_by(MonthlyStaffStatus.employee_code, MonthlyStaffStatus.employee_name)
        .all()
    )
    employees = (
        StoreEmployee.query.filter_by(store_id=store_id)
        .filter(StoreEmployee.is_active.is_(True))
        .order_by(StoreEmployee.employee_code)
        .all()
    )

    unique = {}
    for row in staff:
        key = row.employee_code or row.employee_name
        unique.setdefault(key, {
            "employee_code": row.employee_code,
            "employee_name": row.employee_name,
            "is_pharmacist": pharmacists.get(row.employee_code, False),
        })
    for emp in employees:
        key = emp.employee_code or emp.employee_name
        unique.setdefault(key, {
            "employee_code": emp.employee_code,
            "employee_name": emp.employee_name,
            "is_pharmacist": bool(emp.is_pharmacist),
        })
    return list(unique.values())


# ── Transport expense ────────────────────────────────────────────────────────


def list_transport_expense(year_month, store_id):
    year_month = _require_year_month(year_month)
    rows = (
        MonthlyStaffStatus.query
        .filter_by(year_month=year_month, store_id=store_id)
        .filter(MonthlyStaffStatus.monthly_transport_expense > 0)
        .order_by(MonthlyStaffStatus.employee_code)
        .all()
    )
    return [
        {
            "id": r.id,
            "employee_code": r.employee_code,
            "employee_name": r.employee_name,
            "transport_expense": r.monthly_transport_expense,
            "expense_notes": r.transport_expense_notes or "",
        }
        for r in rows
    ]
