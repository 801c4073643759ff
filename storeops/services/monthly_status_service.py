"""Monthly staff status — per-store month setup, edits, submit and confirm.

Lifecycle of a store's month (rows in MonthlyStaffStatus, roll-up in
MonthlyStoreSummary):

    initialize   one draft row per active employee; summary "pending"
    edit         any row not yet confirmed
    submit       draft rows become "submitted"; summary "submitted"
    confirm      admin/manager only; every row becomes "confirmed"

Transaction policy: flush() only; the route handler commits.
"""
import calendar
import logging
from datetime import datetime, timezone

from storeops.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from storeops.models import db
from storeops.models.staff import (
    MonthlyPerformanceDetail,
    MonthlyStaffStatus,
    MonthlyStoreSummary,
    StoreEmployee,
)
from storeops.models.store import StoreManager
from storeops.services import policies, store_role_service
from storeops.services.store_service import get_store
from storeops.utils.helpers import parse_year_month

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "position",
    "is_dual_position",
    "employment_type",
    "is_pharmacist",
    "calculation_block",
    "monthly_status",
    "work_days",
    "work_hours",
    "actual_gross_profit",
    "newbie_level",
    "admin_level",
    "has_manager_bonus",
    "is_supervisor_rotation",
    "notes",
    "support_to_other_stores_hours",
    "support_from_other_stores_hours",
)


def _now():
    return datetime.now(timezone.utc)


def _require_year_month(value):
    year_month = parse_year_month(value)
    if year_month is None:
        raise ValidationError("月份格式錯誤", details={"year_month": "expected YYYYMM"})
    return year_month


def days_in_month(year_month) -> int:
    return calendar.monthrange(int(year_month[:4]), int(year_month[4:]))[1]


def ensure_store_access(profile, store_id):
    """Admins and managers reach every store; others only stores they hold a row for."""
    if policies.is_admin_or_manager(profile):
        return
    held = StoreManager.query.filter_by(user_id=profile.id, store_id=store_id).first()
    if held is None:
        raise PermissionDeniedError("無權限操作此門市")


def _summary(year_month, store_id):
    summary = MonthlyStoreSummary.query.filter_by(
        year_month=year_month, store_id=store_id
    ).first()
    if summary is None:
        summary = MonthlyStoreSummary(year_month=year_month, store_id=store_id)
        db.session.add(summary)
    return summary


def list_staff_status(year_month, store_id):
    year_month = _require_year_month(year_month)
    return (
        MonthlyStaffStatus.query
        .filter_by(year_month=year_month, store_id=store_id)
        .order_by(MonthlyStaffStatus.employee_code)
        .all()
    )


def initialize_month(year_month, store_id):
    """Create the month's draft rows from the store's active employees.

    Returns ``(rows, initialized)``; an already initialized month is
    returned as-is with ``initialized=False``.
    """
    year_month = _require_year_month(year_month)
    get_store(store_id)

    existing = list_staff_status(year_month, store_id)
    if existing:
        return existing, False

    employees = (
        StoreEmployee.query
        .filter_by(store_id=store_id)
        .filter(StoreEmployee.is_active.is_(True))
        .order_by(StoreEmployee.employee_code)
        .all()
    )
    if not employees:
        raise ValidationError("該門市沒有員工資料")

    total_days = days_in_month(year_month)
    rows = []
    for employee in employees:
        position = employee.current_position or employee.position
        full_time = (employee.employment_type or "full_time") == "full_time"
        rows.append(MonthlyStaffStatus(
            year_month=year_month,
            store_id=store_id,
            employee_code=employee.employee_code,
            employee_name=employee.employee_name,
            position=position,
            employment_type=employee.employment_type or "full_time",
            is_pharmacist=bool(employee.is_pharmacist),
            monthly_status="full_month",
            total_days_in_month=total_days,
            work_days=total_days if full_time else None,
            work_hours=None if full_time else 0,
            has_manager_bonus="店長" in (position or ""),
            status="draft",
        ))
    db.session.add_all(rows)

    summary = _summary(year_month, store_id)
    summary.store_status = "pending"
    summary.total_employees = len(rows)
    summary.confirmed_count = 0
    db.session.flush()
    logger.info(
        "Month %s initialized for store %s with %d staff", year_month, store_id, len(rows),
        extra={"store_id": store_id, "year_month": year_month},
    )
    return rows, True


def get_staff_status(status_id):
    row = db.session.get(MonthlyStaffStatus, status_id)
    if row is None:
        raise NotFoundError("MonthlyStaffStatus", status_id, message="找不到員工月度資料")
    return row


def update_staff_status(status_id, updates):
    """Apply whitelisted field updates; confirmed rows are locked."""
    row = get_staff_status(status_id)
    if row.status == "confirmed":
        raise StateError("已確認的資料無法修改")
    unknown = sorted(set(updates) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(
            "包含不可修改的欄位", details={field: "not editable" for field in unknown}
        )
    for field, value in updates.items():
        setattr(row, field, value)
    db.session.flush()
    return row


def submit_store(actor, year_month, store_id):
    """Mark the store's draft rows submitted. Returns the number of rows moved."""
    year_month = _require_year_month(year_month)
    get_store(store_id)
    now = _now()
    count = (
        MonthlyStaffStatus.query
        .filter_by(year_month=year_month, store_id=store_id, status="draft")
        .update(
            {"status": "submitted", "submitted_at": now, "submitted_by": actor.id},
            synchronize_session="fetch",
        )
    )
    if not count and not list_staff_status(year_month, store_id):
        raise ValidationError("尚未初始化本月資料")

    summary = _summary(year_month, store_id)
    summary.store_status = "submitted"
    summary.submitted_at = now
    summary.submitted_by = actor.id
    db.session.flush()
    logger.info(
        "Store %s submitted %s (%d rows)", store_id, year_month, count,
        extra={"store_id": store_id, "year_month": year_month},
    )
    return count


def confirm_store(actor, year_month, store_id):
    """Confirm every row of the store's month. Returns the confirmed count."""
    policies.authorize(actor, policies.is_admin_or_manager, "只有管理員或經理可以確認")
    year_month = _require_year_month(year_month)
    get_store(store_id)
    rows = list_staff_status(year_month, store_id)
    if not rows:
        raise ValidationError("尚未初始化本月資料")

    now = _now()
    for row in rows:
        row.status = "confirmed"
        row.confirmed_at = now
        row.confirmed_by = actor.id

    summary = _summary(year_month, store_id)
    summary.store_status = "confirmed"
    summary.total_employees = len(rows)
    summary.confirmed_count = len(rows)
    summary.confirmed_at = now
    summary.confirmed_by = actor.id
    db.session.flush()
    logger.info(
        "Store %s confirmed %s (%d rows)", store_id, year_month, len(rows),
        extra={"store_id": store_id, "year_month": year_month},
    )
    return len(rows)


def list_store_summaries(actor, year_month):
    """Summary per store the actor manages; stores with no summary read as pending."""
    year_month = _require_year_month(year_month)
    stores = store_role_service.get_managed_stores(actor)
    summaries = {
        s.store_id: s
        for s in MonthlyStoreSummary.query.filter(
            MonthlyStoreSummary.year_month == year_month,
            MonthlyStoreSummary.store_id.in_([s["id"] for s in stores]),
        )
    }
    result = []
    for store in stores:
        summary = summaries.get(store["id"])
        data = summary.to_dict() if summary else {"store_status": None}
        result.append({
            **data,
            "year_month": year_month,
            "store_id": store["id"],
            "store_code": store["store_code"],
            "store_name": store["store_name"],
            "role_type": store["role_type"],
            "store_status": data.get("store_status") or "pending",
        })
    return result


def list_performance_details(staff_status_id):
    get_staff_status(staff_status_id)
    return (
        MonthlyPerformanceDetail.query
        .filter_by(staff_status_id=staff_status_id)
        .order_by(MonthlyPerformanceDetail.store_code)
        .all()
    )
