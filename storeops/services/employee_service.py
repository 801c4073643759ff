"""Employee service layer — master data, movements and promotions.

Transaction policy: flush() only; the route handler commits.

Movement effects are applied here, in the same transaction as the history
insert:
    promotion          → current_position (and monthly rows from that month on)
    leave_without_pay  → status = leave_without_pay
    return_to_work     → status = active
    resignation        → status = resigned, is_active = False
    pass_probation     → history only
"""
import logging

from storeops.core.exceptions import ConflictError, NotFoundError, ValidationError
from storeops.models import db
from storeops.models.staff import (
    MOVEMENT_TYPES,
    EmployeeMovementHistory,
    EmployeePromotionHistory,
    MonthlyStaffStatus,
    StoreEmployee,
)
from storeops.utils.helpers import normalize_code, parse_date

logger = logging.getLogger(__name__)

_STATUS_EFFECTS = {
    "leave_without_pay": "leave_without_pay",
    "return_to_work": "active",
    "resignation": "resigned",
}


def _find_employee(code, store_id=None):
    query = StoreEmployee.query.filter_by(employee_code=normalize_code(code))
    if store_id is not None:
        query = query.filter_by(store_id=store_id)
    return query.first()


def _current_position(employee):
    if employee is None:
        return None
    return employee.current_position or employee.position


# ── Employees ────────────────────────────────────────────────────────────────


def create_employee(data):
    code = normalize_code(data.get("employee_code"))
    name = (data.get("employee_name") or "").strip()
    if not code or not name:
        raise ValidationError("缺少必填欄位", details={"employee_code": "required", "employee_name": "required"})
    if _find_employee(code) is not None:
        raise ConflictError("StoreEmployee", "employee_code", code, message="此員編已存在")

    position = data.get("current_position") or None
    employee = StoreEmployee(
        employee_code=code,
        employee_name=name,
        position=position,
        current_position=position,
        start_date=parse_date(data.get("start_date")),
        employment_type=data.get("employment_type") or "full_time",
        is_pharmacist=bool(data.get("is_pharmacist", False)),
        store_id=data.get("store_id"),
        notes=data.get("notes"),
        is_active=True,
        status="active",
    )
    db.session.add(employee)
    db.session.flush()
    logger.info("Employee %s created", code)
    return employee


def update_employee(code, data):
    """Update name/position/start date and push name and position to monthly rows."""
    code = normalize_code(code or data.get("employee_code"))
    name = (data.get("employee_name") or "").strip()
    if not code or not name:
        raise ValidationError("缺少必填欄位", details={"employee_name": "required"})
    employee = _find_employee(code)
    if employee is None:
        raise NotFoundError("StoreEmployee", code, message="找不到員工")

    position = data.get("current_position") or None
    employee.employee_name = name
    employee.start_date = parse_date(data.get("start_date"))
    employee.position = position
    employee.current_position = position

    values = {"employee_name": name}
    if position:
        values["position"] = position
    updated = (
        MonthlyStaffStatus.query.filter_by(employee_code=code)
        .update(values, synchronize_session="fetch")
    )
    db.session.flush()
    logger.info("Employee %s updated; %d monthly rows synced", code, updated)
    return employee


def list_employees():
    return (
        StoreEmployee.query.filter(StoreEmployee.is_active.is_(True))
        .order_by(StoreEmployee.employee_code)
        .all()
    )


# ── Propagation ──────────────────────────────────────────────────────────────


def _apply_position(code, new_position, effective_date):
    employee = _find_employee(code)
    if employee is not None:
        employee.current_position = new_position
        employee.position = new_position
    if effective_date is not None:
        start_key = f"{effective_date.year:04d}{effective_date.month:02d}"
        (
            MonthlyStaffStatus.query
            .filter(MonthlyStaffStatus.employee_code == code)
            .filter(MonthlyStaffStatus.year_month >= start_key)
            .update({"position": new_position}, synchronize_session="fetch")
        )


def _apply_status(code, movement_type):
    employee = _find_employee(code)
    if employee is None:
        return
    employee.status = _STATUS_EFFECTS[movement_type]
    if movement_type == "resignation":
        employee.is_active = False
    elif movement_type == "return_to_work":
        employee.is_active = True


# ── Movements ────────────────────────────────────────────────────────────────


def _validate_movement(item):
    code = normalize_code(item.get("employee_code"))
    label = item.get("employee_code") or item.get("employee_name")
    if (not code or not item.get("employee_name") or not item.get("movement_type")
            or not item.get("effective_date")):
        raise ValidationError(f"員工 {label} 資料不完整")
    if item["movement_type"] not in MOVEMENT_TYPES:
        raise ValidationError(f"員工 {label} 異動類型無效")
    if item["movement_type"] == "promotion" and not item.get("position"):
        raise ValidationError(f"員工 {code} 升職需要指定職位")
    effective = parse_date(item.get("effective_date"))
    if effective is None:
        raise ValidationError(f"員工 {label} 生效日期格式錯誤")
    return code, effective


def record_movements(actor, movements):
    """Insert movement history rows and apply their effects.

    The whole batch is validated before anything is written.
    """
    if not isinstance(movements, list) or not movements:
        raise ValidationError("缺少異動資料")
    parsed = [(item, *_validate_movement(item)) for item in movements]

    rows = []
    for item, code, effective in parsed:
        movement_type = item["movement_type"]
        employee = _find_employee(code)
        old_value = new_value = None
        if movement_type == "promotion":
            old_value = _current_position(employee)
            new_value = item["position"]
        elif movement_type in _STATUS_EFFECTS:
            old_value = employee.status if employee is not None else None
            new_value = _STATUS_EFFECTS[movement_type]

        row = EmployeeMovementHistory(
            employee_code=code,
            employee_name=item["employee_name"],
            movement_type=movement_type,
            movement_date=effective,
            old_value=old_value,
            new_value=new_value,
            notes=item.get("notes"),
            created_by=actor.id,
        )
        db.session.add(row)
        rows.append(row)

        if movement_type == "promotion":
            db.session.add(EmployeePromotionHistory(
                employee_code=code,
                employee_name=item["employee_name"],
                old_position=old_value,
                new_position=new_value,
                promotion_date=effective,
                effective_date=effective,
                notes=item.get("notes"),
                created_by=actor.id,
            ))
            _apply_position(code, new_value, effective)
        elif movement_type in _STATUS_EFFECTS:
            _apply_status(code, movement_type)

    db.session.flush()
    logger.info("Recorded %d employee movements by %s", len(rows), actor.id)
    return rows


def list_movements(employee_code=None):
    query = EmployeeMovementHistory.query
    if employee_code:
        query = query.filter_by(employee_code=normalize_code(employee_code))
    return query.order_by(
        EmployeeMovementHistory.movement_date.desc(), EmployeeMovementHistory.id.desc()
    ).all()


def delete_movement(movement_id):
    movement = db.session.get(EmployeeMovementHistory, movement_id)
    if movement is None:
        raise NotFoundError("EmployeeMovementHistory", movement_id, message="找不到該異動記錄")
    label = f"{movement.employee_name} ({movement.employee_code})"
    db.session.delete(movement)
    db.session.flush()
    return label


# ── Promotions ───────────────────────────────────────────────────────────────


def record_promotions(actor, promotions, store_id=None):
    """Insert promotion history and apply the position changes.

    With ``store_id`` the old position is looked up among that store's
    employees only.
    """
    if not isinstance(promotions, list) or not promotions:
        raise ValidationError("缺少升遷資料")
    parsed = []
    for promo in promotions:
        code = normalize_code(promo.get("employee_code"))
        effective = parse_date(promo.get("effective_date"))
        if not code or not promo.get("employee_name") or not promo.get("position") or effective is None:
            raise ValidationError(
                f"員工 {promo.get('employee_code') or promo.get('employee_name')} 資料不完整"
            )
        parsed.append((promo, code, effective))

    rows = []
    for promo, code, effective in parsed:
        old_position = _current_position(_find_employee(code, store_id))
        row = EmployeePromotionHistory(
            employee_code=code,
            employee_name=promo["employee_name"],
            old_position=old_position,
            new_position=promo["position"],
            promotion_date=effective,
            effective_date=effective,
            notes=promo.get("notes"),
            created_by=actor.id,
        )
        db.session.add(row)
        rows.append(row)
        _apply_position(code, promo["position"], effective)

    db.session.flush()
    logger.info("Recorded %d promotions by %s", len(rows), actor.id)
    return rows
