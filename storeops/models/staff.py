"""
Staffing & monthly ledger models.

    StoreEmployee              — master row per employee (code is upper-case)
    MonthlyStaffStatus         — per (year_month, store, employee) work and ledger data
    MonthlyStoreSummary        — per (year_month, store) submission status and statistics
    MonthlyPerformanceDetail   — per-store cashier performance for multi-store staff
    EmployeeMovementHistory    — promotions, leave, return, probation, resignation
    EmployeePromotionHistory   — position changes
    SupportStaffBonus          — month-wide single-item bonus for floating staff
    MealAllowanceRecord        — per-shift meal allowance entries
"""

from datetime import datetime, timezone

from storeops.models import db

EMPLOYEE_STATUSES = ("active", "leave_without_pay", "resigned")
MONTHLY_STATUSES = ("draft", "submitted", "confirmed")
MOVEMENT_TYPES = (
    "promotion", "leave_without_pay", "return_to_work", "pass_probation", "resignation",
)


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════════════════
#  EMPLOYEES
# ═══════════════════════════════════════════════════════════════════════════

class StoreEmployee(db.Model):
    __tablename__ = "store_employees"

    id = db.Column(db.Integer, primary_key=True)
    employee_code = db.Column(db.String(50), unique=True, nullable=False)
    employee_name = db.Column(db.String(100), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id", ondelete="SET NULL"))
    position = db.Column(db.String(50))
    current_position = db.Column(db.String(50))
    start_date = db.Column(db.Date)
    employment_type = db.Column(db.String(20), default="full_time")
    is_pharmacist = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)
    status = db.Column(db.String(30), nullable=False, default="active")
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.Index("ix_store_employees_store_id", "store_id"),
    )

    store = db.relationship("Store")

    def to_dict(self):
        return {
            "id": self.id,
            "employee_code": self.employee_code,
            "employee_name": self.employee_name,
            "store_id": self.store_id,
            "position": self.position,
            "current_position": self.current_position,
            "start_date": _iso(self.start_date),
            "employment_type": self.employment_type,
            "is_pharmacist": self.is_pharmacist,
            "is_active": self.is_active,
            "status": self.status,
            "notes": self.notes,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  MONTHLY LEDGER
# ═══════════════════════════════════════════════════════════════════════════

class MonthlyStaffStatus(db.Model):
    __tablename__ = "monthly_staff_status"

    id = db.Column(db.Integer, primary_key=True)
    year_month = db.Column(db.String(6), nullable=False)
    store_id = db.Column(
        db.Integer, db.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    employee_code = db.Column(db.String(50), nullable=False)
    employee_name = db.Column(db.String(100))
    position = db.Column(db.String(50))
    is_dual_position = db.Column(db.Boolean, default=False)

    # Work data
    calculation_block = db.Column(db.String(50))
    monthly_status = db.Column(db.String(30), default="full_month")  # full_month, partial, ...
    work_days = db.Column(db.Integer)
    work_hours = db.Column(db.Float)
    actual_gross_profit = db.Column(db.Float)
    newbie_level = db.Column(db.String(20))  # 二階新人, 一階新人, 未過階
    admin_level = db.Column(db.String(20))   # 過階行政, 未過階行政
    status = db.Column(db.String(20), nullable=False, default="draft")

    # Month setup (copied from the employee master at initialization)
    employment_type = db.Column(db.String(20))
    is_pharmacist = db.Column(db.Boolean, default=False)
    total_days_in_month = db.Column(db.Integer)
    has_manager_bonus = db.Column(db.Boolean, default=False)
    is_supervisor_rotation = db.Column(db.Boolean, default=False)
    notes = db.Column(db.Text)

    # Cashier performance (imported)
    transaction_count = db.Column(db.Integer)
    sales_amount = db.Column(db.Float)
    gross_profit = db.Column(db.Float)
    gross_profit_rate = db.Column(db.Float)

    # Review trail
    submitted_at = db.Column(db.DateTime)
    submitted_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    confirmed_at = db.Column(db.DateTime)
    confirmed_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))

    # Ledger fields
    talent_cultivation_bonus = db.Column(db.Float)
    talent_cultivation_target = db.Column(db.String(200))
    monthly_transport_expense = db.Column(db.Float)
    transport_expense_notes = db.Column(db.Text)
    single_item_bonus = db.Column(db.Float)
    support_to_other_stores_hours = db.Column(db.Float)
    support_from_other_stores_hours = db.Column(db.Float)

    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            "year_month", "store_id", "employee_code", name="uq_monthly_staff_status"
        ),
        db.Index("ix_monthly_staff_status_ym_store", "year_month", "store_id"),
    )

    store = db.relationship("Store")

    def to_dict(self):
        return {
            "id": self.id,
            "year_month": self.year_month,
            "store_id": self.store_id,
            "employee_code": self.employee_code,
            "employee_name": self.employee_name,
            "position": self.position,
            "is_dual_position": self.is_dual_position,
            "calculation_block": self.calculation_block,
            "monthly_status": self.monthly_status,
            "work_days": self.work_days,
            "work_hours": self.work_hours,
            "actual_gross_profit": self.actual_gross_profit,
            "newbie_level": self.newbie_level,
            "admin_level": self.admin_level,
            "status": self.status,
            "talent_cultivation_bonus": self.talent_cultivation_bonus,
            "talent_cultivation_target": self.talent_cultivation_target,
            "monthly_transport_expense": self.monthly_transport_expense,
            "transport_expense_notes": self.transport_expense_notes,
            "single_item_bonus": self.single_item_bonus,
            "support_to_other_stores_hours": self.support_to_other_stores_hours,
            "support_from_other_stores_hours": self.support_from_other_stores_hours,
            "employment_type": self.employment_type,
            "is_pharmacist": self.is_pharmacist,
            "total_days_in_month": self.total_days_in_month,
            "has_manager_bonus": self.has_manager_bonus,
            "is_supervisor_rotation": self.is_supervisor_rotation,
            "notes": self.notes,
            "transaction_count": self.transaction_count,
            "sales_amount": self.sales_amount,
            "gross_profit": self.gross_profit,
            "gross_profit_rate": self.gross_profit_rate,
            "submitted_at": _iso(self.submitted_at),
            "submitted_by": self.submitted_by,
            "confirmed_at": _iso(self.confirmed_at),
            "confirmed_by": self.confirmed_by,
        }


class MonthlyStoreSummary(db.Model):
    __tablename__ = "monthly_store_summary"

    id = db.Column(db.Integer, primary_key=True)
    year_month = db.Column(db.String(6), nullable=False)
    store_id = db.Column(
        db.Integer, db.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    store_status = db.Column(db.String(20))  # pending, submitted, confirmed
    total_employees = db.Column(db.Integer, default=0)
    confirmed_count = db.Column(db.Integer, default=0)
    submitted_at = db.Column(db.DateTime)
    submitted_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    confirmed_at = db.Column(db.DateTime)
    confirmed_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))

    # Store statistics (imported)
    total_staff_count = db.Column(db.Integer)
    admin_staff_count = db.Column(db.Integer)
    newbie_count = db.Column(db.Integer)
    business_days = db.Column(db.Integer)
    total_gross_profit = db.Column(db.Float)
    total_customer_count = db.Column(db.Integer)
    prescription_addon_only_count = db.Column(db.Integer)
    regular_prescription_count = db.Column(db.Integer)
    chronic_prescription_count = db.Column(db.Integer)

    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("year_month", "store_id", name="uq_monthly_store_summary"),
    )

    store = db.relationship("Store")

    def to_dict(self):
        return {
            "id": self.id,
            "year_month": self.year_month,
            "store_id": self.store_id,
            "store_status": self.store_status,
            "total_employees": self.total_employees,
            "confirmed_count": self.confirmed_count,
            "submitted_at": _iso(self.submitted_at),
            "submitted_by": self.submitted_by,
            "confirmed_at": _iso(self.confirmed_at),
            "confirmed_by": self.confirmed_by,
            "total_staff_count": self.total_staff_count,
            "admin_staff_count": self.admin_staff_count,
            "newbie_count": self.newbie_count,
            "business_days": self.business_days,
            "total_gross_profit": self.total_gross_profit,
            "total_customer_count": self.total_customer_count,
            "prescription_addon_only_count": self.prescription_addon_only_count,
            "regular_prescription_count": self.regular_prescription_count,
            "chronic_prescription_count": self.chronic_prescription_count,
        }


class MonthlyPerformanceDetail(db.Model):
    """Per-store breakdown for a cashier who worked in more than one store."""

    __tablename__ = "monthly_performance_details"

    id = db.Column(db.Integer, primary_key=True)
    staff_status_id = db.Column(
        db.Integer, db.ForeignKey("monthly_staff_status.id", ondelete="CASCADE"), nullable=False
    )
    store_code = db.Column(db.String(20))
    store_name = db.Column(db.String(200))
    transaction_count = db.Column(db.Integer, default=0)
    sales_amount = db.Column(db.Float, default=0)
    gross_profit = db.Column(db.Float, default=0)
    gross_profit_rate = db.Column(db.Float, default=0)

    __table_args__ = (
        db.Index("ix_monthly_performance_details_staff", "staff_status_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "staff_status_id": self.staff_status_id,
            "store_code": self.store_code,
            "store_name": self.store_name,
            "transaction_count": self.transaction_count,
            "sales_amount": self.sales_amount,
            "gross_profit": self.gross_profit,
            "gross_profit_rate": self.gross_profit_rate,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  HISTORY
# ═══════════════════════════════════════════════════════════════════════════

class EmployeeMovementHistory(db.Model):
    __tablename__ = "employee_movement_history"

    id = db.Column(db.Integer, primary_key=True)
    employee_code = db.Column(db.String(50), nullable=False)
    employee_name = db.Column(db.String(100))
    movement_type = db.Column(db.String(30), nullable=False)
    movement_date = db.Column(db.Date, nullable=False)
    new_value = db.Column(db.String(100))
    old_value = db.Column(db.String(100))
    notes = db.Column(db.Text)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=_utcnow)

    __table_args__ = (
        db.Index("ix_employee_movement_history_code", "employee_code"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "employee_code": self.employee_code,
            "employee_name": self.employee_name,
            "movement_type": self.movement_type,
            "movement_date": _iso(self.movement_date),
            "new_value": self.new_value,
            "old_value": self.old_value,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }


class EmployeePromotionHistory(db.Model):
    __tablename__ = "employee_promotion_history"

    id = db.Column(db.Integer, primary_key=True)
    employee_code = db.Column(db.String(50), nullable=False)
    employee_name = db.Column(db.String(100))
    old_position = db.Column(db.String(50))
    new_position = db.Column(db.String(50), nullable=False)
    promotion_date = db.Column(db.Date, nullable=False)
    effective_date = db.Column(db.Date)
    notes = db.Column(db.Text)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "employee_code": self.employee_code,
            "employee_name": self.employee_name,
            "old_position": self.old_position,
            "new_position": self.new_position,
            "promotion_date": _iso(self.promotion_date),
            "effective_date": _iso(self.effective_date),
            "notes": self.notes,
            "created_by": self.created_by,
        }


# ═══════════════════════════════════════════════════════════════════════════
#  BONUS & ALLOWANCE LEDGERS
# ═══════════════════════════════════════════════════════════════════════════

class SupportStaffBonus(db.Model):
    __tablename__ = "support_staff_bonus"

    id = db.Column(db.Integer, primary_key=True)
    year_month = db.Column(db.String(6), nullable=False)
    employee_code = db.Column(db.String(50), nullable=False)
    employee_name = db.Column(db.String(100), nullable=False)
    bonus_amount = db.Column(db.Float, nullable=False, default=0)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=_utcnow)

    __table_args__ = (
        db.Index("ix_support_staff_bonus_year_month", "year_month"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "year_month": self.year_month,
            "employee_code": self.employee_code,
            "employee_name": self.employee_name,
            "bonus_amount": self.bonus_amount,
            "created_by": self.created_by,
        }


class MealAllowanceRecord(db.Model):
    __tablename__ = "meal_allowance_records"

    id = db.Column(db.Integer, primary_key=True)
    year_month = db.Column(db.String(6), nullable=False)
    store_id = db.Column(
        db.Integer, db.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    record_date = db.Column(db.String(20), nullable=False)  # as entered, e.g. "15" or "2024-03-15"
    employee_code = db.Column(db.String(50))
    employee_name = db.Column(db.String(100), nullable=False)
    work_hours = db.Column(db.String(50), nullable=False)   # shift window, e.g. "09:00-21:00"
    meal_period = db.Column(db.String(20), nullable=False)
    employee_type = db.Column(db.String(20), nullable=False)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=_utcnow)

    __table_args__ = (
        db.Index("ix_meal_allowance_ym_store", "year_month", "store_id"),
    )

    store = db.relationship("Store")

    def to_dict(self):
        return {
            "id": self.id,
            "year_month": self.year_month,
            "store_id": self.store_id,
            "record_date": self.record_date,
            "employee_code": self.employee_code,
            "employee_name": self.employee_name,
            "work_hours": self.work_hours,
            "meal_period": self.meal_period,
            "employee_type": self.employee_type,
            "created_by": self.created_by,
        }
