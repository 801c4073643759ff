"""
Monthly export workbooks (openpyxl).

Each ``generate_*`` function takes already-fetched row dicts and returns the
xlsx file as bytes; the ``*_rows`` helpers above them run the queries. Every
sheet gets the same dark header row, thin borders and auto-sized columns.

Bonus workbooks (single-item, transport, talent cultivation) end with one
total row after the data rows.
"""

import io
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from storeops.models.staff import (
    MealAllowanceRecord,
    MonthlyStaffStatus,
    MonthlyStoreSummary,
    SupportStaffBonus,
)
from storeops.models.store import Store

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
TOTAL_FONT = Font(bold=True)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

TOTAL_LABEL = "合計"

POSITION_ORDER = {
    "督導": 1,
    "店長": 2,
    "代理店長": 3,
    "督導(代理店長)": 4,
    "副店長": 5,
    "主任": 6,
    "組長": 7,
    "專員": 8,
    "新人": 9,
    "行政": 10,
    "兼職專員": 11,
    "兼職藥師": 12,
    "兼職藥師專員": 13,
    "兼職助理": 14,
}
UNKNOWN_POSITION_ORDER = 999

SENIOR_POSITIONS = ("督導", "店長", "代理店長", "督導(代理店長)", "副店長", "主任", "組長", "專員")
THIRD_STAGE_PART_TIME = ("兼職專員", "兼職藥師專員")
UNSTAGED_PART_TIME = ("兼職藥師", "兼職助理")


# ═══════════════════════════════════════════════════════════════════════════
#  SHEET HELPERS
# ═══════════════════════════════════════════════════════════════════════════


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def _write_sheet(title: str, headers: list[str], rows: list[list]):
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for col, header in enumerate(headers, 1):
        ws.cell(row=1, column=col, value=header)
    _apply_header_style(ws, 1, len(headers))

    for i, values in enumerate(rows, 2):
        for col, value in enumerate(values, 1):
            ws.cell(row=i, column=col, value=value).border = THIN_BORDER
    return wb, ws


def _append_total(ws, headers: list[str], label_col: str, value_col: str, total) -> None:
    row = ws.max_row + 1
    label = ws.cell(row=row, column=headers.index(label_col) + 1, value=TOTAL_LABEL)
    value = ws.cell(row=row, column=headers.index(value_col) + 1, value=total)
    for cell in (label, value):
        cell.font = TOTAL_FONT
    for col in range(1, len(headers) + 1):
        ws.cell(row=row, column=col).border = THIN_BORDER


def _to_bytes(wb, ws) -> bytes:
    _auto_width(ws)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _number(value):
    return value if value is not None else 0


# ═══════════════════════════════════════════════════════════════════════════
#  MONTHLY STAFF STATUS
# ═══════════════════════════════════════════════════════════════════════════

MONTHLY_STATUS_HEADERS = [
    "門市代碼", "月份", "員工代號", "員工姓名", "計算區塊",
    "職位", "當月個人實際毛利", "階段", "時數", "天數",
]


def calculate_stage(row: dict) -> str:
    """Stage label for a staff row, derived from position and level."""
    position = row.get("position") or ""
    if position in SENIOR_POSITIONS or position in THIRD_STAGE_PART_TIME:
        return "三階"
    if position == "新人":
        level = row.get("newbie_level")
        if level == "二階新人":
            return "二階"
        if level == "一階新人":
            return "一階"
        return "未過一階"
    if position == "行政":
        level = row.get("admin_level") or row.get("newbie_level")
        return "行政(過階)" if level == "過階行政" else "行政(未過階)"
    if position in UNSTAGED_PART_TIME:
        return "未過階"
    return ""


def sort_monthly_status(rows: list[dict]) -> list[dict]:
    return sorted(
        rows,
        key=lambda r: (
            r.get("store_code") or "",
            POSITION_ORDER.get(r.get("position") or "", UNKNOWN_POSITION_ORDER),
        ),
    )


def _monthly_status_values(row: dict, year_month: str) -> list:
    position = row.get("position") or ""
    if row.get("is_dual_position"):
        position += "-雙"
    gross = row.get("actual_gross_profit")
    days = ""
    if row.get("monthly_status") != "full_month" and row.get("work_days"):
        days = row["work_days"]
    return [
        row.get("store_code") or "",
        year_month,
        row.get("employee_code") or "",
        row.get("employee_name") or "",
        row.get("calculation_block") or "",
        position,
        round(gross) if gross else "",
        calculate_stage(row),
        row.get("work_hours") or "",
        days,
    ]


def generate_monthly_status_xlsx(rows: list[dict], year_month: str) -> bytes:
    ordered = sort_monthly_status(rows)
    wb, ws = _write_sheet(
        "每月人員狀態",
        MONTHLY_STATUS_HEADERS,
        [_monthly_status_values(r, year_month) for r in ordered],
    )
    return _to_bytes(wb, ws)


# ═══════════════════════════════════════════════════════════════════════════
#  SUPPORT HOURS & MEAL ALLOWANCE
# ═══════════════════════════════════════════════════════════════════════════

SUPPORT_HOURS_HEADERS = ["門市代號", "門市名稱", "支援分店時數", "分店支援時數"]
MEAL_ALLOWANCE_HEADERS = ["門市代號", "月份", "日期", "員編", "姓名", "上班區間", "誤餐時段", "身分"]


def generate_support_hours_xlsx(rows: list[dict]) -> bytes:
    wb, ws = _write_sheet(
        "門市支援時數",
        SUPPORT_HOURS_HEADERS,
        [
            [
                r.get("store_code") or "",
                r.get("store_name") or "",
                _number(r.get("support_to_other_stores_hours")),
                _number(r.get("support_from_other_stores_hours")),
            ]
            for r in rows
        ],
    )
    return _to_bytes(wb, ws)


def generate_meal_allowance_xlsx(rows: list[dict], year_month: str) -> bytes:
    values = [
        [
            r.get("store_code") or "",
            year_month,
            r.get("record_date") or "",
            r.get("employee_code") or "",
            r.get("employee_name") or "",
            r.get("work_hours") or "",
            r.get("meal_period") or "",
            r.get("employee_type") or "",
        ]
        for r in rows
    ]
    if not values:
        # Empty month still yields a sheet carrying the month
        values = [["", year_month, "", "", "", "", "", ""]]
    wb, ws = _write_sheet("誤餐費", MEAL_ALLOWANCE_HEADERS, values)
    return _to_bytes(wb, ws)


# ═══════════════════════════════════════════════════════════════════════════
#  BONUS WORKBOOKS
# ═══════════════════════════════════════════════════════════════════════════

SINGLE_ITEM_BONUS_HEADERS = ["門市代號", "月份", "員編", "姓名", "單品獎金總額"]
TRANSPORT_HEADERS = ["門市代號", "月份", "員編", "姓名", "交通費", "備註原因"]
TALENT_CULTIVATION_HEADERS = ["門市代號", "月份", "員編", "姓名", "育才獎金金額", "育才對象"]


def generate_single_item_bonus_xlsx(
    staff_rows: list[dict], support_rows: list[dict], year_month: str
) -> bytes:
    values = [
        [r.get("store_code") or "", year_month, r.get("employee_code") or "",
         r.get("employee_name") or "", _number(r.get("single_item_bonus"))]
        for r in staff_rows
    ]
    values += [
        [r.get("store_code") or "", year_month, r.get("employee_code") or "",
         r.get("employee_name") or "", _number(r.get("bonus_amount"))]
        for r in support_rows
    ]
    wb, ws = _write_sheet("單品獎金", SINGLE_ITEM_BONUS_HEADERS, values)
    _append_total(ws, SINGLE_ITEM_BONUS_HEADERS, "姓名", "單品獎金總額",
                  sum(v[4] for v in values))
    return _to_bytes(wb, ws)


def generate_transport_xlsx(rows: list[dict], year_month: str) -> bytes:
    values = [
        [r.get("store_code") or "", year_month, r.get("employee_code") or "",
         r.get("employee_name") or "", _number(r.get("monthly_transport_expense")),
         r.get("transport_expense_notes") or ""]
        for r in rows
    ]
    wb, ws = _write_sheet("交通費用", TRANSPORT_HEADERS, values)
    _append_total(ws, TRANSPORT_HEADERS, "姓名", "交通費", sum(v[4] for v in values))
    return _to_bytes(wb, ws)


def generate_talent_cultivation_xlsx(rows: list[dict], year_month: str) -> bytes:
    values = [
        [r.get("store_code") or "", year_month, r.get("employee_code") or "",
         r.get("employee_name") or "", _number(r.get("talent_cultivation_bonus")),
         r.get("talent_cultivation_target") or ""]
        for r in rows
    ]
    wb, ws = _write_sheet("育才獎金", TALENT_CULTIVATION_HEADERS, values)
    _append_total(ws, TALENT_CULTIVATION_HEADERS, "姓名", "育才獎金金額",
                  sum(v[4] for v in values))
    return _to_bytes(wb, ws)


# ═══════════════════════════════════════════════════════════════════════════
#  ROW QUERIES
# ═══════════════════════════════════════════════════════════════════════════


def _staff_query(year_month, store_ids):
    query = (
        MonthlyStaffStatus.query.join(Store, Store.id == MonthlyStaffStatus.store_id)
        .filter(MonthlyStaffStatus.year_month == year_month)
    )
    if store_ids:
        query = query.filter(MonthlyStaffStatus.store_id.in_(store_ids))
    return query


def _with_store(record):
    data = record.to_dict()
    store = record.store
    data["store_code"] = store.store_code if store else ""
    data["store_name"] = store.store_name if store else ""
    return data


def monthly_status_rows(year_month, store_ids=None):
    return [_with_store(r) for r in _staff_query(year_month, store_ids).all()]


def support_hours_rows(year_month):
    """Active stores with their staff support hours summed for the month."""
    totals = {}
    for row in MonthlyStaffStatus.query.filter_by(year_month=year_month).all():
        to_hours, from_hours = totals.get(row.store_id, (0, 0))
        totals[row.store_id] = (
            to_hours + (row.support_to_other_stores_hours or 0),
            from_hours + (row.support_from_other_stores_hours or 0),
        )
    result = []
    for store in Store.query.filter(Store.is_active.is_(True)).order_by(Store.store_code):
        to_hours, from_hours = totals.get(store.id, (0, 0))
        result.append({
            "store_code": store.store_code,
            "store_name": store.store_name,
            "support_to_other_stores_hours": to_hours,
            "support_from_other_stores_hours": from_hours,
        })
    return result


def single_item_bonus_rows(year_month, store_ids=None):
    """Staff rows with a single-item bonus plus the month's support-staff rows."""
    staff = (
        _staff_query(year_month, store_ids)
        .filter(MonthlyStaffStatus.single_item_bonus.isnot(None))
        .order_by(Store.store_code, MonthlyStaffStatus.employee_code)
        .all()
    )
    support = (
        SupportStaffBonus.query.filter_by(year_month=year_month)
        .order_by(SupportStaffBonus.employee_code)
        .all()
    )
    return [_with_store(r) for r in staff], [r.to_dict() for r in support]


def meal_allowance_rows(year_month, store_ids=None):
    query = (
        MealAllowanceRecord.query.join(Store, Store.id == MealAllowanceRecord.store_id)
        .filter(MealAllowanceRecord.year_month == year_month)
    )
    if store_ids:
        query = query.filter(MealAllowanceRecord.store_id.in_(store_ids))
    records = query.order_by(
        Store.store_code, MealAllowanceRecord.record_date, MealAllowanceRecord.employee_code,
    ).all()
    return [_with_store(r) for r in records]


def transport_rows(year_month, store_ids=None):
    rows = (
        _staff_query(year_month, store_ids)
        .filter(MonthlyStaffStatus.monthly_transport_expense > 0)
        .order_by(Store.store_code, MonthlyStaffStatus.employee_code)
        .all()
    )
    return [_with_store(r) for r in rows]


def talent_cultivation_rows(year_month, store_ids=None):
    rows = (
        _staff_query(year_month, store_ids)
        .filter(MonthlyStaffStatus.talent_cultivation_bonus.isnot(None))
        .order_by(Store.store_code, MonthlyStaffStatus.employee_code)
        .all()
    )
    return [_with_store(r) for r in rows]


def store_export_status(year_month):
    """Per active store: staff counts and the month's roll-up status."""
    summaries = {
        s.store_id: s.store_status
        for s in MonthlyStoreSummary.query.filter_by(year_month=year_month).all()
    }
    statuses = {}
    for row in MonthlyStaffStatus.query.filter_by(year_month=year_month).all():
        statuses.setdefault(row.store_id, []).append(row.status)

    result = []
    for store in Store.query.filter(Store.is_active.is_(True)).order_by(Store.store_code):
        staff = statuses.get(store.id, [])
        submitted = staff.count("submitted")
        confirmed = staff.count("confirmed")
        status = summaries.get(store.id)
        if status not in ("submitted", "confirmed"):
            if confirmed:
                status = "confirmed"
            elif submitted:
                status = "submitted"
            else:
                status = "pending"
        result.append({
            "id": store.id,
            "store_code": store.store_code,
            "store_name": store.store_name,
            "total_employees": len(staff),
            "submitted_count": submitted,
            "confirmed_count": confirmed,
            "store_status": status,
        })
    return result


def single_item_bonus_pdf_rows(year_month, store_id):
    """Store staff with a positive bonus merged with support-staff rows, by code."""
    staff = (
        MonthlyStaffStatus.query
        .filter_by(year_month=year_month, store_id=store_id)
        .filter(MonthlyStaffStatus.single_item_bonus > 0)
        .all()
    )
    rows = [
        {"employee_code": r.employee_code, "employee_name": r.employee_name,
         "bonus": r.single_item_bonus}
        for r in staff
    ]
    rows += [
        {"employee_code": r.employee_code, "employee_name": r.employee_name,
         "bonus": r.bonus_amount}
        for r in (
            SupportStaffBonus.query
            .filter_by(year_month=year_month)
            .filter(SupportStaffBonus.bonus_amount > 0)
            .all()
        )
    ]
    return sorted(rows, key=lambda r: r["employee_code"] or "")
