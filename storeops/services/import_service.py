"""
Excel imports — employee master, cashier performance, store statistics.

Each import reads the first sheet of an uploaded .xlsx with openpyxl and
processes it row by row. A bad row is reported and skipped; the rest of the
file is still applied.

    import_employees      header on row 1; new StoreEmployee rows
    import_performance    header on row 2 (row 1 is the report title);
                          per-cashier totals onto MonthlyStaffStatus, with a
                          per-store breakdown for multi-store cashiers
    import_store_stats    header on row 1; statistics onto MonthlyStoreSummary

Transaction policy: flush() only; the route handler commits.
"""

import io
import logging
import re
from datetime import date, datetime
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.datetime import from_excel
from openpyxl.utils.exceptions import InvalidFileException

from storeops.core.exceptions import ValidationError
from storeops.models import db
from storeops.models.staff import (
    MonthlyPerformanceDetail,
    MonthlyStaffStatus,
    MonthlyStoreSummary,
    StoreEmployee,
)
from storeops.models.store import Store
from storeops.utils.helpers import normalize_code, parse_year_month, to_float

logger = logging.getLogger(__name__)

EMPLOYEE_COLUMNS = ("門市代號", "員編", "姓名", "職位", "到職日期")
TOTAL_ROW_LABEL = "合計"

# Excel column → MonthlyStoreSummary attribute
STORE_STAT_COLUMNS = {
    "門市人數": "total_staff_count",
    "行政人數": "admin_staff_count",
    "新人人數": "newbie_count",
    "營業天數": "business_days",
    "毛利": "total_gross_profit",
    "總來客數": "total_customer_count",
    "單純處方加購來客數": "prescription_addon_only_count",
    "一般箋張數": "regular_prescription_count",
    "慢箋張數": "chronic_prescription_count",
}
FLOAT_STATS = {"total_gross_profit"}

_DATE_RE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")


class RowError(Exception):
    """A single spreadsheet row that cannot be imported."""


# ═══════════════════════════════════════════════════════════════
# Workbook reading
# ═══════════════════════════════════════════════════════════════

def read_rows(content: bytes, header_row: int = 1) -> list[tuple[int, dict]]:
    """
    Read the first sheet into ``(excel_row_number, {header: value})`` pairs.

    Header cells are stripped; blank rows are dropped.
    """
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as exc:
        raise ValidationError("檔案格式錯誤", details={"file": str(exc)}) from exc

    try:
        ws = wb.worksheets[0]
        rows = ws.iter_rows(min_row=header_row, values_only=True)
        header = next(rows, None)
        if not header:
            raise ValidationError("Excel 檔案沒有資料")
        keys = [str(h).strip() if h is not None else "" for h in header]

        result = []
        for offset, values in enumerate(rows, start=header_row + 1):
            if values is None or all(v is None or str(v).strip() == "" for v in values):
                continue
            result.append((offset, dict(zip(keys, values))))
    finally:
        wb.close()

    if not result:
        raise ValidationError("Excel 檔案沒有資料")
    return result


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _int(value) -> int:
    return int(to_float(value, 0.0))


def parse_start_date(value) -> date:
    """Accept a date cell, an Excel serial, or ``YYYY-MM-DD`` / ``YYYY/MM/DD``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return from_excel(value).date()
    match = _DATE_RE.match(_text(value))
    if not match:
        raise RowError(f'日期格式錯誤："{value}"，請使用 YYYY-MM-DD 格式')
    try:
        return date(*(int(part) for part in match.groups()))
    except ValueError as exc:
        raise RowError(f'日期格式錯誤："{value}"') from exc


def _require_year_month(value):
    year_month = parse_year_month(value)
    if year_month is None:
        raise ValidationError("月份格式錯誤", details={"year_month": "expected YYYYMM"})
    return year_month


# ═══════════════════════════════════════════════════════════════
# Employees
# ═══════════════════════════════════════════════════════════════

def import_employees(content: bytes) -> dict:
    """Create StoreEmployee rows; existing or repeated codes are rejected."""
    rows = read_rows(content)
    stores = {
        s.store_code: s.id
        for s in Store.query.filter(Store.is_active.is_(True))
    }
    existing = {code for (code,) in db.session.query(StoreEmployee.employee_code)}

    results = {"imported": 0, "failed": 0, "errors": []}
    for row_number, row in rows:
        code = normalize_code(_text(row.get("員編")))
        name = _text(row.get("姓名"))
        try:
            for column in EMPLOYEE_COLUMNS:
                if not _text(row.get(column)):
                    raise RowError(f"缺少{column}")
            store_code = _text(row.get("門市代號"))
            store_id = stores.get(store_code)
            if store_id is None:
                raise RowError(f'門市代號 "{store_code}" 不存在')
            start_date = parse_start_date(row.get("到職日期"))
            if code in existing:
                raise RowError(f'員編 "{code}" 已存在')

            db.session.add(StoreEmployee(
                employee_code=code,
                employee_name=name,
                store_id=store_id,
                position=_text(row.get("職位")),
                current_position=_text(row.get("職位")),
                start_date=start_date,
                employment_type="full_time",
                is_active=True,
                status="active",
            ))
            existing.add(code)
            results["imported"] += 1
        except RowError as exc:
            results["failed"] += 1
            results["errors"].append({
                "row": row_number,
                "employee_code": code or "未知",
                "employee_name": name or "未知",
                "error": str(exc),
            })

    db.session.flush()
    logger.info(
        "Employee import: %d imported, %d failed", results["imported"], results["failed"],
    )
    return results


# ═══════════════════════════════════════════════════════════════
# Cashier performance
# ═══════════════════════════════════════════════════════════════

def _gross_profit_rate(gross_profit, sales_amount):
    return round(gross_profit / sales_amount * 100, 2) if sales_amount > 0 else 0.0


def group_performance(rows) -> dict:
    """Group report lines by cashier code, summing across stores."""
    cashiers = {}
    for _, row in rows:
        store_code = _text(row.get("門市別"))
        code = normalize_code(_text(row.get("收銀代號")))
        if not store_code or store_code == TOTAL_ROW_LABEL or not code:
            continue
        entry = cashiers.setdefault(code, {
            "employee_name": _text(row.get("收銀員姓名")),
            "transaction_count": 0,
            "sales_amount": 0.0,
            "gross_profit": 0.0,
            "stores": [],
        })
        detail = {
            "store_code": store_code,
            "store_name": store_code,
            "transaction_count": _int(row.get("交易次數")),
            "sales_amount": to_float(row.get("銷售金額"), 0.0),
            "gross_profit": to_float(row.get("毛利"), 0.0),
            "gross_profit_rate": to_float(row.get("毛利率"), 0.0),
        }
        entry["transaction_count"] += detail["transaction_count"]
        entry["sales_amount"] += detail["sales_amount"]
        entry["gross_profit"] += detail["gross_profit"]
        entry["stores"].append(detail)
    return cashiers


def import_performance(content: bytes, year_month) -> dict:
    """
    Write each cashier's combined totals onto every staff row they hold
    for the month. Cashiers with no staff row that month are skipped.
    """
    year_month = _require_year_month(year_month)
    cashiers = group_performance(read_rows(content, header_row=2))
    if not cashiers:
        raise ValidationError("Excel 檔案沒有有效資料")

    store_names = {s.store_code: s.store_name for s in Store.query.all()}
    updated = skipped = 0
    for code, entry in cashiers.items():
        records = MonthlyStaffStatus.query.filter_by(
            year_month=year_month, employee_code=code
        ).all()
        if not records:
            skipped += 1
            continue

        rate = _gross_profit_rate(entry["gross_profit"], entry["sales_amount"])
        for record in records:
            record.transaction_count = entry["transaction_count"]
            record.sales_amount = entry["sales_amount"]
            record.gross_profit = entry["gross_profit"]
            record.gross_profit_rate = rate

            MonthlyPerformanceDetail.query.filter_by(staff_status_id=record.id).delete()
            if len(entry["stores"]) > 1:
                for detail in entry["stores"]:
                    db.session.add(MonthlyPerformanceDetail(
                        staff_status_id=record.id,
                        **{**detail, "store_name": store_names.get(detail["store_code"], detail["store_code"])},
                    ))
            updated += 1

    db.session.flush()
    logger.info(
        "Performance import %s: %d updated, %d skipped", year_month, updated, skipped,
        extra={"year_month": year_month},
    )
    return {"updated": updated, "skipped": skipped, "total": len(cashiers), "errors": []}


# ═══════════════════════════════════════════════════════════════
# Store statistics
# ═══════════════════════════════════════════════════════════════

def _match_store(code):
    """Exact store code first, then the first store whose code starts with it."""
    store = Store.query.filter_by(store_code=code).first()
    if store is None:
        store = (
            Store.query.filter(Store.store_code.like(f"{code}%"))
            .order_by(Store.store_code)
            .first()
        )
    return store


def import_store_stats(content: bytes, year_month) -> dict:
    year_month = _require_year_month(year_month)
    rows = read_rows(content)

    results = {"success": 0, "failed": 0, "errors": []}
    for row_number, row in rows:
        code = _text(row.get("門市代號"))
        if not code:
            results["failed"] += 1
            results["errors"].append(f"第 {row_number} 列：缺少門市代號")
            continue
        store = _match_store(code)
        if store is None:
            results["failed"] += 1
            results["errors"].append(f"找不到門市: {code}")
            continue

        summary = MonthlyStoreSummary.query.filter_by(
            year_month=year_month, store_id=store.id
        ).first()
        if summary is None:
            summary = MonthlyStoreSummary(
                year_month=year_month, store_id=store.id, store_status="pending",
            )
            db.session.add(summary)
        for column, attr in STORE_STAT_COLUMNS.items():
            value = row.get(column)
            setattr(summary, attr, to_float(value, 0.0) if attr in FLOAT_STATS else _int(value))
        results["success"] += 1

    db.session.flush()
    logger.info(
        "Store stats import %s: %d stored, %d failed",
        year_month, results["success"], results["failed"],
        extra={"year_month": year_month},
    )
    return results
