"""
Monthly report export endpoints.

    GET /api/v1/export/monthly-status.xlsx
    GET /api/v1/export/support-hours.xlsx
    GET /api/v1/export/single-item-bonus.xlsx
    GET /api/v1/export/meal-allowance.xlsx
    GET /api/v1/export/transport.xlsx
    GET /api/v1/export/talent-cultivation.xlsx
        year_month: YYYYMM (required)
        store_ids:  comma-separated store ids (optional, default: all)

    GET /api/v1/export/single-item-bonus.pdf?year_month=&store_id=
    GET /api/v1/export/stores?year_month=      — per-store roll-up status

Workbooks are restricted to admins and business supervisors. No temp
files: content is generated and returned in-memory.
"""

import logging
from urllib.parse import quote

from flask import Blueprint, Response, jsonify, request

from storeops.auth import require_auth
from storeops.blueprints import actor_profile
from storeops.middleware.permission_required import require_permission
from storeops.models import db
from storeops.models.store import Store
from storeops.services import export_service, pdf_service, policies
from storeops.utils.errors import E, api_error
from storeops.utils.helpers import parse_year_month

logger = logging.getLogger(__name__)

export_bp = Blueprint("export", __name__, url_prefix="/api/v1")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _download(content, filename, mimetype=XLSX_MIMETYPE):
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


def _year_month_arg():
    return parse_year_month(request.args.get("year_month"))


def _store_ids_arg():
    raw = request.args.get("store_ids", "")
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if part.isdigit():
            ids.append(int(part))
    return ids or None


def _export(name, year_month, build):
    """Run ``build`` and wrap the workbook; failures become a JSON 500."""
    policies.authorize(actor_profile(), policies.can_export_monthly, "只有管理員或營業部主管可以匯出")
    try:
        content = build()
    except Exception:
        logger.exception("Export %s failed for %s", name, year_month)
        return api_error(E.INTERNAL, "匯出失敗，請稍後再試")
    if content is None:
        return api_error(E.NOT_FOUND, "查無資料")
    return _download(content, f"{name}_{year_month}.xlsx")


def _bad_year_month():
    return api_error(E.VALIDATION_INVALID, "月份格式錯誤", details={"year_month": "expected YYYYMM"})


# ═══════════════════════════════════════════════════════════════
# Workbooks
# ═══════════════════════════════════════════════════════════════

@export_bp.route("/export/monthly-status.xlsx", methods=["GET"])
@require_auth
def export_monthly_status():
    year_month = _year_month_arg()
    if not year_month:
        return _bad_year_month()
    store_ids = _store_ids_arg()
    return _export("每月人員狀態", year_month, lambda: export_service.generate_monthly_status_xlsx(
        export_service.monthly_status_rows(year_month, store_ids), year_month,
    ))


@export_bp.route("/export/support-hours.xlsx", methods=["GET"])
@require_auth
def export_support_hours():
    year_month = _year_month_arg()
    if not year_month:
        return _bad_year_month()
    return _export("支援時數", year_month, lambda: export_service.generate_support_hours_xlsx(
        export_service.support_hours_rows(year_month),
    ))


@export_bp.route("/export/single-item-bonus.xlsx", methods=["GET"])
@require_auth
def export_single_item_bonus():
    year_month = _year_month_arg()
    if not year_month:
        return _bad_year_month()
    store_ids = _store_ids_arg()

    def build():
        staff, support = export_service.single_item_bonus_rows(year_month, store_ids)
        return export_service.generate_single_item_bonus_xlsx(staff, support, year_month)

    return _export("單品獎金", year_month, build)


@export_bp.route("/export/meal-allowance.xlsx", methods=["GET"])
@require_auth
def export_meal_allowance():
    year_month = _year_month_arg()
    if not year_month:
        return _bad_year_month()
    store_ids = _store_ids_arg()
    return _export("誤餐費", year_month, lambda: export_service.generate_meal_allowance_xlsx(
        export_service.meal_allowance_rows(year_month, store_ids), year_month,
    ))


@export_bp.route("/export/transport.xlsx", methods=["GET"])
@require_auth
def export_transport():
    year_month = _year_month_arg()
    if not year_month:
        return _bad_year_month()
    store_ids = _store_ids_arg()

    def build():
        rows = export_service.transport_rows(year_month, store_ids)
        if not rows:
            return None
        return export_service.generate_transport_xlsx(rows, year_month)

    return _export("交通費", year_month, build)


@export_bp.route("/export/talent-cultivation.xlsx", methods=["GET"])
@require_auth
def export_talent_cultivation():
    year_month = _year_month_arg()
    if not year_month:
        return _bad_year_month()
    store_ids = _store_ids_arg()
    return _export("育才獎金", year_month, lambda: export_service.generate_talent_cultivation_xlsx(
        export_service.talent_cultivation_rows(year_month, store_ids), year_month,
    ))


# ═══════════════════════════════════════════════════════════════
# Store status & PDF
# ═══════════════════════════════════════════════════════════════

@export_bp.route("/export/stores", methods=["GET"])
@require_permission("monthly.export.download")
def export_store_status():
    year_month = _year_month_arg()
    if not year_month:
        return _bad_year_month()
    return jsonify({"success": True, "stores": export_service.store_export_status(year_month)})


@export_bp.route("/export/single-item-bonus.pdf", methods=["GET"])
@require_auth
def export_single_item_bonus_pdf():
    policies.authorize(actor_profile(), policies.can_export_store_pdf, "只有店長以上職位可以匯出")
    year_month = _year_month_arg()
    store_id = request.args.get("store_id", type=int)
    if not year_month or not store_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少必要參數")
    store = db.session.get(Store, store_id)
    if store is None:
        return api_error(E.NOT_FOUND, "找不到門市")

    try:
        rows = export_service.single_item_bonus_pdf_rows(year_month, store_id)
        content = pdf_service.generate_single_item_bonus_pdf(
            rows, store.store_code, store.store_name, year_month,
        )
    except Exception:
        logger.exception("Single-item bonus PDF failed for store %s %s", store_id, year_month)
        return api_error(E.INTERNAL, "匯出失敗，請稍後再試")
    return _download(
        content,
        f"{store.store_code}_{year_month}_單品獎金.pdf",
        mimetype="application/pdf",
    )
