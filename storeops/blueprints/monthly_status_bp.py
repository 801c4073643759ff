"""
Monthly Status Blueprint — per-store staff status for a month.

Endpoints:
  GET  /api/v1/monthly-status?year_month=&store_id=          — Staff rows of a store's month
  POST /api/v1/monthly-status/initialize                     — Create draft rows from employees
  PUT  /api/v1/monthly-status/:id                            — Edit one row (not once confirmed)
  POST /api/v1/monthly-status/submit                         — Submit a store's month
  POST /api/v1/monthly-status/confirm                        — Confirm a store's month (admin/manager)
  GET  /api/v1/monthly-status/summaries?year_month=          — Summaries of the caller's stores
  GET  /api/v1/staff-performance-details?staff_status_id=    — Per-store cashier breakdown
"""

import logging

from flask import Blueprint, jsonify, request

from storeops.auth import require_auth
from storeops.blueprints import actor_profile, json_body
from storeops.services import monthly_status_service
from storeops.utils.errors import E, api_error
from storeops.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

monthly_status_bp = Blueprint("monthly_status", __name__, url_prefix="/api/v1")


def _store_id(data):
    try:
        return int(data.get("store_id"))
    except (TypeError, ValueError):
        return None


@monthly_status_bp.route("/monthly-status", methods=["GET"])
@require_auth
def list_staff_status():
    store_id = _store_id(request.args)
    if not store_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少門市", details={"store_id": "required"})
    monthly_status_service.ensure_store_access(actor_profile(), store_id)
    rows = monthly_status_service.list_staff_status(request.args.get("year_month"), store_id)
    return jsonify({"success": True, "data": [r.to_dict() for r in rows]})


@monthly_status_bp.route("/monthly-status/initialize", methods=["POST"])
@require_auth
def initialize_month():
    data = json_body()
    store_id = _store_id(data)
    if not store_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少門市", details={"store_id": "required"})
    monthly_status_service.ensure_store_access(actor_profile(), store_id)
    rows, initialized = monthly_status_service.initialize_month(data.get("year_month"), store_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "success": True,
        "initialized": initialized,
        "data": [r.to_dict() for r in rows],
    }), 201 if initialized else 200


@monthly_status_bp.route("/monthly-status/<int:status_id>", methods=["PUT"])
@require_auth
def update_staff_status(status_id):
    row = monthly_status_service.get_staff_status(status_id)
    monthly_status_service.ensure_store_access(actor_profile(), row.store_id)
    row = monthly_status_service.update_staff_status(status_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "data": row.to_dict()})


@monthly_status_bp.route("/monthly-status/submit", methods=["POST"])
@require_auth
def submit_store():
    actor = actor_profile()
    data = json_body()
    store_id = _store_id(data)
    if not store_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少門市", details={"store_id": "required"})
    monthly_status_service.ensure_store_access(actor, store_id)
    count = monthly_status_service.submit_store(actor, data.get("year_month"), store_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "count": count, "message": "已提交本月資料"})


@monthly_status_bp.route("/monthly-status/confirm", methods=["POST"])
@require_auth
def confirm_store():
    data = json_body()
    store_id = _store_id(data)
    if not store_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少門市", details={"store_id": "required"})
    count = monthly_status_service.confirm_store(actor_profile(), data.get("year_month"), store_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "count": count, "message": "已確認本月資料"})


@monthly_status_bp.route("/monthly-status/summaries", methods=["GET"])
@require_auth
def store_summaries():
    rows = monthly_status_service.list_store_summaries(
        actor_profile(), request.args.get("year_month")
    )
    return jsonify({"success": True, "data": rows})


@monthly_status_bp.route("/staff-performance-details", methods=["GET"])
@require_auth
def performance_details():
    staff_status_id = request.args.get("staff_status_id", type=int)
    if not staff_status_id:
        return api_error(
            E.VALIDATION_REQUIRED, "缺少員工月度資料 ID",
            details={"staff_status_id": "required"},
        )
    details = monthly_status_service.list_performance_details(staff_status_id)
    return jsonify({"success": True, "data": [d.to_dict() for d in details]})
