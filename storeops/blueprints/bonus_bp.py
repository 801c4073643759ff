"""
Bonus Blueprint — support bonus, talent cultivation, meal allowance and transport.

Endpoints:
  GET    /api/v1/support-bonus?year_month=                   — Month's support bonuses
  POST   /api/v1/support-bonus                               — Replace the month's set
  GET    /api/v1/talent-cultivation?year_month=&store_id=    — Rows with a bonus
  POST   /api/v1/talent-cultivation                          — Save per-employee bonuses
  GET    /api/v1/meal-allowance?year_month=&store_id=        — Meal allowance records
  POST   /api/v1/meal-allowance                              — Add a record
  DELETE /api/v1/meal-allowance/:id                          — Delete a record
  GET    /api/v1/meal-allowance/employees                    — Employee picker rows
  GET    /api/v1/transport-expense?year_month=&store_id=     — Rows with an expense
"""

import logging

from flask import Blueprint, jsonify, request

from storeops.auth import require_auth
from storeops.blueprints import actor_profile, json_body
from storeops.services import bonus_service, policies
from storeops.utils.errors import E, api_error
from storeops.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

bonus_bp = Blueprint("bonus", __name__, url_prefix="/api/v1")


def _store_id_arg():
    return request.args.get("store_id", type=int)


# ═══════════════════════════════════════════════════════════════
# Support staff bonus
# ═══════════════════════════════════════════════════════════════

@bonus_bp.route("/support-bonus", methods=["GET"])
@require_auth
def list_support_bonus():
    rows = bonus_service.list_support_bonus(request.args.get("year_month"))
    return jsonify({"success": True, "data": [r.to_dict() for r in rows]})


@bonus_bp.route("/support-bonus", methods=["POST"])
@require_auth
def replace_support_bonus():
    actor = actor_profile()
    policies.authorize(actor, policies.is_store_manager_or_above, "只有店長以上職位可以操作")
    data = json_body()
    rows = bonus_service.replace_support_bonus(actor, data.get("year_month"), data.get("bonuses"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "success": True,
        "count": len(rows),
        "message": f"成功儲存 {len(rows)} 筆支援人員獎金",
    })


# ═══════════════════════════════════════════════════════════════
# Talent cultivation
# ═══════════════════════════════════════════════════════════════

@bonus_bp.route("/talent-cultivation", methods=["GET"])
@require_auth
def list_talent_cultivation():
    store_id = _store_id_arg()
    if not store_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少門市", details={"store_id": "required"})
    rows = bonus_service.list_talent_cultivation(request.args.get("year_month"), store_id)
    return jsonify({"success": True, "data": rows})


@bonus_bp.route("/talent-cultivation", methods=["POST"])
@require_auth
def save_talent_cultivation():
    policies.authorize(actor_profile(), policies.can_edit_store_bonus, "只有店長以上職位可以操作")
    data = json_body()
    count, errors = bonus_service.save_talent_cultivation(
        data.get("year_month"), data.get("store_id"), data.get("bonuses")
    )
    err = db_commit_or_error()
    if err:
        return err
    result = {"success": True, "count": count, "message": f"成功更新 {count} 筆育才獎金"}
    if errors:
        result["errors"] = errors
    return jsonify(result)


# ═══════════════════════════════════════════════════════════════
# Meal allowance
# ═══════════════════════════════════════════════════════════════

@bonus_bp.route("/meal-allowance", methods=["GET"])
@require_auth
def list_meal_allowance():
    store_id = _store_id_arg()
    if not store_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少門市", details={"store_id": "required"})
    rows = bonus_service.list_meal_allowance(request.args.get("year_month"), store_id)
    return jsonify({"success": True, "data": [r.to_dict() for r in rows]})


@bonus_bp.route("/meal-allowance", methods=["POST"])
@require_auth
def create_meal_allowance():
    record = bonus_service.create_meal_allowance(actor_profile(), json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "data": record.to_dict()}), 201


@bonus_bp.route("/meal-allowance/<int:record_id>", methods=["DELETE"])
@require_auth
def delete_meal_allowance(record_id):
    bonus_service.delete_meal_allowance(record_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True})


@bonus_bp.route("/meal-allowance/employees", methods=["GET"])
@require_auth
def meal_allowance_employees():
    store_id = _store_id_arg()
    if not store_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少門市", details={"store_id": "required"})
    employees = bonus_service.list_meal_allowance_employees(
        request.args.get("year_month"), store_id
    )
    return jsonify({"success": True, "data": employees})


# ═══════════════════════════════════════════════════════════════
# Transport expense
# ═══════════════════════════════════════════════════════════════

@bonus_bp.route("/transport-expense", methods=["GET"])
@require_auth
def list_transport_expense():
    store_id = _store_id_arg()
    if not store_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少門市", details={"store_id": "required"})
    rows = bonus_service.list_transport_expense(request.args.get("year_month"), store_id)
    return jsonify({"success": True, "data": rows})
