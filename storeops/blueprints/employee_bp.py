"""
Employee Blueprint — employee master data, movements and promotions.

Endpoints:
  GET    /api/v1/employees                         — Active employees
  POST   /api/v1/employees                         — Create employee
  PUT    /api/v1/employees/:code                   — Update (syncs monthly rows)
  POST   /api/v1/employee-movements/batch          — Record movements
  GET    /api/v1/employee-movements?employee_code= — Movement history
  DELETE /api/v1/employee-movements/:id            — Delete a movement
  POST   /api/v1/promotions/batch                  — Store-scoped promotions
  POST   /api/v1/promotions/batch-global           — Promotions across stores
"""

import logging

from flask import Blueprint, jsonify, request

from storeops.auth import require_auth
from storeops.blueprints import actor_profile, json_body
from storeops.middleware.permission_required import require_permission
from storeops.services import employee_service
from storeops.utils.errors import E, api_error
from storeops.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

employee_bp = Blueprint("employee", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════
# Employees
# ═══════════════════════════════════════════════════════════════

@employee_bp.route("/employees", methods=["GET"])
@require_auth
def list_employees():
    employees = employee_service.list_employees()
    return jsonify({"success": True, "employees": [e.to_dict() for e in employees]})


@employee_bp.route("/employees", methods=["POST"])
@require_permission("employee.employee.create")
def create_employee():
    employee = employee_service.create_employee(json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "employee": employee.to_dict()}), 201


@employee_bp.route("/employees/<code>", methods=["PUT"])
@require_permission("employee.employee.edit")
def update_employee(code):
    employee = employee_service.update_employee(code, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "employee": employee.to_dict()})


# ═══════════════════════════════════════════════════════════════
# Movements
# ═══════════════════════════════════════════════════════════════

@employee_bp.route("/employee-movements/batch", methods=["POST"])
@require_permission("employee.promotion.create")
def record_movements():
    rows = employee_service.record_movements(actor_profile(), json_body().get("movements"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "success": True,
        "count": len(rows),
        "message": f"成功新增 {len(rows)} 筆異動記錄",
    }), 201


@employee_bp.route("/employee-movements", methods=["GET"])
@require_auth
def list_movements():
    movements = employee_service.list_movements(request.args.get("employee_code"))
    return jsonify({"success": True, "movements": [m.to_dict() for m in movements]})


@employee_bp.route("/employee-movements/<int:movement_id>", methods=["DELETE"])
@require_permission("employee.promotion.delete")
def delete_movement(movement_id):
    label = employee_service.delete_movement(movement_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "message": f"已刪除 {label} 的異動記錄"})


# ═══════════════════════════════════════════════════════════════
# Promotions
# ═══════════════════════════════════════════════════════════════

@employee_bp.route("/promotions/batch", methods=["POST"])
@require_permission("employee.promotion.create")
def record_store_promotions():
    data = json_body()
    store_id = data.get("store_id")
    if not store_id:
        return api_error(E.VALIDATION_REQUIRED, "缺少門市", details={"store_id": "required"})
    rows = employee_service.record_promotions(actor_profile(), data.get("promotions"), store_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "count": len(rows)}), 201


@employee_bp.route("/promotions/batch-global", methods=["POST"])
@require_permission("employee.promotion.create")
def record_global_promotions():
    rows = employee_service.record_promotions(actor_profile(), json_body().get("promotions"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "count": len(rows)}), 201
