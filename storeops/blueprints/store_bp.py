"""
Store Blueprint — stores and their supervisor / store-manager assignments.

Endpoints:
  GET  /api/v1/stores                        — Active stores (?include_inactive=true)
  POST /api/v1/stores                        — Create a store (admin)
  PUT  /api/v1/stores/<id>                   — Edit a store (admin)
  POST /api/v1/stores/<id>/clone             — Clone or relocate a store (admin)
  GET  /api/v1/stores/<id>/employees         — Active employees of a store
  GET  /api/v1/stores-with-supervisors       — Stores with supervisors and primary manager
  GET  /api/v1/store-managers/users          — Store-manager candidates
  GET  /api/v1/store-managers/stores         — Stores open for assignment
  GET  /api/v1/store-managers/assignments    — Current primary store managers
  POST /api/v1/store-managers/assign         — Set a user's primary store (admin)
  GET  /api/v1/supervisors/users             — Supervisor candidates
  GET  /api/v1/supervisors/stores            — Stores open for assignment
  GET  /api/v1/supervisors/assignments       — Every store-role row
  POST /api/v1/supervisors/assign            — Replace a supervisor's stores (admin)
  GET  /api/v1/user/managed-stores           — Stores the caller runs
"""

import logging

from flask import Blueprint, jsonify, request

from storeops.auth import require_auth, require_role
from storeops.blueprints import actor_profile, json_body
from storeops.services import store_role_service, store_service
from storeops.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

store_bp = Blueprint("store", __name__, url_prefix="/api/v1")


@store_bp.route("/stores", methods=["GET"])
@require_auth
def list_stores():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    stores = store_role_service.list_stores(include_inactive=include_inactive)
    return jsonify({"success": True, "stores": [s.to_dict() for s in stores]})


@store_bp.route("/stores", methods=["POST"])
@require_role("admin")
def create_store():
    store = store_service.create_store(json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "store": store.to_dict()}), 201


@store_bp.route("/stores/<int:store_id>", methods=["PUT"])
@require_role("admin")
def update_store(store_id):
    store = store_service.update_store(store_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "store": store.to_dict()})


@store_bp.route("/stores/<int:store_id>/clone", methods=["POST"])
@require_role("admin")
def clone_store(store_id):
    store, managers, employees = store_service.clone_store(store_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "success": True,
        "store": store.to_dict(),
        "copied_managers": managers,
        "copied_employees": employees,
    }), 201


@store_bp.route("/stores/<int:store_id>/employees", methods=["GET"])
@require_auth
def store_employees(store_id):
    employees = store_service.list_store_employees(store_id)
    return jsonify({"success": True, "employees": [e.to_dict() for e in employees]})


@store_bp.route("/stores-with-supervisors", methods=["GET"])
@require_auth
def stores_with_supervisors():
    return jsonify({"success": True, "stores": store_role_service.list_stores_with_supervisors()})


# ═══════════════════════════════════════════════════════════════
# Store managers
# ═══════════════════════════════════════════════════════════════

@store_bp.route("/store-managers/users", methods=["GET"])
@require_auth
def store_manager_users():
    users = store_role_service.list_store_manager_candidates()
    return jsonify({"success": True, "users": [u.to_dict() for u in users]})


@store_bp.route("/store-managers/stores", methods=["GET"])
@require_auth
def store_manager_stores():
    stores = store_role_service.list_stores_for_assignment()
    return jsonify({"success": True, "stores": [s.to_brief() for s in stores]})


@store_bp.route("/store-managers/assignments", methods=["GET"])
@require_auth
def store_manager_assignments():
    return jsonify({
        "success": True,
        "assignments": store_role_service.list_store_manager_assignments(),
    })


@store_bp.route("/store-managers/assign", methods=["POST"])
@require_role("admin")
def assign_store_manager():
    data = json_body()
    row = store_role_service.assign_store_manager(data.get("userId"), data.get("storeId"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "assignment": row.to_dict() if row else None})


# ═══════════════════════════════════════════════════════════════
# Supervisors
# ═══════════════════════════════════════════════════════════════

@store_bp.route("/supervisors/users", methods=["GET"])
@require_auth
def supervisor_users():
    users = store_role_service.list_supervisor_candidates()
    return jsonify({"success": True, "users": [u.to_dict() for u in users]})


@store_bp.route("/supervisors/stores", methods=["GET"])
@require_auth
def supervisor_stores():
    stores = store_role_service.list_stores_for_assignment()
    return jsonify({"success": True, "stores": [s.to_brief() for s in stores]})


@store_bp.route("/supervisors/assignments", methods=["GET"])
@require_auth
def supervisor_assignments():
    return jsonify({
        "success": True,
        "assignments": store_role_service.list_supervisor_assignments(),
    })


@store_bp.route("/supervisors/assign", methods=["POST"])
@require_role("admin")
def assign_supervisor():
    data = json_body()
    diff = store_role_service.assign_supervisor_stores(data.get("userId"), data.get("storeIds"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, **diff})


@store_bp.route("/user/managed-stores", methods=["GET"])
@require_auth
def managed_stores():
    stores = store_role_service.get_managed_stores(actor_profile())
    return jsonify({"success": True, "stores": stores})
