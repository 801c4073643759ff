"""
User Blueprint — profile, search, departments and admin user management.

Endpoints:
  GET  /api/v1/user/profile                 — Caller's profile
  GET  /api/v1/users/search?q=              — Search by code, name or email
  GET  /api/v1/departments                  — Distinct department names
  GET  /api/v1/departments/:name/users      — Users in a department
  GET  /api/v1/users                        — All users (admin, paginated)
  PUT  /api/v1/users/:id                    — Update role / department / title / code (admin)
  POST /api/v1/admin/reset-password         — Reset a user's password (admin, rate limited)
"""

import logging

from flask import Blueprint, jsonify, request

from storeops.auth import current_user_id, require_auth, require_role
from storeops.blueprints import json_body, paginate_query
from storeops.services import user_service
from storeops.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

user_bp = Blueprint("user", __name__, url_prefix="/api/v1")


@user_bp.route("/user/profile", methods=["GET"])
@require_auth
def get_profile():
    profile = user_service.get_profile(current_user_id())
    return jsonify({"success": True, "profile": profile.to_dict()})


@user_bp.route("/users/search", methods=["GET"])
@require_auth
def search_users():
    users = user_service.search_users(request.args.get("q"))
    return jsonify({"success": True, "users": users})


@user_bp.route("/departments", methods=["GET"])
@require_auth
def list_departments():
    return jsonify({"success": True, "departments": user_service.list_departments()})


@user_bp.route("/departments/<path:department>/users", methods=["GET"])
@require_auth
def department_users(department):
    users = user_service.list_department_users(department)
    return jsonify({"success": True, "users": [u.to_dict() for u in users]})


# ═══════════════════════════════════════════════════════════════
# Admin
# ═══════════════════════════════════════════════════════════════

@user_bp.route("/users", methods=["GET"])
@require_role("admin")
def list_users():
    users, total = paginate_query(user_service.users_query())
    return jsonify({"success": True, "users": [u.to_dict() for u in users], "total": total})


@user_bp.route("/users/<user_id>", methods=["PUT"])
@require_role("admin")
def update_user(user_id):
    profile = user_service.update_user(user_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "profile": profile.to_dict()})


@user_bp.route("/admin/reset-password", methods=["POST"])
@require_role("admin")
def reset_password():
    data = json_body()
    user_id = data.get("userId") or data.get("user_id")
    user_service.reset_password(user_id, data.get("newPassword") or data.get("new_password"))
    logger.info(
        "Password reset for %s by %s", user_id, current_user_id(),
        extra={"user_id": current_user_id()},
    )
    return jsonify({"success": True, "message": "密碼已重設"})
