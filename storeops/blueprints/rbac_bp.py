"""
RBAC Blueprint — permission checks and role administration.

Endpoints:
  POST   /api/v1/permissions/check               — Does the caller hold a key?
  POST   /api/v1/permissions/check-multiple      — Batch check
  GET    /api/v1/permissions/user                — Caller's keys and roles
  GET    /api/v1/permissions                     — All permissions grouped by module
  GET    /api/v1/roles                           — List roles
  POST   /api/v1/roles                           — Create role
  GET    /api/v1/roles/:id                       — Role detail
  PUT    /api/v1/roles/:id                       — Update role
  DELETE /api/v1/roles/:id                       — Delete role (non-system)
  GET    /api/v1/roles/:id/permissions           — Permissions with granted flags
  PUT    /api/v1/roles/:id/permissions           — Replace grants
  GET    /api/v1/roles/:id/users                 — Users holding the role
  POST   /api/v1/roles/:id/users                 — Assign by employee code
  DELETE /api/v1/roles/:id/users/:user_id        — Revoke
"""

import logging

from flask import Blueprint, jsonify

from storeops.auth import current_user_id, require_auth
from storeops.blueprints import json_body
from storeops.middleware.permission_required import require_permission
from storeops.services import permission_service, role_service
from storeops.utils.errors import E, api_error
from storeops.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

rbac_bp = Blueprint("rbac", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════
# Permission checks (any authenticated user, about themselves)
# ═══════════════════════════════════════════════════════════════

@rbac_bp.route("/permissions/check", methods=["POST"])
@require_auth
def check_permission():
    permission = json_body().get("permission")
    if not permission:
        return api_error(E.VALIDATION_REQUIRED, "缺少權限代碼", details={"permission": "required"})
    result = permission_service.evaluate_permission(current_user_id(), permission)
    return jsonify({"success": True, **result})


@rbac_bp.route("/permissions/check-multiple", methods=["POST"])
@require_auth
def check_permissions():
    permissions = json_body().get("permissions")
    if not isinstance(permissions, list):
        return api_error(E.VALIDATION_INVALID, "permissions 必須是陣列")
    results = permission_service.check_many(current_user_id(), permissions)
    return jsonify({"success": True, "results": results})


@rbac_bp.route("/permissions/user", methods=["GET"])
@require_auth
def user_permissions():
    user_id = current_user_id()
    return jsonify({
        "success": True,
        "permissions": sorted(permission_service.get_user_permissions(user_id)),
        "roles": permission_service.get_user_roles(user_id),
    })


@rbac_bp.route("/permissions", methods=["GET"])
@require_permission("role.permission.view")
def list_permissions():
    return jsonify({"success": True, "permissions": role_service.list_permissions_grouped()})


# ═══════════════════════════════════════════════════════════════
# Role CRUD
# ═══════════════════════════════════════════════════════════════

@rbac_bp.route("/roles", methods=["GET"])
@require_permission("role.role.view")
def list_roles():
    roles = role_service.list_roles()
    return jsonify({"success": True, "roles": [r.to_dict(include_counts=True) for r in roles]})


@rbac_bp.route("/roles", methods=["POST"])
@require_permission("role.role.create")
def create_role():
    data = json_body()
    role = role_service.create_role(data.get("name"), data.get("code"), data.get("description"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "role": role.to_dict()}), 201


@rbac_bp.route("/roles/<int:role_id>", methods=["GET"])
@require_permission("role.role.view")
def get_role(role_id):
    role = role_service.get_role(role_id)
    return jsonify({"success": True, "role": role.to_dict(include_counts=True)})


@rbac_bp.route("/roles/<int:role_id>", methods=["PUT"])
@require_permission("role.role.edit")
def update_role(role_id):
    role = role_service.update_role(role_id, json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "role": role.to_dict()})


@rbac_bp.route("/roles/<int:role_id>", methods=["DELETE"])
@require_permission("role.role.delete")
def delete_role(role_id):
    role_service.delete_role(role_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "message": "角色已刪除"})


# ═══════════════════════════════════════════════════════════════
# Role permissions
# ═══════════════════════════════════════════════════════════════

@rbac_bp.route("/roles/<int:role_id>/permissions", methods=["GET"])
@require_permission("role.permission.view")
def role_permissions(role_id):
    return jsonify({"success": True, "permissions": role_service.get_role_permissions(role_id)})


@rbac_bp.route("/roles/<int:role_id>/permissions", methods=["PUT"])
@require_permission("role.permission.assign")
def replace_role_permissions(role_id):
    count = role_service.replace_role_permissions(role_id, json_body().get("permissionIds"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "count": count, "message": f"已更新 {count} 個權限"})


# ═══════════════════════════════════════════════════════════════
# Role users
# ═══════════════════════════════════════════════════════════════

@rbac_bp.route("/roles/<int:role_id>/users", methods=["GET"])
@require_permission("role.user_role.view")
def role_users(role_id):
    return jsonify({"success": True, "users": role_service.list_role_users(role_id)})


@rbac_bp.route("/roles/<int:role_id>/users", methods=["POST"])
@require_permission("role.user_role.assign")
def assign_role_users(role_id):
    result = role_service.assign_users_by_employee_codes(
        role_id, json_body().get("employee_codes"), current_user_id()
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, **result})


@rbac_bp.route("/roles/<int:role_id>/users/<user_id>", methods=["DELETE"])
@require_permission("role.user_role.revoke")
def revoke_role_user(role_id, user_id):
    role_service.revoke_user_role(role_id, user_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"success": True, "message": "已移除角色"})
