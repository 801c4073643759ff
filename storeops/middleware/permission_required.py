"""
Permission Decorators — RBAC guards for route protection.

Usage:
    @bp.route("/roles", methods=["POST"])
    @require_permission("role.role.create")
    def create_role():
        ...

Unlike ``require_auth`` this decorator also rejects anonymous callers,
so it can be used on their own.
"""

import functools
import logging

from flask import g, jsonify

from storeops.services import permission_service

logger = logging.getLogger(__name__)


def require_permission(code: str):
    """
    Decorator: require the authenticated user to hold ``code``.

    401 without a principal; 403 with the denial message and ``required``.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_id = getattr(g, "user_id", None)
            if not user_id:
                return jsonify({"success": False, "error": "未登入"}), 401

            result = permission_service.require(user_id, code)
            if not result["allowed"]:
                logger.warning(
                    "User %s denied: missing permission '%s' on %s",
                    user_id, code, f.__name__,
                    extra={"user_id": user_id, "permission": code},
                )
                return jsonify({
                    "success": False,
                    "error": result["message"],
                    "required": code,
                }), 403

            return f(*args, **kwargs)
        return decorated
    return decorator
