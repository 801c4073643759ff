"""
Store Operations Platform
Session resolution & coarse role guards.

Provides:
    - require_auth: 401 unless the JWT middleware resolved a principal
    - require_role: 403 unless the caller's Profile.role is in the allowed set
    - current_user_id / current_profile helpers for services and views

Security model:
    - Every /api/v1/* data endpoint is wrapped in @require_auth, so an
      unauthenticated request is rejected before any database access
    - Fine-grained checks live in storeops.services.policies (legacy role
      and job-title rules) and storeops.services.permission_service (RBAC)
"""

import functools
import logging

from flask import g, jsonify, request

from storeops.models import db

logger = logging.getLogger(__name__)

ROLES = ("admin", "manager", "member")


def current_user_id():
    """Return the authenticated user's id, or None."""
    return getattr(g, "user_id", None)


def current_profile():
    """Return the caller's Profile (cached on ``g``), or None."""
    from storeops.models.profile import Profile

    if not current_user_id():
        return None
    if "current_profile" not in g:
        g.current_profile = db.session.get(Profile, current_user_id())
    return g.current_profile


# ── Authentication decorator ─────────────────────────────────────────────────

def require_auth(f):
    """
    Decorator: require an authenticated session for the endpoint.

    Runs before the view body, so no query is issued for anonymous callers.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not current_user_id():
            return jsonify({"success": False, "error": "未登入"}), 401
        return f(*args, **kwargs)

    return decorated


def require_role(*allowed_roles: str):
    """
    Decorator: require the caller's profile role to be one of ``allowed_roles``.

    Usage:
        @require_auth
        @require_role("admin", "manager")
        def create_campaign(): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            if not current_user_id():
                return jsonify({"success": False, "error": "未登入"}), 401

            profile = current_profile()
            role = profile.role if profile else None
            if role not in allowed_roles:
                logger.warning(
                    "Access denied: role '%s' tried to access %s (needs one of %s)",
                    role, request.path, ", ".join(allowed_roles),
                )
                return jsonify({"success": False, "error": "權限不足"}), 403

            return f(*args, **kwargs)
        return decorated
    return decorator
