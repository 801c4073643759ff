"""
Permission Service — DB-driven RBAC with an in-process cache.

Evaluation is deterministic and deny-by-default:
  - only UserRole rows that are active and not expired are considered
  - the role itself must be active
  - only RolePermission rows with is_allowed=True grant anything
  - the granted Permission must be active

A permission key with no mapping for the user is denied.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Optional

from flask import current_app, has_app_context

from storeops.models import db
from storeops.models.rbac import Permission, Role, RolePermission, UserRole

logger = logging.getLogger(__name__)

CACHE_TTL = 300  # 5 minutes

# user_id -> (cached_at, permission codes)
_permission_cache: dict[str, tuple[float, set[str]]] = {}
_cache_lock = threading.Lock()


def denial_message(permission_key: str) -> str:
    return f"權限不足: 需要 {permission_key} 權限"


def _ttl() -> int:
    if has_app_context():
        return int(current_app.config.get("PERMISSION_CACHE_TTL", CACHE_TTL))
    return CACHE_TTL


def _get_cached(user_id: str) -> Optional[set[str]]:
    with _cache_lock:
        entry = _permission_cache.get(user_id)
        if entry is None:
            return None
        cached_at, perms = entry
        if time.time() - cached_at > _ttl():
            del _permission_cache[user_id]
            return None
        return perms


def _set_cached(user_id: str, perms: set[str]) -> None:
    with _cache_lock:
        _permission_cache[user_id] = (time.time(), perms)


def invalidate_cache(user_id: str) -> None:
    with _cache_lock:
        _permission_cache.pop(str(user_id), None)


def invalidate_all_cache() -> None:
    with _cache_lock:
        _permission_cache.clear()


# ── Role resolution ──────────────────────────────────────────────────────────

def _effective_user_roles(user_id: str) -> list[UserRole]:
    now = datetime.now(timezone.utc)
    rows = (
        UserRole.query
        .join(Role, Role.id == UserRole.role_id)
        .filter(UserRole.user_id == str(user_id), UserRole.is_active.is_(True))
        .filter(Role.is_active.is_(True))
        .all()
    )
    return [ur for ur in rows if ur.is_effective(now)]


def get_user_roles(user_id: str) -> list[dict]:
    """Effective role assignments with their role summary."""
    result = []
    for ur in _effective_user_roles(user_id):
        role = ur.role
        result.append({
            "id": ur.id,
            "is_active": ur.is_active,
            "assigned_at": ur.assigned_at.isoformat() if ur.assigned_at else None,
            "expires_at": ur.expires_at.isoformat() if ur.expires_at else None,
            "role": {
                "id": role.id,
                "name": role.name,
                "code": role.code,
                "description": role.description,
                "is_system": role.is_system,
            },
        })
    return result


def get_user_permissions(user_id: str) -> set[str]:
    if not user_id:
        return set()
    user_id = str(user_id)
    cached = _get_cached(user_id)
    if cached is not None:
        return cached

    role_ids = sorted({ur.role_id for ur in _effective_user_roles(user_id)})
    if not role_ids:
        _set_cached(user_id, set())
        return set()

    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(
            RolePermission.role_id.in_(role_ids),
            RolePermission.is_allowed.is_(True),
            Permission.is_active.is_(True),
        )
        .distinct()
        .all()
    )
    perms = {r[0] for r in rows}
    _set_cached(user_id, perms)
    return perms


# ── Checks ───────────────────────────────────────────────────────────────────

def check(user_id: str, permission_key: str) -> bool:
    if not user_id or not permission_key:
        return False
    return permission_key in get_user_permissions(user_id)


def require(user_id: str, permission_key: str) -> dict:
    """``{"allowed": True}`` or ``{"allowed": False, "message": ...}``."""
    if check(user_id, permission_key):
        return {"allowed": True}
    return {"allowed": False, "message": denial_message(permission_key)}


def check_many(user_id: str, permission_keys: list[str]) -> dict[str, bool]:
    perms = get_user_permissions(user_id) if user_id else set()
    return {key: key in perms for key in permission_keys}


def evaluate_permission(user_id: str, permission_key: str) -> dict:
    role_codes = sorted({ur.role.code for ur in _effective_user_roles(user_id)}) if user_id else []
    allowed = check(user_id, permission_key)
    result = {
        "allowed": allowed,
        "decision": "allow_role_grant" if allowed else "deny_by_default",
        "roles": role_codes,
        "permission": permission_key,
    }
    if not allowed:
        result["message"] = denial_message(permission_key)
    return result
