"""
Role administration — roles, their permission grants and their users.

Features:
  - Role CRUD with code format validation (lower-case, digits, underscore)
  - System role protection (is_system roles cannot be deleted or deactivated)
  - Wholesale replacement of a role's permission grants
  - Batch user assignment by employee code with added/skipped counts

Every write drops the permission cache of the users it affects.
Transaction policy: flush() only; the route handler commits.
"""

import logging
import re
from collections import OrderedDict

from storeops.core.exceptions import ConflictError, NotFoundError, ValidationError
from storeops.models import db
from storeops.models.profile import Profile
from storeops.models.rbac import Permission, Role, RolePermission, UserRole
from storeops.services import permission_service
from storeops.utils.helpers import normalize_code

logger = logging.getLogger(__name__)

ROLE_CODE_PATTERN = re.compile(r"^[a-z0-9_]+$")


def _get_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role", role_id, message="角色不存在")
    return role


def _invalidate_role_users(role_id: int) -> None:
    for (user_id,) in db.session.query(UserRole.user_id).filter(UserRole.role_id == role_id):
        permission_service.invalidate_cache(user_id)


# ═══════════════════════════════════════════════════════════════
# Role CRUD
# ═══════════════════════════════════════════════════════════════

def validate_role_code(code: str | None) -> str:
    if not code or not ROLE_CODE_PATTERN.match(code):
        raise ValidationError(
            "角色代碼只能包含小寫英文、數字和底線", details={"code": code}
        )
    return code


def list_roles() -> list[Role]:
    return Role.query.order_by(Role.is_system.desc(), Role.created_at.desc(), Role.id.desc()).all()


def get_role(role_id: int) -> Role:
    return _get_role(role_id)


def create_role(name: str | None, code: str | None, description: str | None = None) -> Role:
    if not name or not code:
        raise ValidationError("角色名稱和代碼為必填")
    validate_role_code(code)
    if Role.query.filter_by(code=code).first() is not None:
        raise ConflictError("Role", "code", code, message="角色代碼已存在")

    role = Role(name=name, code=code, description=description, is_system=False, is_active=True)
    db.session.add(role)
    db.session.flush()
    logger.info("Role '%s' created", code)
    return role


def update_role(role_id: int, data: dict) -> Role:
    """Partial update of name, description and is_active."""
    role = _get_role(role_id)
    if role.is_system and data.get("is_active") is False:
        raise ValidationError("系統預設角色不可停用")

    if "name" in data:
        if not data["name"]:
            raise ValidationError("角色名稱為必填")
        role.name = data["name"]
    if "description" in data:
        role.description = data["description"]
    if "is_active" in data:
        role.is_active = bool(data["is_active"])
        _invalidate_role_users(role.id)
    db.session.flush()
    logger.info("Role %d updated", role.id)
    return role


def delete_role(role_id: int) -> None:
    role = _get_role(role_id)
    if role.is_system:
        raise ValidationError("系統預設角色不可刪除")
    _invalidate_role_users(role.id)
    db.session.delete(role)
    db.session.flush()
    logger.info("Role '%s' deleted", role.code)


# ═══════════════════════════════════════════════════════════════
# Permission grants
# ═══════════════════════════════════════════════════════════════

def list_permissions_grouped() -> "OrderedDict[str, list[dict]]":
    grouped: OrderedDict[str, list[dict]] = OrderedDict()
    permissions = (
        Permission.query.filter(Permission.is_active.is_(True))
        .order_by(Permission.module, Permission.feature, Permission.action)
        .all()
    )
    for perm in permissions:
        grouped.setdefault(perm.module, []).append(perm.to_dict())
    return grouped


def get_role_permissions(role_id: int) -> list[dict]:
    """Every active permission, flagged with whether this role grants it."""
    _get_role(role_id)
    granted = {
        rp.permission_id: rp.is_allowed
        for rp in RolePermission.query.filter_by(role_id=role_id).all()
    }
    permissions = (
        Permission.query.filter(Permission.is_active.is_(True))
        .order_by(Permission.module, Permission.feature, Permission.action)
        .all()
    )
    return [{**p.to_dict(), "granted": bool(granted.get(p.id, False))} for p in permissions]


def replace_role_permissions(role_id: int, permission_ids) -> int:
    """Replace the role's grants with ``permission_ids``; returns the new count."""
    if not isinstance(permission_ids, list):
        raise ValidationError("permissionIds 必須是陣列")
    role = _get_role(role_id)
    try:
        wanted = sorted({int(pid) for pid in permission_ids})
    except (TypeError, ValueError):
        raise ValidationError("權限 ID 格式錯誤") from None

    if wanted:
        found = {
            pid for (pid,) in db.session.query(Permission.id).filter(Permission.id.in_(wanted))
        }
        missing = [pid for pid in wanted if pid not in found]
        if missing:
            raise ValidationError("權限不存在", details={"permissionIds": missing})

    RolePermission.query.filter_by(role_id=role.id).delete()
    db.session.add_all(
        RolePermission(role_id=role.id, permission_id=pid, is_allowed=True) for pid in wanted
    )
    db.session.flush()
    _invalidate_role_users(role.id)
    logger.info("Role %d permissions replaced (%d grants)", role.id, len(wanted))
    return len(wanted)


# ═══════════════════════════════════════════════════════════════
# Role users
# ═══════════════════════════════════════════════════════════════

def list_role_users(role_id: int) -> list[dict]:
    """Users holding the role, sorted by employee code (users without one last)."""
    _get_role(role_id)
    rows = UserRole.query.filter_by(role_id=role_id).all()
    users = []
    for ur in rows:
        profile = ur.profile
        users.append({
            "id": ur.user_id,
            "email": (profile.email if profile else None) or "",
            "name": (profile.full_name if profile else None) or "",
            "employee_code": (profile.employee_code if profile else None) or "",
            "is_active": ur.is_active,
            "assigned_at": ur.assigned_at.isoformat() if ur.assigned_at else None,
            "expires_at": ur.expires_at.isoformat() if ur.expires_at else None,
        })
    return sorted(users, key=lambda u: (u["employee_code"] == "", u["employee_code"]))


def assign_users_by_employee_codes(role_id: int, employee_codes, assigned_by: str) -> dict:
    """Grant the role to every profile matching ``employee_codes``.

    Users who already hold the role are skipped. Returns the added and
    skipped counts with display names.
    """
    if not isinstance(employee_codes, list) or not employee_codes:
        raise ValidationError("請提供員工編號陣列")
    role = _get_role(role_id)

    codes = {normalize_code(c) for c in employee_codes if normalize_code(c)}
    profiles = Profile.query.filter(Profile.employee_code.in_(codes)).all() if codes else []
    if not profiles:
        raise NotFoundError(
            "Profile", None,
            message="找不到對應的員工資料，請確認員工編號是否正確且已綁定使用者帳號",
        )

    existing = {
        uid for (uid,) in db.session.query(UserRole.user_id).filter(
            UserRole.role_id == role.id,
            UserRole.user_id.in_([p.id for p in profiles]),
        )
    }
    added, skipped = [], []
    for profile in profiles:
        label = f"{profile.full_name or ''}({profile.employee_code})"
        if profile.id in existing:
            skipped.append(label)
            continue
        db.session.add(UserRole(
            user_id=profile.id, role_id=role.id, is_active=True,
            expires_at=None, assigned_by=assigned_by,
        ))
        permission_service.invalidate_cache(profile.id)
        added.append(label)
    db.session.flush()

    if added:
        message = f"成功指派 {len(added)} 個使用者「{role.name}」角色"
    else:
        message = "所有使用者均已擁有此角色"
    logger.info("Role %s assigned to %d users (%d skipped)", role.code, len(added), len(skipped))
    return {
        "message": message,
        "added": len(added),
        "skipped": len(skipped),
        "added_names": added,
        "skipped_names": skipped,
    }


def revoke_user_role(role_id: int, user_id: str) -> None:
    row = UserRole.query.filter_by(role_id=role_id, user_id=user_id).first()
    if row is None:
        raise NotFoundError("UserRole", user_id, message="使用者沒有此角色")
    db.session.delete(row)
    db.session.flush()
    permission_service.invalidate_cache(user_id)
    logger.info("Role %d revoked from user %s", role_id, user_id)
