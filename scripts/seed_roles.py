"""
Seed Roles & Permissions — system roles + the permission keys the API checks.

Usage:
    python scripts/seed_roles.py                               # development DB
    python scripts/seed_roles.py --env production
    python scripts/seed_roles.py --admin-email ops@example.com # grant system_admin

This script is idempotent — safe to run multiple times.
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv  # noqa: E402

from storeops import create_app  # noqa: E402
from storeops.models import db  # noqa: E402
from storeops.models.profile import Profile  # noqa: E402
from storeops.models.rbac import Permission, Role, RolePermission, UserRole  # noqa: E402


# ═══════════════════════════════════════════════════════════════
# PERMISSIONS — module.feature.action
# ═══════════════════════════════════════════════════════════════
PERMISSIONS = [
    # Role administration
    ("role.role.view", "查看角色"),
    ("role.role.create", "新增角色"),
    ("role.role.edit", "編輯角色"),
    ("role.role.delete", "刪除角色"),
    ("role.permission.view", "查看角色權限"),
    ("role.permission.assign", "設定角色權限"),
    ("role.user_role.view", "查看角色使用者"),
    ("role.user_role.assign", "指派角色給使用者"),
    ("role.user_role.revoke", "移除使用者角色"),
    # Employees
    ("employee.employee.create", "新增員工"),
    ("employee.employee.edit", "編輯員工"),
    ("employee.promotion.create", "新增人員異動"),
    ("employee.promotion.delete", "刪除人員異動"),
    # Monthly reports
    ("monthly.export.download", "下載每月匯出"),
    # Inspections
    ("inspection.template.manage", "管理巡店檢查項目"),
]


# ═══════════════════════════════════════════════════════════════
# ROLES — system roles with permission assignments
# ═══════════════════════════════════════════════════════════════
ROLES = {
    "system_admin": {
        "name": "系統管理員",
        "description": "擁有所有權限",
        "permissions": "*",
    },
    "hr_staff": {
        "name": "人資",
        "description": "員工資料、人員異動與每月匯出",
        "permissions": ["employee.*", "monthly.*"],
    },
    "inspection_manager": {
        "name": "巡店管理",
        "description": "維護巡店檢查項目",
        "permissions": ["inspection.*"],
    },
}


def _expand_permissions(perm_spec, all_codes):
    """Expand wildcard permissions like 'employee.*' into actual codes."""
    if perm_spec == "*":
        return set(all_codes)

    result = set()
    for p in perm_spec:
        if p.endswith(".*"):
            module = p[:-2]
            result.update(c for c in all_codes if c.startswith(f"{module}."))
        elif p in all_codes:
            result.add(p)
    return result


def seed_permissions():
    """Create or update every permission key."""
    created = 0
    for code, description in PERMISSIONS:
        module, feature, action = code.split(".")
        existing = Permission.query.filter_by(code=code).first()
        if not existing:
            db.session.add(Permission(
                module=module, feature=feature, action=action,
                code=code, description=description, is_active=True,
            ))
            created += 1
        else:
            existing.description = description
    db.session.commit()
    print(f"  Permissions: {created} created, {len(PERMISSIONS) - created} already existed")
    return created


def seed_roles():
    """Create or update the system roles and their grants."""
    all_codes = {code for code, _ in PERMISSIONS}
    created_roles = 0
    assigned_perms = 0

    for code, cfg in ROLES.items():
        role = Role.query.filter_by(code=code).first()
        if not role:
            role = Role(
                code=code, name=cfg["name"], description=cfg["description"],
                is_system=True, is_active=True,
            )
            db.session.add(role)
            db.session.flush()
            created_roles += 1
        else:
            role.name = cfg["name"]
            role.description = cfg["description"]

        target = _expand_permissions(cfg["permissions"], all_codes)
        existing = {rp.permission.code: rp for rp in role.role_permissions.all()}

        for perm_code in target - set(existing):
            perm = Permission.query.filter_by(code=perm_code).first()
            if perm:
                db.session.add(RolePermission(role_id=role.id, permission_id=perm.id, is_allowed=True))
                assigned_perms += 1

        for perm_code in set(existing) - target:
            db.session.delete(existing[perm_code])

    db.session.commit()
    print(f"  Roles: {created_roles} created, {len(ROLES) - created_roles} already existed")
    print(f"  Role-Permission assignments: {assigned_perms} new")
    return created_roles


def grant_admin(email):
    """Give the profile with ``email`` the system_admin role."""
    profile = Profile.query.filter_by(email=email).first()
    if profile is None:
        print(f"  No profile with email {email}; sign in once first")
        return None
    role = Role.query.filter_by(code="system_admin").first()
    if UserRole.query.filter_by(user_id=profile.id, role_id=role.id).first() is None:
        db.session.add(UserRole(user_id=profile.id, role_id=role.id, is_active=True))
        db.session.commit()
        print(f"  system_admin granted to {email}")
    else:
        print(f"  {email} already holds system_admin")
    return profile


def main():
    parser = argparse.ArgumentParser(description="Seed RBAC roles and permissions")
    parser.add_argument("--env", default="development", help="App environment")
    parser.add_argument("--admin-email", help="Profile email to grant system_admin")
    args = parser.parse_args()

    load_dotenv()
    os.environ.setdefault("APP_ENV", args.env)
    app = create_app(args.env)

    with app.app_context():
        print("=" * 60)
        print("  SEED: Roles & Permissions")
        print("=" * 60)

        print("\nSeeding permissions...")
        seed_permissions()

        print("\nSeeding roles...")
        seed_roles()

        if args.admin_email:
            print("\nGranting admin...")
            grant_admin(args.admin_email)

        print("\nRole → Permission Matrix:")
        for code in ROLES:
            role = Role.query.filter_by(code=code).first()
            if role:
                print(f"  {role.name:12s} ({role.code:20s}): {role.role_permissions.count():3d} permissions")

        print("\nSeed complete.")


if __name__ == "__main__":
    main()
