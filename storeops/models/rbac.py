"""
RBAC Models — roles, permissions and their assignments.

Permission codes are dot-namespaced ``module.feature.action`` strings
(e.g. ``employee.employee.create``). Evaluation lives in
``storeops.services.permission_service``; nothing here grants access by
itself.
"""

import re
from datetime import datetime, timezone

from storeops.models import db

ROLE_CODE_RE = re.compile(r"^[a-z0-9_]+$")


# ═══════════════════════════════════════════════════════════════
# 1. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "rbac_roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_system = db.Column(db.Boolean, default=False)  # True = cannot be deleted or deactivated
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    role_permissions = db.relationship(
        "RolePermission", back_populates="role", lazy="dynamic", cascade="all, delete-orphan"
    )
    user_roles = db.relationship(
        "UserRole", back_populates="role", lazy="dynamic", cascade="all, delete-orphan"
    )

    def to_dict(self, include_counts=False):
        d = {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "is_system": self.is_system,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_counts:
            d["permission_count"] = self.role_permissions.filter_by(is_allowed=True).count()
            d["user_count"] = self.user_roles.filter_by(is_active=True).count()
        return d


# ═══════════════════════════════════════════════════════════════
# 2. PERMISSIONS
# ═══════════════════════════════════════════════════════════════
class Permission(db.Model):
    __tablename__ = "rbac_permissions"

    id = db.Column(db.Integer, primary_key=True)
    module = db.Column(db.String(50), nullable=False)    # e.g. "employee"
    feature = db.Column(db.String(50), nullable=False)   # e.g. "promotion"
    code = db.Column(db.String(150), unique=True, nullable=False)  # e.g. "employee.promotion.delete"
    action = db.Column(db.String(50), nullable=False)    # e.g. "delete"
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    role_permissions = db.relationship("RolePermission", back_populates="permission", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "module": self.module,
            "feature": self.feature,
            "code": self.code,
            "action": self.action,
            "description": self.description,
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# 3. ROLE_PERMISSIONS (Junction table)
# ═══════════════════════════════════════════════════════════════
class RolePermission(db.Model):
    __tablename__ = "rbac_role_permissions"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(
        db.Integer, db.ForeignKey("rbac_roles.id", ondelete="CASCADE"), nullable=False
    )
    permission_id = db.Column(
        db.Integer, db.ForeignKey("rbac_permissions.id", ondelete="CASCADE"), nullable=False
    )
    is_allowed = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_rbac_role_permission"),
    )

    role = db.relationship("Role", back_populates="role_permissions")
    permission = db.relationship("Permission", back_populates="role_permissions")


# ═══════════════════════════════════════════════════════════════
# 4. USER_ROLES (Junction table)
# ═══════════════════════════════════════════════════════════════
class UserRole(db.Model):
    __tablename__ = "rbac_user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("rbac_roles.id", ondelete="CASCADE"), nullable=False
    )
    is_active = db.Column(db.Boolean, default=True)
    expires_at = db.Column(db.DateTime)  # NULL = permanent
    assigned_by = db.Column(db.String(36), nullable=True)
    assigned_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", name="uq_rbac_user_role"),
        db.Index("ix_rbac_user_roles_user_id", "user_id"),
    )

    role = db.relationship("Role", back_populates="user_roles")
    profile = db.relationship("Profile")

    def is_effective(self, now=None):
        if not self.is_active:
            return False
        if self.expires_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires > now
