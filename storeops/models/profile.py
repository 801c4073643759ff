"""
Profile model — one row per authenticated user.

The id is the auth provider's user UUID (the token ``sub``), so no local
users/password table exists. ``role`` is the coarse authorization tier read by
nearly every handler; ``department`` and ``job_title`` feed the named policies
in ``storeops.services.policies``.
"""

from datetime import datetime, timezone

from storeops.models import db

PROFILE_ROLES = ("admin", "manager", "member")


class Profile(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.String(36), primary_key=True)  # auth provider UUID
    email = db.Column(db.String(200))
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(20), nullable=False, default="member")  # admin, manager, member
    department = db.Column(db.String(100))
    job_title = db.Column(db.String(100))
    employee_code = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_profiles_department", "department"),
        db.Index("ix_profiles_employee_code", "employee_code"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "department": self.department,
            "job_title": self.job_title,
            "employee_code": self.employee_code,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def to_brief(self):
        return {"id": self.id, "email": self.email, "full_name": self.full_name}
