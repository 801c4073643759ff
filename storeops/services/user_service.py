"""
User Service — profile lookup, search, departments and admin updates.

Passwords live in the hosted auth backend; resets go through
``supabase_admin``.
"""

import logging

from sqlalchemy import func, or_

from storeops.auth import ROLES
from storeops.core.exceptions import NotFoundError, ValidationError
from storeops.models import db
from storeops.models.profile import Profile
from storeops.services import supabase_admin
from storeops.utils.helpers import normalize_code

logger = logging.getLogger(__name__)

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 20
MIN_PASSWORD_LENGTH = 6
EDITABLE_FIELDS = ("role", "department", "job_title", "employee_code")


def get_profile(user_id: str) -> Profile:
    profile = db.session.get(Profile, user_id)
    if profile is None:
        raise NotFoundError("Profile", user_id, message="找不到使用者資料")
    return profile


def search_users(query: str | None) -> list[dict]:
    """Case-insensitive match on employee code, name or email."""
    query = (query or "").strip()
    if len(query) < SEARCH_MIN_LENGTH:
        return []
    pattern = f"%{query.lower()}%"
    profiles = (
        Profile.query.filter(or_(
            func.lower(Profile.employee_code).like(pattern),
            func.lower(Profile.full_name).like(pattern),
            func.lower(Profile.email).like(pattern),
        ))
        .order_by(Profile.employee_code, Profile.full_name)
        .limit(SEARCH_LIMIT)
        .all()
    )
    return [
        {
            "id": p.id,
            "email": p.email or "",
            "name": p.full_name or "",
            "employee_code": p.employee_code or "",
        }
        for p in profiles
    ]


def list_departments() -> list[str]:
    rows = (
        db.session.query(Profile.department)
        .filter(Profile.department.isnot(None), Profile.department != "")
        .distinct()
        .all()
    )
    return sorted(dept for (dept,) in rows)


def list_department_users(department: str) -> list[Profile]:
    return (
        Profile.query.filter_by(department=department)
        .order_by(Profile.full_name)
        .all()
    )


def users_query():
    return Profile.query.order_by(Profile.created_at.desc(), Profile.id)


def update_user(user_id: str, data: dict) -> Profile:
    profile = get_profile(user_id)
    if "role" in data and data["role"] not in ROLES:
        raise ValidationError("角色無效", details={"role": list(ROLES)})
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "employee_code":
            value = normalize_code(value) or None
        elif isinstance(value, str):
            value = value.strip() or None
        setattr(profile, field, value)
    db.session.flush()
    logger.info("Profile %s updated: %s", user_id, sorted(k for k in data if k in EDITABLE_FIELDS))
    return profile


def reset_password(user_id: str | None, new_password: str | None) -> None:
    if not user_id or not new_password:
        raise ValidationError("缺少必要參數")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"密碼長度至少需要 {MIN_PASSWORD_LENGTH} 個字元")
    get_profile(user_id)
    supabase_admin.update_user_password(user_id, new_password)
