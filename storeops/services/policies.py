"""
Authorization policies — named predicates over a Profile.

Coarse rules that depend on the profile's role, department or job title live
here so that handlers never compare those strings themselves. Permission-key
checks go through ``permission_service`` instead.

    authorize(profile, is_admin_or_manager, "權限不足")
"""

import logging

from storeops.core.exceptions import PermissionDeniedError

logger = logging.getLogger(__name__)

# Job titles that run one or more stores and therefore need StoreManager rows
STORE_ASSIGNMENT_TITLES = ("督導", "店長", "代理店長", "督導(代理店長)")
SUPERVISOR_TITLES = ("督導", "督導(代理店長)")
STORE_MANAGER_TITLES = ("店長", "代理店長")
MANAGER_KEYWORDS = ("經理", "督導", "協理", "總監", "處長", "部長", "區經", "店長")
BUSINESS_DEPARTMENT_PREFIX = "營業"


def _role(profile):
    return getattr(profile, "role", None) if profile is not None else None


def _title(profile):
    return (getattr(profile, "job_title", None) or "") if profile is not None else ""


def is_admin(profile) -> bool:
    return _role(profile) == "admin"


def is_admin_or_manager(profile) -> bool:
    return _role(profile) in ("admin", "manager")


def needs_store_assignment(profile) -> bool:
    return _title(profile) in STORE_ASSIGNMENT_TITLES


def _is_business_department(profile) -> bool:
    department = (getattr(profile, "department", None) or "") if profile is not None else ""
    return department.startswith(BUSINESS_DEPARTMENT_PREFIX)


def is_business_assistant(profile) -> bool:
    """營業 department member who does not run a store."""
    return (
        _is_business_department(profile)
        and _role(profile) == "member"
        and not needs_store_assignment(profile)
    )


def is_business_supervisor(profile) -> bool:
    """營業 department manager who does not run a store."""
    return (
        _is_business_department(profile)
        and _role(profile) == "manager"
        and not needs_store_assignment(profile)
    )


def has_manager_title(profile) -> bool:
    title = _title(profile)
    return any(keyword in title for keyword in MANAGER_KEYWORDS)


def is_store_manager_or_above(profile) -> bool:
    return is_admin(profile) or needs_store_assignment(profile) or has_manager_title(profile)


def is_store_manager_candidate(profile) -> bool:
    title = _title(profile)
    return "店長" in title or "代理店長" in title


def can_export_monthly(profile) -> bool:
    return is_admin(profile) or is_business_supervisor(profile)


def can_edit_store_bonus(profile) -> bool:
    """Admins, managers and anyone who runs a store."""
    return is_admin_or_manager(profile) or needs_store_assignment(profile)


def can_export_store_pdf(profile) -> bool:
    return is_admin(profile) or needs_store_assignment(profile)


def can_import_performance(profile) -> bool:
    return is_admin(profile) or _title(profile) in SUPERVISOR_TITLES


def can_import_store_stats(profile) -> bool:
    """Supervisors and above, or any 營業 department member or manager."""
    return (
        can_import_performance(profile)
        or (_is_business_department(profile) and _role(profile) in ("member", "manager"))
    )


def supervisor_flags(profile, managed_rows) -> tuple[bool, bool]:
    """
    Return ``(is_supervisor, is_store_manager)``.

    A job title alone qualifies; so does holding at least one StoreManager
    row of the matching role_type. ``managed_rows`` may be models or dicts.
    """
    def _role_type(row):
        return row.get("role_type") if isinstance(row, dict) else getattr(row, "role_type", None)

    title = _title(profile)
    role_types = {_role_type(row) for row in managed_rows or []}
    is_supervisor = title in SUPERVISOR_TITLES or "supervisor" in role_types
    is_store_manager = title in STORE_MANAGER_TITLES or "store_manager" in role_types
    return is_supervisor, is_store_manager


def authorize(profile, rule, message="權限不足"):
    """Raise PermissionDeniedError unless ``rule(profile)`` holds."""
    if not rule(profile):
        logger.warning(
            "Policy %s denied for user %s",
            getattr(rule, "__name__", rule), getattr(profile, "id", None),
            extra={"user_id": getattr(profile, "id", None)},
        )
        raise PermissionDeniedError(message)
