"""
Store Operations Platform
Blueprint registry and shared request helpers.
"""

from flask import request

from storeops.auth import current_profile
from storeops.core.exceptions import PermissionDeniedError


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def json_body():
    return request.get_json(silent=True) or {}


def actor_profile():
    """The caller's Profile; an authenticated user without one is refused."""
    profile = current_profile()
    if profile is None:
        raise PermissionDeniedError("找不到用戶資料")
    return profile

