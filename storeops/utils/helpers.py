"""Shared utility functions for blueprints and services.

parse_date:          returns None on bad input
parse_year_month:    validates the YYYYMM partition key
normalize_code:      trims + upper-cases employee codes
db_commit_or_error:  single commit point for route handlers
"""
import logging
import re
from datetime import date, datetime

from flask import jsonify

from storeops.models import db

logger = logging.getLogger(__name__)

_YEAR_MONTH_RE = re.compile(r"^\d{4}(0[1-9]|1[0-2])$")


def parse_date(value):
    """Parse a date string (ISO date or ISO datetime) to a date object.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        return None


def parse_year_month(value):
    """Return the value if it is a valid ``YYYYMM`` key, else None."""
    if value is None:
        return None
    value = str(value).strip()
    return value if _YEAR_MONTH_RE.match(value) else None


def normalize_code(value):
    """Employee codes are stored trimmed and upper-case."""
    if value is None:
        return ""
    return str(value).strip().upper()


def to_float(value, default=0.0):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure — ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    Other → 500 (unexpected)

    Everything flushed since the last commit is rolled back together, so a
    multi-step write either lands completely or not at all.
    """
    from sqlalchemy.exc import IntegrityError, OperationalError

    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return jsonify({"success": False, "error": "資料重複或違反限制"}), 409
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return jsonify({"success": False, "error": "資料庫錯誤"}), 500
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        return jsonify({"success": False, "error": "資料庫錯誤"}), 500
