"""
Privileged access to the hosted auth backend.

The service-role client bypasses row-level security, so it is built lazily
and only used for admin auth operations (password reset). Regular data
access goes through SQLAlchemy.
"""

import logging
import threading
from typing import Optional

from flask import current_app
from supabase import Client, create_client

from storeops.core.exceptions import ServiceError

logger = logging.getLogger(__name__)

_client: Optional[Client] = None
_client_lock = threading.Lock()


def get_admin_client() -> Client:
    """Return the shared service-role client, creating it on first use."""
    global _client
    if _client is not None:
        return _client

    url = current_app.config.get("SUPABASE_URL")
    key = current_app.config.get("SUPABASE_SERVICE_ROLE_KEY")
    if not url or not key:
        logger.error("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not configured")
        raise ServiceError("伺服器未設定管理金鑰")

    with _client_lock:
        if _client is None:
            _client = create_client(url, key)
            logger.info("Supabase admin client initialized")
    return _client


def update_user_password(user_id: str, new_password: str) -> None:
    """Set a user's password through the admin auth API."""
    client = get_admin_client()
    try:
        client.auth.admin.update_user_by_id(user_id, {"password": new_password})
    except Exception as exc:
        logger.exception("Admin password update failed for user %s", user_id)
        raise ServiceError("重設密碼失敗") from exc
    logger.info("Password reset for user %s", user_id)
