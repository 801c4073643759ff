"""
JWT Auth Middleware — resolves the session principal from the bearer token.

Sets, for every /api/v1/* request:
    g.user_id     — the token subject (profile UUID) or None
    g.user_email  — the token email claim or None

Invalid or expired tokens leave the principal unset; protected endpoints
then answer 401 via ``storeops.auth.require_auth``.
"""

import logging

import jwt as pyjwt
from flask import g, request

from storeops.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.user_id = None
        g.user_email = None
        g.pop("current_profile", None)

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected access token on %s: %s", path, exc)
            return

        g.user_id = str(payload["sub"])
        g.user_email = payload.get("email")
