"""
JWT Service — verification of access tokens issued by the hosted auth provider.

Supabase signs session access tokens with the project's JWT secret (HS256).
This service only verifies them; sign-in, refresh and sign-out happen
against Supabase directly from the client.

Token payload (access), fields we rely on:
{
    "sub": "<user uuid>",
    "email": "user@example.com",
    "aud": "authenticated",
    "role": "authenticated",
    "iat": <issued_at>,
    "exp": <expires_at>
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 3600      # Supabase default session length
ALGORITHM = "HS256"


def _get_secret():
    secret = current_app.config.get("SUPABASE_JWT_SECRET")
    if not secret:
        raise jwt.InvalidTokenError("SUPABASE_JWT_SECRET is not configured")
    return secret


def _get_audience():
    return current_app.config.get("SUPABASE_JWT_AUDIENCE", "authenticated")


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(
        token,
        _get_secret(),
        algorithms=[ALGORITHM],
        audience=_get_audience(),
        options={"require": ["sub", "exp"]},
    )
    if not payload.get("sub"):
        raise jwt.InvalidTokenError("Token has no subject")
    return payload


# ═══════════════════════════════════════════════════════════════
# Token Generation (tests / local tooling)
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user_id: str, email: str | None = None,
                          expires_in: int | None = None) -> str:
    """Mint a token with the same shape Supabase issues."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "aud": _get_audience(),
        "role": "authenticated",
        "iat": now,
        "exp": now + timedelta(seconds=expires_in or DEFAULT_ACCESS_EXPIRES),
        "session_id": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)
