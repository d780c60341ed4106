"""Security utilities for session tokens and shared job secrets."""

import hmac
from datetime import datetime, timedelta, timezone

import jwt

from ticketdesk.core.config import settings


SESSION_EXPIRES_HOURS = 4


def create_session_token(email: str, *, expires_hours: int = SESSION_EXPIRES_HOURS) -> str:
    """Create signed session JWT carrying the user's email."""
    payload = {
        "sub": email.lower(),
        "iat": datetime.now(timezone.utc),
        "exp": datetime.now(timezone.utc) + timedelta(hours=expires_hours),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    """
    Decode and verify session JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


def verify_secret(provided: str | None, expected: str | None) -> bool:
    """Constant-time comparison of a shared secret."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())
