"""Gmail OAuth credential helpers (scope checks, token refresh, client factory)."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from sqlalchemy import and_
from sqlalchemy.orm import Session

from ticketdesk.core.config import settings
from ticketdesk.core.structured_logging import mask_email
from ticketdesk.db.models import UserOAuthToken
from ticketdesk.services.gmail_client import GmailClient

logger = logging.getLogger(__name__)

GMAIL_TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_READ_SCOPE = "https://www.googleapis.com/auth/gmail.readonly"
GMAIL_SEND_SCOPE = "https://www.googleapis.com/auth/gmail.send"


class GmailAuthError(RuntimeError):
    """Refresh credential could not be exchanged for an access token."""


def is_oauth_configured() -> bool:
    return bool(settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET)


def has_scope(scope_string: str | None, required_scope: str) -> bool:
    """Exact token membership in a space-delimited scope string."""
    return required_scope in (scope_string or "").split()


def list_readable_accounts(db: Session) -> list[UserOAuthToken]:
    """Accounts with a refresh credential and Gmail read consent, ordered by email."""
    rows = (
        db.query(UserOAuthToken)
        .filter(
            and_(
                UserOAuthToken.refresh_token.is_not(None),
                UserOAuthToken.refresh_token != "",
            )
        )
        .order_by(UserOAuthToken.email)
        .all()
    )
    return [row for row in rows if has_scope(row.scope, GMAIL_READ_SCOPE)]


def refresh_access_token(refresh_token: str, *, http: httpx.Client | None = None) -> dict[str, Any]:
    """Exchange a refresh token for a fresh access token."""
    data = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "client_secret": settings.GOOGLE_CLIENT_SECRET,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }
    try:
        if http is not None:
            response = http.post(GMAIL_TOKEN_URL, data=data)
        else:
            with httpx.Client(timeout=30.0) as client:
                response = client.post(GMAIL_TOKEN_URL, data=data)
        response.raise_for_status()
        result = response.json()
    except httpx.HTTPStatusError as e:
        detail = e.response.text
        try:
            detail = e.response.json().get("error_description") or detail
        except Exception:
            pass
        raise GmailAuthError(f"Gmail token refresh failed: {detail}") from e
    except httpx.HTTPError as e:
        raise GmailAuthError(f"Gmail token refresh failed: {e}") from e

    if not result.get("access_token"):
        raise GmailAuthError("Gmail refresh did not return access_token")
    return result


def open_gmail_client(token: UserOAuthToken) -> GmailClient | None:
    """Build a Gmail client for an account, or None when it cannot be authorized.

    Returns None (not an error) when the OAuth client is not configured or the
    account has no refresh credential. Refresh failures raise GmailAuthError so
    the caller can record them against the account.
    """
    if not is_oauth_configured() or not token.refresh_token:
        logger.warning(
            "Gmail client unavailable for %s: %s",
            mask_email(token.email),
            "no refresh token" if is_oauth_configured() else "oauth client not configured",
        )
        return None
    result = refresh_access_token(token.refresh_token)
    return GmailClient(result["access_token"])

