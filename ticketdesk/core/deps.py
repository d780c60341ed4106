"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from ticketdesk.core.config import settings
from ticketdesk.core.security import decode_session_token, verify_secret
from ticketdesk.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "ticketdesk_session"
JOB_TOKEN_HEADER = "X-Job-Token"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_email(request: Request) -> str:
    """
    Get the authenticated user's email from the session cookie.

    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - Email belongs to the organization domain

    Raises:
        HTTPException 401: Authentication failed
    """
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_session_token(token)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid session")

    email = str(payload.get("sub") or "").lower()
    if not email.endswith(f"@{settings.ALLOWED_DOMAIN.lower()}"):
        raise HTTPException(status_code=401, detail="Not authenticated")
    return email


def require_admin(email: str = Depends(get_current_user_email)) -> str:
    """Allow only addresses on the ADMIN_EMAILS allow-list."""
    if email not in settings.admin_emails_list:
        raise HTTPException(status_code=403, detail="Admin access required")
    return email


def require_job_token(x_job_token: str | None = Header(default=None, alias=JOB_TOKEN_HEADER)) -> None:
    """Verify the shared secret sent by the external scheduler."""
    if not settings.JOB_TOKEN:
        raise HTTPException(status_code=501, detail="JOB_TOKEN not configured")
    if not verify_secret(x_job_token, settings.JOB_TOKEN):
        raise HTTPException(status_code=401, detail="Invalid job token")
