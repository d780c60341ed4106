"""Scan window resolution for ingestion runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

FALLBACK_WINDOW = timedelta(days=30)

REASON_CONFIGURED = "configured"
REASON_INVALID = "invalid_config_fallback_30d"
REASON_FUTURE = "future_config_fallback_30d"

EXCLUDED_FOLDERS = ("chats", "drafts", "trash")


@dataclass(frozen=True)
class StartWindow:
    """Run-wide scan start and how it was chosen."""

    configured: str | None
    used: datetime
    reason: str


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_iso(value: str | None) -> datetime | None:
    raw = (value or "").strip()
    if not raw:
        return None
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(raw))
    except ValueError:
        return None


def resolve_start_time(configured: str | None, *, now: datetime | None = None) -> StartWindow:
    """Resolve the configured start, falling back to 30 days ago when unusable."""
    now = _as_utc(now or datetime.now(timezone.utc))
    parsed = _parse_iso(configured)
    if parsed is None:
        return StartWindow(configured=configured, used=now - FALLBACK_WINDOW, reason=REASON_INVALID)
    if parsed > now:
        return StartWindow(configured=configured, used=now - FALLBACK_WINDOW, reason=REASON_FUTURE)
    return StartWindow(configured=configured, used=parsed, reason=REASON_CONFIGURED)


def account_start_time(window: StartWindow, credential_issued_at: datetime | None) -> datetime:
    """Accounts never scan mail from before they granted access."""
    if credential_issued_at is None:
        return window.used
    issued = _as_utc(credential_issued_at)
    return issued if issued > window.used else window.used


def build_gmail_query(start: datetime) -> str:
    """Date-only ``after:`` query on the UTC calendar day, with excluded folders."""
    day = _as_utc(start)
    exclusions = " ".join(f"-in:{folder}" for folder in EXCLUDED_FOLDERS)
    return f"after:{day.year:04d}/{day.month:02d}/{day.day:02d} {exclusions}"
