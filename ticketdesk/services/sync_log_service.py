"""Audit trail of ingestion runs (``sync_logs``)."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketdesk.db.enums import RunOutcome, SyncSource
from ticketdesk.db.models import SyncRunLog

logger = logging.getLogger(__name__)

GMAIL_SYNC_ACTION = "GMAIL_SYNC"


def record_run(
    db: Session,
    *,
    source: SyncSource,
    outcome: RunOutcome,
    details: dict[str, Any] | None = None,
    user_email: str | None = None,
) -> SyncRunLog:
    """Persist one run attempt. Caller commits."""
    entry = SyncRunLog(
        source=source,
        user_email=user_email,
        action=GMAIL_SYNC_ACTION,
        outcome=outcome,
        details=details,
    )
    db.add(entry)
    db.flush()
    return entry


def get_latest_run(db: Session) -> SyncRunLog | None:
    return db.execute(
        select(SyncRunLog)
        .where(SyncRunLog.action == GMAIL_SYNC_ACTION)
        .order_by(SyncRunLog.timestamp.desc(), SyncRunLog.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def serialize_run(entry: SyncRunLog) -> dict[str, Any]:
    return {
        "id": entry.id,
        "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
        "source": entry.source.value,
        "user_email": entry.user_email,
        "outcome": entry.outcome.value,
        "details": entry.details or {},
    }
