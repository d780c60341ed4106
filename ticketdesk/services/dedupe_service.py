"""Offline duplicate-ticket reconciliation.

Two passes, each yielding "keep one, delete the rest" groups:

* Pass A groups tickets sharing a source Message-ID. The live uniqueness
  constraint normally prevents these; they predate it or slipped in before it
  existed.
* Pass B fingerprints tickets that have no source Message-ID: sender, queue,
  normalized subject, a hash of the first message body and a 15-minute
  creation bucket. Best-effort only; tickets straddling a bucket boundary are
  not grouped.

Within a group the earliest ``(created_at, ticket_id)`` is kept. A ticket kept
by either pass is never deleted.
"""

from __future__ import annotations

import hashlib
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Hashable, Iterable

from sqlalchemy import delete, inspect, null, select, text
from sqlalchemy.orm import Session

from ticketdesk.db.models import Message, Ticket
from ticketdesk.utils.normalization import normalize_subject

logger = logging.getLogger(__name__)

MIN_FINGERPRINT_BODY_LENGTH = 40
BUCKET_SECONDS = 15 * 60


@dataclass(frozen=True)
class DuplicateGroup:
    key: tuple
    keep_ticket_id: str
    delete_ticket_ids: tuple[str, ...]


@dataclass(frozen=True)
class DedupePlan:
    source_message_groups: tuple[DuplicateGroup, ...] = ()
    heuristic_groups: tuple[DuplicateGroup, ...] = ()
    to_delete: tuple[str, ...] = field(default_factory=tuple)

    def summary(self) -> dict[str, int]:
        return {
            "source_message_duplicate_groups": len(self.source_message_groups),
            "heuristic_duplicate_groups": len(self.heuristic_groups),
            "tickets_to_delete": len(self.to_delete),
        }


@dataclass(frozen=True)
class _TicketRow:
    ticket_id: str
    created_at: datetime
    source_message_id: str | None
    sender_email: str | None
    queue: Any
    subject: str | None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def creation_bucket(created_at: datetime) -> int:
    return int(_as_utc(created_at).timestamp() // BUCKET_SECONDS)


def body_fingerprint(body: str | None) -> str:
    return hashlib.md5((body or "").encode("utf-8")).hexdigest()


def _sort_key(row: _TicketRow) -> tuple[datetime, str]:
    return (_as_utc(row.created_at), row.ticket_id)


def _group_rows(keyed_rows: Iterable[tuple[Hashable, _TicketRow]]) -> tuple[DuplicateGroup, ...]:
    buckets: dict[Hashable, list[_TicketRow]] = defaultdict(list)
    for key, row in keyed_rows:
        buckets[key].append(row)

    groups = []
    for key, rows in buckets.items():
        if len(rows) < 2:
            continue
        rows.sort(key=_sort_key)
        groups.append(
            DuplicateGroup(
                key=key if isinstance(key, tuple) else (key,),
                keep_ticket_id=rows[0].ticket_id,
                delete_ticket_ids=tuple(row.ticket_id for row in rows[1:]),
            )
        )
    groups.sort(key=lambda group: group.keep_ticket_id)
    return tuple(groups)


def has_source_message_column(db: Session) -> bool:
    """False on stores that predate the source Message-ID column."""
    columns = inspect(db.connection()).get_columns(Ticket.__tablename__)
    return any(column["name"] == "source_message_id" for column in columns)


def _load_tickets(db: Session) -> list[_TicketRow]:
    if has_source_message_column(db):
        source_message_id = Ticket.source_message_id
    else:
        source_message_id = null().label("source_message_id")
    rows = db.execute(
        select(
            Ticket.ticket_id,
            Ticket.created_at,
            source_message_id,
            Ticket.sender_email,
            Ticket.queue,
            Ticket.subject,
        )
    ).all()
    return [_TicketRow(*row) for row in rows]


def _first_message_bodies(db: Session) -> dict[str, str]:
    """Body of each ticket's earliest message, keyed by ticket id."""
    first: dict[str, str] = {}
    rows = db.execute(
        select(Message.ticket_id, Message.body).order_by(
            Message.ticket_id, Message.date, Message.message_id
        )
    )
    for ticket_id, body in rows:
        first.setdefault(ticket_id, body or "")
    return first


def find_source_message_duplicates(db: Session) -> tuple[DuplicateGroup, ...]:
    return _group_rows(
        (row.source_message_id, row)
        for row in _load_tickets(db)
        if row.source_message_id is not None
    )


def fingerprint(row: _TicketRow, first_body: str) -> tuple:
    queue = getattr(row.queue, "value", row.queue)
    return (
        (row.sender_email or "").lower(),
        queue,
        normalize_subject(row.subject),
        body_fingerprint(first_body),
        creation_bucket(row.created_at),
    )


def find_heuristic_duplicates(db: Session) -> tuple[DuplicateGroup, ...]:
    bodies = _first_message_bodies(db)
    keyed = []
    for row in _load_tickets(db):
        if row.source_message_id is not None:
            continue
        body = bodies.get(row.ticket_id)
        # Tickets without messages or with very short bodies carry too little signal.
        if body is None or len(body) < MIN_FINGERPRINT_BODY_LENGTH:
            continue
        keyed.append((fingerprint(row, body), row))
    return _group_rows(keyed)


def build_plan(db: Session) -> DedupePlan:
    """Compute the full deletion plan without touching any row."""
    source_groups = find_source_message_duplicates(db)
    heuristic_groups = find_heuristic_duplicates(db)

    keep: set[str] = set()
    doomed: set[str] = set()
    for group in (*source_groups, *heuristic_groups):
        keep.add(group.keep_ticket_id)
        doomed.update(group.delete_ticket_ids)

    return DedupePlan(
        source_message_groups=source_groups,
        heuristic_groups=heuristic_groups,
        to_delete=tuple(sorted(doomed - keep)),
    )


def ensure_source_message_constraint(db: Session) -> None:
    """Make sure the source Message-ID column and its unique index exist.

    Only meaningful on PostgreSQL databases that predate the column; the
    models declare both for fresh schemas.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    db.execute(text("ALTER TABLE tickets ADD COLUMN IF NOT EXISTS source_message_id TEXT"))
    db.execute(
        text(
            "CREATE UNIQUE INDEX IF NOT EXISTS uq_tickets_source_message_id "
            "ON tickets (source_message_id) WHERE source_message_id IS NOT NULL"
        )
    )


def apply_plan(db: Session, plan: DedupePlan) -> int:
    """Delete every ticket in ``plan.to_delete`` in one transaction.

    Messages go first so the delete is safe without relying on FK cascades.
    The source Message-ID constraint is bootstrapped afterwards, also when
    there is nothing to delete. Any failure rolls the whole thing back and is
    re-raised.
    """
    ticket_ids = list(plan.to_delete)
    deleted = 0
    try:
        if ticket_ids:
            db.execute(delete(Message).where(Message.ticket_id.in_(ticket_ids)))
            result = db.execute(delete(Ticket).where(Ticket.ticket_id.in_(ticket_ids)))
            deleted = result.rowcount or 0
        ensure_source_message_constraint(db)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Duplicate cleanup rolled back (%d tickets planned)", len(ticket_ids))
        raise
    logger.info("Deleted %d duplicate tickets", deleted)
    return deleted
