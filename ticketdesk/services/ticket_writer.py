"""Idempotent ticket and message persistence.

Two layers keep a conversation from becoming two tickets:

* an in-run set of known thread ids, seeded from the store and grown as the
  run creates tickets;
* uniqueness on ``tickets.thread_id`` and ``tickets.source_message_id`` with
  insert-or-ignore, so a concurrent run or a retried trigger that got there
  first turns our insert into a no-op instead of an error.

The constraint is authoritative; the in-run set only saves work.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import Table, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ticketdesk.db.enums import QueueLabel, TicketPriority, TicketStatus
from ticketdesk.db.models import BlocklistEntry, Message, Ticket
from ticketdesk.services.gmail_client import GmailMessage

logger = logging.getLogger(__name__)

TICKET_ID_PREFIX = "VEN"
MESSAGE_ID_PREFIX = "MSG"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def make_ticket_id() -> str:
    return f"{TICKET_ID_PREFIX}-{uuid.uuid4().hex[:10].upper()}"


def make_message_id(gmail_message_id: str | None) -> str:
    if gmail_message_id:
        return f"{MESSAGE_ID_PREFIX}-{gmail_message_id}"
    return f"{MESSAGE_ID_PREFIX}-{uuid.uuid4().hex[:12].upper()}"


def insert_ignore(db: Session, table: Table, values: dict | list[dict]) -> int:
    """``INSERT ... ON CONFLICT DO NOTHING``; returns rows actually inserted."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table).values(values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(table).values(values).on_conflict_do_nothing()
    else:
        raise NotImplementedError(f"insert-or-ignore not supported for dialect {dialect}")
    result = db.execute(stmt)
    return max(result.rowcount or 0, 0)


class KnownThreads:
    """Thread ids that already have a ticket, as far as this run knows."""

    def __init__(self, thread_ids: Iterable[str] = ()):
        self._ids = set(thread_ids)

    @classmethod
    def load(cls, db: Session) -> "KnownThreads":
        return cls(db.execute(select(Ticket.thread_id)).scalars())

    def add(self, thread_id: str) -> None:
        self._ids.add(thread_id)

    def __contains__(self, thread_id: object) -> bool:
        return thread_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


def load_blocklist(db: Session) -> frozenset[str]:
    return frozenset(
        (email or "").lower() for email in db.execute(select(BlocklistEntry.email)).scalars()
    )


@dataclass(frozen=True)
class TicketInsertResult:
    ticket_id: str
    created: bool


def insert_ticket(
    db: Session,
    *,
    thread_id: str,
    subject: str | None,
    queue: QueueLabel,
    sender_email: str,
    source_message_id: str | None,
    last_message_at: datetime | None,
    now: datetime | None = None,
) -> TicketInsertResult:
    """Create the ticket row unless a conflicting one already exists."""
    now = now or _now_utc()
    ticket_id = make_ticket_id()
    inserted = insert_ignore(
        db,
        Ticket.__table__,
        {
            "ticket_id": ticket_id,
            "created_at": now,
            "updated_at": now,
            "subject": f"[{ticket_id}] {subject or ''}".strip(),
            "status": TicketStatus.NEW,
            "priority": TicketPriority.NORMAL,
            "queue": queue,
            "owner_email": None,
            "sender_email": sender_email,
            "thread_id": thread_id,
            "source_message_id": source_message_id,
            "last_message_at": last_message_at or now,
            "tags": "",
        },
    )
    return TicketInsertResult(ticket_id=ticket_id, created=inserted > 0)


def message_row(ticket_id: str, thread_id: str, message: GmailMessage, *, now: datetime) -> dict:
    return {
        "message_id": make_message_id(message.id),
        "ticket_id": ticket_id,
        "date": message.internal_date or now,
        "from_address": message.header("From"),
        "to_address": message.header("To"),
        "subject": message.header("Subject"),
        "body": message.body,
        "gmail_message_id": message.id,
        "thread_id": message.thread_id or thread_id,
    }


def insert_messages(
    db: Session,
    *,
    ticket_id: str,
    thread_id: str,
    messages: Iterable[GmailMessage],
    now: datetime | None = None,
) -> int:
    """Write a conversation's history; already-stored mailbox messages are skipped."""
    now = now or _now_utc()
    written = 0
    for message in messages:
        written += insert_ignore(
            db, Message.__table__, message_row(ticket_id, thread_id, message, now=now)
        )
    return written
