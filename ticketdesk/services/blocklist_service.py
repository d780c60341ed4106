"""Sender blocklist maintenance."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ticketdesk.core.structured_logging import mask_email
from ticketdesk.db.enums import TicketStatus, can_transition
from ticketdesk.db.models import BlocklistEntry, Ticket
from ticketdesk.services.ticket_writer import insert_ignore
from ticketdesk.utils.normalization import normalize_email

logger = logging.getLogger(__name__)


class TicketNotFoundError(LookupError):
    pass


def block_sender(db: Session, email: str) -> bool:
    """Add ``email`` to the blocklist; False when it was already there. Caller commits."""
    normalized = normalize_email(email)
    if not normalized:
        raise ValueError("email required")
    inserted = insert_ignore(
        db,
        BlocklistEntry.__table__,
        {"email": normalized, "blocked_at": datetime.now(timezone.utc)},
    )
    return inserted > 0


def block_ticket_sender(db: Session, ticket_id: str, email: str | None = None) -> Ticket:
    """Blocklist the ticket's sender and resolve the ticket."""
    ticket = db.get(Ticket, ticket_id)
    if ticket is None:
        raise TicketNotFoundError(ticket_id)

    sender = email or ticket.sender_email
    added = block_sender(db, sender or "")
    if can_transition(ticket.status, TicketStatus.RESOLVED):
        ticket.status = TicketStatus.RESOLVED
        ticket.updated_at = datetime.now(timezone.utc)
    db.commit()
    logger.info(
        "Blocked sender %s from ticket %s (new=%s)", mask_email(sender), ticket_id, added
    )
    return ticket


def list_blocked(db: Session) -> list[BlocklistEntry]:
    return list(
        db.execute(select(BlocklistEntry).order_by(BlocklistEntry.blocked_at.desc())).scalars()
    )


def unblock_sender(db: Session, email: str) -> bool:
    result = db.execute(
        delete(BlocklistEntry).where(BlocklistEntry.email == (normalize_email(email) or ""))
    )
    db.commit()
    return bool(result.rowcount)
