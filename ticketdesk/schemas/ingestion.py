"""Pydantic schemas for ingestion runs and the sender blocklist."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr

from ticketdesk.db.enums import RunOutcome, SyncSource, TicketStatus


class SyncRunRead(BaseModel):
    """One row of the ingestion audit log."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    source: SyncSource
    user_email: str | None
    outcome: RunOutcome
    details: dict[str, Any] | None


class BlockSenderRequest(BaseModel):
    # Defaults to the ticket's own sender when omitted
    email: EmailStr | None = None


class BlockSenderResponse(BaseModel):
    ok: bool = True
    ticket_id: str
    status: TicketStatus


class BlockedSenderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    blocked_at: datetime
