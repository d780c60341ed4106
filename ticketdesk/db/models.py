"""Ticketing and mailbox-ingest ORM models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketdesk.db.base import Base
from ticketdesk.db.enums import QueueLabel, RunOutcome, SyncSource, TicketPriority, TicketStatus


def _enum_type(enum_cls, *, name: str) -> Enum:
    """Bind Python str-enums to their value strings (portable, non-native)."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


class Ticket(Base):
    """One ticket per mailbox conversation."""

    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("thread_id", name="uq_tickets_thread_id"),
        UniqueConstraint("source_message_id", name="uq_tickets_source_message_id"),
        Index("idx_tickets_status", "status"),
        Index("idx_tickets_queue_created", "queue", "created_at"),
    )

    ticket_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[TicketStatus] = mapped_column(
        _enum_type(TicketStatus, name="ticket_status"),
        nullable=False,
        default=TicketStatus.NEW,
    )
    priority: Mapped[TicketPriority] = mapped_column(
        _enum_type(TicketPriority, name="ticket_priority"),
        nullable=False,
        default=TicketPriority.NORMAL,
    )
    queue: Mapped[QueueLabel] = mapped_column(
        _enum_type(QueueLabel, name="queue_label"), nullable=False
    )
    owner_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    sender_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    thread_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # Nullable: legacy/ambiguous conversations must still be ticketable.
    source_message_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(nullable=True)
    tags: Mapped[str] = mapped_column(Text, nullable=False, default="")

    messages: Mapped[list["Message"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.date",
    )


class Message(Base):
    """A single message belonging to a ticket."""

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("gmail_message_id", name="uq_messages_gmail_message_id"),
        Index("idx_messages_ticket_date", "ticket_id", "date"),
    )

    message_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    ticket_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("tickets.ticket_id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[datetime] = mapped_column(nullable=False)
    from_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    to_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    gmail_message_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    thread_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    ticket: Mapped[Ticket] = relationship(back_populates="messages")


class UserOAuthToken(Base):
    """Per-account Gmail OAuth credential (owned by the auth flow)."""

    __tablename__ = "user_oauth_tokens"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    expiry_date: Mapped[datetime | None] = mapped_column(nullable=True)
    # Credential-issued time; accounts never scan mail from before it.
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class ConfigEntry(Base):
    """Mutable key/value settings (keyword lists, signatures)."""

    __tablename__ = "config"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)


class BlocklistEntry(Base):
    """Sender address that must never produce tickets."""

    __tablename__ = "blacklist"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    blocked_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class SyncRunLog(Base):
    """Audit entry for one ingestion run attempt."""

    __tablename__ = "sync_logs"
    __table_args__ = (Index("idx_sync_logs_action_timestamp", "action", "timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    source: Mapped[SyncSource] = mapped_column(
        _enum_type(SyncSource, name="sync_source"), nullable=False
    )
    user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, default="GMAIL_SYNC")
    outcome: Mapped[RunOutcome] = mapped_column(
        _enum_type(RunOutcome, name="run_outcome"), nullable=False
    )
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
