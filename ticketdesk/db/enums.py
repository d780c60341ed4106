"""Ticketing and mailbox-ingest enums."""

from enum import Enum


class TicketStatus(str, Enum):
    """Ticket lifecycle status."""

    NEW = "New"
    IN_PROGRESS = "InProgress"
    WAITING = "Waiting"
    RESOLVED = "Resolved"


# Forward path, re-route back to New, and closing straight from New (blocked sender).
TICKET_STATUS_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.NEW: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED}),
    TicketStatus.IN_PROGRESS: frozenset({TicketStatus.WAITING, TicketStatus.RESOLVED, TicketStatus.NEW}),
    TicketStatus.WAITING: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.NEW}),
    TicketStatus.RESOLVED: frozenset({TicketStatus.NEW}),
}


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    """Return True when a ticket may move from ``current`` to ``target``."""
    return target in TICKET_STATUS_TRANSITIONS.get(current, frozenset())


class TicketPriority(str, Enum):
    """Ticket priority level."""

    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    URGENT = "Urgent"


class QueueLabel(str, Enum):
    """Work queue a ticket is routed to."""

    RMA = "RMA"
    FINANCE = "FINANCE"
    LOGISTICS = "LOGISTICS"
    SALES = "SALES"
    MARKETING = "MARKETING"
    SUPPORT = "SUPPORT"


# Classification order: first match wins.
QUEUE_PRIORITY: tuple[QueueLabel, ...] = (
    QueueLabel.RMA,
    QueueLabel.FINANCE,
    QueueLabel.LOGISTICS,
    QueueLabel.SALES,
    QueueLabel.MARKETING,
    QueueLabel.SUPPORT,
)


class SyncSource(str, Enum):
    """What triggered an ingestion run."""

    CRON = "CRON"
    MANUAL = "MANUAL"


class RunOutcome(str, Enum):
    """Recorded outcome of an ingestion run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(str, Enum):
    """Why a listed conversation did not become a ticket."""

    EXISTING_THREAD = "skipped_existing_thread"
    MISSING_SENDER = "skipped_missing_sender"
    INTERNAL_SENDER = "skipped_internal_sender"
    BLACKLISTED_SENDER = "skipped_blacklisted_sender"
    NEWSLETTER = "skipped_newsletter"
    NO_GROUP = "skipped_no_group"
    DUPLICATE_MESSAGE_ID = "skipped_duplicate_message_id"
