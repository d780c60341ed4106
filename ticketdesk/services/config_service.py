"""Key/value configuration store: queue keyword lists and signatures."""

from __future__ import annotations

from sqlalchemy.orm import Session

from ticketdesk.db.enums import QUEUE_PRIORITY, QueueLabel
from ticketdesk.db.models import ConfigEntry
from ticketdesk.services.classifier import KeywordSnapshot


def keyword_config_key(queue: QueueLabel) -> str:
    return f"KEYWORDS_{queue.value}"


def get_config_map(db: Session) -> dict[str, str]:
    return {row.key: row.value or "" for row in db.query(ConfigEntry).all()}


def parse_keyword_list(value: str | None) -> tuple[str, ...]:
    """Comma-delimited list -> trimmed, lowercased, non-empty keywords."""
    return tuple(part.strip().lower() for part in (value or "").split(",") if part.strip())


def load_keyword_snapshot(db: Session) -> KeywordSnapshot:
    """Read every queue's keyword list once; the snapshot is used for a whole run."""
    config = get_config_map(db)
    return KeywordSnapshot(
        {queue: parse_keyword_list(config.get(keyword_config_key(queue))) for queue in QUEUE_PRIORITY}
    )


def get_queue_signature(db: Session, queue: QueueLabel | str) -> str:
    """Signature block for replies sent from a queue ('' when unset)."""
    name = queue.value if isinstance(queue, QueueLabel) else str(queue or "")
    entry = db.get(ConfigEntry, f"SIGNATURE_{name.upper()}")
    return (entry.value or "").strip() if entry else ""
