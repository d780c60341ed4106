"""Pydantic schemas for API request/response models."""

from ticketdesk.schemas.ingestion import (
    BlockedSenderRead,
    BlockSenderRequest,
    BlockSenderResponse,
    SyncRunRead,
)

__all__ = [
    "BlockedSenderRead",
    "BlockSenderRequest",
    "BlockSenderResponse",
    "SyncRunRead",
]
