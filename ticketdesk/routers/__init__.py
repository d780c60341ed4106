"""API routers."""

from ticketdesk.routers.ingestion import router as ingestion_router
from ticketdesk.routers.internal import router as internal_router
from ticketdesk.routers.tickets import router as tickets_router

__all__ = [
    "ingestion_router",
    "internal_router",
    "tickets_router",
]
