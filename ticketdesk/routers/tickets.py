"""Ticket actions available to any signed-in agent."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ticketdesk.core.deps import get_current_user_email, get_db
from ticketdesk.schemas.ingestion import BlockSenderRequest, BlockSenderResponse
from ticketdesk.services import blocklist_service

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.post("/{ticket_id}/block", response_model=BlockSenderResponse)
def block_ticket_sender(
    ticket_id: str,
    data: BlockSenderRequest | None = None,
    db: Session = Depends(get_db),
    _: str = Depends(get_current_user_email),
):
    """Blocklist the sender so future mail is skipped, and resolve the ticket."""
    try:
        ticket = blocklist_service.block_ticket_sender(
            db, ticket_id, email=str(data.email) if data and data.email else None
        )
    except blocklist_service.TicketNotFoundError:
        raise HTTPException(status_code=404, detail="Ticket not found")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return BlockSenderResponse(ticket_id=ticket.ticket_id, status=ticket.status)
