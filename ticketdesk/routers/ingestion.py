"""Admin endpoints for mailbox ingestion runs and the sender blocklist."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ticketdesk.core.deps import get_db, require_admin
from ticketdesk.db.enums import SyncSource
from ticketdesk.routers.internal import trigger_run
from ticketdesk.schemas.ingestion import BlockedSenderRead, SyncRunRead
from ticketdesk.services import blocklist_service, sync_log_service

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/jobs/gmail-sync")
def manual_gmail_sync(admin_email: str = Depends(require_admin)):
    """Trigger an ingestion run now (same single-flight rules as the scheduler)."""
    return trigger_run(SyncSource.MANUAL, actor_email=admin_email)


@router.get("/jobs/gmail-sync/latest", response_model=SyncRunRead | None)
def latest_gmail_sync(
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    return sync_log_service.get_latest_run(db)


@router.get("/blocklist", response_model=list[BlockedSenderRead])
def list_blocklist(
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    return blocklist_service.list_blocked(db)


@router.delete("/blocklist/{email}")
def remove_from_blocklist(
    email: str,
    db: Session = Depends(get_db),
    _: str = Depends(require_admin),
):
    if not blocklist_service.unblock_sender(db, email):
        raise HTTPException(status_code=404, detail="Sender not blocked")
    return {"ok": True}
