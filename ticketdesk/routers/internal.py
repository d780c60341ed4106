"""
Internal endpoints for scheduled operations.

Protected by the X-Job-Token header.
Call from the external scheduler (Cloud Scheduler/cron/GH Actions).
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ticketdesk.core.deps import require_job_token
from ticketdesk.db.enums import RunOutcome, SyncSource
from ticketdesk.services import run_coordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["internal"])


def run_response(result: run_coordinator.RunResult) -> JSONResponse:
    """Failed runs answer 500 with the same body the audit log holds."""
    body = {"outcome": result.outcome.value, **result.details}
    return JSONResponse(status_code=500 if result.failed else 200, content=body)


def trigger_run(source: SyncSource, actor_email: str | None = None) -> JSONResponse:
    """Run ingestion and map a crashed run to a 500 JSON body (already recorded)."""
    try:
        result = run_coordinator.run_ingestion(source, actor_email=actor_email)
    except Exception as exc:
        logger.exception("Ingestion run (%s) raised", source.value)
        return JSONResponse(
            status_code=500,
            content={"outcome": RunOutcome.FAILED.value, "ok": False, "error": str(exc)},
        )
    return run_response(result)


@router.post("/gmail-sync", dependencies=[Depends(require_job_token)])
def scheduled_gmail_sync():
    """
    Scheduled mailbox ingestion.

    Returns 200 for success, partial and skipped (another run in flight);
    500 when the run could not complete.
    """
    return trigger_run(SyncSource.CRON)
