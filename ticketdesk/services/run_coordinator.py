"""Single-flight execution of the ingestion pipeline.

At most one run is in flight across all processes. A trigger that loses the
race is recorded as ``skipped`` and reported as a success; every attempt,
including failures, lands in ``sync_logs`` before the caller sees it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from ticketdesk.core.locks import RunLock, get_run_lock
from ticketdesk.core.structured_logging import mask_email
from ticketdesk.db.enums import RunOutcome, SyncSource
from ticketdesk.services import ingestion_service, sync_log_service
from ticketdesk.services.run_report import RunReport

logger = logging.getLogger(__name__)

ALREADY_RUNNING = "already_running"

Pipeline = Callable[[Session], RunReport]


@dataclass(frozen=True)
class RunResult:
    outcome: RunOutcome
    details: dict[str, Any]

    @property
    def failed(self) -> bool:
        return self.outcome == RunOutcome.FAILED


def classify_outcome(report: RunReport) -> RunOutcome:
    if not report.ok:
        return RunOutcome.FAILED
    if report.had_errors:
        return RunOutcome.PARTIAL
    return RunOutcome.SUCCESS


def _record(
    session_factory: sessionmaker,
    *,
    source: SyncSource,
    outcome: RunOutcome,
    details: dict[str, Any],
    actor_email: str | None,
) -> None:
    with session_factory() as db:
        sync_log_service.record_run(
            db, source=source, outcome=outcome, details=details, user_email=actor_email
        )
        db.commit()


def run_ingestion(
    source: SyncSource,
    actor_email: str | None = None,
    *,
    session_factory: sessionmaker | None = None,
    run_lock: RunLock | None = None,
    pipeline: Pipeline | None = None,
) -> RunResult:
    """Run one ingestion pass under the run lock and record the outcome.

    Unexpected pipeline exceptions are recorded as ``failed`` and re-raised.
    """
    if session_factory is None:
        from ticketdesk.db.session import SessionLocal

        session_factory = SessionLocal
    if run_lock is None:
        run_lock = get_run_lock(session_factory.kw["bind"])
    pipeline = pipeline or ingestion_service.fetch_new_emails

    with run_lock.hold() as acquired:
        if not acquired:
            details = {"ok": True, "skipped": True, "reason": ALREADY_RUNNING, "created": 0}
            logger.info("Ingestion %s trigger skipped: another run holds the lock", source.value)
            _record(
                session_factory,
                source=source,
                outcome=RunOutcome.SKIPPED,
                details=details,
                actor_email=actor_email,
            )
            return RunResult(RunOutcome.SKIPPED, details)

        try:
            with session_factory() as db:
                report = pipeline(db)
        except Exception as exc:
            logger.exception(
                "Ingestion %s run failed (actor=%s)",
                source.value,
                mask_email(actor_email) if actor_email else None,
            )
            _record(
                session_factory,
                source=source,
                outcome=RunOutcome.FAILED,
                details={"ok": False, "error": str(exc) or exc.__class__.__name__},
                actor_email=actor_email,
            )
            raise

        outcome = classify_outcome(report)
        details = report.to_dict()
        _record(
            session_factory,
            source=source,
            outcome=outcome,
            details=details,
            actor_email=actor_email,
        )
    logger.info("Ingestion %s run finished: %s (created=%d)", source.value, outcome.value, report.created)
    return RunResult(outcome, details)
