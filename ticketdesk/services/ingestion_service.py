"""Mailbox ingestion pipeline: list, fetch, filter, classify, persist.

One sequential pass over every readable account. Failures are isolated to the
account (listing) or the conversation (fetch); nothing short of a store error
aborts the pass.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Protocol

from sqlalchemy.orm import Session

from ticketdesk.core.config import settings
from ticketdesk.core.structured_logging import build_log_context, mask_email
from ticketdesk.db.enums import SkipReason
from ticketdesk.db.models import UserOAuthToken
from ticketdesk.services import config_service, oauth_service
from ticketdesk.services.classifier import KeywordSnapshot, classify
from ticketdesk.services.gmail_client import GmailApiError, GmailMessage, GmailThread, ThreadPage
from ticketdesk.services.mail_filters import is_internal_sender, run_filters
from ticketdesk.services.run_report import RunReport, RunReportBuilder
from ticketdesk.services.sync_window import (
    StartWindow,
    account_start_time,
    build_gmail_query,
    resolve_start_time,
)
from ticketdesk.services.ticket_writer import (
    KnownThreads,
    insert_messages,
    insert_ticket,
    load_blocklist,
)
from ticketdesk.utils.normalization import extract_emails, normalize_message_id

logger = logging.getLogger(__name__)

NO_READABLE_ACCOUNTS = "no users with gmail.readonly consent"


class MailboxClient(Protocol):
    def list_threads(self, query: str, *, page_token: str | None = None) -> ThreadPage: ...

    def get_thread(self, thread_id: str) -> GmailThread: ...

    def close(self) -> None: ...


ClientFactory = Callable[[UserOAuthToken], "MailboxClient | None"]


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _error_detail(exc: Exception) -> str:
    if isinstance(exc, GmailApiError):
        return exc.message or "unknown_list_error"
    return str(exc) or "unknown_list_error"


def first_inbound_message(thread: GmailThread, org_domain: str) -> GmailMessage | None:
    """Oldest message not sent from the org; the oldest message when all are."""
    for message in thread.messages:
        if not is_internal_sender(extract_emails(message.header("From")), org_domain):
            return message
    return thread.first_message


def fetch_account_threads(client: MailboxClient, query: str, *, limit: int) -> list[str]:
    """Follow pagination until it ends or ``limit`` thread ids are collected."""
    thread_ids: list[str] = []
    page_token: str | None = None
    while True:
        page = client.list_threads(query, page_token=page_token)
        thread_ids.extend(page.thread_ids)
        page_token = page.next_page_token
        if not page_token or len(thread_ids) >= limit:
            break
    return thread_ids[:limit]


class IngestionRun:
    """State for one pass; use ``fetch_new_emails`` rather than this directly."""

    def __init__(
        self,
        db: Session,
        *,
        window: StartWindow,
        snapshot: KeywordSnapshot,
        known_threads: KnownThreads,
        blocklist: frozenset[str],
        client_factory: ClientFactory,
        max_threads: int,
    ):
        self.db = db
        self.window = window
        self.snapshot = snapshot
        self.known_threads = known_threads
        self.blocklist = blocklist
        self.client_factory = client_factory
        self.max_threads = max_threads
        self.report = RunReportBuilder()

    def process_account(self, account: UserOAuthToken) -> None:
        start = account_start_time(self.window, account.created_at)
        query = build_gmail_query(start)
        try:
            client = self.client_factory(account)
        except Exception as exc:
            self._record_list_error(account, exc)
            return
        if client is None:
            return

        try:
            try:
                thread_ids = fetch_account_threads(client, query, limit=self.max_threads)
            except Exception as exc:
                self._record_list_error(account, exc)
                return
            self.report.threads_listed += len(thread_ids)
            for thread_id in thread_ids:
                self.process_thread(client, thread_id)
        finally:
            client.close()

    def _record_list_error(self, account: UserOAuthToken, exc: Exception) -> None:
        detail = _error_detail(exc)
        logger.warning(
            "Mailbox listing failed for %s: %s", mask_email(account.email), detail,
            extra=build_log_context(account=account.email),
        )
        self.report.list_error(account.email, detail)

    def process_thread(self, client: MailboxClient, thread_id: str) -> None:
        # Known threads are skipped before the (expensive) full fetch.
        if thread_id in self.known_threads:
            self.report.skip(SkipReason.EXISTING_THREAD, {"thread_id": thread_id})
            return

        try:
            thread = client.get_thread(thread_id)
        except Exception as exc:
            self.report.thread_fetch_errors += 1
            logger.warning("Thread fetch failed for %s: %s", thread_id, _error_detail(exc))
            return
        self.report.threads_fetched += 1

        last = thread.last_message
        if last is None:
            return

        decision = run_filters(
            thread_id,
            last,
            known_threads=self.known_threads,
            blocklist=self.blocklist,
            org_domain=settings.ALLOWED_DOMAIN,
        )
        if not decision.passed:
            self.report.skip(decision.reason, decision.sample)
            return

        subject = last.header("Subject")
        to = last.header("To")
        queue = classify(to, subject, last.body, self.snapshot)
        if queue is None:
            self.report.skip(
                SkipReason.NO_GROUP,
                {"thread_id": thread_id, "from": last.header("From"), "to": to, "subject": subject},
            )
            return

        origin = first_inbound_message(thread, settings.ALLOWED_DOMAIN)
        source_message_id = normalize_message_id(origin.header("Message-ID"))
        result = insert_ticket(
            self.db,
            thread_id=thread_id,
            subject=subject,
            queue=queue,
            sender_email=decision.sender,
            source_message_id=source_message_id,
            last_message_at=last.internal_date,
        )
        self.db.commit()
        self.known_threads.add(thread_id)

        if not result.created:
            # Someone else (a concurrent run, a retried trigger) already ticketed it.
            if source_message_id:
                self.report.skip(
                    SkipReason.DUPLICATE_MESSAGE_ID,
                    {"thread_id": thread_id, "source_message_id": source_message_id, "subject": subject},
                )
            else:
                self.report.skip(SkipReason.EXISTING_THREAD, {"thread_id": thread_id})
            return

        written = insert_messages(
            self.db, ticket_id=result.ticket_id, thread_id=thread_id, messages=thread.messages
        )
        self.db.commit()
        self.report.created += 1
        self.report.messages_written += written
        logger.info(
            "Created ticket %s (queue=%s, messages=%d)", result.ticket_id, queue.value, written,
            extra=build_log_context(thread_id=thread_id, ticket_id=result.ticket_id),
        )


def fetch_new_emails(
    db: Session,
    *,
    client_factory: ClientFactory | None = None,
    configured_start: str | None = None,
    now: datetime | None = None,
    max_threads: int | None = None,
) -> RunReport:
    """Run one ingestion pass over every readable account and report on it."""
    now = now or _now_utc()
    accounts = oauth_service.list_readable_accounts(db)
    if not accounts:
        logger.warning("Ingestion skipped: %s", NO_READABLE_ACCOUNTS)
        return RunReportBuilder().build(ok=False, reason=NO_READABLE_ACCOUNTS)

    window = resolve_start_time(
        configured_start if configured_start is not None else settings.SYNC_START_TIME_ISO,
        now=now,
    )
    if window.reason != "configured":
        logger.warning("Sync start time %r unusable (%s)", window.configured, window.reason)

    run = IngestionRun(
        db,
        window=window,
        snapshot=config_service.load_keyword_snapshot(db),
        known_threads=KnownThreads.load(db),
        blocklist=load_blocklist(db),
        client_factory=client_factory or oauth_service.open_gmail_client,
        max_threads=max_threads or settings.MAX_THREADS_PER_ACCOUNT,
    )
    run.report.accounts_scanned = len(accounts)
    run.report.set_window(
        query=build_gmail_query(window.used),
        configured=window.configured,
        used=window.used.isoformat(),
        reason=window.reason,
    )

    for account in accounts:
        run.process_account(account)

    report = run.report.build()
    logger.info(
        "Ingestion pass done: accounts=%d listed=%d fetched=%d created=%d list_errors=%d fetch_errors=%d",
        report.accounts_scanned,
        report.threads_listed,
        report.threads_fetched,
        report.created,
        len(report.list_errors),
        report.thread_fetch_errors,
    )
    return report
