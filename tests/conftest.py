"""
Test configuration and fixtures.

Provides:
- SQLite in-memory database, schema created and dropped per test
- Fake Gmail mailboxes (no network)
- Session cookie minting for admin/agent endpoints
- HTTPX AsyncClient bound to the ASGI app
"""
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ENV", "test")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from ticketdesk.core.config import settings
from ticketdesk.core.deps import COOKIE_NAME, get_db
from ticketdesk.core.security import create_session_token
from ticketdesk.db.base import Base
from ticketdesk.db.models import ConfigEntry, UserOAuthToken
from ticketdesk.db.session import SessionLocal, engine
from ticketdesk.main import app
from ticketdesk.services.gmail_client import GmailApiError, GmailMessage, GmailThread, ThreadPage
from ticketdesk.services.oauth_service import GMAIL_READ_SCOPE


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; app code may commit freely."""
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def session_factory(db):
    return SessionLocal


def add_account(
    db: Session,
    email: str = "agent@vendora.se",
    *,
    scope: str = GMAIL_READ_SCOPE,
    refresh_token: str | None = "refresh-token",
    created_at: datetime | None = None,
) -> UserOAuthToken:
    token = UserOAuthToken(
        email=email,
        refresh_token=refresh_token,
        scope=scope,
        created_at=created_at or datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    db.add(token)
    db.commit()
    return token


def set_config(db: Session, key: str, value: str) -> ConfigEntry:
    """Upsert a config row (flushed, not committed)."""
    entry = db.get(ConfigEntry, key) or ConfigEntry(key=key)
    entry.value = value
    db.add(entry)
    db.flush()
    return entry


@pytest.fixture
def account(db) -> UserOAuthToken:
    return add_account(db)


# =============================================================================
# Fake Gmail
# =============================================================================

BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_message(
    gmail_id: str,
    thread_id: str,
    *,
    sender: str = "Kund <kund@example.com>",
    to: str = "support@vendora.se",
    subject: str = "Question about my order",
    body: str = "Hi, I have a question about order 1234 that arrived yesterday.",
    message_id: str | None = None,
    date: datetime | None = None,
    extra_headers: tuple[tuple[str, str], ...] = (),
) -> GmailMessage:
    headers = [("From", sender), ("To", to), ("Subject", subject)]
    if message_id is not None:
        headers.append(("Message-ID", message_id))
    headers.extend(extra_headers)
    return GmailMessage(
        id=gmail_id,
        thread_id=thread_id,
        internal_date=date or BASE_TIME,
        headers=headers,
        body=body,
    )


def make_thread(thread_id: str, *messages: GmailMessage, **message_kwargs) -> GmailThread:
    """A thread of the given messages, or a single default message when none are given."""
    if not messages:
        messages = (
            make_message(
                f"{thread_id}-m1",
                thread_id,
                message_id=message_kwargs.pop("message_id", f"<{thread_id}@example.com>"),
                **message_kwargs,
            ),
        )
    return GmailThread(id=thread_id, messages=list(messages))


@dataclass
class FakeMailbox:
    """In-memory stand-in for one account's Gmail API."""

    pages: list[list[str]] = field(default_factory=list)
    threads: dict[str, GmailThread] = field(default_factory=dict)
    list_error: Exception | None = None
    fetch_errors: set[str] = field(default_factory=set)
    queries: list[str] = field(default_factory=list)
    fetched: list[str] = field(default_factory=list)
    closed: bool = False

    @classmethod
    def with_threads(cls, *threads: GmailThread, page_size: int = 100) -> "FakeMailbox":
        ids = [t.id for t in threads]
        pages = [ids[i:i + page_size] for i in range(0, len(ids), page_size)] or [[]]
        return cls(pages=pages, threads={t.id: t for t in threads})

    def list_threads(self, query: str, *, page_token: str | None = None) -> ThreadPage:
        self.queries.append(query)
        if self.list_error is not None:
            raise self.list_error
        index = int(page_token or 0)
        next_token = str(index + 1) if index + 1 < len(self.pages) else None
        return ThreadPage(thread_ids=list(self.pages[index]), next_page_token=next_token)

    def get_thread(self, thread_id: str) -> GmailThread:
        self.fetched.append(thread_id)
        if thread_id in self.fetch_errors:
            raise GmailApiError(500, "backend error")
        return self.threads[thread_id]

    def close(self) -> None:
        self.closed = True


class FakeClientFactory:
    """Maps account email -> FakeMailbox; unknown accounts get an empty mailbox."""

    def __init__(self, mailboxes: dict[str, FakeMailbox] | None = None):
        self.mailboxes = mailboxes or {}

    def __call__(self, token: UserOAuthToken) -> FakeMailbox:
        return self.mailboxes.setdefault(token.email, FakeMailbox())


# =============================================================================
# Auth / Client Fixtures
# =============================================================================

ADMIN_EMAIL = "admin@vendora.se"
AGENT_EMAIL = "agent@vendora.se"


@pytest.fixture
def admin_settings(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_EMAILS", ADMIN_EMAIL)
    monkeypatch.setattr(settings, "JOB_TOKEN", "job-secret")
    return settings


async def _client(db: Session, cookies: dict | None = None) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies=cookies or {},
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(db: Session, admin_settings) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client."""
    async for c in _client(db):
        yield c


@pytest.fixture(scope="function")
async def admin_client(db: Session, admin_settings) -> AsyncGenerator[AsyncClient, None]:
    async for c in _client(db, {COOKIE_NAME: create_session_token(ADMIN_EMAIL)}):
        yield c


@pytest.fixture(scope="function")
async def agent_client(db: Session, admin_settings) -> AsyncGenerator[AsyncClient, None]:
    async for c in _client(db, {COOKIE_NAME: create_session_token(AGENT_EMAIL)}):
        yield c


def minutes_after(base: datetime, minutes: int) -> datetime:
    return base + timedelta(minutes=minutes)
