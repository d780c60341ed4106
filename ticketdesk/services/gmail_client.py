"""Gmail REST client: thread listing, full thread fetch and outbound send."""

from __future__ import annotations

import base64
import email.policy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.mime.text import MIMEText

import httpx

logger = logging.getLogger(__name__)

_GMAIL_THREADS_LIST_URL = "https://gmail.googleapis.com/gmail/v1/users/me/threads"
_GMAIL_THREAD_GET_URL = "https://gmail.googleapis.com/gmail/v1/users/me/threads/{thread_id}"
_GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"

LIST_PAGE_SIZE = 100


class GmailApiError(RuntimeError):
    """Non-2xx response from the Gmail API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Gmail API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


@dataclass(frozen=True)
class ThreadPage:
    """One page of thread ids from ``threads.list``."""

    thread_ids: list[str]
    next_page_token: str | None


@dataclass(frozen=True)
class GmailMessage:
    """Parsed message from a ``format=full`` thread fetch."""

    id: str | None
    thread_id: str | None
    internal_date: datetime | None
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: str = ""

    def header(self, name: str) -> str:
        """Case-insensitive header lookup; first occurrence wins, '' when absent."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value or ""
        return ""

    @classmethod
    def from_api(cls, payload: dict) -> "GmailMessage":
        message_payload = payload.get("payload") or {}
        headers = [
            (str(h.get("name") or ""), str(h.get("value") or ""))
            for h in (message_payload.get("headers") or [])
        ]
        return cls(
            id=payload.get("id"),
            thread_id=payload.get("threadId"),
            internal_date=parse_internal_date(payload.get("internalDate")),
            headers=headers,
            body=extract_plain_body(message_payload),
        )


@dataclass(frozen=True)
class GmailThread:
    """A conversation and its messages, oldest first."""

    id: str
    messages: list[GmailMessage]

    @property
    def last_message(self) -> GmailMessage | None:
        return self.messages[-1] if self.messages else None

    @property
    def first_message(self) -> GmailMessage | None:
        return self.messages[0] if self.messages else None

    @classmethod
    def from_api(cls, payload: dict) -> "GmailThread":
        return cls(
            id=str(payload.get("id") or ""),
            messages=[GmailMessage.from_api(m) for m in (payload.get("messages") or [])],
        )


def parse_internal_date(value: str | int | None) -> datetime | None:
    """Gmail ``internalDate`` is epoch milliseconds as a string."""
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _decode_body_data(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")


def extract_plain_body(payload: dict | None) -> str:
    """Return the first ``text/plain`` body in a message payload, or ''."""
    if not payload:
        return ""
    body_data = (payload.get("body") or {}).get("data")
    if payload.get("mimeType") == "text/plain" and body_data:
        return _decode_body_data(body_data)
    for part in payload.get("parts") or []:
        if part.get("mimeType") == "text/plain" and (part.get("body") or {}).get("data"):
            return _decode_body_data(part["body"]["data"])
    # multipart/alternative nested inside multipart/mixed
    for part in payload.get("parts") or []:
        if str(part.get("mimeType") or "").startswith("multipart/"):
            nested = extract_plain_body(part)
            if nested:
                return nested
    return ""


def build_raw_message(from_address: str, to: str, subject: str, body: str) -> str:
    """RFC 822 text message, base64url encoded for ``messages.send``.

    Non-ASCII headers are RFC 2047 encoded; a CR or LF in a header value
    raises ``ValueError``.
    """
    msg = MIMEText(body, "plain", "utf-8", policy=email.policy.SMTP)
    msg["From"] = from_address
    msg["To"] = to
    msg["Subject"] = subject
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii")


def _is_thread_rejection(exc: GmailApiError) -> bool:
    return exc.status_code == 404 or "thread" in (exc.message or "").lower()


class GmailClient:
    """Thin wrapper over the Gmail v1 REST API for one authorized account."""

    def __init__(self, access_token: str, *, http: httpx.Client | None = None, timeout: float = 30.0):
        self._access_token = access_token
        self._http = http or httpx.Client(timeout=timeout)
        self._owns_http = http is None

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "GmailClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, url: str, *, params: dict | None = None, json: dict | None = None) -> dict:
        response = self._http.request(
            method,
            url,
            headers={"Authorization": f"Bearer {self._access_token}"},
            params=params,
            json=json,
        )
        if response.status_code >= 400:
            detail = None
            try:
                payload = response.json()
                error = payload.get("error")
                detail = error.get("message") if isinstance(error, dict) else payload.get("error_description")
            except Exception:
                detail = response.text
            raise GmailApiError(response.status_code, detail or "unknown error")
        return response.json()

    def list_threads(
        self,
        query: str,
        *,
        page_token: str | None = None,
        max_results: int = LIST_PAGE_SIZE,
    ) -> ThreadPage:
        payload = self._request(
            "GET",
            _GMAIL_THREADS_LIST_URL,
            params={
                "q": query,
                "maxResults": max_results,
                **({"pageToken": page_token} if page_token else {}),
            },
        )
        threads = payload.get("threads") or []
        thread_ids = [str(item.get("id")) for item in threads if item.get("id")]
        next_page_token = payload.get("nextPageToken")
        return ThreadPage(thread_ids=thread_ids, next_page_token=str(next_page_token) if next_page_token else None)

    def get_thread(self, thread_id: str) -> GmailThread:
        payload = self._request(
            "GET",
            _GMAIL_THREAD_GET_URL.format(thread_id=thread_id),
            params={"format": "full"},
        )
        return GmailThread.from_api(payload)

    def send_message(
        self,
        *,
        from_address: str,
        to: str,
        subject: str,
        body: str,
        thread_id: str | None = None,
    ) -> dict:
        """Send a plain-text message, optionally threaded.

        A rejected thread id (deleted or foreign conversation) falls back to a
        single unthreaded re-send.
        """
        raw = build_raw_message(from_address, to, subject, body)
        request_body: dict = {"raw": raw}
        if thread_id:
            request_body["threadId"] = thread_id
        try:
            return self._request("POST", _GMAIL_SEND_URL, json=request_body)
        except GmailApiError as exc:
            if not thread_id or not _is_thread_rejection(exc):
                raise
            logger.warning("Gmail rejected thread %s (%s); re-sending unthreaded", thread_id, exc.status_code)
            return self._request("POST", _GMAIL_SEND_URL, json={"raw": raw})
