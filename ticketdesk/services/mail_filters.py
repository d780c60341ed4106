"""Filters that keep internal, blocked and bulk mail out of the ticket queue."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import AbstractSet, Any, Iterable

from ticketdesk.db.enums import SkipReason
from ticketdesk.services.gmail_client import GmailMessage
from ticketdesk.utils.normalization import extract_email_domain, extract_emails

BULK_PRECEDENCE_VALUES = frozenset({"bulk", "list", "junk"})
AUTO_GENERATED = "auto-generated"

_NEWSLETTER_SENDER_RE = re.compile(r"no-?reply|newsletter|news@|hello@")
NEWSLETTER_TERMS = (
    "unsubscribe",
    "avregistrera",
    "manage preferences",
    "view in browser",
    "nyhetsbrev",
    "kampanjer",
    "offers",
    "shop now",
)


@dataclass(frozen=True)
class FilterResult:
    """Outcome of running a conversation's last message through the filters."""

    reason: SkipReason | None
    sender: str | None = None
    sample: dict[str, Any] | None = None

    @property
    def passed(self) -> bool:
        return self.reason is None


def has_bulk_headers(message: GmailMessage) -> bool:
    if message.header("List-Unsubscribe") or message.header("List-Id"):
        return True
    if message.header("Precedence").strip().lower() in BULK_PRECEDENCE_VALUES:
        return True
    return message.header("Auto-Submitted").strip().lower() == AUTO_GENERATED


def is_likely_newsletter(message: GmailMessage, body: str | None = None) -> bool:
    """Bulk headers, or a no-reply style sender combined with marketing wording."""
    if has_bulk_headers(message):
        return True
    from_lc = message.header("From").lower()
    if not _NEWSLETTER_SENDER_RE.search(from_lc):
        return False
    subject_lc = message.header("Subject").lower()
    body_lc = (message.body if body is None else body).lower()
    return any(term in body_lc or term in subject_lc for term in NEWSLETTER_TERMS)


def is_internal_sender(senders: Iterable[str], org_domain: str) -> bool:
    """True when any From address is on the org domain."""
    domain = (org_domain or "").strip().lower()
    return any(extract_email_domain(sender) == domain for sender in senders)


def run_filters(
    thread_id: str,
    message: GmailMessage,
    *,
    known_threads: AbstractSet[str],
    blocklist: AbstractSet[str],
    org_domain: str,
) -> FilterResult:
    """Apply the filters in order; the first one that rejects wins."""
    from_header = message.header("From")
    subject = message.header("Subject")

    if thread_id in known_threads:
        return FilterResult(SkipReason.EXISTING_THREAD, sample={"thread_id": thread_id})

    senders = extract_emails(from_header)
    if not senders:
        return FilterResult(
            SkipReason.MISSING_SENDER,
            sample={"thread_id": thread_id, "from": from_header, "subject": subject},
        )
    sender = senders[0]

    if is_internal_sender(senders, org_domain):
        return FilterResult(
            SkipReason.INTERNAL_SENDER,
            sender=sender,
            sample={"thread_id": thread_id, "from": from_header, "subject": subject},
        )

    if sender in blocklist:
        return FilterResult(
            SkipReason.BLACKLISTED_SENDER,
            sender=sender,
            sample={"thread_id": thread_id, "sender": sender, "subject": subject},
        )

    if is_likely_newsletter(message):
        return FilterResult(
            SkipReason.NEWSLETTER,
            sender=sender,
            sample={"thread_id": thread_id, "from": from_header, "subject": subject},
        )

    return FilterResult(None, sender=sender)
