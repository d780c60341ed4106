"""Structured logging helpers (PII-safe)."""

import hashlib
from typing import Any


def mask_email(email: str | None) -> str:
    """Hash email for logs (prefix + SHA256 suffix for debugging)."""
    if not email:
        return ""
    prefix = email.split("@")[0][:3] if "@" in email else email[:3]
    suffix = hashlib.sha256(email.lower().encode()).hexdigest()[:12]
    return f"{prefix}...@[hash:{suffix}]"


def build_log_context(
    *,
    account: str | None = None,
    thread_id: str | None = None,
    ticket_id: str | None = None,
    source: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict."""
    context: dict[str, Any] = {}
    if account:
        context["account"] = mask_email(account)
    if thread_id:
        context["thread_id"] = thread_id
    if ticket_id:
        context["ticket_id"] = ticket_id
    if source:
        context["source"] = source
    return context
