"""Utility modules."""

from ticketdesk.utils.normalization import (
    extract_email_domain,
    extract_emails,
    normalize_email,
    normalize_message_id,
    normalize_subject,
)

__all__ = [
    "extract_email_domain",
    "extract_emails",
    "normalize_email",
    "normalize_message_id",
    "normalize_subject",
]
