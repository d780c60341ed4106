"""Normalization helpers for addresses, message ids and subjects."""

import re
from typing import Optional


_EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
_SUBJECT_TAG_RE = re.compile(r"^\[[^\]]+\]\s*")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    return email.strip().lower()


def extract_emails(raw: Optional[str]) -> list[str]:
    """Pull every address out of a header value such as ``"Name" <a@b.se>, c@d.se``."""
    if not raw:
        return []
    return [match.lower() for match in _EMAIL_RE.findall(str(raw))]


def extract_email_domain(email: Optional[str]) -> Optional[str]:
    """
    Extract lowercased email domain.

    Expects a normalized email, but will normalize if needed.
    """
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        return None
    return normalized.split("@", 1)[1]


def normalize_message_id(value: Optional[str]) -> Optional[str]:
    """Strip angle brackets and lowercase an RFC 5322 Message-ID; None when blank."""
    raw = (value or "").strip()
    if not raw:
        return None
    stripped = raw.lstrip("<").rstrip(">").strip().lower()
    return stripped or None


def normalize_subject(subject: Optional[str]) -> str:
    """Drop a leading ``[TAG]`` prefix, collapse whitespace and lowercase."""
    without_tag = _SUBJECT_TAG_RE.sub("", subject or "", count=1)
    return _WHITESPACE_RE.sub(" ", without_tag).lower()
