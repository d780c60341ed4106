"""Queue classification for inbound conversations.

Content keywords are checked before the addressed alias: a shared alias such
as support@ is a weaker signal than an explicit "invoice" or "return" in the
text. Both checks walk QUEUE_PRIORITY and the first hit wins.
"""

from __future__ import annotations

import re
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from ticketdesk.core.config import settings
from ticketdesk.db.enums import QUEUE_PRIORITY, QueueLabel

# A letter or digit in any script; underscore and punctuation are boundaries.
_ALNUM = r"[^\W_]"


class KeywordSnapshot:
    """Immutable per-run view of each queue's keyword list."""

    __slots__ = ("_keywords",)

    def __init__(self, keywords: Mapping[QueueLabel, tuple[str, ...]] | None = None):
        self._keywords = MappingProxyType(
            {queue: tuple((keywords or {}).get(queue, ())) for queue in QUEUE_PRIORITY}
        )

    def keywords_for(self, queue: QueueLabel) -> tuple[str, ...]:
        return self._keywords.get(queue, ())

    def __repr__(self) -> str:
        counts = {queue.value: len(words) for queue, words in self._keywords.items()}
        return f"KeywordSnapshot({counts})"


@lru_cache(maxsize=1024)
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!{_ALNUM}){re.escape(keyword)}(?!{_ALNUM})", re.IGNORECASE)


def keyword_matches(content: str, keyword: str | None) -> bool:
    """True when ``keyword`` occurs in ``content`` as a whole token."""
    kw = (keyword or "").strip().lower()
    if not kw:
        return False
    return _keyword_pattern(kw).search(content or "") is not None


def match_keyword_queue(content: str, snapshot: KeywordSnapshot) -> QueueLabel | None:
    for queue in QUEUE_PRIORITY:
        if any(keyword_matches(content, kw) for kw in snapshot.keywords_for(queue)):
            return queue
    return None


def match_alias_queue(recipient: str | None, aliases: Mapping[str, str] | None = None) -> QueueLabel | None:
    r = (recipient or "").lower()
    if not r:
        return None
    aliases = aliases if aliases is not None else settings.queue_aliases
    for queue in QUEUE_PRIORITY:
        alias = aliases.get(queue.value)
        if alias and alias in r:
            return queue
    return None


def classify(
    recipient: str | None,
    subject: str | None,
    body: str | None,
    snapshot: KeywordSnapshot,
    *,
    aliases: Mapping[str, str] | None = None,
) -> QueueLabel | None:
    """Pick the work queue for a conversation, or None when nothing matches."""
    content = f"{subject or ''} {body or ''}".lower()
    return match_keyword_queue(content, snapshot) or match_alias_queue(recipient, aliases)
