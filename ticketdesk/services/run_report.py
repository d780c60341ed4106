"""Ingestion run report: built incrementally during a run, frozen at the end."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from ticketdesk.db.enums import SkipReason

MAX_SAMPLES = 5


@dataclass(frozen=True)
class AccountListError:
    email: str
    error: str


@dataclass(frozen=True)
class RunReport:
    """Immutable outcome of one pipeline pass."""

    ok: bool
    reason: str | None = None
    created: int = 0
    messages_written: int = 0
    query: str | None = None
    start_time_configured: str | None = None
    start_time_used: str | None = None
    start_time_reason: str | None = None
    accounts_scanned: int = 0
    threads_listed: int = 0
    threads_fetched: int = 0
    thread_fetch_errors: int = 0
    list_errors: tuple[AccountListError, ...] = ()
    skip_counts: Mapping[SkipReason, int] = field(default_factory=lambda: MappingProxyType({}))
    skip_samples: Mapping[SkipReason, tuple[Mapping[str, Any], ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def had_errors(self) -> bool:
        return bool(self.list_errors) or self.thread_fetch_errors > 0

    def skipped(self, reason: SkipReason) -> int:
        return self.skip_counts.get(reason, 0)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form used by the audit log and HTTP responses."""
        return {
            "ok": self.ok,
            "reason": self.reason,
            "created": self.created,
            "query": self.query,
            "start_time_configured": self.start_time_configured,
            "start_time_used": self.start_time_used,
            "start_time_reason": self.start_time_reason,
            "stats": {
                "accounts_scanned": self.accounts_scanned,
                "threads_listed": self.threads_listed,
                "threads_fetched": self.threads_fetched,
                "inserted": self.created,
                "messages_written": self.messages_written,
                "thread_fetch_errors": self.thread_fetch_errors,
                "user_list_errors": len(self.list_errors),
                "user_list_error_details": [
                    {"email": e.email, "error": e.error} for e in self.list_errors
                ],
                **{reason.value: self.skipped(reason) for reason in SkipReason},
                "samples": {
                    reason.value: [dict(s) for s in self.skip_samples.get(reason, ())]
                    for reason in SkipReason
                },
            },
        }


class RunReportBuilder:
    """Mutable accumulator owned by a single run; call ``build()`` once."""

    def __init__(self) -> None:
        self.created = 0
        self.messages_written = 0
        self.accounts_scanned = 0
        self.threads_listed = 0
        self.threads_fetched = 0
        self.thread_fetch_errors = 0
        self._list_errors: list[AccountListError] = []
        self._skip_counts: dict[SkipReason, int] = {reason: 0 for reason in SkipReason}
        self._skip_samples: dict[SkipReason, list[dict[str, Any]]] = {reason: [] for reason in SkipReason}
        self._window: dict[str, str | None] = {}

    def set_window(self, *, query: str, configured: str | None, used: str, reason: str) -> None:
        self._window = {
            "query": query,
            "start_time_configured": configured,
            "start_time_used": used,
            "start_time_reason": reason,
        }

    def skip(self, reason: SkipReason, sample: Mapping[str, Any] | None = None) -> None:
        self._skip_counts[reason] += 1
        if sample is not None and len(self._skip_samples[reason]) < MAX_SAMPLES:
            self._skip_samples[reason].append(dict(sample))

    def list_error(self, email: str, error: str) -> None:
        self._list_errors.append(AccountListError(email=email, error=error))

    def build(self, *, ok: bool = True, reason: str | None = None) -> RunReport:
        return RunReport(
            ok=ok,
            reason=reason,
            created=self.created,
            messages_written=self.messages_written,
            query=self._window.get("query"),
            start_time_configured=self._window.get("start_time_configured"),
            start_time_used=self._window.get("start_time_used"),
            start_time_reason=self._window.get("start_time_reason"),
            accounts_scanned=self.accounts_scanned,
            threads_listed=self.threads_listed,
            threads_fetched=self.threads_fetched,
            thread_fetch_errors=self.thread_fetch_errors,
            list_errors=tuple(self._list_errors),
            skip_counts=MappingProxyType(dict(self._skip_counts)),
            skip_samples=MappingProxyType(
                {
                    reason: tuple(MappingProxyType(dict(s)) for s in samples)
                    for reason, samples in self._skip_samples.items()
                }
            ),
        )
