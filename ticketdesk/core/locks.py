"""Cross-process run exclusion for the ingestion job."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import ContextManager, Iterator, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

INGESTION_LOCK_KEY = 48151623


class RunLock(Protocol):
    def hold(self) -> ContextManager[bool]: ...


class PostgresAdvisoryLock:
    """Transaction-scoped advisory lock held on a dedicated connection.

    ``pg_try_advisory_xact_lock`` never blocks and is released when the
    holding transaction ends, so a crashed holder cannot leave it stuck.
    """

    def __init__(self, engine: Engine, key: int = INGESTION_LOCK_KEY):
        self.engine = engine
        self.key = key

    @contextmanager
    def hold(self) -> Iterator[bool]:
        with self.engine.connect() as connection:
            with connection.begin():
                acquired = bool(
                    connection.execute(
                        text("SELECT pg_try_advisory_xact_lock(:lock_id)"),
                        {"lock_id": self.key},
                    ).scalar()
                )
                yield acquired


class InProcessRunLock:
    """Non-blocking process-local lock for databases without advisory locks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @contextmanager
    def hold(self) -> Iterator[bool]:
        acquired = self._lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()


_process_lock = InProcessRunLock()


def get_run_lock(engine: Engine) -> RunLock:
    if engine.dialect.name == "postgresql":
        return PostgresAdvisoryLock(engine)
    logger.debug("Using in-process run lock for dialect %s", engine.dialect.name)
    return _process_lock
