"""
Two-tier concurrency guard for sync runs.

- Soft lock: a run is declined when the newest successful audit row for the
  same scope is younger than the debounce window. Shared by every instance
  through the database, advisory only.
- In-process lock: an explicit key -> acquisition time table guarded by one
  mutex. A lock older than its TTL is reclaimed on the next acquisition with a
  warning; there is no background sweeper.

Reconciliation stays idempotent without either layer; the guard only avoids
duplicate work.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from datetime import timedelta
from typing import Callable, Iterator, Optional

import structlog
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from sync_stays.config import SYNC_DEBOUNCE_SECONDS, SYNC_LOCK_TTL_SECONDS
from sync_stays.db.readers.sync_runs import last_successful_run_at
from sync_stays.exceptions import LockDenied
from sync_stays.metrics import runs_declined, stale_locks_recovered
from sync_stays.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


class SyncLockTable:
    """
    In-process exclusive locks keyed by feed or connection.

    Example:
        >>> locks = SyncLockTable(ttl_seconds=120)
        >>> with locks.hold("feed:abc"):
        ...     reconcile()
    """

    def __init__(
        self,
        ttl_seconds: float = SYNC_LOCK_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._mutex = threading.Lock()
        self._acquired_at: dict[str, float] = {}

    def acquire(self, key: str) -> bool:
        """
        Try to take the lock for key.

        A held lock older than the TTL is treated as abandoned by a crashed run
        and reclaimed.

        Args:
            key: Lock key, e.g. "feed:<id>"

        Returns:
            bool: True if the caller now holds the lock
        """
        with self._mutex:
            now = self._clock()
            held_since = self._acquired_at.get(key)
            if held_since is not None:
                age = now - held_since
                if age <= self.ttl_seconds:
                    return False
                logger.warning(
                    "stale_lock_recovered",
                    key=key,
                    age_seconds=round(age, 1),
                    ttl_seconds=self.ttl_seconds,
                )
                stale_locks_recovered.inc()
            self._acquired_at[key] = now
            return True

    def release(self, key: str) -> None:
        """Release the lock for key (no-op if not held)."""
        with self._mutex:
            self._acquired_at.pop(key, None)

    def age(self, key: str) -> Optional[float]:
        """Seconds the lock for key has been held, or None."""
        with self._mutex:
            held_since = self._acquired_at.get(key)
            return None if held_since is None else self._clock() - held_since

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """
        Hold the lock for the duration of a with-block.

        Raises:
            LockDenied: If another run holds a fresh lock for key
        """
        if not self.acquire(key):
            runs_declined.labels(reason="locked").inc()
            raise LockDenied(key, age_seconds=self.age(key))
        try:
            yield
        finally:
            self.release(key)


# Shared by every trigger in this process
sync_locks = SyncLockTable()


def should_run(
    conn: Connection,
    run_type: str,
    scope_id: str,
    window_seconds: float = SYNC_DEBOUNCE_SECONDS,
) -> bool:
    """
    Soft lock: decline if a successful run for the scope finished recently.

    A failure to read the audit log allows the run so a broken read cannot
    wedge the scheduler.

    Args:
        conn: Active database connection
        run_type: calendar or email
        scope_id: Property or connection ID
        window_seconds: Debounce window

    Returns:
        bool: True if the run should proceed
    """
    try:
        last_success = last_successful_run_at(conn, run_type, scope_id)
    except SQLAlchemyError as e:
        logger.warning("soft_lock_read_failed", run_type=run_type, scope_id=scope_id, error=str(e))
        return True

    if last_success is None:
        return True

    if utc_now() - last_success < timedelta(seconds=window_seconds):
        logger.info(
            "run_declined_recent_success",
            run_type=run_type,
            scope_id=scope_id,
            last_success=last_success.isoformat(),
        )
        runs_declined.labels(reason="recent_run").inc()
        return False
    return True
