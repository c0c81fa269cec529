"""Session locking through PostgreSQL advisory locks."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Optional

from migrakit.lock_options import (
    DEFAULT_LOCK_ID,
    LockError,
    Probe,
    SessionLocker,
    SessionLockerConfig,
    SessionLockerOption,
)

__all__ = ["PostgresSessionLocker", "new_postgres_session_locker"]


class PostgresSessionLocker(SessionLocker):
    """Holds an exclusive session-level advisory lock on one connection.

    Acquiring and releasing are retried at the probe's interval; a probe with
    failure threshold n makes at most n + 1 attempts.
    """

    LOCK_QUERY = "SELECT pg_try_advisory_lock(%s)"
    UNLOCK_QUERY = "SELECT pg_advisory_unlock(%s)"

    def __init__(
        self,
        lock_id: int = DEFAULT_LOCK_ID,
        lock_probe: Optional[Probe] = None,
        unlock_probe: Optional[Probe] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        defaults = SessionLockerConfig()
        self.lock_id = lock_id
        self.lock_probe = lock_probe if lock_probe is not None else defaults.lock_probe
        self.unlock_probe = unlock_probe if unlock_probe is not None else defaults.unlock_probe
        self.sleep = sleep

    def _query_bool(self, conn: Any, query: str, name: str) -> bool:
        cursor = conn.cursor()
        try:
            cursor.execute(query, (self.lock_id,))
            row = cursor.fetchone()
        except Exception as exc:
            raise LockError(f"failed to execute {name}: {exc}") from exc
        finally:
            cursor.close()
        if row is None:
            raise LockError(f"failed to execute {name}: no rows in result set")
        return bool(row[0])

    def _retry(self, probe: Probe, attempt: Callable[[], bool], failure: str) -> None:
        for tried in range(probe.failure_threshold + 1):
            if attempt():
                return
            if tried < probe.failure_threshold:
                self.sleep(probe.interval.total_seconds())
        raise LockError(failure)

    def session_lock(self, conn: Any) -> None:
        """Acquire the advisory lock, retrying while another session holds it."""
        self._retry(
            self.lock_probe,
            lambda: self._query_bool(conn, self.LOCK_QUERY, "pg_try_advisory_lock"),
            "failed to acquire lock",
        )

    def session_unlock(self, conn: Any) -> None:
        """Release the advisory lock held by this session."""
        self._retry(
            self.unlock_probe,
            lambda: self._query_bool(conn, self.UNLOCK_QUERY, "pg_advisory_unlock"),
            "failed to unlock session",
        )


def new_postgres_session_locker(*args: SessionLockerOption) -> PostgresSessionLocker:
    """Build a PostgresSessionLocker from option functions.

    By default the lock is tried every 5 seconds up to 60 times and the
    unlock every 2 seconds up to 30 times.
    """
    config = SessionLockerConfig()
    for option in args:
        option(config)
    return PostgresSessionLocker(
        lock_id=config.lock_id,
        lock_probe=config.lock_probe,
        unlock_probe=config.unlock_probe,
    )