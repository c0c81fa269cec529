"""Session locking interface and its configuration options."""

from __future__ import annotations

import abc
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

__all__ = [
    "DEFAULT_LOCK_ID",
    "LockError",
    "Probe",
    "SessionLocker",
    "SessionLockerConfig",
    "SessionLockerOption",
    "with_lock_id",
    "with_lock_timeout",
    "with_unlock_timeout",
]

# crc64 (ECMA) checksum of the string "goose", unique to this tool's locks.
DEFAULT_LOCK_ID = 5887940537704921958


class LockError(Exception):
    """Raised for invalid lock options and failed lock operations."""


class SessionLocker(abc.ABC):
    """Locks the database for the lifetime of one connection.

    Both methods must be called with the same connection.
    """

    @abc.abstractmethod
    def session_lock(self, conn: Any) -> None:
        """Acquire the lock on conn."""

    @abc.abstractmethod
    def session_unlock(self, conn: Any) -> None:
        """Release the lock held on conn."""


@dataclass(frozen=True)
class Probe:
    """How often and how many times to retry a lock or unlock operation."""

    interval: timedelta
    failure_threshold: int

    @property
    def total(self) -> timedelta:
        """The longest time the retries may take."""
        return self.interval * self.failure_threshold


@dataclass
class SessionLockerConfig:
    """Settings of a session locker."""

    lock_id: int = DEFAULT_LOCK_ID
    lock_probe: Probe = field(
        default_factory=lambda: Probe(timedelta(seconds=5), 60)
    )
    unlock_probe: Probe = field(
        default_factory=lambda: Probe(timedelta(seconds=2), 30)
    )


SessionLockerOption = Callable[[SessionLockerConfig], None]


def with_lock_id(lock_id: int) -> SessionLockerOption:
    """Use lock_id instead of DEFAULT_LOCK_ID."""

    def apply(config: SessionLockerConfig) -> None:
        config.lock_id = lock_id

    return apply


def _probe(period: int, failure_threshold: int) -> Probe:
    if period < 1:
        raise LockError("period must be greater than 0, minimum is 1")
    if failure_threshold < 1:
        raise LockError("failure threshold must be greater than 0, minimum is 1")
    return Probe(timedelta(seconds=period), failure_threshold)


def with_lock_timeout(period: int, failure_threshold: int) -> SessionLockerOption:
    """Retry acquiring the lock every period seconds, up to failure_threshold times."""

    def apply(config: SessionLockerConfig) -> None:
        config.lock_probe = _probe(period, failure_threshold)

    return apply


def with_unlock_timeout(period: int, failure_threshold: int) -> SessionLockerOption:
    """Retry releasing the lock every period seconds, up to failure_threshold times."""

    def apply(config: SessionLockerConfig) -> None:
        config.unlock_probe = _probe(period, failure_threshold)

    return apply