"""Work out which migration versions still have to be applied."""

from __future__ import annotations

from collections.abc import Iterable

__all__ = [
    "MAX_VERSION",
    "MissingMigrationsError",
    "sort_ascending",
    "up_versions",
]

MAX_VERSION = 2**63 - 1


class MissingMigrationsError(ValueError):
    """Raised when migrations older than the database version were never applied."""

    def __init__(self, missing: Iterable[int], db_max_version: int, target: int) -> None:
        self.missing = sorted(missing)
        self.db_max_version = db_max_version
        self.target = target
        super().__init__(self._message())

    def _message(self) -> str:
        collected = [str(v) for v in self.missing]
        noun = "migrations" if len(collected) > 1 else "migration"
        if len(collected) > 1:
            versions = "versions " + ",".join(collected)
        else:
            versions = "version " + collected[0]
        desired = f"database version ({self.db_max_version})"
        if self.target != MAX_VERSION:
            desired += f", with target version ({self.target})"
        return (
            f"detected {len(self.missing)} missing (out-of-order) {noun} "
            f"lower than {desired}: {versions}"
        )


def sort_ascending(versions: list[int]) -> list[int]:
    """Sort versions in place in ascending order and return the same list."""
    versions.sort()
    return versions


def up_versions(
    fsys_versions: Iterable[int] | None,
    db_versions: Iterable[int] | None,
    target: int = MAX_VERSION,
    allow_missing: bool = False,
) -> list[int]:
    """Return the versions to apply, in ascending order.

    A version is missing when it is not applied but lies below the highest
    applied version. Missing versions up to target raise
    MissingMigrationsError unless allow_missing is set, in which case they are
    applied along with the new ones.
    """
    fsys = sorted(fsys_versions or ())
    applied = set(db_versions or ())
    db_max = max([0, *applied])

    pending = [v for v in fsys if v not in applied and v <= target]
    missing = [v for v in pending if v < db_max]
    if missing and not allow_missing:
        raise MissingMigrationsError(missing, db_max, target)
    new = [v for v in pending if v > db_max]
    return sorted(missing + new)