"""Collect, order and link migrations, and read the database version."""

from __future__ import annotations

import fnmatch
import os
import posixpath
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from migrakit.resolve import MAX_VERSION

__all__ = [
    "MAX_VERSION",
    "Migration",
    "Migrations",
    "NoMigrationFilesError",
    "NoCurrentVersionError",
    "NoNextVersionError",
    "numeric_component",
    "version_filter",
    "sort_and_connect_migrations",
    "collect_migrations",
    "ensure_db_version",
    "get_db_version",
]

DEFAULT_TABLE_NAME = "goose_db_version"

_INT64_MIN = -(2**63)
_VERSION_RE = re.compile(r"[+-]?[0-9]+")
_TIMESTAMP_RE = re.compile(r"[0-9]{14}")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class NoMigrationFilesError(LookupError):
    """Raised when no migration files have been found."""

    def __init__(self, message: str = "no migration files found") -> None:
        super().__init__(message)


class NoCurrentVersionError(LookupError):
    """Raised when the current migration version is not found."""

    def __init__(self, message: str = "no current version found") -> None:
        super().__init__(message)


class NoNextVersionError(LookupError):
    """Raised when the next migration version is not found."""

    def __init__(self, message: str = "no next version found") -> None:
        super().__init__(message)


@dataclass
class Migration:
    """One migration, linked to its neighbours by version (-1 when none)."""

    version: int
    source: str = ""
    next: int = -1
    previous: int = -1
    registered: bool = False

    def __str__(self) -> str:
        return self.source


def numeric_component(name: Union[str, os.PathLike]) -> int:
    """Return the version prefix of a migration file name like "00001_init.sql"."""
    base = os.path.basename(os.fspath(name))
    dot = base.rfind(".")
    ext = base[dot:] if dot >= 0 else ""
    if ext not in (".go", ".sql"):
        raise ValueError("migration file does not have .sql or .go file extension")
    prefix, sep, _ = base.partition("_")
    if not sep:
        raise ValueError("no filename separator '_' found")
    if not _VERSION_RE.fullmatch(prefix):
        raise ValueError(f"failed to parse version from migration file: {base}")
    version = int(prefix)
    if not _INT64_MIN <= version <= MAX_VERSION:
        raise ValueError(f"failed to parse version from migration file: {base}: value out of range")
    if version < 1:
        raise ValueError("migration version must be greater than zero")
    return version


def _version_time(version: int) -> Optional[datetime]:
    text = str(version)
    if not _TIMESTAMP_RE.fullmatch(text):
        return None
    try:
        return datetime(
            int(text[0:4]),
            int(text[4:6]),
            int(text[6:8]),
            int(text[8:10]),
            int(text[10:12]),
            int(text[12:14]),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


class Migrations(list):
    """A list of migrations, usually sorted by version."""

    def current(self, version: int) -> Migration:
        """Return the migration with exactly this version."""
        for migration in self:
            if migration.version == version:
                return migration
        raise NoCurrentVersionError()

    def next(self, version: int) -> Migration:
        """Return the first migration with a higher version."""
        for migration in self:
            if migration.version > version:
                return migration
        raise NoNextVersionError()

    def previous(self, version: int) -> Migration:
        """Return the last migration with a lower version."""
        for migration in reversed(self):
            if migration.version < version:
                return migration
        raise NoNextVersionError()

    def last(self) -> Migration:
        """Return the last migration."""
        if not self:
            raise NoNextVersionError()
        return self[-1]

    def versioned(self) -> "Migrations":
        """Return the migrations whose versions are not timestamps after 1970."""
        result = Migrations()
        for migration in self:
            moment = _version_time(migration.version)
            if moment is None or moment < _EPOCH:
                result.append(migration)
        return result

    def timestamped(self) -> "Migrations":
        """Return the migrations whose versions are YYYYMMDDhhmmss timestamps after 1970."""
        result = Migrations()
        for migration in self:
            moment = _version_time(migration.version)
            if moment is not None and moment > _EPOCH:
                result.append(migration)
        return result

    def __str__(self) -> str:
        return "".join(f"{migration}\n" for migration in self)


def version_filter(v: int, current: int, target: int) -> bool:
    """Tell whether v lies between current and target, in either direction."""
    if target > current:
        return current < v <= target
    if target < current:
        return target < v <= current
    return False


def sort_and_connect_migrations(migrations: Iterable[Migration]) -> Migrations:
    """Sort by version and set each migration's next and previous versions."""
    ordered = Migrations(sorted(migrations, key=lambda m: m.version))
    for earlier, later in zip(ordered, ordered[1:]):
        if earlier.version == later.version:
            raise ValueError(
                f"duplicate version {earlier.version} detected:\n"
                f"{earlier.source}\n{later.source}"
            )
    prev = -1
    for migration in ordered:
        migration.previous = prev
        prev = migration.version
    for migration, following in zip(ordered, ordered[1:]):
        migration.next = following.version
    return ordered


def _join(dirpath: str, name: str) -> str:
    return posixpath.normpath(posixpath.join(dirpath, name))


def _glob(root: Path, dirpath: str, pattern: str) -> list[str]:
    directory = root / dirpath
    if not directory.is_dir():
        return []
    names = sorted(
        entry.name for entry in directory.iterdir() if fnmatch.fnmatchcase(entry.name, pattern)
    )
    return [_join(dirpath, name) for name in names]


def _collect_go_migrations(
    root: Path,
    dirpath: str,
    registered: Mapping[int, Migration],
    current: int,
    target: int,
) -> list[Migration]:
    for migration in registered.values():
        try:
            numeric_component(migration.source)
        except ValueError as exc:
            raise ValueError(
                f"could not parse go migration file {migration.source}: {exc}"
            ) from exc
    go_files = _glob(root, dirpath, "*.go")
    if not go_files and not registered:
        return []

    sources: list[tuple[str, int]] = []
    for fullpath in go_files:
        try:
            version = numeric_component(fullpath)
        except ValueError:
            continue
        if fullpath.endswith("_test.go"):
            continue
        if version_filter(version, current, target):
            sources.append((fullpath, version))

    if sources:
        return [
            registered.get(version)
            or Migration(version=version, source=fullpath, registered=False)
            for fullpath, version in sources
        ]

    # Registered migrations without files on disk are taken as they are.
    return [
        migration
        for migration in registered.values()
        if version_filter(numeric_component(migration.source), current, target)
    ]


def collect_migrations(
    root: Union[str, os.PathLike],
    dirpath: str,
    current: int = 0,
    target: int = MAX_VERSION,
    registered: Optional[Mapping[int, Migration]] = None,
) -> Migrations:
    """Collect the SQL files and Go migrations under root/dirpath within the version range.

    Go files present on disk but not in registered are included as
    unregistered migrations.
    """
    base = Path(root)
    if not (base / dirpath).exists():
        raise FileNotFoundError(f"{dirpath} directory does not exist")
    registered = registered or {}
    migrations: list[Migration] = []
    for file in _glob(base, dirpath, "*.sql"):
        try:
            version = numeric_component(file)
        except ValueError as exc:
            raise ValueError(f"could not parse SQL migration file {file!r}: {exc}") from exc
        if version_filter(version, current, target):
            migrations.append(Migration(version=version, source=file))
    migrations.extend(_collect_go_migrations(base, dirpath, registered, current, target))
    if not migrations:
        raise NoMigrationFilesError()
    return sort_and_connect_migrations(migrations)


def _create_version_table(conn: Any, store: Any, table_name: str) -> None:
    try:
        store.create_version_table(conn, table_name)
        store.insert_version(conn, table_name, 0)
    except Exception:
        conn.rollback()
        raise
    conn.commit()


def ensure_db_version(conn: Any, store: Any, table_name: str = DEFAULT_TABLE_NAME) -> int:
    """Return the current database version, creating the version table if needed.

    The latest record of each version decides whether it is applied; the
    first applied version found, newest first, is the current one.
    """
    try:
        records = store.list_migrations(conn, table_name)
    except Exception as list_error:
        try:
            _create_version_table(conn, store, table_name)
        except Exception as create_error:
            raise create_error from list_error
        return 0
    skipped: set[int] = set()
    for record in records:
        if record.version_id in skipped:
            continue
        if record.is_applied:
            return record.version_id
        skipped.add(record.version_id)
    raise NoNextVersionError()


def get_db_version(conn: Any, store: Any, table_name: str = DEFAULT_TABLE_NAME) -> int:
    """Return the current database version; same as ensure_db_version."""
    return ensure_db_version(conn, store, table_name)