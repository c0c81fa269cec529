"""Version-table storage over a DB-API connection for a chosen dialect."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from migrakit import dialects

__all__ = [
    "Dialect",
    "GetMigrationResult",
    "ListMigrationsResult",
    "Store",
    "new_store",
]


class Dialect(str, enum.Enum):
    """Database dialects with a known version-table layout."""

    CLICKHOUSE = "clickhouse"
    MSSQL = "mssql"
    MYSQL = "mysql"
    POSTGRES = "postgres"
    REDSHIFT = "redshift"
    SQLITE3 = "sqlite3"
    TIDB = "tidb"
    VERTICA = "vertica"
    YDB = "ydb"
    TURSO = "turso"
    STARROCKS = "starrocks"

    def __str__(self) -> str:
        return self.value


_QUERIERS: dict[Dialect, type[dialects.Querier]] = {
    Dialect.POSTGRES: dialects.Postgres,
    Dialect.MYSQL: dialects.Mysql,
    Dialect.SQLITE3: dialects.Sqlite3,
    Dialect.MSSQL: dialects.Sqlserver,
    Dialect.REDSHIFT: dialects.Redshift,
    Dialect.TIDB: dialects.Tidb,
    Dialect.CLICKHOUSE: dialects.Clickhouse,
    Dialect.VERTICA: dialects.Vertica,
    Dialect.YDB: dialects.Ydb,
    Dialect.TURSO: dialects.Turso,
    Dialect.STARROCKS: dialects.Starrocks,
}


@dataclass(frozen=True)
class GetMigrationResult:
    """The latest record of one version."""

    is_applied: bool
    timestamp: datetime


@dataclass(frozen=True)
class ListMigrationsResult:
    """One row of the version table."""

    version_id: int
    is_applied: bool


def _to_datetime(value: Any) -> Any:
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


class Store:
    """Runs a dialect's version-table queries on a DB-API connection.

    The connection may be in a transaction or not; committing is left to the
    caller. Database errors are passed through unchanged.
    """

    def __init__(self, querier: dialects.Querier) -> None:
        self.querier = querier

    @staticmethod
    def _execute(conn: Any, query: str, params: tuple = ()) -> None:
        cursor = conn.cursor()
        try:
            cursor.execute(query, params)
        finally:
            cursor.close()

    def create_version_table(self, conn: Any, table_name: str) -> None:
        """Create the version table."""
        self._execute(conn, self.querier.create_table(table_name))

    def insert_version(self, conn: Any, table_name: str, version: int) -> None:
        """Record version as applied."""
        self._execute(conn, self.querier.insert_version(table_name), (version, True))

    def delete_version(self, conn: Any, table_name: str, version: int) -> None:
        """Remove every record of version."""
        self._execute(conn, self.querier.delete_version(table_name), (version,))

    def get_migration(self, conn: Any, table_name: str, version: int) -> GetMigrationResult:
        """Return the latest record of version; LookupError if there is none."""
        cursor = conn.cursor()
        try:
            cursor.execute(self.querier.get_migration_by_version(table_name), (version,))
            row = cursor.fetchone()
        finally:
            cursor.close()
        if row is None:
            raise LookupError(f"no migration found for version {version}")
        timestamp, is_applied = row
        return GetMigrationResult(is_applied=bool(is_applied), timestamp=_to_datetime(timestamp))

    def list_migrations(self, conn: Any, table_name: str) -> list[ListMigrationsResult]:
        """Return all records, newest first; an empty list if there are none."""
        cursor = conn.cursor()
        try:
            cursor.execute(self.querier.list_migrations(table_name))
            rows = cursor.fetchall()
        finally:
            cursor.close()
        return [
            ListMigrationsResult(version_id=int(row[0]), is_applied=bool(row[1]))
            for row in rows
        ]


def new_store(dialect: Union[Dialect, str]) -> Store:
    """Return a Store for dialect; ValueError for an unknown dialect."""
    try:
        querier_type = _QUERIERS[Dialect(dialect)]
    except ValueError:
        raise ValueError(f"unknown querier dialect: {dialect}") from None
    return Store(querier_type())