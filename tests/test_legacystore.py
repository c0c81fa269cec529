import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from migrakit import dialects
from migrakit.legacystore import (
    Dialect,
    GetMigrationResult,
    ListMigrationsResult,
    new_store,
)

TABLE = "goose_db_version"


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    s = new_store(Dialect.SQLITE3)
    s.create_version_table(conn, TABLE)
    return s


def test_unknown_dialect_raises():
    with pytest.raises(ValueError, match="unknown querier dialect: nosuchdb"):
        new_store("nosuchdb")


@pytest.mark.parametrize(
    "dialect, query_of",
    [
        (Dialect.POSTGRES, dialects.Postgres()),
        (Dialect.MSSQL, dialects.Sqlserver()),
        (Dialect.YDB, dialects.Ydb()),
        (Dialect.CLICKHOUSE, dialects.Clickhouse()),
    ],
)
def test_store_uses_dialect_queries(dialect, query_of):
    s = new_store(dialect)
    assert s.querier.create_table(TABLE) == query_of.create_table(TABLE)
    assert s.querier.list_migrations(TABLE) == query_of.list_migrations(TABLE)


def test_dialect_from_string_matches_enum():
    assert new_store(Dialect.TURSO.value).querier.insert_version(TABLE) == (
        dialects.Turso().insert_version(TABLE)
    )


def test_empty_table_lists_nothing(conn, store):
    assert store.list_migrations(conn, TABLE) == []


def test_insert_and_list_newest_first(conn, store):
    for version in (0, 1, 2):
        store.insert_version(conn, TABLE, version)
    got = store.list_migrations(conn, TABLE)
    assert got == [
        ListMigrationsResult(version_id=2, is_applied=True),
        ListMigrationsResult(version_id=1, is_applied=True),
        ListMigrationsResult(version_id=0, is_applied=True),
    ]


def test_delete_version(conn, store):
    store.insert_version(conn, TABLE, 1)
    store.insert_version(conn, TABLE, 2)
    store.delete_version(conn, TABLE, 1)
    assert [r.version_id for r in store.list_migrations(conn, TABLE)] == [2]


def test_get_migration(conn, store):
    store.insert_version(conn, TABLE, 7)
    result = store.get_migration(conn, TABLE, 7)
    assert isinstance(result, GetMigrationResult)
    assert result.is_applied is True
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    assert abs(result.timestamp - now) < timedelta(minutes=5)


def test_get_missing_migration_raises(conn, store):
    with pytest.raises(LookupError):
        store.get_migration(conn, TABLE, 42)


def test_missing_table_error_passes_through(conn):
    s = new_store(Dialect.SQLITE3)
    with pytest.raises(sqlite3.OperationalError):
        s.list_migrations(conn, "absent_table")