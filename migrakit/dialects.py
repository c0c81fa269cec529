"""SQL text for the version table of each supported database dialect."""

from __future__ import annotations

from typing import ClassVar

__all__ = [
    "Querier",
    "Postgres",
    "Mysql",
    "Sqlite3",
    "Sqlserver",
    "Redshift",
    "Tidb",
    "Clickhouse",
    "Vertica",
    "Ydb",
    "Turso",
    "Starrocks",
    "parse_table_identifier",
]


def parse_table_identifier(name: str) -> tuple[str, str]:
    """Split "schema.table" into (schema, table); no dot gives ("", name)."""
    schema, sep, table = name.partition(".")
    if not sep:
        return "", name
    return schema, table


class Querier:
    """Builds the queries that manage the version table.

    Subclasses supply one template per query; each template holds a single
    ``%s`` where the table name goes.
    """

    CREATE_TABLE: ClassVar[str]
    INSERT_VERSION: ClassVar[str]
    DELETE_VERSION: ClassVar[str]
    GET_MIGRATION_BY_VERSION: ClassVar[str]
    LIST_MIGRATIONS: ClassVar[str]
    GET_LATEST_VERSION: ClassVar[str]

    def create_table(self, table_name: str) -> str:
        """Query that creates the version table."""
        return self.CREATE_TABLE % table_name

    def insert_version(self, table_name: str) -> str:
        """Query that inserts a version row; takes version and is_applied."""
        return self.INSERT_VERSION % table_name

    def delete_version(self, table_name: str) -> str:
        """Query that deletes the rows of one version."""
        return self.DELETE_VERSION % table_name

    def get_migration_by_version(self, table_name: str) -> str:
        """Query for the latest timestamp and is_applied of one version."""
        return self.GET_MIGRATION_BY_VERSION % table_name

    def list_migrations(self, table_name: str) -> str:
        """Query listing version_id and is_applied, newest first."""
        return self.LIST_MIGRATIONS % table_name

    def get_latest_version(self, table_name: str) -> str:
        """Query for the highest version_id."""
        return self.GET_LATEST_VERSION % table_name


class Postgres(Querier):
    """PostgreSQL."""

    CREATE_TABLE = (
        "CREATE TABLE %s (\n"
        "\t\tid integer PRIMARY KEY GENERATED BY DEFAULT AS IDENTITY,\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp timestamp NOT NULL DEFAULT now()\n"
        "\t)"
    )
    INSERT_VERSION = "INSERT INTO %s (version_id, is_applied) VALUES ($1, $2)"
    DELETE_VERSION = "DELETE FROM %s WHERE version_id=$1"
    GET_MIGRATION_BY_VERSION = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=$1 ORDER BY tstamp DESC LIMIT 1"
    )
    LIST_MIGRATIONS = "SELECT version_id, is_applied from %s ORDER BY id DESC"
    GET_LATEST_VERSION = "SELECT max(version_id) FROM %s"

    def table_exists(self, table_name: str) -> str:
        """Query telling whether the table exists, honouring a schema prefix."""
        schema, table = parse_table_identifier(table_name)
        if schema:
            return (
                "SELECT EXISTS ( SELECT 1 FROM pg_tables WHERE schemaname = '%s' "
                "AND tablename = '%s' )" % (schema, table)
            )
        return (
            "SELECT EXISTS ( SELECT 1 FROM pg_tables WHERE (current_schema() IS NULL "
            "OR schemaname = current_schema()) AND tablename = '%s' )" % table
        )


class Mysql(Querier):
    """MySQL and MariaDB."""

    CREATE_TABLE = (
        "CREATE TABLE %s (\n"
        "\t\tid bigint(20) unsigned NOT NULL AUTO_INCREMENT,\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp timestamp NULL default now(),\n"
        "\t\tPRIMARY KEY(id)\n"
        "\t)"
    )
    INSERT_VERSION = "INSERT INTO %s (version_id, is_applied) VALUES (?, ?)"
    DELETE_VERSION = "DELETE FROM %s WHERE version_id=?"
    GET_MIGRATION_BY_VERSION = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    LIST_MIGRATIONS = "SELECT version_id, is_applied from %s ORDER BY id DESC"
    GET_LATEST_VERSION = "SELECT MAX(version_id) FROM %s"

    def table_exists(self, table_name: str) -> str:
        """Query telling whether the table exists, honouring a schema prefix."""
        schema, table = parse_table_identifier(table_name)
        if schema:
            return (
                "SELECT EXISTS ( SELECT 1 FROM information_schema.tables WHERE "
                "table_schema = '%s' AND table_name = '%s' )" % (schema, table)
            )
        return (
            "SELECT EXISTS ( SELECT 1 FROM information_schema.tables WHERE "
            "(database() IS NULL OR table_schema = database()) AND table_name = '%s' )"
            % table
        )


class Sqlite3(Querier):
    """SQLite 3."""

    CREATE_TABLE = (
        "CREATE TABLE %s (\n"
        "\t\tid INTEGER PRIMARY KEY AUTOINCREMENT,\n"
        "\t\tversion_id INTEGER NOT NULL,\n"
        "\t\tis_applied INTEGER NOT NULL,\n"
        "\t\ttstamp TIMESTAMP DEFAULT (datetime('now'))\n"
        "\t)"
    )
    INSERT_VERSION = "INSERT INTO %s (version_id, is_applied) VALUES (?, ?)"
    DELETE_VERSION = "DELETE FROM %s WHERE version_id=?"
    GET_MIGRATION_BY_VERSION = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    LIST_MIGRATIONS = "SELECT version_id, is_applied from %s ORDER BY id DESC"
    GET_LATEST_VERSION = "SELECT MAX(version_id) FROM %s"


class Turso(Sqlite3):
    """Turso (libSQL); identical to SQLite."""


class Sqlserver(Querier):
    """Microsoft SQL Server."""

    CREATE_TABLE = (
        "CREATE TABLE %s (\n"
        "\t\tid INT NOT NULL IDENTITY(1,1) PRIMARY KEY,\n"
        "\t\tversion_id BIGINT NOT NULL,\n"
        "\t\tis_applied BIT NOT NULL,\n"
        "\t\ttstamp DATETIME NULL DEFAULT CURRENT_TIMESTAMP\n"
        "\t)"
    )
    INSERT_VERSION = "INSERT INTO %s (version_id, is_applied) VALUES (@p1, @p2)"
    DELETE_VERSION = "DELETE FROM %s WHERE version_id=@p1"
    GET_MIGRATION_BY_VERSION = (
        "SELECT TOP 1 tstamp, is_applied FROM %s WHERE version_id=@p1 ORDER BY tstamp DESC"
    )
    LIST_MIGRATIONS = "SELECT version_id, is_applied FROM %s ORDER BY id DESC"
    GET_LATEST_VERSION = "SELECT MAX(version_id) FROM %s"


class Redshift(Querier):
    """Amazon Redshift."""

    CREATE_TABLE = (
        "CREATE TABLE %s (\n"
        "\t\tid integer NOT NULL identity(1, 1),\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp timestamp NULL default sysdate,\n"
        "\t\tPRIMARY KEY(id)\n"
        "\t)"
    )
    INSERT_VERSION = "INSERT INTO %s (version_id, is_applied) VALUES ($1, $2)"
    DELETE_VERSION = "DELETE FROM %s WHERE version_id=$1"
    GET_MIGRATION_BY_VERSION = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=$1 ORDER BY tstamp DESC LIMIT 1"
    )
    LIST_MIGRATIONS = "SELECT version_id, is_applied from %s ORDER BY id DESC"
    GET_LATEST_VERSION = "SELECT max(version_id) FROM %s"


class Tidb(Querier):
    """TiDB."""

    CREATE_TABLE = (
        "CREATE TABLE %s (\n"
        "\t\tid BIGINT UNSIGNED NOT NULL AUTO_INCREMENT UNIQUE,\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp timestamp NULL default now(),\n"
        "\t\tPRIMARY KEY(id)\n"
        "\t)"
    )
    INSERT_VERSION = "INSERT INTO %s (version_id, is_applied) VALUES (?, ?)"
    DELETE_VERSION = "DELETE FROM %s WHERE version_id=?"
    GET_MIGRATION_BY_VERSION = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    LIST_MIGRATIONS = "SELECT version_id, is_applied from %s ORDER BY id DESC"
    GET_LATEST_VERSION = "SELECT MAX(version_id) FROM %s"


class Clickhouse(Querier):
    """ClickHouse."""

    CREATE_TABLE = (
        "CREATE TABLE IF NOT EXISTS %s (\n"
        "\t\tversion_id Int64,\n"
        "\t\tis_applied UInt8,\n"
        "\t\tdate Date default now(),\n"
        "\t\ttstamp DateTime default now()\n"
        "\t  )\n"
        "\t  ENGINE = MergeTree()\n"
        "\t\tORDER BY (date)"
    )
    INSERT_VERSION = "INSERT INTO %s (version_id, is_applied) VALUES ($1, $2)"
    DELETE_VERSION = (
        "ALTER TABLE %s DELETE WHERE version_id = $1 SETTINGS mutations_sync = 2"
    )
    GET_MIGRATION_BY_VERSION = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id = $1 ORDER BY tstamp DESC LIMIT 1"
    )
    LIST_MIGRATIONS = "SELECT version_id, is_applied FROM %s ORDER BY version_id DESC"
    GET_LATEST_VERSION = "SELECT max(version_id) FROM %s"


class Vertica(Querier):
    """Vertica."""

    CREATE_TABLE = (
        "CREATE TABLE %s (\n"
        "\t\tid identity(1,1) NOT NULL,\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp timestamp NULL default now(),\n"
        "\t\tPRIMARY KEY(id)\n"
        "\t)"
    )
    INSERT_VERSION = "INSERT INTO %s (version_id, is_applied) VALUES (?, ?)"
    DELETE_VERSION = "DELETE FROM %s WHERE version_id=?"
    GET_MIGRATION_BY_VERSION = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    LIST_MIGRATIONS = "SELECT version_id, is_applied from %s ORDER BY id DESC"
    GET_LATEST_VERSION = "SELECT MAX(version_id) FROM %s"


class Ydb(Querier):
    """YDB."""

    CREATE_TABLE = (
        "CREATE TABLE %s (\n"
        "\t\tversion_id Uint64,\n"
        "\t\tis_applied Bool,\n"
        "\t\ttstamp Timestamp,\n"
        "\n"
        "\t\tPRIMARY KEY(version_id)\n"
        "\t)"
    )
    INSERT_VERSION = (
        "INSERT INTO %s (\n"
        "\t\tversion_id, \n"
        "\t\tis_applied, \n"
        "\t\ttstamp\n"
        "\t) VALUES (\n"
        "\t\tCAST($1 AS Uint64), \n"
        "\t\t$2, \n"
        "\t\tCurrentUtcTimestamp()\n"
        "\t)"
    )
    DELETE_VERSION = "DELETE FROM %s WHERE version_id = $1"
    GET_MIGRATION_BY_VERSION = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id = $1 ORDER BY tstamp DESC LIMIT 1"
    )
    LIST_MIGRATIONS = (
        "\n"
        "\tSELECT version_id, is_applied, tstamp AS __discard_column_tstamp \n"
        "\tFROM %s ORDER BY __discard_column_tstamp DESC"
    )
    GET_LATEST_VERSION = "SELECT MAX(version_id) FROM %s"


class Starrocks(Querier):
    """StarRocks."""

    CREATE_TABLE = (
        "CREATE TABLE IF NOT EXISTS %s (\n"
        "\t\tid bigint NOT NULL AUTO_INCREMENT,\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp datetime NULL default CURRENT_TIMESTAMP\n"
        "\t)\n"
        "\tPRIMARY KEY (id)\n"
        "\tDISTRIBUTED BY HASH (id)\n"
        "\tORDER BY (id,version_id)"
    )
    INSERT_VERSION = "INSERT INTO %s (version_id, is_applied) VALUES (?, ?)"
    DELETE_VERSION = "DELETE FROM %s WHERE version_id=?"
    GET_MIGRATION_BY_VERSION = (
        "SELECT tstamp, is_applied FROM %s WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    LIST_MIGRATIONS = "SELECT version_id, is_applied from %s ORDER BY id DESC"
    GET_LATEST_VERSION = "SELECT MAX(version_id) FROM %s"