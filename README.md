# migrakit

migrakit provides the building blocks for versioned SQL schema migrations
in Python. It has no third-party dependencies and works with any DB-API
connection.

## Installing

```
pip install .
```

Install with the `test` extra (`pip install .[test]`) to run the test suite
with `pytest`.

## Modules

- `migrakit.sqlparser` splits annotated SQL migration files into statements
  for the up or down direction (`parse_sql_migration`, `parse_all_from_fs`).
- `migrakit.dialects` holds the version-table queries for PostgreSQL
  (`Postgres`), MySQL (`Mysql`), SQLite (`Sqlite3`), SQL Server
  (`Sqlserver`), Redshift, TiDB, ClickHouse, Vertica, YDB, Turso and
  StarRocks.
- `migrakit.resolve` works out which versions still have to be applied
  (`up_versions`) and raises `MissingMigrationsError` for migrations that
  were skipped.
- `migrakit.legacystore` runs a dialect's queries on a connection
  (`new_store`, `Store`, `Dialect`); `migrakit.controller.StoreController`
  wraps a store and adds `table_exists` where the store offers it.
- `migrakit.migrate` collects migration files from a directory, sorts and
  links them (`collect_migrations`, `Migrations`, `Migration`), and reads the
  current database version (`ensure_db_version`, `get_db_version`).
- `migrakit.lock_options` and `migrakit.postgres_lock` provide PostgreSQL
  advisory session locks, retried at a fixed interval.
- `migrakit.migrationstats` reports version, transaction mode and statement
  counts for `.sql` and `.go` migration files (`gather_stats`, `FileWalker`).
- `migrakit.log` holds the package logger (`get_logger`, `set_logger`,
  `StdLogger`, `NopLogger`).

## Migration file format

SQL migrations are named with a numeric version prefix, such as
`00001_create_post.sql`, and marked up with annotations:

```sql
-- +goose Up
CREATE TABLE post (id int);

-- +goose StatementBegin
CREATE FUNCTION touch() RETURNS trigger AS $$
BEGIN
    NEW.updated_at = now();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
-- +goose StatementEnd

-- +goose Down
DROP FUNCTION touch();
DROP TABLE post;
```

A statement ends at a line whose last word (before any `--` comment) ends
with a semicolon; `StatementBegin` / `StatementEnd` keep a block together.
`-- +goose NO TRANSACTION` marks the migration to run outside a transaction,
and `-- +goose ENVSUB ON` / `-- +goose ENVSUB OFF` switch expansion of
`$VAR` and `${VAR}` references from the environment on and off.

## Parsing a migration

```python
import io
from migrakit.sqlparser import Direction, parse_sql_migration

source = """-- +goose Up
CREATE TABLE post (id int);
-- +goose Down
DROP TABLE post;
"""
statements, use_tx = parse_sql_migration(io.StringIO(source), Direction.UP, False)
# statements == ["CREATE TABLE post (id int);"], use_tx is True
```

Malformed files raise `SQLParseError`; bad annotation lines raise
`AnnotationError`.

## Resolving pending versions

```python
from migrakit.resolve import up_versions

up_versions([1, 2, 3, 4], [1, 2], 2**63 - 1, False)   # [3, 4]
```

`MissingMigrationsError` is raised when the database already holds a higher
version than a migration that has not been applied, unless `allow_missing`
is true, in which case the missing versions are returned along with the new
ones.

## Collecting migrations and reading the database version

```python
import sqlite3
from migrakit.legacystore import new_store
from migrakit.migrate import collect_migrations, ensure_db_version

migrations = collect_migrations(".", "migrations")   # sorted Migrations
conn = sqlite3.connect(":memory:")
store = new_store("sqlite3")
ensure_db_version(conn, store)   # 0; creates goose_db_version if missing
```

## Locking

```python
from migrakit.lock_options import with_lock_id, with_lock_timeout
from migrakit.postgres_lock import new_postgres_session_locker

locker = new_postgres_session_locker(with_lock_id(42), with_lock_timeout(1, 4))
locker.session_lock(conn)     # conn: a PostgreSQL DB-API connection
locker.session_unlock(conn)
```

Failure to acquire or release the lock in time raises `LockError`.

## Version table queries

```python
from migrakit.dialects import Postgres

Postgres().insert_version("goose_db_version")
# 'INSERT INTO goose_db_version (version_id, is_applied) VALUES ($1, $2)'
```

## What migrakit does not do

migrakit has no command-line tool and no migration runner: it does not
apply or roll back migrations against a database by itself. It provides the
parsing, ordering, version bookkeeping and locking on which such a runner
is built.