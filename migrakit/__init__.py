"""Parsing, ordering, version bookkeeping and locking for versioned SQL schema migrations."""

__version__ = "0.1.0"

__all__ = [
    "controller",
    "dialects",
    "legacystore",
    "lock_options",
    "log",
    "migrate",
    "migrationstats",
    "postgres_lock",
    "resolve",
    "sqlparser",
]