"""Wrapper around a store that adds optional operations."""

from __future__ import annotations

from typing import Any

__all__ = ["UnsupportedOperation", "StoreController"]


class UnsupportedOperation(Exception):
    """Raised when the wrapped store does not offer an operation."""


class StoreController:
    """Wraps a store, forwarding its methods and adding optional ones.

    Optional operations are called on the store when it provides them and
    raise UnsupportedOperation otherwise.
    """

    def __init__(self, store: Any) -> None:
        self.store = store

    def __getattr__(self, name: str) -> Any:
        if name == "store":
            raise AttributeError(name)
        return getattr(self.store, name)

    def table_exists(self, conn: Any) -> bool:
        """Tell whether the version table exists, if the store can say."""
        method = getattr(self.store, "table_exists", None)
        if not callable(method):
            raise UnsupportedOperation("table_exists is not supported by the store")
        return method(conn)