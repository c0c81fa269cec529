"""Statistics about migration files: versions, transaction mode, statement counts."""

from __future__ import annotations

import os
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import IO, Optional, Union

from migrakit.migrate import numeric_component
from migrakit.sqlparser import Direction, parse_sql_migration

__all__ = [
    "GoMigration",
    "SQLMigration",
    "Stats",
    "FileWalker",
    "parse_go_file",
    "parse_sql_file",
    "gather_stats",
]

_REGISTER = "AddMigration"
_REGISTER_NO_TX = "AddMigrationNoTx"
_REGISTER_CONTEXT = "AddMigrationContext"
_REGISTER_NO_TX_CONTEXT = "AddMigrationNoTxContext"
_REGISTER_NAMES = (_REGISTER, _REGISTER_NO_TX, _REGISTER_CONTEXT, _REGISTER_NO_TX_CONTEXT)
_TX_NAMES = (_REGISTER, _REGISTER_CONTEXT)

_IDENT = r"[^\W\d]\w*"
_IDENT_RE = re.compile(_IDENT)
_INIT_RE = re.compile(r"func\s+init\s*\(\s*\)\s*\{")
_CALL_RE = re.compile(rf"(?:{_IDENT}\s*\.\s*)+({_IDENT})\s*\(")
_OPEN = "([{"
_CLOSE = ")]}"


@dataclass
class GoMigration:
    """What the init function of a Go migration registers."""

    name: str = ""
    use_tx: Optional[bool] = None
    up_func_name: str = ""
    down_func_name: str = ""


@dataclass
class SQLMigration:
    """Transaction mode and statement counts of a SQL migration."""

    use_tx: bool
    up_count: int
    down_count: int


@dataclass
class Stats:
    """Statistics of one migration file."""

    file_name: str
    version: int
    tx: bool
    up_count: int
    down_count: int


def _read(source: Union[str, bytes, IO]) -> str:
    text = source if isinstance(source, (str, bytes)) else source.read()
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    return text


def _string_end(code: str, start: int) -> int:
    quote = code[start]
    i = start + 1
    while i < len(code):
        ch = code[i]
        if quote != "`" and ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if quote != "`" and ch == "\n":
            break
        i += 1
    raise ValueError("string literal not terminated")


def _strip_comments(code: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(code):
        if code.startswith("//", i):
            end = code.find("\n", i)
            if end == -1:
                break
            i = end
            continue
        if code.startswith("/*", i):
            end = code.find("*/", i + 2)
            if end == -1:
                raise ValueError("comment not terminated")
            out.append("\n" if "\n" in code[i:end] else " ")
            i = end + 2
            continue
        if code[i] in "\"'`":
            end = _string_end(code, i)
            out.append(code[i:end])
            i = end
            continue
        out.append(code[i])
        i += 1
    return "".join(out)


def _chars(code: str, start: int = 0) -> Iterator[tuple[int, str]]:
    """Yield the positions and characters that lie outside string literals."""
    i = start
    while i < len(code):
        if code[i] in "\"'`":
            i = _string_end(code, i)
            continue
        yield i, code[i]
        i += 1


def _matching(code: str, open_index: int) -> int:
    depth = 0
    for i, ch in _chars(code, open_index):
        if ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth -= 1
            if depth == 0:
                return i
    raise ValueError("unbalanced brackets")


def _split_top(text: str, separators: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    last = 0
    for i, ch in _chars(text):
        if ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth -= 1
        elif depth == 0 and ch in separators:
            parts.append(text[last:i])
            last = i + 1
    parts.append(text[last:])
    return [part.strip() for part in parts if part.strip()]


def _find_init_body(code: str) -> Optional[str]:
    depth = 0
    for i, ch in _chars(code):
        if depth == 0 and ch == "f":
            match = _INIT_RE.match(code, i)
            preceded = i > 0 and (code[i - 1].isalnum() or code[i - 1] == "_")
            if match is not None and not preceded:
                open_index = match.end() - 1
                return code[open_index + 1:_matching(code, open_index)]
        if ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth -= 1
    return None


def _identifier(arg: str) -> str:
    if not _IDENT_RE.fullmatch(arg):
        raise ValueError(f"failed to assert argument identifier: got {arg!r}")
    return arg


def parse_go_file(source: Union[str, bytes, IO]) -> GoMigration:
    """Find what the init function of a Go migration file registers."""
    body = _find_init_body(_strip_comments(_read(source)))
    if body is None:
        raise ValueError("no init function")
    statements = _split_top(body, ";\n")
    if not statements:
        raise ValueError("no registered goose functions")
    migration = GoMigration()
    for statement in statements:
        match = _CALL_RE.match(statement)
        if match is None:
            continue
        close = _matching(statement, match.end() - 1)
        if statement[close + 1:].strip():
            continue
        func_name = match.group(1)
        if func_name not in _REGISTER_NAMES:
            continue
        migration.use_tx = func_name in _TX_NAMES
        if migration.name:
            raise ValueError(
                "found duplicate registered functions:\n"
                f"previous: {migration.name}\ncurrent: {func_name}"
            )
        migration.name = func_name
        args = _split_top(statement[match.end():close], ",")
        if len(args) != 2:
            raise ValueError(f"registered goose functions have 2 arguments: got {len(args)}")
        migration.up_func_name = _identifier(args[0])
        migration.down_func_name = _identifier(args[1])
    if migration.name not in _REGISTER_NAMES:
        raise ValueError(
            "goose register function must be one of: " + ", ".join(_REGISTER_NAMES)
        )
    if migration.use_tx is None:
        raise ValueError("validation error: failed to identify transaction")
    return migration


def parse_sql_file(stream: Union[str, bytes, IO], debug: bool = False) -> SQLMigration:
    """Count the statements of both directions of a SQL migration."""
    text = _read(stream)
    up, tx_up = parse_sql_migration(text, Direction.UP, debug)
    down, tx_down = parse_sql_migration(text, Direction.DOWN, debug)
    if tx_up != tx_down:
        raise ValueError("up and down statements must have the same transaction mode")
    return SQLMigration(use_tx=tx_up, up_count=len(up), down_count=len(down))


class FileWalker:
    """Opens each named .sql or .go file in turn; other files are skipped."""

    def __init__(self, *filenames: Union[str, os.PathLike]) -> None:
        self.filenames = [os.fspath(name) for name in filenames]

    def walk(self) -> Iterator[tuple[str, IO[str]]]:
        """Yield each file name with its open stream, closed once the next is requested."""
        for filename in self.filenames:
            if os.path.splitext(filename)[1] not in (".sql", ".go"):
                continue
            with open(filename, encoding="utf-8") as stream:
                yield filename, stream


def _nil_as_number(name: str) -> int:
    return 0 if name == "nil" else 1


def gather_stats(walker: FileWalker, debug: bool = False) -> list[Stats]:
    """Return the statistics of every file the walker yields."""
    stats: list[Stats] = []
    for filename, stream in walker.walk():
        try:
            version = numeric_component(filename)
        except ValueError as exc:
            raise ValueError(f"failed to get version from file {filename!r}: {exc}") from exc
        up = down = 0
        tx = False
        ext = os.path.splitext(filename)[1]
        try:
            if ext == ".sql":
                sql = parse_sql_file(stream, debug)
                up, down, tx = sql.up_count, sql.down_count, sql.use_tx
            elif ext == ".go":
                go = parse_go_file(stream)
                up = _nil_as_number(go.up_func_name)
                down = _nil_as_number(go.down_func_name)
                tx = bool(go.use_tx)
        except ValueError as exc:
            raise ValueError(f"failed to parse file {filename!r}: {exc}") from exc
        stats.append(
            Stats(file_name=filename, version=version, tx=tx, up_count=up, down_count=down)
        )
    return stats