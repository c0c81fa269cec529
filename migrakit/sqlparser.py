"""Split annotated SQL migration files into individual statements."""

from __future__ import annotations

import enum
import json
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Union

logger = logging.getLogger(__name__)

_GRAY = "\033[90m"
_RESET = "\033[00m"

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class SQLParseError(ValueError):
    """Raised when a SQL migration cannot be parsed."""


class AnnotationError(SQLParseError):
    """Raised when a '-- +goose' annotation line is malformed or unknown."""


class Direction(str, enum.Enum):
    """Which half of a migration to extract."""

    UP = "up"
    DOWN = "down"

    def __str__(self) -> str:
        return self.value

    def to_bool(self) -> bool:
        return self is Direction.UP


def direction_from_bool(value: bool) -> Direction:
    """Return UP for a true value and DOWN otherwise."""
    return Direction.UP if value else Direction.DOWN


class Annotation(str, enum.Enum):
    """Annotations recognised after '-- +goose'."""

    UP = "Up"
    DOWN = "Down"
    STATEMENT_BEGIN = "StatementBegin"
    STATEMENT_END = "StatementEnd"
    NO_TRANSACTION = "NO TRANSACTION"
    ENVSUB_ON = "ENVSUB ON"
    ENVSUB_OFF = "ENVSUB OFF"

    def __str__(self) -> str:
        return self.value


@dataclass
class ParsedSQL:
    """Statements of both directions of one migration file."""

    use_tx: bool = True
    up: list[str] = field(default_factory=list)
    down: list[str] = field(default_factory=list)


class _State(enum.IntEnum):
    START = 0
    UP = 1
    STATEMENT_BEGIN_UP = 2
    STATEMENT_END_UP = 3
    DOWN = 4
    STATEMENT_BEGIN_DOWN = 5
    STATEMENT_END_DOWN = 6


_UP_STATES = (_State.UP, _State.STATEMENT_BEGIN_UP, _State.STATEMENT_END_UP)
_DOWN_STATES = (_State.DOWN, _State.STATEMENT_BEGIN_DOWN, _State.STATEMENT_END_DOWN)


class _StateMachine:
    def __init__(self, verbose: bool) -> None:
        self.state = _State.START
        self.verbose = verbose

    def set(self, new: _State) -> None:
        self.trace(f"set {int(self.state)} => {int(new)}")
        self.state = new

    def trace(self, msg: str) -> None:
        if self.verbose:
            logger.debug("%sStateMachine: %s%s", _GRAY, msg, _RESET)


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def extract_annotation(line: str) -> Annotation:
    """Return the annotation on a '-- +goose <annotation>' line."""
    if line.startswith((" ", "\t")):
        raise AnnotationError(
            f"{_quote(line)} contains leading whitespace: invalid annotation"
        )
    cmd = line.replace("--", "")
    cmd = cmd.replace("+goose", "", 1)
    if "+goose" in cmd:
        raise AnnotationError(
            f"{_quote(cmd)} contains multiple '+goose' annotations: invalid annotation"
        )
    cmd = cmd.strip()
    if not cmd:
        raise AnnotationError("empty annotation")
    folded = cmd.casefold()
    for annotation in Annotation:
        if annotation.value.casefold() == folded:
            return annotation
    raise AnnotationError(f"{_quote(cmd)} not supported: invalid annotation")


def ends_with_semicolon(line: str) -> bool:
    """Tell whether the last word before any '--' comment ends in a semicolon."""
    prev = ""
    for word in line.split():
        if word.startswith("--"):
            break
        prev = word
    return prev.endswith(";")


def _find_closing_brace(text: str, start: int) -> int:
    depth = 1
    i = start
    while i < len(text):
        if text.startswith("${", i):
            depth += 1
            i += 2
            continue
        if text[i] == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _expand_braced(body: str, env: Mapping[str, str]) -> str:
    match = _IDENTIFIER.match(body)
    if match is None:
        raise ValueError(f"invalid variable expansion ${{{body}}}")
    name = match.group()
    rest = body[match.end():]
    value = env.get(name)
    if rest == "":
        return value or ""
    if rest.startswith(":-"):
        return value if value else interpolate_env(rest[2:], env)
    if rest.startswith("-"):
        return value if value is not None else interpolate_env(rest[1:], env)
    if rest.startswith(":?"):
        if not value:
            raise ValueError(f"${name}: {rest[2:] or 'not set'}")
        return value
    if rest.startswith("?"):
        if value is None:
            raise ValueError(f"${name}: {rest[1:] or 'not set'}")
        return value
    if rest.startswith(":"):
        parts = rest[1:].split(":")
        if len(parts) > 2:
            raise ValueError(f"invalid substring expansion ${{{body}}}")
        try:
            offset = int(parts[0].strip())
            length = int(parts[1].strip()) if len(parts) == 2 else None
        except ValueError:
            raise ValueError(f"invalid substring expansion ${{{body}}}") from None
        text = value or ""
        if offset < 0:
            offset = max(len(text) + offset, 0)
        if length is None:
            return text[offset:]
        if length < 0:
            return text[offset:len(text) + length]
        return text[offset:offset + length]
    raise ValueError(f"unsupported variable expansion ${{{body}}}")


def interpolate_env(line: str, env: Mapping[str, str] | None = None) -> str:
    """Expand $VAR and ${VAR...} references in line using env.

    Supports ${VAR}, $VAR, ${VAR-default}, ${VAR:-default}, ${VAR?msg},
    ${VAR:?msg}, ${VAR:offset[:length]}, and the escapes $$ and \\$.
    Raises ValueError for a required variable that is missing.
    """
    if env is None:
        env = os.environ
    out: list[str] = []
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == "\\" and line.startswith("$", i + 1):
            out.append("$")
            i += 2
            continue
        if ch != "$":
            out.append(ch)
            i += 1
            continue
        nxt = line[i + 1] if i + 1 < n else ""
        if nxt == "$":
            out.append("$")
            i += 2
            continue
        if nxt == "{":
            end = _find_closing_brace(line, i + 2)
            if end == -1:
                raise ValueError(f"unterminated variable expansion at position {i}")
            out.append(_expand_braced(line[i + 2:end], env))
            i = end + 1
            continue
        match = _IDENTIFIER.match(line, i + 1)
        if match is not None:
            out.append(env.get(match.group(), ""))
            i = match.end()
            continue
        out.append("$")
        i += 1
    return "".join(out)


def _missing_semicolon_error(state: _State, direction: Direction, rest: str) -> SQLParseError:
    return SQLParseError(
        f"failed to parse migration: state {int(state)}, direction: {direction}: "
        f"unexpected unfinished SQL query: {_quote(rest)}: missing semicolon?"
    )


def _read_lines(stream: Union[str, IO]) -> list[str]:
    text = stream if isinstance(stream, str) else stream.read()
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    if not text:
        return []
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def parse_sql_migration(
    stream: Union[str, IO],
    direction: Direction,
    debug: bool = False,
) -> tuple[list[str], bool]:
    """Split a SQL migration into the statements of one direction.

    Returns the statements and whether the migration runs in a transaction.
    Statements end at a line whose last word ends with a semicolon, unless
    they are wrapped in StatementBegin/StatementEnd annotations.
    """
    direction = Direction(direction)
    machine = _StateMachine(debug)
    use_tx = True
    use_envsub = False
    statements: list[str] = []
    buf: list[str] = []

    def flush() -> None:
        statements.append("".join(buf).strip())
        buf.clear()

    for line in _read_lines(stream):
        if debug:
            logger.debug("%s", line)
        stripped = line.strip()
        if machine.state is _State.START and stripped == "":
            continue

        if stripped.startswith("--") and "+goose" in line:
            try:
                cmd = extract_annotation(line)
            except AnnotationError as exc:
                raise AnnotationError(
                    f"failed to parse annotation line {_quote(line)}: {exc}"
                ) from exc

            if cmd is Annotation.UP:
                if machine.state is not _State.START:
                    raise SQLParseError(
                        "duplicate '-- +goose Up' annotations; "
                        f"stateMachine={int(machine.state)}"
                    )
                machine.set(_State.UP)
                continue
            if cmd is Annotation.DOWN:
                if machine.state not in (_State.UP, _State.STATEMENT_END_UP):
                    raise SQLParseError(
                        "must start with '-- +goose Up' annotation, "
                        f"stateMachine={int(machine.state)}"
                    )
                remaining = "".join(buf).strip()
                if remaining:
                    raise _missing_semicolon_error(machine.state, direction, remaining)
                machine.set(_State.DOWN)
                continue
            if cmd is Annotation.STATEMENT_BEGIN:
                if machine.state in (_State.UP, _State.STATEMENT_END_UP):
                    machine.set(_State.STATEMENT_BEGIN_UP)
                elif machine.state in (_State.DOWN, _State.STATEMENT_END_DOWN):
                    machine.set(_State.STATEMENT_BEGIN_DOWN)
                else:
                    raise SQLParseError(
                        "'-- +goose StatementBegin' must be defined after "
                        "'-- +goose Up' or '-- +goose Down' annotation, "
                        f"stateMachine={int(machine.state)}"
                    )
                continue
            if cmd is Annotation.STATEMENT_END:
                if machine.state is _State.STATEMENT_BEGIN_UP:
                    machine.set(_State.STATEMENT_END_UP)
                elif machine.state is _State.STATEMENT_BEGIN_DOWN:
                    machine.set(_State.STATEMENT_END_DOWN)
                else:
                    raise SQLParseError(
                        "'-- +goose StatementEnd' must be defined after "
                        "'-- +goose StatementBegin'"
                    )
            elif cmd is Annotation.NO_TRANSACTION:
                use_tx = False
                continue
            elif cmd is Annotation.ENVSUB_ON:
                use_envsub = True
                continue
            elif cmd is Annotation.ENVSUB_OFF:
                use_envsub = False
                continue

        # Leading comments and empty lines before a statement are ignored;
        # once a statement has started, its comments are kept.
        if not buf and (stripped.startswith("--") or line == ""):
            machine.trace("ignore comment")
            continue

        if machine.state not in (_State.STATEMENT_END_UP, _State.STATEMENT_END_DOWN):
            if use_envsub:
                try:
                    line = interpolate_env(line)
                except ValueError as exc:
                    raise SQLParseError(
                        f"variable substitution failed: {exc}:\n{line}"
                    ) from exc
            buf.append(line + "\n")

        if machine.state in _UP_STATES:
            if direction is Direction.DOWN:
                buf.clear()
                machine.trace("ignore down")
                continue
        elif machine.state in _DOWN_STATES:
            if direction is Direction.UP:
                buf.clear()
                machine.trace("ignore up")
                continue
        else:
            raise SQLParseError(
                f"failed to parse migration: unexpected state {int(machine.state)} "
                f"on line {_quote(line)}"
            )

        if machine.state in (_State.UP, _State.DOWN):
            if ends_with_semicolon(line):
                flush()
                machine.trace("store simple query")
        elif machine.state is _State.STATEMENT_END_UP:
            flush()
            machine.trace("store Up statement")
            machine.set(_State.UP)
        elif machine.state is _State.STATEMENT_END_DOWN:
            flush()
            machine.trace("store Down statement")
            machine.set(_State.DOWN)

    if machine.state is _State.START:
        raise SQLParseError(
            "failed to parse migration: must start with '-- +goose Up' annotation"
        )
    if machine.state in (_State.STATEMENT_BEGIN_UP, _State.STATEMENT_BEGIN_DOWN):
        raise SQLParseError(
            "failed to parse migration: missing '-- +goose StatementEnd' annotation"
        )
    remaining = "".join(buf).strip()
    if remaining:
        raise _missing_semicolon_error(machine.state, direction, remaining)
    return statements, use_tx


def parse_all_from_fs(
    root: Union[str, os.PathLike],
    filename: str,
    debug: bool = False,
) -> ParsedSQL:
    """Parse both directions of the migration file filename under root."""
    text = (Path(root) / filename).read_text(encoding="utf-8")
    try:
        up, use_tx = parse_sql_migration(text, Direction.UP, debug)
        down, _ = parse_sql_migration(text, Direction.DOWN, debug)
    except SQLParseError as exc:
        raise SQLParseError(f"failed to parse {filename}: {exc}") from exc
    return ParsedSQL(use_tx=use_tx, up=up, down=down)