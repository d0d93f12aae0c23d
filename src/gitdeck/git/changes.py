"""Change records parsed from git's name-status and ls-files output.

Two line formats reach the parser:
    - tracked:   ``<status>\\t<path>[\\t<new path>]`` from ``git diff --name-status``
    - untracked: a bare path from ``git ls-files --others``
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import FrozenInstanceError, dataclass, field
from enum import Enum
from operator import attrgetter
from pathlib import PurePosixPath

from gitdeck.core.result import Err, Ok, Result, StatusParseError


class ChangeState(str, Enum):
    ADDED = "A"
    MODIFIED = "M"
    DELETED = "D"
    RENAMED = "R"
    CONFLICTED = "U"

    @property
    def letter(self) -> str:
        return self.value


_STATUS_LETTERS: dict[str, ChangeState] = {state.value: state for state in ChangeState}

_C_ESCAPES: dict[str, int] = {
    "a": 0x07,
    "b": 0x08,
    "t": 0x09,
    "n": 0x0A,
    "v": 0x0B,
    "f": 0x0C,
    "r": 0x0D,
    '"': 0x22,
    "\\": 0x5C,
}
_OCTAL = frozenset("01234567")

_MUTABLE_FIELDS = frozenset({"is_staged", "is_selected"})


@dataclass(slots=True)
class Change:
    """One file-level difference in the index or the working tree.

    ``original_path`` and ``similarity`` are set for renames and only for
    renames. ``is_selected`` is UI state and takes no part in equality.
    Only ``is_staged`` and ``is_selected`` can be reassigned.
    """

    state: ChangeState
    path: str
    original_path: str | None = None
    similarity: int | None = None
    is_staged: bool = False
    is_selected: bool = field(default=False, compare=False)

    def __setattr__(self, name: str, value: object) -> None:
        # Identity fields are write-once.
        if name not in _MUTABLE_FIELDS and hasattr(self, name):
            raise FrozenInstanceError(f"cannot assign to field {name!r}")
        object.__setattr__(self, name, value)

    def __post_init__(self) -> None:
        renamed = self.state is ChangeState.RENAMED
        if renamed != (self.original_path is not None) or renamed != (self.similarity is not None):
            raise ValueError(
                f"original_path/similarity must be set exactly for renames (got {self.state.name})"
            )

    @property
    def display_name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def paths(self) -> tuple[str, ...]:
        """Every index entry this change touches, original path first."""
        if self.original_path is not None:
            return (self.original_path, self.path)
        return (self.path,)


def unquote_path(raw: str) -> str:
    """Undo git's C-style quoting of unusual paths (``core.quotePath``).

    Strings that are not wrapped in double quotes, or that contain an escape
    git would never produce, are returned untouched.
    """
    if len(raw) < 2 or raw[0] != '"' or raw[-1] != '"':
        return raw

    body = raw[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.extend(ch.encode("utf-8"))
            i += 1
            continue
        nxt = body[i + 1 : i + 2]
        if nxt and nxt in _C_ESCAPES:
            out.append(_C_ESCAPES[nxt])
            i += 2
            continue
        octal = body[i + 1 : i + 4]
        if len(octal) == 3 and set(octal) <= _OCTAL:
            out.append(int(octal, 8) & 0xFF)
            i += 4
            continue
        return raw
    return out.decode("utf-8", errors="replace")


def should_skip_line(line: str, drop_space_paths: bool = False) -> bool:
    """Return True for lines that never reach the parser.

    Blank lines are always skipped. With ``drop_space_paths`` any line
    containing a space is skipped as well (legacy filter).
    """
    if not line.strip():
        return True
    return drop_space_paths and " " in line


def _malformed(message: str, line: str) -> Err[StatusParseError]:
    return Err(StatusParseError(message, line=line))


def parse_change(raw_line: str, *, tracked: bool, staged: bool) -> Result[Change, StatusParseError]:
    """Turn one status line into a Change.

    Args:
        raw_line: Line from name-status (tracked) or ls-files (untracked) output
        tracked: False for bare untracked paths
        staged: Whether the line came from the index diff

    Returns:
        Ok(Change), or Err(StatusParseError) for unrecognized or malformed lines
    """
    line = raw_line.rstrip("\r\n")

    if not tracked:
        if not line:
            return _malformed("Empty untracked path", raw_line)
        return Ok(Change(state=ChangeState.ADDED, path=unquote_path(line), is_staged=False))

    fields = line.split("\t")
    code = fields[0]
    if not code:
        return _malformed("Missing status code", raw_line)

    state = _STATUS_LETTERS.get(code[0])
    if state is None:
        return _malformed(f"Unrecognized status {code!r}", raw_line)

    if len(fields) < 2 or not fields[1]:
        return _malformed("Missing path", raw_line)

    if state is ChangeState.RENAMED:
        if len(fields) < 3 or not fields[2]:
            return _malformed("Rename without a destination path", raw_line)
        score = code[1:]
        if not (score.isascii() and score.isdigit()):
            return _malformed(f"Invalid rename similarity {score!r}", raw_line)
        return Ok(
            Change(
                state=state,
                path=unquote_path(fields[2]),
                original_path=unquote_path(fields[1]),
                similarity=int(score),
                is_staged=staged,
            )
        )

    return Ok(Change(state=state, path=unquote_path(fields[1]), is_staged=staged))


def sort_changes(changes: Iterable[Change]) -> list[Change]:
    """Order changes by path (code-point order, stable)."""
    return sorted(changes, key=attrgetter("path"))


__all__ = [
    "Change",
    "ChangeState",
    "parse_change",
    "should_skip_line",
    "sort_changes",
    "unquote_path",
]
