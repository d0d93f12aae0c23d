"""Trackers that turn git output streams into published snapshots.

Each tracker issues its invocations, accumulates lines into private buffers
as they arrive and swaps in a new frozen snapshot only once every stream it
depends on has completed. Readers of ``tracker.snapshot`` therefore see the
previous complete snapshot or the next one, never a mix.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace

from gitdeck.core.console import get_logger
from gitdeck.core.result import Err, ExecutionError, Ok, StatusParseError
from gitdeck.core.sys.execution import (
    CommandResult,
    ExecutorProtocol,
    LogChannel,
    ProcessInvocation,
)

from .changes import Change, parse_change, should_skip_line, sort_changes
from .commands import GitCommands

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChangeSetSnapshot:
    staged: tuple[Change, ...] = ()
    unstaged: tuple[Change, ...] = ()
    parse_errors: tuple[StatusParseError, ...] = ()
    failures: tuple[ExecutionError, ...] = ()
    outcomes: tuple[CommandResult, ...] = ()
    is_clean: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.staged and not self.unstaged

    @property
    def changes(self) -> tuple[Change, ...]:
        return self.staged + self.unstaged


@dataclass(frozen=True, slots=True)
class Branch:
    name: str
    is_current: bool = False


@dataclass(frozen=True, slots=True)
class BranchSnapshot:
    branches: tuple[Branch, ...] = ()
    failure: ExecutionError | None = None
    outcome: CommandResult | None = None

    @property
    def current(self) -> Branch | None:
        return next((b for b in self.branches if b.is_current), None)


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One ``--pretty=oneline --abbrev-commit`` line."""

    line: str

    @property
    def abbrev_sha(self) -> str:
        return self.line.partition(" ")[0]

    @property
    def summary(self) -> str:
        return self.line.partition(" ")[2]

    def __str__(self) -> str:
        return self.line


@dataclass(frozen=True, slots=True)
class LogSnapshot:
    entries: tuple[LogEntry, ...] = ()
    failure: ExecutionError | None = None
    outcome: CommandResult | None = None


def parse_branch_line(line: str) -> Branch | None:
    """Parse a ``git branch`` line; ``* `` marks the checked-out branch."""
    if not line.strip():
        return None
    return Branch(name=line[2:].rstrip(), is_current=line.startswith("* "))


# ---------------------------------------------------------------------------
# Stream accumulation
# ---------------------------------------------------------------------------


@dataclass
class _StreamBuffer:
    changes: list[Change] = field(default_factory=list)
    parse_errors: list[StatusParseError] = field(default_factory=list)
    failure: ExecutionError | None = None
    outcome: CommandResult | None = None


async def _finish(invocation: ProcessInvocation) -> tuple[CommandResult | None, ExecutionError | None]:
    match await invocation.collect():
        case Ok(result):
            return result, None
        case Err(err):
            logger.warning("%s failed: %s", invocation.command_line, err)
            return None, err


async def _accumulate_changes(
    invocation: ProcessInvocation,
    *,
    tracked: bool,
    staged: bool,
    drop_space_paths: bool,
) -> _StreamBuffer:
    buffer = _StreamBuffer()
    async for record in invocation.stream():
        if record.channel is LogChannel.STDERR:
            logger.debug("%s: %s", invocation.command_line, record.text)
            continue
        if should_skip_line(record.text, drop_space_paths):
            continue
        match parse_change(record.text, tracked=tracked, staged=staged):
            case Ok(change):
                buffer.changes.append(change)
            case Err(err):
                logger.warning("Unparseable status line from %s: %s", invocation.command_line, err)
                buffer.parse_errors.append(err)
    buffer.outcome, buffer.failure = await _finish(invocation)
    return buffer


async def _accumulate_lines(
    invocation: ProcessInvocation, limit: int | None = None
) -> tuple[list[str], CommandResult | None, ExecutionError | None]:
    lines: list[str] = []
    async for record in invocation.stream():
        if record.channel is LogChannel.STDERR:
            continue
        if not record.text.strip():
            continue
        # Lines past the limit are drained and dropped.
        if limit is None or len(lines) < limit:
            lines.append(record.text)
    outcome, failure = await _finish(invocation)
    if outcome is not None and limit is not None:
        # The outcome carries only the kept lines.
        outcome = replace(outcome, stdout="\n".join(lines))
    return lines, outcome, failure


# ---------------------------------------------------------------------------
# Trackers
# ---------------------------------------------------------------------------


class ChangeSetTracker:
    """Staged and unstaged changes of one working tree."""

    def __init__(
        self,
        executor: ExecutorProtocol,
        commands: GitCommands | None = None,
        *,
        check_clean_first: bool = True,
        drop_space_paths: bool = False,
    ) -> None:
        self._executor = executor
        self._commands = commands or GitCommands()
        self.check_clean_first = check_clean_first
        self.drop_space_paths = drop_space_paths
        self._snapshot = ChangeSetSnapshot()

    @property
    def snapshot(self) -> ChangeSetSnapshot:
        return self._snapshot

    async def _clean_check(self) -> CommandResult | None:
        """Return the clean-check result when the tree is clean, else None."""
        match await self._executor.run(self._commands.clean_check()):
            case Ok(result) if result.ok and not result.stdout.strip():
                return result
            case _:
                return None

    async def refresh(self) -> ChangeSetSnapshot:
        if self.check_clean_first:
            clean = await self._clean_check()
            if clean is not None:
                logger.debug("Working tree clean; skipping diff and listing commands")
                self._snapshot = ChangeSetSnapshot(outcomes=(clean,), is_clean=True)
                return self._snapshot

        staged, working, untracked = await asyncio.gather(
            _accumulate_changes(
                self._executor.execute(self._commands.staged_diff()),
                tracked=True,
                staged=True,
                drop_space_paths=False,
            ),
            _accumulate_changes(
                self._executor.execute(self._commands.working_diff()),
                tracked=True,
                staged=False,
                drop_space_paths=self.drop_space_paths,
            ),
            _accumulate_changes(
                self._executor.execute(self._commands.untracked()),
                tracked=False,
                staged=False,
                drop_space_paths=self.drop_space_paths,
            ),
        )

        buffers = (staged, working, untracked)
        snapshot = ChangeSetSnapshot(
            staged=tuple(sort_changes(staged.changes)),
            unstaged=tuple(sort_changes([*working.changes, *untracked.changes])),
            parse_errors=tuple(err for b in buffers for err in b.parse_errors),
            failures=tuple(b.failure for b in buffers if b.failure is not None),
            outcomes=tuple(b.outcome for b in buffers if b.outcome is not None),
        )
        self._snapshot = snapshot
        return snapshot


class BranchTracker:
    """Local branches as listed by ``git branch``."""

    def __init__(self, executor: ExecutorProtocol, commands: GitCommands | None = None) -> None:
        self._executor = executor
        self._commands = commands or GitCommands()
        self._snapshot = BranchSnapshot()

    @property
    def snapshot(self) -> BranchSnapshot:
        return self._snapshot

    async def refresh(self) -> BranchSnapshot:
        lines, outcome, failure = await _accumulate_lines(
            self._executor.execute(self._commands.branches())
        )
        branches = tuple(b for b in map(parse_branch_line, lines) if b is not None)
        self._snapshot = BranchSnapshot(branches=branches, failure=failure, outcome=outcome)
        return self._snapshot


class LogTracker:
    """Most recent commits, capped client-side at ``max_depth`` entries."""

    def __init__(
        self,
        executor: ExecutorProtocol,
        commands: GitCommands | None = None,
        *,
        max_depth: int = 5,
    ) -> None:
        self._executor = executor
        self._commands = commands or GitCommands()
        self.max_depth = max_depth
        self._snapshot = LogSnapshot()

    @property
    def max_depth(self) -> int:
        return self._max_depth

    @max_depth.setter
    def max_depth(self, value: int) -> None:
        self._max_depth = max(int(value), 0)

    @property
    def snapshot(self) -> LogSnapshot:
        return self._snapshot

    async def refresh(self) -> LogSnapshot:
        lines, outcome, failure = await _accumulate_lines(
            self._executor.execute(self._commands.log()), limit=self._max_depth
        )
        self._snapshot = LogSnapshot(
            entries=tuple(LogEntry(line) for line in lines), failure=failure, outcome=outcome
        )
        return self._snapshot


__all__ = [
    "Branch",
    "BranchSnapshot",
    "BranchTracker",
    "ChangeSetSnapshot",
    "ChangeSetTracker",
    "LogEntry",
    "LogSnapshot",
    "LogTracker",
    "parse_branch_line",
]
