"""Repository facade: the single entry point a host application drives.

The facade owns one executor and the three trackers. Reads go through
``refresh``; mutations (stage, unstage, revert, commit, checkout) run their
commands and then refresh so the exposed state never lags behind them.

Mutations and refreshes are serialized on one lock: a refresh never runs
while a mutating command is touching the working tree or index.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import Any

from gitdeck.core.config import AppConfig, PreferencesConfig
from gitdeck.core.console import get_logger
from gitdeck.core.result import (
    Err,
    ExecutionError,
    GitDeckError,
    InvalidInputError,
    Ok,
    Result,
)
from gitdeck.core.sys.execution import CommandResult, ExecutorProtocol, ProcessExecutor

from .changes import Change, ChangeState
from .commands import GitCommands
from .trackers import (
    Branch,
    BranchSnapshot,
    BranchTracker,
    ChangeSetSnapshot,
    ChangeSetTracker,
    LogEntry,
    LogSnapshot,
    LogTracker,
)

logger = get_logger(__name__)

RefreshHook = Callable[[], Awaitable[None] | None]


@dataclass(frozen=True, slots=True)
class RepositoryState:
    changes: ChangeSetSnapshot = field(default_factory=ChangeSetSnapshot)
    branches: BranchSnapshot = field(default_factory=BranchSnapshot)
    log: LogSnapshot = field(default_factory=LogSnapshot)


@dataclass
class OperationReport:
    """Commands a bulk operation ran and the failures it collected."""

    outcomes: list[CommandResult] = field(default_factory=list)
    errors: list[GitDeckError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors and all(outcome.ok for outcome in self.outcomes)

    def record(self, result: Result[CommandResult, ExecutionError]) -> bool:
        """Store a command result and return True if it exited 0."""
        match result:
            case Ok(outcome):
                self.outcomes.append(outcome)
                if not outcome.ok:
                    logger.warning(
                        "%s exited %s: %s", outcome.command, outcome.returncode, outcome.stderr
                    )
                return outcome.ok
            case Err(err):
                self.errors.append(err)
                return False


_ChangeAction = Callable[[Change, OperationReport], Awaitable[None]]


class RepositoryFacade:
    """Async front door over one git working tree."""

    def __init__(
        self,
        root: Path,
        config: AppConfig | None = None,
        *,
        executor: ExecutorProtocol | None = None,
        before_refresh: RefreshHook | None = None,
    ) -> None:
        self._root = root
        self._config = config or AppConfig()
        repo_cfg = self._config.repository
        prefs = self._config.preferences

        self._executor: ExecutorProtocol = executor or ProcessExecutor(
            root, timeout=repo_cfg.command_timeout
        )
        self._commands = GitCommands(repo_cfg.vcs_binary)
        self._before_refresh = before_refresh
        self._lock = asyncio.Lock()

        self.changes = ChangeSetTracker(
            self._executor,
            self._commands,
            check_clean_first=repo_cfg.check_clean_first,
            drop_space_paths=prefs.drop_space_paths,
        )
        self.branches = BranchTracker(self._executor, self._commands)
        self.log = LogTracker(self._executor, self._commands, max_depth=prefs.max_log_depth)

    @classmethod
    def from_config(cls, config: AppConfig, **kwargs: Any) -> RepositoryFacade:
        root = config.repository.root.expanduser().resolve()
        return cls(root, config, **kwargs)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def preferences(self) -> PreferencesConfig:
        return self._config.preferences

    @property
    def state(self) -> RepositoryState:
        return RepositoryState(
            changes=self.changes.snapshot,
            branches=self.branches.snapshot,
            log=self.log.snapshot,
        )

    def update_preferences(self, **updates: Any) -> PreferencesConfig:
        """Replace preference values, re-running validation (e.g. depth sanitizing)."""
        prefs = PreferencesConfig.model_validate({**self._config.preferences.model_dump(), **updates})
        self._config = self._config.model_copy(update={"preferences": prefs})
        self.changes.drop_space_paths = prefs.drop_space_paths
        self.log.max_depth = prefs.max_log_depth
        return prefs

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def refresh(self) -> RepositoryState:
        async with self._lock:
            return await self._refresh_locked()

    async def _refresh_locked(self) -> RepositoryState:
        if self._config.preferences.auto_save_on_refresh and self._before_refresh is not None:
            pending = self._before_refresh()
            if inspect.isawaitable(pending):
                await pending

        await asyncio.gather(self.changes.refresh(), self.branches.refresh(), self.log.refresh())
        state = self.state
        logger.debug(
            "Refreshed %s: %d staged, %d unstaged, %d branches, %d log entries",
            self._root,
            len(state.changes.staged),
            len(state.changes.unstaged),
            len(state.branches.branches),
            len(state.log.entries),
        )
        return state

    def list_branches(self) -> tuple[Branch, ...]:
        return self.branches.snapshot.branches

    def list_log(self) -> tuple[LogEntry, ...]:
        return self.log.snapshot.entries

    # ------------------------------------------------------------------
    # Per-change transitions
    # ------------------------------------------------------------------

    async def _stage_one(self, change: Change, report: OperationReport) -> None:
        if change.is_staged:
            return
        if report.record(await self._executor.run(self._commands.stage(change.path))):
            change.is_staged = True

    async def _unstage_one(self, change: Change, report: OperationReport) -> None:
        if not change.is_staged:
            return
        # A rename occupies two index entries: the removal and the addition.
        results = [await self._executor.run(self._commands.unstage(p)) for p in change.paths]
        if all([report.record(result) for result in results]):
            change.is_staged = False

    async def _revert_one(self, change: Change, report: OperationReport) -> None:
        if change.state is not ChangeState.ADDED:
            report.record(await self._executor.run(self._commands.discard(change.path)))
            return
        if not self._config.preferences.delete_untracked_on_revert:
            logger.debug("Not deleting untracked %s (delete_untracked_on_revert is off)", change.path)
            return
        match self._resolve_in_root(change.path):
            case Err(err):
                report.errors.append(err)
            case Ok(target):
                try:
                    await asyncio.to_thread(target.unlink, missing_ok=True)
                except OSError as exc:
                    report.errors.append(
                        GitDeckError(
                            "Failed to delete untracked file",
                            context={"path": change.path, "error": str(exc)},
                        )
                    )
                else:
                    logger.info("Deleted untracked %s", change.path)

    def _resolve_in_root(self, relative: str) -> Result[Path, InvalidInputError]:
        root = self._root.resolve()
        target = (root / relative).resolve()
        if not target.is_relative_to(root) or target == root:
            return Err(InvalidInputError("Path escapes the repository", context={"path": relative}))
        return Ok(target)

    async def _apply(
        self,
        action: _ChangeAction,
        selection: Iterable[Change],
        designated: Change | None,
    ) -> OperationReport:
        targets = list(selection)
        if not targets and designated is not None:
            targets = [designated]

        report = OperationReport()
        async with self._lock:
            # One at a time: git holds index.lock for the duration of each call.
            for change in targets:
                await action(change, report)
            await self._refresh_locked()
        return report

    async def stage(self, change: Change) -> OperationReport:
        return await self._apply(self._stage_one, [change], None)

    async def unstage(self, change: Change) -> OperationReport:
        return await self._apply(self._unstage_one, [change], None)

    async def revert(self, change: Change) -> OperationReport:
        return await self._apply(self._revert_one, [change], None)

    async def stage_selected(
        self, selection: Iterable[Change], designated: Change | None = None
    ) -> OperationReport:
        """Stage every change in ``selection``, or ``designated`` if it is empty."""
        return await self._apply(self._stage_one, selection, designated)

    async def unstage_selected(
        self, selection: Iterable[Change], designated: Change | None = None
    ) -> OperationReport:
        return await self._apply(self._unstage_one, selection, designated)

    async def revert_selected(
        self, selection: Iterable[Change], designated: Change | None = None
    ) -> OperationReport:
        return await self._apply(self._revert_one, selection, designated)

    # ------------------------------------------------------------------
    # Commit and branches
    # ------------------------------------------------------------------

    async def commit(self, message: str) -> Result[CommandResult | None, GitDeckError]:
        """Commit the staged changes.

        Returns Ok(None) without running anything when the message is blank
        or nothing is staged in the current snapshot. Otherwise the result
        carries git's exit status, including a nonzero one.
        """
        if not message.strip():
            logger.debug("Commit skipped: empty message")
            return Ok(None)
        async with self._lock:
            if not self.changes.snapshot.staged:
                logger.debug("Commit skipped: nothing staged")
                return Ok(None)
            result = await self._executor.run(self._commands.commit(message))
            await self._refresh_locked()

        match result:
            case Ok(outcome):
                if not outcome.ok:
                    logger.warning("Commit failed (%s): %s", outcome.returncode, outcome.stderr)
                return Ok(outcome)
            case Err(err):
                return Err(err)

    async def checkout_branch(
        self, name: str, create_new: bool = False
    ) -> Result[CommandResult, GitDeckError]:
        """Switch to ``name``, creating it first when ``create_new`` is set."""
        name = name.strip()
        if not name:
            return Err(InvalidInputError("Branch name must not be empty"))
        if name.startswith("-"):
            return Err(InvalidInputError("Branch name must not start with '-'", context={"name": name}))

        async with self._lock:
            result = await self._executor.run(self._commands.checkout(name, create=create_new))
            await self._refresh_locked()

        match result:
            case Ok(outcome):
                if not outcome.ok:
                    logger.warning("Checkout of %s failed (%s): %s", name, outcome.returncode, outcome.stderr)
                return Ok(outcome)
            case Err(err):
                return Err(err)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Cancel every in-flight invocation."""
        await self._executor.aclose()

    async def __aenter__(self) -> RepositoryFacade:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


__all__ = [
    "OperationReport",
    "RefreshHook",
    "RepositoryFacade",
    "RepositoryState",
]
