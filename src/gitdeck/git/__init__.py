"""Git working-tree model and orchestration.

This package provides:
    - Change: typed status records and their parser
    - GitCommands: argv for every git call issued
    - ChangeSetTracker, BranchTracker, LogTracker: snapshot publishers
    - RepositoryFacade: refresh, stage, unstage, revert, commit, checkout
"""

from __future__ import annotations

from .changes import Change, ChangeState, parse_change, should_skip_line, sort_changes
from .client import OperationReport, RepositoryFacade, RepositoryState
from .commands import GitCommands, sanitize_commit_message
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

__all__ = [
    "Branch",
    "BranchSnapshot",
    "BranchTracker",
    "Change",
    "ChangeSetSnapshot",
    "ChangeSetTracker",
    "ChangeState",
    "GitCommands",
    "LogEntry",
    "LogSnapshot",
    "LogTracker",
    "OperationReport",
    "RepositoryFacade",
    "RepositoryState",
    "parse_change",
    "sanitize_commit_message",
    "should_skip_line",
    "sort_changes",
]
