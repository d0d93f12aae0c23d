"""System utilities package.

Organized submodules:
- execution: Streamed external command execution, timeouts, cancellation
"""

from gitdeck.core.sys.execution import (
    CommandResult,
    ExecutorProtocol,
    ExitResult,
    LogChannel,
    LogRecord,
    ProcessExecutor,
    ProcessInvocation,
)

__all__ = [
    "CommandResult",
    "ExecutorProtocol",
    "ExitResult",
    "LogChannel",
    "LogRecord",
    "ProcessExecutor",
    "ProcessInvocation",
]
