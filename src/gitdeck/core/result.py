"""
Unified Result types and error hierarchy for gitdeck.

This module provides:
1. Result[T, E] type for explicit error handling
2. Domain-specific exception hierarchy

Usage:
    from gitdeck.core.result import Ok, Err, Result, SpawnError

    def spawn() -> Result[int, SpawnError]:
        if missing:
            return Err(SpawnError("git executable not found on PATH"))
        return Ok(0)

    result = spawn()
    if result.is_ok():
        print(result.value)
    else:
        print(result.error)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E", bound=Exception)
F = TypeVar("F", bound=Exception)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Represents a successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Return the contained value."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return the contained value (ignores default for Ok)."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply a function to the contained value."""
        return Ok(fn(self.value))

    def map_err(self, fn: Callable[[E], F]) -> Ok[T]:
        """No-op for Ok - returns self unchanged."""
        return self

    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Chain operations that may fail."""
        return fn(self.value)


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Represents a failed result containing an error."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the contained error."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        """Return the default value."""
        return default

    def map(self, fn: Callable[[T], U]) -> Err[E]:
        """No-op for Err - returns self unchanged."""
        return self

    def map_err(self, fn: Callable[[E], F]) -> Err[F]:
        """Apply a function to the contained error."""
        return Err(fn(self.error))

    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Err[E]:
        """Short-circuit for Err - returns self unchanged."""
        return self


# Type alias for Result
Result = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Domain-specific error hierarchy
# ---------------------------------------------------------------------------


class GitDeckError(Exception):
    """Base exception for all gitdeck errors.

    All custom exceptions should inherit from this class to enable
    consistent error handling across the codebase.
    """

    def __init__(self, message: str, *, context: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ExecutionError(GitDeckError):
    """Raised when an external invocation does not produce an exit status.

    A process that ran and exited nonzero is not an ExecutionError; the
    exit code is reported as a value.
    """

    pass


class SpawnError(ExecutionError):
    """Raised when a process cannot be started.

    Examples:
    - Executable not found on PATH
    - Permission denied
    - Working directory missing
    """

    pass


class ProcessTimeoutError(ExecutionError):
    """Raised when an invocation outlives its timeout and is killed."""

    pass


class InvocationCancelledError(ExecutionError):
    """Raised when an invocation is cancelled before it completes."""

    pass


class StatusParseError(GitDeckError):
    """Raised for a status line that cannot be turned into a Change.

    Examples:
    - Unrecognized status letter
    - Missing path field
    - Non-numeric rename similarity
    """

    def __init__(self, message: str, *, line: str, context: dict | None = None) -> None:
        super().__init__(message, context={"line": line, **(context or {})})
        self.line = line


class InvalidInputError(GitDeckError):
    """Raised for caller input that cannot be turned into a command.

    Examples:
    - Empty branch name
    - Path escaping the repository root
    """

    pass


__all__ = [
    # Result types
    "Ok",
    "Err",
    "Result",
    # Error hierarchy
    "GitDeckError",
    "ExecutionError",
    "SpawnError",
    "ProcessTimeoutError",
    "InvocationCancelledError",
    "StatusParseError",
    "InvalidInputError",
]
