"""External command execution with streamed output.

Provides:
- LogChannel and LogRecord for channel-tagged output lines
- ProcessInvocation: one command run, its ordered logs and its exit status
- ProcessExecutor: launches invocations concurrently with timeouts and cancellation
- CommandResult: collected output of a finished invocation
"""

from __future__ import annotations

import asyncio
import shlex
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Protocol

import psutil

from gitdeck.core.console import get_logger
from gitdeck.core.result import (
    Err,
    ExecutionError,
    InvocationCancelledError,
    Ok,
    ProcessTimeoutError,
    Result,
    SpawnError,
)

logger = get_logger(__name__)

ExitResult = Result[int, ExecutionError]

# asyncio's default of 64 KiB is too small for long generated paths.
_STREAM_LIMIT = 1024 * 1024


class LogChannel(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True, slots=True)
class LogRecord:
    """One line of output, without its line terminator."""

    channel: LogChannel
    text: str


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Collected output of a finished invocation."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessInvocation:
    """A single external command run.

    Logs are appended in arrival order and every one of them is delivered
    before the exit status settles. The exit status is a Result: ``Ok(code)``
    for a process that ran (any code, including nonzero), ``Err`` when no
    exit code exists (spawn failure, timeout, cancellation).

    Must be created inside a running event loop.
    """

    def __init__(self, command: Sequence[str]) -> None:
        self._command = tuple(command)
        self._logs: list[LogRecord] = []
        self._subscribers: list[asyncio.Queue[LogRecord | None]] = []
        self._exit: asyncio.Future[ExitResult] = asyncio.get_running_loop().create_future()
        self._task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        state = "done" if self.is_done else "running"
        return f"<ProcessInvocation {self.command_line!r} {state} logs={len(self._logs)}>"

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    @property
    def command_line(self) -> str:
        return shlex.join(self._command)

    @property
    def logs(self) -> tuple[LogRecord, ...]:
        return tuple(self._logs)

    @property
    def is_done(self) -> bool:
        return self._exit.done()

    @property
    def exit_status(self) -> ExitResult | None:
        """The settled exit status, or None while the invocation is running."""
        if not self._exit.done():
            return None
        return self._exit.result()

    def stdout_lines(self) -> list[str]:
        return [r.text for r in self._logs if r.channel is LogChannel.STDOUT]

    def stderr_lines(self) -> list[str]:
        return [r.text for r in self._logs if r.channel is LogChannel.STDERR]

    # ------------------------------------------------------------------
    # Runner side
    # ------------------------------------------------------------------

    def emit(self, record: LogRecord) -> None:
        """Append a log record and fan it out to live subscribers."""
        if self.is_done:
            raise RuntimeError(f"log emitted after completion of {self.command_line!r}")
        self._logs.append(record)
        for queue in self._subscribers:
            queue.put_nowait(record)

    def resolve(self, result: ExitResult) -> bool:
        """Settle the exit status. Returns False if it was already settled."""
        if self._exit.done():
            return False
        self._exit.set_result(result)
        for queue in self._subscribers:
            queue.put_nowait(None)
        self._subscribers.clear()
        return True

    def attach(self, task: asyncio.Task[None]) -> None:
        """Bind the task driving this invocation so it can be cancelled."""
        self._task = task
        task.add_done_callback(self._on_runner_done)

    def _on_runner_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            # Cancelled before the runner could settle anything itself.
            self.resolve(
                Err(InvocationCancelledError("Invocation cancelled", context={"cmd": self.command_line}))
            )
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Runner for %s crashed", self.command_line, exc_info=exc)
            self.resolve(
                Err(
                    ExecutionError(
                        "Invocation runner failed",
                        context={"cmd": self.command_line, "error": str(exc)},
                    )
                )
            )

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def stream(self) -> AsyncIterator[LogRecord]:
        """Yield every log record in order, ending when the invocation completes.

        Records already delivered are replayed first, so late subscribers see
        the full sequence.
        """
        queue: asyncio.Queue[LogRecord | None] = asyncio.Queue()
        for record in self._logs:
            queue.put_nowait(record)
        if self.is_done:
            queue.put_nowait(None)
        else:
            self._subscribers.append(queue)

        try:
            while True:
                record = await queue.get()
                if record is None:
                    return
                yield record
        finally:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    async def wait(self) -> ExitResult:
        """Wait for the exit status. Cancelling the waiter leaves the process alone."""
        return await asyncio.shield(self._exit)

    async def collect(self) -> Result[CommandResult, ExecutionError]:
        """Wait for completion and gather the output into a CommandResult."""
        match await self.wait():
            case Err(err):
                return Err(err)
            case Ok(code):
                return Ok(
                    CommandResult(
                        command=self.command_line,
                        returncode=code,
                        stdout="\n".join(self.stdout_lines()),
                        stderr="\n".join(self.stderr_lines()),
                    )
                )

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the invocation already finished."""
        if self.is_done:
            return False
        if self._task is not None:
            self._task.cancel()
        else:
            self.resolve(
                Err(InvocationCancelledError("Invocation cancelled", context={"cmd": self.command_line}))
            )
        return True


class ExecutorProtocol(Protocol):
    """Anything that can start invocations and shut them down."""

    def execute(
        self, argv: Sequence[str], *, timeout: float | None = None
    ) -> ProcessInvocation: ...

    async def run(
        self, argv: Sequence[str], *, timeout: float | None = None
    ) -> Result[CommandResult, ExecutionError]: ...

    async def aclose(self) -> None: ...


def _kill_tree(pid: int) -> None:
    """Kill a process and all of its descendants."""
    try:
        parent = psutil.Process(pid)
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return
    for proc in [*children, parent]:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        await asyncio.to_thread(_kill_tree, proc.pid)
    await proc.wait()


async def _pump(
    reader: asyncio.StreamReader, channel: LogChannel, invocation: ProcessInvocation
) -> None:
    while True:
        line = await reader.readline()
        if not line:
            break
        text = line.decode("utf-8", errors="replace").rstrip("\r\n")
        invocation.emit(LogRecord(channel, text))


class ProcessExecutor:
    """Launch external commands without blocking the caller.

    Each call to ``execute`` starts one OS process on its own task; any
    number may run at once. ``aclose`` (or leaving an ``async with`` block)
    cancels whatever is still running so no process outlives the executor.
    """

    def __init__(
        self,
        cwd: Path,
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._cwd = cwd
        self._timeout = timeout
        self._env = dict(env) if env is not None else None
        self._in_flight: set[ProcessInvocation] = set()

    @property
    def cwd(self) -> Path:
        return self._cwd

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def execute(self, argv: Sequence[str], *, timeout: float | None = None) -> ProcessInvocation:
        """Start ``argv`` and return its invocation immediately.

        Args:
            argv: Program and arguments; no shell is involved
            timeout: Per-invocation override of the executor default

        Returns:
            The running ProcessInvocation
        """
        if not argv:
            raise ValueError("argv must name a program")

        invocation = ProcessInvocation(argv)
        effective_timeout = timeout if timeout is not None else self._timeout
        task = asyncio.create_task(
            self._run(invocation, effective_timeout), name=f"gitdeck:{invocation.command_line}"
        )
        invocation.attach(task)
        self._in_flight.add(invocation)
        task.add_done_callback(lambda _: self._in_flight.discard(invocation))
        logger.debug("Spawned %s in %s", invocation.command_line, self._cwd)
        return invocation

    async def run(
        self, argv: Sequence[str], *, timeout: float | None = None
    ) -> Result[CommandResult, ExecutionError]:
        """Execute ``argv`` and wait for its collected output."""
        return await self.execute(argv, timeout=timeout).collect()

    def cancel_all(self) -> int:
        """Cancel every in-flight invocation and return how many were asked to stop."""
        return sum(1 for invocation in list(self._in_flight) if invocation.cancel())

    async def aclose(self) -> None:
        pending = list(self._in_flight)
        for invocation in pending:
            invocation.cancel()
        if pending:
            await asyncio.gather(*(invocation.wait() for invocation in pending))
            logger.debug("Cancelled %d in-flight invocation(s)", len(pending))

    async def __aenter__(self) -> ProcessExecutor:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def _run(self, invocation: ProcessInvocation, timeout: float | None) -> None:
        context = {"cmd": invocation.command_line, "cwd": str(self._cwd)}
        if not self._cwd.is_dir():
            invocation.resolve(Err(SpawnError("Working directory does not exist", context=context)))
            return

        try:
            proc = await asyncio.create_subprocess_exec(
                *invocation.command,
                cwd=self._cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                env=self._env,
                limit=_STREAM_LIMIT,
            )
        except FileNotFoundError as exc:
            invocation.resolve(
                Err(SpawnError("Executable not found", context={**context, "error": str(exc)}))
            )
            return
        except PermissionError as exc:
            invocation.resolve(
                Err(SpawnError("Permission denied", context={**context, "error": str(exc)}))
            )
            return
        except OSError as exc:
            invocation.resolve(
                Err(SpawnError("Failed to start command", context={**context, "error": str(exc)}))
            )
            return

        assert proc.stdout is not None and proc.stderr is not None
        try:
            async with asyncio.timeout(timeout):
                async with asyncio.TaskGroup() as tg:
                    tg.create_task(_pump(proc.stdout, LogChannel.STDOUT, invocation))
                    tg.create_task(_pump(proc.stderr, LogChannel.STDERR, invocation))
                returncode = await proc.wait()
        except TimeoutError:
            await _terminate(proc)
            logger.warning("%s timed out after %ss", invocation.command_line, timeout)
            invocation.resolve(
                Err(ProcessTimeoutError(f"Command timed out after {timeout}s", context=context))
            )
            return
        except asyncio.CancelledError:
            await _terminate(proc)
            logger.warning("Cancelled %s", invocation.command_line)
            invocation.resolve(Err(InvocationCancelledError("Invocation cancelled", context=context)))
            raise
        except Exception as exc:
            # e.g. a line longer than _STREAM_LIMIT
            await _terminate(proc)
            logger.error("Reading output of %s failed", invocation.command_line, exc_info=exc)
            invocation.resolve(
                Err(
                    ExecutionError(
                        "Failed to read command output", context={**context, "error": repr(exc)}
                    )
                )
            )
            return

        logger.debug("%s exited with %s", invocation.command_line, returncode)
        invocation.resolve(Ok(returncode))


__all__ = [
    "CommandResult",
    "ExecutorProtocol",
    "ExitResult",
    "LogChannel",
    "LogRecord",
    "ProcessExecutor",
    "ProcessInvocation",
]
