"""Scripted executor for tracker and facade tests.

Provides a deterministic stand-in for ProcessExecutor: every argv maps to a
Script describing the lines it prints and how it ends. Invocations are real
ProcessInvocation objects driven by tasks, so consumers exercise exactly the
same streaming and completion paths as with live processes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

from gitdeck.core.result import Err, ExecutionError, Ok, Result
from gitdeck.core.sys.execution import CommandResult, LogChannel, LogRecord, ProcessInvocation


@dataclass
class Script:
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)
    returncode: int = 0
    error: ExecutionError | None = None
    gate: asyncio.Event | None = None


class ScriptedExecutor:
    """Deterministic executor keyed by argv.

    Usage:
        executor = ScriptedExecutor({("git", "branch"): Script(stdout=["* main"])})
        invocation = executor.execute(["git", "branch"])
    """

    def __init__(
        self,
        scripts: dict[tuple[str, ...], Script] | None = None,
        *,
        default: Script | None = None,
    ) -> None:
        self.scripts: dict[tuple[str, ...], Script] = dict(scripts or {})
        self.default = default or Script()
        self.calls: list[tuple[str, ...]] = []
        self.invocations: list[ProcessInvocation] = []
        self.closed = False

    def set(self, argv: Sequence[str], script: Script) -> None:
        self.scripts[tuple(argv)] = script

    def calls_to(self, *prefix: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[: len(prefix)] == prefix]

    def execute(self, argv: Sequence[str], *, timeout: float | None = None) -> ProcessInvocation:
        key = tuple(argv)
        self.calls.append(key)
        script = self.scripts.get(key, self.default)
        invocation = ProcessInvocation(argv)
        invocation.attach(asyncio.create_task(self._play(invocation, script)))
        self.invocations.append(invocation)
        return invocation

    async def run(
        self, argv: Sequence[str], *, timeout: float | None = None
    ) -> Result[CommandResult, ExecutionError]:
        return await self.execute(argv, timeout=timeout).collect()

    async def aclose(self) -> None:
        self.closed = True
        pending = [inv for inv in self.invocations if not inv.is_done]
        for invocation in pending:
            invocation.cancel()
        if pending:
            await asyncio.gather(*(inv.wait() for inv in pending))

    async def _play(self, invocation: ProcessInvocation, script: Script) -> None:
        await asyncio.sleep(0)
        for line in script.stdout:
            invocation.emit(LogRecord(LogChannel.STDOUT, line))
            await asyncio.sleep(0)
        for line in script.stderr:
            invocation.emit(LogRecord(LogChannel.STDERR, line))
            await asyncio.sleep(0)
        if script.gate is not None:
            await script.gate.wait()
        if script.error is not None:
            invocation.resolve(Err(script.error))
        else:
            invocation.resolve(Ok(script.returncode))
