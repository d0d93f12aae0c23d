from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

import typer
from rich import box
from rich.markup import escape
from rich.table import Table

from gitdeck.core.config import AppConfig
from gitdeck.core.console import console
from gitdeck.core.decorators import handle_exceptions
from gitdeck.core.result import Err, GitDeckError, Ok, Result
from gitdeck.core.sys.execution import CommandResult
from gitdeck.git import (
    Change,
    ChangeSetSnapshot,
    ChangeState,
    OperationReport,
    RepositoryFacade,
)

STATE_STYLES: dict[ChangeState, str] = {
    ChangeState.ADDED: "green",
    ChangeState.RENAMED: "pale_green3",
    ChangeState.MODIFIED: "yellow",
    ChangeState.DELETED: "indian_red1",
    ChangeState.CONFLICTED: "blue",
}

BulkAction = Callable[[RepositoryFacade, list[Change]], Awaitable[OperationReport]]


@dataclass
class _SelectionOutcome:
    report: OperationReport
    selected: list[Change]
    missing: list[str]


def _describe(change: Change) -> str:
    if change.original_path is not None:
        return f"{escape(change.original_path)} -> {escape(change.path)} ({change.similarity}%)"
    return escape(change.path)


def _changes_table(title: str, changes: Iterable[Change]) -> Table:
    table = Table(title=title, box=box.SIMPLE, expand=True, title_justify="left")
    table.add_column("", no_wrap=True, width=1)
    table.add_column("Name", style="white", no_wrap=True)
    table.add_column("Path", style="dim")
    for change in changes:
        style = STATE_STYLES[change.state]
        table.add_row(
            f"[bold {style}]{change.state.letter}[/]",
            escape(change.display_name),
            _describe(change),
        )
    return table


def render_changes(snapshot: ChangeSetSnapshot) -> None:
    for failure in snapshot.failures:
        console.print(f"[red]{escape(str(failure))}[/red]")
    for outcome in snapshot.outcomes:
        if not outcome.ok:
            console.print(
                f"[red]{escape(outcome.command)} exited {outcome.returncode}: "
                f"{escape(outcome.stderr)}[/red]"
            )

    if snapshot.is_empty:
        console.print("No changes")
    else:
        if snapshot.staged:
            console.print(_changes_table("Staged Changes", snapshot.staged))
        if snapshot.unstaged:
            console.print(_changes_table("Changes", snapshot.unstaged))

    if snapshot.parse_errors:
        console.print(f"[yellow]{len(snapshot.parse_errors)} line(s) could not be parsed:[/yellow]")
        for err in snapshot.parse_errors:
            console.print(f"  [yellow]{escape(err.message)}[/yellow]: {escape(err.line)}")


def render_report(verb: str, outcome: _SelectionOutcome) -> None:
    for path in outcome.missing:
        console.print(f"[yellow]No matching change for {escape(path)}[/yellow]")
    for result in outcome.report.outcomes:
        if not result.ok:
            console.print(
                f"[red]{escape(result.command)} exited {result.returncode}: "
                f"{escape(result.stderr)}[/red]"
            )
    for err in outcome.report.errors:
        console.print(f"[red]{escape(str(err))}[/red]")
    if outcome.selected:
        names = ", ".join(escape(c.path) for c in outcome.selected)
        style = "green" if outcome.report.succeeded else "yellow"
        console.print(f"[{style}]{verb}: {names}[/]")


async def _select_and_apply(
    config: AppConfig,
    paths: list[str],
    pools: Callable[[ChangeSetSnapshot], Iterable[Change]],
    action: BulkAction,
) -> tuple[_SelectionOutcome, ChangeSetSnapshot]:
    async with RepositoryFacade.from_config(config) as facade:
        await facade.refresh()
        wanted = set(paths)
        selected: list[Change] = []
        for change in pools(facade.changes.snapshot):
            if wanted.intersection(change.paths):
                change.is_selected = True
                selected.append(change)
        matched = {p for change in selected for p in change.paths}
        missing = [p for p in paths if p not in matched]
        report = await action(facade, selected) if selected else OperationReport()
        return _SelectionOutcome(report, selected, missing), facade.changes.snapshot


def _run_bulk(
    ctx: typer.Context,
    paths: list[str],
    verb: str,
    pools: Callable[[ChangeSetSnapshot], Iterable[Change]],
    action: BulkAction,
) -> None:
    state = ctx.obj
    state.logger.debug("%s %s", verb, paths)
    outcome, snapshot = asyncio.run(_select_and_apply(state.config, paths, pools, action))
    render_report(verb, outcome)
    render_changes(snapshot)
    if not outcome.selected or not outcome.report.succeeded:
        raise typer.Exit(code=1)


async def _refresh(config: AppConfig) -> ChangeSetSnapshot:
    async with RepositoryFacade.from_config(config) as facade:
        state = await facade.refresh()
        return state.changes


@handle_exceptions
def status(ctx: typer.Context) -> None:
    """Show staged and unstaged changes."""
    state = ctx.obj
    render_changes(asyncio.run(_refresh(state.config)))


@handle_exceptions
def stage(
    ctx: typer.Context,
    paths: list[str] = typer.Argument(..., help="Repository-relative paths to stage."),
) -> None:
    """Stage changes in the working tree."""
    _run_bulk(
        ctx,
        paths,
        "Staged",
        lambda snap: snap.unstaged,
        lambda facade, selected: facade.stage_selected(selected),
    )


@handle_exceptions
def unstage(
    ctx: typer.Context,
    paths: list[str] = typer.Argument(..., help="Repository-relative paths to unstage."),
) -> None:
    """Move staged changes back to the working tree."""
    _run_bulk(
        ctx,
        paths,
        "Unstaged",
        lambda snap: snap.staged,
        lambda facade, selected: facade.unstage_selected(selected),
    )


@handle_exceptions
def revert(
    ctx: typer.Context,
    paths: list[str] = typer.Argument(..., help="Repository-relative paths to revert."),
) -> None:
    """Discard local changes (deletes untracked files when enabled)."""
    _run_bulk(
        ctx,
        paths,
        "Reverted",
        lambda snap: snap.unstaged + snap.staged,
        lambda facade, selected: facade.revert_selected(selected),
    )


@handle_exceptions
def commit(
    ctx: typer.Context,
    message: str = typer.Option(..., "--message", "-m", help="Commit message."),
) -> None:
    """Commit the staged changes."""
    state = ctx.obj

    async def _commit() -> Result[CommandResult | None, GitDeckError]:
        async with RepositoryFacade.from_config(state.config) as facade:
            await facade.refresh()
            return await facade.commit(message)

    match asyncio.run(_commit()):
        case Err(err):
            console.print(f"[red]{escape(str(err))}[/red]")
            raise typer.Exit(code=1)
        case Ok(None):
            console.print("[yellow]Nothing to commit (empty message or no staged changes).[/yellow]")
        case Ok(outcome):
            if not outcome.ok:
                console.print(f"[red]Commit failed ({outcome.returncode}): {escape(outcome.stderr)}[/red]")
                raise typer.Exit(code=outcome.returncode)
            summary = outcome.stdout.splitlines()[0] if outcome.stdout else "Committed"
            console.print(f"[green]{escape(summary)}[/green]")
