from __future__ import annotations

import asyncio

import typer
from rich.markup import escape

from gitdeck.core.config import AppConfig, PreferencesConfig
from gitdeck.core.console import console
from gitdeck.core.decorators import handle_exceptions
from gitdeck.core.result import Err, GitDeckError, Ok, Result
from gitdeck.core.sys.execution import CommandResult
from gitdeck.git import BranchSnapshot, LogSnapshot, RepositoryFacade


async def _refresh(config: AppConfig) -> tuple[BranchSnapshot, LogSnapshot]:
    async with RepositoryFacade.from_config(config) as facade:
        state = await facade.refresh()
        return state.branches, state.log


def _report_failure(snapshot: BranchSnapshot | LogSnapshot) -> None:
    if snapshot.failure is not None:
        console.print(f"[red]{escape(str(snapshot.failure))}[/red]")
    elif snapshot.outcome is not None and not snapshot.outcome.ok:
        console.print(
            f"[red]{escape(snapshot.outcome.command)} exited {snapshot.outcome.returncode}: "
            f"{escape(snapshot.outcome.stderr)}[/red]"
        )


@handle_exceptions
def branches(ctx: typer.Context) -> None:
    """List local branches; the current one is marked."""
    state = ctx.obj
    snapshot, _ = asyncio.run(_refresh(state.config))
    _report_failure(snapshot)
    for branch in snapshot.branches:
        if branch.is_current:
            console.print(f"[green]> {escape(branch.name)}[/green]")
        else:
            console.print(f"  {escape(branch.name)}")


@handle_exceptions
def log(
    ctx: typer.Context,
    depth: str | None = typer.Option(
        None, "--depth", "-n", help="Maximum commits to show (non-digits are ignored)."
    ),
) -> None:
    """Show the most recent commits."""
    state = ctx.obj
    config: AppConfig = state.config
    if depth is not None:
        prefs = PreferencesConfig.model_validate(
            {**config.preferences.model_dump(), "max_log_depth": depth}
        )
        config = config.model_copy(update={"preferences": prefs})

    _, snapshot = asyncio.run(_refresh(config))
    _report_failure(snapshot)
    for entry in snapshot.entries:
        console.print(f"[cyan]{escape(entry.abbrev_sha)}[/cyan] {escape(entry.summary)}")


@handle_exceptions
def checkout(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Branch to switch to."),
    new: bool = typer.Option(False, "--new", "-b", help="Create the branch first."),
) -> None:
    """Switch branches, optionally creating the target."""
    state = ctx.obj

    async def _checkout() -> Result[CommandResult, GitDeckError]:
        async with RepositoryFacade.from_config(state.config) as facade:
            return await facade.checkout_branch(name, create_new=new)

    match asyncio.run(_checkout()):
        case Err(err):
            console.print(f"[red]{escape(str(err))}[/red]")
            raise typer.Exit(code=1)
        case Ok(outcome):
            if not outcome.ok:
                console.print(
                    f"[red]Checkout failed ({outcome.returncode}): {escape(outcome.stderr)}[/red]"
                )
                raise typer.Exit(code=outcome.returncode)
            console.print(f"[green]On branch {escape(name.strip())}[/green]")
