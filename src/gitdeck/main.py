from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import typer
from rich import box
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .commands import branches as branch_cmds
from .commands import changes as change_cmds
from .core.config import AppConfig, ConfigLoadResult, load_config
from .core.console import console, setup_logging

app = typer.Typer(help="gitdeck: stage, commit and switch branches from the terminal.")
logger = logging.getLogger(__name__)


@dataclass
class AppState:
    config: AppConfig
    config_meta: ConfigLoadResult
    logger: logging.Logger


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Path to a gitdeck config file (TOML or JSON)."
    ),
    repo: Path | None = typer.Option(
        None, "--repo", "-r", help="Working tree to operate on (defaults to repository.root)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    # load_config never raises; problems come back in meta.error
    loaded_config, meta = load_config(config_path=config)
    if repo is not None:
        repository = loaded_config.repository.model_copy(update={"root": repo})
        loaded_config = loaded_config.model_copy(update={"repository": repository})

    app_logger = setup_logging(level=loaded_config.preferences.log_level, verbose=verbose)
    ctx.obj = AppState(config=loaded_config, config_meta=meta, logger=app_logger)

    if meta.error:
        console.print(
            Panel(
                f"[bold red]Configuration Error - Safe Mode Active[/bold red]\n\n"
                f"Failed to load {escape(str(meta.path))}:\n{escape(meta.error)}\n\n"
                f"[yellow]Using default settings.[/yellow]",
                border_style="red",
            )
        )
    else:
        app_logger.debug(
            "Loaded configuration from %s (env overrides: %s)",
            meta.path,
            sorted(meta.env_overrides),
        )


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Show the active configuration and where it came from."""
    state: AppState = ctx.obj
    meta = state.config_meta

    table = Table(title="Config", box=box.SIMPLE, expand=True)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    for group, values in state.config.model_dump().items():
        for key, value in values.items():
            table.add_row(f"{group}.{key}", escape(str(value)))

    console.print(table)

    meta_lines = [
        f"Path: {escape(str(meta.path))}",
        "File loaded: yes" if meta.file_loaded else "File loaded: no (using defaults + env)",
    ]

    if meta.env_overrides:
        meta_lines.append("Env overrides: " + ", ".join(sorted(meta.env_overrides)))

    console.print(Panel("\n".join(meta_lines), title="Config source", box=box.SIMPLE))


@app.command("version")
def show_version() -> None:
    """Print the gitdeck version."""
    console.print(__version__)


app.command("status")(change_cmds.status)
app.command("stage")(change_cmds.stage)
app.command("unstage")(change_cmds.unstage)
app.command("revert")(change_cmds.revert)
app.command("commit")(change_cmds.commit)
app.command("branches")(branch_cmds.branches)
app.command("checkout")(branch_cmds.checkout)
app.command("log")(branch_cmds.log)


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
