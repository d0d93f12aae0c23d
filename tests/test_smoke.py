from __future__ import annotations

from pathlib import Path
from typing import Any

from typer.main import get_command
from typer.testing import CliRunner

from gitdeck import __version__
from gitdeck.git import GitCommands, RepositoryFacade
from gitdeck.main import app
from tests.mocks.scripted_executor import Script, ScriptedExecutor

runner = CliRunner()
CMDS = GitCommands()


def _use_executor(monkeypatch: Any, executor: ScriptedExecutor) -> None:
    original = RepositoryFacade.from_config.__func__  # type: ignore[attr-defined]

    def fake_from_config(cls: type[RepositoryFacade], config: Any, **kwargs: Any) -> RepositoryFacade:
        return original(cls, config, executor=executor, **kwargs)

    monkeypatch.setattr(RepositoryFacade, "from_config", classmethod(fake_from_config))


def test_app_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_all_commands_have_help() -> None:
    """Every registered command must accept --help."""
    click_app = get_command(app)
    commands = getattr(click_app, "commands", {})
    assert {"status", "stage", "commit", "checkout", "log"} <= set(commands)
    for name in commands:
        result = runner.invoke(app, [name, "--help"])
        assert result.exit_code == 0, f"Command 'gitdeck {name} --help' failed!"
        assert "Usage:" in result.stdout


def test_config_command_shows_values(isolate_config: Path) -> None:
    result = runner.invoke(app, ["config"])
    assert result.exit_code == 0
    assert "preferences.max_log_depth" in result.stdout


def test_broken_config_shows_safe_mode(isolate_config: Path) -> None:
    isolate_config.write_text("not = [valid", encoding="utf-8")
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "Safe Mode" in result.stdout


def test_status_lists_changes(monkeypatch: Any, tmp_path: Path) -> None:
    executor = ScriptedExecutor(
        {
            tuple(CMDS.clean_check()): Script(stdout=["?? notes.txt"]),
            tuple(CMDS.staged_diff()): Script(stdout=["R100\told.py\tnew.py"]),
            tuple(CMDS.untracked()): Script(stdout=["notes.txt"]),
        }
    )
    _use_executor(monkeypatch, executor)

    result = runner.invoke(app, ["--repo", str(tmp_path), "status"])

    assert result.exit_code == 0, result.stdout
    assert "Staged Changes" in result.stdout
    assert "new.py" in result.stdout
    assert "notes.txt" in result.stdout


def test_status_clean_tree(monkeypatch: Any, tmp_path: Path) -> None:
    _use_executor(monkeypatch, ScriptedExecutor())

    result = runner.invoke(app, ["--repo", str(tmp_path), "status"])

    assert result.exit_code == 0
    assert "No changes" in result.stdout


def test_stage_unknown_path_fails(monkeypatch: Any, tmp_path: Path) -> None:
    _use_executor(monkeypatch, ScriptedExecutor())

    result = runner.invoke(app, ["--repo", str(tmp_path), "stage", "missing.txt"])

    assert result.exit_code == 1
    assert "No matching change" in result.stdout


def test_commit_without_staged_changes(monkeypatch: Any, tmp_path: Path) -> None:
    _use_executor(monkeypatch, ScriptedExecutor())

    result = runner.invoke(app, ["--repo", str(tmp_path), "commit", "-m", "msg"])

    assert result.exit_code == 0
    assert "Nothing to commit" in result.stdout


def test_branches_marks_current(monkeypatch: Any, tmp_path: Path) -> None:
    _use_executor(
        monkeypatch, ScriptedExecutor({tuple(CMDS.branches()): Script(stdout=["  dev", "* main"])})
    )

    result = runner.invoke(app, ["--repo", str(tmp_path), "branches"])

    assert result.exit_code == 0
    assert "> main" in result.stdout


def test_checkout_rejects_option_like_name(monkeypatch: Any, tmp_path: Path) -> None:
    executor = ScriptedExecutor()
    _use_executor(monkeypatch, executor)

    result = runner.invoke(app, ["--repo", str(tmp_path), "checkout", "--", "-D"])

    assert result.exit_code == 1
    assert executor.calls == []
