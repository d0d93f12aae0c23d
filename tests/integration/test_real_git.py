"""End-to-end checks against a real git binary in a scratch repository."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Any

import pytest

from gitdeck.core.config import AppConfig, RepositoryConfig
from gitdeck.git import ChangeState, RepositoryFacade

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("git") is None, reason="git not installed"),
]


def _git(repo: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args], cwd=repo, check=True, capture_output=True, text=True
    ).stdout


@pytest.fixture
def repo(tmp_path: Path, monkeypatch: Any) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for key in ("AUTHOR", "COMMITTER"):
        monkeypatch.setenv(f"GIT_{key}_NAME", "Test User")
        monkeypatch.setenv(f"GIT_{key}_EMAIL", "test@example.com")

    root = tmp_path / "repo"
    root.mkdir()
    _git(root, "init", "-q")
    _git(root, "symbolic-ref", "HEAD", "refs/heads/main")
    (root / "tracked.txt").write_text("one\n", encoding="utf-8")
    (root / "old.txt").write_text("rename me\n" * 20, encoding="utf-8")
    _git(root, "add", ".")
    _git(root, "commit", "-q", "-m", "initial")
    return root


def _facade(root: Path) -> RepositoryFacade:
    return RepositoryFacade.from_config(
        AppConfig(repository=RepositoryConfig(root=root, command_timeout=30))
    )


@pytest.mark.asyncio
async def test_clean_repository(repo: Path) -> None:
    async with _facade(repo) as facade:
        state = await facade.refresh()

    assert state.changes.is_clean
    assert state.branches.current is not None
    assert state.branches.current.name == "main"
    assert [e.summary for e in state.log.entries] == ["initial"]


@pytest.mark.asyncio
async def test_full_workflow(repo: Path) -> None:
    (repo / "tracked.txt").write_text("two\n", encoding="utf-8")
    (repo / "new file.txt").write_text("fresh\n", encoding="utf-8")
    _git(repo, "mv", "old.txt", "moved.txt")

    async with _facade(repo) as facade:
        state = await facade.refresh()

        staged = {c.path: c for c in state.changes.staged}
        unstaged = {c.path: c for c in state.changes.unstaged}
        assert staged["moved.txt"].state is ChangeState.RENAMED
        assert staged["moved.txt"].original_path == "old.txt"
        assert unstaged["tracked.txt"].state is ChangeState.MODIFIED
        assert unstaged["new file.txt"].state is ChangeState.ADDED

        report = await facade.stage_selected([unstaged["tracked.txt"], unstaged["new file.txt"]])
        assert report.succeeded
        assert {c.path for c in facade.state.changes.staged} == {
            "moved.txt",
            "tracked.txt",
            "new file.txt",
        }

        rename = next(c for c in facade.state.changes.staged if c.path == "moved.txt")
        assert (await facade.unstage(rename)).succeeded
        assert "moved.txt" not in {c.path for c in facade.state.changes.staged}

        outcome = (await facade.commit('add "things"')).unwrap()
        assert outcome is not None and outcome.ok

    assert _git(repo, "log", "-1", "--pretty=%s").strip() == "add  things"


@pytest.mark.asyncio
async def test_revert_and_checkout(repo: Path) -> None:
    (repo / "tracked.txt").write_text("changed\n", encoding="utf-8")
    (repo / "junk.txt").write_text("junk\n", encoding="utf-8")

    async with _facade(repo) as facade:
        state = await facade.refresh()
        report = await facade.revert_selected(list(state.changes.unstaged))
        assert report.succeeded
        assert facade.state.changes.is_clean

        outcome = (await facade.checkout_branch("feature", create_new=True)).unwrap()
        assert outcome.ok
        assert facade.state.branches.current is not None
        assert facade.state.branches.current.name == "feature"

        failed = (await facade.checkout_branch("does-not-exist")).unwrap()
        assert failed.returncode != 0

    assert (repo / "tracked.txt").read_text(encoding="utf-8") == "one\n"
    assert not (repo / "junk.txt").exists()
