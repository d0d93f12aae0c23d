from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from gitdeck.git import GitCommands

# Detect CI environment (GitHub Actions sets CI=true)
IS_CI = os.environ.get("CI", "").lower() == "true"


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip local_only tests when running in CI."""
    if not IS_CI:
        return
    skip_ci = pytest.mark.skip(reason="Skipped in CI (requires local environment)")
    for item in items:
        if "local_only" in item.keywords:
            item.add_marker(skip_ci)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def cmds() -> GitCommands:
    return GitCommands()


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: Any) -> Path:
    """Point config to a temp path so tests don't touch user state."""
    cfg_path = tmp_path / "gitdeck.toml"
    monkeypatch.setenv("GITDECK_CONFIG", str(cfg_path))
    for key in list(os.environ):
        if key.startswith("GITDECK_") and key != "GITDECK_CONFIG":
            monkeypatch.delenv(key, raising=False)
    return cfg_path
