"""Application configuration management.

Handles loading and validating configuration from multiple sources:
    - TOML/JSON config files
    - Environment variables (GITDECK_* prefix)
    - Default values

Key components:
    - AppConfig: Main configuration model
    - load_config(): Safe config loading with fallback
    - ConfigLoadResult: Metadata about config source
"""

from __future__ import annotations

import json
import os
import re
import tomllib
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from unittest.mock import patch

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

CONFIG_ENV_VAR = "GITDECK_CONFIG"

_NON_DIGITS = re.compile(r"[^0-9]")


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or validated."""


# -----------------------------------------------------------------------------
# Sub-configuration Models
# -----------------------------------------------------------------------------


class RepositoryConfig(BaseModel):
    """Where the repository lives and how commands against it are run."""

    root: Path = Field(default=Path("."), description="Working tree the commands run in.")
    vcs_binary: str = Field(default="git", description="Version-control executable to invoke.")
    command_timeout: float | None = Field(
        default=None,
        description="Seconds before an invocation is killed; unset waits indefinitely.",
    )
    check_clean_first: bool = Field(
        default=True,
        description="Run a cheap clean-tree check before the diff and listing commands.",
    )

    @field_validator("command_timeout")
    @classmethod
    def positive_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            return None
        return v


class PreferencesConfig(BaseModel):
    """Behaviour switches the host exposes to its user."""

    auto_save_on_refresh: bool = Field(
        default=False, description="Ask the host to save its document before each refresh."
    )
    delete_untracked_on_revert: bool = Field(
        default=True, description="Reverting an untracked file deletes it from disk."
    )
    max_log_depth: int = Field(default=5, description="Commits retained by the history view.")
    drop_space_paths: bool = Field(
        default=False,
        description="Skip untracked/working-tree lines containing a space (legacy filter).",
    )
    log_level: str = Field(default="INFO", description="Log level for gitdeck output.")

    @field_validator("max_log_depth", mode="before")
    @classmethod
    def sanitize_depth(cls, v: Any) -> int:
        """Accept free-form input: keep digits only, empty means 0, never negative."""
        if isinstance(v, bool):
            return int(v)
        if isinstance(v, int):
            return max(v, 0)
        if isinstance(v, float):
            return max(int(v), 0)
        digits = _NON_DIGITS.sub("", str(v))
        return int(digits) if digits else 0


@dataclass
class ConfigLoadResult:
    path: Path
    file_loaded: bool
    env_overrides: set[str]
    error: str | None = None


class AppConfig(BaseSettings):
    """Application-wide configuration with nested sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="GITDECK_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    preferences: PreferencesConfig = Field(default_factory=PreferencesConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
    ]:
        # Environment variables override config file entries.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


def _resolve_config_path(config_path: Path | None, env_vars: Mapping[str, str]) -> Path:
    candidate = config_path or env_vars.get(CONFIG_ENV_VAR) or (Path.home() / ".gitdeck.toml")
    return Path(candidate).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    parser = json.loads if suffix == ".json" else tomllib.loads

    try:
        data = parser(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Syntax error in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config root in {path} must be a mapping.")

    return data


def _detect_env_overrides(env_vars: Mapping[str, str]) -> set[str]:
    """Detect which fields are overridden by environment variables.

    For nested models, detects vars like GITDECK_PREFERENCES__MAX_LOG_DEPTH.
    """
    prefix = AppConfig.model_config.get("env_prefix", "")
    delimiter = AppConfig.model_config.get("env_nested_delimiter", "__")
    overrides: set[str] = set()

    nested_models: dict[str, type[BaseModel]] = {
        "repository": RepositoryConfig,
        "preferences": PreferencesConfig,
    }

    for group_name, model_cls in nested_models.items():
        for field in model_cls.model_fields:
            env_key = f"{prefix}{group_name}{delimiter}{field}".upper()
            if env_key in env_vars:
                overrides.add(f"{group_name}.{field}")

    return overrides


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[AppConfig, ConfigLoadResult]:
    """
    Load configuration with Safe Mode fallback.
    If the file is invalid, returns default config + error message.
    """
    env_vars: Mapping[str, str] = os.environ if env is None else {**os.environ, **env}
    resolved_path = _resolve_config_path(config_path, env_vars)
    env_overrides = _detect_env_overrides(env_vars)

    error: str | None = None
    file_loaded = False
    file_data: dict[str, Any] = {}

    try:
        file_data = _read_config_file(resolved_path)
        file_loaded = resolved_path.exists()
    except ConfigError as exc:
        error = str(exc)

    context_manager = (
        patch.dict(os.environ, env_vars, clear=False) if env is not None else nullcontext()
    )

    try:
        with context_manager:
            config = AppConfig(**file_data)
    except ValidationError as exc:
        error = str(exc)
        config = AppConfig()

    load_result = ConfigLoadResult(
        path=resolved_path,
        file_loaded=file_loaded,
        env_overrides=env_overrides,
        error=error,
    )

    return config, load_result


__all__ = [
    "CONFIG_ENV_VAR",
    "AppConfig",
    "ConfigError",
    "ConfigLoadResult",
    "PreferencesConfig",
    "RepositoryConfig",
    "load_config",
]
