"""Application configuration management.

Handles loading and validating configuration from multiple sources:
    - TOML/JSON config files
    - Environment variables (AOA_* prefix)
    - Default values

Key components:
    - AppConfig: Main configuration model
    - load_config(): Safe config loading with fallback
    - ConfigLoadResult: Metadata about config source
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from unittest.mock import patch

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

CONFIG_ENV_VAR = "AOA_CONFIG"


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed."""


# -----------------------------------------------------------------------------
# Sub-configuration Models
# -----------------------------------------------------------------------------


class AgentConfig(BaseModel):
    """How the external agent binary is invoked.

    Field names also accept the camelCase keys used by older JSON configs
    (``maxTokens``, ``additionalArgs``).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    binary: str = Field(default="claude", description="Agent executable name or path.")
    model: str | None = Field(default=None, description="Model selector passed with --model.")
    max_tokens: int | None = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("max_tokens", "maxTokens"),
        description="Token limit passed with --max-tokens.",
    )
    temperature: float | None = Field(
        default=None, ge=0.0, le=2.0, description="Sampling temperature passed with --temperature."
    )
    timeout: str | None = Field(
        default=None,
        description="Opaque timeout value handed to the agent; aoa never enforces it.",
    )
    additional_args: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("additional_args", "additionalArgs"),
        description="Extra flags inserted before the task instruction.",
    )


class SwarmConfig(BaseModel):
    """Worker pool settings."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    workers: int = Field(default=1, ge=1, description="Number of concurrent agents.")
    interactive: bool = Field(
        default=False, description="Share the terminal with agents instead of prefixing output."
    )
    auto_approve: bool = Field(
        default=False,
        validation_alias=AliasChoices("auto_approve", "autoApprove"),
        description="Let agents run tools without asking for permission.",
    )
    worktree_dir: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("worktree_dir", "worktreeDir"),
        description="Where agent worktrees are created (default: <repo>/.worktrees).",
    )


@dataclass
class ConfigLoadResult:
    path: Path | None
    file_loaded: bool
    env_overrides: set[str] = field(default_factory=set)
    error: str | None = None


class AppConfig(BaseSettings):
    """Application-wide configuration with nested sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="AOA_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    agent: AgentConfig = Field(default_factory=AgentConfig)
    swarm: SwarmConfig = Field(default_factory=SwarmConfig)
    log_level: str = Field(default="INFO", description="Log level for aoa output.")

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
        # Ensure environment variables override config file entries.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


def _resolve_config_path(config_path: Path | None, env_vars: Mapping[str, str]) -> Path | None:
    candidate = config_path or env_vars.get(CONFIG_ENV_VAR)
    if not candidate:
        return None
    return Path(candidate).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read {path}: {exc}") from exc

    parser = tomllib.loads if path.suffix.lower() == ".toml" else json.loads

    try:
        data = parser(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Syntax error in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config root in {path} must be a mapping.")

    # Older configs keep agent settings under "claude".
    if "claude" in data and "agent" not in data:
        data["agent"] = data.pop("claude")

    return data


def _detect_env_overrides(env_vars: Mapping[str, str]) -> set[str]:
    """Detect which fields are overridden by environment variables.

    For nested models, detects vars like AOA_AGENT__MODEL, AOA_SWARM__WORKERS.
    """
    prefix = AppConfig.model_config.get("env_prefix", "")
    delimiter = AppConfig.model_config.get("env_nested_delimiter", "__")
    overrides: set[str] = set()

    nested_models: dict[str, type[BaseModel]] = {
        "agent": AgentConfig,
        "swarm": SwarmConfig,
    }

    for group_name, model_cls in nested_models.items():
        for name in model_cls.model_fields:
            env_key = f"{prefix}{group_name}{delimiter}{name}".upper()
            if env_key in env_vars:
                overrides.add(f"{group_name}.{name}")

    if f"{prefix}LOG_LEVEL" in env_vars:
        overrides.add("log_level")

    return overrides


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[AppConfig, ConfigLoadResult]:
    """
    Load configuration with Safe Mode fallback.
    If the file is missing or invalid, returns default config + error message.
    """
    env_vars: Mapping[str, str] = os.environ if env is None else {**os.environ, **env}
    resolved_path = _resolve_config_path(config_path, env_vars)
    env_overrides = _detect_env_overrides(env_vars)

    error: str | None = None
    file_loaded = False
    file_data: dict[str, Any] = {}

    if resolved_path is not None:
        try:
            file_data = _read_config_file(resolved_path)
            file_loaded = True
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
        file_loaded = False
        with context_manager:
            try:
                config = AppConfig()
            except ValidationError:
                config = AppConfig.model_construct()

    load_result = ConfigLoadResult(
        path=resolved_path,
        file_loaded=file_loaded,
        env_overrides=env_overrides,
        error=error,
    )

    return config, load_result


__all__ = [
    "AgentConfig",
    "AppConfig",
    "ConfigError",
    "ConfigLoadResult",
    "SwarmConfig",
    "load_config",
]
