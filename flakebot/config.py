"""Runtime configuration, env-driven and XDG-aware.

Process-level knobs read from ``FLAKEBOT_*`` environment variables or a
``.env`` file.  Per-repository update settings live in the fleet config
file instead; see ``flakebot.core.config_loader``.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_DIR_NAME = "flakebot"


def _xdg_dir(variable: str, fallback: str) -> Path:
    value = os.environ.get(variable)
    # XDG says relative values are invalid and must be ignored.
    if value and os.path.isabs(value):
        return Path(value)
    return Path.home() / fallback


def default_cache_dir() -> Path:
    return _xdg_dir("XDG_CACHE_HOME", ".cache") / APP_DIR_NAME


def default_config_file() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / APP_DIR_NAME / "config.json"


class BotConfig(BaseSettings):
    """Runtime configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export FLAKEBOT_CACHE_DIR=/var/cache/flakebot
        export FLAKEBOT_LOG_LEVEL=DEBUG
        export FLAKEBOT_NIX_BINARY=/run/current-system/sw/bin/nix
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FLAKEBOT_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage paths
    cache_dir: Path = Field(default_factory=default_cache_dir)
    config_file: Path = Field(default_factory=default_config_file)

    log_level: str = "INFO"

    # External tools
    nix_binary: str = "nix"
    git_binary: str = "git"
    gpg_binary: str = "gpg"

    # Forge API
    http_timeout_seconds: float = 30.0
