"""Helpers shared by the commands: exit statuses and config loading."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from flakebot.core.config_loader import ConfigParseError, ConfigReadError, load_fleet_config
from flakebot.models.settings import FleetConfig

logger = logging.getLogger(__name__)

EXIT_REPOSITORY_FAILED = 1
EXIT_DIFF_FAILED = 65
EXIT_CONFIG_UNREADABLE = 66
EXIT_CACHE_DIR = 77
EXIT_CONFIG_INVALID = 78


def load_config_or_exit(path: Path) -> FleetConfig:
    try:
        return load_fleet_config(path)
    except ConfigReadError as exc:
        logger.error("%s", exc)
        raise typer.Exit(EXIT_CONFIG_UNREADABLE) from exc
    except ConfigParseError as exc:
        logger.error("%s", exc)
        raise typer.Exit(EXIT_CONFIG_INVALID) from exc
