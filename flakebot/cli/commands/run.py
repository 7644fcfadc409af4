"""``flakebot run`` — update every repository in the config file."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from flakebot.cli.commands._common import (
    EXIT_CACHE_DIR,
    EXIT_REPOSITORY_FAILED,
    load_config_or_exit,
)
from flakebot.config import BotConfig
from flakebot.core.orchestrator import UpdateOrchestrator
from flakebot.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def run_cmd(
    config: Optional[Path] = typer.Argument(
        None,
        help="Config file. Defaults to $XDG_CONFIG_HOME/flakebot/config.json.",
    ),
    verbosity: Optional[str] = typer.Option(
        None,
        "--verbosity",
        "-v",
        help="Log level (ERROR, WARNING, INFO, DEBUG). Defaults to FLAKEBOT_LOG_LEVEL.",
    ),
) -> None:
    """Update flake.lock in every configured repository.

    Exits 1 if any repository failed; the failure is also reported on
    the repository's forge.
    """
    bot_config = BotConfig()
    try:
        configure_logging(verbosity or bot_config.log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--verbosity") from exc

    try:
        bot_config.cache_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Failed to create a cache directory: %s", exc)
        raise typer.Exit(EXIT_CACHE_DIR) from exc

    fleet = load_config_or_exit(config or bot_config.config_file)
    logger.debug("%r", fleet)

    orchestrator = UpdateOrchestrator(fleet, bot_config.cache_dir, bot_config=bot_config)
    if not asyncio.run(orchestrator.run()):
        raise typer.Exit(EXIT_REPOSITORY_FAILED)
