"""``flakebot diff-locks`` — diff the root dependencies of two lock files."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from flakebot.cli.commands._common import EXIT_DIFF_FAILED
from flakebot.config import BotConfig
from flakebot.core.lockfile import LockError, diff_locks, parse_lock
from flakebot.core.render import render_markdown, render_plain
from flakebot.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def _read(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        logger.error("Unable to read %s: %s", path, exc)
        raise typer.Exit(EXIT_DIFF_FAILED) from exc


def diff_locks_cmd(
    old: Path = typer.Argument(..., help="The old flake.lock."),
    new: Path = typer.Argument(..., help="The new flake.lock."),
    markdown: bool = typer.Option(
        False, "--markdown", "-m", help="Print the markdown table used in request bodies."
    ),
) -> None:
    """Print what changed between two flake.lock files."""
    configure_logging(BotConfig().log_level)
    old_text, new_text = _read(old), _read(new)
    try:
        old_lock, new_lock = parse_lock(old_text), parse_lock(new_text)
        logger.debug("old:\n%r", old_lock)
        logger.debug("new:\n%r", new_lock)
        diff = diff_locks(old_lock, new_lock)
    except LockError as exc:
        logger.error("Unable to generate a diff: %s", exc)
        raise typer.Exit(EXIT_DIFF_FAILED) from exc

    logger.debug("diff:\n%r", diff)
    # Plain echo: rich markup would eat the markdown link brackets.
    typer.echo(render_markdown(diff) if markdown else render_plain(diff), nl=False)
