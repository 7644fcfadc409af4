"""Root logger configuration for the command-line entry points."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr through rich, replacing existing handlers.

    Raises ``ValueError`` for an unknown level name.
    """
    name = level.upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"Unknown log level {level!r}; expected one of {', '.join(LOG_LEVELS)}")

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(
        level=name,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(max(logging.WARNING, logging.getLevelName(name)))
