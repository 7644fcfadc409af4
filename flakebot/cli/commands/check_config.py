"""``flakebot check-config`` — validate a config file and show resolved settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from flakebot.cli.commands._common import load_config_or_exit
from flakebot.config import BotConfig
from flakebot.core.config_loader import (
    SettingsMissingFieldError,
    merge_settings,
    resolve_settings,
)
from flakebot.logging_setup import configure_logging

console = Console()


def _format_cooldown(settings) -> str:
    return f"{int(settings.cooldown.total_seconds() * 1000)} ms"


def check_config_cmd(
    config: Optional[Path] = typer.Argument(
        None,
        help="Config file. Defaults to $XDG_CONFIG_HOME/flakebot/config.json.",
    ),
) -> None:
    """Parse the config file and resolve every repository's settings.

    Incomplete default settings are allowed as long as each repository
    completes them; repositories that do not are listed in red.
    """
    bot_config = BotConfig()
    configure_logging(bot_config.log_level)
    fleet = load_config_or_exit(config or bot_config.config_file)

    try:
        defaults = resolve_settings(fleet.settings)
    except SettingsMissingFieldError as exc:
        console.print(
            Panel(
                f"The default settings are incomplete, you must complete them "
                f"for each separate repo: {exc}",
                title="[bold]Default settings[/bold]",
                border_style="yellow",
            )
        )
    else:
        console.print(
            Panel(
                "\n".join([
                    "[bold green]Default settings are complete.[/bold green]",
                    "",
                    f"[bold]Author:[/bold]         {defaults.author.name} <{defaults.author.email}>",
                    f"[bold]Update branch:[/bold]  {defaults.update_branch}",
                    f"[bold]Default branch:[/bold] {defaults.default_branch}",
                    f"[bold]Cooldown:[/bold]       {_format_cooldown(defaults)}",
                ]),
                title="[bold]Default settings[/bold]",
                border_style="green",
            )
        )

    if not fleet.repos:
        console.print("[dim]No repositories configured.[/dim]")
        return

    table = Table(title="Repositories")
    table.add_column("Repository", style="cyan")
    table.add_column("Forge")
    table.add_column("Update branch")
    table.add_column("Default branch")
    table.add_column("Inputs")
    table.add_column("Cooldown", justify="right")
    table.add_column("Status")

    for entry in fleet.repos:
        try:
            settings = resolve_settings(merge_settings(fleet.settings, entry.settings))
        except SettingsMissingFieldError as exc:
            table.add_row(str(entry.handle), entry.handle.type, "", "", "", "", f"[red]{exc}[/red]")
            continue
        table.add_row(
            str(entry.handle),
            entry.handle.type,
            settings.update_branch,
            settings.default_branch,
            ", ".join(settings.inputs) or "(all)",
            _format_cooldown(settings),
            "[green]OK[/green]",
        )

    console.print(table)
