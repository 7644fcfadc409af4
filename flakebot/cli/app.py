"""Main Typer application — registers all CLI commands.

Entry point: ``flakebot`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from flakebot.cli.commands.check_config import check_config_cmd
from flakebot.cli.commands.diff_locks import diff_locks_cmd
from flakebot.cli.commands.run import run_cmd

app = typer.Typer(
    name="flakebot",
    help="flakebot: keep flake.lock files up to date through pull and merge requests.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="run", help="Update every configured repository.")(run_cmd)
app.command(name="check-config", help="Parse a config file and show resolved settings.")(
    check_config_cmd
)
app.command(name="diff-locks", help="Print the root-dependency diff of two flake.lock files.")(
    diff_locks_cmd
)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
