"""flakebot CLI — Typer-based command-line interface.

Provides the ``flakebot`` command with subcommands for running a fleet
update, checking a config file, and diffing two lock files.
"""
