"""Runs the external lock-updating command inside a working copy."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from flakebot.core.lockfile import root_dependency
from flakebot.models.lock import LockSnapshot
from flakebot.models.settings import UpdateSettings

logger = logging.getLogger(__name__)


class LockUpdateError(RuntimeError):
    """Raised when the lock update command cannot be run."""


class UnknownInputError(LockUpdateError):
    """A configured input is not a root dependency of the lock file."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Input {name} is missing from the flake.lock root nodes. Check "
            f"spelling or consider using the allow_missing_inputs configuration option."
        )


class LockUpdateCommandError(LockUpdateError):
    """The command ran but exited with a non-zero status."""

    def __init__(self, returncode: int | None, stderr: str) -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command was terminated or exited with a non-zero status "
            f"{returncode} and the following output:\n{stderr}"
        )


class NixLockUpdater:
    """Refreshes ``flake.lock`` with ``nix flake update`` / ``nix flake lock``.

    Parameters
    ----------
    nix_binary:
        Name or path of the nix executable.
    """

    def __init__(self, nix_binary: str = "nix") -> None:
        self._nix = nix_binary

    def command(self, settings: UpdateSettings, lock: LockSnapshot) -> list[str]:
        """Build the argument list for *settings*, validating requested inputs."""
        if not settings.inputs:
            return [self._nix, "flake", "update", "--no-warn-dirty"]

        args = [self._nix, "flake", "lock"]
        for name in settings.inputs:
            if not settings.allow_missing_inputs and root_dependency(lock, name) is None:
                raise UnknownInputError(name)
            args += ["--update-input", name]
        args.append("--no-warn-dirty")
        return args

    async def update(self, workdir: Path, settings: UpdateSettings, lock: LockSnapshot) -> None:
        """Update the lock file in *workdir*; *lock* is its current content."""
        args = self.command(settings, lock)
        logger.debug("Running %s in %s", " ".join(args), workdir)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(workdir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise LockUpdateError(f"Error while running the command: {exc}") from exc

        stdout, stderr = await proc.communicate()
        output = stdout.decode("utf-8", "replace").strip()
        if output:
            logger.info("%s", output)
        if proc.returncode != 0:
            raise LockUpdateCommandError(proc.returncode, stderr.decode("utf-8", "replace"))
