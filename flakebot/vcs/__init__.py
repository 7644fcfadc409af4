"""Version-control capability used by the repository synchronizer.

The synchronizer never talks to git directly.  It drives an object that
satisfies the ``VersionControl`` protocol, bound to one working-copy
directory.  ``flakebot.vcs.git_cli.GitCli`` is the production backend;
tests substitute an in-memory fake.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from flakebot.models.settings import Author


class GitError(RuntimeError):
    """Raised when a git operation fails.

    Attributes
    ----------
    command:
        The git arguments that were run (without the binary).
    returncode:
        Exit status, or ``None`` when the process could not be started.
    stderr:
        Captured standard error, stripped.
    """

    def __init__(self, command: Sequence[str], returncode: int | None, stderr: str) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stderr = stderr
        status = "could not be started" if returncode is None else f"exited with {returncode}"
        detail = f": {stderr}" if stderr else ""
        super().__init__(f"git {' '.join(self.command)} {status}{detail}")


class ResetMode(str, Enum):
    SOFT = "soft"
    HARD = "hard"


@runtime_checkable
class VersionControl(Protocol):
    """Plumbing operations on a single working copy.

    Every method raises ``GitError`` on failure.
    """

    @property
    def path(self) -> Path:
        """Root directory of the working copy."""
        ...

    async def clone(self, url: str) -> None: ...

    async def set_remote_url(self, remote: str, url: str) -> None: ...

    async def fetch(self, remote: str, refspecs: Sequence[str] = (), *, prune: bool = False) -> None: ...

    async def resolve_commit(self, ref: str) -> str | None:
        """Return the commit id *ref* points to, or ``None`` if it does not exist."""
        ...

    async def commit_author(self, commit: str) -> Author: ...

    async def reset(self, commit: str, mode: ResetMode) -> None: ...

    async def detach_head(self, commit: str) -> None: ...

    async def create_branch(self, name: str, commit: str, *, force: bool = False) -> None: ...

    async def set_head(self, branch: str) -> None: ...

    async def ahead_behind(self, commit: str, upstream: str) -> tuple[int, int]:
        """Return ``(ahead, behind)`` of *commit* relative to *upstream*."""
        ...

    async def stage_all(self) -> None: ...

    async def write_tree(self) -> str: ...

    async def commit_tree(
        self, tree: str, parents: Sequence[str], author: Author, message: str
    ) -> str: ...

    async def read_commit(self, commit: str) -> bytes:
        """Return the raw commit object of *commit*."""
        ...

    async def write_commit(self, raw: bytes) -> str:
        """Store a raw commit object and return its id."""
        ...

    async def update_ref(self, ref: str, commit: str) -> None: ...

    async def push(self, remote: str, refspec: str) -> None: ...


@runtime_checkable
class Signer(Protocol):
    """Produces detached ASCII-armored signatures for commit objects."""

    async def sign(self, data: bytes) -> str: ...
