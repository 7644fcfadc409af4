"""``VersionControl`` backend that runs the ``git`` executable.

Each call spawns ``git`` with ``asyncio.create_subprocess_exec`` so that a
repository task suspends on the subprocess instead of blocking the loop.
Authentication is whatever the environment provides (typically an ssh
agent); interactive prompts are disabled.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Sequence

from flakebot.models.settings import Author
from flakebot.vcs import GitError, ResetMode

logger = logging.getLogger(__name__)


class GitCli:
    """Runs git plumbing commands inside one working-copy directory.

    Parameters
    ----------
    path:
        The working-copy root.  It must exist before ``clone`` is called.
    git_binary:
        Name or path of the git executable.
    """

    def __init__(self, path: Path, *, git_binary: str = "git") -> None:
        self._path = Path(path)
        self._git = git_binary

    @property
    def path(self) -> Path:
        return self._path

    async def _run(
        self,
        *args: str,
        stdin: bytes | None = None,
        env: dict[str, str] | None = None,
    ) -> bytes:
        full_env = {**os.environ, "GIT_TERMINAL_PROMPT": "0", **(env or {})}
        logger.debug("git %s (in %s)", " ".join(args), self._path)
        try:
            proc = await asyncio.create_subprocess_exec(
                self._git,
                *args,
                cwd=str(self._path),
                env=full_env,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise GitError(args, None, str(exc)) from exc
        stdout, stderr = await proc.communicate(stdin)
        if proc.returncode != 0:
            raise GitError(args, proc.returncode, stderr.decode("utf-8", "replace").strip())
        return stdout

    async def _run_text(self, *args: str, **kwargs) -> str:
        return (await self._run(*args, **kwargs)).decode("utf-8", "replace").strip()

    # ------------------------------------------------------------------
    # Remotes
    # ------------------------------------------------------------------

    async def clone(self, url: str) -> None:
        await self._run("clone", "--quiet", "--", url, ".")

    async def set_remote_url(self, remote: str, url: str) -> None:
        await self._run("remote", "set-url", remote, url)

    async def fetch(self, remote: str, refspecs: Sequence[str] = (), *, prune: bool = False) -> None:
        args = ["fetch", "--quiet"]
        if prune:
            args.append("--prune")
        await self._run(*args, remote, *refspecs)

    async def push(self, remote: str, refspec: str) -> None:
        await self._run("push", "--quiet", remote, refspec)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    async def resolve_commit(self, ref: str) -> str | None:
        try:
            return await self._run_text("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        except GitError as exc:
            # --verify --quiet exits 1 with no output for a missing ref
            if exc.returncode == 1:
                return None
            raise

    async def commit_author(self, commit: str) -> Author:
        out = await self._run_text("log", "-1", "--format=%an%x00%ae", commit)
        name, _, email = out.partition("\x00")
        return Author(name=name, email=email)

    async def ahead_behind(self, commit: str, upstream: str) -> tuple[int, int]:
        out = await self._run_text("rev-list", "--left-right", "--count", f"{commit}...{upstream}")
        ahead, behind = out.split()
        return int(ahead), int(behind)

    async def read_commit(self, commit: str) -> bytes:
        return await self._run("cat-file", "commit", commit)

    # ------------------------------------------------------------------
    # Refs and working tree
    # ------------------------------------------------------------------

    async def reset(self, commit: str, mode: ResetMode) -> None:
        await self._run("reset", "--quiet", f"--{mode.value}", commit)

    async def detach_head(self, commit: str) -> None:
        await self._run("update-ref", "--no-deref", "HEAD", commit)

    async def create_branch(self, name: str, commit: str, *, force: bool = False) -> None:
        args = ["branch", "--no-track"]
        if force:
            args.append("--force")
        await self._run(*args, name, commit)

    async def set_head(self, branch: str) -> None:
        await self._run("symbolic-ref", "HEAD", f"refs/heads/{branch}")

    async def update_ref(self, ref: str, commit: str) -> None:
        await self._run("update-ref", ref, commit)

    # ------------------------------------------------------------------
    # Committing
    # ------------------------------------------------------------------

    async def stage_all(self) -> None:
        await self._run("add", "--all")

    async def write_tree(self) -> str:
        return await self._run_text("write-tree")

    async def commit_tree(
        self, tree: str, parents: Sequence[str], author: Author, message: str
    ) -> str:
        identity = {
            "GIT_AUTHOR_NAME": author.name,
            "GIT_AUTHOR_EMAIL": author.email,
            "GIT_COMMITTER_NAME": author.name,
            "GIT_COMMITTER_EMAIL": author.email,
        }
        parent_args = [arg for parent in parents for arg in ("-p", parent)]
        return await self._run_text(
            "commit-tree", tree, *parent_args, "-F", "-",
            stdin=message.encode("utf-8"),
            env=identity,
        )

    async def write_commit(self, raw: bytes) -> str:
        return await self._run_text("hash-object", "-t", "commit", "-w", "--stdin", stdin=raw)
