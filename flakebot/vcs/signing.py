"""GPG commit signing.

A signed commit is the unsigned commit object with a ``gpgsig`` header
inserted after the committer line; the signature covers the unsigned
object.  Continuation lines of a multi-line header start with one space.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class SigningError(RuntimeError):
    """Raised when gpg fails to produce a signature."""


class GpgSigner:
    """Signs data with ``gpg --detach-sign --armor``.

    Parameters
    ----------
    key:
        Key id passed as ``--local-user``.  ``None`` uses gpg's default
        identity (or the agent's).
    gpg_binary:
        Name or path of the gpg executable.
    """

    def __init__(self, key: str | None = None, *, gpg_binary: str = "gpg") -> None:
        self._key = key
        self._gpg = gpg_binary

    async def sign(self, data: bytes) -> str:
        args = ["--batch", "--detach-sign", "--armor"]
        if self._key:
            args += ["--local-user", self._key]
        try:
            proc = await asyncio.create_subprocess_exec(
                self._gpg,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SigningError(f"Could not run {self._gpg}: {exc}") from exc
        stdout, stderr = await proc.communicate(data)
        if proc.returncode != 0:
            raise SigningError(
                f"{self._gpg} exited with {proc.returncode}: "
                f"{stderr.decode('utf-8', 'replace').strip()}"
            )
        logger.debug("Signed %d bytes with key %s", len(data), self._key or "<default>")
        return stdout.decode("ascii")


def embed_signature(raw_commit: bytes, signature: str) -> bytes:
    """Return *raw_commit* with *signature* added as its ``gpgsig`` header."""
    header, separator, message = raw_commit.partition(b"\n\n")
    lines = signature.strip("\n").split("\n")
    gpgsig = "gpgsig " + "\n ".join(lines)
    return header + b"\n" + gpgsig.encode("ascii") + separator + message
