"""Stable hashing helpers for cache layout.

Working copies are keyed by a hash of the remote URL: identical URLs must
map to the same directory across runs and processes, which rules out the
salted built-in ``hash()``.
"""

from __future__ import annotations

import hashlib


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def working_copy_dirname(remote_url: str) -> str:
    """Directory name for the working copy cloned from *remote_url*."""
    return sha256_hex(remote_url.encode("utf-8"))
