"""Backend for plain git remotes: no requests are ever sent."""

from __future__ import annotations

import logging

from flakebot.models.settings import GitNoneHandle

logger = logging.getLogger(__name__)


class NullSubmitter:
    def __init__(self, handle: GitNoneHandle) -> None:
        self._handle = handle

    async def submit_or_update(self, title: str, body: str, *, allow_create: bool = True) -> None:
        logger.warning("Not sending a pull request for %s", self._handle)

    async def submit_error_report(self, title: str, body: str) -> None:
        logger.warning("Not submitting an error report for %s", self._handle)
