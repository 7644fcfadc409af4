"""Update orchestrator — runs the per-repository workflow across the fleet.

For each repository:

1. init the working copy and read the default branch lock (A)
2. set up the update branch and read its lock (B)
3. run the lock updater and read the result (C)
4. diff B→C (the new commit) and A→C (the request body)
5. commit + push + submit if B→C is non-empty; push + submit if only A→C
   is; otherwise do nothing

Every repository runs as its own ``asyncio`` task.  Submissions, including
error reports, pass through one shared ``SubmissionGate``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

import httpx

from flakebot.config import BotConfig
from flakebot.core.config_loader import (
    SettingsMissingFieldError,
    merge_settings,
    resolve_settings,
)
from flakebot.core.cooldown import SubmissionGate
from flakebot.core.lock_updater import LockUpdateError, NixLockUpdater
from flakebot.core.lockfile import LockError, diff_locks, read_lock
from flakebot.core.render import render_markdown, render_plain
from flakebot.core.synchronizer import (
    SyncError,
    commit,
    init_working_copy,
    push,
    setup_update_branch,
)
from flakebot.forges import (
    ERROR_REPORT_TITLE,
    ReadOnlyRepositoryError,
    RequestSubmitter,
    SubmissionError,
    build_submitter,
)
from flakebot.models.settings import FleetConfig, RepoEntry, RepoHandle, UpdateSettings
from flakebot.vcs import Signer, VersionControl
from flakebot.vcs.git_cli import GitCli
from flakebot.vcs.signing import GpgSigner

logger = logging.getLogger(__name__)

# Errors a stage may fail with; anything else is a bug and propagates.
_STAGE_ERRORS = (SyncError, LockError, LockUpdateError, SubmissionError, OSError)


class UpdateStage(str, Enum):
    INIT = "repository initialisation"
    READ_LOCK = "flake.lock reading"
    SETUP_UPDATE_BRANCH = "update branch setup"
    LOCK_UPDATE = "flake update"
    DIFF = "lockfile diffing"
    COMMIT = "git commit"
    PUSH = "git push"
    SUBMIT = "request submission"


class UpdateError(RuntimeError):
    """A repository update failed at *stage* because of *cause*."""

    def __init__(self, stage: UpdateStage, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"Error during {stage.value}: {cause}")


class UpdateOutcome(str, Enum):
    COMMITTED = "committed"  # new lock commit pushed, request submitted
    REFRESHED = "refreshed"  # no new commit, request refreshed against the default branch
    UP_TO_DATE = "up_to_date"
    READ_ONLY = "read_only"  # pushed, but the forge refused the request


@contextmanager
def _stage(stage: UpdateStage) -> Iterator[None]:
    try:
        yield
    except _STAGE_ERRORS as exc:
        raise UpdateError(stage, exc) from exc


def error_report_body(error: BaseException) -> str:
    return f"I tried updating flake.lock, but failed:\n\n```\n{error}\n```"


def request_body(markdown: str, extra_body: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{markdown}\nLast updated: {now}\n\n{extra_body}"


class UpdateOrchestrator:
    """Runs the update workflow for every repository of a fleet config.

    Parameters
    ----------
    fleet:
        The parsed config file.
    cache_dir:
        Directory holding one working copy per remote; must exist.
    bot_config:
        Runtime configuration.  Uses defaults if not provided.
    vcs_factory:
        Builds the ``VersionControl`` for a working-copy path.
    lock_updater:
        Object with an async ``update(workdir, settings, lock)``.
    submitter_factory:
        Builds the ``RequestSubmitter`` for a handle and its settings.
    signer_factory:
        Builds the commit ``Signer`` for settings with ``sign_commits``.
    gate:
        Shared submission gate.  Created here (stamped now) if omitted.
    """

    def __init__(
        self,
        fleet: FleetConfig,
        cache_dir: Path,
        *,
        bot_config: BotConfig | None = None,
        vcs_factory: Callable[[Path], VersionControl] | None = None,
        lock_updater: NixLockUpdater | None = None,
        submitter_factory: Callable[[RepoHandle, UpdateSettings], RequestSubmitter] | None = None,
        signer_factory: Callable[[UpdateSettings], Signer] | None = None,
        gate: SubmissionGate | None = None,
    ) -> None:
        self.fleet = fleet
        self.cache_dir = Path(cache_dir)
        self._config = bot_config or BotConfig()
        self._vcs_factory = vcs_factory or self._default_vcs
        self._lock_updater = lock_updater or NixLockUpdater(self._config.nix_binary)
        self._submitter_factory = submitter_factory or self._default_submitter
        self._signer_factory = signer_factory or self._default_signer
        self.gate = gate or SubmissionGate()
        self._client: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Default collaborators
    # ------------------------------------------------------------------

    def _default_vcs(self, path: Path) -> VersionControl:
        return GitCli(path, git_binary=self._config.git_binary)

    def _default_signer(self, settings: UpdateSettings) -> Signer:
        return GpgSigner(settings.signing_key, gpg_binary=self._config.gpg_binary)

    def _default_submitter(self, handle: RepoHandle, settings: UpdateSettings) -> RequestSubmitter:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.http_timeout_seconds)
        return build_submitter(handle, settings, self._client)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def settings_for(self, entry: RepoEntry) -> UpdateSettings:
        """Resolve *entry*'s override layer on top of the fleet default layer."""
        return resolve_settings(merge_settings(self.fleet.settings, entry.settings))

    async def update_repository(self, entry: RepoEntry, settings: UpdateSettings) -> UpdateOutcome:
        """Run the update workflow for one repository.

        Raises
        ------
        UpdateError
            Tagged with the stage that failed.
        """
        handle = entry.handle
        logger.info("Updating %s", handle)

        with _stage(UpdateStage.INIT):
            working_copy = await init_working_copy(
                self.cache_dir, handle.remote_url, settings, self._vcs_factory
            )
        workdir = working_copy.path

        with _stage(UpdateStage.READ_LOCK):
            default_branch_lock = read_lock(workdir)
        with _stage(UpdateStage.SETUP_UPDATE_BRANCH):
            await setup_update_branch(working_copy, settings)
        with _stage(UpdateStage.READ_LOCK):
            before = read_lock(workdir)
        with _stage(UpdateStage.LOCK_UPDATE):
            await self._lock_updater.update(workdir, settings, before)
        with _stage(UpdateStage.READ_LOCK):
            after = read_lock(workdir)

        with _stage(UpdateStage.DIFF):
            diff = diff_locks(before, after)
            diff_default = diff_locks(default_branch_lock, after)

        if diff:
            message = render_plain(diff)
            logger.info("%s:\n%s", handle, message)
            signer = self._signer_factory(settings) if settings.sign_commits else None
            with _stage(UpdateStage.COMMIT):
                await commit(working_copy, settings, message, signer=signer)
            outcome = UpdateOutcome.COMMITTED
        elif diff_default:
            logger.info("%s: Nothing to update", handle)
            outcome = UpdateOutcome.REFRESHED
        else:
            logger.info("%s: Nothing to update", handle)
            return UpdateOutcome.UP_TO_DATE

        with _stage(UpdateStage.PUSH):
            await push(working_copy, settings)

        body = request_body(render_markdown(diff_default), settings.extra_body)
        try:
            async with self.gate.slot(settings.cooldown):
                submitter = self._submitter_factory(handle, settings)
                await submitter.submit_or_update(settings.title, body, allow_create=True)
        except ReadOnlyRepositoryError as exc:
            logger.warning("%s: branch pushed but no request submitted: %s", handle, exc)
            return UpdateOutcome.READ_ONLY
        except SubmissionError as exc:
            raise UpdateError(UpdateStage.SUBMIT, exc) from exc
        return outcome

    async def report_error(self, entry: RepoEntry, settings: UpdateSettings, error: UpdateError) -> None:
        """Submit an error report for *error*; failures are only logged."""
        try:
            async with self.gate.slot(settings.cooldown):
                submitter = self._submitter_factory(entry.handle, settings)
                await submitter.submit_error_report(ERROR_REPORT_TITLE, error_report_body(error))
        except SubmissionError as exc:
            logger.error(
                "%s: An error occurred while submitting the error report: %s", entry.handle, exc
            )

    async def run_repository(self, entry: RepoEntry) -> bool:
        """Resolve settings, update, and report failures.  Returns success."""
        try:
            settings = self.settings_for(entry)
        except SettingsMissingFieldError as exc:
            logger.error("%s: %s", entry.handle, exc)
            return False

        try:
            outcome = await self.update_repository(entry, settings)
        except UpdateError as exc:
            logger.error("%s: %s", entry.handle, exc)
            await self.report_error(entry, settings, exc)
            return False

        logger.debug("%s: finished (%s)", entry.handle, outcome.value)
        return True

    async def run(self) -> bool:
        """Update every repository concurrently; ``True`` if all succeeded."""
        tasks = [
            asyncio.create_task(self.run_repository(entry), name=str(entry.handle))
            for entry in self.fleet.repos
        ]
        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            await self.aclose()

        ok = True
        for entry, result in zip(self.fleet.repos, results):
            if isinstance(result, BaseException):
                logger.error("%s: unexpected failure", entry.handle, exc_info=result)
                ok = False
            elif not result:
                ok = False
        if not ok:
            logger.error("Errors occurred, please see above logs")
        return ok
