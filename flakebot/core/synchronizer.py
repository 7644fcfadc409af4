"""Repository synchronizer — local working copies and the update branch.

One working copy is kept per remote URL under the cache directory.  Every
operation ends in a *force checkout* (detach, hard reset, recreate branch,
switch HEAD) so that a run interrupted at any point leaves nothing the next
run has to clean up.

Every plumbing failure is raised as a ``SyncError`` subclass tagged with the
``SyncStep`` that failed.  Nothing here retries.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from flakebot.core.branch_machine import (
    CHECKOUT_SOURCE,
    BranchState,
    CheckoutSource,
    classify_update_branch,
)
from flakebot.core.hasher import working_copy_dirname
from flakebot.models.settings import Author, UpdateSettings
from flakebot.vcs import GitError, ResetMode, Signer, VersionControl
from flakebot.vcs.signing import GpgSigner, SigningError, embed_signature

logger = logging.getLogger(__name__)

ORIGIN = "origin"


class SyncStep(str, Enum):
    """The plumbing operation a ``SyncError`` failed in."""

    OPEN_REPOSITORY = "opening existing repository"
    SET_REMOTE_URL = "setting remote URL for existing repository"
    FETCH = "fetching for existing repository"
    CREATE_CLONE_DIR = "creating directory for cloning"
    CLONE = "cloning repository"
    CLEAN_FAILED_CLONE = "cleaning up after failed clone"
    FIND_DEFAULT_BRANCH = "finding default branch on repository"
    FIND_UPDATE_BRANCH = "finding update branch on repository"
    COMPARE_BRANCHES = "comparing update branch with default branch"
    CHECK_UPDATE_BRANCH_AUTHOR = "checking update branch authorship"
    CHECKOUT = "force-checking out branch"
    STAGE = "adding files to index"
    WRITE_TREE = "writing index as tree"
    FIND_HEAD = "retrieving head"
    COMMIT = "creating new commit"
    SIGN = "signing commit"
    UPDATE_REF = "updating branch reference"
    PUSH = "pushing to remote"


class SyncError(RuntimeError):
    """Base class for synchronizer failures."""

    def __init__(self, step: SyncStep, cause: object = None) -> None:
        self.step = step
        self.cause = cause
        message = f"Error {step.value}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class InitError(SyncError):
    """Raised while opening or cloning the working copy."""


class SetupError(SyncError):
    """Raised while setting up the update branch."""


class HumanCommitsInUpdateBranchError(SetupError):
    """The remote update branch carries commits the bot did not author."""

    def __init__(self, branch: str, author: Author | None) -> None:
        self.branch = branch
        self.author = author
        who = f"{author.name} <{author.email}>" if author else "an unknown author"
        super().__init__(
            SyncStep.CHECK_UPDATE_BRANCH_AUTHOR,
            f"the tip of {branch!r} was authored by {who}, not the bot; "
            f"refusing to overwrite human commits",
        )


class CommitError(SyncError):
    """Raised while committing the lock update."""


class PushError(SyncError):
    """Raised while pushing the update branch."""


@contextmanager
def _failing_as(error_cls: type[SyncError], step: SyncStep) -> Iterator[None]:
    try:
        yield
    except (GitError, SigningError, OSError) as exc:
        raise error_cls(step, exc) from exc


class WorkingCopy:
    """A local clone of one remote, driven through a ``VersionControl``."""

    def __init__(self, vcs: VersionControl, remote_url: str) -> None:
        self.vcs = vcs
        self.remote_url = remote_url

    @property
    def path(self) -> Path:
        return self.vcs.path

    def __repr__(self) -> str:
        return f"WorkingCopy({self.remote_url!r}, path={str(self.path)!r})"


def _remote_ref(branch: str) -> str:
    return f"refs/remotes/{ORIGIN}/{branch}"


async def _remote_tip(
    working_copy: WorkingCopy, branch: str, error_cls: type[SyncError]
) -> str:
    with _failing_as(error_cls, SyncStep.FIND_DEFAULT_BRANCH):
        tip = await working_copy.vcs.resolve_commit(_remote_ref(branch))
    if tip is None:
        raise error_cls(SyncStep.FIND_DEFAULT_BRANCH, f"{ORIGIN}/{branch} does not exist")
    return tip


async def _force_checkout(
    working_copy: WorkingCopy, branch: str, commit: str, error_cls: type[SyncError]
) -> None:
    vcs = working_copy.vcs
    with _failing_as(error_cls, SyncStep.CHECKOUT):
        # Detach first so recreating the branch never moves the checked-out one.
        await vcs.detach_head(commit)
        await vcs.reset(commit, ResetMode.HARD)
        await vcs.create_branch(branch, commit, force=True)
        await vcs.set_head(branch)
    logger.debug("%s: checked out %s at %s", working_copy.remote_url, branch, commit)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def init_working_copy(
    cache_dir: Path,
    remote_url: str,
    settings: UpdateSettings,
    vcs_factory: Callable[[Path], VersionControl],
) -> WorkingCopy:
    """Open or clone the working copy for *remote_url* and check out the default branch.

    An existing copy gets its ``origin`` URL repointed (the URL format of a
    repository may change between runs) and is fetched with pruning.  A
    failed clone leaves no directory behind.
    """
    repo_dir = Path(cache_dir) / working_copy_dirname(remote_url)
    vcs = vcs_factory(repo_dir)

    if repo_dir.exists():
        logger.debug("Repository %s found at %s", remote_url, repo_dir)
        if not (repo_dir / ".git").is_dir():
            raise InitError(SyncStep.OPEN_REPOSITORY, f"{repo_dir} is not a git working copy")
        with _failing_as(InitError, SyncStep.SET_REMOTE_URL):
            await vcs.set_remote_url(ORIGIN, remote_url)
        with _failing_as(InitError, SyncStep.FETCH):
            await vcs.fetch(ORIGIN, prune=True)
            await vcs.fetch(
                ORIGIN,
                [f"+refs/heads/{settings.default_branch}:{_remote_ref(settings.default_branch)}"],
            )
    else:
        logger.debug("Cloning %s to %s", remote_url, repo_dir)
        with _failing_as(InitError, SyncStep.CREATE_CLONE_DIR):
            repo_dir.mkdir(parents=True)
        try:
            await vcs.clone(remote_url)
        except GitError as exc:
            with _failing_as(InitError, SyncStep.CLEAN_FAILED_CLONE):
                shutil.rmtree(repo_dir)
            raise InitError(SyncStep.CLONE, exc) from exc

    working_copy = WorkingCopy(vcs, remote_url)
    default_tip = await _remote_tip(working_copy, settings.default_branch, InitError)
    await _force_checkout(working_copy, settings.default_branch, default_tip, InitError)
    return working_copy


async def setup_update_branch(working_copy: WorkingCopy, settings: UpdateSettings) -> BranchState:
    """Check out the local update branch, rebuilt or reused per ``BranchState``.

    Raises ``HumanCommitsInUpdateBranchError`` instead of overwriting a
    branch whose tip someone else authored.
    """
    vcs = working_copy.vcs
    default_tip = await _remote_tip(working_copy, settings.default_branch, SetupError)

    with _failing_as(SetupError, SyncStep.FIND_UPDATE_BRANCH):
        update_tip = await vcs.resolve_commit(_remote_ref(settings.update_branch))

    behind = 0
    tip_author: Author | None = None
    if update_tip is not None and update_tip != default_tip:
        with _failing_as(SetupError, SyncStep.COMPARE_BRANCHES):
            _, behind = await vcs.ahead_behind(update_tip, default_tip)
        with _failing_as(SetupError, SyncStep.CHECK_UPDATE_BRANCH_AUTHOR):
            tip_author = await vcs.commit_author(update_tip)

    state = classify_update_branch(
        default_tip=default_tip,
        update_tip=update_tip,
        behind=behind,
        tip_author=tip_author,
        bot_author=settings.author,
    )
    logger.info(
        "%s: %s is %s", working_copy.remote_url, settings.update_branch, state.value
    )

    if state is BranchState.REMOTE_UPDATE_BRANCH_HUMAN:
        raise HumanCommitsInUpdateBranchError(settings.update_branch, tip_author)

    target = default_tip
    if CHECKOUT_SOURCE[state] is CheckoutSource.UPDATE_BRANCH and update_tip is not None:
        target = update_tip
    await _force_checkout(working_copy, settings.update_branch, target, SetupError)
    return state


async def commit(
    working_copy: WorkingCopy,
    settings: UpdateSettings,
    message: str,
    *,
    signer: Signer | None = None,
) -> str:
    """Commit every working-tree change on top of HEAD and return the commit id.

    The commit message is ``"{title}\\n\\n{message}"``.  With
    ``settings.sign_commits`` the commit object is signed and the update
    branch is pointed at the signed object instead.
    """
    vcs = working_copy.vcs
    with _failing_as(CommitError, SyncStep.STAGE):
        await vcs.stage_all()
    with _failing_as(CommitError, SyncStep.WRITE_TREE):
        tree = await vcs.write_tree()
    with _failing_as(CommitError, SyncStep.FIND_HEAD):
        parent = await vcs.resolve_commit("HEAD")
    if parent is None:
        raise CommitError(SyncStep.FIND_HEAD, "HEAD does not point to a commit")

    with _failing_as(CommitError, SyncStep.COMMIT):
        commit_id = await vcs.commit_tree(
            tree, [parent], settings.author, f"{settings.title}\n\n{message}"
        )

    ref = "HEAD"
    if settings.sign_commits:
        signer = signer or GpgSigner(settings.signing_key)
        with _failing_as(CommitError, SyncStep.SIGN):
            raw = await vcs.read_commit(commit_id)
            signature = await signer.sign(raw)
            commit_id = await vcs.write_commit(embed_signature(raw, signature))
        ref = f"refs/heads/{settings.update_branch}"

    with _failing_as(CommitError, SyncStep.UPDATE_REF):
        await vcs.update_ref(ref, commit_id)
    logger.info("%s: committed %s on %s", working_copy.remote_url, commit_id, settings.update_branch)
    return commit_id


async def push(working_copy: WorkingCopy, settings: UpdateSettings) -> None:
    """Force-push the local update branch to ``origin`` under the same name."""
    branch = settings.update_branch
    with _failing_as(PushError, SyncStep.PUSH):
        await working_copy.vcs.push(ORIGIN, f"+refs/heads/{branch}:refs/heads/{branch}")
    logger.info("%s: pushed %s", working_copy.remote_url, branch)
