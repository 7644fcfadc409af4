"""Update-branch state classification.

Before each run the remote update branch is classified into one of four
states.  The state decides which commit the local update branch is rebuilt
from:

- NO_REMOTE_UPDATE_BRANCH: start fresh from the default branch tip.
- REMOTE_UPDATE_BRANCH_CURRENT: reuse the remote update branch as-is.
- REMOTE_UPDATE_BRANCH_STALE: behind the default branch; start fresh.  The
  branch is force-pushed anyway, so rebuilding beats rebasing.
- REMOTE_UPDATE_BRANCH_HUMAN: the tip was authored by someone other than
  the bot; refuse to touch it.
"""

from __future__ import annotations

from enum import Enum

from flakebot.models.settings import Author


class BranchState(str, Enum):
    """State of the remote update branch relative to the default branch."""

    NO_REMOTE_UPDATE_BRANCH = "no_remote_update_branch"
    REMOTE_UPDATE_BRANCH_CURRENT = "remote_update_branch_current"
    REMOTE_UPDATE_BRANCH_STALE = "remote_update_branch_stale"
    REMOTE_UPDATE_BRANCH_HUMAN = "remote_update_branch_human"


class CheckoutSource(str, Enum):
    DEFAULT_BRANCH = "default_branch"
    UPDATE_BRANCH = "update_branch"


# Which tip the local update branch is rebuilt from.  HUMAN has no entry.
CHECKOUT_SOURCE: dict[BranchState, CheckoutSource] = {
    BranchState.NO_REMOTE_UPDATE_BRANCH: CheckoutSource.DEFAULT_BRANCH,
    BranchState.REMOTE_UPDATE_BRANCH_STALE: CheckoutSource.DEFAULT_BRANCH,
    BranchState.REMOTE_UPDATE_BRANCH_CURRENT: CheckoutSource.UPDATE_BRANCH,
}


def is_bot_identity(author: Author, bot: Author) -> bool:
    """Whether *author* is the bot's configured commit identity."""
    return author.name == bot.name and author.email.lower() == bot.email.lower()


def classify_update_branch(
    *,
    default_tip: str,
    update_tip: str | None,
    behind: int,
    tip_author: Author | None,
    bot_author: Author,
) -> BranchState:
    """Classify the remote update branch.

    Parameters
    ----------
    default_tip:
        Commit id of the remote default branch.
    update_tip:
        Commit id of the remote update branch, ``None`` if it does not exist.
    behind:
        Commits on the default branch missing from the update branch.
    tip_author:
        Author of *update_tip*.  Only consulted when the tips differ.
    bot_author:
        The bot's configured identity.
    """
    if update_tip is None:
        return BranchState.NO_REMOTE_UPDATE_BRANCH
    if update_tip == default_tip:
        # Nothing on the branch that could belong to a human.
        return BranchState.REMOTE_UPDATE_BRANCH_CURRENT
    if tip_author is None or not is_bot_identity(tip_author, bot_author):
        return BranchState.REMOTE_UPDATE_BRANCH_HUMAN
    if behind > 0:
        return BranchState.REMOTE_UPDATE_BRANCH_STALE
    return BranchState.REMOTE_UPDATE_BRANCH_CURRENT
