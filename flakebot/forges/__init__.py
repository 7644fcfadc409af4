"""Request submitter protocol and factory.

A request submitter opens or refreshes the update request (pull request,
merge request) for one repository and files error reports when a run fails.
It is bound to one repository handle and to the update/default branch
names of that repository's settings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import httpx

    from flakebot.models.settings import RepoHandle, UpdateSettings

ERROR_REPORT_TITLE = "Failed to automatically update flake.lock"


class SubmissionError(RuntimeError):
    """Raised when a forge API call fails."""


class ReadOnlyRepositoryError(SubmissionError):
    """The token has no write access to the repository (HTTP 403)."""


class MissingTokenError(SubmissionError):
    """The environment variable holding the API token is unset."""

    def __init__(self, env_var: str) -> None:
        self.env_var = env_var
        super().__init__(f"Couldn't get a token from the {env_var} env var")


@runtime_checkable
class RequestSubmitter(Protocol):
    """Protocol that every forge backend implements."""

    async def submit_or_update(self, title: str, body: str, *, allow_create: bool = True) -> None:
        """Update the open request's title and body, or create one.

        Parameters
        ----------
        title, body:
            Request title and markdown body.
        allow_create:
            When ``False`` and no request is open, do nothing.
        """
        ...

    async def submit_error_report(self, title: str, body: str) -> None:
        """Report a failed run where the repository's maintainers will see it."""
        ...


def build_submitter(
    handle: RepoHandle, settings: UpdateSettings, client: httpx.AsyncClient
) -> RequestSubmitter:
    """Return the submitter for *handle*'s forge.

    Raises
    ------
    MissingTokenError
        If the forge needs a token and its env var is unset.
    """
    from flakebot.forges.github import GitHubSubmitter
    from flakebot.forges.gitlab import GitLabSubmitter
    from flakebot.forges.null import NullSubmitter

    if handle.type == "github":
        return GitHubSubmitter(handle, settings, client)
    if handle.type == "gitlab":
        return GitLabSubmitter(handle, settings, client)
    return NullSubmitter(handle)
