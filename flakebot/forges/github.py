"""GitHub backend: pull requests and issues through the REST v3 API."""

from __future__ import annotations

import logging

import httpx

from flakebot.forges._http import normalize_base_url, read_token, request_json
from flakebot.models.settings import GitHubHandle, UpdateSettings

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TOKEN_ENV_VAR = "GITHUB_TOKEN"


class GitHubSubmitter:
    """Opens and refreshes the update pull request of one GitHub repository.

    Parameters
    ----------
    handle:
        The repository.  ``base_url`` overrides the API root (GitHub
        Enterprise); ``token_env_var`` overrides ``GITHUB_TOKEN``.
    settings:
        Supplies the head (update) and base (default) branch names.
    client:
        Shared HTTP client.
    token:
        API token; read from the environment when omitted.
    """

    def __init__(
        self,
        handle: GitHubHandle,
        settings: UpdateSettings,
        client: httpx.AsyncClient,
        *,
        token: str | None = None,
    ) -> None:
        self._handle = handle
        self._settings = settings
        self._client = client
        self._api = normalize_base_url(handle.base_url or DEFAULT_API_URL)
        token = token or read_token(handle.token_env_var or DEFAULT_TOKEN_ENV_VAR)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    @property
    def _repo_url(self) -> str:
        return f"{self._api}/repos/{self._handle.owner}/{self._handle.repo}"

    async def _request(self, method: str, path: str, **kwargs):
        return await request_json(
            self._client, method, f"{self._repo_url}{path}", headers=self._headers, **kwargs
        )

    async def find_open_pull_request(self) -> dict | None:
        """Return the open PR from the update branch into the default branch."""
        pulls = await self._request(
            "GET",
            "/pulls",
            params={
                "state": "open",
                "head": f"{self._handle.owner}:{self._settings.update_branch}",
                "base": self._settings.default_branch,
            },
        )
        return pulls[0] if pulls else None

    async def submit_or_update(self, title: str, body: str, *, allow_create: bool = True) -> None:
        pull = await self.find_open_pull_request()
        if pull is not None:
            await self._request("PATCH", f"/pulls/{pull['number']}", json={"title": title, "body": body})
            logger.info("Updated PR %s", pull.get("html_url", pull["number"]))
            return

        if not allow_create:
            logger.debug("%s: no open PR and creation not allowed", self._handle)
            return

        created = await self._request(
            "POST",
            "/pulls",
            json={
                "title": title,
                "head": self._settings.update_branch,
                "base": self._settings.default_branch,
                "body": body,
                "maintainer_can_modify": True,
            },
        )
        logger.info("Submitted PR %s", created.get("html_url", created.get("number")))

    async def submit_error_report(self, title: str, body: str) -> None:
        pull = await self.find_open_pull_request()
        if pull is not None:
            await self._request("POST", f"/issues/{pull['number']}/comments", json={"body": body})
            logger.info("Commented on PR %s", pull.get("html_url", pull["number"]))
            return

        issue = await self._request("POST", "/issues", json={"title": title, "body": body})
        logger.info("Opened issue %s", issue.get("html_url", issue.get("number")))
