"""GitLab backend: merge requests, issues and notes through the REST v4 API."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from flakebot.forges._http import normalize_base_url, read_token, request_json
from flakebot.models.settings import GitLabHandle, UpdateSettings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://gitlab.com"
DEFAULT_TOKEN_ENV_VAR = "GITLAB_TOKEN"


class GitLabSubmitter:
    """Opens and refreshes the update merge request of one GitLab project.

    Error reports go, in order of preference, to the open merge request, to
    an open issue the bot itself filed earlier, or to a new issue.
    """

    def __init__(
        self,
        handle: GitLabHandle,
        settings: UpdateSettings,
        client: httpx.AsyncClient,
        *,
        token: str | None = None,
    ) -> None:
        self._handle = handle
        self._settings = settings
        self._client = client
        self._api = f"{normalize_base_url(handle.base_url or DEFAULT_BASE_URL)}/api/v4"
        token = token or read_token(handle.token_env_var or DEFAULT_TOKEN_ENV_VAR)
        self._headers = {"PRIVATE-TOKEN": token}

    def _project_url(self, project_id: str | int | None = None) -> str:
        project = self._handle.project if project_id is None else str(project_id)
        return f"{self._api}/projects/{quote(project, safe='')}"

    async def _request(self, method: str, url: str, **kwargs):
        return await request_json(self._client, method, url, headers=self._headers, **kwargs)

    async def find_open_merge_request(self) -> dict | None:
        merge_requests = await self._request(
            "GET",
            f"{self._project_url()}/merge_requests",
            params={
                "state": "opened",
                "source_branch": self._settings.update_branch,
                "target_branch": self._settings.default_branch,
            },
        )
        return merge_requests[0] if merge_requests else None

    async def submit_or_update(self, title: str, body: str, *, allow_create: bool = True) -> None:
        mr = await self.find_open_merge_request()
        if mr is not None:
            updated = await self._request(
                "PUT",
                f"{self._project_url(mr['project_id'])}/merge_requests/{mr['iid']}",
                json={"title": title, "description": body},
            )
            logger.info("Updated MR %s", (updated or mr).get("web_url", mr["iid"]))
            return

        if not allow_create:
            logger.debug("%s: no open MR and creation not allowed", self._handle)
            return

        created = await self._request(
            "POST",
            f"{self._project_url()}/merge_requests",
            json={
                "source_branch": self._settings.update_branch,
                "target_branch": self._settings.default_branch,
                "title": title,
                "description": body,
            },
        )
        logger.info("Created MR %s", created.get("web_url", created.get("iid")))

    async def submit_error_report(self, title: str, body: str) -> None:
        mr = await self.find_open_merge_request()
        if mr is not None:
            await self._request(
                "POST",
                f"{self._project_url(mr['project_id'])}/merge_requests/{mr['iid']}/notes",
                json={"body": body},
            )
            logger.info("Commented on MR %s", mr.get("web_url", mr["iid"]))
            return

        me = await self._request("GET", f"{self._api}/user")
        # Matches unrelated issues if the bot's account is shared with humans.
        issues = await self._request(
            "GET",
            f"{self._project_url()}/issues",
            params={"state": "opened", "author_id": me["id"]},
        )
        if len(issues) > 1:
            logger.warning(
                "%s: more than one open issue by %s; commenting on the first",
                self._handle,
                me.get("username", me["id"]),
            )
        if issues:
            issue = issues[0]
            await self._request(
                "POST",
                f"{self._project_url(issue['project_id'])}/issues/{issue['iid']}/notes",
                json={"body": body},
            )
            logger.info("Commented on issue %s", issue.get("web_url", issue["iid"]))
            return

        created = await self._request(
            "POST",
            f"{self._project_url()}/issues",
            json={"title": title, "description": body},
        )
        logger.info("Opened issue %s", created.get("web_url", created.get("iid")))
