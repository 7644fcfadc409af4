"""Update settings and repository handle models.

Settings come in two shapes: ``UpdateSettingsOverrides`` (every field
optional, one per config layer) and ``UpdateSettings`` (fully populated,
produced by ``flakebot.core.config_loader.resolve_settings``).
"""

from __future__ import annotations

from datetime import timedelta
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Author(BaseModel):
    """Commit identity used by the bot."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str


class UpdateSettingsOverrides(BaseModel):
    """One layer of update settings; ``None`` means "not set in this layer"."""

    model_config = ConfigDict(frozen=True)

    author: Author | None = None
    update_branch: str | None = None
    default_branch: str | None = None
    title: str | None = None
    extra_body: str | None = None
    cooldown: int | None = Field(default=None, ge=0)  # milliseconds
    inputs: list[str] | None = None
    allow_missing_inputs: bool | None = None
    sign_commits: bool | None = None
    signing_key: str | None = None


class UpdateSettings(BaseModel):
    """Fully resolved settings for one repository."""

    model_config = ConfigDict(frozen=True)

    author: Author
    update_branch: str
    default_branch: str
    title: str
    extra_body: str
    cooldown: timedelta
    inputs: tuple[str, ...] = ()
    allow_missing_inputs: bool = False
    sign_commits: bool = False
    signing_key: str | None = None


# ---------------------------------------------------------------------------
# Repository handles
# ---------------------------------------------------------------------------


class GitHubHandle(BaseModel):
    """GitHub repository: fetched over ssh, pull requests via the REST API."""

    model_config = ConfigDict(frozen=True)

    type: Literal["github"] = "github"
    owner: str
    repo: str
    base_url: str | None = None
    ssh_url: str | None = None
    token_env_var: str | None = None

    @property
    def remote_url(self) -> str:
        return f"ssh://{self.ssh_url or 'git@github.com'}/{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return self.remote_url


class GitLabHandle(BaseModel):
    """GitLab project: fetched over ssh, merge requests via the REST API."""

    model_config = ConfigDict(frozen=True)

    type: Literal["gitlab"] = "gitlab"
    project: str
    base_url: str | None = None
    ssh_url: str | None = None
    token_env_var: str | None = None

    @property
    def remote_url(self) -> str:
        return f"ssh://{self.ssh_url or 'git@gitlab.com'}/{self.project}"

    def __str__(self) -> str:
        return self.remote_url


class GitNoneHandle(BaseModel):
    """Plain git remote with no request support.  Useful for debugging."""

    model_config = ConfigDict(frozen=True)

    type: Literal["git+none"] = "git+none"
    url: str

    @property
    def remote_url(self) -> str:
        return self.url

    def __str__(self) -> str:
        return self.url


RepoHandle = Annotated[
    Union[GitHubHandle, GitLabHandle, GitNoneHandle], Field(discriminator="type")
]


class RepoEntry(BaseModel):
    """A configured repository: its handle plus an optional settings layer.

    In the config file the handle fields sit directly on the repository
    object next to ``settings``.
    """

    model_config = ConfigDict(frozen=True)

    handle: RepoHandle
    settings: UpdateSettingsOverrides | None = None

    @model_validator(mode="before")
    @classmethod
    def _split_flattened_handle(cls, data: Any) -> Any:
        if isinstance(data, dict) and "handle" not in data:
            rest = dict(data)
            settings = rest.pop("settings", None)
            return {"handle": rest, "settings": settings}
        return data


class FleetConfig(BaseModel):
    """The whole config file: a default settings layer plus repositories."""

    model_config = ConfigDict(frozen=True)

    settings: UpdateSettingsOverrides = UpdateSettingsOverrides()
    repos: list[RepoEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _split_flattened_settings(cls, data: Any) -> Any:
        if isinstance(data, dict) and "settings" not in data:
            rest = dict(data)
            repos = rest.pop("repos", [])
            return {"settings": rest, "repos": repos}
        return data
