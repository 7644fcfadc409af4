"""flakebot data models (Pydantic v2, frozen)."""

from flakebot.models.diff import Added, Deleted, InputChange, LockDiff, Updated
from flakebot.models.lock import (
    DirectInput,
    GitLocked,
    IndirectInput,
    Input,
    Locked,
    LockSnapshot,
    Node,
    OtherLocked,
)
from flakebot.models.settings import (
    Author,
    FleetConfig,
    GitHubHandle,
    GitLabHandle,
    GitNoneHandle,
    RepoEntry,
    RepoHandle,
    UpdateSettings,
    UpdateSettingsOverrides,
)

__all__ = [
    # lock
    "LockSnapshot",
    "Node",
    "Input",
    "DirectInput",
    "IndirectInput",
    "Locked",
    "GitLocked",
    "OtherLocked",
    # diff
    "InputChange",
    "Added",
    "Updated",
    "Deleted",
    "LockDiff",
    # settings
    "Author",
    "UpdateSettingsOverrides",
    "UpdateSettings",
    "RepoHandle",
    "GitHubHandle",
    "GitLabHandle",
    "GitNoneHandle",
    "RepoEntry",
    "FleetConfig",
]
