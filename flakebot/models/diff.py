"""Lock diff models: the change-set between two lock snapshots."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from flakebot.models.lock import Locked


class Added(BaseModel):
    """A root dependency present only in the new snapshot."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["added"] = "added"
    locked: Locked


class Updated(BaseModel):
    """A root dependency whose content hash changed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["updated"] = "updated"
    old: Locked
    new: Locked


class Deleted(BaseModel):
    """A root dependency present only in the old snapshot."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["deleted"] = "deleted"


InputChange = Annotated[Union[Added, Updated, Deleted], Field(discriminator="kind")]


class LockDiff(BaseModel):
    """Ordered mapping from root dependency name to its change.

    Entries follow the new snapshot's root input order, then deletions in
    the old snapshot's order.  Unchanged dependencies have no entry.
    """

    model_config = ConfigDict(frozen=True)

    changes: dict[str, InputChange] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.changes)

    def __bool__(self) -> bool:
        return bool(self.changes)

    def names(self) -> list[str]:
        return list(self.changes)

    def items(self) -> list[tuple[str, InputChange]]:
        return list(self.changes.items())

    def get(self, name: str) -> InputChange | None:
        return self.changes.get(name)
