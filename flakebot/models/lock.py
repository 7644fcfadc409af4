"""flake.lock data model — frozen Pydantic models parsed from one file read.

The lock file is a graph of nodes keyed by synthetic identifiers.  The root
node lists the inputs a flake author declared; every other node carries the
``locked`` pin for one dependency.  Inputs either name a node directly or
"follow" a path of input names starting at the root.

Both ``Input`` and ``Locked`` are untagged in the JSON.  They are modelled as
closed unions here: ``Input`` is coerced by shape (string vs. list), and
``Locked`` is matched left to right so that a git-like pin (which also
carries ``narHash``) is never mistaken for the catch-all variant.
"""

from __future__ import annotations

from typing import Annotated, Any, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class DirectInput(BaseModel):
    """An input that names another node by identifier."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    node_id: str


class IndirectInput(BaseModel):
    """A ``follows`` input: a path of input names walked from the root node."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: tuple[str, ...]


def _coerce_input(value: Any) -> Any:
    # JSON encodes direct inputs as strings and follows paths as lists.
    if isinstance(value, str):
        return {"node_id": value}
    if isinstance(value, list):
        return {"path": value}
    return value


Input = Annotated[Union[DirectInput, IndirectInput], BeforeValidator(_coerce_input)]


# ---------------------------------------------------------------------------
# Locked pins
# ---------------------------------------------------------------------------


class GitLocked(BaseModel):
    """A pin on a git revision (``github``, ``gitlab``, ``git``, ...)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source_type: str = Field(alias="type")
    owner: str | None = None
    repo: str | None = None
    revision: str = Field(alias="rev")
    content_hash: str = Field(alias="narHash", min_length=1)
    last_modified: int | None = Field(default=None, alias="lastModified")


class OtherLocked(BaseModel):
    """Any pin without a revision (tarballs, paths, ...)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    content_hash: str = Field(alias="narHash", min_length=1)
    last_modified: int | None = Field(default=None, alias="lastModified")


# Order matters: GitLocked must be tried before OtherLocked.
Locked = Annotated[Union[GitLocked, OtherLocked], Field(union_mode="left_to_right")]


# ---------------------------------------------------------------------------
# Nodes and the snapshot
# ---------------------------------------------------------------------------


class Node(BaseModel):
    """One node of the lock graph.

    ``locked`` is absent for the root node and for follows-only
    placeholders; ``inputs`` is absent when the node declares none.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_flake: bool | None = Field(default=None, alias="flake")
    locked: Locked | None = None
    inputs: dict[str, Input] | None = None


class LockSnapshot(BaseModel):
    """An immutable snapshot of one flake.lock file."""

    model_config = ConfigDict(frozen=True)

    version: int
    root: str
    nodes: dict[str, Node]

    @model_validator(mode="after")
    def _root_must_be_a_node(self) -> LockSnapshot:
        if self.root not in self.nodes:
            raise ValueError(f"root node {self.root!r} is not present in nodes")
        return self
