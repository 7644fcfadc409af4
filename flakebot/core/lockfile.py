"""Lock file engine — parsing, follows resolution and snapshot diffing.

Only *root* dependencies take part in a diff: the inputs a flake author
declared are what a reviewer cares about.  They are identified by input
name, never by node identifier, because node identifiers are synthetic and
may be renamed between two lock files while the input name stays put.
``follows`` indirections are resolved transparently, so restructured
internal nodes do not produce spurious entries.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from flakebot.models.diff import Added, Deleted, InputChange, LockDiff, Updated
from flakebot.models.lock import DirectInput, Input, Locked, LockSnapshot

logger = logging.getLogger(__name__)

LOCKFILE_NAME = "flake.lock"


class LockError(ValueError):
    """Base class for lock file errors."""


class ParseError(LockError):
    """Raised when a lock file is not valid JSON or has the wrong structure."""


class LockReadError(LockError):
    """Raised when the lock file cannot be read from disk."""


class ResolutionError(LockError):
    """Raised when the lock graph is structurally inconsistent."""


class MissingNodeError(ResolutionError):
    """A node identifier is referenced but absent from ``nodes``."""


class MissingInputError(ResolutionError):
    """A follows path names an input the node does not declare."""


class MissingLockedValueError(ResolutionError):
    """A root dependency resolves to a node without a ``locked`` pin."""


class FollowsCycleError(ResolutionError):
    """A follows path depends on itself."""


class DiffError(LockError):
    """Raised when two snapshots cannot be diffed."""


class MissingRootError(DiffError):
    """The snapshot's root identifier does not name a node."""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_lock(text: str | bytes) -> LockSnapshot:
    """Parse the JSON text of a flake.lock into a ``LockSnapshot``."""
    try:
        return LockSnapshot.model_validate_json(text)
    except ValidationError as exc:
        raise ParseError(f"Failed to parse flake.lock: {exc}") from exc


def read_lock(workdir: Path) -> LockSnapshot:
    """Read and parse ``flake.lock`` at the root of *workdir*."""
    path = Path(workdir) / LOCKFILE_NAME
    try:
        text = path.read_bytes()
    except OSError as exc:
        raise LockReadError(f"Error reading {path}: {exc}") from exc
    logger.debug("Read %s (%d bytes)", path, len(text))
    return parse_lock(text)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _format_path(path: tuple[str, ...]) -> str:
    return "/".join(path) or "<root>"


def _resolve(
    snapshot: LockSnapshot, input: Input, active: frozenset[tuple[str, ...]]
) -> str:
    if isinstance(input, DirectInput):
        return input.node_id

    path = input.path
    if path in active:
        raise FollowsCycleError(f"Follows path {_format_path(path)} refers back to itself")
    active = active | {path}

    current = snapshot.root
    for segment in path:
        node = snapshot.nodes.get(current)
        if node is None:
            raise MissingNodeError(
                f"Node {current!r} is on follows path {_format_path(path)} "
                f"but not in the lockfile"
            )
        inputs = node.inputs or {}
        if segment not in inputs:
            raise MissingInputError(
                f"Node {current!r} has no input {segment!r} "
                f"(follows path {_format_path(path)})"
            )
        current = _resolve(snapshot, inputs[segment], active)
    return current


def resolve_input(snapshot: LockSnapshot, input: Input) -> str:
    """Resolve *input* to a node identifier.

    Direct inputs resolve to the node they name.  Follows paths are walked
    from the root node one input name at a time; each step may itself be a
    follows path.  An empty path resolves to the root.
    """
    return _resolve(snapshot, input, frozenset())


def root_dependencies(snapshot: LockSnapshot) -> dict[str, Input]:
    """Return the root node's inputs in declaration order (empty if none)."""
    node = snapshot.nodes.get(snapshot.root)
    if node is None:
        raise MissingRootError(f"There is no root node {snapshot.root!r} in the lockfile")
    return dict(node.inputs or {})


def _locked_for(snapshot: LockSnapshot, name: str, input: Input) -> Locked:
    node_id = resolve_input(snapshot, input)
    node = snapshot.nodes.get(node_id)
    if node is None:
        raise MissingNodeError(
            f"Input {name!r} resolves to node {node_id!r} which is not in the lockfile"
        )
    if node.locked is None:
        raise MissingLockedValueError(
            f"Input {name!r} resolves to node {node_id!r} which has no locked value"
        )
    return node.locked


def root_dependency(snapshot: LockSnapshot, name: str) -> Locked | None:
    """Return the pin of root dependency *name*, or ``None`` if not declared."""
    deps = root_dependencies(snapshot)
    if name not in deps:
        return None
    return _locked_for(snapshot, name, deps[name])


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


def diff_locks(old: LockSnapshot, new: LockSnapshot) -> LockDiff:
    """Compute the change-set of root dependencies from *old* to *new*.

    Changes are detected by content hash only; owner, repo or timestamp
    churn with an identical hash is not a change.
    """
    old_deps = root_dependencies(old)
    new_deps = root_dependencies(new)

    changes: dict[str, InputChange] = {}
    for name, input in new_deps.items():
        try:
            new_locked = _locked_for(new, name, input)
            old_locked = _locked_for(old, name, old_deps[name]) if name in old_deps else None
        except ResolutionError as exc:
            raise DiffError(f"Cannot resolve input {name!r}: {exc}") from exc

        if old_locked is None:
            changes[name] = Added(locked=new_locked)
        elif old_locked.content_hash != new_locked.content_hash:
            changes[name] = Updated(old=old_locked, new=new_locked)

    for name in old_deps:
        if name not in new_deps:
            changes[name] = Deleted()

    return LockDiff(changes=changes)
