"""Lock diff renderers — markdown table for requests, aligned text for commits.

Both renderers are pure functions of a ``LockDiff``.
"""

from __future__ import annotations

from datetime import datetime, timezone

from flakebot.models.diff import Added, Deleted, InputChange, LockDiff, Updated
from flakebot.models.lock import GitLocked, Locked

HASH_DISPLAY_LENGTH = 10

# Width of "0123456789 (YYYY-MM-DD)", the widest formatted pin.
_PIN_COLUMN_WIDTH = 23

# source_type -> (compare URL template, tree URL template)
KNOWN_HOSTS: dict[str, tuple[str, str]] = {
    "github": (
        "https://github.com/{owner}/{repo}/compare/{old}...{new}?expand=1",
        "https://github.com/{owner}/{repo}/tree/{rev}",
    ),
    "gitlab": (
        "https://gitlab.com/{owner}/{repo}/compare/{old}...{new}",
        "https://gitlab.com/{owner}/{repo}/-/tree/{rev}",
    ),
}


def format_date(timestamp: int) -> str:
    """Render a unix timestamp as a UTC calendar date."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")


def format_locked(locked: Locked) -> str:
    """Short display form of a pin: truncated revision or hash plus date."""
    shown = locked.revision if isinstance(locked, GitLocked) else locked.content_hash
    text = shown[:HASH_DISPLAY_LENGTH]
    if locked.last_modified is not None:
        text += f" ({format_date(locked.last_modified)})"
    return text


def _same_repository(old: GitLocked, new: GitLocked) -> bool:
    if old.owner is None or old.repo is None or new.owner is None or new.repo is None:
        return False
    return (
        old.source_type == new.source_type
        and old.owner.lower() == new.owner.lower()
        and old.repo.lower() == new.repo.lower()
    )


def change_link(change: InputChange) -> str | None:
    """Return a compare link (updates) or tree link (additions), if any."""
    if isinstance(change, Updated):
        old, new = change.old, change.new
        if not (isinstance(old, GitLocked) and isinstance(new, GitLocked)):
            return None
        if not _same_repository(old, new) or new.source_type not in KNOWN_HOSTS:
            return None
        compare, _ = KNOWN_HOSTS[new.source_type]
        return compare.format(
            owner=new.owner, repo=new.repo, old=old.revision, new=new.revision
        )

    if isinstance(change, Added):
        locked = change.locked
        if not isinstance(locked, GitLocked) or locked.source_type not in KNOWN_HOSTS:
            return None
        if locked.owner is None or locked.repo is None:
            return None
        _, tree = KNOWN_HOSTS[locked.source_type]
        return tree.format(owner=locked.owner, repo=locked.repo, rev=locked.revision)

    return None


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


def _markdown_cells(change: InputChange) -> str:
    if isinstance(change, Added):
        cells = f"(new) | `{format_locked(change.locked)}`"
    elif isinstance(change, Updated):
        cells = f"`{format_locked(change.old)}` | `{format_locked(change.new)}`"
    else:
        cells = "(deleted) | (deleted)"
    link = change_link(change)
    return f"{cells} | {f'[link]({link})' if link else '_none_'}"


def render_markdown(diff: LockDiff) -> str:
    """Render *diff* as a four-column markdown table."""
    lines = [
        "| input | old | new | diff |",
        "|-------|-----|-----|------|",
    ]
    for name, change in diff.items():
        lines.append(f"| {name} | {_markdown_cells(change)} |")
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------


def _plain_change(change: InputChange) -> str:
    if isinstance(change, Added):
        return f"{'(new)':<{_PIN_COLUMN_WIDTH}}    {format_locked(change.locked)}"
    if isinstance(change, Updated):
        return f"{format_locked(change.old):<{_PIN_COLUMN_WIDTH}} -> {format_locked(change.new)}"
    if isinstance(change, Deleted):
        return f"{'(deleted)':<{_PIN_COLUMN_WIDTH}}    (deleted)"
    raise TypeError(f"Unknown lock change {change!r}")


def render_plain(diff: LockDiff) -> str:
    """Render *diff* as aligned plain text, one line per entry."""
    width = max((len(name) for name in diff.names()), default=0)
    return "".join(
        f"{name:<{width}} {_plain_change(change)}\n" for name, change in diff.items()
    )
