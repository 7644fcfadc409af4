"""Shared test fixtures for flakebot."""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Sequence

import pytest

from flakebot.core.lockfile import parse_lock
from flakebot.models.lock import LockSnapshot
from flakebot.models.settings import Author, UpdateSettings
from flakebot.vcs import GitError, ResetMode

NIXPKGS_OLD_REV = "84d74ae9c9cbed73274b8e4e00be14688ffc93fe"
NIXPKGS_NEW_REV = "c601d56e19dd2ed71b23d8aa76be8437d043d4c5"


# ---------------------------------------------------------------------------
# Lock file builder
# ---------------------------------------------------------------------------


class LockBuilder:
    """Builds flake.lock JSON text one root input at a time."""

    def __init__(self) -> None:
        self.nodes: dict[str, dict[str, Any]] = {}
        self.root_inputs: dict[str, Any] = {}

    def github(
        self,
        name: str,
        rev: str,
        nar_hash: str,
        *,
        owner: str = "NixOS",
        repo: str | None = None,
        last_modified: int | None = 1600000000,
        node_id: str | None = None,
        source_type: str = "github",
    ) -> LockBuilder:
        node_id = node_id or name
        locked: dict[str, Any] = {
            "type": source_type,
            "owner": owner,
            "repo": repo or name,
            "rev": rev,
            "narHash": nar_hash,
        }
        if last_modified is not None:
            locked["lastModified"] = last_modified
        self.nodes[node_id] = {"locked": locked, "original": {"type": source_type}}
        self.root_inputs[name] = node_id
        return self

    def tarball(self, name: str, nar_hash: str, *, node_id: str | None = None) -> LockBuilder:
        node_id = node_id or name
        self.nodes[node_id] = {
            "locked": {"type": "tarball", "url": f"https://example.com/{name}.tar.gz", "narHash": nar_hash},
        }
        self.root_inputs[name] = node_id
        return self

    def follows(self, name: str, path: list[str]) -> LockBuilder:
        self.root_inputs[name] = list(path)
        return self

    def node_input(self, node_id: str, name: str, value: str | list[str]) -> LockBuilder:
        self.nodes[node_id].setdefault("inputs", {})[name] = value
        return self

    def without_root_input(self, name: str) -> LockBuilder:
        self.root_inputs.pop(name)
        return self

    def data(self) -> dict[str, Any]:
        return {
            "nodes": {"root": {"inputs": dict(self.root_inputs)}, **self.nodes},
            "root": "root",
            "version": 7,
        }

    def text(self) -> str:
        return json.dumps(self.data(), indent=2)

    def snapshot(self) -> LockSnapshot:
        return parse_lock(self.text())


@pytest.fixture
def make_lock() -> Callable[[], LockBuilder]:
    """Factory fixture: a fresh ``LockBuilder``."""
    return LockBuilder


@pytest.fixture
def nixpkgs_pair(make_lock) -> tuple[LockSnapshot, LockSnapshot]:
    """Two snapshots in which only nixpkgs moved."""
    old = make_lock().github("nixpkgs", NIXPKGS_OLD_REV, "sha256-old", last_modified=1612000000)
    new = make_lock().github("nixpkgs", NIXPKGS_NEW_REV, "sha256-new", last_modified=1614000000)
    return old.snapshot(), new.snapshot()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def bot_author() -> Author:
    return Author(name="flakebot", email="flakebot@example.com")


@pytest.fixture
def make_settings(bot_author: Author) -> Callable[..., UpdateSettings]:
    """Factory fixture: fully resolved settings with test defaults."""

    def _factory(**overrides: Any) -> UpdateSettings:
        defaults: dict[str, Any] = {
            "author": bot_author,
            "update_branch": "automatic-update",
            "default_branch": "master",
            "title": "Automatically update flake.lock",
            "extra_body": "",
            "cooldown": timedelta(0),
        }
        defaults.update(overrides)
        return UpdateSettings(**defaults)

    return _factory


@pytest.fixture
def settings(make_settings) -> UpdateSettings:
    return make_settings()


# ---------------------------------------------------------------------------
# In-memory git
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FakeCommit:
    id: str
    tree: str
    parents: tuple[str, ...]
    author: Author
    message: str
    signature: str | None = None


class FakeRemote:
    def __init__(self, head: str = "master") -> None:
        self.head = head
        self.branches: dict[str, str] = {}


class _LocalRepo:
    def __init__(self, remote_url: str) -> None:
        self.remote_url = remote_url
        self.refs: dict[str, str] = {}
        self.head = ""  # "ref: refs/heads/x" or a commit id
        self.index: dict[str, str] = {}


_AUTHOR_LINE = re.compile(r"^author (?P<name>.*) <(?P<email>.*)> \d+ [+-]\d{4}$")


class FakeGitWorld:
    """Remotes, the shared object store, and every local working copy.

    Operation names listed in ``failing`` raise ``GitError``.
    """

    def __init__(self) -> None:
        self.commits: dict[str, FakeCommit] = {}
        self.trees: dict[str, dict[str, str]] = {}
        self.remotes: dict[str, FakeRemote] = {}
        self.repos: dict[Path, _LocalRepo] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self.default_author = Author(name="Jane Maintainer", email="jane@example.com")

    # Object store --------------------------------------------------------

    def store_tree(self, files: dict[str, str]) -> str:
        tree_id = hashlib.sha1(json.dumps(files, sort_keys=True).encode()).hexdigest()
        self.trees[tree_id] = dict(files)
        return tree_id

    def store_commit(
        self,
        tree: str,
        parents: Sequence[str],
        author: Author,
        message: str,
        signature: str | None = None,
    ) -> str:
        seed = f"{len(self.commits)}\0{tree}\0{','.join(parents)}\0{author}\0{message}\0{signature}"
        commit_id = hashlib.sha1(seed.encode()).hexdigest()
        self.commits[commit_id] = FakeCommit(
            commit_id, tree, tuple(parents), author, message, signature
        )
        return commit_id

    def ancestors(self, commit_id: str) -> set[str]:
        seen: set[str] = set()
        stack = [commit_id]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.commits[current].parents)
        return seen

    # Remotes -------------------------------------------------------------

    def new_remote(self, url: str, head: str = "master") -> FakeRemote:
        remote = FakeRemote(head)
        self.remotes[url] = remote
        return remote

    def push_files(
        self,
        url: str,
        branch: str,
        files: dict[str, str],
        *,
        author: Author | None = None,
        parent: str | None = None,
        message: str = "change",
    ) -> str:
        """Commit *files* on top of *branch* (or *parent*) directly on the remote."""
        remote = self.remotes[url]
        base = parent or remote.branches.get(branch)
        commit_id = self.store_commit(
            self.store_tree(files), (base,) if base else (), author or self.default_author, message
        )
        remote.branches[branch] = commit_id
        return commit_id

    def remote_files(self, url: str, branch: str) -> dict[str, str]:
        commit = self.commits[self.remotes[url].branches[branch]]
        return self.trees[commit.tree]

    def vcs(self, path: Path) -> FakeVcs:
        return FakeVcs(path, self)


class FakeVcs:
    """``VersionControl`` over ``FakeGitWorld``; the worktree is real files."""

    def __init__(self, path: Path, world: FakeGitWorld) -> None:
        self._path = Path(path)
        self._world = world

    @property
    def path(self) -> Path:
        return self._path

    def _op(self, name: str) -> None:
        self._world.calls.append(name)
        if name in self._world.failing:
            raise GitError((name,), 128, f"injected {name} failure")

    @property
    def _repo(self) -> _LocalRepo:
        return self._world.repos[self._path]

    def _remote(self) -> FakeRemote:
        try:
            return self._world.remotes[self._repo.remote_url]
        except KeyError:
            raise GitError(("fetch",), 128, f"repository {self._repo.remote_url} not found") from None

    def _head_commit(self) -> str | None:
        head = self._repo.head
        if head.startswith("ref: "):
            return self._repo.refs.get(head[5:])
        return head or None

    def _checkout_files(self, commit_id: str) -> None:
        for entry in self._path.iterdir():
            if entry.is_file():
                entry.unlink()
        tree = self._world.trees[self._world.commits[commit_id].tree]
        for name, content in tree.items():
            (self._path / name).write_text(content, encoding="utf-8")

    # Remotes -------------------------------------------------------------

    async def clone(self, url: str) -> None:
        self._op("clone")
        if url not in self._world.remotes:
            raise GitError(("clone", url), 128, f"repository {url} not found")
        (self._path / ".git").mkdir()
        repo = _LocalRepo(url)
        self._world.repos[self._path] = repo
        remote = self._world.remotes[url]
        for branch, commit_id in remote.branches.items():
            repo.refs[f"refs/remotes/origin/{branch}"] = commit_id
        if remote.head in remote.branches:
            repo.refs[f"refs/heads/{remote.head}"] = remote.branches[remote.head]
            repo.head = f"ref: refs/heads/{remote.head}"
            self._checkout_files(remote.branches[remote.head])

    async def set_remote_url(self, remote: str, url: str) -> None:
        self._op("set_remote_url")
        self._repo.remote_url = url

    async def fetch(self, remote: str, refspecs: Sequence[str] = (), *, prune: bool = False) -> None:
        self._op("fetch")
        source = self._remote()
        refs = self._repo.refs
        if not refspecs:
            if prune:
                for ref in [r for r in refs if r.startswith("refs/remotes/origin/")]:
                    del refs[ref]
            for branch, commit_id in source.branches.items():
                refs[f"refs/remotes/origin/{branch}"] = commit_id
            return
        for spec in refspecs:
            src, _, dst = spec.lstrip("+").partition(":")
            branch = src.removeprefix("refs/heads/")
            if branch not in source.branches:
                raise GitError(("fetch", spec), 128, f"couldn't find remote ref {src}")
            refs[dst] = source.branches[branch]

    async def push(self, remote: str, refspec: str) -> None:
        self._op("push")
        src, _, dst = refspec.lstrip("+").partition(":")
        self._remote().branches[dst.removeprefix("refs/heads/")] = self._repo.refs[src]

    # Inspection ----------------------------------------------------------

    async def resolve_commit(self, ref: str) -> str | None:
        self._op("resolve_commit")
        if ref == "HEAD":
            return self._head_commit()
        if ref in self._world.commits:
            return ref
        return self._repo.refs.get(ref)

    async def commit_author(self, commit: str) -> Author:
        self._op("commit_author")
        return self._world.commits[commit].author

    async def ahead_behind(self, commit: str, upstream: str) -> tuple[int, int]:
        self._op("ahead_behind")
        mine, theirs = self._world.ancestors(commit), self._world.ancestors(upstream)
        return len(mine - theirs), len(theirs - mine)

    async def read_commit(self, commit: str) -> bytes:
        self._op("read_commit")
        c = self._world.commits[commit]
        lines = [f"tree {c.tree}"]
        lines += [f"parent {p}" for p in c.parents]
        ident = f"{c.author.name} <{c.author.email}> 1700000000 +0000"
        lines += [f"author {ident}", f"committer {ident}"]
        return ("\n".join(lines) + "\n\n" + c.message).encode()

    # Refs and working tree -----------------------------------------------

    async def reset(self, commit: str, mode: ResetMode) -> None:
        self._op("reset")
        if mode is ResetMode.HARD:
            self._checkout_files(commit)
        head = self._repo.head
        if head.startswith("ref: "):
            self._repo.refs[head[5:]] = commit
        else:
            self._repo.head = commit

    async def detach_head(self, commit: str) -> None:
        self._op("detach_head")
        self._repo.head = commit

    async def create_branch(self, name: str, commit: str, *, force: bool = False) -> None:
        self._op("create_branch")
        ref = f"refs/heads/{name}"
        if ref in self._repo.refs and not force:
            raise GitError(("branch", name), 128, f"a branch named '{name}' already exists")
        if self._repo.head == f"ref: {ref}":
            raise GitError(("branch", name), 128, "cannot force update the current branch")
        self._repo.refs[ref] = commit

    async def set_head(self, branch: str) -> None:
        self._op("set_head")
        self._repo.head = f"ref: refs/heads/{branch}"

    async def update_ref(self, ref: str, commit: str) -> None:
        self._op("update_ref")
        if ref == "HEAD" and self._repo.head.startswith("ref: "):
            ref = self._repo.head[5:]
        if ref == "HEAD":
            self._repo.head = commit
        else:
            self._repo.refs[ref] = commit

    # Committing ----------------------------------------------------------

    async def stage_all(self) -> None:
        self._op("stage_all")
        self._repo.index = {
            entry.name: entry.read_text(encoding="utf-8")
            for entry in self._path.iterdir()
            if entry.is_file()
        }

    async def write_tree(self) -> str:
        self._op("write_tree")
        return self._world.store_tree(self._repo.index)

    async def commit_tree(
        self, tree: str, parents: Sequence[str], author: Author, message: str
    ) -> str:
        self._op("commit_tree")
        return self._world.store_commit(tree, parents, author, message)

    async def write_commit(self, raw: bytes) -> str:
        self._op("write_commit")
        header, _, message = raw.decode().partition("\n\n")
        tree, parents, author, signature = "", [], None, []
        in_signature = False
        for line in header.split("\n"):
            if in_signature and line.startswith(" "):
                signature.append(line[1:])
                continue
            in_signature = False
            if line.startswith("tree "):
                tree = line[5:]
            elif line.startswith("parent "):
                parents.append(line[7:])
            elif line.startswith("gpgsig "):
                signature.append(line[7:])
                in_signature = True
            elif match := _AUTHOR_LINE.match(line):
                author = Author(name=match["name"], email=match["email"])
        assert author is not None
        return self._world.store_commit(
            tree, parents, author, message, "\n".join(signature) or None
        )


@pytest.fixture
def git_world() -> FakeGitWorld:
    """An empty in-memory git universe."""
    return FakeGitWorld()


@pytest.fixture
def remote_url() -> str:
    return "ssh://git@github.com/example/flake"
