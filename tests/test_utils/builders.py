"""Builders for fake repositories and triggering changes."""

import hashlib
from collections.abc import Mapping

from mergebot.core.git.abc import CommitAuthor
from mergebot.core.git.fake import FakeCommit, FakeGit
from mergebot.core.trigger import Change

DEFAULT_AUTHOR = CommitAuthor(name="Alice Example", email="alice@example.com")


class FakeRepoBuilder:
    """Builds a FakeGit commit graph using readable commit names.

    Each commit inherits the files of its first parent, with `files` applied on
    top. A value of None removes the file.

    Example:
        >>> repo = FakeRepoBuilder()
        >>> repo.commit("base", files={"a.txt": "1"})
        >>> repo.commit("fix", parents=["base"], files={"a.txt": "2"})
        >>> repo.branch("release-5.7", "fix")
        >>> git = repo.build()
    """

    def __init__(self, *, remote: str = "origin") -> None:
        self._remote = remote
        self._commits: dict[str, FakeCommit] = {}
        self._shas: dict[str, str] = {}
        self._branches: dict[str, str] = {}

    def commit(
        self,
        name: str,
        *,
        parents: list[str] | None = None,
        files: Mapping[str, str | None] | None = None,
        author: CommitAuthor = DEFAULT_AUTHOR,
    ) -> str:
        """Add a commit and return its sha."""
        parent_shas = tuple(self._shas[parent] for parent in parents or [])
        snapshot: dict[str, str] = {}
        if parent_shas:
            snapshot.update(self._commits[parent_shas[0]].files)
        for path, content in (files or {}).items():
            if content is None:
                snapshot.pop(path, None)
            else:
                snapshot[path] = content

        sha = hashlib.sha1(f"test-commit:{name}".encode()).hexdigest()
        self._commits[sha] = FakeCommit(
            sha=sha, parents=parent_shas, files=snapshot, author=author, message=name
        )
        self._shas[name] = sha
        return sha

    def branch(self, branch: str, commit_name: str) -> None:
        """Point a remote branch at a named commit."""
        self._branches[branch] = self._shas[commit_name]

    def sha(self, name: str) -> str:
        return self._shas[name]

    def build(self, *, rejected_pushes: set[str] | None = None) -> FakeGit:
        return FakeGit(
            commits=dict(self._commits),
            remote_branches=dict(self._branches),
            remote=self._remote,
            rejected_pushes=rejected_pushes,
        )


def make_change(
    *,
    head_commit: str,
    id: str = "101",
    author: str = "alice",
    title: str = "Fix the widget",
    body: str = "",
    source_branch: str = "alice/fix-widget",
    base_branch: str = "release-5.7",
    merged: bool = True,
) -> Change:
    """Create a Change with sensible defaults for tests."""
    return Change(
        id=id,
        author=author,
        title=title,
        body=body,
        source_branch=source_branch,
        head_commit=head_commit,
        base_branch=base_branch,
        merged=merged,
    )


def chain_repo() -> FakeRepoBuilder:
    """Repository with release-5.7 -> release-5.8 -> main sharing one base commit.

    Each branch has one commit of its own touching a branch-specific file, so
    merging forward is conflict-free unless a test adds conflicting edits.
    """
    repo = FakeRepoBuilder()
    repo.commit("base", files={"app.py": "version = 1\n", "shared.txt": "base\n"})
    repo.commit("r57", parents=["base"], files={"notes-5.7.txt": "5.7\n"})
    repo.commit("r58", parents=["base"], files={"notes-5.8.txt": "5.8\n"})
    repo.commit("main", parents=["base"], files={"notes-main.txt": "main\n"})
    repo.branch("release-5.7", "r57")
    repo.branch("release-5.8", "r58")
    repo.branch("main", "main")
    return repo
