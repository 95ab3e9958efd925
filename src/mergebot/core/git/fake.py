"""In-memory fake implementation of Git for testing.

FakeGit models a single clone and its remote as a commit graph where every
commit carries a full file snapshot. Merges are real three-way merges over those
snapshots, so a test can produce a genuine conflict simply by editing the same
file differently on two branches.

The local view of the remote is always current: `origin/<branch>` resolves to
the remote's value directly, which makes fetch a recorded no-op.
"""

import fnmatch
import hashlib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from mergebot.core.git.abc import CommitAuthor, Git, LogEntry, MergeMode, MergeResult


@dataclass(frozen=True)
class FakeCommit:
    """Commit in the fake graph. Files map path -> content."""

    sha: str
    parents: tuple[str, ...]
    files: Mapping[str, str]
    author: CommitAuthor
    message: str


def three_way_merge(
    base: Mapping[str, str], ours: Mapping[str, str], theirs: Mapping[str, str]
) -> tuple[dict[str, str], list[str]]:
    """Merge file snapshots path by path.

    Returns:
        Tuple of (merged files, conflicted paths). A path conflicts when both
        sides changed it away from base in different ways.
    """
    merged: dict[str, str] = {}
    conflicts: list[str] = []
    for path in sorted(set(base) | set(ours) | set(theirs)):
        base_content = base.get(path)
        our_content = ours.get(path)
        their_content = theirs.get(path)
        if our_content == their_content:
            result = our_content
        elif our_content == base_content:
            result = their_content
        elif their_content == base_content:
            result = our_content
        else:
            conflicts.append(path)
            continue
        if result is not None:
            merged[path] = result
    return merged, conflicts


class FakeGit(Git):
    """In-memory fake implementation for testing.

    All state is provided via constructor using keyword arguments.
    """

    def __init__(
        self,
        *,
        commits: dict[str, FakeCommit] | None = None,
        remote_branches: dict[str, str] | None = None,
        remote: str = "origin",
        rejected_pushes: set[str] | None = None,
    ) -> None:
        """Create FakeGit with pre-configured state.

        Args:
            commits: Mapping of sha -> FakeCommit
            remote_branches: Mapping of branch name on the remote -> sha
            remote: Name of the only remote this fake knows about
            rejected_pushes: Branch names whose pushes fail (simulates protection
                or a lost race)
        """
        self._commits = dict(commits or {})
        self._remote_branches = dict(remote_branches or {})
        self._remote = remote
        self._rejected_pushes = rejected_pushes or set()
        self._local_branches: dict[str, str] = {}
        self._head_branch: str | None = None
        self._pending_merge: tuple[str, dict[str, str]] | None = None
        self._conflicted_files: tuple[str, ...] = ()
        self._identity: tuple[str, str] | None = None
        self._fetch_count = 0
        self._pushed_branches: list[tuple[str, bool]] = []
        self._deleted_remote_branches: list[str] = []
        self._created_commits: list[FakeCommit] = []

    # ------------------------------------------------------------------
    # Read-only access for test assertions
    # ------------------------------------------------------------------

    @property
    def remote_branches(self) -> dict[str, str]:
        """Snapshot of remote branch name -> sha."""
        return dict(self._remote_branches)

    @property
    def pushed_branches(self) -> list[tuple[str, bool]]:
        """List of (branch, force) for every successful push, in order."""
        return self._pushed_branches

    @property
    def deleted_remote_branches(self) -> list[str]:
        return self._deleted_remote_branches

    @property
    def created_commits(self) -> list[FakeCommit]:
        """Commits created by merges and commits during the test."""
        return self._created_commits

    @property
    def fetch_count(self) -> int:
        return self._fetch_count

    @property
    def identity(self) -> tuple[str, str] | None:
        """(name, email) passed to configure_identity, if any."""
        return self._identity

    @property
    def current_branch(self) -> str | None:
        return self._head_branch

    def get_commit(self, ref: str) -> FakeCommit:
        return self._commits[self._resolve(ref)]

    def files_at(self, ref: str) -> dict[str, str]:
        return dict(self.get_commit(ref).files)

    # ------------------------------------------------------------------
    # Simulating other actors
    # ------------------------------------------------------------------

    def create_commit(
        self,
        *,
        parents: list[str],
        files: Mapping[str, str],
        message: str,
        author: CommitAuthor | None = None,
    ) -> str:
        """Add a commit made outside the bot, e.g. a developer's conflict resolution.

        Not recorded in created_commits.
        """
        parent_shas = tuple(self._resolve(parent) for parent in parents)
        seed = f"external:{len(self._commits)}:{':'.join(parent_shas)}:{message}"
        sha = hashlib.sha1(seed.encode("utf-8")).hexdigest()
        self._commits[sha] = FakeCommit(
            sha=sha,
            parents=parent_shas,
            files=dict(files),
            author=author if author is not None else CommitAuthor("Dev", "dev@example.com"),
            message=message,
        )
        return sha

    def set_remote_branch(self, branch: str, ref: str) -> None:
        """Point a remote branch at ref, as a push by someone else would."""
        self._remote_branches[branch] = self._resolve(ref)

    # ------------------------------------------------------------------
    # Graph helpers
    # ------------------------------------------------------------------

    def _check_remote(self, remote: str) -> None:
        if remote != self._remote:
            msg = f"Unknown remote '{remote}'"
            raise RuntimeError(msg)

    def _resolve(self, ref: str) -> str:
        if ref == "HEAD":
            if self._head_branch is None:
                msg = "HEAD does not point at a branch"
                raise RuntimeError(msg)
            return self._local_branches[self._head_branch]
        if ref in self._commits:
            return ref
        remote_prefix = f"{self._remote}/"
        if ref.startswith(remote_prefix) and ref[len(remote_prefix) :] in self._remote_branches:
            return self._remote_branches[ref[len(remote_prefix) :]]
        if ref in self._local_branches:
            return self._local_branches[ref]
        msg = f"Failed to resolve '{ref}': unknown revision"
        raise RuntimeError(msg)

    def _ancestors(self, sha: str) -> set[str]:
        seen: set[str] = set()
        stack = [sha]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._commits[current].parents)
        return seen

    def _merge_base(self, ours: str, theirs: str) -> str | None:
        common = self._ancestors(ours) & self._ancestors(theirs)
        best = [
            candidate
            for candidate in common
            if not any(
                other != candidate and candidate in self._ancestors(other) for other in common
            )
        ]
        if not best:
            return None
        return sorted(best)[0]

    def _new_commit(
        self,
        parents: tuple[str, ...],
        files: Mapping[str, str],
        author: CommitAuthor,
        message: str,
    ) -> FakeCommit:
        seed = f"{len(self._commits)}:{':'.join(parents)}:{message}"
        sha = hashlib.sha1(seed.encode("utf-8")).hexdigest()
        commit = FakeCommit(
            sha=sha, parents=parents, files=dict(files), author=author, message=message
        )
        self._commits[sha] = commit
        self._created_commits.append(commit)
        return commit

    def _committer(self) -> CommitAuthor:
        if self._identity is None:
            return CommitAuthor(name="Fake Committer", email="fake@example.com")
        return CommitAuthor(name=self._identity[0], email=self._identity[1])

    def _ensure_clean_index(self, operation: str) -> None:
        if self._conflicted_files or self._pending_merge is not None:
            msg = f"Failed to {operation}: a merge is in progress"
            raise RuntimeError(msg)

    def _move_head(self, sha: str) -> None:
        if self._head_branch is None:
            msg = "HEAD does not point at a branch"
            raise RuntimeError(msg)
        self._local_branches[self._head_branch] = sha

    # ------------------------------------------------------------------
    # Git interface
    # ------------------------------------------------------------------

    def fetch(self, repo_root: Path, remote: str) -> None:
        self._check_remote(remote)
        self._fetch_count += 1

    def configure_identity(self, repo_root: Path, name: str, email: str) -> None:
        self._identity = (name, email)

    def checkout_new_branch(self, repo_root: Path, branch: str, start_point: str) -> None:
        self._ensure_clean_index(f"check out branch '{branch}'")
        self._local_branches[branch] = self._resolve(start_point)
        self._head_branch = branch

    def create_branch(self, repo_root: Path, branch: str, start_point: str) -> None:
        if branch in self._local_branches:
            msg = f"Failed to create branch '{branch}': a branch named '{branch}' already exists"
            raise RuntimeError(msg)
        self._local_branches[branch] = self._resolve(start_point)

    def merge(
        self, repo_root: Path, ref: str, *, mode: MergeMode, message: str | None = None
    ) -> MergeResult:
        self._ensure_clean_index(f"merge '{ref}'")
        ours = self._resolve("HEAD")
        theirs = self._resolve(ref)

        if self.is_ancestor(repo_root, theirs, ours):
            return MergeResult(status="up_to_date")

        if mode == "ff-only":
            if self.is_ancestor(repo_root, ours, theirs):
                self._move_head(theirs)
                return MergeResult(status="merged")
            return MergeResult(status="not_fast_forward")

        base = self._merge_base(ours, theirs)
        base_files = self._commits[base].files if base is not None else {}
        merged_files, conflicts = three_way_merge(
            base_files, self._commits[ours].files, self._commits[theirs].files
        )
        if conflicts:
            self._conflicted_files = tuple(conflicts)
            return MergeResult(status="conflict", conflicted_files=tuple(conflicts))

        if mode == "no-commit":
            self._pending_merge = (theirs, merged_files)
            return MergeResult(status="merged")

        commit = self._new_commit(
            (ours, theirs),
            merged_files,
            self._committer(),
            message if message is not None else f"Merge {ref}",
        )
        self._move_head(commit.sha)
        return MergeResult(status="merged")

    def commit(self, repo_root: Path, message: str, *, author: CommitAuthor) -> None:
        if self._pending_merge is None:
            msg = "Failed to commit merge: nothing to commit"
            raise RuntimeError(msg)
        theirs, merged_files = self._pending_merge
        commit = self._new_commit((self._resolve("HEAD"), theirs), merged_files, author, message)
        self._move_head(commit.sha)
        self._pending_merge = None

    def reset_hard(self, repo_root: Path, ref: str = "HEAD") -> None:
        self._move_head(self._resolve(ref))
        self._pending_merge = None
        self._conflicted_files = ()

    def push_branch(
        self,
        repo_root: Path,
        remote: str,
        branch: str,
        *,
        force: bool,
        set_upstream: bool = False,
    ) -> None:
        self._check_remote(remote)
        if branch in self._rejected_pushes:
            msg = f"Failed to push branch '{branch}' to remote '{remote}': rejected by remote"
            raise RuntimeError(msg)
        if branch not in self._local_branches:
            msg = f"Failed to push branch '{branch}': src refspec does not match any"
            raise RuntimeError(msg)
        sha = self._local_branches[branch]
        current = self._remote_branches.get(branch)
        if not force and current is not None and current not in self._ancestors(sha):
            msg = f"Failed to push branch '{branch}' to remote '{remote}': non-fast-forward"
            raise RuntimeError(msg)
        self._remote_branches[branch] = sha
        self._pushed_branches.append((branch, force))

    def delete_remote_branch(self, repo_root: Path, remote: str, branch: str) -> None:
        self._check_remote(remote)
        if branch not in self._remote_branches:
            msg = f"Failed to delete branch '{branch}': remote ref does not exist"
            raise RuntimeError(msg)
        del self._remote_branches[branch]
        self._deleted_remote_branches.append(branch)

    def list_remote_branches(self, repo_root: Path, remote: str, pattern: str) -> list[str]:
        self._check_remote(remote)
        return sorted(
            name for name in self._remote_branches if fnmatch.fnmatchcase(name, pattern)
        )

    def remote_branch_exists(self, repo_root: Path, remote: str, branch: str) -> bool:
        self._check_remote(remote)
        return branch in self._remote_branches

    def rev_parse(self, repo_root: Path, ref: str) -> str:
        return self._resolve(ref)

    def is_ancestor(self, repo_root: Path, ancestor: str, descendant: str) -> bool:
        return self._resolve(ancestor) in self._ancestors(self._resolve(descendant))

    def log_with_remote_refs(
        self, repo_root: Path, remote: str, tip: str, exclude: str | None
    ) -> list[LogEntry]:
        self._check_remote(remote)
        excluded = self._ancestors(self._resolve(exclude)) if exclude is not None else set()

        # Reverse post-order of a DFS lists every commit before its parents.
        post_order: list[str] = []
        visited: set[str] = set()
        stack: list[tuple[str, int]] = [(self._resolve(tip), 0)]
        while stack:
            sha, parent_index = stack.pop()
            if parent_index == 0:
                if sha in visited or sha in excluded:
                    continue
                visited.add(sha)
            parents = self._commits[sha].parents
            if parent_index < len(parents):
                stack.append((sha, parent_index + 1))
                stack.append((parents[parent_index], 0))
            else:
                post_order.append(sha)

        entries: list[LogEntry] = []
        for sha in reversed(post_order):
            refs = tuple(
                sorted(name for name, target in self._remote_branches.items() if target == sha)
            )
            entries.append(LogEntry(sha=sha, refs=refs))
        return entries

    def get_commit_author(self, repo_root: Path, ref: str) -> CommitAuthor:
        return self._commits[self._resolve(ref)].author
