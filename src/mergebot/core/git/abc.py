"""Git operations interface used by the merge bot.

Architecture:
- Git: Abstract base class defining the narrow port the bot needs
- RealGit: Production implementation using subprocess
- FakeGit: In-memory commit graph for tests
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

MergeMode = Literal["no-commit", "no-ff", "ff-only"]
MergeStatus = Literal["merged", "up_to_date", "conflict", "not_fast_forward"]


@dataclass(frozen=True)
class CommitAuthor:
    """Author identity of a commit."""

    name: str
    email: str

    def format(self) -> str:
        """Render in the `Name <email>` form git expects for --author."""
        return f"{self.name} <{self.email}>"


@dataclass(frozen=True)
class MergeResult:
    """Outcome of a merge attempt.

    Attributes:
        status: "merged" when the merge applied (committed, staged or fast-forwarded),
            "up_to_date" when the ref was already contained in HEAD, "conflict" when
            git left unmerged paths, "not_fast_forward" when an ff-only merge was
            impossible
        conflicted_files: Unmerged paths, only populated for conflicts
    """

    status: MergeStatus
    conflicted_files: tuple[str, ...] = ()


@dataclass(frozen=True)
class LogEntry:
    """One commit from a decorated log walk.

    Attributes:
        sha: Full commit sha
        refs: Remote branch names pointing at this commit, without the remote prefix
    """

    sha: str
    refs: tuple[str, ...]


# ============================================================================
# Abstract Interface
# ============================================================================


class Git(ABC):
    """Abstract interface for git operations.

    All implementations (real and fake) must implement this interface.
    This interface contains ONLY runtime operations - no test setup methods.
    """

    @abstractmethod
    def fetch(self, repo_root: Path, remote: str) -> None:
        """Fetch all branches from the remote, pruning deleted ones."""
        ...

    @abstractmethod
    def configure_identity(self, repo_root: Path, name: str, email: str) -> None:
        """Set the committer identity for this repository."""
        ...

    @abstractmethod
    def checkout_new_branch(self, repo_root: Path, branch: str, start_point: str) -> None:
        """Create or force-move a local branch to start_point and check it out."""
        ...

    @abstractmethod
    def create_branch(self, repo_root: Path, branch: str, start_point: str) -> None:
        """Create a local branch without checking it out."""
        ...

    @abstractmethod
    def merge(
        self, repo_root: Path, ref: str, *, mode: MergeMode, message: str | None = None
    ) -> MergeResult:
        """Merge ref into the checked-out branch.

        Args:
            repo_root: Repository root directory
            ref: Commit-ish to merge
            mode: "no-commit" stages a merge without committing (always a merge,
                never a fast-forward), "no-ff" commits a merge commit with message,
                "ff-only" only fast-forwards
            message: Commit message for "no-ff" merges

        Returns:
            MergeResult describing what happened. Conflicts leave the working tree
            in the conflicted state; callers reset it.

        Raises:
            RuntimeError: If git fails for any reason other than a content conflict
                or an impossible fast-forward
        """
        ...

    @abstractmethod
    def commit(self, repo_root: Path, message: str, *, author: CommitAuthor) -> None:
        """Commit the staged state (including a pending merge) with the given author."""
        ...

    @abstractmethod
    def reset_hard(self, repo_root: Path, ref: str = "HEAD") -> None:
        """Discard working tree and index changes, including a pending merge."""
        ...

    @abstractmethod
    def push_branch(
        self,
        repo_root: Path,
        remote: str,
        branch: str,
        *,
        force: bool,
        set_upstream: bool = False,
    ) -> None:
        """Push a local branch to the same name on the remote.

        Raises:
            RuntimeError: If the remote rejects the push
        """
        ...

    @abstractmethod
    def delete_remote_branch(self, repo_root: Path, remote: str, branch: str) -> None:
        """Delete a branch on the remote."""
        ...

    @abstractmethod
    def list_remote_branches(self, repo_root: Path, remote: str, pattern: str) -> list[str]:
        """List branch names on the remote matching a shell-style pattern.

        `*` matches across slashes, so `mergefwd/12/*` lists every merge-forward
        ref of change 12 whatever its target branch looks like.
        """
        ...

    @abstractmethod
    def remote_branch_exists(self, repo_root: Path, remote: str, branch: str) -> bool:
        """Check if a branch exists on the remote."""
        ...

    @abstractmethod
    def rev_parse(self, repo_root: Path, ref: str) -> str:
        """Resolve a ref to its commit sha."""
        ...

    @abstractmethod
    def is_ancestor(self, repo_root: Path, ancestor: str, descendant: str) -> bool:
        """Check whether ancestor is reachable from descendant (a commit is its own ancestor)."""
        ...

    @abstractmethod
    def log_with_remote_refs(
        self, repo_root: Path, remote: str, tip: str, exclude: str | None
    ) -> list[LogEntry]:
        """Walk commits reachable from tip but not from exclude.

        Args:
            repo_root: Repository root directory
            remote: Remote whose branches decorate the entries
            tip: Commit-ish to start from
            exclude: Commit-ish whose history is left out, or None for full history

        Returns:
            Entries in topological order, newest first
        """
        ...

    @abstractmethod
    def get_commit_author(self, repo_root: Path, ref: str) -> CommitAuthor:
        """Get the author of a commit."""
        ...
