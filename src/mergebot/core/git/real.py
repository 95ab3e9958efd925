"""Production Git implementation using subprocess.

This module provides the real Git implementation that executes actual git
commands via subprocess.
"""

import fnmatch
from pathlib import Path

from mergebot.core.git.abc import CommitAuthor, Git, LogEntry, MergeMode, MergeResult
from mergebot.core.subprocess_utils import format_command_failure, run_subprocess_with_context

# ============================================================================
# Production Implementation
# ============================================================================


def parse_remote_decorations(decorations: str, remote: str) -> tuple[str, ...]:
    """Extract remote branch names from a `%D` decoration string.

    Example:
        >>> parse_remote_decorations("HEAD -> main, origin/main, tag: v1", "origin")
        ('main',)
    """
    prefix = f"{remote}/"
    names: list[str] = []
    for item in decorations.split(", "):
        item = item.strip()
        if " -> " in item:
            item = item.split(" -> ")[-1]
        if not item.startswith(prefix):
            continue
        name = item[len(prefix) :]
        if name == "HEAD" or name in names:
            continue
        names.append(name)
    return tuple(names)


class RealGit(Git):
    """Production implementation using subprocess.

    All git operations execute actual git commands via subprocess.
    """

    def fetch(self, repo_root: Path, remote: str) -> None:
        """Fetch all branches from the remote, pruning deleted ones."""
        run_subprocess_with_context(
            ["git", "fetch", "--prune", remote],
            operation_context=f"fetch from remote '{remote}'",
            cwd=repo_root,
        )

    def configure_identity(self, repo_root: Path, name: str, email: str) -> None:
        """Set user.name and user.email in the repository config."""
        run_subprocess_with_context(
            ["git", "config", "user.name", name],
            operation_context="configure git user name",
            cwd=repo_root,
        )
        run_subprocess_with_context(
            ["git", "config", "user.email", email],
            operation_context="configure git user email",
            cwd=repo_root,
        )

    def checkout_new_branch(self, repo_root: Path, branch: str, start_point: str) -> None:
        """Create or reset a branch at start_point and check it out."""
        run_subprocess_with_context(
            ["git", "checkout", "--no-track", "-B", branch, start_point],
            operation_context=f"check out branch '{branch}' at '{start_point}'",
            cwd=repo_root,
        )

    def create_branch(self, repo_root: Path, branch: str, start_point: str) -> None:
        """Create a new branch without checking it out."""
        run_subprocess_with_context(
            ["git", "branch", "--no-track", branch, start_point],
            operation_context=f"create branch '{branch}' from '{start_point}'",
            cwd=repo_root,
        )

    def merge(
        self, repo_root: Path, ref: str, *, mode: MergeMode, message: str | None = None
    ) -> MergeResult:
        """Merge ref into HEAD.

        Already-contained refs are detected with merge-base before git is asked to
        merge, so the result does not depend on git's localized output.
        """
        if self.is_ancestor(repo_root, ref, "HEAD"):
            return MergeResult(status="up_to_date")

        cmd = ["git", "merge"]
        if mode == "no-commit":
            cmd.extend(["--no-commit", "--no-ff"])
        elif mode == "no-ff":
            cmd.extend(["--no-ff", "-m", message if message is not None else f"Merge {ref}"])
        else:
            cmd.append("--ff-only")
        cmd.append(ref)

        result = run_subprocess_with_context(
            cmd, operation_context=f"merge '{ref}'", cwd=repo_root, check=False
        )
        if result.returncode == 0:
            return MergeResult(status="merged")

        conflicted = self._list_unmerged_files(repo_root)
        if conflicted:
            return MergeResult(status="conflict", conflicted_files=tuple(conflicted))

        if mode == "ff-only" and not self.is_ancestor(repo_root, "HEAD", ref):
            return MergeResult(status="not_fast_forward")

        msg = format_command_failure(
            f"Failed to merge '{ref}'", cmd, result.returncode, result.stdout, result.stderr
        )
        raise RuntimeError(msg)

    def _list_unmerged_files(self, repo_root: Path) -> list[str]:
        result = run_subprocess_with_context(
            ["git", "diff", "--name-only", "--diff-filter=U"],
            operation_context="list conflicted files",
            cwd=repo_root,
        )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def commit(self, repo_root: Path, message: str, *, author: CommitAuthor) -> None:
        """Commit staged changes with an explicit author."""
        run_subprocess_with_context(
            ["git", "commit", "--no-verify", "-m", message, "--author", author.format()],
            operation_context="commit merge",
            cwd=repo_root,
        )

    def reset_hard(self, repo_root: Path, ref: str = "HEAD") -> None:
        """Hard reset, aborting any pending merge."""
        run_subprocess_with_context(
            ["git", "reset", "--hard", ref],
            operation_context=f"reset working tree to '{ref}'",
            cwd=repo_root,
        )

    def push_branch(
        self,
        repo_root: Path,
        remote: str,
        branch: str,
        *,
        force: bool,
        set_upstream: bool = False,
    ) -> None:
        """Push a branch to the remote."""
        cmd = ["git", "push"]
        if force:
            cmd.append("--force")
        if set_upstream:
            cmd.append("--set-upstream")
        cmd.extend([remote, branch])

        run_subprocess_with_context(
            cmd,
            operation_context=f"push branch '{branch}' to remote '{remote}'",
            cwd=repo_root,
        )

    def delete_remote_branch(self, repo_root: Path, remote: str, branch: str) -> None:
        """Delete a branch on the remote."""
        run_subprocess_with_context(
            ["git", "push", remote, "--delete", branch],
            operation_context=f"delete branch '{branch}' on remote '{remote}'",
            cwd=repo_root,
        )

    def list_remote_branches(self, repo_root: Path, remote: str, pattern: str) -> list[str]:
        """List remote branches matching pattern via ls-remote."""
        result = run_subprocess_with_context(
            ["git", "ls-remote", "--heads", remote, pattern],
            operation_context=f"list branches matching '{pattern}' on remote '{remote}'",
            cwd=repo_root,
        )

        branches: list[str] = []
        for line in result.stdout.splitlines():
            _, _, ref = line.strip().partition("\t")
            if not ref.startswith("refs/heads/"):
                continue
            name = ref[len("refs/heads/") :]
            # ls-remote matches patterns against ref tails, so re-check the full name
            if fnmatch.fnmatchcase(name, pattern):
                branches.append(name)
        return branches

    def remote_branch_exists(self, repo_root: Path, remote: str, branch: str) -> bool:
        """Check if a branch exists on the remote."""
        return branch in self.list_remote_branches(repo_root, remote, branch)

    def rev_parse(self, repo_root: Path, ref: str) -> str:
        """Resolve ref to a commit sha."""
        result = run_subprocess_with_context(
            ["git", "rev-parse", "--verify", f"{ref}^{{commit}}"],
            operation_context=f"resolve '{ref}'",
            cwd=repo_root,
        )
        return result.stdout.strip()

    def is_ancestor(self, repo_root: Path, ancestor: str, descendant: str) -> bool:
        """Check ancestry with merge-base --is-ancestor (exit 0 yes, 1 no)."""
        cmd = ["git", "merge-base", "--is-ancestor", ancestor, descendant]
        result = run_subprocess_with_context(
            cmd,
            operation_context=f"check whether '{ancestor}' is an ancestor of '{descendant}'",
            cwd=repo_root,
            check=False,
        )
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False

        msg = format_command_failure(
            f"Failed to check whether '{ancestor}' is an ancestor of '{descendant}'",
            cmd,
            result.returncode,
            result.stdout,
            result.stderr,
        )
        raise RuntimeError(msg)

    def log_with_remote_refs(
        self, repo_root: Path, remote: str, tip: str, exclude: str | None
    ) -> list[LogEntry]:
        """Topo-ordered log with decorations restricted to the remote's branches."""
        cmd = ["git", "log", "--topo-order", "--format=%H%x09%D", tip]
        if exclude is not None:
            cmd.append(f"^{exclude}")
        cmd.append("--")

        result = run_subprocess_with_context(
            cmd,
            operation_context=f"list commits of '{tip}'",
            cwd=repo_root,
        )

        entries: list[LogEntry] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            sha, _, decorations = line.partition("\t")
            entries.append(
                LogEntry(sha=sha.strip(), refs=parse_remote_decorations(decorations, remote))
            )
        return entries

    def get_commit_author(self, repo_root: Path, ref: str) -> CommitAuthor:
        """Read author name and email of a commit."""
        result = run_subprocess_with_context(
            ["git", "log", "-1", "--format=%an%x00%ae", ref],
            operation_context=f"read author of '{ref}'",
            cwd=repo_root,
        )
        name, _, email = result.stdout.strip().partition("\x00")
        return CommitAuthor(name=name, email=email)
