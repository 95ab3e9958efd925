"""Abstract interface for the GitHub issue operations the merge bot uses."""

from abc import ABC, abstractmethod
from pathlib import Path

from mergebot.core.github.issues.types import CreateIssueResult, IssueInfo


class GitHubIssues(ABC):
    """Abstract interface for GitHub issue operations.

    All implementations (real and fake) must implement this interface.
    """

    @abstractmethod
    def create_issue(
        self,
        repo_root: Path,
        title: str,
        body: str,
        labels: list[str],
        milestone: str | None = None,
    ) -> CreateIssueResult:
        """Create a new GitHub issue.

        Args:
            repo_root: Repository root directory
            title: Issue title
            body: Issue body markdown
            labels: List of label names to apply
            milestone: Optional milestone title

        Returns:
            CreateIssueResult with issue number and full GitHub URL

        Raises:
            RuntimeError: If gh CLI fails (not installed, not authenticated, or command error)
        """
        ...

    @abstractmethod
    def get_issue(self, repo_root: Path, number: int) -> IssueInfo:
        """Fetch issue data by number.

        Raises:
            RuntimeError: If gh CLI fails or issue not found
        """
        ...

    @abstractmethod
    def update_issue_body(self, repo_root: Path, number: int, body: str) -> None:
        """Replace the body of an existing issue.

        Raises:
            RuntimeError: If gh CLI fails or issue not found
        """
        ...

    @abstractmethod
    def add_assignee(self, repo_root: Path, number: int, assignee: str) -> None:
        """Assign a user to an existing issue.

        Raises:
            RuntimeError: If gh CLI fails or issue not found
        """
        ...

    @abstractmethod
    def list_issues(
        self,
        repo_root: Path,
        labels: list[str] | None = None,
        state: str | None = None,
        limit: int | None = None,
    ) -> list[IssueInfo]:
        """Query issues by criteria.

        Args:
            repo_root: Repository root directory
            labels: Filter by labels (all labels must match)
            state: Filter by state ("open", "closed", or "all")
            limit: Maximum number of issues to return (None = gh default)

        Raises:
            RuntimeError: If gh CLI fails
        """
        ...

    @abstractmethod
    def close_issue(self, repo_root: Path, number: int, comment: str | None = None) -> None:
        """Close an issue, optionally leaving a closing comment.

        Raises:
            RuntimeError: If gh CLI fails or issue not found
        """
        ...
