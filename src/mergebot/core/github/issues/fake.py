"""In-memory fake implementation of GitHub issues for testing."""

from dataclasses import replace
from pathlib import Path

from mergebot.core.github.issues.abc import GitHubIssues
from mergebot.core.github.issues.types import CreateIssueResult, IssueInfo


class FakeGitHubIssues(GitHubIssues):
    """In-memory fake implementation for testing.

    All state is provided via constructor using keyword arguments.
    """

    def __init__(
        self,
        *,
        issues: dict[int, IssueInfo] | None = None,
        next_issue_number: int = 1,
    ) -> None:
        """Create FakeGitHubIssues with pre-configured state.

        Args:
            issues: Mapping of issue number -> IssueInfo
            next_issue_number: Next issue number to assign (for predictable testing)
        """
        self._issues = issues or {}
        self._next_issue_number = next_issue_number
        self._created_issues: list[tuple[str, str, list[str], str | None]] = []
        self._closed_issues: list[tuple[int, str | None]] = []
        self._added_assignees: list[tuple[int, str]] = []

    @property
    def created_issues(self) -> list[tuple[str, str, list[str], str | None]]:
        """Read-only access to created issues for test assertions.

        Returns list of (title, body, labels, milestone) tuples as passed at creation.
        """
        return self._created_issues

    @property
    def closed_issues(self) -> list[tuple[int, str | None]]:
        """Read-only access to closed issues as (number, comment) tuples."""
        return self._closed_issues

    @property
    def added_assignees(self) -> list[tuple[int, str]]:
        return self._added_assignees

    def _require(self, number: int) -> IssueInfo:
        if number not in self._issues:
            msg = f"Issue #{number} not found"
            raise RuntimeError(msg)
        return self._issues[number]

    def create_issue(
        self,
        repo_root: Path,
        title: str,
        body: str,
        labels: list[str],
        milestone: str | None = None,
    ) -> CreateIssueResult:
        """Create issue in fake storage and track mutation."""
        issue_number = self._next_issue_number
        self._next_issue_number += 1

        url = f"https://github.com/test-owner/test-repo/issues/{issue_number}"
        self._issues[issue_number] = IssueInfo(
            number=issue_number,
            title=title,
            body=body,
            state="OPEN",
            url=url,
            labels=list(labels),
            assignees=[],
            milestone=milestone,
        )
        self._created_issues.append((title, body, list(labels), milestone))

        return CreateIssueResult(number=issue_number, url=url)

    def get_issue(self, repo_root: Path, number: int) -> IssueInfo:
        return self._require(number)

    def update_issue_body(self, repo_root: Path, number: int, body: str) -> None:
        self._issues[number] = replace(self._require(number), body=body)

    def add_assignee(self, repo_root: Path, number: int, assignee: str) -> None:
        issue = self._require(number)
        if assignee not in issue.assignees:
            self._issues[number] = replace(issue, assignees=[*issue.assignees, assignee])
        self._added_assignees.append((number, assignee))

    def list_issues(
        self,
        repo_root: Path,
        labels: list[str] | None = None,
        state: str | None = None,
        limit: int | None = None,
    ) -> list[IssueInfo]:
        """Query issues from fake storage.

        Filters issues by labels (AND logic) and state.
        """
        issues = list(self._issues.values())

        if labels:
            label_set = set(labels)
            issues = [issue for issue in issues if label_set.issubset(set(issue.labels))]

        if state and state != "all":
            state_upper = state.upper()
            issues = [issue for issue in issues if issue.state == state_upper]

        if limit is not None:
            issues = issues[:limit]

        return issues

    def close_issue(self, repo_root: Path, number: int, comment: str | None = None) -> None:
        self._issues[number] = replace(self._require(number), state="CLOSED")
        self._closed_issues.append((number, comment))
