"""Production implementation of GitHub issues using gh CLI."""

import json
from pathlib import Path
from typing import Any

from mergebot.core.github.issues.abc import GitHubIssues
from mergebot.core.github.issues.types import CreateIssueResult, IssueInfo
from mergebot.core.subprocess_utils import execute_gh_command

_ISSUE_FIELDS = "number,title,body,state,url,labels,assignees,milestone"


def _parse_issue(data: dict[str, Any]) -> IssueInfo:
    milestone = data.get("milestone")
    return IssueInfo(
        number=data["number"],
        title=data["title"],
        body=data.get("body") or "",
        state=data["state"],
        url=data["url"],
        labels=[label["name"] for label in data.get("labels", [])],
        assignees=[assignee["login"] for assignee in data.get("assignees", [])],
        milestone=milestone["title"] if milestone else None,
    )


class RealGitHubIssues(GitHubIssues):
    """Production implementation using gh CLI.

    All GitHub issue operations execute actual gh commands via subprocess.
    """

    def create_issue(
        self,
        repo_root: Path,
        title: str,
        body: str,
        labels: list[str],
        milestone: str | None = None,
    ) -> CreateIssueResult:
        """Create a new GitHub issue using gh CLI.

        Note: gh issue create prints the issue URL rather than JSON.
        """
        cmd = ["gh", "issue", "create", "--title", title, "--body", body]
        for label in labels:
            cmd.extend(["--label", label])
        if milestone is not None:
            cmd.extend(["--milestone", milestone])

        stdout = execute_gh_command(cmd, repo_root)
        # Output ends with a URL like: https://github.com/owner/repo/issues/123
        url = stdout.strip().splitlines()[-1].strip()
        issue_number_str = url.rstrip("/").split("/")[-1]

        return CreateIssueResult(number=int(issue_number_str), url=url)

    def get_issue(self, repo_root: Path, number: int) -> IssueInfo:
        cmd = ["gh", "issue", "view", str(number), "--json", _ISSUE_FIELDS]
        stdout = execute_gh_command(cmd, repo_root)
        return _parse_issue(json.loads(stdout))

    def update_issue_body(self, repo_root: Path, number: int, body: str) -> None:
        cmd = ["gh", "issue", "edit", str(number), "--body", body]
        execute_gh_command(cmd, repo_root)

    def add_assignee(self, repo_root: Path, number: int, assignee: str) -> None:
        cmd = ["gh", "issue", "edit", str(number), "--add-assignee", assignee]
        execute_gh_command(cmd, repo_root)

    def list_issues(
        self,
        repo_root: Path,
        labels: list[str] | None = None,
        state: str | None = None,
        limit: int | None = None,
    ) -> list[IssueInfo]:
        cmd = ["gh", "issue", "list", "--json", _ISSUE_FIELDS]

        if labels:
            for label in labels:
                cmd.extend(["--label", label])

        if state:
            cmd.extend(["--state", state])

        if limit is not None:
            cmd.extend(["--limit", str(limit)])

        stdout = execute_gh_command(cmd, repo_root)
        return [_parse_issue(issue) for issue in json.loads(stdout)]

    def close_issue(self, repo_root: Path, number: int, comment: str | None = None) -> None:
        cmd = ["gh", "issue", "close", str(number)]
        if comment is not None:
            cmd.extend(["--comment", comment])
        execute_gh_command(cmd, repo_root)
