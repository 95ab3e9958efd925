"""Tests for RealGitHubIssues with mocked subprocess execution.

These tests verify that RealGitHubIssues builds the right gh CLI commands and
parses their output. subprocess.run is replaced via monkeypatch.
"""

import json
import subprocess
from pathlib import Path

import pytest
from pytest import MonkeyPatch

from mergebot.core.github.issues.real import RealGitHubIssues
from tests.test_utils.subprocess_helpers import completed, mock_subprocess_run

ISSUE_JSON = {
    "number": 7,
    "title": "Merge #45 (abcdef012) into main",
    "body": "details",
    "state": "OPEN",
    "url": "https://github.com/owner/repo/issues/7",
    "labels": [{"name": "merge conflict"}, {"name": "highest priority"}],
    "assignees": [{"login": "alice"}],
    "milestone": {"title": "5.8"},
}


def test_create_issue_parses_url(monkeypatch: MonkeyPatch) -> None:
    """Test create_issue passes labels and milestone and reads the number from the URL."""
    created_commands = []

    def mock_run(cmd: list[str], **kwargs) -> subprocess.CompletedProcess:
        created_commands.append(cmd)
        return completed(cmd, stdout="Creating issue\nhttps://github.com/owner/repo/issues/42\n")

    with mock_subprocess_run(monkeypatch, mock_run):
        result = RealGitHubIssues().create_issue(
            Path("/repo"),
            title="Merge into main",
            body="body",
            labels=["highest priority", "merge conflict"],
            milestone="5.8",
        )

    assert result.number == 42
    assert result.url == "https://github.com/owner/repo/issues/42"
    cmd = created_commands[0]
    assert cmd[:3] == ["gh", "issue", "create"]
    assert cmd.count("--label") == 2
    assert cmd[cmd.index("--milestone") + 1] == "5.8"
    assert "--json" not in cmd


def test_create_issue_without_milestone(monkeypatch: MonkeyPatch) -> None:
    created_commands = []

    def mock_run(cmd: list[str], **kwargs) -> subprocess.CompletedProcess:
        created_commands.append(cmd)
        return completed(cmd, stdout="https://github.com/owner/repo/issues/1\n")

    with mock_subprocess_run(monkeypatch, mock_run):
        RealGitHubIssues().create_issue(Path("/repo"), title="T", body="B", labels=[])

    assert "--milestone" not in created_commands[0]
    assert "--label" not in created_commands[0]


def test_get_issue_parses_json(monkeypatch: MonkeyPatch) -> None:
    def mock_run(cmd: list[str], **kwargs) -> subprocess.CompletedProcess:
        assert cmd[:4] == ["gh", "issue", "view", "7"]
        return completed(cmd, stdout=json.dumps(ISSUE_JSON))

    with mock_subprocess_run(monkeypatch, mock_run):
        issue = RealGitHubIssues().get_issue(Path("/repo"), 7)

    assert issue.number == 7
    assert issue.state == "OPEN"
    assert issue.labels == ["merge conflict", "highest priority"]
    assert issue.assignees == ["alice"]
    assert issue.milestone == "5.8"


def test_list_issues_builds_filters(monkeypatch: MonkeyPatch) -> None:
    created_commands = []
    no_body = {**ISSUE_JSON, "body": None, "milestone": None}

    def mock_run(cmd: list[str], **kwargs) -> subprocess.CompletedProcess:
        created_commands.append(cmd)
        return completed(cmd, stdout=json.dumps([no_body]))

    with mock_subprocess_run(monkeypatch, mock_run):
        issues = RealGitHubIssues().list_issues(
            Path("/repo"), labels=["merge conflict"], state="open", limit=5
        )

    cmd = created_commands[0]
    assert cmd[cmd.index("--label") + 1] == "merge conflict"
    assert cmd[cmd.index("--state") + 1] == "open"
    assert cmd[cmd.index("--limit") + 1] == "5"
    assert issues[0].body == ""
    assert issues[0].milestone is None


def test_edit_and_close_commands(monkeypatch: MonkeyPatch) -> None:
    created_commands = []

    def mock_run(cmd: list[str], **kwargs) -> subprocess.CompletedProcess:
        created_commands.append(cmd)
        return completed(cmd)

    with mock_subprocess_run(monkeypatch, mock_run):
        issues = RealGitHubIssues()
        issues.update_issue_body(Path("/repo"), 7, "new body")
        issues.add_assignee(Path("/repo"), 7, "alice")
        issues.close_issue(Path("/repo"), 7, "Resolved by #102.")
        issues.close_issue(Path("/repo"), 8)

    assert created_commands == [
        ["gh", "issue", "edit", "7", "--body", "new body"],
        ["gh", "issue", "edit", "7", "--add-assignee", "alice"],
        ["gh", "issue", "close", "7", "--comment", "Resolved by #102."],
        ["gh", "issue", "close", "8"],
    ]


def test_gh_failure_raises_runtime_error(monkeypatch: MonkeyPatch) -> None:
    def mock_run(cmd: list[str], **kwargs) -> subprocess.CompletedProcess:
        raise subprocess.CalledProcessError(1, cmd, output="", stderr="not authenticated")

    with mock_subprocess_run(monkeypatch, mock_run):
        with pytest.raises(RuntimeError, match="not authenticated"):
            RealGitHubIssues().get_issue(Path("/repo"), 7)
