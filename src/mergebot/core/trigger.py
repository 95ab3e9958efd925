"""The change that triggered a run, parsed from a GitHub pull_request event."""

import json
import re
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from mergebot.core.errors import MergeBotError

# https://docs.github.com/en/issues/tracking-your-work-with-issues/linking-a-pull-request-to-an-issue
_CLOSING_REFERENCE = re.compile(
    r"(?:close|closes|closed|fix|fixes|fixed|resolve|resolves|resolved)(?:[\s\w/-]+#(\d+))",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Change:
    """A merged (or closed) change and where it landed.

    Attributes:
        id: Change (pull request) number as a string
        author: Login of the change author, assigned to conflict issues
        title: Change title
        body: Change description, may be empty
        source_branch: Branch the change was opened from
        head_commit: Head commit of the change, the commit carried forward
        base_branch: Branch the change was merged into
        merged: False when the change was closed without merging
    """

    id: str
    author: str
    title: str
    body: str
    source_branch: str
    head_commit: str
    base_branch: str
    merged: bool


class _User(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str


class _GitRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ref: str
    sha: str


class _PullRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    number: int
    title: str
    body: str | None = None
    merged: bool = False
    user: _User
    head: _GitRef
    base: _GitRef


class _PullRequestEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: str | None = None
    pull_request: _PullRequest


def parse_event_payload(payload: object) -> Change:
    """Build a Change from a decoded pull_request event payload.

    Raises:
        MergeBotError: If the payload is not a pull_request event
    """
    try:
        event = _PullRequestEvent.model_validate(payload)
    except ValidationError as e:
        msg = f"Event payload is not a pull_request event:\n{e}"
        raise MergeBotError(msg) from e

    pr = event.pull_request
    return Change(
        id=str(pr.number),
        author=pr.user.login,
        title=pr.title,
        body=pr.body or "",
        source_branch=pr.head.ref,
        head_commit=pr.head.sha,
        base_branch=pr.base.ref,
        merged=pr.merged,
    )


def load_event(event_path: Path) -> Change:
    """Read and parse the event file GitHub Actions exposes as GITHUB_EVENT_PATH."""
    if not event_path.exists():
        msg = f"Event file not found: {event_path}"
        raise MergeBotError(msg)
    try:
        payload = json.loads(event_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        msg = f"Event file {event_path} is not valid JSON: {e}"
        raise MergeBotError(msg) from e
    return parse_event_payload(payload)


def find_closing_references(text: str) -> list[int]:
    """Issue numbers referenced with GitHub closing keywords, in order, without duplicates.

    Example:
        >>> find_closing_references("Fixes #12 and closes #7")
        [12, 7]
    """
    numbers: list[int] = []
    for match in _CLOSING_REFERENCE.finditer(text):
        number = int(match.group(1))
        if number not in numbers:
            numbers.append(number)
    return numbers


def find_referenced_issue(change: Change) -> int | None:
    """First issue the change claims to fix, used to title conflict issues."""
    references = find_closing_references(f"{change.title}\n{change.body}")
    if not references:
        return None
    return references[0]
