"""Issue records as the merge bot sees them through gh."""

from dataclasses import dataclass


@dataclass(frozen=True)
class IssueInfo:
    """A conflict issue, or an issue a resolution closes with a keyword.

    The body of a conflict issue carries the metadata block that ties it back
    to its change. Assignees and milestone are set when the bot opens it.
    """

    number: int
    title: str
    body: str
    state: str  # "OPEN" or "CLOSED"
    url: str
    labels: list[str]
    assignees: list[str]
    milestone: str | None = None


@dataclass(frozen=True)
class CreateIssueResult:
    """A newly opened conflict issue.

    Attributes:
        number: Issue number, embedded in the quarantine ref name
        url: Link reported in the run summary and the blocked status
    """

    number: int
    url: str
