"""Encoding and decoding of the bot's structured ref names.

Three namespaces are owned by the bot:

    mergefwd/<changeId>/<targetBranch>
    mergeconflict/<issueId>/<changeId>/<sourceBranch>/to/<targetBranch>
    known-good/<branch>

Branch names are embedded verbatim, so dots, slashes and dashes survive a
round trip. Decoders are total: anything that is not a well-formed name in the
namespace decodes to None.

Refs written by the earlier generation of the bot
(``merge-conflicts-<issue>-pr-<change>-<source>-to-<target>``) cannot be decoded
unambiguously. They are still recognised as quarantine markers so callers can
treat them conservatively.
"""

import re
from dataclasses import dataclass

MERGE_FORWARD_PREFIX = "mergefwd/"
QUARANTINE_PREFIX = "mergeconflict/"
KNOWN_GOOD_PREFIX = "known-good/"
LEGACY_QUARANTINE_PREFIX = "merge-conflicts-"

QUARANTINE_SEPARATOR = "to"

_FORBIDDEN_CHARS = frozenset(" ~^:?*[\\")
_LEGACY_QUARANTINE_PATTERN = re.compile(r"^merge-conflicts-(\d+)(?:-pr-(\d+)-)?")


@dataclass(frozen=True)
class MergeForwardRef:
    """Decoded merge-forward ref: one change's in-flight merge into one target."""

    change_id: str
    target: str

    @property
    def name(self) -> str:
        return encode_merge_forward(self.change_id, self.target)


@dataclass(frozen=True)
class QuarantineRef:
    """Decoded conflict-quarantine ref."""

    issue_id: int
    change_id: str
    source: str
    target: str

    @property
    def name(self) -> str:
        return encode_quarantine(self.issue_id, self.change_id, self.source, self.target)


@dataclass(frozen=True)
class LegacyQuarantineRef:
    """Whatever could be recovered from a quarantine marker in an older format."""

    name: str
    issue_id: int | None
    change_id: str | None


def is_valid_branch_name(name: str) -> bool:
    """Check a branch name against git's ref-format rules."""
    if not name or name == "@":
        return False
    if name.startswith("/") or name.endswith("/") or name.endswith("."):
        return False
    if "//" in name or ".." in name or "@{" in name:
        return False
    for char in name:
        if char in _FORBIDDEN_CHARS or ord(char) < 0x20 or ord(char) == 0x7F:
            return False
    for component in name.split("/"):
        if component.startswith(".") or component.endswith(".lock"):
            return False
    return True


def is_valid_change_id(change_id: str) -> bool:
    return "/" not in change_id and is_valid_branch_name(change_id)


def is_quarantine_encodable(branch: str) -> bool:
    return is_valid_branch_name(branch) and QUARANTINE_SEPARATOR not in branch.split("/")


def _is_canonical_issue_id(text: str) -> bool:
    return text.isdigit() and text.isascii() and not text.startswith("0")


def encode_merge_forward(change_id: str, target: str) -> str:
    """Build the merge-forward ref name for a change and a target branch.

    Raises:
        ValueError: If the change id or target branch is outside the encodable domain
    """
    if not is_valid_change_id(change_id):
        msg = f"Invalid change id for merge-forward ref: {change_id!r}"
        raise ValueError(msg)
    if not is_valid_branch_name(target):
        msg = f"Invalid target branch for merge-forward ref: {target!r}"
        raise ValueError(msg)
    return f"{MERGE_FORWARD_PREFIX}{change_id}/{target}"


def decode_merge_forward(name: str) -> MergeForwardRef | None:
    if not name.startswith(MERGE_FORWARD_PREFIX):
        return None
    change_id, sep, target = name[len(MERGE_FORWARD_PREFIX) :].partition("/")
    if not sep or not is_valid_change_id(change_id) or not is_valid_branch_name(target):
        return None
    return MergeForwardRef(change_id=change_id, target=target)


def encode_quarantine(issue_id: int, change_id: str, source: str, target: str) -> str:
    """Build the conflict-quarantine ref name.

    Branch names containing a path component equal to "to" cannot be encoded
    because the separator would become ambiguous.

    Raises:
        ValueError: If any part is outside the encodable domain
    """
    if issue_id <= 0:
        msg = f"Issue id must be positive, got {issue_id}"
        raise ValueError(msg)
    if not is_valid_change_id(change_id):
        msg = f"Invalid change id for quarantine ref: {change_id!r}"
        raise ValueError(msg)
    for branch in (source, target):
        if not is_quarantine_encodable(branch):
            msg = f"Branch {branch!r} cannot be encoded in a quarantine ref"
            raise ValueError(msg)
    return f"{QUARANTINE_PREFIX}{issue_id}/{change_id}/{source}/{QUARANTINE_SEPARATOR}/{target}"


def decode_quarantine(name: str) -> QuarantineRef | None:
    if not name.startswith(QUARANTINE_PREFIX):
        return None
    parts = name[len(QUARANTINE_PREFIX) :].split("/")
    if len(parts) < 5:
        return None
    issue_text, change_id, branch_parts = parts[0], parts[1], parts[2:]
    separators = [i for i, part in enumerate(branch_parts) if part == QUARANTINE_SEPARATOR]
    if len(separators) != 1:
        return None
    split_at = separators[0]
    source = "/".join(branch_parts[:split_at])
    target = "/".join(branch_parts[split_at + 1 :])
    if not _is_canonical_issue_id(issue_text) or not is_valid_change_id(change_id):
        return None
    if not is_quarantine_encodable(source) or not is_quarantine_encodable(target):
        return None
    return QuarantineRef(
        issue_id=int(issue_text), change_id=change_id, source=source, target=target
    )


def encode_known_good(branch: str) -> str:
    if not is_valid_branch_name(branch):
        msg = f"Invalid branch for known-good pointer: {branch!r}"
        raise ValueError(msg)
    return f"{KNOWN_GOOD_PREFIX}{branch}"


def decode_known_good(name: str) -> str | None:
    if not name.startswith(KNOWN_GOOD_PREFIX):
        return None
    branch = name[len(KNOWN_GOOD_PREFIX) :]
    if not is_valid_branch_name(branch):
        return None
    return branch


def decode_legacy_quarantine(name: str) -> LegacyQuarantineRef | None:
    """Recover what we can from a quarantine marker that does not decode.

    Returns None for canonical quarantine refs and for names that are not
    quarantine markers at all.
    """
    if name.startswith(QUARANTINE_PREFIX):
        if decode_quarantine(name) is not None:
            return None
        head = name[len(QUARANTINE_PREFIX) :].split("/")
        issue_id = int(head[0]) if _is_canonical_issue_id(head[0]) else None
        change_id = head[1] if len(head) > 1 and is_valid_change_id(head[1]) else None
        return LegacyQuarantineRef(name=name, issue_id=issue_id, change_id=change_id)

    if name.startswith(LEGACY_QUARANTINE_PREFIX):
        match = _LEGACY_QUARANTINE_PATTERN.match(name)
        if match is None:
            return LegacyQuarantineRef(name=name, issue_id=None, change_id=None)
        return LegacyQuarantineRef(
            name=name, issue_id=int(match.group(1)), change_id=match.group(2)
        )

    return None


def is_legacy_quarantine(name: str) -> bool:
    return decode_legacy_quarantine(name) is not None


def is_quarantine_marker(name: str) -> bool:
    """True for canonical and legacy quarantine refs alike."""
    return decode_quarantine(name) is not None or is_legacy_quarantine(name)


def is_bot_ref(name: str) -> bool:
    """True for any name inside a namespace the bot owns."""
    return (
        name.startswith(MERGE_FORWARD_PREFIX)
        or name.startswith(KNOWN_GOOD_PREFIX)
        or is_quarantine_marker(name)
    )


def extract_original_change_id(base_branch: str, head_branch: str, fallback: str) -> str:
    """Determine which change a merge event belongs to.

    A resolution merged into a merge-forward ref continues the original change,
    as does a quarantine ref merged anywhere. Otherwise the triggering change
    is the original.

    Args:
        base_branch: Branch the triggering change was merged into
        head_branch: Source branch of the triggering change
        fallback: Id of the triggering change

    Returns:
        Id of the change whose merge-forward refs this event belongs to
    """
    merge_forward = decode_merge_forward(base_branch)
    if merge_forward is not None:
        return merge_forward.change_id

    quarantine = decode_quarantine(head_branch)
    if quarantine is not None:
        return quarantine.change_id

    legacy = decode_legacy_quarantine(head_branch)
    if legacy is not None and legacy.change_id is not None:
        return legacy.change_id

    return fallback
