"""Rendering and parsing of merge-conflict tracking issues."""

import logging
import re
from dataclasses import dataclass

from mergebot.core.github.metadata_blocks import (
    ConflictIssueSchema,
    create_metadata_block,
    find_metadata_block,
    render_metadata_block,
)

logger = logging.getLogger(__name__)

_PULL_REQUEST_REFERENCE = re.compile(r"pull request #(\d+)")


@dataclass(frozen=True)
class ConflictMetadata:
    """Machine-readable part of a conflict issue body."""

    change_id: str
    quarantine_ref: str
    source_branch: str
    target_branch: str
    merge_ref: str
    merge_forward_ref: str | None
    conflicted_files: tuple[str, ...]


def format_conflict_issue_title(referenced_issue: int | None, commit: str, target: str) -> str:
    """Title like `Merge #123 (1a2b3c4d5) into main`."""
    issue_text = f" #{referenced_issue}" if referenced_issue is not None else ""
    return f"Merge{issue_text} ({commit[:9]}) into {target}"


def render_conflict_issue_body(
    *,
    metadata: ConflictMetadata,
    author: str,
    issue_number: int,
    referenced_issue: int | None,
    run_url: str | None,
) -> str:
    """Render the issue body: resolution instructions plus a metadata block.

    The resolver checks out the quarantine ref, merges the previous hop into it
    and opens a pull request against the merge-forward ref, whose merge resumes
    the chain.
    """
    issue_text = f" for issue #{referenced_issue}" if referenced_issue is not None else ""
    merged_forward = (
        f"[merged forward automatically]({run_url})" if run_url else "merged forward automatically"
    )
    pr_target = metadata.merge_forward_ref or metadata.target_branch

    lines = [
        "## Automatic Merge Failed",
        f"@{author} changes from pull request #{metadata.change_id}{issue_text} couldn't be "
        f"{merged_forward} into `{metadata.target_branch}`.",
        f"Please submit a new pull request against the `{pr_target}` branch that includes "
        "the changes. The sooner you do this the fewer conflicts you'll run into.",
        "",
        "### Details",
        f"Run these commands to perform the merge, then open a pull request against `{pr_target}`.",
        "1. `git fetch`",
        f"1. `git checkout {metadata.quarantine_ref}`",
        f"1. `git merge {metadata.merge_ref} "
        f'-m "Merge {metadata.merge_ref} Fixes #{issue_number}"`',
        "1. `git push`",
        "",
        "#### There were conflicts in these files:",
    ]
    lines.extend(f"- {path}" for path in metadata.conflicted_files)

    data: dict[str, object] = {
        "change_id": metadata.change_id,
        "quarantine_ref": metadata.quarantine_ref,
        "source_branch": metadata.source_branch,
        "target_branch": metadata.target_branch,
        "merge_ref": metadata.merge_ref,
    }
    if metadata.merge_forward_ref is not None:
        data["merge_forward_ref"] = metadata.merge_forward_ref
    data["conflicted_files"] = list(metadata.conflicted_files)

    schema = ConflictIssueSchema()
    block = create_metadata_block(schema.get_key(), data, schema=schema)
    return "\n".join(lines) + "\n\n" + render_metadata_block(block) + "\n"


def parse_conflict_metadata(body: str) -> ConflictMetadata | None:
    """Read the metadata block back from an issue body.

    Returns None when the block is missing or invalid, e.g. for issues created
    before the bot embedded metadata.
    """
    schema = ConflictIssueSchema()
    block = find_metadata_block(body, schema.get_key())
    if block is None:
        return None
    try:
        schema.validate(block.data)
    except ValueError as e:
        logger.warning("Ignoring invalid %s block: %s", schema.get_key(), e)
        return None

    data = block.data
    return ConflictMetadata(
        change_id=data["change_id"],
        quarantine_ref=data["quarantine_ref"],
        source_branch=data["source_branch"],
        target_branch=data["target_branch"],
        merge_ref=data["merge_ref"],
        merge_forward_ref=data.get("merge_forward_ref"),
        conflicted_files=tuple(data.get("conflicted_files", [])),
    )


def find_change_id(body: str) -> str | None:
    """Recover the change id from a conflict issue body.

    Prefers the metadata block and falls back to the "pull request #N" text
    that issues written by older versions of the bot contain.
    """
    metadata = parse_conflict_metadata(body)
    if metadata is not None:
        return metadata.change_id
    match = _PULL_REQUEST_REFERENCE.search(body)
    if match is None:
        return None
    return match.group(1)
