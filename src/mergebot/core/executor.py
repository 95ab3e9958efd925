"""Forward-merge a change through the downstream branches of its base.

Each hop merges the change into a private merge-forward ref that starts at the
target's known-good pointer, so one change's in-flight state never leaks into
another's. A conflict quarantines the hop: a tracking issue is opened, a
quarantine ref is pushed, and the run stops. Merging a resolution into the
blocked merge-forward ref triggers a new run that resumes after that hop.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from mergebot.core.branch_names import (
    MERGE_FORWARD_PREFIX,
    QUARANTINE_PREFIX,
    QUARANTINE_SEPARATOR,
    QuarantineRef,
    decode_merge_forward,
    decode_quarantine,
    encode_known_good,
    encode_merge_forward,
    encode_quarantine,
    extract_original_change_id,
    is_bot_ref,
)
from mergebot.core.conflict_issue import (
    ConflictMetadata,
    format_conflict_issue_title,
    render_conflict_issue_body,
)
from mergebot.core.context import MergeBotContext
from mergebot.core.errors import MergeBotError
from mergebot.core.git.abc import CommitAuthor, MergeResult
from mergebot.core.trigger import Change, find_referenced_issue

logger = logging.getLogger(__name__)


class HopStatus(Enum):
    MERGED = "merged"
    ALREADY_MERGED = "already-merged"
    CONFLICTED = "conflicted"


class ExecutionStatus(Enum):
    SKIPPED = "skipped"
    COMPLETED = "completed"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class ConflictRecord:
    """A quarantined hop and the issue tracking it."""

    source: str
    target: str
    issue_number: int
    issue_url: str
    quarantine_ref: str
    merge_forward_ref: str
    conflicted_files: tuple[str, ...]


@dataclass(frozen=True)
class HopResult:
    """Outcome of merging into one target. `commit` is the tracking commit afterwards."""

    target: str
    status: HopStatus
    commit: str
    conflict: ConflictRecord | None = None


@dataclass(frozen=True)
class ExecutionResult:
    status: ExecutionStatus
    change_id: str
    message: str
    hops: tuple[HopResult, ...] = ()
    updated_branches: tuple[str, ...] = ()
    conflict: ConflictRecord | None = None


@dataclass
class _ChainProgress:
    """Mutable state of one run: what has been merged so far and from where."""

    change_id: str
    tracking_commit: str
    last_branch: str


class MergeChainExecutor:
    """Walks a merged change down the branch chain."""

    def __init__(self, ctx: MergeBotContext) -> None:
        self._ctx = ctx

    def run(self, change: Change) -> ExecutionResult:
        """Merge the change forward until it completes or hits a conflict.

        Returns:
            ExecutionResult; conflicts are reported as BLOCKED, not raised

        Raises:
            RuntimeError: If a git or gh command fails
            MergeBotError: If a target branch cannot take its merge-forward ref
        """
        ctx = self._ctx
        change_id = extract_original_change_id(change.base_branch, change.source_branch, change.id)

        if not change.merged:
            return self._skip(change_id, f"Change #{change.id} was closed without merging")

        resume = decode_merge_forward(change.base_branch)
        if resume is not None:
            if resume.target not in ctx.chain:
                return self._skip(
                    change_id, f"{change.base_branch} targets '{resume.target}' outside the chain"
                )
            ctx.git.fetch(ctx.repo_root, ctx.remote)
            targets = ctx.chain.downstream(resume.target)
            resolved_tip = ctx.git.rev_parse(ctx.repo_root, ctx.remote_ref(change.base_branch))
            progress = _ChainProgress(
                change_id=change_id,
                tracking_commit=resolved_tip,
                last_branch=resume.target,
            )
            logger.info(
                "Resuming change #%s after resolution #%s on %s",
                change_id,
                change.id,
                resume.target,
            )
        else:
            if change.base_branch not in ctx.chain:
                return self._skip(change_id, f"{change.base_branch} is not part of the chain")
            if ctx.chain.is_terminal(change.base_branch):
                return self._skip(
                    change_id, f"Change #{change.id} targets the terminal branch; nothing to merge"
                )
            ctx.git.fetch(ctx.repo_root, ctx.remote)
            targets = ctx.chain.downstream(change.base_branch)
            progress = _ChainProgress(
                change_id=change_id,
                tracking_commit=change.head_commit,
                last_branch=change.base_branch,
            )

        logger.info("Merge targets for change #%s: %s", change_id, ", ".join(targets) or "none")
        identity = ctx.config.identity
        ctx.git.configure_identity(ctx.repo_root, identity.name, identity.email)
        author = ctx.git.get_commit_author(ctx.repo_root, change.head_commit)
        referenced_issue = find_referenced_issue(change)

        hops: list[HopResult] = []
        for target in targets:
            logger.info("Merging into %s...", target)
            hop = self._merge_hop(change, progress, target, author, referenced_issue)
            hops.append(hop)
            if hop.conflict is not None:
                return ExecutionResult(
                    status=ExecutionStatus.BLOCKED,
                    change_id=change_id,
                    message=(
                        f"Change #{change_id} is blocked at {target}; "
                        f"see issue #{hop.conflict.issue_number} ({hop.conflict.issue_url})"
                    ),
                    hops=tuple(hops),
                    conflict=hop.conflict,
                )

        logger.info("All merges are complete for change #%s", change_id)
        updated = self.fold_merge_forward_refs(change_id)
        self._delete_source_branch(change)
        return ExecutionResult(
            status=ExecutionStatus.COMPLETED,
            change_id=change_id,
            message=f"Change #{change_id} merged forward into {', '.join(updated) or 'nothing'}",
            hops=tuple(hops),
            updated_branches=tuple(updated),
        )

    def _skip(self, change_id: str, reason: str) -> ExecutionResult:
        logger.info("%s, skipping", reason)
        return ExecutionResult(status=ExecutionStatus.SKIPPED, change_id=change_id, message=reason)

    def _start_point(self, target: str) -> str:
        """Where a merge-forward ref into target begins: its known-good pointer if any."""
        ctx = self._ctx
        if ctx.chain.is_terminal(target):
            return ctx.remote_ref(target)
        pointer = encode_known_good(target)
        if ctx.git.remote_branch_exists(ctx.repo_root, ctx.remote, pointer):
            return ctx.remote_ref(pointer)
        logger.info("%s does not exist yet, starting from the tip of %s", pointer, target)
        return ctx.remote_ref(target)

    def _merge_hop(
        self,
        change: Change,
        progress: _ChainProgress,
        target: str,
        author: CommitAuthor,
        referenced_issue: int | None,
    ) -> HopResult:
        ctx = self._ctx
        ctx.git.fetch(ctx.repo_root, ctx.remote)
        merge_forward = encode_merge_forward(progress.change_id, target)
        merge_forward_ref = ctx.remote_ref(merge_forward)

        already_forwarded = ctx.git.remote_branch_exists(
            ctx.repo_root, ctx.remote, merge_forward
        ) and ctx.git.is_ancestor(ctx.repo_root, progress.tracking_commit, merge_forward_ref)
        if already_forwarded:
            tip = ctx.git.rev_parse(ctx.repo_root, merge_forward_ref)
            logger.info("%s already contains %s", merge_forward, progress.tracking_commit[:12])
            progress.tracking_commit = tip
            progress.last_branch = target
            return HopResult(target=target, status=HopStatus.ALREADY_MERGED, commit=tip)

        start_point = self._start_point(target)
        ctx.git.checkout_new_branch(ctx.repo_root, merge_forward, start_point)
        ctx.git.push_branch(ctx.repo_root, ctx.remote, merge_forward, force=True)

        result = ctx.git.merge(ctx.repo_root, progress.tracking_commit, mode="no-commit")
        if result.status == "up_to_date":
            logger.info("%s already contains %s", target, progress.tracking_commit[:12])
            progress.last_branch = target
            return HopResult(
                target=target, status=HopStatus.ALREADY_MERGED, commit=progress.tracking_commit
            )

        if result.status == "conflict":
            conflict = self._quarantine(
                change, progress, target, start_point, result, referenced_issue
            )
            return HopResult(
                target=target,
                status=HopStatus.CONFLICTED,
                commit=progress.tracking_commit,
                conflict=conflict,
            )

        if result.status != "merged":
            msg = f"Unexpected merge result '{result.status}' merging into {merge_forward}"
            raise MergeBotError(msg)

        message = (
            f"auto-merge of {progress.tracking_commit[:12]} into `{target}` "
            f"from `{progress.last_branch}` for change #{progress.change_id} "
            f"(triggered by #{change.id} on `{change.base_branch}`)"
        )
        ctx.git.commit(ctx.repo_root, message, author=author)
        progress.tracking_commit = ctx.git.rev_parse(ctx.repo_root, "HEAD")
        ctx.git.push_branch(ctx.repo_root, ctx.remote, merge_forward, force=True)
        progress.last_branch = target
        logger.info("Merged into %s as %s", merge_forward, progress.tracking_commit[:12])
        return HopResult(target=target, status=HopStatus.MERGED, commit=progress.tracking_commit)

    def _quarantine(
        self,
        change: Change,
        progress: _ChainProgress,
        target: str,
        start_point: str,
        result: MergeResult,
        referenced_issue: int | None,
    ) -> ConflictRecord:
        """Open a tracking issue and push a quarantine ref for a conflicted hop."""
        ctx = self._ctx
        logger.info("Conflicts merging into %s: %s", target, ", ".join(result.conflicted_files))
        merge_forward = encode_merge_forward(progress.change_id, target)

        existing = self._find_quarantine(progress, target)
        if existing is not None:
            ctx.git.reset_hard(ctx.repo_root)
            issue = ctx.issues.get_issue(ctx.repo_root, existing.issue_id)
            logger.info("%s is already quarantined as %s", target, existing.name)
            return ConflictRecord(
                source=progress.last_branch,
                target=target,
                issue_number=existing.issue_id,
                issue_url=issue.url,
                quarantine_ref=existing.name,
                merge_forward_ref=merge_forward,
                conflicted_files=result.conflicted_files,
            )

        created = ctx.issues.create_issue(
            ctx.repo_root,
            title=format_conflict_issue_title(referenced_issue, change.head_commit, target),
            body=f"Merge conflicts while merging change #{progress.change_id} into `{target}`.",
            labels=list(ctx.config.issue_labels),
            milestone=ctx.chain.milestone_for(target),
        )
        ctx.git.reset_hard(ctx.repo_root)

        quarantine = encode_quarantine(
            created.number, progress.change_id, progress.last_branch, target
        )
        ctx.git.create_branch(ctx.repo_root, quarantine, start_point)
        ctx.git.push_branch(ctx.repo_root, ctx.remote, quarantine, force=False)

        # The resolver merges the previous hop: the change's own commit on the first
        # hop, the previous merge-forward ref after that.
        if progress.last_branch == change.base_branch:
            merge_ref = change.head_commit
        else:
            previous = encode_merge_forward(progress.change_id, progress.last_branch)
            merge_ref = ctx.remote_ref(previous)

        metadata = ConflictMetadata(
            change_id=progress.change_id,
            quarantine_ref=quarantine,
            source_branch=progress.last_branch,
            target_branch=target,
            merge_ref=merge_ref,
            merge_forward_ref=merge_forward,
            conflicted_files=result.conflicted_files,
        )
        body = render_conflict_issue_body(
            metadata=metadata,
            author=change.author,
            issue_number=created.number,
            referenced_issue=referenced_issue,
            run_url=ctx.run_url,
        )
        ctx.issues.update_issue_body(ctx.repo_root, created.number, body)
        ctx.issues.add_assignee(ctx.repo_root, created.number, change.author)
        logger.info("Created issue %s and quarantine ref %s", created.url, quarantine)

        return ConflictRecord(
            source=progress.last_branch,
            target=target,
            issue_number=created.number,
            issue_url=created.url,
            quarantine_ref=quarantine,
            merge_forward_ref=merge_forward,
            conflicted_files=result.conflicted_files,
        )

    def _find_quarantine(self, progress: _ChainProgress, target: str) -> QuarantineRef | None:
        """Quarantine ref left for this hop by an earlier run of the same change."""
        ctx = self._ctx
        pattern = (
            f"{QUARANTINE_PREFIX}*/{progress.change_id}/"
            f"{progress.last_branch}/{QUARANTINE_SEPARATOR}/{target}"
        )
        for name in ctx.git.list_remote_branches(ctx.repo_root, ctx.remote, pattern):
            quarantine = decode_quarantine(name)
            if (
                quarantine is not None
                and quarantine.change_id == progress.change_id
                and quarantine.source == progress.last_branch
                and quarantine.target == target
            ):
                return quarantine
        return None

    def fold_merge_forward_refs(self, change_id: str) -> list[str]:
        """Fold every merge-forward ref of the change into its target branch, upstream first.

        Returns:
            The branches that moved

        Raises:
            MergeBotError: If a target moved and no longer merges cleanly
        """
        ctx = self._ctx
        names = ctx.git.list_remote_branches(
            ctx.repo_root, ctx.remote, f"{MERGE_FORWARD_PREFIX}{change_id}/*"
        )

        folds: list[tuple[int, str, str]] = []
        for name in names:
            decoded = decode_merge_forward(name)
            if decoded is None or decoded.change_id != change_id:
                continue
            if decoded.target not in ctx.chain:
                logger.warning("Ignoring %s: %s is not part of the chain", name, decoded.target)
                continue
            folds.append((ctx.chain.index(decoded.target), decoded.target, name))

        updated: list[str] = []
        for _, target, merge_forward in sorted(folds):
            if self._update_target(target, merge_forward):
                updated.append(target)
        return updated

    def _update_target(self, target: str, merge_forward: str) -> bool:
        """Bring target up to its merge-forward ref. Returns False if nothing moved."""
        ctx = self._ctx
        merge_forward_ref = ctx.remote_ref(merge_forward)
        ctx.git.fetch(ctx.repo_root, ctx.remote)
        ctx.git.checkout_new_branch(ctx.repo_root, target, ctx.remote_ref(target))

        result = ctx.git.merge(ctx.repo_root, merge_forward_ref, mode="ff-only")
        if result.status == "not_fast_forward":
            logger.info("%s moved since the merge started; merging %s", target, merge_forward)
            result = ctx.git.merge(
                ctx.repo_root,
                merge_forward_ref,
                mode="no-ff",
                message=f"Merge {merge_forward} into {target}",
            )
            if result.status == "conflict":
                ctx.git.reset_hard(ctx.repo_root)
                msg = (
                    f"Could not merge {merge_forward} into {target}: "
                    f"conflicts in {', '.join(result.conflicted_files)}"
                )
                raise MergeBotError(msg)

        if result.status == "up_to_date":
            logger.info("%s already contains %s", target, merge_forward)
            return False

        ctx.git.push_branch(ctx.repo_root, ctx.remote, target, force=False)
        logger.info("Updated %s from %s", target, merge_forward)
        return True

    def _delete_source_branch(self, change: Change) -> None:
        ctx = self._ctx
        source = change.source_branch
        if source in ctx.chain or is_bot_ref(source):
            return
        if not ctx.git.remote_branch_exists(ctx.repo_root, ctx.remote, source):
            return
        logger.info("Deleting source branch %s", source)
        ctx.git.delete_remote_branch(ctx.repo_root, ctx.remote, source)
