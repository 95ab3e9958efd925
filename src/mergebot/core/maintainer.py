"""Keep known-good pointers current and clean up after finished changes.

Runs after the executor. Resolution bookkeeping (deleting the quarantine ref
that was merged, closing its issue) happens for every merged change. The rest
only happens once a change's journey reached the terminal branch. A
resolution merged straight into the terminal branch first folds the change's
remaining merge-forward refs into their branches. Then every
known-good pointer is re-evaluated from scratch and fast-forwarded as far as
the safe-advancement calculation allows, and the change's merge-forward and
quarantine refs are deleted.
"""

import logging
from dataclasses import dataclass, field

from mergebot.core.branch_names import (
    MERGE_FORWARD_PREFIX,
    QUARANTINE_PREFIX,
    decode_legacy_quarantine,
    decode_merge_forward,
    decode_quarantine,
    encode_known_good,
    extract_original_change_id,
    is_quarantine_marker,
)
from mergebot.core.conflict_issue import find_change_id, parse_conflict_metadata
from mergebot.core.context import MergeBotContext
from mergebot.core.errors import AncestryViolationError
from mergebot.core.executor import ExecutionResult, ExecutionStatus, MergeChainExecutor
from mergebot.core.safe_advancement import find_safe_advancement
from mergebot.core.trigger import Change, find_closing_references

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PointerAdvance:
    """What happened to one known-good pointer.

    Attributes:
        branch: Branch the pointer belongs to
        pointer: Pointer ref name
        previous: Pointer commit before, None if it did not exist
        current: Pointer commit after, equal to previous when it did not move
        blocking_ref: Quarantine ref that limited the advancement, if any
    """

    branch: str
    pointer: str
    previous: str | None
    current: str | None
    blocking_ref: str | None

    @property
    def moved(self) -> bool:
        return self.current is not None and self.current != self.previous


@dataclass
class _Cleanup:
    deleted_refs: list[str] = field(default_factory=list)
    closed_issues: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class MaintenanceResult:
    ran: bool
    message: str
    change_id: str | None = None
    advances: tuple[PointerAdvance, ...] = ()
    folded_branches: tuple[str, ...] = ()
    deleted_refs: tuple[str, ...] = ()
    closed_issues: tuple[int, ...] = ()


class BranchLifecycleMaintainer:
    """Advances known-good pointers and removes a finished change's refs."""

    def __init__(self, ctx: MergeBotContext) -> None:
        self._ctx = ctx

    def run(self, change: Change, execution: ExecutionResult) -> MaintenanceResult:
        """Maintain branches after the executor handled a change.

        Raises:
            AncestryViolationError: If a pointer cannot be fast-forwarded or would
                stop being an ancestor of its branch
            RuntimeError: If a git or gh command fails
        """
        ctx = self._ctx
        if not change.merged:
            return MaintenanceResult(ran=False, message="Change was not merged")

        cleanup = _Cleanup()
        self._cleanup_resolution(change, cleanup)

        resolved_into_terminal = ctx.chain.is_terminal(
            change.base_branch
        ) and is_quarantine_marker(change.source_branch)
        if execution.status is not ExecutionStatus.COMPLETED and not resolved_into_terminal:
            reason = f"Change #{execution.change_id} has not reached {ctx.chain.terminal} yet"
            logger.info("%s, skipping branch maintenance", reason)
            return MaintenanceResult(
                ran=False,
                message=reason,
                deleted_refs=tuple(cleanup.deleted_refs),
                closed_issues=tuple(cleanup.closed_issues),
            )

        change_id = self._resolve_original_change_id(change)
        folded: list[str] = []
        if execution.status is not ExecutionStatus.COMPLETED:
            # The resolution skipped the remaining hops, so the intermediate
            # merge-forward refs still hold merges their branches lack.
            folded = MergeChainExecutor(ctx).fold_merge_forward_refs(change_id)
        advances = self.advance_known_good_pointers()
        self._delete_change_refs(change_id, cleanup)

        moved = [advance.branch for advance in advances if advance.moved]
        return MaintenanceResult(
            ran=True,
            message=(
                f"Advanced known-good pointers for {', '.join(moved)}"
                if moved
                else "No known-good pointers moved"
            ),
            change_id=change_id,
            advances=tuple(advances),
            folded_branches=tuple(folded),
            deleted_refs=tuple(cleanup.deleted_refs),
            closed_issues=tuple(cleanup.closed_issues),
        )

    def advance_known_good_pointers(self, *, dry_run: bool = False) -> list[PointerAdvance]:
        """Rescan every non-terminal branch and move its pointer as far as is safe.

        Args:
            dry_run: Compute the safe positions without moving anything

        Returns:
            One PointerAdvance per non-terminal branch that exists on the remote
        """
        ctx = self._ctx
        ctx.git.fetch(ctx.repo_root, ctx.remote)

        advances: list[PointerAdvance] = []
        for branch in ctx.chain.non_terminal:
            if not ctx.git.remote_branch_exists(ctx.repo_root, ctx.remote, branch):
                logger.warning("Branch %s does not exist on %s, skipping", branch, ctx.remote)
                continue

            pointer = encode_known_good(branch)
            previous = None
            if ctx.git.remote_branch_exists(ctx.repo_root, ctx.remote, pointer):
                previous = ctx.git.rev_parse(ctx.repo_root, ctx.remote_ref(pointer))

            advancement = find_safe_advancement(ctx, branch, ctx.chain.downstream(branch))
            if advancement.target is None:
                logger.info("%s stays where it is", pointer)
                advances.append(
                    PointerAdvance(branch, pointer, previous, previous, advancement.blocking_ref)
                )
                continue

            if dry_run:
                target = ctx.git.rev_parse(ctx.repo_root, advancement.target)
                advances.append(
                    PointerAdvance(branch, pointer, previous, target, advancement.blocking_ref)
                )
                continue

            current = self._fast_forward_pointer(branch, pointer, advancement.target)
            advances.append(
                PointerAdvance(branch, pointer, previous, current, advancement.blocking_ref)
            )
        return advances

    def _fast_forward_pointer(self, branch: str, pointer: str, target: str) -> str:
        """Move pointer to target without ever rewinding it. Returns the new pointer commit."""
        ctx = self._ctx
        if not ctx.git.remote_branch_exists(ctx.repo_root, ctx.remote, pointer):
            logger.info("Creating %s at %s", pointer, target)
            ctx.git.checkout_new_branch(ctx.repo_root, pointer, target)
            self._verify_ancestry(branch, pointer)
            ctx.git.push_branch(ctx.repo_root, ctx.remote, pointer, force=False, set_upstream=True)
            return ctx.git.rev_parse(ctx.repo_root, pointer)

        ctx.git.checkout_new_branch(ctx.repo_root, pointer, ctx.remote_ref(pointer))
        result = ctx.git.merge(ctx.repo_root, target, mode="ff-only")
        if result.status == "not_fast_forward":
            raise AncestryViolationError(pointer, branch, f"cannot fast-forward to {target}")
        if result.status == "up_to_date":
            logger.info("%s is already at %s", pointer, target)
            return ctx.git.rev_parse(ctx.repo_root, pointer)

        self._verify_ancestry(branch, pointer)
        ctx.git.push_branch(ctx.repo_root, ctx.remote, pointer, force=False)
        current = ctx.git.rev_parse(ctx.repo_root, pointer)
        logger.info("Advanced %s to %s", pointer, current[:12])
        return current

    def _verify_ancestry(self, branch: str, pointer: str) -> None:
        ctx = self._ctx
        if not ctx.git.is_ancestor(ctx.repo_root, pointer, ctx.remote_ref(branch)):
            raise AncestryViolationError(
                pointer, branch, f"{pointer} is not an ancestor of {ctx.remote_ref(branch)}"
            )

    def _cleanup_resolution(self, change: Change, cleanup: _Cleanup) -> None:
        """Remove the quarantine a resolution came from and close the issues it resolves.

        Resolutions land on merge-forward refs or quarantine refs, where GitHub
        does not close issues referenced with closing keywords.
        """
        head = change.source_branch
        is_resolution = decode_merge_forward(change.base_branch) is not None
        quarantine = decode_quarantine(head)
        if quarantine is not None:
            is_resolution = True
            self._delete_ref(head, cleanup)
            self._close_issue(quarantine.issue_id, f"Resolved by #{change.id}.", cleanup)
        else:
            legacy = decode_legacy_quarantine(head)
            if legacy is not None:
                is_resolution = True
                self._delete_ref(head, cleanup)
                if legacy.issue_id is not None:
                    self._close_issue(legacy.issue_id, f"Resolved by #{change.id}.", cleanup)

        if not is_resolution:
            return
        for number in find_closing_references(f"{change.title}\n{change.body}"):
            try:
                self._close_issue(number, f"Resolved by #{change.id}.", cleanup)
            except RuntimeError as e:
                logger.warning(
                    "Could not close issue #%d referenced by #%s: %s", number, change.id, e
                )

    def _resolve_original_change_id(self, change: Change) -> str:
        change_id = extract_original_change_id(change.base_branch, change.source_branch, change.id)
        if decode_merge_forward(change.base_branch) is not None:
            return change_id

        legacy = decode_legacy_quarantine(change.source_branch)
        if legacy is None or legacy.change_id is not None or legacy.issue_id is None:
            return change_id

        issue = self._ctx.issues.get_issue(self._ctx.repo_root, legacy.issue_id)
        recovered = find_change_id(issue.body)
        if recovered is None:
            logger.warning(
                "Could not find the original change of %s in issue #%d",
                change.source_branch,
                legacy.issue_id,
            )
            return change_id
        return recovered

    def _delete_change_refs(self, change_id: str, cleanup: _Cleanup) -> None:
        """Delete a finished change's merge-forward and quarantine refs and close its issues."""
        ctx = self._ctx
        for name in ctx.git.list_remote_branches(
            ctx.repo_root, ctx.remote, f"{MERGE_FORWARD_PREFIX}{change_id}/*"
        ):
            decoded = decode_merge_forward(name)
            if decoded is not None and decoded.change_id == change_id:
                self._delete_ref(name, cleanup)

        comment = f"Change #{change_id} reached {ctx.chain.terminal}."
        for name in ctx.git.list_remote_branches(
            ctx.repo_root, ctx.remote, f"{QUARANTINE_PREFIX}*/{change_id}/*"
        ):
            quarantine = decode_quarantine(name)
            if quarantine is not None and quarantine.change_id == change_id:
                self._delete_ref(name, cleanup)
                self._close_issue(quarantine.issue_id, comment, cleanup)

        for issue in ctx.issues.list_issues(
            ctx.repo_root, labels=list(ctx.config.issue_labels), state="open"
        ):
            metadata = parse_conflict_metadata(issue.body)
            if metadata is not None and metadata.change_id == change_id:
                self._close_issue(issue.number, comment, cleanup)

    def _delete_ref(self, name: str, cleanup: _Cleanup) -> None:
        ctx = self._ctx
        if name in cleanup.deleted_refs:
            return
        if not ctx.git.remote_branch_exists(ctx.repo_root, ctx.remote, name):
            logger.debug("%s is already gone", name)
            return
        logger.info("Deleting %s", name)
        ctx.git.delete_remote_branch(ctx.repo_root, ctx.remote, name)
        cleanup.deleted_refs.append(name)

    def _close_issue(self, number: int, comment: str, cleanup: _Cleanup) -> None:
        ctx = self._ctx
        if number in cleanup.closed_issues:
            return
        issue = ctx.issues.get_issue(ctx.repo_root, number)
        if issue.state != "OPEN":
            logger.debug("Issue #%d is already closed", number)
            return
        logger.info("Closing issue #%d", number)
        ctx.issues.close_issue(ctx.repo_root, number, comment)
        cleanup.closed_issues.append(number)
