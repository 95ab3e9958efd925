"""Decide how far a known-good pointer may advance.

A branch's known-good pointer may only move over commits that do not carry
unresolved conflicts into the branches downstream of it. Conflict-quarantine
refs mark those commits. The pointer advances up to, but never across, the
oldest relevant marker, and never to a commit it is not an ancestor of.
"""

import logging
from dataclasses import dataclass

from mergebot.core.branch_names import decode_quarantine, encode_known_good, is_legacy_quarantine
from mergebot.core.context import MergeBotContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SafeAdvancement:
    """Where a known-good pointer may move.

    Attributes:
        branch: Branch whose pointer was evaluated
        target: Commit-ish to fast-forward the pointer to, or None for no advancement
        blocking_ref: Oldest relevant quarantine ref that limited the advancement
    """

    branch: str
    target: str | None
    blocking_ref: str | None


def build_relevant_pairs(branch: str, downstream: list[str]) -> frozenset[tuple[str, str]]:
    """(source, target) merge pairs whose conflicts matter for branch's pointer.

    That is the branch into each downstream branch, plus every downstream branch
    into each branch further down the chain.
    """
    pairs = {(branch, target) for target in downstream}
    for i, source in enumerate(downstream):
        for target in downstream[i + 1 :]:
            pairs.add((source, target))
    return frozenset(pairs)


def is_relevant_quarantine(ref_name: str, pairs: frozenset[tuple[str, str]]) -> bool:
    """Whether a ref marks a conflict that must block advancement.

    With no pairs (a branch with nothing downstream) every quarantine ref counts.
    Quarantine markers that cannot be decoded always count.
    """
    quarantine = decode_quarantine(ref_name)
    if quarantine is None:
        if is_legacy_quarantine(ref_name):
            logger.warning("Treating undecodable quarantine ref %s as relevant", ref_name)
            return True
        return False
    if not pairs:
        return True
    return (quarantine.source, quarantine.target) in pairs


def find_safe_advancement(
    ctx: MergeBotContext, branch: str, downstream: list[str]
) -> SafeAdvancement:
    """Compute the furthest safe position for branch's known-good pointer.

    Read-only: nothing is moved or pushed.

    Args:
        ctx: Bot context
        branch: Branch whose pointer is evaluated
        downstream: Branches downstream of branch, in chain order

    Returns:
        SafeAdvancement whose target is the branch tip when no relevant conflict
        exists, an earlier commit when one does, or None when no commit qualifies
    """
    pointer = encode_known_good(branch)
    pointer_ref = None
    if ctx.git.remote_branch_exists(ctx.repo_root, ctx.remote, pointer):
        pointer_ref = ctx.remote_ref(pointer)
    tip_ref = ctx.remote_ref(branch)

    entries = ctx.git.log_with_remote_refs(ctx.repo_root, ctx.remote, tip_ref, pointer_ref)
    entries.reverse()

    pairs = build_relevant_pairs(branch, downstream)
    cutoff: int | None = None
    blocking_ref: str | None = None
    for index, entry in enumerate(entries):
        relevant = [ref for ref in entry.refs if is_relevant_quarantine(ref, pairs)]
        if relevant:
            cutoff = index
            blocking_ref = relevant[0]
            break

    if cutoff is None:
        logger.debug("No relevant conflicts on %s; safe up to its tip", branch)
        return SafeAdvancement(branch=branch, target=tip_ref, blocking_ref=None)

    logger.info(
        "%s is blocked by %s at commit %d of %d", branch, blocking_ref, cutoff + 1, len(entries)
    )
    if cutoff < 2:
        return SafeAdvancement(branch=branch, target=None, blocking_ref=blocking_ref)

    for entry in reversed(entries[:cutoff]):
        if pointer_ref is None or ctx.git.is_ancestor(ctx.repo_root, pointer_ref, entry.sha):
            return SafeAdvancement(branch=branch, target=entry.sha, blocking_ref=blocking_ref)

    return SafeAdvancement(branch=branch, target=None, blocking_ref=blocking_ref)
