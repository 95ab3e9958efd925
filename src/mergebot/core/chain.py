"""Ordered chain of release branches ending in the terminal (trunk) branch."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field


@dataclass(frozen=True)
class BranchChain:
    """Immutable branch chain.

    Attributes:
        branches: Branch names, oldest release first, terminal branch last
        successors: Maps every non-terminal branch to the branch it merges into
        milestones: Optional issue milestone per branch
    """

    branches: tuple[str, ...]
    successors: Mapping[str, str]
    milestones: Mapping[str, str] = field(default_factory=dict)

    @staticmethod
    def build(
        branches: Sequence[str],
        merge_operations: Mapping[str, str] | None = None,
        milestones: Mapping[str, str] | None = None,
    ) -> "BranchChain":
        """Build and validate a chain.

        Args:
            branches: Ordered branch names; the last one is terminal
            merge_operations: Explicit successor mapping. Defaults to each branch
                merging into the next one in order.
            milestones: Optional milestone title per branch

        Raises:
            ValueError: If the chain is empty, has duplicates, or the mapping does
                not lead every non-terminal branch forward to the terminal branch
        """
        ordered = tuple(branches)
        if not ordered:
            msg = "Branch chain must contain at least one branch"
            raise ValueError(msg)
        if len(set(ordered)) != len(ordered):
            msg = f"Branch chain contains duplicate branches: {list(ordered)}"
            raise ValueError(msg)

        if merge_operations is None:
            successors = {ordered[i]: ordered[i + 1] for i in range(len(ordered) - 1)}
        else:
            successors = dict(merge_operations)

        position = {branch: index for index, branch in enumerate(ordered)}
        terminal = ordered[-1]
        if terminal in successors:
            msg = f"Terminal branch '{terminal}' cannot merge into '{successors[terminal]}'"
            raise ValueError(msg)
        for branch in ordered[:-1]:
            if branch not in successors:
                msg = f"Branch '{branch}' has no downstream branch configured"
                raise ValueError(msg)
        for source, target in successors.items():
            if source not in position or target not in position:
                msg = f"Merge operation '{source}' -> '{target}' names a branch outside the chain"
                raise ValueError(msg)
            if position[target] <= position[source]:
                msg = f"Merge operation '{source}' -> '{target}' does not move down the chain"
                raise ValueError(msg)

        if milestones is not None:
            unknown = set(milestones) - set(position)
            if unknown:
                msg = f"Milestones configured for unknown branches: {sorted(unknown)}"
                raise ValueError(msg)

        return BranchChain(
            branches=ordered, successors=successors, milestones=dict(milestones or {})
        )

    @property
    def terminal(self) -> str:
        return self.branches[-1]

    @property
    def non_terminal(self) -> tuple[str, ...]:
        return self.branches[:-1]

    def __contains__(self, branch: object) -> bool:
        return branch in self.branches

    def is_terminal(self, branch: str) -> bool:
        return branch == self.terminal

    def index(self, branch: str) -> int:
        return self.branches.index(branch)

    def downstream(self, branch: str) -> list[str]:
        """Branches a change merged into `branch` still has to visit, in order.

        Returns an empty list for the terminal branch and for unknown branches.
        """
        chain: list[str] = []
        current = branch
        while current in self.successors:
            current = self.successors[current]
            chain.append(current)
        return chain

    def milestone_for(self, branch: str) -> str | None:
        return self.milestones.get(branch)
