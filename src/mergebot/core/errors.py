"""Exceptions raised by the merge bot.

Expected merge conflicts are not errors: the executor returns them as data.
Tooling failures from git or gh surface as RuntimeError from subprocess_utils.
"""


class MergeBotError(Exception):
    """Operator-visible failure that aborts the current run."""


class ConfigError(MergeBotError):
    """Raised when the bot configuration is missing or invalid."""


class AncestryViolationError(MergeBotError):
    """Raised when a known-good pointer would stop being an ancestor of its branch.

    This means a pointer diverged from its branch, which the bot never repairs
    on its own. An operator has to inspect the refs.
    """

    def __init__(self, pointer: str, branch: str, detail: str) -> None:
        self.pointer = pointer
        self.branch = branch
        msg = f"Known-good pointer '{pointer}' violates ancestry of '{branch}': {detail}"
        super().__init__(msg)
