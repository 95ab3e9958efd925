"""Application context with dependency injection."""

from dataclasses import dataclass
from pathlib import Path

from mergebot.cli.config import BranchConfig, MergeBotConfig
from mergebot.core.chain import BranchChain
from mergebot.core.git.abc import Git
from mergebot.core.git.real import RealGit
from mergebot.core.github.issues.abc import GitHubIssues
from mergebot.core.github.issues.real import RealGitHubIssues


@dataclass(frozen=True)
class MergeBotContext:
    """Immutable context holding all dependencies for one bot run.

    Created at the CLI entry point and threaded through the executor and the
    maintainer. Frozen to prevent accidental modification at runtime.
    """

    git: Git
    issues: GitHubIssues
    repo_root: Path
    config: MergeBotConfig
    chain: BranchChain
    run_url: str | None

    @property
    def remote(self) -> str:
        return self.config.remote

    def remote_ref(self, branch: str) -> str:
        """Name of the remote-tracking ref for a branch, e.g. `origin/main`."""
        return f"{self.config.remote}/{branch}"

    @staticmethod
    def for_test(
        git: Git | None = None,
        issues: GitHubIssues | None = None,
        repo_root: Path | None = None,
        config: MergeBotConfig | None = None,
        run_url: str | None = None,
    ) -> "MergeBotContext":
        """Create test context with optional pre-configured implementations.

        Defaults to a release-5.7 -> release-5.8 -> main chain backed by fakes.

        Example:
            >>> git = FakeGit(commits=..., remote_branches={"main": "abc123"})
            >>> ctx = MergeBotContext.for_test(git=git)
        """
        from mergebot.core.git.fake import FakeGit
        from mergebot.core.github.issues.fake import FakeGitHubIssues

        if config is None:
            config = MergeBotConfig(
                branches=[
                    BranchConfig(name="release-5.7"),
                    BranchConfig(name="release-5.8"),
                    BranchConfig(name="main"),
                ]
            )

        return MergeBotContext(
            git=git if git is not None else FakeGit(),
            issues=issues if issues is not None else FakeGitHubIssues(),
            repo_root=repo_root if repo_root is not None else Path("/test/repo"),
            config=config,
            chain=config.chain(),
            run_url=run_url,
        )


def create_context(
    *, config: MergeBotConfig, repo_root: Path, run_url: str | None
) -> MergeBotContext:
    """Create production context with real implementations.

    Example:
        >>> ctx = create_context(config=load_config(path), repo_root=Path.cwd(), run_url=None)
        >>> ctx.git.fetch(ctx.repo_root, ctx.remote)
    """
    return MergeBotContext(
        git=RealGit(),
        issues=RealGitHubIssues(),
        repo_root=repo_root,
        config=config,
        chain=config.chain(),
        run_url=run_url,
    )
