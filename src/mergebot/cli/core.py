from pathlib import Path

import click

from mergebot.cli.config import load_config
from mergebot.core.context import MergeBotContext, create_context


def load_bot_context(
    click_ctx: click.Context, *, config_path: Path, repo_root: Path, run_url: str | None
) -> MergeBotContext:
    """Return the context injected by tests, or build the production one.

    A relative config path is resolved against the repository root.

    Raises:
        ConfigError: If the configuration cannot be loaded
    """
    if isinstance(click_ctx.obj, MergeBotContext):
        return click_ctx.obj

    if not config_path.is_absolute():
        config_path = repo_root / config_path
    config = load_config(config_path)
    return create_context(config=config, repo_root=repo_root.resolve(), run_url=run_url)
