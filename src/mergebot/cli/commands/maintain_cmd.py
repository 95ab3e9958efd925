from pathlib import Path

import click

from mergebot.cli.config import DEFAULT_CONFIG_PATH
from mergebot.cli.core import load_bot_context
from mergebot.cli.output import user_output
from mergebot.core.errors import MergeBotError
from mergebot.core.maintainer import BranchLifecycleMaintainer


@click.command("maintain")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    envvar="MERGEBOT_CONFIG",
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Bot configuration file, relative to the repository root.",
)
@click.option(
    "--repo-root",
    type=click.Path(path_type=Path, file_okay=False),
    default=Path("."),
    help="Checkout of the repository to operate in.",
)
@click.option("--dry-run", is_flag=True, help="Show where pointers would move without pushing.")
@click.pass_context
def maintain_cmd(
    click_ctx: click.Context, config_path: Path, repo_root: Path, dry_run: bool
) -> None:
    """Advance every known-good pointer as far as is safe.

    Useful for recovery after refs were changed by hand.
    """
    try:
        ctx = load_bot_context(
            click_ctx, config_path=config_path, repo_root=repo_root, run_url=None
        )
        advances = BranchLifecycleMaintainer(ctx).advance_known_good_pointers(dry_run=dry_run)
    except (MergeBotError, RuntimeError) as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from e

    if not advances:
        user_output("No branches to maintain.")
        return

    verb = "would move to" if dry_run else "moved to"
    for advance in advances:
        if advance.moved and advance.current is not None:
            line = f"{click.style(advance.pointer, fg='cyan')} {verb} {advance.current[:12]}"
        else:
            line = f"{click.style(advance.pointer, fg='cyan')} unchanged"
        if advance.blocking_ref is not None:
            line += f" (blocked by {advance.blocking_ref})"
        user_output(line)
