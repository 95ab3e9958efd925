from pathlib import Path

import click
from pydantic import ValidationError

from mergebot.cli.config import DEFAULT_CONFIG_PATH, BranchConfig, MergeBotConfig, save_config
from mergebot.cli.output import user_output


def parse_milestones(values: tuple[str, ...]) -> dict[str, str]:
    """Parse `BRANCH=TITLE` pairs.

    Raises:
        click.BadParameter: If a value has no `=` or an empty side
    """
    milestones: dict[str, str] = {}
    for value in values:
        branch, sep, title = value.partition("=")
        if not sep or not branch or not title:
            msg = f"Expected BRANCH=TITLE, got '{value}'"
            raise click.BadParameter(msg, param_hint="--milestone")
        milestones[branch] = title
    return milestones


@click.command("init-config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Where to write the configuration.",
)
@click.option(
    "--branch",
    "branches",
    multiple=True,
    required=True,
    help="Branch of the chain, oldest release first. Repeat for each branch.",
)
@click.option(
    "--milestone",
    "milestones",
    multiple=True,
    help="Milestone for conflict issues into a branch, as BRANCH=TITLE.",
)
@click.option("--force", is_flag=True, help="Overwrite an existing configuration.")
def init_config_cmd(
    config_path: Path, branches: tuple[str, ...], milestones: tuple[str, ...], force: bool
) -> None:
    """Write a starter configuration for a branch chain."""
    if config_path.exists() and not force:
        user_output(
            click.style("Error: ", fg="red")
            + f"{config_path} already exists. Use --force to overwrite it."
        )
        raise SystemExit(1)

    milestone_by_branch = parse_milestones(milestones)
    unknown = sorted(set(milestone_by_branch) - set(branches))
    if unknown:
        user_output(
            click.style("Error: ", fg="red")
            + f"Milestones given for branches not in the chain: {', '.join(unknown)}"
        )
        raise SystemExit(1)

    try:
        config = MergeBotConfig(
            branches=[
                BranchConfig(name=branch, milestone=milestone_by_branch.get(branch))
                for branch in branches
            ]
        )
    except ValidationError as e:
        user_output(click.style("Error: ", fg="red") + f"Invalid branch chain:\n{e}")
        raise SystemExit(1) from e

    save_config(config_path, config)
    user_output(f"Wrote {config_path}")
