import logging
import os

import click

from mergebot.cli.commands.init_config_cmd import init_config_cmd
from mergebot.cli.commands.maintain_cmd import maintain_cmd
from mergebot.cli.commands.run_cmd import run_cmd
from mergebot.cli.commands.status_cmd import status_cmd

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])  # terse help flags


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="mergebot")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Forward-merge changes through a chain of release branches."""
    # MERGEBOT_DEBUG turns on debug logging in CI without changing the workflow
    level = logging.DEBUG if verbose or os.getenv("MERGEBOT_DEBUG") else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s %(name)s] %(message)s")


cli.add_command(init_config_cmd)
cli.add_command(maintain_cmd)
cli.add_command(run_cmd)
cli.add_command(status_cmd)


def main() -> None:
    """CLI entry point used by the `mergebot` console script."""
    cli()
