"""Run command: forward-merge the change from a pull_request event."""

import logging
import os
import uuid
from pathlib import Path

import click
from rich.console import Console

from mergebot.cli.config import DEFAULT_CONFIG_PATH
from mergebot.cli.core import load_bot_context
from mergebot.cli.output import format_run_summary, machine_output, user_output
from mergebot.core.executor import MergeChainExecutor
from mergebot.core.maintainer import BranchLifecycleMaintainer
from mergebot.core.trigger import load_event

logger = logging.getLogger(__name__)


def default_run_url() -> str | None:
    """URL of the current GitHub Actions run, if running inside one."""
    server = os.getenv("GITHUB_SERVER_URL")
    repository = os.getenv("GITHUB_REPOSITORY")
    run_id = os.getenv("GITHUB_RUN_ID")
    if not (server and repository and run_id):
        return None
    return f"{server}/{repository}/actions/runs/{run_id}"


def write_action_outputs(status: str, message: str) -> None:
    """Append `status` and `status-message` to $GITHUB_OUTPUT when it is set."""
    output_path = os.getenv("GITHUB_OUTPUT")
    if not output_path:
        return
    delimiter = f"EOF_{uuid.uuid4().hex}"
    with open(output_path, "a", encoding="utf-8") as f:
        f.write(f"status={status}\n")
        f.write(f"status-message<<{delimiter}\n{message}\n{delimiter}\n")


@click.command("run")
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
    "--event",
    "event_path",
    type=click.Path(path_type=Path, dir_okay=False),
    envvar="GITHUB_EVENT_PATH",
    required=True,
    help="pull_request event payload (defaults to $GITHUB_EVENT_PATH).",
)
@click.option(
    "--repo-root",
    type=click.Path(path_type=Path, file_okay=False),
    default=Path("."),
    help="Checkout of the repository to operate in.",
)
@click.option("--run-url", default=None, help="Link to this run, shown in conflict issues.")
@click.pass_context
def run_cmd(
    click_ctx: click.Context,
    config_path: Path,
    event_path: Path,
    repo_root: Path,
    run_url: str | None,
) -> None:
    """Forward-merge a merged change through the branch chain.

    Runs the merge chain for the change, then maintains known-good pointers
    and cleans up once the change has reached the last branch. Conflicts are
    not failures: they open a tracking issue and the run still succeeds.
    """
    if run_url is None:
        run_url = default_run_url()

    try:
        ctx = load_bot_context(
            click_ctx, config_path=config_path, repo_root=repo_root, run_url=run_url
        )
        change = load_event(event_path)
        execution = MergeChainExecutor(ctx).run(change)
        maintenance = BranchLifecycleMaintainer(ctx).run(change, execution)
    except Exception as e:
        logger.debug("Run failed", exc_info=True)
        user_output(click.style("Error: ", fg="red") + str(e))
        write_action_outputs("failure", str(e))
        raise SystemExit(1) from e

    Console(stderr=True).print(format_run_summary(execution, maintenance))
    write_action_outputs("success", execution.message)
    machine_output(execution.status.value)
