"""Command to list in-flight merge-forward and quarantine refs."""

from dataclasses import dataclass
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from mergebot.cli.config import DEFAULT_CONFIG_PATH
from mergebot.cli.core import load_bot_context
from mergebot.cli.output import user_output
from mergebot.core.branch_names import (
    LEGACY_QUARANTINE_PREFIX,
    MERGE_FORWARD_PREFIX,
    QUARANTINE_PREFIX,
    decode_legacy_quarantine,
    decode_merge_forward,
    decode_quarantine,
)
from mergebot.core.context import MergeBotContext
from mergebot.core.errors import MergeBotError


@dataclass(frozen=True)
class RefRow:
    """One bot ref, decoded for display."""

    change_id: str | None
    kind: str
    hop: str
    issue: int | None
    ref: str


def collect_ref_rows(ctx: MergeBotContext) -> list[RefRow]:
    """Decode every bot-owned ref on the remote, ordered by change then chain position."""
    git = ctx.git
    rows: list[RefRow] = []

    for name in git.list_remote_branches(ctx.repo_root, ctx.remote, f"{MERGE_FORWARD_PREFIX}*"):
        merge_forward = decode_merge_forward(name)
        if merge_forward is None:
            continue
        rows.append(
            RefRow(
                merge_forward.change_id, "merge-forward", f"-> {merge_forward.target}", None, name
            )
        )

    quarantine_names = git.list_remote_branches(
        ctx.repo_root, ctx.remote, f"{QUARANTINE_PREFIX}*"
    ) + git.list_remote_branches(ctx.repo_root, ctx.remote, f"{LEGACY_QUARANTINE_PREFIX}*")
    for name in quarantine_names:
        quarantine = decode_quarantine(name)
        if quarantine is not None:
            hop = f"{quarantine.source} -> {quarantine.target}"
            rows.append(RefRow(quarantine.change_id, "quarantine", hop, quarantine.issue_id, name))
            continue
        legacy = decode_legacy_quarantine(name)
        if legacy is not None:
            rows.append(RefRow(legacy.change_id, "legacy quarantine", "?", legacy.issue_id, name))

    def sort_key(row: RefRow) -> tuple[bool, str, int, str]:
        target = row.hop.rsplit("-> ", 1)[-1]
        position = ctx.chain.index(target) if target in ctx.chain else len(ctx.chain.branches)
        return (row.change_id is None, row.change_id or "", position, row.ref)

    return sorted(rows, key=sort_key)


@click.command("status")
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
@click.pass_context
def status_cmd(click_ctx: click.Context, config_path: Path, repo_root: Path) -> None:
    """Show changes that are still being merged forward."""
    try:
        ctx = load_bot_context(
            click_ctx, config_path=config_path, repo_root=repo_root, run_url=None
        )
        rows = collect_ref_rows(ctx)
    except (MergeBotError, RuntimeError) as e:
        user_output(click.style("Error: ", fg="red") + str(e))
        raise SystemExit(1) from e

    if not rows:
        user_output("No changes in flight.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("change", style="cyan", no_wrap=True)
    table.add_column("kind", no_wrap=True)
    table.add_column("hop", no_wrap=True)
    table.add_column("issue", no_wrap=True)
    table.add_column("ref", style="dim")

    for row in rows:
        table.add_row(
            f"#{row.change_id}" if row.change_id is not None else "?",
            row.kind,
            row.hop,
            f"#{row.issue}" if row.issue is not None else "-",
            row.ref,
        )

    console = Console(stderr=True, width=200, force_terminal=True)
    console.print(table)
    console.print()
