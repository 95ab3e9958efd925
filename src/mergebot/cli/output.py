"""Output utilities for CLI commands with clear intent.

user_output goes to stderr so that stdout stays free for machine-readable
results (machine_output).
"""

from typing import Any

import click
from rich.panel import Panel
from rich.text import Text

from mergebot.core.executor import ExecutionResult, ExecutionStatus
from mergebot.core.maintainer import MaintenanceResult


def user_output(message: Any = "", nl: bool = True) -> None:
    """Output informational message for human users (stderr)."""
    click.echo(message, nl=nl, err=True)


def machine_output(message: Any = "", nl: bool = True) -> None:
    """Output structured data for scripts (stdout)."""
    click.echo(message, nl=nl)


def format_run_summary(execution: ExecutionResult, maintenance: MaintenanceResult | None) -> Panel:
    """Format final summary box for one bot run.

    Args:
        execution: Result of forward-merging the change
        maintenance: Result of branch maintenance, None if it did not run

    Returns:
        Rich Panel with formatted summary

    Example:
        >>> panel = format_run_summary(execution, maintenance)
        >>> Console(stderr=True).print(panel)
    """
    lines: list[Text] = []

    if execution.status is ExecutionStatus.COMPLETED:
        lines.append(Text("✅ Status: Completed", style="green"))
        border_style = "green"
    elif execution.status is ExecutionStatus.BLOCKED:
        lines.append(Text("⚠️  Status: Blocked by conflicts", style="yellow"))
        border_style = "yellow"
    else:
        lines.append(Text("⏭  Status: Skipped", style="dim"))
        border_style = "dim"

    lines.append(Text(execution.message))

    for hop in execution.hops:
        lines.append(Text(f"  {hop.target}: {hop.status.value} ({hop.commit[:12]})", style="dim"))

    if execution.conflict is not None:
        conflict = execution.conflict
        lines.append(Text(""))
        lines.append(Text(f"🔗 Issue: {conflict.issue_url}", style="blue"))
        lines.append(Text(f"Quarantine ref: {conflict.quarantine_ref}"))
        for path in conflict.conflicted_files:
            lines.append(Text(f"  - {path}", style="red"))

    if maintenance is not None and maintenance.ran:
        lines.append(Text(""))
        lines.append(Text(maintenance.message))
        for advance in maintenance.advances:
            if advance.moved and advance.current is not None:
                lines.append(Text(f"  {advance.pointer} -> {advance.current[:12]}", style="dim"))
        if maintenance.deleted_refs:
            lines.append(Text(f"Deleted {len(maintenance.deleted_refs)} ref(s)", style="dim"))
        if maintenance.closed_issues:
            closed = ", ".join(f"#{number}" for number in maintenance.closed_issues)
            lines.append(Text(f"Closed issues {closed}", style="dim"))

    content = Text("\n").join(lines)
    title = f"Change #{execution.change_id}"
    return Panel(content, title=title, border_style=border_style, padding=(1, 2))
