"""Subprocess helpers shared by the git and GitHub adapters.

Every external command the bot runs goes through one of these two functions so
that failures surface as RuntimeError with enough context to debug a CI log.
"""

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path

logger = logging.getLogger(__name__)


def format_command_failure(
    prefix: str,
    cmd: Sequence[str],
    returncode: int | None,
    stdout: str | None,
    stderr: str | None,
) -> str:
    cmd_str = " ".join(str(arg) for arg in cmd)
    lines = [prefix, f"Command: {cmd_str}"]
    if returncode is not None:
        lines.append(f"Exit code: {returncode}")
    if stdout and stdout.strip():
        lines.append(f"stdout: {stdout.strip()}")
    if stderr and stderr.strip():
        lines.append(f"stderr: {stderr.strip()}")
    return "\n".join(lines)


def run_subprocess_with_context(
    cmd: Sequence[str],
    operation_context: str,
    cwd: Path | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute a command with enriched error reporting.

    Wraps subprocess.run() and re-raises CalledProcessError as RuntimeError carrying
    the operation context, the command line, the exit code and captured output.

    Args:
        cmd: Command and arguments to execute
        operation_context: Human-readable description of the operation, phrased so
            that "Failed to {operation_context}" reads naturally
        cwd: Working directory for command execution
        check: Whether to raise on non-zero exit (default: True). Callers that
            interpret exit codes themselves pass False.

    Returns:
        CompletedProcess with text stdout/stderr

    Raises:
        RuntimeError: If the command fails (when check=True) or the binary is missing
    """
    logger.debug("Running: %s", " ".join(str(arg) for arg in cmd))
    try:
        return subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            check=check,
        )
    except subprocess.CalledProcessError as e:
        msg = format_command_failure(
            f"Failed to {operation_context}", cmd, e.returncode, e.stdout, e.stderr
        )
        raise RuntimeError(msg) from e
    except FileNotFoundError as e:
        msg = format_command_failure(
            f"Command not found while trying to {operation_context}: {cmd[0]}",
            cmd,
            None,
            None,
            None,
        )
        raise RuntimeError(msg) from e


def execute_gh_command(cmd: list[str], cwd: Path) -> str:
    """Execute a gh CLI command and return stdout.

    Args:
        cmd: Command and arguments to execute
        cwd: Working directory for command execution

    Returns:
        stdout from the command

    Raises:
        RuntimeError: If gh is missing or the command fails
    """
    result = run_subprocess_with_context(
        cmd, operation_context=f"execute gh command '{' '.join(cmd)}'", cwd=cwd
    )
    return result.stdout
