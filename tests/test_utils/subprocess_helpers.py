"""Helpers for tests that replace subprocess.run."""

import subprocess
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from pytest import MonkeyPatch


@contextmanager
def mock_subprocess_run(
    monkeypatch: MonkeyPatch, mock_run: Callable[..., subprocess.CompletedProcess]
) -> Iterator[None]:
    """Route subprocess.run through mock_run for the duration of the block."""
    with monkeypatch.context() as m:
        m.setattr(subprocess, "run", mock_run)
        yield


def completed(cmd: list[str], stdout: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=cmd, returncode=returncode, stdout=stdout, stderr="")
