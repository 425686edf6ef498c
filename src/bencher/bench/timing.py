"""Timed subprocess execution for the command-backed compiler and simulator.

Runs a shell command in its own session so that a timeout can kill the
whole process group, and reports wall-clock time alongside the output.
"""

from __future__ import annotations

import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from bencher.logging import get_logger

log = get_logger("timing")


@dataclass
class TimedResult:
    """Result of a timed subprocess execution."""

    wall_time_s: float
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def stderr_tail(self, limit: int = 500) -> str:
        """Last *limit* characters of stderr, for error messages."""
        text = self.stderr.strip()
        return text if len(text) <= limit else text[-limit:]


def run_timed(
    command: str | list[str],
    *,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = 600,
) -> TimedResult:
    """Execute a command and capture its output and wall time.

    Args:
        command: Shell command string or argument list.
        cwd: Working directory for the subprocess.
        env: Extra environment variables layered over ``os.environ``.
        timeout: Maximum execution time in seconds (None for no limit).
    """
    run_env = dict(os.environ)
    if env:
        run_env.update(env)

    log.debug("Running: %s", command)
    wall_start = time.monotonic()

    timed_out = False
    proc = subprocess.Popen(
        command,
        shell=isinstance(command, str),
        cwd=str(cwd) if cwd else None,
        env=run_env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        start_new_session=True,
    )
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
        exit_code = proc.returncode
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_group(proc.pid)
        try:
            stdout, stderr = proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            stdout, stderr = proc.communicate()
        exit_code = -1

    return TimedResult(
        wall_time_s=round(time.monotonic() - wall_start, 6),
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
    )


def _kill_process_group(pid: int) -> None:
    """Attempt to kill the entire process group on timeout."""
    try:
        os.killpg(os.getpgid(pid), signal.SIGKILL)
    except (ProcessLookupError, PermissionError, OSError):
        pass
