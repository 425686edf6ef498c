"""Command-backed compiler and simulator.

These adapt external tools to the :class:`~bencher.bench.variants.Compiler`
and :class:`~bencher.bench.trial.Simulator` capabilities:

- :class:`SourceFileCompiler` treats the source file as the artifact.
- :class:`CommandCompiler` runs a compile command template.
- :class:`CommandSimulator` runs a simulate command template per trial
  and parses the score from its last line of output.

Templates use ``str.format`` placeholders; values are shell-quoted.
"""

from __future__ import annotations

import json
import shlex
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Any

from bencher.bench.timing import run_timed
from bencher.logging import get_logger

log = get_logger("commands")


class CommandError(RuntimeError):
    """An external command failed or produced unusable output."""


class SourceFileCompiler:
    """Use the source file itself as the artifact.

    Compilation only checks that the file exists and is readable text.
    """

    def compile(self, source: str) -> str:
        path = Path(source)
        if not path.is_file():
            raise CommandError(f"Source file not found: {source}")
        try:
            path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise CommandError(f"Cannot read source file {source}: {exc}") from exc
        return str(path.resolve())


class CommandCompiler:
    """Compile with an external command.

    The template receives ``{source}`` and ``{output}``.  Each compile
    writes into its own directory under *build_dir*, so two sources with
    the same file name never share an output path.  Without *build_dir*
    the compiler owns a temp directory, removed by :meth:`cleanup`.
    """

    def __init__(
        self,
        template: str,
        *,
        build_dir: Path | None = None,
        timeout: float = 600.0,
    ) -> None:
        self.template = template
        self.build_dir = build_dir
        self.timeout = timeout
        self._owned_dir: Path | None = None
        self._lock = threading.Lock()

    def _root(self) -> Path:
        with self._lock:
            if self.build_dir is not None:
                self.build_dir.mkdir(parents=True, exist_ok=True)
                return self.build_dir
            if self._owned_dir is None:
                self._owned_dir = Path(tempfile.mkdtemp(prefix="bencher-build-"))
            return self._owned_dir

    def compile(self, source: str) -> str:
        stem = Path(source).stem
        workdir = Path(tempfile.mkdtemp(prefix=f"{stem}-", dir=self._root()))
        output = workdir / f"{stem}.artifact"

        command = self.template.format(
            source=shlex.quote(source),
            output=shlex.quote(str(output)),
        )
        result = run_timed(command, timeout=self.timeout)
        if result.timed_out:
            raise CommandError(f"Compile command timed out after {self.timeout}s: {command}")
        if result.exit_code != 0:
            raise CommandError(
                f"Compile command exited {result.exit_code}: {command}\n{result.stderr_tail()}"
            )
        if not output.exists():
            # Some compilers write to stdout instead of {output}.
            output.write_text(result.stdout, encoding="utf-8")
        log.debug("Compiled %s -> %s in %.2fs", source, output, result.wall_time_s)
        return str(output)

    def cleanup(self) -> None:
        """Remove the temp build directory, if this compiler created one."""
        with self._lock:
            owned, self._owned_dir = self._owned_dir, None
        if owned is not None:
            shutil.rmtree(owned, ignore_errors=True)
            log.debug("Removed build directory %s", owned)


def parse_score_line(stdout: str) -> Any:
    """Extract the simulator result from the last non-empty output line.

    The line is either a JSON object with a ``score`` key (and optional
    ``status`` and ``metrics``) or a bare number.

    Raises:
        CommandError: If there is no output or it cannot be parsed.
    """
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    if not lines:
        raise CommandError("Simulator produced no output")
    last = lines[-1]
    try:
        data = json.loads(last)
    except json.JSONDecodeError as exc:
        raise CommandError(f"Cannot parse simulator output line: {last!r}") from exc
    if isinstance(data, bool) or not isinstance(data, (int, float, dict)):
        raise CommandError(f"Simulator output must be a number or object: {last!r}")
    return data


class CommandSimulator:
    """Run one trial with an external command.

    The template receives ``{artifact}``, ``{scenario}`` and ``{seed}``.
    The per-trial timeout is enforced by the trial executor; *timeout*
    here is a hard backstop that also kills the process group.
    """

    def __init__(self, template: str, *, timeout: float | None = None) -> None:
        self.template = template
        self.timeout = timeout

    def run(self, payload: Any, scenario: str, seed: int) -> Any:
        command = self.template.format(
            artifact=shlex.quote(str(payload)),
            scenario=shlex.quote(scenario),
            seed=seed,
        )
        result = run_timed(command, timeout=self.timeout)
        if result.timed_out:
            raise CommandError(f"Simulator timed out after {self.timeout}s")
        if result.exit_code != 0:
            raise CommandError(
                f"Simulator exited {result.exit_code}: {result.stderr_tail()}"
            )
        return parse_score_line(result.stdout)
