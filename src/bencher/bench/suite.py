"""Benchmark suite loading.

A suite specifier is either a path to a list file or an inline
comma-separated list of scenario names.  List files hold one scenario
per line; blank lines and lines starting with ``#`` are ignored.
Duplicates are kept: listing a scenario twice doubles its trials.
"""

from __future__ import annotations

import os
from pathlib import Path

from bencher.errors import SuiteLoadError
from bencher.logging import get_logger

log = get_logger("suite")


def parse_suite_lines(lines: list[str]) -> list[str]:
    """Filter comments and blank lines, trimming whitespace."""
    names: list[str] = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        names.append(stripped)
    return names


def load_suite_file(path: Path) -> list[str]:
    """Load scenario names from a list file.

    Raises:
        SuiteLoadError: If the file is missing, unreadable, not UTF-8, or
            contains no scenario names.
    """
    if not path.exists():
        raise SuiteLoadError(f"Suite file not found: {path}")
    if not path.is_file():
        raise SuiteLoadError(f"Suite path is not a file: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SuiteLoadError(f"Cannot read suite file {path}: {exc}") from exc

    names = parse_suite_lines(text.splitlines())
    if not names:
        raise SuiteLoadError(f"Suite file lists no scenarios: {path}")
    log.debug("Loaded %d scenarios from %s", len(names), path)
    return names


def _looks_like_path(spec: str) -> bool:
    return os.sep in spec or "/" in spec or bool(Path(spec).suffix)


def load_suite(spec: str) -> list[str]:
    """Resolve a suite specifier to an ordered list of scenario names.

    An existing path is read as a list file, and so is a comma-free
    specifier shaped like a path (``suites/smoke.txt``), which fails if
    the file is missing.  Anything else is an inline comma-separated list.
    """
    path = Path(spec)
    if path.exists() or ("," not in spec and _looks_like_path(spec)):
        return load_suite_file(path)

    names = [name.strip() for name in spec.split(",") if name.strip()]
    if not names:
        raise SuiteLoadError(f"No scenarios in suite specifier: {spec!r}")
    return names


def unique_scenarios(suite: list[str]) -> list[str]:
    """Scenario names in first-appearance order, without duplicates."""
    return list(dict.fromkeys(suite))
