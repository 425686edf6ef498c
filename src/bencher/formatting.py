"""Shared text formatting helpers for bencher.

Durations, verdict labels, aligned tables and section headers used by the
report renderer and the CLI.
"""

from __future__ import annotations

import math


def format_duration(seconds: float) -> str:
    """Format seconds as human-readable duration.

    Examples: ``'8s'``, ``'1m 23s'``, ``'1h 12m 34s'``. Always whole seconds
    (truncated, not rounded).
    """
    total = int(seconds)
    if total >= 3600:
        h = total // 3600
        m = (total % 3600) // 60
        s = total % 60
        return f"{h}h {m:2d}m {s:2d}s"
    if total >= 60:
        m = total // 60
        s = total % 60
        return f"{m}m {s:2d}s"
    return f"{total}s"


def format_verdict_icon(verdict: str) -> str:
    """Return a visual indicator for a verdict value."""
    icons: dict[str, str] = {
        "improved": "✓ IMPROVED",
        "regressed": "✗ REGRESSED",
        "no_significant_change": "= NO CHANGE",
        "inconclusive": "⚠ INCONCLUSIVE",
    }
    return icons.get(verdict, verdict.upper())


def format_number(value: float, precision: int = 3) -> str:
    """Format a float, rendering NaN as ``'N/A'``."""
    if math.isnan(value):
        return "N/A"
    return f"{value:.{precision}f}"


def format_pct(value: float, precision: int = 1) -> str:
    """Format a percentage with sign."""
    if math.isnan(value):
        return "N/A"
    if math.isinf(value):
        return "+inf%" if value > 0 else "-inf%"
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.{precision}f}%"


def format_table(
    headers: list[str],
    rows: list[list[str]],
    *,
    alignments: list[str] | None = None,
    max_col_width: dict[int, int] | None = None,
    indent: int = 2,
) -> str:
    """Format a list of rows as an aligned text table.

    Auto-calculates column widths from content. Truncates columns that
    exceed *max_col_width* (with ``'...'`` suffix). Right-aligns columns
    marked ``'r'`` in *alignments*.

    Args:
        headers: Column header strings.
        rows: List of rows, each a list of cell strings.
        alignments: Per-column alignment: ``'l'``, ``'r'``, or ``'c'``.
        max_col_width: Column index to max width mapping.
        indent: Number of leading spaces per line.
    """
    if not headers:
        return ""

    ncols = len(headers)
    aligns = list(alignments or [])
    while len(aligns) < ncols:
        aligns.append("l")

    max_widths = max_col_width or {}

    proc_headers = list(headers)
    proc_rows: list[list[str]] = []
    for row in rows:
        padded = list(row) + [""] * (ncols - len(row))
        proc_rows.append(padded[:ncols])

    for ci, max_w in max_widths.items():
        if ci < ncols:
            proc_headers[ci] = truncate(proc_headers[ci], max_w)
            for row in proc_rows:
                row[ci] = truncate(row[ci], max_w)

    widths = [len(h) for h in proc_headers]
    for row in proc_rows:
        for ci, cell in enumerate(row):
            widths[ci] = max(widths[ci], len(cell))

    prefix = " " * indent

    def _format_cell(text: str, width: int, align: str) -> str:
        if align == "r":
            return text.rjust(width)
        if align == "c":
            return text.center(width)
        return text.ljust(width)

    lines: list[str] = []
    header_line = "  ".join(
        _format_cell(proc_headers[i], widths[i], aligns[i]) for i in range(ncols)
    )
    lines.append((prefix + header_line).rstrip())
    lines.append(prefix + "─" * len(header_line.rstrip()))

    for row in proc_rows:
        row_line = "  ".join(_format_cell(row[i], widths[i], aligns[i]) for i in range(ncols))
        lines.append((prefix + row_line).rstrip())

    return "\n".join(lines)


def format_section_header(title: str, width: int = 80) -> str:
    """Format a section header: ``'─── Title ──...'``."""
    prefix = "─── "
    suffix_len = width - len(prefix) - len(title) - 1
    suffix = " " + "─" * max(0, suffix_len)
    return prefix + title + suffix


def truncate(text: str, max_len: int, suffix: str = "...") -> str:
    """Truncate text to *max_len*, adding *suffix* if truncated."""
    if len(text) <= max_len:
        return text
    if max_len <= len(suffix):
        return suffix[:max_len]
    return text[: max_len - len(suffix)] + suffix
