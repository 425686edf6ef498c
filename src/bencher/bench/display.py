"""Terminal display formatting for benchmark progress and results.

Pure presentation: every number shown here has already been decided by
:mod:`bencher.bench.compare`.
"""

from __future__ import annotations

import math

from bencher.bench.compare import ComparisonReport, ScenarioComparison, Verdict
from bencher.bench.results import ScenarioStats
from bencher.bench.runner import BenchProgress
from bencher.bench.trial import TRIAL_ERROR, TRIAL_TIMEOUT
from bencher.formatting import (
    format_number,
    format_pct,
    format_section_header,
    format_table,
    format_verdict_icon,
)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


def format_progress(progress: BenchProgress) -> str:
    """One line per finished trial: ``[12/80] baseline duel #3 ok 1.20s``."""
    job = progress.outcome.job
    width = len(str(progress.total))
    line = (
        f"[{progress.completed:>{width}d}/{progress.total}] "
        f"{job.variant.value:<9s} {job.scenario} #{job.trial_index} "
        f"{progress.outcome.status}"
    )
    if progress.outcome.wall_time_s:
        line += f" {progress.outcome.wall_time_s:.2f}s"
    return line


# ---------------------------------------------------------------------------
# Final report
# ---------------------------------------------------------------------------


def _format_spread(stats: ScenarioStats) -> str:
    scores = stats.scores
    if scores.n == 0:
        return "N/A"
    return f"{format_number(scores.mean)} ± {format_number(scores.stdev)}"


def _format_failures(stats: ScenarioStats) -> str:
    if stats.failure_count == 0:
        return "0"
    parts = []
    if stats.failures.get(TRIAL_ERROR):
        parts.append(f"{stats.failures[TRIAL_ERROR]}E")
    if stats.failures.get(TRIAL_TIMEOUT):
        parts.append(f"{stats.failures[TRIAL_TIMEOUT]}T")
    return "+".join(parts)


def _format_p(comparison: ScenarioComparison) -> str:
    p = comparison.ttest.p_value
    if math.isnan(p):
        return "N/A"
    if p < 0.0001:
        return "<0.0001"
    return f"{p:.4f}"


def format_results_table(report: ComparisonReport) -> str:
    """One row per scenario: both means, change, p-value, failures, verdict."""
    headers = [
        "Scenario",
        "Baseline",
        "Candidate",
        "Change",
        "p",
        "Sig.",
        "Fail B/C",
        "Verdict",
    ]
    rows: list[list[str]] = []
    for c in report.scenarios:
        direction = "" if c.higher_is_better else " (lower better)"
        rows.append(
            [
                c.scenario + direction,
                _format_spread(c.baseline),
                _format_spread(c.candidate),
                format_pct(c.change_pct),
                _format_p(c),
                "" if math.isnan(c.ttest.p_value) else c.ttest.significance_stars,
                f"{_format_failures(c.baseline)}/{_format_failures(c.candidate)}",
                format_verdict_icon(c.verdict.value),
            ]
        )
    return format_table(
        headers,
        rows,
        alignments=["l", "r", "r", "r", "r", "l", "r", "l"],
        max_col_width={0: 40},
    )


def format_failure_details(report: ComparisonReport) -> str:
    """Per-scenario failure breakdown with sample messages."""
    lines: list[str] = []
    for c in report.scenarios:
        if not c.has_failures:
            continue
        lines.append(f"  {c.scenario}:")
        for stats in (c.baseline, c.candidate):
            if stats.failure_count == 0:
                continue
            lines.append(
                f"    {stats.variant.value}: {stats.failures.get(TRIAL_ERROR, 0)} error(s), "
                f"{stats.failures.get(TRIAL_TIMEOUT, 0)} timeout(s) "
                f"in {stats.completed} trials"
            )
            for index, message in sorted(stats.failure_messages.items()):
                lines.append(f"      #{index}: {message}")
    return "\n".join(lines)


def format_status_changes(report: ComparisonReport) -> str:
    """Per-scenario status tallies (e.g. wins), when the simulator reports them."""
    lines: list[str] = []
    for c in report.scenarios:
        statuses = sorted(set(c.baseline.statuses) | set(c.candidate.statuses))
        if not statuses:
            continue
        parts = []
        for status in statuses:
            before = c.baseline.statuses.get(status, 0)
            after = c.candidate.statuses.get(status, 0)
            delta = after - before
            sign = "+" if delta > 0 else ""
            change = f"{sign}{delta}" if delta else "none"
            parts.append(f"{status} {before} -> {after} ({change})")
        lines.append(f"  {c.scenario}: " + ", ".join(parts))
    return "\n".join(lines)


def format_overall(report: ComparisonReport) -> str:
    verdict = report.verdict
    counts = ", ".join(
        f"{report.count(v)} {v.value.replace('_', ' ')}"
        for v in (
            Verdict.IMPROVED,
            Verdict.NO_SIGNIFICANT_CHANGE,
            Verdict.INCONCLUSIVE,
            Verdict.REGRESSED,
        )
        if report.count(v)
    )
    summary = counts or "no scenarios"
    if report.total_failures:
        summary += f"; {report.total_failures} failed trial(s)"
    status = "PASS" if report.passed else "FAIL"
    return f"Overall: {format_verdict_icon(verdict.value)} [{status}] ({summary})"


def format_report(report: ComparisonReport) -> str:
    """Format a complete comparison report for terminal output."""
    title = report.name or report.bench_id
    policy = report.policy
    lines: list[str] = [
        title,
        "─" * len(title),
        (
            f"Trials: {report.outcome_count}/{report.job_count}  "
            f"alpha={policy.alpha}  min change={policy.min_relative_change * 100:.1f}%  "
            f"failure tolerance={policy.failure_tolerance * 100:.0f}%  "
            f"{'higher' if policy.higher_is_better else 'lower'} is better"
        ),
        "",
        format_results_table(report),
    ]

    failures = format_failure_details(report)
    if failures:
        lines += ["", format_section_header("Failures"), failures]

    statuses = format_status_changes(report)
    if statuses:
        lines += ["", format_section_header("Outcome changes"), statuses]

    forced = [c for c in report.scenarios if c.reason]
    if forced:
        lines += ["", format_section_header("Inconclusive")]
        lines += [f"  {c.scenario}: {c.reason}" for c in forced]

    lines += ["", format_overall(report)]
    return "\n".join(lines)
