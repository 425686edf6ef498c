"""Baseline vs candidate comparison.

Turns the paired per-scenario stats of a finished run into verdicts:

- Inconclusive when either side failed too often or has fewer than two
  scores to compare.
- Improved / Regressed when Welch's test is significant at the policy's
  alpha *and* the mean moved by at least the minimum relative change, in
  the favorable / unfavorable direction for that scenario.
- No significant change otherwise.

The run verdict is the worst scenario verdict.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

from bencher.bench.config import ComparisonPolicy
from bencher.bench.results import BenchRun, ScenarioStats
from bencher.bench.stats import (
    EffectSize,
    TTestResult,
    cohens_d,
    relative_change,
    welch_ttest,
)
from bencher.bench.suite import unique_scenarios
from bencher.logging import get_logger

log = get_logger("compare")


class Verdict(str, Enum):
    """Outcome of comparing one scenario (or the whole run)."""

    IMPROVED = "improved"
    NO_SIGNIFICANT_CHANGE = "no_significant_change"
    INCONCLUSIVE = "inconclusive"
    REGRESSED = "regressed"

    @property
    def severity(self) -> int:
        """Higher is worse; the run verdict is the maximum."""
        return _SEVERITY[self]

    @property
    def passing(self) -> bool:
        return self not in (Verdict.REGRESSED, Verdict.INCONCLUSIVE)


_SEVERITY: dict[Verdict, int] = {
    Verdict.IMPROVED: 0,
    Verdict.NO_SIGNIFICANT_CHANGE: 1,
    Verdict.INCONCLUSIVE: 2,
    Verdict.REGRESSED: 3,
}


# ---------------------------------------------------------------------------
# Per-scenario comparison
# ---------------------------------------------------------------------------


@dataclass
class ScenarioComparison:
    """Comparison of one scenario between baseline and candidate."""

    scenario: str
    baseline: ScenarioStats
    candidate: ScenarioStats
    verdict: Verdict
    ttest: TTestResult
    effect_size: EffectSize
    relative_change: float  # (candidate - baseline) / |baseline|
    higher_is_better: bool = True
    reason: str = ""  # why the verdict was forced, if it was

    @property
    def change_pct(self) -> float:
        return self.relative_change * 100

    @property
    def has_failures(self) -> bool:
        return self.baseline.failure_count > 0 or self.candidate.failure_count > 0


def compare_scenario(
    baseline: ScenarioStats,
    candidate: ScenarioStats,
    policy: ComparisonPolicy,
) -> ScenarioComparison:
    """Compare one scenario's finalized stats under *policy*."""
    scenario = baseline.scenario
    higher_is_better = policy.higher_is_better_for(scenario)
    ttest = welch_ttest(baseline.scores, candidate.scores)
    effect = cohens_d(baseline.scores, candidate.scores)
    rel = (
        relative_change(baseline.scores.mean, candidate.scores.mean)
        if baseline.scores.n and candidate.scores.n
        else float("nan")
    )

    def _result(verdict: Verdict, reason: str = "") -> ScenarioComparison:
        return ScenarioComparison(
            scenario=scenario,
            baseline=baseline,
            candidate=candidate,
            verdict=verdict,
            ttest=ttest,
            effect_size=effect,
            relative_change=rel,
            higher_is_better=higher_is_better,
            reason=reason,
        )

    for side in (baseline, candidate):
        if side.failure_rate > policy.failure_tolerance:
            return _result(
                Verdict.INCONCLUSIVE,
                f"{side.variant.value} failed {side.failure_count}/{side.completed} trials",
            )
    for side in (baseline, candidate):
        if side.scores.n < 2:
            return _result(
                Verdict.INCONCLUSIVE,
                f"{side.variant.value} has {side.scores.n} score(s), need at least 2",
            )

    if not ttest.significant(policy.alpha):
        return _result(Verdict.NO_SIGNIFICANT_CHANGE)
    if not math.isnan(rel) and abs(rel) < policy.min_relative_change:
        return _result(Verdict.NO_SIGNIFICANT_CHANGE)

    candidate_higher = candidate.scores.mean > baseline.scores.mean
    if candidate_higher == higher_is_better:
        return _result(Verdict.IMPROVED)
    return _result(Verdict.REGRESSED)


# ---------------------------------------------------------------------------
# Run-level comparison
# ---------------------------------------------------------------------------


def overall_verdict(verdicts: list[Verdict]) -> Verdict:
    """Worst verdict across scenarios; inconclusive when there are none."""
    if not verdicts:
        return Verdict.INCONCLUSIVE
    return max(verdicts, key=lambda v: v.severity)


@dataclass
class ComparisonReport:
    """Complete comparison of a run, one entry per unique scenario."""

    bench_id: str
    name: str = ""
    scenarios: list[ScenarioComparison] = field(default_factory=list)
    policy: ComparisonPolicy = field(default_factory=ComparisonPolicy)
    job_count: int = 0
    outcome_count: int = 0

    @property
    def verdict(self) -> Verdict:
        return overall_verdict([s.verdict for s in self.scenarios])

    @property
    def passed(self) -> bool:
        return self.verdict.passing

    def count(self, verdict: Verdict) -> int:
        return sum(1 for s in self.scenarios if s.verdict is verdict)

    @property
    def total_failures(self) -> int:
        return sum(s.baseline.failure_count + s.candidate.failure_count for s in self.scenarios)


def compare_run(run: BenchRun, policy: ComparisonPolicy | None = None) -> ComparisonReport:
    """Compare every scenario of a run.

    Args:
        run: A finished run.
        policy: Verdict thresholds; defaults to the policy saved with the run.
    """
    if policy is None:
        policy = ComparisonPolicy.from_dict(run.config.get("policy", {}))

    report = ComparisonReport(
        bench_id=run.bench_id,
        name=run.name,
        policy=policy,
        job_count=run.job_count,
        outcome_count=run.outcome_count,
    )
    for scenario in unique_scenarios(run.suite):
        baseline, candidate = run.pair(scenario)
        comparison = compare_scenario(baseline, candidate, policy)
        log.debug(
            "%s: %s (p=%.4g, change=%.2f%%)",
            scenario,
            comparison.verdict.value,
            comparison.ttest.p_value,
            comparison.change_pct,
        )
        report.scenarios.append(comparison)
    return report
