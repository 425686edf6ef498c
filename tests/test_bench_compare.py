"""Tests for bencher.bench.compare — verdicts per scenario and per run."""

from __future__ import annotations

import unittest

from bench_test_helpers import make_outcome, make_stats, wobble

from bencher.bench.compare import (
    ComparisonReport,
    Verdict,
    compare_run,
    compare_scenario,
    overall_verdict,
)
from bencher.bench.config import ComparisonPolicy
from bencher.bench.results import Aggregator, BenchRun
from bencher.bench.runner import enumerate_jobs
from bencher.bench.trial import TRIAL_ERROR, TRIAL_TIMEOUT
from bencher.bench.variants import Variant

B = Variant.BASELINE
C = Variant.CANDIDATE
POLICY = ComparisonPolicy()


def _values(center: float, n: int = 50) -> list[float]:
    return [wobble(center, i) for i in range(n)]


def _compare(base: list[float], cand: list[float], policy: ComparisonPolicy = POLICY, **kw):
    return compare_scenario(
        make_stats(B, "duel", base, failures=kw.get("base_failures")),
        make_stats(C, "duel", cand, failures=kw.get("cand_failures")),
        policy,
    )


class TestVerdict(unittest.TestCase):
    def test_severity_order(self) -> None:
        ordered = sorted(Verdict, key=lambda v: v.severity)
        self.assertEqual(
            ordered,
            [
                Verdict.IMPROVED,
                Verdict.NO_SIGNIFICANT_CHANGE,
                Verdict.INCONCLUSIVE,
                Verdict.REGRESSED,
            ],
        )

    def test_passing(self) -> None:
        self.assertTrue(Verdict.IMPROVED.passing)
        self.assertTrue(Verdict.NO_SIGNIFICANT_CHANGE.passing)
        self.assertFalse(Verdict.INCONCLUSIVE.passing)
        self.assertFalse(Verdict.REGRESSED.passing)


class TestCompareScenario(unittest.TestCase):
    def test_improved(self) -> None:
        result = _compare(_values(10.0), _values(15.0))
        self.assertEqual(result.verdict, Verdict.IMPROVED)
        self.assertAlmostEqual(result.change_pct, 50.0, places=6)
        self.assertGreater(result.ttest.t_statistic, 0)
        self.assertEqual(result.reason, "")

    def test_regressed(self) -> None:
        result = _compare(_values(15.0), _values(10.0))
        self.assertEqual(result.verdict, Verdict.REGRESSED)

    def test_below_min_relative_change(self) -> None:
        # 0.5% shift is statistically significant but under the 1% floor.
        result = _compare(_values(10.0), _values(10.05))
        self.assertTrue(result.ttest.significant(POLICY.alpha))
        self.assertEqual(result.verdict, Verdict.NO_SIGNIFICANT_CHANGE)

    def test_min_relative_change_zero_counts_small_shift(self) -> None:
        policy = ComparisonPolicy(min_relative_change=0.0)
        result = _compare(_values(10.0), _values(10.05), policy)
        self.assertEqual(result.verdict, Verdict.IMPROVED)

    def test_identical(self) -> None:
        result = _compare(_values(10.0), _values(10.0))
        self.assertEqual(result.verdict, Verdict.NO_SIGNIFICANT_CHANGE)

    def test_noisy_overlap_not_significant(self) -> None:
        base = [10.0, 12.0, 8.0, 11.0, 9.0]
        cand = [10.5, 12.5, 8.5, 11.5, 9.5]
        result = _compare(base, cand)
        self.assertEqual(result.verdict, Verdict.NO_SIGNIFICANT_CHANGE)

    def test_lower_is_better_flips_direction(self) -> None:
        policy = ComparisonPolicy(higher_is_better=False)
        self.assertEqual(_compare(_values(10.0), _values(15.0), policy).verdict, Verdict.REGRESSED)
        self.assertEqual(_compare(_values(15.0), _values(10.0), policy).verdict, Verdict.IMPROVED)

    def test_scenario_override(self) -> None:
        policy = ComparisonPolicy(scenario_overrides={"duel": False})
        result = _compare(_values(10.0), _values(15.0), policy)
        self.assertFalse(result.higher_is_better)
        self.assertEqual(result.verdict, Verdict.REGRESSED)

    def test_failure_makes_inconclusive(self) -> None:
        result = _compare(_values(10.0), _values(15.0), cand_failures=[TRIAL_ERROR])
        self.assertEqual(result.verdict, Verdict.INCONCLUSIVE)
        self.assertIn("candidate failed 1/51", result.reason)
        self.assertTrue(result.has_failures)

    def test_baseline_timeout_makes_inconclusive(self) -> None:
        result = _compare(_values(10.0), _values(10.0), base_failures=[TRIAL_TIMEOUT])
        self.assertEqual(result.verdict, Verdict.INCONCLUSIVE)
        self.assertIn("baseline", result.reason)

    def test_failures_within_tolerance(self) -> None:
        policy = ComparisonPolicy(failure_tolerance=0.1)
        result = _compare(_values(10.0), _values(15.0), policy, cand_failures=[TRIAL_ERROR])
        self.assertEqual(result.verdict, Verdict.IMPROVED)
        self.assertTrue(result.has_failures)

    def test_too_few_scores(self) -> None:
        result = _compare([10.0], [15.0, 15.1])
        self.assertEqual(result.verdict, Verdict.INCONCLUSIVE)
        self.assertIn("need at least 2", result.reason)

    def test_all_failed(self) -> None:
        policy = ComparisonPolicy(failure_tolerance=1.0)
        result = _compare([], [], policy, base_failures=[TRIAL_ERROR], cand_failures=[TRIAL_ERROR])
        self.assertEqual(result.verdict, Verdict.INCONCLUSIVE)


class TestOverallVerdict(unittest.TestCase):
    def test_empty_is_inconclusive(self) -> None:
        self.assertEqual(overall_verdict([]), Verdict.INCONCLUSIVE)

    def test_worst_wins(self) -> None:
        self.assertEqual(
            overall_verdict([Verdict.IMPROVED, Verdict.NO_SIGNIFICANT_CHANGE]),
            Verdict.NO_SIGNIFICANT_CHANGE,
        )
        self.assertEqual(
            overall_verdict([Verdict.REGRESSED, Verdict.INCONCLUSIVE, Verdict.IMPROVED]),
            Verdict.REGRESSED,
        )
        self.assertEqual(
            overall_verdict([Verdict.IMPROVED, Verdict.INCONCLUSIVE]),
            Verdict.INCONCLUSIVE,
        )

    def test_all_improved(self) -> None:
        self.assertEqual(overall_verdict([Verdict.IMPROVED] * 3), Verdict.IMPROVED)


def _bench_run(suite: list[str], fn, trials: int = 20) -> BenchRun:
    jobs = enumerate_jobs(suite, trials)
    agg = Aggregator(jobs)
    for j in jobs:
        agg.record(make_outcome(j.variant, j.scenario, j.trial_index, fn(j)))
    return BenchRun(
        bench_id="bench_test",
        suite=suite,
        config={"policy": ComparisonPolicy(higher_is_better=False).to_dict()},
        stats=agg.stats,
        job_count=len(jobs),
        outcome_count=agg.outcome_count,
    )


class TestCompareRun(unittest.TestCase):
    def test_one_entry_per_unique_scenario(self) -> None:
        run = _bench_run(["duel", "race", "duel"], lambda j: wobble(10.0, j.trial_index))
        report = compare_run(run, POLICY)
        self.assertEqual([s.scenario for s in report.scenarios], ["duel", "race"])
        self.assertEqual(report.scenarios[0].baseline.scores.n, 40)
        self.assertEqual(report.verdict, Verdict.NO_SIGNIFICANT_CHANGE)
        self.assertTrue(report.passed)

    def test_uses_saved_policy_by_default(self) -> None:
        run = _bench_run(
            ["duel"],
            lambda j: wobble(15.0 if j.variant is C else 10.0, j.trial_index),
        )
        # The saved policy says lower is better, so a higher candidate regresses.
        self.assertEqual(compare_run(run).verdict, Verdict.REGRESSED)
        self.assertEqual(compare_run(run, POLICY).verdict, Verdict.IMPROVED)

    def test_mixed_report(self) -> None:
        def score(j) -> float:
            if j.scenario == "race" and j.variant is C:
                return wobble(5.0, j.trial_index)
            return wobble(10.0, j.trial_index)

        report = compare_run(_bench_run(["duel", "race"], score), POLICY)
        self.assertEqual(report.count(Verdict.REGRESSED), 1)
        self.assertEqual(report.count(Verdict.NO_SIGNIFICANT_CHANGE), 1)
        self.assertEqual(report.verdict, Verdict.REGRESSED)
        self.assertFalse(report.passed)
        self.assertEqual(report.total_failures, 0)

    def test_empty_report(self) -> None:
        report = ComparisonReport(bench_id="x")
        self.assertEqual(report.verdict, Verdict.INCONCLUSIVE)
        self.assertFalse(report.passed)


if __name__ == "__main__":
    unittest.main()
