"""Tests for bencher.bench.stats — streaming stats and significance tests.

Known values are worked out by hand in the comments next to each case.
"""

from __future__ import annotations

import itertools
import math
import unittest
from fractions import Fraction

from bencher.bench.stats import (
    EffectSize,
    RunningStats,
    TTestResult,
    _regularized_incomplete_beta,
    _t_cdf_two_tailed,
    cohens_d,
    relative_change,
    welch_ttest,
)


def _rs(values: list[float]) -> RunningStats:
    stats = RunningStats()
    stats.extend(values)
    return stats


# ---------------------------------------------------------------------------
# RunningStats
# ---------------------------------------------------------------------------


class TestRunningStats(unittest.TestCase):
    """Tests for the order-independent accumulator."""

    def test_known_values(self) -> None:
        # mean=5, sample variance = 32/7
        stats = _rs([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0])
        self.assertEqual(stats.n, 8)
        self.assertAlmostEqual(stats.mean, 5.0, places=10)
        self.assertAlmostEqual(stats.variance, 32.0 / 7.0, places=10)
        self.assertAlmostEqual(stats.stdev, math.sqrt(32.0 / 7.0), places=10)
        self.assertEqual(stats.min, 2.0)
        self.assertEqual(stats.max, 9.0)

    def test_empty(self) -> None:
        stats = RunningStats()
        self.assertTrue(math.isnan(stats.mean))
        self.assertEqual(stats.variance, 0.0)
        self.assertTrue(math.isnan(stats.cv))

    def test_single_value(self) -> None:
        stats = _rs([3.5])
        self.assertEqual(stats.mean, 3.5)
        self.assertEqual(stats.variance, 0.0)
        self.assertEqual(stats.min, stats.max)

    def test_order_independent_equality(self) -> None:
        """Every permutation of the same values yields an equal accumulator."""
        values = [0.1, 0.2, 0.3, 1e9, -7.25]
        reference = _rs(values)
        for perm in itertools.permutations(values):
            self.assertEqual(_rs(list(perm)), reference)

    def test_exact_sums(self) -> None:
        stats = _rs([0.1, 0.2])
        self.assertEqual(stats.total, Fraction(0.1) + Fraction(0.2))

    def test_no_cancellation_on_large_offset(self) -> None:
        # Naive float sum-of-squares loses the spread entirely here.
        stats = _rs([1e9 + 1, 1e9 + 2, 1e9 + 3])
        self.assertAlmostEqual(stats.variance, 1.0, places=9)

    def test_merge(self) -> None:
        merged = _rs([1.0, 2.0]).merge(_rs([3.0, 4.0]))
        self.assertEqual(merged, _rs([1.0, 2.0, 3.0, 4.0]))

    def test_merge_with_empty(self) -> None:
        stats = _rs([1.0, 2.0])
        self.assertEqual(stats.merge(RunningStats()), stats)

    def test_cv(self) -> None:
        stats = _rs([9.0, 10.0, 11.0])
        self.assertAlmostEqual(stats.cv, 0.1, places=10)

    def test_cv_zero_mean(self) -> None:
        self.assertTrue(math.isinf(_rs([-1.0, 1.0]).cv))

    def test_dict_round_trip(self) -> None:
        stats = _rs([0.1, 0.7, 2.5])
        restored = RunningStats.from_dict(stats.to_dict())
        self.assertEqual(restored, stats)

    def test_dict_round_trip_empty(self) -> None:
        restored = RunningStats.from_dict(RunningStats().to_dict())
        self.assertEqual(restored, RunningStats())

    def test_to_dict_summary_fields(self) -> None:
        data = _rs([1.0, 3.0]).to_dict()
        self.assertEqual(data["n"], 2)
        self.assertEqual(data["mean"], 2.0)
        self.assertEqual(data["min"], 1.0)
        self.assertEqual(data["max"], 3.0)


# ---------------------------------------------------------------------------
# Welch's t-test
# ---------------------------------------------------------------------------


class TestWelchTTest(unittest.TestCase):
    """Tests for welch_ttest() and TTestResult."""

    def test_known_values(self) -> None:
        # Baseline [1..5] mean=3 var=2.5, candidate [2..6] mean=4 var=2.5
        # t = (4-3) / sqrt(0.5 + 0.5) = 1.0
        # df = 1.0 / (0.25/4 + 0.25/4) = 8.0
        result = welch_ttest(_rs([1.0, 2.0, 3.0, 4.0, 5.0]), _rs([2.0, 3.0, 4.0, 5.0, 6.0]))
        self.assertAlmostEqual(result.t_statistic, 1.0, places=6)
        self.assertAlmostEqual(result.degrees_of_freedom, 8.0, places=6)
        self.assertAlmostEqual(result.p_value, 0.3466, places=3)
        self.assertFalse(result.significant(0.05))

    def test_sign_follows_candidate(self) -> None:
        result = welch_ttest(_rs([2.0, 3.0, 4.0, 5.0, 6.0]), _rs([1.0, 2.0, 3.0, 4.0, 5.0]))
        self.assertLess(result.t_statistic, 0)

    def test_identical_samples(self) -> None:
        values = [1.0, 2.0, 3.0, 4.0]
        result = welch_ttest(_rs(values), _rs(values))
        self.assertAlmostEqual(result.t_statistic, 0.0, places=10)
        self.assertAlmostEqual(result.p_value, 1.0, places=6)

    def test_highly_significant(self) -> None:
        base = [10.0 + (i % 3 - 1) * 0.1 for i in range(30)]
        cand = [15.0 + (i % 3 - 1) * 0.1 for i in range(30)]
        result = welch_ttest(_rs(base), _rs(cand))
        self.assertTrue(result.significant(0.001))
        self.assertEqual(result.significance_stars, "***")

    def test_too_few_values(self) -> None:
        result = welch_ttest(_rs([1.0]), _rs([1.0, 2.0]))
        self.assertTrue(math.isnan(result.t_statistic))
        self.assertTrue(math.isnan(result.p_value))
        self.assertFalse(result.significant(0.05))

    def test_zero_variance_same_mean(self) -> None:
        result = welch_ttest(_rs([5.0, 5.0, 5.0]), _rs([5.0, 5.0]))
        self.assertEqual(result.t_statistic, 0.0)
        self.assertEqual(result.p_value, 1.0)

    def test_zero_variance_different_mean(self) -> None:
        result = welch_ttest(_rs([5.0, 5.0, 5.0]), _rs([6.0, 6.0, 6.0]))
        self.assertEqual(result.t_statistic, math.inf)
        self.assertEqual(result.p_value, 0.0)
        self.assertTrue(result.significant(0.001))

    def test_one_side_constant(self) -> None:
        result = welch_ttest(_rs([5.0, 5.0, 5.0]), _rs([6.0, 7.0, 8.0]))
        # t = 2 / sqrt(1/3), df = n_b - 1 = 2
        self.assertAlmostEqual(result.t_statistic, 2.0 * math.sqrt(3.0), places=6)
        self.assertAlmostEqual(result.degrees_of_freedom, 2.0, places=6)

    def test_significance_stars(self) -> None:
        self.assertEqual(TTestResult(0.5, 10, 0.5).significance_stars, "ns")
        self.assertEqual(TTestResult(2.5, 10, 0.04).significance_stars, "*")
        self.assertEqual(TTestResult(3.5, 10, 0.005).significance_stars, "**")
        self.assertEqual(TTestResult(5.0, 10, 0.0001).significance_stars, "***")

    def test_significance_is_strict(self) -> None:
        self.assertFalse(TTestResult(2.0, 10, 0.05).significant(0.05))


class TestTDistribution(unittest.TestCase):
    """Tests for the t-distribution tail and incomplete beta helpers."""

    def test_t_zero(self) -> None:
        self.assertAlmostEqual(_t_cdf_two_tailed(0.0, 5.0), 1.0, places=10)

    def test_t_infinite_df_is_normal(self) -> None:
        self.assertAlmostEqual(_t_cdf_two_tailed(1.959964, math.inf), 0.05, places=5)

    def test_t_critical_value(self) -> None:
        # t_{0.975, 10} = 2.228
        self.assertAlmostEqual(_t_cdf_two_tailed(2.228, 10.0), 0.05, places=3)

    def test_t_invalid(self) -> None:
        self.assertTrue(math.isnan(_t_cdf_two_tailed(1.0, 0.0)))
        self.assertTrue(math.isnan(_t_cdf_two_tailed(math.nan, 5.0)))
        self.assertEqual(_t_cdf_two_tailed(math.inf, 5.0), 0.0)

    def test_ibeta_bounds(self) -> None:
        self.assertEqual(_regularized_incomplete_beta(0.0, 2.0, 3.0), 0.0)
        self.assertEqual(_regularized_incomplete_beta(1.0, 2.0, 3.0), 1.0)

    def test_ibeta_symmetric(self) -> None:
        self.assertAlmostEqual(_regularized_incomplete_beta(0.5, 5.0, 5.0), 0.5, places=6)

    def test_ibeta_known_value(self) -> None:
        self.assertAlmostEqual(_regularized_incomplete_beta(0.3, 2.0, 5.0), 0.57983, places=3)

    def test_ibeta_invalid_x(self) -> None:
        self.assertTrue(math.isnan(_regularized_incomplete_beta(-0.1, 2.0, 3.0)))
        self.assertTrue(math.isnan(_regularized_incomplete_beta(1.1, 2.0, 3.0)))


# ---------------------------------------------------------------------------
# Cohen's d and relative change
# ---------------------------------------------------------------------------


class TestCohensD(unittest.TestCase):
    def test_known(self) -> None:
        # pooled sd = sqrt(2.5), d = 1 / sqrt(2.5) ≈ 0.632 → medium
        result = cohens_d(_rs([1.0, 2.0, 3.0, 4.0, 5.0]), _rs([2.0, 3.0, 4.0, 5.0, 6.0]))
        self.assertAlmostEqual(result.d, 1.0 / math.sqrt(2.5), places=6)
        self.assertEqual(result.classification, "medium")

    def test_negative_when_candidate_lower(self) -> None:
        result = cohens_d(_rs([2.0, 3.0, 4.0]), _rs([1.0, 2.0, 3.0]))
        self.assertLess(result.d, 0)

    def test_zero_variance(self) -> None:
        result = cohens_d(_rs([1.0, 1.0]), _rs([1.0, 1.0]))
        self.assertEqual(result.d, 0.0)
        self.assertEqual(result.classification, "negligible")

    def test_zero_variance_different_means(self) -> None:
        result = cohens_d(_rs([1.0, 1.0]), _rs([2.0, 2.0]))
        self.assertTrue(math.isinf(result.d))
        self.assertEqual(result.classification, "large")

    def test_too_few(self) -> None:
        result = cohens_d(_rs([1.0]), _rs([1.0, 2.0]))
        self.assertTrue(math.isnan(result.d))
        self.assertEqual(result.classification, "unknown")

    def test_classify_boundaries(self) -> None:
        self.assertEqual(EffectSize.classify(0.19), "negligible")
        self.assertEqual(EffectSize.classify(0.2), "small")
        self.assertEqual(EffectSize.classify(0.5), "medium")
        self.assertEqual(EffectSize.classify(-0.8), "large")


class TestRelativeChange(unittest.TestCase):
    def test_increase(self) -> None:
        self.assertAlmostEqual(relative_change(10.0, 15.0), 0.5)

    def test_decrease(self) -> None:
        self.assertAlmostEqual(relative_change(10.0, 8.0), -0.2)

    def test_negative_baseline(self) -> None:
        # Moving from -10 to -5 is an increase.
        self.assertAlmostEqual(relative_change(-10.0, -5.0), 0.5)

    def test_zero_baseline(self) -> None:
        self.assertEqual(relative_change(0.0, 0.0), 0.0)
        self.assertEqual(relative_change(0.0, 1.0), math.inf)
        self.assertEqual(relative_change(0.0, -1.0), -math.inf)


if __name__ == "__main__":
    unittest.main()
