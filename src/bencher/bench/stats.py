"""Streaming statistics and significance tests for benchmark comparison.

Scores arrive one trial at a time and in no particular order, so each
(variant, scenario) keeps a :class:`RunningStats` accumulator instead of
the raw samples.  The accumulator stores exact rational sums, which makes
the final mean and variance independent of arrival order and free of
the cancellation error of the naive sum-of-squares formula.

Welch's t-test and Cohen's d are computed from those summaries, in pure
Python with no external dependencies.

References:
    Welch's t-test: Welch, B. L. (1947). "The generalization of
        'Student's' problem when several different population
        variances are involved." Biometrika 34(1-2): 28-35.
    Cohen's d: Cohen, J. (1988). "Statistical Power Analysis for
        the Behavioral Sciences." 2nd ed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Iterable


# ---------------------------------------------------------------------------
# Streaming accumulator
# ---------------------------------------------------------------------------


@dataclass
class RunningStats:
    """Order-independent running mean/variance accumulator.

    Memory is constant in the number of samples.  Two accumulators fed
    the same multiset of values compare equal regardless of order.
    """

    n: int = 0
    total: Fraction = field(default_factory=Fraction)
    total_sq: Fraction = field(default_factory=Fraction)
    min: float = math.inf
    max: float = -math.inf

    def add(self, value: float) -> None:
        """Fold one sample into the accumulator."""
        exact = Fraction(value)
        self.n += 1
        self.total += exact
        self.total_sq += exact * exact
        if value < self.min:
            self.min = value
        if value > self.max:
            self.max = value

    def extend(self, values: Iterable[float]) -> None:
        for value in values:
            self.add(value)

    def merge(self, other: RunningStats) -> RunningStats:
        """Return a new accumulator covering both sample sets."""
        return RunningStats(
            n=self.n + other.n,
            total=self.total + other.total,
            total_sq=self.total_sq + other.total_sq,
            min=min(self.min, other.min),
            max=max(self.max, other.max),
        )

    @property
    def mean(self) -> float:
        if self.n == 0:
            return float("nan")
        return float(self.total / self.n)

    @property
    def variance(self) -> float:
        """Sample variance (n - 1 denominator); 0.0 below two samples."""
        if self.n < 2:
            return 0.0
        exact = (self.total_sq - self.total * self.total / self.n) / (self.n - 1)
        return float(max(exact, Fraction(0)))

    @property
    def stdev(self) -> float:
        return math.sqrt(self.variance)

    @property
    def cv(self) -> float:
        """Coefficient of variation (stdev/mean)."""
        mean = self.mean
        if self.n == 0:
            return float("nan")
        return self.stdev / abs(mean) if mean != 0 else float("inf")

    def to_dict(self) -> dict[str, Any]:
        """Serialize, keeping the exact sums so a reload compares equal."""
        return {
            "n": self.n,
            "mean": round(self.mean, 6) if self.n else None,
            "stdev": round(self.stdev, 6),
            "min": self.min if self.n else None,
            "max": self.max if self.n else None,
            "total": str(self.total),
            "total_sq": str(self.total_sq),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunningStats:
        n = data.get("n", 0)
        return cls(
            n=n,
            total=Fraction(data.get("total", "0")),
            total_sq=Fraction(data.get("total_sq", "0")),
            min=data["min"] if n else math.inf,
            max=data["max"] if n else -math.inf,
        )


# ---------------------------------------------------------------------------
# Welch's t-test
# ---------------------------------------------------------------------------


@dataclass
class TTestResult:
    """Result of Welch's t-test comparing baseline and candidate.

    ``t_statistic`` is positive when the candidate mean is higher.
    """

    t_statistic: float
    degrees_of_freedom: float
    p_value: float

    def significant(self, alpha: float) -> bool:
        return not math.isnan(self.p_value) and self.p_value < alpha

    @property
    def significance_stars(self) -> str:
        """Return significance stars: ***, **, *, or ns."""
        if self.significant(0.001):
            return "***"
        if self.significant(0.01):
            return "**"
        if self.significant(0.05):
            return "*"
        return "ns"


def welch_ttest(baseline: RunningStats, candidate: RunningStats) -> TTestResult:
    """Perform Welch's t-test on two summarized independent samples.

    Tests the null hypothesis that the two populations have equal
    means, without assuming equal variances.  The statistic is the
    difference of means over its standard error, the standardized
    effect the verdict is based on.

    If either sample has fewer than 2 values, returns NaN values.
    """
    na, nb = baseline.n, candidate.n

    if na < 2 or nb < 2:
        return TTestResult(float("nan"), float("nan"), float("nan"))

    mean_a = baseline.mean
    mean_b = candidate.mean
    var_a = baseline.variance
    var_b = candidate.variance

    if var_a == 0 and var_b == 0:
        # Both samples constant: the difference is either exactly zero
        # or infinitely significant.
        if mean_a == mean_b:
            return TTestResult(0.0, float("inf"), 1.0)
        t_inf = float("inf") if mean_b > mean_a else float("-inf")
        return TTestResult(t_inf, float(na + nb - 2), 0.0)

    se_a = var_a / na
    se_b = var_b / nb
    se_diff = math.sqrt(se_a + se_b)

    if se_diff == 0:
        return TTestResult(0.0, float("inf"), 1.0)

    t = (mean_b - mean_a) / se_diff

    # Welch-Satterthwaite degrees of freedom.
    numerator = (se_a + se_b) ** 2
    denominator = (se_a**2 / (na - 1)) + (se_b**2 / (nb - 1))
    df = float("inf") if denominator == 0 else numerator / denominator

    return TTestResult(
        t_statistic=t,
        degrees_of_freedom=df,
        p_value=_t_cdf_two_tailed(abs(t), df),
    )


def _t_cdf_two_tailed(t: float, df: float) -> float:
    """Two-tailed p-value P(|T| > t) for Student's t with ``df`` dof.

    Uses the regularized incomplete beta function:
    p = I_x(df/2, 1/2) with x = df / (df + t^2).
    """
    if math.isinf(t):
        return 0.0
    if math.isnan(t) or math.isnan(df):
        return float("nan")
    if df <= 0:
        return float("nan")
    if math.isinf(df):
        # Normal limit.
        return math.erfc(t / math.sqrt(2))

    x = df / (df + t * t)
    p = _regularized_incomplete_beta(x, df / 2.0, 0.5)
    return min(max(p, 0.0), 1.0)


def _regularized_incomplete_beta(x: float, a: float, b: float) -> float:
    """Compute the regularized incomplete beta function I_x(a, b).

    Continued fraction expansion (Lentz's method), Numerical Recipes 6.4.
    """
    if x < 0 or x > 1:
        return float("nan")
    if x == 0:
        return 0.0
    if x == 1:
        return 1.0

    # Symmetry relation for faster convergence.
    if x > (a + 1) / (a + b + 2):
        return 1.0 - _regularized_incomplete_beta(1 - x, b, a)

    lbeta = math.lgamma(a) + math.lgamma(b) - math.lgamma(a + b)
    prefactor = math.exp(a * math.log(x) + b * math.log(1 - x) - lbeta - math.log(a))

    max_iter = 200
    epsilon = 1e-14
    tiny = 1e-30

    c = 1.0
    d = 1.0 - (a + b) * x / (a + 1)
    if abs(d) < tiny:
        d = tiny
    d = 1.0 / d
    f = d

    for m in range(1, max_iter + 1):
        # Even term.
        num = m * (b - m) * x / ((a + 2 * m - 1) * (a + 2 * m))
        d = 1.0 + num * d
        if abs(d) < tiny:
            d = tiny
        c = 1.0 + num / c
        if abs(c) < tiny:
            c = tiny
        d = 1.0 / d
        f *= c * d

        # Odd term.
        num = -((a + m) * (a + b + m) * x / ((a + 2 * m) * (a + 2 * m + 1)))
        d = 1.0 + num * d
        if abs(d) < tiny:
            d = tiny
        c = 1.0 + num / c
        if abs(c) < tiny:
            c = tiny
        d = 1.0 / d
        delta = c * d
        f *= delta

        if abs(delta - 1.0) < epsilon:
            break

    return prefactor * f


# ---------------------------------------------------------------------------
# Cohen's d effect size
# ---------------------------------------------------------------------------


@dataclass
class EffectSize:
    """Cohen's d effect size with classification."""

    d: float
    classification: str  # negligible, small, medium, large, unknown

    @staticmethod
    def classify(d: float) -> str:
        """Classify per Cohen's conventions (0.2 / 0.5 / 0.8)."""
        d_abs = abs(d)
        if d_abs < 0.2:
            return "negligible"
        if d_abs < 0.5:
            return "small"
        if d_abs < 0.8:
            return "medium"
        return "large"


def cohens_d(baseline: RunningStats, candidate: RunningStats) -> EffectSize:
    """Cohen's d with pooled standard deviation.

    A positive d means the candidate has the larger mean.
    """
    na, nb = baseline.n, candidate.n
    if na < 2 or nb < 2:
        return EffectSize(d=float("nan"), classification="unknown")

    pooled_var = ((na - 1) * baseline.variance + (nb - 1) * candidate.variance) / (na + nb - 2)
    diff = candidate.mean - baseline.mean
    if pooled_var == 0:
        if diff == 0:
            return EffectSize(d=0.0, classification="negligible")
        return EffectSize(d=math.copysign(math.inf, diff), classification="large")

    d = diff / math.sqrt(pooled_var)
    return EffectSize(d=d, classification=EffectSize.classify(d))


def relative_change(baseline_mean: float, candidate_mean: float) -> float:
    """Relative change of the candidate mean as a fraction of the baseline."""
    diff = candidate_mean - baseline_mean
    if baseline_mean == 0:
        if diff == 0:
            return 0.0
        return math.copysign(math.inf, diff)
    return diff / abs(baseline_mean)
