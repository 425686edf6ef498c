"""Benchmark result data structures, aggregation, and serialization.

Hierarchy::

    BenchRun (top level: one benchmark execution)
      -> artifacts: dict[Variant, Artifact summary]
      -> stats: dict[(Variant, scenario), ScenarioStats]
        -> scores: RunningStats

Outcomes are folded into :class:`ScenarioStats` as they arrive.  Every
update is commutative, so the final stats do not depend on the order in
which workers finish.

Files produced::

    <output>.json  (BenchRun, written only when --output is given)
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from bencher.bench.stats import RunningStats
from bencher.bench.trial import FAILURE_KINDS, TrialJob, TrialOutcome
from bencher.bench.variants import VARIANTS, Variant
from bencher.logging import get_logger

log = get_logger("results")

# Failure messages kept per (variant, scenario), lowest trial indices first.
MAX_FAILURE_MESSAGES = 3


# ---------------------------------------------------------------------------
# Per (variant, scenario) statistics
# ---------------------------------------------------------------------------


@dataclass
class ScenarioStats:
    """Running aggregate for one variant in one scenario.

    Frozen once ``completed`` reaches ``expected``; adding more outcomes
    after that is a bookkeeping error and raises.
    """

    variant: Variant
    scenario: str
    expected: int = 0
    completed: int = 0
    scores: RunningStats = field(default_factory=RunningStats)
    failures: dict[str, int] = field(default_factory=lambda: {k: 0 for k in FAILURE_KINDS})
    failure_messages: dict[int, str] = field(default_factory=dict)
    statuses: dict[str, int] = field(default_factory=dict)
    # Timing varies run to run, so it does not take part in equality.
    wall_time_s: RunningStats = field(default_factory=RunningStats, compare=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    @property
    def finalized(self) -> bool:
        return self.completed >= self.expected

    @property
    def failure_count(self) -> int:
        return sum(self.failures.values())

    @property
    def failure_rate(self) -> float:
        if self.completed == 0:
            return 0.0
        return self.failure_count / self.completed

    def add(self, outcome: TrialOutcome) -> None:
        """Fold one outcome in.  Thread-safe.

        Raises:
            ValueError: If the outcome belongs to another variant/scenario.
            RuntimeError: If the stats are already finalized.
        """
        job = outcome.job
        if job.variant is not self.variant or job.scenario != self.scenario:
            raise ValueError(
                f"Outcome for {job.variant.value}/{job.scenario} "
                f"added to {self.variant.value}/{self.scenario}"
            )
        with self._lock:
            if self.finalized:
                raise RuntimeError(
                    f"Stats for {self.variant.value}/{self.scenario} already "
                    f"hold all {self.expected} trials"
                )
            self.completed += 1
            self.wall_time_s.add(outcome.wall_time_s)
            if outcome.failure is not None:
                self.failures[outcome.failure.kind] = (
                    self.failures.get(outcome.failure.kind, 0) + 1
                )
                self._keep_message(job.trial_index, outcome.failure.message)
            else:
                assert outcome.score is not None
                self.scores.add(outcome.score.value)
                if outcome.score.status:
                    status = outcome.score.status
                    self.statuses[status] = self.statuses.get(status, 0) + 1

    def _keep_message(self, trial_index: int, message: str) -> None:
        self.failure_messages[trial_index] = message
        if len(self.failure_messages) > MAX_FAILURE_MESSAGES:
            del self.failure_messages[max(self.failure_messages)]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "variant": self.variant.value,
            "scenario": self.scenario,
            "expected": self.expected,
            "completed": self.completed,
            "scores": self.scores.to_dict(),
            "failures": dict(self.failures),
            "failure_messages": {str(k): v for k, v in sorted(self.failure_messages.items())},
            "statuses": dict(sorted(self.statuses.items())),
            "wall_time_s": self.wall_time_s.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScenarioStats:
        """Deserialize from a dict."""
        stats = cls(
            variant=Variant(data["variant"]),
            scenario=data["scenario"],
            expected=data.get("expected", 0),
            completed=data.get("completed", 0),
            scores=RunningStats.from_dict(data.get("scores", {})),
            statuses=dict(data.get("statuses", {})),
            wall_time_s=RunningStats.from_dict(data.get("wall_time_s", {})),
        )
        stats.failures.update(data.get("failures", {}))
        stats.failure_messages = {
            int(k): v for k, v in data.get("failure_messages", {}).items()
        }
        return stats


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


class Aggregator:
    """Folds the outcome stream into per-(variant, scenario) stats.

    All stats objects are created up front from the job list, so the
    mapping itself is never mutated while workers are running; each
    stats object carries its own lock.
    """

    def __init__(self, jobs: Iterable[TrialJob]) -> None:
        self.stats: dict[tuple[Variant, str], ScenarioStats] = {}
        self.expected_count = 0
        for job in jobs:
            key = (job.variant, job.scenario)
            if key not in self.stats:
                self.stats[key] = ScenarioStats(variant=job.variant, scenario=job.scenario)
            self.stats[key].expected += 1
            self.expected_count += 1
        self._count = 0
        self._count_lock = threading.Lock()

    def record(self, outcome: TrialOutcome) -> int:
        """Add one outcome and return the number recorded so far."""
        key = (outcome.job.variant, outcome.job.scenario)
        try:
            stats = self.stats[key]
        except KeyError:
            raise ValueError(
                f"Outcome for unknown job {outcome.job.variant.value}/{outcome.job.scenario}"
            ) from None
        stats.add(outcome)
        with self._count_lock:
            self._count += 1
            return self._count

    @property
    def outcome_count(self) -> int:
        with self._count_lock:
            return self._count

    @property
    def complete(self) -> bool:
        return self.outcome_count == self.expected_count


# ---------------------------------------------------------------------------
# Run-level result
# ---------------------------------------------------------------------------


@dataclass
class BenchRun:
    """A finished benchmark run: everything needed to re-render the report."""

    bench_id: str
    name: str = ""
    suite: list[str] = field(default_factory=list)
    seed_base: int = 0
    artifacts: dict[str, dict[str, Any]] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)
    stats: dict[tuple[Variant, str], ScenarioStats] = field(default_factory=dict)
    job_count: int = 0
    outcome_count: int = 0
    start_time: str = ""
    end_time: str = ""
    cli_args: list[str] = field(default_factory=list)

    def pair(self, scenario: str) -> tuple[ScenarioStats, ScenarioStats]:
        """(baseline, candidate) stats for a scenario."""
        return (
            self.stats[(Variant.BASELINE, scenario)],
            self.stats[(Variant.CANDIDATE, scenario)],
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "bench_id": self.bench_id,
            "name": self.name,
            "suite": self.suite,
            "seed_base": self.seed_base,
            "artifacts": self.artifacts,
            "config": self.config,
            "stats": [
                self.stats[(variant, scenario)].to_dict()
                for scenario in dict.fromkeys(self.suite)
                for variant in VARIANTS
                if (variant, scenario) in self.stats
            ],
            "job_count": self.job_count,
            "outcome_count": self.outcome_count,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "cli_args": self.cli_args,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BenchRun:
        """Deserialize from a dict."""
        run = cls(bench_id=data["bench_id"])
        run.name = data.get("name", "")
        run.suite = list(data.get("suite", []))
        run.seed_base = data.get("seed_base", 0)
        run.artifacts = data.get("artifacts", {})
        run.config = data.get("config", {})
        for item in data.get("stats", []):
            stats = ScenarioStats.from_dict(item)
            run.stats[(stats.variant, stats.scenario)] = stats
        run.job_count = data.get("job_count", 0)
        run.outcome_count = data.get("outcome_count", 0)
        run.start_time = data.get("start_time", "")
        run.end_time = data.get("end_time", "")
        run.cli_args = data.get("cli_args", [])
        return run


# ---------------------------------------------------------------------------
# I/O functions
# ---------------------------------------------------------------------------


def save_bench_run(path: Path, run: BenchRun) -> None:
    """Write a run to a JSON file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(run.to_dict(), indent=2) + "\n", encoding="utf-8")
    log.info("Wrote %s", path)


def load_bench_run(path: Path) -> BenchRun:
    """Load a run written by :func:`save_bench_run`.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    if not path.exists():
        raise FileNotFoundError(f"No benchmark result at {path}")
    return BenchRun.from_dict(json.loads(path.read_text(encoding="utf-8")))
