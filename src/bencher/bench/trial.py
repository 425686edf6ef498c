"""Trial jobs, outcomes, and the single-trial executor.

A trial runs one compiled artifact in one scenario under one seed.  The
executor is the error boundary of a trial: simulator exceptions and
wall-clock overruns come back as failure outcomes, never as exceptions,
so a crashing trial cannot take down a pool worker.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol

from bencher.bench.variants import Artifact, Variant
from bencher.logging import get_logger

log = get_logger("trial")

TRIAL_ERROR = "trial_error"
TRIAL_TIMEOUT = "trial_timeout"
FAILURE_KINDS: tuple[str, ...] = (TRIAL_ERROR, TRIAL_TIMEOUT)


class SeedPolicy(str, Enum):
    """How per-trial seeds are chosen.

    FIXED: ``seed_base + trial_index`` with a fixed base, so repeated runs
    reproduce exactly.  VARY: a fresh random base per run (logged so the
    run can be replayed with FIXED and that base).
    """

    FIXED = "fixed"
    VARY = "vary"


class Simulator(Protocol):
    """Runs one artifact payload in one scenario.

    Must be safe to call concurrently against the same payload.  May
    return a :class:`Score`, a bare number, or a mapping with a
    ``score`` key (plus optional ``status`` and ``metrics``).
    """

    def run(self, payload: Any, scenario: str, seed: int) -> Any: ...


@dataclass(frozen=True)
class TrialJob:
    """One cell of the trial matrix."""

    variant: Variant
    scenario: str
    trial_index: int
    seed: int

    @property
    def key(self) -> tuple[Variant, str, int]:
        """Identity of the job."""
        return (self.variant, self.scenario, self.trial_index)


@dataclass(frozen=True)
class Score:
    """Successful trial result.

    ``value`` is the primary metric that drives the comparison.
    ``status`` is an optional categorical result (e.g. ``"victory"``).
    """

    value: float
    status: str = ""
    metrics: Mapping[str, float] = field(default_factory=dict)

    @classmethod
    def coerce(cls, raw: Any) -> Score:
        """Build a Score from whatever the simulator returned.

        Raises:
            ValueError: If no finite numeric score can be extracted.
        """
        if isinstance(raw, Score):
            score = raw
        elif isinstance(raw, Mapping):
            if "score" not in raw:
                raise ValueError(f"Simulator result has no 'score' key: {dict(raw)!r}")
            metrics = raw.get("metrics") or {}
            score = cls(
                value=float(raw["score"]),
                status=str(raw.get("status") or ""),
                metrics={str(k): float(v) for k, v in metrics.items()},
            )
        elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
            score = cls(value=float(raw))
        else:
            raise ValueError(f"Unsupported simulator result type: {type(raw).__name__}")

        if not math.isfinite(score.value):
            raise ValueError(f"Non-finite score: {score.value}")
        return score


@dataclass(frozen=True)
class Failure:
    """Failed trial: ``kind`` is one of :data:`FAILURE_KINDS`."""

    kind: str
    message: str


@dataclass(frozen=True)
class TrialOutcome:
    """Result of one TrialJob: exactly one of ``score`` or ``failure``."""

    job: TrialJob
    score: Score | None = None
    failure: Failure | None = None
    wall_time_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def status(self) -> str:
        """Short label for progress display."""
        if self.failure is not None:
            return "timeout" if self.failure.kind == TRIAL_TIMEOUT else "error"
        return "ok"


# ---------------------------------------------------------------------------
# Seeds
# ---------------------------------------------------------------------------


def trial_seed(seed_base: int, trial_index: int) -> int:
    """Seed for a trial index.  Both variants share it, pairing the trials."""
    return seed_base + trial_index


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class _TrialTimedOut(Exception):
    """The simulator overran its wall-clock budget."""


class TrialExecutor:
    """Executes trial jobs against the compiled artifacts.

    Usage::

        executor = TrialExecutor(simulator, artifacts, timeout=60)
        outcome = executor.execute(job)
    """

    def __init__(
        self,
        simulator: Simulator,
        artifacts: Mapping[Variant, Artifact],
        *,
        timeout: float | None = None,
    ) -> None:
        self.simulator = simulator
        self.artifacts = artifacts
        self.timeout = timeout

    def execute(self, job: TrialJob) -> TrialOutcome:
        """Run one trial.

        Never raises, except for KeyboardInterrupt, which ends the run.
        A simulator calling ``sys.exit`` is an ordinary trial error.
        """
        artifact = self.artifacts[job.variant]
        start = time.monotonic()
        try:
            raw = self._call_with_timeout(artifact, job)
            score = Score.coerce(raw)
        except _TrialTimedOut:
            elapsed = time.monotonic() - start
            log.warning(
                "Trial %s/%s #%d timed out after %.1fs",
                job.variant.value,
                job.scenario,
                job.trial_index,
                elapsed,
            )
            return TrialOutcome(
                job=job,
                failure=Failure(TRIAL_TIMEOUT, f"exceeded {self.timeout}s budget"),
                wall_time_s=elapsed,
            )
        except (Exception, SystemExit) as exc:  # noqa: BLE001
            elapsed = time.monotonic() - start
            log.warning(
                "Trial %s/%s #%d failed: %s",
                job.variant.value,
                job.scenario,
                job.trial_index,
                exc,
            )
            return TrialOutcome(
                job=job,
                failure=Failure(TRIAL_ERROR, f"{type(exc).__name__}: {exc}"),
                wall_time_s=elapsed,
            )

        return TrialOutcome(job=job, score=score, wall_time_s=time.monotonic() - start)

    def _call_with_timeout(self, artifact: Artifact, job: TrialJob) -> Any:
        """Call the simulator, bounded by the wall-clock budget.

        The call runs on a daemon thread so that a hung simulator can be
        abandoned; there is no way to interrupt it in-process.
        """
        if self.timeout is None:
            return self.simulator.run(artifact.payload, job.scenario, job.seed)

        result: dict[str, Any] = {}

        def _target() -> None:
            try:
                result["value"] = self.simulator.run(artifact.payload, job.scenario, job.seed)
            except BaseException as exc:  # noqa: BLE001
                # Re-raised on the calling thread; KeyboardInterrupt stays fatal.
                result["error"] = exc

        thread = threading.Thread(
            target=_target,
            name=f"trial-{job.variant.value}-{job.scenario}-{job.trial_index}",
            daemon=True,
        )
        thread.start()
        thread.join(self.timeout)
        if thread.is_alive():
            raise _TrialTimedOut()
        if "error" in result:
            raise result["error"]
        return result["value"]
