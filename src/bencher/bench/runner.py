"""Benchmark execution engine.

Orchestrates:
1. Configuration validation
2. Compilation of both variants (once each, before any trial)
3. Enumeration of the trial matrix in a stable order
4. Parallel trial execution on a bounded thread pool
5. Outcome aggregation and progress reporting

Jobs are independent, so a plain FIFO pool is enough: jobs are
submitted in (variant, suite position, trial index) order and may
finish in any order.  The run is complete when the number of recorded
outcomes equals the number of jobs.
"""

from __future__ import annotations

import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable

from bencher.bench.config import BenchConfig, check_config
from bencher.bench.results import Aggregator, BenchRun
from bencher.bench.trial import (
    TRIAL_ERROR,
    Failure,
    SeedPolicy,
    Simulator,
    TrialExecutor,
    TrialJob,
    TrialOutcome,
    trial_seed,
)
from bencher.bench.variants import VARIANTS, Artifact, Compiler, Variant, resolve_variants
from bencher.logging import get_logger

log = get_logger("runner")


# ---------------------------------------------------------------------------
# Job enumeration
# ---------------------------------------------------------------------------


def enumerate_jobs(
    suite: list[str],
    trials: int,
    seed_base: int = 0,
    variants: tuple[Variant, ...] = VARIANTS,
) -> list[TrialJob]:
    """Build the full trial matrix in dispatch order.

    Order is variant, then suite position, then trial index.  A scenario
    listed more than once gets fresh trial indices for each extra
    occurrence (occurrence k covers ``[k*trials, (k+1)*trials)``), so
    every job keeps a unique identity and its own seed.
    """
    jobs: list[TrialJob] = []
    for variant in variants:
        occurrences: dict[str, int] = {}
        for scenario in suite:
            occurrence = occurrences.get(scenario, 0)
            occurrences[scenario] = occurrence + 1
            for i in range(trials):
                index = occurrence * trials + i
                jobs.append(
                    TrialJob(
                        variant=variant,
                        scenario=scenario,
                        trial_index=index,
                        seed=trial_seed(seed_base, index),
                    )
                )
    return jobs


# ---------------------------------------------------------------------------
# Progress callback
# ---------------------------------------------------------------------------


@dataclass
class BenchProgress:
    """Progress info passed to the callback, once per finished trial."""

    completed: int
    total: int
    outcome: TrialOutcome

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0


ProgressCallback = Callable[[BenchProgress], None]


# ---------------------------------------------------------------------------
# Run context
# ---------------------------------------------------------------------------


@dataclass
class RunContext:
    """Per-run state shared by the workers of one run."""

    artifacts: dict[Variant, Artifact]
    jobs: list[TrialJob]
    executor: TrialExecutor
    aggregator: Aggregator
    seed_base: int
    ticks: int = 0
    progress_lock: threading.Lock = field(default_factory=threading.Lock)


# ---------------------------------------------------------------------------
# BenchRunner
# ---------------------------------------------------------------------------


class BenchRunner:
    """Executes a benchmark run according to a BenchConfig.

    Usage::

        runner = BenchRunner(config, compiler, simulator)
        run = runner.run("old.rs", "new.rs", ["duel", "race"])
    """

    def __init__(
        self,
        config: BenchConfig,
        compiler: Compiler,
        simulator: Simulator,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.config = config
        self.compiler = compiler
        self.simulator = simulator
        self.progress: ProgressCallback = progress_callback or self._default_progress

    def run(
        self,
        baseline_source: str,
        candidate_source: str,
        suite: list[str],
    ) -> BenchRun:
        """Execute the full benchmark.

        Raises:
            ConfigError: If the configuration is invalid.
            CompileError: If either variant fails to compile.  No trial
                is dispatched in that case.
        """
        check_config(self.config)
        if not suite:
            raise ValueError("Cannot benchmark an empty suite")

        start_time = time.strftime("%Y-%m-%dT%H:%M:%S%z")
        seed_base = self._resolve_seed_base()

        log.info("Compiling variants...")
        artifacts = resolve_variants(self.compiler, baseline_source, candidate_source)

        jobs = enumerate_jobs(suite, self.config.trials, seed_base)
        ctx = RunContext(
            artifacts=artifacts,
            jobs=jobs,
            executor=TrialExecutor(self.simulator, artifacts, timeout=self.config.timeout),
            aggregator=Aggregator(jobs),
            seed_base=seed_base,
        )

        log.info(
            "Running %d trials (%d scenarios x %d trials x %d variants) on %d workers",
            len(jobs),
            len(suite),
            self.config.trials,
            len(VARIANTS),
            self.config.effective_workers,
        )
        self._run_pool(ctx)

        if not ctx.aggregator.complete:
            raise RuntimeError(
                f"Benchmark lost outcomes: {ctx.aggregator.outcome_count} recorded "
                f"for {len(jobs)} jobs"
            )

        run = BenchRun(
            bench_id=self.config.bench_id,
            name=self.config.name,
            suite=list(suite),
            seed_base=seed_base,
            artifacts={v.value: a.to_dict() for v, a in artifacts.items()},
            config=self.config.snapshot(),
            stats=ctx.aggregator.stats,
            job_count=len(jobs),
            outcome_count=ctx.aggregator.outcome_count,
            start_time=start_time,
            end_time=time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            cli_args=list(self.config.cli_args),
        )
        log.info("Benchmark complete: %d outcomes", run.outcome_count)
        return run

    def _resolve_seed_base(self) -> int:
        if self.config.seed_policy is SeedPolicy.VARY:
            seed_base = random.SystemRandom().randrange(2**31)
            log.info("Seed base for this run: %d (replay with --seed-base)", seed_base)
            return seed_base
        return self.config.seed_base or 0

    def _run_pool(self, ctx: RunContext) -> None:
        """Dispatch every job and wait until each is accounted for."""

        def _worker(job: TrialJob) -> TrialOutcome:
            try:
                outcome = ctx.executor.execute(job)
            except Exception as exc:  # noqa: BLE001
                log.error(
                    "Worker exception for %s/%s #%d: %s",
                    job.variant.value,
                    job.scenario,
                    job.trial_index,
                    exc,
                )
                outcome = TrialOutcome(
                    job=job,
                    failure=Failure(TRIAL_ERROR, f"Worker exception: {exc}"),
                )
            self._record(ctx, outcome)
            return outcome

        with ThreadPoolExecutor(
            max_workers=self.config.effective_workers,
            thread_name_prefix="trial",
        ) as pool:
            futures: dict[Any, TrialJob] = {pool.submit(_worker, job): job for job in ctx.jobs}
            for future in as_completed(futures):
                # Only aggregation bookkeeping errors reach here; they
                # invalidate the run.
                future.result()

    def _record(self, ctx: RunContext, outcome: TrialOutcome) -> None:
        """Aggregate an outcome and emit one serialized progress tick."""
        ctx.aggregator.record(outcome)
        with ctx.progress_lock:
            ctx.ticks += 1
            try:
                self.progress(BenchProgress(ctx.ticks, len(ctx.jobs), outcome))
            except Exception as exc:  # noqa: BLE001
                log.warning("Progress callback failed: %s", exc)

    @staticmethod
    def _default_progress(progress: BenchProgress) -> None:
        """Default progress callback: log each finished trial."""
        from bencher.bench.display import format_progress

        log.info(format_progress(progress))
