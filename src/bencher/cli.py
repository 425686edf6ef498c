"""Command-line interface for bencher.

Subcommands:
    bencher run    Compile two variants, benchmark them over a suite, compare
    bencher show   Re-render the comparison of a saved run

Exit status is 0 when the overall verdict passes (no regression and no
inconclusive scenario), 1 when it does not, and 2 for fatal setup errors
(bad suite, compile failure, invalid configuration).
"""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any

import click

from bencher import __version__
from bencher.errors import BencherError
from bencher.formatting import format_duration
from bencher.logging import setup_logging

EXIT_FAIL = 1
EXIT_FATAL = 2
EXIT_INTERRUPTED = 130

# Seconds past the per-trial budget before a simulator process is killed.
BACKSTOP_GRACE_S = 5.0


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """bencher: A/B performance comparison of two program variants."""


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command()
@click.argument("baseline")
@click.argument("candidate")
@click.argument("suite")
@click.option(
    "--profile",
    "profile_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML profile with run settings and per-scenario policy.",
)
@click.option(
    "-n",
    "--trials",
    type=int,
    default=None,
    help="Trials per scenario per variant (default: 10).",
)
@click.option(
    "-j",
    "--workers",
    type=int,
    default=None,
    help="Parallel trial workers (default: CPU count).",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Per-trial wall-clock budget in seconds (default: 60).",
)
@click.option("--seed-base", type=int, default=None, help="First trial seed (default: 0).")
@click.option(
    "--vary-seed",
    is_flag=True,
    default=False,
    help="Draw a fresh random seed base for this run.",
)
@click.option(
    "--alpha",
    type=float,
    default=None,
    help="Significance level for Welch's t-test (default: 0.05).",
)
@click.option(
    "--min-change",
    "min_relative_change",
    type=float,
    default=None,
    help="Minimum relative change of the mean to count, as a fraction (default: 0.01).",
)
@click.option(
    "--failure-tolerance",
    type=float,
    default=None,
    help="Failure fraction above which a scenario is inconclusive (default: 0).",
)
@click.option(
    "--lower-is-better",
    is_flag=True,
    default=False,
    help="Treat lower scores as better for every scenario.",
)
@click.option(
    "--compile-cmd",
    "compile_command",
    type=str,
    default=None,
    help="Compile command template with {source} and {output}.",
)
@click.option(
    "--simulate-cmd",
    "simulate_command",
    type=str,
    default=None,
    help="Simulate command template with {artifact}, {scenario} and {seed}.",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the run as JSON for 'bencher show'.",
)
@click.option("--name", type=str, default=None, help="Human-readable benchmark name.")
@click.option("--no-progress", is_flag=True, default=False, help="Log trials instead of a bar.")
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write a DEBUG log to this file.",
)
def run(  # noqa: PLR0913
    baseline: str,
    candidate: str,
    suite: str,
    profile_path: Path | None,
    trials: int | None,
    workers: int | None,
    timeout: float | None,
    seed_base: int | None,
    vary_seed: bool,
    alpha: float | None,
    min_relative_change: float | None,
    failure_tolerance: float | None,
    lower_is_better: bool,
    compile_command: str | None,
    simulate_command: str | None,
    output: Path | None,
    name: str | None,
    no_progress: bool,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Benchmark CANDIDATE against BASELINE over SUITE.

    SUITE is a file listing one scenario per line (# comments allowed)
    or an inline comma-separated list.

    \b
    Examples:
        bencher run old.rs new.rs tutorial_fighter,fighter_duel \\
            --simulate-cmd "oort-sim {artifact} {scenario} --seed {seed}"

        bencher run old.rs new.rs scenarios.txt --profile bench.yaml -n 50
    """
    from bencher.bench.commands import CommandCompiler, CommandSimulator, SourceFileCompiler
    from bencher.bench.compare import compare_run
    from bencher.bench.config import config_from_profile, load_profile
    from bencher.bench.display import format_progress, format_report
    from bencher.bench.results import save_bench_run
    from bencher.bench.runner import BenchProgress, BenchRunner
    from bencher.bench.suite import load_suite

    log = setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    cli_overrides: dict[str, Any] = {
        "name": name,
        "trials": trials,
        "workers": workers,
        "timeout": timeout,
        "seed_base": seed_base,
        "seed_policy": "vary" if vary_seed else None,
        "alpha": alpha,
        "min_relative_change": min_relative_change,
        "failure_tolerance": failure_tolerance,
        "higher_is_better": False if lower_is_better else None,
        "compile_command": compile_command,
        "simulate_command": simulate_command,
    }

    try:
        profile_data = load_profile(profile_path) if profile_path else {}
        config = config_from_profile(profile_data, cli_overrides=cli_overrides)
        config.cli_args = sys.argv[1:]
        scenarios = load_suite(suite)
    except BencherError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_FATAL) from exc

    if not config.simulate_command:
        click.echo(
            "Error: No simulator configured. Use --simulate-cmd or set "
            "simulate_command in the profile.",
            err=True,
        )
        raise SystemExit(EXIT_FATAL)

    compiler = (
        CommandCompiler(config.compile_command, timeout=config.compile_timeout)
        if config.compile_command
        else SourceFileCompiler()
    )
    # Reaps simulator processes left behind by the per-trial timeout.
    backstop = config.timeout + BACKSTOP_GRACE_S if config.timeout else None
    simulator = CommandSimulator(config.simulate_command, timeout=backstop)

    log.info(
        "Benchmarking %d scenario(s) with %d trial(s) each",
        len(scenarios),
        config.trials,
    )

    start = time.monotonic()
    try:
        if no_progress or quiet:
            runner = BenchRunner(config, compiler, simulator)
            bench_run = runner.run(baseline, candidate, scenarios)
        else:
            total = 2 * len(scenarios) * config.trials
            with click.progressbar(
                length=total,
                label="Running trials",
                file=click.get_text_stream("stderr"),
                item_show_func=lambda p: format_progress(p) if p else None,
            ) as bar:

                def _tick(progress: BenchProgress) -> None:
                    bar.update(1, progress)

                runner = BenchRunner(config, compiler, simulator, progress_callback=_tick)
                bench_run = runner.run(baseline, candidate, scenarios)
    except BencherError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_FATAL) from exc
    except KeyboardInterrupt:
        click.echo("\nBenchmark interrupted.", err=True)
        raise SystemExit(EXIT_INTERRUPTED)  # noqa: B904
    finally:
        if isinstance(compiler, CommandCompiler):
            compiler.cleanup()

    log.info(
        "Finished %d trials in %s",
        bench_run.outcome_count,
        format_duration(time.monotonic() - start),
    )

    if output:
        save_bench_run(output, bench_run)

    report = compare_run(bench_run, config.policy)
    click.echo()
    click.echo(format_report(report))
    if output:
        click.echo()
        click.echo(f"Results saved to: {output}")

    if not report.passed:
        raise SystemExit(EXIT_FAIL)


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@main.command("show")
@click.argument(
    "report_file",
    metavar="REPORT",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--alpha",
    type=float,
    default=None,
    help="Re-evaluate with a different significance level.",
)
def show(report_file: Path, alpha: float | None) -> None:
    """Display the comparison of a run saved with ``run --output``."""
    from dataclasses import replace

    from bencher.bench.compare import compare_run
    from bencher.bench.config import ComparisonPolicy
    from bencher.bench.display import format_report
    from bencher.bench.results import load_bench_run

    try:
        bench_run = load_bench_run(report_file)
    except (ValueError, KeyError) as exc:
        click.echo(f"Error: Cannot read {report_file}: {exc}", err=True)
        raise SystemExit(EXIT_FATAL) from exc

    policy = ComparisonPolicy.from_dict(bench_run.config.get("policy", {}))
    if alpha is not None:
        policy = replace(policy, alpha=alpha)

    report = compare_run(bench_run, policy)
    click.echo(format_report(report))
    if not report.passed:
        raise SystemExit(EXIT_FAIL)
