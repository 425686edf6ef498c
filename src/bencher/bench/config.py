"""Benchmark configuration and profile loading.

Handles:
- The resolved :class:`BenchConfig` for one run.
- Validating the configuration before anything is compiled.
- Loading YAML profiles and merging CLI overrides on top.
- The comparison policy handed to the statistics layer.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from bencher.bench.trial import SeedPolicy
from bencher.errors import ConfigError
from bencher.logging import get_logger

log = get_logger("config")


# ---------------------------------------------------------------------------
# Comparison policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComparisonPolicy:
    """Thresholds that turn two score distributions into a verdict.

    A change counts only when Welch's p-value is below ``alpha`` *and*
    the relative change of the mean is at least ``min_relative_change``.
    A scenario is inconclusive when either side's failure fraction is
    above ``failure_tolerance``.
    """

    alpha: float = 0.05
    min_relative_change: float = 0.01
    failure_tolerance: float = 0.0
    higher_is_better: bool = True
    scenario_overrides: dict[str, bool] = field(default_factory=dict)

    def higher_is_better_for(self, scenario: str) -> bool:
        return self.scenario_overrides.get(scenario, self.higher_is_better)

    def to_dict(self) -> dict[str, Any]:
        return {
            "alpha": self.alpha,
            "min_relative_change": self.min_relative_change,
            "failure_tolerance": self.failure_tolerance,
            "higher_is_better": self.higher_is_better,
            "scenario_overrides": dict(self.scenario_overrides),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ComparisonPolicy:
        return cls(
            alpha=data.get("alpha", 0.05),
            min_relative_change=data.get("min_relative_change", 0.01),
            failure_tolerance=data.get("failure_tolerance", 0.0),
            higher_is_better=data.get("higher_is_better", True),
            scenario_overrides=dict(data.get("scenario_overrides", {})),
        )


# ---------------------------------------------------------------------------
# BenchConfig
# ---------------------------------------------------------------------------


@dataclass
class BenchConfig:
    """Resolved configuration for a benchmark run."""

    # Identity
    bench_id: str = ""  # Auto-generated if empty
    name: str = ""

    # Trial matrix
    trials: int = 10  # Trials per scenario occurrence per variant
    workers: int | None = None  # None = os.cpu_count()
    timeout: float | None = 60.0  # Per-trial wall-clock budget in seconds

    # Seeds
    seed_policy: SeedPolicy = SeedPolicy.FIXED
    seed_base: int | None = None  # None = 0 for FIXED, random for VARY

    # Verdict policy
    alpha: float = 0.05
    min_relative_change: float = 0.01
    failure_tolerance: float = 0.0
    higher_is_better: bool = True
    scenario_overrides: dict[str, bool] = field(default_factory=dict)

    # External commands
    compile_command: str | None = None  # None = use the source file as-is
    simulate_command: str | None = None
    compile_timeout: float = 600.0

    # CLI provenance
    cli_args: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.bench_id:
            self.bench_id = f"bench_{time.strftime('%Y%m%d_%H%M%S')}"

    @property
    def effective_workers(self) -> int:
        """Pool size: explicit value, else available hardware parallelism."""
        if self.workers is not None:
            return self.workers
        return os.cpu_count() or 1

    @property
    def policy(self) -> ComparisonPolicy:
        return ComparisonPolicy(
            alpha=self.alpha,
            min_relative_change=self.min_relative_change,
            failure_tolerance=self.failure_tolerance,
            higher_is_better=self.higher_is_better,
            scenario_overrides=dict(self.scenario_overrides),
        )

    def snapshot(self) -> dict[str, Any]:
        """Config fields recorded in the result export."""
        return {
            "trials": self.trials,
            "workers": self.effective_workers,
            "timeout": self.timeout,
            "seed_policy": self.seed_policy.value,
            "compile_command": self.compile_command,
            "simulate_command": self.simulate_command,
            "policy": self.policy.to_dict(),
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: BenchConfig) -> list[ValidationError]:
    """Validate a benchmark configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if config.trials < 1:
        errors.append(
            ValidationError(
                field="trials",
                message=f"Need at least 1 trial per scenario (got {config.trials}).",
            )
        )
    elif config.trials < 2:
        errors.append(
            ValidationError(
                field="trials",
                message=(
                    "With fewer than 2 trials per scenario every verdict "
                    "will be inconclusive."
                ),
                severity="warning",
            )
        )

    if config.workers is not None and config.workers < 1:
        errors.append(
            ValidationError(
                field="workers",
                message=f"Worker count must be positive (got {config.workers}).",
            )
        )

    if config.timeout is not None and config.timeout <= 0:
        errors.append(
            ValidationError(
                field="timeout",
                message=f"Timeout must be positive (got {config.timeout}).",
            )
        )

    if not 0 < config.alpha < 1:
        errors.append(
            ValidationError(
                field="alpha",
                message=f"Significance level must be in (0, 1) (got {config.alpha}).",
            )
        )

    if config.min_relative_change < 0:
        errors.append(
            ValidationError(
                field="min_relative_change",
                message=(
                    f"Minimum relative change cannot be negative "
                    f"(got {config.min_relative_change})."
                ),
            )
        )

    if not 0 <= config.failure_tolerance <= 1:
        errors.append(
            ValidationError(
                field="failure_tolerance",
                message=(
                    f"Failure tolerance is a fraction in [0, 1] "
                    f"(got {config.failure_tolerance})."
                ),
            )
        )

    if config.seed_policy is SeedPolicy.VARY and config.seed_base is not None:
        errors.append(
            ValidationError(
                field="seed_base",
                message="An explicit seed base is ignored when seeds vary per run.",
                severity="warning",
            )
        )

    if config.simulate_command is not None and "{artifact}" not in config.simulate_command:
        errors.append(
            ValidationError(
                field="simulate_command",
                message="Simulate command must contain an {artifact} placeholder.",
            )
        )

    return errors


def check_config(config: BenchConfig) -> None:
    """Log warnings and raise on fatal validation errors.

    Raises:
        ConfigError: If any error-severity problem is found.
    """
    problems = validate_config(config)
    for w in problems:
        if w.severity == "warning":
            log.warning("Config warning: %s: %s", w.field, w.message)
    fatal = [e for e in problems if e.severity == "error"]
    if fatal:
        messages = [f"  {e.field}: {e.message}" for e in fatal]
        raise ConfigError("Invalid benchmark configuration:\n" + "\n".join(messages))


# ---------------------------------------------------------------------------
# YAML profile loading
# ---------------------------------------------------------------------------


def load_profile(profile_path: Path) -> dict[str, Any]:
    """Load a benchmark profile from a YAML file.

    Profile format::

        name: "fighter tuning"
        trials: 20
        workers: 8
        timeout: 120
        seed_policy: fixed
        seed_base: 0
        alpha: 0.05
        min_relative_change: 0.02
        failure_tolerance: 0.0
        higher_is_better: true
        compile_command: "oortc {source} -o {output}"
        simulate_command: "oort-sim {artifact} --scenario {scenario} --seed {seed}"
        scenarios:
          tutorial_race:
            higher_is_better: false

    Raises:
        ConfigError: If the file is missing or is not a YAML mapping.
    """
    if not profile_path.exists():
        raise ConfigError(f"Profile not found: {profile_path}")

    try:
        data = yaml.safe_load(profile_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in profile {profile_path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Profile must be a YAML mapping, got {type(data).__name__}")
    return data


def _as_bool(value: Any, field: str) -> bool:
    # YAML already maps yes/no/true/false to bool; a quoted "false" must not pass as True.
    if not isinstance(value, bool):
        raise ConfigError(f"'{field}' must be true or false, got {value!r}")
    return value


def _scenario_overrides(profile_data: dict[str, Any]) -> dict[str, bool]:
    scenarios = profile_data.get("scenarios") or {}
    if not isinstance(scenarios, dict):
        raise ConfigError("Profile 'scenarios' must be a mapping of scenario_name -> settings")

    overrides: dict[str, bool] = {}
    for name, settings in scenarios.items():
        if settings is None:
            continue
        if not isinstance(settings, dict):
            raise ConfigError(
                f"Scenario '{name}' must be a mapping, got {type(settings).__name__}"
            )
        if "higher_is_better" in settings:
            overrides[str(name)] = _as_bool(
                settings["higher_is_better"], f"scenarios.{name}.higher_is_better"
            )
    return overrides


def config_from_profile(
    profile_data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> BenchConfig:
    """Build a BenchConfig from a parsed profile.

    CLI overrides take precedence over profile values.  A ``None``
    override means "not given on the command line".
    """
    cli = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    merged = {**profile_data, **cli}

    try:
        seed_policy = SeedPolicy(merged.get("seed_policy", SeedPolicy.FIXED))
    except ValueError as exc:
        raise ConfigError(
            f"Unknown seed_policy {merged.get('seed_policy')!r}; expected 'fixed' or 'vary'"
        ) from exc

    try:
        config = BenchConfig(
            name=str(merged.get("name", "")),
            trials=int(merged.get("trials", 10)),
            workers=int(merged["workers"]) if merged.get("workers") is not None else None,
            timeout=float(merged["timeout"]) if merged.get("timeout") is not None else 60.0,
            seed_policy=seed_policy,
            seed_base=int(merged["seed_base"]) if merged.get("seed_base") is not None else None,
            alpha=float(merged.get("alpha", 0.05)),
            min_relative_change=float(merged.get("min_relative_change", 0.01)),
            failure_tolerance=float(merged.get("failure_tolerance", 0.0)),
            higher_is_better=_as_bool(merged.get("higher_is_better", True), "higher_is_better"),
            scenario_overrides=_scenario_overrides(profile_data),
            compile_command=merged.get("compile_command"),
            simulate_command=merged.get("simulate_command"),
            compile_timeout=float(merged.get("compile_timeout", 600.0)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value in profile: {exc}") from exc

    return config
