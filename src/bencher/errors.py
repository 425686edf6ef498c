"""Exceptions that abort a benchmark run.

Per-trial problems are never raised past the trial executor; they are
recorded as failure outcomes instead (see :mod:`bencher.bench.trial`).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bencher.bench.variants import Variant


class BencherError(Exception):
    """Base class for fatal bencher errors."""


class SuiteLoadError(BencherError):
    """The benchmark suite could not be loaded or was empty."""


class ConfigError(BencherError):
    """The benchmark configuration or profile is invalid."""


class CompileError(BencherError):
    """A variant failed to compile.  Fatal for the whole run."""

    def __init__(self, variant: Variant, cause: BaseException) -> None:
        self.variant = variant
        self.cause = cause
        super().__init__(f"Failed to compile {variant.value}: {cause}")
