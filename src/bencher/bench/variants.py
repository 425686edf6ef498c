"""Variant resolution: compile the baseline and candidate once each.

Both variants are compiled concurrently before any trial is dispatched.
A compile failure on either side aborts the whole run, since comparing
against a broken variant is meaningless.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from bencher.errors import CompileError
from bencher.logging import get_logger

log = get_logger("variants")


class Variant(str, Enum):
    """Which side of the A/B comparison a run belongs to."""

    BASELINE = "baseline"
    CANDIDATE = "candidate"

    def __str__(self) -> str:
        return self.value


VARIANTS: tuple[Variant, ...] = (Variant.BASELINE, Variant.CANDIDATE)


class Compiler(Protocol):
    """Turns a source identifier into a runnable payload.

    Implementations raise any exception on failure.
    """

    def compile(self, source: str) -> Any: ...


@dataclass(frozen=True)
class Artifact:
    """A compiled variant, shared read-only by every trial of that variant."""

    variant: Variant
    source: str
    payload: Any
    compile_time_s: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize the identifying fields (the payload is opaque)."""
        return {
            "variant": self.variant.value,
            "source": self.source,
            "compile_time_s": round(self.compile_time_s, 3),
        }


def _compile_one(compiler: Compiler, variant: Variant, source: str) -> Artifact:
    log.info("Compiling %s from %s", variant.value, source)
    start = time.monotonic()
    try:
        payload = compiler.compile(source)
    except Exception as exc:  # noqa: BLE001
        raise CompileError(variant, exc) from exc
    elapsed = time.monotonic() - start
    log.debug("Compiled %s in %.2fs", variant.value, elapsed)
    return Artifact(variant=variant, source=source, payload=payload, compile_time_s=elapsed)


def resolve_variants(
    compiler: Compiler,
    baseline_source: str,
    candidate_source: str,
) -> dict[Variant, Artifact]:
    """Compile both variants, each exactly once, in parallel.

    Returns:
        Mapping of variant to its compiled artifact.

    Raises:
        CompileError: If either variant fails.  When both fail, the
            baseline's error is raised and the candidate's is logged.
    """
    sources = {Variant.BASELINE: baseline_source, Variant.CANDIDATE: candidate_source}
    artifacts: dict[Variant, Artifact] = {}
    errors: dict[Variant, CompileError] = {}

    with ThreadPoolExecutor(max_workers=len(VARIANTS), thread_name_prefix="compile") as pool:
        futures = {
            variant: pool.submit(_compile_one, compiler, variant, sources[variant])
            for variant in VARIANTS
        }
        for variant, future in futures.items():
            try:
                artifacts[variant] = future.result()
            except CompileError as exc:
                log.error("%s", exc)
                errors[variant] = exc

    for variant in VARIANTS:
        if variant in errors:
            raise errors[variant]
    return artifacts
