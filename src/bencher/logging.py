"""Logging for bencher runs.

The comparison report goes to stdout; log records go to stderr so the two
never interleave when output is piped.  Trials run on pool threads named
``trial_N``, and the optional log file records the thread of every line so
a failing trial can be traced back after a long run.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_LOGGER_NAME = "bencher"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(threadName)s]: %(message)s"
_CONSOLE_FORMAT = "%(levelname)-8s %(message)s"


def console_level(*, verbose: bool = False, quiet: bool = False) -> int:
    """Console threshold for the ``-v``/``-q`` flags; ``-v`` wins over ``-q``."""
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Attach handlers to the ``bencher`` logger and return it.

    Calling this again replaces the handlers of the previous call, so
    repeated CLI invocations in one process do not duplicate lines.  The
    log file, when given, receives every record down to DEBUG whatever
    the console threshold, so trial warnings survive a ``-q`` run.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level(verbose=verbose, quiet=quiet))
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        trace = logging.FileHandler(log_file, encoding="utf-8")
        trace.setLevel(logging.DEBUG)
        trace.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(trace)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Module logger, e.g. ``get_logger("runner")`` -> ``bencher.runner``."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")
