"""
Logging setup and timing instrumentation.

Enabled via --verbose or MCP_REVIEW_DEBUG=1. Everything goes to stderr so
JSON output on stdout stays machine-readable.
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "mcpreview"


def debug_env_enabled() -> bool:
    return os.environ.get("MCP_REVIEW_DEBUG", "").lower() in ("1", "true")


def configure_logging(verbose: bool = False, console: Optional[Console] = None) -> logging.Logger:
    """Attach a stderr RichHandler to the package logger. Safe to call twice."""
    logger = logging.getLogger(ROOT_LOGGER)
    level = logging.DEBUG if verbose or debug_env_enabled() else logging.WARNING
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter("[%(name)s] %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


class TimerResult:
    def __init__(self) -> None:
        self.elapsed_ms: float = 0.0


@contextmanager
def timer(label: str, operation: str) -> Iterator[TimerResult]:
    """
    Time a block and log start/finish on ``mcpreview.<label>``.

    Example::

        with timer("llm", "API call #1") as t:
            ...
        t.elapsed_ms
    """
    logger = logging.getLogger(f"{ROOT_LOGGER}.{label}")
    result = TimerResult()
    start = time.perf_counter()
    logger.debug("Starting: %s", operation)
    try:
        yield result
    except BaseException:
        result.elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug("%s failed (%.0fms)", operation, result.elapsed_ms)
        raise
    result.elapsed_ms = (time.perf_counter() - start) * 1000
    logger.debug("%s (%.0fms)", operation, result.elapsed_ms)
