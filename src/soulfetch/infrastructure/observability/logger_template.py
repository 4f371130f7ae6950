"""Shared logging helpers so event names stay greppable.

USAGE:
    async with log_operation(logger, "library_reconcile") as fields:
        result = await reconcile()
        fields["relocated"] = result.relocated

    with warn_if_slow(logger, "resolver.fuzzy_walk", threshold_ms=2000, target=target):
        walk()

    log_worker_health(logger, "download_scheduler", cycles=10, errors=0, uptime_seconds=60, active=2)
"""

import logging
import time
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


# Yo, the yielded dict is merged into the ".completed" line. Fill it with result
# counters so one log line tells the whole story. Failures log ".failed" and re-raise.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Log ``<operation>.started`` / ``.completed`` / ``.failed`` with duration_ms.

    Args:
        logger: Module logger of the caller
        operation: Event name prefix (e.g. "library_reconcile")
        **context: Fields attached to every line

    Yields:
        Mutable dict of result fields for the completion line
    """
    fields: dict[str, Any] = {}
    logger.info(f"{operation}.started", extra=context)
    started = time.perf_counter()
    try:
        yield fields
    except Exception as e:
        logger.error(
            f"{operation}.failed",
            extra={**context, **fields, "duration_ms": _elapsed_ms(started), "error_type": type(e).__name__},
            exc_info=True,
        )
        raise
    logger.info(
        f"{operation}.completed",
        extra={**context, **fields, "duration_ms": _elapsed_ms(started)},
    )


@contextmanager
def warn_if_slow(
    logger: logging.Logger,
    operation: str,
    threshold_ms: int,
    **context: Any,
) -> Iterator[None]:
    """Emit ``operation.slow`` when the wrapped block ran longer than threshold_ms."""
    started = time.perf_counter()
    yield
    duration_ms = _elapsed_ms(started)
    if duration_ms > threshold_ms:
        logger.warning(
            "operation.slow",
            extra={**context, "operation": operation, "duration_ms": duration_ms, "threshold_ms": threshold_ms},
        )


def log_worker_health(
    logger: logging.Logger,
    worker: str,
    *,
    cycles: int,
    errors: int,
    uptime_seconds: float,
    **stats: Any,
) -> None:
    """Periodic ``worker.health`` line for long-running loops."""
    logger.info(
        "worker.health",
        extra={
            "worker": worker,
            "cycles_completed": cycles,
            "errors_total": errors,
            "uptime_seconds": int(uptime_seconds),
            **stats,
        },
    )
