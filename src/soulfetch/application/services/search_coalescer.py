"""Single-flight search coalescing.

Hey future me - album downloads enqueue 12 tracks at once, and retries re-search the
same query. A Soulseek search takes 10-60 seconds, so two jobs asking for the SAME query
at the same time should share ONE provider search instead of spamming the network.

How it works: a register of in-flight searches keyed by normalized query. The first
caller starts the search in its own task; later callers await that task's result.

Cancellation: callers await the shared task through asyncio.shield(), so pausing one
job never kills the search another job is waiting on. The shared task is only cancelled
if cancel_all() is called (scheduler shutdown).
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    """Lowercase, trim, collapse whitespace."""
    return _WHITESPACE_PATTERN.sub(" ", query.lower().strip())


class SearchCoalescer(Generic[T]):
    """Register of pending operations keyed by operation identity.

    Usage:
        coalescer: SearchCoalescer[list[Candidate]] = SearchCoalescer()
        results = await coalescer.run("daft punk one more time", lambda: do_search(...))
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task[T]] = {}
        self._stats = {"started": 0, "coalesced": 0}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def get_stats(self) -> dict[str, int]:
        return {**self._stats, "in_flight": len(self._in_flight)}

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Run factory() once per key at a time, sharing its result.

        Args:
            key: Operation identity (normalized with normalize_query)
            factory: Zero-arg coroutine factory that performs the operation

        Returns:
            The shared result. Exceptions propagate to every waiter.
        """
        normalized = normalize_query(key)
        task = self._in_flight.get(normalized)

        if task is None:
            self._stats["started"] += 1
            task = asyncio.ensure_future(factory())
            self._in_flight[normalized] = task
            task.add_done_callback(lambda done, k=normalized: self._forget(k, done))
        else:
            self._stats["coalesced"] += 1
            logger.debug("search.coalesced", extra={"query": normalized})

        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[T]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Retrieve the exception so asyncio doesn't warn when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    def cancel_all(self) -> None:
        """Cancel every in-flight operation."""
        for task in list(self._in_flight.values()):
            task.cancel()
