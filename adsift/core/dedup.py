"""Request deduplication to prevent thundering herd on external APIs.

When many callers search for "wireless earbuds" simultaneously:
1. The first caller starts the real computation
2. Every later caller with the same key awaits that same computation
3. All of them receive the same result, or the same exception

The computation runs as its own task. Waiters await it through
``asyncio.shield`` so cancelling one waiter never cancels the shared work.
The in-flight entry is removed as soon as the task settles, success or
failure, so the next call with that key starts fresh.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

import structlog

from adsift.core.metrics import coalesced_requests_total

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RequestCoalescer(Generic[T]):
    """Keyed single-flight: at most one in-flight computation per key."""

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task[T]] = {}
        self._lock = asyncio.Lock()

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def run(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Return ``fn()``'s result, sharing one execution across concurrent callers."""
        async with self._lock:
            task = self._in_flight.get(key)
            if task is None:
                logger.debug("coalescer.first_request", key=key[:16])
                task = asyncio.create_task(self._execute(key, fn))
                self._in_flight[key] = task
                task.add_done_callback(lambda t: self._settle(key, t))
            else:
                logger.debug("coalescer.joined", key=key[:16])
                coalesced_requests_total.inc()
        return await asyncio.shield(task)

    async def _execute(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await fn()
        except Exception as exc:
            logger.warning("coalescer.error", key=key[:16], error=str(exc))
            raise
        logger.debug("coalescer.completed", key=key[:16])
        return result

    def _settle(self, key: str, task: asyncio.Task[Any]) -> None:
        """Done-callback: drop the in-flight entry and observe the outcome.

        Runs on the event loop thread, so the removal cannot interleave with
        a check-or-register in ``run``.
        """
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if task.cancelled():
            return
        # Retrieve the exception so an error nobody is still waiting on is
        # not reported as "never retrieved".
        task.exception()
