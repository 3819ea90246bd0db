"""Retry policy with exponential backoff for upstream API calls.

Rate-limit aware: a server-supplied Retry-After is honoured when it asks for
a longer pause than the backoff schedule. Timeouts and retryable upstream
errors follow the schedule alone. Anything else propagates on first sight.

The policy is an explicit bounded loop, so ``max_attempts`` is the hard
ceiling on calls made and no timer outlives the call that armed it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from adsift.core.config import Settings
from adsift.core.errors import PipelineError, RateLimitedError, UpstreamTimeoutError
from adsift.core.metrics import retry_attempts_total

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _retry_reason(exc: BaseException) -> str:
    if isinstance(exc, RateLimitedError):
        return "rate_limited"
    if isinstance(exc, UpstreamTimeoutError):
        return "timeout"
    return "upstream_error"


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    initial_backoff: float = 2.0
    max_backoff: float = 15.0
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            initial_backoff=settings.RETRY_INITIAL_BACKOFF,
            max_backoff=settings.RETRY_MAX_BACKOFF,
        )

    def backoff(self, attempt: int) -> float:
        """Schedule delay after the ``attempt``-th failure (1-based)."""
        return min(self.initial_backoff * (2 ** (attempt - 1)), self.max_backoff)

    def delay_for(self, exc: BaseException, attempt: int) -> float:
        delay = self.backoff(attempt)
        if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
            return max(exc.retry_after, delay)
        return delay

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` until it succeeds, fails permanently, or attempts run out.

        Raises the last error after exhaustion; non-retryable errors are
        raised immediately without consuming a retry.
        """
        name = getattr(func, "__name__", repr(func))
        attempt = 0
        while True:
            attempt += 1
            try:
                return await func(*args, **kwargs)
            except PipelineError as exc:
                if not exc.retryable:
                    logger.warning(
                        "retry.non_retryable_error",
                        func=name,
                        attempt=attempt,
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                    raise
                if attempt >= self.max_attempts:
                    logger.error(
                        "retry.exhausted",
                        func=name,
                        attempts=attempt,
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                    raise

                delay = self.delay_for(exc, attempt)
                reason = _retry_reason(exc)
                retry_attempts_total.labels(reason=reason).inc()
                logger.warning(
                    "retry.attempt",
                    func=name,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay_seconds=delay,
                    reason=reason,
                    error=str(exc),
                )
                await self.sleep(delay)
