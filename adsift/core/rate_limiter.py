"""Upstream rate limiters using aiolimiter (token bucket, race condition-free).

All limiters are singleton instances shared across the process.
"""

import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from aiolimiter import AsyncLimiter

from adsift.core.config import settings
from adsift.core.metrics import rate_limiter_throttled_total

T = TypeVar("T")

# === Global Singleton Limiters ===

meta_ads_limiter = AsyncLimiter(
    max_rate=settings.META_ADS_RATE_LIMIT,
    time_period=1.0,
)

google_search_limiter = AsyncLimiter(
    max_rate=settings.GOOGLE_SEARCH_RATE_LIMIT,
    time_period=1.0,
)

x_search_limiter = AsyncLimiter(
    max_rate=settings.X_SEARCH_RATE_LIMIT,
    time_period=1.0,
)


async def rate_limited_call(
    limiter: AsyncLimiter,
    api_name: str,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Execute function with rate limiting and metrics tracking.

    Tracks when calls are throttled (waiting for rate limit tokens).

    Args:
        limiter: AsyncLimiter instance to use
        api_name: API name for metrics labeling
        func: Async function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result from func
    """
    start = time.monotonic()
    async with limiter:
        wait_time = time.monotonic() - start
        # Waiting more than 10ms means the bucket was empty
        if wait_time > 0.01:
            rate_limiter_throttled_total.labels(api_name=api_name).inc()
        return await func(*args, **kwargs)
