"""Deadline-bounded upstream calls.

Every outbound request goes through ``request_with_deadline``: one HTTP call,
one deadline, classified failures. It never retries; RetryPolicy wraps it.
"""

from __future__ import annotations

import asyncio
import math
import time
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
import structlog

from adsift.core.errors import RateLimitedError, UpstreamError, UpstreamTimeoutError
from adsift.core.metrics import api_call_duration_seconds, api_calls_total

logger = structlog.get_logger(__name__)

RATE_LIMIT_STATUS = 429


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return max(0.0, seconds) if math.isfinite(seconds) else None
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - datetime.now(UTC)).total_seconds())


def _error_body(response: httpx.Response) -> Any:
    """Best-effort decode of an error body: JSON first, then a text preview."""
    try:
        return response.json()
    except ValueError:
        text = response.text
        return text[:500] if text else None


async def request_with_deadline(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    upstream: str,
    timeout: float,
    **kwargs: Any,
) -> httpx.Response:
    """Issue one HTTP request that must finish within ``timeout`` seconds.

    Raises:
        UpstreamTimeoutError: the deadline passed or the transport timed out.
        RateLimitedError: HTTP 429, with the server's Retry-After when given.
        UpstreamError: any other non-2xx status, body attached when readable,
            or a transport failure (``status_code`` is None).
    """
    start_time = time.perf_counter()
    try:
        async with asyncio.timeout(timeout):
            response = await client.request(method, url, **kwargs)
    except (TimeoutError, httpx.TimeoutException) as exc:
        api_calls_total.labels(api_name=upstream, status="timeout").inc()
        logger.warning("http.timeout", upstream=upstream, timeout=timeout)
        raise UpstreamTimeoutError(upstream, timeout) from exc
    except httpx.TransportError as exc:
        api_calls_total.labels(api_name=upstream, status="error").inc()
        logger.warning("http.transport_error", upstream=upstream, error=str(exc))
        raise UpstreamError(upstream, None, str(exc)) from exc
    finally:
        api_call_duration_seconds.labels(api_name=upstream).observe(
            time.perf_counter() - start_time
        )

    if response.status_code == RATE_LIMIT_STATUS:
        retry_after = parse_retry_after(response.headers.get("Retry-After"))
        api_calls_total.labels(api_name=upstream, status="rate_limited").inc()
        logger.warning("http.rate_limited", upstream=upstream, retry_after=retry_after)
        raise RateLimitedError(upstream, body=_error_body(response), retry_after=retry_after)

    if not response.is_success:
        body = _error_body(response)
        api_calls_total.labels(api_name=upstream, status="error").inc()
        logger.error(
            "http.error",
            upstream=upstream,
            status_code=response.status_code,
            response_preview=str(body)[:200] if body else "",
        )
        raise UpstreamError(upstream, response.status_code, body)

    api_calls_total.labels(api_name=upstream, status="success").inc()
    return response
