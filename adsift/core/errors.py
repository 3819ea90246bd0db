"""Error taxonomy for the acquisition pipeline.

Retryable: UpstreamTimeoutError, RateLimitedError, UpstreamError (5xx and
other unclassified non-2xx responses).
Fatal for the call: ConfigurationError, MalformedResponseError, and
UpstreamError carrying a permanent 4xx status.

Empty outcomes (nothing fetched, nothing relevant) are not errors; they are
reported through SearchResult.status.
"""

from __future__ import annotations

from typing import Any

# 4xx responses other than 429 are client errors; retrying will not fix them.
NON_RETRYABLE_STATUSES: frozenset[int] = frozenset({400, 401, 403, 404, 405, 410, 422})


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""

    retryable: bool = False


class ConfigurationError(PipelineError):
    """A required credential or setting is missing."""


class UpstreamTimeoutError(PipelineError, TimeoutError):
    """A single upstream call exceeded its deadline."""

    retryable = True

    def __init__(self, upstream: str, timeout: float):
        super().__init__(f"{upstream} request timed out after {timeout:.1f}s")
        self.upstream = upstream
        self.timeout = timeout


class UpstreamError(PipelineError):
    """Upstream answered with a non-2xx status, or the transport failed (no status)."""

    def __init__(self, upstream: str, status_code: int | None, body: Any = None):
        detail = f" - {body}" if body else ""
        status = status_code if status_code is not None else "transport failure"
        super().__init__(f"{upstream} API error: {status}{detail}")
        self.upstream = upstream
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code not in NON_RETRYABLE_STATUSES


class RateLimitedError(UpstreamError):
    """Upstream signalled rate limiting (HTTP 429)."""

    def __init__(
        self,
        upstream: str,
        status_code: int = 429,
        body: Any = None,
        retry_after: float | None = None,
    ):
        super().__init__(upstream, status_code, body)
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return True


class MalformedResponseError(PipelineError):
    """Upstream payload does not have the minimal expected shape."""

    def __init__(self, upstream: str, reason: str):
        super().__init__(f"Invalid {upstream} response format: {reason}")
        self.upstream = upstream
        self.reason = reason
