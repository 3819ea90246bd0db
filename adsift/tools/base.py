"""Shared fetcher plumbing: rate limiting, retry and one deadline per call.

A fetcher turns a Query and a target count into a flat list of RawItems. It
does not deduplicate, normalize or score; those belong to later stages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog
from aiolimiter import AsyncLimiter

from adsift.core.config import Settings
from adsift.core.errors import MalformedResponseError
from adsift.core.http import request_with_deadline
from adsift.core.rate_limiter import rate_limited_call
from adsift.core.retry import RetryPolicy
from adsift.models.schemas import Query
from adsift.tools.payloads import RawItem

logger = structlog.get_logger(__name__)


class SearchFetcher(ABC):
    """Base class for one upstream search endpoint.

    ``client`` is optional: when omitted a short-lived ``httpx.AsyncClient``
    is opened per call.
    """

    name: str = "upstream"
    #: Most raw items this upstream can return for one query.
    max_results: int = 100

    def __init__(
        self,
        settings: Settings,
        *,
        limiter: AsyncLimiter,
        retry: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._settings = settings
        self._limiter = limiter
        self._retry = retry or RetryPolicy.from_settings(settings)
        self._client = client
        self._timeout = settings.HTTP_TIMEOUT

    @abstractmethod
    def ensure_configured(self) -> None:
        """Raise ConfigurationError when credentials are missing."""

    @abstractmethod
    async def fetch(self, query: Query, target: int) -> list[RawItem]:
        """Return up to ``target`` raw items for ``query``."""

    async def _get_json(self, url: str, *, params: dict, headers: dict | None = None) -> Any:
        """GET ``url`` through the limiter and the retry policy; return decoded JSON."""

        async def _fetch_once() -> Any:
            return await rate_limited_call(
                self._limiter, self.name, self._request_json, url, params, headers or {}
            )

        _fetch_once.__name__ = f"{self.name}_get"
        return await self._retry.call(_fetch_once)

    async def _request_json(self, url: str, params: dict, headers: dict) -> Any:
        logger.debug("fetcher.request", upstream=self.name, url=url)
        if self._client is not None:
            response = await request_with_deadline(
                self._client,
                "GET",
                url,
                upstream=self.name,
                timeout=self._timeout,
                params=params,
                headers=headers,
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await request_with_deadline(
                    client,
                    "GET",
                    url,
                    upstream=self.name,
                    timeout=self._timeout,
                    params=params,
                    headers=headers,
                )
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(self.name, "body is not valid JSON") from exc
