"""X (Twitter) post search via RapidAPI."""

from __future__ import annotations

from urllib.parse import urlparse

import httpx
import structlog
from aiolimiter import AsyncLimiter

from adsift.core.config import Settings
from adsift.core.errors import ConfigurationError
from adsift.core.rate_limiter import x_search_limiter
from adsift.core.retry import RetryPolicy
from adsift.models.schemas import Query
from adsift.tools.base import SearchFetcher
from adsift.tools.payloads import RawItem, parse_x_search

logger = structlog.get_logger(__name__)

_MAX_PAGES = 5


class XSearchFetcher(SearchFetcher):
    name = "x_search"
    max_results = 100

    def __init__(
        self,
        settings: Settings,
        *,
        limiter: AsyncLimiter = x_search_limiter,
        retry: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(settings, limiter=limiter, retry=retry, client=client)
        self._url = settings.X_SEARCH_URL

    @property
    def _api_key(self) -> str | None:
        return self._settings.X_RAPIDAPI_KEY or self._settings.RAPIDAPI_KEY

    def ensure_configured(self) -> None:
        if not self._api_key:
            raise ConfigurationError("X search key not configured (X_RAPIDAPI_KEY)")

    async def fetch(self, query: Query, target: int) -> list[RawItem]:
        self.ensure_configured()
        target = min(target, self.max_results)
        headers = {
            "x-rapidapi-key": self._api_key or "",
            "x-rapidapi-host": urlparse(self._url).hostname or "",
        }

        items: list[RawItem] = []
        cursor: str | None = None
        pages = 0
        while len(items) < target and pages < _MAX_PAGES:
            params: dict = {"query": query.text, "search_type": "Top"}
            if cursor:
                params["cursor"] = cursor
            page = parse_x_search(await self._get_json(self._url, params=params, headers=headers))
            pages += 1
            items.extend(page.items)
            if not page.next_cursor or not page.items:
                break
            cursor = page.next_cursor

        logger.info(
            "x_search.fetch.success",
            query_preview=query.text[:80],
            pages=pages,
            item_count=len(items),
        )
        return items[:target]
