"""Google Programmable Search (web and image results).

The API serves at most 10 results per call and 100 per query. Pages are
addressed by ``start`` offset, independent of each other, so they are
requested concurrently.
"""

from __future__ import annotations

import asyncio
import math

import httpx
import structlog
from aiolimiter import AsyncLimiter

from adsift.core.config import Settings
from adsift.core.errors import ConfigurationError
from adsift.core.rate_limiter import google_search_limiter
from adsift.core.retry import RetryPolicy
from adsift.models.schemas import Query
from adsift.tools.base import SearchFetcher
from adsift.tools.payloads import RawItem, parse_google_search

logger = structlog.get_logger(__name__)

_PAGE_SIZE = 10


class GoogleSearchFetcher(SearchFetcher):
    max_results = 100

    def __init__(
        self,
        settings: Settings,
        *,
        image: bool = False,
        limiter: AsyncLimiter = google_search_limiter,
        retry: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(settings, limiter=limiter, retry=retry, client=client)
        self._image = image
        self.name = "google_image" if image else "google_web"

    def ensure_configured(self) -> None:
        if not self._settings.GOOGLE_API_KEY or not self._settings.GOOGLE_SEARCH_ENGINE_ID:
            raise ConfigurationError(
                "Google search not configured (GOOGLE_API_KEY, GOOGLE_SEARCH_ENGINE_ID)"
            )

    async def _fetch_page(self, query: Query, start: int, num: int) -> list[RawItem]:
        params: dict = {
            "key": self._settings.GOOGLE_API_KEY,
            "cx": self._settings.GOOGLE_SEARCH_ENGINE_ID,
            "q": query.text,
            "num": num,
            "start": start,
            "gl": query.locale.lower(),
        }
        if self._image:
            params["searchType"] = "image"
        payload = await self._get_json(self._settings.GOOGLE_SEARCH_URL, params=params)
        return parse_google_search(payload, image=self._image).items

    async def fetch(self, query: Query, target: int) -> list[RawItem]:
        self.ensure_configured()
        target = min(target, self.max_results)
        page_count = math.ceil(target / _PAGE_SIZE)

        logger.info(
            "google_search.fetch.start",
            search_type="image" if self._image else "web",
            query_preview=query.text[:80],
            target=target,
            pages=page_count,
        )

        # A failed page cancels its siblings so no retries outlive this call.
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [
                    tg.create_task(
                        self._fetch_page(
                            query,
                            start=1 + i * _PAGE_SIZE,
                            num=min(_PAGE_SIZE, target - i * _PAGE_SIZE),
                        )
                    )
                    for i in range(page_count)
                ]
        except ExceptionGroup as group:
            raise group.exceptions[0] from None
        items = [item for task in tasks for item in task.result()]

        logger.info(
            "google_search.fetch.success",
            search_type="image" if self._image else "web",
            item_count=len(items),
        )
        return items[:target]
