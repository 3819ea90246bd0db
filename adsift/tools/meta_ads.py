"""Meta Ad Library search via RapidAPI.

Pages follow ``continuation_token`` sequentially (each token comes from the
previous page) until the target is met or the upstream reports the result
set complete.
"""

from __future__ import annotations

import httpx
import structlog
from aiolimiter import AsyncLimiter

from adsift.core.config import Settings
from adsift.core.errors import ConfigurationError
from adsift.core.rate_limiter import meta_ads_limiter
from adsift.core.retry import RetryPolicy
from adsift.models.schemas import Query
from adsift.tools.base import SearchFetcher
from adsift.tools.payloads import RawItem, parse_meta_ads

logger = structlog.get_logger(__name__)

# keyword_unordered returns a more diverse set than exact phrase search
_SEARCH_TYPE = "keyword_unordered"
_MAX_PAGES = 10


class MetaAdsFetcher(SearchFetcher):
    name = "meta_ads"
    max_results = 200

    def __init__(
        self,
        settings: Settings,
        *,
        limiter: AsyncLimiter = meta_ads_limiter,
        retry: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(settings, limiter=limiter, retry=retry, client=client)
        self._host = settings.META_AD_LIBRARY_HOST
        self._url = f"https://{self._host}/search/ads"

    def ensure_configured(self) -> None:
        if not self._settings.RAPIDAPI_KEY:
            raise ConfigurationError("RapidAPI key not configured (RAPIDAPI_KEY)")

    async def fetch(self, query: Query, target: int) -> list[RawItem]:
        self.ensure_configured()
        target = min(target, self.max_results)
        headers = {
            "x-rapidapi-key": self._settings.RAPIDAPI_KEY or "",
            "x-rapidapi-host": self._host,
        }
        base_params = {
            "query": query.text,
            "country_code": query.locale,
            "active_status": "all",
            "media_types": "all",
            "platform": ",".join(query.platforms),
            "ad_type": query.ad_type,
            "search_type": _SEARCH_TYPE,
        }

        logger.info(
            "meta_ads.fetch.start",
            query_preview=query.text[:80],
            country_code=query.locale,
            target=target,
        )

        items: list[RawItem] = []
        cursor: str | None = None
        pages = 0
        while len(items) < target and pages < _MAX_PAGES:
            params = dict(base_params)
            if cursor:
                params["continuation_token"] = cursor
            page = parse_meta_ads(await self._get_json(self._url, params=params, headers=headers))
            pages += 1
            items.extend(page.items)
            if page.complete or not page.next_cursor or not page.items:
                break
            cursor = page.next_cursor

        logger.info(
            "meta_ads.fetch.success",
            query_preview=query.text[:80],
            pages=pages,
            item_count=len(items),
        )
        return items[:target]
