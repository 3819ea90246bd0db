"""Public entry point: cached, coalesced pipeline runs.

Flow for one query:
1. Live cache entry -> return it
2. Otherwise join (or start) the single in-flight run for the query key
3. The run writes its result to the cache before it settles, so a caller
   arriving after the in-flight entry is gone finds the cached result

Failures are never cached.
"""

from __future__ import annotations

import structlog

from adsift.core.cache import ResultCache
from adsift.core.config import Settings
from adsift.core.config import settings as default_settings
from adsift.core.dedup import RequestCoalescer
from adsift.core.errors import ConfigurationError
from adsift.models.schemas import Query, SearchResult, SearchSource
from adsift.services.pipeline import PipelineOrchestrator
from adsift.tools.base import SearchFetcher
from adsift.tools.google_search import GoogleSearchFetcher
from adsift.tools.meta_ads import MetaAdsFetcher
from adsift.tools.social_x import XSearchFetcher

logger = structlog.get_logger(__name__)


def build_fetchers(settings: Settings) -> dict[SearchSource, SearchFetcher]:
    return {
        SearchSource.META_ADS: MetaAdsFetcher(settings),
        SearchSource.WEB: GoogleSearchFetcher(settings),
        SearchSource.IMAGE: GoogleSearchFetcher(settings, image=True),
        SearchSource.X: XSearchFetcher(settings),
    }


class SearchService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        fetchers: dict[SearchSource, SearchFetcher] | None = None,
        cache: ResultCache[SearchResult] | None = None,
        coalescer: RequestCoalescer[SearchResult] | None = None,
    ):
        self._settings = settings or default_settings
        self._fetchers = fetchers if fetchers is not None else build_fetchers(self._settings)
        self._cache = cache or ResultCache(
            ttl=self._settings.RESULT_CACHE_TTL,
            maxsize=self._settings.RESULT_CACHE_SIZE,
        )
        self._coalescer = coalescer or RequestCoalescer()

    def default_query(self, text: str, **overrides) -> Query:
        overrides.setdefault("count", self._settings.DEFAULT_RESULT_COUNT)
        return Query(text=text, **overrides)

    async def search(self, query: Query) -> SearchResult:
        key = query.cache_key()
        entry = await self._cache.get(key)
        if entry is not None:
            logger.info("search.cache_hit", source=query.source.value, key_preview=key[:24])
            return entry.value
        return await self._coalescer.run(key, lambda: self._compute(key, query))

    async def _compute(self, key: str, query: Query) -> SearchResult:
        # A run for this key may have finished between our miss and registration
        entry = await self._cache.get(key, record=False)
        if entry is not None:
            return entry.value

        fetcher = self._fetchers.get(query.source)
        if fetcher is None:
            raise ConfigurationError(f"No fetcher configured for source '{query.source.value}'")

        result = await PipelineOrchestrator(fetcher, self._settings).run(query)
        await self._cache.set(key, result)
        return result

    async def clear_cache(self) -> None:
        await self._cache.clear()


_search_service: SearchService | None = None


def get_search_service() -> SearchService:
    """Return the process-wide SearchService, creating it on first call."""
    global _search_service
    if _search_service is None:
        _search_service = SearchService()
        logger.info("search_service.created")
    return _search_service
