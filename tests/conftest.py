import asyncio

import pytest
from aiolimiter import AsyncLimiter

from adsift.core.config import Settings
from adsift.core.errors import PipelineError
from adsift.models.schemas import Query
from adsift.tools.base import SearchFetcher
from adsift.tools.payloads import RawItem, RawVariant


class StubFetcher(SearchFetcher):
    """In-memory fetcher that records every target it is asked for."""

    name = "stub"
    max_results = 200

    def __init__(self, settings: Settings, items: list[RawItem]):
        super().__init__(settings, limiter=AsyncLimiter(1000, 1))
        self.items = items
        self.calls: list[int] = []
        self.gate: asyncio.Event | None = None
        self.errors: list[PipelineError] = []

    def ensure_configured(self) -> None:
        return None

    async def fetch(self, query: Query, target: int) -> list[RawItem]:
        self.calls.append(target)
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        return list(self.items[:target])


def meta_ad(item_id: str, title: str) -> RawItem:
    return RawItem(
        RawVariant.META_AD,
        item_id,
        {"adArchiveID": item_id, "pageName": "Test Page", "snapshot": {"title": title}},
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        RAPIDAPI_KEY="test-key",
        FETCH_MULTIPLIER=3,
        MAX_INITIAL_FETCH=200,
        MIN_RELEVANCE_SCORE=0.3,
        RESULT_CACHE_TTL=300,
    )


@pytest.fixture
def make_fetcher(settings: Settings):
    def _make(items: list[RawItem]) -> StubFetcher:
        return StubFetcher(settings, items)

    return _make


@pytest.fixture
def make_ad():
    return meta_ad
