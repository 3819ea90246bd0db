"""Route tests for the search API, with the service injected via dependency override."""

import pytest
from fastapi.testclient import TestClient

from adsift.core.errors import MalformedResponseError, RateLimitedError, UpstreamTimeoutError
from adsift.main import app
from adsift.models.schemas import SearchSource
from adsift.services.search_service import SearchService, get_search_service


@pytest.fixture
def stub_fetcher(make_fetcher, make_ad):
    return make_fetcher(
        [make_ad(f"r{i}", f"Wireless earbuds model {i} with charging case") for i in range(3)]
        + [make_ad("f0", "Unrelated advert about garden furniture and lamps")]
    )


@pytest.fixture
def client(settings, stub_fetcher):
    service = SearchService(settings, fetchers={SearchSource.META_ADS: stub_fetcher})
    app.dependency_overrides[get_search_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_search_returns_ranked_result(client, stub_fetcher) -> None:
    """A valid request returns items, provenance and status."""
    response = client.post("/api/v1/search", json={"query": "wireless earbuds", "limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert [item["id"] for item in body["items"]] == ["r0", "r1"]
    assert body["provenance"] == {"fetched": 4, "after_dedup": 4, "after_filter": 3, "final": 2}
    assert body["status"] == "ok"
    assert stub_fetcher.calls == [6]
    assert response.headers["X-Request-ID"]


def test_request_overrides_reach_the_pipeline(client, stub_fetcher) -> None:
    """fetch_multiplier and min_relevance from the body are applied."""
    response = client.post(
        "/api/v1/search",
        json={"query": "wireless earbuds", "limit": 4, "fetch_multiplier": 1, "min_relevance": 0},
    )

    assert response.status_code == 200
    assert stub_fetcher.calls == [4]
    assert len(response.json()["items"]) == 4


def test_blank_query_is_rejected(client) -> None:
    """Whitespace-only queries fail validation."""
    response = client.post("/api/v1/search", json={"query": "   "})

    assert response.status_code == 422


def test_unconfigured_source_is_503(client) -> None:
    """Missing configuration maps to Service Unavailable."""
    response = client.post("/api/v1/search", json={"query": "wireless earbuds", "source": "x"})

    assert response.status_code == 503
    assert response.json()["detail"]["error_type"] == "ConfigurationError"


@pytest.mark.parametrize(
    "error,status_code",
    [
        (UpstreamTimeoutError("stub", 60), 504),
        (MalformedResponseError("stub", "'results' must be a list"), 502),
    ],
)
def test_pipeline_errors_map_to_http_statuses(client, stub_fetcher, error, status_code) -> None:
    """Timeouts become 504, contract violations 502."""
    stub_fetcher.errors.append(error)

    response = client.post("/api/v1/search", json={"query": "wireless earbuds"})

    assert response.status_code == status_code
    assert response.json()["detail"]["error_type"] == type(error).__name__


def test_rate_limited_passes_retry_after(client, stub_fetcher) -> None:
    """Exhausted rate limiting becomes 429 with a whole-second Retry-After."""
    stub_fetcher.errors.append(RateLimitedError("stub", retry_after=2.5))

    response = client.post("/api/v1/search", json={"query": "wireless earbuds"})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "3"


def test_health(client) -> None:
    """Liveness endpoint answers without touching upstreams."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_metrics_endpoint_exposes_pipeline_counters(client) -> None:
    """Prometheus metrics are served under /metrics."""
    client.post("/api/v1/search", json={"query": "wireless earbuds"})

    response = client.get("/metrics/")

    assert response.status_code == 200
    assert "adsift_pipeline_runs_total" in response.text
