"""Prometheus metrics for monitoring upstream integrations and the pipeline.

Provides counters and histograms for tracking:
- Result cache hit/miss rates and coalesced waiters
- Upstream call success/failure rates and durations
- Retry attempts by reason
- Pipeline outcomes
"""

from prometheus_client import Counter, Histogram

# Cache metrics
cache_hits_total = Counter(
    "adsift_cache_hits_total",
    "Total result cache hits",
    ["cache_type"],
)

cache_misses_total = Counter(
    "adsift_cache_misses_total",
    "Total result cache misses",
    ["cache_type"],
)

coalesced_requests_total = Counter(
    "adsift_coalesced_requests_total",
    "Requests that joined an in-flight computation instead of starting one",
)

# API metrics
api_calls_total = Counter(
    "adsift_api_calls_total",
    "Total external API calls",
    ["api_name", "status"],  # success/error/timeout/rate_limited
)

api_call_duration_seconds = Histogram(
    "adsift_api_call_duration_seconds",
    "API call duration in seconds",
    ["api_name"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

retry_attempts_total = Counter(
    "adsift_retry_attempts_total",
    "Retries scheduled by the retry policy",
    ["reason"],  # rate_limited/timeout/upstream_error
)

# Rate limiter metrics
rate_limiter_throttled_total = Counter(
    "adsift_rate_limiter_throttled_total",
    "Total requests throttled by the client-side rate limiter",
    ["api_name"],
)

# Pipeline metrics
pipeline_runs_total = Counter(
    "adsift_pipeline_runs_total",
    "Completed pipeline runs",
    ["source", "status"],  # ok/no_results/no_relevant_results/failed
)

pipeline_items = Histogram(
    "adsift_pipeline_items",
    "Items observed at each pipeline stage boundary",
    ["stage"],
    buckets=[0, 1, 5, 10, 25, 50, 100, 200],
)
