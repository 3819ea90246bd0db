"""Search router: HTTP layer only.

Rule: no pipeline logic here. Validate input, call SearchService, map
pipeline errors onto HTTP statuses. The service is injected via a FastAPI
dependency so it can be replaced in tests.
"""

import math

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from adsift.core.errors import (
    ConfigurationError,
    MalformedResponseError,
    PipelineError,
    RateLimitedError,
    UpstreamError,
    UpstreamTimeoutError,
)
from adsift.models.schemas import ErrorResponse, SearchRequest, SearchResult
from adsift.services.search_service import SearchService, get_search_service

logger = structlog.get_logger(__name__)
router = APIRouter()


def _http_error(exc: PipelineError) -> HTTPException:
    headers = None
    if isinstance(exc, ConfigurationError):
        status_code = 503
    elif isinstance(exc, RateLimitedError):
        status_code = 429
        if exc.retry_after is not None:
            headers = {"Retry-After": str(math.ceil(exc.retry_after))}
    elif isinstance(exc, UpstreamTimeoutError):
        status_code = 504
    elif isinstance(exc, UpstreamError | MalformedResponseError):
        status_code = 502
    else:
        status_code = 500
    detail = ErrorResponse(error=str(exc), error_type=type(exc).__name__)
    return HTTPException(status_code=status_code, detail=detail.model_dump(), headers=headers)


@router.post("", response_model=SearchResult)
async def search(
    body: SearchRequest,
    service: SearchService = Depends(get_search_service),
) -> SearchResult:
    overrides: dict = {
        "source": body.source,
        "locale": body.country_code,
        "platforms": body.platform,
        "ad_type": body.ad_type,
        "fetch_multiplier": body.fetch_multiplier,
        "min_relevance": body.min_relevance,
    }
    if body.limit is not None:
        overrides["count"] = body.limit

    try:
        query = service.default_query(body.query, **overrides)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422, detail=exc.errors(include_url=False, include_context=False)
        ) from exc

    try:
        return await service.search(query)
    except PipelineError as exc:
        logger.warning(
            "search.request_failed",
            source=query.source.value,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise _http_error(exc) from exc
