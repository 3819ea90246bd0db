from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from adsift.core.config import settings
from adsift.core.logging_setup import configure_logging
from adsift.core.middleware import RequestIDMiddleware

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)
    logger.info("app.startup", environment=settings.ENVIRONMENT)

    missing = [
        name
        for name in ("RAPIDAPI_KEY", "GOOGLE_API_KEY", "GOOGLE_SEARCH_ENGINE_ID")
        if not getattr(settings, name)
    ]
    if missing:
        logger.warning(
            "app.startup.credentials_missing",
            missing=missing,
            hint="Sources needing these keys will answer 503 until they are set",
        )

    yield

    logger.info("app.shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title="adsift API",
        description="Ad library, web and social search with dedup and relevance ranking",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(RequestIDMiddleware)

    from adsift.api.v1 import search

    app.include_router(search.router, prefix="/api/v1/search", tags=["search"])
    app.mount("/metrics", make_asgi_app())

    @app.get("/health")
    async def health_check():
        """Liveness check. The pipeline holds no connections to probe."""
        return {"status": "healthy", "environment": settings.ENVIRONMENT}

    return app


app = create_app()
