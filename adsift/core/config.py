from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    # === Upstream Credentials ===
    # Missing keys are tolerated at startup; the owning fetcher raises
    # ConfigurationError on first use, before any network call.
    RAPIDAPI_KEY: str | None = None
    X_RAPIDAPI_KEY: str | None = None
    GOOGLE_API_KEY: str | None = None
    GOOGLE_SEARCH_ENGINE_ID: str | None = None

    # === Upstream Endpoints ===
    META_AD_LIBRARY_HOST: str = "meta-ad-library.p.rapidapi.com"
    X_SEARCH_URL: str = "https://twitter-api45.p.rapidapi.com/search.php"
    GOOGLE_SEARCH_URL: str = "https://www.googleapis.com/customsearch/v1"

    # === Pipeline Policy ===
    DEFAULT_RESULT_COUNT: int = Field(default=50, ge=1, le=200)
    FETCH_MULTIPLIER: int = Field(
        default=3,
        ge=1,
        description="Over-fetch factor applied to the requested count before filtering.",
    )
    MAX_INITIAL_FETCH: int = Field(
        default=200,
        ge=1,
        description="Hard ceiling on raw items fetched for one pipeline run.",
    )
    MIN_RELEVANCE_SCORE: float = 0.3
    DEDUP_SIMILARITY_THRESHOLD: float = 0.85
    DEDUP_SIGNATURE_LENGTH: int = Field(default=150, ge=20, le=1000)
    DEDUP_MIN_SIGNATURE_LENGTH: int = Field(
        default=21,
        ge=0,
        description="Signatures shorter than this are too thin to compare; the item is kept.",
    )
    CONTENT_MAX_LENGTH: int = Field(default=500, ge=20)

    # === Network Policy ===
    HTTP_TIMEOUT: float = Field(default=60.0, description="Deadline for a single upstream call (seconds)")
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_INITIAL_BACKOFF: float = 2.0
    RETRY_MAX_BACKOFF: float = 15.0

    # === API Rate Limits (requests per second) ===
    META_ADS_RATE_LIMIT: float = 2.0
    GOOGLE_SEARCH_RATE_LIMIT: float = 5.0
    X_SEARCH_RATE_LIMIT: float = 1.0

    # === Result Cache ===
    RESULT_CACHE_TTL: int = Field(default=300, description="Seconds a pipeline result stays valid")
    RESULT_CACHE_SIZE: int = 1000

    # === Validators ===

    @field_validator("META_ADS_RATE_LIMIT", "GOOGLE_SEARCH_RATE_LIMIT", "X_SEARCH_RATE_LIMIT")
    @classmethod
    def validate_rate_limits(cls, v: float) -> float:
        """Validate API rate limits (requests per second)."""
        if v < 0.1:
            raise ValueError("Rate limit must be >= 0.1 requests/sec (minimum reasonable)")
        if v > 1000.0:
            raise ValueError("Rate limit must be <= 1000 requests/sec (reasonable max)")
        return v

    @field_validator("MIN_RELEVANCE_SCORE", "DEDUP_SIMILARITY_THRESHOLD")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Score thresholds must be between 0.0 and 1.0")
        return v

    @field_validator("HTTP_TIMEOUT")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("HTTP_TIMEOUT must be > 0 seconds")
        if v > 300:
            raise ValueError("HTTP_TIMEOUT must be <= 300 seconds")
        return v

    @field_validator("RETRY_MAX_ATTEMPTS")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("RETRY_MAX_ATTEMPTS must be >= 1")
        if v > 10:
            raise ValueError("RETRY_MAX_ATTEMPTS must be <= 10")
        return v

    @field_validator("RETRY_INITIAL_BACKOFF", "RETRY_MAX_BACKOFF")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Backoff delays must be >= 0 seconds")
        return v

    @field_validator("RESULT_CACHE_TTL")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """Validate result cache TTL."""
        if v < 1:
            raise ValueError("TTL must be >= 1 second")
        if v > 86400:
            raise ValueError("TTL must be <= 86400 seconds (24 hours max)")
        return v

    @field_validator("RESULT_CACHE_SIZE")
    @classmethod
    def validate_cache_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("RESULT_CACHE_SIZE must be >= 1 entry")
        if v > 100000:
            raise ValueError("RESULT_CACHE_SIZE must be <= 100000 entries (memory safety)")
        return v


settings = Settings()
