"""Pydantic schemas shared by the pipeline, the service layer and the API routes.

Centralised here so that schemas can be shared without circular imports.
Route files import from here; never define BaseModel subclasses directly in
route files.
"""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class SearchSource(StrEnum):
    META_ADS = "meta_ads"
    WEB = "web"
    IMAGE = "image"
    X = "x"


class Query(BaseModel):
    """Immutable description of one search request."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1, max_length=500)
    source: SearchSource = SearchSource.META_ADS
    locale: str = Field(default="US", min_length=2, max_length=8)
    platforms: tuple[str, ...] = ("facebook", "instagram")
    ad_type: str = "all"
    count: int = Field(default=50, gt=0, le=200)
    fetch_multiplier: int | None = Field(default=None, ge=1)
    min_relevance: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Query cannot be empty")
        return v.strip()

    @field_validator("locale")
    @classmethod
    def validate_locale(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("platforms", mode="before")
    @classmethod
    def split_platforms(cls, v: object) -> object:
        # Accept the upstream's comma-separated form ("facebook,instagram")
        if isinstance(v, str):
            return tuple(p.strip().lower() for p in v.split(",") if p.strip())
        return v

    def cache_key(self) -> str:
        """Deterministic key over every field that changes the result."""
        raw = json.dumps(
            {
                "text": " ".join(self.text.lower().split()),
                "source": self.source.value,
                "locale": self.locale,
                "platforms": sorted(self.platforms),
                "ad_type": self.ad_type.lower(),
                "count": self.count,
                "fetch_multiplier": self.fetch_multiplier,
                "min_relevance": self.min_relevance,
            },
            sort_keys=True,
        )
        query_hash = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]
        return f"pipeline:{self.source.value}:{query_hash}"


# ---------------------------------------------------------------------------
# Content records
# ---------------------------------------------------------------------------


class MediaKind(StrEnum):
    IMAGE_ORIGINAL = "image_original"
    IMAGE_RESIZED = "image_resized"
    IMAGE_WATERMARKED = "image_watermarked"
    VIDEO_PREVIEW = "video_preview"
    VIDEO_HD = "video_hd"
    VIDEO_SD = "video_sd"
    VIDEO_WATERMARKED_HD = "video_watermarked_hd"
    VIDEO_WATERMARKED_SD = "video_watermarked_sd"


class MediaRef(BaseModel):
    kind: MediaKind
    url: str


class MediaAsset(BaseModel):
    """One visual asset and every rendition of it the upstream offered."""

    type: Literal["image", "video_preview", "video"]
    refs: list[MediaRef] = Field(default_factory=list)

    def url_signature(self) -> str:
        return "|".join(ref.url for ref in self.refs)

    def url(self, kind: MediaKind) -> str | None:
        for ref in self.refs:
            if ref.kind == kind:
                return ref.url
        return None


class ContentRecord(BaseModel):
    """Normalized, upstream-independent view of one fetched item."""

    id: str
    source: SearchSource
    owner_id: str | None = None
    owner_name: str = ""
    content: str = ""
    title: str | None = None
    images: list[MediaAsset] = Field(default_factory=list)
    videos: list[MediaAsset] = Field(default_factory=list)
    link_url: str | None = None
    active: bool = True
    created_at: datetime | None = None
    engagement: int | None = None
    hashtags: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    relevance_score: float | None = None

    @property
    def media(self) -> list[MediaRef]:
        """Every media reference in display order: images first, then videos."""
        return [ref for asset in [*self.images, *self.videos] for ref in asset.refs]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ResultStatus(StrEnum):
    OK = "ok"
    NO_RESULTS = "no_results"
    NO_RELEVANT_RESULTS = "no_relevant_results"


class ProvenanceCounters(BaseModel):
    fetched: int = 0
    after_dedup: int = 0
    after_filter: int = 0
    final: int = 0


class SearchResult(BaseModel):
    items: list[ContentRecord] = Field(default_factory=list)
    provenance: ProvenanceCounters = Field(default_factory=ProvenanceCounters)
    status: ResultStatus = ResultStatus.OK
    message: str = ""
    keywords: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_empty(self) -> bool:
        return not self.items


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)
    source: SearchSource = SearchSource.META_ADS
    country_code: str = "US"
    platform: str = "facebook,instagram"
    ad_type: str = "all"
    limit: int | None = Field(default=None, gt=0, le=200)
    fetch_multiplier: int | None = Field(default=None, ge=1, le=10)
    min_relevance: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be whitespace-only")
        return v


class ErrorResponse(BaseModel):
    error: str
    error_type: str
