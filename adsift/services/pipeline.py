"""Pipeline orchestrator.

One run walks IDLE -> FETCHING -> DEDUPING -> SCORING -> RANKING -> DONE.
Any exception moves the run to FAILED and propagates unchanged. Empty
outcomes still reach DONE; the result status says which stage ran dry.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum

import structlog

from adsift.core.config import Settings
from adsift.core.metrics import pipeline_items, pipeline_runs_total
from adsift.models.schemas import (
    ContentRecord,
    ProvenanceCounters,
    Query,
    ResultStatus,
    SearchResult,
)
from adsift.services.deduplicator import Deduplicator
from adsift.services.normalizer import ContentNormalizer
from adsift.services.scorer import RelevanceScorer, prepare_keywords
from adsift.tools.base import SearchFetcher

logger = structlog.get_logger(__name__)


class PipelineStage(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    DEDUPING = "deduping"
    SCORING = "scoring"
    RANKING = "ranking"
    DONE = "done"
    FAILED = "failed"


NO_RESULTS_MESSAGE = "No content found for this query"
NO_RELEVANT_RESULTS_MESSAGE = "No relevant content found for this query"


def rank(records: list[ContentRecord], count: int) -> list[ContentRecord]:
    """Highest score first; equal scores keep their fetch order."""
    ordered = sorted(records, key=lambda r: r.relevance_score or 0.0, reverse=True)
    return ordered[:count]


class PipelineOrchestrator:
    """Composes fetch, dedupe, normalize, score and rank for one upstream.

    ``on_stage`` is called with every stage the run enters.
    """

    def __init__(
        self,
        fetcher: SearchFetcher,
        settings: Settings,
        *,
        deduplicator: Deduplicator | None = None,
        normalizer: ContentNormalizer | None = None,
        on_stage: Callable[[PipelineStage], None] | None = None,
    ):
        self._fetcher = fetcher
        self._settings = settings
        self._deduplicator = deduplicator or Deduplicator(
            threshold=settings.DEDUP_SIMILARITY_THRESHOLD,
            signature_length=settings.DEDUP_SIGNATURE_LENGTH,
            min_signature_length=settings.DEDUP_MIN_SIGNATURE_LENGTH,
        )
        self._normalizer = normalizer or ContentNormalizer(max_length=settings.CONTENT_MAX_LENGTH)
        self._on_stage = on_stage

    def fetch_target(self, query: Query) -> int:
        multiplier = query.fetch_multiplier or self._settings.FETCH_MULTIPLIER
        return min(query.count * multiplier, self._settings.MAX_INITIAL_FETCH)

    def _enter(self, stage: PipelineStage, **context) -> None:
        logger.debug("pipeline.stage", stage=stage.value, **context)
        if self._on_stage is not None:
            self._on_stage(stage)

    async def run(self, query: Query) -> SearchResult:
        self._enter(PipelineStage.IDLE)
        provenance = ProvenanceCounters()
        keywords = prepare_keywords(query.text)
        min_relevance = (
            query.min_relevance
            if query.min_relevance is not None
            else self._settings.MIN_RELEVANCE_SCORE
        )

        try:
            target = self.fetch_target(query)
            self._enter(PipelineStage.FETCHING, upstream=self._fetcher.name, target=target)
            raw_items = await self._fetcher.fetch(query, target)
            provenance.fetched = len(raw_items)

            self._enter(PipelineStage.DEDUPING, fetched=provenance.fetched)
            unique = self._deduplicator.deduplicate(raw_items)
            provenance.after_dedup = len(unique)

            self._enter(PipelineStage.SCORING, after_dedup=provenance.after_dedup)
            records = self._normalizer.normalize_all(unique, source=query.source)
            relevant = RelevanceScorer(min_relevance).filter(records, keywords)
            provenance.after_filter = len(relevant)

            self._enter(PipelineStage.RANKING, after_filter=provenance.after_filter)
            final = rank(relevant, query.count)
            provenance.final = len(final)
        except Exception as exc:
            self._enter(PipelineStage.FAILED)
            pipeline_runs_total.labels(source=query.source.value, status="failed").inc()
            logger.error(
                "pipeline.failed",
                source=query.source.value,
                query_preview=query.text[:80],
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise

        if provenance.after_dedup == 0:
            status, message = ResultStatus.NO_RESULTS, NO_RESULTS_MESSAGE
        elif provenance.after_filter == 0:
            status, message = ResultStatus.NO_RELEVANT_RESULTS, NO_RELEVANT_RESULTS_MESSAGE
        else:
            status, message = ResultStatus.OK, ""

        for stage, value in provenance.model_dump().items():
            pipeline_items.labels(stage=stage).observe(value)
        pipeline_runs_total.labels(source=query.source.value, status=status.value).inc()

        self._enter(PipelineStage.DONE)
        logger.info(
            "pipeline.complete",
            source=query.source.value,
            query_preview=query.text[:80],
            status=status.value,
            fetched=provenance.fetched,
            after_dedup=provenance.after_dedup,
            after_filter=provenance.after_filter,
            final=provenance.final,
        )
        return SearchResult(
            items=final,
            provenance=provenance,
            status=status,
            message=message,
            keywords=list(keywords.keywords),
        )
