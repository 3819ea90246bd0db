"""Raw item deduplication.

Two passes over the fetched items, first occurrence always wins:
1. Exact identifier matching
2. Fuzzy matching on a short text signature (Jaccard over word sets)

Items whose signature is too short to compare meaningfully are kept as-is.
"""

from __future__ import annotations

import re

import structlog

from adsift.services.normalizer import signature_parts
from adsift.tools.payloads import RawItem

logger = structlog.get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def jaccard_similarity(a: str, b: str) -> float:
    """
    Word-set Jaccard similarity of two strings.

    Identical strings score 1.0. If either side has no words the score is 0.0.
    """
    if a == b:
        return 1.0
    words_a = set(a.split())
    words_b = set(b.split())
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def build_signature(item: RawItem, length: int = 150) -> str:
    """Lowercased, whitespace-collapsed prefix of the item's text fields."""
    joined = " ".join(part for part in signature_parts(item) if part)
    return _WHITESPACE_RE.sub(" ", joined).strip().lower()[:length]


class Deduplicator:
    """Removes exact and near-duplicate raw items, preserving input order."""

    def __init__(
        self,
        threshold: float = 0.85,
        signature_length: int = 150,
        min_signature_length: int = 21,
    ):
        self.threshold = threshold
        self.signature_length = signature_length
        self.min_signature_length = min_signature_length

    def deduplicate(self, items: list[RawItem]) -> list[RawItem]:
        if not items:
            return []

        # Pass 1: exact identifier
        seen_ids: set[str] = set()
        exact_unique: list[RawItem] = []
        for item in items:
            if item.item_id in seen_ids:
                continue
            seen_ids.add(item.item_id)
            exact_unique.append(item)

        # Pass 2: fuzzy signature
        kept: list[RawItem] = []
        kept_signatures: list[str] = []
        for item in exact_unique:
            signature = build_signature(item, self.signature_length)
            if len(signature) < self.min_signature_length:
                kept.append(item)
                continue
            if any(
                jaccard_similarity(signature, other) >= self.threshold
                for other in kept_signatures
            ):
                continue
            kept_signatures.append(signature)
            kept.append(item)

        logger.info(
            "deduplicator.complete",
            input_count=len(items),
            exact_removed=len(items) - len(exact_unique),
            fuzzy_removed=len(exact_unique) - len(kept),
            output_count=len(kept),
        )
        return kept
