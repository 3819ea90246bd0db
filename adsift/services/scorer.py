"""Keyword relevance scoring.

Scores are bounded to [0, 1]. Each keyword contributes at most 1.0:
presence 0.5, whole-word match +0.3, title match +0.2, frequency
+min(count * 0.1, 0.5). The total is averaged over every keyword,
the whole-query phrase included.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from adsift.models.schemas import ContentRecord

logger = structlog.get_logger(__name__)

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
        "with", "by", "is", "are", "was", "were", "be", "been", "being", "have",
        "has", "had", "do", "does", "did", "will", "would", "could", "should",
        "may", "might", "can", "shall", "about", "into", "through", "during",
        "before", "after", "above", "below", "between", "among",
    }
)  # fmt: skip

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_MIN_KEYWORD_LENGTH = 3
# The cleaned query is only added as a phrase when it says more than a token
_MIN_PHRASE_LENGTH = 4

BASE_SCORE = 0.5
WHOLE_WORD_BONUS = 0.3
TITLE_BONUS = 0.2
FREQUENCY_STEP = 0.1
FREQUENCY_CAP = 0.5


@dataclass(frozen=True)
class KeywordSet:
    words: tuple[str, ...] = ()
    phrase: str | None = None

    @property
    def keywords(self) -> tuple[str, ...]:
        if self.phrase and self.phrase not in self.words:
            return (*self.words, self.phrase)
        return self.words

    def __len__(self) -> int:
        return len(self.keywords)

    def __bool__(self) -> bool:
        return bool(self.keywords)


def prepare_keywords(text: str) -> KeywordSet:
    """Lowercase, strip punctuation, drop stop-words and short tokens, dedupe.

    The whole cleaned query is kept as one extra phrase keyword.
    """
    cleaned = " ".join(_PUNCTUATION_RE.sub(" ", text.lower()).split())
    words: list[str] = []
    for token in cleaned.split():
        if len(token) < _MIN_KEYWORD_LENGTH or token in STOP_WORDS or token in words:
            continue
        words.append(token)
    phrase = cleaned if len(cleaned) >= _MIN_PHRASE_LENGTH else None
    return KeywordSet(words=tuple(words), phrase=phrase)


def _keyword_score(keyword: str, searchable: str, title: str) -> float:
    if keyword not in searchable:
        return 0.0
    score = BASE_SCORE
    if re.search(rf"\b{re.escape(keyword)}\b", searchable):
        score += WHOLE_WORD_BONUS
    if keyword in title:
        score += TITLE_BONUS
    score += min(searchable.count(keyword) * FREQUENCY_STEP, FREQUENCY_CAP)
    return min(score, 1.0)


def score(record: ContentRecord, keywords: KeywordSet) -> float:
    """Relevance of ``record`` to ``keywords`` in [0, 1].

    An empty keyword set scores every record 1.0 so that a query made only
    of stop-words does not discard everything.
    """
    terms = keywords.keywords
    if not terms:
        return 1.0
    title = (record.title or "").lower()
    searchable = " ".join([record.content, record.title or "", record.owner_name]).lower()
    if not searchable.strip():
        return 0.0
    total = sum(_keyword_score(term, searchable, title) for term in terms)
    return max(0.0, min(total / len(terms), 1.0))


class RelevanceScorer:
    def __init__(self, min_relevance: float = 0.3):
        self.min_relevance = min_relevance

    def filter(self, records: list[ContentRecord], keywords: KeywordSet) -> list[ContentRecord]:
        """Attach a score to each record and drop those below the threshold.

        Input order is preserved.
        """
        kept: list[ContentRecord] = []
        for record in records:
            record.relevance_score = score(record, keywords)
            if record.relevance_score >= self.min_relevance:
                kept.append(record)

        logger.info(
            "scorer.filter.complete",
            keyword_count=len(keywords),
            input_count=len(records),
            kept_count=len(kept),
            min_relevance=self.min_relevance,
        )
        return kept
