"""Unit tests for keyword preparation and relevance scoring."""

import pytest

from adsift.models.schemas import ContentRecord, SearchSource
from adsift.services.scorer import KeywordSet, RelevanceScorer, prepare_keywords, score


def _record(content: str = "", title: str | None = None, owner: str = "") -> ContentRecord:
    return ContentRecord(
        id=content[:10] or "empty",
        source=SearchSource.META_ADS,
        content=content,
        title=title,
        owner_name=owner,
    )


def test_prepare_keywords_drops_stop_words_and_punctuation() -> None:
    """Stop-words go, punctuation splits, the cleaned query is kept as a phrase."""
    keywords = prepare_keywords("The best Wireless earbuds, for running!")

    assert keywords.words == ("best", "wireless", "earbuds", "running")
    assert keywords.phrase == "the best wireless earbuds for running"
    assert len(keywords) == 5


def test_prepare_keywords_drops_short_tokens_but_keeps_phrase() -> None:
    """Tokens under three characters are dropped; the phrase is exempt."""
    keywords = prepare_keywords("tv ad spend")

    assert keywords.words == ("spend",)
    assert keywords.keywords == ("spend", "tv ad spend")


def test_prepare_keywords_deduplicates() -> None:
    """Repeated words appear once; a single-word query has no separate phrase."""
    assert prepare_keywords("Shoes shoes SHOES").keywords == ("shoes", "shoes shoes shoes")
    assert prepare_keywords("shoes").keywords == ("shoes",)


def test_empty_keyword_set_is_fail_open() -> None:
    """No usable keywords means every record is maximally relevant."""
    keywords = prepare_keywords("an")

    assert not keywords
    assert score(_record("anything at all"), keywords) == 1.0
    assert score(_record(""), KeywordSet()) == 1.0


def test_whole_word_match_beats_substring() -> None:
    """'earbuds' as a word scores higher than inside 'earbudsXL'."""
    keywords = prepare_keywords("wireless earbuds")
    whole = _record("Wireless earbuds with deep bass")
    substring = _record("New earbudsXL model")

    whole_score = score(whole, keywords)
    substring_score = score(substring, keywords)

    assert whole_score == pytest.approx(0.9)
    assert substring_score == pytest.approx(0.2)
    assert whole_score > substring_score


def test_title_match_adds_bonus() -> None:
    """A keyword in the title scores higher than the same text without one."""
    keywords = prepare_keywords("earbuds")

    titled = score(_record("earbuds", title="Earbuds"), keywords)
    untitled = score(_record("earbuds"), keywords)

    assert titled == 1.0
    assert untitled == pytest.approx(0.9)


def test_owner_name_is_searchable() -> None:
    """The page or account name counts toward relevance."""
    keywords = prepare_keywords("acme")

    assert score(_record("great sound", owner="Acme Audio"), keywords) > 0


def test_empty_record_scores_zero() -> None:
    """Nothing to search means no relevance."""
    assert score(_record(""), prepare_keywords("wireless earbuds")) == 0.0


@pytest.mark.parametrize(
    "query,content,title",
    [
        ("earbuds", "earbuds " * 50, "earbuds earbuds"),
        ("wireless earbuds bass", "wireless", None),
        ("running shoes", "nothing related", "nope"),
        ("a b c", "a b c", "a b c"),
        ("earbuds earbuds earbuds", "earbuds", "earbuds"),
    ],
)
def test_score_is_bounded(query: str, content: str, title: str | None) -> None:
    """Scores always land in [0, 1]."""
    value = score(_record(content, title=title), prepare_keywords(query))

    assert 0.0 <= value <= 1.0


def test_relevance_scorer_filters_below_threshold() -> None:
    """Records under the threshold are dropped; every record gets a score."""
    keywords = prepare_keywords("wireless earbuds")
    relevant = _record("Wireless earbuds with deep bass")
    weak = _record("New earbudsXL model")

    kept = RelevanceScorer(min_relevance=0.3).filter([weak, relevant], keywords)

    assert kept == [relevant]
    assert relevant.relevance_score == pytest.approx(0.9)
    assert weak.relevance_score == pytest.approx(0.2)


def test_relevance_threshold_is_inclusive() -> None:
    """A record scoring exactly the threshold is kept."""
    keywords = prepare_keywords("earbuds")
    record = _record("earbuds")
    threshold = score(record, keywords)

    assert RelevanceScorer(min_relevance=threshold).filter([record], keywords) == [record]
