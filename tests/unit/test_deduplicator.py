"""Unit tests for exact and fuzzy raw item deduplication."""

from adsift.services.deduplicator import Deduplicator, build_signature, jaccard_similarity
from adsift.tools.payloads import RawItem, RawVariant


def _ad(item_id: str, title: str = "", body: str = "", **snapshot) -> RawItem:
    payload = {
        "adArchiveID": item_id,
        "snapshot": {"title": title, "body": {"markup": {"__html": body}}, **snapshot},
    }
    return RawItem(RawVariant.META_AD, item_id, payload)


def _words(n: int) -> str:
    return " ".join(f"w{i:02d}" for i in range(1, n + 1))


def test_jaccard_similarity_edge_cases() -> None:
    """Identical strings score 1, empty strings 0, otherwise |A∩B| / |A∪B|."""
    assert jaccard_similarity("same text", "same text") == 1.0
    assert jaccard_similarity("", "something") == 0.0
    assert jaccard_similarity("something", "   ") == 0.0
    assert jaccard_similarity("a b", "b c") == 1 / 3


def test_signature_uses_fixed_field_order_and_strips_markup() -> None:
    """Signature = title, stripped body, description, then card title/body, lowercased."""
    item = _ad(
        "1",
        title="Big Sale",
        body="<p>Hello <b>World</b></p>",
        link_description="Shop   today",
        cards=[{"title": "Card A", "body": "Card body"}],
    )

    assert build_signature(item) == "big sale hello world shop today card a card body"


def test_signature_is_truncated_to_prefix_length() -> None:
    """Long texts are cut to the configured prefix length."""
    item = _ad("1", title="word " * 100)

    assert len(build_signature(item, length=150)) == 150


def test_exact_pass_keeps_first_occurrence() -> None:
    """Items sharing an identifier collapse to the first one seen."""
    first = _ad("a", title="First version of this advertisement text")
    second = _ad("b", title="A completely different product announcement")
    repeat = _ad("a", title="Second copy with a different body entirely")

    result = Deduplicator().deduplicate([first, second, repeat])

    assert result == [first, second]


def test_fuzzy_pass_drops_near_duplicate() -> None:
    """A 19-of-21 word overlap is above 0.85 and the later item is dropped."""
    original = _ad("a", title=_words(20))
    near = _ad("b", title=_words(19) + " extra")

    result = Deduplicator(threshold=0.85).deduplicate([original, near])

    assert result == [original]


def test_similarity_exactly_at_threshold_is_duplicate() -> None:
    """17/20 shared words is exactly 0.85; the boundary counts as a duplicate."""
    original = _ad("a", title=_words(20))
    boundary = _ad("b", title=_words(17))
    assert jaccard_similarity(build_signature(original), build_signature(boundary)) == 0.85

    result = Deduplicator(threshold=0.85).deduplicate([original, boundary])

    assert result == [original]


def test_similarity_one_token_below_threshold_keeps_both() -> None:
    """16/20 shared words (0.8) stays below 0.85, so both items survive."""
    original = _ad("a", title=_words(20))
    below = _ad("b", title=_words(16))

    result = Deduplicator(threshold=0.85).deduplicate([original, below])

    assert result == [original, below]


def test_short_signatures_are_kept_unconditionally() -> None:
    """Signatures too short to compare never trigger a fuzzy removal."""
    items = [_ad("a", title="Buy now"), _ad("b", title="Buy now"), _ad("c", title="Buy now")]

    result = Deduplicator(min_signature_length=21).deduplicate(items)

    assert result == items


def test_candidate_is_compared_against_every_accepted_signature() -> None:
    """A late item matching an early (not the latest) accepted item is dropped."""
    first = _ad("a", title=_words(20))
    unrelated = _ad("b", title="fresh summer collection with linen shirts and sandals")
    late_copy = _ad("c", title=_words(20))

    result = Deduplicator().deduplicate([first, unrelated, late_copy])

    assert result == [first, unrelated]


def test_dedup_is_idempotent() -> None:
    """Running the deduplicator on its own output removes nothing further."""
    dedup = Deduplicator()
    items = [
        _ad("a", title=_words(20)),
        _ad("a", title="duplicate id"),
        _ad("b", title=_words(19) + " extra"),
        _ad("c", title="a different advert about running shoes and socks"),
        _ad("d", title="Short"),
        _ad("e", title="Short"),
    ]

    once = dedup.deduplicate(items)
    twice = dedup.deduplicate(once)

    assert twice == once
    assert [item.item_id for item in once] == ["a", "c", "d", "e"]


def test_empty_input() -> None:
    """No items in, no items out."""
    assert Deduplicator().deduplicate([]) == []
