"""Unit tests for payload variant parsers and Retry-After parsing."""

from datetime import UTC, datetime, timedelta
from email.utils import format_datetime

import pytest

from adsift.core.errors import MalformedResponseError
from adsift.core.http import parse_retry_after
from adsift.tools.payloads import (
    RawVariant,
    content_hash_id,
    parse_google_search,
    parse_meta_ads,
    parse_unknown,
    parse_x_search,
)


@pytest.mark.parametrize(
    "value,expected",
    [("2", 2.0), ("0.5", 0.5), ("-3", 0.0), (None, None), ("", None), ("soon", None), ("inf", None)],
)
def test_parse_retry_after_seconds(value, expected) -> None:
    """Delta-seconds are parsed and clamped; junk is ignored."""
    assert parse_retry_after(value) == expected


def test_parse_retry_after_http_date() -> None:
    """An HTTP-date is converted to seconds from now."""
    when = datetime.now(UTC) + timedelta(seconds=30)

    seconds = parse_retry_after(format_datetime(when, usegmt=True))

    assert seconds is not None
    assert 25 <= seconds <= 30


def test_meta_ads_flattens_groups_and_falls_back_to_adid() -> None:
    """Nested ad groups become one flat page; adid backs up adArchiveID."""
    page = parse_meta_ads(
        {
            "results": [[{"adArchiveID": "1"}, {"adid": "2"}], {"adArchiveID": "3"}],
            "continuation_token": "next",
            "is_result_complete": False,
        }
    )

    assert [item.item_id for item in page.items] == ["1", "2", "3"]
    assert page.next_cursor == "next"
    assert page.complete is False


def test_meta_ads_without_token_is_complete() -> None:
    """No continuation token means there is nothing more to fetch."""
    page = parse_meta_ads({"results": []})

    assert page.items == []
    assert page.complete is True


def test_google_empty_page_has_no_items_key() -> None:
    """Google omits 'items' on an empty page; that is not malformed."""
    assert parse_google_search({"searchInformation": {"totalResults": "0"}}).items == []


def test_google_error_envelope_is_malformed() -> None:
    """An error object in a 200 body is rejected."""
    with pytest.raises(MalformedResponseError):
        parse_google_search({"error": {"code": 400, "message": "Invalid value"}})


def test_x_search_requires_timeline_list() -> None:
    """A missing timeline is a contract violation."""
    with pytest.raises(MalformedResponseError):
        parse_x_search({"status": "ok"})


def test_unknown_envelope_is_best_effort() -> None:
    """Common envelope keys are searched; id-less rows get a content hash."""
    row = {"title": "no id here"}
    page = parse_unknown("other", {"data": {"items": [{"id": 7}, row, "skip-me"]}})

    assert [item.variant for item in page.items] == [RawVariant.UNKNOWN, RawVariant.UNKNOWN]
    assert page.items[0].item_id == "7"
    assert page.items[1].item_id == content_hash_id(row)
    assert page.items[1].item_id.startswith("sha256:")


def test_unknown_without_collection_is_malformed() -> None:
    """Nothing list-like anywhere is rejected."""
    with pytest.raises(MalformedResponseError):
        parse_unknown("other", {"message": "hello"})


def test_content_hash_is_stable_across_key_order() -> None:
    """The same content always hashes to the same identifier."""
    assert content_hash_id({"a": 1, "b": 2}) == content_hash_id({"b": 2, "a": 1})
