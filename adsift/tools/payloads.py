"""Upstream payload variants.

Each upstream returns its own envelope. ``RawItem`` is the tagged union the
rest of the pipeline receives: a variant tag, a stable identifier and the
untouched item dict. Only the normalizer looks inside ``payload``.

One parser per known envelope; ``parse_unknown`` is the documented
best-effort fallback for anything else.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from enum import StrEnum

from adsift.core.errors import MalformedResponseError


class RawVariant(StrEnum):
    META_AD = "meta_ad"
    WEB_RESULT = "web_result"
    IMAGE_RESULT = "image_result"
    X_POST = "x_post"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RawItem:
    variant: RawVariant
    item_id: str
    payload: dict


@dataclass(frozen=True)
class Page:
    """One parsed upstream page: its items and the cursor for the next one."""

    items: list[RawItem]
    next_cursor: str | None = None
    complete: bool = True


def content_hash_id(item: dict) -> str:
    """Stable identifier for items that carry none of their own."""
    raw = json.dumps(item, sort_keys=True, default=str)
    return "sha256:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:24]


def _first_id(item: dict, keys: tuple[str, ...]) -> str:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return str(value)
    return content_hash_id(item)


def _require_dict(upstream: str, payload: object) -> dict:
    if not isinstance(payload, dict):
        raise MalformedResponseError(upstream, f"expected a JSON object, got {type(payload).__name__}")
    return payload


def parse_meta_ads(payload: object) -> Page:
    """Meta Ad Library: ``results`` is a list of ad groups, each a list of ads."""
    data = _require_dict("meta_ads", payload)
    groups = data.get("results")
    if not isinstance(groups, list):
        raise MalformedResponseError("meta_ads", "'results' must be a list")

    items: list[RawItem] = []
    for group in groups:
        # Tolerate both the grouped shape and a flat list of ads
        ads = group if isinstance(group, list) else [group]
        for ad in ads:
            if isinstance(ad, dict):
                items.append(
                    RawItem(RawVariant.META_AD, _first_id(ad, ("adArchiveID", "adid")), ad)
                )

    token = data.get("continuation_token") or None
    complete = bool(data.get("is_result_complete", token is None))
    return Page(items=items, next_cursor=token, complete=complete)


def parse_google_search(payload: object, *, image: bool = False) -> Page:
    """Google Programmable Search: ``items`` is absent when a page is empty."""
    data = _require_dict("google_search", payload)
    if "error" in data:
        raise MalformedResponseError("google_search", str(data["error"])[:200])
    raw_items = data.get("items", [])
    if not isinstance(raw_items, list):
        raise MalformedResponseError("google_search", "'items' must be a list")

    variant = RawVariant.IMAGE_RESULT if image else RawVariant.WEB_RESULT
    items = [
        RawItem(variant, _first_id(item, ("link", "cacheId")), item)
        for item in raw_items
        if isinstance(item, dict)
    ]
    return Page(items=items)


def parse_x_search(payload: object) -> Page:
    """X search: ``timeline`` holds the posts, ``next_cursor`` pages forward."""
    data = _require_dict("x_search", payload)
    timeline = data.get("timeline")
    if not isinstance(timeline, list):
        raise MalformedResponseError("x_search", "'timeline' must be a list")

    items = [
        RawItem(RawVariant.X_POST, _first_id(post, ("tweet_id", "id", "rest_id")), post)
        for post in timeline
        if isinstance(post, dict) and (post.get("text") or post.get("full_text"))
    ]
    cursor = data.get("next_cursor") or None
    return Page(items=items, next_cursor=cursor, complete=cursor is None)


def parse_unknown(upstream: str, payload: object) -> Page:
    """Best-effort extraction from common API envelope shapes."""
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, dict):
        rows = None
        for key in ("data", "items", "results", "posts"):
            value = payload.get(key)
            if isinstance(value, dict):
                value = value.get("data") or value.get("items")
            if isinstance(value, list):
                rows = value
                break
        if rows is None:
            raise MalformedResponseError(upstream, "no item collection found")
    else:
        raise MalformedResponseError(upstream, f"unexpected payload type {type(payload).__name__}")

    items = [
        RawItem(RawVariant.UNKNOWN, _first_id(row, ("id", "item_id", "url", "link")), row)
        for row in rows
        if isinstance(row, dict)
    ]
    return Page(items=items)
