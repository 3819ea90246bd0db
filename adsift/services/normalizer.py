"""Maps RawItems onto ContentRecords.

This is the only module that knows upstream item shapes. Each variant has
its own extractor; missing fields are simply absent in the output.
"""

from __future__ import annotations

import html
import re
from collections.abc import Iterable
from datetime import UTC, datetime

import structlog

from adsift.models.schemas import ContentRecord, MediaAsset, MediaKind, MediaRef, SearchSource
from adsift.tools.payloads import RawItem, RawVariant

logger = structlog.get_logger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")
_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"'>]+)["']""", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_CHARS_RE = re.compile(r"""[^\w\s.,!?;:()"']""")
_HASHTAG_RE = re.compile(r"#\w+")
_MENTION_RE = re.compile(r"@\w+")
_X_DATE_FORMAT = "%a %b %d %H:%M:%S %z %Y"

ELLIPSIS = "..."


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def strip_tags(markup: str) -> str:
    """Drop HTML tags and decode entities."""
    return html.unescape(_TAG_RE.sub(" ", markup))


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def sanitize_text(text: str, max_length: int = 500) -> str:
    """Collapse whitespace, drop characters outside the allow-list, and
    truncate on a word boundary with a trailing ellipsis.

    When the first word alone is longer than ``max_length`` nothing can be
    kept without cutting it, so only the ellipsis remains.
    """
    if not text:
        return ""
    sanitized = collapse_whitespace(_DISALLOWED_CHARS_RE.sub("", collapse_whitespace(text)))
    if len(sanitized) <= max_length:
        return sanitized
    # The character at max_length tells us whether the cut lands between words
    if sanitized[max_length] == " ":
        return sanitized[:max_length] + ELLIPSIS
    truncated = sanitized[:max_length]
    boundary = truncated.rfind(" ")
    if boundary <= 0:
        return ELLIPSIS
    return truncated[:boundary] + ELLIPSIS


def _str(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _dicts(value: object) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def _dig(payload: object, path: tuple[str, ...]) -> object | None:
    """Safely fetch nested dict path."""
    cur = payload
    for part in path:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
    return cur


def _parse_timestamp(value: object) -> datetime | None:
    """Epoch seconds, ISO-8601, or X's ``Wed Oct 10 20:19:24 +0000 2018``."""
    if isinstance(value, bool) or value in (None, ""):
        return None
    if isinstance(value, int | float):
        try:
            return datetime.fromtimestamp(float(value), tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if raw.isdigit():
        return _parse_timestamp(int(raw))
    for parse in (datetime.fromisoformat, lambda s: datetime.strptime(s, _X_DATE_FORMAT)):
        try:
            parsed = parse(raw)
        except ValueError:
            continue
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def _as_int(value: object) -> int:
    """Convert mixed metric values (int/float/str) into int safely."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        try:
            return int(float(cleaned)) if cleaned else 0
        except ValueError:
            return 0
    return 0


# ---------------------------------------------------------------------------
# Media helpers
# ---------------------------------------------------------------------------


def _asset(type_: str, pairs: Iterable[tuple[MediaKind, object]]) -> MediaAsset | None:
    refs = [MediaRef(kind=kind, url=url.strip()) for kind, url in pairs if _str(url)]
    return MediaAsset(type=type_, refs=refs) if refs else None


def dedupe_media(assets: Iterable[MediaAsset | None]) -> list[MediaAsset]:
    """Keep the first asset for each distinct set of URLs, in order."""
    seen: set[str] = set()
    unique: list[MediaAsset] = []
    for asset in assets:
        if asset is None:
            continue
        signature = asset.url_signature()
        if signature and signature not in seen:
            seen.add(signature)
            unique.append(asset)
    return unique


def _img_tags(markup: str) -> list[MediaAsset | None]:
    return [_asset("image", [(MediaKind.IMAGE_ORIGINAL, src)]) for src in _IMG_SRC_RE.findall(markup)]


# ---------------------------------------------------------------------------
# Meta Ad Library
# ---------------------------------------------------------------------------


def _meta_body_markup(snapshot: dict) -> str:
    body = snapshot.get("body")
    if isinstance(body, str):
        return body
    markup = _dig(body, ("markup", "__html"))
    if isinstance(markup, str):
        return markup
    return _str(_dig(body, ("text",)))


def _meta_signature_parts(ad: dict) -> list[str]:
    snapshot = ad.get("snapshot") if isinstance(ad.get("snapshot"), dict) else {}
    parts = [_str(snapshot.get("title")), strip_tags(_meta_body_markup(snapshot)).strip()]
    parts.append(_str(snapshot.get("link_description")))
    for card in _dicts(snapshot.get("cards")):
        parts.extend([_str(card.get("title")), _str(card.get("body"))])
    return parts


def _normalize_meta_ad(item: RawItem, max_length: int) -> ContentRecord:
    ad = item.payload
    snapshot = ad.get("snapshot") if isinstance(ad.get("snapshot"), dict) else {}
    cards = _dicts(snapshot.get("cards"))
    markup = _meta_body_markup(snapshot)

    parts: list[str] = []
    for card in cards:
        parts.extend([_str(card.get("body")), _str(card.get("title"))])
    parts.append(strip_tags(markup))
    parts.extend([_str(snapshot.get("title")), _str(snapshot.get("link_description"))])

    images: list[MediaAsset | None] = []
    raw_images = snapshot.get("images")
    for image in raw_images if isinstance(raw_images, list) else []:
        if isinstance(image, dict):
            images.append(
                _asset(
                    "image",
                    [
                        (MediaKind.IMAGE_ORIGINAL, image.get("original_image_url")),
                        (MediaKind.IMAGE_RESIZED, image.get("resized_image_url")),
                        (MediaKind.IMAGE_WATERMARKED, image.get("watermarked_resized_image_url")),
                    ],
                )
            )
        elif isinstance(image, str):
            images.append(_asset("image", [(MediaKind.IMAGE_ORIGINAL, image)]))

    for card in cards:
        images.append(
            _asset("video_preview", [(MediaKind.VIDEO_PREVIEW, card.get("video_preview_image_url"))])
        )
        images.append(
            _asset(
                "image",
                [
                    (MediaKind.IMAGE_ORIGINAL, card.get("image_url") or card.get("original_image_url")),
                    (MediaKind.IMAGE_RESIZED, card.get("resized_image_url")),
                ],
            )
        )

    videos: list[MediaAsset | None] = []
    for video in _dicts(snapshot.get("videos")):
        preview = video.get("video_preview_image_url")
        videos.append(
            _asset(
                "video",
                [
                    (MediaKind.VIDEO_HD, video.get("video_hd_url")),
                    (MediaKind.VIDEO_SD, video.get("video_sd_url")),
                    (MediaKind.VIDEO_WATERMARKED_HD, video.get("watermarked_video_hd_url")),
                    (MediaKind.VIDEO_WATERMARKED_SD, video.get("watermarked_video_sd_url")),
                    (MediaKind.VIDEO_PREVIEW, preview),
                ],
            )
        )
        # Surface the preview frame alongside the still images
        images.append(_asset("video_preview", [(MediaKind.VIDEO_PREVIEW, preview)]))
    # A preview with no playable rendition is not a video
    videos = [v for v in videos if v and any(r.kind != MediaKind.VIDEO_PREVIEW for r in v.refs)]

    images.extend(_img_tags(markup))

    link_url = next((_str(c.get("link_url")) for c in cards if _str(c.get("link_url"))), None)
    created_at = _parse_timestamp(snapshot.get("creation_time")) or _parse_timestamp(ad.get("startDate"))

    return ContentRecord(
        id=item.item_id,
        source=SearchSource.META_ADS,
        owner_id=str(ad["pageID"]) if ad.get("pageID") else None,
        owner_name=_str(ad.get("pageName")) or _str(snapshot.get("page_name")),
        content=sanitize_text(" ".join(parts), max_length),
        title=_str(snapshot.get("title")) or None,
        images=dedupe_media(images),
        videos=dedupe_media(videos),
        link_url=link_url or _str(snapshot.get("link_url")) or None,
        active=bool(ad.get("isActive", False)),
        created_at=created_at,
    )


# ---------------------------------------------------------------------------
# Google web / image results
# ---------------------------------------------------------------------------


def _google_description(result: dict) -> str:
    for tags in _dicts(_dig(result, ("pagemap", "metatags"))):
        description = _str(tags.get("og:description")) or _str(tags.get("description"))
        if description:
            return description
    return ""


def _google_signature_parts(result: dict) -> list[str]:
    return [_str(result.get("title")), _str(result.get("snippet")), _google_description(result)]


def _normalize_web_result(item: RawItem, max_length: int) -> ContentRecord:
    result = item.payload
    pagemap = result.get("pagemap") if isinstance(result.get("pagemap"), dict) else {}
    images: list[MediaAsset | None] = [
        _asset("image", [(MediaKind.IMAGE_ORIGINAL, image.get("src"))])
        for image in _dicts(pagemap.get("cse_image"))
    ]
    images.extend(
        _asset("image", [(MediaKind.IMAGE_RESIZED, thumb.get("src"))])
        for thumb in _dicts(pagemap.get("cse_thumbnail"))
    )
    published = None
    for tags in _dicts(pagemap.get("metatags")):
        published = _parse_timestamp(tags.get("article:published_time"))
        if published:
            break

    return ContentRecord(
        id=item.item_id,
        source=SearchSource.WEB,
        owner_name=_str(result.get("displayLink")),
        content=sanitize_text(f"{_str(result.get('snippet'))} {_google_description(result)}", max_length),
        title=_str(result.get("title")) or None,
        images=dedupe_media(images),
        link_url=_str(result.get("link")) or None,
        created_at=published,
    )


def _normalize_image_result(item: RawItem, max_length: int) -> ContentRecord:
    result = item.payload
    image = result.get("image") if isinstance(result.get("image"), dict) else {}
    asset = _asset(
        "image",
        [
            (MediaKind.IMAGE_ORIGINAL, result.get("link")),
            (MediaKind.IMAGE_RESIZED, image.get("thumbnailLink")),
        ],
    )
    return ContentRecord(
        id=item.item_id,
        source=SearchSource.IMAGE,
        owner_name=_str(result.get("displayLink")),
        content=sanitize_text(_str(result.get("snippet")) or _str(result.get("title")), max_length),
        title=_str(result.get("title")) or None,
        images=dedupe_media([asset]),
        link_url=_str(image.get("contextLink")) or _str(result.get("link")) or None,
    )


# ---------------------------------------------------------------------------
# X posts
# ---------------------------------------------------------------------------


def _tag_text(value: object) -> str:
    # Entity lists come either as plain strings or as {"text": ...} objects
    if isinstance(value, dict):
        return _str(value.get("text")) or _str(value.get("screen_name"))
    return _str(value)


def _x_text(post: dict) -> str:
    return _str(post.get("text")) or _str(post.get("full_text"))


def _x_media(post: dict) -> tuple[list[MediaAsset | None], list[MediaAsset | None]]:
    media = post.get("media") if isinstance(post.get("media"), dict) else {}
    images: list[MediaAsset | None] = [
        _asset("image", [(MediaKind.IMAGE_ORIGINAL, photo.get("media_url_https"))])
        for photo in _dicts(media.get("photo"))
    ]
    videos: list[MediaAsset | None] = []
    for video in _dicts(media.get("video")):
        preview = video.get("media_url_https")
        variants = sorted(
            (v for v in _dicts(video.get("variants")) if _str(v.get("url"))),
            key=lambda v: _as_int(v.get("bitrate")),
            reverse=True,
        )
        pairs: list[tuple[MediaKind, object]] = []
        if variants:
            pairs.append((MediaKind.VIDEO_HD, variants[0].get("url")))
        if len(variants) > 1:
            pairs.append((MediaKind.VIDEO_SD, variants[-1].get("url")))
        if pairs:
            videos.append(_asset("video", [*pairs, (MediaKind.VIDEO_PREVIEW, preview)]))
        images.append(_asset("video_preview", [(MediaKind.VIDEO_PREVIEW, preview)]))
    return images, videos


def _normalize_x_post(item: RawItem, max_length: int) -> ContentRecord:
    post = item.payload
    text = _x_text(post)
    user = post.get("user_info") if isinstance(post.get("user_info"), dict) else {}
    screen_name = _str(post.get("screen_name")) or _str(user.get("screen_name"))
    hashtags = post.get("hashtags")
    if not isinstance(hashtags, list) or not hashtags:
        hashtags = _HASHTAG_RE.findall(text)
    mentions = post.get("user_mentions")
    if not isinstance(mentions, list) or not mentions:
        mentions = _MENTION_RE.findall(text)
    images, videos = _x_media(post)

    return ContentRecord(
        id=item.item_id,
        source=SearchSource.X,
        owner_name=screen_name or "anonymous",
        content=sanitize_text(text, max_length),
        images=dedupe_media(images),
        videos=dedupe_media(videos),
        link_url=f"https://x.com/{screen_name}/status/{item.item_id}" if screen_name else None,
        created_at=_parse_timestamp(post.get("created_at")),
        engagement=_as_int(post.get("retweets"))
        + _as_int(post.get("favorites"))
        + _as_int(post.get("replies")),
        hashtags=[tag.lower() for tag in map(_tag_text, hashtags) if tag],
        mentions=[m.lower() for m in map(_tag_text, mentions) if m],
    )


# ---------------------------------------------------------------------------
# Unknown envelopes (best effort)
# ---------------------------------------------------------------------------

_GENERIC_TEXT_KEYS = ("text", "body", "content", "description", "snippet")


def _generic_signature_parts(row: dict) -> list[str]:
    return [_str(row.get("title")) or _str(row.get("name"))] + [
        _str(row.get(key)) for key in _GENERIC_TEXT_KEYS
    ]


def _normalize_unknown(item: RawItem, max_length: int, source: SearchSource) -> ContentRecord:
    row = item.payload
    text = " ".join(_str(row.get(key)) for key in _GENERIC_TEXT_KEYS)
    image = _asset(
        "image",
        [
            (MediaKind.IMAGE_ORIGINAL, row.get("image") or row.get("image_url")),
            (MediaKind.IMAGE_RESIZED, row.get("thumbnail")),
        ],
    )
    return ContentRecord(
        id=item.item_id,
        source=source,
        owner_name=_str(row.get("author")) or _str(row.get("source")),
        content=sanitize_text(strip_tags(text), max_length),
        title=_str(row.get("title")) or _str(row.get("name")) or None,
        images=dedupe_media([image]),
        link_url=_str(row.get("url")) or _str(row.get("link")) or None,
        created_at=_parse_timestamp(row.get("created_at") or row.get("published_at")),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def signature_parts(item: RawItem) -> list[str]:
    """Text fields used for near-duplicate detection, in a fixed order:
    title, body (markup stripped), description, then nested card titles/bodies."""
    if item.variant is RawVariant.META_AD:
        return _meta_signature_parts(item.payload)
    if item.variant in (RawVariant.WEB_RESULT, RawVariant.IMAGE_RESULT):
        return _google_signature_parts(item.payload)
    if item.variant is RawVariant.X_POST:
        return [_x_text(item.payload)]
    return _generic_signature_parts(item.payload)


class ContentNormalizer:
    def __init__(self, max_length: int = 500):
        self.max_length = max_length

    def normalize(self, item: RawItem, source: SearchSource | None = None) -> ContentRecord:
        if item.variant is RawVariant.META_AD:
            return _normalize_meta_ad(item, self.max_length)
        if item.variant is RawVariant.WEB_RESULT:
            return _normalize_web_result(item, self.max_length)
        if item.variant is RawVariant.IMAGE_RESULT:
            return _normalize_image_result(item, self.max_length)
        if item.variant is RawVariant.X_POST:
            return _normalize_x_post(item, self.max_length)
        return _normalize_unknown(item, self.max_length, source or SearchSource.WEB)

    def normalize_all(
        self, items: Iterable[RawItem], source: SearchSource | None = None
    ) -> list[ContentRecord]:
        records = [self.normalize(item, source) for item in items]
        logger.debug("normalizer.complete", record_count=len(records))
        return records
