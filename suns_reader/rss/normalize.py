from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Iterable

from dateutil import parser as date_parser

from suns_reader.storage.types import ArticleSummary, RawItem
from suns_reader.utils import get_domain, now_utc, sha256_hex


logger = logging.getLogger(__name__)


# "Suns beat Lakers - Arizona Republic" / "... — ESPN"
_PUBLISHER_SUFFIX_RE = re.compile(r"\s[-–—]\s([^-–—]+)$")

_YEAR_RE = re.compile(r"\d{4}")


def article_id(key: str) -> str:
    return sha256_hex(key)[:16]


def to_iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


def parse_pub_date(text: str | None, now: datetime | None = None) -> datetime | None:
    """Parse a feed date into an aware UTC datetime, or ``None`` if unusable.

    Text without a four digit year is rejected so fragments never turn into
    dates. Missing fields are filled from ``now`` rather than the wall clock.
    Naive results are taken as UTC.
    """
    if not text or not _YEAR_RE.search(text):
        return None
    default = (now or now_utc()).astimezone(timezone.utc).replace(
        hour=0, minute=0, second=0, microsecond=0, tzinfo=None
    )
    try:
        dt = date_parser.parse(text, default=default)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        # Dates at the edge of the datetime range overflow here.
        return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        logger.debug("unparsable pubDate=%r", text)
        return None


def publisher_from_title(title: str) -> str | None:
    m = _PUBLISHER_SUFFIX_RE.search(title)
    if m is None:
        return None
    return m.group(1).strip() or None


def normalize_item(item: RawItem, now: datetime) -> ArticleSummary | None:
    if not item.link or not item.title:
        return None

    source_domain = get_domain(item.source_url) if item.source_url else get_domain(item.link)
    source_name = item.source or publisher_from_title(item.title) or source_domain
    published = parse_pub_date(item.pub_date, now) or now

    return ArticleSummary(
        id=article_id(item.guid or item.link),
        title=item.title,
        url=item.link,
        published_at=to_iso(published),
        source_name=source_name,
        source_domain=source_domain,
    )


def normalize_items(items: Iterable[RawItem], now: datetime | None = None) -> list[ArticleSummary]:
    now = now or now_utc()
    out: list[ArticleSummary] = []
    for item in items:
        summary = normalize_item(item, now)
        if summary is not None:
            out.append(summary)
    return out
