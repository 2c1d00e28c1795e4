from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import httpx

from suns_reader.crawler.errors import FetchError
from suns_reader.metrics.metrics import Metrics
from suns_reader.rss.normalize import normalize_items, parse_iso
from suns_reader.rss.poller import FeedFetcher
from suns_reader.storage.types import ArticleSummary
from suns_reader.utils import now_utc


logger = logging.getLogger(__name__)


DEFAULT_WINDOW_HOURS = 24
UPSTREAM_FAILURE_STATUS = 502

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class SearchResult:
    items: list[ArticleSummary]
    error: str | None = None
    status_code: int = 200

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error, "items": []}
        return {"items": [a.to_dict() for a in self.items]}


def dedupe_articles(articles: Iterable[ArticleSummary]) -> list[ArticleSummary]:
    seen: set[str] = set()
    out: list[ArticleSummary] = []
    for article in articles:
        if article.id in seen:
            continue
        seen.add(article.id)
        out.append(article)
    return out


def is_recent(article: ArticleSummary, now: datetime, window_hours: int = DEFAULT_WINDOW_HOURS) -> bool:
    published = parse_iso(article.published_at)
    if published is None:
        return True
    return now - published <= timedelta(hours=window_hours)


def sort_newest_first(articles: Iterable[ArticleSummary]) -> list[ArticleSummary]:
    # sorted() is stable with reverse=True, so equal timestamps keep feed order.
    return sorted(articles, key=lambda a: parse_iso(a.published_at) or _OLDEST, reverse=True)


async def run_search(
    query: str,
    fetcher: FeedFetcher | None = None,
    now: datetime | None = None,
    window_hours: int = DEFAULT_WINDOW_HOURS,
    metrics: Metrics | None = None,
) -> SearchResult:
    """Fetch, normalize, filter and order the articles for ``query``.

    Never raises: upstream failures come back as a ``SearchResult`` with an
    error message, an empty item list and a non-2xx status.
    """
    fetcher = fetcher or FeedFetcher()
    request_id = uuid.uuid4().hex
    started = time.perf_counter()
    feed_url = ""
    feed_status: int | None = None

    try:
        page = await fetcher.fetch(query)
        feed_url = page.url
        feed_status = page.status_code

        current = now or now_utc()
        articles = dedupe_articles(normalize_items(page.items, now=current))
        articles = [a for a in articles if is_recent(a, current, window_hours)]
        result = SearchResult(items=sort_newest_first(articles))
    except FetchError as e:
        feed_status = e.status_code
        result = SearchResult(items=[], error=e.detail or e.error_type, status_code=UPSTREAM_FAILURE_STATUS)
    except Exception as e:
        logger.exception("search failed request_id=%s", request_id)
        result = SearchResult(
            items=[],
            error=str(e) or "Failed to fetch articles",
            status_code=UPSTREAM_FAILURE_STATUS,
        )

    duration = time.perf_counter() - started
    feed_host = httpx.URL(feed_url).host if feed_url else "unknown"
    logger.log(
        logging.INFO if result.ok else logging.WARNING,
        "search request_id=%s duration_ms=%d query=%r feed_host=%s feed_status=%s items=%d error=%s",
        request_id,
        int(duration * 1000),
        query,
        feed_host,
        feed_status,
        len(result.items),
        result.error,
    )

    if metrics is not None:
        metrics.searches_total.inc()
        metrics.search_latency_seconds.observe(duration)
        if result.ok:
            metrics.search_items_total.inc(len(result.items))
        else:
            metrics.search_fail_total.inc()

    return result
