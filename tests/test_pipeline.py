import asyncio
from datetime import timedelta
from email.utils import format_datetime

import httpx
import pytest

from conftest import NOW, feed_transport, rss_document, rss_item
from suns_reader.crawler.errors import ERROR_HTTP, FetchError
from suns_reader.jobs.pipeline import (
    SearchResult,
    dedupe_articles,
    is_recent,
    run_search,
    sort_newest_first,
)
from suns_reader.metrics.metrics import Metrics
from suns_reader.rss.poller import FeedFetcher
from suns_reader.storage.types import ArticleSummary


def _rfc822(delta: timedelta) -> str:
    return format_datetime(NOW - delta, usegmt=True)


def _fetcher(status_code: int, text: str = "") -> FeedFetcher:
    return FeedFetcher(transport=httpx.MockTransport(feed_transport(status_code, text)))


def _summary(id_: str, published_at: str) -> ArticleSummary:
    return ArticleSummary(
        id=id_,
        title=f"title {id_}",
        url=f"https://a.example/{id_}",
        published_at=published_at,
        source_name="a.example",
        source_domain="a.example",
    )


class TestRunSearch:
    def test_window_filter_and_order(self) -> None:
        xml = rss_document(
            rss_item(title="One hour old", link="https://a.example/1", pub_date=_rfc822(timedelta(hours=1))),
            rss_item(title="Thirty hours old", link="https://a.example/2", pub_date=_rfc822(timedelta(hours=30))),
            rss_item(title="Undated", link="https://a.example/3", pub_date=None),
        )
        result = asyncio.run(run_search("Phoenix Suns", fetcher=_fetcher(200, xml), now=NOW))

        assert result.ok
        assert result.status_code == 200
        assert [a.title for a in result.items] == ["Undated", "One hour old"]

    def test_exactly_24_hours_is_kept(self) -> None:
        xml = rss_document(rss_item(link="https://a.example/1", pub_date=_rfc822(timedelta(hours=24))))
        result = asyncio.run(run_search("q", fetcher=_fetcher(200, xml), now=NOW))
        assert len(result.items) == 1

    def test_dedupes_by_guid(self) -> None:
        xml = rss_document(
            rss_item(title="Original", link="https://a.example/1", guid="same"),
            rss_item(title="Syndicated copy", link="https://b.example/1", guid="same"),
        )
        result = asyncio.run(run_search("q", fetcher=_fetcher(200, xml), now=NOW))
        assert [a.title for a in result.items] == ["Original"]

    def test_upstream_503_is_a_shaped_failure(self) -> None:
        result = asyncio.run(run_search("q", fetcher=_fetcher(503, "Service Unavailable"), now=NOW))
        assert not result.ok
        assert result.items == []
        assert result.status_code >= 300
        assert result.to_payload() == {"error": "RSS fetch failed: 503", "items": []}

    def test_network_error_is_a_shaped_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("name resolution failed")

        fetcher = FeedFetcher(transport=httpx.MockTransport(handler))
        result = asyncio.run(run_search("q", fetcher=fetcher, now=NOW))
        assert result.error is not None
        assert result.items == []
        assert result.status_code == 502

    def test_unexpected_error_is_contained(self) -> None:
        class Exploding:
            async def fetch(self, query: str):
                raise RuntimeError("boom")

        result = asyncio.run(run_search("q", fetcher=Exploding(), now=NOW))
        assert result.to_payload() == {"error": "boom", "items": []}

    def test_out_of_range_date_keeps_the_search_alive(self) -> None:
        xml = rss_document(
            rss_item(title="Undated", link="https://a.example/1", pub_date=None),
            rss_item(title="Year 9999", link="https://a.example/2", pub_date="Fri, 31 Dec 9999 23:30:00 -0500"),
        )
        result = asyncio.run(run_search("q", fetcher=_fetcher(200, xml), now=NOW))

        assert result.ok
        assert result.status_code == 200
        assert [a.title for a in result.items] == ["Undated", "Year 9999"]
        assert {a.published_at for a in result.items} == {"2026-01-10T12:00:00.000Z"}

    def test_empty_feed_is_success(self) -> None:
        result = asyncio.run(run_search("q", fetcher=_fetcher(200, rss_document()), now=NOW))
        assert result.ok
        assert result.to_payload() == {"items": []}

    def test_request_is_parameterized_by_query(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=rss_document())

        fetcher = FeedFetcher(transport=httpx.MockTransport(handler))
        asyncio.run(run_search("Devin Booker & KD", fetcher=fetcher, now=NOW))

        [request] = seen
        assert request.url.params["q"] == "Devin Booker & KD"
        assert request.url.params["ceid"] == "US:en"
        assert "cb" in request.url.params
        assert "SunsReader" in request.headers["user-agent"]

    def test_metrics_recorded(self) -> None:
        metrics = Metrics()
        asyncio.run(run_search("q", fetcher=_fetcher(503), now=NOW, metrics=metrics))
        asyncio.run(run_search("q", fetcher=_fetcher(200, rss_document(rss_item())), now=NOW, metrics=metrics))
        assert metrics.registry.get_sample_value("searches_total") == 2
        assert metrics.registry.get_sample_value("search_fail_total") == 1
        assert metrics.registry.get_sample_value("search_items_total") == 1


def test_fetcher_raises_typed_error() -> None:
    with pytest.raises(FetchError) as exc_info:
        asyncio.run(_fetcher(404).fetch("q"))
    assert exc_info.value.error_type == ERROR_HTTP
    assert exc_info.value.status_code == 404


def test_sort_is_stable_for_ties() -> None:
    ts = "2026-01-10T11:00:00.000Z"
    articles = [_summary("a", ts), _summary("b", "2026-01-10T11:30:00.000Z"), _summary("c", ts)]
    assert [a.id for a in sort_newest_first(articles)] == ["b", "a", "c"]
    assert sort_newest_first(articles) == sort_newest_first(articles)


def test_is_recent_keeps_unparsable_timestamps() -> None:
    assert is_recent(_summary("a", "garbage"), NOW)
    assert not is_recent(_summary("b", "2026-01-08T11:00:00.000Z"), NOW)


def test_dedupe_keeps_first() -> None:
    first = _summary("x", "2026-01-10T11:00:00.000Z")
    second = _summary("x", "2026-01-10T11:30:00.000Z")
    assert dedupe_articles([first, second]) == [first]


def test_success_payload_is_camel_case() -> None:
    payload = SearchResult(items=[_summary("a", "2026-01-10T11:00:00.000Z")]).to_payload()
    assert payload == {
        "items": [
            {
                "id": "a",
                "title": "title a",
                "url": "https://a.example/a",
                "publishedAt": "2026-01-10T11:00:00.000Z",
                "sourceName": "a.example",
                "sourceDomain": "a.example",
            }
        ]
    }
