from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from suns_reader.config import DEFAULT_USER_AGENT
from suns_reader.crawler.errors import ERROR_HTTP, ERROR_TIMEOUT, FetchError
from suns_reader.rss.parser import parse_rss
from suns_reader.storage.types import RawItem


logger = logging.getLogger(__name__)


GOOGLE_NEWS_RSS_URL = "https://news.google.com/rss/search"


@dataclass(frozen=True)
class FeedPage:
    url: str
    status_code: int
    items: list[RawItem]


class FeedFetcher:
    """Fetches the news search feed for a query and parses it into raw items.

    No retries: a failed fetch surfaces immediately as ``FetchError``.
    """

    def __init__(
        self,
        base_url: str = GOOGLE_NEWS_RSS_URL,
        timeout_seconds: float = 10,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = httpx.Timeout(timeout_seconds)
        self._user_agent = user_agent
        self._transport = transport

    def build_url(self, query: str) -> str:
        params = {"q": query, "hl": "en-US", "gl": "US", "ceid": "US:en"}
        # Cache buster: intermediaries otherwise serve stale search results.
        params["cb"] = str(int(time.time() * 1000))
        return f"{self._base_url}?{urlencode(params)}"

    async def _get(self, url: str) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
            headers={"User-Agent": self._user_agent, "Cache-Control": "no-store"},
        ) as client:
            try:
                return await client.get(url)
            except httpx.TimeoutException as e:
                raise FetchError(ERROR_TIMEOUT, "RSS fetch timed out") from e
            except httpx.TransportError as e:
                raise FetchError(ERROR_HTTP, f"RSS fetch failed: {e}") from e

    async def fetch(self, query: str) -> FeedPage:
        url = self.build_url(query)
        logger.debug("fetching rss feed url=%s", url)
        resp = await self._get(url)
        if not resp.is_success:
            raise FetchError(
                ERROR_HTTP,
                f"RSS fetch failed: {resp.status_code}",
                status_code=resp.status_code,
            )
        items = parse_rss(resp.text)
        logger.debug("parsed rss items=%d", len(items))
        return FeedPage(url=url, status_code=resp.status_code, items=items)
