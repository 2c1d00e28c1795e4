from __future__ import annotations

import logging
import time
from typing import Generic, TypeVar

from suns_reader.crawler.errors import ERROR_INVALID_URL, FetchError
from suns_reader.crawler.http_fetcher import ArticleFetcher, validate_url
from suns_reader.crawler.parser import Extractor, extract_article
from suns_reader.metrics.metrics import Metrics
from suns_reader.storage.extract_cache import (
    KV_TTL_SECONDS,
    build_cached_payload,
    get_cached_extract,
    schedule_cache_write,
)
from suns_reader.storage.types import ExtractResult
from suns_reader.utils import normalize_url


logger = logging.getLogger(__name__)

T = TypeVar("T")


_NO_CONTENT_ERROR = (
    "Could not extract article content. This site may not be supported or may require JavaScript."
)


class MemoryCache(Generic[T]):
    """Per-process TTL cache keyed by the raw request URL."""

    def __init__(self, max_entries: int = 500) -> None:
        self._entries: dict[str, tuple[T, float]] = {}
        self._max_entries = max_entries

    def purge_expired(self) -> None:
        now = time.monotonic()
        for key in [k for k, (_, expires) in self._entries.items() if now > expires]:
            del self._entries[key]

    def get(self, url: str) -> T | None:
        entry = self._entries.get(url)
        if entry is None:
            return None
        result, expires = entry
        if time.monotonic() > expires:
            del self._entries[url]
            return None
        return result

    def put(self, url: str, result: T, ttl_seconds: float) -> None:
        self._entries.pop(url, None)
        self._entries[url] = (result, time.monotonic() + ttl_seconds)
        while len(self._entries) > self._max_entries:
            # dicts keep insertion order: drop the oldest entry.
            del self._entries[next(iter(self._entries))]

    def __len__(self) -> int:
        return len(self._entries)


class ExtractService:
    def __init__(
        self,
        fetcher: ArticleFetcher,
        extractor: Extractor = extract_article,
        metrics: Metrics | None = None,
        mem_ttl_seconds: float = 600,
        mem_failure_ttl_seconds: float = 120,
        kv_ttl_seconds: int = KV_TTL_SECONDS,
    ) -> None:
        self._fetcher = fetcher
        self._extractor = extractor
        self._metrics = metrics
        self._memory: MemoryCache[ExtractResult] = MemoryCache()
        self._mem_ttl = mem_ttl_seconds
        self._mem_failure_ttl = mem_failure_ttl_seconds
        self._kv_ttl = kv_ttl_seconds

    def _count_lookup(self, layer: str, hit: bool) -> None:
        if self._metrics is not None:
            self._metrics.cache_lookup(layer, hit)

    def _failed(self, url: str, error: str, status_code: int = 200) -> ExtractResult:
        if self._metrics is not None:
            self._metrics.extract_fail_total.inc()
        return ExtractResult(success=False, url=url, error=error, status_code=status_code)

    async def extract(self, url: str) -> ExtractResult:
        """Extract the readable article at ``url``.

        Lookup order is the in-process cache, then the shared extraction
        cache, then a live fetch. Only successful live extractions are written
        to the shared cache, and that write is never awaited here.
        """
        if self._metrics is not None:
            self._metrics.extract_requests_total.inc()
        self._memory.purge_expired()

        if not url:
            return self._failed("", "URL parameter is required", status_code=400)

        remembered = self._memory.get(url)
        self._count_lookup("memory", remembered is not None)
        if remembered is not None:
            logger.debug("extract memory hit url=%s", url)
            return remembered

        try:
            url = validate_url(url)
        except FetchError as e:
            return self._failed(url, e.detail or ERROR_INVALID_URL, status_code=400)

        normalized = normalize_url(url)
        cached = await get_cached_extract(normalized)
        self._count_lookup("store", cached is not None)
        if cached is not None:
            logger.info("extract cache hit url=%s", normalized)
            result = cached.to_result(url)
            self._memory.put(url, result, self._mem_ttl)
            return result

        try:
            html = await self._fetcher.fetch(url)
        except FetchError as e:
            logger.info("extract fetch failed url=%s type=%s detail=%s", url, e.error_type, e.detail)
            return self._failed(url, e.detail or "Failed to fetch article")

        try:
            extracted = self._extractor(html, url)
        except Exception:
            logger.exception("extractor crashed url=%s", url)
            return self._failed(url, "Failed to parse article")

        if extracted is None:
            result = self._failed(url, _NO_CONTENT_ERROR)
            self._memory.put(url, result, self._mem_failure_ttl)
            return result

        self._memory.put(url, extracted, self._mem_ttl)
        logger.info("extracted url=%s title=%r length=%s", url, extracted.title, extracted.length)

        payload = build_cached_payload(normalized, extracted)
        if payload is not None:
            schedule_cache_write(normalized, payload, self._kv_ttl)
        return extracted

    async def aclose(self) -> None:
        await self._fetcher.aclose()
