from __future__ import annotations

import ipaddress
import logging
import time
from urllib.parse import urlsplit

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from suns_reader.config import DEFAULT_USER_AGENT
from suns_reader.crawler.errors import (
    FetchError,
    ERROR_HTTP,
    ERROR_INVALID_URL,
    ERROR_NOT_HTML,
    ERROR_TIMEOUT,
    ERROR_TOO_LARGE,
)
from suns_reader.utils import truncate


logger = logging.getLogger(__name__)


_DISALLOWED_HOSTS = {
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
}

_HTML_CONTENT_TYPES = ("text/html", "application/xhtml")


def _is_private_ip(hostname: str) -> bool:
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return False

    return bool(
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def validate_url(url: str) -> str:
    """Reject anything but public http(s) URLs. Returns the stripped URL."""
    url = url.strip()
    try:
        parsed = urlsplit(url)
        host = parsed.hostname
    except ValueError as e:
        raise FetchError(ERROR_INVALID_URL, "Invalid URL format") from e

    if parsed.scheme not in ("http", "https"):
        if not parsed.scheme or not host:
            raise FetchError(ERROR_INVALID_URL, "Invalid URL format")
        raise FetchError(ERROR_INVALID_URL, "Only HTTP and HTTPS protocols are supported")
    if not host:
        raise FetchError(ERROR_INVALID_URL, "Invalid URL format")
    if host in _DISALLOWED_HOSTS or _is_private_ip(host):
        raise FetchError(ERROR_INVALID_URL, "Private IP addresses are not allowed")
    return url


class ArticleFetcher:
    def __init__(
        self,
        timeout_seconds: float = 10,
        max_bytes: int = 2 * 1024 * 1024,
        max_retries: int = 2,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_bytes = max_bytes
        self._max_retries = max(0, max_retries)

        self._client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, url: str) -> httpx.Response:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential_jitter(initial=0.5, max=4),
            reraise=True,
        )
        return await retrying(self._client.get, url)

    async def fetch(self, url: str) -> str:
        started = time.perf_counter()
        try:
            resp = await self._get(url)
        except httpx.TimeoutException as e:
            raise FetchError(ERROR_TIMEOUT, "Request timed out") from e
        except httpx.TransportError as e:
            raise FetchError(ERROR_HTTP, truncate(str(e) or "Failed to fetch article", 240)) from e

        if not resp.is_success:
            raise FetchError(
                ERROR_HTTP,
                f"HTTP {resp.status_code}: {resp.reason_phrase}",
                status_code=resp.status_code,
            )

        content_type = resp.headers.get("content-type", "").lower()
        if not any(t in content_type for t in _HTML_CONTENT_TYPES):
            raise FetchError(ERROR_NOT_HTML, "Response is not HTML")

        if len(resp.content) > self._max_bytes:
            raise FetchError(ERROR_TOO_LARGE, f"Response too large (max {self._max_bytes // 1024} KB)")

        logger.debug(
            "fetched article url=%s status=%s bytes=%d duration_ms=%d",
            url,
            resp.status_code,
            len(resp.content),
            int((time.perf_counter() - started) * 1000),
        )
        return resp.text
