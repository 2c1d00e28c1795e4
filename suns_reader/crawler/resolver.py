"""Publisher URL resolver for Google News article links.

Search results point at ``news.google.com/rss/articles/<token>`` wrappers.
Strategies are tried cheapest first: decode the URL embedded in the token,
ask Google's batchexecute endpoint, follow redirects, then read
canonical/og:url/refresh hints from the returned page.
"""

from __future__ import annotations

import base64
import json
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote, urljoin, urlsplit, urlunsplit

import httpx
from selectolax.parser import HTMLParser

from suns_reader.crawler.errors import ERROR_TIMEOUT, FetchError
from suns_reader.crawler.http_fetcher import validate_url
from suns_reader.crawler.service import MemoryCache
from suns_reader.metrics.metrics import Metrics


logger = logging.getLogger(__name__)


RESOLVE_CACHE_TTL_SECONDS = 6 * 60 * 60
RESOLVE_TIMEOUT_ERROR = "resolve_timeout"
UNRESOLVED_ERROR = "Could not resolve publisher URL"

BATCH_EXECUTE_URL = "https://news.google.com/_/DotsSplashUi/data/batchexecute"

# Google serves the decoding attributes only to browser-looking clients.
_BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_TOKEN_RE = re.compile(r"/(?:rss/)?articles/([^/?]+)")
_EMBEDDED_URL_RE = re.compile(r"(https?://[^\s\x00-\x1f\x7f\"'<>\ufffd]+)")
_REFRESH_URL_RE = re.compile(r"url\s*=\s*['\"]?([^'\">\s]+)", re.IGNORECASE)
_GOOGLE_REDIRECT_RE = re.compile(
    r"https?://(?:www\.)?google\.com/url\?(?:[^\"'\s]*?[&;])?url=([^&\"'\s]+)", re.IGNORECASE
)
_XSSI_PREFIX = ")]}'"


def normalize_google_news_url(url: str) -> str:
    """/rss/articles/<token> -> /articles/<token> on news.google.com."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if (parts.hostname or "") != "news.google.com" or not parts.path.startswith("/rss/articles/"):
        return url
    path = "/articles/" + parts.path[len("/rss/articles/"):]
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def is_publisher_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not host:
        return False
    return "google.com" not in host and parts.path not in ("", "/")


def article_token(url: str) -> str | None:
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if (parts.hostname or "") != "news.google.com":
        return None
    m = _TOKEN_RE.search(parts.path)
    return m.group(1) if m else None


def decode_token_url(token: str) -> str | None:
    """Find a publisher URL embedded in a base64url article token (no network)."""
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except ValueError:
        return None
    m = _EMBEDDED_URL_RE.search(raw.decode("utf-8", errors="replace"))
    if m and is_publisher_url(m.group(1)):
        return m.group(1)
    return None


def publisher_url_from_html(html: str, base_url: str) -> tuple[str | None, str | None]:
    """Return ``(url, strategy)`` from page hints, or ``(None, None)``."""
    tree = HTMLParser(html)

    def usable(href: str | None) -> str | None:
        if not href:
            return None
        candidate = urljoin(base_url, href.strip())
        return candidate if is_publisher_url(candidate) else None

    for node in tree.css("link[href]"):
        rel = (node.attributes.get("rel") or "").lower().split()
        if "canonical" in rel:
            found = usable(node.attributes.get("href"))
            if found:
                return found, "canonical"

    og = tree.css_first('meta[property="og:url"]')
    if og is not None:
        found = usable(og.attributes.get("content"))
        if found:
            return found, "og"

    for node in tree.css("meta[http-equiv]"):
        if (node.attributes.get("http-equiv") or "").lower() != "refresh":
            continue
        m = _REFRESH_URL_RE.search(node.attributes.get("content") or "")
        found = usable(m.group(1)) if m else None
        if found:
            return found, "refresh"

    m = _GOOGLE_REDIRECT_RE.search(html)
    if m:
        decoded = unquote(m.group(1))
        if is_publisher_url(decoded):
            return decoded, "google_redirect"

    return None, None


def _batch_request_body(token: str, timestamp: int, signature: str) -> dict[str, str]:
    inner = [
        "garturlreq",
        [
            ["X", "X", ["X", "X"], None, None, 1, 1, "US:en", None, 1, None, None, None, None, None, 0, 1],
            "X", "X", 1, [1, 1, 1], 1, 1, None, 0, 0, None, 0,
        ],
        token,
        timestamp,
        signature,
    ]
    compact = (",", ":")
    payload = [[["Fbv4je", json.dumps(inner, separators=compact)]]]
    return {"f.req": json.dumps(payload, separators=compact)}


def parse_batch_response(text: str) -> str | None:
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith(_XSSI_PREFIX):
            continue
        try:
            parsed = json.loads(line)
        except ValueError:
            continue
        if not isinstance(parsed, list):
            continue
        for entry in parsed:
            if not isinstance(entry, list) or len(entry) < 3 or entry[:2] != ["wrb.fr", "Fbv4je"]:
                continue
            if not entry[2]:
                continue
            try:
                inner = json.loads(entry[2])
            except (TypeError, ValueError):
                continue
            if isinstance(inner, list) and len(inner) > 1:
                inner = inner[1]
            if isinstance(inner, str) and inner.startswith("http") and is_publisher_url(inner):
                return inner
    return None


@dataclass(frozen=True)
class ResolveResult:
    success: bool
    input_url: str
    publisher_url: str | None = None
    error: str | None = None
    strategy: str | None = None
    methods_tried: tuple[str, ...] = ()
    cached: bool = False
    status_code: int = 200

    def to_payload(self, debug: bool = False) -> dict[str, Any]:
        if self.success:
            out: dict[str, Any] = {"success": True, "publisherUrl": self.publisher_url}
        else:
            out = {"success": False, "error": self.error or UNRESOLVED_ERROR}
        if debug:
            out["debug"] = {
                "inputUrl": self.input_url,
                "normalizedUrl": normalize_google_news_url(self.input_url),
                "strategy": self.strategy,
                "methodsTried": list(self.methods_tried),
            }
        return out


class PublisherResolver:
    def __init__(
        self,
        timeout_seconds: float = 10,
        cache_ttl_seconds: float = RESOLVE_CACHE_TTL_SECONDS,
        metrics: Metrics | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._cache: MemoryCache[str] = MemoryCache()
        self._cache_ttl = cache_ttl_seconds
        self._metrics = metrics
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
            headers={
                "User-Agent": _BROWSER_USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response | None:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise FetchError(ERROR_TIMEOUT, RESOLVE_TIMEOUT_ERROR) from e
        except httpx.TransportError as e:
            logger.debug("resolve request failed method=%s url=%s err=%s", method, url, e)
            return None

    async def _try_batch_execute(self, token: str) -> str | None:
        page = await self._request("GET", f"https://news.google.com/rss/articles/{token}")
        if page is None or not page.is_success:
            return None

        node = HTMLParser(page.text).css_first("[data-n-a-sg][data-n-a-ts]")
        if node is None:
            return None
        signature = node.attributes.get("data-n-a-sg") or ""
        timestamp = node.attributes.get("data-n-a-ts") or ""
        if not signature or not timestamp.isdigit():
            return None

        resp = await self._request(
            "POST",
            BATCH_EXECUTE_URL,
            data=_batch_request_body(token, int(timestamp), signature),
            headers={"Content-Type": "application/x-www-form-urlencoded;charset=UTF-8"},
        )
        if resp is None or not resp.is_success:
            return None
        return parse_batch_response(resp.text)

    async def _resolve_uncached(self, url: str, methods: list[str]) -> tuple[str | None, str | None]:
        normalized = normalize_google_news_url(url)

        token = article_token(normalized)
        if token:
            methods.append("base64_decode")
            decoded = decode_token_url(token)
            if decoded:
                return decoded, "base64_decode"

            methods.append("batchexecute")
            found = await self._try_batch_execute(token)
            if found:
                return found, "batchexecute"

        # One GET serves both the redirect and the page-hint strategies.
        methods.append("redirect")
        resp = await self._request("GET", normalized)
        if resp is None:
            return None, None
        final_url = str(resp.url)
        if is_publisher_url(final_url):
            return final_url, "redirect"

        methods.append("html_parse")
        if not resp.is_success:
            return None, None
        return publisher_url_from_html(resp.text, final_url)

    def _finish(self, result: ResolveResult, started: float, request_id: str) -> ResolveResult:
        logger.log(
            logging.INFO if result.success else logging.WARNING,
            "resolve request_id=%s duration_ms=%d success=%s cached=%s strategy=%s methods=%s "
            "input_host=%s publisher_host=%s error=%s",
            request_id,
            int((time.perf_counter() - started) * 1000),
            result.success,
            result.cached,
            result.strategy,
            ",".join(result.methods_tried),
            urlsplit(result.input_url).hostname or "unknown",
            urlsplit(result.publisher_url).hostname if result.publisher_url else "unknown",
            result.error,
        )
        if self._metrics is not None:
            self._metrics.resolve_total.labels(
                strategy=result.strategy or "none",
                outcome="ok" if result.success else "fail",
            ).inc()
        return result

    async def resolve(self, url: str) -> ResolveResult:
        """Map a news aggregator link to the publisher's own article URL.

        Successes are remembered in memory for six hours. Failures are not
        cached, so a later request gets a fresh attempt.
        """
        request_id = uuid.uuid4().hex
        started = time.perf_counter()
        if self._metrics is not None:
            self._metrics.resolve_requests_total.inc()
        self._cache.purge_expired()

        if not url:
            return ResolveResult(success=False, input_url="", error="Missing url parameter", status_code=400)

        remembered = self._cache.get(url)
        if remembered is not None:
            result = ResolveResult(
                success=True,
                input_url=url,
                publisher_url=remembered,
                strategy="cache",
                methods_tried=("cache",),
                cached=True,
            )
            return self._finish(result, started, request_id)

        try:
            validate_url(url)
        except FetchError as e:
            return ResolveResult(success=False, input_url=url, error=e.detail, status_code=400)

        methods: list[str] = []
        try:
            publisher_url, strategy = await self._resolve_uncached(url.strip(), methods)
        except FetchError as e:
            result = ResolveResult(success=False, input_url=url, error=e.detail, methods_tried=tuple(methods))
            return self._finish(result, started, request_id)

        if publisher_url is None:
            result = ResolveResult(
                success=False, input_url=url, error=UNRESOLVED_ERROR, methods_tried=tuple(methods)
            )
            return self._finish(result, started, request_id)

        self._cache.put(url, publisher_url, self._cache_ttl)
        result = ResolveResult(
            success=True,
            input_url=url,
            publisher_url=publisher_url,
            strategy=strategy,
            methods_tried=tuple(methods),
        )
        return self._finish(result, started, request_id)
