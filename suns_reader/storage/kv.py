"""Remote key-value store handle for the extraction cache.

The store is an Upstash-compatible Redis REST endpoint: every command is a
JSON array POSTed to the base URL with a bearer token, and the reply is
``{"result": ...}`` or ``{"error": "..."}``.

The handle is created lazily at most once per process. When either of
``KV_REST_API_URL`` / ``KV_REST_API_TOKEN`` is missing the disabled outcome
(``None``) is memoized as well, so callers never re-check the environment.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

import httpx

from suns_reader.config import _env_int, _env_str


logger = logging.getLogger(__name__)


class KvError(Exception):
    pass


class KvStore:
    def __init__(
        self,
        url: str,
        token: str,
        timeout_seconds: float = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._token = token
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_loop: asyncio.AbstractEventLoop | None = None

    @property
    def url(self) -> str:
        return self._url

    def _get_client(self) -> httpx.AsyncClient:
        # The handle is process-wide but a client is tied to the loop it was
        # first used on, so keep one persistent client per running loop.
        loop = asyncio.get_running_loop()
        if self._client is None or self._client.is_closed or self._client_loop is not loop:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers={"Authorization": f"Bearer {self._token}"},
            )
            self._client_loop = loop
        return self._client

    async def aclose(self) -> None:
        client, loop = self._client, self._client_loop
        self._client = self._client_loop = None
        # A client from a loop that is gone cannot be closed from this one.
        if client is not None and loop is asyncio.get_running_loop():
            await client.aclose()

    async def command(self, *args: Any) -> Any:
        resp = await self._get_client().post(self._url, json=[str(a) for a in args])

        if resp.status_code == 401 or resp.status_code == 403:
            raise KvError(f"{resp.status_code} unauthorized")
        if resp.status_code >= 400:
            raise KvError(f"{resp.status_code} store error")

        body = resp.json()
        if not isinstance(body, dict):
            raise KvError("unexpected reply shape")
        if body.get("error"):
            raise KvError(str(body["error"]))
        return body.get("result")

    async def get(self, key: str) -> str | None:
        result = await self.command("GET", key)
        if result is None:
            return None
        return str(result)

    async def set(self, key: str, value: str, ex_seconds: int) -> None:
        await self.command("SET", key, value, "EX", ex_seconds)


_UNSET: Any = object()
_store: KvStore | None = _UNSET
_store_lock = threading.Lock()


def _build_store() -> KvStore | None:
    url = _env_str("KV_REST_API_URL", "").strip()
    token = _env_str("KV_REST_API_TOKEN", "").strip()
    if not url or not token:
        logger.info("extraction cache disabled: KV_REST_API_URL/KV_REST_API_TOKEN not set")
        return None
    try:
        timeout = _env_int("KV_TIMEOUT_SECONDS", 3)
    except ValueError:
        logger.warning("invalid KV_TIMEOUT_SECONDS, using default")
        timeout = 3
    logger.info("extraction cache enabled host=%s", httpx.URL(url).host)
    return KvStore(url, token, timeout_seconds=timeout)


def get_store() -> KvStore | None:
    global _store
    if _store is not _UNSET:
        return _store
    with _store_lock:
        if _store is _UNSET:
            try:
                _store = _build_store()
            except Exception as e:
                logger.warning("extraction cache disabled: %s", e)
                _store = None
    return _store


def set_store(store: KvStore | None) -> None:
    """Install an explicit handle (or ``None`` to disable the cache)."""
    global _store
    with _store_lock:
        _store = store


def reset_store() -> None:
    """Forget the memoized handle so the next ``get_store`` re-reads the env."""
    global _store
    with _store_lock:
        _store = _UNSET
