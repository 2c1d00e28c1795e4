from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from suns_reader.storage.kv import get_store
from suns_reader.storage.types import CACHE_SCHEMA_VERSION, CachedExtract, ExtractResult
from suns_reader.utils import now_ms, sha256_hex


logger = logging.getLogger(__name__)


# Bump the epoch to move to a fresh key space without touching old entries.
CACHE_KEY_PREFIX = "sr:ext:v1"
KV_TTL_SECONDS = 86400

_pending_writes: set[asyncio.Task] = set()


def make_cache_key(normalized_url: str) -> str:
    return f"{CACHE_KEY_PREFIX}:{sha256_hex(normalized_url)[:16]}"


def _decode(raw: Any) -> CachedExtract | None:
    data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    if not isinstance(data, dict):
        return None
    if data.get("v") != CACHE_SCHEMA_VERSION:
        return None
    title = data.get("title")
    content_html = data.get("contentHtml")
    if not isinstance(title, str) or not title:
        return None
    if not isinstance(content_html, str) or not content_html:
        return None
    return CachedExtract.from_dict(data)


async def get_cached_extract(normalized_url: str) -> CachedExtract | None:
    """Look up a cached extraction. Every failure is reported as a miss."""
    store = get_store()
    if store is None:
        return None
    key = make_cache_key(normalized_url)
    try:
        raw = await store.get(key)
        if raw is None:
            return None
        cached = _decode(raw)
    except Exception as e:
        logger.warning("extract cache read failed key=%s error=%s", key, e)
        return None
    if cached is None:
        logger.info("extract cache entry rejected key=%s", key)
    return cached


async def set_cached_extract(
    normalized_url: str,
    payload: CachedExtract,
    ttl_seconds: int = KV_TTL_SECONDS,
) -> None:
    """Store ``payload`` with a TTL. Never raises."""
    store = get_store()
    if store is None:
        return
    key = make_cache_key(normalized_url)
    try:
        await store.set(key, json.dumps(payload.to_dict(), ensure_ascii=False), ttl_seconds)
    except Exception as e:
        logger.warning("extract cache write failed key=%s error=%s", key, e)


def build_cached_payload(normalized_url: str, result: ExtractResult) -> CachedExtract | None:
    if not result.title or not result.content_html:
        return None
    text_content = result.text_content or ""
    return CachedExtract(
        normalized_url=normalized_url,
        title=result.title,
        byline=result.byline,
        site_name=result.site_name,
        content_html=result.content_html,
        text_content=text_content,
        excerpt=result.excerpt,
        length=result.length or len(text_content),
        cached_at=now_ms(),
    )


def schedule_cache_write(
    normalized_url: str,
    payload: CachedExtract,
    ttl_seconds: int = KV_TTL_SECONDS,
) -> asyncio.Task:
    """Fire-and-forget ``set_cached_extract``; the caller never awaits it."""
    task = asyncio.get_running_loop().create_task(
        set_cached_extract(normalized_url, payload, ttl_seconds)
    )
    _pending_writes.add(task)
    task.add_done_callback(_pending_writes.discard)
    return task


async def drain_pending_writes() -> None:
    if _pending_writes:
        await asyncio.gather(*list(_pending_writes), return_exceptions=True)
