from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from suns_reader.config import Config, load_config
from suns_reader.crawler.http_fetcher import ArticleFetcher
from suns_reader.crawler.resolver import PublisherResolver
from suns_reader.crawler.service import ExtractService
from suns_reader.jobs.pipeline import run_search
from suns_reader.metrics.metrics import Metrics
from suns_reader.rss.poller import FeedFetcher
from suns_reader.storage.extract_cache import drain_pending_writes
from suns_reader.storage.kv import get_store


logger = logging.getLogger(__name__)


_NO_STORE = {"Cache-Control": "no-store"}


def create_app(
    config: Config | None = None,
    feed_fetcher: FeedFetcher | None = None,
    extract_service: ExtractService | None = None,
    metrics: Metrics | None = None,
    resolver: PublisherResolver | None = None,
) -> FastAPI:
    config = config or load_config()
    metrics = metrics or Metrics()
    feed_fetcher = feed_fetcher or FeedFetcher(
        base_url=config.feed_base_url,
        timeout_seconds=config.feed_timeout_seconds,
        user_agent=config.user_agent,
    )
    extract_service = extract_service or ExtractService(
        ArticleFetcher(
            timeout_seconds=config.extract_timeout_seconds,
            max_bytes=config.extract_max_bytes,
            max_retries=config.extract_max_retries,
            user_agent=config.user_agent,
        ),
        metrics=metrics,
        mem_ttl_seconds=config.mem_cache_ttl_seconds,
        mem_failure_ttl_seconds=config.mem_cache_failure_ttl_seconds,
        kv_ttl_seconds=config.kv_ttl_seconds,
    )
    resolver = resolver or PublisherResolver(
        timeout_seconds=config.resolve_timeout_seconds,
        cache_ttl_seconds=config.resolve_cache_ttl_seconds,
        metrics=metrics,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("api started cache_enabled=%s", get_store() is not None)
        yield
        # Let detached cache writes finish before the loop goes away.
        await drain_pending_writes()
        store = get_store()
        if store is not None:
            await store.aclose()
        await extract_service.aclose()
        await resolver.aclose()
        logger.info("api stopped")

    app = FastAPI(
        title="Suns Reader API",
        description="News search feed, article extraction and publisher link resolution",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    if config.metrics_enabled:
        app.mount("/metrics", metrics.asgi_app())

    @app.get("/healthz")
    async def healthz():
        return {"ok": True, "cache_enabled": get_store() is not None}

    @app.get("/api/search")
    async def search(q: Optional[str] = Query(default=None, description="Free-text news query")):
        result = await run_search(
            q or config.default_query,
            fetcher=feed_fetcher,
            window_hours=config.window_hours,
            metrics=metrics,
        )
        return JSONResponse(result.to_payload(), status_code=result.status_code, headers=_NO_STORE)

    @app.get("/api/extract")
    async def extract(url: Optional[str] = Query(default=None, description="Article URL to extract")):
        result = await extract_service.extract(url or "")
        return JSONResponse(result.to_payload(), status_code=result.status_code)

    @app.get("/api/resolve")
    async def resolve(
        url: Optional[str] = Query(default=None, description="News aggregator article URL"),
        debug: Optional[str] = Query(default=None),
    ):
        result = await resolver.resolve(url or "")
        return JSONResponse(result.to_payload(debug in ("1", "true")), status_code=result.status_code)

    @app.post("/api/resolve")
    async def resolve_post(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict) or not body.get("url"):
            return JSONResponse({"success": False, "error": "Missing url in request body"}, status_code=400)
        result = await resolver.resolve(str(body["url"]))
        return JSONResponse(result.to_payload(bool(body.get("debug"))), status_code=result.status_code)

    return app
