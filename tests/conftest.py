from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Callable

import httpx
import pytest

from suns_reader.storage.kv import KvStore, reset_store, set_store


NOW = datetime(2026, 1, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _cache_disabled_by_default():
    # Tests opt in to a store explicitly; never pick one up from the env.
    set_store(None)
    yield
    reset_store()


class FakeKv:
    """In-memory stand-in for the KV REST endpoint, served via MockTransport."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.commands: list[list[str]] = []
        self.fail_with: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.fail_with is not None:
            raise self.fail_with
        assert request.headers["authorization"] == "Bearer test-token"
        command = json.loads(request.content)
        self.commands.append(command)
        op = command[0]
        if op == "GET":
            return httpx.Response(200, json={"result": self.data.get(command[1])})
        if op == "SET":
            self.data[command[1]] = command[2]
            return httpx.Response(200, json={"result": "OK"})
        return httpx.Response(400, json={"error": f"unknown command {op}"})

    def store(self) -> KvStore:
        return KvStore("https://kv.example.test", "test-token", transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_kv() -> FakeKv:
    kv = FakeKv()
    set_store(kv.store())
    return kv


def rss_document(*items: str) -> str:
    body = "".join(items)
    return f'<?xml version="1.0" encoding="UTF-8"?><rss version="2.0"><channel><title>feed</title>{body}</channel></rss>'


def rss_item(
    title: str | None = "Suns win - ESPN",
    link: str | None = "https://news.google.com/articles/abc",
    pub_date: str | None = "Sat, 10 Jan 2026 11:00:00 GMT",
    guid: str | None = None,
    source: tuple[str, str] | None = None,
) -> str:
    parts = ["<item>"]
    if title is not None:
        parts.append(f"<title>{title}</title>")
    if link is not None:
        parts.append(f"<link>{link}</link>")
    if guid is not None:
        parts.append(f'<guid isPermaLink="false">{guid}</guid>')
    if pub_date is not None:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    if source is not None:
        parts.append(f'<source url="{source[1]}">{source[0]}</source>')
    parts.append("</item>")
    return "".join(parts)


def feed_transport(status_code: int, text: str = "") -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text=text, headers={"content-type": "application/rss+xml"})

    return handler
