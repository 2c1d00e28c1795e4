from __future__ import annotations

from dataclasses import dataclass
from typing import Any


CACHE_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class RawItem:
    title: str
    link: str
    pub_date: str | None = None
    guid: str | None = None
    source: str | None = None
    source_url: str | None = None


@dataclass(frozen=True)
class ArticleSummary:
    id: str
    title: str
    url: str
    published_at: str
    source_name: str
    source_domain: str

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "publishedAt": self.published_at,
            "sourceName": self.source_name,
            "sourceDomain": self.source_domain,
        }


@dataclass(frozen=True)
class ExtractResult:
    success: bool
    url: str
    title: str | None = None
    byline: str | None = None
    site_name: str | None = None
    content_html: str | None = None
    text_content: str | None = None
    excerpt: str | None = None
    length: int | None = None
    error: str | None = None
    status_code: int = 200

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "url": self.url}
        optional = {
            "title": self.title,
            "byline": self.byline,
            "siteName": self.site_name,
            "contentHtml": self.content_html,
            "textContent": self.text_content,
            "excerpt": self.excerpt,
            "length": self.length,
            "error": self.error,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        return payload


@dataclass(frozen=True)
class CachedExtract:
    normalized_url: str
    title: str
    content_html: str
    text_content: str
    length: int
    cached_at: int
    byline: str | None = None
    site_name: str | None = None
    excerpt: str | None = None
    v: int = CACHE_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "v": self.v,
            "normalizedUrl": self.normalized_url,
            "title": self.title,
            "contentHtml": self.content_html,
            "textContent": self.text_content,
            "length": self.length,
            "cachedAt": self.cached_at,
        }
        for key, value in (("byline", self.byline), ("siteName", self.site_name), ("excerpt", self.excerpt)):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedExtract":
        return cls(
            v=int(data["v"]),
            normalized_url=str(data.get("normalizedUrl") or ""),
            title=str(data["title"]),
            content_html=str(data["contentHtml"]),
            text_content=str(data.get("textContent") or ""),
            length=int(data.get("length") or 0),
            cached_at=int(data.get("cachedAt") or 0),
            byline=data.get("byline"),
            site_name=data.get("siteName"),
            excerpt=data.get("excerpt"),
        )

    def to_result(self, url: str) -> ExtractResult:
        return ExtractResult(
            success=True,
            url=url,
            title=self.title,
            byline=self.byline,
            site_name=self.site_name,
            content_html=self.content_html,
            text_content=self.text_content,
            excerpt=self.excerpt,
            length=self.length,
        )
