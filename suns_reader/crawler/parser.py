"""Default article extractor.

A small heuristic in the spirit of readability: strip page chrome, pick the
densest content container and read a handful of metadata tags. Any callable
with the same signature as ``extract_article`` can replace it.
"""

from __future__ import annotations

from typing import Callable

from selectolax.parser import HTMLParser, Node

from suns_reader.storage.types import ExtractResult
from suns_reader.utils import collapse_ws, truncate


Extractor = Callable[[str, str], "ExtractResult | None"]

_NOISE_SELECTORS = "script, style, noscript, nav, header, footer, aside, form, iframe, svg"

_CONTENT_SELECTORS = [
    "article",
    "[itemprop=articleBody]",
    ".article-body",
    ".article-content",
    ".entry-content",
    ".post-content",
    ".story-body",
    "main",
]

_MIN_CONTENT_CHARS = 200
_MIN_PARAGRAPH_CHARS = 40
_EXCERPT_CHARS = 200


def _meta(tree: HTMLParser, *selectors: str) -> str | None:
    for selector in selectors:
        node = tree.css_first(selector)
        if node is None:
            continue
        value = (node.attributes.get("content") or "").strip()
        if value:
            return value
    return None


def _node_text(node: Node | None) -> str | None:
    if node is None:
        return None
    text = collapse_ws(node.text(separator=" "))
    return text or None


def _pick_content(tree: HTMLParser) -> tuple[str, str] | None:
    candidates: list[tuple[str, str]] = []
    for selector in _CONTENT_SELECTORS:
        for node in tree.css(selector):
            text = collapse_ws(node.text(separator="\n"))
            if len(text) >= _MIN_CONTENT_CHARS:
                candidates.append((node.html or "", text))

    if candidates:
        return max(candidates, key=lambda c: len(c[1]))

    # No container matched: fall back to the page's substantial paragraphs.
    paragraphs = [
        p for p in tree.css("p") if len(collapse_ws(p.text(separator=" "))) >= _MIN_PARAGRAPH_CHARS
    ]
    if not paragraphs:
        return None
    html = "\n".join(p.html or "" for p in paragraphs)
    text = "\n\n".join(collapse_ws(p.text(separator=" ")) for p in paragraphs)
    if len(text) < _MIN_CONTENT_CHARS:
        return None
    return f"<div>{html}</div>", text


def extract_article(html: str, url: str) -> ExtractResult | None:
    tree = HTMLParser(html)

    title = (
        _meta(tree, 'meta[property="og:title"]', 'meta[name="twitter:title"]')
        or _node_text(tree.css_first("title"))
        or _node_text(tree.css_first("h1"))
    )
    byline = _meta(tree, 'meta[name="author"]', 'meta[property="article:author"]') or _node_text(
        tree.css_first('[rel="author"], .byline')
    )
    site_name = _meta(tree, 'meta[property="og:site_name"]')
    description = _meta(tree, 'meta[name="description"]', 'meta[property="og:description"]')

    for node in tree.css(_NOISE_SELECTORS):
        node.decompose()

    content = _pick_content(tree)
    if content is None or not title:
        return None
    content_html, text_content = content

    return ExtractResult(
        success=True,
        url=url,
        title=title,
        byline=byline,
        site_name=site_name,
        content_html=content_html,
        text_content=text_content,
        excerpt=description or truncate(text_content, _EXCERPT_CHARS),
        length=len(text_content),
    )
