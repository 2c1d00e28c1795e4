"""Pattern-based RSS item extraction.

Feeds seen in the wild are not always well-formed XML, so instead of a
validating parser the document is scanned for repeating ``<item>`` blocks and
each field is pulled out independently. Only ``title`` and ``link`` are
required; everything else is optional.
"""

from __future__ import annotations

import logging
import re

from suns_reader.storage.types import RawItem


logger = logging.getLogger(__name__)


_ITEM_RE = re.compile(r"<item\b[^>]*>(.*?)</item\s*>", flags=re.IGNORECASE | re.DOTALL)
_TITLE_RE = re.compile(r"<title\b[^>]*>(.*?)</title\s*>", flags=re.IGNORECASE | re.DOTALL)
_LINK_RE = re.compile(r"<link\b[^>]*>(.*?)</link\s*>", flags=re.IGNORECASE | re.DOTALL)
_PUB_DATE_RE = re.compile(r"<pubDate\b[^>]*>(.*?)</pubDate\s*>", flags=re.IGNORECASE | re.DOTALL)
_GUID_RE = re.compile(r"<guid\b[^>]*>(.*?)</guid\s*>", flags=re.IGNORECASE | re.DOTALL)
_SOURCE_RE = re.compile(r"<source\b([^>]*)>(.*?)</source\s*>", flags=re.IGNORECASE | re.DOTALL)
_URL_ATTR_RE = re.compile(r"""\burl\s*=\s*(?:"([^"]*)"|'([^']*)')""", flags=re.IGNORECASE)
_CDATA_RE = re.compile(r"^<!\[CDATA\[(.*?)\]\]>$", flags=re.DOTALL)

_ENTITIES = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
}
_ENTITY_RE = re.compile("|".join(re.escape(e) for e in _ENTITIES))


def decode_entities(text: str) -> str:
    # Single pass, so "&amp;lt;" becomes "&lt;" and not "<".
    return _ENTITY_RE.sub(lambda m: _ENTITIES[m.group(0)], text)


def _field(pattern: re.Pattern[str], block: str) -> str | None:
    m = pattern.search(block)
    if m is None:
        return None
    value = m.group(1).strip()
    cdata = _CDATA_RE.match(value)
    if cdata:
        value = cdata.group(1).strip()
    return value or None


def _source(block: str) -> tuple[str | None, str | None]:
    m = _SOURCE_RE.search(block)
    if m is None:
        return None, None
    name = m.group(2).strip()
    cdata = _CDATA_RE.match(name)
    if cdata:
        name = cdata.group(1).strip()
    url_match = _URL_ATTR_RE.search(m.group(1))
    url = None
    if url_match:
        url = (url_match.group(1) or url_match.group(2) or "").strip() or None
    return (decode_entities(name) if name else None), (decode_entities(url) if url else None)


def _parse_item(block: str) -> RawItem | None:
    title = _field(_TITLE_RE, block)
    link = _field(_LINK_RE, block)
    if not title or not link:
        return None
    source, source_url = _source(block)
    return RawItem(
        title=decode_entities(title),
        link=decode_entities(link),
        pub_date=_field(_PUB_DATE_RE, block),
        guid=_field(_GUID_RE, block),
        source=source,
        source_url=source_url,
    )


def parse_rss(xml_text: str) -> list[RawItem]:
    if not xml_text:
        return []
    try:
        items: list[RawItem] = []
        for m in _ITEM_RE.finditer(xml_text):
            item = _parse_item(m.group(1))
            if item is not None:
                items.append(item)
        return items
    except Exception:
        logger.exception("rss parse failed")
        return []
