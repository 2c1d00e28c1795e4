from __future__ import annotations

import hashlib
import re
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode
from datetime import datetime, timezone


_UTM_PREFIXES = ("utm_",)

# Click/campaign trackers that never change which document a URL points at.
_TRACKING_PARAMS = frozenset(
    {
        "fbclid",
        "gclid",
        "mc_cid",
        "mc_eid",
        "ref",
        "ref_src",
        "s",
        "cmpid",
    }
)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(now_utc().timestamp() * 1000)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8", errors="ignore")).hexdigest()


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered.startswith(_UTM_PREFIXES) or lowered in _TRACKING_PARAMS


def normalize_url(url: str) -> str:
    """Rewrite ``url`` into a canonical form suitable for cache keying.

    Lowercases the host, drops a leading ``www.``, the fragment and tracking
    parameters, sorts the remaining query parameters and strips trailing
    slashes from the path. Input that is not an absolute URL is returned
    unchanged.
    """
    try:
        parsed = urlsplit(url.strip())
        host = parsed.hostname
        port = parsed.port
    except ValueError:
        return url
    if not parsed.scheme or not host:
        return url

    while host.startswith("www.") and len(host) > 4:
        host = host[4:]
    if ":" in host:
        host = f"[{host}]"

    netloc = host
    if port is not None and _DEFAULT_PORTS.get(parsed.scheme) != port:
        netloc = f"{host}:{port}"
    userinfo, sep, _ = parsed.netloc.rpartition("@")
    if sep:
        netloc = f"{userinfo}@{netloc}"

    query = [
        (k, v)
        for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if not _is_tracking_param(k)
    ]
    query.sort()

    path = parsed.path.rstrip("/") or "/"

    return urlunsplit((parsed.scheme, netloc, path, urlencode(query), ""))


def get_domain(url: str) -> str:
    """Lowercase host of ``url`` without ``www.``, or ``"unknown"``."""
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        return "unknown"
    if not host:
        return "unknown"
    return re.sub(r"^www\.", "", host)


def collapse_ws(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 1] + "…"
