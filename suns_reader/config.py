from __future__ import annotations

from dataclasses import dataclass
import os


def _env_str(name: str, default: str | None = None) -> str:
    value = os.getenv(name)
    if value is None:
        if default is None:
            raise RuntimeError(f"Missing required env: {name}")
        return default
    return value


def _env_int(name: str, default: int | None = None) -> int:
    value = os.getenv(name)
    if value is None:
        if default is None:
            raise RuntimeError(f"Missing required env: {name}")
        return default
    return int(value)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip().lower()
    return value in {"1", "true", "yes", "y", "on"}


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SunsReader/1.0)"


@dataclass(frozen=True)
class Config:
    # Feed
    default_query: str
    feed_base_url: str
    feed_timeout_seconds: int
    user_agent: str
    window_hours: int

    # Extraction cache (store endpoint and token are read by storage.kv)
    kv_ttl_seconds: int

    # Article extraction
    extract_timeout_seconds: int
    extract_max_bytes: int
    extract_max_retries: int
    mem_cache_ttl_seconds: int
    mem_cache_failure_ttl_seconds: int

    # Publisher link resolution
    resolve_timeout_seconds: int
    resolve_cache_ttl_seconds: int

    # Metrics
    metrics_enabled: bool

    # HTTP server
    http_bind: str
    http_port: int

    # Logging
    log_level: str
    log_file: str


def load_config() -> Config:
    return Config(
        default_query=_env_str("DEFAULT_QUERY", "Phoenix Suns"),
        feed_base_url=_env_str("FEED_BASE_URL", "https://news.google.com/rss/search"),
        feed_timeout_seconds=_env_int("FEED_TIMEOUT_SECONDS", 10),
        user_agent=_env_str("USER_AGENT", DEFAULT_USER_AGENT),
        window_hours=_env_int("WINDOW_HOURS", 24),
        kv_ttl_seconds=_env_int("KV_TTL_SECONDS", 86400),
        extract_timeout_seconds=_env_int("EXTRACT_TIMEOUT_SECONDS", 10),
        extract_max_bytes=_env_int("EXTRACT_MAX_BYTES", 2 * 1024 * 1024),
        extract_max_retries=_env_int("EXTRACT_MAX_RETRIES", 2),
        mem_cache_ttl_seconds=_env_int("MEM_CACHE_TTL_SECONDS", 600),
        mem_cache_failure_ttl_seconds=_env_int("MEM_CACHE_FAILURE_TTL_SECONDS", 120),
        resolve_timeout_seconds=_env_int("RESOLVE_TIMEOUT_SECONDS", 10),
        resolve_cache_ttl_seconds=_env_int("RESOLVE_CACHE_TTL_SECONDS", 6 * 60 * 60),
        metrics_enabled=_env_bool("METRICS_ENABLED", True),
        http_bind=_env_str("HTTP_BIND", "127.0.0.1"),
        http_port=_env_int("HTTP_PORT", 8000),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        log_file=_env_str("LOG_FILE", ""),
    )
