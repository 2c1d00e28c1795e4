from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram, make_asgi_app


class Metrics:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        # Own registry per instance so several apps can live in one process.
        self.registry = registry or CollectorRegistry()

        self.searches_total = Counter("searches_total", "Search requests", registry=self.registry)
        self.search_fail_total = Counter("search_fail_total", "Failed search requests", registry=self.registry)
        self.search_items_total = Counter("search_items_total", "Articles returned by search", registry=self.registry)
        self.search_latency_seconds = Histogram(
            "search_latency_seconds",
            "Search latency",
            buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10),
            registry=self.registry,
        )

        self.extract_requests_total = Counter("extract_requests_total", "Extract requests", registry=self.registry)
        self.extract_fail_total = Counter("extract_fail_total", "Failed extractions", registry=self.registry)
        self.extract_cache_total = Counter(
            "extract_cache_total",
            "Extraction cache lookups",
            ["layer", "outcome"],
            registry=self.registry,
        )

        self.resolve_requests_total = Counter("resolve_requests_total", "Resolve requests", registry=self.registry)
        self.resolve_total = Counter(
            "resolve_total",
            "Resolve outcomes by strategy",
            ["strategy", "outcome"],
            registry=self.registry,
        )

    def cache_lookup(self, layer: str, hit: bool) -> None:
        self.extract_cache_total.labels(layer=layer, outcome="hit" if hit else "miss").inc()

    def asgi_app(self):
        return make_asgi_app(registry=self.registry)
