"""Self-monitoring metrics for a scrape target."""
from prometheus_client import (
    Counter, Gauge, Histogram,
    CollectorRegistry, generate_latest
)


class SelfMetrics:
    """Operational metrics of one scrape target, kept in their own registry."""

    def __init__(self, registry=None, prefix="staleproxy_"):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.scrapes_total = Counter(
            f"{prefix}scrapes_total",
            "Total number of downstream scrapes handled",
            ["result"],
            registry=registry
        )

        self.upstream_errors_total = Counter(
            f"{prefix}upstream_errors_total",
            "Total number of failed upstream fetches",
            registry=registry
        )

        self.scrape_duration_seconds = Histogram(
            f"{prefix}scrape_duration_seconds",
            "Duration of fetch, filter and render for one scrape",
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry
        )

        self.series_emitted = Gauge(
            f"{prefix}series_emitted",
            "Number of series emitted by the last scrape",
            registry=registry
        )

        self.series_suppressed = Gauge(
            f"{prefix}series_suppressed",
            "Number of stale series suppressed by the last scrape",
            registry=registry
        )

        self.tracked_series = Gauge(
            f"{prefix}tracked_series",
            "Number of series with a staleness record",
            registry=registry
        )

    def record_scrape(self, result: str, duration: float):
        """Record a handled scrape."""
        self.scrapes_total.labels(result=result).inc()
        self.scrape_duration_seconds.observe(duration)

    def record_upstream_error(self):
        """Record upstream fetch failure."""
        self.upstream_errors_total.inc()

    def set_series_counts(self, emitted: int, suppressed: int, tracked: int):
        """Set series counts from the last cycle."""
        self.series_emitted.set(emitted)
        self.series_suppressed.set(suppressed)
        self.tracked_series.set(tracked)

    def exposition(self) -> bytes:
        """Render the registry in exposition format."""
        return generate_latest(self.registry)
