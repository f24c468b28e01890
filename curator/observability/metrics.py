"""
Prometheus metrics for monitoring curation runs.

Defines and exposes metrics for:
- Curation run outcomes and duration
- Per-source fetch outcomes
- Items curated and persisted
- Rate-limited API calls consumed

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    start_http_server,
)

from curator.config.settings import get_settings

logger = logging.getLogger(__name__)

# Curation runs include politeness delays, so buckets reach into minutes
RUN_DURATION_BUCKETS = (1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 900.0, 1800.0, 3600.0)


class CurationMetrics:
    """
    Prometheus metrics collector for the curation engine.

    Each instance owns its collectors on the given registry, so tests can
    pass a fresh CollectorRegistry instead of touching the global one.

    Usage:
        metrics = CurationMetrics()
        metrics.start_server()

        metrics.record_source_fetch("feed", "success")
        metrics.runs.labels(status="done").inc()
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self._registry = registry if registry is not None else REGISTRY

        self.runs = Counter(
            "curator_runs_total",
            "Total curation runs",
            ["status"],  # done, failed
            registry=self._registry,
        )

        self.source_fetches = Counter(
            "curator_source_fetches_total",
            "Per-source fetch attempts by outcome",
            ["kind", "outcome"],  # kind: feed, social; outcome: success, error
            registry=self._registry,
        )

        self.items_curated = Counter(
            "curator_items_curated_total",
            "Normalized content items produced",
            ["kind"],
            registry=self._registry,
        )

        self.items_saved = Counter(
            "curator_items_saved_total",
            "Content items persisted",
            ["outcome"],  # saved, duplicate, error
            registry=self._registry,
        )

        self.quota_calls = Counter(
            "curator_quota_calls_total",
            "Rate-limited platform calls recorded against the daily quota",
            registry=self._registry,
        )

        self.run_duration = Histogram(
            "curator_run_duration_seconds",
            "Wall-clock duration of a curation run",
            buckets=RUN_DURATION_BUCKETS,
            registry=self._registry,
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=self._registry)
        logger.info(f"Prometheus metrics server started on port {port}")

    def record_source_fetch(self, kind: str, outcome: str, items: int = 0) -> None:
        """Record one source fetch and the items it produced."""
        self.source_fetches.labels(kind=kind, outcome=outcome).inc()
        if items:
            self.items_curated.labels(kind=kind).inc(items)

    def record_run(self, status: str, elapsed_seconds: float) -> None:
        """Record a finished curation run."""
        self.runs.labels(status=status).inc()
        self.run_duration.observe(elapsed_seconds)
