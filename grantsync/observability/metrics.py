"""
Prometheus metrics for monitoring catalog sync and matching.

Defines and exposes metrics for:
- Sync runs and per-source outcomes
- Programs upserted per source
- Outbound API retries
- Matching runs and latency

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from grantsync.config.settings import get_settings
from grantsync.ingestion.schemas import DataSource

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

# Sync passes are dominated by remote API latency and retry sleeps
SYNC_BUCKETS = (1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0)


def _source_label(data_source: DataSource | str) -> str:
    return data_source.value if isinstance(data_source, DataSource) else data_source


class MetricsCollector:
    """
    Prometheus metrics collector for grantsync.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_source_sync("K-Startup", success=True, count=50, duration=3.2)
        metrics.record_matching("computed", latency=0.12)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.sync_runs = Counter(
            "grantsync_sync_runs_total",
            "Total sync runs across all sources",
        )

        self.source_syncs = Counter(
            "grantsync_source_sync_total",
            "Per-source sync attempts",
            ["data_source", "status"],  # status: success, failed
        )

        self.programs_upserted = Counter(
            "grantsync_programs_upserted_total",
            "Programs written to the catalog",
            ["data_source"],
        )

        self.programs_skipped = Counter(
            "grantsync_programs_skipped_total",
            "Raw records skipped during normalization or upsert",
            ["data_source", "reason"],
        )

        self.sync_duration = Histogram(
            "grantsync_sync_duration_seconds",
            "Time to sync one source",
            ["data_source"],
            buckets=SYNC_BUCKETS,
        )

        self.api_retries = Counter(
            "grantsync_api_retries_total",
            "Retried outbound API calls",
            ["data_source"],
        )

        self.last_sync_success = Gauge(
            "grantsync_last_sync_success",
            "Outcome of the latest sync per source (1=success, 0=failed)",
            ["data_source"],
        )

        self.matching_runs = Counter(
            "grantsync_matching_runs_total",
            "Matching requests by how they were served",
            ["mode"],  # cached, computed
        )

        self.matching_latency = Histogram(
            "grantsync_matching_latency_seconds",
            "Time to serve a matching request",
            ["mode"],
            buckets=LATENCY_BUCKETS,
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_source_sync(
        self,
        data_source: DataSource | str,
        success: bool,
        count: int = 0,
        duration: float | None = None,
    ) -> None:
        """
        Record the outcome of one per-source sync attempt.

        Args:
            data_source: Source that was synced
            success: Whether the source completed without error
            count: Number of programs upserted
            duration: Optional wall time in seconds
        """
        label = _source_label(data_source)
        status = "success" if success else "failed"
        self.source_syncs.labels(data_source=label, status=status).inc()
        self.last_sync_success.labels(data_source=label).set(1 if success else 0)

        if count:
            self.programs_upserted.labels(data_source=label).inc(count)

        if duration is not None:
            self.sync_duration.labels(data_source=label).observe(duration)

    def record_skipped(self, data_source: DataSource | str, reason: str) -> None:
        """Record a raw record that did not make it into the catalog."""
        self.programs_skipped.labels(
            data_source=_source_label(data_source),
            reason=reason,
        ).inc()

    def record_retry(self, data_source: DataSource | str) -> None:
        """Record one retried outbound call."""
        self.api_retries.labels(data_source=_source_label(data_source)).inc()

    def record_matching(self, mode: str, latency: float | None = None) -> None:
        """
        Record a matching request.

        Args:
            mode: "cached" or "computed"
            latency: Optional latency in seconds
        """
        self.matching_runs.labels(mode=mode).inc()
        if latency is not None:
            self.matching_latency.labels(mode=mode).observe(latency)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
