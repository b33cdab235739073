"""
Prometheus metrics for the polling and dispatch engine.

Defines and exposes metrics for:
- Sweep outcomes and latency per platform
- Per-target check results
- Webhook delivery outcomes
- Credential failovers and exhaustion
- Scheduler running state

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

from feedwatch.config.settings import get_settings

logger = logging.getLogger(__name__)

# Sweeps make several upstream calls per target, so buckets reach further
# than a single request would need.
SWEEP_LATENCY_BUCKETS = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0)


def _label(platform) -> str:
    # Accepts Platform enum members or plain strings
    return getattr(platform, "value", platform)


class MetricsCollector:
    """
    Prometheus metrics collector for feedwatch.

    Usage:
        metrics = get_metrics()
        metrics.record_sweep("video-feed", "completed", latency=1.2)
        metrics.record_delivery("live-stream", "success")
    """

    def __init__(self):
        self.sweeps = Counter(
            "feedwatch_sweeps_total",
            "Sweeps by platform and outcome",
            ["platform", "outcome"],  # completed, skipped_overlap, unconfigured, abandoned, failed
        )

        self.sweep_latency = Histogram(
            "feedwatch_sweep_latency_seconds",
            "Wall-clock duration of a full sweep",
            ["platform"],
            buckets=SWEEP_LATENCY_BUCKETS,
        )

        self.targets_checked = Counter(
            "feedwatch_targets_checked_total",
            "Per-target check results",
            ["platform", "result"],  # novel, unchanged, absent, error, denied
        )

        self.deliveries = Counter(
            "feedwatch_deliveries_total",
            "Webhook delivery attempts",
            ["platform", "status"],  # success, error
        )

        self.credential_failovers = Counter(
            "feedwatch_credential_failovers_total",
            "Credential failovers inside one resolution",
            ["upstream", "reason"],  # capacity, transient
        )

        self.credential_exhaustions = Counter(
            "feedwatch_credential_exhaustions_total",
            "Resolutions where every credential failed",
            ["upstream"],
        )

        self.scheduler_running = Gauge(
            "feedwatch_scheduler_running",
            "Scheduler state (1=running, 0=idle)",
            ["platform"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """Start Prometheus metrics HTTP server (port defaults to settings)."""
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_sweep(
        self,
        platform,
        outcome: str,
        latency: float | None = None,
    ) -> None:
        self.sweeps.labels(platform=_label(platform), outcome=outcome).inc()
        if latency is not None:
            self.sweep_latency.labels(platform=_label(platform)).observe(latency)

    def record_target(self, platform, result: str, count: int = 1) -> None:
        self.targets_checked.labels(platform=_label(platform), result=result).inc(count)

    def record_delivery(self, platform, status: str) -> None:
        self.deliveries.labels(platform=_label(platform), status=status).inc()

    def record_failover(self, upstream: str, reason: str) -> None:
        self.credential_failovers.labels(upstream=upstream, reason=reason).inc()

    def record_exhaustion(self, upstream: str) -> None:
        self.credential_exhaustions.labels(upstream=upstream).inc()

    def set_scheduler_running(self, platform, running: bool) -> None:
        self.scheduler_running.labels(platform=_label(platform)).set(1 if running else 0)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
