"""
Prometheus metrics for monitoring the alert relay.

Defines and exposes metrics for:
- Inbound warning events and their pipeline outcome
- Push notification delivery counts
- Cooldown store size and sweep activity
- Pipeline latency

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from alert_relay.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the alert relay.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_outcome("dispatched")
        metrics.record_delivery(succeeded=2, failed=0)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.events_received = Counter(
            "alert_relay_events_received_total",
            "Total warning events received from the event source",
        )

        self.event_outcomes = Counter(
            "alert_relay_event_outcomes_total",
            "Warning events by pipeline outcome",
            ["outcome"],  # dispatched, suppressed, dropped_malformed, ...
        )

        self.notifications_sent = Counter(
            "alert_relay_notifications_sent_total",
            "Push notifications accepted by the provider",
        )

        self.notifications_failed = Counter(
            "alert_relay_notifications_failed_total",
            "Push notifications rejected by the provider",
        )

        self.pipeline_latency = Histogram(
            "alert_relay_pipeline_latency_seconds",
            "Time to take a warning event through the pipeline",
            buckets=LATENCY_BUCKETS,
        )

        self.cooldown_entries = Gauge(
            "alert_relay_cooldown_entries",
            "Number of (device, category) entries held in the cooldown store",
        )

        self.cooldown_swept = Counter(
            "alert_relay_cooldown_swept_total",
            "Cooldown entries evicted by the janitor",
        )

        self.inflight_events = Gauge(
            "alert_relay_inflight_events",
            "Warning events currently being processed",
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        port = port or get_settings().metrics_port
        start_http_server(port)
        logger.info(f"Metrics server started on port {port}")

    def record_event_received(self) -> None:
        self.events_received.inc()

    def record_outcome(self, outcome: str, latency: float | None = None) -> None:
        """Record the terminal outcome of one warning event."""
        self.event_outcomes.labels(outcome=outcome).inc()
        if latency is not None:
            self.pipeline_latency.observe(latency)

    def record_delivery(self, succeeded: int, failed: int) -> None:
        """Record per-token multicast results."""
        if succeeded:
            self.notifications_sent.inc(succeeded)
        if failed:
            self.notifications_failed.inc(failed)

    def record_sweep(self, removed: int, remaining: int) -> None:
        if removed:
            self.cooldown_swept.inc(removed)
        self.cooldown_entries.set(remaining)

    def set_cooldown_entries(self, count: int) -> None:
        self.cooldown_entries.set(count)

    def set_inflight(self, count: int) -> None:
        self.inflight_events.set(count)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get or create the global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
