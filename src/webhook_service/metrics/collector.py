"""Metrics collector — Prometheus counters, gauges, histograms.

Exposed series:
- ``webhook_deliveries_total`` counter (outcome: delivered, failed, exhausted)
- ``webhook_delivery_duration_seconds`` histogram
- ``webhook_dispatch_skipped_total`` counter (reason: rate_limited, error)
- ``webhook_incoming_total`` counter (provider, result)
- ``webhook_pool_dropped_total`` counter (pool)
- ``webhook_cron_histogram`` / ``webhook_cron_last_execution_gauge``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator


_PREFIX = "webhook"


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`EngineMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        return Counter(name, doc, labels, registry=self._registry)


class EngineMetrics:
    """High-level webhook engine metrics."""

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._deliveries = self._collector.counter(
            f"{_PREFIX}_deliveries_total",
            "Outbound delivery attempts by outcome",
            ("outcome",),
        )
        self._delivery_duration = self._collector.histogram(
            f"{_PREFIX}_delivery_duration_seconds",
            "Round trip of outbound delivery attempts",
        )
        self._dispatch_skipped = self._collector.counter(
            f"{_PREFIX}_dispatch_skipped_total",
            "Endpoints skipped during dispatch",
            ("reason",),
        )
        self._incoming = self._collector.counter(
            f"{_PREFIX}_incoming_total",
            "Inbound provider webhooks by result",
            ("provider", "result"),
        )
        self._pool_dropped = self._collector.counter(
            f"{_PREFIX}_pool_dropped_total",
            "Submissions dropped because a worker pool queue was full",
            ("pool",),
        )

        # Cron metrics
        self._cron_histogram = self._collector.histogram(
            f"{_PREFIX}_cron_histogram",
            "Duration of cron job executions",
            ("job_name",),
        )
        self._cron_last = self._collector.gauge(
            f"{_PREFIX}_cron_last_execution_gauge",
            "Timestamp of last cron execution",
            ("job_name",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._collector.registry

    # -- Counters --

    def record_delivery(self, outcome: str) -> None:
        """Count one finished attempt (``delivered``, ``failed`` or ``exhausted``)."""
        self._deliveries.labels(outcome=outcome).inc()

    def record_dispatch_skip(self, reason: str) -> None:
        self._dispatch_skipped.labels(reason=reason).inc()

    def record_incoming(self, provider: str, result: str) -> None:
        self._incoming.labels(provider=provider, result=result).inc()

    def record_pool_drop(self, pool: str) -> None:
        self._pool_dropped.labels(pool=pool).inc()

    # -- Operation trackers (context managers) --

    @contextmanager
    def track_delivery(self) -> Iterator[None]:
        """Track the duration of one outbound HTTP attempt."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._delivery_duration.observe(time.monotonic() - start)

    @contextmanager
    def track_cron(self, job_name: str) -> Iterator[None]:
        """Track the duration of a cron job and record last execution time."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._cron_histogram.labels(job_name=job_name).observe(time.monotonic() - start)
            self._cron_last.labels(job_name=job_name).set(time.time())
