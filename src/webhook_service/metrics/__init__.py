"""Metrics — Prometheus metrics collection and exposure."""

from __future__ import annotations

from webhook_service.metrics.collector import EngineMetrics, MetricsCollector

__all__ = ["EngineMetrics", "MetricsCollector"]
