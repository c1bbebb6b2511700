"""Metrics — Prometheus metrics collection."""

from __future__ import annotations

from flndr.metrics.collector import ClientMetrics, MetricsCollector

__all__ = ["ClientMetrics", "MetricsCollector"]
