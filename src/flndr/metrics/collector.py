"""Metrics collector — Prometheus counters, gauges, histograms.

Client-side metrics for the LND client:
- ``flndr_upstream_request_histogram`` (per operation)
- ``flndr_upstream_errors_total`` (per operation)
- ``flndr_pagination_anomalies_total`` (per source and anomaly kind)
- ``flndr_reconnect_attempts_total``
- ``flndr_stream_messages_total`` (per emitted event)
- ``flndr_active_connections``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator


_PREFIX = "flndr"


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`ClientMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        """Register and return a Gauge."""
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class ClientMetrics:
    """High-level metrics for one client instance.

    Each instance registers into its own registry unless a collector is
    passed in, so several clients never collide on metric names.
    """

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._upstream = self._collector.histogram(
            f"{_PREFIX}_upstream_request_histogram",
            "Duration of LND REST calls",
            ("operation",),
        )
        self._upstream_errors = self._collector.counter(
            f"{_PREFIX}_upstream_errors",
            "Failed LND REST calls",
            ("operation",),
        )
        self._anomalies = self._collector.counter(
            f"{_PREFIX}_pagination_anomalies",
            "Pagination loops broken by the loop guard",
            ("source", "kind"),
        )
        self._reconnects = self._collector.counter(
            f"{_PREFIX}_reconnect_attempts",
            "Scheduled subscription reconnect attempts",
        )
        self._messages = self._collector.counter(
            f"{_PREFIX}_stream_messages",
            "Events emitted from subscription sockets",
            ("event",),
        )
        self._active = self._collector.gauge(
            f"{_PREFIX}_active_connections",
            "Subscription sockets currently open",
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    @contextmanager
    def track_request(self, operation: str) -> Iterator[None]:
        """Track the duration of an upstream call, counting failures."""
        start = time.monotonic()
        try:
            yield
        except Exception:
            self._upstream_errors.labels(operation=operation).inc()
            raise
        finally:
            self._upstream.labels(operation=operation).observe(time.monotonic() - start)

    def record_anomaly(self, source: str, kind: str) -> None:
        """Count a duplicate-offset or max-iteration break."""
        self._anomalies.labels(source=source, kind=kind).inc()

    def record_reconnect(self) -> None:
        """Count a scheduled reconnect."""
        self._reconnects.inc()

    def record_message(self, event: str) -> None:
        """Count an event decoded from a socket frame."""
        self._messages.labels(event=event).inc()

    def set_active_connections(self, count: int) -> None:
        """Set the number of open subscription sockets."""
        self._active.set(count)
