"""Tests for the Prometheus metrics collector."""

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from flndr.metrics.collector import ClientMetrics, MetricsCollector


class TestMetricsCollector:
    def test_own_registry(self) -> None:
        assert isinstance(MetricsCollector().registry, CollectorRegistry)

    def test_injected_registry(self) -> None:
        registry = CollectorRegistry()
        collector = MetricsCollector(registry)
        collector.counter("flndr_test_events", "doc").inc()
        assert registry.get_sample_value("flndr_test_events_total") == 1.0


class TestClientMetrics:
    def test_instances_do_not_collide(self) -> None:
        ClientMetrics()
        ClientMetrics()

    def test_track_request(self) -> None:
        metrics = ClientMetrics()
        with metrics.track_request("get_info"):
            pass
        count = metrics.registry.get_sample_value(
            "flndr_upstream_request_histogram_count", {"operation": "get_info"}
        )
        assert count == 1.0
        assert (
            metrics.registry.get_sample_value(
                "flndr_upstream_errors_total", {"operation": "get_info"}
            )
            is None
        )

    def test_track_request_counts_failures(self) -> None:
        metrics = ClientMetrics()
        with pytest.raises(RuntimeError), metrics.track_request("list_payments"):
            raise RuntimeError("boom")
        errors = metrics.registry.get_sample_value(
            "flndr_upstream_errors_total", {"operation": "list_payments"}
        )
        assert errors == 1.0

    def test_stream_counters(self) -> None:
        metrics = ClientMetrics()
        metrics.record_anomaly("payments", "duplicate_offset")
        metrics.record_reconnect()
        metrics.record_reconnect()
        metrics.record_message("invoice")
        metrics.set_active_connections(3)

        registry = metrics.registry
        assert (
            registry.get_sample_value(
                "flndr_pagination_anomalies_total",
                {"source": "payments", "kind": "duplicate_offset"},
            )
            == 1.0
        )
        assert registry.get_sample_value("flndr_reconnect_attempts_total") == 2.0
        assert registry.get_sample_value("flndr_stream_messages_total", {"event": "invoice"}) == 1.0
        assert registry.get_sample_value("flndr_active_connections") == 3.0
