"""Tests for pulseboard_store.metrics."""

from __future__ import annotations

from prometheus_client import CollectorRegistry

from pulseboard_store.metrics import StoreMetrics


class TestStoreMetrics:
    """Tests for StoreMetrics."""

    def test_instances_are_isolated(self) -> None:
        """Separate registries keep separate counts."""
        first = StoreMetrics.create(CollectorRegistry())
        second = StoreMetrics.create(CollectorRegistry())

        first.memo_lookups.labels(loader="projects", outcome="hit").inc()

        labels = {"loader": "projects", "outcome": "hit"}
        assert first.registry.get_sample_value("pulseboard_memo_lookups_total", labels) == 1
        assert second.registry.get_sample_value("pulseboard_memo_lookups_total", labels) is None

    def test_default_registry_is_private(self) -> None:
        """create() without a registry builds a fresh one."""
        assert StoreMetrics.create().registry is not StoreMetrics.create().registry

    def test_latency_histogram_buckets(self) -> None:
        """Latency is recorded in millisecond buckets."""
        metrics = StoreMetrics.create(CollectorRegistry())

        metrics.fetch_latency_ms.labels(loader="project", phase="load").observe(12)

        value = metrics.registry.get_sample_value(
            "pulseboard_fetch_latency_ms_bucket",
            {"loader": "project", "phase": "load", "le": "25.0"},
        )
        assert value == 1
