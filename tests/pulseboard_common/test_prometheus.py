"""Tests for pulseboard_common.prometheus."""

from __future__ import annotations

from prometheus_client import REGISTRY, CollectorRegistry

from pulseboard_common.prometheus import (
    LATENCY_BUCKETS_MS,
    build_counter,
    build_histogram,
    get_default_registry,
)


class TestBuilders:
    """Tests for the typed collector builders."""

    def test_counter_increments(self) -> None:
        """Counters register on the given registry."""
        registry = CollectorRegistry()
        counter = build_counter("demo_total", "Demo", ("outcome",), registry=registry)

        counter.labels(outcome="ok").inc()
        counter.labels(outcome="ok").inc(2)

        assert registry.get_sample_value("demo_total", {"outcome": "ok"}) == 3

    def test_duplicate_registration_returns_existing(self) -> None:
        """Building the same collector twice yields the registered one."""
        registry = CollectorRegistry()
        first = build_counter("demo_total", "Demo", registry=registry)
        second = build_counter("demo_total", "Demo", registry=registry)
        assert first is second

        hist = build_histogram("demo_ms", "Demo", registry=registry)
        assert build_histogram("demo_ms", "Demo", registry=registry) is hist

    def test_histogram_uses_millisecond_buckets(self) -> None:
        """The default buckets cover 1 ms to 5 s."""
        registry = CollectorRegistry()
        histogram = build_histogram("demo_latency_ms", "Demo", registry=registry)

        histogram.observe(3)

        assert registry.get_sample_value("demo_latency_ms_bucket", {"le": "5.0"}) == 1
        assert registry.get_sample_value("demo_latency_ms_count", {}) == 1
        assert LATENCY_BUCKETS_MS[0] == 1

    def test_default_registry(self) -> None:
        """The default registry is the process registry."""
        assert get_default_registry() is REGISTRY
