"""Typed Prometheus helpers.

The builders consolidate :mod:`prometheus_client` construction behind typed
signatures and always take an explicit registry so every store context can
own an isolated set of metrics.

Examples
--------
>>> from prometheus_client import CollectorRegistry
>>> from pulseboard_common.prometheus import build_counter
>>> registry = CollectorRegistry()
>>> counter = build_counter("example_total", "Example operations", ("status",), registry=registry)
>>> counter.labels(status="success").inc()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, cast

from prometheus_client import REGISTRY, Counter, Histogram

if TYPE_CHECKING:
    from collections.abc import Sequence

    from prometheus_client.registry import CollectorRegistry

__all__ = [
    "LATENCY_BUCKETS_MS",
    "CounterLike",
    "HistogramLike",
    "build_counter",
    "build_histogram",
    "get_default_registry",
]

LATENCY_BUCKETS_MS: tuple[float, ...] = (1, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000)


class CounterLike(Protocol):
    """Protocol describing Prometheus counter behaviour relied upon."""

    def labels(self, *labelvalues: str, **labelkwargs: str) -> CounterLike:
        """Return a counter labelled with the provided fields."""
        ...

    def inc(self, amount: float = 1.0) -> None:
        """Increment the counter by ``amount``."""
        ...


class HistogramLike(Protocol):
    """Protocol describing Prometheus histogram behaviour relied upon."""

    def labels(self, *labelvalues: str, **labelkwargs: str) -> HistogramLike:
        """Return a histogram labelled with the provided fields."""
        ...

    def observe(self, amount: float) -> None:
        """Record an observation of ``amount``."""
        ...


def _existing_collector(name: str, registry: CollectorRegistry) -> object | None:
    """Return the collector already registered under ``name``, if any."""
    names_to_collectors = getattr(registry, "_names_to_collectors", None)
    if isinstance(names_to_collectors, dict):
        return names_to_collectors.get(name)
    return None


def get_default_registry() -> CollectorRegistry:
    """Return the process-wide Prometheus registry."""
    return REGISTRY


def build_counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] = (),
    *,
    registry: CollectorRegistry,
) -> CounterLike:
    """Create a counter registered on ``registry``.

    Parameters
    ----------
    name : str
        Metric name (``_total`` is appended by the client when missing).
    documentation : str
        Help text.
    labelnames : Sequence[str], optional
        Label names. Defaults to no labels.
    registry : CollectorRegistry
        Registry that owns the metric.

    Returns
    -------
    CounterLike
        The registered counter, or the one already registered under
        ``name`` (so several store contexts can share the process registry).
    """
    try:
        return Counter(name, documentation, labelnames=tuple(labelnames), registry=registry)
    except ValueError:
        existing = _existing_collector(name, registry)
        if existing is None:
            raise
        return cast("CounterLike", existing)


def build_histogram(
    name: str,
    documentation: str,
    labelnames: Sequence[str] = (),
    *,
    registry: CollectorRegistry,
    buckets: Sequence[float] = LATENCY_BUCKETS_MS,
) -> HistogramLike:
    """Create a histogram registered on ``registry`` (millisecond buckets by default)."""
    try:
        return Histogram(
            name,
            documentation,
            labelnames=tuple(labelnames),
            registry=registry,
            buckets=tuple(buckets),
        )
    except ValueError:
        existing = _existing_collector(name, registry)
        if existing is None:
            raise
        return cast("HistogramLike", existing)
