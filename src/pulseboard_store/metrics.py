"""Prometheus metrics for the loading and caching layer.

One :class:`StoreMetrics` instance belongs to one store context and
registers its collectors on the registry it is given, so parallel sessions
and tests never share counters.

Examples
--------
>>> from prometheus_client import CollectorRegistry
>>> metrics = StoreMetrics.create(CollectorRegistry())
>>> metrics.memo_lookups.labels(loader="projects", outcome="miss").inc()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry

from pulseboard_common.prometheus import build_counter, build_histogram

if TYPE_CHECKING:
    from pulseboard_common.prometheus import CounterLike, HistogramLike

__all__ = ["StoreMetrics"]


@dataclass(frozen=True, slots=True)
class StoreMetrics:
    """Counters and histograms recorded by loaders and the grouped fetcher.

    Attributes
    ----------
    registry : CollectorRegistry
        Registry owning every collector below.
    memo_lookups : CounterLike
        Memo lookups by ``loader`` and ``outcome`` (``hit``/``miss``).
    fetch_failures : CounterLike
        Failed loads by ``loader`` and ``phase`` (``load``/``revalidate``/``write``).
    revalidations : CounterLike
        Revalidation outcomes by ``loader`` and ``outcome``
        (``unchanged``/``corrected``/``skipped``/``failed``).
    stale_results_discarded : CounterLike
        Results dropped because a newer load superseded them, by ``loader``.
    grouped_items : CounterLike
        Grouped-fetch items by ``outcome`` (``ok``/``failed``).
    fetch_latency_ms : HistogramLike
        Query latency in milliseconds by ``loader`` and ``phase``.
    """

    registry: CollectorRegistry
    memo_lookups: CounterLike
    fetch_failures: CounterLike
    revalidations: CounterLike
    stale_results_discarded: CounterLike
    grouped_items: CounterLike
    fetch_latency_ms: HistogramLike

    @classmethod
    def create(cls, registry: CollectorRegistry | None = None) -> StoreMetrics:
        """Build the collectors on ``registry`` (a fresh registry when omitted)."""
        registry = registry if registry is not None else CollectorRegistry()
        return cls(
            registry=registry,
            memo_lookups=build_counter(
                "pulseboard_memo_lookups_total",
                "Memoized loader lookups",
                ("loader", "outcome"),
                registry=registry,
            ),
            fetch_failures=build_counter(
                "pulseboard_fetch_failures_total",
                "Queries that rejected or returned an error payload",
                ("loader", "phase"),
                registry=registry,
            ),
            revalidations=build_counter(
                "pulseboard_revalidations_total",
                "Background revalidation outcomes",
                ("loader", "outcome"),
                registry=registry,
            ),
            stale_results_discarded=build_counter(
                "pulseboard_stale_results_discarded_total",
                "Load results dropped because a newer load superseded them",
                ("loader",),
                registry=registry,
            ),
            grouped_items=build_counter(
                "pulseboard_grouped_fetch_items_total",
                "Per-item related-entity fetches",
                ("outcome",),
                registry=registry,
            ),
            fetch_latency_ms=build_histogram(
                "pulseboard_fetch_latency_ms",
                "Query latency in milliseconds",
                ("loader", "phase"),
                registry=registry,
            ),
        )
