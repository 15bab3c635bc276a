"""Concurrent per-item fetch of related entities.

Table views show, for every row, the entities referenced by that row (for a
project: its collaborators' profiles). :class:`GroupedFetcher` fetches those
for a whole batch of rows at once and commits the results into an
observable mapping keyed by row identifier.

A missing key in :attr:`GroupedFetcher.results` means "not fetched yet"; a
key mapped to an empty list means "fetched, nothing found" (or the fetch for
that row failed).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from pulseboard_common.logging import get_logger
from pulseboard_store.query import QueryResult
from pulseboard_store.slot import ObservableSlot

if TYPE_CHECKING:
    from pulseboard_store.metrics import StoreMetrics

__all__ = ["GroupedFetcher", "GroupedResult", "RelatedFetch"]

logger = get_logger(__name__)

type GroupedResult[R] = dict[str, list[R]]
type RelatedFetch[R] = Callable[[Sequence[Any]], Awaitable[QueryResult[Sequence[R]]]]


def _field(item: object, name: str) -> Any:  # noqa: ANN401
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


class GroupedFetcher[R]:
    """Fetch related entities for many items concurrently, commit once per batch.

    Parameters
    ----------
    fetch_related : RelatedFetch[R]
        Fetches the related entities for one list of related identifiers.
    metrics : StoreMetrics | None, optional
        Metrics to record into. Defaults to None.
    id_field : str, optional
        Item attribute holding its identifier. Defaults to ``"id"``.
    related_field : str, optional
        Item attribute holding the related identifiers. Defaults to
        ``"collaborators"``.
    """

    def __init__(
        self,
        fetch_related: RelatedFetch[R],
        *,
        metrics: StoreMetrics | None = None,
        id_field: str = "id",
        related_field: str = "collaborators",
    ) -> None:
        self._fetch_related = fetch_related
        self._metrics = metrics
        self.id_field = id_field
        self.related_field = related_field
        self.results: ObservableSlot[GroupedResult[R]] = ObservableSlot("grouped")
        self._background: set[asyncio.Task[None]] = set()

    def get(self, item_id: object) -> list[R] | None:
        """Return the related entities for ``item_id``, or None if not fetched."""
        current = self.results.get()
        if current is None:
            return None
        return current.get(str(item_id))

    async def fetch_grouped_for(self, items: Sequence[object]) -> None:
        """Fetch related entities for every item that references any.

        Items whose related list is empty are skipped entirely (no fetch, no
        entry). The remaining fetches run concurrently; once all have settled
        the results are committed to :attr:`results` in a single update, in
        the order of the filtered items. A failed fetch yields an empty list
        for its item and does not affect the others.
        """
        pending = [item for item in items if _field(item, self.related_field)]
        if not pending:
            return

        outcomes = await asyncio.gather(
            *(self._fetch_one(item) for item in pending), return_exceptions=True
        )

        batch: GroupedResult[R] = {}
        for item, outcome in zip(pending, outcomes, strict=True):
            item_id = str(_field(item, self.id_field))
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                self._degrade(item_id, str(outcome), type(outcome).__name__)
                batch[item_id] = []
            elif outcome.error is not None:
                self._degrade(item_id, str(outcome.error), "QueryResult.error")
                batch[item_id] = []
            else:
                self._count("ok")
                batch[item_id] = list(outcome.data or ())

        self.results.set({**(self.results.get() or {}), **batch})
        logger.debug(
            "Grouped batch committed",
            extra={"operation": "fetch_grouped_for", "items": len(batch)},
        )

    async def _fetch_one(self, item: object) -> QueryResult[Sequence[R]]:
        return await self._fetch_related(list(_field(item, self.related_field)))

    def schedule(self, items: Sequence[object]) -> asyncio.Task[None] | None:
        """Start :meth:`fetch_grouped_for` in the background and return its task.

        Returns None without scheduling anything when no item references
        related entities.
        """
        if not any(_field(item, self.related_field) for item in items):
            return None
        task = asyncio.get_running_loop().create_task(self.fetch_grouped_for(list(items)))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every scheduled batch to finish."""
        while self._background:
            await asyncio.wait(tuple(self._background))

    async def aclose(self) -> None:
        """Cancel scheduled batches."""
        pending = tuple(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)

    def _degrade(self, item_id: str, detail: str, error_type: str) -> None:
        self._count("failed")
        logger.warning(
            "Related fetch failed; showing no related entities",
            extra={
                "operation": "fetch_grouped_for",
                "item_id": item_id,
                "error_type": error_type,
                "error_detail": detail,
            },
        )

    def _count(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.grouped_items.labels(outcome=outcome).inc()
