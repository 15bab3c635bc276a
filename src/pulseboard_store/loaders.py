"""Entity loaders: memoized fetch, observable slot, background revalidation.

Two variants share one engine:

* :class:`CollectionLoader` loads a whole collection under a fixed memo key
  (:meth:`CollectionLoader.get_all`).
* :class:`ItemLoader` loads one item per key (:meth:`ItemLoader.get_one`) and
  writes partial updates back (:meth:`ItemLoader.update_one`).

Every load empties the slot first, serves the memoized result, then starts a
background :meth:`revalidate` that re-runs the query without the memo and
replaces the slot value (and drops the memo entry) only if the fresh payload
differs. Loads carry a generation number; a result whose generation has been
superseded by a later load or optimistic update is discarded instead of
overwriting the slot, and a superseded failure is not reported. Data failures
are reported to the error sink and never raised.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from pydantic import BaseModel

from pulseboard_common.errors import (
    ConfigurationError,
    ErrorCode,
    FetchError,
    PulseboardError,
    WriteError,
)
from pulseboard_common.logging import get_logger
from pulseboard_store.equality import payloads_equal
from pulseboard_store.memo import KeyedMemoAsync
from pulseboard_store.query import QueryResult, QuerySource, WriteOperation, run_query
from pulseboard_store.slot import ObservableSlot

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from pulseboard_common.settings import CacheConfig
    from pulseboard_store.metrics import StoreMetrics
    from pulseboard_store.query import ByKey, Fixed
    from pulseboard_store.sink import ErrorSink

__all__ = [
    "COLLECTION_KEY",
    "CollectionLoader",
    "ItemLoader",
    "LoaderOptions",
]

logger = get_logger(__name__)

COLLECTION_KEY: Final[str] = "all"


@dataclass(frozen=True, slots=True)
class LoaderOptions:
    """Per-loader cache behaviour.

    Attributes
    ----------
    revalidate : bool
        Start a background revalidation after every load.
    invalidate_on_error : bool
        Drop the memo entry of a failed load so the next load retries.
    version_field : str | None
        Field compared instead of the whole payload during revalidation.
    """

    revalidate: bool = True
    invalidate_on_error: bool = True
    version_field: str | None = None

    @classmethod
    def from_config(cls, config: CacheConfig) -> LoaderOptions:
        return cls(
            revalidate=config.revalidate,
            invalidate_on_error=config.invalidate_on_error,
            version_field=config.version_field,
        )


def _apply_fields(current: object, fields: Mapping[str, Any]) -> object:
    if isinstance(current, BaseModel):
        return current.model_copy(update=dict(fields))
    if isinstance(current, Mapping):
        return {**current, **fields}
    message = f"Cannot apply a partial update to {type(current).__name__}"
    raise TypeError(message)


def _status_of(exc: BaseException) -> int:
    if isinstance(exc, PulseboardError):
        return exc.http_status
    return 500


class _EntityLoader[K: Hashable, T]:
    """Shared engine for both loader variants."""

    def __init__(
        self,
        name: str,
        source: QuerySource[K, T],
        *,
        sink: ErrorSink,
        metrics: StoreMetrics | None = None,
        options: LoaderOptions | None = None,
    ) -> None:
        self.name = name
        self.slot: ObservableSlot[T] = ObservableSlot(name)
        self._source = source
        self._sink = sink
        self._metrics = metrics
        self._options = options if options is not None else LoaderOptions()
        self._memo: KeyedMemoAsync[K, QueryResult[T]] = KeyedMemoAsync(
            self._fetch_for_memo, name=name
        )
        self._generation = 0
        self._current_key: K | None = None
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def memo(self) -> KeyedMemoAsync[K, QueryResult[T]]:
        return self._memo

    @property
    def generation(self) -> int:
        """Number of loads and optimistic updates started so far.

        Results fetched under an older generation never touch the slot.
        """
        return self._generation

    @property
    def current_key(self) -> K | None:
        """Key of the most recent load, or None before the first load."""
        return self._current_key

    async def _fetch(self, key: K, phase: str) -> QueryResult[T]:
        start = time.perf_counter()
        try:
            return await run_query(self._source, key)
        finally:
            if self._metrics is not None:
                self._metrics.fetch_latency_ms.labels(loader=self.name, phase=phase).observe(
                    (time.perf_counter() - start) * 1000
                )

    async def _fetch_for_memo(self, key: K) -> QueryResult[T]:
        return await self._fetch(key, "load")

    def _start_load(self, key: K) -> Coroutine[Any, Any, None]:
        self._generation += 1
        self._current_key = key
        self.slot.reset()
        return self._settle(key, self._generation)

    async def _settle(self, key: K, generation: int) -> None:
        hit = key in self._memo
        if self._metrics is not None:
            self._metrics.memo_lookups.labels(
                loader=self.name, outcome="hit" if hit else "miss"
            ).inc()
        task = self._memo.call(key)
        try:
            result = await task
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - every query failure goes to the sink
            self._forget_failed(key, task)
            if generation != self._generation:
                self._discard_stale(key, "load")
                return
            self._report_fetch_failure(key, "load", exc=exc)
        else:
            if generation != self._generation:
                if result.error is not None:
                    self._forget_failed(key, task)
                self._discard_stale(key, "load")
                return
            if result.error is not None:
                self._report_fetch_failure(key, "load", result=result)
                self._forget_failed(key, task)
            elif result.data is not None:
                self.slot.set(result.data)
                logger.debug(
                    "Slot populated",
                    extra={"operation": "load", "loader": self.name, "memo_hit": hit},
                )
        if generation == self._generation:
            self._schedule_revalidate()

    async def revalidate(self) -> bool:
        """Re-run the query for the loaded key without the memo.

        Does nothing when the slot is empty. When the fresh payload differs
        from the slot value, the memo entry for the key is dropped and the
        slot takes the fresh payload.

        Returns
        -------
        bool
            True when the slot was corrected.
        """
        if self.slot.is_empty or self._current_key is None:
            self._count_revalidation("skipped")
            return False
        key = self._current_key
        generation = self._generation
        try:
            result = await self._fetch(key, "revalidate")
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - every query failure goes to the sink
            if generation != self._generation:
                self._discard_stale(key, "revalidate")
                return False
            self._report_fetch_failure(key, "revalidate", exc=exc)
            self._count_revalidation("failed")
            return False
        if generation != self._generation:
            self._discard_stale(key, "revalidate")
            return False
        if result.error is not None:
            self._report_fetch_failure(key, "revalidate", result=result)
            self._count_revalidation("failed")
            return False
        current = self.slot.get()
        if current is None:
            self._count_revalidation("skipped")
            return False
        if result.data is not None and payloads_equal(
            current, result.data, version_field=self._options.version_field
        ):
            self._count_revalidation("unchanged")
            return False

        self._memo.invalidate(key)
        if result.data is None:
            self.slot.reset()
        else:
            self.slot.set(result.data)
        self._count_revalidation("corrected")
        logger.info(
            "Stale data corrected",
            extra={"operation": "revalidate", "loader": self.name, "key": str(key)},
        )
        return True

    def _schedule_revalidate(self, *, force: bool = False) -> None:
        if not force and not self._options.revalidate:
            return
        self._track(asyncio.get_running_loop().create_task(self.revalidate()))

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.log_failure(
                "Background revalidation crashed",
                exception=task.exception(),
                operation="revalidate",
                loader=self.name,
            )

    async def wait_idle(self) -> None:
        """Wait until every background revalidation started so far has finished."""
        while self._background:
            await asyncio.wait(tuple(self._background))

    async def aclose(self) -> None:
        """Cancel background work and drop every memo entry."""
        pending = tuple(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
        self._memo.invalidate()

    def _report_fetch_failure(
        self,
        key: K,
        phase: str,
        *,
        result: QueryResult[T] | None = None,
        exc: BaseException | None = None,
    ) -> None:
        if result is not None:
            detail = str(result.error)
            status = result.status
        else:
            detail = str(exc)
            status = _status_of(exc) if exc is not None else 500
        code = ErrorCode.FETCH_FAILED if phase == "load" else ErrorCode.REVALIDATE_FAILED
        error = FetchError(
            f"{self.name} {phase} failed: {detail}",
            code=code,
            http_status=status,
            cause=exc,
            context={"loader": self.name, "key": str(key), "phase": phase, "status": status},
        )
        if self._metrics is not None:
            self._metrics.fetch_failures.labels(loader=self.name, phase=phase).inc()
        self._sink.report(error, status)

    def _forget_failed(self, key: K, task: asyncio.Task[QueryResult[T]]) -> None:
        if not self._options.invalidate_on_error:
            return
        entry = self._memo.entry(key)
        if entry is not None and entry.task is task:
            self._memo.invalidate(key)

    def _discard_stale(self, key: K, phase: str) -> None:
        if self._metrics is not None:
            self._metrics.stale_results_discarded.labels(loader=self.name).inc()
        logger.debug(
            "Superseded result discarded",
            extra={"operation": phase, "loader": self.name, "key": str(key)},
        )

    def _count_revalidation(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.revalidations.labels(loader=self.name, outcome=outcome).inc()


class CollectionLoader[T](_EntityLoader[str, T]):
    """Loader for a whole collection memoized under one fixed key.

    Parameters
    ----------
    name : str
        Loader name used for the slot, memo, logs and metric labels.
    source : Fixed[T] | ByKey[str, T]
        Collection query. A :class:`~pulseboard_store.query.ByKey` source is
        called with ``key``.
    sink : ErrorSink
        Receives load failures.
    metrics : StoreMetrics | None, optional
        Metrics to record into. Defaults to None (no metrics).
    options : LoaderOptions | None, optional
        Cache behaviour. Defaults to :class:`LoaderOptions` defaults.
    key : str, optional
        Memo key of the collection. Defaults to :data:`COLLECTION_KEY`.
    """

    def __init__(  # noqa: PLR0913
        self,
        name: str,
        source: Fixed[T] | ByKey[str, T],
        *,
        sink: ErrorSink,
        metrics: StoreMetrics | None = None,
        options: LoaderOptions | None = None,
        key: str = COLLECTION_KEY,
    ) -> None:
        super().__init__(name, source, sink=sink, metrics=metrics, options=options)
        self.key = key

    def get_all(self) -> Coroutine[Any, Any, None]:
        """Empty the slot, load the collection into it, then revalidate in the background.

        The slot is emptied when this is called; the returned coroutine
        settles the load.
        """
        return self._start_load(self.key)


class ItemLoader[K: Hashable, T](_EntityLoader[K, T]):
    """Loader for single items looked up by key.

    Parameters
    ----------
    name : str
        Loader name used for the slot, memo, logs and metric labels.
    source : ByKey[K, T]
        Single-item query.
    sink : ErrorSink
        Receives load and write failures.
    write : WriteOperation | None, optional
        Partial-update operation ``(fields, identifier)``. Required by
        :meth:`update_one`. Defaults to None.
    metrics : StoreMetrics | None, optional
        Metrics to record into. Defaults to None.
    options : LoaderOptions | None, optional
        Cache behaviour. Defaults to :class:`LoaderOptions` defaults.
    """

    def __init__(  # noqa: PLR0913
        self,
        name: str,
        source: ByKey[K, T],
        *,
        sink: ErrorSink,
        write: WriteOperation | None = None,
        metrics: StoreMetrics | None = None,
        options: LoaderOptions | None = None,
    ) -> None:
        super().__init__(name, source, sink=sink, metrics=metrics, options=options)
        self._write = write

    def get_one(self, key: K) -> Coroutine[Any, Any, None]:
        """Load the item for ``key`` into the slot.

        The slot is emptied as soon as this is called, before the returned
        coroutine is awaited or scheduled, so observers always see an empty
        state between two different items. If another ``get_one`` is called
        before this one settles, this one's result (or failure) is discarded.

        Returns
        -------
        Coroutine[Any, Any, None]
            Awaitable that settles the load.
        """
        return self._start_load(key)

    async def update_one(
        self,
        identifier: object,
        fields: Mapping[str, Any],
        *,
        revalidate: bool = False,
    ) -> bool:
        """Persist a partial update of the loaded item.

        ``fields`` are applied to the slot value immediately (optimistic UI),
        then written through the write operation keyed by ``identifier``.
        With an empty slot this is a no-op that only logs a warning.

        Parameters
        ----------
        identifier : object
            Identifier the write operation filters on (e.g. the row id).
        fields : Mapping[str, Any]
            Mutable fields to change.
        revalidate : bool, optional
            Revalidate after a successful write. Defaults to False.

        Returns
        -------
        bool
            True when the write succeeded.

        Raises
        ------
        ConfigurationError
            If the loader was built without a write operation.
        """
        if self._write is None:
            message = f"Loader {self.name!r} has no write operation"
            raise ConfigurationError(message)
        current = self.slot.get()
        if current is None:
            logger.warning(
                "Update skipped: no entity loaded",
                extra={
                    "operation": "update_one",
                    "loader": self.name,
                    "error_code": ErrorCode.WRITE_WITHOUT_ENTITY.value,
                },
            )
            return False

        key = self._current_key
        # Supersedes refreshes started before the write.
        self._generation += 1
        generation = self._generation
        self.slot.set(_apply_fields(current, fields))  # type: ignore[arg-type]
        try:
            result = await self._write(dict(fields), identifier)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - write failures go to the sink
            self._report_write_failure(identifier, _status_of(exc), str(exc), exc)
            self._after_write(generation, revalidate=True)
            return False
        if result.error is not None:
            self._report_write_failure(identifier, result.status, str(result.error), None)
            self._after_write(generation, revalidate=True)
            return False

        if key is not None:
            self._memo.invalidate(key)
        self._after_write(generation, revalidate=revalidate)
        return True

    def _after_write(self, generation: int, *, revalidate: bool) -> None:
        if revalidate and generation == self._generation:
            self._schedule_revalidate(force=True)

    def _report_write_failure(
        self, identifier: object, status: int, detail: str, exc: BaseException | None
    ) -> None:
        error = WriteError(
            f"{self.name} update failed: {detail}",
            http_status=status,
            cause=exc,
            context={"loader": self.name, "identifier": str(identifier), "status": status},
        )
        if self._metrics is not None:
            self._metrics.fetch_failures.labels(loader=self.name, phase="write").inc()
        self._sink.report(error, status)
