"""Client-side data loading and caching for the pulseboard application.

The layer is built from four pieces:

* :class:`~pulseboard_store.memo.KeyedMemoAsync`: per-key memoized async lookups.
* :class:`~pulseboard_store.slot.ObservableSlot`: a value holder observers can watch.
* :class:`~pulseboard_store.loaders.CollectionLoader` and
  :class:`~pulseboard_store.loaders.ItemLoader`: fetch, populate a slot and
  revalidate in the background.
* :class:`~pulseboard_store.grouped.GroupedFetcher`: concurrent per-row fetch of
  related entities.

:class:`~pulseboard_store.context.StoreContext` wires them to the data service
for one application session.
"""

from __future__ import annotations

from pulseboard_store.context import StoreContext
from pulseboard_store.grouped import GroupedFetcher
from pulseboard_store.loaders import CollectionLoader, ItemLoader, LoaderOptions
from pulseboard_store.memo import CacheEntry, CacheStatus, KeyedMemoAsync
from pulseboard_store.query import ByKey, Fixed, QueryResult, QuerySource, run_query
from pulseboard_store.sink import ErrorSink, LoggingErrorSink, RecordingErrorSink
from pulseboard_store.slot import ObservableSlot

__all__ = [
    "ByKey",
    "CacheEntry",
    "CacheStatus",
    "CollectionLoader",
    "ErrorSink",
    "Fixed",
    "GroupedFetcher",
    "ItemLoader",
    "KeyedMemoAsync",
    "LoaderOptions",
    "LoggingErrorSink",
    "ObservableSlot",
    "QueryResult",
    "QuerySource",
    "RecordingErrorSink",
    "StoreContext",
    "run_query",
]
