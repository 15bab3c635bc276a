"""Keyed memoization of asynchronous lookups.

:class:`KeyedMemoAsync` wraps an async function of one hashable argument.
The first call for a key starts the lookup as an :class:`asyncio.Task` and
caches it; every later call for that key returns the identical task, whether
it is still pending, resolved or rejected. Nothing expires: an entry stays
until :meth:`KeyedMemoAsync.invalidate` removes it.

Examples
--------
>>> import asyncio
>>> async def lookup(key: str) -> str:
...     return key.upper()
>>> async def main() -> bool:
...     memo = KeyedMemoAsync(lookup)
...     first = memo.call("a")
...     return first is memo.call("a") and await first == "A"
>>> asyncio.run(main())
True
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable, Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from pulseboard_common.logging import get_logger

__all__ = [
    "CacheEntry",
    "CacheStatus",
    "KeyedMemoAsync",
]

logger = get_logger(__name__)

_ALL: Final = object()


class CacheStatus(StrEnum):
    """Settlement state of a cached lookup."""

    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class CacheEntry[K: Hashable, R]:
    """One memoized lookup: the key and the task computing its result."""

    key: K
    task: asyncio.Task[R]

    @property
    def status(self) -> CacheStatus:
        """Current settlement state of :attr:`task`."""
        if not self.task.done():
            return CacheStatus.PENDING
        if self.task.cancelled() or self.task.exception() is not None:
            return CacheStatus.REJECTED
        return CacheStatus.RESOLVED


class KeyedMemoAsync[K: Hashable, R]:
    """Memoize an async function per argument value.

    Parameters
    ----------
    fn : Callable[[K], Awaitable[R]]
        Underlying lookup. Invoked at most once per key between invalidations.
    name : str, optional
        Label used in log records. Defaults to ``"memo"``.

    Notes
    -----
    Rejections are cached like results: awaiting the task of a failed lookup
    re-raises the same exception until the key is invalidated.
    """

    def __init__(self, fn: Callable[[K], Awaitable[R]], *, name: str = "memo") -> None:
        self._fn = fn
        self.name = name
        self._entries: dict[K, CacheEntry[K, R]] = {}

    def call(self, key: K) -> asyncio.Task[R]:
        """Return the cached task for ``key``, starting the lookup on a miss.

        Must be called while an event loop is running.

        Raises
        ------
        RuntimeError
            If no event loop is running.
        """
        entry = self._entries.get(key)
        if entry is not None:
            logger.debug(
                "Memo hit",
                extra={"operation": "memo_call", "memo": self.name, "status": entry.status.value},
            )
            return entry.task
        task = asyncio.get_running_loop().create_task(
            self._invoke(key), name=f"{self.name}[{key!r}]"
        )
        self._entries[key] = CacheEntry(key, task)
        logger.debug(
            "Memo miss", extra={"operation": "memo_call", "memo": self.name, "status": "pending"}
        )
        return task

    async def _invoke(self, key: K) -> R:
        return await self._fn(key)

    def invalidate(self, key: K | object = _ALL) -> None:
        """Drop the entry for ``key``; with no argument drop every entry.

        A pending task keeps running for callers already holding it, but the
        next :meth:`call` for the key starts a fresh lookup.
        """
        if key is _ALL:
            self._entries.clear()
            return
        self._entries.pop(key, None)  # type: ignore[arg-type]

    def entry(self, key: K) -> CacheEntry[K, R] | None:
        """Return the cache entry for ``key`` without starting a lookup."""
        return self._entries.get(key)

    def keys(self) -> Iterator[K]:
        return iter(tuple(self._entries))

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
