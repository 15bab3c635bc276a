"""Query results and the tagged query source variant.

A query is an opaque asynchronous operation that resolves to a
:class:`QueryResult` carrying ``data``, ``error`` and ``status``. Loaders
receive their query as a :data:`QuerySource`, either :class:`ByKey` (the
function takes the lookup key) or :class:`Fixed` (the function takes no
argument), and dispatch on the variant through :func:`run_query`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any

__all__ = [
    "ByKey",
    "Fixed",
    "QueryResult",
    "QuerySource",
    "WriteOperation",
    "run_query",
]


@dataclass(frozen=True, slots=True)
class QueryResult[T]:
    """Outcome of one query against the data service.

    Attributes
    ----------
    data : T | None
        Payload on success.
    error : object | None
        Error payload reported by the service, or None.
    status : int
        HTTP-style status code.
    """

    data: T | None = None
    error: object | None = None
    status: int = 200

    @property
    def ok(self) -> bool:
        """True when the service reported no error."""
        return self.error is None


@dataclass(frozen=True, slots=True)
class ByKey[K: Hashable, T]:
    """Query whose function takes the lookup key (single-item views)."""

    fn: Callable[[K], Awaitable[QueryResult[T]]]


@dataclass(frozen=True, slots=True)
class Fixed[T]:
    """Query whose function takes no argument (collection views).

    ``fn`` is a factory: each invocation produces a fresh awaitable, so the
    same source can be memoized and later re-run for revalidation.
    """

    fn: Callable[[], Awaitable[QueryResult[T]]]


type QuerySource[K: Hashable, T] = ByKey[K, T] | Fixed[T]

# (fields, identifier) -> result of the partial update
type WriteOperation = Callable[[dict[str, Any], Any], Awaitable[QueryResult[Any]]]


async def run_query[K: Hashable, T](source: QuerySource[K, T], key: K) -> QueryResult[T]:
    """Run ``source`` for ``key``.

    ``key`` is ignored for :class:`Fixed` sources; it still identifies the
    memo entry on the loader side.

    Raises
    ------
    TypeError
        If ``source`` is neither variant.
    """
    if isinstance(source, ByKey):
        return await source.fn(key)
    if isinstance(source, Fixed):
        return await source.fn()
    message = f"Unsupported query source: {type(source).__name__}"
    raise TypeError(message)
