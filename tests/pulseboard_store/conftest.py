"""Shared fixtures for the store tests.

Provides isolated metrics, a recording error sink, scripted query functions
whose responses and release order are controlled by the test, and an
in-memory data service for the HTTP layer.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import json
from collections.abc import Hashable
from typing import TYPE_CHECKING, Any

import httpx
import pytest
from prometheus_client import CollectorRegistry

from pulseboard_common.settings import BackendConfig
from pulseboard_store.backend import BackendClient
from pulseboard_store.metrics import StoreMetrics
from pulseboard_store.query import QueryResult
from pulseboard_store.sink import RecordingErrorSink

if TYPE_CHECKING:
    from collections.abc import Callable


class ScriptedQuery:
    """Async query function answering from a mutable response table.

    A response may be a :class:`QueryResult` or an exception instance (raised).
    Keys listed in :attr:`gates` block until their event is set.
    """

    def __init__(self, responses: dict[Hashable, object] | None = None) -> None:
        self.responses: dict[Hashable, object] = dict(responses or {})
        self.gates: dict[Hashable, asyncio.Event] = {}
        self.calls: list[Hashable] = []

    def gate(self, key: Hashable) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[key] = event
        return event

    def returns(self, key: Hashable, data: object) -> None:
        self.responses[key] = QueryResult(data=data)

    async def __call__(self, key: Hashable) -> QueryResult[Any]:
        self.calls.append(key)
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        response = self.responses[key]
        if isinstance(response, BaseException):
            raise response
        return response  # type: ignore[return-value]

    def count(self, key: Hashable) -> int:
        return self.calls.count(key)


PROJECT_ROWS: list[dict[str, Any]] = [
    {
        "id": 1,
        "created_at": "2024-03-01T09:30:00+00:00",
        "name": "lorem ipsum",
        "slug": "lorem-ipsum",
        "status": "in-progress",
        "collaborators": ["1", "2"],
    },
    {
        "id": 2,
        "created_at": "2024-03-02T10:00:00+00:00",
        "name": "dolor sit",
        "slug": "dolor-sit",
        "status": "completed",
        "collaborators": [],
    },
]
PROFILE_ROWS: list[dict[str, Any]] = [
    {"id": 1, "username": "ada", "full_name": "Ada Lovelace", "avatar_url": None},
    {"id": 2, "username": "grace", "full_name": "Grace Hopper", "avatar_url": None},
    {"id": 3, "username": "linus", "full_name": None, "avatar_url": None},
]


class FakeDataService:
    """In-memory PostgREST stand-in for :class:`httpx.MockTransport`.

    Understands the ``eq`` and ``in`` filters, single-object reads, PATCH and
    POST. Responses listed in :attr:`failures` are returned for a table
    instead of touching its rows.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            "projects": copy.deepcopy(PROJECT_ROWS),
            "profiles": copy.deepcopy(PROFILE_ROWS),
        }
        self.failures: dict[str, httpx.Response] = {}
        self.requests: list[httpx.Request] = []
        self._ids = itertools.count(100)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        if table in self.failures:
            return self.failures[table]
        rows = self.tables.setdefault(table, [])
        matched = [row for row in rows if _matches(row, request.url.params)]
        if request.method == "GET":
            if request.headers.get("Accept") == "application/vnd.pgrst.object+json":
                if len(matched) != 1:
                    return httpx.Response(
                        406,
                        json={"code": "PGRST116", "message": "JSON object requested"},
                    )
                return httpx.Response(200, json=matched[0])
            return httpx.Response(200, json=matched)
        if request.method == "PATCH":
            for row in matched:
                row.update(json.loads(request.content))
            return httpx.Response(204)
        if request.method == "POST":
            row = {
                "id": next(self._ids),
                "created_at": "2024-04-01T00:00:00+00:00",
                **json.loads(request.content),
            }
            rows.append(row)
            return httpx.Response(201, json=[row])
        return httpx.Response(405)

    def count(self, method: str, table: str) -> int:
        return sum(
            1
            for request in self.requests
            if request.method == method and request.url.path.endswith(f"/{table}")
        )


def _matches(row: dict[str, Any], params: httpx.QueryParams) -> bool:
    for column, expression in params.multi_items():
        if column == "select":
            continue
        operator, _, value = expression.partition(".")
        if operator == "eq" and str(row.get(column)) != value:
            return False
        if operator == "in" and str(row.get(column)) not in value.strip("()").split(","):
            return False
    return True


@pytest.fixture
def registry() -> CollectorRegistry:
    """Provide a fresh Prometheus registry per test."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> StoreMetrics:
    """Provide store metrics bound to the per-test registry."""
    return StoreMetrics.create(registry)


@pytest.fixture
def sink() -> RecordingErrorSink:
    """Provide an error sink that records every report."""
    return RecordingErrorSink()


@pytest.fixture
def scripted() -> Callable[..., ScriptedQuery]:
    """Build :class:`ScriptedQuery` instances."""
    return ScriptedQuery


@pytest.fixture
def backend_config() -> BackendConfig:
    """Backend settings pointing at a fake host, with instant retries."""
    return BackendConfig(
        url="http://backend.test/",
        api_key="test-key",
        retry_attempts=3,
        retry_wait_s=0,
    )


@pytest.fixture
def make_client(
    backend_config: BackendConfig,
) -> Callable[[Callable[[httpx.Request], httpx.Response]], BackendClient]:
    """Build a :class:`BackendClient` served by an in-process handler."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> BackendClient:
        return BackendClient(backend_config, transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def read_metric(registry: CollectorRegistry) -> Callable[..., float]:
    """Read a sample from the per-test registry, 0.0 when it was never recorded."""

    def read(name: str, **labels: str) -> float:
        return registry.get_sample_value(name, labels) or 0.0

    return read


@pytest.fixture
def data_service() -> FakeDataService:
    """Provide a fresh in-memory data service."""
    return FakeDataService()
