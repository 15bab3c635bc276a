"""Tests for pulseboard_store.context."""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from prometheus_client import CollectorRegistry

from pulseboard_common.settings import RuntimeSettings, load_settings
from pulseboard_store.backend import BackendClient
from pulseboard_store.context import StoreContext
from pulseboard_store.entities import ProjectStatus
from pulseboard_store.sink import RecordingErrorSink


def _settings(**overrides: Any) -> RuntimeSettings:  # noqa: ANN401
    return load_settings(
        backend={"url": "http://backend.test", "retry_wait_s": 0},
        **overrides,
    )


class TestStoreContext:
    """Tests for StoreContext."""

    @pytest.mark.asyncio
    async def test_loads_projects_and_collaborators(
        self, data_service: Any, registry: CollectorRegistry
    ) -> None:
        """The project list and the collaborator profiles end up in their slots."""
        transport = httpx.MockTransport(data_service)
        async with StoreContext.open(_settings(), registry=registry, transport=transport) as store:
            await store.projects.get_all()
            store.collaborators.schedule(store.projects.slot.get() or [])
            await store.wait_idle()

            projects = store.projects.slot.get()
            assert projects is not None
            assert [project.slug for project in projects] == ["lorem-ipsum", "dolor-sit"]
            profiles = store.collaborators.get(1)
            assert [profile.username for profile in profiles or []] == ["ada", "grace"]
            assert store.collaborators.get(2) is None

        assert data_service.count("GET", "projects") == 2
        assert (
            registry.get_sample_value(
                "pulseboard_memo_lookups_total", {"loader": "projects", "outcome": "miss"}
            )
            == 1
        )

    @pytest.mark.asyncio
    async def test_project_detail_and_update(self, data_service: Any) -> None:
        """A loaded project can be updated through the detail loader."""
        transport = httpx.MockTransport(data_service)
        async with StoreContext.open(
            _settings(), registry=CollectorRegistry(), transport=transport
        ) as store:
            await store.project.get_one("lorem-ipsum")
            await store.wait_idle()
            project = store.project.slot.get()
            assert project is not None

            assert await store.project.update_one(project.id, {"status": ProjectStatus.COMPLETED})
            await store.wait_idle()

            updated = store.project.slot.get()
            assert updated is not None
            assert updated.status is ProjectStatus.COMPLETED
        assert data_service.tables["projects"][0]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_failures_reach_the_sink(self, data_service: Any) -> None:
        """A failing service is reported to the context's sink."""
        data_service.failures["projects"] = httpx.Response(500, json={"message": "boom"})
        sink = RecordingErrorSink()
        transport = httpx.MockTransport(data_service)
        async with StoreContext.open(
            _settings(), sink=sink, registry=CollectorRegistry(), transport=transport
        ) as store:
            await store.projects.get_all()
            assert store.projects.slot.is_empty
            assert store.sink is sink

        assert [reported.code for reported in sink.reported] == [500]

    @pytest.mark.asyncio
    async def test_metrics_disabled_leaves_registry_untouched(self, data_service: Any) -> None:
        """With metrics off nothing is recorded on the given registry."""
        registry = CollectorRegistry()
        settings = _settings(observability={"metrics_enabled": False})
        transport = httpx.MockTransport(data_service)
        async with StoreContext.open(settings, registry=registry, transport=transport) as store:
            await store.projects.get_all()

        assert (
            registry.get_sample_value(
                "pulseboard_memo_lookups_total", {"loader": "projects", "outcome": "miss"}
            )
            is None
        )

    @pytest.mark.asyncio
    async def test_contexts_can_share_a_registry(self, data_service: Any) -> None:
        """Opening a second context on the same registry reuses its collectors."""
        registry = CollectorRegistry()
        transport = httpx.MockTransport(data_service)
        for _ in range(2):
            async with StoreContext.open(
                _settings(), registry=registry, transport=transport
            ) as store:
                await store.projects.get_all()

        assert (
            registry.get_sample_value(
                "pulseboard_memo_lookups_total", {"loader": "projects", "outcome": "miss"}
            )
            == 2
        )

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self, data_service: Any) -> None:
        """Closing twice is harmless; the client is closed afterwards."""
        settings = _settings()
        client = BackendClient(settings.backend, transport=httpx.MockTransport(data_service))
        store = StoreContext(settings, client)
        assert isinstance(store.sink, RecordingErrorSink)

        await store.aclose()
        await store.aclose()

        with pytest.raises(RuntimeError):
            await client.select("projects")
