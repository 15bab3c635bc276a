"""Per-session store context.

A :class:`StoreContext` is built once when the application starts and owns
everything with session lifetime: the backend client, the error sink, the
metrics, the project list and project detail loaders and the collaborator
fetcher. Components receive the context (or the piece they need) explicitly;
nothing is kept at module level.

Examples
--------
>>> import asyncio
>>> from pulseboard_common.settings import load_settings
>>> async def main() -> None:
...     async with StoreContext.open(load_settings()) as store:
...         await store.projects.get_all()
...         store.collaborators.schedule(store.projects.slot.get() or [])
>>> asyncio.run(main())  # doctest: +SKIP
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry

from pulseboard_common.logging import get_logger
from pulseboard_common.prometheus import get_default_registry
from pulseboard_store.backend import BackendClient
from pulseboard_store.grouped import GroupedFetcher
from pulseboard_store.loaders import CollectionLoader, ItemLoader, LoaderOptions
from pulseboard_store.metrics import StoreMetrics
from pulseboard_store.queries import (
    profiles_by_ids,
    project_by_slug,
    projects_query,
    update_project,
)
from pulseboard_store.sink import RecordingErrorSink

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import httpx

    from pulseboard_common.settings import RuntimeSettings
    from pulseboard_store.entities import Profile, Project
    from pulseboard_store.sink import ErrorSink

__all__ = ["StoreContext"]

logger = get_logger(__name__)


class StoreContext:
    """Session-scoped owner of the loaders and their collaborators.

    Parameters
    ----------
    settings : RuntimeSettings
        Runtime configuration.
    client : BackendClient
        Data service client; closed by :meth:`aclose`.
    sink : ErrorSink | None, optional
        Error sink. Defaults to a :class:`RecordingErrorSink`.
    metrics : StoreMetrics | None, optional
        Metrics to record into. Defaults to metrics on a private registry.

    Attributes
    ----------
    projects : CollectionLoader[list[Project]]
        Project list loader.
    project : ItemLoader[str, Project]
        Project detail loader keyed by slug, with partial updates by id.
    collaborators : GroupedFetcher[Profile]
        Collaborator profiles per project id.
    """

    def __init__(
        self,
        settings: RuntimeSettings,
        client: BackendClient,
        *,
        sink: ErrorSink | None = None,
        metrics: StoreMetrics | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.sink: ErrorSink = sink if sink is not None else RecordingErrorSink()
        self.metrics = metrics if metrics is not None else StoreMetrics.create()
        options = LoaderOptions.from_config(settings.cache)
        self.projects: CollectionLoader[list[Project]] = CollectionLoader(
            "projects",
            projects_query(client),
            sink=self.sink,
            metrics=self.metrics,
            options=options,
        )
        self.project: ItemLoader[str, Project] = ItemLoader(
            "project",
            project_by_slug(client),
            sink=self.sink,
            write=update_project(client),
            metrics=self.metrics,
            options=options,
        )
        self.collaborators: GroupedFetcher[Profile] = GroupedFetcher(
            profiles_by_ids(client), metrics=self.metrics
        )
        self._closed = False

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        settings: RuntimeSettings,
        *,
        sink: ErrorSink | None = None,
        registry: CollectorRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AsyncIterator[StoreContext]:
        """Create a context for one session and close it on exit.

        With metrics enabled the collectors go to ``registry`` (the process
        registry when omitted); with metrics disabled they go to a private
        registry nobody exports.
        """
        if settings.observability.metrics_enabled:
            target = registry if registry is not None else get_default_registry()
        else:
            target = CollectorRegistry()
        client = BackendClient(settings.backend, transport=transport)
        context = cls(settings, client, sink=sink, metrics=StoreMetrics.create(target))
        logger.info(
            "Store context opened",
            extra={"operation": "context_open", "backend_url": settings.backend.url},
        )
        try:
            yield context
        finally:
            await context.aclose()

    async def wait_idle(self) -> None:
        """Wait for all background revalidations and grouped fetches."""
        await self.projects.wait_idle()
        await self.project.wait_idle()
        await self.collaborators.wait_idle()

    async def aclose(self) -> None:
        """Cancel background work, drop caches and close the backend client."""
        if self._closed:
            return
        self._closed = True
        await self.projects.aclose()
        await self.project.aclose()
        await self.collaborators.aclose()
        await self.client.aclose()
        logger.info("Store context closed", extra={"operation": "context_close"})
