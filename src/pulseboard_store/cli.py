"""Command line interface driving a store context against the data service."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Annotated, Any

import typer
from faker import Faker
from prometheus_client import CollectorRegistry

from pulseboard_common.errors import PulseboardError, SettingsError
from pulseboard_common.logging import CorrelationContext, get_logger, setup_logging
from pulseboard_common.problem_details import render_problem
from pulseboard_common.settings import RuntimeSettings, load_settings
from pulseboard_store.context import StoreContext
from pulseboard_store.entities import ProjectStatus, slugify
from pulseboard_store.queries import insert_project
from pulseboard_store.sink import RecordingErrorSink

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from pulseboard_store.entities import Project
    from pulseboard_store.sink import ReportedError

__all__ = ["app"]

LOGGER = get_logger(__name__)

SEED_COLLABORATOR_IDS: tuple[str, ...] = ("1", "2", "3")

app = typer.Typer(
    help="Load and seed projects through the pulseboard store.",
    no_args_is_help=True,
    add_completion=False,
)


def _open_store(
    settings: RuntimeSettings, sink: RecordingErrorSink
) -> AbstractAsyncContextManager[StoreContext]:
    return StoreContext.open(settings, sink=sink, registry=CollectorRegistry())


def _settings(ctx: typer.Context) -> RuntimeSettings:
    settings = ctx.obj
    if not isinstance(settings, RuntimeSettings):
        message = "CLI settings were not initialised"
        raise TypeError(message)
    return settings


def _emit(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _abort(exc: PulseboardError) -> typer.Exit:
    typer.echo(render_problem(exc.to_problem_details(instance="urn:pulseboard:cli")), err=True)
    return typer.Exit(code=1)


def _fail(errors: list[ReportedError]) -> None:
    if not errors:
        typer.echo("Nothing was loaded", err=True)
    for reported in errors:
        typer.echo(
            render_problem(reported.error.to_problem_details(instance="urn:pulseboard:cli")),
            err=True,
        )
    raise typer.Exit(code=1)


def _project_payload(project: Project, store: StoreContext) -> dict[str, Any]:
    payload = project.model_dump(mode="json")
    profiles = store.collaborators.get(project.id) or []
    payload["collaborator_profiles"] = [profile.model_dump(mode="json") for profile in profiles]
    return payload


@app.callback()
def main(ctx: typer.Context) -> None:
    """Load settings from the environment and configure logging."""
    try:
        settings = load_settings()
    except SettingsError as exc:
        typer.echo(render_problem(exc.to_problem_details(instance="urn:pulseboard:cli")), err=True)
        raise typer.Exit(code=2) from exc
    setup_logging(
        settings.observability.log_level, log_format=settings.observability.log_format
    )
    ctx.obj = settings


async def _load_projects(
    settings: RuntimeSettings,
) -> tuple[list[dict[str, Any]], list[ReportedError]]:
    sink = RecordingErrorSink()
    async with _open_store(settings, sink) as store:
        await store.projects.get_all()
        store.collaborators.schedule(store.projects.slot.get() or [])
        await store.wait_idle()
        projects = store.projects.slot.get() or []
        return [_project_payload(project, store) for project in projects], sink.reported


async def _load_project(
    settings: RuntimeSettings, slug: str
) -> tuple[dict[str, Any] | None, list[ReportedError]]:
    sink = RecordingErrorSink()
    async with _open_store(settings, sink) as store:
        await store.project.get_one(slug)
        loaded = store.project.slot.get()
        if loaded is not None:
            store.collaborators.schedule([loaded])
        await store.wait_idle()
        project = store.project.slot.get()
        payload = _project_payload(project, store) if project is not None else None
        return payload, sink.reported


def _random_project(fake: Faker) -> dict[str, Any]:
    name = " ".join(fake.words(3))
    return {
        "name": name,
        "slug": slugify(name),
        "status": fake.random_element([status.value for status in ProjectStatus]),
        "collaborators": fake.random_elements(
            SEED_COLLABORATOR_IDS,
            length=fake.random_int(1, len(SEED_COLLABORATOR_IDS)),
            unique=True,
        ),
    }


async def _seed(
    settings: RuntimeSettings, count: int, fake: Faker
) -> tuple[list[dict[str, Any]], list[str]]:
    created: list[dict[str, Any]] = []
    failures: list[str] = []
    async with _open_store(settings, RecordingErrorSink()) as store:
        for _ in range(count):
            result = await insert_project(store.client, _random_project(fake))
            if result.data is None:
                failures.append(str(result.error))
                LOGGER.warning(
                    "Seed insert failed",
                    extra={"operation": "seed", "http_status": result.status},
                )
            else:
                created.append(result.data.model_dump(mode="json"))
    return created, failures


@app.command("projects")
def list_projects(ctx: typer.Context) -> None:
    """Print every project with its collaborator profiles as JSON."""
    with CorrelationContext("cli-projects"):
        try:
            payload, errors = asyncio.run(_load_projects(_settings(ctx)))
        except PulseboardError as exc:
            raise _abort(exc) from exc
    if errors:
        _fail(errors)
    _emit(payload)


@app.command("project")
def show_project(
    ctx: typer.Context,
    slug: Annotated[str, typer.Argument(help="Slug of the project to show")],
) -> None:
    """Print one project, looked up by slug, as JSON."""
    with CorrelationContext(f"cli-project-{slug}"):
        try:
            payload, errors = asyncio.run(_load_project(_settings(ctx), slug))
        except PulseboardError as exc:
            raise _abort(exc) from exc
    if errors or payload is None:
        _fail(errors)
    _emit(payload)


@app.command("seed")
def seed(
    ctx: typer.Context,
    count: Annotated[int, typer.Option(min=1, help="Number of projects to insert")] = 1,
    random_seed: Annotated[
        int | None, typer.Option(help="Seed for reproducible project data")
    ] = None,
) -> None:
    """Insert random projects, as the demo seed data does."""
    fake = Faker()
    if random_seed is not None:
        fake.seed_instance(random_seed)
    with CorrelationContext("cli-seed"):
        try:
            created, failures = asyncio.run(_seed(_settings(ctx), count, fake))
        except PulseboardError as exc:
            raise _abort(exc) from exc
    _emit(created)
    if failures:
        for failure in failures:
            typer.echo(failure, err=True)
        raise typer.Exit(code=1)
