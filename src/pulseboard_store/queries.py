"""Query sources and write operations of the application.

Each factory binds a :class:`~pulseboard_store.backend.BackendClient` and
returns the shape the loaders expect: a :class:`Fixed` source for the
project list, a :class:`ByKey` source for one project by slug, a related
fetch for collaborator profiles and write operations for projects. Rows are
validated into :mod:`pulseboard_store.entities` models; rows that fail
validation turn into an error result rather than an exception.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from pulseboard_common.errors import ErrorCode
from pulseboard_store.backend import eq, in_
from pulseboard_store.entities import Profile, Project
from pulseboard_store.query import ByKey, Fixed, QueryResult

if TYPE_CHECKING:
    from pulseboard_store.backend import BackendClient
    from pulseboard_store.grouped import RelatedFetch
    from pulseboard_store.query import WriteOperation

__all__ = [
    "PROFILE_COLUMNS",
    "insert_project",
    "profiles_by_ids",
    "project_by_slug",
    "projects_query",
    "update_project",
]

PROFILE_COLUMNS = "username, avatar_url, id, full_name"

_PROJECTS = TypeAdapter(list[Project])
_PROJECT = TypeAdapter(Project)
_PROFILES = TypeAdapter(list[Profile])


def _validated[T](result: QueryResult[Any], adapter: TypeAdapter[T]) -> QueryResult[T]:
    if result.error is not None or result.data is None:
        return QueryResult(data=None, error=result.error, status=result.status)
    try:
        data = adapter.validate_python(result.data)
    except ValidationError as exc:
        return QueryResult(
            data=None,
            error={
                "code": ErrorCode.BACKEND_RESPONSE_INVALID.value,
                "message": f"Unexpected row shape: {exc.error_count()} validation error(s)",
                "details": exc.errors(include_url=False),
            },
            status=502,
        )
    return QueryResult(data=data, error=None, status=result.status)


def projects_query(client: BackendClient) -> Fixed[list[Project]]:
    """All projects."""
    table = client.config.projects_table

    async def fetch() -> QueryResult[list[Project]]:
        return _validated(await client.select(table), _PROJECTS)

    return Fixed(fetch)


def project_by_slug(client: BackendClient) -> ByKey[str, Project]:
    """One project by its slug; an unknown slug yields an error result."""
    table = client.config.projects_table

    async def fetch(slug: str) -> QueryResult[Project]:
        result = await client.select(table, filters={"slug": eq(slug)}, single=True)
        return _validated(result, _PROJECT)

    return ByKey(fetch)


def profiles_by_ids(client: BackendClient) -> RelatedFetch[Profile]:
    """Collaborator profiles for a list of profile ids."""
    table = client.config.profiles_table

    async def fetch(ids: Sequence[Any]) -> QueryResult[Sequence[Profile]]:
        result = await client.select(table, columns=PROFILE_COLUMNS, filters={"id": in_(ids)})
        return _validated(result, _PROFILES)

    return fetch


def update_project(client: BackendClient) -> WriteOperation:
    """Partial update of a project row, keyed by project id."""
    table = client.config.projects_table

    async def write(fields: dict[str, Any], identifier: Any) -> QueryResult[Any]:  # noqa: ANN401
        return await client.update(table, fields, filters={"id": eq(identifier)})

    return write


async def insert_project(client: BackendClient, row: Mapping[str, Any]) -> QueryResult[Project]:
    """Insert one project row and return the stored project."""
    result = await client.insert(client.config.projects_table, row)
    if isinstance(result.data, list) and len(result.data) == 1:
        result = QueryResult(data=result.data[0], error=None, status=result.status)
    return _validated(result, _PROJECT)
