"""Async client for the hosted Postgres REST data service.

The data service exposes each table under ``/rest/v1/<table>`` using the
PostgREST dialect: filters are query parameters such as ``slug=eq.alpha`` or
``id=in.(1,2)``, and ``Prefer``/``Accept`` headers select the response shape.

HTTP error responses are returned as :class:`~pulseboard_store.query.QueryResult`
values carrying the service's error payload. Transport failures (connect
errors, timeouts) are retried with :mod:`tenacity`; when every attempt fails
a :class:`~pulseboard_common.errors.BackendError` is raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

import httpx
from pydantic_core import to_jsonable_python
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pulseboard_common.errors import BackendError
from pulseboard_common.logging import get_logger
from pulseboard_store.query import QueryResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from types import TracebackType

    from pulseboard_common.settings import BackendConfig

__all__ = ["BackendClient", "eq", "in_"]

logger = get_logger(__name__)

_SINGLE_OBJECT = "application/vnd.pgrst.object+json"
_RESERVED = frozenset(',.:()" ')


def _quote(value: object) -> str:
    text = str(value)
    if any(char in _RESERVED for char in text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def eq(value: object) -> str:
    """PostgREST equality filter value.

    >>> eq("alpha")
    'eq.alpha'
    """
    return f"eq.{value}"


def in_(values: Iterable[object]) -> str:
    """PostgREST membership filter value.

    >>> in_(["1", "2"])
    'in.(1,2)'
    """
    return f"in.({','.join(_quote(value) for value in values)})"


def _error_payload(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError:
        return {"message": response.text or response.reason_phrase}


class BackendClient:
    """Table-level operations against the data service.

    Parameters
    ----------
    config : BackendConfig
        Connection settings (URL, API key, schema, timeout, retry policy).
    transport : httpx.AsyncBaseTransport | None, optional
        Transport override, e.g. :class:`httpx.MockTransport` in tests.
        Defaults to None (real network transport).
    """

    def __init__(
        self,
        config: BackendConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        headers = {
            "Accept-Profile": config.schema_name,
            "Content-Profile": config.schema_name,
        }
        if config.api_key:
            headers["apikey"] = config.api_key
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = httpx.AsyncClient(
            base_url=f"{config.url}/rest/v1",
            headers=headers,
            timeout=config.timeout_s,
            transport=transport,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Mapping[str, str] | None = None,
        single: bool = False,
    ) -> QueryResult[Any]:
        """Read rows from ``table``.

        Parameters
        ----------
        table : str
            Table name.
        columns : str, optional
            Comma-separated column list. Defaults to all columns.
        filters : Mapping[str, str] | None, optional
            Column to filter value, built with :func:`eq` or :func:`in_`.
        single : bool, optional
            Expect exactly one row and return it as an object; zero or several
            rows yield an error result (status 406). Defaults to False.

        Returns
        -------
        QueryResult[Any]
            Rows (a list, or one object with ``single``) or the error payload.
        """
        params = {"select": columns, **(filters or {})}
        headers = {"Accept": _SINGLE_OBJECT} if single else None
        return await self._request("GET", table, params=params, headers=headers)

    async def update(
        self,
        table: str,
        fields: Mapping[str, Any],
        *,
        filters: Mapping[str, str],
    ) -> QueryResult[None]:
        """Apply ``fields`` to the rows of ``table`` matching ``filters``."""
        if not filters:
            message = "Refusing to update without filters"
            raise ValueError(message)
        return await self._request(
            "PATCH",
            table,
            params=dict(filters),
            json=to_jsonable_python(dict(fields)),
            headers={"Prefer": "return=minimal"},
        )

    async def insert(self, table: str, row: Mapping[str, Any]) -> QueryResult[Any]:
        """Insert ``row`` into ``table`` and return the stored representation.

        Inserts are not idempotent, so they are attempted only once.
        """
        return await self._request(
            "POST",
            table,
            json=to_jsonable_python(dict(row)),
            headers={"Prefer": "return=representation"},
            idempotent=False,
        )

    async def _request(  # noqa: PLR0913
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        json: object = None,
        headers: Mapping[str, str] | None = None,
        idempotent: bool = True,
    ) -> QueryResult[Any]:
        response = await self._send(
            method, f"/{table}", params=params, json=json, headers=headers, idempotent=idempotent
        )
        if response.is_error:
            logger.warning(
                "Data service returned an error",
                extra={
                    "operation": f"{method.lower()}_{table}",
                    "http_status": response.status_code,
                },
            )
            return QueryResult(
                data=None, error=_error_payload(response), status=response.status_code
            )
        data = response.json() if response.content else None
        return QueryResult(data=data, error=None, status=response.status_code)

    async def _send(  # noqa: PLR0913
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None,
        json: object,
        headers: Mapping[str, str] | None,
        idempotent: bool,
    ) -> httpx.Response:
        attempts = self.config.retry_attempts if idempotent else 1
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.config.retry_wait_s, max=5),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._client.request(
                        method, url, params=params, json=json, headers=headers
                    )
        except httpx.TransportError as exc:
            message = f"{method} {url} failed after {attempts} attempt(s): {exc}"
            raise BackendError(
                message,
                cause=exc,
                context={"method": method, "url": url, "attempts": attempts},
            ) from exc
        message = "retry loop exited without a response"
        raise AssertionError(message)
