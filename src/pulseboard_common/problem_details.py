"""RFC 9457 Problem Details helpers.

Examples
--------
>>> from pulseboard_common.problem_details import build_problem_details, render_problem
>>> problem = build_problem_details(
...     problem_type="https://pulseboard.dev/problems/fetch-failed",
...     title="FetchError",
...     status=502,
...     detail="projects query failed",
...     instance="urn:pulseboard:loader:projects",
...     extensions={"key": "all"},
... )
>>> "fetch-failed" in render_problem(problem)
True
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, TypedDict, cast

from pulseboard_common.types import JsonValue

if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = [
    "ProblemDetails",
    "build_problem_details",
    "render_problem",
]


class ProblemDetails(TypedDict, total=False):
    """TypedDict for RFC 9457 Problem Details payloads.

    This is a partial TypedDict (total=False); ``code`` and ``extensions``
    are only present when supplied.
    """

    type: str
    title: str
    status: int
    detail: str
    instance: str
    code: str
    extensions: dict[str, JsonValue]


def _coerce_extension(value: object) -> JsonValue:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _coerce_extension(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_coerce_extension(item) for item in value]
    return str(value)


def build_problem_details(  # noqa: PLR0913
    problem_type: str,
    title: str,
    status: int,
    detail: str,
    instance: str,
    *,
    code: str | None = None,
    extensions: Mapping[str, object] | None = None,
) -> ProblemDetails:
    """Build an RFC 9457 Problem Details payload.

    Parameters
    ----------
    problem_type : str
        Type URI identifying the problem class.
    title : str
        Short human-readable summary.
    status : int
        HTTP-style status code.
    detail : str
        Explanation specific to this occurrence.
    instance : str
        URI identifying this occurrence.
    code : str | None, optional
        Stable error code. Defaults to None.
    extensions : Mapping[str, object] | None, optional
        Extra members; non-JSON values are converted with ``str``. Defaults to None.

    Returns
    -------
    ProblemDetails
        Payload with the required members and any optional ones supplied.

    Raises
    ------
    ValueError
        If ``status`` is outside the 100-599 range.
    """
    if not 100 <= status <= 599:  # noqa: PLR2004
        message = f"Problem Details status must be an HTTP status code, got {status}"
        raise ValueError(message)
    payload: dict[str, object] = {
        "type": problem_type,
        "title": title,
        "status": status,
        "detail": detail,
        "instance": instance,
    }
    if code is not None:
        payload["code"] = code
    if extensions:
        payload["extensions"] = {
            str(key): _coerce_extension(value) for key, value in extensions.items()
        }
    return cast("ProblemDetails", payload)


def render_problem(problem: ProblemDetails | Mapping[str, object]) -> str:
    """Render a Problem Details payload as indented JSON."""
    return json.dumps(problem, indent=2, sort_keys=True, default=str)
