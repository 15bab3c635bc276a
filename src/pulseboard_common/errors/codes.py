"""Error code registry and type URIs for Problem Details.

Codes are kebab-case and stay stable across releases so sinks and dashboards
can key on them.

Examples
--------
>>> from pulseboard_common.errors.codes import ErrorCode, get_type_uri
>>> get_type_uri(ErrorCode.FETCH_FAILED)
'https://pulseboard.dev/problems/fetch-failed'
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

__all__ = [
    "BASE_TYPE_URI",
    "ErrorCode",
    "get_type_uri",
]


BASE_TYPE_URI: Final[str] = "https://pulseboard.dev/problems"


class ErrorCode(StrEnum):
    """Stable error codes for pulseboard exceptions.

    Codes are organized by category:
    - data loading: ``FETCH_FAILED``, ``REVALIDATE_FAILED``
    - data writes: ``WRITE_FAILED``, ``WRITE_WITHOUT_ENTITY``
    - backend transport: ``BACKEND_UNAVAILABLE``, ``BACKEND_RESPONSE_INVALID``
    - configuration and runtime: ``CONFIGURATION_ERROR``, ``SETTINGS_INVALID``,
      ``RUNTIME_ERROR``
    """

    FETCH_FAILED = "fetch-failed"
    REVALIDATE_FAILED = "revalidate-failed"
    WRITE_FAILED = "write-failed"
    WRITE_WITHOUT_ENTITY = "write-without-entity"
    BACKEND_UNAVAILABLE = "backend-unavailable"
    BACKEND_RESPONSE_INVALID = "backend-response-invalid"
    CONFIGURATION_ERROR = "configuration-error"
    SETTINGS_INVALID = "settings-invalid"
    RUNTIME_ERROR = "runtime-error"


def get_type_uri(code: ErrorCode) -> str:
    """Return the Problem Details type URI for ``code``."""
    return f"{BASE_TYPE_URI}/{code.value}"
