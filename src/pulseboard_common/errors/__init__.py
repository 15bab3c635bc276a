"""Exception hierarchy and Problem Details support.

Examples
--------
>>> from pulseboard_common.errors import PulseboardError, ErrorCode
>>> try:
...     raise PulseboardError("Operation failed", code=ErrorCode.RUNTIME_ERROR)
... except PulseboardError as e:
...     details = e.to_problem_details(instance="urn:pulseboard:cli")
...     assert details["type"] == "https://pulseboard.dev/problems/runtime-error"
"""

from __future__ import annotations

from pulseboard_common.errors.codes import BASE_TYPE_URI, ErrorCode, get_type_uri
from pulseboard_common.errors.exceptions import (
    BackendError,
    ConfigurationError,
    FetchError,
    PulseboardError,
    SettingsError,
    WriteError,
)

__all__ = [
    "BASE_TYPE_URI",
    "BackendError",
    "ConfigurationError",
    "ErrorCode",
    "FetchError",
    "PulseboardError",
    "SettingsError",
    "WriteError",
    "get_type_uri",
]
