"""Typed exception hierarchy with Problem Details support.

All pulseboard exceptions inherit from :class:`PulseboardError`, which carries
a stable error code, an HTTP-style status, a log level, an optional cause and
a context mapping.

Examples
--------
>>> from pulseboard_common.errors import FetchError, ErrorCode
>>> error = FetchError("projects query failed", context={"key": "all"})
>>> error.code is ErrorCode.FETCH_FAILED
True
>>> error.to_problem_details(instance="urn:pulseboard:loader:projects")["status"]
502
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, ClassVar

from pulseboard_common.errors.codes import ErrorCode, get_type_uri
from pulseboard_common.problem_details import build_problem_details

if TYPE_CHECKING:
    from pulseboard_common.problem_details import ProblemDetails

__all__ = [
    "BackendError",
    "ConfigurationError",
    "FetchError",
    "PulseboardError",
    "SettingsError",
    "WriteError",
]


class PulseboardError(Exception):
    """Base exception for all pulseboard errors.

    Subclasses set class-level defaults for ``code``, ``http_status`` and
    ``log_level``; each may be overridden per instance.

    Parameters
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode | None, optional
        Error code. Defaults to the class default.
    http_status : int | None, optional
        HTTP status used in Problem Details. Defaults to the class default.
    log_level : int | None, optional
        Level used when the error is logged. Defaults to the class default.
    cause : BaseException | None, optional
        Underlying exception, stored as ``__cause__``. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional structured context. Defaults to None.

    Attributes
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode
        Error code enum value.
    http_status : int
        HTTP status code for Problem Details payloads.
    log_level : int
        Logging level for error logging.
    context : dict[str, object]
        Additional context for error details.
    """

    default_code: ClassVar[ErrorCode] = ErrorCode.RUNTIME_ERROR
    default_http_status: ClassVar[int] = 500
    default_log_level: ClassVar[int] = logging.ERROR

    def __init__(  # noqa: PLR0913
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        http_status: int | None = None,
        log_level: int | None = None,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.http_status = http_status if http_status is not None else self.default_http_status
        self.log_level = log_level if log_level is not None else self.default_log_level
        self.context: dict[str, object] = dict(context) if context else {}
        if cause is not None:
            self.__cause__ = cause

    def to_problem_details(
        self,
        instance: str | None = None,
        title: str | None = None,
    ) -> ProblemDetails:
        """Convert to RFC 9457 Problem Details JSON.

        Parameters
        ----------
        instance : str | None, optional
            URI identifying the specific occurrence. Defaults to
            ``"urn:pulseboard:error"``.
        title : str | None, optional
            Short summary. Defaults to the exception class name.

        Returns
        -------
        ProblemDetails
            Problem Details object with type, title, status, detail, code,
            instance and the error context as extensions.
        """
        return build_problem_details(
            get_type_uri(self.code),
            title or self.__class__.__name__,
            self.http_status,
            self.message,
            instance or "urn:pulseboard:error",
            code=self.code.value,
            extensions=self.context or None,
        )

    def __str__(self) -> str:
        """Return ``"ClassName[code]: message"`` plus the cause type when present."""
        base = f"{self.__class__.__name__}[{self.code.value}]: {self.message}"
        if self.__cause__:
            base += f" (caused by: {type(self.__cause__).__name__})"
        return base


class FetchError(PulseboardError):
    """A query rejected or returned an error payload.

    Never raised by loaders; constructed and handed to the error sink.
    """

    default_code = ErrorCode.FETCH_FAILED
    default_http_status = 502


class WriteError(PulseboardError):
    """A partial update could not be persisted."""

    default_code = ErrorCode.WRITE_FAILED
    default_http_status = 502


class BackendError(PulseboardError):
    """The data service could not be reached after all retries."""

    default_code = ErrorCode.BACKEND_UNAVAILABLE
    default_http_status = 503


class ConfigurationError(PulseboardError):
    """Invalid wiring or missing configuration detected at startup."""

    default_code = ErrorCode.CONFIGURATION_ERROR


class SettingsError(ConfigurationError):
    """Environment-driven settings failed validation."""

    default_code = ErrorCode.SETTINGS_INVALID
