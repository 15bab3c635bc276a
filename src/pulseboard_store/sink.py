"""Error sinks receiving load and write failures.

Loaders never raise data failures to their callers; they hand a
:class:`~pulseboard_common.errors.PulseboardError` and a status code to an
:class:`ErrorSink` and carry on. The sink is fire-and-forget: loaders never
inspect what it does with the error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from pulseboard_common.logging import get_logger
from pulseboard_store.slot import ObservableSlot

if TYPE_CHECKING:
    from pulseboard_common.errors import PulseboardError

__all__ = [
    "ErrorSink",
    "LoggingErrorSink",
    "RecordingErrorSink",
    "ReportedError",
]

logger = get_logger(__name__)


class ErrorSink(Protocol):
    """Destination for failures the store cannot recover from."""

    def report(self, error: PulseboardError, code: int) -> None:
        """Record ``error`` with its status ``code``."""
        ...


@dataclass(frozen=True, slots=True)
class ReportedError:
    """An error as delivered to a sink."""

    error: PulseboardError
    code: int


class LoggingErrorSink:
    """Sink that writes each error as a structured log record."""

    def report(self, error: PulseboardError, code: int) -> None:
        logger.log(
            error.log_level,
            "%s",
            error,
            extra={
                "operation": "report_error",
                "status": "error",
                "error_code": error.code.value,
                "http_status": code,
                **{f"ctx_{key}": value for key, value in error.context.items()},
            },
        )


class RecordingErrorSink:
    """Sink that keeps every reported error and exposes the latest one.

    :attr:`active` is an observable slot so a UI can render the most recent
    failure and clear it with :meth:`clear`. Reports are also forwarded to
    ``forward`` (a :class:`LoggingErrorSink` by default).
    """

    def __init__(self, forward: ErrorSink | None = None) -> None:
        self.reported: list[ReportedError] = []
        self.active: ObservableSlot[ReportedError] = ObservableSlot("active_error")
        self._forward = forward if forward is not None else LoggingErrorSink()

    def report(self, error: PulseboardError, code: int) -> None:
        entry = ReportedError(error, code)
        self.reported.append(entry)
        self.active.set(entry)
        self._forward.report(error, code)

    def clear(self) -> None:
        """Forget the active error (history in :attr:`reported` is kept)."""
        self.active.reset()
