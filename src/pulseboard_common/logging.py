"""Structured logging helpers with correlation IDs.

This module provides a LoggerAdapter for structured logging with the fields
``correlation_id``, ``operation`` and ``status``, plus module-level loggers
with a NullHandler so library modules never configure handlers themselves.

Examples
--------
>>> from pulseboard_common.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Projects loaded", extra={"operation": "get_all", "status": "success"})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from collections.abc import Mapping, MutableMapping
    from types import TracebackType

    from pulseboard_common.types import JsonValue

__all__ = [
    "CorrelationContext",
    "JsonFormatter",
    "LoggerAdapter",
    "TextFormatter",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    "with_fields",
]

# Context variable for correlation ID propagation (async-safe)
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

_STRUCTURED_FIELDS = ("correlation_id", "operation", "status", "duration_ms")

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "ts"}


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Formats log records as JSON with timestamp, level, name, message and the
    structured fields. Falls back to the correlation id stored in contextvars
    when the record does not carry one.

    Examples
    --------
    >>> import logging
    >>> handler = logging.StreamHandler()
    >>> handler.setFormatter(JsonFormatter())
    >>> logger = logging.getLogger("test")
    >>> logger.addHandler(handler)
    >>> logger.info("Test message", extra={"operation": "test", "status": "success"})
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format. May include extra fields in ``record.__dict__``.

        Returns
        -------
        str
            JSON-encoded log entry. Extra fields are included when they are
            JSON-compatible scalars or containers.
        """
        data: dict[str, JsonValue] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        for field in _STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                data[field] = value

        if "correlation_id" not in data:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                data["correlation_id"] = ctx_correlation_id

        for key, value in record.__dict__.items():
            if (
                key not in _RECORD_ATTRIBUTES
                and key not in data
                and not key.startswith("_")
                and value is not None
                and isinstance(value, (str, int, float, bool, list, dict))
            ):
                data[key] = value

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter that appends ``operation``/``status`` when present."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        """Format ``record`` and append the structured fields in ``key=value`` form."""
        base = super().format(record)
        fields = [
            f"{field}={getattr(record, field)}"
            for field in _STRUCTURED_FIELDS
            if getattr(record, field, None) is not None
        ]
        return f"{base} [{' '.join(fields)}]" if fields else base


class LoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that injects structured context fields.

    Every entry gets ``operation`` and ``status`` (inferred from the level when
    missing) and the correlation id from contextvars. Fields bound through the
    constructor (see :func:`with_fields`) persist across calls; per-call
    ``extra`` values win over bound ones.

    Parameters
    ----------
    logger : logging.Logger
        Base logger instance to wrap.
    extra : Mapping[str, object] | None, optional
        Structured fields to inject into every log entry. Defaults to None.
    """

    logger: logging.Logger

    def process(
        self, msg: object, kwargs: MutableMapping[str, Any]
    ) -> tuple[object, MutableMapping[str, Any]]:
        """Merge bound fields and the context correlation id into ``extra``."""
        extra = dict(kwargs.get("extra") or {})
        if self.extra:
            for key, value in self.extra.items():
                extra.setdefault(key, value)
        if "correlation_id" not in extra:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                extra["correlation_id"] = ctx_correlation_id
        kwargs["extra"] = extra
        return msg, kwargs

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:  # noqa: ANN401
        """Log ``msg`` at ``level`` with structured fields."""
        if not self.isEnabledFor(level):
            return
        msg, processed = self.process(msg, kwargs)
        self._ensure_operation_and_status(processed["extra"], level)
        self.logger.log(level, msg, *args, **processed)

    @staticmethod
    def _ensure_operation_and_status(extra: dict[str, Any], level: int) -> None:
        extra.setdefault("operation", "unknown")
        if "status" not in extra:
            if level >= logging.ERROR:
                extra["status"] = "error"
            elif level >= logging.WARNING:
                extra["status"] = "warning"
            else:
                extra["status"] = "success"

    def log_failure(
        self,
        message: str,
        *,
        exception: BaseException | None = None,
        operation: str | None = None,
        **fields: object,
    ) -> None:
        """Log a failure with structured fields.

        Parameters
        ----------
        message : str
            Failure message.
        exception : BaseException | None, optional
            Exception that caused the failure; its type and text are added as
            ``error_type`` and ``error_detail``. Defaults to None.
        operation : str | None, optional
            Operation name. Defaults to None.
        **fields : object
            Additional structured fields.
        """
        extra: dict[str, object] = {"status": "error"}
        if operation is not None:
            extra["operation"] = operation
        if exception is not None:
            extra["error_type"] = exception.__class__.__name__
            extra["error_detail"] = str(exception)
        extra.update(fields)
        self.error(message, extra=extra)


def get_logger(name: str) -> LoggerAdapter:
    """Get a logger adapter with structured logging support.

    Module-level loggers get a NullHandler so importing a library module
    never produces output on its own. Applications configure handlers via
    :func:`setup_logging`.

    Parameters
    ----------
    name : str
        Logger name (typically ``__name__`` from the calling module).

    Returns
    -------
    LoggerAdapter
        Logger adapter with structured context injection.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return LoggerAdapter(logger, {})


def setup_logging(level: int | str = logging.INFO, *, log_format: str = "json") -> None:
    """Configure the root logger with a JSON or text formatter on stderr.

    Parameters
    ----------
    level : int | str, optional
        Logging level threshold, as a number or a level name. Defaults to INFO.
    log_format : str, optional
        ``"json"`` or ``"text"``. Defaults to ``"json"``.

    Raises
    ------
    ValueError
        If ``log_format`` is not recognised.
    """
    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter()
    elif log_format == "text":
        formatter = TextFormatter()
    else:
        message = f"Unsupported log format: {log_format!r}"
        raise ValueError(message)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=[handler], force=True)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set correlation ID in context for async propagation.

    Parameters
    ----------
    correlation_id : str | None
        Correlation ID to set (or None to clear).
    """
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Return the current correlation ID, or None if unset."""
    return _correlation_id.get()


class CorrelationContext:
    """Context manager scoping a correlation ID.

    Restores the previous correlation ID on exit.

    Parameters
    ----------
    correlation_id : str | None
        Correlation ID to set in context.

    Examples
    --------
    >>> from pulseboard_common.logging import CorrelationContext, get_logger
    >>> logger = get_logger(__name__)
    >>> with CorrelationContext(correlation_id="session-1"):
    ...     logger.info("Session started")
    """

    def __init__(self, correlation_id: str | None) -> None:
        self.correlation_id = correlation_id
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> Self:
        self._token = _correlation_id.set(self.correlation_id)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _correlation_id.reset(self._token)
        del exc_type, exc_val, exc_tb


class _WithFieldsContext(AbstractContextManager[LoggerAdapter]):
    """Context manager implementation for :func:`with_fields`."""

    def __init__(
        self, logger: logging.Logger | LoggerAdapter, fields: Mapping[str, object]
    ) -> None:
        self._logger = logger
        self._fields = dict(fields)
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> LoggerAdapter:
        if isinstance(self._logger, LoggerAdapter):
            base_logger = self._logger.logger
            fields = {**(self._logger.extra or {}), **self._fields}
        else:
            base_logger = self._logger
            fields = self._fields
        correlation_id = fields.get("correlation_id")
        if isinstance(correlation_id, str):
            self._token = _correlation_id.set(correlation_id)
        return LoggerAdapter(base_logger, fields)

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _correlation_id.reset(self._token)
        del exc_type, exc_value, exc_tb


def with_fields(
    logger: logging.Logger | LoggerAdapter,
    **fields: object,
) -> AbstractContextManager[LoggerAdapter]:
    """Bind structured fields to every log entry made inside the block.

    Parameters
    ----------
    logger : logging.Logger | LoggerAdapter
        Base logger to wrap (may already be an adapter; its bound fields are kept).
    **fields : object
        Structured fields to inject. A ``correlation_id`` field is also set
        in contextvars for the duration of the block.

    Returns
    -------
    AbstractContextManager[LoggerAdapter]
        Context manager yielding a LoggerAdapter with the fields bound.

    Examples
    --------
    >>> from pulseboard_common.logging import get_logger, with_fields
    >>> logger = get_logger(__name__)
    >>> with with_fields(logger, operation="get_one", loader="project") as log:
    ...     log.info("Loading project")
    """
    return _WithFieldsContext(logger, fields)
