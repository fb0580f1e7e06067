"""Python logging handler adapter for telemetripy.

This adapter bridges Python's standard library logging module to a
``LogPipeline``, so records from existing ``logging`` calls flow through the
same filters, buffer and transports as structured log calls.
"""

import logging
import traceback

from telemetripy.core.diagnostics import is_internal_logger
from telemetripy.core.logs import BoundLogger, LogPipeline
from telemetripy.core.models import LogError, normalize_level

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)

# Default attributes to extract from LogRecord
_DEFAULT_INCLUDE_ATTRS = ["logger", "funcName", "lineno"]


class TelemetripyHandler(logging.Handler):
    """Logging handler that forwards log records to a ``LogPipeline``.

    Records from telemetripy's own loggers are skipped so pipeline
    diagnostics never loop back into the pipeline.

    Example:
        ```python
        from telemetripy import LogPipeline, TelemetripyHandler

        pipeline = LogPipeline()
        logging.getLogger().addHandler(TelemetripyHandler(pipeline))
        ```
    """

    def __init__(
        self,
        pipeline: LogPipeline | BoundLogger,
        include_attrs: list[str] | None = None,
        level: int = logging.NOTSET,
    ) -> None:
        """Initialize the handler with the pipeline receiving records.

        Args:
            pipeline: Pipeline (or bound logger) the records are logged to.
            include_attrs: LogRecord attributes copied into the entry context.
                Defaults to ["logger", "funcName", "lineno"].
            level: Minimum stdlib level handled.
        """
        super().__init__(level)
        self._pipeline = pipeline
        self._include_attrs = include_attrs or _DEFAULT_INCLUDE_ATTRS

    def emit(self, record: logging.LogRecord) -> None:
        """Forward a log record to the pipeline.

        Args:
            record: The log record to emit.
        """
        if is_internal_logger(record.name):
            return
        try:
            attr_mapping: dict[str, str | int | float | bool] = {
                "logger": record.name,
                "module": record.module,
                "funcName": record.funcName or "",
                "lineno": record.lineno,
                "pathname": record.pathname,
            }
            context: dict[str, object] = {
                key: attr_mapping[key] for key in self._include_attrs if key in attr_mapping
            }

            # Extras passed via logging(..., extra={...})
            for key, value in record.__dict__.items():
                if key not in _STANDARD_LOGRECORD_ATTRS and key not in context:
                    context[key] = value

            self._pipeline.log(
                normalize_level(record.levelname) or "info",
                record.getMessage(),
                context,
                _record_error(record),
            )
        except Exception:
            self.handleError(record)


def _record_error(record: logging.LogRecord) -> LogError | None:
    if not record.exc_info:
        return None
    exc_type, exc_value, exc_tb = record.exc_info
    if exc_value is None:
        return None
    return LogError(
        name=exc_type.__name__ if exc_type is not None else type(exc_value).__name__,
        message=str(exc_value),
        stack="".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        code=str(exc_value.code) if getattr(exc_value, "code", None) is not None else None,
    )
