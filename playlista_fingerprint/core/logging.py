"""
Structured logging for Playlista fingerprinting

One process-wide structlog configuration, set up once by setup_logging()
and torn down by reset_logging(). Errors are logged by passing the
exception itself as ``error=``; the render chain expands it.
"""

import logging
import sys
import time
from typing import Any, Dict, Optional

import structlog

# Third-party loggers that are chatty at INFO during decoding and DB access
QUIET_LOGGERS = ("asyncio", "numba", "audioread", "sqlalchemy.engine")


def expand_error(logger, method_name, event_dict):
    """
    Replace an ``error`` exception with error_type / error_message fields.
    Playlista errors also contribute their structured context (file_id,
    path, operation, ...) as ``error_context``.
    """
    error = event_dict.pop("error", None)
    if not isinstance(error, BaseException):
        if error is not None:
            event_dict["error"] = error
        return event_dict

    event_dict["error_type"] = type(error).__name__
    event_dict["error_message"] = str(error)
    to_dict = getattr(error, "to_dict", None)
    if to_dict is not None:
        context = to_dict().get("context")
        if context:
            event_dict["error_context"] = context
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structlog for the whole process

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: json for machine-readable lines, anything else for console
    """
    level = getattr(logging, log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        expand_error,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty(), pad_event=25))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def reset_logging() -> None:
    """Undo setup_logging and drop any bound context"""
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def get_logger(name: str) -> structlog.BoundLogger:
    """Logger for a component, e.g. 'library.pipeline' or 'analysis.features'"""
    return structlog.get_logger(name)


class LogContext:
    """Bind key/value context (run_id, file_id, ...) to every log line in a block"""

    def __init__(self, **context):
        self.context = context

    def __enter__(self):
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        structlog.contextvars.unbind_contextvars(*self.context.keys())


class OperationLog:
    """
    Timed start / completed / failed records for one long-running operation.

    Context given up front is logged at start; context added with update()
    while the block runs is logged with the outcome. Exceptions are logged
    and re-raised.
    """

    def __init__(self, logger: structlog.BoundLogger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context: Dict[str, Any] = dict(context)
        self._started: Optional[float] = None

    @property
    def duration_ms(self) -> float:
        if self._started is None:
            return 0.0
        return round((time.perf_counter() - self._started) * 1000, 2)

    def update(self, **context) -> None:
        self.context.update(context)

    def __enter__(self) -> "OperationLog":
        self._started = time.perf_counter()
        self.logger.info(f"Starting {self.operation}", operation=self.operation, **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_val is None:
            self.logger.info(
                f"Completed {self.operation}",
                operation=self.operation,
                duration_ms=self.duration_ms,
                status="success",
                **self.context
            )
        else:
            self.logger.error(
                f"Failed {self.operation}",
                operation=self.operation,
                duration_ms=self.duration_ms,
                status="error",
                error=exc_val,
                **self.context
            )
        return False
