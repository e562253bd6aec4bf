"""Core application components"""

from .config import Settings, get_settings
from .exceptions import (
    AnalysisError,
    ConfigurationError,
    DecodeError,
    ExtractionError,
    PersistenceError,
    PlaylistaError,
)
from .logging import LogContext, OperationLog, get_logger, reset_logging, setup_logging

__all__ = [
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    "reset_logging",
    "LogContext",
    "OperationLog",
    "PlaylistaError",
    "ConfigurationError",
    "AnalysisError",
    "DecodeError",
    "ExtractionError",
    "PersistenceError",
]
