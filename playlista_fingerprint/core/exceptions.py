"""
Custom exceptions for Playlista fingerprinting.

Per-file failures (DecodeError, ExtractionError) are contained at the
analysis task boundary; PersistenceError is fatal to a pipeline run.
Cancellation is not an exception.
"""

from typing import Any, Dict, Optional


class PlaylistaError(Exception):
    """Base exception for all Playlista errors."""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.context = context or {}
        self.original_exception = original_exception

    def __str__(self) -> str:
        """Return a formatted error message."""
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            'type': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
            'context': self.context,
            'original_exception': str(self.original_exception) if self.original_exception else None
        }


class ConfigurationError(PlaylistaError):
    """Raised when a runtime parameter is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.config_key = config_key
        self.config_value = config_value

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'config_key': self.config_key,
            'config_value': str(self.config_value) if self.config_value is not None else None
        })
        return base_dict


class AnalysisError(PlaylistaError):
    """Base class for per-file analysis failures."""

    def __init__(self, message: str, file_id: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.file_id = file_id
        if file_id is not None:
            self.context.setdefault('file_id', file_id)


class DecodeError(AnalysisError):
    """Raised when an audio file cannot be read or decoded."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.path = path
        if path is not None:
            self.context.setdefault('path', path)


class ExtractionError(AnalysisError):
    """Raised when descriptor computation fails numerically."""


class PersistenceError(PlaylistaError):
    """Raised when a feature store query or transaction fails."""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        if operation is not None:
            self.context.setdefault('operation', operation)
