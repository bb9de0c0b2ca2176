"""Utility modules for the sensor data retrieval library."""

from .logging import setup_logging, get_logger
from .exceptions import (
    SensorQueryError,
    ValidationError,
    NotFoundError,
    TransientFailure,
    MalformedResponse,
    RetrievalExhausted,
    ConfigurationError,
)
from .observer import PipelineObserver, LoggingObserver
from .timeutils import normalize_time, to_epoch_seconds, iso_utc_time

__all__ = [
    "setup_logging",
    "get_logger",
    "SensorQueryError",
    "ValidationError",
    "NotFoundError",
    "TransientFailure",
    "MalformedResponse",
    "RetrievalExhausted",
    "ConfigurationError",
    "PipelineObserver",
    "LoggingObserver",
    "normalize_time",
    "to_epoch_seconds",
    "iso_utc_time",
]
