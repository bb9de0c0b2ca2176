"""Library components: transport, pagination, normalization, cleaning and orchestration."""

from .base import (
    PipelineComponent,
    NormalizationComponent,
    TransformationComponent,
    RemoteComponent,
)
from .pagination import PaginatedFetcher, RetryState
from .normalization import SensorRecordNormalizer, normalize_records
from .transformation import (
    SensorTransformationComponent,
    apply_alias,
    calibrate_records,
    pivot_records,
    to_frame,
)
from .retrieval import DataAccess
from .events import EventsHandler

__all__ = [
    "PipelineComponent",
    "NormalizationComponent",
    "TransformationComponent",
    "RemoteComponent",
    "PaginatedFetcher",
    "RetryState",
    "SensorRecordNormalizer",
    "normalize_records",
    "SensorTransformationComponent",
    "apply_alias",
    "calibrate_records",
    "pivot_records",
    "to_frame",
    "DataAccess",
    "EventsHandler",
]
