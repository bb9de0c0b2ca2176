"""Data models for the sensor data retrieval library."""

from .data import (
    SensorRecord,
    RangeCursor,
    PageCursor,
    Cursor,
    Outcome,
    StepResult,
    CalibrationParams,
    SensorInfo,
    DeviceMetadata,
    DeviceDetail,
    LoadEntity,
    EventCategory,
    PivotedRow,
    RESERVED_KEYS,
)

__all__ = [
    "SensorRecord",
    "RangeCursor",
    "PageCursor",
    "Cursor",
    "Outcome",
    "StepResult",
    "CalibrationParams",
    "SensorInfo",
    "DeviceMetadata",
    "DeviceDetail",
    "LoadEntity",
    "EventCategory",
    "PivotedRow",
    "RESERVED_KEYS",
]
