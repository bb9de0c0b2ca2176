"""
Pydantic models for data structures used throughout the library.

Raw JSON payloads are validated into these models at the transport
boundary; pipeline stages only ever see typed values.
"""

import math
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from sensorquery.utils.exceptions import MalformedResponse

Scalar = Union[str, int, float]

# Keys of a row that are never sensor identifiers
RESERVED_KEYS = frozenset({"sensor", "time", "timestamp"})

PivotedRow = Dict[str, Any]


class SensorRecord(BaseModel):
    """A single long-format point: one sensor value at one time."""
    model_config = ConfigDict(frozen=True)

    time: Scalar = Field("", description="Point timestamp as returned by the API")
    sensor: str = Field("", description="Sensor identifier or alias")
    value: Optional[Scalar] = Field(None, description="Raw or calibrated reading")


class RangeCursor(BaseModel):
    """Range-walking cursor; the server hands back the next window or nothing."""
    model_config = ConfigDict(frozen=True)

    start: Optional[int] = None
    end: Optional[int] = None
    limit: Optional[int] = None

    def has_more(self, accumulated: int) -> bool:
        return True

    @classmethod
    def from_payload(cls, payload: Any, required: tuple = ("start", "end")) -> Optional["RangeCursor"]:
        """
        Parse a server cursor, returning None when the walk is over.

        A cursor is closed when it is falsy or any required bound is falsy.

        Raises:
            MalformedResponse: If a bound is not an integer
        """
        if not payload or not isinstance(payload, dict):
            return None
        if not all(payload.get(key) for key in required):
            return None
        try:
            return cls(**{k: payload.get(k) for k in ("start", "end", "limit")})
        except PydanticValidationError as e:
            raise MalformedResponse(f"Invalid cursor {payload}: {e}") from e


class PageCursor(BaseModel):
    """Offset-walking cursor; done once the accumulated count reaches the total."""
    model_config = ConfigDict(frozen=True)

    page: int = Field(1, ge=1)
    page_size: int = Field(..., gt=0)
    total_count: Optional[int] = None

    def has_more(self, accumulated: int) -> bool:
        return self.total_count is None or accumulated < self.total_count

    def advance(self, total_count: int) -> "PageCursor":
        return PageCursor(page=self.page + 1, page_size=self.page_size, total_count=total_count)


Cursor = Union[RangeCursor, PageCursor]


class Outcome(str, Enum):
    """Result of one pagination step."""
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    FATAL_FAILURE = "fatal_failure"


T = TypeVar("T")


class StepResult(BaseModel, Generic[T]):
    """What a step function returns for one cursor position."""
    records: List[T] = Field(default_factory=list)
    next_cursor: Optional[Union[RangeCursor, PageCursor]] = None
    outcome: Outcome = Outcome.SUCCESS
    detail: str = ""


def parse_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


class CalibrationParams(BaseModel):
    """Linear calibration with optional clamping."""
    model_config = ConfigDict(frozen=True)

    slope: float = Field(1.0, description="Multiplier applied to the raw value")
    intercept: float = Field(0.0, description="Offset added after scaling")
    min: Optional[float] = Field(None, description="Lower clamp")
    max: Optional[float] = Field(None, description="Upper clamp")

    @classmethod
    def from_param_list(cls, params: Any) -> "CalibrationParams":
        """
        Build calibration parameters from a metadata parameter list.

        The list holds ``{"paramName": ..., "paramValue": ...}`` entries where
        ``m`` is the slope, ``c`` the intercept and ``min``/``max`` the clamps.
        Unparsable values fall back to the identity defaults.
        """
        values: Dict[str, Optional[float]] = {}
        for param in params or []:
            if not isinstance(param, dict):
                continue
            values[param.get("paramName")] = parse_float(param.get("paramValue"))

        slope = values.get("m")
        intercept = values.get("c")
        return cls(
            slope=1.0 if slope is None else slope,
            intercept=0.0 if intercept is None else intercept,
            min=values.get("min"),
            max=values.get("max"),
        )


class SensorInfo(BaseModel):
    """A sensor as listed in device metadata."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    sensor_id: str = Field(..., alias="sensorId")
    sensor_name: str = Field("", alias="sensorName")


class DeviceMetadata(BaseModel):
    """Device metadata relevant to cleaning: sensors and calibration parameters."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    dev_id: str = Field("", alias="devID")
    dev_name: str = Field("", alias="devName")
    sensors: List[SensorInfo] = Field(default_factory=list)
    params: Dict[str, CalibrationParams] = Field(default_factory=dict)

    @field_validator('params', mode='before')
    @classmethod
    def parse_param_lists(cls, v):
        if not isinstance(v, dict):
            return {}
        return {
            sensor: p if isinstance(p, CalibrationParams) else CalibrationParams.from_param_list(p)
            for sensor, p in v.items()
        }

    @property
    def sensor_ids(self) -> List[str]:
        return [s.sensor_id for s in self.sensors]

    def alias_map(self) -> Dict[str, str]:
        """Sensor id to human-readable name, skipping sensors without a name."""
        return {s.sensor_id: s.sensor_name for s in self.sensors if s.sensor_name}


class DeviceDetail(BaseModel):
    """An entry of the account's device list."""
    model_config = ConfigDict(populate_by_name=True, extra='allow')

    dev_id: str = Field(..., alias="devID")
    dev_type_id: str = Field("", alias="devTypeID")


class LoadEntity(BaseModel):
    """A load entity (cluster) as returned by the entity listing."""
    model_config = ConfigDict(extra='allow')

    id: str
    name: str = ""

    @field_validator('id', 'name', mode='before')
    @classmethod
    def as_text(cls, v):
        return "" if v is None else str(v)


class EventCategory(BaseModel):
    """An event tag category."""
    model_config = ConfigDict(populate_by_name=True, extra='allow')

    id: str = Field(..., alias="_id")
    name: str = ""
