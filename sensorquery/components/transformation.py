"""
Cleaning stages for sensor records.

Each stage is a pure function returning a new list; the input records are
never modified. ``SensorTransformationComponent`` chains them in the order
filter -> calibrate -> unix time -> alias -> pivot and reports per-stage
sizes to its observer.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from sensorquery.components.base import TransformationComponent
from sensorquery.config import ClientConfig
from sensorquery.models import (
    RESERVED_KEYS,
    CalibrationParams,
    DeviceMetadata,
    PivotedRow,
    SensorRecord,
)
from sensorquery.models.data import parse_float
from sensorquery.utils import PipelineObserver, SensorQueryError, normalize_time

Row = Union[SensorRecord, PivotedRow]


def filter_sensors(records: Sequence[SensorRecord], sensor_list: Optional[Iterable[str]]) -> List[SensorRecord]:
    """Keep records whose sensor is in ``sensor_list``; no list keeps everything."""
    if not sensor_list:
        return list(records)
    wanted = set(sensor_list)
    return [r for r in records if r.sensor in wanted]


def calibrate_value(value: Any, params: CalibrationParams) -> Any:
    """
    Apply ``slope * value + intercept`` and the optional clamps.

    Values that do not parse as a number are returned unchanged.
    """
    if value is None or isinstance(value, bool):
        return value
    raw = parse_float(value)
    if raw is None:
        return value

    calibrated = params.slope * raw + params.intercept
    if params.min is not None:
        calibrated = max(calibrated, params.min)
    if params.max is not None:
        calibrated = min(calibrated, params.max)
    return calibrated


def calibrate_records(records: Sequence[SensorRecord], metadata: Optional[DeviceMetadata]) -> List[SensorRecord]:
    """Calibrate every record that has parameters in ``metadata``."""
    if metadata is None or not metadata.params:
        return list(records)

    calibrated = []
    for record in records:
        params = metadata.params.get(record.sensor)
        if params is None:
            calibrated.append(record)
            continue
        value = calibrate_value(record.value, params)
        calibrated.append(record if value is record.value else record.model_copy(update={"value": value}))
    return calibrated


def _to_millis(value: Any, tz: str) -> Any:
    try:
        return normalize_time(value, tz)
    except SensorQueryError:
        return value


def convert_to_unix(rows: Sequence[Row], tz: str = "UTC") -> List[Row]:
    """Convert each row's ``timestamp`` (pivoted) or ``time`` to epoch milliseconds."""
    converted: List[Row] = []
    for row in rows:
        if isinstance(row, SensorRecord):
            if row.time:
                row = row.model_copy(update={"time": _to_millis(row.time, tz)})
        elif row.get("timestamp"):
            row = {**row, "timestamp": _to_millis(row["timestamp"], tz)}
        elif row.get("time"):
            row = {**row, "time": _to_millis(row["time"], tz)}
        converted.append(row)
    return converted


def apply_alias(rows: Sequence[Row], metadata: Optional[DeviceMetadata]) -> List[Row]:
    """
    Replace sensor ids by their names.

    Long-format records get their ``sensor`` field rewritten. Pivoted rows get
    every non-reserved key that matches a sensor id renamed in place; the value
    moves to the new key.
    """
    aliases = metadata.alias_map() if metadata is not None else {}
    if not aliases:
        return list(rows)

    renamed: List[Row] = []
    for row in rows:
        if isinstance(row, SensorRecord):
            if row.sensor in aliases:
                row = row.model_copy(update={"sensor": aliases[row.sensor]})
            renamed.append(row)
            continue

        new_row: Dict[str, Any] = {}
        for key, value in row.items():
            if key == "sensor" and isinstance(value, str) and value in aliases:
                new_row[key] = aliases[value]
            elif key not in RESERVED_KEYS and key in aliases:
                new_row[aliases[key]] = value
            else:
                new_row[key] = value
        renamed.append(new_row)
    return renamed


def _chronological_key(timestamp: Any):
    try:
        return (0, normalize_time(timestamp), "")
    except SensorQueryError:
        return (1, 0, str(timestamp))


def pivot_records(records: Sequence[SensorRecord], sort: bool = False) -> List[PivotedRow]:
    """
    Reshape long records into one row per distinct timestamp.

    Rows and their columns follow first-seen order. Sensors that did not
    report at a timestamp are absent from that row. ``sort=True`` orders the
    rows chronologically instead.
    """
    grouped: Dict[Any, PivotedRow] = {}
    for record in records:
        row = grouped.setdefault(record.time, {"timestamp": record.time})
        if record.sensor:
            row[record.sensor] = record.value

    rows = list(grouped.values())
    if sort:
        rows.sort(key=lambda r: _chronological_key(r["timestamp"]))
    return rows


def to_frame(rows: Sequence[Row]) -> pd.DataFrame:
    """Build a DataFrame from cleaned rows; absent pivot cells become NaN."""
    return pd.DataFrame.from_records(
        [r.model_dump() if isinstance(r, SensorRecord) else r for r in rows]
    )


class SensorTransformationComponent(TransformationComponent):
    """Cleaning pipeline for normalized sensor records."""

    def __init__(self, config: ClientConfig, observer: Optional[PipelineObserver] = None):
        super().__init__(config, observer)

        self.stats = {
            "input_records": 0,
            "output_rows": 0,
            "records_filtered": 0,
            "records_calibrated": 0,
            "records_aliased": 0,
        }

    def execute(
        self,
        records: Sequence[SensorRecord],
        metadata: Optional[DeviceMetadata] = None,
        sensor_list: Optional[Sequence[str]] = None,
        cal: bool = True,
        alias: bool = False,
        unix: bool = False,
        pivot: bool = True,
        sort: bool = False,
    ) -> List[Row]:
        """
        Run the cleaning stages.

        Args:
            records: Normalized sensor records
            metadata: Device metadata for calibration and aliases
            sensor_list: Sensors to keep
            cal: Apply calibration
            alias: Replace sensor ids by names
            unix: Convert times to epoch milliseconds
            pivot: Reshape to one row per timestamp
            sort: Order pivoted rows chronologically

        Returns:
            Cleaned records, or pivoted rows when ``pivot`` is set
        """
        self.stats["input_records"] = len(records)

        rows: List[Any] = filter_sensors(records, sensor_list)
        self.stats["records_filtered"] = len(records) - len(rows)
        self.observer.on_stage("filter", len(records), len(rows))

        if cal and metadata is not None:
            calibrated = calibrate_records(rows, metadata)
            self.stats["records_calibrated"] = sum(
                1 for before, after in zip(rows, calibrated) if before is not after
            )
            rows = calibrated
            self.observer.on_stage("calibrate", len(rows), len(rows))

        if unix:
            rows = convert_to_unix(rows, self.config.tz)
            self.observer.on_stage("unix", len(rows), len(rows))

        if alias and metadata is not None:
            aliased = apply_alias(rows, metadata)
            self.stats["records_aliased"] = sum(
                1 for before, after in zip(rows, aliased) if before is not after
            )
            rows = aliased
            self.observer.on_stage("alias", len(rows), len(rows))

        if pivot:
            pivoted = pivot_records(rows, sort=sort)
            self.observer.on_stage("pivot", len(rows), len(pivoted))
            rows = pivoted

        self.stats["output_rows"] = len(rows)
        return rows
