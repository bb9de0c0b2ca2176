"""
Flattening of raw sensor payloads into ``SensorRecord`` lists.

The data API answers in several shapes: a map of sensor id to a list of
points, a map of sensor id to a single point, or a flat list of points.
All of them become uniform ``{time, sensor, value}`` records here.
"""

from typing import Any, Iterable, List

from sensorquery.components.base import NormalizationComponent
from sensorquery.models import SensorRecord


def _text(value: Any) -> Any:
    if not value:
        return ""
    return value if isinstance(value, (int, float)) else str(value)


def _record(point: dict) -> SensorRecord:
    value = point.get("value")
    return SensorRecord(
        time=_text(point.get("time")),
        sensor=str(point.get("sensor") or ""),
        value=value if value and isinstance(value, (str, int, float)) else None,
    )


def _points(raw: Any) -> Iterable[dict]:
    if isinstance(raw, list):
        for item in raw:
            if isinstance(item, dict):
                yield item
        return

    if not isinstance(raw, dict):
        return

    for sensor_data in raw.values():
        if isinstance(sensor_data, list):
            for item in sensor_data:
                if isinstance(item, dict):
                    yield item
        elif isinstance(sensor_data, dict) and sensor_data.get("time") and sensor_data.get("sensor"):
            yield sensor_data


def normalize_records(raw: Any) -> List[SensorRecord]:
    """
    Flatten a raw payload into records, in discovery order.

    Missing ``time``/``sensor`` become empty strings and a missing or falsy
    ``value`` becomes None. Single-point entries without both ``time`` and
    ``sensor`` are skipped. Nothing is sorted.
    """
    return [_record(point) for point in _points(raw)]


class SensorRecordNormalizer(NormalizationComponent):
    """Normalization component reporting its throughput to the observer."""

    def execute(self, raw: Any) -> List[SensorRecord]:
        records = normalize_records(raw)
        raw_size = len(raw) if isinstance(raw, (list, dict)) else 0
        self.observer.on_stage("normalize", raw_size, len(records))
        return records
