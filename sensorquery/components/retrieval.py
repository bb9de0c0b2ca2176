"""
Query orchestrators for sensor data and load entities.

Every sensor query follows the same flow:

    validate input -> check device -> resolve sensors/metadata
        -> compute time bounds -> paginated fetch -> normalize -> clean

Caller input is validated before any request and invalid input raises
``ValidationError``. Everything after that point is query-style: failures
are reported to the observer and an empty list is returned.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError as PydanticValidationError

from sensorquery.components.base import RemoteComponent
from sensorquery.components.metadata import MetadataService
from sensorquery.components.normalization import SensorRecordNormalizer
from sensorquery.components.pagination import SleepFunction
from sensorquery.components.transformation import SensorTransformationComponent
from sensorquery.config import ClientConfig
from sensorquery.config.endpoints import (
    GET_DP_URL,
    GET_FIRST_DP_URL,
    GET_LOAD_ENTITIES_URL,
    GET_RANGE_DATA_URL,
)
from sensorquery.models import (
    DeviceDetail,
    DeviceMetadata,
    LoadEntity,
    PageCursor,
    RangeCursor,
    SensorRecord,
    StepResult,
)
from sensorquery.utils import (
    MalformedResponse,
    NotFoundError,
    PipelineObserver,
    ValidationError,
    normalize_time,
    to_epoch_seconds,
)


def _check_sensor_list(sensor_list: Optional[Sequence[str]]) -> None:
    if sensor_list is not None and len(sensor_list) == 0:
        raise ValidationError("No sensors provided.")


def _first_per_sensor(records: List[SensorRecord], n: int) -> List[SensorRecord]:
    """Keep at most ``n`` records per sensor, in arrival order."""
    seen: Dict[str, int] = {}
    kept = []
    for record in records:
        seen[record.sensor] = seen.get(record.sensor, 0) + 1
        if seen[record.sensor] <= n:
            kept.append(record)
    return kept


def _cursor_payload(payload: Any, url: str) -> Dict[str, Any]:
    """Validate a ``{data, cursor, success}`` envelope."""
    if not isinstance(payload, dict):
        raise MalformedResponse(f"Expected an object with data and cursor [URL] {url}")
    if payload.get("success"):
        raise MalformedResponse(f"Server reported an error [URL] {url}: {payload}")
    data = payload.get("data")
    if data is not None and not isinstance(data, (list, dict)):
        raise MalformedResponse(f"Unexpected data field [URL] {url}")
    return payload


class DataAccess(RemoteComponent):
    """Retrieves sensor data, device metadata and load entities."""

    def __init__(
        self,
        config: ClientConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        observer: Optional[PipelineObserver] = None,
        sleep: SleepFunction = asyncio.sleep,
    ):
        super().__init__(config, http_client, observer, sleep)
        self.metadata = MetadataService(self.api)
        self.normalizer = SensorRecordNormalizer(config, self.observer)

    # ------------------------------------------------------------------
    # Metadata lookups
    # ------------------------------------------------------------------

    async def get_user_info(self, on_prem: Optional[bool] = None) -> Dict[str, Any]:
        """User profile of the configured user, or ``{}`` on failure."""
        return await self.guarded("get_user_info", self.metadata.get_user_info(on_prem), {})

    async def get_device_details(self, on_prem: Optional[bool] = None) -> List[DeviceDetail]:
        """Devices added to the account, or ``[]`` on failure."""
        return await self.guarded("get_device_details", self.metadata.get_device_details(on_prem), [])

    async def get_device_metadata(self, device_id: str, on_prem: Optional[bool] = None) -> Optional[DeviceMetadata]:
        """Metadata of one device, or None on failure."""
        return await self.guarded(
            "get_device_metadata", self.metadata.get_device_metadata(device_id, on_prem), None
        )

    # ------------------------------------------------------------------
    # Shared orchestration steps
    # ------------------------------------------------------------------

    async def _resolve_sensors(
        self,
        device_id: str,
        sensor_list: Optional[Sequence[str]],
        on_prem: Optional[bool],
        need_metadata: bool,
    ) -> Tuple[List[str], Optional[DeviceMetadata]]:
        """
        Check the device exists and work out which sensors to query.

        Metadata is fetched at most once: when no sensor list is given, or
        when calibration or aliases need it.
        """
        devices = await self.metadata.get_device_details(on_prem)
        if not any(d.dev_id == device_id for d in devices):
            raise NotFoundError(f"Device {device_id} not added in account")

        metadata = None
        if sensor_list is None or need_metadata:
            metadata = await self.metadata.get_device_metadata(device_id, on_prem)

        if sensor_list is not None:
            return list(sensor_list), metadata

        sensors = metadata.sensor_ids
        if not sensors:
            raise ValidationError("No sensor data available.")
        return sensors, metadata

    def _clean(
        self,
        records: List[SensorRecord],
        metadata: Optional[DeviceMetadata],
        sensors: List[str],
        cal: bool,
        alias: bool,
        unix: bool,
        pivot: bool,
        sort: bool = False,
    ) -> List[Any]:
        if not records:
            return []
        cleaner = SensorTransformationComponent(self.config, self.observer)
        rows = cleaner.execute(
            records, metadata, sensor_list=sensors,
            cal=cal, alias=alias, unix=unix, pivot=pivot, sort=sort,
        )
        if not pivot:
            return [r.model_dump() for r in rows]
        return rows

    # ------------------------------------------------------------------
    # First point after a start time
    # ------------------------------------------------------------------

    async def get_first_dp(
        self,
        device_id: str,
        sensor_list: Optional[Sequence[str]] = None,
        start_time: Any = None,
        n: int = 1,
        cal: bool = True,
        alias: bool = False,
        unix: bool = False,
        on_prem: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """
        Retrieve the first datapoint of each sensor at or after ``start_time``.

        Args:
            device_id: Device to query
            sensor_list: Sensors to query; None means all sensors of the device
            start_time: Time to search forward from; None means now
            n: Points to keep per sensor
            cal: Apply calibration from device metadata
            alias: Replace sensor ids by their names
            unix: Return times as epoch milliseconds
            on_prem: Override the configured on-premise flag

        Returns:
            One ``{time, sensor, value}`` dict per point; empty on failure

        Raises:
            ValidationError: If ``n`` < 1, the sensor list is empty or the time is invalid
        """
        if n < 1:
            raise ValidationError("Parameter 'n' must be >= 1")
        _check_sensor_list(sensor_list)
        start_ms = normalize_time(start_time, self.config.tz)

        return await self.guarded(
            "get_first_dp",
            self._first_dp(device_id, sensor_list, start_ms, n, cal, alias, unix, on_prem),
            [],
        )

    async def _first_dp(self, device_id, sensor_list, start_ms, n, cal, alias, unix, on_prem):
        sensors, metadata = await self._resolve_sensors(device_id, sensor_list, on_prem, cal or alias)
        url = self.api.url(GET_FIRST_DP_URL, on_prem)

        async def step(cursor: RangeCursor) -> StepResult:
            payload = await self.api.get_json(url, params={
                "device": device_id,
                "sensor": ",".join(sensors),
                "time": to_epoch_seconds(cursor.start),
            })
            if isinstance(payload, dict) and payload.get("success"):
                raise MalformedResponse(f"Server reported an error [URL] {url}: {payload}")
            first = payload[0] if isinstance(payload, list) and payload else payload
            return StepResult(records=self.normalizer.execute(first), next_cursor=None)

        records = await self.fetcher("rest").fetch(step, RangeCursor(start=start_ms), source="get_first_dp")
        records = _first_per_sensor(records, n)
        return self._clean(records, metadata, sensors, cal, alias, unix, pivot=False)

    # ------------------------------------------------------------------
    # Last n points before an end time
    # ------------------------------------------------------------------

    async def get_dp(
        self,
        device_id: str,
        sensor_list: Optional[Sequence[str]] = None,
        n: int = 1,
        end_time: Any = None,
        cal: bool = True,
        alias: bool = False,
        unix: bool = False,
        on_prem: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """
        Retrieve up to ``n`` datapoints per sensor at or before ``end_time``.

        Sensors are walked one after another; each walk pages backwards until
        ``n`` points are collected or the server closes the cursor.

        Raises:
            ValidationError: If ``n`` < 1, the sensor list is empty or the time is invalid
        """
        if n < 1:
            raise ValidationError("Parameter 'n' must be >= 1")
        _check_sensor_list(sensor_list)
        end_ms = normalize_time(end_time, self.config.tz)

        return await self.guarded(
            "get_dp",
            self._dp(device_id, sensor_list, n, end_ms, cal, alias, unix, on_prem),
            [],
        )

    async def _dp(self, device_id, sensor_list, n, end_ms, cal, alias, unix, on_prem):
        sensors, metadata = await self._resolve_sensors(device_id, sensor_list, on_prem, cal or alias)
        url = self.api.url(GET_DP_URL, on_prem)
        fetcher = self.fetcher("rest")

        records: List[SensorRecord] = []
        for sensor in sensors:
            async def step(cursor: RangeCursor, sensor: str = sensor) -> StepResult:
                payload = _cursor_payload(await self.api.get_json(url, params={
                    "device": device_id,
                    "sensor": sensor,
                    "eTime": cursor.end,
                    "lim": cursor.limit or n,
                    "cursor": "true",
                }), url)
                return StepResult(
                    records=self.normalizer.execute(payload.get("data") or []),
                    next_cursor=RangeCursor.from_payload(payload.get("cursor"), required=("end",)),
                )

            initial = RangeCursor(end=to_epoch_seconds(end_ms), limit=n)
            fetched = await fetcher.fetch(step, initial, source=f"get_dp:{sensor}", max_records=n)
            records.extend(fetched[:n])

        return self._clean(records, metadata, sensors, cal, alias, unix, pivot=False)

    # ------------------------------------------------------------------
    # Ranged bulk query
    # ------------------------------------------------------------------

    async def data_query(
        self,
        device_id: str,
        sensor_list: Optional[Sequence[str]] = None,
        start_time: Any = None,
        end_time: Any = None,
        cal: bool = True,
        alias: bool = False,
        unix: bool = False,
        on_prem: Optional[bool] = None,
        sort: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Retrieve all datapoints of a device between two times, pivoted.

        Returns:
            One row per timestamp, ``{"timestamp": t, <sensor>: value, ...}``;
            rows follow first-seen order unless ``sort`` is set

        Raises:
            ValidationError: If end is before start, the sensor list is empty
                or a time is invalid
        """
        _check_sensor_list(sensor_list)
        start_ms = normalize_time(start_time, self.config.tz)
        end_ms = normalize_time(end_time, self.config.tz)
        if end_ms < start_ms:
            raise ValidationError(f"Invalid time range: start ({start_time}) > end ({end_time})")

        return await self.guarded(
            "data_query",
            self._range_query(device_id, sensor_list, start_ms, end_ms, cal, alias, unix, on_prem, sort),
            [],
        )

    async def _range_query(self, device_id, sensor_list, start_ms, end_ms, cal, alias, unix, on_prem, sort):
        sensors, metadata = await self._resolve_sensors(device_id, sensor_list, on_prem, cal or alias)
        url = self.api.url(GET_RANGE_DATA_URL, on_prem)
        sensor_values = ",".join(sensors)

        async def step(cursor: RangeCursor) -> StepResult:
            payload = _cursor_payload(await self.api.get_json(url, params={
                "device": device_id,
                "sensor": sensor_values,
                "sTime": cursor.start,
                "eTime": cursor.end,
                "cursor": "true",
                "limit": self.config.pagination.cursor_limit,
            }), url)
            return StepResult(
                records=self.normalizer.execute(payload.get("data") or []),
                next_cursor=RangeCursor.from_payload(payload.get("cursor")),
            )

        records = await self.fetcher("bulk").fetch(
            step, RangeCursor(start=start_ms, end=end_ms), source=f"data_query:{device_id}"
        )
        return self._clean(records, metadata, sensors, cal, alias, unix, pivot=True, sort=sort)

    # ------------------------------------------------------------------
    # Load entities
    # ------------------------------------------------------------------

    async def get_load_entities(
        self,
        clusters: Optional[Sequence[str]] = None,
        on_prem: Optional[bool] = None,
    ) -> List[LoadEntity]:
        """
        List all load entities (clusters), page by page.

        Args:
            clusters: Keep only entities whose name or id is listed
            on_prem: Override the configured on-premise flag

        Raises:
            ValidationError: If ``clusters`` is an empty list
        """
        if clusters is not None and len(clusters) == 0:
            raise ValidationError("No clusters provided.")

        entities = await self.guarded("get_load_entities", self._load_entities(on_prem), [])
        if clusters is None:
            return entities
        wanted = set(clusters)
        return [e for e in entities if e.name in wanted or e.id in wanted]

    async def _load_entities(self, on_prem: Optional[bool]) -> List[LoadEntity]:
        base_url = self.api.url(GET_LOAD_ENTITIES_URL, on_prem)

        async def step(cursor: PageCursor) -> StepResult:
            url = f"{base_url}/{self.config.user_id}/{cursor.page}/{cursor.page_size}"
            payload = await self.api.get_json(url)
            if not isinstance(payload, dict) or payload.get("error"):
                raise MalformedResponse(f"Server reported an error [URL] {url}: {payload}")
            data, total = payload.get("data"), payload.get("totalCount")
            if not isinstance(data, list) or not isinstance(total, int):
                raise MalformedResponse(f"Missing data or totalCount [URL] {url}")
            try:
                page = [LoadEntity.model_validate(item) for item in data]
            except PydanticValidationError as e:
                raise MalformedResponse(f"Invalid load entity [URL] {url}: {e}") from e
            return StepResult(records=page, next_cursor=cursor.advance(total))

        initial = PageCursor(page=1, page_size=self.config.pagination.entity_page_size)
        return await self.fetcher("rest").fetch(step, initial, source="get_load_entities")
