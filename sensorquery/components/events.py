"""
Event retrieval and publishing, plus the maintenance and row-store reads
that share the event service.

Reads are query-style (failures are reported and an empty result comes
back). ``publish_event`` is a mutation and re-raises every failure after
reporting it, so a caller never mistakes a lost event for a published one.
"""

from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from sensorquery.components.api import require_data
from sensorquery.components.base import RemoteComponent
from sensorquery.config.endpoints import (
    GET_DETAILED_EVENT_URL,
    GET_DEVICE_DATA_URL,
    GET_DEVICE_ROWS_METADATA_URL,
    GET_EVENT_CATEGORIES_URL,
    GET_EVENT_DATA_COUNT_URL,
    GET_EVENTS_IN_TIMESLOT_URL,
    GET_MAINTENANCE_MODULE_DATA_URL,
    GET_SENSOR_ROWS_URL,
    PUBLISH_EVENT_URL,
)
from sensorquery.models import EventCategory, PageCursor, StepResult
from sensorquery.utils import MalformedResponse, ValidationError, iso_utc_time, normalize_time

MAX_EVENT_COUNT = 10000
DEFAULT_DEVICE_ROWS = 5000


def _without_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


class EventsHandler(RemoteComponent):
    """Event operations for the configured user."""

    def _list_data(self, payload: Any, url: str) -> List[Any]:
        data = require_data(payload, url)
        if not isinstance(data, list):
            raise MalformedResponse(f"Expected a list of events [URL] {url}")
        return data

    async def get_event_categories(self, on_prem: Optional[bool] = None) -> List[EventCategory]:
        """All event categories (tags) of the account; ``[]`` on failure."""
        return await self.guarded("get_event_categories", self._event_categories(on_prem), [])

    async def _event_categories(self, on_prem: Optional[bool]) -> List[EventCategory]:
        url = self.api.url(GET_EVENT_CATEGORIES_URL, on_prem)
        data = self._list_data(await self.api.get_json(url), url)
        try:
            return [EventCategory.model_validate(item) for item in data]
        except PydanticValidationError as e:
            raise MalformedResponse(f"Invalid event category [URL] {url}: {e}") from e

    async def publish_event(
        self,
        message: str,
        meta_data: str,
        hover_data: str,
        created_on: Optional[str] = None,
        event_tags_list: Optional[Sequence[str]] = None,
        event_names_list: Optional[Sequence[str]] = None,
        title: Optional[str] = None,
        on_prem: Optional[bool] = None,
    ) -> Any:
        """
        Publish an event.

        Tag names in ``event_names_list`` are resolved to tag ids through the
        event categories and replace ``event_tags_list``.

        Returns:
            The ``data`` field of the server response

        Raises:
            ValidationError: If a tag name is unknown or no tags remain
            SensorQueryError: If the request fails
        """
        try:
            tags = list(event_tags_list or [])
            if event_names_list:
                categories = await self._event_categories(on_prem)
                by_name = {c.name: c.id for c in categories}
                tags = []
                for name in event_names_list:
                    if name not in by_name:
                        raise ValidationError(f"Tag '{name}' not found in data.")
                    tags.append(by_name[name])

            if not tags:
                raise ValidationError("No event tags found.")

            url = self.api.url(PUBLISH_EVENT_URL, on_prem)
            payload = {
                "title": title,
                "message": message,
                "metaData": meta_data,
                "eventTags": tags,
                "hoverData": hover_data,
                "createdOn": created_on,
            }
            return require_data(await self.api.post_json(url, payload), url)
        except Exception as e:
            self.observer.on_error("publish_event", e)
            raise

    async def get_events_in_timeslot(
        self,
        start_time: Any,
        end_time: Any = None,
        on_prem: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """
        Events between two times; ``[]`` on failure.

        Raises:
            ValidationError: If end is before start or a time is invalid
        """
        start_iso = iso_utc_time(start_time, self.config.tz)
        end_iso = iso_utc_time(end_time, self.config.tz)
        if end_iso < start_iso:
            raise ValidationError(
                f"Invalid time range: start_time({start_iso}) should be before end_time({end_iso})."
            )

        async def call():
            url = self.api.url(GET_EVENTS_IN_TIMESLOT_URL, on_prem)
            payload = {"startTime": start_iso, "endTime": end_iso}
            return self._list_data(await self.api.put_json(url, payload), url)

        return await self.guarded("get_events_in_timeslot", call(), [])

    async def get_event_data_count(
        self,
        end_time: Any = None,
        count: int = 10,
        on_prem: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """
        The latest ``count`` events up to ``end_time``; ``[]`` on failure.

        Raises:
            ValidationError: If ``count`` exceeds 10000
        """
        if count > MAX_EVENT_COUNT:
            raise ValidationError(f"Count should be less than or equal to {MAX_EVENT_COUNT}.")
        end_iso = iso_utc_time(end_time, self.config.tz)

        async def call():
            url = self.api.url(GET_EVENT_DATA_COUNT_URL, on_prem)
            payload = {"endTime": end_iso, "count": count}
            return self._list_data(await self.api.put_json(url, payload), url)

        return await self.guarded("get_event_data_count", call(), [])

    async def get_detailed_event(
        self,
        event_tags_list: Optional[Sequence[str]] = None,
        start_time: Any = None,
        end_time: Any = None,
        on_prem: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """
        Detailed events for a time range, walking every page.

        Pages hold ``event_page_size`` events; the walk stops once the number
        of collected events reaches the reported total. Without a tag list all
        event categories are requested.
        """
        start_iso = iso_utc_time(start_time, self.config.tz)
        end_iso = iso_utc_time(end_time, self.config.tz)

        return await self.guarded(
            "get_detailed_event",
            self._detailed_event(event_tags_list, start_iso, end_iso, on_prem),
            [],
        )

    async def _detailed_event(self, event_tags_list, start_iso, end_iso, on_prem) -> List[Dict[str, Any]]:
        tags = event_tags_list
        if tags is None:
            tags = [c.id for c in await self.get_event_categories(on_prem)]

        base_url = self.api.url(GET_DETAILED_EVENT_URL, on_prem)
        body = {"startTime": start_iso, "endTime": end_iso, "eventTags": list(tags)}

        async def step(cursor: PageCursor) -> StepResult:
            url = f"{base_url}/{cursor.page}/{cursor.page_size}"
            payload = await self.api.put_json(url, body)
            if not isinstance(payload, dict) or payload.get("success") is False:
                raise MalformedResponse(f"API response indicates failure [URL] {url}")
            inner = payload.get("data")
            if not isinstance(inner, dict):
                inner = {}
            page = inner.get("data") or []
            if not isinstance(page, list):
                raise MalformedResponse(f"Expected a list of events [URL] {url}")
            total = inner.get("totalCount") or 0
            return StepResult(records=page, next_cursor=cursor.advance(int(total)))

        initial = PageCursor(page=1, page_size=self.config.pagination.event_page_size)
        return await self.fetcher("events").fetch(step, initial, source="get_detailed_event")

    async def get_maintenance_module_data(
        self,
        start_time: Any,
        end_time: Any = None,
        remark_group: Optional[Sequence[str]] = None,
        event_id: Optional[Sequence[str]] = None,
        maintenance_module_id: Optional[str] = None,
        operator: Optional[str] = None,
        data_precision: Optional[int] = None,
        periodicity: Optional[str] = None,
        cycle_time: Optional[str] = None,
        week_start: Optional[int] = None,
        month_start: Optional[int] = None,
        year_start: Optional[int] = None,
        shifts: Optional[List[Any]] = None,
        shift_operator: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
        on_prem: Optional[bool] = None,
    ) -> Any:
        """
        Aggregated maintenance module data for a time range; ``{}`` on failure.

        ``periodicity`` adds the week/month/year start fields, ``shifts`` adds
        ``shift_operator``; unset options are left out of the request.

        Raises:
            ValidationError: If end is before start or a time is invalid
        """
        start_ms = normalize_time(start_time, self.config.tz)
        end_ms = normalize_time(end_time, self.config.tz)
        if end_ms < start_ms:
            raise ValidationError(
                f"Invalid time range: start_time({start_time}) should be before end_time({end_time})."
            )

        payload = {
            "userID": self.config.user_id,
            "startTime": start_ms,
            "endTime": end_ms,
            "remarkGroup": remark_group,
            "eventID": event_id,
            "maintenanceModuleID": maintenance_module_id,
            "operator": operator,
            "timezone": self.config.tz,
            "dataPrecision": data_precision,
        }
        if periodicity:
            payload.update(periodicity=periodicity, weekStart=week_start, monthStart=month_start, yearStart=year_start)
        if cycle_time:
            payload["cycleTime"] = cycle_time
        if shifts:
            payload.update(shifts=shifts, shiftOperator=shift_operator)
        if filters:
            payload["filter"] = filters

        async def call():
            url = self.api.url(GET_MAINTENANCE_MODULE_DATA_URL, on_prem)
            response = await self.api.put_json(url, _without_none(payload))
            if isinstance(response, dict) and response.get("errors"):
                raise MalformedResponse(f"API response contains errors [URL] {url}: {response['errors']}")
            return require_data(response, url)

        return await self.guarded("get_maintenance_module_data", call(), {})

    async def _paginated_data(self, url: str, payload: Dict[str, Any], parallel: bool = False) -> Any:
        """PUT a row query; ``parallel`` responses carry their result under ``data.rows``."""
        response = await self.api.put_json(url, _without_none(payload))
        data = response.get("data") if isinstance(response, dict) else None
        if not data:
            raise MalformedResponse(f"Invalid response format [URL] {url}")
        if parallel:
            rows = data.get("rows") if isinstance(data, dict) else None
            return rows or {}
        return data

    async def get_device_data(
        self,
        devices: Optional[Sequence[str]] = None,
        n: int = DEFAULT_DEVICE_ROWS,
        end_time: Any = None,
        start_time: Any = None,
        on_prem: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """Up to ``n`` data rows per device; times are passed to the server as given. ``[]`` on failure."""
        url = self.api.url(GET_DEVICE_DATA_URL, on_prem)
        payload = {
            "devices": list(devices) if devices is not None else None,
            "n": n,
            "endTime": end_time,
            "startTime": start_time,
        }
        return await self.guarded("get_device_data", self._paginated_data(url, payload), [])

    async def get_sensor_rows(
        self,
        device_id: Optional[str] = None,
        sensor: Optional[str] = None,
        value: Optional[str] = None,
        end_time: Any = None,
        start_time: Any = None,
        alias: bool = False,
        on_prem: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """Rows of a device where ``sensor`` held ``value``; ``[]`` on failure."""
        url = self.api.url(GET_SENSOR_ROWS_URL, on_prem)
        payload = {
            "deviceId": device_id,
            "sensor": sensor,
            "value": value,
            "endTime": end_time,
            "startTime": start_time,
            "alias": alias,
        }
        return await self.guarded("get_sensor_rows", self._paginated_data(url, payload), [])

    async def get_device_metadata(self, device_id: str, on_prem: Optional[bool] = None) -> Dict[str, Any]:
        """Row-store metadata of one device; ``{}`` on failure."""

        async def call():
            url = f"{self.api.url(GET_DEVICE_ROWS_METADATA_URL, on_prem)}/{self.config.user_id}"
            return require_data(await self.api.get_json(url, params={"devID": device_id}), url)

        return await self.guarded("get_device_metadata", call(), {})
