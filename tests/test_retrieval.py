"""
Tests for the DataAccess query orchestrators.

HTTP is served by ``FakeApi`` through ``httpx.MockTransport``; retry sleeps
are recorded, never awaited for real.
"""

import httpx
import pytest

from conftest import DEVICE_ID, DEVICES_PAYLOAD, METADATA_PAYLOAD
from sensorquery.components.retrieval import DataAccess
from sensorquery.models import DeviceMetadata, LoadEntity
from sensorquery.utils import ValidationError

DEVICES = "/api/metaData/allDevices"
METADATA = f"/api/metaData/device/{DEVICE_ID}"
FIRST_DP = "/api/apiLayer/getMultipleSensorsDPAfter"
DP = "/api/apiLayer/getLimitedDataMultipleSensors/"
RANGE = "/api/apiLayer/getAllData"
ENTITIES = "/api/metaData/getAllClusterData"

START = "2023-06-01T00:00:00Z"
END = "2023-06-02T00:00:00Z"


@pytest.fixture
def access(sample_config, fake_api, fake_sleep, observer):
    fake_api.add(DEVICES, DEVICES_PAYLOAD).add(METADATA, METADATA_PAYLOAD)
    return DataAccess(sample_config, http_client=fake_api.client(), observer=observer, sleep=fake_sleep)


class TestMetadataLookups:
    """Single-shot metadata calls."""

    @pytest.mark.asyncio
    async def test_device_details(self, access, fake_api):
        devices = await access.get_device_details()

        assert [d.dev_id for d in devices] == [DEVICE_ID, "DEV2"]
        request = fake_api.requests[0]
        assert request.headers["userID"] == "user_1"
        assert request.url.scheme == "https"

    @pytest.mark.asyncio
    async def test_on_prem_uses_http(self, access, fake_api):
        await access.get_device_details(on_prem=True)

        assert fake_api.requests[0].url.scheme == "http"

    @pytest.mark.asyncio
    async def test_device_metadata(self, access):
        metadata = await access.get_device_metadata(DEVICE_ID)

        assert isinstance(metadata, DeviceMetadata)
        assert metadata.sensor_ids == ["D0", "D1"]
        assert metadata.params["D0"].slope == 2

    @pytest.mark.asyncio
    async def test_user_info_failure_returns_empty(self, access, fake_api, observer):
        fake_api.add("/api/metaData/user", {"errors": ["nope"]})

        assert await access.get_user_info() == {}
        assert observer.of("error") == [("error", "get_user_info", "MalformedResponse")]


class TestGetFirstDp:
    """First datapoint after a start time."""

    @pytest.mark.asyncio
    async def test_returns_calibrated_points(self, access, fake_api):
        fake_api.add(FIRST_DP, [{
            "D0": {"time": "2023-06-01T00:05:00Z", "sensor": "D0", "value": "10"},
            "D1": {"time": "2023-06-01T00:07:00Z", "sensor": "D1", "value": "3"},
        }])

        rows = await access.get_first_dp(DEVICE_ID, start_time=START)

        assert rows == [
            {"time": "2023-06-01T00:05:00Z", "sensor": "D0", "value": 21.0},
            {"time": "2023-06-01T00:07:00Z", "sensor": "D1", "value": "3"},
        ]
        params = fake_api.calls_to(FIRST_DP)[0].url.params
        assert params["sensor"] == "D0,D1"
        assert params["time"] == "1685577600"

    @pytest.mark.asyncio
    async def test_alias_with_explicit_sensors(self, access, fake_api):
        fake_api.add(FIRST_DP, [{"D1": [{"time": "t", "sensor": "D1", "value": "3"}]}])

        rows = await access.get_first_dp(DEVICE_ID, sensor_list=["D1"], start_time=START, alias=True)

        assert rows == [{"time": "t", "sensor": "Pressure", "value": "3"}]

    @pytest.mark.asyncio
    async def test_n_limits_points_per_sensor(self, access, fake_api):
        fake_api.add(FIRST_DP, [{
            "D0": [{"time": "t1", "sensor": "D0", "value": "1"}, {"time": "t2", "sensor": "D0", "value": "2"}],
            "D1": [{"time": "t1", "sensor": "D1", "value": "5"}],
        }])

        rows = await access.get_first_dp(DEVICE_ID, start_time=START, n=1, cal=False)

        assert rows == [
            {"time": "t1", "sensor": "D0", "value": "1"},
            {"time": "t1", "sensor": "D1", "value": "5"},
        ]

    @pytest.mark.asyncio
    async def test_n_below_one_rejected(self, access, fake_api):
        with pytest.raises(ValidationError, match="must be >= 1"):
            await access.get_first_dp(DEVICE_ID, start_time=START, n=0)

        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_unknown_device_returns_empty(self, access, fake_api, observer):
        rows = await access.get_first_dp("MISSING", sensor_list=["D0"], start_time=START)

        assert rows == []
        assert observer.of("error") == [("error", "get_first_dp", "NotFoundError")]
        assert fake_api.calls_to(FIRST_DP) == []

    @pytest.mark.asyncio
    async def test_empty_sensor_list_rejected_before_network(self, access, fake_api):
        with pytest.raises(ValidationError):
            await access.get_first_dp(DEVICE_ID, sensor_list=[], start_time=START)

        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_seconds_start_time_rejected(self, access, fake_api):
        with pytest.raises(ValidationError, match="milliseconds"):
            await access.get_first_dp(DEVICE_ID, start_time=1685577600)

        assert fake_api.requests == []


class TestGetDp:
    """Last n datapoints per sensor, walked sequentially."""

    @pytest.mark.asyncio
    async def test_walks_each_sensor_until_cursor_closes(self, access, fake_api):
        fake_api.add(
            DP,
            {"data": [{"time": "t3", "sensor": "D0", "value": "10"}], "cursor": {"end": 1685577000, "limit": 1}, "success": False},
            {"data": [{"time": "t2", "sensor": "D0", "value": "20"}], "cursor": None, "success": False},
            {"data": [{"time": "t9", "sensor": "D1", "value": "4"}], "cursor": {}, "success": False},
        )

        rows = await access.get_dp(DEVICE_ID, n=2, end_time=END, cal=False)

        assert rows == [
            {"time": "t3", "sensor": "D0", "value": "10"},
            {"time": "t2", "sensor": "D0", "value": "20"},
            {"time": "t9", "sensor": "D1", "value": "4"},
        ]
        calls = fake_api.calls_to(DP)
        assert [c.url.params["sensor"] for c in calls] == ["D0", "D0", "D1"]
        assert calls[0].url.params["eTime"] == "1685664000"
        assert calls[0].url.params["lim"] == "2"
        assert calls[0].url.params["cursor"] == "true"
        assert calls[1].url.params["eTime"] == "1685577000"

    @pytest.mark.asyncio
    async def test_stops_after_n_points(self, access, fake_api):
        fake_api.add(DP, {
            "data": [{"time": "t3", "sensor": "D0", "value": "1"}, {"time": "t2", "sensor": "D0", "value": "2"}],
            "cursor": {"end": 1685577000},
        })

        rows = await access.get_dp(DEVICE_ID, sensor_list=["D0"], n=1, end_time=END, cal=False)

        assert rows == [{"time": "t3", "sensor": "D0", "value": "1"}]
        assert len(fake_api.calls_to(DP)) == 1

    @pytest.mark.asyncio
    async def test_n_below_one_rejected(self, access, fake_api):
        with pytest.raises(ValidationError):
            await access.get_dp(DEVICE_ID, n=0)

        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_server_error_flag_is_not_retried(self, access, fake_api, fake_sleep, observer):
        fake_api.add(DP, {"data": [], "cursor": None, "success": True})

        rows = await access.get_dp(DEVICE_ID, sensor_list=["D0"], end_time=END)

        assert rows == []
        assert len(fake_api.calls_to(DP)) == 1
        assert fake_sleep.delays == []
        assert observer.of("error") == [("error", "get_dp", "MalformedResponse")]

    @pytest.mark.asyncio
    async def test_retries_then_exhausts(self, access, fake_api, fake_sleep, observer):
        fake_api.add(DP, 503)

        rows = await access.get_dp(DEVICE_ID, sensor_list=["D0"], end_time=END)

        assert rows == []
        assert len(fake_api.calls_to(DP)) == 4
        assert fake_sleep.delays == [2, 2, 4]
        assert observer.of("error") == [("error", "get_dp", "RetrievalExhausted")]


class TestDataQuery:
    """Ranged bulk query with pivot."""

    @pytest.mark.asyncio
    async def test_pages_are_pivoted(self, access, fake_api):
        fake_api.add(
            RANGE,
            {"data": [{"time": "t1", "sensor": "D0", "value": "10"}, {"time": "t1", "sensor": "D1", "value": "5"}],
             "cursor": {"start": 1685580000000, "end": 1685664000000}, "success": False},
            {"data": [{"time": "t2", "sensor": "D0", "value": "1"}], "cursor": {"start": None, "end": 1685664000000}},
        )

        rows = await access.data_query(DEVICE_ID, start_time=START, end_time=END, alias=True)

        assert rows == [
            {"timestamp": "t1", "Temp": 21.0, "Pressure": "5"},
            {"timestamp": "t2", "Temp": 3.0},
        ]
        calls = fake_api.calls_to(RANGE)
        assert len(calls) == 2
        assert calls[0].url.params["sTime"] == "1685577600000"
        assert calls[1].url.params["sTime"] == "1685580000000"
        assert calls[0].url.params["limit"] == "1000"
        assert len(fake_api.calls_to(METADATA)) == 1

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, access, fake_api):
        with pytest.raises(ValidationError, match="Invalid time range"):
            await access.data_query(DEVICE_ID, start_time=END, end_time=START)

        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_device_without_sensors(self, sample_config, fake_api, fake_sleep, observer):
        fake_api.add(DEVICES, DEVICES_PAYLOAD).add(METADATA, {"data": {"devID": DEVICE_ID, "sensors": []}})
        access = DataAccess(sample_config, http_client=fake_api.client(), observer=observer, sleep=fake_sleep)

        rows = await access.data_query(DEVICE_ID, start_time=START, end_time=END)

        assert rows == []
        assert observer.of("error") == [("error", "data_query", "ValidationError")]
        assert fake_api.calls_to(RANGE) == []

    @pytest.mark.asyncio
    async def test_connection_errors_use_bulk_budget(self, access, fake_api, fake_sleep):
        fake_api.add(RANGE, httpx.ConnectError("refused"))

        rows = await access.data_query(DEVICE_ID, sensor_list=["D0"], start_time=START, end_time=END, cal=False)

        assert rows == []
        assert len(fake_api.calls_to(RANGE)) == 3
        assert fake_sleep.delays == [2, 2]

    @pytest.mark.asyncio
    async def test_invalid_cursor_aborts_without_retry(self, access, fake_api, fake_sleep, observer):
        fake_api.add(RANGE, {"data": [{"time": "t1", "sensor": "D0", "value": "1"}], "cursor": {"start": 1.5, "end": 2}})

        rows = await access.data_query(DEVICE_ID, sensor_list=["D0"], start_time=START, end_time=END, cal=False)

        assert rows == []
        assert len(fake_api.calls_to(RANGE)) == 1
        assert fake_sleep.delays == []
        assert observer.of("error") == [("error", "data_query", "MalformedResponse")]

    @pytest.mark.asyncio
    async def test_non_finite_time_rejected(self, access, fake_api):
        with pytest.raises(ValidationError, match="finite"):
            await access.data_query(DEVICE_ID, start_time=float("nan"), end_time=END)

        assert fake_api.requests == []


class TestGetLoadEntities:
    """Paged entity listing."""

    @pytest.mark.asyncio
    async def test_pages_until_total(self, access, fake_api):
        fake_api.add(
            ENTITIES,
            {"data": [{"id": str(i), "name": f"L{i}"} for i in range(5)], "totalCount": 7},
            {"data": [{"id": "5", "name": "L5"}, {"id": "6", "name": "L6"}], "totalCount": 7},
        )

        entities = await access.get_load_entities()

        assert [e.id for e in entities] == [str(i) for i in range(7)]
        assert all(isinstance(e, LoadEntity) for e in entities)
        paths = [c.url.path for c in fake_api.calls_to(ENTITIES)]
        assert paths == [f"{ENTITIES}/user_1/1/5", f"{ENTITIES}/user_1/2/5"]

    @pytest.mark.asyncio
    async def test_filter_by_name_or_id(self, access, fake_api):
        fake_api.add(ENTITIES, {"data": [{"id": "a1", "name": "Plant"}, {"id": "b2", "name": "Line"}, {"id": "c3", "name": "Shed"}], "totalCount": 3})

        entities = await access.get_load_entities(clusters=["Plant", "c3"])

        assert [e.id for e in entities] == ["a1", "c3"]

    @pytest.mark.asyncio
    async def test_empty_filter_rejected_before_network(self, access, fake_api):
        with pytest.raises(ValidationError, match="No clusters provided"):
            await access.get_load_entities(clusters=[])

        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_error_flag_returns_empty(self, access, fake_api, observer):
        fake_api.add(ENTITIES, {"error": True, "data": [], "totalCount": 0})

        assert await access.get_load_entities() == []
        assert observer.of("error") == [("error", "get_load_entities", "MalformedResponse")]
