"""
Pytest configuration and shared fixtures for testing.

Provides a test configuration with zero retry delays, canned API payloads,
and ``FakeApi``, an ``httpx.MockTransport`` router that records every request.
"""

from typing import Any, Dict, List

import httpx
import pytest

from sensorquery.config import ClientConfig, RetryPolicy
from sensorquery.models import DeviceMetadata, SensorRecord
from sensorquery.utils import PipelineObserver


class FakeApi:
    """Routes requests by longest matching path prefix to queued responses."""

    def __init__(self):
        self.routes: Dict[str, List[Any]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, path: str, *responses: Any) -> "FakeApi":
        """
        Queue responses for a path prefix. Responses are served in order and
        the last one repeats. A response is JSON data, an ``httpx.Response``,
        an int status code, or an exception to raise.
        """
        self.routes.setdefault(path, []).extend(responses)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        matches = [p for p in self.routes if request.url.path.startswith(p)]
        if not matches:
            return httpx.Response(404, json={"error": "no route"})
        queue = self.routes[max(matches, key=len)]
        response = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        if isinstance(response, int):
            return httpx.Response(response, text="error")
        return httpx.Response(200, json=response)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(path)]


class RecordingObserver(PipelineObserver):
    """Observer collecting events for assertions."""

    def __init__(self):
        self.events: List[tuple] = []

    def on_page(self, source, page_items, total_items):
        self.events.append(("page", source, page_items, total_items))

    def on_retry(self, source, attempt, delay, error):
        self.events.append(("retry", source, attempt, delay))

    def on_exhausted(self, source, attempts):
        self.events.append(("exhausted", source, attempts))

    def on_error(self, operation, error):
        self.events.append(("error", operation, type(error).__name__))

    def of(self, kind: str) -> List[tuple]:
        return [e for e in self.events if e[0] == kind]


class FakeSleep:
    """Async sleep replacement recording requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


DEVICE_ID = "DEV1"

DEVICES_PAYLOAD = {"data": [{"devID": DEVICE_ID, "devTypeID": "BOILER"}, {"devID": "DEV2", "devTypeID": "PUMP"}]}

METADATA_PAYLOAD = {
    "data": {
        "devID": DEVICE_ID,
        "devName": "Boiler",
        "sensors": [
            {"sensorId": "D0", "sensorName": "Temp"},
            {"sensorId": "D1", "sensorName": "Pressure"},
        ],
        "params": {
            "D0": [
                {"paramName": "m", "paramValue": "2"},
                {"paramName": "c", "paramValue": "1"},
                {"paramName": "min", "paramValue": "0"},
                {"paramName": "max", "paramValue": "100"},
            ]
        },
    }
}


@pytest.fixture
def sample_config():
    """Create a test configuration with small retry budgets."""
    return ClientConfig(
        user_id="user_1",
        data_url="data.example.com",
        retry={
            "rest": RetryPolicy(max_attempts=4, short_delay=2, long_delay=4, escalate_after=2),
            "bulk": RetryPolicy(max_attempts=3, short_delay=2, long_delay=10),
            "events": RetryPolicy(max_attempts=3, short_delay=2, long_delay=4),
        },
    )


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def sample_metadata():
    """Device metadata with a calibrated D0 and aliases for D0/D1."""
    return DeviceMetadata.model_validate(METADATA_PAYLOAD["data"])


@pytest.fixture
def sample_records():
    """Long-format records for two sensors across two timestamps."""
    return [
        SensorRecord(time=100, sensor="D0", value="10"),
        SensorRecord(time=100, sensor="D1", value="7"),
        SensorRecord(time=200, sensor="D0", value="60"),
        SensorRecord(time=200, sensor="D2", value="3"),
    ]
