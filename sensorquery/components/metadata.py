"""
Single-shot metadata lookups: user info, device list, device metadata.

These raise on failure; the query-style wrappers on ``DataAccess`` turn
failures into empty results.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from sensorquery.components.api import ApiClient, require_data
from sensorquery.config.endpoints import (
    GET_DEVICE_DETAILS_URL,
    GET_DEVICE_METADATA_URL,
    GET_USER_INFO_URL,
)
from sensorquery.models import DeviceDetail, DeviceMetadata
from sensorquery.utils import MalformedResponse


class MetadataService:
    """Typed access to the metadata endpoints."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def get_user_info(self, on_prem: Optional[bool] = None) -> Dict[str, Any]:
        url = self.api.url(GET_USER_INFO_URL, on_prem)
        data = require_data(await self.api.get_json(url), url)
        if not isinstance(data, dict):
            raise MalformedResponse(f"Expected an object for user info [URL] {url}")
        return data

    async def get_device_details(self, on_prem: Optional[bool] = None) -> List[DeviceDetail]:
        url = self.api.url(GET_DEVICE_DETAILS_URL, on_prem)
        data = require_data(await self.api.get_json(url), url)
        if not isinstance(data, list):
            raise MalformedResponse(f"Expected a device list [URL] {url}")
        try:
            return [DeviceDetail.model_validate(item) for item in data]
        except PydanticValidationError as e:
            raise MalformedResponse(f"Invalid device list entry [URL] {url}: {e}") from e

    async def get_device_metadata(self, device_id: str, on_prem: Optional[bool] = None) -> DeviceMetadata:
        url = self.api.url(GET_DEVICE_METADATA_URL, on_prem, device_id=device_id)
        data = require_data(await self.api.get_json(url), url)
        try:
            return DeviceMetadata.model_validate(data)
        except PydanticValidationError as e:
            raise MalformedResponse(f"Invalid device metadata [URL] {url}: {e}") from e
