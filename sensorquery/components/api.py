"""
HTTP transport for the data API.

Builds endpoint URLs (HTTP for on-premise deployments, HTTPS otherwise),
attaches the ``userID`` header and turns transport problems into the
library's error taxonomy:

    timeouts, connection errors, 408/429/5xx  -> TransientFailure
    other 4xx, undecodable bodies             -> MalformedResponse
"""

import time
from typing import Any, Dict, Optional

import httpx

from sensorquery.config import ClientConfig
from sensorquery.config.endpoints import format_url
from sensorquery.utils import MalformedResponse, PipelineObserver, TransientFailure

RETRYABLE_STATUS = frozenset({408, 425, 429})


def error_message(response: Optional[httpx.Response], url: str) -> str:
    """Describe a failed response for logs and exception messages."""
    if response is None:
        return f"[URL] {url} [EXCEPTION] No response received"
    server = response.headers.get("server", "Unknown Server")
    return (
        f"[STATUS CODE] {response.status_code} [URL] {url} "
        f"[SERVER INFO] {server} [RESPONSE] {response.text[:500]}"
    )


class ApiClient:
    """Thin async wrapper around ``httpx.AsyncClient`` bound to one configuration."""

    def __init__(
        self,
        config: ClientConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        observer: Optional[PipelineObserver] = None,
    ):
        self.config = config
        self.observer = observer or PipelineObserver()
        self._owns_client = http_client is None
        # Shared by every page of every fetch made through this client
        self.http_client = http_client or httpx.AsyncClient(timeout=config.timeout)

    @property
    def headers(self) -> Dict[str, str]:
        return {"userID": self.config.user_id}

    def url(self, template: str, on_prem: Optional[bool] = None, **params: str) -> str:
        return format_url(template, self.config.protocol(on_prem), self.config.data_url, **params)

    async def request_json(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Any = None,
    ) -> Any:
        """
        Send a request and decode its JSON body.

        Raises:
            TransientFailure: Network errors and retryable status codes
            MalformedResponse: Non-retryable status codes and non-JSON bodies
        """
        started = time.perf_counter()
        try:
            response = await self.http_client.request(
                method, url, params=params, json=payload, headers=self.headers
            )
        except httpx.TransportError as e:
            raise TransientFailure(f"{type(e).__name__}: {e} [URL] {url}") from e

        if self.config.log_time:
            self.observer.on_request(url, time.perf_counter() - started)

        if response.status_code in RETRYABLE_STATUS or response.status_code >= 500:
            raise TransientFailure(error_message(response, url))
        if response.is_error:
            raise MalformedResponse(error_message(response, url))

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(f"Invalid JSON body. {error_message(response, url)}") from e

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request_json("GET", url, params=params)

    async def put_json(self, url: str, payload: Any) -> Any:
        return await self.request_json("PUT", url, payload=payload)

    async def post_json(self, url: str, payload: Any) -> Any:
        return await self.request_json("POST", url, payload=payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()


def require_data(payload: Any, url: str) -> Any:
    """Return ``payload["data"]`` or raise if the envelope lacks it."""
    if not isinstance(payload, dict) or payload.get("data") is None:
        raise MalformedResponse(f'Missing "data" in response [URL] {url}')
    return payload["data"]
