"""
Abstract base classes for library components.

These define the interfaces that all components implement. Configuration
and observer are injected so components stay free of global state and can
be tested in isolation.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, List, Optional, Sequence, TypeVar

import httpx

from sensorquery.components.api import ApiClient
from sensorquery.components.pagination import PaginatedFetcher, SleepFunction
from sensorquery.config import ClientConfig
from sensorquery.models import DeviceMetadata
from sensorquery.utils import LoggingObserver, PipelineObserver

T = TypeVar("T")


class PipelineComponent(ABC):
    """Base class for all components."""

    def __init__(self, config: ClientConfig, observer: Optional[PipelineObserver] = None):
        """Initialize component with client configuration and an event observer."""
        self.config = config
        self.observer = observer or LoggingObserver()

    @abstractmethod
    def execute(self, *args, **kwargs) -> Any:
        """Execute the component's main functionality."""
        pass


class NormalizationComponent(PipelineComponent):
    """Abstract base for turning raw payloads into typed records."""

    @abstractmethod
    def execute(self, raw: Any) -> List[Any]:
        """
        Convert a raw payload into records.

        Args:
            raw: Decoded JSON of unknown shape

        Returns:
            Typed records in discovery order
        """
        pass


class TransformationComponent(PipelineComponent):
    """Abstract base for cleaning components."""

    @abstractmethod
    def execute(
        self,
        records: Sequence[Any],
        metadata: Optional[DeviceMetadata] = None,
        **options: Any
    ) -> List[Any]:
        """
        Transform records into cleaned rows.

        Args:
            records: Normalized records
            metadata: Device metadata for calibration and aliasing

        Returns:
            Cleaned rows
        """
        pass


class RemoteComponent:
    """
    Base for components that talk to the data API.

    Owns the transport, builds paginated fetchers per endpoint family and
    provides the error boundary used by query-style operations.
    """

    def __init__(
        self,
        config: ClientConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        observer: Optional[PipelineObserver] = None,
        sleep: SleepFunction = asyncio.sleep,
    ):
        self.config = config
        self.observer = observer or LoggingObserver()
        self.api = ApiClient(config, http_client, self.observer)
        self.sleep = sleep

    def fetcher(self, family: str) -> PaginatedFetcher:
        return PaginatedFetcher(self.config.get_retry_policy(family), self.observer, self.sleep)

    async def guarded(self, operation: str, call: Awaitable[T], default: T) -> T:
        """Await ``call``; on any error report it and return ``default``."""
        try:
            return await call
        except Exception as e:
            self.observer.on_error(operation, e)
            return default

    async def aclose(self) -> None:
        await self.api.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
