"""
Observer hooks for fetch and cleaning progress.

Components report what happens (requests, pages, retries, stage sizes,
boundary errors) to an injected observer instead of writing to a global
output channel. ``PipelineObserver`` ignores everything; ``LoggingObserver``
forwards each event to a standard ``logging.Logger``.
"""

import logging
from typing import Optional

from sensorquery.utils.logging import get_logger


class PipelineObserver:
    """No-op observer. Subclass and override the hooks of interest."""

    def on_request(self, url: str, elapsed_seconds: float) -> None:
        pass

    def on_page(self, source: str, page_items: int, total_items: int) -> None:
        pass

    def on_retry(self, source: str, attempt: int, delay: float, error: BaseException) -> None:
        pass

    def on_exhausted(self, source: str, attempts: int) -> None:
        pass

    def on_stage(self, stage: str, records_in: int, records_out: int) -> None:
        pass

    def on_error(self, operation: str, error: BaseException) -> None:
        pass


class LoggingObserver(PipelineObserver):
    """Observer that writes every event to a logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger(__name__)

    def on_request(self, url: str, elapsed_seconds: float) -> None:
        self.logger.info(f"[NETWORK] API {url} response time: {elapsed_seconds:.4f} seconds")

    def on_page(self, source: str, page_items: int, total_items: int) -> None:
        self.logger.debug(f"[{source}] fetched {page_items} items ({total_items} so far)")

    def on_retry(self, source: str, attempt: int, delay: float, error: BaseException) -> None:
        self.logger.warning(
            f"[{source}] {type(error).__name__} on attempt {attempt}: {error}; "
            f"retrying in {delay}s"
        )

    def on_exhausted(self, source: str, attempts: int) -> None:
        self.logger.error(f"[{source}] retry budget exhausted after {attempts} attempts")

    def on_stage(self, stage: str, records_in: int, records_out: int) -> None:
        self.logger.info(f"   {stage}: {records_in} -> {records_out} records")

    def on_error(self, operation: str, error: BaseException) -> None:
        self.logger.error(f"[{operation}] {type(error).__name__}: {error}")
