"""
Pydantic models for client configuration.

The configuration is immutable: it is built once (directly or from YAML)
and passed explicitly to every component. Per-call overrides such as
``on_prem`` are resolved at the call site and never written back.
"""

from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from sensorquery.utils.exceptions import ConfigurationError


class RetryPolicy(BaseModel):
    """Bounded retry with a two-tier delay."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    max_attempts: int = Field(15, description="Attempts before the fetch is abandoned")
    short_delay: float = Field(2.0, description="Delay in seconds for early retries")
    long_delay: float = Field(4.0, description="Delay in seconds once retries escalate")
    escalate_after: int = Field(5, description="Retries using the short delay")

    @field_validator('max_attempts')
    @classmethod
    def positive_attempts(cls, v):
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator('short_delay', 'long_delay')
    @classmethod
    def non_negative_delay(cls, v):
        if v < 0:
            raise ValueError("delays must be >= 0")
        return v

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after failed attempt number ``attempt`` (1-based)."""
        return self.long_delay if attempt > self.escalate_after else self.short_delay


def _default_retry() -> Dict[str, RetryPolicy]:
    return {
        "rest": RetryPolicy(max_attempts=15, short_delay=2.0, long_delay=4.0),
        "bulk": RetryPolicy(max_attempts=8, short_delay=2.0, long_delay=10.0),
        "events": RetryPolicy(max_attempts=15, short_delay=2.0, long_delay=4.0),
    }


class PaginationSettings(BaseModel):
    """Page sizes and cursor limits per endpoint family."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    entity_page_size: int = Field(5, gt=0, description="Page size for entity listings")
    event_page_size: int = Field(1000, gt=0, description="Page size for detailed events")
    cursor_limit: int = Field(1000, gt=0, description="Points per page for bulk range queries")


class ClientConfig(BaseModel):
    """Complete client configuration model."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    user_id: str = Field(..., description="User identifier sent in the userID header")
    data_url: str = Field(..., description="Host (and optional path prefix) of the data API")
    on_prem: bool = Field(False, description="Use plain HTTP for on-premise deployments")
    tz: str = Field("UTC", description="Timezone for naive time inputs")
    timeout: float = Field(30.0, gt=0, description="Request timeout in seconds")
    log_time: bool = Field(False, description="Report API response times")
    retry: Dict[str, RetryPolicy] = Field(default_factory=_default_retry,
                                          description="Retry policy per endpoint family")
    pagination: PaginationSettings = Field(default_factory=PaginationSettings)

    @field_validator('user_id', 'data_url')
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator('data_url')
    @classmethod
    def strip_scheme(cls, v):
        """The protocol is chosen per call, so drop any scheme given here."""
        for scheme in ("https://", "http://"):
            if v.startswith(scheme):
                v = v[len(scheme):]
        return v.rstrip('/')

    @field_validator('retry')
    @classmethod
    def fill_retry_families(cls, v):
        # Partial retry tables from YAML keep the defaults for missing families
        return {**_default_retry(), **v}

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path]) -> "ClientConfig":
        """Load configuration from YAML file."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def protocol(self, on_prem: Optional[bool] = None) -> str:
        """Resolve the transport protocol, honouring a per-call override."""
        use_on_prem = self.on_prem if on_prem is None else on_prem
        return "http" if use_on_prem else "https"

    def get_retry_policy(self, family: str) -> RetryPolicy:
        """Get the retry policy for an endpoint family."""
        try:
            return self.retry[family]
        except KeyError:
            raise ConfigurationError(f"No retry policy configured for '{family}'") from None
