"""Configuration models and endpoint catalog."""

from .models import ClientConfig, RetryPolicy, PaginationSettings

__all__ = ["ClientConfig", "RetryPolicy", "PaginationSettings"]
