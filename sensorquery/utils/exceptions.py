"""
Custom exceptions for the sensor data retrieval library.

Validation and lookup errors are raised before any network call is made.
Transport errors are split into failures worth retrying and responses
that can never succeed, so the paginated fetcher can decide between
retrying the same cursor and aborting the whole walk.
"""


class SensorQueryError(Exception):
    """Base exception for all retrieval and cleaning errors."""
    pass


class ValidationError(SensorQueryError):
    """Raised when caller input is invalid (bad time, n < 1, empty filter list)."""
    pass


class NotFoundError(SensorQueryError):
    """Raised when a device is not present in the account's device list."""
    pass


class TransientFailure(SensorQueryError):
    """Raised when a request failed in a way that may succeed on retry."""
    pass


class MalformedResponse(SensorQueryError):
    """Raised when a response is missing required fields or flags a server error."""
    pass


class RetrievalExhausted(SensorQueryError):
    """Raised when the retry budget of a paginated fetch is consumed."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ConfigurationError(SensorQueryError):
    """Raised when configuration is invalid or missing."""
    pass
