"""
Time normalization helpers.

Every time input accepted by the public API (None, epoch milliseconds,
date strings, datetime-like objects) is reduced to integer epoch
milliseconds here. Naive strings and datetimes are interpreted in the
configured timezone.
"""

import math
import numbers
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

import pandas as pd

from sensorquery.utils.exceptions import ValidationError

TimeInput = Optional[Union[int, float, str, date, datetime, pd.Timestamp]]

# Epoch values with this many digits or fewer are treated as seconds.
SECONDS_DIGITS = 10


def now_millis() -> int:
    """Current UTC time in epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _timestamp_to_millis(ts: pd.Timestamp, tz: str) -> int:
    if pd.isna(ts):
        raise ValidationError(f"Invalid date: {ts}")
    if ts.tzinfo is None:
        ts = ts.tz_localize(tz)
    return int(ts.value // 1_000_000)


def normalize_time(time: Any = None, tz: str = "UTC") -> int:
    """
    Convert a time input to epoch milliseconds.

    Args:
        time: None (now), epoch milliseconds, a date string, or a date-like object
        tz: Timezone used for naive strings and datetimes

    Returns:
        Epoch milliseconds

    Raises:
        ValidationError: If a number looks like seconds, a string does not
            parse, or the type is not supported
    """
    if time is None:
        return now_millis()

    if isinstance(time, bool):
        raise ValidationError("Time must be a string, number, date object, or None")

    if isinstance(time, numbers.Real):
        if not math.isfinite(time):
            raise ValidationError(f"Unix timestamp must be a finite number, got {time}")
        if time <= 0 or len(str(int(time))) <= SECONDS_DIGITS:
            raise ValidationError(
                "Unix timestamp must be a positive integer in milliseconds, not seconds."
            )
        return int(time)

    if isinstance(time, str):
        try:
            ts = pd.Timestamp(time.strip())
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Invalid date string: {time}") from e
        return _timestamp_to_millis(ts, tz)

    if isinstance(time, (datetime, date, pd.Timestamp)):
        return _timestamp_to_millis(pd.Timestamp(time), tz)

    raise ValidationError("Time must be a string, number, date object, or None")


def to_epoch_seconds(millis: int) -> int:
    """Truncate epoch milliseconds to whole seconds."""
    return millis // 1000


def iso_utc_time(time: TimeInput = None, tz: str = "UTC") -> str:
    """Format a time input as an ISO 8601 UTC string with millisecond precision."""
    millis = normalize_time(time, tz)
    moment = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{millis % 1000:03d}Z"
