"""
Backoff schedule for outbox retries.

    interval = init + round(retry_times * multiplier), capped at max

The same formula is used at registration (retry_times=0) and on every
retry (retry_times = the incremented count). Intervals are milliseconds.
"""

import math
from datetime import datetime, timedelta


def backoff_interval(
    init_interval: int,
    multiplier: float,
    max_interval: int,
    retry_times: int,
) -> int:
    """
    Compute the backoff interval in milliseconds.

    Args:
        init_interval: First interval (ms)
        multiplier: Growth per retry
        max_interval: Upper bound (ms)
        retry_times: Retry count the interval is computed for

    Returns:
        Interval in milliseconds

    Example:
        >>> backoff_interval(1000, 2.0, 5000, 1)
        1002
    """
    if retry_times < 0:
        msg = f"retry_times must be >= 0, got {retry_times}"
        raise ValueError(msg)

    # half-up, 2.5 -> 3
    interval = init_interval + math.floor(retry_times * multiplier + 0.5)
    return min(interval, max_interval)


def next_retry_time(
    reference: datetime,
    init_interval: int,
    multiplier: float,
    max_interval: int,
    retry_times: int,
) -> datetime:
    """Reference time plus the backoff interval for retry_times."""
    interval = backoff_interval(init_interval, multiplier, max_interval, retry_times)
    return reference + timedelta(milliseconds=interval)
