"""
Expiry evaluation for timed attempts.

Expiry is not enforced by a timer. Every lifecycle operation calls
evaluate() first and finalizes the attempt itself when the deadline has
passed, so an untouched attempt can stay active in storage past its
deadline until the next operation reaches it.
"""

from datetime import datetime, timedelta
from typing import NamedTuple


class ExpiryResult(NamedTuple):
    expired: bool
    effective_end_time: datetime


def deadline(start_time: datetime, duration_minutes: float) -> datetime:
    return start_time + timedelta(minutes=duration_minutes)


def evaluate(start_time: datetime, duration_minutes: float, now: datetime) -> ExpiryResult:
    """
    Decide whether an attempt started at start_time has run out of time.

    effective_end_time is always the scheduled deadline; expired is True only
    strictly after it, so an operation landing exactly on the deadline still
    counts as in time.
    """
    end_time = deadline(start_time, duration_minutes)
    return ExpiryResult(expired=now > end_time, effective_end_time=end_time)


def clamped_end_time(start_time: datetime, duration_minutes: float, now: datetime) -> datetime:
    """End time for an explicit submit: now, but never later than the deadline."""
    return min(now, deadline(start_time, duration_minutes))
