from __future__ import annotations

import datetime as dt
import secrets
import string
from typing import TYPE_CHECKING, Callable

from .errors import InvalidIntervalError

if TYPE_CHECKING:
    from .domain import TimeBlock

UTC = dt.timezone.utc

_ID_ALPHABET = string.ascii_lowercase + string.digits
ID_LENGTH = 9
SECONDS_PER_HOUR = 3600


def utc_now() -> dt.datetime:
    return dt.datetime.now(UTC)


def ensure_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def generate_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(ID_LENGTH))


def elapsed_seconds(start: dt.datetime, end: dt.datetime) -> int:
    """Whole seconds between two instants, floored; negative spans give 0."""
    delta = ensure_utc(end) - ensure_utc(start)
    return max(0, int(delta // dt.timedelta(seconds=1)))


def compute_duration(start: dt.datetime, end: dt.datetime) -> int:
    if ensure_utc(end) <= ensure_utc(start):
        raise InvalidIntervalError("End time must be after start time")
    return elapsed_seconds(start, end)


def compute_earnings(duration_seconds: float, hourly_rate: float) -> float:
    return duration_seconds / SECONDS_PER_HOUR * hourly_rate


def create_time_block(
    start: dt.datetime,
    end: dt.datetime,
    rate: float,
    id_factory: Callable[[], str] = generate_id,
) -> TimeBlock:
    from .domain import TimeBlock

    duration = compute_duration(start, end)
    if duration == 0:
        raise InvalidIntervalError("Session is shorter than one second")
    return TimeBlock(
        id=id_factory(),
        start_time=ensure_utc(start),
        end_time=ensure_utc(end),
        duration=duration,
        rate=rate,
        earnings=compute_earnings(duration, rate),
    )


def format_hms(total_seconds: int) -> str:
    """Render a duration as HH:MM:SS; hours grow past 99 when needed."""
    safe_seconds = max(0, int(total_seconds))
    hours, remainder = divmod(safe_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def format_compact(total_seconds: int) -> str:
    hours, remainder = divmod(max(0, int(total_seconds)), 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_clock(total_seconds: int) -> str:
    hours, remainder = divmod(max(0, int(total_seconds)), 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"
