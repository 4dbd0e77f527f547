"""
Date windowing for Graph insight/media requests.

The Graph API rejects long ranges and large payloads, so a reporting period is
split into short calendar-day windows. Windows are contiguous, never overlap,
and `until` is exclusive: it is the day after the window's last included day,
which keeps `since < until` for every request.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Union

from engine.utils.logging import get_logger

_log = get_logger("engine.windowing")

DEFAULT_WINDOW_DAYS = 3
DEFAULT_MAX_WINDOWS = 1000

DateLike = Union[date, datetime, str]


class WindowLimitExceeded(ValueError):
    """Raised in strict mode when a range needs more than `max_windows` windows."""


@dataclass(frozen=True)
class DateWindow:
    since: date
    until: date  # exclusive

    def __post_init__(self) -> None:
        if not self.since < self.until:
            raise ValueError(f"DateWindow requires since < until (got {self.since} .. {self.until})")

    @property
    def days(self) -> int:
        return (self.until - self.since).days

    def as_params(self) -> dict:
        return {"since": self.since.isoformat(), "until": self.until.isoformat()}

    def label(self) -> str:
        return f"{self.since.isoformat()}-{self.until.isoformat()}"


def parse_instant(value: DateLike) -> datetime:
    """Parse a date/datetime/ISO8601 string into an aware UTC datetime.

    Naive values are taken as UTC; a trailing "Z" is accepted.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise TypeError(f"Unsupported date value: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_calendar_day(value: DateLike) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return parse_instant(value).date()


def build_windows(
    start: DateLike,
    end: DateLike,
    *,
    window_days: int = DEFAULT_WINDOW_DAYS,
    max_windows: int = DEFAULT_MAX_WINDOWS,
    strict: bool = False,
) -> List[DateWindow]:
    """Split [start's day, end's day] into windows of `window_days` days.

    Returns [] when start is after end. The final window is truncated at
    end's day. When more than `max_windows` windows would be needed, the first
    `max_windows` are returned and a warning is logged (or, with strict=True,
    WindowLimitExceeded is raised).
    """
    if window_days < 1:
        raise ValueError("window_days must be >= 1")
    first = to_calendar_day(start)
    last = to_calendar_day(end)
    if first > last:
        return []

    span = timedelta(days=window_days - 1)
    windows: List[DateWindow] = []
    cursor = first
    while cursor <= last:
        if len(windows) >= max_windows:
            if strict:
                raise WindowLimitExceeded(
                    f"{first.isoformat()}..{last.isoformat()} needs more than {max_windows} windows"
                )
            _log.warning(
                "windows.cap_reached",
                extra={"data": {"max_windows": max_windows, "covered_until": cursor.isoformat(), "end": last.isoformat()}},
            )
            break
        window_last = min(cursor + span, last)
        windows.append(DateWindow(since=cursor, until=window_last + timedelta(days=1)))
        cursor = window_last + timedelta(days=1)

    _log.debug("windows.built", extra={"data": {"count": len(windows), "window_days": window_days}})
    return windows


__all__ = [
    "DateWindow",
    "WindowLimitExceeded",
    "build_windows",
    "parse_instant",
    "to_calendar_day",
    "DEFAULT_WINDOW_DAYS",
    "DEFAULT_MAX_WINDOWS",
]
