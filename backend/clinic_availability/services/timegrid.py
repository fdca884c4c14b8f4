"""
Minute-of-day arithmetic shared by the schedule, appointment and calendar code.

Every source is normalized once into a TimedRange or an AllDayRange, and every
range is put on the same interval grid, so busy slots coming from different
places compare by a plain integer key.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import List, Tuple, Union

from ..errors import RecordNormalizationError

MINUTES_PER_DAY = 24 * 60
# All-day ranges stop at 23:59, matching what the clinic calendar displays.
END_OF_DAY = MINUTES_PER_DAY - 1


@dataclass(frozen=True)
class TimedRange:
    start_minute: int
    end_minute: int

    def bounds(self) -> Tuple[int, int]:
        return self.start_minute, self.end_minute


@dataclass(frozen=True)
class AllDayRange:
    def bounds(self) -> Tuple[int, int]:
        return 0, END_OF_DAY


TimeRange = Union[TimedRange, AllDayRange]


def minute_of(t: time) -> int:
    return t.hour * 60 + t.minute


def format_minute(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"


def parse_clock(value: str) -> int:
    """Parse "HH:MM" or "HH:MM:SS" wall-clock text into a minute of the day."""
    text = (value or "").strip()
    try:
        parsed = time.fromisoformat(text)
    except (TypeError, ValueError) as exc:
        raise RecordNormalizationError(f"Invalid time value: {value!r}") from exc
    return minute_of(parsed)


def parse_moment(value: str) -> Union[date, datetime]:
    """
    External calendars send either a date-time (timed event) or a bare date
    (all-day event). Offsets are ignored: the clinic works in wall-clock time.
    """
    text = (value or "").strip()
    try:
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        return date.fromisoformat(text)
    except ValueError as exc:
        raise RecordNormalizationError(f"Invalid event moment: {value!r}") from exc


def moment_date(moment: Union[date, datetime]) -> date:
    return moment.date() if isinstance(moment, datetime) else moment


def event_range(start: str, end: str, on_date: date) -> TimeRange:
    start_moment = parse_moment(start)
    if not isinstance(start_moment, datetime):
        return AllDayRange()

    start_minute = minute_of(start_moment.time())
    end_moment = parse_moment(end) if end else None
    if not isinstance(end_moment, datetime) or end_moment.date() > on_date:
        # Ranges running past the queried day are cut at end of day.
        return TimedRange(start_minute, END_OF_DAY)
    return TimedRange(start_minute, minute_of(end_moment.time()))


def appointment_range(start_time: str, end_time: str | None, default_minutes: int) -> TimedRange:
    start_minute = parse_clock(start_time)
    if end_time:
        return TimedRange(start_minute, parse_clock(end_time))
    # The default length stops at end of day; bookings never spill into tomorrow.
    return TimedRange(start_minute, min(start_minute + default_minutes, MINUTES_PER_DAY))


def quantize(start_minute: int, end_minute: int, interval: int) -> List[int]:
    """
    Grid points covering [start_minute, end_minute).

    The first point is the grid slot containing start_minute, so 10:15-10:45
    on a 30 minute grid occupies 10:00 and 10:30.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")
    end_minute = min(end_minute, MINUTES_PER_DAY)
    if end_minute <= start_minute:
        return []
    points = []
    t = (start_minute // interval) * interval
    while t < end_minute:
        points.append(t)
        t += interval
    return points


def grid_points_within(start_minute: int, end_minute: int, interval: int) -> List[int]:
    """Grid points that start inside [start_minute, end_minute)."""
    if interval <= 0:
        raise ValueError("interval must be positive")
    t = -(-start_minute // interval) * interval
    points = []
    while t < end_minute:
        points.append(t)
        t += interval
    return points


def day_of_week(d: date) -> int:
    """0=Sunday ... 6=Saturday."""
    return d.isoweekday() % 7
