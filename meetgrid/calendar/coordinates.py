"""
Coordinate mapping between wall-clock time and the pixel grid.

    y      = minutes since midnight / 60 * hour_height
    x      = day index * track width
    height = duration minutes / 60 * hour_height

The inverse (``meeting_from_geometry``) snaps pixels to the grid before
converting, so any drag or resize lands on a 15-minute boundary.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Optional

from meetgrid.calendar import DAYS_PER_WEEK, MINUTES_PER_DAY
from meetgrid.calendar.models import Meeting, Position, Timeslot
from meetgrid.config_models import GridConfig

# Tolerance for float division when recovering a day column from x.
_EPS = 1e-9


def day_index(instant: datetime | date) -> int:
    """Weekday with Sunday = 0 .. Saturday = 6."""
    return (instant.weekday() + 1) % DAYS_PER_WEEK


def minutes_since_midnight(instant: datetime) -> float:
    return (
        instant.hour * 60
        + instant.minute
        + instant.second / 60
        + instant.microsecond / 60_000_000
    )


def date_for_day(day: int, reference: datetime | date) -> date:
    """First date on or after ``reference`` that falls on weekday ``day``."""
    ref = reference.date() if isinstance(reference, datetime) else reference
    return ref + timedelta(days=(day - day_index(ref)) % DAYS_PER_WEEK)


class CoordinateMapper:
    """Pure time <-> pixel conversions for one grid configuration."""

    def __init__(self, grid: Optional[GridConfig] = None):
        self.grid = grid or GridConfig()

    @property
    def hour_height(self) -> float:
        return self.grid.hour_height

    @property
    def snap_px(self) -> float:
        return self.grid.snap_px

    def snap(self, px: float) -> float:
        """Round to the nearest grid multiple (halves round up)."""
        return math.floor(px / self.snap_px + 0.5) * self.snap_px

    def minutes_to_px(self, minutes: float) -> float:
        return minutes * self.hour_height / 60

    def px_to_minutes(self, px: float) -> float:
        return px * 60 / self.hour_height

    def position(self, instant: datetime, track_width: float) -> Position:
        return Position(
            x=day_index(instant) * track_width,
            y=self.minutes_to_px(minutes_since_midnight(instant)),
        )

    def height(self, timeslot: Timeslot) -> float:
        return self.minutes_to_px(timeslot.duration_minutes)

    def min_height(self, minutes: Optional[int] = None) -> float:
        return self.minutes_to_px(self.grid.min_edit_minutes if minutes is None else minutes)

    def day_at(self, x: float, track_width: float) -> int:
        day = math.floor(x / track_width + _EPS)
        return max(0, min(DAYS_PER_WEEK - 1, day))

    def slot_bounds(
        self,
        height: float,
        position: Position,
        track_width: float,
        reference_date: datetime | date,
        *,
        min_minutes: Optional[int] = None,
        tz: Optional[tzinfo] = None,
    ) -> tuple[datetime, datetime]:
        """Snap geometry and convert it into (start, end) datetimes."""
        minimum = self.grid.min_edit_minutes if min_minutes is None else min_minutes

        duration = self.px_to_minutes(self.snap(height))
        duration = min(max(duration, minimum), MINUTES_PER_DAY)

        start = self.px_to_minutes(self.snap(position.y))
        start = min(max(start, 0), MINUTES_PER_DAY - duration)

        day = date_for_day(self.day_at(position.x, track_width), reference_date)
        midnight = datetime.combine(day, time.min, tzinfo=tz)
        begin = midnight + timedelta(minutes=start)
        return begin, begin + timedelta(minutes=duration)

    def meeting_from_geometry(
        self,
        height: float,
        position: Position,
        meeting: Meeting,
        track_width: float,
        reference_date: datetime | date,
        *,
        min_minutes: Optional[int] = None,
    ) -> Meeting:
        """Inverse transform: pixel box back to a meeting with an updated time.

        Everything except ``time.from``/``time.to`` is carried over unchanged.
        Durations under the minimum are clamped, not rejected.
        """
        begin, end = self.slot_bounds(
            height,
            position,
            track_width,
            reference_date,
            min_minutes=min_minutes,
            tz=meeting.time.from_.tzinfo,
        )
        return meeting.with_time(meeting.time.with_range(begin, end))

    def meeting_at(
        self,
        position: Position,
        track_width: float,
        reference_date: datetime | date,
        *,
        meeting_id: str,
        tz: Optional[tzinfo] = None,
        **fields: Any,
    ) -> Meeting:
        """New meeting for a single click at ``position`` (creation minimum)."""
        minutes = self.grid.min_create_minutes
        if tz is None and isinstance(reference_date, datetime):
            tz = reference_date.tzinfo
        begin, end = self.slot_bounds(
            self.minutes_to_px(minutes),
            position,
            track_width,
            reference_date,
            min_minutes=minutes,
            tz=tz,
        )
        return Meeting(id=meeting_id, time=Timeslot.create(begin, end), **fields)


__all__ = [
    "CoordinateMapper",
    "date_for_day",
    "day_index",
    "minutes_since_midnight",
]
