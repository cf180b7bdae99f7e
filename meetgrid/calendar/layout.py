"""
Place concurrent meetings side by side (like Google Calendar).

A day's meetings are split into groups (maximal runs with no gap between
them) and each group into columns of mutually non-overlapping meetings.
Columns are filled first-fit in (from, to) order, which is optimal for
interval graphs: a group gets exactly as many columns as the largest number
of meetings active at one instant.

    groups = place_meetings_in_day(meetings, day=1)
    for columns in groups:
        for col_idx, column in enumerate(columns):
            for meeting in column:
                width = expand(meeting, col_idx, columns) / len(columns)
                left = col_idx / len(columns)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from meetgrid.calendar import DAYS_PER_WEEK
from meetgrid.calendar.coordinates import CoordinateMapper, day_index
from meetgrid.calendar.models import Meeting

Column = list[Meeting]
Group = list[Column]


@dataclass(frozen=True)
class MeetingBox:
    """Render box for one meeting on one day.

    ``top``/``height`` are pixels; ``left``/``width`` are fractions of the
    day track so the renderer can apply its own margins.
    """

    meeting_id: str
    day: int
    top: float
    height: float
    left: float
    width: float
    column: int
    columns: int

    def to_pixels(self, track_width: float, margin: float = 0.0) -> dict[str, float]:
        usable = max(track_width - margin, 0.0)
        return {
            "top": self.top,
            "left": self.day * track_width + self.left * usable,
            "width": self.width * usable,
            "height": self.height,
        }

    def to_dict(self) -> dict:
        return {
            "meeting_id": self.meeting_id,
            "day": self.day,
            "top": self.top,
            "height": self.height,
            "left": self.left,
            "width": self.width,
            "column": self.column,
            "columns": self.columns,
        }


def expand(meeting: Meeting, column_index: int, columns: Group) -> int:
    """Number of columns ``meeting`` can span rightwards without a collision."""
    col_span = 1
    for column in columns[column_index + 1:]:
        if any(meeting.time.overlaps(other.time) for other in column):
            break
        col_span += 1
    return col_span


def _sort_key(meeting: Meeting):
    return (meeting.time.from_, meeting.time.to)


def place_meetings_in_day(meetings: Iterable[Meeting], day: int) -> list[Group]:
    """Group and column-assign the meetings that start on weekday ``day``."""
    groups: list[Group] = []
    columns: Group = []
    last_event_ending = None

    todays = sorted(
        (m for m in meetings if day_index(m.time.from_) == day),
        key=_sort_key,
    )

    for meeting in todays:
        # Nothing in the current group can overlap this one: start a new group.
        if last_event_ending is not None and meeting.time.from_ >= last_event_ending:
            groups.append(columns)
            columns = []
            last_event_ending = None

        for column in columns:
            if not column[-1].time.overlaps(meeting.time):
                column.append(meeting)
                break
        else:
            columns.append([meeting])

        if last_event_ending is None or meeting.time.to > last_event_ending:
            last_event_ending = meeting.time.to

    if columns:
        groups.append(columns)
    return groups


def place_meetings_in_week(meetings: Iterable[Meeting]) -> list[list[Group]]:
    """One list of groups per weekday, Sunday first."""
    meetings = list(meetings)
    return [place_meetings_in_day(meetings, day) for day in range(DAYS_PER_WEEK)]


def layout_day(
    meetings: Iterable[Meeting],
    day: int,
    mapper: Optional[CoordinateMapper] = None,
) -> list[MeetingBox]:
    mapper = mapper or CoordinateMapper()
    boxes: list[MeetingBox] = []
    for columns in place_meetings_in_day(meetings, day):
        count = len(columns)
        for col_idx, column in enumerate(columns):
            for meeting in column:
                boxes.append(
                    MeetingBox(
                        meeting_id=meeting.id,
                        day=day,
                        top=mapper.position(meeting.time.from_, 1.0).y,
                        height=mapper.height(meeting.time),
                        left=col_idx / count,
                        width=expand(meeting, col_idx, columns) / count,
                        column=col_idx,
                        columns=count,
                    )
                )
    return boxes


def layout_week(
    meetings: Iterable[Meeting],
    mapper: Optional[CoordinateMapper] = None,
) -> list[MeetingBox]:
    meetings = list(meetings)
    mapper = mapper or CoordinateMapper()
    boxes: list[MeetingBox] = []
    for day in range(DAYS_PER_WEEK):
        boxes.extend(layout_day(meetings, day, mapper))
    return boxes


def max_concurrency(meetings: Iterable[Meeting]) -> int:
    """Largest number of meetings active at one instant (sweep line).

    Ends sort before starts at the same instant since touching meetings do
    not overlap.
    """
    points = []
    for meeting in meetings:
        points.append((meeting.time.from_, 1))
        points.append((meeting.time.to, -1))
    points.sort(key=lambda p: (p[0], p[1]))

    active = 0
    peak = 0
    for _, kind in points:
        active += kind
        peak = max(peak, active)
    return peak


__all__ = [
    "Column",
    "Group",
    "MeetingBox",
    "expand",
    "layout_day",
    "layout_week",
    "max_concurrency",
    "place_meetings_in_day",
    "place_meetings_in_week",
]
