"""Calendar grid - meetings, pixel geometry and column layout

Components:
    models.py: Timeslot, Meeting, Position (pydantic, immutable)
    coordinates.py: CoordinateMapper (time <-> pixels, 15-minute snapping)
    layout.py: Overlap-free column placement and per-meeting render boxes

Grid conventions:
    - Days are indexed Sunday = 0 .. Saturday = 6
    - One hour is 48px tall, so the 12px snap grid is 15 minutes
    - Positions are relative to the top-left corner of the Sunday column
"""

MINUTES_PER_DAY = 24 * 60
DAYS_PER_WEEK = 7

__all__ = ["MINUTES_PER_DAY", "DAYS_PER_WEEK"]
