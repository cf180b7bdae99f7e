"""
meetgrid - Weekly calendar grid engine

Lays out meetings on a weekly/daily time grid, converts between wall-clock
time and pixel geometry, and keeps interactively edited meetings in sync with
a remote store through debounced, per-meeting serialized commits.

Components:
    calendar/: Timeslot and Meeting models, pixel geometry, column layout
    sync/: Persistence boundary, collection cache, optimistic mutator
    interaction/: Pointer gesture state machine (create, move, resize)
    config_models.py: Validated configuration loaded from args/*.yaml
    logging_config.py: structlog setup shared by every module

Usage:
    from meetgrid.calendar.coordinates import CoordinateMapper
    from meetgrid.calendar.layout import layout_week

    boxes = layout_week(meetings, CoordinateMapper())
"""

from pathlib import Path

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
ARGS_DIR = PROJECT_ROOT / "args"

__version__ = "0.1.0"

__all__ = [
    "PROJECT_ROOT",
    "ARGS_DIR",
    "__version__",
]
