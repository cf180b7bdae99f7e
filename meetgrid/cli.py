#!/usr/bin/env python3
"""
meetgrid Command Line Interface

Main entry point for the `meetgrid` command.

Usage:
    meetgrid layout --file week.json            # Render boxes for a week as JSON
    meetgrid layout --file week.json --day 1    # Only Monday
    meetgrid config --name sync                 # Show validated configuration
    meetgrid meetings --db data/meetings.db --list --from 2024-01-07 --to 2024-01-14
    meetgrid --version
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime, timedelta
from pathlib import Path

from meetgrid import PROJECT_ROOT, __version__
from meetgrid.calendar.coordinates import CoordinateMapper
from meetgrid.calendar.layout import layout_day, layout_week
from meetgrid.calendar.models import Meeting
from meetgrid.config_models import config_names, load_and_validate
from meetgrid.errors import MeetgridError
from meetgrid.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def _print(result) -> None:
    print(json.dumps(result, indent=2, default=str))


def _load_meetings(path: Path) -> list[Meeting]:
    data = json.loads(path.read_text())
    if isinstance(data, dict):
        data = data.get("meetings", [])
    return [Meeting.from_json(item) for item in data]


def cmd_layout(args):
    """Handle layout subcommand: meetings JSON in, render boxes out."""
    calendar = load_and_validate("calendar")
    mapper = CoordinateMapper(calendar.grid)
    track_width = args.track_width or calendar.display.track_width

    meetings = _load_meetings(Path(args.file))
    if args.day is not None:
        boxes = layout_day(meetings, args.day, mapper)
    else:
        boxes = layout_week(meetings, mapper)

    logger.debug("layout_computed", meetings=len(meetings), boxes=len(boxes))
    _print({
        "success": True,
        "boxes": [
            {**box.to_dict(), "pixels": box.to_pixels(track_width, calendar.display.margin_px)}
            for box in boxes
        ],
    })


def cmd_config(args):
    """Handle config subcommand."""
    names = [args.name] if args.name else config_names()
    _print({
        "success": True,
        "config": {name: load_and_validate(name).model_dump() for name in names},
    })


def cmd_meetings(args):
    """Handle meetings subcommand against a SQLite store."""
    from meetgrid.sync.persistence import SQLiteMeetingStore

    sync = load_and_validate("sync")
    db_path = Path(args.db) if args.db else PROJECT_ROOT / sync.store.path
    store = SQLiteMeetingStore(db_path, temp_prefix=sync.ids.temp_prefix)

    if args.delete:
        asyncio.run(store.delete(args.delete))
        _print({"success": True, "deleted": args.delete})
        return

    start = datetime.fromisoformat(args.start) if args.start else datetime.now()
    end = datetime.fromisoformat(args.end) if args.end else start + timedelta(days=sync.store.range_days)
    meetings = asyncio.run(store.list(start, end))
    _print({
        "success": True,
        "count": len(meetings),
        "meetings": [m.to_json() for m in meetings],
    })


def cmd_version(args):
    print(f"meetgrid {__version__}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="meetgrid",
        description="Weekly meeting grid: layout, configuration and stored meetings",
    )
    parser.add_argument("--version", "-V", action="store_true", help="Show version")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    parser.add_argument("--log-json", action="store_true", help="Emit JSON log lines")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # layout
    layout_parser = subparsers.add_parser("layout", help="Compute render boxes for meetings")
    layout_parser.add_argument("--file", required=True, help="JSON file with a list of meetings")
    layout_parser.add_argument("--day", type=int, choices=range(7), help="Only this weekday (0 = Sunday)")
    layout_parser.add_argument("--track-width", type=float, help="Day column width in pixels")
    layout_parser.set_defaults(func=cmd_layout)

    # config
    config_parser = subparsers.add_parser("config", help="Show validated configuration")
    config_parser.add_argument("--name", choices=config_names(), help="Config name (default: all)")
    config_parser.set_defaults(func=cmd_config)

    # meetings
    meetings_parser = subparsers.add_parser("meetings", help="Inspect the local meeting store")
    meetings_parser.add_argument("--db", help="SQLite database path (default from args/sync.yaml)")
    meetings_action = meetings_parser.add_mutually_exclusive_group(required=True)
    meetings_action.add_argument("--list", action="store_true", help="List meetings in a range")
    meetings_action.add_argument("--delete", metavar="ID", help="Delete a stored meeting")
    meetings_parser.add_argument("--from", dest="start", help="Range start (ISO-8601)")
    meetings_parser.add_argument("--to", dest="end", help="Range end (ISO-8601)")
    meetings_parser.set_defaults(func=cmd_meetings)

    args = parser.parse_args(argv)
    setup_logging(level=args.log_level, json_output=True if args.log_json else None)

    # Handle --version at top level
    if args.version:
        cmd_version(args)
        return 0

    # If no command given, show help
    if not args.command:
        parser.print_help()
        return 0

    try:
        args.func(args)
    except (MeetgridError, ValueError, OSError) as e:
        logger.warning("command_failed", command=args.command, error=str(e))
        error = e.to_dict() if isinstance(e, MeetgridError) else {"error": str(e)}
        _print({"success": False, **error})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
