#!/usr/bin/env python3
"""
Exclusion Check - find double bookings in iCalendar files and feeds.

Every event occurrence is keyed by one of its properties (LOCATION by
default) and inserted into an exclusion index; any occurrence that overlaps
an earlier one with the same key is reported.

This is the main entry point for the command line tool.
"""

import sys
import argparse
from datetime import datetime, timedelta
from pathlib import Path

import pytz
import requests

from exclusion.config import Config
from exclusion.debug import set_debug, debug_print
from exclusion.errors import ExclusionError
from exclusion.ical import load_calendar, iter_bookings, import_bookings
from exclusion.index import ExclusionIndex
from exclusion.storage import create_storage_backend
from exclusion.timezone_utils import set_timezone, to_utc_datetime, format_local


EXIT_OK = 0
EXIT_CONFLICTS = 1
EXIT_ERROR = 2


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Exclusion Check - report overlapping bookings that share a key"
    )
    parser.add_argument(
        "sources",
        nargs="*",
        help="iCalendar files or http(s) URLs (default: sources from the configuration)"
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Path to configuration file (default: auto-detect)"
    )
    parser.add_argument(
        "-k", "--key-property",
        help="VEVENT property used as the exclusion key (default: LOCATION)"
    )
    parser.add_argument(
        "--start",
        type=datetime.fromisoformat,
        help="Start of the recurrence expansion window, ISO format (default: now)"
    )
    parser.add_argument(
        "--days",
        type=int,
        help="Length of the recurrence expansion window in days"
    )
    parser.add_argument(
        "--save",
        metavar="NAME",
        help="Save the accepted bookings as a snapshot called NAME"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output"
    )
    return parser.parse_args(argv)


def load_config(path):
    if path is not None:
        return Config.load(path)
    try:
        return Config.load()
    except FileNotFoundError:
        return Config.default()


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    set_debug(args.debug)

    try:
        config = load_config(args.config)
        set_timezone(config.timezone)
    except (OSError, ValueError, pytz.UnknownTimeZoneError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return EXIT_ERROR

    sources = args.sources or [s.url for s in config.sources]
    if not sources:
        print("Error: no calendar sources given", file=sys.stderr)
        return EXIT_ERROR

    key_property = (args.key_property or config.imports.key_property).upper()
    start = to_utc_datetime(args.start) if args.start else datetime.now(pytz.UTC)
    end = start + timedelta(days=args.days if args.days is not None else config.imports.window_days)
    debug_print("CHECK", f"Window {start} .. {end}, key property {key_property}")

    index = ExclusionIndex(lock_timeout=config.index.lock_timeout)
    conflicts = 0
    for source in sources:
        try:
            calendar = load_calendar(source, timeout=config.imports.fetch_timeout)
            bookings = sorted(
                iter_bookings(calendar, key_property, start, end),
                key=lambda b: (b.interval.low, b.uid),
            )
            result = import_bookings(index, bookings)
        except (OSError, ValueError, requests.RequestException, ExclusionError) as e:
            print(f"Error reading {source}: {e}", file=sys.stderr)
            return EXIT_ERROR

        debug_print("CHECK", f"{source}: {len(result.accepted)} accepted, {len(result.rejected)} rejected")
        for booking, error in result.rejected:
            conflicts += 1
            for existing in error.conflicts:
                other = existing.payload.get("summary") or existing.payload.get("uid")
                print(
                    f"{booking.key}: {booking.summary or booking.uid} "
                    f"({format_local(booking.interval.low)} - {format_local(booking.interval.high)}) "
                    f"overlaps {other} "
                    f"({format_local(existing.interval.low)} - {format_local(existing.interval.high)})"
                )

    if args.save:
        storage = create_storage_backend(config.storage_dir)
        count = storage.save_index(index, args.save)
        print(f"Saved {count} bookings to snapshot {args.save!r}")

    if conflicts:
        print(f"{conflicts} conflicting booking(s) found")
        return EXIT_CONFLICTS
    print(f"No conflicts among {len(index)} booking(s)")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
