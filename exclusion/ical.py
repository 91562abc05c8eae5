"""
Bookings from iCalendar data.

Reads VEVENTs from .ics files or feeds, expands recurring events with
recurring_ical_events, and turns each occurrence into a Booking keyed by
one of its properties (LOCATION by default, i.e. the room). Feeding those
bookings through an ExclusionIndex finds every double booking.
"""

from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

import pytz
import requests
from icalendar import Calendar as ICalCalendar, Event as ICalEvent
from recurring_ical_events import of as recurring_events_of

from .debug import debug_print
from .entry import Entry
from .errors import ConflictError
from .index import ExclusionIndex
from .interval import Interval
from .timezone_utils import to_utc_datetime


PRODID = '-//Interval Exclusion//interval-exclusion//'


@dataclass
class Booking:
    """One concrete occurrence of a VEVENT."""
    uid: str
    key: str
    interval: Interval
    summary: str = ''

    @property
    def payload(self) -> dict:
        return {"uid": self.uid, "summary": self.summary}

    def __str__(self):
        return f"{self.summary or self.uid} {self.interval}"


@dataclass
class ImportResult:
    """Outcome of import_bookings()."""
    accepted: list[tuple[Booking, int]] = field(default_factory=list)
    rejected: list[tuple[Booking, ConflictError]] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.rejected)


def parse_icalendar(ical_text: Union[str, bytes]) -> ICalCalendar:
    """Parse iCalendar text into an icalendar.Calendar object."""
    return ICalCalendar.from_ical(ical_text)


def load_calendar(source: Union[str, Path], timeout: int = 30) -> ICalCalendar:
    """
    Load a calendar from a local file or an http(s) URL.

    Raises:
        requests.RequestException: the URL could not be fetched
        OSError: the file could not be read
        ValueError: the data is not valid iCalendar
    """
    source = str(source)
    if source.startswith(('http://', 'https://')):
        debug_print("ICAL", f"Fetching {source}")
        response = requests.get(
            source,
            timeout=timeout,
            headers={
                'User-Agent': 'interval-exclusion/1.0',
                'Accept': 'text/calendar'
            }
        )
        response.raise_for_status()
        # Ensure proper UTF-8 decoding
        response.encoding = 'utf-8'
        return parse_icalendar(response.text)

    debug_print("ICAL", f"Reading {source}")
    return parse_icalendar(Path(source).read_bytes())


def _as_utc(value: Union[date, datetime]) -> datetime:
    if isinstance(value, date) and not isinstance(value, datetime):
        # All-day event - midnight UTC
        return pytz.UTC.localize(datetime.combine(value, datetime.min.time()))
    return to_utc_datetime(value)


def event_interval(event: ICalEvent) -> Interval:
    """
    The [DTSTART, DTEND) interval of a VEVENT in UTC.

    Without DTEND the DURATION is used; failing that, all-day events last one
    day and timed events one hour.
    """
    start_value = event.get('DTSTART').dt
    start = _as_utc(start_value)

    dtend = event.get('DTEND')
    duration = event.get('DURATION')
    if dtend is not None:
        end = _as_utc(dtend.dt)
    elif duration is not None:
        end = start + duration.dt
    elif isinstance(start_value, date) and not isinstance(start_value, datetime):
        end = start + timedelta(days=1)
    else:
        end = start + timedelta(hours=1)
    return Interval(start, end)


def iter_bookings(
    calendar: ICalCalendar,
    key_property: str = 'LOCATION',
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Iterator[Booking]:
    """
    Yield a Booking for every VEVENT occurrence that has key_property set.

    When start and end are given, recurring events are expanded to their
    occurrences between them; otherwise each VEVENT is taken as written.
    Events without the key property cannot collide with anything and are
    skipped.
    """
    if start is not None and end is not None:
        components = recurring_events_of(calendar).between(start, end)
    else:
        components = calendar.walk('VEVENT')

    for component in components:
        if component.get('DTSTART') is None:
            continue
        key = component.get(key_property)
        if not key:
            debug_print("ICAL", f"Skipping {component.get('UID')}: no {key_property}")
            continue
        yield Booking(
            uid=str(component.get('UID', '')),
            key=str(key),
            interval=event_interval(component),
            summary=str(component.get('SUMMARY', '')),
        )


def import_bookings(
    index: ExclusionIndex,
    bookings: Iterable[Booking],
    timeout: Optional[float] = None,
) -> ImportResult:
    """
    Insert bookings into index in order.

    A booking that overlaps an already accepted one with the same key is
    rejected; the ConflictError names the booking(s) it collides with.
    """
    result = ImportResult()
    for booking in bookings:
        try:
            entry_id = index.insert(booking.key, booking.interval, booking.payload, timeout=timeout)
        except ConflictError as e:
            debug_print("ICAL", f"Conflict for {booking}: {e}")
            result.rejected.append((booking, e))
        else:
            result.accepted.append((booking, entry_id))
    return result


def _entry_uid(entry: Entry) -> str:
    payload = entry.payload
    if isinstance(payload, dict) and payload.get('uid'):
        return str(payload['uid'])
    return f"entry-{entry.id}@interval-exclusion"


def export_calendar(entries: Iterable[Entry], key_property: str = 'LOCATION') -> ICalCalendar:
    """
    Render entries with datetime bounds as a VCALENDAR.

    Entries with unbounded or non-datetime bounds have no iCalendar form and
    are left out.
    """
    vcal = ICalCalendar()
    vcal.add('prodid', PRODID)
    vcal.add('version', '2.0')

    for entry in entries:
        interval = entry.interval
        if not (isinstance(interval.low, datetime) and isinstance(interval.high, datetime)):
            debug_print("ICAL", f"Not exporting {entry}: bounds are not datetimes")
            continue
        event = ICalEvent()
        event.add('uid', _entry_uid(entry))
        event.add('dtstart', interval.low)
        event.add('dtend', interval.high)
        event.add(key_property.lower(), str(entry.key))
        payload: Any = entry.payload
        if isinstance(payload, dict) and payload.get('summary'):
            event.add('summary', payload['summary'])
        vcal.add_component(event)
    return vcal
