"""
Decoder for compact schedule and pattern files.

Turns the minified artifacts back into trip and pattern objects:
minutes since midnight become "HH:MM:00" clocks, pattern indices become
route and stop details, and each trip's platforms are its override or
the pattern default.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union

from .config import FORMAT_VERSION
from .encoder import STOP_FIELDS
from .models import DecodedPattern, DecodedStop, DecodedTrip, Departure

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = ("7.0", FORMAT_VERSION)
MAX_WINDOW_HOURS = 168

DateLike = Union[date, str]


def minutes_to_time(minutes) -> str:
    """Minutes since midnight to "HH:MM:00"; invalid input gives "00:00:00"."""
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0:
        return "00:00:00"
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}:00"


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def day_offset(start_date: DateLike, target_date: DateLike) -> int:
    """Whole days from start_date to target_date (negative if before)."""
    return (_as_date(target_date) - _as_date(start_date)).days


def is_compact_format(data) -> bool:
    """True for a schedule or pattern file of a supported format version."""
    return isinstance(data, dict) and isinstance(data.get("meta"), dict) and (
        data["meta"].get("formatVersion") in SUPPORTED_VERSIONS
    )


def _pattern_lookup(pattern_file: Optional[dict]) -> Dict[int, dict]:
    if not pattern_file or not pattern_file.get("patterns"):
        return {}
    return {pattern["i"]: pattern for pattern in pattern_file["patterns"]}


def _stop_fields(pattern_file: Optional[dict]) -> List[str]:
    if pattern_file and pattern_file.get("meta", {}).get("stopFieldLegend"):
        return pattern_file["meta"]["stopFieldLegend"]
    return STOP_FIELDS


def expand_trip(
    trip: dict,
    pattern: Optional[dict] = None,
    stop_fields: Optional[List[str]] = None,
) -> DecodedTrip:
    """Expand one compact trip record, using its pattern when available."""
    stop_fields = stop_fields or STOP_FIELDS
    pattern_stops = pattern.get("s", []) if pattern else []

    stops = []
    for position, minutes in enumerate(trip.get("s", [])):
        clock = minutes_to_time(minutes)
        if position < len(pattern_stops):
            values = dict(zip(stop_fields, pattern_stops[position]))
            stops.append(
                DecodedStop(
                    arrival=clock,
                    departure=clock,
                    station=values.get("station"),
                    name=values.get("name"),
                    platform_id=values.get("platformId"),
                    platform=values.get("platform"),
                    platform_name=values.get("platformName"),
                )
            )
        else:
            stops.append(DecodedStop(arrival=clock, departure=clock))

    decoded = DecodedTrip(
        trip_id=trip["t"],
        departure_time=minutes_to_time(trip.get("d")),
        arrival_time=minutes_to_time(trip.get("a")),
        pattern_index=trip.get("p"),
        departure_platform=trip.get("op", pattern.get("op") if pattern else None),
        arrival_platform=trip.get("ap", pattern.get("dp") if pattern else None),
        stops=stops,
    )
    if pattern:
        decoded.route_id = pattern.get("r")
        decoded.route_name = pattern.get("n")
        decoded.headsign = f"{pattern.get('n')} to {pattern.get('d')}"
    return decoded


def get_trips_for_date(
    schedule_file: dict,
    dest_slug: str,
    target_date: DateLike,
    pattern_file: Optional[dict] = None,
) -> List[DecodedTrip]:
    """
    Trips from the file's origin to dest_slug on target_date.

    Args:
        schedule_file: A compact station file.
        dest_slug: Destination station slug.
        target_date: Service date, as a date or "YYYY-MM-DD".
        pattern_file: The origin's pattern file; without it trips carry
            times and platform overrides only.

    Returns:
        Decoded trips in departure order. Dates outside the published window
        and unknown destinations give [].
    """
    if not is_compact_format(schedule_file):
        logger.warning("Schedule file is not in a supported compact format")
        return []

    meta = schedule_file["meta"]
    route = schedule_file.get("routes", {}).get(dest_slug)
    if not route or not route.get("schedules"):
        return []

    offset = day_offset(meta["startDate"], target_date)
    day_count = min(meta.get("dayCount", len(route["schedules"])), len(route["schedules"]))
    if offset < 0 or offset >= day_count:
        return []

    patterns = _pattern_lookup(pattern_file)
    stop_fields = _stop_fields(pattern_file)
    return [
        expand_trip(trip, patterns.get(trip["p"]), stop_fields)
        for trip in route["schedules"][offset]
    ]


def expand_pattern_file(pattern_file: dict) -> List[DecodedPattern]:
    """All patterns of a pattern file with named stop fields."""
    if not is_compact_format(pattern_file):
        return []

    stop_fields = _stop_fields(pattern_file)
    return [
        DecodedPattern(
            pattern_index=pattern["i"],
            route_id=pattern["r"],
            route_name=pattern["n"],
            destination=pattern["d"],
            stops=[dict(zip(stop_fields, stop)) for stop in pattern["s"]],
            trip_count=pattern["c"],
            origin_platform_default=pattern.get("op"),
            destination_platform_default=pattern.get("dp"),
        )
        for pattern in pattern_file["patterns"]
    ]


def expand_schedule_file(
    schedule_file: dict, pattern_file: Optional[dict] = None
) -> Dict[str, Dict[str, List[DecodedTrip]]]:
    """Whole file as {destination slug: {"YYYY-MM-DD": [trips]}}."""
    if not is_compact_format(schedule_file):
        return {}

    start = _as_date(schedule_file["meta"]["startDate"])
    patterns = _pattern_lookup(pattern_file)
    stop_fields = _stop_fields(pattern_file)

    expanded = {}
    for dest_slug, route in schedule_file["routes"].items():
        expanded[dest_slug] = {
            (start + timedelta(days=offset)).isoformat(): [
                expand_trip(trip, patterns.get(trip["p"]), stop_fields) for trip in day
            ]
            for offset, day in enumerate(route["schedules"])
        }
    return expanded


def upcoming_departures(
    schedule_file: dict,
    dest_slug: str,
    now: datetime,
    hours: int = 24,
    pattern_file: Optional[dict] = None,
) -> List[Departure]:
    """
    Departures to dest_slug between now and now + hours, in time order.

    Trips are anchored to their service date, so a "25:10:00" departure
    belongs to the next calendar day.

    Args:
        now: Start of the window. Its tzinfo is applied to the scheduled times.
        hours: Window length, 1 to 168.

    Raises:
        ValueError: If hours is out of range.
    """
    if not 1 <= hours <= MAX_WINDOW_HOURS:
        raise ValueError(f"hours must be between 1 and {MAX_WINDOW_HOURS}, got {hours}")

    if not is_compact_format(schedule_file):
        return []

    schedules = schedule_file.get("routes", {}).get(dest_slug, {}).get("schedules", [])
    start = schedule_file["meta"]["startDate"]
    patterns = _pattern_lookup(pattern_file)
    stop_fields = _stop_fields(pattern_file)
    cutoff = now + timedelta(hours=hours)
    departures = []

    # Start a day early to catch service-day trips running past midnight
    service_date = now.date() - timedelta(days=1)
    while service_date <= cutoff.date():
        offset = day_offset(start, service_date)
        if 0 <= offset < len(schedules):
            midnight = datetime.combine(service_date, datetime.min.time(), tzinfo=now.tzinfo)
            for trip in schedules[offset]:
                leaves = midnight + timedelta(minutes=trip["d"])
                if now <= leaves <= cutoff:
                    departures.append(
                        Departure(
                            service_date=service_date,
                            scheduled_departure=leaves,
                            scheduled_arrival=midnight + timedelta(minutes=trip["a"]),
                            trip=expand_trip(trip, patterns.get(trip["p"]), stop_fields),
                        )
                    )
        service_date += timedelta(days=1)

    departures.sort(key=lambda d: d.scheduled_departure)
    return departures


def missing_pattern_indices(schedule_file: dict, pattern_file: dict) -> List[int]:
    """Pattern indices referenced by the schedule but absent from the patterns."""
    known = set(_pattern_lookup(pattern_file))
    referenced = {
        trip["p"]
        for route in schedule_file.get("routes", {}).values()
        for day in route.get("schedules", [])
        for trip in day
    }
    return sorted(referenced - known)
