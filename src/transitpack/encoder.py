"""Compact encoding of per-station schedules and patterns."""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional

from .config import FORMAT_VERSION
from .models import CompactTrip, Pattern, ProcessingStats, Station
from .patterns import OriginPatternTable

logger = logging.getLogger(__name__)

TRIP_FIELDS = {
    "t": "tripId",
    "d": "departureMinutes",
    "a": "arrivalMinutes",
    "p": "patternIndex",
    "s": "intermediateMinutes",
    "op": "originPlatformOverride",
    "ap": "destinationPlatformOverride",
}

PATTERN_FIELDS = {
    "i": "id",
    "r": "routeId",
    "n": "routeName",
    "d": "destination",
    "s": "stops",
    "c": "tripCount",
    "op": "originPlatformDefault",
    "dp": "destPlatformDefault",
}

STOP_FIELDS = ["station", "name", "platformId", "platform", "platformName"]


def parse_clock(value) -> Optional[int]:
    """
    Minutes since midnight for an "HH:MM:SS" clock, or None if malformed.

    Seconds are dropped. Hours past 23 (GTFS service-day times) are kept.
    """
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = int(parts[2]) if len(parts) == 3 else 0
    except ValueError:
        return None
    if hours < 0 or not 0 <= minutes < 60 or not 0 <= seconds < 60:
        return None
    return hours * 60 + minutes


def time_to_minutes(value) -> int:
    """Minutes since midnight, falling back to 0 for malformed clocks."""
    minutes = parse_clock(value)
    return 0 if minutes is None else minutes


def station_payload(station: Station, include_numbers: bool = True) -> dict:
    payload = {
        "name": station.name,
        "slug": station.slug,
        "allPlatforms": station.platform_ids,
    }
    if include_numbers:
        payload["platformNumbers"] = station.platform_numbers
    payload["lat"] = station.lat
    payload["lng"] = station.lng
    return payload


@dataclass
class DestinationSchedule:
    """Trips from one origin to one destination, one list per day."""
    destination: Station
    schedules: List[List[CompactTrip]]


@dataclass
class RouteTable:
    """Everything departing one origin station during the run's window."""
    station: Station
    routes: Dict[str, DestinationSchedule] = field(default_factory=dict)

    def add(self, destination: Station, day_index: int, day_count: int, trip: CompactTrip) -> None:
        if destination.slug not in self.routes:
            self.routes[destination.slug] = DestinationSchedule(
                destination=destination,
                schedules=[[] for _ in range(day_count)],
            )
        self.routes[destination.slug].schedules[day_index].append(trip)

    @property
    def trip_count(self) -> int:
        return sum(
            len(day) for route in self.routes.values() for day in route.schedules
        )


class Clock:
    """Clock parser that counts malformed values into the run's stats."""

    def __init__(self, stats: Optional[ProcessingStats] = None):
        self.stats = stats if stats is not None else ProcessingStats()
        self._cache: Dict[str, int] = {}

    def __call__(self, value) -> int:
        if isinstance(value, str) and value in self._cache:
            return self._cache[value]
        minutes = parse_clock(value)
        if minutes is None:
            self.stats.malformed_clocks += 1
            logger.debug(f"Malformed clock {value!r}, using 0")
            minutes = 0
        elif isinstance(value, str):
            self._cache[value] = minutes
        return minutes


def encode_schedule_file(table: RouteTable, start_date: date, day_count: int) -> dict:
    """
    Serialize one origin's route table.

    schedules[k] holds the trips of start_date + k days, sorted by departure.
    """
    routes = {}
    for dest_slug, route in table.routes.items():
        if len(route.schedules) != day_count:
            raise ValueError(
                f"{table.station.slug}->{dest_slug} has {len(route.schedules)} days, expected {day_count}"
            )
        routes[dest_slug] = {
            "destination": station_payload(route.destination, include_numbers=False),
            "schedules": [
                [trip.to_dict() for trip in sorted(day, key=lambda t: t.departure)]
                for day in route.schedules
            ],
        }

    return {
        "meta": {
            "formatVersion": FORMAT_VERSION,
            "startDate": start_date.isoformat(),
            "dayCount": day_count,
            "originSlug": table.station.slug,
            "fieldLegend": dict(TRIP_FIELDS),
        },
        "station": station_payload(table.station),
        "routes": routes,
    }


def encode_pattern_file(table: OriginPatternTable) -> dict:
    """Serialize one origin's patterns; array position equals pattern index."""
    patterns: List[Pattern] = table.patterns
    for position, pattern in enumerate(patterns):
        if pattern.index != position:
            raise ValueError(
                f"Pattern index {pattern.index} stored at position {position} for {table.origin_slug}"
            )

    return {
        "meta": {
            "formatVersion": FORMAT_VERSION,
            "originSlug": table.origin_slug,
            "fieldLegend": dict(PATTERN_FIELDS),
            "stopFieldLegend": list(STOP_FIELDS),
        },
        "patterns": [pattern.to_dict() for pattern in patterns],
    }


def window_dates(start_date: date, day_count: int) -> List[date]:
    """Calendar dates covered by positional day indices 0..day_count-1."""
    return [start_date + timedelta(days=k) for k in range(day_count)]
