"""Data models for the schedule compaction pipeline."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional


@dataclass
class StopDetails:
    """A row of stops.txt, reduced to what the pipeline needs."""
    stop_id: str
    name: str
    platform_code: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


@dataclass
class RosterEntry:
    """One station of the station roster: a display name and its platforms."""
    name: str
    platform_ids: List[str]
    lat: Optional[float] = None
    lng: Optional[float] = None


@dataclass
class Station:
    """A physical station grouping one or more platforms."""
    slug: str
    name: str
    platform_ids: List[str]
    lat: float = 0.0
    lng: float = 0.0
    platform_codes: List[str] = field(default_factory=list)

    @property
    def platform_numbers(self) -> List[str]:
        """Distinct platform display codes, in roster order."""
        return list(dict.fromkeys(code for code in self.platform_codes if code))


@dataclass
class Platform:
    """A boarding point (GTFS stop) belonging to exactly one station."""
    id: str
    station_slug: str
    code: Optional[str] = None
    name: str = "Unknown"

    @property
    def label(self) -> str:
        """Value used for platform defaults and overrides."""
        return self.code or self.id


@dataclass
class StopTimeRecord:
    """A raw platform-level stop time."""
    platform_id: str
    sequence: int
    arrival: str
    departure: str


@dataclass
class TripRecord:
    """A row of trips.txt joined with its route's display name."""
    trip_id: str
    route_id: str
    service_id: str
    route_name: str = "Unknown"


@dataclass
class StationVisit:
    """One station stop of a trip after platform stops are collapsed."""
    station: Station
    platform: Platform
    arrival: str
    departure: str
    position: int


@dataclass
class TripStationSequence:
    """Ordered station visits of one scheduled trip."""
    trip_id: str
    visits: List[StationVisit]

    def __len__(self) -> int:
        return len(self.visits)

    @property
    def slugs(self) -> List[str]:
        return [visit.station.slug for visit in self.visits]


@dataclass
class IntermediateStop:
    """A station passed between a pattern's origin and destination."""
    station: str  # slug
    name: str
    platform_id: str
    platform: Optional[str]
    platform_name: str

    def to_list(self) -> list:
        return [self.station, self.name, self.platform_id, self.platform, self.platform_name]


@dataclass
class Pattern:
    """
    A deduplicated origin-to-destination stopping pattern.

    Identity is (origin_slug, index). Only trip_count changes after creation,
    until the platform defaults are resolved once at the end of a run.
    """
    index: int
    origin_slug: str
    destination_slug: str
    route_id: str
    route_name: str
    stops: List[IntermediateStop]
    trip_count: int = 0
    origin_platform_default: Optional[str] = None
    destination_platform_default: Optional[str] = None
    origin_platforms: Dict[str, int] = field(default_factory=dict, repr=False)
    destination_platforms: Dict[str, int] = field(default_factory=dict, repr=False)
    defaults_resolved: bool = field(default=False, repr=False)

    def to_dict(self) -> dict:
        return {
            "i": self.index,
            "r": self.route_id,
            "n": self.route_name,
            "d": self.destination_slug,
            "s": [stop.to_list() for stop in self.stops],
            "c": self.trip_count,
            "op": self.origin_platform_default,
            "dp": self.destination_platform_default,
        }


@dataclass
class CompactTrip:
    """A trip occurrence between one origin and one destination, minified."""
    trip_id: str
    departure: int  # minutes since midnight
    arrival: int
    pattern_index: int
    stop_minutes: List[int] = field(default_factory=list)
    origin_platform_override: Optional[str] = None
    destination_platform_override: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "t": self.trip_id,
            "d": self.departure,
            "a": self.arrival,
            "p": self.pattern_index,
            "s": self.stop_minutes,
        }
        if self.origin_platform_override is not None:
            data["op"] = self.origin_platform_override
        if self.destination_platform_override is not None:
            data["ap"] = self.destination_platform_override
        return data


@dataclass
class ProcessingStats:
    """Counters for records skipped or repaired during a run."""
    trips_seen: int = 0
    trips_dropped_short: int = 0
    loop_trips: int = 0
    unresolved_stop_times: int = 0
    unknown_trips: int = 0
    malformed_clocks: int = 0
    malformed_stop_sequences: int = 0
    trip_occurrences: int = 0
    relations: int = 0
    overrides: int = 0
    missing_tables: List[str] = field(default_factory=list)

    def issues(self) -> Dict[str, int]:
        """Non-zero data-quality counters."""
        counters = {
            "trips_dropped_short": self.trips_dropped_short,
            "loop_trips": self.loop_trips,
            "unresolved_stop_times": self.unresolved_stop_times,
            "unknown_trips": self.unknown_trips,
            "malformed_clocks": self.malformed_clocks,
            "malformed_stop_sequences": self.malformed_stop_sequences,
            "missing_tables": len(self.missing_tables),
        }
        return {name: count for name, count in counters.items() if count}


@dataclass
class DecodedStop:
    """An intermediate stop of a decoded trip."""
    arrival: str
    departure: str
    station: Optional[str] = None
    name: Optional[str] = None
    platform_id: Optional[str] = None
    platform: Optional[str] = None
    platform_name: Optional[str] = None


@dataclass
class DecodedTrip:
    """A trip expanded back from its compact record and pattern."""
    trip_id: str
    departure_time: str
    arrival_time: str
    pattern_index: int
    departure_platform: Optional[str] = None
    arrival_platform: Optional[str] = None
    route_id: Optional[str] = None
    route_name: Optional[str] = None
    headsign: Optional[str] = None
    stops: List[DecodedStop] = field(default_factory=list)


@dataclass
class DecodedPattern:
    """A pattern with its stop arrays mapped back to named fields."""
    pattern_index: int
    route_id: str
    route_name: str
    destination: str
    stops: List[dict]
    trip_count: int
    origin_platform_default: Optional[str] = None
    destination_platform_default: Optional[str] = None


@dataclass
class Departure:
    """A decoded trip anchored to a calendar date."""
    service_date: date
    scheduled_departure: datetime
    scheduled_arrival: datetime
    trip: DecodedTrip
