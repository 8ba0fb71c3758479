"""Station roster handling: slugs, platform grouping and lookups."""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

from .models import Platform, RosterEntry, Station, StopDetails

logger = logging.getLogger(__name__)

_SUFFIX_RE = re.compile(r"\s+(station|terminal)$", re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]+")
_PLATFORM_NAME_RE = re.compile(r"^(.+?),?\s*platform\s+\w+$", re.IGNORECASE)


class SlugCollisionError(ValueError):
    """Two distinct station names map to the same slug."""


def slugify(name: str) -> str:
    """
    Turn a station display name into a stable URL-safe slug.

    "Bowen Hills station" -> "BOWEN_HILLS"
    """
    cleaned = _SUFFIX_RE.sub("", name.strip()).strip()
    return _NON_ALNUM_RE.sub("_", cleaned.upper()).strip("_")


def station_name_for_stop(stop_name: str) -> str:
    """Strip a trailing ", platform N" from a GTFS stop name."""
    stop_name = " ".join(stop_name.split())
    match = _PLATFORM_NAME_RE.match(stop_name)
    return match.group(1).strip() if match else stop_name


def group_platforms(stops: Iterable[StopDetails]) -> List[RosterEntry]:
    """
    Group platform-level stops into a station roster by display name.

    Stations are sorted by name; platforms keep their input order.
    """
    grouped: Dict[str, RosterEntry] = {}
    for stop in stops:
        name = station_name_for_stop(stop.name)
        if name not in grouped:
            grouped[name] = RosterEntry(name=name, platform_ids=[], lat=stop.lat, lng=stop.lng)
        grouped[name].platform_ids.append(stop.stop_id)

    roster = sorted(grouped.values(), key=lambda entry: entry.name)
    logger.info(f"Grouped platforms into {len(roster)} stations")
    return roster


def load_roster(path: Union[str, Path]) -> List[RosterEntry]:
    """Load a station roster JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    stations = data["stations"] if isinstance(data, dict) else data
    roster = []
    for item in stations:
        name = item.get("name", item.get("stationName"))
        platform_ids = item.get("stopIds", item.get("platformIds"))
        if not name or platform_ids is None:
            raise ValueError(f"Roster entry missing name or platforms: {item}")
        roster.append(
            RosterEntry(
                name=name,
                platform_ids=[str(p) for p in platform_ids],
                lat=item.get("lat"),
                lng=item.get("lng", item.get("lon")),
            )
        )
    logger.info(f"Loaded roster with {len(roster)} stations from {path}")
    return roster


def save_roster(roster: List[RosterEntry], path: Union[str, Path]) -> None:
    """Write a roster in the same JSON shape load_roster() reads."""
    data = {
        "totalStations": len(roster),
        "stations": [
            {"name": entry.name, "stopIds": entry.platform_ids, "lat": entry.lat, "lng": entry.lng}
            for entry in roster
        ],
    }
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


class StationResolver:
    """Lookup tables from platforms to stations, built once per run."""

    def __init__(
        self,
        roster: Iterable[RosterEntry],
        stop_details: Optional[Dict[str, StopDetails]] = None,
    ):
        """
        Build the lookup tables.

        Args:
            roster: Stations with their platform (stop) ids.
            stop_details: stops.txt rows keyed by stop_id, for platform codes,
                names and coordinates.

        Raises:
            SlugCollisionError: If two station names produce the same slug.
            ValueError: If a platform is listed under two stations, or a name
                produces an empty slug.
        """
        stop_details = stop_details or {}
        self.stations: Dict[str, Station] = {}  # slug -> station
        self.platforms: Dict[str, Platform] = {}  # platform id -> platform
        self._slug_by_name: Dict[str, str] = {}

        for entry in roster:
            slug = slugify(entry.name)
            if not slug:
                raise ValueError(f"Station name {entry.name!r} produces an empty slug")
            if slug in self.stations:
                existing = self.stations[slug].name
                raise SlugCollisionError(
                    f"Stations {existing!r} and {entry.name!r} both map to slug {slug!r}"
                )

            station = Station(slug=slug, name=entry.name, platform_ids=list(entry.platform_ids))
            for platform_id in entry.platform_ids:
                if platform_id in self.platforms:
                    owner = self.platforms[platform_id].station_slug
                    raise ValueError(
                        f"Platform {platform_id} belongs to both {owner} and {slug}"
                    )
                details = stop_details.get(platform_id)
                self.platforms[platform_id] = Platform(
                    id=platform_id,
                    station_slug=slug,
                    code=details.platform_code if details else None,
                    name=details.name if details else "Unknown",
                )
                station.platform_codes.append(details.platform_code if details else None)

            station.lat, station.lng = self._coordinates(entry, stop_details)
            self.stations[slug] = station
            self._slug_by_name[entry.name] = slug

        logger.info(
            f"Built mappings for {len(self.stations)} stations, {len(self.platforms)} platforms"
        )

    @staticmethod
    def _coordinates(entry: RosterEntry, stop_details: Dict[str, StopDetails]):
        if entry.lat is not None and entry.lng is not None:
            return float(entry.lat), float(entry.lng)
        for platform_id in entry.platform_ids:
            details = stop_details.get(platform_id)
            if details and details.lat is not None and details.lng is not None:
                return details.lat, details.lng
        return 0.0, 0.0

    def station_for_platform(self, platform_id: str) -> Optional[Station]:
        """Owning station of a platform, or None if the platform is unknown."""
        platform = self.platforms.get(platform_id)
        return self.stations[platform.station_slug] if platform else None

    def platform(self, platform_id: str) -> Optional[Platform]:
        """Platform record for a stop id, or None if unknown."""
        return self.platforms.get(platform_id)

    def slug_for(self, station_name: str) -> str:
        """Slug of a roster station name."""
        if station_name in self._slug_by_name:
            return self._slug_by_name[station_name]
        return slugify(station_name)

    def platforms_for(self, slug: str) -> Set[str]:
        """
        Platform ids of a station.

        Args:
            slug: Station slug, e.g. "BOWEN_HILLS".

        Returns:
            Set of platform (stop) ids.

        Raises:
            ValueError: If the station is not in the roster.
        """
        if slug not in self.stations:
            raise ValueError(f"Station {slug} not found")
        return set(self.stations[slug].platform_ids)

    def get_station(self, slug: str) -> Station:
        """
        Get a station by slug.

        Raises:
            ValueError: If station not found.
        """
        if slug not in self.stations:
            raise ValueError(f"Station {slug} not found")
        return self.stations[slug]
