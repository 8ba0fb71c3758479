"""Trip pattern extraction and per-origin deduplication."""

import hashlib
import logging
from typing import Dict, Iterator, List, Sequence, Tuple

from .models import IntermediateStop, Pattern, StationVisit, TripStationSequence
from .platforms import tally

logger = logging.getLogger(__name__)

HASH_LENGTH = 16  # hex digits of a 64-bit digest


def stops_hash(slugs: Sequence[str]) -> str:
    """Order-sensitive 64-bit hash of a station slug sequence."""
    payload = "-".join(slugs).encode("utf-8")
    return hashlib.blake2b(payload, digest_size=HASH_LENGTH // 2).hexdigest()


def pattern_key(route_id: str, origin_slug: str, dest_slug: str, intermediate: Sequence[str]) -> str:
    """
    Content key identifying a pattern at its origin.

    Equal keys mean same route, destination and ordered intermediate stations.
    """
    base = f"{route_id}-{origin_slug}-{dest_slug}"
    if not intermediate:
        return base
    return f"{base}-{stops_hash(intermediate)}"


def iter_relations(
    sequence: TripStationSequence,
) -> Iterator[Tuple[StationVisit, StationVisit, List[StationVisit]]]:
    """
    Every (origin, destination, intermediates) relation in a trip.

    A trip with n stations yields n*(n-1)/2 relations.
    """
    visits = sequence.visits
    for i, origin in enumerate(visits):
        for j in range(i + 1, len(visits)):
            yield origin, visits[j], visits[i + 1:j]


class OriginPatternTable:
    """Patterns seen at one origin station, indexed densely from 0."""

    def __init__(self, origin_slug: str):
        self.origin_slug = origin_slug
        self.patterns: List[Pattern] = []
        self._index_by_key: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.patterns)

    def __getitem__(self, index: int) -> Pattern:
        return self.patterns[index]

    def __contains__(self, key: str) -> bool:
        return key in self._index_by_key

    def get_or_create(
        self,
        key: str,
        route_id: str,
        route_name: str,
        destination: StationVisit,
        intermediate: List[StationVisit],
    ) -> Pattern:
        if key in self._index_by_key:
            return self.patterns[self._index_by_key[key]]

        index = len(self.patterns)
        pattern = Pattern(
            index=index,
            origin_slug=self.origin_slug,
            destination_slug=destination.station.slug,
            route_id=route_id,
            route_name=route_name,
            stops=[
                IntermediateStop(
                    station=visit.station.slug,
                    name=visit.station.name,
                    platform_id=visit.platform.id,
                    platform=visit.platform.code,
                    platform_name=visit.platform.name,
                )
                for visit in intermediate
            ],
        )
        self._index_by_key[key] = index
        self.patterns.append(pattern)
        logger.debug(f"New pattern {index} at {self.origin_slug}: {key}")
        return pattern


class PatternRegistry:
    """All per-origin pattern tables of one processing run."""

    def __init__(self):
        self.tables: Dict[str, OriginPatternTable] = {}

    def table(self, origin_slug: str) -> OriginPatternTable:
        if origin_slug not in self.tables:
            self.tables[origin_slug] = OriginPatternTable(origin_slug)
        return self.tables[origin_slug]

    def observe(
        self,
        route_id: str,
        route_name: str,
        origin: StationVisit,
        destination: StationVisit,
        intermediate: List[StationVisit],
    ) -> Pattern:
        """
        Record one trip occurrence between origin and destination.

        Returns the matching pattern, created on first sight, with its trip
        count and platform tallies updated.
        """
        key = pattern_key(
            route_id,
            origin.station.slug,
            destination.station.slug,
            [visit.station.slug for visit in intermediate],
        )
        pattern = self.table(origin.station.slug).get_or_create(
            key, route_id, route_name, destination, intermediate
        )
        pattern.trip_count += 1
        tally(pattern.origin_platforms, origin.platform.label)
        tally(pattern.destination_platforms, destination.platform.label)
        return pattern

    def all_patterns(self) -> Iterator[Pattern]:
        for table in self.tables.values():
            yield from table.patterns

    @property
    def pattern_count(self) -> int:
        return sum(len(table) for table in self.tables.values())
