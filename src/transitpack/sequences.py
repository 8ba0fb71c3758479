"""Collapse platform-level stop times into station-level trip sequences."""

import logging
from typing import Dict, Iterable, Optional

from .models import ProcessingStats, StationVisit, StopTimeRecord, TripStationSequence
from .stations import StationResolver

logger = logging.getLogger(__name__)


def build_trip_sequence(
    trip_id: str,
    stop_times: Iterable[StopTimeRecord],
    resolver: StationResolver,
    stats: Optional[ProcessingStats] = None,
) -> Optional[TripStationSequence]:
    """
    Build the station sequence of one trip.

    Stop times are taken in stop_sequence order. Consecutive stops at
    platforms of the same station collapse into one visit, keeping the first
    platform stop. Returns None when the trip resolves to fewer than two
    stations or visits a station again after leaving it.
    """
    stats = stats if stats is not None else ProcessingStats()
    visits = []
    visited = set()

    for record in sorted(stop_times, key=lambda r: r.sequence):
        platform = resolver.platform(record.platform_id)
        if platform is None:
            stats.unresolved_stop_times += 1
            continue

        if visits and visits[-1].station.slug == platform.station_slug:
            continue

        if platform.station_slug in visited:
            stats.loop_trips += 1
            logger.debug(f"Dropping trip {trip_id}: revisits {platform.station_slug}")
            return None

        visits.append(
            StationVisit(
                station=resolver.get_station(platform.station_slug),
                platform=platform,
                arrival=record.arrival,
                departure=record.departure,
                position=len(visits),
            )
        )
        visited.add(platform.station_slug)

    if len(visits) < 2:
        stats.trips_dropped_short += 1
        return None

    return TripStationSequence(trip_id=trip_id, visits=visits)


def build_trip_sequences(
    stop_times_by_trip: Dict[str, Iterable[StopTimeRecord]],
    resolver: StationResolver,
    stats: Optional[ProcessingStats] = None,
) -> Dict[str, TripStationSequence]:
    """Build sequences for every trip, keeping only the usable ones."""
    stats = stats if stats is not None else ProcessingStats()
    sequences: Dict[str, TripStationSequence] = {}

    for trip_id, stop_times in stop_times_by_trip.items():
        stats.trips_seen += 1
        sequence = build_trip_sequence(trip_id, stop_times, resolver, stats)
        if sequence is not None:
            sequences[trip_id] = sequence

    logger.info(f"Built {len(sequences)} trip sequences from {stats.trips_seen} trips")
    return sequences
