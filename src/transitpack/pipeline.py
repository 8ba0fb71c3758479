"""Schedule compaction pipeline: from trip sequences to compact artifacts."""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .encoder import Clock, RouteTable, encode_pattern_file, encode_schedule_file, window_dates
from .models import CompactTrip, Pattern, ProcessingStats, TripRecord, TripStationSequence
from .patterns import PatternRegistry, iter_relations
from .platforms import apply_overrides, resolve_defaults
from .stations import StationResolver

logger = logging.getLogger(__name__)


@dataclass
class ProcessingContext:
    """State owned by one processing run. Nothing here is shared between runs."""
    resolver: StationResolver
    stats: ProcessingStats = field(default_factory=ProcessingStats)
    patterns: PatternRegistry = field(default_factory=PatternRegistry)
    route_tables: Dict[str, RouteTable] = field(default_factory=dict)
    occurrences: List[Tuple[CompactTrip, Pattern, str, str]] = field(default_factory=list)


@dataclass
class CompactionResult:
    """Encoded artifacts of one run, keyed by origin slug."""
    start_date: date
    day_count: int
    schedule_files: Dict[str, dict]
    pattern_files: Dict[str, dict]
    stats: ProcessingStats

    @property
    def origins(self) -> List[str]:
        return sorted(self.schedule_files)


class ScheduleProcessor:
    """
    Builds per-origin route tables and patterns for a window of days.

    Usage:
        processor = ScheduleProcessor(context, start_date, days=7)
        for day_index, trip, sequence in ...:
            processor.add_trip(day_index, trip, sequence)
        result = processor.finalize()
    """

    def __init__(
        self,
        context: ProcessingContext,
        start_date: date,
        days: int,
        origin_filter: Optional[str] = None,
    ):
        if days < 1:
            raise ValueError(f"days must be at least 1, got {days}")
        self.context = context
        self.start_date = start_date
        self.days = days
        self.origin_filter = origin_filter
        self.clock = Clock(context.stats)
        self._finalized = False

    def add_trip(self, day_index: int, trip: TripRecord, sequence: TripStationSequence) -> None:
        """
        Add one trip to every origin-destination pair it serves.

        Args:
            day_index: Position of the service date in the window (0 = start_date).
            trip: The trip with its route.
            sequence: The trip's station sequence.

        Raises:
            ValueError: If day_index is outside the window.
            RuntimeError: If called after finalize().
        """
        if self._finalized:
            raise RuntimeError("Cannot add trips after finalize()")
        if not 0 <= day_index < self.days:
            raise ValueError(f"day_index {day_index} outside window of {self.days} days")

        context = self.context
        context.stats.trip_occurrences += 1

        for origin, destination, intermediate in iter_relations(sequence):
            if self.origin_filter and origin.station.slug != self.origin_filter:
                continue

            pattern = context.patterns.observe(
                trip.route_id, trip.route_name, origin, destination, intermediate
            )
            compact = CompactTrip(
                trip_id=trip.trip_id,
                departure=self.clock(origin.departure),
                arrival=self.clock(destination.arrival),
                pattern_index=pattern.index,
                stop_minutes=[self.clock(visit.arrival) for visit in intermediate],
            )

            table = context.route_tables.get(origin.station.slug)
            if table is None:
                table = context.route_tables[origin.station.slug] = RouteTable(station=origin.station)
            table.add(destination.station, day_index, self.days, compact)

            context.occurrences.append(
                (compact, pattern, origin.platform.label, destination.platform.label)
            )
            context.stats.relations += 1

    def add_day(
        self,
        day_index: int,
        trips: Iterable[TripRecord],
        sequences: Dict[str, TripStationSequence],
        active_services: Set[str],
    ) -> int:
        """
        Add every trip whose service runs on the given day.

        Returns:
            Number of trips added.
        """
        added = 0
        for trip in trips:
            if trip.service_id not in active_services:
                continue
            sequence = sequences.get(trip.trip_id)
            if sequence is None:
                continue
            self.add_trip(day_index, trip, sequence)
            added += 1
        return added

    def finalize(self) -> CompactionResult:
        """
        Resolve platform defaults and overrides, then encode every origin.

        Returns:
            CompactionResult with one schedule and one pattern file per
            origin that has departures.

        Raises:
            RuntimeError: If called twice.
        """
        if self._finalized:
            raise RuntimeError("finalize() already called")
        self._finalized = True

        context = self.context
        logger.info(
            f"Processed {context.stats.trip_occurrences} trip occurrences across "
            f"{len(context.route_tables)} origins, {context.patterns.pattern_count} patterns"
        )

        with_defaults = resolve_defaults(context.patterns.all_patterns())
        logger.info(f"Added platform defaults to {with_defaults} patterns")
        context.stats.overrides = apply_overrides(context.occurrences)

        schedule_files = {}
        pattern_files = {}
        for origin_slug, table in context.route_tables.items():
            if table.trip_count == 0:
                logger.debug(f"Skipping {origin_slug} (no trips)")
                continue
            schedule_files[origin_slug] = encode_schedule_file(table, self.start_date, self.days)
            pattern_files[origin_slug] = encode_pattern_file(context.patterns.table(origin_slug))

        for name, count in context.stats.issues().items():
            logger.warning(f"Data quality: {name} = {count}")

        return CompactionResult(
            start_date=self.start_date,
            day_count=self.days,
            schedule_files=schedule_files,
            pattern_files=pattern_files,
            stats=context.stats,
        )


def compact_schedule(
    resolver: StationResolver,
    trips: List[TripRecord],
    sequences: Dict[str, TripStationSequence],
    services_by_date: Dict[date, Set[str]],
    start_date: date,
    days: int,
    stats: Optional[ProcessingStats] = None,
    origin_filter: Optional[str] = None,
) -> CompactionResult:
    """
    Run the whole compaction for a window of days.

    Args:
        resolver: Station and platform lookups for the feed.
        trips: Trips in feed order.
        sequences: Station sequences keyed by trip_id; trips without one are skipped.
        services_by_date: Service ids active on each date. Dates missing from
            it have no service.
        start_date: First day of the window.
        days: Number of days in the window.
        stats: Counters to update; a fresh ProcessingStats if omitted.
        origin_filter: Only build files for this origin slug.

    Returns:
        CompactionResult for the window.
    """
    context = ProcessingContext(resolver=resolver, stats=stats or ProcessingStats())
    processor = ScheduleProcessor(context, start_date, days, origin_filter=origin_filter)

    for day_index, day in enumerate(window_dates(start_date, days)):
        added = processor.add_day(day_index, trips, sequences, services_by_date.get(day, set()))
        logger.info(f"  {day.isoformat()}: {added} trips")

    return processor.finalize()
