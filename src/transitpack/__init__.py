"""transitpack - Compact, deduplicated GTFS departure schedules for departure boards."""

__version__ = "0.1.0"

from .models import (
    CompactTrip,
    DecodedTrip,
    Pattern,
    Platform,
    ProcessingStats,
    Station,
    TripStationSequence,
)
from .stations import StationResolver, SlugCollisionError, slugify
from .gtfs_loader import GTFSLoader
from .pipeline import CompactionResult, ProcessingContext, ScheduleProcessor, compact_schedule
from .decoder import get_trips_for_date
from .publisher import LocalPublisher, PublishError

__all__ = [
    "GTFSLoader",
    "StationResolver",
    "SlugCollisionError",
    "slugify",
    "ProcessingContext",
    "ScheduleProcessor",
    "CompactionResult",
    "compact_schedule",
    "get_trips_for_date",
    "LocalPublisher",
    "PublishError",
    "Station",
    "Platform",
    "TripStationSequence",
    "Pattern",
    "CompactTrip",
    "DecodedTrip",
    "ProcessingStats",
]
