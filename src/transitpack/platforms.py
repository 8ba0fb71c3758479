"""Pattern platform defaults and per-trip platform overrides."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .models import CompactTrip, Pattern

logger = logging.getLogger(__name__)


def tally(counts: Dict[str, int], platform: str) -> None:
    """Count one use of a platform. Dict order records first sighting."""
    counts[platform] = counts.get(platform, 0) + 1


def most_common_platform(counts: Dict[str, int]) -> Optional[str]:
    """
    Platform with the highest count.

    Ties go to the platform observed first.
    """
    best = None
    best_count = 0
    for platform, count in counts.items():
        if count > best_count:
            best, best_count = platform, count
    return best


def resolve_defaults(patterns: Iterable[Pattern]) -> int:
    """
    Set origin/destination platform defaults on every pattern.

    Must run once, after all trip occurrences have been tallied.
    Returns the number of patterns that received defaults.
    """
    resolved = 0
    for pattern in patterns:
        if pattern.defaults_resolved:
            raise RuntimeError(
                f"Platform defaults already resolved for pattern {pattern.index} "
                f"at {pattern.origin_slug}"
            )
        pattern.origin_platform_default = most_common_platform(pattern.origin_platforms)
        pattern.destination_platform_default = most_common_platform(pattern.destination_platforms)
        pattern.defaults_resolved = True
        if pattern.trip_count:
            resolved += 1
    return resolved


def apply_overrides(occurrences: List[Tuple[CompactTrip, Pattern, str, str]]) -> int:
    """
    Attach platform overrides where a trip differs from its pattern default.

    Each occurrence is (trip, pattern, origin platform, destination platform).
    Returns the number of override fields set.
    """
    overrides = 0
    for trip, pattern, origin_platform, destination_platform in occurrences:
        if not pattern.defaults_resolved:
            raise RuntimeError(f"Pattern {pattern.index} at {pattern.origin_slug} has no defaults")

        trip.origin_platform_override = None
        trip.destination_platform_override = None
        if origin_platform != pattern.origin_platform_default:
            trip.origin_platform_override = origin_platform
            overrides += 1
        if destination_platform != pattern.destination_platform_default:
            trip.destination_platform_override = destination_platform
            overrides += 1

    logger.info(f"Added {overrides} platform overrides to {len(occurrences)} trip occurrences")
    return overrides
