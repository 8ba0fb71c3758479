"""
transitpack command line.

Usage:
    transitpack build [--gtfs-url URL | --gtfs-zip PATH | --gtfs-dir PATH] [--roster PATH]
                      [--start-date YYYY-MM-DD] [--days N] [--output DIR] [--station SLUG]
    transitpack decode --origin SLUG --destination SLUG [--date YYYY-MM-DD] [--output DIR]
    transitpack stations [--gtfs-url URL | --gtfs-zip PATH | --gtfs-dir PATH] --out PATH [--output DIR]
"""

import argparse
import logging
import sys
from datetime import date, datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from .config import ProcessorConfig
from .decoder import get_trips_for_date
from .gtfs_loader import GTFSLoader
from .models import ProcessingStats
from .pipeline import compact_schedule
from .publisher import LocalPublisher, PublishError
from .sequences import build_trip_sequences
from .stations import StationResolver, group_platforms, load_roster, save_roster

logger = logging.getLogger(__name__)


def _load_feed(args, config: ProcessorConfig, stats: ProcessingStats) -> GTFSLoader:
    loader = GTFSLoader(stats)
    if args.gtfs_zip:
        loader.load_from_zip(args.gtfs_zip)
    elif args.gtfs_dir:
        loader.load_from_directory(args.gtfs_dir)
    else:
        loader.load_from_url(args.gtfs_url or config.gtfs_url, timeout=config.download_timeout)

    if config.route_type is not None:
        loader.filter_route_type(config.route_type)
    return loader


def _today(config: ProcessorConfig) -> date:
    return datetime.now(ZoneInfo(config.timezone)).date()


def cmd_build(args, config: ProcessorConfig) -> int:
    """Build and publish the compact schedule artifacts."""
    stats = ProcessingStats()
    loader = _load_feed(args, config, stats)

    stop_details = loader.stop_details()
    if args.roster:
        roster = load_roster(args.roster)
    else:
        roster = group_platforms(loader.stop_details(used_only=True).values())
    resolver = StationResolver(roster, stop_details)

    start_date = args.start_date or _today(config)
    sequences = build_trip_sequences(loader.stop_times_by_trip(), resolver, stats)
    services = loader.active_services_by_date(start_date, config.days)

    result = compact_schedule(
        resolver,
        loader.trip_records(),
        sequences,
        services,
        start_date,
        config.days,
        stats=stats,
        origin_filter=args.station,
    )

    print(f"Station files: {len(result.schedule_files)}")
    print(f"Pattern files: {len(result.pattern_files)}")
    print(f"Total patterns: {sum(len(p['patterns']) for p in result.pattern_files.values())}")

    if args.no_publish:
        print("Skipping publish (--no-publish)")
        return 0

    publisher = LocalPublisher(config.output_dir, mode=config.mode, keep_versions=config.keep_versions)
    version_dir = publisher.publish(result)
    print(f"Published to {version_dir}")
    return 0


def cmd_decode(args, config: ProcessorConfig) -> int:
    """Print departures between two stations from the published artifacts."""
    publisher = LocalPublisher(config.output_dir, mode=config.mode)
    schedule, patterns = publisher.load(args.origin)
    target = args.date or _today(config)

    trips = get_trips_for_date(schedule, args.destination, target, patterns)
    if not trips:
        print(f"No departures from {args.origin} to {args.destination} on {target}")
        return 0

    for trip in trips:
        platform = f"platform {trip.departure_platform}" if trip.departure_platform else ""
        print(f"{trip.departure_time[:5]}  {trip.route_name or '?':<10} "
              f"arr {trip.arrival_time[:5]}  {platform}  ({trip.trip_id})")
    return 0


def cmd_stations(args, config: ProcessorConfig) -> int:
    """Write a station roster grouped from the feed's platforms."""
    loader = _load_feed(args, config, ProcessingStats())
    roster = group_platforms(loader.stop_details(used_only=True).values())
    save_roster(roster, args.out)
    print(f"Saved {len(roster)} stations to {args.out}")
    return 0


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {value!r}")


def _add_feed_arguments(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--gtfs-url", help="GTFS zip URL (default: configured feed)")
    source.add_argument("--gtfs-zip", help="Local GTFS zip file")
    source.add_argument("--gtfs-dir", help="Directory of GTFS .txt files")
    parser.add_argument("--route-type", type=int, help="GTFS route_type to keep (-1 keeps all)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="transitpack",
        description="Compact GTFS schedules into per-station departure files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--output", help="Output directory for published versions")
    parser.add_argument("--mode", help="File name prefix (default: train)")

    # Repeated on each sub-command; SUPPRESS keeps a value given before it
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--output", default=argparse.SUPPRESS, help="Output directory for published versions")
    common.add_argument("--mode", default=argparse.SUPPRESS, help="File name prefix (default: train)")

    subparsers = parser.add_subparsers(dest="command")

    build = subparsers.add_parser("build", parents=[common], help="Build and publish schedule files")
    _add_feed_arguments(build)
    build.add_argument("--roster", help="Station roster JSON (default: grouped from stops.txt)")
    build.add_argument("--start-date", type=_iso_date, help="First day (default: today)")
    build.add_argument("--days", type=int, help="Number of days to process")
    build.add_argument("--station", help="Only process this origin slug")
    build.add_argument("--no-publish", action="store_true", help="Build without writing files")
    build.set_defaults(func=cmd_build)

    decode = subparsers.add_parser("decode", parents=[common], help="Show departures from published files")
    decode.add_argument("--origin", required=True, help="Origin station slug")
    decode.add_argument("--destination", required=True, help="Destination station slug")
    decode.add_argument("--date", type=_iso_date, help="Service date (default: today)")
    decode.set_defaults(func=cmd_decode)

    stations = subparsers.add_parser("stations", parents=[common], help="Write a station roster from a feed")
    _add_feed_arguments(stations)
    stations.add_argument("--out", required=True, help="Roster JSON path")
    stations.set_defaults(func=cmd_stations)

    return parser


def config_from_args(args) -> ProcessorConfig:
    config = ProcessorConfig.from_env()
    if args.output:
        config.output_dir = args.output
    if args.mode:
        config.mode = args.mode
    if getattr(args, "days", None):
        config.days = args.days
    route_type = getattr(args, "route_type", None)
    if route_type is not None:
        config.route_type = None if route_type < 0 else route_type
    config.__post_init__()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 1

    try:
        config = config_from_args(args)
        return args.func(args, config)
    except (ValueError, FileNotFoundError, PublishError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
