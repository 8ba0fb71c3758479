"""GTFS static feed loader: download, table parsing and service calendars."""

import io
import logging
import zipfile
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

import pandas as pd
import requests

from .config import DEFAULT_GTFS_URL, DOWNLOAD_TIMEOUT
from .models import ProcessingStats, StopDetails, StopTimeRecord, TripRecord

logger = logging.getLogger(__name__)

# Table name -> columns the pipeline reads
GTFS_TABLES = {
    "stops": ["stop_id", "stop_name", "stop_lat", "stop_lon", "platform_code"],
    "routes": ["route_id", "route_short_name", "route_long_name", "route_type"],
    "trips": ["trip_id", "route_id", "service_id"],
    "stop_times": ["trip_id", "arrival_time", "departure_time", "stop_id", "stop_sequence"],
    "calendar": [
        "service_id", "monday", "tuesday", "wednesday", "thursday",
        "friday", "saturday", "sunday", "start_date", "end_date",
    ],
    "calendar_dates": ["service_id", "date", "exception_type"],
}

REQUIRED_TABLES = ("stops", "routes", "trips", "stop_times")
WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _parse_float(value) -> Optional[float]:
    try:
        return float(value) if value not in ("", None) else None
    except (TypeError, ValueError):
        return None


def _parse_gtfs_date(value: str) -> Optional[date]:
    try:
        return datetime.strptime(value.strip(), "%Y%m%d").date()
    except (AttributeError, ValueError):
        return None


class GTFSLoader:
    """Loads GTFS static tables into pandas DataFrames (all columns as str)."""

    def __init__(self, stats: Optional[ProcessingStats] = None):
        """
        Initialize the loader.

        Args:
            stats: Run counters; missing tables are recorded here.
        """
        self.stats = stats if stats is not None else ProcessingStats()
        self.tables: Dict[str, pd.DataFrame] = {}

    def load_from_url(self, url: str = DEFAULT_GTFS_URL, timeout: int = DOWNLOAD_TIMEOUT) -> None:
        """
        Download a GTFS zip and load its tables.

        Args:
            url: Feed zip URL.
            timeout: Request timeout in seconds.

        Raises:
            requests.RequestException: If the download fails.
        """
        logger.info(f"Downloading GTFS data from {url}")
        try:
            response = requests.get(url, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to download GTFS data: {e}")
            raise
        logger.info(f"Downloaded {len(response.content) / (1024 * 1024):.2f} MB")
        self.load_from_zip(io.BytesIO(response.content))

    def load_from_zip(self, source: Union[str, Path, io.BytesIO]) -> None:
        """Load tables from a GTFS zip file path or buffer."""
        with zipfile.ZipFile(source) as zip_file:
            # Some feeds nest the tables in a folder
            members = {Path(name).name: name for name in zip_file.namelist()}
            for table in GTFS_TABLES:
                member = members.get(f"{table}.txt")
                if member is None:
                    self._missing(table)
                    continue
                self.tables[table] = self._read_table(table, zip_file.read(member))

    def load_from_directory(self, directory: Union[str, Path]) -> None:
        """
        Load tables from a directory of .txt files.

        Raises:
            FileNotFoundError: If the directory does not exist.
        """
        directory = Path(directory)
        if not directory.exists():
            raise FileNotFoundError(f"GTFS directory not found: {directory}")
        for table in GTFS_TABLES:
            path = directory / f"{table}.txt"
            if not path.exists():
                self._missing(table)
                continue
            self.tables[table] = self._read_table(table, path.read_bytes())

    def _read_table(self, table: str, content: bytes) -> pd.DataFrame:
        df = pd.read_csv(
            io.BytesIO(content),
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
            skipinitialspace=True,
        )
        df.columns = [column.strip() for column in df.columns]
        for column in GTFS_TABLES[table]:
            if column not in df.columns:
                df[column] = ""
        logger.info(f"  Loaded {table}: {df.shape[0]:,} rows")
        return df

    def _missing(self, table: str) -> None:
        if table in REQUIRED_TABLES:
            logger.warning(f"Required GTFS table {table}.txt not found")
        else:
            logger.info(f"Optional GTFS table {table}.txt not found")
        self.stats.missing_tables.append(table)
        self.tables[table] = pd.DataFrame(columns=GTFS_TABLES[table], dtype=str)

    def table(self, name: str) -> pd.DataFrame:
        if name not in self.tables:
            return pd.DataFrame(columns=GTFS_TABLES[name], dtype=str)
        return self.tables[name]

    @property
    def stops(self) -> pd.DataFrame:
        return self.table("stops")

    @property
    def routes(self) -> pd.DataFrame:
        return self.table("routes")

    @property
    def trips(self) -> pd.DataFrame:
        return self.table("trips")

    @property
    def stop_times(self) -> pd.DataFrame:
        return self.table("stop_times")

    @property
    def calendar(self) -> pd.DataFrame:
        return self.table("calendar")

    @property
    def calendar_dates(self) -> pd.DataFrame:
        return self.table("calendar_dates")

    def filter_route_type(self, route_type: int) -> None:
        """Keep only routes of one GTFS route_type, with their trips and stop times."""
        routes = self.routes[self.routes["route_type"] == str(route_type)]
        trips = self.trips[self.trips["route_id"].isin(routes["route_id"])]
        stop_times = self.stop_times[self.stop_times["trip_id"].isin(trips["trip_id"])]
        self.tables.update(routes=routes, trips=trips, stop_times=stop_times)
        logger.info(
            f"Filtered {len(routes)} routes, {len(trips)} trips, "
            f"{len(stop_times)} stop_times for route type {route_type}"
        )

    def stop_details(self, used_only: bool = False) -> Dict[str, StopDetails]:
        """stops.txt rows keyed by stop_id, optionally only stops with stop times."""
        stops = self.stops
        if used_only:
            stops = stops[stops["stop_id"].isin(self.stop_times["stop_id"])]
        return {
            row.stop_id: StopDetails(
                stop_id=row.stop_id,
                name=row.stop_name or "Unknown",
                platform_code=row.platform_code or None,
                lat=_parse_float(row.stop_lat),
                lng=_parse_float(row.stop_lon),
            )
            for row in stops.itertuples(index=False)
        }

    def trip_records(self) -> List[TripRecord]:
        """Trips in file order, joined with their route display names."""
        route_names = {
            row.route_id: row.route_short_name or row.route_long_name or "Unknown"
            for row in self.routes.itertuples(index=False)
        }
        return [
            TripRecord(
                trip_id=row.trip_id,
                route_id=row.route_id,
                service_id=row.service_id,
                route_name=route_names.get(row.route_id, "Unknown"),
            )
            for row in self.trips.itertuples(index=False)
        ]

    def stop_times_by_trip(self) -> Dict[str, List[StopTimeRecord]]:
        """
        Stop times grouped per trip, sorted by stop_sequence.

        Trips keep the order of their first row in stop_times.txt. Stop times
        of trips missing from trips.txt are dropped and counted.
        """
        stop_times = self.stop_times
        known = stop_times["trip_id"].isin(self.trips["trip_id"])
        unknown = int((~known).sum())
        if unknown:
            self.stats.unknown_trips += unknown
            logger.warning(f"Dropping {unknown} stop times for trips not in trips.txt")
        stop_times = stop_times[known].copy()

        seq_num = pd.to_numeric(stop_times["stop_sequence"], errors="coerce")
        malformed = int(seq_num.isna().sum())
        if malformed:
            self.stats.malformed_stop_sequences += malformed
            logger.warning(f"{malformed} stop times have a non-numeric stop_sequence, ordering them as 0")
        stop_times["seq_num"] = seq_num.fillna(0).astype(int)

        grouped: Dict[str, List[StopTimeRecord]] = {}
        for trip_id, group in stop_times.groupby("trip_id", sort=False):
            group = group.sort_values("seq_num", kind="stable")
            grouped[trip_id] = [
                StopTimeRecord(
                    platform_id=row.stop_id,
                    sequence=row.seq_num,
                    arrival=row.arrival_time or row.departure_time,
                    departure=row.departure_time or row.arrival_time,
                )
                for row in group.itertuples(index=False)
            ]
        return grouped

    def active_services_by_date(self, start_date: date, days: int) -> Dict[date, Set[str]]:
        """
        Service ids running on each of `days` dates from start_date.

        Standard GTFS rules: calendar.txt weekday flags within the date range,
        then calendar_dates.txt additions (1) and removals (2).

        Args:
            start_date: First date.
            days: Number of dates.

        Returns:
            Dictionary mapping every date in the window to its active service ids.
        """
        periods = []
        for row in self.calendar.itertuples(index=False):
            start = _parse_gtfs_date(row.start_date)
            end = _parse_gtfs_date(row.end_date)
            if start is None or end is None:
                logger.warning(f"Skipping calendar entry {row.service_id} with bad dates")
                continue
            flags = [getattr(row, day) == "1" for day in WEEKDAYS]
            periods.append((row.service_id, start, end, flags))

        exceptions: Dict[str, List[tuple]] = {}
        for row in self.calendar_dates.itertuples(index=False):
            exceptions.setdefault(row.date.strip(), []).append((row.service_id, row.exception_type.strip()))

        services: Dict[date, Set[str]] = {}
        for offset in range(days):
            day = start_date + timedelta(days=offset)
            active = {
                service_id
                for service_id, start, end, flags in periods
                if start <= day <= end and flags[day.weekday()]
            }
            for service_id, exception_type in exceptions.get(day.strftime("%Y%m%d"), []):
                if exception_type == "1":
                    active.add(service_id)
                elif exception_type == "2":
                    active.discard(service_id)
            services[day] = active
        return services

    def clear(self) -> None:
        """Drop loaded tables to free memory."""
        self.tables.clear()
        logger.info("Cleared GTFS data from memory")
