"""Tests for GTFS table loading and service calendars."""

import io
import sys
import tempfile
import unittest
import zipfile
from datetime import date
from pathlib import Path
from unittest.mock import Mock, patch

import requests

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feed_fixtures import FEED, feed_zip, write_feed
from transitpack.gtfs_loader import GTFSLoader
from transitpack.models import ProcessingStats

MONDAY = date(2026, 10, 19)


class TestLoading(unittest.TestCase):
    """Test reading feed tables from the supported sources."""

    def test_load_from_zip(self):
        loader = GTFSLoader()
        loader.load_from_zip(feed_zip())

        self.assertEqual(len(loader.stops), 6)
        self.assertEqual(len(loader.stop_times), 10)
        self.assertEqual(loader.stats.missing_tables, [])
        self.assertEqual(loader.stops["stop_id"].iloc[0], "C1")

    def test_values_kept_as_strings(self):
        loader = GTFSLoader()
        loader.load_from_zip(feed_zip())

        self.assertEqual(loader.routes["route_type"].tolist(), ["2", "3"])
        self.assertEqual(loader.stops["platform_code"].iloc[5], "")

    def test_nested_zip_members(self):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            for name, content in FEED.items():
                zf.writestr(f"SEQ_GTFS/{name}", content)
        buffer.seek(0)

        loader = GTFSLoader()
        loader.load_from_zip(buffer)
        self.assertEqual(len(loader.trips), 4)

    def test_missing_tables_recorded(self):
        stats = ProcessingStats()
        loader = GTFSLoader(stats)
        loader.load_from_zip(feed_zip(skip=("calendar_dates.txt",)))

        self.assertEqual(stats.missing_tables, ["calendar_dates"])
        self.assertTrue(loader.calendar_dates.empty)
        self.assertIn("exception_type", loader.calendar_dates.columns)

    def test_missing_columns_added(self):
        with tempfile.TemporaryDirectory() as tmp:
            write_feed(tmp)
            (Path(tmp) / "stops.txt").write_text("stop_id,stop_name\nC1,Central\n")
            loader = GTFSLoader()
            loader.load_from_directory(tmp)

        self.assertEqual(loader.stops["platform_code"].tolist(), [""])
        self.assertIsNone(loader.stop_details()["C1"].lat)

    def test_load_from_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            write_feed(tmp)
            loader = GTFSLoader()
            loader.load_from_directory(tmp)

        self.assertEqual(len(loader.routes), 2)

    def test_missing_directory(self):
        with self.assertRaises(FileNotFoundError):
            GTFSLoader().load_from_directory("/nonexistent/gtfs")

    @patch("transitpack.gtfs_loader.requests.get")
    def test_load_from_url(self, mock_get):
        mock_get.return_value = Mock(content=feed_zip().getvalue())

        loader = GTFSLoader()
        loader.load_from_url("https://example.com/gtfs.zip", timeout=5)

        mock_get.assert_called_once_with("https://example.com/gtfs.zip", timeout=5)
        self.assertEqual(len(loader.trips), 4)

    @patch("transitpack.gtfs_loader.requests.get")
    def test_download_failure_propagates(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("unreachable")

        with self.assertRaises(requests.RequestException):
            GTFSLoader().load_from_url("https://example.com/gtfs.zip")

    def test_clear(self):
        loader = GTFSLoader()
        loader.load_from_zip(feed_zip())
        loader.clear()

        self.assertEqual(loader.tables, {})
        self.assertTrue(loader.stops.empty)


class TestFeedQueries(unittest.TestCase):
    """Test the records handed to the pipeline."""

    def setUp(self):
        self.loader = GTFSLoader()
        self.loader.load_from_zip(feed_zip())

    def test_filter_route_type(self):
        self.loader.filter_route_type(2)

        self.assertEqual(self.loader.routes["route_id"].tolist(), ["F11"])
        self.assertEqual(self.loader.trips["trip_id"].tolist(), ["T1", "T2", "T3"])
        self.assertEqual(len(self.loader.stop_times), 8)

    def test_stop_details(self):
        details = self.loader.stop_details()

        self.assertEqual(details["C2"].name, "Central station, platform 2")
        self.assertEqual(details["C2"].platform_code, "2")
        self.assertAlmostEqual(details["C2"].lat, -27.4659)
        self.assertIsNone(details["X9"].platform_code)

    def test_used_stop_details(self):
        self.loader.filter_route_type(2)

        self.assertEqual(sorted(self.loader.stop_details(used_only=True)), ["B1", "B2", "C1", "C2", "E1"])

    def test_trip_records(self):
        records = {record.trip_id: record for record in self.loader.trip_records()}

        self.assertEqual(records["T1"].route_name, "Express")
        self.assertEqual(records["T3"].service_id, "SAT")
        self.assertEqual(records["BT1"].route_name, "100")

    def test_stop_times_by_trip(self):
        grouped = self.loader.stop_times_by_trip()

        self.assertEqual(list(grouped), ["T1", "T2", "T3", "BT1"])
        self.assertEqual([r.platform_id for r in grouped["T2"]], ["C2", "B2", "E1"])
        self.assertEqual([r.sequence for r in grouped["T2"]], [1, 2, 3])
        self.assertEqual(grouped["T1"][1].departure, "06:43:30")
        self.assertEqual(self.loader.stats.unknown_trips, 1)

    def test_non_numeric_stop_sequence_counted(self):
        with tempfile.TemporaryDirectory() as tmp:
            write_feed(tmp)
            path = Path(tmp) / "stop_times.txt"
            path.write_text(path.read_text().replace("T3,08:06:00,08:06:00,E1,2", "T3,08:06:00,08:06:00,E1,x"))
            loader = GTFSLoader()
            loader.load_from_directory(tmp)

        with self.assertLogs("transitpack.gtfs_loader", level="WARNING") as logs:
            grouped = loader.stop_times_by_trip()

        self.assertEqual(loader.stats.malformed_stop_sequences, 1)
        self.assertEqual(loader.stats.issues()["malformed_stop_sequences"], 1)
        self.assertTrue(any("stop_sequence" in line for line in logs.output))
        self.assertEqual([r.sequence for r in grouped["T3"]], [0, 1])

    def test_active_services(self):
        services = self.loader.active_services_by_date(MONDAY, 7)

        self.assertEqual(len(services), 7)
        self.assertEqual(services[date(2026, 10, 19)], {"WKDY"})
        self.assertEqual(services[date(2026, 10, 21)], {"SAT"})
        self.assertEqual(services[date(2026, 10, 24)], {"SAT"})
        self.assertEqual(services[date(2026, 10, 25)], set())

    def test_active_services_outside_calendar_range(self):
        self.assertEqual(self.loader.active_services_by_date(date(2027, 1, 4), 1), {date(2027, 1, 4): set()})


if __name__ == "__main__":
    unittest.main()
