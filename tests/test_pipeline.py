"""Tests for the schedule compaction pipeline."""

import sys
import unittest
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feed_fixtures import make_resolver, stop_times, trip
from transitpack.decoder import missing_pattern_indices
from transitpack.pipeline import ProcessingContext, ScheduleProcessor, compact_schedule
from transitpack.sequences import build_trip_sequences

MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)
WEDNESDAY = date(2026, 10, 21)

TRIPS = [trip("T1"), trip("T2"), trip("T3", service_id="SAT")]
SERVICES = {MONDAY: {"WKDY"}, TUESDAY: {"WKDY"}, WEDNESDAY: {"SAT"}}


def fixture_sequences(resolver):
    return build_trip_sequences(
        {
            "T1": stop_times(("C1", "06:41:00", "06:41:00"), ("B1", "06:43:00", "06:43:30"), ("E1", "06:44:00", "06:44:00")),
            "T2": stop_times(("C2", "07:10:00", "07:10:00"), ("B2", "07:13:00", "07:13:00"), ("E1", "07:15:00", "07:15:00")),
            "T3": stop_times(("C1", "08:00:00", "08:00:00"), ("E1", "08:06:00", "08:06:00")),
        },
        resolver,
    )


def run(origin_filter=None, days=3):
    resolver = make_resolver()
    return compact_schedule(
        resolver, TRIPS, fixture_sequences(resolver), SERVICES, MONDAY, days, origin_filter=origin_filter
    )


class TestCompactSchedule(unittest.TestCase):
    """Test a full compaction run."""

    def test_origins(self):
        result = run()

        self.assertEqual(result.origins, ["BOWEN_HILLS", "CENTRAL"])
        self.assertEqual(set(result.pattern_files), set(result.schedule_files))

    def test_every_referenced_pattern_exists(self):
        result = run()

        for slug in result.origins:
            self.assertEqual(missing_pattern_indices(result.schedule_files[slug], result.pattern_files[slug]), [])

    def test_trips_land_on_their_service_days(self):
        schedules = run().schedule_files["CENTRAL"]["routes"]["EAGLE_JUNCTION"]["schedules"]

        self.assertEqual(
            [[t["t"] for t in day] for day in schedules],
            [["T1", "T2"], ["T1", "T2"], ["T3"]],
        )

    def test_pattern_counts_and_defaults(self):
        patterns = run().pattern_files["CENTRAL"]["patterns"]

        self.assertEqual(len(patterns), 3)
        self.assertEqual([p["c"] for p in patterns], [4, 4, 1])
        # Central p1 and p2 are used equally; p1 was seen first
        self.assertEqual(patterns[0]["op"], "1")
        self.assertEqual(patterns[2]["op"], "1")

    def test_stats(self):
        stats = run().stats

        self.assertEqual(stats.trip_occurrences, 5)
        self.assertEqual(stats.relations, 13)
        self.assertEqual(stats.overrides, 8)
        self.assertEqual(stats.issues(), {})

    def test_origin_filter(self):
        result = run(origin_filter="BOWEN_HILLS")

        self.assertEqual(result.origins, ["BOWEN_HILLS"])
        self.assertEqual(len(result.pattern_files["BOWEN_HILLS"]["patterns"]), 1)

    def test_unknown_origin_filter_gives_nothing(self):
        self.assertEqual(run(origin_filter="NOWHERE").origins, [])

    def test_runs_are_independent(self):
        self.assertEqual(run().schedule_files, run().schedule_files)
        self.assertEqual(run().pattern_files, run().pattern_files)

    def test_single_day(self):
        result = run(days=1)

        self.assertEqual(result.day_count, 1)
        schedules = result.schedule_files["CENTRAL"]["routes"]["EAGLE_JUNCTION"]["schedules"]
        self.assertEqual(len(schedules), 1)
        self.assertEqual(len(result.pattern_files["CENTRAL"]["patterns"]), 2)


class TestScheduleProcessor(unittest.TestCase):
    """Test processor lifecycle rules."""

    def setUp(self):
        self.resolver = make_resolver()
        self.sequences = fixture_sequences(self.resolver)
        self.processor = ScheduleProcessor(ProcessingContext(resolver=self.resolver), MONDAY, 2)

    def test_add_day_filters_services(self):
        self.assertEqual(self.processor.add_day(0, TRIPS, self.sequences, {"SAT"}), 1)
        self.assertEqual(self.processor.add_day(1, TRIPS, self.sequences, set()), 0)

    def test_trips_without_sequence_skipped(self):
        self.assertEqual(self.processor.add_day(0, [trip("GHOST")], self.sequences, {"WKDY"}), 0)

    def test_day_index_out_of_window(self):
        with self.assertRaises(ValueError):
            self.processor.add_trip(2, TRIPS[0], self.sequences["T1"])

    def test_no_trips_after_finalize(self):
        self.processor.add_trip(0, TRIPS[0], self.sequences["T1"])
        self.processor.finalize()

        with self.assertRaises(RuntimeError):
            self.processor.add_trip(0, TRIPS[1], self.sequences["T2"])
        with self.assertRaises(RuntimeError):
            self.processor.finalize()

    def test_days_must_be_positive(self):
        with self.assertRaises(ValueError):
            ScheduleProcessor(ProcessingContext(resolver=self.resolver), MONDAY, 0)


if __name__ == "__main__":
    unittest.main()
