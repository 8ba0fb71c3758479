"""Tests for versioned publishing of compact artifacts."""

import json
import sys
import tempfile
import unittest
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feed_fixtures import make_resolver, stop_times, trip
from transitpack.models import ProcessingStats
from transitpack.pipeline import CompactionResult, compact_schedule
from transitpack.publisher import POINTER_FILE, LocalPublisher, PublishError, dump_json
from transitpack.sequences import build_trip_sequences

MONDAY = date(2026, 10, 19)


def small_result():
    resolver = make_resolver()
    sequences = build_trip_sequences(
        {"T1": stop_times(("C1", "06:41:00", "06:41:00"), ("B1", "06:43:00", "06:43:00"), ("E1", "06:44:00", "06:44:00"))},
        resolver,
    )
    return compact_schedule(resolver, [trip("T1")], sequences, {MONDAY: {"WKDY"}}, MONDAY, 2)


class TestLocalPublisher(unittest.TestCase):
    """Test the staged write and pointer switch."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.publisher = LocalPublisher(self.root, mode="train", keep_versions=2)

    def tearDown(self):
        self._tmp.cleanup()

    def test_publish_writes_file_pairs(self):
        version_dir = self.publisher.publish(small_result(), version="v1")

        names = sorted(p.name for p in version_dir.iterdir())
        self.assertEqual(
            names,
            [
                "manifest.json",
                "train-patterns-BOWEN_HILLS.json",
                "train-patterns-CENTRAL.json",
                "train-station-BOWEN_HILLS.json",
                "train-station-CENTRAL.json",
            ],
        )
        self.assertEqual((self.root / POINTER_FILE).read_text(), "v1")
        self.assertEqual(self.publisher.current_dir(), version_dir)

    def test_files_are_minified(self):
        version_dir = self.publisher.publish(small_result(), version="v1")

        text = (version_dir / "train-station-CENTRAL.json").read_text()
        self.assertNotIn("\n", text)
        self.assertNotIn(": ", text)
        self.assertEqual(json.loads(text)["meta"]["originSlug"], "CENTRAL")

    def test_manifest(self):
        version_dir = self.publisher.publish(small_result(), version="v1")

        manifest = json.loads((version_dir / "manifest.json").read_text())
        self.assertEqual(manifest["version"], "v1")
        self.assertEqual(manifest["startDate"], "2026-10-19")
        self.assertEqual(manifest["dayCount"], 2)
        self.assertEqual(manifest["origins"], ["BOWEN_HILLS", "CENTRAL"])

    def test_load_current(self):
        self.publisher.publish(small_result(), version="v1")

        schedule, patterns = self.publisher.load("CENTRAL")
        self.assertEqual(schedule["routes"]["EAGLE_JUNCTION"]["schedules"][0][0]["t"], "T1")
        self.assertEqual(patterns["meta"]["originSlug"], "CENTRAL")

    def test_load_before_publish(self):
        self.assertIsNone(self.publisher.current_dir())
        with self.assertRaises(FileNotFoundError):
            self.publisher.load("CENTRAL")

    def test_rejects_dangling_pattern_reference(self):
        self.publisher.publish(small_result(), version="v1")

        broken = small_result()
        broken.pattern_files["CENTRAL"]["patterns"].pop()
        with self.assertRaises(PublishError):
            self.publisher.publish(broken, version="v2")

        self.assertEqual((self.root / POINTER_FILE).read_text(), "v1")
        self.assertFalse((self.root / "v2").exists())

    def test_rejects_unpaired_files(self):
        result = small_result()
        broken = CompactionResult(
            start_date=result.start_date,
            day_count=result.day_count,
            schedule_files=result.schedule_files,
            pattern_files={"CENTRAL": result.pattern_files["CENTRAL"]},
            stats=ProcessingStats(),
        )
        with self.assertRaises(PublishError):
            self.publisher.publish(broken, version="v1")
        self.assertIsNone(self.publisher.current_dir())

    def test_existing_version_rejected(self):
        self.publisher.publish(small_result(), version="v1")
        with self.assertRaises(PublishError):
            self.publisher.publish(small_result(), version="v1")

    def test_prunes_old_versions(self):
        for version in ("v1", "v2", "v3"):
            self.publisher.publish(small_result(), version=version)

        remaining = sorted(p.name for p in self.root.iterdir() if p.is_dir())
        self.assertEqual(remaining, ["v2", "v3"])
        self.assertEqual(self.publisher.current_dir().name, "v3")

    def test_prune_leaves_other_directories(self):
        for name in ("src", "tests"):
            (self.root / name).mkdir()
            (self.root / name / "keep.txt").write_text("keep")

        for version in ("v1", "v2", "v3"):
            self.publisher.publish(small_result(), version=version)

        remaining = sorted(p.name for p in self.root.iterdir() if p.is_dir())
        self.assertEqual(remaining, ["src", "tests", "v2", "v3"])
        self.assertEqual((self.root / "src" / "keep.txt").read_text(), "keep")
        self.assertEqual((self.root / "tests" / "keep.txt").read_text(), "keep")

    def test_prune_follows_publish_order(self):
        for version in ("v9", "v10", "v11"):
            self.publisher.publish(small_result(), version=version)

        self.assertFalse((self.root / "v9").exists())
        self.assertTrue((self.root / "v10").exists())
        self.assertTrue((self.root / "v11").exists())
        self.assertEqual(self.publisher.published_versions(), ["v10", "v11"])

    def test_published_versions_before_publish(self):
        self.assertEqual(self.publisher.published_versions(), [])

    def test_write_counts_bytes(self):
        path = self.root / "station.json"
        written = LocalPublisher._write(path, {"name": "Ü"})

        self.assertEqual(written, 13)
        self.assertEqual(written, len(path.read_bytes()))

    def test_generated_version_names(self):
        version_dir = self.publisher.publish(small_result())

        self.assertEqual(self.publisher.current_dir(), version_dir)
        self.assertFalse(any(p.name.endswith(".tmp") for p in self.root.iterdir()))

    def test_dump_json(self):
        self.assertEqual(dump_json({"a": [1, 2], "b": "Ü"}), '{"a":[1,2],"b":"Ü"}')


if __name__ == "__main__":
    unittest.main()
