"""Publishing of compact artifacts as one atomically switched version."""

import json
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from .decoder import missing_pattern_indices
from .pipeline import CompactionResult

logger = logging.getLogger(__name__)

POINTER_FILE = "CURRENT"
VERSIONS_FILE = "versions.json"


class PublishError(RuntimeError):
    """Artifacts could not be published as a consistent set."""


def dump_json(data: dict) -> str:
    """Minified JSON, no whitespace."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


class LocalPublisher:
    """
    Writes a run's schedule and pattern files under a new version directory,
    then switches the CURRENT pointer to it.

    Readers resolve CURRENT first, so they see either the previous complete
    set or the new complete set, never a mix.
    """

    def __init__(self, root: Union[str, Path], mode: str = "train", keep_versions: int = 2):
        self.root = Path(root)
        self.mode = mode
        self.keep_versions = max(1, keep_versions)

    def station_filename(self, slug: str) -> str:
        return f"{self.mode}-station-{slug}.json"

    def pattern_filename(self, slug: str) -> str:
        return f"{self.mode}-patterns-{slug}.json"

    def publish(self, result: CompactionResult, version: Optional[str] = None) -> Path:
        """
        Publish every origin's pair of files.

        Args:
            result: Output of one compaction run.
            version: Version directory name (default: a UTC timestamp).

        Returns:
            The new version directory.

        Raises:
            PublishError: If a schedule references a pattern missing from its
                pattern file, or writing fails. CURRENT is left untouched.
        """
        self._check_closed(result)

        version = version or datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        version_dir = self.root / version
        if version_dir.exists():
            raise PublishError(f"Version {version} already exists")

        staging_dir = self.root / f".{version}.tmp"
        try:
            staging_dir.mkdir(parents=True)
            total_bytes = 0
            for slug in result.origins:
                total_bytes += self._write(staging_dir / self.station_filename(slug), result.schedule_files[slug])
                total_bytes += self._write(staging_dir / self.pattern_filename(slug), result.pattern_files[slug])
            self._write(staging_dir / "manifest.json", self._manifest(result, version))
            os.replace(staging_dir, version_dir)
            self._record_version(version)
            self._switch_pointer(version)
        except OSError as e:
            logger.error(f"Failed to publish version {version}: {e}")
            shutil.rmtree(staging_dir, ignore_errors=True)
            raise PublishError(f"Failed to publish version {version}: {e}") from e

        logger.info(
            f"Published {len(result.origins)} station/pattern file pairs "
            f"({total_bytes / (1024 * 1024):.2f} MB) as version {version}"
        )
        self._prune(version)
        return version_dir

    def current_dir(self) -> Optional[Path]:
        """Directory of the currently published version, if any."""
        pointer = self.root / POINTER_FILE
        if not pointer.exists():
            return None
        return self.root / pointer.read_text(encoding="utf-8").strip()

    def load(self, slug: str):
        """
        Load one origin's files from the current version.

        Returns:
            (schedule file, pattern file) as parsed JSON.

        Raises:
            FileNotFoundError: If nothing is published or the origin has no files.
        """
        current = self.current_dir()
        if current is None:
            raise FileNotFoundError(f"Nothing published under {self.root}")
        with open(current / self.station_filename(slug), "r", encoding="utf-8") as f:
            schedule = json.load(f)
        with open(current / self.pattern_filename(slug), "r", encoding="utf-8") as f:
            patterns = json.load(f)
        return schedule, patterns

    @staticmethod
    def _check_closed(result: CompactionResult) -> None:
        if set(result.schedule_files) != set(result.pattern_files):
            raise PublishError("Schedule and pattern files cover different origins")
        for slug in result.origins:
            missing = missing_pattern_indices(result.schedule_files[slug], result.pattern_files[slug])
            if missing:
                raise PublishError(f"{slug} references unknown patterns {missing[:10]}")

    def _manifest(self, result: CompactionResult, version: str) -> dict:
        return {
            "version": version,
            "startDate": result.start_date.isoformat(),
            "dayCount": result.day_count,
            "origins": result.origins,
            "generated": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def _write(path: Path, data: dict) -> int:
        payload = dump_json(data).encode("utf-8")
        path.write_bytes(payload)
        return len(payload)

    def _switch_pointer(self, version: str) -> None:
        tmp = self.root / f".{POINTER_FILE}.tmp"
        tmp.write_text(version, encoding="utf-8")
        os.replace(tmp, self.root / POINTER_FILE)

    def published_versions(self) -> List[str]:
        """
        Versions written by this publisher, oldest first.

        Only directories listed in the versions index are ever pruned, so
        other directories under the root are left alone.
        """
        index = self.root / VERSIONS_FILE
        if not index.exists():
            return []
        with open(index, "r", encoding="utf-8") as f:
            return list(json.load(f))

    def _save_versions(self, versions: List[str]) -> None:
        tmp = self.root / f".{VERSIONS_FILE}.tmp"
        tmp.write_text(dump_json(versions), encoding="utf-8")
        os.replace(tmp, self.root / VERSIONS_FILE)

    def _record_version(self, version: str) -> None:
        versions = [v for v in self.published_versions() if v != version]
        self._save_versions(versions + [version])

    def _prune(self, current: str) -> None:
        versions = self.published_versions()
        older = [v for v in versions if v != current]
        stale = older[: max(0, len(older) - (self.keep_versions - 1))]
        for name in stale:
            shutil.rmtree(self.root / name, ignore_errors=True)
            logger.debug(f"Removed old version {name}")
        if stale:
            self._save_versions([v for v in versions if v not in stale])
