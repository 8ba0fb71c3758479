"""Configuration for the schedule compaction job."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# SEQ (TransLink) static GTFS feed
DEFAULT_GTFS_URL = "https://gtfsrt.api.translink.com.au/GTFS/SEQ_GTFS.zip"
DEFAULT_ROUTE_TYPE = 2  # GTFS route type for rail
DEFAULT_TIMEZONE = "Australia/Brisbane"
DEFAULT_DAYS = 7
DEFAULT_MODE = "train"
DEFAULT_OUTPUT_DIR = Path("output")
DOWNLOAD_TIMEOUT = 120  # seconds

FORMAT_VERSION = "7.1"


@dataclass
class ProcessorConfig:
    """Settings for one processing run."""
    gtfs_url: str = DEFAULT_GTFS_URL
    route_type: Optional[int] = DEFAULT_ROUTE_TYPE
    timezone: str = DEFAULT_TIMEZONE
    days: int = DEFAULT_DAYS
    mode: str = DEFAULT_MODE
    output_dir: Path = DEFAULT_OUTPUT_DIR
    keep_versions: int = 2
    download_timeout: int = DOWNLOAD_TIMEOUT

    def __post_init__(self):
        if self.days < 1:
            raise ValueError(f"days must be at least 1, got {self.days}")
        self.output_dir = Path(self.output_dir)

    @classmethod
    def from_env(cls, environ=None) -> "ProcessorConfig":
        """
        Build a config from TRANSITPACK_* environment variables.

        Unset variables keep their defaults. An empty TRANSITPACK_ROUTE_TYPE
        disables route-type filtering.
        """
        env = os.environ if environ is None else environ
        config = cls()

        if "TRANSITPACK_GTFS_URL" in env:
            config.gtfs_url = env["TRANSITPACK_GTFS_URL"]
        if "TRANSITPACK_ROUTE_TYPE" in env:
            raw = env["TRANSITPACK_ROUTE_TYPE"].strip()
            config.route_type = int(raw) if raw else None
        if "TRANSITPACK_TIMEZONE" in env:
            config.timezone = env["TRANSITPACK_TIMEZONE"]
        if "TRANSITPACK_DAYS" in env:
            config.days = int(env["TRANSITPACK_DAYS"])
        if "TRANSITPACK_MODE" in env:
            config.mode = env["TRANSITPACK_MODE"]
        if "TRANSITPACK_OUTPUT_DIR" in env:
            config.output_dir = Path(env["TRANSITPACK_OUTPUT_DIR"])
        if "TRANSITPACK_KEEP_VERSIONS" in env:
            config.keep_versions = int(env["TRANSITPACK_KEEP_VERSIONS"])

        config.__post_init__()
        return config
