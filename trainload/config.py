"""Centralized configuration for the trainload platform."""

import os
from datetime import date
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from trainload.models.fitness import HeartRateImpulseMode

# Base paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = Path(os.environ.get("TRAINLOAD_HOME", str(PROJECT_ROOT / "data")))

# Database configuration
DATABASE_PATH = os.environ.get(
    "TRAINLOAD_DB_PATH",
    str(DATA_DIR / "trainload.db")
)

# Default directory scanned for activity files
SOURCE_DIRECTORY = os.environ.get("TRAINLOAD_SOURCE_DIR")

LOG_LEVEL = os.environ.get("TRAINLOAD_LOG_LEVEL", "INFO")

# Sync pacing between two parsed files (seconds)
SLEEP_TIME_BETWEEN_FILE_PARSED = 0.05

# Fitness trend
FUTURE_DAYS_PREVIEW = 14
DEFAULT_LTHR_KARVONEN_HRR_FACTOR = 0.85
CTL_TIME_CONSTANT_DAYS = 42
ATL_TIME_CONSTANT_DAYS = 7


class FileConnectorConfig(BaseModel):
    """Settings driving a file system sync."""

    source_directory: Path
    scan_sub_directories: bool = False
    extract_archive_files: bool = False
    delete_archives_after_extract: bool = False
    detect_sport_type_when_unknown: bool = True
    sync_pacing_seconds: float = Field(SLEEP_TIME_BETWEEN_FILE_PARSED, ge=0)


class InitializedFitnessTrend(BaseModel):
    """Seed values for the first day of the trend."""

    ctl: Optional[float] = None
    atl: Optional[float] = None


class FitnessTrendConfig(BaseModel):
    """Fitness trend computation options."""

    heart_rate_impulse_mode: HeartRateImpulseMode = HeartRateImpulseMode.HRSS
    ignore_before_date: Optional[date] = None
    ignore_activity_name_patterns: List[str] = Field(default_factory=list)
    allow_estimated_power_stress_score: bool = False
    allow_estimated_running_stress_score: bool = True
    initialized_fitness_trend: Optional[InitializedFitnessTrend] = None


class UserSettings(BaseModel):
    """User toggles consumed by the fitness trend."""

    power_meter_enable: bool = True
    swim_enable: bool = True
    skip_activity_types: List[str] = Field(default_factory=list)
