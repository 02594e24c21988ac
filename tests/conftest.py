"""Pytest configuration and fixtures."""

import pytest
import tempfile
import shutil
from pathlib import Path
from datetime import datetime, timedelta, timezone

from trainload.data.identity import activity_id
from trainload.models.activity import (
    ActivityStats,
    BareActivity,
    SportType,
    StressScores,
    SyncedActivity,
)
from trainload.models.athlete import AthleteSettings, AthleteSnapshot, Gender, Lthr
from trainload.storage.database.manager import DatabaseManager


@pytest.fixture(scope="session")
def test_data_dir():
    """Create a temporary directory for test data."""
    temp_dir = tempfile.mkdtemp(prefix="trainload_test_")
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def source_dir(tmp_path):
    """Empty activity source directory."""
    path = tmp_path / "activities"
    path.mkdir()
    return path


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing."""
    db = DatabaseManager(db_path=str(tmp_path / "trainload.db"))
    yield db
    db.engine.dispose()


@pytest.fixture
def athlete_snapshot():
    """Athlete snapshot with every threshold set."""
    return AthleteSnapshot(
        gender=Gender.MEN,
        athlete_settings=AthleteSettings(
            max_hr=190,
            rest_hr=60,
            lthr=Lthr(default=163),
            cycling_ftp=150,
            running_ftp=300,
            swim_ftp=31,
            weight=70,
        ),
    )


def build_synced_activity(
    start_time: datetime,
    duration_seconds: float = 3600,
    name: str = "Morning Ride",
    sport: SportType = SportType.RIDE,
    has_power_meter: bool = False,
    athlete_snapshot: AthleteSnapshot = None,
    **scores
) -> SyncedActivity:
    """Build a synced activity carrying the given stress scores."""
    end_time = start_time + timedelta(seconds=duration_seconds)
    bare = BareActivity(
        id=activity_id(start_time, end_time),
        name=name,
        type=sport,
        start_time=start_time,
        end_time=end_time,
        has_power_meter=has_power_meter,
    )
    return SyncedActivity.from_bare(
        bare,
        athlete_snapshot=athlete_snapshot,
        stats=ActivityStats(
            elapsed_time=duration_seconds,
            moving_time=duration_seconds,
            scores=StressScores(**scores),
        ),
        hash=f"hash-{bare.id}",
    )


@pytest.fixture
def activity_builder(athlete_snapshot):
    """Factory of synced activities attached to the default athlete snapshot."""
    def build(start_time: datetime, **kwargs) -> SyncedActivity:
        kwargs.setdefault("athlete_snapshot", athlete_snapshot)
        return build_synced_activity(start_time, **kwargs)
    return build


GPX_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="trainload-tests" xmlns="http://www.topografix.com/GPX/1/1"
     xmlns:gpxtpx="http://www.garmin.com/xmlschemas/TrackPointExtension/v1">
  <trk>
    <name>{name}</name>
    <type>{sport}</type>
    <trkseg>
{points}
    </trkseg>
  </trk>
</gpx>
"""

GPX_POINT = """      <trkpt lat="{lat:.6f}" lon="{lon:.6f}">
        <ele>{ele:.1f}</ele>
        <time>{time}</time>
        <extensions><gpxtpx:TrackPointExtension><gpxtpx:hr>{hr}</gpxtpx:hr></gpxtpx:TrackPointExtension></extensions>
      </trkpt>"""


def gpx_content(
    start_time: datetime,
    points: int = 120,
    sport: str = "cycling",
    step_seconds: int = 1,
    step_degrees: float = 0.00005,
    name: str = "Test track"
) -> str:
    """GPX document of a straight, gently climbing track."""
    lines = []
    for i in range(points):
        moment = start_time + timedelta(seconds=i * step_seconds)
        lines.append(GPX_POINT.format(
            lat=45.0 + i * step_degrees,
            lon=5.0,
            ele=200.0 + i * 0.2,
            time=moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            hr=120 + i % 30,
        ))
    return GPX_TEMPLATE.format(name=name, sport=sport, points="\n".join(lines))


@pytest.fixture
def write_gpx():
    """Write a GPX file and return its path."""
    def write(path: Path, start_time: datetime, **kwargs) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(gpx_content(start_time, **kwargs), encoding="utf-8")
        return path
    return write
