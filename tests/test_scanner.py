"""Tests for the activity file scanner."""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from trainload.data.scanner import ActivityFileScanner
from trainload.models.activity import ActivityFileType


@pytest.fixture
def populated_dir(source_dir):
    """Source directory with supported, unsupported and nested files."""
    for name in ("ride.gpx", "run.TCX", "swim.fit", "notes.txt", "photo.jpg"):
        (source_dir / name).write_text("content")
    nested = source_dir / "2023" / "june"
    nested.mkdir(parents=True)
    (nested / "hike.gpx").write_text("content")
    (nested / "readme.md").write_text("content")
    return source_dir


def test_scan_keeps_supported_extensions(populated_dir):
    """Only GPX, TCX and FIT files are returned, extension case ignored."""
    files = ActivityFileScanner().scan(populated_dir)

    names = sorted(Path(f.path).name for f in files)
    assert names == ["ride.gpx", "run.TCX", "swim.fit"]

    types = {Path(f.path).name: f.type for f in files}
    assert types["run.TCX"] == ActivityFileType.TCX
    assert types["swim.fit"] == ActivityFileType.FIT


def test_scan_recursive(populated_dir):
    """Sub-directories are walked only when recursive."""
    scanner = ActivityFileScanner()

    flat = scanner.scan(populated_dir, recursive=False)
    deep = scanner.scan(populated_dir, recursive=True)

    assert len(flat) == 3
    assert len(deep) == 4
    assert any(f.path.endswith("hike.gpx") for f in deep)


def test_scan_after_date(populated_dir):
    """Files last touched before the cutoff are skipped."""
    scanner = ActivityFileScanner()
    now = datetime.now(timezone.utc)

    assert len(scanner.scan(populated_dir, after_date=now - timedelta(days=1))) == 3
    assert scanner.scan(populated_dir, after_date=now + timedelta(days=1)) == []


def test_scan_sets_last_modification_date(populated_dir):
    """Each file carries its last access date as an aware datetime."""
    files = ActivityFileScanner().scan(populated_dir)

    for activity_file in files:
        assert activity_file.last_modification_date is not None
        assert activity_file.last_modification_date.tzinfo is not None


def test_scan_missing_directory(tmp_path):
    """Scanning a missing directory raises."""
    with pytest.raises(FileNotFoundError):
        ActivityFileScanner().scan(tmp_path / "missing")


def test_activity_file_document_shape(populated_dir):
    """Activity file descriptors serialize with camel case keys."""
    activity_file = ActivityFileScanner().scan(populated_dir)[0]

    document = activity_file.to_document()

    assert set(document) == {"type", "location", "lastModificationDate"}
    assert document["location"] == {"path": activity_file.path}
    assert isinstance(document["lastModificationDate"], str)
