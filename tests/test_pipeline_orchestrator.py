"""Tests for the file sync orchestrator."""

import zipfile
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from trainload.config import FileConnectorConfig
from trainload.data.athlete_snapshot import AthleteSnapshotResolverService
from trainload.data.pipeline_orchestrator import (
    FileSyncOrchestrator,
    SyncState,
    humanized_activity_name,
    humanized_day_moment,
)
from trainload.exceptions import ActivityFileParseError, EmptyActivityFileError
from trainload.integrations.parsed_activity import ParsedActivity, ParsedEvent, TrackSample, build_activity
from trainload.models.activity import ActivityStreams, SportType
from trainload.models.sync_events import ErrorCode, SyncEventType
from tests.conftest import gpx_content

START = datetime(2024, 5, 12, 7, 30, tzinfo=timezone.utc)


def parsed_activity(start: datetime = START, source_type: str = "cycling", seconds: int = 300) -> ParsedActivity:
    samples = [
        TrackSample(
            timestamp=start + timedelta(seconds=i),
            latitude=45.0 + i * 0.00005,
            longitude=5.0,
            altitude=200.0,
            heart_rate=140,
        )
        for i in range(seconds)
    ]
    return build_activity(samples, source_type)


def parsed_event(path: str, start: datetime = START, source_type: str = "cycling", seconds: int = 300) -> ParsedEvent:
    return ParsedEvent(file_path=path, activities=[parsed_activity(start, source_type, seconds)])


def event_types(stream):
    return [event.type for event in stream]


@pytest.fixture(autouse=True)
def no_pacing():
    """Skip the pacing delay between files."""
    with patch("trainload.data.pipeline_orchestrator.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def make_orchestrator(source_dir, temp_db):
    def make(parser=None, **config):
        connector_config = FileConnectorConfig(source_directory=source_dir, **config)
        return FileSyncOrchestrator(
            connector_config,
            temp_db,
            AthleteSnapshotResolverService(temp_db),
            parser=parser,
        )
    return make


def test_sync_creates_activities(make_orchestrator, source_dir, temp_db, write_gpx):
    write_gpx(source_dir / "a.gpx", START)
    write_gpx(source_dir / "b.gpx", START + timedelta(days=1))
    orchestrator = make_orchestrator()

    stream = orchestrator.sync()

    assert event_types(stream) == [
        SyncEventType.STARTED,
        SyncEventType.GENERIC,
        SyncEventType.ACTIVITY,
        SyncEventType.ACTIVITY,
        SyncEventType.COMPLETED,
    ]
    assert stream.is_completed
    assert orchestrator.state == SyncState.COMPLETED
    assert temp_db.count() == 2
    assert temp_db.get_sync_date_time() is not None

    created = stream.of_type(SyncEventType.ACTIVITY)
    assert all(event.is_new for event in created)
    first = created[0].activity
    assert first.type == SportType.RIDE
    assert first.name.endswith("Ride")
    assert first.start_time == START
    assert first.hash is not None
    assert first.extras.fs_activity_location.path == str(source_dir / "a.gpx")
    assert first.athlete_snapshot is not None
    assert first.stats.distance > 0

    streams = ActivityStreams.inflate(created[0].compressed_stream)
    assert len(streams.time) == 120
    # ride without power meter gets an estimated watts stream
    assert streams.has("watts")


def test_resync_reports_existing_activities(make_orchestrator, source_dir, temp_db, write_gpx):
    write_gpx(source_dir / "a.gpx", START)
    orchestrator = make_orchestrator()
    orchestrator.sync()

    stream = orchestrator.sync(full=True)

    activity_events = stream.of_type(SyncEventType.ACTIVITY)
    assert len(activity_events) == 1
    assert activity_events[0].is_new is False
    assert activity_events[0].compressed_stream is None
    assert temp_db.count() == 1


def test_incremental_sync_skips_older_files(make_orchestrator, source_dir, temp_db, write_gpx):
    write_gpx(source_dir / "a.gpx", START)
    temp_db.save_sync_date_time(datetime.now(timezone.utc) + timedelta(days=1))

    stream = make_orchestrator().sync()

    assert stream.of_type(SyncEventType.ACTIVITY) == []
    assert temp_db.count() == 0


def test_events_are_delivered_live(make_orchestrator, source_dir, write_gpx):
    write_gpx(source_dir / "a.gpx", START)
    received = []

    stream = make_orchestrator().sync(on_event=received.append)

    assert received == stream.events


def test_pacing_between_files(make_orchestrator, source_dir, write_gpx, no_pacing):
    write_gpx(source_dir / "a.gpx", START)
    write_gpx(source_dir / "b.gpx", START + timedelta(days=1))

    make_orchestrator(sync_pacing_seconds=0.2).sync()

    assert no_pacing.call_count == 2
    no_pacing.assert_called_with(0.2)


def test_missing_source_directory(tmp_path, temp_db):
    config = FileConnectorConfig(source_directory=tmp_path / "missing")
    orchestrator = FileSyncOrchestrator(config, temp_db, AthleteSnapshotResolverService(temp_db))

    stream = orchestrator.sync()

    assert event_types(stream) == [SyncEventType.STARTED, SyncEventType.ERROR]
    assert stream.error.code == ErrorCode.FS_SOURCE_DIRECTORY_DONT_EXISTS
    assert "does not exist" in stream.error.error.description
    assert not stream.is_completed
    assert orchestrator.state == SyncState.FAILED


def test_sync_already_started(make_orchestrator, source_dir):
    (source_dir / "a.gpx").write_text("content")
    parser = MagicMock()
    orchestrator = make_orchestrator(parser=parser)
    inner_streams = []

    def parse(activity_file):
        inner_streams.append(orchestrator.sync())
        return parsed_event(activity_file.path)

    parser.parse.side_effect = parse

    stream = orchestrator.sync()

    assert stream.is_completed
    assert len(inner_streams) == 1
    inner = inner_streams[0]
    assert event_types(inner) == [SyncEventType.ERROR]
    assert inner.error.code == ErrorCode.SYNC_ALREADY_STARTED
    assert not orchestrator.is_syncing


def test_stop_ends_sync_at_next_file(make_orchestrator, source_dir, temp_db):
    for name in ("a.gpx", "b.gpx", "c.gpx"):
        (source_dir / name).write_text("content")
    parser = MagicMock()
    orchestrator = make_orchestrator(parser=parser)

    def parse(activity_file):
        orchestrator.stop()
        return parsed_event(activity_file.path)

    parser.parse.side_effect = parse

    stream = orchestrator.sync()

    assert event_types(stream) == [
        SyncEventType.STARTED,
        SyncEventType.GENERIC,
        SyncEventType.ACTIVITY,
        SyncEventType.STOPPED,
    ]
    assert parser.parse.call_count == 1
    assert stream.is_completed
    assert stream.error is None
    assert orchestrator.state == SyncState.CANCELLED
    assert temp_db.get_sync_date_time() is None


def test_parse_error_is_reported_and_sync_continues(make_orchestrator, source_dir, temp_db):
    (source_dir / "a.gpx").write_text("content")
    (source_dir / "b.gpx").write_text("content")
    parser = MagicMock()
    parser.parse.side_effect = [
        ActivityFileParseError("Invalid XML"),
        parsed_event(str(source_dir / "b.gpx")),
    ]

    stream = make_orchestrator(parser=parser).sync()

    errors = stream.of_type(SyncEventType.ERROR)
    assert len(errors) == 1
    assert errors[0].code == ErrorCode.SYNC_ERROR_COMPUTE
    assert errors[0].error.description == "Activity file parsing error: Invalid XML"
    assert errors[0].activity.extras.fs_activity_location.path == str(source_dir / "a.gpx")
    assert len(stream.of_type(SyncEventType.ACTIVITY)) == 1
    assert stream.is_completed
    assert temp_db.count() == 1


def test_empty_file_is_skipped(make_orchestrator, source_dir):
    (source_dir / "a.gpx").write_text("content")
    parser = MagicMock()
    parser.parse.side_effect = EmptyActivityFileError("No track")

    stream = make_orchestrator(parser=parser).sync()

    assert event_types(stream) == [SyncEventType.STARTED, SyncEventType.GENERIC, SyncEventType.COMPLETED]


def test_transition_activities_are_skipped(make_orchestrator, source_dir, temp_db):
    (source_dir / "a.fit").write_text("content")
    parser = MagicMock()
    parser.parse.return_value = parsed_event("a.fit", source_type="transition")

    stream = make_orchestrator(parser=parser).sync()

    assert stream.of_type(SyncEventType.ACTIVITY) == []
    assert temp_db.count() == 0


def test_single_overlap_emits_exists(make_orchestrator, source_dir, temp_db, activity_builder):
    (source_dir / "a.gpx").write_text("content")
    stored = temp_db.insert(activity_builder(START + timedelta(minutes=1)))
    parser = MagicMock()
    parser.parse.return_value = parsed_event("a.gpx")

    stream = make_orchestrator(parser=parser).sync()

    events = stream.of_type(SyncEventType.ACTIVITY)
    assert len(events) == 1
    assert events[0].is_new is False
    assert events[0].activity.id == stored.id
    assert temp_db.count() == 1


def test_multiple_overlaps_emit_error(make_orchestrator, source_dir, temp_db, activity_builder):
    (source_dir / "a.gpx").write_text("content")
    temp_db.insert(activity_builder(START, duration_seconds=60, name="First"))
    temp_db.insert(activity_builder(START + timedelta(minutes=2), duration_seconds=60, name="Second"))
    parser = MagicMock()
    parser.parse.return_value = parsed_event("a.gpx")

    stream = make_orchestrator(parser=parser).sync()

    errors = stream.of_type(SyncEventType.ERROR)
    assert len(errors) == 1
    assert errors[0].code == ErrorCode.MULTIPLE_ACTIVITIES_FOUND
    assert (
        "First (2024-05-12T07:30:00+00:00) & Second (2024-05-12T07:32:00+00:00)"
        in errors[0].error.description
    )
    assert stream.of_type(SyncEventType.ACTIVITY) == []
    assert temp_db.count() == 2
    assert stream.is_completed


def test_back_to_back_sessions_create_two_activities(make_orchestrator, source_dir, temp_db):
    (source_dir / "brick.fit").write_text("content")
    ride = parsed_activity(START, "cycling")
    run = parsed_activity(ride.end_time, "running")
    parser = MagicMock()
    parser.parse.return_value = ParsedEvent(file_path="brick.fit", activities=[ride, run])

    stream = make_orchestrator(parser=parser).sync()

    events = stream.of_type(SyncEventType.ACTIVITY)
    assert [(event.is_new, event.activity.type) for event in events] == [
        (True, SportType.RIDE),
        (True, SportType.RUN),
    ]
    assert events[1].activity.start_time == ride.end_time
    assert temp_db.count() == 2


def test_compute_failure_is_reported(make_orchestrator, source_dir, temp_db):
    (source_dir / "a.gpx").write_text("content")
    parser = MagicMock()
    parser.parse.return_value = parsed_event("a.gpx")

    with patch(
        "trainload.data.pipeline_orchestrator.ActivityComputer.compute",
        side_effect=ValueError("boom"),
    ):
        stream = make_orchestrator(parser=parser).sync()

    errors = stream.of_type(SyncEventType.ERROR)
    assert len(errors) == 1
    assert errors[0].code == ErrorCode.SYNC_ERROR_COMPUTE
    assert errors[0].error.description == f"Unable to compute activity started '{START.isoformat()}' cause: boom"
    assert errors[0].error.stack is not None
    assert errors[0].activity.start_time == START
    assert temp_db.count() == 0


def test_upsert_failure_is_reported(make_orchestrator, source_dir, temp_db):
    (source_dir / "a.gpx").write_text("content")
    parser = MagicMock()
    parser.parse.return_value = parsed_event("a.gpx")

    with patch.object(temp_db, "upsert", side_effect=RuntimeError("disk full")):
        stream = make_orchestrator(parser=parser).sync()

    errors = stream.of_type(SyncEventType.ERROR)
    assert len(errors) == 1
    assert errors[0].code == ErrorCode.SYNC_ERROR_UPSERT_ACTIVITY_DATABASE
    assert errors[0].error.details == "disk full"
    assert stream.of_type(SyncEventType.ACTIVITY) == []


def test_archives_are_expanded_on_full_sync(make_orchestrator, source_dir, temp_db):
    with zipfile.ZipFile(source_dir / "export.zip", "w") as archive:
        archive.writestr("ride.gpx", gpx_content(START))
    (source_dir / "broken.zip").write_bytes(b"garbage")

    stream = make_orchestrator(extract_archive_files=True, delete_archives_after_extract=True).sync()

    descriptions = [event.description for event in stream.of_type(SyncEventType.GENERIC)]
    assert 'Activities in "export.zip" file have been extracted.' in descriptions

    errors = stream.of_type(SyncEventType.ERROR)
    assert len(errors) == 1
    assert errors[0].code == ErrorCode.UNHANDLED_ERROR_SYNC
    assert "broken.zip" in errors[0].error.description

    assert len(stream.of_type(SyncEventType.ACTIVITY)) == 1
    assert not (source_dir / "export.zip").exists()
    assert temp_db.count() == 1
    assert stream.is_completed


def test_unexpected_error_fails_the_sync(make_orchestrator, source_dir, temp_db):
    (source_dir / "a.gpx").write_text("content")

    with patch.object(temp_db, "get_sync_date_time", side_effect=RuntimeError("database locked")):
        stream = make_orchestrator().sync()

    assert stream.error.code == ErrorCode.UNHANDLED_ERROR_SYNC
    assert stream.error.error.details == "database locked"
    assert not stream.is_completed


@pytest.mark.parametrize("hour,expected", [
    (6, "Morning"),
    (11, "Morning"),
    (12, "Afternoon"),
    (16, "Afternoon"),
    (17, "Evening"),
    (23, "Evening"),
])
def test_humanized_day_moment(hour, expected):
    assert humanized_day_moment(datetime(2024, 1, 1, hour, 0)) == expected


def test_humanized_activity_name():
    moment = datetime(2024, 1, 1, 18, 0)

    assert humanized_activity_name(moment, SportType.RUN, False) == "Evening Run"
    assert humanized_activity_name(moment, SportType.RIDE, True) == "Evening Ride #detected"
