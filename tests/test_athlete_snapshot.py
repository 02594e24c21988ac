"""Tests for athlete snapshot resolution."""

from datetime import date, datetime

import pytest

from trainload.data.athlete_snapshot import AthleteSnapshotResolver, AthleteSnapshotResolverService
from trainload.exceptions import AthleteSnapshotResolverNotReady
from trainload.models.athlete import AthleteModel, AthleteSettings, DatedAthleteSettings, Gender


@pytest.fixture
def athlete():
    """Athlete whose FTP rose twice."""
    return AthleteModel(
        gender=Gender.WOMEN,
        dated_athlete_settings=[
            DatedAthleteSettings(since=date(2020, 1, 1), settings=AthleteSettings(cycling_ftp=200)),
            DatedAthleteSettings(since=None, settings=AthleteSettings(cycling_ftp=150)),
            DatedAthleteSettings(since=date(2021, 6, 1), settings=AthleteSettings(cycling_ftp=250)),
        ],
    )


@pytest.mark.parametrize("on_date,expected_ftp", [
    (date(2022, 1, 1), 250),
    (date(2021, 6, 1), 250),
    (date(2021, 5, 31), 200),
    (datetime(2020, 1, 1, 18, 0), 200),
    ("2019-12-31", 150),
    (date(1999, 1, 1), 150),
])
def test_resolve_by_date(athlete, on_date, expected_ftp):
    snapshot = AthleteSnapshotResolver(athlete).resolve(on_date)

    assert snapshot.athlete_settings.cycling_ftp == expected_ftp
    assert snapshot.gender == Gender.WOMEN


def test_invalid_date_resolves_to_forever_settings(athlete):
    resolver = AthleteSnapshotResolver(athlete)

    assert resolver.resolve("not a date").athlete_settings.cycling_ftp == 150
    assert resolver.resolve(None).athlete_settings.cycling_ftp == 150


def test_no_dated_settings_resolves_to_defaults():
    snapshot = AthleteSnapshotResolver(AthleteModel()).resolve(date(2022, 1, 1))

    assert snapshot.athlete_settings == AthleteSettings.default()


def test_get_current(athlete):
    assert AthleteSnapshotResolver(athlete).get_current().athlete_settings.cycling_ftp == 250


def test_snapshot_is_a_copy(athlete):
    snapshot = AthleteSnapshotResolver(athlete).resolve(date(2022, 1, 1))
    snapshot.athlete_settings.cycling_ftp = 999

    assert AthleteSnapshotResolver(athlete).resolve(date(2022, 1, 1)).athlete_settings.cycling_ftp == 250


def test_service_not_ready_before_update(temp_db):
    service = AthleteSnapshotResolverService(temp_db)

    with pytest.raises(AthleteSnapshotResolverNotReady):
        service.resolve(date(2022, 1, 1))


def test_service_uses_stored_athlete(temp_db, athlete):
    temp_db.save_athlete(athlete)
    service = AthleteSnapshotResolverService(temp_db)

    resolver = service.update()

    assert resolver is service.resolver
    assert service.resolve(date(2022, 1, 1)).athlete_settings.cycling_ftp == 250


def test_service_without_stored_athlete(temp_db):
    service = AthleteSnapshotResolverService(temp_db)
    service.update()

    assert service.get_current().athlete_settings == AthleteSettings.default()
