"""Tests for extended stats and stress scores."""

import math

import numpy as np
import pytest

from trainload.analytics.activity_computer import (
    ActivityComputer,
    lat_lng_center,
    resolve_lthr,
)
from trainload.models.activity import ActivityFlag, ActivityStreams, PrimitiveSourceData, SportType
from trainload.models.athlete import AthleteSettings, AthleteSnapshot, Lthr


def steady_streams(seconds: int = 3600, **channels) -> ActivityStreams:
    """One sample per second with constant channel values."""
    data = {"time": [float(i) for i in range(seconds + 1)]}
    data.update({name: [value] * (seconds + 1) for name, value in channels.items()})
    return ActivityStreams(**data)


def test_steady_ride_at_ftp(athlete_snapshot):
    """One hour at FTP with a power meter scores 100 PSS."""
    streams = steady_streams(velocity=8.0, watts=150.0, heartrate=150.0)

    computed = ActivityComputer(SportType.RIDE, True, athlete_snapshot, streams).compute()

    power = computed.stats.power
    assert power.normalized == pytest.approx(150)
    assert power.intensity == pytest.approx(1.0)
    assert power.estimated is False
    assert computed.stats.moving_time == 3600
    assert computed.stats.scores.pss == pytest.approx(100)
    assert computed.stats.scores.pss_per_hour == pytest.approx(100)
    assert computed.settings_lack is False
    assert computed.flags == []


def test_one_hour_at_lthr_scores_100_hrss(athlete_snapshot):
    streams = steady_streams(velocity=8.0, heartrate=163.0)

    computed = ActivityComputer(SportType.RIDE, False, athlete_snapshot, streams).compute()

    assert computed.stats.scores.hrss == pytest.approx(100, rel=1e-3)
    assert computed.stats.scores.trimp > 0
    assert computed.stats.heart_rate.lthr == 163


def test_trimp_matches_banister_formula(athlete_snapshot):
    streams = steady_streams(seconds=1800, velocity=3.0, heartrate=150.0)

    computed = ActivityComputer(SportType.RUN, False, athlete_snapshot, streams).compute()

    hrr = (150 - 60) / (190 - 60)
    expected = 30 * hrr * 0.64 * math.exp(1.92 * hrr)
    assert computed.stats.scores.trimp == pytest.approx(expected, rel=1e-6)


def test_running_stress_score_at_threshold_pace(athlete_snapshot):
    """Running one hour at threshold pace (300 s/km) scores 100 RSS."""
    streams = steady_streams(velocity=1000 / 300)

    computed = ActivityComputer(SportType.RUN, False, athlete_snapshot, streams).compute()

    assert computed.stats.scores.rss == pytest.approx(100)


def test_swim_stress_score_at_threshold_pace(athlete_snapshot):
    """Swimming one hour at 31 m/min scores 100 SSS."""
    streams = steady_streams(velocity=31 / 60)

    computed = ActivityComputer(
        SportType.SWIM, False, athlete_snapshot, streams, PrimitiveSourceData(distance_raw=31 * 60)
    ).compute()

    assert computed.stats.scores.sss == pytest.approx(100)


def test_abnormal_score_is_flagged(athlete_snapshot):
    streams = steady_streams(seconds=1800, velocity=8.0, watts=500.0)

    computed = ActivityComputer(SportType.RIDE, True, athlete_snapshot, streams).compute()

    assert computed.stats.scores.pss_per_hour > 300
    assert ActivityFlag.SCORE_PSS_PER_HOUR_ABNORMAL in computed.flags


def test_source_totals_override_computed_stats(athlete_snapshot):
    streams = steady_streams(seconds=600, velocity=5.0, distance=0.0)
    source = PrimitiveSourceData(elapsed_time_raw=700, moving_time_raw=800, distance_raw=3000, elevation_gain_raw=12)

    computed = ActivityComputer(SportType.RIDE, False, athlete_snapshot, streams, source).compute()

    assert computed.stats.distance == 3000
    assert computed.stats.elevation_gain == 12
    assert computed.stats.elapsed_time == 700
    assert ActivityFlag.MOVING_TIME_GREATER_THAN_ELAPSED in computed.flags


def test_settings_lack():
    snapshot = AthleteSnapshot(athlete_settings=AthleteSettings())
    streams = steady_streams(seconds=60, velocity=3.0)

    computed = ActivityComputer(SportType.RUN, False, snapshot, streams).compute()

    assert computed.settings_lack is True
    assert computed.stats.scores.rss is None


def test_compute_requires_time_stream(athlete_snapshot):
    with pytest.raises(ValueError):
        ActivityComputer(SportType.RIDE, False, athlete_snapshot, ActivityStreams()).compute()


def test_normalized_power_of_variable_effort():
    time = np.arange(0, 600, dtype=float)
    watts = np.where((time // 60) % 2 == 0, 300.0, 100.0)

    normalized = ActivityComputer.normalized_power(time, watts)

    # above the 200 W average for alternating blocks
    assert normalized > 200


def test_resolve_lthr():
    settings = AthleteSettings(max_hr=190, rest_hr=60, lthr=Lthr(default=160, cycling=170))
    snapshot = AthleteSnapshot(athlete_settings=settings)

    assert resolve_lthr(snapshot, SportType.RIDE) == 170
    assert resolve_lthr(snapshot, SportType.RUN) == 160

    karvonen = AthleteSnapshot(athlete_settings=AthleteSettings(max_hr=190, rest_hr=60))
    assert resolve_lthr(karvonen, SportType.RUN) == pytest.approx(60 + 0.85 * 130)


def test_lat_lng_center():
    assert lat_lng_center([[45.0, 5.0], [47.0, 7.0]]) == [46.0, 6.0]
    assert lat_lng_center([]) is None
