"""Tests for cycling power estimation."""

import math

import pytest

from trainload.analytics.power_estimator import estimate_cycling_power, estimate_cycling_power_stream


def test_climbing_power():
    """10 km/h on a 6% grade for a 75 kg rider."""
    assert estimate_cycling_power(10, 75, 6) == 159.4


def test_descending_power():
    """35 km/h on a -2% grade for a 75 kg rider."""
    assert estimate_cycling_power(35, 75, -2) == 58.85


def test_freewheeling_gives_zero():
    """Steep descents never give a negative power."""
    assert estimate_cycling_power(10, 75, -10) == 0
    assert estimate_cycling_power(35, 75, -10) == 0


def test_power_grows_with_speed_and_weight():
    flat = estimate_cycling_power(30, 75, 0)

    assert estimate_cycling_power(35, 75, 0) > flat
    assert estimate_cycling_power(30, 90, 0) > flat
    assert estimate_cycling_power(0, 75, 5) == 0


def test_power_stream():
    watts = estimate_cycling_power_stream([10 / 3.6, 10 / 3.6, 0], [6, -10, 3], 75)

    assert watts == [159.4, 0, 0]


@pytest.mark.parametrize("velocity,grade", [
    ([], []),
    ([5.0, 6.0], [1.0]),
    ([5.0, math.nan], [1.0, 2.0]),
])
def test_power_stream_rejects_invalid_input(velocity, grade):
    with pytest.raises(ValueError):
        estimate_cycling_power_stream(velocity, grade, 75)
