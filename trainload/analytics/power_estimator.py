"""Estimation of cycling power from speed, grade and rider weight."""

import logging
from typing import List, Sequence

import numpy as np

logger = logging.getLogger(__name__)

GRAVITY = 9.8067  # m/s2
AIR_DENSITY = 1.225  # kg/m3, sea level at 15C
DRAG_AREA = 0.320935  # CdA in m2, hoods position on a road bike
ROLLING_RESISTANCE = 0.005  # road tyres on asphalt
BIKE_WEIGHT = 11  # kg
DRIVETRAIN_EFFICIENCY = 0.98


def estimate_cycling_power(speed_kph: float, rider_weight_kg: float, grade_percent: float) -> float:
    """Estimate the power (watts) needed to ride at a steady speed.

    Sum of the gravity, rolling resistance and aerodynamic drag forces times
    speed, corrected by drivetrain losses. Freewheeling gives 0, never a
    negative power.

    Args:
        speed_kph: Speed in km/h
        rider_weight_kg: Rider weight in kg
        grade_percent: Road grade in percent

    Returns:
        Power in watts rounded to 0.01
    """
    power = _power(
        np.asarray([speed_kph], dtype=float) / 3.6,
        np.asarray([grade_percent], dtype=float),
        rider_weight_kg,
    )
    return round(float(power[0]), 2)


def estimate_cycling_power_stream(
    velocity: Sequence[float],
    grade: Sequence[float],
    rider_weight_kg: float
) -> List[float]:
    """Estimate a watts stream from velocity (m/s) and grade (%) streams.

    Raises:
        ValueError: If the streams are empty or not the same length
    """
    speeds = np.asarray(velocity, dtype=float)
    grades = np.asarray(grade, dtype=float)

    if speeds.size == 0 or speeds.shape != grades.shape:
        raise ValueError(
            f"Cannot estimate power from {speeds.size} velocity and {grades.size} grade samples"
        )
    if not np.all(np.isfinite(speeds)) or not np.all(np.isfinite(grades)):
        raise ValueError("Velocity and grade streams must be finite")

    return [round(float(watts), 2) for watts in _power(speeds, grades, rider_weight_kg)]


def _power(speeds: np.ndarray, grades: np.ndarray, rider_weight_kg: float) -> np.ndarray:
    total_mass = rider_weight_kg + BIKE_WEIGHT
    slope = np.arctan(grades / 100)

    gravity_force = GRAVITY * total_mass * np.sin(slope)
    rolling_force = GRAVITY * total_mass * ROLLING_RESISTANCE * np.cos(slope)
    drag_force = 0.5 * DRAG_AREA * AIR_DENSITY * speeds ** 2

    power = (gravity_force + rolling_force + drag_force) * speeds / DRIVETRAIN_EFFICIENCY
    return np.clip(power, 0, None)
