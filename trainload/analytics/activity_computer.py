"""Extended statistics and stress scores of a synced activity."""

import logging
import math
from typing import List, NamedTuple, Optional, Tuple

import numpy as np

from trainload.config import DEFAULT_LTHR_KARVONEN_HRR_FACTOR
from trainload.models.activity import (
    ActivityFlag,
    ActivityStats,
    ActivityStreams,
    HeartRateStats,
    PowerStats,
    PrimitiveSourceData,
    SportType,
    StressScores,
    ZoneTime,
    is_ride,
    is_run,
    is_swim,
)
from trainload.models.athlete import AthleteSnapshot, Gender

logger = logging.getLogger(__name__)

MOVING_SPEED_THRESHOLD = 0.5  # m/s
NORMALIZED_POWER_WINDOW = 30  # seconds
ABNORMAL_SCORE_PER_HOUR = 300

# Banister TRIMP weighting (k1, k2) by gender
TRIMP_FACTORS = {
    Gender.MEN: (0.64, 1.92),
    Gender.WOMEN: (0.86, 1.67),
}

# Upper bounds in % of FTP
POWER_ZONES = (("zone1", 55), ("zone2", 75), ("zone3", 90), ("zone4", 105), ("zone5", 120), ("zone6", 150), ("zone7", None))

# Upper bounds in % of max heart rate
HEART_RATE_ZONES = (("zone1", 60), ("zone2", 70), ("zone3", 80), ("zone4", 90), ("zone5", None))


class ComputedActivity(NamedTuple):
    stats: ActivityStats
    flags: List[ActivityFlag]
    settings_lack: bool


def lat_lng_center(latlng: List[List[float]]) -> Optional[List[float]]:
    """Barycenter of the positions of an activity."""
    if not latlng:
        return None
    points = np.asarray(latlng, dtype=float)
    return [float(points[:, 0].mean()), float(points[:, 1].mean())]


def resolve_lthr(snapshot: AthleteSnapshot, sport: SportType) -> float:
    """Sport specific LTHR, else default LTHR, else Karvonen estimate."""
    settings = snapshot.athlete_settings
    if is_ride(sport) and settings.lthr.cycling:
        return settings.lthr.cycling
    if is_run(sport) and settings.lthr.running:
        return settings.lthr.running
    if settings.lthr.default:
        return settings.lthr.default
    return settings.rest_hr + DEFAULT_LTHR_KARVONEN_HRR_FACTOR * (settings.max_hr - settings.rest_hr)


def _zones(values: np.ndarray, dt: np.ndarray, reference: float, bounds) -> List[ZoneTime]:
    total = float(dt.sum())
    zones = []
    lower = 0.0
    for name, upper in bounds:
        upper_value = reference * upper / 100 if upper is not None else None
        mask = values >= lower if upper_value is None else (values >= lower) & (values < upper_value)
        seconds = float(dt[mask].sum())
        zones.append(
            ZoneTime(
                zone=name,
                from_value=round(lower, 1),
                to_value=round(upper_value, 1) if upper_value is not None else None,
                seconds=seconds,
                percent=round(seconds / total * 100, 2) if total > 0 else 0,
            )
        )
        lower = upper_value if upper_value is not None else lower
    return zones


class ActivityComputer:
    """Compute extended stats of an activity for an athlete snapshot."""

    def __init__(
        self,
        sport: SportType,
        has_power_meter: bool,
        athlete_snapshot: AthleteSnapshot,
        streams: ActivityStreams,
        source_data: Optional[PrimitiveSourceData] = None
    ):
        """Initialize computer.

        Args:
            sport: Activity sport type
            has_power_meter: Whether watts come from a real power meter
            athlete_snapshot: Athlete settings at the activity date
            streams: Activity streams
            source_data: Totals from the source file overriding computed ones
        """
        self.sport = sport
        self.has_power_meter = has_power_meter
        self.snapshot = athlete_snapshot
        self.streams = streams
        self.source_data = source_data or PrimitiveSourceData()

        self.time = np.asarray(streams.time, dtype=float)
        self.dt = np.diff(self.time, prepend=self.time[0]) if self.time.size else self.time

    def compute(self) -> ComputedActivity:
        """Compute stats, stress scores and quality flags.

        Raises:
            ValueError: If the activity holds no time stream
        """
        if self.time.size == 0:
            raise ValueError("Activity has no time stream")

        stats = self._base_stats()
        hours = (stats.moving_time or 0) / 3600

        stats.heart_rate, trimp, hrss = self._heart_rate_stats()
        stats.power, pss = self._power_stats(stats.moving_time or 0)

        stats.scores = StressScores(
            trimp=trimp,
            hrss=hrss,
            pss=pss,
            rss=self._running_stress_score(hours),
            sss=self._swim_stress_score(stats, hours),
        )
        for name in ("trimp", "hrss", "pss", "rss", "sss"):
            score = getattr(stats.scores, name)
            if score is not None and hours > 0:
                setattr(stats.scores, f"{name}_per_hour", score / hours)

        return ComputedActivity(stats, self._flags(stats), self.has_settings_lacks())

    def has_settings_lacks(self) -> bool:
        """Whether stress scores lack athlete settings for this sport."""
        settings = self.snapshot.athlete_settings
        if is_ride(self.sport) and self.streams.has("watts") and not settings.cycling_ftp:
            return True
        if is_run(self.sport) and not settings.running_ftp:
            return True
        if is_swim(self.sport) and not settings.swim_ftp:
            return True
        return False

    def _base_stats(self) -> ActivityStats:
        elapsed = float(self.time[-1] - self.time[0])
        velocity = np.asarray(self.streams.velocity, dtype=float)

        if velocity.size:
            moving = float(self.dt[velocity > MOVING_SPEED_THRESHOLD].sum())
            max_speed = float(velocity.max())
        else:
            moving = elapsed
            max_speed = None

        distance = None
        if self.streams.has("distance"):
            distance = float(self.streams.distance[-1] - self.streams.distance[0])

        elevation_gain = None
        if self.streams.has("altitude"):
            climbs = np.diff(np.asarray(self.streams.altitude, dtype=float))
            elevation_gain = float(climbs[climbs > 0].sum())

        # Source file totals win over computed ones
        source = self.source_data
        if source.elapsed_time_raw is not None:
            elapsed = source.elapsed_time_raw
        if source.moving_time_raw is not None:
            moving = source.moving_time_raw
        if source.distance_raw is not None:
            distance = source.distance_raw
        if source.elevation_gain_raw is not None:
            elevation_gain = source.elevation_gain_raw

        avg_cadence = None
        if self.streams.has("cadence"):
            cadence = np.asarray(self.streams.cadence, dtype=float)
            active = cadence[cadence > 0]
            avg_cadence = float(active.mean()) if active.size else None

        return ActivityStats(
            distance=distance,
            elevation_gain=elevation_gain,
            elapsed_time=elapsed,
            moving_time=moving,
            pause_time=max(elapsed - moving, 0),
            avg_speed=distance / moving if distance and moving else None,
            max_speed=max_speed,
            avg_cadence=avg_cadence,
        )

    def _heart_rate_stats(self) -> Tuple[Optional[HeartRateStats], Optional[float], Optional[float]]:
        if not self.streams.has("heartrate"):
            return None, None, None

        settings = self.snapshot.athlete_settings
        heart_rate = np.asarray(self.streams.heartrate, dtype=float)
        k1, k2 = TRIMP_FACTORS[self.snapshot.gender]
        reserve = settings.max_hr - settings.rest_hr

        hrr = np.clip((heart_rate - settings.rest_hr) / reserve, 0, 1)
        trimp = float(np.sum(self.dt / 60 * hrr * k1 * np.exp(k2 * hrr)))

        lthr = resolve_lthr(self.snapshot, self.sport)
        lthr_hrr = (lthr - settings.rest_hr) / reserve
        one_hour_at_threshold = 60 * lthr_hrr * k1 * math.exp(k2 * lthr_hrr)
        hrss = trimp / one_hour_at_threshold * 100 if one_hour_at_threshold > 0 else None

        total = float(self.dt.sum())
        avg = float(np.sum(heart_rate * self.dt) / total) if total > 0 else float(heart_rate.mean())

        stats = HeartRateStats(
            avg=avg,
            max=float(heart_rate.max()),
            lthr=lthr,
            avg_reserve_percent=(avg - settings.rest_hr) / reserve * 100,
            zones=_zones(heart_rate, self.dt, settings.max_hr, HEART_RATE_ZONES),
        )
        return stats, trimp, hrss

    def _power_stats(self, moving_time: float) -> Tuple[Optional[PowerStats], Optional[float]]:
        if not self.streams.has("watts"):
            return None, None

        watts = np.asarray(self.streams.watts, dtype=float)
        total = float(self.dt.sum())
        avg = float(np.sum(watts * self.dt) / total) if total > 0 else float(watts.mean())
        normalized = self.normalized_power(self.time, watts)

        ftp = self.snapshot.athlete_settings.cycling_ftp
        intensity = normalized / ftp if ftp else None

        pss = None
        if is_ride(self.sport) and ftp:
            pss = (moving_time * normalized * intensity) / (ftp * 3600) * 100

        stats = PowerStats(
            avg=avg,
            max=float(watts.max()),
            normalized=normalized,
            intensity=intensity,
            variability_index=normalized / avg if avg > 0 else None,
            work_kj=float(np.sum(watts * self.dt) / 1000),
            estimated=not self.has_power_meter,
            zones=_zones(watts, self.dt, ftp, POWER_ZONES) if ftp else [],
        )
        return stats, pss

    @staticmethod
    def normalized_power(time: np.ndarray, watts: np.ndarray) -> float:
        """Normalized power: 4th root of the mean 4th power of 30 s rolling averages."""
        if time.size < 2:
            return float(watts.mean())

        # resample at 1 Hz
        seconds = np.arange(time[0], time[-1] + 1)
        power_array = np.interp(seconds, time, watts)

        window_size = NORMALIZED_POWER_WINDOW
        if power_array.size < window_size:
            return float(power_array.mean())

        rolling_avg = np.convolve(power_array, np.ones(window_size) / window_size, mode="valid")
        return float(np.power(np.mean(np.power(rolling_avg, 4)), 0.25))

    def _running_stress_score(self, hours: float) -> Optional[float]:
        threshold_pace = self.snapshot.athlete_settings.running_ftp
        if not is_run(self.sport) or not threshold_pace or hours <= 0:
            return None

        channel = "grade_adjusted_speed" if self.streams.has("grade_adjusted_speed") else "velocity"
        if not self.streams.has(channel):
            return None

        speed = np.asarray(getattr(self.streams, channel), dtype=float)
        moving = speed > MOVING_SPEED_THRESHOLD
        if not moving.any():
            return None

        moving_dt = self.dt[moving]
        if moving_dt.sum() > 0:
            avg_speed = float(np.sum(speed[moving] * moving_dt) / moving_dt.sum())
        else:
            avg_speed = float(speed[moving].mean())
        intensity = avg_speed / (1000 / threshold_pace)
        return hours * intensity ** 2 * 100

    def _swim_stress_score(self, stats: ActivityStats, hours: float) -> Optional[float]:
        swim_ftp = self.snapshot.athlete_settings.swim_ftp
        if not is_swim(self.sport) or not swim_ftp or not stats.distance or hours <= 0:
            return None

        meters_per_minute = stats.distance / (hours * 60)
        intensity = meters_per_minute / swim_ftp
        return hours * intensity ** 3 * 100

    @staticmethod
    def _flags(stats: ActivityStats) -> List[ActivityFlag]:
        flags = []
        if stats.moving_time and stats.elapsed_time and stats.moving_time > stats.elapsed_time:
            flags.append(ActivityFlag.MOVING_TIME_GREATER_THAN_ELAPSED)

        per_hour_flags = (
            (stats.scores.hrss_per_hour, ActivityFlag.SCORE_HRSS_PER_HOUR_ABNORMAL),
            (stats.scores.pss_per_hour, ActivityFlag.SCORE_PSS_PER_HOUR_ABNORMAL),
            (stats.scores.rss_per_hour, ActivityFlag.SCORE_RSS_PER_HOUR_ABNORMAL),
            (stats.scores.sss_per_hour, ActivityFlag.SCORE_SSS_PER_HOUR_ABNORMAL),
        )
        for per_hour, flag in per_hour_flags:
            if per_hour is not None and per_hour > ABNORMAL_SCORE_PER_HOUR:
                flags.append(flag)
        return flags
