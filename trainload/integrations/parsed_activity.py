"""Library neutral parse results and track sample normalization."""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, Field

from trainload.exceptions import ActivityFileParseError, StreamNotFound

EARTH_RADIUS_METERS = 6371008.8
MOVING_SPEED_THRESHOLD = 0.5  # m/s
GRADE_SMOOTHING_WINDOW = 5
MAX_GRADE = 40.0  # percent
TRANSITION_SOURCE_TYPES = {"transition", "multisport"}
RUNNING_SOURCE_TYPES = {"running", "run", "trailrunning", "treadmill", "virtualrunning", "indoorrunning"}


class StatKey(str, Enum):
    """Summary statistics exposed by a parsed activity."""
    DISTANCE = "distance"
    DURATION = "duration"
    PAUSE = "pause"
    ASCENT = "ascent"
    AVG_SPEED = "avg_speed"
    MAX_SPEED = "max_speed"


class StreamChannel(str, Enum):
    """Sample channels exposed by a parsed activity."""
    TIME = "time"
    LATITUDE = "latitude"
    LONGITUDE = "longitude"
    DISTANCE = "distance"
    SPEED = "speed"
    HEART_RATE = "heart_rate"
    ALTITUDE = "altitude"
    CADENCE = "cadence"
    POWER = "power"
    GRADE = "grade"
    GRADE_ADJUSTED_SPEED = "grade_adjusted_speed"


class ParsedActivity(BaseModel):
    """One activity read from a file, in library neutral form."""

    source_type: Optional[str] = None
    start_time: datetime
    end_time: datetime
    has_power_meter: bool = False
    trainer: bool = False
    stats: Dict[StatKey, float] = Field(default_factory=dict)
    streams: Dict[StreamChannel, List[float]] = Field(default_factory=dict)

    @property
    def is_transition(self) -> bool:
        return _normalize(self.source_type) in TRANSITION_SOURCE_TYPES

    def get_stat(self, key: StatKey) -> Optional[float]:
        return self.stats.get(key)

    def get_stream(self, channel: StreamChannel) -> List[float]:
        """Samples of a channel.

        Raises:
            StreamNotFound: If the file carries no sample for the channel
        """
        values = self.streams.get(channel)
        if not values:
            raise StreamNotFound(channel.value)
        return values


class ParsedEvent(BaseModel):
    """Everything parsed from one activity file."""

    file_path: str
    activities: List[ParsedActivity] = Field(default_factory=list)


class TrackSample(BaseModel):
    """One raw record of a track, any field may be missing."""

    timestamp: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    distance: Optional[float] = None
    speed: Optional[float] = None
    heart_rate: Optional[float] = None
    cadence: Optional[float] = None
    power: Optional[float] = None


def _normalize(value: Optional[str]) -> str:
    return "".join(ch for ch in (value or "").lower() if ch.isalnum())


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great circle distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def minetti_cost_of_running(grade: np.ndarray) -> np.ndarray:
    """Energy cost of running (J/kg/m) on a slope given as a fraction."""
    grade = np.clip(grade, -0.45, 0.45)
    return (
        155.4 * grade ** 5 - 30.4 * grade ** 4 - 43.3 * grade ** 3
        + 46.3 * grade ** 2 + 19.5 * grade + 3.6
    )


def _channel(samples: Sequence[TrackSample], field: str) -> Optional[np.ndarray]:
    """Gap filled channel values, None when no sample carries the field."""
    values = np.array(
        [np.nan if getattr(s, field) is None else float(getattr(s, field)) for s in samples],
        dtype=float,
    )
    valid = ~np.isnan(values)
    if not valid.any():
        return None
    # forward fill, then back fill the leading gap
    index = np.where(valid, np.arange(values.size), 0)
    np.maximum.accumulate(index, out=index)
    filled = values[index]
    first = int(np.argmax(valid))
    filled[:first] = values[first]
    return filled


def _smooth(values: np.ndarray, window: int) -> np.ndarray:
    """Centered moving average, edges padded with the edge values."""
    window = max(1, min(window, values.size))
    if window == 1:
        return values.astype(float)
    left = window // 2
    padded = np.pad(values.astype(float), (left, window - 1 - left), mode="edge")
    return np.convolve(padded, np.ones(window) / window, mode="valid")


def build_activity(
    samples: Sequence[TrackSample],
    source_type: Optional[str],
    trainer: bool = False,
    summary: Optional[Dict[StatKey, float]] = None,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None
) -> ParsedActivity:
    """Turn raw track samples into a parsed activity.

    Missing distance and speed channels are derived from positions, grade is
    derived from altitude over distance and grade adjusted speed is added for
    running sports. Values from ``summary`` take precedence over computed stats.

    Raises:
        ActivityFileParseError: If there is no timestamped sample
    """
    samples = sorted(samples, key=lambda s: s.timestamp)
    if not samples:
        raise ActivityFileParseError("No timestamped samples found")

    start = ensure_utc(start_time or samples[0].timestamp)
    end = ensure_utc(end_time or samples[-1].timestamp)
    time = np.array([(ensure_utc(s.timestamp) - start).total_seconds() for s in samples])

    streams: Dict[StreamChannel, List[float]] = {StreamChannel.TIME: time.tolist()}

    latitude = _channel(samples, "latitude")
    longitude = _channel(samples, "longitude")
    if latitude is not None and longitude is not None:
        streams[StreamChannel.LATITUDE] = latitude.tolist()
        streams[StreamChannel.LONGITUDE] = longitude.tolist()

    distance = _channel(samples, "distance")
    if distance is None and StreamChannel.LATITUDE in streams:
        steps = [0.0] + [
            haversine(latitude[i - 1], longitude[i - 1], latitude[i], longitude[i])
            for i in range(1, latitude.size)
        ]
        distance = np.cumsum(steps)

    speed = _channel(samples, "speed")
    if speed is None and distance is not None and time.size > 1:
        dt = np.diff(time, prepend=time[0])
        dd = np.diff(distance, prepend=distance[0])
        speed = np.divide(dd, dt, out=np.zeros_like(dd), where=dt > 0)

    altitude = _channel(samples, "altitude")

    for channel, values in (
        (StreamChannel.DISTANCE, distance),
        (StreamChannel.SPEED, speed),
        (StreamChannel.HEART_RATE, _channel(samples, "heart_rate")),
        (StreamChannel.ALTITUDE, altitude),
        (StreamChannel.CADENCE, _channel(samples, "cadence")),
        (StreamChannel.POWER, _channel(samples, "power")),
    ):
        if values is not None:
            streams[channel] = [float(v) for v in values]

    if altitude is not None and distance is not None and time.size > 1:
        grade = _grade(distance, altitude)
        streams[StreamChannel.GRADE] = grade.tolist()
        if speed is not None and _normalize(source_type) in RUNNING_SOURCE_TYPES:
            cost_ratio = minetti_cost_of_running(grade / 100) / minetti_cost_of_running(np.zeros(1))[0]
            streams[StreamChannel.GRADE_ADJUSTED_SPEED] = (speed * cost_ratio).tolist()

    stats = _compute_stats(time, distance, speed, altitude, (end - start).total_seconds())
    stats.update({key: float(value) for key, value in (summary or {}).items() if value is not None})

    return ParsedActivity(
        source_type=source_type,
        start_time=start,
        end_time=end,
        has_power_meter=StreamChannel.POWER in streams,
        trainer=trainer,
        stats=stats,
        streams=streams,
    )


def _grade(distance: np.ndarray, altitude: np.ndarray) -> np.ndarray:
    smoothed_altitude = _smooth(altitude, GRADE_SMOOTHING_WINDOW)
    dd = np.diff(distance, prepend=distance[0])
    da = np.diff(smoothed_altitude, prepend=smoothed_altitude[0])
    dd_window = _smooth(dd, GRADE_SMOOTHING_WINDOW)
    da_window = _smooth(da, GRADE_SMOOTHING_WINDOW)
    grade = np.divide(da_window, dd_window, out=np.zeros_like(da_window), where=dd_window > 0.1) * 100
    return np.round(np.clip(grade, -MAX_GRADE, MAX_GRADE), 1)


def _compute_stats(
    time: np.ndarray,
    distance: Optional[np.ndarray],
    speed: Optional[np.ndarray],
    altitude: Optional[np.ndarray],
    duration: float
) -> Dict[StatKey, float]:
    stats: Dict[StatKey, float] = {StatKey.DURATION: duration}

    if speed is not None and time.size > 1:
        dt = np.diff(time, prepend=time[0])
        moving = float(dt[speed > MOVING_SPEED_THRESHOLD].sum())
        stats[StatKey.PAUSE] = max(duration - moving, 0.0)
        stats[StatKey.MAX_SPEED] = float(speed.max())
        if distance is not None and moving > 0:
            stats[StatKey.AVG_SPEED] = float(distance[-1] - distance[0]) / moving

    if distance is not None:
        stats[StatKey.DISTANCE] = float(distance[-1] - distance[0])

    if altitude is not None:
        climbs = np.diff(_smooth(altitude, GRADE_SMOOTHING_WINDOW))
        stats[StatKey.ASCENT] = float(climbs[climbs > 0].sum())

    return stats
