"""Activity data models."""

import base64
import json
import zlib
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field, model_validator

from trainload.models.athlete import AthleteSnapshot
from trainload.models.base import CamelModel


class SportType(str, Enum):
    """Internal sport enumeration."""
    RIDE = "Ride"
    VIRTUAL_RIDE = "VirtualRide"
    EBIKE_RIDE = "EBikeRide"
    HANDCYCLE = "Handcycle"
    VELOMOBILE = "Velomobile"
    RUN = "Run"
    VIRTUAL_RUN = "VirtualRun"
    SWIM = "Swim"
    WALK = "Walk"
    HIKE = "Hike"
    ALPINE_SKI = "AlpineSki"
    BACKCOUNTRY_SKI = "BackcountrySki"
    NORDIC_SKI = "NordicSki"
    SNOWBOARD = "Snowboard"
    SNOWSHOE = "Snowshoe"
    ICE_SKATE = "IceSkate"
    INLINE_SKATE = "InlineSkate"
    SKATEBOARD = "Skateboard"
    ROWING = "Rowing"
    KAYAKING = "Kayaking"
    CANOEING = "Canoeing"
    STAND_UP_PADDLING = "StandUpPaddling"
    SURFING = "Surfing"
    KITESURF = "Kitesurf"
    WINDSURF = "Windsurf"
    SAIL = "Sail"
    ROCK_CLIMBING = "RockClimbing"
    WEIGHT_TRAINING = "WeightTraining"
    WORKOUT = "Workout"
    CROSSFIT = "Crossfit"
    ELLIPTICAL = "Elliptical"
    STAIR_STEPPER = "StairStepper"
    YOGA = "Yoga"
    WHEELCHAIR = "Wheelchair"
    GOLF = "Golf"
    SOCCER = "Soccer"
    TENNIS = "Tennis"
    OTHER = "Other"


RIDE_TYPES = frozenset({SportType.RIDE, SportType.VIRTUAL_RIDE, SportType.EBIKE_RIDE})
RUN_TYPES = frozenset({SportType.RUN, SportType.VIRTUAL_RUN})
SWIM_TYPES = frozenset({SportType.SWIM})


def is_ride(sport: SportType, exclude_electric: bool = False) -> bool:
    """Whether the sport belongs to the cycling family."""
    if exclude_electric and sport == SportType.EBIKE_RIDE:
        return False
    return sport in RIDE_TYPES


def is_run(sport: SportType) -> bool:
    return sport in RUN_TYPES


def is_swim(sport: SportType) -> bool:
    return sport in SWIM_TYPES


class ActivityFileType(str, Enum):
    """Supported activity file formats."""
    GPX = "gpx"
    TCX = "tcx"
    FIT = "fit"


class ActivityFileLocation(CamelModel):
    path: str


class ActivityFile(CamelModel):
    """A supported file found while scanning the source directory."""

    type: ActivityFileType
    location: ActivityFileLocation
    last_modification_date: Optional[datetime] = None

    @property
    def path(self) -> str:
        return self.location.path


class ActivityFlag(str, Enum):
    """Quality flags raised while computing an activity."""
    MOVING_TIME_GREATER_THAN_ELAPSED = "MOVING_TIME_GREATER_THAN_ELAPSED"
    SCORE_HRSS_PER_HOUR_ABNORMAL = "SCORE_HRSS_PER_HOUR_ABNORMAL"
    SCORE_PSS_PER_HOUR_ABNORMAL = "SCORE_PSS_PER_HOUR_ABNORMAL"
    SCORE_RSS_PER_HOUR_ABNORMAL = "SCORE_RSS_PER_HOUR_ABNORMAL"
    SCORE_SSS_PER_HOUR_ABNORMAL = "SCORE_SSS_PER_HOUR_ABNORMAL"


STREAM_CHANNELS = (
    "latlng",
    "distance",
    "velocity",
    "heartrate",
    "altitude",
    "cadence",
    "watts",
    "grade",
    "grade_adjusted_speed",
)


class ActivityStreams(CamelModel):
    """Parallel sample arrays indexed like the ``time`` channel (seconds)."""

    time: List[float] = Field(default_factory=list)
    latlng: List[List[float]] = Field(default_factory=list)
    distance: List[float] = Field(default_factory=list)
    velocity: List[float] = Field(default_factory=list)
    heartrate: List[float] = Field(default_factory=list)
    altitude: List[float] = Field(default_factory=list)
    cadence: List[float] = Field(default_factory=list)
    watts: List[float] = Field(default_factory=list)
    grade: List[float] = Field(default_factory=list)
    grade_adjusted_speed: List[float] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_channel_lengths(self):
        """Every present channel must line up with the time channel."""
        for channel in STREAM_CHANNELS:
            values = getattr(self, channel)
            if values and len(values) != len(self.time):
                raise ValueError(
                    f"Stream '{channel}' has {len(values)} samples, expected {len(self.time)}"
                )
        return self

    def has(self, channel: str) -> bool:
        return bool(getattr(self, channel, None))

    def with_channel(self, channel: str, values: List[float]) -> "ActivityStreams":
        """Return a copy carrying an added or replaced channel."""
        data = self.model_dump()
        data[channel] = list(values)
        return ActivityStreams.model_validate(data)

    def deflate(self) -> str:
        """Compress the streams into a base64 zlib payload."""
        raw = json.dumps(self.to_document(), separators=(",", ":")).encode("utf-8")
        return base64.b64encode(zlib.compress(raw)).decode("ascii")

    @classmethod
    def inflate(cls, payload: str) -> "ActivityStreams":
        raw = zlib.decompress(base64.b64decode(payload))
        return cls.model_validate(json.loads(raw))


class BareActivity(CamelModel):
    """Activity identity and descriptive fields derived from a source file."""

    id: str
    name: str
    type: SportType
    start_time: datetime
    end_time: datetime
    has_power_meter: bool = False
    trainer: bool = False
    commute: Optional[bool] = None

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()


class ZoneTime(CamelModel):
    """Time spent inside one zone."""

    zone: str
    from_value: float
    to_value: Optional[float] = None
    seconds: float = 0
    percent: float = 0


class StressScores(CamelModel):
    trimp: Optional[float] = None
    trimp_per_hour: Optional[float] = None
    hrss: Optional[float] = None
    hrss_per_hour: Optional[float] = None
    pss: Optional[float] = None
    pss_per_hour: Optional[float] = None
    rss: Optional[float] = None
    rss_per_hour: Optional[float] = None
    sss: Optional[float] = None
    sss_per_hour: Optional[float] = None


class HeartRateStats(CamelModel):
    avg: Optional[float] = None
    max: Optional[float] = None
    lthr: Optional[float] = None
    avg_reserve_percent: Optional[float] = None
    zones: List[ZoneTime] = Field(default_factory=list)


class PowerStats(CamelModel):
    avg: Optional[float] = None
    max: Optional[float] = None
    normalized: Optional[float] = None
    intensity: Optional[float] = None
    variability_index: Optional[float] = None
    work_kj: Optional[float] = None
    estimated: bool = False
    zones: List[ZoneTime] = Field(default_factory=list)


class ActivityStats(CamelModel):
    """Extended statistics computed from the activity streams."""

    distance: Optional[float] = None
    elevation_gain: Optional[float] = None
    elapsed_time: Optional[float] = None
    moving_time: Optional[float] = None
    pause_time: Optional[float] = None
    avg_speed: Optional[float] = None
    max_speed: Optional[float] = None
    avg_cadence: Optional[float] = None
    heart_rate: Optional[HeartRateStats] = None
    power: Optional[PowerStats] = None
    scores: StressScores = Field(default_factory=StressScores)


class PrimitiveSourceData(CamelModel):
    """Totals reported by the source file, preferred over computed ones."""

    elapsed_time_raw: Optional[float] = None
    moving_time_raw: Optional[float] = None
    distance_raw: Optional[float] = None
    elevation_gain_raw: Optional[float] = None


class ConnectorType(str, Enum):
    """Origin of a synced activity."""
    FILE = "file"


class ActivityExtras(CamelModel):
    fs_activity_location: Optional[ActivityFileLocation] = None


class SyncedActivity(BareActivity):
    """A bare activity enriched with athlete context and computed stats."""

    start_timestamp: float
    end_timestamp: float
    connector_type: ConnectorType = ConnectorType.FILE
    auto_detected_type: bool = False
    athlete_snapshot: Optional[AthleteSnapshot] = None
    stats: Optional[ActivityStats] = None
    lat_lng_center: Optional[List[float]] = None
    settings_lack: Optional[bool] = None
    hash: Optional[str] = None
    flags: List[ActivityFlag] = Field(default_factory=list)
    extras: ActivityExtras = Field(default_factory=ActivityExtras)

    @classmethod
    def from_bare(cls, bare: BareActivity, **fields) -> "SyncedActivity":
        return cls(
            **bare.model_dump(),
            start_timestamp=bare.start_time.timestamp(),
            end_timestamp=bare.end_time.timestamp(),
            **fields,
        )

    def has_flag(self, flag: ActivityFlag) -> bool:
        return flag in self.flags

    @property
    def stress(self) -> StressScores:
        return self.stats.scores if self.stats else StressScores()


class PartialActivity(CamelModel):
    """What is known about an activity that failed to sync."""

    name: Optional[str] = None
    type: Optional[SportType] = None
    start_time: Optional[datetime] = None
    extras: ActivityExtras = Field(default_factory=ActivityExtras)


