"""Fitness trend data models."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from trainload.models.activity import SportType
from trainload.models.athlete import AthleteSnapshot


class HeartRateImpulseMode(str, Enum):
    """Which heart rate based score feeds the trend."""
    TRIMP = "TRIMP"
    HRSS = "HRSS"


class FitnessPreparedActivity(BaseModel):
    """An activity reduced to the stress scores eligible for the trend."""

    id: str
    name: str
    type: SportType
    date: datetime
    timestamp: float
    day_of_year: int
    year: int
    has_power_meter: bool = False
    athlete_snapshot: AthleteSnapshot
    heart_rate_stress_score: Optional[float] = None
    training_impulse_score: Optional[float] = None
    power_stress_score: Optional[float] = None
    running_stress_score: Optional[float] = None
    swim_stress_score: Optional[float] = None


class DayStress(BaseModel):
    """Summed stress of every activity done on one calendar day."""

    date: datetime
    timestamp: float
    preview_day: bool = False
    ids: List[str] = Field(default_factory=list)
    activities_name: List[str] = Field(default_factory=list)
    types: List[SportType] = Field(default_factory=list)
    athlete_snapshot: Optional[AthleteSnapshot] = None
    heart_rate_stress_score: Optional[float] = None
    training_impulse_score: Optional[float] = None
    power_stress_score: Optional[float] = None
    running_stress_score: Optional[float] = None
    swim_stress_score: Optional[float] = None
    final_stress_score: Optional[float] = None

    @classmethod
    def on(cls, day: datetime, preview_day: bool = False) -> "DayStress":
        return cls(date=day, timestamp=day.timestamp(), preview_day=preview_day)

    @property
    def has_activities(self) -> bool:
        return len(self.ids) > 0


def _print_score(value: Optional[float]) -> str:
    return str(int(value)) if value else "-"


class DayFitnessTrend(DayStress):
    """A day of the trend with its chronic, acute and balance values."""

    ctl: float = 0
    atl: float = 0
    tsb: float = 0
    previous_ctl: Optional[float] = None
    previous_atl: Optional[float] = None
    previous_tsb: Optional[float] = None

    @property
    def ctl_delta(self) -> Optional[float]:
        return None if self.previous_ctl is None else self.ctl - self.previous_ctl

    @property
    def atl_delta(self) -> Optional[float]:
        return None if self.previous_atl is None else self.atl - self.previous_atl

    @property
    def tsb_delta(self) -> Optional[float]:
        return None if self.previous_tsb is None else self.tsb - self.previous_tsb

    def print_fitness(self) -> str:
        return f"{self.ctl:.1f}"

    def print_fatigue(self) -> str:
        return f"{self.atl:.1f}"

    def print_form(self) -> str:
        return f"{self.tsb:.1f}"

    def print_final_stress_score(self) -> str:
        return _print_score(self.final_stress_score)

    def print_heart_rate_stress_score(self) -> str:
        return _print_score(self.heart_rate_stress_score)

    def print_power_stress_score(self) -> str:
        return _print_score(self.power_stress_score)
