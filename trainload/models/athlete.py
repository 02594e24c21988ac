"""Athlete settings and snapshot models."""

from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import Field

from trainload.models.base import CamelModel


class Gender(str, Enum):
    """Athlete gender, used to weight heart rate impulses."""
    MEN = "men"
    WOMEN = "women"


class Lthr(CamelModel):
    """Lactate threshold heart rates per discipline."""

    default: Optional[int] = None
    cycling: Optional[int] = None
    running: Optional[int] = None


class AthleteSettings(CamelModel):
    """Physiological settings valid for a period of time."""

    max_hr: int = Field(190, gt=0)
    rest_hr: int = Field(65, gt=0)
    lthr: Lthr = Field(default_factory=Lthr)
    cycling_ftp: Optional[float] = None
    running_ftp: Optional[float] = None  # threshold pace, seconds per km
    swim_ftp: Optional[float] = None  # threshold pace, meters per minute
    weight: float = Field(75, gt=0)

    @classmethod
    def default(cls) -> "AthleteSettings":
        return cls()


class DatedAthleteSettings(CamelModel):
    """Athlete settings applying from ``since`` onwards.

    A ``since`` of None marks the settings valid forever backwards, i.e. for
    every date older than the other dated settings.
    """

    since: Optional[date] = None
    settings: AthleteSettings = Field(default_factory=AthleteSettings)

    @property
    def is_forever(self) -> bool:
        return self.since is None


class AthleteModel(CamelModel):
    """The athlete and the history of their settings."""

    gender: Gender = Gender.MEN
    dated_athlete_settings: List[DatedAthleteSettings] = Field(default_factory=list)


class AthleteSnapshot(CamelModel):
    """Athlete settings resolved for a given activity date."""

    gender: Gender = Gender.MEN
    athlete_settings: AthleteSettings = Field(default_factory=AthleteSettings)
