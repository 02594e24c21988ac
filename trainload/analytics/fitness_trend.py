"""
Fitness trend computation.

Activities are reduced to their eligible stress scores, folded into one
stress record per calendar day, then run through the impulse-response
model to get the chronic training load (CTL, fitness), the acute training
load (ATL, fatigue) and the training stress balance (TSB, form).
"""

import logging
import math
from datetime import date, datetime, timedelta
from typing import Callable, List, NamedTuple, Optional

import polars as pl

from trainload.config import (
    ATL_TIME_CONSTANT_DAYS,
    CTL_TIME_CONSTANT_DAYS,
    FUTURE_DAYS_PREVIEW,
    FitnessTrendConfig,
    UserSettings,
)
from trainload.exceptions import FitnessTrendError
from trainload.models.activity import ActivityFlag, SyncedActivity, is_ride, is_run, is_swim
from trainload.models.fitness import DayFitnessTrend, DayStress, FitnessPreparedActivity, HeartRateImpulseMode

logger = logging.getLogger(__name__)

SCORE_FIELDS = (
    "heart_rate_stress_score",
    "training_impulse_score",
    "power_stress_score",
    "running_stress_score",
    "swim_stress_score",
)

CTL_DECAY = 1 - math.exp(-1 / CTL_TIME_CONSTANT_DAYS)
ATL_DECAY = 1 - math.exp(-1 / ATL_TIME_CONSTANT_DAYS)


class StressScorePriority(NamedTuple):
    name: str
    applies: Callable[[FitnessPreparedActivity], bool]
    score: Callable[[FitnessPreparedActivity], Optional[float]]


# First matching entry gives the activity's share of the day final stress score
FINAL_STRESS_SCORE_PRIORITIES: List[StressScorePriority] = [
    StressScorePriority(
        "power_with_meter",
        lambda a: bool(a.power_stress_score) and a.has_power_meter,
        lambda a: a.power_stress_score,
    ),
    StressScorePriority(
        "heart_rate",
        lambda a: bool(a.heart_rate_stress_score),
        lambda a: a.heart_rate_stress_score,
    ),
    StressScorePriority(
        "training_impulse",
        lambda a: bool(a.training_impulse_score),
        lambda a: a.training_impulse_score,
    ),
    StressScorePriority(
        "estimated_power",
        lambda a: bool(a.power_stress_score) and not a.has_power_meter,
        lambda a: a.power_stress_score,
    ),
    StressScorePriority(
        "running",
        lambda a: bool(a.running_stress_score),
        lambda a: a.running_stress_score,
    ),
    StressScorePriority(
        "swim",
        lambda a: bool(a.swim_stress_score),
        lambda a: a.swim_stress_score,
    ),
]


def final_stress_score_of(activity: FitnessPreparedActivity) -> Optional[float]:
    """Score an activity adds to its day final stress score, if any."""
    for priority in FINAL_STRESS_SCORE_PRIORITIES:
        if priority.applies(activity):
            return priority.score(activity)
    return None


def local_datetime(value: datetime) -> datetime:
    """Naive wall clock datetime in the local timezone."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def start_of_day(value) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime(value.year, value.month, value.day)


def _add(total: Optional[float], value: float) -> float:
    return (total or 0) + value


class FitnessService:
    """Compute the day by day fitness trend of stored activities."""

    def __init__(self, activity_source, today_provider: Callable[[], date] = None):
        """
        Initialize fitness service.

        Args:
            activity_source: Object exposing ``fetch() -> List[SyncedActivity]``
            today_provider: Returns the current day (defaults to date.today)
        """
        self.activity_source = activity_source
        self.today_provider = today_provider or date.today

    def prepare(
        self,
        config: FitnessTrendConfig,
        user_settings: Optional[UserSettings] = None
    ) -> List[FitnessPreparedActivity]:
        """
        Assign eligible stress scores to every stored activity.

        Args:
            config: Fitness trend configuration
            user_settings: Power meter and swim toggles, skipped activity types

        Returns:
            Prepared activities ordered by date

        Raises:
            FitnessTrendError: If no activity is stored, all are filtered out,
                or one lacks athlete settings
        """
        user_settings = user_settings or UserSettings()

        activities = self.activity_source.fetch()
        if not activities:
            raise FitnessTrendError.no_activities()

        activities = self.filter_activities(
            activities, config.ignore_before_date, config.ignore_activity_name_patterns
        )
        if user_settings.skip_activity_types:
            activities = [
                activity for activity in activities
                if activity.type.value not in user_settings.skip_activity_types
            ]

        if not activities:
            raise FitnessTrendError.all_activities_filtered()

        prepared = [self._prepare_activity(activity, config, user_settings) for activity in activities]
        prepared.sort(key=lambda activity: activity.date)

        logger.info(f"Prepared {len(prepared)} activities for fitness trend")
        return prepared

    def _prepare_activity(
        self,
        activity: SyncedActivity,
        config: FitnessTrendConfig,
        user_settings: UserSettings
    ) -> FitnessPreparedActivity:
        if activity.athlete_snapshot is None:
            logger.error(f"Activity {activity.id} has no athlete settings")
            raise FitnessTrendError.missing_athlete_settings()

        settings = activity.athlete_snapshot.athlete_settings
        stress = activity.stress
        mode = config.heart_rate_impulse_mode
        not_trimp = mode != HeartRateImpulseMode.TRIMP

        def score(name: str) -> float:
            return getattr(stress, name) or 0

        has_heart_rate_data = not activity.has_flag(ActivityFlag.SCORE_HRSS_PER_HOUR_ABNORMAL) and (
            (mode == HeartRateImpulseMode.TRIMP and score("trimp") > 0)
            or (mode == HeartRateImpulseMode.HRSS and score("hrss") > 0)
        )

        has_power_data = (
            not activity.has_flag(ActivityFlag.SCORE_PSS_PER_HOUR_ABNORMAL)
            and is_ride(activity.type, exclude_electric=True)
            and user_settings.power_meter_enable
            and not_trimp
            and (settings.cycling_ftp or 0) > 0
            and (activity.has_power_meter or config.allow_estimated_power_stress_score)
            and score("pss") > 0
        )

        has_running_data = (
            not activity.has_flag(ActivityFlag.SCORE_RSS_PER_HOUR_ABNORMAL)
            and is_run(activity.type)
            and not_trimp
            and (settings.running_ftp or 0) > 0
            and score("rss") > 0
            and config.allow_estimated_running_stress_score
        )

        has_swim_data = (
            not activity.has_flag(ActivityFlag.SCORE_SSS_PER_HOUR_ABNORMAL)
            and user_settings.swim_enable
            and is_swim(activity.type)
            and not_trimp
            and (settings.swim_ftp or 0) > 0
            and score("sss") > 0
        )

        start = local_datetime(activity.start_time)
        prepared = FitnessPreparedActivity(
            id=activity.id,
            name=activity.name,
            type=activity.type,
            date=start,
            timestamp=activity.start_time.timestamp(),
            day_of_year=start.timetuple().tm_yday,
            year=start.year,
            has_power_meter=activity.has_power_meter,
            athlete_snapshot=activity.athlete_snapshot,
        )

        if has_heart_rate_data:
            if mode == HeartRateImpulseMode.TRIMP:
                prepared.training_impulse_score = stress.trimp
            else:
                prepared.heart_rate_stress_score = stress.hrss
        if has_power_data:
            prepared.power_stress_score = stress.pss
        if has_running_data:
            prepared.running_stress_score = stress.rss
        if has_swim_data:
            prepared.swim_stress_score = stress.sss

        return prepared

    @staticmethod
    def filter_activities(
        activities: List[SyncedActivity],
        ignore_before_date: Optional[date] = None,
        ignore_activity_name_patterns: Optional[List[str]] = None
    ) -> List[SyncedActivity]:
        """
        Drop activities before a date or whose name contains a pattern.

        Args:
            activities: Activities to filter
            ignore_before_date: Activities on earlier days are dropped
            ignore_activity_name_patterns: Case sensitive name substrings

        Returns:
            Kept activities, in input order
        """
        patterns = ignore_activity_name_patterns or []

        def keep(activity: SyncedActivity) -> bool:
            if ignore_before_date and local_datetime(activity.start_time).date() < ignore_before_date:
                return False
            return not any(pattern in activity.name for pattern in patterns)

        return [activity for activity in activities if keep(activity)]

    def generate_daily_stress(
        self,
        config: FitnessTrendConfig,
        user_settings: Optional[UserSettings] = None
    ) -> List[DayStress]:
        """
        Stress of every day from the day before the first activity to today,
        or to the last activity day when it is later, followed by the preview days.

        Raises:
            FitnessTrendError: See ``prepare``
        """
        prepared = self.prepare(config, user_settings)

        current_day = start_of_day(prepared[0].date) - timedelta(days=1)
        last_day = max(start_of_day(self.today_provider()), start_of_day(prepared[-1].date))

        daily_stress: List[DayStress] = []
        while current_day <= last_day:
            daily_stress.append(self.day_stress_on_date(current_day, prepared))
            if current_day == last_day:
                break
            current_day += timedelta(days=1)

        self.append_preview_days(current_day, daily_stress)
        return daily_stress

    @staticmethod
    def day_stress_on_date(day: datetime, prepared: List[FitnessPreparedActivity]) -> DayStress:
        """Sum the scores of the activities done on a day."""
        day = start_of_day(day)
        day_of_year = day.timetuple().tm_yday
        day_stress = DayStress.on(day)

        for activity in prepared:
            if activity.year != day.year or activity.day_of_year != day_of_year:
                continue

            day_stress.ids.append(activity.id)
            day_stress.activities_name.append(activity.name)
            day_stress.types.append(activity.type)
            day_stress.athlete_snapshot = activity.athlete_snapshot

            for field in SCORE_FIELDS:
                value = getattr(activity, field)
                if value is not None:
                    setattr(day_stress, field, _add(getattr(day_stress, field), value))

            final_score = final_stress_score_of(activity)
            if final_score is not None:
                day_stress.final_stress_score = _add(day_stress.final_stress_score, final_score)

        return day_stress

    @staticmethod
    def append_preview_days(start_from: datetime, daily_stress: List[DayStress]):
        """Append the days following ``start_from`` with no activity."""
        day = start_of_day(start_from)
        for _ in range(FUTURE_DAYS_PREVIEW):
            day += timedelta(days=1)
            daily_stress.append(DayStress.on(day, preview_day=True))

    def compute_trend(
        self,
        config: FitnessTrendConfig,
        user_settings: Optional[UserSettings] = None
    ) -> List[DayFitnessTrend]:
        """
        Compute the fitness trend.

        Args:
            config: Fitness trend configuration, including an optional CTL/ATL seed
            user_settings: Power meter and swim toggles, skipped activity types

        Returns:
            One DayFitnessTrend per day, preview days included

        Raises:
            FitnessTrendError: See ``prepare``
        """
        daily_stress = self.generate_daily_stress(config, user_settings)
        seed = config.initialized_fitness_trend

        ctl = atl = tsb = 0.0
        trend: List[DayFitnessTrend] = []
        previous: Optional[DayFitnessTrend] = None

        for index, day_stress in enumerate(daily_stress):
            if index == 0:
                if seed:
                    ctl = seed.ctl if seed.ctl is not None else 0
                    atl = seed.atl if seed.atl is not None else 0
                tsb = ctl - atl
            else:
                stress = day_stress.final_stress_score or 0
                tsb = ctl - atl
                ctl = ctl + (stress - ctl) * CTL_DECAY
                atl = atl + (stress - atl) * ATL_DECAY

            day_trend = DayFitnessTrend(
                **day_stress.model_dump(exclude=set(SCORE_FIELDS) | {"final_stress_score", "athlete_snapshot"}),
                athlete_snapshot=day_stress.athlete_snapshot,
                ctl=ctl,
                atl=atl,
                tsb=tsb,
                previous_ctl=previous.ctl if previous else None,
                previous_atl=previous.atl if previous else None,
                previous_tsb=previous.tsb if previous else None,
            )

            for field in SCORE_FIELDS + ("final_stress_score",):
                value = getattr(day_stress, field)
                if value is not None and value > 0:
                    setattr(day_trend, field, value)

            trend.append(day_trend)
            previous = day_trend

        logger.info(f"Computed fitness trend over {len(trend)} days")
        return trend

    @staticmethod
    def trend_to_dataframe(trend: List[DayFitnessTrend]) -> pl.DataFrame:
        """Tabular view of a fitness trend."""
        rows = [
            {
                "date": day.date.date(),
                "preview_day": day.preview_day,
                "activities": len(day.ids),
                "final_stress_score": day.final_stress_score,
                "heart_rate_stress_score": day.heart_rate_stress_score,
                "training_impulse_score": day.training_impulse_score,
                "power_stress_score": day.power_stress_score,
                "running_stress_score": day.running_stress_score,
                "swim_stress_score": day.swim_stress_score,
                "ctl": day.ctl,
                "atl": day.atl,
                "tsb": day.tsb,
            }
            for day in trend
        ]
        schema = {
            "date": pl.Date,
            "preview_day": pl.Boolean,
            "activities": pl.Int64,
            "final_stress_score": pl.Float64,
            "heart_rate_stress_score": pl.Float64,
            "training_impulse_score": pl.Float64,
            "power_stress_score": pl.Float64,
            "running_stress_score": pl.Float64,
            "swim_stress_score": pl.Float64,
            "ctl": pl.Float64,
            "atl": pl.Float64,
            "tsb": pl.Float64,
        }
        return pl.DataFrame(rows, schema=schema)


