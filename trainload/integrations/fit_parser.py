"""FIT file parser built on fitparse."""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import fitparse

from trainload.exceptions import ActivityFileParseError, EmptyActivityFileError
from trainload.integrations.parsed_activity import (
    ParsedActivity,
    ParsedEvent,
    StatKey,
    TrackSample,
    build_activity,
    ensure_utc,
)

logger = logging.getLogger(__name__)

SEMICIRCLES_TO_DEGREES = 180.0 / 2 ** 31

# (sport, sub_sport) pairs refining the FIT sport name
SUB_SPORT_TYPES = {
    ("cycling", "indoor_cycling"): "indoor_cycling",
    ("cycling", "virtual_activity"): "virtual_cycling",
    ("cycling", "mountain"): "mountain_biking",
    ("cycling", "e_bike_fitness"): "e_bike_fitness",
    ("cycling", "e_bike_mountain"): "e_bike_mountain",
    ("cycling", "hand_cycling"): "hand_cycling",
    ("running", "treadmill"): "treadmill",
    ("running", "trail"): "trail_running",
    ("running", "virtual_activity"): "virtual_running",
    ("running", "indoor_running"): "indoor_running",
    ("swimming", "open_water"): "open_water_swimming",
    ("swimming", "lap_swimming"): "lap_swimming",
    ("walking", "indoor_walking"): "indoor_walking",
    ("rowing", "indoor_rowing"): "indoor_rowing",
    ("training", "strength_training"): "strength_training",
    ("training", "yoga"): "yoga",
}

TRAINER_SUB_SPORTS = {"indoor_cycling", "virtual_activity", "treadmill", "indoor_running", "indoor_rowing"}


def source_sport_type(sport: Any, sub_sport: Any) -> Optional[str]:
    """Library sport name for a FIT sport and sub sport."""
    if sport is None:
        return None
    sport = str(sport)
    return SUB_SPORT_TYPES.get((sport, str(sub_sport)), sport)


class FITParser:
    """Parser for FIT files producing normalized activities."""

    def parse(self, fit_path: Path) -> ParsedEvent:
        """Parse a FIT file.

        Each session message becomes an activity holding the records of its
        time window. Files without session fall back to a single activity.

        Args:
            fit_path: Path to FIT file

        Returns:
            Parsed event

        Raises:
            EmptyActivityFileError: If the file carries no record
            ActivityFileParseError: If the file is corrupted
        """
        try:
            fitfile = fitparse.FitFile(str(fit_path))
            sessions = [message.get_values() for message in fitfile.get_messages("session")]
            records = [message.get_values() for message in fitfile.get_messages("record")]
            sports = [message.get_values() for message in fitfile.get_messages("sport")]
        except fitparse.FitParseError as e:
            raise ActivityFileParseError(f"Invalid FIT file {fit_path}: {e}") from e

        samples = [sample for sample in (self._to_sample(record) for record in records) if sample]
        if not samples:
            raise EmptyActivityFileError(f"No record found in {fit_path}")

        activities: List[ParsedActivity] = []
        if sessions:
            for session in sessions:
                activity = self._session_activity(session, samples)
                if activity is not None:
                    activities.append(activity)
        else:
            sport = sports[0] if sports else {}
            activities.append(
                build_activity(
                    samples,
                    source_sport_type(sport.get("sport"), sport.get("sub_sport")),
                    trainer=str(sport.get("sub_sport")) in TRAINER_SUB_SPORTS,
                )
            )

        logger.info(f"Parsed FIT file with {len(samples)} data points and {len(activities)} activities")
        return ParsedEvent(file_path=str(fit_path), activities=activities)

    def _session_activity(self, session: Dict[str, Any], samples: List[TrackSample]) -> Optional[ParsedActivity]:
        start = session.get("start_time")
        elapsed = session.get("total_elapsed_time")
        if start is None:
            return None
        start = ensure_utc(start)
        end = start + timedelta(seconds=elapsed) if elapsed else None

        in_session = [
            s for s in samples
            if ensure_utc(s.timestamp) >= start and (end is None or ensure_utc(s.timestamp) <= end)
        ]
        if not in_session:
            logger.warning(f"Session started {start.isoformat()} holds no record, skipped")
            return None

        summary: Dict[StatKey, Optional[float]] = {
            StatKey.DISTANCE: session.get("total_distance"),
            StatKey.DURATION: elapsed,
            StatKey.ASCENT: session.get("total_ascent"),
            StatKey.AVG_SPEED: self._first(session, "enhanced_avg_speed", "avg_speed"),
            StatKey.MAX_SPEED: self._first(session, "enhanced_max_speed", "max_speed"),
        }
        timer = session.get("total_timer_time")
        if elapsed is not None and timer is not None:
            summary[StatKey.PAUSE] = max(elapsed - timer, 0)

        sub_sport = session.get("sub_sport")
        return build_activity(
            in_session,
            source_sport_type(session.get("sport"), sub_sport),
            trainer=str(sub_sport) in TRAINER_SUB_SPORTS,
            summary=summary,
            start_time=start,
            end_time=end,
        )

    def _to_sample(self, record: Dict[str, Any]) -> Optional[TrackSample]:
        timestamp = record.get("timestamp")
        if timestamp is None:
            return None

        return TrackSample(
            timestamp=ensure_utc(timestamp),
            latitude=self._degrees(record.get("position_lat")),
            longitude=self._degrees(record.get("position_long")),
            altitude=self._first(record, "enhanced_altitude", "altitude"),
            distance=record.get("distance"),
            speed=self._first(record, "enhanced_speed", "speed"),
            heart_rate=record.get("heart_rate"),
            cadence=record.get("cadence"),
            power=record.get("power"),
        )

    @staticmethod
    def _degrees(value: Optional[float]) -> Optional[float]:
        """Convert semicircles to degrees if needed."""
        if value is None:
            return None
        return value * SEMICIRCLES_TO_DEGREES if abs(value) > 180 else float(value)

    @staticmethod
    def _first(values: Dict[str, Any], *names: str) -> Optional[float]:
        for name in names:
            if values.get(name) is not None:
                return values[name]
        return None
