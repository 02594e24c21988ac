"""Sport type classification of parsed activities."""

import logging
import math
import re
from typing import Dict, NamedTuple, Optional

from trainload.models.activity import SportType

logger = logging.getLogger(__name__)

# Source vocabularies (FIT sport/sub_sport, TCX Sport attribute, GPX <type>),
# normalized with ``normalize_source_type``.
SOURCE_SPORT_TYPES_MAP: Dict[str, SportType] = {
    "cycling": SportType.RIDE,
    "biking": SportType.RIDE,
    "bike": SportType.RIDE,
    "ride": SportType.RIDE,
    "roadcycling": SportType.RIDE,
    "gravelcycling": SportType.RIDE,
    "cyclocross": SportType.RIDE,
    "mountainbiking": SportType.RIDE,
    "indoorcycling": SportType.RIDE,
    "trackcycling": SportType.RIDE,
    "bmx": SportType.RIDE,
    "recumbent": SportType.RIDE,
    "bikecommute": SportType.RIDE,
    "virtualcycling": SportType.VIRTUAL_RIDE,
    "virtualride": SportType.VIRTUAL_RIDE,
    "ebikeride": SportType.EBIKE_RIDE,
    "ebiking": SportType.EBIKE_RIDE,
    "ebikefitness": SportType.EBIKE_RIDE,
    "ebikemountain": SportType.EBIKE_RIDE,
    "handcycle": SportType.HANDCYCLE,
    "handcycling": SportType.HANDCYCLE,
    "velomobile": SportType.VELOMOBILE,
    "running": SportType.RUN,
    "run": SportType.RUN,
    "trailrunning": SportType.RUN,
    "treadmill": SportType.RUN,
    "indoorrunning": SportType.RUN,
    "virtualrunning": SportType.VIRTUAL_RUN,
    "virtualrun": SportType.VIRTUAL_RUN,
    "swimming": SportType.SWIM,
    "swim": SportType.SWIM,
    "lapswimming": SportType.SWIM,
    "openwater": SportType.SWIM,
    "openwaterswimming": SportType.SWIM,
    "walking": SportType.WALK,
    "walk": SportType.WALK,
    "nordicwalking": SportType.WALK,
    "indoorwalking": SportType.WALK,
    "hiking": SportType.HIKE,
    "hike": SportType.HIKE,
    "trekking": SportType.HIKE,
    "mountaineering": SportType.HIKE,
    "alpineskiing": SportType.ALPINE_SKI,
    "alpineski": SportType.ALPINE_SKI,
    "backcountry": SportType.BACKCOUNTRY_SKI,
    "backcountryskiing": SportType.BACKCOUNTRY_SKI,
    "crosscountryskiing": SportType.NORDIC_SKI,
    "nordicskiing": SportType.NORDIC_SKI,
    "skatingskiing": SportType.NORDIC_SKI,
    "snowboarding": SportType.SNOWBOARD,
    "snowshoeing": SportType.SNOWSHOE,
    "iceskating": SportType.ICE_SKATE,
    "inlineskating": SportType.INLINE_SKATE,
    "skateboarding": SportType.SKATEBOARD,
    "rowing": SportType.ROWING,
    "indoorrowing": SportType.ROWING,
    "kayaking": SportType.KAYAKING,
    "canoeing": SportType.CANOEING,
    "paddling": SportType.CANOEING,
    "standuppaddleboarding": SportType.STAND_UP_PADDLING,
    "surfing": SportType.SURFING,
    "kitesurfing": SportType.KITESURF,
    "windsurfing": SportType.WINDSURF,
    "sailing": SportType.SAIL,
    "rockclimbing": SportType.ROCK_CLIMBING,
    "climbing": SportType.ROCK_CLIMBING,
    "indoorclimbing": SportType.ROCK_CLIMBING,
    "strengthtraining": SportType.WEIGHT_TRAINING,
    "weighttraining": SportType.WEIGHT_TRAINING,
    "training": SportType.WORKOUT,
    "generic": SportType.WORKOUT,
    "workout": SportType.WORKOUT,
    "cardiotraining": SportType.WORKOUT,
    "fitnessequipment": SportType.WORKOUT,
    "crossfit": SportType.CROSSFIT,
    "elliptical": SportType.ELLIPTICAL,
    "stairclimbing": SportType.STAIR_STEPPER,
    "stairstepper": SportType.STAIR_STEPPER,
    "yoga": SportType.YOGA,
    "wheelchair": SportType.WHEELCHAIR,
    "wheelchairpushrun": SportType.WHEELCHAIR,
    "wheelchairpushwalk": SportType.WHEELCHAIR,
    "golf": SportType.GOLF,
    "soccer": SportType.SOCCER,
    "tennis": SportType.TENNIS,
}

# Calibration constants of the common sport heuristic
MAX_CYCLING_SPEED_THRESHOLD = 100 / 3.6  # m/s
MAX_RUNNING_SPEED_THRESHOLD = 40 / 3.6  # m/s
DECISION_SECURE_TOLERANCE = 0.2
RUNNING_PERF_RATIO = 0.8
RUNNING_MODEL_Y0 = 21.485097981749487
RUNNING_MODEL_A = 7.086180143945561
RUNNING_MODEL_X0 = -0.19902800428936693


class SportClassification(NamedTuple):
    type: SportType
    auto_detected: bool


def normalize_source_type(source_type: Optional[str]) -> str:
    """Lowercase a library sport name and strip separators."""
    return re.sub(r"[^a-z0-9]", "", (source_type or "").lower())


def max_avg_running_speed_for_distance(meters: float) -> float:
    """Max average speed (m/s) a well trained runner can hold over a distance.

    Inverse model fitted on elite performances over 0.4, 1, 5, 10, 21 and
    42 km, scaled to 80% of world class level.
    """
    kph = RUNNING_MODEL_Y0 + RUNNING_MODEL_A / (meters / 1000 - RUNNING_MODEL_X0)
    return (kph / 3.6) * RUNNING_PERF_RATIO


def is_assisted(distance: float, duration: float, ascent: float) -> bool:
    """Whether the climbing rate suggests mechanical assistance (lift, car...)."""
    effort = (distance / 1000) * (duration / 60)
    if effort == 0:
        return ascent != 0
    return (ascent ** 2 / effort) / 1000 >= 1


def ride_highlight(avg_speed: float, max_speed: float) -> float:
    """Cubic discriminant of a speed profile, rides score above 1, runs below."""
    return ((math.pow(max_speed - avg_speed, 3) * math.pow(max_speed, 4)) / math.pow(10, 4)) * 2 / 5


def sport_from_ride_highlight(highlight: float) -> SportType:
    """Ride or Run outside the tolerance band around 1, Other inside it (bounds included)."""
    if highlight > 1 + DECISION_SECURE_TOLERANCE:
        return SportType.RIDE
    if highlight < 1 - DECISION_SECURE_TOLERANCE:
        return SportType.RUN
    return SportType.OTHER


def attempt_detect_common_sport(
    distance: Optional[float],
    duration: Optional[float],
    ascent: Optional[float],
    avg_speed: Optional[float],
    max_speed: Optional[float]
) -> SportType:
    """Guess Ride or Run from summary statistics.

    Args:
        distance: Distance in meters
        duration: Duration in seconds
        ascent: Elevation gain in meters
        avg_speed: Average speed in m/s
        max_speed: Max speed in m/s

    Returns:
        Ride, Run, or Other when inconclusive
    """
    distance = distance or 0
    duration = duration or 0
    ascent = ascent or 0
    avg_speed = avg_speed or 0
    max_speed = max_speed or 0

    if max_speed > 0:
        if max_speed >= MAX_CYCLING_SPEED_THRESHOLD or max_speed >= MAX_RUNNING_SPEED_THRESHOLD:
            return SportType.OTHER if is_assisted(distance, duration, ascent) else SportType.RIDE

    if avg_speed > 0 and distance > 0 and max_speed > 0:
        max_avg_running_speed = max_avg_running_speed_for_distance(distance)

        grade = (ascent / distance) * 1000
        grade_speed = avg_speed + avg_speed * (grade / 100) * 1.5

        if grade_speed > max_avg_running_speed:
            return SportType.OTHER if is_assisted(distance, duration, ascent) else SportType.RIDE

        return sport_from_ride_highlight(ride_highlight(avg_speed, max_speed))

    return SportType.OTHER


class SportTypeClassifier:
    """Map source sport names to the internal sport enumeration."""

    def __init__(self, detect_when_unknown: bool = True):
        """Initialize classifier.

        Args:
            detect_when_unknown: Run the speed heuristic on unmapped sports
        """
        self.detect_when_unknown = detect_when_unknown

    def classify(
        self,
        source_type: Optional[str],
        distance: Optional[float] = None,
        duration: Optional[float] = None,
        ascent: Optional[float] = None,
        avg_speed: Optional[float] = None,
        max_speed: Optional[float] = None
    ) -> SportClassification:
        mapped = SOURCE_SPORT_TYPES_MAP.get(normalize_source_type(source_type))
        if mapped is not None:
            return SportClassification(mapped, False)

        if not self.detect_when_unknown:
            return SportClassification(SportType.OTHER, False)

        detected = attempt_detect_common_sport(distance, duration, ascent, avg_speed, max_speed)
        if detected != SportType.OTHER:
            logger.info(f"Detected sport {detected.value} for unknown source type '{source_type}'")
        return SportClassification(detected, detected != SportType.OTHER)
