"""Extraction of activity streams and synthesis of missing ones."""

import logging
import math

from trainload.analytics.power_estimator import estimate_cycling_power_stream
from trainload.exceptions import StreamNotFound
from trainload.integrations.parsed_activity import ParsedActivity, StreamChannel
from trainload.models.activity import ActivityStreams, SportType, is_run

logger = logging.getLogger(__name__)

LATLNG_DECIMALS = 8

POWER_ESTIMATION_TYPES = {SportType.RIDE, SportType.VIRTUAL_RIDE}

# ActivityStreams field fed by each parsed channel
CHANNEL_FIELDS = (
    (StreamChannel.DISTANCE, "distance"),
    (StreamChannel.SPEED, "velocity"),
    (StreamChannel.HEART_RATE, "heartrate"),
    (StreamChannel.ALTITUDE, "altitude"),
    (StreamChannel.CADENCE, "cadence"),
    (StreamChannel.POWER, "watts"),
    (StreamChannel.GRADE, "grade"),
)


def _floor(value: float, decimals: int) -> float:
    factor = 10 ** decimals
    return math.floor(value * factor) / factor


class StreamSynthesizer:
    """Build the canonical streams of an activity."""

    def extract_activity_streams(self, parsed: ParsedActivity, sport: SportType) -> ActivityStreams:
        """Copy every available channel of a parsed activity.

        A missing channel is logged and left empty.

        Args:
            parsed: Parsed activity
            sport: Internal sport type of the activity

        Returns:
            Activity streams
        """
        data = {"time": parsed.get_stream(StreamChannel.TIME)}

        try:
            latitudes = parsed.get_stream(StreamChannel.LATITUDE)
            longitudes = parsed.get_stream(StreamChannel.LONGITUDE)
            data["latlng"] = [
                [_floor(lat, LATLNG_DECIMALS), _floor(lng, LATLNG_DECIMALS)]
                for lat, lng in zip(latitudes, longitudes)
            ]
        except StreamNotFound as e:
            logger.info(f"No latlng stream: {e}")

        channels = list(CHANNEL_FIELDS)
        if is_run(sport):
            channels.append((StreamChannel.GRADE_ADJUSTED_SPEED, "grade_adjusted_speed"))

        for channel, field in channels:
            try:
                data[field] = parsed.get_stream(channel)
            except StreamNotFound as e:
                logger.info(f"No {field} stream: {e}")

        return ActivityStreams.model_validate(data)

    def compute_additional_streams(
        self,
        streams: ActivityStreams,
        sport: SportType,
        has_power_meter: bool,
        rider_weight_kg: float
    ) -> ActivityStreams:
        """Add an estimated watts stream to rides without power meter.

        Estimation failures are logged and the streams returned unchanged.
        """
        if has_power_meter or sport not in POWER_ESTIMATION_TYPES or not streams.has("grade"):
            return streams

        try:
            watts = estimate_cycling_power_stream(streams.velocity, streams.grade, rider_weight_kg)
            return streams.with_channel("watts", watts)
        except (ValueError, TypeError) as e:
            logger.info(f"Unable to estimate power stream: {e}")
            return streams
