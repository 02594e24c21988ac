"""GPX and TCX parsers built on ElementTree."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional
from xml.etree import ElementTree as ET

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


def _local(tag: str) -> str:
    """Tag name without its namespace."""
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    return (child for child in element if _local(child.tag) == name)


def _child(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    if element is None:
        return None
    return next(_children(element, name), None)


def _descendant_text(element: ET.Element, name: str) -> Optional[str]:
    """Text of the first descendant with a local name, any namespace."""
    for node in element.iter():
        if _local(node.tag) == name and node.text and node.text.strip():
            return node.text.strip()
    return None


def _to_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _to_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def _load_root(path: Path) -> ET.Element:
    try:
        return ET.parse(path).getroot()
    except (ET.ParseError, OSError) as e:
        raise ActivityFileParseError(f"Invalid XML in {path}: {e}") from e


class GPXParser:
    """Parser for GPX 1.0/1.1 tracks with Garmin track point extensions."""

    def parse(self, gpx_path: Path) -> ParsedEvent:
        """Parse a GPX file, one activity per timestamped track.

        Raises:
            EmptyActivityFileError: If no track holds timestamped points
        """
        root = _load_root(gpx_path)
        activities: List[ParsedActivity] = []

        for track in _children(root, "trk"):
            samples = [
                sample
                for segment in _children(track, "trkseg")
                for sample in (self._to_sample(point) for point in _children(segment, "trkpt"))
                if sample is not None
            ]
            if not samples:
                continue

            type_element = _child(track, "type")
            source_type = type_element.text.strip() if type_element is not None and type_element.text else None
            activities.append(build_activity(samples, source_type))

        if not activities:
            raise EmptyActivityFileError(f"No timestamped track found in {gpx_path}")

        logger.info(f"Parsed GPX file {gpx_path.name} with {len(activities)} tracks")
        return ParsedEvent(file_path=str(gpx_path), activities=activities)

    def _to_sample(self, point: ET.Element) -> Optional[TrackSample]:
        time_element = _child(point, "time")
        timestamp = _to_datetime(time_element.text if time_element is not None else None)
        if timestamp is None:
            return None

        extensions = _child(point, "extensions")
        ele = _child(point, "ele")

        return TrackSample(
            timestamp=timestamp,
            latitude=_to_float(point.get("lat")),
            longitude=_to_float(point.get("lon")),
            altitude=_to_float(ele.text) if ele is not None else None,
            heart_rate=_to_float(_descendant_text(extensions, "hr")) if extensions is not None else None,
            cadence=_to_float(_descendant_text(extensions, "cad")) if extensions is not None else None,
            power=_to_float(_descendant_text(extensions, "power")) if extensions is not None else None,
            speed=_to_float(_descendant_text(extensions, "speed")) if extensions is not None else None,
        )


class TCXParser:
    """Parser for Garmin Training Center (TCX v2) activities."""

    def parse(self, tcx_path: Path) -> ParsedEvent:
        """Parse a TCX file, one activity per Activity element.

        Raises:
            EmptyActivityFileError: If no activity holds timestamped track points
        """
        root = _load_root(tcx_path)
        activities: List[ParsedActivity] = []

        activities_element = _child(root, "Activities")
        for activity in _children(activities_element, "Activity") if activities_element is not None else []:
            parsed = self._parse_activity(activity)
            if parsed is not None:
                activities.append(parsed)

        if not activities:
            raise EmptyActivityFileError(f"No timestamped activity found in {tcx_path}")

        logger.info(f"Parsed TCX file {tcx_path.name} with {len(activities)} activities")
        return ParsedEvent(file_path=str(tcx_path), activities=activities)

    def _parse_activity(self, activity: ET.Element) -> Optional[ParsedActivity]:
        samples: List[TrackSample] = []
        timer_time = 0.0
        distance = 0.0
        has_lap_totals = False

        for lap in _children(activity, "Lap"):
            lap_time = _to_float(getattr(_child(lap, "TotalTimeSeconds"), "text", None))
            lap_distance = _to_float(getattr(_child(lap, "DistanceMeters"), "text", None))
            if lap_time is not None:
                timer_time += lap_time
                has_lap_totals = True
            if lap_distance is not None:
                distance += lap_distance

            for track in _children(lap, "Track"):
                for point in _children(track, "Trackpoint"):
                    sample = self._to_sample(point)
                    if sample is not None:
                        samples.append(sample)

        if not samples:
            return None

        start = _to_datetime(getattr(_child(activity, "Id"), "text", None))
        if start is not None and ensure_utc(start) > min(ensure_utc(s.timestamp) for s in samples):
            start = None

        parsed = build_activity(samples, activity.get("Sport"), start_time=start)
        summary = {}
        if distance > 0:
            summary[StatKey.DISTANCE] = distance
        if has_lap_totals:
            duration = parsed.stats[StatKey.DURATION]
            summary[StatKey.PAUSE] = max(duration - timer_time, 0.0)
        parsed.stats.update(summary)
        return parsed

    def _to_sample(self, point: ET.Element) -> Optional[TrackSample]:
        timestamp = _to_datetime(getattr(_child(point, "Time"), "text", None))
        if timestamp is None:
            return None

        position = _child(point, "Position")
        extensions = _child(point, "Extensions")

        return TrackSample(
            timestamp=timestamp,
            latitude=_to_float(getattr(_child(position, "LatitudeDegrees"), "text", None)),
            longitude=_to_float(getattr(_child(position, "LongitudeDegrees"), "text", None)),
            altitude=_to_float(getattr(_child(point, "AltitudeMeters"), "text", None)),
            distance=_to_float(getattr(_child(point, "DistanceMeters"), "text", None)),
            heart_rate=_to_float(getattr(_child(_child(point, "HeartRateBpm"), "Value"), "text", None)),
            cadence=_to_float(getattr(_child(point, "Cadence"), "text", None)),
            power=_to_float(_descendant_text(extensions, "Watts")) if extensions is not None else None,
            speed=_to_float(_descendant_text(extensions, "Speed")) if extensions is not None else None,
        )
