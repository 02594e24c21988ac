"""Exceptions raised across the trainload package."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trainload.models.sync_events import ErrorSyncEvent


class TrainloadError(Exception):
    """Base class for trainload errors."""


class FitnessTrendError(TrainloadError):
    """The fitness trend cannot be computed from the available activities."""

    FT_NO_ACTIVITIES = "FT_NO_ACTIVITIES"
    FT_ALL_ACTIVITIES_FILTERED = "FT_ALL_ACTIVITIES_FILTERED"
    FT_NO_ACTIVITY_ATHLETE_MODEL = "FT_NO_ACTIVITY_ATHLETE_MODEL"

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    @classmethod
    def no_activities(cls) -> "FitnessTrendError":
        return cls(cls.FT_NO_ACTIVITIES, "No activities available to generate the fitness trend")

    @classmethod
    def all_activities_filtered(cls) -> "FitnessTrendError":
        return cls(
            cls.FT_ALL_ACTIVITIES_FILTERED,
            "No activities available. They all have been filtered. Unable to generate the fitness trend.",
        )

    @classmethod
    def missing_athlete_settings(cls) -> "FitnessTrendError":
        return cls(
            cls.FT_NO_ACTIVITY_ATHLETE_MODEL,
            "Some of your synced activities are missing athlete settings. To fix that check "
            'your athlete settings and "clear and re-sync your activities"',
        )


class AthleteSnapshotResolverNotReady(TrainloadError):
    def __init__(self):
        super().__init__(
            "Athlete snapshot resolver is not initialized. Call AthleteSnapshotResolverService.update() first"
        )


class ActivityFileParseError(TrainloadError):
    """An activity file could not be parsed."""


class UnsupportedActivityFileError(ActivityFileParseError):
    pass


class EmptyActivityFileError(ActivityFileParseError):
    """The parser produced no event for the file."""


class StreamNotFound(TrainloadError):
    def __init__(self, channel: str):
        super().__init__(f"Stream '{channel}' not found")
        self.channel = channel


class ArchiveExtractionError(TrainloadError):
    """An archive could not be expanded."""


class SyncException(TrainloadError):
    """A sync run failed as a whole."""

    def __init__(self, event: "ErrorSyncEvent"):
        super().__init__(event.error.description)
        self.event = event


class SyncStoppedException(TrainloadError):
    """The sync was stopped on request. Not a failure."""
