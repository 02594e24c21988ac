"""Synchronization events emitted while syncing activity files."""

import traceback
from enum import Enum
from typing import Annotated, Callable, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from trainload.models.activity import ConnectorType, PartialActivity, SyncedActivity


class SyncEventType(str, Enum):
    """Kinds of sync events, in the order a run may emit them."""
    STARTED = "started"
    GENERIC = "generic"
    ACTIVITY = "activity"
    ERROR = "error"
    STOPPED = "stopped"
    COMPLETED = "completed"


class ErrorCode(str, Enum):
    """Stable error codes carried by error events."""
    UNHANDLED_ERROR_SYNC = "UNHANDLED_ERROR_SYNC"
    SYNC_ALREADY_STARTED = "SYNC_ALREADY_STARTED"
    FS_SOURCE_DIRECTORY_DONT_EXISTS = "FS_SOURCE_DIRECTORY_DONT_EXISTS"
    MULTIPLE_ACTIVITIES_FOUND = "MULTIPLE_ACTIVITIES_FOUND"
    SYNC_ERROR_COMPUTE = "SYNC_ERROR_COMPUTE"
    SYNC_ERROR_UPSERT_ACTIVITY_DATABASE = "SYNC_ERROR_UPSERT_ACTIVITY_DATABASE"


def _error_stack(error: Optional[BaseException]) -> Optional[str]:
    if error is None:
        return None
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


class _SyncErrorDetail(BaseModel):
    description: str
    details: Optional[str] = None
    stack: Optional[str] = None


class UnhandledSyncError(_SyncErrorDetail):
    code: Literal["UNHANDLED_ERROR_SYNC"] = "UNHANDLED_ERROR_SYNC"

    @classmethod
    def from_exception(cls, error: BaseException, description: Optional[str] = None) -> "UnhandledSyncError":
        return cls(
            description=description or f"Unhandled sync error: {error}",
            details=str(error),
            stack=_error_stack(error),
        )


class SyncAlreadyStarted(_SyncErrorDetail):
    code: Literal["SYNC_ALREADY_STARTED"] = "SYNC_ALREADY_STARTED"
    description: str = "A sync is already in progress"


class SourceDirectoryMissing(_SyncErrorDetail):
    code: Literal["FS_SOURCE_DIRECTORY_DONT_EXISTS"] = "FS_SOURCE_DIRECTORY_DONT_EXISTS"
    directory: str

    @classmethod
    def for_directory(cls, directory: str) -> "SourceDirectoryMissing":
        return cls(directory=directory, description=f"Source directory '{directory}' does not exist")


class MultipleActivitiesFound(_SyncErrorDetail):
    """The candidate overlaps several stored activities and cannot be placed."""

    code: Literal["MULTIPLE_ACTIVITIES_FOUND"] = "MULTIPLE_ACTIVITIES_FOUND"
    conflicting: List[str] = Field(default_factory=list)

    @classmethod
    def for_candidate(cls, name: str, start: str, end: str, conflicting: List[str]) -> "MultipleActivitiesFound":
        description = (
            f"Cannot handle activity \"{name}\" from {start} to {end} because of existing "
            f"overlapping activities: {' & '.join(conflicting)}"
        )
        return cls(description=description, conflicting=conflicting)


class ComputeError(_SyncErrorDetail):
    code: Literal["SYNC_ERROR_COMPUTE"] = "SYNC_ERROR_COMPUTE"

    @classmethod
    def from_exception(cls, description: str, error: BaseException) -> "ComputeError":
        return cls(description=description, details=str(error), stack=_error_stack(error))


class UpsertActivityError(_SyncErrorDetail):
    code: Literal["SYNC_ERROR_UPSERT_ACTIVITY_DATABASE"] = "SYNC_ERROR_UPSERT_ACTIVITY_DATABASE"

    @classmethod
    def for_activity(cls, activity: SyncedActivity, error: BaseException) -> "UpsertActivityError":
        return cls(
            description=(
                f"Unable to save the new activity \"{activity.name}\" on date "
                f"\"{activity.start_time.isoformat()}\" into database."
            ),
            details=str(error),
            stack=_error_stack(error),
        )


SyncError = Annotated[
    Union[
        UnhandledSyncError,
        SyncAlreadyStarted,
        SourceDirectoryMissing,
        MultipleActivitiesFound,
        ComputeError,
        UpsertActivityError,
    ],
    Field(discriminator="code"),
]


class SyncEvent(BaseModel):
    """Base of every event flowing through a sync event stream."""

    type: SyncEventType
    connector_type: ConnectorType = ConnectorType.FILE
    description: Optional[str] = None


class StartedSyncEvent(SyncEvent):
    type: Literal[SyncEventType.STARTED] = SyncEventType.STARTED


class GenericSyncEvent(SyncEvent):
    type: Literal[SyncEventType.GENERIC] = SyncEventType.GENERIC


class ActivitySyncEvent(SyncEvent):
    """An activity was created (``is_new``) or recognized as already synced."""

    type: Literal[SyncEventType.ACTIVITY] = SyncEventType.ACTIVITY
    activity: SyncedActivity
    is_new: bool
    compressed_stream: Optional[str] = None


class ErrorSyncEvent(SyncEvent):
    type: Literal[SyncEventType.ERROR] = SyncEventType.ERROR
    error: SyncError
    activity: Optional[PartialActivity] = None

    @property
    def code(self) -> ErrorCode:
        return ErrorCode(self.error.code)


class StoppedSyncEvent(SyncEvent):
    type: Literal[SyncEventType.STOPPED] = SyncEventType.STOPPED
    description: Optional[str] = "Sync stopped"


class CompletedSyncEvent(SyncEvent):
    type: Literal[SyncEventType.COMPLETED] = SyncEventType.COMPLETED
    description: Optional[str] = "Sync done"


class SyncEventStream:
    """Append-only ordered channel of sync events.

    Subscribers are called synchronously in emission order. Once completed or
    failed the stream rejects further events.
    """

    def __init__(self):
        """Initialize an open, empty stream."""
        self._events: List[SyncEvent] = []
        self._subscribers: List[Callable[[SyncEvent], None]] = []
        self.is_closed = False
        self.error: Optional[ErrorSyncEvent] = None

    def subscribe(self, callback: Callable[[SyncEvent], None]):
        """Register a callback and replay the events already emitted."""
        for event in self._events:
            callback(event)
        self._subscribers.append(callback)

    def emit(self, event: SyncEvent):
        if self.is_closed:
            raise RuntimeError("Cannot emit on a closed sync event stream")
        self._events.append(event)
        for callback in self._subscribers:
            callback(event)

    def complete(self):
        self.is_closed = True

    def fail(self, event: ErrorSyncEvent):
        """Close the stream in an error state."""
        if not self.is_closed:
            self.emit(event)
        self.error = event
        self.is_closed = True

    @property
    def is_completed(self) -> bool:
        return self.is_closed and self.error is None

    @property
    def events(self) -> List[SyncEvent]:
        return list(self._events)

    def of_type(self, event_type: SyncEventType) -> List[SyncEvent]:
        return [event for event in self._events if event.type == event_type]

    def __iter__(self) -> Iterator[SyncEvent]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)
