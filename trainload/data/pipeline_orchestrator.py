"""
File sync orchestrator.

Drives the ingestion of activity files from a source directory: archive
expansion, scan, parse, sport classification, deduplication, stream
synthesis, stats computation, persistence and event emission.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple

from trainload.analytics.activity_computer import ActivityComputer, lat_lng_center
from trainload.config import FileConnectorConfig
from trainload.data.archive_expander import ArchiveExpander
from trainload.data.athlete_snapshot import AthleteSnapshotResolver, AthleteSnapshotResolverService
from trainload.data.deduplicator import DeduplicationOutcome, DeduplicationResolver, describe_activity
from trainload.data.identity import activity_hash, activity_id
from trainload.data.scanner import ActivityFileScanner
from trainload.data.sport_classifier import SportClassification, SportTypeClassifier
from trainload.data.stream_synthesizer import StreamSynthesizer
from trainload.exceptions import EmptyActivityFileError, SyncException, SyncStoppedException
from trainload.integrations.activity_parser import ActivityFileParser
from trainload.integrations.parsed_activity import ParsedActivity, StatKey
from trainload.models.activity import (
    ActivityExtras,
    ActivityFile,
    ActivityStreams,
    BareActivity,
    ConnectorType,
    PartialActivity,
    PrimitiveSourceData,
    SportType,
    SyncedActivity,
)
from trainload.models.sync_events import (
    ActivitySyncEvent,
    CompletedSyncEvent,
    ComputeError,
    ErrorSyncEvent,
    GenericSyncEvent,
    MultipleActivitiesFound,
    SourceDirectoryMissing,
    StartedSyncEvent,
    StoppedSyncEvent,
    SyncAlreadyStarted,
    SyncEvent,
    SyncEventStream,
    UnhandledSyncError,
    UpsertActivityError,
)

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Lifecycle of a sync run."""
    IDLE = "idle"
    EXPANDING = "expanding"
    SCANNING = "scanning"
    PER_FILE_LOOP = "per_file_loop"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CancellationToken:
    """Cooperative stop request shared with a running sync."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise SyncStoppedException("Sync stopped on request")


def humanized_day_moment(moment: datetime) -> str:
    """Morning, Afternoon or Evening for the hour of a datetime."""
    if 12 <= moment.hour < 17:
        return "Afternoon"
    if moment.hour >= 17:
        return "Evening"
    return "Morning"


def humanized_activity_name(start_time: datetime, sport: SportType, auto_detected: bool) -> str:
    """Activity name such as "Morning Ride", tagged when the sport was detected."""
    name = f"{humanized_day_moment(start_time)} {sport.value}"
    return f"{name} #detected" if auto_detected else name


def extract_primitive_source_data(parsed: ParsedActivity) -> PrimitiveSourceData:
    """Totals reported by the source file."""
    elapsed = parsed.get_stat(StatKey.DURATION)
    pause = parsed.get_stat(StatKey.PAUSE)
    moving = elapsed - pause if elapsed is not None and pause is not None else elapsed

    return PrimitiveSourceData(
        elapsed_time_raw=elapsed,
        moving_time_raw=moving,
        distance_raw=parsed.get_stat(StatKey.DISTANCE),
        elevation_gain_raw=parsed.get_stat(StatKey.ASCENT),
    )


class FileSyncOrchestrator:
    """
    Sync activity files of a local directory into the activity store.

    Files are processed strictly one after the other with a pacing delay in
    between. A file failure is reported as an error event and the sync moves
    on; a missing source directory fails the whole run. ``stop()`` ends the
    run at the next file boundary with a stopped event.
    """

    def __init__(
        self,
        config: FileConnectorConfig,
        store,
        athlete_service: AthleteSnapshotResolverService,
        parser: Optional[ActivityFileParser] = None,
        scanner: Optional[ActivityFileScanner] = None,
        expander: Optional[ArchiveExpander] = None,
        synthesizer: Optional[StreamSynthesizer] = None,
        now_provider: Callable[[], datetime] = None
    ):
        """
        Initialize file sync orchestrator.

        Args:
            config: File connector configuration
            store: Activity persistence (see DatabaseManager)
            athlete_service: Provides the athlete snapshot resolver
            parser: Activity file parser
            scanner: Activity file scanner
            expander: Archive expander
            synthesizer: Stream synthesizer
            now_provider: Clock used for the sync date time
        """
        self.config = config
        self.store = store
        self.athlete_service = athlete_service
        self.parser = parser or ActivityFileParser()
        self.scanner = scanner or ActivityFileScanner()
        self.expander = expander or ArchiveExpander(scanner=self.scanner)
        self.synthesizer = synthesizer or StreamSynthesizer()
        self.classifier = SportTypeClassifier(config.detect_sport_type_when_unknown)
        self.deduplicator = DeduplicationResolver(store)
        self.now_provider = now_provider or (lambda: datetime.now(timezone.utc))

        self.state = SyncState.IDLE
        self._lock = threading.Lock()
        self._token: Optional[CancellationToken] = None

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    def stop(self):
        """Request the running sync to stop at the next file."""
        if self._token is not None:
            logger.info("Stop requested")
            self._token.cancel()

    def sync(self, full: bool = False, on_event: Optional[Callable[[SyncEvent], None]] = None) -> SyncEventStream:
        """
        Run a sync.

        Args:
            full: Ignore the last sync date time and rescan every file
            on_event: Called with each event as it is emitted

        Returns:
            The closed event stream of the run
        """
        stream = SyncEventStream()
        if on_event:
            stream.subscribe(on_event)

        if not self._lock.acquire(blocking=False):
            logger.warning("Sync already started")
            stream.fail(ErrorSyncEvent(error=SyncAlreadyStarted()))
            return stream

        token = CancellationToken()
        self._token = token
        try:
            stream.emit(StartedSyncEvent())
            self.sync_files(stream, token, full)
            self.state = SyncState.COMPLETED
            stream.emit(CompletedSyncEvent())
            stream.complete()
        except SyncStoppedException:
            logger.info("Sync stopped")
            self.state = SyncState.CANCELLED
            stream.emit(StoppedSyncEvent())
            stream.complete()
        except SyncException as e:
            logger.error(f"Sync failed: {e}")
            self.state = SyncState.FAILED
            stream.fail(e.event)
        except Exception as e:
            logger.error(f"Sync failed: {e}")
            self.state = SyncState.FAILED
            stream.fail(ErrorSyncEvent(error=UnhandledSyncError.from_exception(e)))
        finally:
            self._token = None
            self._lock.release()

        return stream

    def sync_files(self, stream: SyncEventStream, token: CancellationToken, full: bool = False):
        """
        Expand archives, scan, then process every discovered file.

        Raises:
            SyncException: If the source directory does not exist
            SyncStoppedException: If a stop was requested
        """
        source_directory = Path(self.config.source_directory)
        if not source_directory.is_dir():
            raise SyncException(
                ErrorSyncEvent(error=SourceDirectoryMissing.for_directory(str(source_directory)))
            )

        resolver = self.athlete_service.update()
        sync_started_at = self.now_provider()
        after_date = None if full else self.store.get_sync_date_time(ConnectorType.FILE)

        if after_date is None and self.config.extract_archive_files:
            self.state = SyncState.EXPANDING
            self._expand_archives(source_directory, stream)

        self.state = SyncState.SCANNING
        stream.emit(GenericSyncEvent(description="Scanning for activities..."))
        activity_files = sorted(
            self.scanner.scan(source_directory, after_date, self.config.scan_sub_directories),
            key=lambda activity_file: activity_file.path,
        )
        logger.info(f"Found {len(activity_files)} activity files to sync")

        self.state = SyncState.PER_FILE_LOOP
        for activity_file in activity_files:
            token.raise_if_cancelled()
            self.process_file(activity_file, stream, resolver)
            time.sleep(self.config.sync_pacing_seconds)

        self.store.save_sync_date_time(sync_started_at, ConnectorType.FILE)

    def _expand_archives(self, source_directory: Path, stream: SyncEventStream):
        def on_expanded(archive: Path, files):
            stream.emit(
                GenericSyncEvent(description=f"Activities in \"{archive.name}\" file have been extracted.")
            )

        _, failures = self.expander.scan_inflate_activities_from_archives(
            source_directory,
            delete_archives=self.config.delete_archives_after_extract,
            on_expanded=on_expanded,
            recursive=self.config.scan_sub_directories,
        )
        for archive, error in failures:
            stream.emit(
                ErrorSyncEvent(
                    error=UnhandledSyncError.from_exception(
                        error, f"Unable to extract activities from archive \"{archive.name}\""
                    )
                )
            )

    def process_file(self, activity_file: ActivityFile, stream: SyncEventStream, resolver: AthleteSnapshotResolver):
        """Parse one file and handle each activity it holds."""
        partial = PartialActivity(extras=ActivityExtras(fs_activity_location=activity_file.location))

        try:
            event = self.parser.parse(activity_file)
        except EmptyActivityFileError as e:
            logger.warning(f"Skipping {activity_file.path}: {e}")
            return
        except Exception as e:
            logger.error(f"Failed to parse {activity_file.path}: {e}")
            stream.emit(
                ErrorSyncEvent(
                    error=ComputeError.from_exception(f"Activity file parsing error: {e}", e),
                    activity=partial,
                )
            )
            return

        for parsed in event.activities:
            if parsed.is_transition:
                continue
            self.process_activity(parsed, activity_file, stream, resolver)

    def process_activity(
        self,
        parsed: ParsedActivity,
        activity_file: ActivityFile,
        stream: SyncEventStream,
        resolver: AthleteSnapshotResolver
    ):
        """Create, recognize or reject one parsed activity."""
        classification = self.classifier.classify(
            parsed.source_type,
            distance=parsed.get_stat(StatKey.DISTANCE),
            duration=parsed.get_stat(StatKey.DURATION),
            ascent=parsed.get_stat(StatKey.ASCENT),
            avg_speed=parsed.get_stat(StatKey.AVG_SPEED),
            max_speed=parsed.get_stat(StatKey.MAX_SPEED),
        )
        name = humanized_activity_name(parsed.start_time.astimezone(), classification.type, classification.auto_detected)
        partial = PartialActivity(
            name=name,
            type=classification.type,
            start_time=parsed.start_time,
            extras=ActivityExtras(fs_activity_location=activity_file.location),
        )

        duration = (parsed.end_time - parsed.start_time).total_seconds()
        result = self.deduplicator.resolve(parsed.start_time, duration)

        if result.outcome == DeduplicationOutcome.EXISTS:
            stream.emit(ActivitySyncEvent(activity=result.existing, is_new=False))
            return

        if result.outcome == DeduplicationOutcome.AMBIGUOUS:
            stream.emit(
                ErrorSyncEvent(
                    error=MultipleActivitiesFound.for_candidate(
                        name,
                        parsed.start_time.isoformat(),
                        parsed.end_time.isoformat(),
                        [describe_activity(activity) for activity in result.matches],
                    ),
                    activity=partial,
                )
            )
            return

        try:
            synced, streams = self.build_synced_activity(parsed, activity_file, classification, name, resolver)
        except Exception as e:
            logger.error(f"Failed to compute activity {parsed.start_time.isoformat()}: {e}")
            stream.emit(
                ErrorSyncEvent(
                    error=ComputeError.from_exception(
                        f"Unable to compute activity started '{parsed.start_time.isoformat()}' cause: {e}", e
                    ),
                    activity=partial,
                )
            )
            return

        try:
            self.store.upsert(synced)
        except Exception as e:
            logger.error(f"Failed to save activity {synced.id}: {e}")
            stream.emit(ErrorSyncEvent(error=UpsertActivityError.for_activity(synced, e), activity=partial))
            return

        stream.emit(ActivitySyncEvent(activity=synced, is_new=True, compressed_stream=streams.deflate()))

    def build_synced_activity(
        self,
        parsed: ParsedActivity,
        activity_file: ActivityFile,
        classification: SportClassification,
        name: str,
        resolver: AthleteSnapshotResolver
    ) -> Tuple[SyncedActivity, ActivityStreams]:
        """Compute a synced activity and its streams from a parsed activity."""
        bare = BareActivity(
            id=activity_id(parsed.start_time, parsed.end_time),
            name=name,
            type=classification.type,
            start_time=parsed.start_time,
            end_time=parsed.end_time,
            has_power_meter=parsed.has_power_meter,
            trainer=parsed.trainer,
            commute=None,
        )

        snapshot = resolver.resolve(bare.start_time)

        streams = self.synthesizer.extract_activity_streams(parsed, bare.type)
        streams = self.synthesizer.compute_additional_streams(
            streams, bare.type, bare.has_power_meter, snapshot.athlete_settings.weight
        )

        computed = ActivityComputer(
            bare.type,
            bare.has_power_meter,
            snapshot,
            streams,
            extract_primitive_source_data(parsed),
        ).compute()

        synced = SyncedActivity.from_bare(
            bare,
            connector_type=ConnectorType.FILE,
            auto_detected_type=classification.auto_detected,
            athlete_snapshot=snapshot,
            stats=computed.stats,
            flags=computed.flags,
            settings_lack=computed.settings_lack,
            lat_lng_center=lat_lng_center(streams.latlng),
            extras=ActivityExtras(fs_activity_location=activity_file.location),
        )
        synced.hash = activity_hash(synced)
        return synced, streams
