"""SQLite database manager for synced activities."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from trainload.config import DATABASE_PATH
from trainload.models.activity import ConnectorType, SyncedActivity
from trainload.models.athlete import AthleteModel

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manage SQLite persistence of activities, athlete and sync state.

    Activities are stored as JSON documents, with their time window kept in
    indexed columns for overlap lookups.
    """

    def __init__(self, db_path: str = None):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file (uses config default if None)
        """
        self.db_path = Path(db_path if db_path else DATABASE_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = self._create_engine()
        self._initialize_database()

    def _create_engine(self) -> Engine:
        """Create SQLAlchemy engine with WAL journaling."""
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={
                "check_same_thread": False,
                "timeout": 30,
            },
            pool_pre_ping=True,
            echo=False,
        )

        with engine.connect() as conn:
            conn.execute(text("PRAGMA journal_mode=WAL"))
            conn.execute(text("PRAGMA synchronous=NORMAL"))
            conn.commit()

        return engine

    def _initialize_database(self):
        """Initialize database schema."""
        with self.engine.connect() as conn:
            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS activities (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    type TEXT,
                    start_timestamp REAL NOT NULL,
                    end_timestamp REAL NOT NULL,
                    hash TEXT,
                    document TEXT NOT NULL,
                    updated_at TIMESTAMP
                )
            """))
            conn.execute(text(
                "CREATE INDEX IF NOT EXISTS idx_activities_window ON activities(start_timestamp, end_timestamp)"
            ))

            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS sync_state (
                    connector TEXT PRIMARY KEY,
                    sync_date_time TEXT NOT NULL
                )
            """))

            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS athlete (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    document TEXT NOT NULL
                )
            """))
            conn.commit()

        logger.info(f"Database initialized at {self.db_path}")

    # Activities

    def fetch(self) -> List[SyncedActivity]:
        """All stored activities ordered by start time."""
        with self.engine.connect() as conn:
            rows = conn.execute(text("SELECT document FROM activities ORDER BY start_timestamp"))
            return [self._to_activity(row[0]) for row in rows]

    def get(self, activity_id: str) -> Optional[SyncedActivity]:
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT document FROM activities WHERE id = :id"), {"id": activity_id}
            ).fetchone()
        return self._to_activity(row[0]) if row else None

    def find(self, predicate: Callable[[SyncedActivity], bool]) -> List[SyncedActivity]:
        return [activity for activity in self.fetch() if predicate(activity)]

    def find_overlapping(self, start: datetime, end: datetime) -> List[SyncedActivity]:
        """Stored activities whose time window intersects (start, end).

        Windows that only touch at a bound do not overlap.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                text("""
                    SELECT document FROM activities
                    WHERE start_timestamp < :end AND end_timestamp > :start
                    ORDER BY start_timestamp
                """),
                {"start": start.timestamp(), "end": end.timestamp()},
            )
            return [self._to_activity(row[0]) for row in rows]

    def insert(self, activity: SyncedActivity) -> SyncedActivity:
        """Insert a new activity.

        Raises:
            sqlalchemy.exc.IntegrityError: If the id is already stored
        """
        with self.engine.connect() as conn:
            conn.execute(
                text("""
                    INSERT INTO activities (id, name, type, start_timestamp, end_timestamp, hash, document, updated_at)
                    VALUES (:id, :name, :type, :start_timestamp, :end_timestamp, :hash, :document, :updated_at)
                """),
                self._to_row(activity),
            )
            conn.commit()
        return activity

    def upsert(self, activity: SyncedActivity) -> SyncedActivity:
        """Insert an activity, or replace the stored one when its hash changed.

        Returns:
            The activity as stored
        """
        existing = self.get(activity.id)
        if existing is None:
            return self.insert(activity)

        if existing.hash == activity.hash:
            logger.debug(f"Activity {activity.id} unchanged, not updated")
            return existing

        with self.engine.connect() as conn:
            conn.execute(
                text("""
                    UPDATE activities SET name = :name, type = :type, start_timestamp = :start_timestamp,
                        end_timestamp = :end_timestamp, hash = :hash, document = :document, updated_at = :updated_at
                    WHERE id = :id
                """),
                self._to_row(activity),
            )
            conn.commit()
        logger.info(f"Updated activity {activity.id}")
        return activity

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT COUNT(*) FROM activities")).scalar()

    def delete(self, activity_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(text("DELETE FROM activities WHERE id = :id"), {"id": activity_id})
            conn.commit()
        return result.rowcount > 0

    def clear(self):
        """Remove every stored activity and the sync state."""
        with self.engine.connect() as conn:
            conn.execute(text("DELETE FROM activities"))
            conn.execute(text("DELETE FROM sync_state"))
            conn.commit()
        logger.info("Cleared stored activities and sync state")

    # Sync state

    def get_sync_date_time(self, connector: ConnectorType = ConnectorType.FILE) -> Optional[datetime]:
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT sync_date_time FROM sync_state WHERE connector = :connector"),
                {"connector": connector.value},
            ).fetchone()
        return datetime.fromisoformat(row[0]) if row else None

    def save_sync_date_time(self, sync_date_time: datetime, connector: ConnectorType = ConnectorType.FILE):
        with self.engine.connect() as conn:
            conn.execute(
                text("""
                    INSERT INTO sync_state (connector, sync_date_time) VALUES (:connector, :sync_date_time)
                    ON CONFLICT(connector) DO UPDATE SET sync_date_time = excluded.sync_date_time
                """),
                {"connector": connector.value, "sync_date_time": sync_date_time.isoformat()},
            )
            conn.commit()

    def clear_sync_date_time(self, connector: ConnectorType = ConnectorType.FILE):
        with self.engine.connect() as conn:
            conn.execute(text("DELETE FROM sync_state WHERE connector = :connector"), {"connector": connector.value})
            conn.commit()

    # Athlete

    def fetch_athlete(self) -> Optional[AthleteModel]:
        with self.engine.connect() as conn:
            row = conn.execute(text("SELECT document FROM athlete WHERE id = 1")).fetchone()
        return AthleteModel.model_validate_json(row[0]) if row else None

    def save_athlete(self, athlete: AthleteModel):
        with self.engine.connect() as conn:
            conn.execute(
                text("""
                    INSERT INTO athlete (id, document) VALUES (1, :document)
                    ON CONFLICT(id) DO UPDATE SET document = excluded.document
                """),
                {"document": json.dumps(athlete.to_document())},
            )
            conn.commit()

    @staticmethod
    def _to_row(activity: SyncedActivity) -> dict:
        return {
            "id": activity.id,
            "name": activity.name,
            "type": activity.type.value,
            "start_timestamp": activity.start_timestamp,
            "end_timestamp": activity.end_timestamp,
            "hash": activity.hash,
            "document": json.dumps(activity.to_document()),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def _to_activity(document: str) -> SyncedActivity:
        return SyncedActivity.model_validate(json.loads(document))
