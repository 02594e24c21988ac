"""Duplicate detection of candidate activities against stored ones."""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import List, NamedTuple

from trainload.models.activity import SyncedActivity

logger = logging.getLogger(__name__)


class DeduplicationOutcome(str, Enum):
    """What to do with a candidate activity."""
    CREATE = "create"
    EXISTS = "exists"
    AMBIGUOUS = "ambiguous"


class DeduplicationResult(NamedTuple):
    outcome: DeduplicationOutcome
    matches: List[SyncedActivity]

    @property
    def existing(self) -> SyncedActivity:
        return self.matches[0]


def describe_activity(activity: SyncedActivity) -> str:
    """Display name used in conflict messages."""
    return f"{activity.name} ({activity.start_time.isoformat()})"


class DeduplicationResolver:
    """Resolve a candidate against stored activities overlapping its time window."""

    def __init__(self, store):
        """Initialize resolver.

        Args:
            store: Activity persistence exposing ``find_overlapping(start, end)``
        """
        self.store = store

    def resolve(self, start_time: datetime, duration_seconds: float) -> DeduplicationResult:
        """Look up stored activities overlapping a candidate.

        Args:
            start_time: Candidate start
            duration_seconds: Candidate duration

        Returns:
            CREATE on no match, EXISTS on one match, AMBIGUOUS otherwise
        """
        end_time = start_time + timedelta(seconds=duration_seconds)
        matches = self.store.find_overlapping(start_time, end_time)

        if not matches:
            return DeduplicationResult(DeduplicationOutcome.CREATE, [])

        if len(matches) == 1:
            logger.debug(f"Activity starting {start_time.isoformat()} already synced as {matches[0].id}")
            return DeduplicationResult(DeduplicationOutcome.EXISTS, matches)

        logger.warning(
            f"Activity starting {start_time.isoformat()} overlaps {len(matches)} stored activities"
        )
        return DeduplicationResult(DeduplicationOutcome.AMBIGUOUS, matches)
