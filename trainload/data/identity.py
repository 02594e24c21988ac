"""Stable identifiers and content hashes for activities."""

import hashlib
import json
from datetime import datetime
from typing import Optional

from trainload.models.activity import SyncedActivity

ID_HASH_LENGTH = 6
ACTIVITY_HASH_LENGTH = 24


def hash_text(value: str, length: Optional[int] = None) -> str:
    """SHA-1 hex digest of a string, optionally truncated."""
    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()
    return digest[:length] if length else digest


def activity_id(start_time: datetime, end_time: datetime) -> str:
    """Identifier derived from the activity time window."""
    return (
        f"{hash_text(start_time.isoformat(), ID_HASH_LENGTH)}"
        f"-{hash_text(end_time.isoformat(), ID_HASH_LENGTH)}"
    )


def activity_hash(activity: SyncedActivity) -> str:
    """Integrity hash of the material content of a synced activity.

    Re-syncing the same file yields the same hash; a change in type, time
    window, athlete settings or computed stats yields a new one.
    """
    content = activity.model_dump(
        mode="json",
        include={
            "id",
            "type",
            "start_time",
            "end_time",
            "has_power_meter",
            "trainer",
            "commute",
            "athlete_snapshot",
            "stats",
            "lat_lng_center",
        },
    )
    canonical = json.dumps(content, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:ACTIVITY_HASH_LENGTH]
