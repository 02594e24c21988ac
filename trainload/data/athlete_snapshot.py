"""Resolution of the athlete settings valid at an activity date."""

import logging
from datetime import date, datetime
from typing import List, Optional, Union

from trainload.exceptions import AthleteSnapshotResolverNotReady
from trainload.models.athlete import AthleteModel, AthleteSettings, AthleteSnapshot, DatedAthleteSettings

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str, None]


def _to_date(value: DateLike) -> Optional[date]:
    """Parse a date, returning None when it cannot be read."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None


class AthleteSnapshotResolver:
    """Immutable lookup of dated athlete settings.

    Dated settings are ordered by ``since`` descending, the settings without
    ``since`` last. The first settings whose ``since`` is on or before a date
    apply to it; the settings without ``since`` cover every older date.
    """

    def __init__(self, athlete: AthleteModel):
        """Initialize resolver.

        Args:
            athlete: Athlete model holding the dated settings
        """
        self.gender = athlete.gender
        self._dated: List[DatedAthleteSettings] = sorted(
            athlete.dated_athlete_settings,
            key=lambda dated: (dated.since is None, -(dated.since.toordinal() if dated.since else 0)),
        )

    def resolve(self, on_date: DateLike) -> AthleteSnapshot:
        """Athlete snapshot valid on a date.

        Args:
            on_date: Activity date; an unreadable or missing date resolves to
                the settings without ``since``

        Returns:
            Athlete snapshot
        """
        if not self._dated:
            return AthleteSnapshot(gender=self.gender, athlete_settings=AthleteSettings.default())

        resolved = _to_date(on_date)
        if resolved is None:
            return self._snapshot(self._forever())

        for dated in self._dated:
            if dated.since is None or dated.since <= resolved:
                return self._snapshot(dated)

        # Date older than every dated settings without a forever entry
        return self._snapshot(self._dated[-1])

    def get_current(self) -> AthleteSnapshot:
        """Snapshot of the most recent settings."""
        if not self._dated:
            return AthleteSnapshot(gender=self.gender, athlete_settings=AthleteSettings.default())
        return self._snapshot(self._dated[0])

    def _forever(self) -> DatedAthleteSettings:
        for dated in self._dated:
            if dated.is_forever:
                return dated
        return self._dated[-1]

    def _snapshot(self, dated: DatedAthleteSettings) -> AthleteSnapshot:
        return AthleteSnapshot(gender=self.gender, athlete_settings=dated.settings.model_copy(deep=True))


class AthleteSnapshotResolverService:
    """Hold the resolver built from the stored athlete model."""

    def __init__(self, athlete_source):
        """Initialize service.

        Args:
            athlete_source: Object exposing ``fetch_athlete() -> Optional[AthleteModel]``
        """
        self.athlete_source = athlete_source
        self._resolver: Optional[AthleteSnapshotResolver] = None

    def update(self) -> AthleteSnapshotResolver:
        """Rebuild the resolver from the current athlete model."""
        athlete = self.athlete_source.fetch_athlete()
        if athlete is None:
            logger.info("No athlete model stored, using default settings")
            athlete = AthleteModel()
        self._resolver = AthleteSnapshotResolver(athlete)
        return self._resolver

    @property
    def resolver(self) -> AthleteSnapshotResolver:
        if self._resolver is None:
            raise AthleteSnapshotResolverNotReady()
        return self._resolver

    def resolve(self, on_date: DateLike) -> AthleteSnapshot:
        return self.resolver.resolve(on_date)

    def get_current(self) -> AthleteSnapshot:
        return self.resolver.get_current()
