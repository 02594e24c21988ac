"""Discovery of activity files in a source directory."""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from trainload.models.activity import ActivityFile, ActivityFileLocation, ActivityFileType

logger = logging.getLogger(__name__)


class ActivityFileScanner:
    """Walk a directory and collect supported activity files."""

    SUPPORTED_EXTENSIONS = {file_type.value: file_type for file_type in ActivityFileType}

    def scan(
        self,
        directory: Path,
        after_date: Optional[datetime] = None,
        recursive: bool = False
    ) -> List[ActivityFile]:
        """Scan a directory for GPX, TCX and FIT files.

        Args:
            directory: Root directory to scan
            after_date: Keep only files modified or created at or after this date
            recursive: Descend into sub-directories

        Returns:
            Unordered list of activity files

        Raises:
            FileNotFoundError: If the directory does not exist
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"Directory not found: {directory}")

        activity_files: List[ActivityFile] = []

        for entry in directory.iterdir():
            if entry.is_dir():
                if recursive:
                    activity_files.extend(self.scan(entry, after_date, recursive=True))
                continue

            file_type = self.SUPPORTED_EXTENSIONS.get(entry.suffix[1:].lower())
            if file_type is None:
                continue

            last_access = self.last_access_date(entry)
            if after_date is not None and last_access.timestamp() < after_date.timestamp():
                continue

            activity_files.append(
                ActivityFile(
                    type=file_type,
                    location=ActivityFileLocation(path=str(entry)),
                    last_modification_date=last_access,
                )
            )

        logger.debug(f"Found {len(activity_files)} activity files in {directory}")
        return activity_files

    @staticmethod
    def last_access_date(path: Path) -> datetime:
        """Latest of the modification and creation times of a file."""
        stat = os.stat(path)
        created = getattr(stat, "st_birthtime", stat.st_ctime)
        return datetime.fromtimestamp(max(stat.st_mtime, created), tz=timezone.utc)
