"""Format dispatching parser for activity files."""

import logging
from pathlib import Path

from trainload.exceptions import UnsupportedActivityFileError
from trainload.integrations.fit_parser import FITParser
from trainload.integrations.parsed_activity import ParsedEvent
from trainload.integrations.xml_parser import GPXParser, TCXParser
from trainload.models.activity import ActivityFile, ActivityFileType

logger = logging.getLogger(__name__)


class ActivityFileParser:
    """Parse an activity file with the adapter matching its format."""

    def __init__(self, fit_parser=None, gpx_parser=None, tcx_parser=None):
        """Initialize parser.

        Args:
            fit_parser: FIT adapter (fitparse based by default)
            gpx_parser: GPX adapter
            tcx_parser: TCX adapter
        """
        self.parsers = {
            ActivityFileType.FIT: fit_parser or FITParser(),
            ActivityFileType.GPX: gpx_parser or GPXParser(),
            ActivityFileType.TCX: tcx_parser or TCXParser(),
        }

    def parse(self, activity_file: ActivityFile) -> ParsedEvent:
        """Parse an activity file.

        Raises:
            UnsupportedActivityFileError: For an unknown file type
            EmptyActivityFileError: If the file holds no activity
            ActivityFileParseError: If the file content is invalid
        """
        parser = self.parsers.get(activity_file.type)
        if parser is None:
            raise UnsupportedActivityFileError(f"Unsupported activity file type: {activity_file.type}")

        logger.info(f"Parsing {activity_file.type.value} file {activity_file.path}")
        return parser.parse(Path(activity_file.path))
