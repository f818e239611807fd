"""Schedule file reference and change detection.

The daemon keeps the modification time it last observed and re-parses the
schedule only when that time changes or the file disappears.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from minicron.errors import ScheduleReadError
from minicron.models import ScheduleEntry
from minicron.parser import parse_lines

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"
EDIT_SUFFIX = ".edit"

# Stored modification time for a schedule file that does not exist.
MISSING_MTIME = 0


def lock_path_for(schedule_path: Path) -> Path:
    """Return the lock file path that sits next to a schedule file."""
    return schedule_path.with_name(schedule_path.name + LOCK_SUFFIX)


def edit_path_for(schedule_path: Path) -> Path:
    """Return the temporary edit file path that sits next to a schedule file."""
    return schedule_path.with_name(schedule_path.name + EDIT_SUFFIX)


@dataclass
class ScheduleFile:
    """Schedule file path plus the last observed modification time.

    Attributes:
        path: Location of the schedule file
        mtime_ns: Modification time in nanoseconds from the last successful
            stat, or ``MISSING_MTIME`` when the file was absent
    """

    path: Path
    mtime_ns: int = MISSING_MTIME

    def has_changed(self) -> bool:
        """Check whether the schedule file changed since the last call.

        Updates ``mtime_ns`` whenever a change is reported.

        Returns:
            True if the file was modified, created or removed

        Raises:
            OSError: If the file exists but cannot be examined
        """
        try:
            mtime_ns = os.stat(self.path).st_mtime_ns
        except FileNotFoundError:
            if self.mtime_ns != MISSING_MTIME:
                self.mtime_ns = MISSING_MTIME
                return True
            return False

        if mtime_ns != self.mtime_ns:
            self.mtime_ns = mtime_ns
            return True
        return False

    def load_entries(self) -> list[ScheduleEntry]:
        """Parse the whole schedule file.

        Returns:
            Entries in file order (empty if the file cannot be opened)

        Raises:
            ScheduleReadError: If reading fails part way through the file
        """
        try:
            handle = open(self.path, encoding="utf-8", errors="surrogateescape", newline="\n")
        except FileNotFoundError:
            logger.debug(f"No schedule file at {self.path}")
            return []
        except OSError as e:
            logger.warning(f"Cannot open schedule file {self.path}: {e}")
            return []

        try:
            with handle:
                entries = parse_lines(handle)
        except OSError as e:
            raise ScheduleReadError(f"failed to read {self.path}: {e}") from e

        logger.info(f"Loaded {len(entries)} job(s) from {self.path}")
        return entries
