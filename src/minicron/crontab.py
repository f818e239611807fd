"""Schedule file editing and transfer.

Every change goes through the sibling ``.edit`` file, which is renamed over
the schedule file once complete, so the daemon never sees a half-written
schedule.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import BinaryIO

from minicron.config import resolve_editor
from minicron.errors import CrontabError
from minicron.schedule_file import edit_path_for

logger = logging.getLogger(__name__)

CONFIG_DIR_MODE = 0o700
COPY_BUFFER_SIZE = 1000


class CrontabManager:
    """Lists, replaces, removes and edits one user's schedule file."""

    def __init__(self, schedule_path: Path) -> None:
        self.schedule_path = schedule_path
        self.edit_path = edit_path_for(schedule_path)

    def list_to(self, out: BinaryIO) -> None:
        """Copy the schedule file to ``out`` byte for byte.

        Raises:
            CrontabError: If there is no schedule file or it cannot be read
        """
        try:
            with open(self.schedule_path, "rb") as f:
                shutil.copyfileobj(f, out, COPY_BUFFER_SIZE)
        except FileNotFoundError as e:
            raise CrontabError(f"no crontab: {self.schedule_path}") from e
        except OSError as e:
            raise CrontabError(f"failed to read {self.schedule_path}: {e}") from e
        out.flush()

    def remove(self) -> None:
        """Delete the schedule file.

        Raises:
            CrontabError: If the file cannot be removed
        """
        try:
            self.schedule_path.unlink()
        except OSError as e:
            raise CrontabError(f"remove: {self.schedule_path}: {e}") from e
        logger.info(f"Removed {self.schedule_path}")

    def install_from(self, source: BinaryIO) -> None:
        """Replace the schedule file with the contents of ``source``.

        Raises:
            CrontabError: If the new schedule cannot be written
        """
        self._ensure_config_dir()
        try:
            with open(self.edit_path, "wb") as out:
                shutil.copyfileobj(source, out, COPY_BUFFER_SIZE)
        except OSError as e:
            raise CrontabError(f"failed to write {self.edit_path}: {e}") from e
        self._commit()

    def edit(self, editor: str | None = None) -> None:
        """Open a copy of the schedule in an editor and install the result.

        Args:
            editor: Editor program (defaults to $EDITOR, then vi)

        Raises:
            CrontabError: If copying, editing or installing fails
        """
        editor = editor or resolve_editor()
        self._ensure_config_dir()
        self._copy_to_edit_file()

        logger.debug(f"Running editor: {editor} {self.edit_path}")
        try:
            result = subprocess.run([editor, str(self.edit_path)], check=False)
        except OSError as e:
            raise CrontabError(f"failed to run editor {editor!r}: {e}") from e

        if result.returncode != 0:
            raise CrontabError("Editor did not exit with 0 status code")
        self._commit()

    def _ensure_config_dir(self) -> None:
        try:
            self.schedule_path.parent.mkdir(mode=CONFIG_DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise CrontabError(f"failed to create directory: {self.schedule_path.parent}: {e}") from e

    def _copy_to_edit_file(self) -> None:
        """Seed the edit file with the current schedule, if there is one."""
        if not self.schedule_path.exists():
            return
        try:
            shutil.copyfile(self.schedule_path, self.edit_path)
        except OSError as e:
            raise CrontabError(f"failed to copy {self.schedule_path} to {self.edit_path}: {e}") from e

    def _commit(self) -> None:
        try:
            self.edit_path.replace(self.schedule_path)
        except OSError as e:
            raise CrontabError(f"rename {self.edit_path} -> {self.schedule_path}: {e}") from e
        logger.info(f"Installed new schedule at {self.schedule_path}")
