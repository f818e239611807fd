"""Exclusive lock file for the daemon.

Only one daemon may run per schedule file. The lock is a file created with
``O_EXCL`` next to the schedule; it holds the daemon PID so the CLI can report
on or stop the running daemon. A lock left behind by a crashed daemon is not
cleaned up automatically and keeps new daemons from starting until removed.
"""

import logging
import os
from pathlib import Path
from typing import Literal

import psutil

from minicron.errors import LockError

logger = logging.getLogger(__name__)

LOCK_FLAGS = os.O_CREAT | os.O_EXCL | os.O_WRONLY | os.O_TRUNC | getattr(os, "O_CLOEXEC", 0)
LOCK_MODE = 0o600

HolderState = Literal["running", "stopped", "stale"]


class LockFile:
    """Create-exclusive lock file guarding one schedule file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """Create the lock file and record the current PID in it.

        Raises:
            LockError: If the lock already exists or cannot be created
        """
        try:
            fd = os.open(self.path, LOCK_FLAGS, LOCK_MODE)
        except FileExistsError as e:
            raise LockError(f"crond already running: {self.path}") from e
        except OSError as e:
            raise LockError(f"failed to create lock file {self.path}: {e}") from e

        self._fd = fd
        try:
            os.write(fd, f"{os.getpid()}\n".encode())
        except OSError as e:
            logger.warning(f"Could not record PID in lock file {self.path}: {e}")
        logger.debug(f"Acquired lock file {self.path}")

    def release(self) -> None:
        """Close and delete the lock file.

        Failure to delete the file is logged but not raised.

        Raises:
            LockError: If the lock file descriptor cannot be closed
        """
        if self._fd is None:
            return

        fd, self._fd = self._fd, None
        close_error: OSError | None = None
        try:
            os.close(fd)
        except OSError as e:
            close_error = e

        try:
            self.path.unlink()
        except OSError as e:
            logger.error(f"failed to remove lock file: {self.path}: {e}")

        if close_error is not None:
            raise LockError(f"failed to close lock file {self.path}: {close_error}") from close_error

    def read_pid(self) -> int | None:
        """Read the PID stored in the lock file.

        Returns:
            PID as integer, or None if the file doesn't exist or is invalid
        """
        try:
            return int(self.path.read_text(encoding="utf-8").strip())
        except FileNotFoundError:
            return None
        except (ValueError, OSError) as e:
            logger.error(f"Failed to read lock file {self.path}: {e}")
            return None

    def holder_state(self) -> tuple[HolderState, int | None]:
        """Report whether a daemon currently holds this lock.

        Returns:
            Tuple of (state, pid). "stale" means the file exists but no process
            with the recorded PID is alive (or no PID could be read).
        """
        if not self.path.exists():
            return ("stopped", None)

        pid = self.read_pid()
        if pid is not None and psutil.pid_exists(pid):
            return ("running", pid)
        return ("stale", pid)
