"""Minimal per-user job scheduler.

This package provides a cron-style daemon that runs entries from the user's
schedule file, and a companion tool to maintain that file.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

__version__ = "0.1.0"


@dataclass
class DaemonStatus:
    """Status information for the scheduling daemon.

    Attributes:
        state: Current daemon state - "running", "stopped", or "stale"
        pid: Process ID recorded in the lock file, None if unavailable
    """

    state: Literal["running", "stopped", "stale"]
    pid: int | None


class Daemon:
    """Proxy class for daemon control operations with lazy-loaded implementation."""

    @staticmethod
    def status(schedule_path: Path) -> DaemonStatus:
        """Get the status of the daemon serving a schedule file.

        Returns:
            DaemonStatus object containing state and PID information
        """
        from minicron.daemon import daemon_status

        state, pid = daemon_status(schedule_path)
        return DaemonStatus(state=state, pid=pid)

    @staticmethod
    def stop(schedule_path: Path) -> bool:
        """Stop the daemon serving a schedule file.

        Returns:
            True if daemon stopped successfully, False if not running
        """
        from minicron.daemon import stop_daemon

        return stop_daemon(schedule_path)

    @staticmethod
    def is_running(schedule_path: Path) -> bool:
        """Check if a daemon is currently serving a schedule file."""
        return Daemon.status(schedule_path).state == "running"

    @staticmethod
    def lock_path(schedule_path: Path) -> Path:
        """Return the lock file guarding a schedule file."""
        from minicron.schedule_file import lock_path_for

        return lock_path_for(schedule_path)


__all__ = [
    "Daemon",
    "DaemonStatus",
]
