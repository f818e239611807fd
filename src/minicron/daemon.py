"""
Scheduling daemon for minicron.

Reads the user's schedule file, launches the entries due each minute and
sleeps until the top of the next minute. The daemon stops when SIGINT or
SIGTERM arrives or when a daemon-level error has been recorded; SIGHUP only
wakes the loop so the schedule file gets checked right away.
"""

import logging
import logging.handlers
import os
import signal
import sys
import threading
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from types import FrameType
from typing import Any, Literal

import psutil

from minicron.config import DaemonSettings
from minicron.errors import LockError, ScheduleReadError
from minicron.executor import JobRunner, build_job_environment
from minicron.lock import HolderState, LockFile
from minicron.models import CronTime, ScheduleEntry
from minicron.schedule_file import ScheduleFile, lock_path_for
from minicron.scheduler import due_entries

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
LOG_PREFIX = "crond: "
PROFILE_INTERVAL = 300  # Log resource usage every 5 minutes

DaemonState = Literal["starting", "running", "draining", "stopped"]


def configure_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Set up logging for the daemon process.

    Diagnostics go to stderr with a fixed prefix: everything in verbose mode,
    errors only otherwise. An optional log file gets everything, with
    rotation (max 10MB, keep 5 backups).

    Args:
        verbose: Echo operational diagnostics to stderr
        log_file: Optional path of a rotating log file
    """
    package_logger = logging.getLogger("minicron")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter(f"{LOG_PREFIX}%(message)s"))
    console_handler.setLevel(logging.DEBUG if verbose else logging.ERROR)
    package_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        file_handler.setLevel(logging.DEBUG)
        package_logger.addHandler(file_handler)

    package_logger.setLevel(logging.DEBUG)
    package_logger.propagate = False


def seconds_until_next_minute(now: datetime) -> int:
    """Seconds to sleep to reach the top of the next minute (at least 1)."""
    return max(1, 60 - now.second)


class DaemonSignals:
    """Stop and wake tokens set from OS signal handlers.

    The handlers only set events; the loop reads them between steps.
    """

    STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)
    RELOAD_SIGNAL = signal.SIGHUP

    def __init__(self) -> None:
        self.stop = threading.Event()
        self.wake = threading.Event()
        self._previous: dict[int, Any] = {}

    def install(self) -> None:
        """Install the signal handlers.

        Raises:
            ValueError: If called outside the main thread
            OSError: If a handler cannot be installed
        """
        self._previous[self.RELOAD_SIGNAL] = signal.signal(self.RELOAD_SIGNAL, self._handle_reload)
        for signum in self.STOP_SIGNALS:
            self._previous[signum] = signal.signal(signum, self._handle_stop)

    def restore(self) -> None:
        """Put back whatever handlers were installed before :meth:`install`."""
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def request_stop(self) -> None:
        self.stop.set()
        self.wake.set()

    def request_reload(self) -> None:
        self.wake.set()

    def sleep(self, seconds: float) -> None:
        """Sleep until the timeout expires or a signal wakes the loop."""
        self.wake.wait(seconds)
        self.wake.clear()

    def _handle_stop(self, signum: int, frame: FrameType | None) -> None:
        self.request_stop()

    def _handle_reload(self, signum: int, frame: FrameType | None) -> None:
        self.request_reload()


class CronDaemon:
    """Runs the schedule of one user until asked to stop."""

    def __init__(
        self,
        settings: DaemonSettings,
        clock: Callable[[], datetime] = datetime.now,
        signals: DaemonSignals | None = None,
    ) -> None:
        """
        Initialize daemon.

        Args:
            settings: Resolved daemon settings
            clock: Returns the current local time (replaceable in tests)
            signals: Stop/wake tokens (a new set is created if None)
        """
        self.settings = settings
        self.status_code = EXIT_SUCCESS
        self.state: DaemonState = "starting"
        self.schedule_file = ScheduleFile(settings.schedule_path)
        self.lock = LockFile(lock_path_for(settings.schedule_path))
        self.jobs: list[ScheduleEntry] = []
        self.runner = JobRunner(
            shell=settings.shell,
            email_to=settings.email_to,
            mailer=settings.mailer,
            env=build_job_environment(str(settings.home), settings.user_name, settings.shell),
        )
        self.signals = signals if signals is not None else DaemonSignals()
        self._clock = clock
        self._process: psutil.Process | None = None
        self._last_profile_time = 0.0
        self._last_launch_minute: CronTime | None = None
        self.cycles = 0

    def record_error(self, message: str) -> None:
        """Record a daemon-level error; the daemon will stop with failure status."""
        self.status_code = EXIT_FAILURE
        logger.error(message)

    def should_exit(self) -> bool:
        return self.status_code != EXIT_SUCCESS or self.signals.stop.is_set()

    def run(self) -> int:
        """
        Main daemon entry point.

        Returns:
            EXIT_SUCCESS if no daemon-level error was recorded, else EXIT_FAILURE
        """
        self.state = "starting"
        self._start()

        self.state = "running"
        if not self.should_exit():
            logger.info(f"Daemon running (PID {os.getpid()}), schedule: {self.settings.schedule_path}")
            self._log_resource_profile("Initial")
        while not self.should_exit():
            self.run_cycle()

        self.state = "draining"
        self._shutdown()
        self.state = "stopped"
        return self.status_code

    def run_cycle(self) -> None:
        """Run one pass of the loop: reload, launch due jobs, sleep, reap."""
        self.cycles += 1
        self.reload_if_changed()

        now = self.current_time()
        if now is not None:
            minute = CronTime.from_datetime(now)
            # A wakeup within the same minute must not start its jobs twice.
            if minute != self._last_launch_minute:
                self._last_launch_minute = minute
                self.run_due_jobs(minute)
            else:
                logger.debug("Woken within an already handled minute, no jobs launched")

        now = self.current_time()
        if not self.should_exit() and now is not None:
            sleep_seconds = seconds_until_next_minute(now)
            logger.info(f"sleeping for {sleep_seconds} seconds")
            self.signals.sleep(sleep_seconds)

        self.runner.reap()
        if time.monotonic() - self._last_profile_time >= PROFILE_INTERVAL:
            self._log_resource_profile(f"Cycle #{self.cycles}")

    def reload_if_changed(self) -> None:
        """Re-parse the schedule file if it was modified, created or removed."""
        try:
            changed = self.schedule_file.has_changed()
        except OSError as e:
            self.record_error(f"stat: {self.schedule_file.path}: {e}")
            return

        if not changed:
            return

        logger.info(f"Schedule file changed: {self.schedule_file.path}")
        self.jobs = []
        try:
            self.jobs = self.schedule_file.load_entries()
        except ScheduleReadError as e:
            self.record_error(str(e))
        except MemoryError:
            self.record_error(f"out of memory while parsing {self.schedule_file.path}")

    def current_time(self) -> datetime | None:
        """Return the current local time, recording an error if it is unavailable."""
        try:
            return self._clock()
        except (OSError, OverflowError, ValueError) as e:
            self.record_error(f"failed to get local time: {e}")
            return None

    def run_due_jobs(self, now: CronTime) -> int:
        """Launch every due job in schedule file order.

        Returns:
            Number of jobs launched
        """
        launched = 0
        for entry in due_entries(self.jobs, now):
            if self.runner.launch(entry) is not None:
                launched += 1
        return launched

    def _start(self) -> None:
        try:
            self.signals.install()
        except (ValueError, OSError) as e:
            self.record_error(f"signal set: {e}")

        try:
            self.lock.acquire()
        except LockError as e:
            self.record_error(str(e))

    def _shutdown(self) -> None:
        """Release daemon resources; jobs already started run to completion."""
        logger.info("Shutting down...")
        self.jobs = []

        try:
            self.lock.release()
        except LockError as e:
            self.record_error(str(e))

        running = self.runner.running_count
        if running:
            logger.info(f"Waiting for {running} running job(s) to finish")
        self.runner.wait_all()
        self.signals.restore()

        if self._process is not None:
            self._log_resource_profile("Final")
        logger.info(f"Daemon shutdown complete (status {self.status_code})")

    def _log_resource_profile(self, label: str) -> None:
        self._last_profile_time = time.monotonic()
        try:
            if self._process is None:
                self._process = psutil.Process(os.getpid())
            cpu_percent = self._process.cpu_percent(interval=None)
            mem_mb = self._process.memory_info().rss / 1024 / 1024
        except psutil.Error as e:
            logger.debug(f"Resource profiling unavailable: {e}")
            return
        logger.info(f"[{label} Profile] CPU={cpu_percent:.2f}%, Memory={mem_mb:.2f}MB, Jobs={len(self.jobs)}, Cycles={self.cycles}")


def daemon_status(schedule_path: Path) -> tuple[HolderState, int | None]:
    """
    Check whether a daemon is running for a schedule file.

    Returns:
        Tuple of (status, pid) where status is "running", "stopped", or "stale"
    """
    return LockFile(lock_path_for(schedule_path)).holder_state()


def stop_daemon(schedule_path: Path, timeout: float = 5.0) -> bool:
    """
    Ask the daemon for a schedule file to stop, and wait for it to exit.

    Returns:
        True if the daemon stopped, False if it was not running or did not exit
    """
    state, pid = daemon_status(schedule_path)
    if state != "running" or pid is None:
        logger.warning(f"Daemon is not running ({state})")
        return False

    logger.info(f"Stopping daemon (PID {pid})...")
    try:
        os.kill(pid, signal.SIGTERM)
    except (ProcessLookupError, PermissionError) as e:
        logger.error(f"Failed to stop daemon: {e}")
        return False

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not psutil.pid_exists(pid):
            logger.info("Daemon stopped successfully")
            return True
        time.sleep(0.1)

    logger.warning(f"Daemon (PID {pid}) did not stop within {timeout:.0f}s")
    return False
