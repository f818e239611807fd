"""Job executor for running due schedule entries.

Each due entry gets its own monitor thread. The monitor starts the command
through the configured shell, feeds it the entry's stdin payload, collects
everything the command writes to stdout and stderr, waits for it to exit and,
if there was any output, mails that output to the operator:

    daemon loop --launch--> JobMonitor --spawn--> <shell> -c <command>
                                |
                                +--(output?)--> <mailer> -s <subject> <address>

The daemon never waits for a monitor while scheduling; it only sweeps
finished monitors once per cycle and joins the remaining ones at shutdown.
"""

import logging
import shlex
import subprocess
import threading
from collections.abc import Mapping
from typing import BinaryIO

from minicron.models import ScheduleEntry

logger = logging.getLogger(__name__)

# Bytes requested per read when draining command output.
READ_BUFFER_SIZE = 1000
# Subject lines longer than this are cut off (one less than the buffer size).
MAX_SUBJECT_LEN = 80
DEFAULT_MAILER = "mailx"
JOB_PATH = "/usr/bin:/bin"


def write_all(stream: BinaryIO, data: bytes) -> None:
    """Write every byte of ``data``, retrying after partial writes.

    Args:
        stream: Unbuffered binary stream (e.g. a pipe opened with bufsize=0)
        data: Bytes to send
    """
    view = memoryview(data)
    while view:
        written = stream.write(view)
        if written:
            view = view[written:]


def drain(stream: BinaryIO) -> bytes:
    """Read a stream until EOF.

    The buffer grows by exactly the number of bytes each read returns.
    """
    buffer = bytearray()
    while True:
        chunk = stream.read(READ_BUFFER_SIZE)
        if not chunk:
            break
        buffer += chunk
    return bytes(buffer)


def build_subject(email_to: str, command: str) -> str:
    """Build the mail subject, silently truncated to the maximum length."""
    return f"Cron <{email_to}> {command}"[: MAX_SUBJECT_LEN - 1]


def build_job_environment(home: str, logname: str, shell: str) -> dict[str, str]:
    """Return the minimal environment every job command runs with."""
    return {
        "HOME": home,
        "LOGNAME": logname,
        "SHELL": shell,
        "PATH": JOB_PATH,
    }


class JobMonitor(threading.Thread):
    """Runs one schedule entry to completion and delivers its output.

    The steps are strictly ordered: write stdin, drain output, wait for the
    command, then deliver. A failure ends this monitor only; ``exit_status``
    is 0 on success and 1 otherwise.
    """

    def __init__(
        self,
        entry: ScheduleEntry,
        shell: str,
        email_to: str,
        mailer: str = DEFAULT_MAILER,
        env: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(name=f"job-monitor:{entry.command[:40]}", daemon=False)
        self.entry = entry
        self.shell = shell
        self.email_to = email_to
        self.mailer = mailer
        self.env = dict(env) if env is not None else None
        self.output = b""
        self.returncode: int | None = None
        self.delivered = False
        self.exit_status: int | None = None

    def run(self) -> None:
        try:
            self.output = self._run_command()
            if self.output:
                self._deliver(self.output)
            self.exit_status = 0
        # ValueError covers a NUL byte in the command and an unparsable mailer.
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.error(f"[Job] {self.entry.command!r} failed: {e}")
            self.exit_status = 1

    def _run_command(self) -> bytes:
        """Start the command, feed its stdin and collect its output.

        Returns:
            Combined stdout and stderr of the command
        """
        with subprocess.Popen(
            [self.shell, "-c", self.entry.command],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            bufsize=0,
            env=self.env,
        ) as process:
            assert process.stdin is not None
            assert process.stdout is not None

            try:
                if self.entry.stdin_payload:
                    write_all(process.stdin, self.entry.stdin_payload)
            except BrokenPipeError:
                logger.debug(f"[Job] {self.entry.command!r} exited before reading all of stdin")
            finally:
                process.stdin.close()

            output = drain(process.stdout)
            process.stdout.close()
            self.returncode = process.wait()

        logger.debug(f"[Job] {self.entry.command!r} exited with {self.returncode} ({len(output)} byte(s) of output)")
        return output

    def _deliver(self, body: bytes) -> None:
        """Pipe ``body`` into the mail program addressed to the operator."""
        subject = build_subject(self.email_to, self.entry.command)
        cmd = [*shlex.split(self.mailer), "-s", subject, self.email_to]

        with subprocess.Popen(cmd, stdin=subprocess.PIPE, bufsize=0) as mail:
            assert mail.stdin is not None
            try:
                write_all(mail.stdin, body)
            except BrokenPipeError:
                logger.warning(f"[Job] mailer exited before reading the whole message for {self.entry.command!r}")
            finally:
                mail.stdin.close()
            mail.wait()

        self.delivered = True
        logger.debug(f"[Job] Mailed {len(body)} byte(s) of output to {self.email_to}")


class JobRunner:
    """Launches job monitors and keeps track of the ones still running."""

    def __init__(
        self,
        shell: str,
        email_to: str,
        mailer: str = DEFAULT_MAILER,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize job runner.

        Args:
            shell: Shell used as ``<shell> -c <command>``
            email_to: Operator address that receives job output
            mailer: Mail program, optionally with extra arguments
            env: Environment for job commands (None inherits the daemon's)
        """
        self.shell = shell
        self.email_to = email_to
        self.mailer = mailer
        self.env = env
        self._monitors: list[JobMonitor] = []

    @property
    def running_count(self) -> int:
        return sum(1 for monitor in self._monitors if monitor.is_alive())

    def launch(self, entry: ScheduleEntry) -> JobMonitor | None:
        """Start a monitor for ``entry`` without waiting for it.

        Returns:
            The started monitor, or None if it could not be started
        """
        logger.info(f"running job: {entry.command}")
        monitor = JobMonitor(entry, self.shell, self.email_to, self.mailer, self.env)
        try:
            monitor.start()
        except RuntimeError as e:
            logger.warning(f"failed to execute job {entry.command!r}: {e}")
            return None
        self._monitors.append(monitor)
        return monitor

    def reap(self) -> list[JobMonitor]:
        """Collect finished monitors without blocking.

        Returns:
            Monitors that finished since the previous sweep
        """
        finished: list[JobMonitor] = []
        running: list[JobMonitor] = []
        for monitor in self._monitors:
            (running if monitor.is_alive() else finished).append(monitor)

        for monitor in finished:
            monitor.join()
            logger.debug(f"[Job] Reaped {monitor.entry.command!r} (status {monitor.exit_status})")
        self._monitors = running
        return finished

    def wait_all(self, timeout: float | None = None) -> None:
        """Block until every launched monitor has finished."""
        for monitor in self._monitors:
            monitor.join(timeout)
        self.reap()
