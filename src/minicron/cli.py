"""Command line entry points for the minicron daemon and crontab tool."""

import argparse
import sys
from pathlib import Path

from minicron import Daemon
from minicron.config import SettingsManager, resolve_home, schedule_path_for
from minicron.crontab import CrontabManager
from minicron.daemon import EXIT_FAILURE, EXIT_SUCCESS, CronDaemon, configure_logging
from minicron.errors import ConfigError, CrontabError


# ANSI color codes for terminal output
class Colors:
    """ANSI color codes for terminal output."""

    GREEN = "\033[92m"
    RED = "\033[91m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    RESET = "\033[0m"


def print_success(message: str) -> None:
    """Print success message in green."""
    print(f"{Colors.GREEN}✓{Colors.RESET} {message}")


def print_warning(message: str) -> None:
    """Print warning message in yellow."""
    print(f"{Colors.YELLOW}⚠{Colors.RESET} {message}")


def print_info(message: str) -> None:
    """Print info message in blue."""
    print(f"{Colors.BLUE}ℹ{Colors.RESET} {message}")


def build_crond_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="minicrond", description="Run the per-user job scheduler")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print diagnostics to stderr")
    parser.add_argument("--log-file", type=Path, help="Also write diagnostics to this rotating log file")
    control = parser.add_mutually_exclusive_group()
    control.add_argument("--status", action="store_true", help="Report whether a daemon is running and exit")
    control.add_argument("--stop", action="store_true", help="Stop the running daemon and exit")
    return parser


def build_crontab_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="minicrontab", description="Maintain the per-user schedule file")
    parser.add_argument("-e", dest="edit", action="store_true", help="Edit the schedule with $EDITOR")
    parser.add_argument("-l", dest="list", action="store_true", help="Print the schedule to stdout")
    parser.add_argument("-r", dest="remove", action="store_true", help="Remove the schedule")
    parser.add_argument("files", nargs="*", metavar="file", help="Replace the schedule with this file ('-' or none reads stdin)")
    return parser


def _handle_status(schedule_path: Path) -> int:
    status = Daemon.status(schedule_path)
    if status.state == "running":
        print_success(f"Daemon is running (PID: {status.pid})")
    elif status.state == "stale":
        print_warning(f"Stale lock file detected: {Daemon.lock_path(schedule_path)}")
        print_info("Remove it by hand once you are sure no daemon is running")
    else:
        print_info("Daemon is not running")
    return EXIT_SUCCESS


def _handle_stop(schedule_path: Path) -> int:
    if Daemon.stop(schedule_path):
        print_success("Daemon stopped successfully")
        return EXIT_SUCCESS
    print_warning("Daemon was not stopped")
    return EXIT_FAILURE


def crond_main(argv: list[str] | None = None) -> int:
    """Entry point for ``minicrond``.

    Returns:
        Exit code (0 if no daemon-level error was recorded)
    """
    args = build_crond_parser().parse_args(argv)
    configure_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        settings = SettingsManager().resolve(verbose=args.verbose, log_file=args.log_file)
    except ConfigError as e:
        print(f"crond: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if args.status:
        return _handle_status(settings.schedule_path)
    if args.stop:
        return _handle_stop(settings.schedule_path)

    if settings.log_file != args.log_file:
        configure_logging(verbose=args.verbose, log_file=settings.log_file)
    return CronDaemon(settings).run()


def crontab_main(argv: list[str] | None = None) -> int:
    """Entry point for ``minicrontab``.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = build_crontab_parser()
    args = parser.parse_args(argv)

    try:
        manager = CrontabManager(schedule_path_for(resolve_home()))
        selected = sum([args.edit, args.list, args.remove])
        if selected > 1 or (selected == 1 and args.files):
            raise CrontabError("Incorrect usage of flags")

        if args.edit:
            manager.edit()
        elif args.list:
            manager.list_to(sys.stdout.buffer)
        elif args.remove:
            manager.remove()
        elif len(args.files) > 1:
            raise CrontabError("Too many files")
        elif not args.files or args.files[0] == "-":
            manager.install_from(sys.stdin.buffer)
        else:
            try:
                source = open(args.files[0], "rb")
            except OSError as e:
                raise CrontabError(f"fopen: {args.files[0]}: {e}") from e
            with source:
                manager.install_from(source)
    except (CrontabError, ConfigError) as e:
        print(f"crontab error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_SUCCESS
