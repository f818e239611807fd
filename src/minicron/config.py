"""Configuration management for minicron.

Settings come from three places, highest priority first: environment
variables, the optional JSON settings file at ~/.config/minicron.json, and
built-in defaults.
"""

import json
import logging
import os
import pwd
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from minicron.errors import ConfigError
from minicron.executor import DEFAULT_MAILER

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".config"
SCHEDULE_FILE_NAME = ".crontab"
SETTINGS_FILE_NAME = "minicron.json"
DEFAULT_SHELL = "/bin/sh"
DEFAULT_EDITOR = "vi"


def _password_entry() -> pwd.struct_passwd | None:
    try:
        return pwd.getpwuid(os.geteuid())
    except KeyError:
        return None


def resolve_home() -> Path:
    """Get the home directory of the current user.

    Uses ``$HOME`` first and falls back to the password database entry for
    the effective user id.

    Raises:
        ConfigError: If neither source yields a home directory
    """
    env_home = os.environ.get("HOME")
    if env_home is not None:
        return Path(env_home)

    entry = _password_entry()
    if entry is None:
        raise ConfigError("failed to get home path")
    return Path(entry.pw_dir)


def schedule_path_for(home: Path) -> Path:
    """Return the schedule file location inside a home directory."""
    return home / CONFIG_DIR_NAME / SCHEDULE_FILE_NAME


def resolve_shell(configured: str | None = None) -> str:
    """Return ``$SHELL``, else the configured shell, else /bin/sh."""
    return os.environ.get("SHELL") or configured or DEFAULT_SHELL


def resolve_user_name() -> str:
    """Return ``$LOGNAME``, the password database name, or an empty string."""
    env_logname = os.environ.get("LOGNAME")
    if env_logname is not None:
        return env_logname

    entry = _password_entry()
    return entry.pw_name if entry is not None else ""


def resolve_email_to() -> str:
    """Return the operator address as ``user@hostname``."""
    return f"{resolve_user_name()}@{socket.gethostname()}"


def resolve_editor() -> str:
    """Return ``$EDITOR``, or vi when it is not set."""
    return os.environ.get("EDITOR", DEFAULT_EDITOR)


@dataclass
class DaemonSettings:
    """Resolved settings for one daemon run.

    Attributes:
        home: Home directory of the user whose schedule is run
        schedule_path: Path to the schedule file
        shell: Shell used to run each job
        email_to: Address that receives job output
        user_name: Login name exported to jobs
        mailer: Mail program used to deliver job output
        verbose: Print diagnostics to stderr
        log_file: Optional rotating log file
    """

    home: Path
    schedule_path: Path
    shell: str
    email_to: str
    user_name: str
    mailer: str = DEFAULT_MAILER
    verbose: bool = False
    log_file: Path | None = None


class SettingsManager:
    """Loads the optional JSON settings file and resolves daemon settings."""

    def __init__(self, settings_path: Path | None = None) -> None:
        """Initialize settings manager.

        Args:
            settings_path: Path to settings file (defaults to ~/.config/minicron.json)
        """
        self._settings_path = settings_path

    @property
    def settings_path(self) -> Path:
        if self._settings_path is None:
            self._settings_path = resolve_home() / CONFIG_DIR_NAME / SETTINGS_FILE_NAME
        return self._settings_path

    def load_file(self) -> dict[str, Any]:
        """Load the JSON settings file.

        Returns:
            Dictionary of settings, empty if the file doesn't exist

        Raises:
            ConfigError: If the file exists but is not a JSON object
        """
        path = self.settings_path
        if not path.exists():
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                data: Any = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in settings file {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read settings file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {path} must contain a JSON object")
        logger.debug(f"Loaded settings from {path}")
        return data  # type: ignore[return-value]

    def resolve(self, verbose: bool = False, log_file: Path | None = None) -> DaemonSettings:
        """Resolve all daemon settings.

        Args:
            verbose: Print diagnostics to stderr
            log_file: Log file path from the command line (overrides the file)

        Returns:
            DaemonSettings instance

        Raises:
            ConfigError: If the home directory or settings file cannot be used
        """
        home = resolve_home()
        file_settings = self.load_file()

        shell = resolve_shell(file_settings.get("shell"))
        mailer = str(file_settings.get("mailer") or DEFAULT_MAILER)
        if log_file is None and file_settings.get("log_file"):
            log_file = Path(str(file_settings["log_file"])).expanduser()

        return DaemonSettings(
            home=home,
            schedule_path=schedule_path_for(home),
            shell=shell,
            email_to=resolve_email_to(),
            user_name=resolve_user_name(),
            mailer=mailer,
            verbose=verbose,
            log_file=log_file,
        )
