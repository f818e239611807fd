"""
Custom exception classes for minicron.

This module defines the exception hierarchy shared by the daemon and the
crontab tool so failures can be reported consistently.
"""


class MinicronError(Exception):
    """Base exception for minicron errors."""

    pass


class ConfigError(MinicronError):
    """Configuration error."""

    pass


class ScheduleParseError(MinicronError, ValueError):
    """A schedule line is malformed and must be dropped."""

    pass


class ScheduleReadError(MinicronError):
    """The schedule file could not be read to the end."""

    pass


class LockError(MinicronError):
    """The daemon lock file could not be acquired or released."""

    pass


class CrontabError(MinicronError):
    """Error raised by the crontab editing tool."""

    pass
