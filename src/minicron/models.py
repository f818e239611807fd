"""Data models for schedule entries.

This module defines the core data structures shared by the parser, the
due-job evaluator and the job runner.
"""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class FieldSpec:
    """Describes one of the five time fields of a schedule line.

    Attributes:
        name: Field name used in diagnostics
        length: Number of valid values (size of the membership list)
        offset: Value subtracted at parse time (1 for day and month, which are
            written 1-based but stored 0-based)
    """

    name: str
    length: int
    offset: int


MINUTE = FieldSpec("minute", 60, 0)
HOUR = FieldSpec("hour", 24, 0)
DAY = FieldSpec("day", 31, 1)
MONTH = FieldSpec("month", 12, 1)
WEEKDAY = FieldSpec("weekday", 7, 0)

FIELDS: tuple[FieldSpec, ...] = (MINUTE, HOUR, DAY, MONTH, WEEKDAY)


def empty_set(spec: FieldSpec) -> list[bool]:
    """Return a membership list with no values selected."""
    return [False] * spec.length


def full_set(spec: FieldSpec) -> list[bool]:
    """Return a membership list with every value selected."""
    return [True] * spec.length


@dataclass
class ScheduleEntry:
    """A single job parsed from the schedule file.

    Attributes:
        command: Shell command line to execute
        stdin_payload: Bytes fed to the command's standard input (None if the
            line had no ``%`` section)
        minute: Membership list indexed by minute (0-59)
        hour: Membership list indexed by hour (0-23)
        day: Membership list indexed by day of month minus one (0-30)
        month: Membership list indexed by month minus one (0-11)
        weekday: Membership list indexed by weekday, 0 = Sunday (0-6)
    """

    command: str = ""
    stdin_payload: bytes | None = None
    minute: list[bool] = field(default_factory=lambda: empty_set(MINUTE))
    hour: list[bool] = field(default_factory=lambda: empty_set(HOUR))
    day: list[bool] = field(default_factory=lambda: empty_set(DAY))
    month: list[bool] = field(default_factory=lambda: empty_set(MONTH))
    weekday: list[bool] = field(default_factory=lambda: empty_set(WEEKDAY))

    def field_sets(self) -> tuple[list[bool], ...]:
        """Return the five membership lists in schedule-line order."""
        return (self.minute, self.hour, self.day, self.month, self.weekday)


@dataclass(frozen=True)
class CronTime:
    """Wall-clock breakdown the evaluator works with.

    Day and month are 1-based as on a calendar; weekday uses 0 for Sunday.
    """

    minute: int
    hour: int
    day: int
    month: int
    weekday: int

    @classmethod
    def from_datetime(cls, moment: datetime) -> "CronTime":
        """Build a breakdown from a local datetime."""
        return cls(
            minute=moment.minute,
            hour=moment.hour,
            day=moment.day,
            month=moment.month,
            weekday=moment.isoweekday() % 7,
        )
