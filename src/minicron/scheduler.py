"""Due-job evaluation.

This module decides which schedule entries should run in a given minute.
"""

from collections.abc import Iterable, Iterator

from minicron.models import CronTime, ScheduleEntry


def should_run(entry: ScheduleEntry, now: CronTime) -> bool:
    """Check whether an entry is due at the given minute.

    All five fields must contain the corresponding component of ``now``.

    Args:
        entry: Parsed schedule entry
        now: Current wall-clock breakdown (1-based day and month)

    Returns:
        True if the entry should run this minute
    """
    return (
        entry.weekday[now.weekday]
        and entry.month[now.month - 1]
        and entry.day[now.day - 1]
        and entry.hour[now.hour]
        and entry.minute[now.minute]
    )


def due_entries(entries: Iterable[ScheduleEntry], now: CronTime) -> Iterator[ScheduleEntry]:
    """Yield the entries due at ``now``, keeping schedule file order."""
    for entry in entries:
        if should_run(entry, now):
            yield entry
