"""Schedule file line parser.

Turns one line of the schedule file into a :class:`ScheduleEntry`. A line is
either five time fields followed by a command, or a special ``@keyword``
followed by a command:

    <minute> <hour> <day-of-month> <month> <weekday> <command>[%<stdin>]
    @<keyword> <command>[%<stdin>]

Blank lines and ``#`` comments produce no entry. Malformed lines raise
:class:`ScheduleParseError` so the caller can drop them and move on.
"""

import logging
from collections.abc import Iterable

from minicron.errors import ScheduleParseError
from minicron.models import DAY, FIELDS, HOUR, MINUTE, MONTH, WEEKDAY, FieldSpec, ScheduleEntry, empty_set, full_set

logger = logging.getLogger(__name__)

BLANKS = " \t"
MAX_FIELD_DIGITS = 2

# Per keyword: minute, hour, day, month, weekday. None selects the full set,
# an integer selects that single (already 0-based) index.
_KeywordPattern = tuple[int | None, int | None, int | None, int | None, int | None]

SPECIAL_KEYWORDS: tuple[tuple[str, _KeywordPattern], ...] = (
    ("yearly", (0, 0, 0, 0, None)),
    ("annually", (0, 0, 0, 0, None)),
    ("monthly", (0, 0, 0, None, None)),
    ("weekly", (0, 0, None, None, 0)),
    ("daily", (0, 0, None, None, None)),
    ("midnight", (0, 0, None, None, None)),
    ("hourly", (0, None, None, None, None)),
)


class _LineScanner:
    """Cursor over a single schedule line."""

    def __init__(self, line: str) -> None:
        self.line = line
        self.pos = 0

    def peek(self) -> str:
        if self.pos < len(self.line):
            return self.line[self.pos]
        return ""

    def advance(self, count: int = 1) -> None:
        self.pos += count

    def skip_blanks(self) -> int:
        """Consume spaces and tabs, returning how many were skipped."""
        start = self.pos
        while self.peek() != "" and self.peek() in BLANKS:
            self.pos += 1
        return self.pos - start

    def take_digits(self, limit: int = MAX_FIELD_DIGITS) -> str:
        start = self.pos
        while self.pos - start < limit and self.peek().isascii() and self.peek().isdigit():
            self.pos += 1
        return self.line[start : self.pos]

    def rest(self) -> str:
        return self.line[self.pos :]


def _set_range(members: list[bool], start: int, end: int) -> None:
    for index in range(start, end + 1):
        members[index] = True


def _parse_field(scanner: _LineScanner, spec: FieldSpec) -> list[bool]:
    """Parse one time field and the blanks that must follow it.

    Args:
        scanner: Scanner positioned at the start of the field
        spec: Field being parsed

    Returns:
        Membership list sized to the field

    Raises:
        ScheduleParseError: If the field is malformed or out of range
    """
    if scanner.peek() == "*":
        scanner.advance()
        members = full_set(spec)
    else:
        members = empty_set(spec)
        while True:
            first = scanner.take_digits()
            if not first:
                raise ScheduleParseError(f"expected a number in the {spec.name} field")

            second: str | None = None
            if scanner.peek() == "-":
                scanner.advance()
                second = scanner.take_digits()
                if not second:
                    raise ScheduleParseError(f"incomplete range in the {spec.name} field")

            low = int(first) - spec.offset
            if low < 0 or low >= spec.length:
                raise ScheduleParseError(f"{spec.name} value out of range: {first}")

            if second is None:
                members[low] = True
            else:
                high = int(second) - spec.offset
                if low > high:
                    low, high = high, low
                if low < 0:
                    raise ScheduleParseError(f"{spec.name} value out of range: {second}")
                high = min(high, spec.length - 1)
                _set_range(members, low, high)

            if scanner.peek() != ",":
                break
            scanner.advance()

    if scanner.skip_blanks() == 0:
        raise ScheduleParseError(f"missing separator after the {spec.name} field")
    return members


def _apply_keyword(scanner: _LineScanner, entry: ScheduleEntry) -> None:
    """Match an ``@keyword`` and fill every field from its fixed pattern.

    Matching is by prefix, so anything following a full keyword is left in
    place and becomes the start of the command.
    """
    text = scanner.rest()
    for keyword, pattern in SPECIAL_KEYWORDS:
        if text.startswith(keyword):
            break
    else:
        raise ScheduleParseError(f"invalid special command: @{text}")

    scanner.advance(len(keyword))
    for spec, members, value in zip(FIELDS, entry.field_sets(), pattern):
        if value is None:
            members[:] = full_set(spec)
        else:
            members[value] = True


def _expand_stdin(template: str) -> bytes:
    """Turn the text after the first unescaped ``%`` into stdin bytes.

    A backslash copies the next character literally, a bare ``%`` becomes a
    newline, and one newline is appended at the end.
    """
    chars: list[str] = []
    index = 0
    while index < len(template):
        char = template[index]
        if char == "\\" and index + 1 < len(template):
            index += 1
            char = template[index]
        elif char == "%":
            char = "\n"
        chars.append(char)
        index += 1
    chars.append("\n")
    return "".join(chars).encode("utf-8", "surrogateescape")


def _parse_command(line: str, start: int, entry: ScheduleEntry) -> None:
    split_at: int | None = None
    for index in range(start, len(line)):
        if line[index] == "%" and index > 0 and line[index - 1] != "\\":
            split_at = index
            break

    if split_at is None:
        entry.command = line[start:]
        entry.stdin_payload = None
    else:
        entry.command = line[start:split_at]
        entry.stdin_payload = _expand_stdin(line[split_at + 1 :])


def parse_line(line: str) -> ScheduleEntry | None:
    """Parse one schedule line.

    Args:
        line: Line text without its trailing newline

    Returns:
        The parsed entry, or None for blank lines and comments

    Raises:
        ScheduleParseError: If the line is not a valid schedule entry
    """
    scanner = _LineScanner(line)
    scanner.skip_blanks()
    if scanner.peek() in ("", "#"):
        return None

    entry = ScheduleEntry()
    if scanner.peek() == "@":
        scanner.advance()
        _apply_keyword(scanner, entry)
    else:
        entry.minute = _parse_field(scanner, MINUTE)
        entry.hour = _parse_field(scanner, HOUR)
        entry.day = _parse_field(scanner, DAY)
        entry.month = _parse_field(scanner, MONTH)
        entry.weekday = _parse_field(scanner, WEEKDAY)

    scanner.skip_blanks()
    _parse_command(line, scanner.pos, entry)
    return entry


def parse_lines(lines: Iterable[str]) -> list[ScheduleEntry]:
    """Parse every line of a schedule, dropping the malformed ones.

    Trailing newlines are stripped before parsing. Malformed lines are logged
    at debug level, which is only shown in verbose mode.

    Args:
        lines: Schedule lines, in file order

    Returns:
        Parsed entries in file order
    """
    entries: list[ScheduleEntry] = []
    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line[:-1] if raw_line.endswith("\n") else raw_line
        try:
            entry = parse_line(line)
        except ScheduleParseError as e:
            logger.debug(f"line {line_number}: {e}")
            continue
        if entry is not None:
            entries.append(entry)
    return entries
