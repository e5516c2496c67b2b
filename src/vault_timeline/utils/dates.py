"""
Date, ISO-string and duration utilities.

Pure functions, no external dependencies.

Two string shapes circulate through the whole package:
- date-only   "YYYY-MM-DD"        (10 chars, all-day)
- date-time   "YYYY-MM-DDTHH:MM"  (16 chars, offset-free local wall clock)

Both sort correctly as plain strings, which the layout engine relies on.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

DATE_ISO_LENGTH = 10
DATETIME_ISO_LENGTH = 16

ISO_PATTERN = r"\d{4}-\d{2}-\d{2}(?:T\d{2}:\d{2})?"

_ISO_PARSE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})"
    r"(?:[T ](\d{1,2}):(\d{2})(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$"
)
_CLOCK = re.compile(r"^\s*(\d{1,2})(?::(\d{1,2}))?\s*$")


# ---------------------------------------------------------------------------
# ISO strings
# ---------------------------------------------------------------------------

def is_date_iso(iso_string: str) -> bool:
    """True for an all-day value ("YYYY-MM-DD")."""
    return len(iso_string) == DATE_ISO_LENGTH


def round_minutes(moment: datetime) -> datetime:
    """Floor to the previous quarter hour and drop seconds."""
    return moment.replace(minute=moment.minute - moment.minute % 15, second=0, microsecond=0)


def to_iso(moment: datetime) -> str:
    """Render a datetime as "YYYY-MM-DDTHH:MM" (no seconds, no offset)."""
    return moment.strftime("%Y-%m-%dT%H:%M")


def now_iso(moment: Optional[datetime] = None) -> str:
    """Current instant rounded to the quarter hour."""
    return to_iso(round_minutes(moment or datetime.now()))


def parse_iso(value: str) -> Optional[datetime]:
    """
    Parse a date or date-time string into a naive datetime.

    Seconds, fractions and UTC offsets are accepted but discarded. Date-only
    strings become midnight. Returns None when the text is not ISO-shaped or
    names an impossible date.
    """
    if not value:
        return None
    m = _ISO_PARSE.match(value.strip())
    if not m:
        return None
    year, month, day, hour, minute = m.groups()
    try:
        return datetime(int(year), int(month), int(day), int(hour or 0), int(minute or 0))
    except ValueError:
        return None


def normalize_iso(value: str) -> Optional[str]:
    """Validate an ISO string and return its canonical 10- or 16-char form."""
    parsed = parse_iso(value)
    if parsed is None:
        return None
    m = _ISO_PARSE.match(value.strip())
    if m and m.group(4) is None:
        return parsed.date().isoformat()
    return to_iso(parsed)


def date_value_to_iso(value: object) -> Optional[str]:
    """
    Convert a structured date value from document metadata to ISO.

    datetimes keep their clock time (midnight included), dates stay
    all-day. Strings are validated. Anything else yields None.
    """
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return normalize_iso(value)
    return None


def combine_date_time(day: str, hour: int, minute: int) -> Optional[str]:
    """Attach a clock time to the date part of an ISO string."""
    parsed = parse_iso(day[:DATE_ISO_LENGTH])
    if parsed is None:
        return None
    try:
        return to_iso(parsed.replace(hour=hour, minute=minute))
    except ValueError:
        return None


def parse_clock(text: str) -> Optional[Tuple[int, int]]:
    """Parse "9", "9:05" or "09:05" into (hour, minute); None if malformed."""
    if not isinstance(text, str):
        return None
    m = _CLOCK.match(text)
    if not m:
        return None
    hour, minute = int(m.group(1)), int(m.group(2) or 0)
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def add_minutes(iso_string: str, minutes: int) -> str:
    """Shift an ISO instant forward; the result is always date-time shaped."""
    start = parse_iso(iso_string)
    if start is None:
        raise ValueError(f"Not an ISO instant: {iso_string!r}")
    return to_iso(start + timedelta(minutes=minutes))


def minutes_between(start_iso: str, end_iso: str) -> int:
    """Whole minutes from start to end (negative if end is earlier)."""
    start, end = parse_iso(start_iso), parse_iso(end_iso)
    if start is None or end is None:
        raise ValueError(f"Not an ISO interval: {start_iso!r} .. {end_iso!r}")
    return int((end - start).total_seconds() // 60)


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

def duration_to_minutes(duration_str: str) -> Optional[int]:
    """
    Parse duration string into total minutes.

    Supports: "2h", "30m", "2d", "2h30m", "2.5h", "2 hours", "45 minutes"
    """
    if not duration_str:
        return None

    s = duration_str.strip().lower()
    total = 0

    days = re.search(r'(\d+(?:\.\d+)?)\s*(?:d|days?)', s)
    if days:
        total += int(float(days.group(1)) * 24 * 60)

    hours = re.search(r'(\d+(?:\.\d+)?)\s*(?:h|hrs?|hours?)', s)
    if hours:
        total += int(float(hours.group(1)) * 60)

    minutes = re.search(r'(\d+)\s*(?:m|mins?|minutes?)', s)
    if minutes:
        total += int(minutes.group(1))

    return total if total > 0 else None


def minutes_to_duration(total_minutes: int) -> Optional[str]:
    """Format minutes as a compact duration string (e.g. "2h30m", "45m")."""
    if not total_minutes or total_minutes < 0:
        return None

    hours, mins = divmod(total_minutes, 60)

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if mins:
        parts.append(f"{mins}m")

    return "".join(parts) if parts else None


# ---------------------------------------------------------------------------
# Daily notes
# ---------------------------------------------------------------------------

# moment.js tokens used by daily-note formats → strptime directives.
# Longest tokens first so "MMMM" wins over "MM".
_MOMENT_TOKENS = [
    ("YYYY", "%Y"),
    ("YY", "%y"),
    ("MMMM", "%B"),
    ("MMM", "%b"),
    ("MM", "%m"),
    ("M", "%m"),
    ("DDDD", "%j"),
    ("DD", "%d"),
    ("D", "%d"),
    ("dddd", "%A"),
    ("ddd", "%a"),
    ("ww", "%W"),
]
_MOMENT_SPLIT = re.compile(
    r"\[[^\]]*\]|" + "|".join(re.escape(token) for token, _ in _MOMENT_TOKENS)
)


def moment_to_strftime(fmt: str) -> str:
    """
    Translate a moment-style date format ("YYYY-MM-DD", "[Week] ww") into
    the equivalent strftime/strptime pattern. Bracketed text is literal.
    """
    out = []
    pos = 0
    directives = dict(_MOMENT_TOKENS)
    for m in _MOMENT_SPLIT.finditer(fmt):
        out.append(fmt[pos:m.start()].replace("%", "%%"))
        token = m.group()
        if token.startswith("["):
            out.append(token[1:-1].replace("%", "%%"))
        else:
            out.append(directives[token])
        pos = m.end()
    out.append(fmt[pos:].replace("%", "%%"))
    return "".join(out)


@dataclass(frozen=True)
class DailyNoteInfo:
    """Where daily notes live and how their file names encode the date."""

    folder: str = ""
    format: str = "YYYY-MM-DD"

    @property
    def prefix(self) -> str:
        folder = self.folder.strip("/")
        return folder + "/" if folder else ""


def parse_file_from_path(path: str) -> str:
    """Drop heading ("#"), breadcrumb (">") and line ("::") suffixes from a path."""
    for sep in ("#", ">", "::"):
        if sep in path:
            path = path[: path.index(sep)]
    return path


def parse_date_from_path(path: str, info: Optional[DailyNoteInfo]) -> Optional[date]:
    """
    Return the date encoded in a daily-note path, or None.

    Parsing is strict: the whole file name (minus folder and ".md") must
    match the configured format.
    """
    if info is None or not path:
        return None
    name = parse_file_from_path(path)
    if info.prefix and name.startswith(info.prefix):
        name = name[len(info.prefix):]
    if name.endswith(".md"):
        name = name[:-3]
    try:
        return datetime.strptime(name, moment_to_strftime(info.format)).date()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Day boundaries
# ---------------------------------------------------------------------------

def start_date_for(moment: datetime, day_end: int) -> date:
    """
    The calendar day a moment belongs to.

    A day end before noon means the day runs past midnight, so the small
    hours still belong to the previous date.
    """
    if day_end < 12 and moment.hour < day_end:
        return (moment - timedelta(days=1)).date()
    return moment.date()


def day_window(day: date, day_start: int = 0, day_end: int = 24) -> Tuple[str, str]:
    """[start, end) ISO bounds of a display day between the configured hours."""
    start = datetime.combine(day, datetime.min.time()) + timedelta(hours=day_start)
    end = datetime.combine(day, datetime.min.time()) + timedelta(hours=day_end)
    if end <= start:
        end += timedelta(days=1)
    return to_iso(start), to_iso(end)
