"""
Field-format dialects.

A dialect is one convention for writing task metadata inline:

    dataview        [scheduled:: 2024-01-01T09:00]  [due:: 2024-01-05]
    tasks           ⏳ 2024-01-01 📅 2024-01-05 ⏫
    full-calendar   [date:: 2024-01-01]  [startTime:: 09:00]  [endTime:: 10:00]
    simple          2024-01-01 9:00 - 10:00 Title  > 2024-01-05 !!
    kanban          Title @{2024-01-01} @@{09:00}

Bracketed ``[key:: value]`` fields and Tasks-plugin emoji are understood in
every dialect by parsers.task_codec; a dialect only adds the syntax that is
unique to it and decides how a task is written back. The set is closed:
pick one with get_dialect().
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional, Tuple

from vault_timeline.models.task import Priority, Task
from vault_timeline.utils.dates import (
    DailyNoteInfo,
    add_minutes,
    combine_date_time,
    date_value_to_iso,
    is_date_iso,
    parse_clock,
    parse_date_from_path,
)
from vault_timeline.utils.formatting import (
    ALL_TASK_EMOJI,
    PRIORITY_TO_EMOJI,
    PRIORITY_TO_SIMPLE,
    REMINDER_EMOJI,
    SIMPLE_TO_PRIORITY,
    render_emoji_field,
    render_field,
    render_length,
)

Clock = Tuple[int, int]

SIMPLE_SCHEDULED_DATE = re.compile(r"^(\d{4}-\d{2}-\d{2}) ")
# "9:00", "9:00 - 10:30" or a bare-hour range "9-10"; a lone number is title text
SIMPLE_SCHEDULED_TIME = re.compile(
    r"^((?:\d{1,2}:\d{2}|\d{1,2}(?= ?- ?\d))(?: ?- ?\d{1,2}(?::\d{2})?)?)(?=\s|$)"
)
SIMPLE_DUE = re.compile(r" ?> ?(\d{4}-\d{2}-\d{2})")
SIMPLE_PRIORITY = re.compile(r" (\?{1,2}|!{1,3})$")

KANBAN_DATE = re.compile(r" ?@\{(\d{4}-\d{2}-\d{2})\}")
KANBAN_TIME = re.compile(r" ?@@\{(\d{2}:\d{2})\}")

_CLOCK_RANGE = re.compile(r" ?- ?")
_FULL_CALENDAR_FIELD = re.compile(r"\[(?:allDay|date|startTime|endTime):: ")
_DATAVIEW_FIELD = re.compile(r"\[(?:scheduled|due):: ")

# Order of the bracketed fields shared by most dialects.
_TRAILING_FIELDS = ("due", "length", "repeat", "start", "created", "priority", "query", "completion")


# ---------------------------------------------------------------------------
# Shared rendering helpers
# ---------------------------------------------------------------------------

def _short_clock(iso_string: str) -> str:
    """"09:05" from an ISO instant, minus one leading zero ("9:05")."""
    return re.sub(r"^0(?=\d)", "", iso_string[11:16])


def bracket_fields(task: Task, keys: Iterable[str]) -> str:
    """Render the named task fields as ``  [key:: value]``, skipping empties."""
    values = {
        "scheduled": task.scheduled,
        "due": task.due,
        "length": render_length(task.length),
        "repeat": task.repeat,
        "start": task.start,
        "created": task.created,
        "priority": task.priority.key if task.has_priority else None,
        "query": task.query,
        "completion": task.completion,
    }
    return "".join("  " + render_field(key, values[key]) for key in keys if values[key])


def inherits_note_date(task: Task, daily_note: Optional[DailyNoteInfo] = None) -> bool:
    if not task.scheduled or task.parent is not None:
        return False
    note_day = parse_date_from_path(task.file_path, daily_note)
    return note_day is not None and note_day.isoformat() == task.scheduled[:10]


def written_scheduled(task: Task, daily_note: Optional[DailyNoteInfo] = None) -> Optional[str]:
    """
    The scheduled value a line has to spell out.

    A top-level task in its own daily note gets the note's date on parse,
    so an all-day value equal to that date is left implicit.
    """
    if task.scheduled and is_date_iso(task.scheduled) and inherits_note_date(task, daily_note):
        return None
    return task.scheduled


def native_reminder(task: Task) -> str:
    return f" (@{task.reminder})" if task.reminder else ""


def split_clock_range(text: str) -> Tuple[Optional[Clock], Optional[Clock]]:
    """Split "9:00 - 10:30" into ((9, 0), (10, 30)); either side may be None."""
    parts = _CLOCK_RANGE.split(text.strip(), maxsplit=1)
    start = parse_clock(parts[0])
    end = parse_clock(parts[1]) if len(parts) > 1 else None
    return start, end


# ---------------------------------------------------------------------------
# Dialects
# ---------------------------------------------------------------------------

class Dialect(ABC):
    """Base strategy: no dialect-specific parse syntax; subclasses decide how to write."""

    name = ""

    def strip_title(self, title: str) -> str:
        return title

    def scheduled(self, body: str, fields: Dict[str, Any]) -> Optional[str]:
        """Scheduled date (or date-time) written in this dialect's own syntax."""
        return None

    def clock(self, body: str) -> Tuple[Optional[Clock], Optional[Clock]]:
        """Start/end clock times written in the title itself."""
        return None, None

    def due(self, body: str) -> Optional[str]:
        return None

    def priority(self, body: str) -> Optional[Priority]:
        return None

    @abstractmethod
    def serialize_fields(self, task: Task, daily_note: Optional[DailyNoteInfo] = None) -> Tuple[str, str]:
        """
        Return (leading, trailing) text for a task.

        ``leading`` goes between the checkbox and the title, ``trailing`` after
        the tags and extra fields.
        """

    def __repr__(self) -> str:
        return f"<Dialect {self.name}>"


class DataviewDialect(Dialect):
    name = "dataview"

    def serialize_fields(self, task, daily_note=None):
        scheduled = written_scheduled(task, daily_note)
        trailing = "  " + render_field("scheduled", scheduled) if scheduled else ""
        trailing += native_reminder(task)
        return "", trailing + bracket_fields(task, _TRAILING_FIELDS)


class TasksDialect(Dialect):
    """Obsidian Tasks emoji. Clock time and length have no emoji, so they stay bracketed."""

    name = "tasks"

    def serialize_fields(self, task, daily_note=None):
        trailing = bracket_fields(task, ["length"])
        if task.scheduled and not is_date_iso(task.scheduled):
            trailing += "  " + render_field("startTime", task.scheduled[11:16])
        if task.reminder:
            trailing += f" {REMINDER_EMOJI} {task.reminder}"
        if task.has_priority:
            trailing += " " + PRIORITY_TO_EMOJI[task.priority]
        if task.repeat:
            trailing += " " + render_emoji_field("repeat", task.repeat)
        if task.start:
            trailing += " " + render_emoji_field("start", task.start)
        if written_scheduled(task, daily_note):
            trailing += " " + render_emoji_field("scheduled", task.scheduled[:10])
        if task.due:
            trailing += " " + render_emoji_field("due", task.due)
        if task.created:
            trailing += " " + render_emoji_field("created", task.created)
        trailing += bracket_fields(task, ["query"])
        if task.completion:
            trailing += " " + render_emoji_field("completion", task.completion)
        return "", trailing


class FullCalendarDialect(Dialect):
    name = "full-calendar"

    def scheduled(self, body, fields):
        day = date_value_to_iso(fields.get("date"))
        if day and fields.get("allDay") is True:
            return day[:10]
        return day

    def serialize_fields(self, task, daily_note=None):
        trailing = ""
        keys = list(_TRAILING_FIELDS)
        if written_scheduled(task, daily_note):
            trailing += "  " + render_field("date", task.scheduled[:10])
            if is_date_iso(task.scheduled):
                trailing += "  " + render_field("allDay", "true")
            else:
                trailing += "  " + render_field("startTime", task.scheduled[11:16])
        trailing += native_reminder(task) + bracket_fields(task, ["due"])
        keys.remove("due")
        if task.scheduled and not is_date_iso(task.scheduled) and task.length and task.length.minutes > 0:
            end = add_minutes(task.scheduled, task.length.minutes)
            # endTime cannot express a span past midnight
            if end[:10] == task.scheduled[:10]:
                trailing += "  " + render_field("endTime", end[11:16])
                keys.remove("length")
        return "", trailing + bracket_fields(task, keys)


class SimpleDialect(Dialect):
    """Day-planner style: date and time lead the title, due and priority trail it."""

    name = "simple"

    def strip_title(self, title):
        title = SIMPLE_SCHEDULED_DATE.sub("", title, count=1)
        title = SIMPLE_SCHEDULED_TIME.sub("", title, count=1)
        title = SIMPLE_DUE.sub("", title, count=1)
        return SIMPLE_PRIORITY.sub("", title.rstrip(), count=1)

    def scheduled(self, body, fields):
        m = SIMPLE_SCHEDULED_DATE.match(body)
        return m.group(1) if m else None

    def clock(self, body):
        m = SIMPLE_SCHEDULED_TIME.match(SIMPLE_SCHEDULED_DATE.sub("", body, count=1))
        if not m:
            return None, None
        return split_clock_range(m.group(1))

    def due(self, body):
        m = SIMPLE_DUE.search(body)
        return m.group(1) if m else None

    def priority(self, body):
        m = SIMPLE_PRIORITY.search(body.rstrip())
        return SIMPLE_TO_PRIORITY.get(m.group(1)) if m else None

    def serialize_fields(self, task, daily_note=None):
        leading = ""
        keys = list(_TRAILING_FIELDS)
        keys.remove("priority")
        if task.scheduled:
            day = task.scheduled[:10]
            # the leading clock carries the time, so even a timed value drops the note date
            if not inherits_note_date(task, daily_note):
                leading += day + " "
            if not is_date_iso(task.scheduled):
                clock = _short_clock(task.scheduled)
                if task.length and task.length.minutes > 0:
                    end = add_minutes(task.scheduled, task.length.minutes)
                    if end[:10] == day:
                        clock += " - " + _short_clock(end)
                        keys.remove("length")
                leading += clock + " "

        trailing = ""
        if task.due:
            trailing += f"  > {task.due[:10]}"
            keys.remove("due")
        trailing += bracket_fields(task, keys) + native_reminder(task)
        if task.has_priority:
            trailing += " " + PRIORITY_TO_SIMPLE[task.priority]
        return leading, trailing


class KanbanDialect(Dialect):
    name = "kanban"

    def strip_title(self, title):
        return KANBAN_TIME.sub("", KANBAN_DATE.sub("", title))

    def scheduled(self, body, fields):
        m = KANBAN_DATE.search(body)
        if not m:
            return None
        time_match = KANBAN_TIME.search(body)
        clock = parse_clock(time_match.group(1)) if time_match else None
        if clock:
            return combine_date_time(m.group(1), *clock)
        return m.group(1)

    def serialize_fields(self, task, daily_note=None):
        trailing = ""
        if written_scheduled(task, daily_note):
            trailing += " @{" + task.scheduled[:10] + "}"
            if not is_date_iso(task.scheduled):
                trailing += " @@{" + task.scheduled[11:16] + "}"
        trailing += native_reminder(task)
        return "", trailing + bracket_fields(task, _TRAILING_FIELDS)


DIALECTS: Dict[str, Dialect] = {
    d.name: d
    for d in (DataviewDialect(), TasksDialect(), FullCalendarDialect(), SimpleDialect(), KanbanDialect())
}
FIELD_FORMATS = tuple(DIALECTS)

_SIMPLE_LEADING_CLOCK = re.compile(r"^\d{1,2}:\d{2}(?: ?- ?\d{1,2}:\d{2})? ")


def get_dialect(name: str) -> Dialect:
    """Look up a dialect by name; raises ValueError for unknown names."""
    try:
        return DIALECTS[name]
    except KeyError:
        raise ValueError(f"Unknown field format {name!r}; expected one of {', '.join(FIELD_FORMATS)}")


def detect_field_format(text: str, default: str = "dataview") -> str:
    """
    Guess the dialect an existing task line was written in.

    Checked in order: simple, tasks, kanban, full-calendar, dataview; lines
    with no telltale syntax get ``default``.
    """
    if SIMPLE_SCHEDULED_DATE.search(text) or SIMPLE_DUE.search(text) or _SIMPLE_LEADING_CLOCK.match(text):
        return "simple"
    if any(emoji in text for emoji in ALL_TASK_EMOJI):
        return "tasks"
    if KANBAN_DATE.search(text):
        return "kanban"
    if _FULL_CALENDAR_FIELD.search(text):
        return "full-calendar"
    if _DATAVIEW_FIELD.search(text):
        return "dataview"
    return default
