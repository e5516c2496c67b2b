"""
Task text ⇄ Task record codec.

Main API:
    parse_task(record, daily_note, default_format)  → Task
    parse_line(text, path, ...)                     → Task
    serialize_task(task, field_format, daily_note)  → str
    page_to_task(record, default_format)            → Task
    task_to_frontmatter(task, frontmatter)          → dict

Parsing never raises on bad task text: a field that does not parse is simply
absent. Every temporal field is resolved by a cascade (structured metadata,
then the dialect's own syntax, then Tasks-plugin emoji) and the first source
that yields a value wins.
"""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from vault_timeline.models.document import RawTaskRecord, ScannedDocument
from vault_timeline.models.task import Length, Position, Priority, Task
from vault_timeline.parsers.dialects import Clock, Dialect, detect_field_format, get_dialect
from vault_timeline.parsers.markdown import (
    INLINE_FIELD,
    extract_inline_fields,
    extract_tags,
    mask_links,
    scan_content,
)
from vault_timeline.utils.dates import (
    DailyNoteInfo,
    ISO_PATTERN,
    combine_date_time,
    date_value_to_iso,
    duration_to_minutes,
    is_date_iso,
    minutes_to_duration,
    normalize_iso,
    parse_clock,
    parse_date_from_path,
    to_iso,
)
from vault_timeline.utils.formatting import (
    ALL_TASK_EMOJI,
    FIELD_TO_EMOJI,
    PRIORITY_TO_EMOJI,
    REMINDER_EMOJI,
    VARIATION_SELECTOR,
    emoji_pattern,
    render_length,
)

log = logging.getLogger(__name__)

# Metadata keys the codec interprets itself (or that belong to the host index).
# Everything else is carried through as Task.extra_fields.
RESERVED_FIELDS = frozenset({
    # host index bookkeeping
    "annotated", "children", "header", "line", "lineCount", "link", "list",
    "outlinks", "parent", "path", "position", "real", "section", "status",
    "subtasks", "symbol", "tags", "task", "text",
    # task fields
    "checked", "completed", "fullyCompleted", "created", "due", "completion",
    "start", "scheduled", "length", "duration", "priority", "repeat",
    "reminder", "query",
    # full-calendar
    "startTime", "endTime", "date", "type", "allDay", "title",
})

BLOCK_REFERENCE = re.compile(r"\s*(\^[a-zA-Z0-9-]+)\s*$")
_INLINE_FIELD_STRIP = re.compile(INLINE_FIELD.pattern + " *")
_TAG_STRIP = re.compile(r"(?<![\w#&/])#([\w\-/]+)\s?")
_EMOJI_CLASS = "[" + ALL_TASK_EMOJI + "]" + VARIATION_SELECTOR + "?"
TASKS_EMOJI_SEARCH = re.compile(_EMOJI_CLASS + r" ?(" + ISO_PATTERN + r")?")
TASKS_REPEAT_SEARCH = re.compile(emoji_pattern(FIELD_TO_EMOJI["repeat"]) + r" ?([a-zA-Z0-9 ]+)")
TASKS_REMINDER = re.compile(
    r" ?" + emoji_pattern(REMINDER_EMOJI) + r" ?(\d{4}-\d{2}-\d{2}(?:[ T]\d{2}:\d{2})?)"
)
NATIVE_REMINDER = re.compile(r" ?\(@(\d{4}-\d{2}-\d{2}(?: \d{2}:\d{2})?)\)")
_WIKI_ALIAS = re.compile(r"\[\[[^\]]*?\|(.*?)\]\]")
_WIKI = re.compile(r"\[\[(.*?)\]\]")
_MD_LINK = re.compile(r"\[(.*?)\]\(.*?\)")
_SPACES = re.compile(r" {2,}")
_QUERY_SYNTAX = re.compile(r'"|(^|\s)#|WHERE')


def task_id(path: str, line: int) -> str:
    """"<path without .md>::<line>"."""
    return re.sub(r"\.md$", "", path) + "::" + str(line)


def stringify_field(value: Any) -> str:
    """Render a metadata value the way it would be written inline."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, timedelta):
        return minutes_to_duration(int(value.total_seconds() // 60)) or "0m"
    if isinstance(value, (list, tuple)):
        return ", ".join(stringify_field(v) for v in value)
    return str(value)


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------

def _strip_tags(text: str) -> str:
    """Remove hashtags (plus one trailing space) that are not inside links."""
    masked = mask_links(text)
    out: List[str] = []
    pos = 0
    for m in _TAG_STRIP.finditer(masked):
        if m.group(1).isdigit():
            continue
        out.append(text[pos:m.start()])
        pos = m.end()
    out.append(text[pos:])
    return "".join(out)


def strip_title(body: str, dialect: Dialect) -> str:
    """
    The title as written, minus every piece of metadata: inline fields,
    hashtags, reminders, emoji fields and the dialect's own syntax.
    """
    text = _INLINE_FIELD_STRIP.sub("", body)
    text = _strip_tags(text)
    text = TASKS_REMINDER.sub("", text)
    text = NATIVE_REMINDER.sub("", text)
    text = TASKS_REPEAT_SEARCH.sub("", text)
    text = TASKS_EMOJI_SEARCH.sub("", text)
    text = dialect.strip_title(text)
    return _SPACES.sub(" ", text).strip()


def display_title(original_title: str) -> str:
    """Flatten link syntax: [[a|b]] → b, [[a]] → a, [label](url) → label."""
    title = _WIKI_ALIAS.sub(r"\1", original_title)
    title = _WIKI.sub(r"\1", title)
    return _MD_LINK.sub(r"\1", title).strip()


# ---------------------------------------------------------------------------
# Field cascades
# ---------------------------------------------------------------------------

def _emoji_date(body: str, key: str) -> Optional[str]:
    m = re.search(emoji_pattern(FIELD_TO_EMOJI[key]) + r" ?(" + ISO_PATTERN + r")", body)
    return normalize_iso(m.group(1)) if m else None


def _clock_value(value: Any) -> Optional[Clock]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        # YAML 1.1 reads "9:30" as sexagesimal minutes
        return divmod(value, 60) if 0 <= value < 24 * 60 else None
    if isinstance(value, str):
        return parse_clock(value)
    return None


def _explicit_length(fields: Dict[str, Any]) -> Optional[Length]:
    raw = fields.get("length") or fields.get("duration")
    minutes: Optional[int] = None
    if isinstance(raw, timedelta):
        minutes = int(raw.total_seconds() // 60)
    elif isinstance(raw, str):
        minutes = duration_to_minutes(raw)
    elif isinstance(raw, int) and not isinstance(raw, bool):
        minutes = raw
    if not minutes or minutes <= 0:
        if raw is not None:
            log.debug("Ignoring unusable length %r", raw)
        return None
    return Length.from_minutes(minutes)


def _clock_length(start: Clock, end: Clock) -> Optional[Length]:
    minutes = (end[0] * 60 + end[1]) - (start[0] * 60 + start[1])
    return Length.from_minutes(minutes) if minutes > 0 else None


def resolve_scheduled(
    record: RawTaskRecord,
    body: str,
    dialect: Dialect,
    daily_note: Optional[DailyNoteInfo] = None,
) -> Tuple[Optional[str], Optional[Length]]:
    """
    Scheduled instant and length of a task.

    Date sources, first hit wins: a structured ``scheduled`` value, the
    dialect's own syntax, the ⏳ emoji, and for top-level tasks only, the
    daily note the task lives in (or a ``date`` field). A clock time from
    ``startTime`` or the title promotes the date to a date-time; an explicit
    length wins over ``endTime - start``.
    """
    fields = record.fields
    scheduled = date_value_to_iso(fields.get("scheduled"))
    if scheduled is None:
        scheduled = dialect.scheduled(body, fields)
    if scheduled is None:
        scheduled = _emoji_date(body, "scheduled")
    if scheduled is None and record.parent is None:
        note_day = parse_date_from_path(record.path, daily_note)
        scheduled = note_day.isoformat() if note_day else date_value_to_iso(fields.get("date"))

    length = _explicit_length(fields)
    if scheduled is None or fields.get("allDay") is True:
        return scheduled, length

    start = _clock_value(fields.get("startTime"))
    end = _clock_value(fields.get("endTime"))
    if start is None:
        start, end = dialect.clock(body)
    if start is not None:
        scheduled = combine_date_time(scheduled, *start) or scheduled
        if length is None and end is not None:
            length = _clock_length(start, end)
    return scheduled, length


def _date_only(value: Optional[str]) -> Optional[str]:
    return value[:10] if value else None


def resolve_date(key: str, fields: Dict[str, Any], body: str, dialect: Dialect) -> Optional[str]:
    """
    Structured value, then the emoji form, then (for due) the dialect's form.

    Only scheduled carries a clock time; any time on these fields is dropped.
    """
    value = date_value_to_iso(fields.get(key))
    if value is None:
        value = _emoji_date(body, key)
    if value is None and key == "due":
        value = dialect.due(body)
    return _date_only(value)


def resolve_priority(fields: Dict[str, Any], body: str, dialect: Dialect) -> Priority:
    """
    Structured ``priority`` (number or key) first, then the highest priority
    emoji present, then the dialect's marker. A structured value that does not
    name a priority counts as absent.
    """
    raw = fields.get("priority")
    if isinstance(raw, str) and raw.strip().isdigit():
        raw = int(raw.strip())
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return Priority(raw)
        except ValueError:
            log.debug("Ignoring out-of-range priority %r", raw)
    elif isinstance(raw, str):
        found = Priority.from_key(raw)
        if found is not None:
            return found
    # emoji inside an inline field value belong to that field
    body = _INLINE_FIELD_STRIP.sub("", body)
    for priority, emoji in PRIORITY_TO_EMOJI.items():
        if emoji in body:
            return priority
    marker = dialect.priority(body)
    return Priority.DEFAULT if marker is None else marker


def _resolve_repeat(fields: Dict[str, Any], body: str) -> Optional[str]:
    raw = fields.get("repeat")
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    m = TASKS_REPEAT_SEARCH.search(body)
    return (m.group(1).strip() or None) if m else None


def _resolve_reminder(fields: Dict[str, Any], body: str) -> Optional[str]:
    m = TASKS_REMINDER.search(body) or NATIVE_REMINDER.search(body)
    if m:
        return m.group(1).replace("T", " ")
    value = date_value_to_iso(fields.get("reminder"))
    return value.replace("T", " ") if value else None


def normalize_query(raw: Any) -> Optional[str]:
    """Bare query text is shorthand for a quoted path filter."""
    if not isinstance(raw, str) or not raw.strip():
        return None
    query = raw.strip()
    if not _QUERY_SYNTAX.search(query):
        return f'"{query}"'
    return query


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------

def parse_task(
    record: RawTaskRecord,
    daily_note: Optional[DailyNoteInfo] = None,
    default_format: str = "dataview",
) -> Task:
    """Build a Task from one scanned record."""
    if record.page:
        return page_to_task(record, default_format)

    title_line = record.title_line
    dialect = get_dialect(detect_field_format(title_line, default_format))
    block_match = BLOCK_REFERENCE.search(title_line)
    body = title_line[: block_match.start()] if block_match else title_line
    fields = record.fields

    original_title = strip_title(body, dialect)
    scheduled, length = resolve_scheduled(record, body, dialect, daily_note)

    notes: Optional[str] = None
    if "\n" in record.text:
        notes = _MD_LINK.sub(r"\1", record.text.split("\n", 1)[1])

    return Task(
        id=task_id(record.path, record.line),
        title=display_title(original_title),
        original_title=original_title,
        original_text=record.text,
        notes=notes,
        tags=list(record.tags),
        extra_fields={
            key: stringify_field(value)
            for key, value in fields.items()
            if key not in RESERVED_FIELDS
        },
        status=record.status,
        completed=record.completed,
        scheduled=scheduled,
        due=resolve_date("due", fields, body, dialect),
        completion=resolve_date("completion", fields, body, dialect) if record.completed else None,
        start=resolve_date("start", fields, body, dialect),
        created=resolve_date("created", fields, body, dialect),
        reminder=_resolve_reminder(fields, body),
        length=length,
        priority=resolve_priority(fields, body, dialect),
        repeat=_resolve_repeat(fields, body),
        query=normalize_query(fields.get("query")),
        block_reference=block_match.group(1) if block_match else None,
        field_format=dialect.name,
        children=[task_id(record.path, line) for line in record.children],
        parent=task_id(record.path, record.parent) if record.parent is not None else None,
        path=record.path,
        heading=record.heading,
        position=Position(line=record.line, col=record.col),
    )


def parse_line(
    text: str,
    path: str = "",
    line: int = 0,
    default_format: str = "dataview",
    daily_note: Optional[DailyNoteInfo] = None,
) -> Task:
    """
    Parse a single task line (with or without its ``- [ ]`` checkbox).

    Lines after the first are kept as notes.
    """
    first, _, rest = text.partition("\n")
    doc = scan_content(first, path)
    if doc.records:
        record = doc.records[0]
        record.line = line
    else:
        record = RawTaskRecord(
            text=first.strip(),
            path=path,
            line=line,
            tags=extract_tags(first),
            fields=extract_inline_fields(first),
        )
    if rest:
        record.text = record.text + "\n" + rest
    return parse_task(record, daily_note, default_format)


def tasks_from_document(
    doc: ScannedDocument,
    daily_note: Optional[DailyNoteInfo] = None,
    default_format: str = "dataview",
) -> List[Task]:
    """Every task in a scanned document, page task first."""
    return [parse_task(record, daily_note, default_format) for record in doc.all_records()]


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------

def _checkbox(task: Task) -> str:
    done = task.status in ("x", "X")
    if task.completed and not done:
        return "x"
    if not task.completed and done:
        return " "
    return task.status or " "


def serialize_task(
    task: Task,
    field_format: Optional[str] = None,
    daily_note: Optional[DailyNoteInfo] = None,
) -> str:
    """
    Render a task as one checkbox line in the given dialect (default: the
    dialect it was parsed from). Notes are not included.
    """
    dialect = get_dialect(field_format or task.field_format)
    leading, trailing = dialect.serialize_fields(task, daily_note)

    body = task.original_title.rstrip()
    if task.tags:
        body = (body + " " if body else "") + " ".join(task.tags)
    for key, value in sorted(task.extra_fields.items()):
        body += f"  [{key}:: {value}]"

    line = f"- [{_checkbox(task)}] {leading}{body}{trailing}"
    if task.block_reference:
        line += " " + task.block_reference
    return line


# ---------------------------------------------------------------------------
# Pages (frontmatter tasks)
# ---------------------------------------------------------------------------

# Frontmatter keys each property may already be stored under.
PROPERTY_ALIASES: Dict[str, Tuple[str, ...]] = {
    "completed": ("complete", "completed", "Complete", "Completed"),
    "scheduled": ("scheduled", "Scheduled", "date", "Date"),
    "due": ("due", "Due", "deadline", "Deadline"),
    "reminder": ("reminder", "Reminder"),
    "completion": ("Completion", "completion"),
    "query": ("Query", "query"),
    "length": ("Length", "length"),
    "priority": ("priority", "Priority"),
}


def get_property(frontmatter: Dict[str, Any], prop: str) -> Any:
    for key in PROPERTY_ALIASES.get(prop, (prop,)):
        if frontmatter.get(key) is not None:
            return frontmatter[key]
    return None


def set_property(frontmatter: Dict[str, Any], prop: str, value: Any) -> None:
    """Write to whichever alias is already present; drop the key for None."""
    for key in PROPERTY_ALIASES.get(prop, (prop,)):
        if key in frontmatter:
            if value is None:
                del frontmatter[key]
            else:
                frontmatter[key] = value
            return
    if value is not None:
        frontmatter[prop] = value


def page_to_task(record: RawTaskRecord, default_format: str = "dataview") -> Task:
    """
    Build a Task from a page whose frontmatter schedules it.

    Full-calendar pages (``date`` plus ``allDay`` or ``startTime``/``endTime``)
    are understood as well as plain ``scheduled``/``length`` keys.
    """
    fields = record.fields
    scheduled = date_value_to_iso(get_property(fields, "scheduled"))
    length = _explicit_length(fields)

    day = date_value_to_iso(fields.get("date"))
    if day:
        if fields.get("allDay") is True:
            scheduled = day[:10]
        else:
            start = _clock_value(fields.get("startTime"))
            if start is not None:
                scheduled = combine_date_time(day, *start) or day
                end = _clock_value(fields.get("endTime"))
                if end is not None:
                    length = _clock_length(start, end) or length

    completed_value = get_property(fields, "completed")
    completed = bool(completed_value)
    completion = None
    if completed:
        completion = date_value_to_iso(get_property(fields, "completion"))
        if completion is None and isinstance(completed_value, (date, str)):
            completion = date_value_to_iso(completed_value)
        completion = _date_only(completion)

    raw_priority = get_property(fields, "priority")
    priority = Priority.DEFAULT
    if isinstance(raw_priority, str):
        found = Priority.from_key(raw_priority)
        if found is not None:
            priority = found

    title = record.text
    repeat = fields.get("repeat")
    reminder = date_value_to_iso(get_property(fields, "reminder"))
    return Task(
        id=record.path,
        title=title,
        original_title=title,
        original_text=title,
        notes="",
        tags=list(record.tags),
        status="x" if completed else " ",
        completed=completed,
        scheduled=scheduled,
        due=_date_only(date_value_to_iso(get_property(fields, "due"))),
        completion=completion,
        start=_date_only(date_value_to_iso(fields.get("start"))),
        created=_date_only(date_value_to_iso(fields.get("created"))),
        reminder=reminder.replace("T", " ") if reminder else None,
        length=length,
        priority=priority,
        repeat=repeat.strip() if isinstance(repeat, str) else None,
        query=normalize_query(get_property(fields, "query")),
        field_format="full-calendar" if ("date" in fields or "startTime" in fields) else "dataview",
        path=record.path,
        page=True,
    )


def task_to_frontmatter(task: Task, frontmatter: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``frontmatter`` with the task's scheduling written in."""
    fm = dict(frontmatter)
    if task.field_format == "full-calendar":
        for key in ("startTime", "endTime", "allDay", "date"):
            fm.pop(key, None)
        if task.scheduled and is_date_iso(task.scheduled):
            fm["allDay"] = True
            fm["date"] = task.scheduled
        elif task.scheduled:
            fm["date"] = task.scheduled[:10]
            fm["startTime"] = task.scheduled[11:16]
            if task.length and task.length.minutes > 0:
                total = int(task.scheduled[11:13]) * 60 + int(task.scheduled[14:16]) + task.length.minutes
                if total < 24 * 60:
                    fm["endTime"] = f"{total // 60:02d}:{total % 60:02d}"
    else:
        set_property(fm, "scheduled", task.scheduled)
        set_property(fm, "length", render_length(task.length))

    set_property(fm, "due", task.due)
    set_property(fm, "reminder", task.reminder)
    set_property(fm, "completed", task.completed)
    set_property(fm, "completion", task.completion)
    set_property(fm, "query", task.query)
    set_property(fm, "priority", task.priority.key if task.has_priority else None)
    return fm
