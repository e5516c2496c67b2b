"""
Temporal classifier: sort tasks and events into the parts of one window.

A window is [start_iso, end_iso). Every task ends up in exactly one of
past / all-day / time bucket / upcoming / excluded, checked in that order.
Events are placed independently.

All comparisons are plain string comparisons on ISO values: "YYYY-MM-DD"
and "YYYY-MM-DDTHH:MM" sort chronologically, and a date sorts before any
time on that date.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Union

from vault_timeline.errors import InvalidWindowError
from vault_timeline.models.event import Event
from vault_timeline.models.task import Task
from vault_timeline.models.timeline import Bucket, Classification, Window
from vault_timeline.utils.dates import is_date_iso, normalize_iso, now_iso, parse_iso

log = logging.getLogger(__name__)

TaskSet = Union[Mapping[str, Task], Iterable[Task]]


def effective_date(task: Task) -> Optional[str]:
    """scheduled, else due, else completion."""
    return task.scheduled or task.due or task.completion


def placement_date(task: Task) -> Optional[str]:
    """The value that anchors a task on the timeline (due dates never do)."""
    return task.scheduled or task.completion


def validate_window(window: Window) -> Window:
    """Normalize both bounds; raise InvalidWindowError for bad or reversed bounds."""
    start = normalize_iso(window.start_iso)
    end = normalize_iso(window.end_iso)
    if start is None or end is None:
        raise InvalidWindowError(window.start_iso, window.end_iso)
    if is_date_iso(start):
        start += "T00:00"
    if is_date_iso(end):
        end += "T00:00"
    if end < start:
        raise InvalidWindowError(start, end)
    return Window(start_iso=start, end_iso=end, is_now=window.is_now)


def _on_window_dates(day: str, window: Window) -> bool:
    return window.start_date <= day < window.end_date or day == window.start_date


def _is_past(placed: str, window: Window, past_mode: bool) -> bool:
    if past_mode:
        if is_date_iso(placed):
            return placed > window.start_date and not _on_window_dates(placed, window)
        return placed >= window.end_iso
    if is_date_iso(placed):
        return placed < window.start_date
    return placed < window.start_iso


def _predates(placed: str, window: Window) -> bool:
    if is_date_iso(placed):
        return placed < window.start_date
    return placed < window.start_iso


def classify_task(
    task: Task,
    window: Window,
    past_mode: bool = False,
    show_completed: bool = False,
) -> str:
    """
    Name of the list a task belongs in for this window: "past", "all_day",
    "time", "upcoming" or "excluded". ``window`` must already be validated.
    """
    # Sub-query results are listed under their query task, not on their own
    placed = None if task.query_parent else placement_date(task)

    if not task.due and not placed:
        return "excluded"
    if not (show_completed or task.completed == past_mode):
        return "excluded"

    if placed:
        if window.is_now and _is_past(placed, window, past_mode) and (past_mode or not task.completed):
            return "past"
        if not is_date_iso(placed) and window.start_iso <= placed < window.end_iso:
            return "time"
        if _on_window_dates(placed[:10], window):
            return "all_day"

    if task.due and (task.due >= window.start_date or window.is_now):
        if not placed or _predates(placed, window):
            return "upcoming"
    return "excluded"


def _event_visible(event: Event, window: Window, now: str, past_mode: bool) -> bool:
    if not (event.end_iso > window.start_iso and event.start_iso < window.end_iso):
        return False
    if past_mode:
        return event.start_iso <= now
    return event.end_iso >= now


def classify(
    tasks: TaskSet,
    events: Iterable[Event],
    window: Window,
    now: Union[str, datetime],
    past_mode: bool = False,
    show_completed: bool = False,
) -> Classification:
    """
    Partition tasks and events for one display window.

    Raises:
        InvalidWindowError: when the window bounds are malformed or end
            before they start.
        ValueError: when ``now`` is not an ISO date or date-time.
    """
    window = validate_window(window)
    moment = parse_iso(now) if isinstance(now, str) else now
    if moment is None:
        raise ValueError(f"Invalid 'now' value {now!r}")
    # event visibility is judged on the quarter hour
    now_at = now_iso(moment)
    task_list = list(tasks.values()) if isinstance(tasks, Mapping) else list(tasks)

    result = Classification(all_day=Bucket(start_iso=window.start_date))
    buckets: Dict[str, Bucket] = {}

    for task in task_list:
        kind = classify_task(task, window, past_mode, show_completed)
        if kind == "past":
            result.past.append(task)
        elif kind == "all_day":
            result.all_day.tasks.append(task)
        elif kind == "time":
            placed = placement_date(task)
            buckets.setdefault(placed, Bucket(start_iso=placed)).tasks.append(task)
        elif kind == "upcoming":
            result.upcoming.append(task)
        else:
            result.excluded.append(task)

    for event in events:
        if not _event_visible(event, window, now_at, past_mode):
            continue
        if event.is_all_day:
            result.all_day.events.append(event)
        else:
            buckets.setdefault(event.start_iso, Bucket(start_iso=event.start_iso)).events.append(event)

    def by_source(items: List[Task]) -> List[Task]:
        return sorted(items, key=lambda t: t.sort_key)

    result.past = by_source(result.past)
    result.all_day.tasks = by_source(result.all_day.tasks)
    result.upcoming = by_source(result.upcoming)
    for start in sorted(buckets):
        bucket = buckets[start]
        bucket.tasks = by_source(bucket.tasks)
        result.time_buckets[start] = bucket

    log.debug(
        "Classified %d tasks for %s..%s: %d past, %d all-day, %d buckets, %d upcoming, %d excluded",
        len(task_list), window.start_iso, window.end_iso, len(result.past),
        len(result.all_day.tasks), len(result.time_buckets), len(result.upcoming),
        len(result.excluded),
    )
    return result
