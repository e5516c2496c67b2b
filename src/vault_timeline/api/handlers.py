"""Handler functions shared by MCP tools and REST API."""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from vault_timeline.models.event import Event
from vault_timeline.models.task import Task, TaskNode
from vault_timeline.models.timeline import Block, Bucket, Timeline, Window
from vault_timeline.parsers.task_codec import parse_line, serialize_task
from vault_timeline.utils.dates import parse_iso
from vault_timeline.utils.formatting import render_length

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _task_to_dict(task: Task) -> dict:
    """Serialize a Task to a JSON-serializable dict."""
    return {
        "id": task.id,
        "title": task.title,
        "original_title": task.original_title,
        "status": task.status,
        "completed": task.completed,
        "scheduled": task.scheduled,
        "due": task.due,
        "completion": task.completion,
        "start": task.start,
        "created": task.created,
        "reminder": task.reminder,
        "length": render_length(task.length),
        "priority": task.priority.key,
        "repeat": task.repeat,
        "query": task.query,
        "tags": list(task.tags),
        "extra_fields": dict(task.extra_fields),
        "notes": task.notes,
        "path": task.path,
        "heading": task.heading,
        "line": task.position.line,
        "field_format": task.field_format,
        "parent": task.parent,
        "children": list(task.children),
        "query_parent": task.query_parent,
        "query_children": list(task.query_children),
        "block_reference": task.block_reference,
        "page": task.page,
    }


def _node_to_dict(node: TaskNode, collapsed: Dict[str, bool]) -> dict:
    d = _task_to_dict(node.task)
    d["collapsed"] = collapsed.get(node.id, False)
    d["subtasks"] = [_node_to_dict(child, collapsed) for child in node.subtasks]
    return d


def _event_to_dict(event: Event) -> dict:
    return {
        "id": event.id,
        "title": event.title,
        "start_iso": event.start_iso,
        "end_iso": event.end_iso,
        "calendar_id": event.calendar_id,
        "all_day": event.is_all_day,
        "notes": event.notes,
        "location": event.location,
    }


def _bucket_to_dict(bucket: Bucket) -> dict:
    return {
        "start_iso": bucket.start_iso,
        "tasks": [_task_to_dict(t) for t in bucket.tasks],
        "events": [_event_to_dict(e) for e in bucket.events],
    }


def _block_to_dict(block: Block) -> dict:
    return {
        "start_iso": block.start_iso,
        "end_iso": block.end_iso,
        "tasks": [_task_to_dict(t) for t in block.tasks],
        "events": [_event_to_dict(e) for e in block.events],
        "blocks": [_block_to_dict(b) for b in block.blocks],
    }


def _timeline_to_dict(timeline: Timeline, collapsed: Dict[str, bool]) -> dict:
    c = timeline.classification
    return {
        "window": {
            "start_iso": timeline.window.start_iso,
            "end_iso": timeline.window.end_iso,
            "is_now": timeline.window.is_now,
        },
        "past": [_task_to_dict(t) for t in c.past],
        "all_day": _bucket_to_dict(c.all_day),
        "blocks": [_block_to_dict(b) for b in timeline.blocks],
        "upcoming": [_task_to_dict(t) for t in c.upcoming],
        "excluded": len(c.excluded),
        "collapsed": collapsed,
    }


def _parse_moment(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    moment = parse_iso(value)
    if moment is None:
        raise ValueError(f"Invalid time '{value}': expected YYYY-MM-DDTHH:MM")
    return moment


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

def handle_task_list(
    cache,
    *,
    path: Optional[str] = None,
    completed: Optional[bool] = None,
    tag: Optional[str] = None,
    scheduled_on: Optional[str] = None,
    due_before: Optional[str] = None,
    limit: int = 200,
) -> List[dict]:
    tasks = cache.query_tasks(
        path=path,
        completed=completed,
        tag=tag,
        scheduled_on=scheduled_on,
        due_before=due_before,
        limit=limit,
    )
    return [_task_to_dict(t) for t in tasks]


def handle_task_get(cache, *, task_id: str) -> dict:
    task = cache.get_task(task_id)
    if task is None:
        return {"error": f"Task '{task_id}' not found"}
    result = _task_to_dict(task)
    result["text"] = serialize_task(task, daily_note=cache.config.daily_note)
    return result


def handle_task_add(
    cache,
    *,
    title: str,
    file_path: str,
    heading: Optional[str] = None,
    **fields: Any,
) -> dict:
    changes = {k: v for k, v in fields.items() if v is not None}
    task = cache.create_task(file_path, title, heading=heading, **changes)
    if task is None:
        # Written but filtered out of the map (e.g. a start date in the future)
        return {"created": True, "file_path": file_path, "visible": False}
    return _task_to_dict(task)


def handle_task_update(cache, *, task_id: str, **fields: Any) -> dict:
    """None means "leave unchanged"; an empty string clears the field."""
    changes = {k: v for k, v in fields.items() if v is not None}
    task = cache.update_task(task_id, **changes)
    if task is None:
        return {"error": f"Task '{task_id}' not found"}
    return _task_to_dict(task)


def handle_task_delete(cache, *, task_id: str) -> dict:
    removed = cache.delete_task(task_id)
    if removed is None:
        return {"error": f"Task '{task_id}' not found"}
    return {"deleted": removed}


def handle_forest(cache, *, path: Optional[str] = None) -> List[dict]:
    collapsed = cache.collapsed()
    return [_node_to_dict(node, collapsed) for node in cache.forest(path)]


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------

def handle_timeline(
    cache,
    *,
    day: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    now: Optional[str] = None,
    is_now: bool = False,
    past: bool = False,
    show_completed: Optional[bool] = None,
) -> dict:
    """
    Lay out one window. Either ``start``/``end`` bounds, or a ``day``
    (YYYY-MM-DD, default today) using the configured day hours.
    """
    moment = _parse_moment(now)
    if start or end:
        window = Window(start_iso=start or "", end_iso=end or "", is_now=is_now)
        timeline = cache.timeline(window, moment, past_mode=past, show_completed=show_completed)
    else:
        target = None
        if day:
            try:
                target = date.fromisoformat(day)
            except ValueError:
                raise ValueError(f"Invalid day '{day}': expected YYYY-MM-DD")
        timeline = cache.day_timeline(target, moment, past_mode=past, show_completed=show_completed)
    return _timeline_to_dict(timeline, cache.collapsed())


def handle_set_events(cache, *, events: List[Dict[str, Any]]) -> dict:
    parsed = [Event.from_dict(e) for e in events]
    return {"events": cache.set_events(parsed)}


def handle_set_collapsed(cache, *, task_id: str, collapsed: bool) -> dict:
    cache.set_collapsed(task_id, collapsed)
    return {"collapsed": cache.collapsed()}


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

def handle_parse(
    cache,
    *,
    text: str,
    path: str = "",
    field_format: Optional[str] = None,
) -> dict:
    """Parse one task line without touching the vault."""
    default = field_format or cache.config.field_format
    task = parse_line(text, path=path, default_format=default, daily_note=cache.config.daily_note)
    result = _task_to_dict(task)
    result["detected_format"] = task.field_format
    return result


def handle_convert(
    cache,
    *,
    text: str,
    to_format: str,
    from_format: Optional[str] = None,
    path: str = "",
) -> dict:
    """Re-serialize a task line in another dialect."""
    default = from_format or cache.config.field_format
    task = parse_line(text, path=path, default_format=default, daily_note=cache.config.daily_note)
    return {
        "from_format": task.field_format,
        "to_format": to_format,
        "text": serialize_task(task, to_format, daily_note=cache.config.daily_note),
    }


def handle_cache_status(cache) -> dict:
    return cache.status()
