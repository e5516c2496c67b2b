"""
Sub-task queries.

A task carrying ``[query:: ...]`` collects other open tasks underneath it.
Query syntax:

    "Projects/Work" "Inbox"          path filters (all must match)
    #errand #home                    tag filters (all must match)
    WHERE priority <= high AND !due  field tests (AND binds tighter than OR)

Field tests compare a task attribute or extra field with ``= != < <= > >=``;
``key`` alone tests presence and ``!key`` absence. Priority values accept
keys ("high") or simple markers ("!!").
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from vault_timeline.models.task import Priority, Task
from vault_timeline.utils.formatting import SIMPLE_TO_PRIORITY

log = logging.getLogger(__name__)

_PATH = re.compile(r'"([^"]+)"')
_TAG = re.compile(r"#([\w\-/]+)")
_WHERE = re.compile(r" ?\bWHERE\b ?")
_OR = re.compile(r" ?(?:\bOR\b|\|) ?")
_AND = re.compile(r" ?(?:\bAND\b|&) ?")
_TEST = re.compile(r"^(.+?) ?(!=|<=|>=|=|<|>) ?(.+)$")

EXISTS = "exists"
MISSING = "missing"

TASK_ATTRIBUTES = (
    "title", "status", "completed", "scheduled", "due", "start", "created",
    "completion", "reminder", "priority", "repeat", "path", "heading",
)


@dataclass
class FieldTest:
    key: str
    comparison: str
    value: Any


@dataclass
class TaskQuery:
    paths: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    # OR of ANDs
    tests: List[List[FieldTest]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.paths or self.tags or self.tests)


def _parse_test(text: str) -> FieldTest:
    text = text.strip()
    if text.startswith("!") and not _TEST.match(text):
        return FieldTest(key=text[1:].strip(), comparison="=", value=MISSING)
    m = _TEST.match(text)
    if not m:
        return FieldTest(key=text, comparison="=", value=EXISTS)
    key, comparison, raw = m.group(1).strip(), m.group(2), m.group(3).strip()
    value: Any = raw
    if key == "priority":
        found = SIMPLE_TO_PRIORITY.get(raw)
        if found is None:
            found = Priority.from_key(raw)
        if found is not None:
            value = int(found)
    elif raw in ("true", "false"):
        value = raw == "true"
    return FieldTest(key=key, comparison=comparison, value=value)


def parse_query(query: str) -> TaskQuery:
    """Split a query string into path, tag and field filters."""
    parts = _WHERE.split(query, maxsplit=1)
    head = parts[0]
    where = parts[1] if len(parts) > 1 else ""
    paths = _PATH.findall(head)
    tags = ["#" + tag for tag in _TAG.findall(_PATH.sub("", head))]
    tests: List[List[FieldTest]] = []
    if where.strip():
        for alternative in _OR.split(where):
            clauses = [c for c in _AND.split(alternative) if c.strip()]
            if clauses:
                tests.append([_parse_test(c) for c in clauses])
    return TaskQuery(paths=paths, tags=tags, tests=tests)


def _task_value(task: Task, key: str) -> Any:
    if key in TASK_ATTRIBUTES:
        value = getattr(task, key)
        return int(value) if isinstance(value, Priority) else value
    return task.extra_fields.get(key)


def _compare(actual: Any, comparison: str, expected: Any) -> bool:
    if isinstance(actual, int) and not isinstance(actual, bool) and isinstance(expected, str):
        try:
            expected = int(expected)
        except ValueError:
            actual = str(actual)
    elif isinstance(actual, str) and not isinstance(expected, str):
        expected = str(expected).lower() if isinstance(expected, bool) else str(expected)
    try:
        if comparison == "=":
            return actual == expected
        if comparison == "!=":
            return actual != expected
        if comparison == "<":
            return actual < expected
        if comparison == "<=":
            return actual <= expected
        if comparison == ">":
            return actual > expected
        if comparison == ">=":
            return actual >= expected
    except TypeError:
        return False
    return False


def check_field(test: FieldTest, task: Task) -> bool:
    value = _task_value(task, test.key)
    if test.value == EXISTS:
        return bool(value)
    if test.value == MISSING:
        return not value
    if value is None:
        return False
    return _compare(value, test.comparison, test.value)


def matches(query: TaskQuery, task: Task) -> bool:
    if any(path not in task.path for path in query.paths):
        return False
    if any(tag not in task.tags for tag in query.tags):
        return False
    if query.tests and not any(all(check_field(t, task) for t in group) for group in query.tests):
        return False
    return True


def nearest_scheduled(task: Task, tasks: Mapping[str, Task]) -> Optional[str]:
    """The task's own placement date, else the closest ancestor's."""
    seen = set()
    current: Optional[Task] = task
    while current is not None and current.id not in seen:
        seen.add(current.id)
        placed = current.scheduled or current.completion
        if placed:
            return placed
        parent_id = current.parent or current.query_parent
        current = tasks.get(parent_id) if parent_id else None
    return None


def nested_scheduled(parent: Optional[str], child: Optional[str], today: str) -> bool:
    """
    Whether a child scheduled at ``child`` may sit under a parent scheduled
    at ``parent``: not when the child is scheduled and the parent is not,
    nor when the child comes later. Dates before today count as today.
    """
    if parent and parent < today:
        parent = today
    if child and child < today:
        child = today
    if child and not parent:
        return False
    if parent and child and parent < child:
        return False
    return True


def query_tasks(task_id: str, tasks: Mapping[str, Task], today: str) -> List[str]:
    """Ids of the tasks a query task collects, in map order."""
    owner = tasks[task_id]
    if not owner.query:
        return []
    query = parse_query(owner.query)
    if query.is_empty:
        return []
    owner_scheduled = nearest_scheduled(owner, tasks)
    found = []
    for candidate in tasks.values():
        if candidate.completed or candidate.id == task_id:
            continue
        if not nested_scheduled(owner_scheduled, nearest_scheduled(candidate, tasks), today):
            continue
        if matches(query, candidate):
            found.append(candidate.id)
    return found


def apply_queries(tasks: Mapping[str, Task], today: str) -> Dict[str, Task]:
    """
    Return a new map with ``query_children`` and ``query_parent`` filled in.
    A task matched by several queries belongs to the first one in map order.
    """
    children: Dict[str, List[str]] = {}
    parent_of: Dict[str, str] = {}
    for task_id, task in tasks.items():
        if not task.query:
            continue
        ids = query_tasks(task_id, tasks, today)
        children[task_id] = ids
        for child_id in ids:
            parent_of.setdefault(child_id, task_id)
    if children:
        log.debug("Resolved %d task queries", len(children))

    return {
        task_id: replace(
            task,
            query_children=children.get(task_id, []),
            query_parent=parent_of.get(task_id),
        )
        for task_id, task in tasks.items()
    }
