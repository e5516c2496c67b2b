"""
Parent/child task graph.

Tasks only know their children by id. This module turns the flat map into
trees, finds descendants for cascade deletes and walks ancestors. Every
traversal is guarded: a task that lists itself or an ancestor as a child
raises CyclicGraphError instead of recursing forever. Child ids that are
not in the map are ignored, so their parents simply have fewer subtasks and
the missing tasks cannot block anything else from becoming a root.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Set

from vault_timeline.errors import CyclicGraphError
from vault_timeline.models.task import Task, TaskNode

log = logging.getLogger(__name__)

_VISITING = 1
_DONE = 2


def descendant_map(tasks: Mapping[str, Task]) -> Dict[str, List[str]]:
    """
    Transitive descendant ids for every task, in depth-first child order.

    Each task is expanded once and its result reused, so the whole map costs
    one pass over the children lists.
    """
    memo: Dict[str, List[str]] = {}
    state: Dict[str, int] = {}

    def visit(task_id: str, path: List[str]) -> List[str]:
        if state.get(task_id) == _DONE:
            return memo[task_id]
        if state.get(task_id) == _VISITING:
            raise CyclicGraphError(path[path.index(task_id):] + [task_id])
        state[task_id] = _VISITING
        path.append(task_id)

        result: List[str] = []
        seen: Set[str] = set()
        for child_id in tasks[task_id].children:
            if child_id not in tasks:
                continue
            for found in [child_id] + visit(child_id, path):
                if found not in seen:
                    seen.add(found)
                    result.append(found)

        path.pop()
        state[task_id] = _DONE
        memo[task_id] = result
        return result

    for task_id in tasks:
        visit(task_id, [])
    return memo


def descendants(task_id: str, tasks: Mapping[str, Task]) -> List[str]:
    """Every task below ``task_id`` (children, grandchildren, ...)."""
    if task_id not in tasks:
        return []
    reachable = {task_id: tasks[task_id]}
    stack = [task_id]
    while stack:
        for child_id in tasks[stack.pop()].children:
            if child_id in tasks and child_id not in reachable:
                reachable[child_id] = tasks[child_id]
                stack.append(child_id)
    return descendant_map(reachable)[task_id]


def ancestors(task: Task, tasks: Mapping[str, Task]) -> List[Task]:
    """Parent, grandparent, ... up to the first task whose parent is not loaded."""
    found: List[Task] = []
    seen = {task.id}
    parent_id = task.parent
    while parent_id and parent_id in tasks:
        if parent_id in seen:
            raise CyclicGraphError([task.id] + [t.id for t in found] + [parent_id])
        seen.add(parent_id)
        parent = tasks[parent_id]
        found.append(parent)
        parent_id = parent.parent
    return found


def link_parents(tasks: Mapping[str, Task]) -> Dict[str, Task]:
    """
    Return a new map with ``parent`` derived from the children lists.

    A parent id that is not in the map is cleared, so orphans behave as
    top-level tasks.
    """
    parent_of: Dict[str, str] = {}
    for task in tasks.values():
        for child_id in task.children:
            if child_id in tasks and child_id != task.id:
                parent_of.setdefault(child_id, task.id)

    linked: Dict[str, Task] = {}
    for task_id, task in tasks.items():
        parent: Optional[str] = parent_of.get(task_id)
        if parent is None and task.parent in tasks:
            parent = task.parent
        linked[task_id] = task if parent == task.parent else replace(task, parent=parent)
    return linked


def build_forest(tasks: Mapping[str, Task]) -> List[TaskNode]:
    """
    Nest a flat task map into trees.

    Roots are the tasks that are nobody's descendant, in map order; each
    node's subtasks follow its ``children`` order.
    """
    below = descendant_map(tasks)
    nested: Set[str] = set()
    for ids in below.values():
        nested.update(ids)

    def node(task: Task) -> TaskNode:
        return TaskNode(
            task=task,
            subtasks=[node(tasks[c]) for c in task.children if c in tasks],
        )

    roots = [node(task) for task_id, task in tasks.items() if task_id not in nested]
    log.debug("Built forest: %d roots from %d tasks", len(roots), len(tasks))
    return roots
