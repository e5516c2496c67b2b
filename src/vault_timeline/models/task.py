"""
Core task data models.

A Task is an ephemeral record: it is re-derived from document text on every
reload and never patched in place. Edits go back to the document through the
codec (parsers.task_codec.serialize_task) and come back on the next reload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional


class Priority(IntEnum):
    """Task priority; lower value sorts first. DEFAULT is the neutral middle."""

    HIGHEST = 0
    HIGH = 1
    MEDIUM = 2
    DEFAULT = 3
    LOW = 4
    LOWEST = 5

    @property
    def key(self) -> str:
        return self.name.lower()

    @classmethod
    def from_key(cls, key: str) -> Optional["Priority"]:
        """Look up "high", "Lowest", ... ; None when unknown."""
        try:
            return cls[key.strip().upper()]
        except KeyError:
            return None


@dataclass(frozen=True)
class Length:
    """An explicit task duration."""

    hour: int = 0
    minute: int = 0

    @property
    def minutes(self) -> int:
        return self.hour * 60 + self.minute

    @classmethod
    def from_minutes(cls, total: int) -> "Length":
        hour, minute = divmod(total, 60)
        return cls(hour=hour, minute=minute)


@dataclass(frozen=True)
class Position:
    """Source anchor of a task line (0-based line, column of the bullet)."""

    line: int = 0
    col: int = 0


@dataclass
class Task:
    """
    A single task parsed from a checkbox line (or a frontmatter page).

    ``id`` is "<path without .md>::<line>": a task whose line number moves
    is a new task as far as the rest of the system is concerned.
    """

    id: str
    title: str
    original_title: str = ""
    original_text: str = ""
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    extra_fields: Dict[str, str] = field(default_factory=dict)
    status: str = " "
    completed: bool = False
    scheduled: Optional[str] = None
    due: Optional[str] = None
    completion: Optional[str] = None
    start: Optional[str] = None
    created: Optional[str] = None
    reminder: Optional[str] = None
    length: Optional[Length] = None
    priority: Priority = Priority.DEFAULT
    repeat: Optional[str] = None
    query: Optional[str] = None
    block_reference: Optional[str] = None
    field_format: str = "dataview"
    children: List[str] = field(default_factory=list)
    parent: Optional[str] = None
    query_parent: Optional[str] = None
    query_children: List[str] = field(default_factory=list)
    path: str = ""
    heading: Optional[str] = None
    position: Position = field(default_factory=Position)
    page: bool = False

    @property
    def file_path(self) -> str:
        """Document path without any heading suffix."""
        return self.path.split("#", 1)[0]

    @property
    def has_priority(self) -> bool:
        return self.priority != Priority.DEFAULT

    @property
    def sort_key(self) -> tuple:
        """Stable secondary order: file, then source line."""
        return (self.file_path, self.position.line, self.position.col)


@dataclass
class TaskNode:
    """A task with its direct children attached, as produced by build_forest."""

    task: Task
    subtasks: List["TaskNode"] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.task.id

    def all_tasks(self) -> List[Task]:
        """Return this task and all descendants as a flat list."""
        result = [self.task]
        for child in self.subtasks:
            result.extend(child.all_tasks())
        return result
