"""
Layout records produced by the classifier and the block resolver.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from vault_timeline.models.event import Event
from vault_timeline.models.task import Task


@dataclass(frozen=True)
class Window:
    """
    A display window [start_iso, end_iso).

    ``is_now`` marks the live "Now" column, the only window with a past bucket.
    """

    start_iso: str
    end_iso: str
    is_now: bool = False

    @property
    def start_date(self) -> str:
        return self.start_iso[:10]

    @property
    def end_date(self) -> str:
        return self.end_iso[:10]


@dataclass
class Bucket:
    """Tasks and events sharing one exact start instant."""

    start_iso: str
    tasks: List[Task] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.tasks) + len(self.events)

    def merge(self, other: "Bucket") -> None:
        self.tasks.extend(other.tasks)
        self.events.extend(other.events)


@dataclass
class Classification:
    """Result of classify(); every input task lands in exactly one list."""

    past: List[Task] = field(default_factory=list)
    all_day: Bucket = field(default_factory=lambda: Bucket(start_iso=""))
    upcoming: List[Task] = field(default_factory=list)
    time_buckets: Dict[str, Bucket] = field(default_factory=dict)
    excluded: List[Task] = field(default_factory=list)

    def placed_task_ids(self) -> List[str]:
        """Ids of every task that was placed somewhere (excluded ones omitted)."""
        ids = [t.id for t in self.past]
        ids.extend(t.id for t in self.all_day.tasks)
        ids.extend(t.id for t in self.upcoming)
        for bucket in self.time_buckets.values():
            ids.extend(t.id for t in bucket.tasks)
        return ids


@dataclass
class Block:
    """A bucket with its resolved end time and any absorbed sub-blocks."""

    start_iso: str
    end_iso: str
    tasks: List[Task] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)
    blocks: List["Block"] = field(default_factory=list)


@dataclass
class Timeline:
    """One laid-out window: the classification plus resolved time blocks."""

    window: Window
    classification: Classification
    blocks: List[Block] = field(default_factory=list)
