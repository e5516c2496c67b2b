from .task import Length, Position, Priority, Task, TaskNode
from .event import Event
from .document import CachedDocument, RawTaskRecord, ScannedDocument
from .timeline import Block, Bucket, Classification, Timeline, Window

__all__ = [
    "Task",
    "TaskNode",
    "Priority",
    "Length",
    "Position",
    "Event",
    "RawTaskRecord",
    "ScannedDocument",
    "CachedDocument",
    "Window",
    "Bucket",
    "Block",
    "Classification",
    "Timeline",
]
