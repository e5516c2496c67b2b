from .markdown import scan_content, scan_file
from .dialects import DIALECTS, FIELD_FORMATS, detect_field_format, get_dialect
from .task_codec import (
    page_to_task,
    parse_line,
    parse_task,
    serialize_task,
    task_to_frontmatter,
    tasks_from_document,
)

__all__ = [
    "scan_content",
    "scan_file",
    "DIALECTS",
    "FIELD_FORMATS",
    "detect_field_format",
    "get_dialect",
    "parse_task",
    "parse_line",
    "serialize_task",
    "page_to_task",
    "task_to_frontmatter",
    "tasks_from_document",
]
