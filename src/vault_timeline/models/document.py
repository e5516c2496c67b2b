"""
Raw records handed from the document scanner to the task codec.

These mirror what a host index (e.g. Dataview) would return for a checkbox
list item: the raw text plus whatever structure the host already extracted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class RawTaskRecord:
    """One checkbox line (plus continuation notes) or one frontmatter page."""

    text: str
    path: str
    line: int = 0
    col: int = 0
    status: str = " "
    completed: bool = False
    heading: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    fields: Dict[str, Any] = field(default_factory=dict)
    children: List[int] = field(default_factory=list)
    parent: Optional[int] = None
    page: bool = False

    @property
    def title_line(self) -> str:
        return self.text.split("\n", 1)[0]


@dataclass
class ScannedDocument:
    """Everything the scanner extracted from one markdown file."""

    path: str
    records: List[RawTaskRecord] = field(default_factory=list)
    frontmatter_lines: List[str] = field(default_factory=list)
    frontmatter: Dict[str, Any] = field(default_factory=dict)
    page: Optional[RawTaskRecord] = None

    def all_records(self) -> List[RawTaskRecord]:
        """Page record (if any) followed by the line records."""
        return ([self.page] if self.page else []) + list(self.records)


@dataclass
class CachedDocument:
    """A scanned document as held by the vault cache."""

    file_path: Path
    doc: ScannedDocument
    mtime: float = 0.0
