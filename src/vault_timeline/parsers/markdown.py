"""
Markdown document scanner.

Main API:
    scan_content(content, path)  → ScannedDocument
    scan_file(path, vault_root)  → ScannedDocument

Plays the part of the host index: it finds checkbox lines, nests them by
indentation, collects continuation notes, extracts hashtags and bracketed
inline fields (coercing the common date and duration keys to typed values)
and reads YAML frontmatter for page-level tasks. Interpreting those values
is left to parsers.task_codec.
"""

import logging
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from vault_timeline.models.document import RawTaskRecord, ScannedDocument
from vault_timeline.utils.dates import duration_to_minutes, parse_iso

log = logging.getLogger(__name__)

DATE_FIELDS = frozenset({"scheduled", "due", "start", "created", "completion", "date", "reminder"})
DURATION_FIELDS = frozenset({"length", "duration"})
BOOLEAN_FIELDS = frozenset({"allDay", "completed"})

# Frontmatter keys that turn a whole page into a task
PAGE_TASK_KEYS = frozenset({"scheduled", "date", "due", "completed", "startTime"})

INLINE_FIELD = re.compile(r"[\[\(]([^\[\]\(\):]+?):: ?([^\]\)]*?)[\]\)]")
TASK_LINE = re.compile(r"^(\s*)[-*+] \[(.)\] ?(.*)$")
_TAG = re.compile(r"(?<![\w#&/])#([\w\-/]+)")
_WIKI_LINK = re.compile(r"\[\[.*?\]\]")
_MD_LINK = re.compile(r"\[[^\]]*\]\([^)]*\)")
_FENCE = re.compile(r"^\s*(```|~~~)")


# ---------------------------------------------------------------------------
# Low-level parsers
# ---------------------------------------------------------------------------

def _indent_level(indent_str: str) -> int:
    """Convert a leading-whitespace string to a 0-based indent level."""
    spaces = len(indent_str.replace("\t", "    "))
    return spaces // 4


def parse_heading(stripped: str) -> Optional[Tuple[int, str]]:
    """Return (level, text) or None if line is not a heading."""
    m = re.match(r"^(#{1,6})\s+(.*)$", stripped)
    if not m:
        return None
    return len(m.group(1)), m.group(2).strip()


def _mask(pattern: "re.Pattern[str]", text: str) -> str:
    """Blank out matches with equal-length spaces so positions stay aligned."""
    return pattern.sub(lambda m: " " * len(m.group()), text)


def coerce_field(key: str, value: Any) -> Any:
    """
    Coerce a raw field value the way a host index would.

    Date keys become date/datetime, duration keys become timedelta, boolean
    keys become bool. Anything that does not parse stays a string so the
    codec can degrade it to "absent".
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if key in DATE_FIELDS:
        parsed = parse_iso(text)
        if parsed is None:
            return text
        return parsed if len(text) > 10 else parsed.date()
    if key in DURATION_FIELDS:
        minutes = duration_to_minutes(text)
        return timedelta(minutes=minutes) if minutes else text
    if key in BOOLEAN_FIELDS and text.lower() in ("true", "false"):
        return text.lower() == "true"
    return text


def extract_inline_fields(text: str) -> Dict[str, Any]:
    """Collect ``[key:: value]`` and ``(key:: value)`` fields, first one wins."""
    fields: Dict[str, Any] = {}
    for m in INLINE_FIELD.finditer(text):
        key = m.group(1).strip()
        if key and key not in fields:
            fields[key] = coerce_field(key, m.group(2))
    return fields


def mask_links(text: str) -> str:
    """
    Blank out wiki-links, markdown links and inline fields so that
    ``[[Note#Section]]`` or ``[url](x#anchor)`` never look like hashtags.
    """
    masked = _mask(_WIKI_LINK, text)
    masked = _mask(_MD_LINK, masked)
    return _mask(INLINE_FIELD, masked)


def extract_tags(text: str) -> List[str]:
    """Hashtags in a task line, in order, without duplicates."""
    masked = mask_links(text)
    tags: List[str] = []
    for m in _TAG.finditer(masked):
        tag = "#" + m.group(1)
        if m.group(1).isdigit() or tag in tags:
            continue
        tags.append(tag)
    return tags


# ---------------------------------------------------------------------------
# Frontmatter extraction
# ---------------------------------------------------------------------------

def extract_frontmatter(lines: List[str]) -> Tuple[List[str], int]:
    """
    Extract YAML frontmatter from the beginning of the file.

    Returns:
        (frontmatter_lines, body_start_index)
        frontmatter_lines includes the --- delimiters verbatim.
        If no frontmatter, returns ([], 0).
    """
    if not lines or lines[0].strip() != "---":
        return [], 0

    fm: List[str] = [lines[0]]
    i = 1
    while i < len(lines):
        fm.append(lines[i])
        if lines[i].strip() == "---":
            return fm, i + 1
        i += 1

    # Never closed: treat as no frontmatter
    return [], 0


def _load_frontmatter(fm_lines: List[str], path: str) -> Dict[str, Any]:
    if len(fm_lines) < 2:
        return {}
    try:
        data = yaml.safe_load("\n".join(fm_lines[1:-1]))
    except yaml.YAMLError as exc:
        log.warning("Ignoring malformed frontmatter in %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _page_record(path: str, frontmatter: Dict[str, Any]) -> Optional[RawTaskRecord]:
    """A page-level record when the frontmatter schedules the page itself."""
    if not PAGE_TASK_KEYS.intersection(frontmatter):
        return None
    fields = {str(k): coerce_field(str(k), v) for k, v in frontmatter.items()}
    raw_tags = frontmatter.get("tags") or []
    if isinstance(raw_tags, str):
        raw_tags = [t for t in re.split(r"[,\s]+", raw_tags) if t]
    tags = ["#" + str(t).lstrip("#") for t in raw_tags]
    completed = fields.get("completed")
    return RawTaskRecord(
        text=Path(path).stem,
        path=path,
        status="x" if completed else " ",
        completed=bool(completed),
        tags=tags,
        fields=fields,
        page=True,
    )


# ---------------------------------------------------------------------------
# Main scan API
# ---------------------------------------------------------------------------

def scan_content(content: str, path: str) -> ScannedDocument:
    """
    Scan markdown content into raw task records.

    Args:
        content: Full file content as a string
        path: Vault-relative path stored on every record

    Returns:
        ScannedDocument with records in source order
    """
    lines = content.split("\n")
    frontmatter_lines, body_start = extract_frontmatter(lines)
    frontmatter = _load_frontmatter(frontmatter_lines, path)

    records: List[RawTaskRecord] = []
    # (indent_level, record) pairs for the open ancestors of the current line
    task_stack: List[Tuple[int, RawTaskRecord]] = []
    current: Optional[Tuple[int, RawTaskRecord]] = None
    notes: Dict[int, List[str]] = {}
    heading: Optional[str] = None
    in_fence = False

    for line_num in range(body_start, len(lines)):
        line = lines[line_num]
        stripped = line.strip()

        if _FENCE.match(line):
            in_fence = not in_fence
            continue
        if in_fence or not stripped:
            continue

        parsed_heading = parse_heading(stripped)
        if parsed_heading:
            heading = parsed_heading[1]
            task_stack.clear()
            current = None
            continue

        m = TASK_LINE.match(line)
        if m:
            indent, status, content_text = m.group(1), m.group(2), m.group(3)
            level = _indent_level(indent)
            record = RawTaskRecord(
                text=content_text,
                path=path,
                line=line_num,
                col=len(indent),
                status=status,
                completed=status in ("x", "X"),
                heading=heading,
                tags=extract_tags(content_text),
                fields=extract_inline_fields(content_text),
            )

            # Pop stack to find parent
            while task_stack and task_stack[-1][0] >= level:
                task_stack.pop()
            if task_stack:
                parent = task_stack[-1][1]
                parent.children.append(record.line)
                record.parent = parent.line

            records.append(record)
            task_stack.append((level, record))
            current = (level, record)
            continue

        # Continuation line: anything indented deeper than the current task
        if current:
            indent_str = line[: len(line) - len(line.lstrip())]
            if _indent_level(indent_str) > current[0] or (
                indent_str and len(indent_str) > current[1].col
            ):
                notes.setdefault(current[1].line, []).append(stripped)
                continue
        # Any other top-level text closes the current list
        task_stack.clear()
        current = None

    for record in records:
        if record.line in notes:
            record.text = record.text + "\n" + "\n".join(notes[record.line])

    return ScannedDocument(
        path=path,
        records=records,
        frontmatter_lines=frontmatter_lines,
        frontmatter=frontmatter,
        page=_page_record(path, frontmatter),
    )


def scan_file(file_path: Path, vault_root: Optional[Path] = None) -> ScannedDocument:
    """Scan a markdown file; paths on records are relative to vault_root."""
    rel = file_path.relative_to(vault_root) if vault_root else file_path
    return scan_content(file_path.read_text(encoding="utf-8"), rel.as_posix())
