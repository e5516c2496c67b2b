"""
Thread-safe in-memory vault cache.

Design:
    Document store : Dict[Path, CachedDocument]   (scanned records per file)
    Task map       : Dict[str, Task]             (rebuilt wholesale, never patched)
    Events         : List[Event]                 (handed over by the calendar side)
    Collapsed      : Dict[str, bool]             (UI state, survives rebuilds)

All mutations acquire _lock (threading.RLock).
The file watcher queues paths on _update_queue; a worker thread drains it.

The task map is derived from the document store in one pass (parse, link
parents, resolve queries, hide not-yet-started tasks). A SHA-1 fingerprint
of the scanned records and the current day skips the pass when nothing that
feeds it has changed.
"""

import hashlib
import logging
import queue
import threading
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

import yaml

from vault_timeline.config import TimelineConfig
from vault_timeline.errors import TimelineError
from vault_timeline.layout.blocks import resolve_blocks
from vault_timeline.layout.classifier import classify, validate_window
from vault_timeline.layout.forest import build_forest, descendants, link_parents
from vault_timeline.layout.queries import apply_queries
from vault_timeline.models.document import CachedDocument
from vault_timeline.models.event import Event
from vault_timeline.models.task import Length, Priority, Task, TaskNode
from vault_timeline.models.timeline import Timeline, Window
from vault_timeline.parsers.markdown import TASK_LINE, extract_frontmatter, parse_heading, scan_file
from vault_timeline.parsers.task_codec import (
    display_title,
    normalize_query,
    serialize_task,
    task_id as make_task_id,
    task_to_frontmatter,
    tasks_from_document,
)
from vault_timeline.utils.dates import day_window, duration_to_minutes, normalize_iso, start_date_for
from vault_timeline.utils.formatting import SIMPLE_TO_PRIORITY

log = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "title", "completed", "scheduled", "due", "start", "reminder",
    "priority", "length", "repeat", "query",
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _fingerprint(documents: Iterable[CachedDocument], today: str) -> str:
    """SHA-1 over every scanned record plus the day the map was built for."""
    digest = hashlib.sha1(today.encode("utf-8"))
    for cached in documents:
        for record in cached.doc.all_records():
            key = (
                record.path, record.line, record.col, record.status, record.heading,
                record.text, record.children, record.parent, record.page,
                sorted(record.fields.items(), key=str),
            )
            digest.update(repr(key).encode("utf-8"))
    return digest.hexdigest()


def _optional_iso(key: str, value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    iso = normalize_iso(str(value))
    if iso is None:
        raise ValueError(f"Invalid {key} '{value}': expected YYYY-MM-DD or YYYY-MM-DDTHH:MM")
    return iso


def _priority_value(value: Any) -> Priority:
    if value is None or value == "":
        return Priority.DEFAULT
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return Priority(value)
        except ValueError:
            raise ValueError(f"Invalid priority {value}")
    text = str(value).strip()
    found = SIMPLE_TO_PRIORITY.get(text)
    if found is None:
        found = Priority.from_key(text)
    if found is None:
        raise ValueError(f"Invalid priority '{value}'")
    return found


def _length_value(value: Any) -> Optional[Length]:
    if value is None or value == "":
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        minutes: Optional[int] = value
    else:
        minutes = duration_to_minutes(str(value))
    if not minutes or minutes <= 0:
        raise ValueError(f"Invalid length '{value}': expected e.g. 30m, 1h30m")
    return Length.from_minutes(minutes)


def apply_changes(task: Task, changes: Dict[str, Any], today: str) -> Task:
    """
    Return a copy of ``task`` with user-facing field changes applied.

    Raises ValueError for unknown fields or values that do not parse.
    """
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

    updates: Dict[str, Any] = {}
    if "title" in changes:
        title = (changes["title"] or "").strip()
        updates["original_title"] = title
        updates["title"] = display_title(title)
    if "completed" in changes:
        completed = bool(changes["completed"])
        updates["completed"] = completed
        updates["status"] = "x" if completed else " "
        updates["completion"] = (task.completion or today) if completed else None
    for key in ("scheduled", "due", "start"):
        if key in changes:
            value = _optional_iso(key, changes[key])
            # only scheduled keeps a clock time
            updates[key] = value[:10] if value and key != "scheduled" else value
    if "reminder" in changes:
        reminder = _optional_iso("reminder", changes["reminder"])
        updates["reminder"] = reminder.replace("T", " ") if reminder else None
    if "priority" in changes:
        updates["priority"] = _priority_value(changes["priority"])
    if "length" in changes:
        updates["length"] = _length_value(changes["length"])
    if "repeat" in changes:
        updates["repeat"] = (changes["repeat"] or "").strip() or None
    if "query" in changes:
        updates["query"] = normalize_query(changes["query"])
    return replace(task, **updates)


def _block_end(lines: List[str], start: int, col: int) -> int:
    """Index just past a task line and everything indented under it."""
    end = start + 1
    i = start + 1
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        if stripped:
            indent = len(line) - len(line.lstrip())
            if indent <= col or parse_heading(stripped):
                break
            end = i + 1
        i += 1
    return end


def _section_insert_index(lines: List[str], body_start: int, heading: str) -> Optional[int]:
    """Index after the last non-blank line of the section under ``heading``."""
    for i in range(body_start, len(lines)):
        found = parse_heading(lines[i].strip())
        if not found or found[1] != heading:
            continue
        j = i + 1
        while j < len(lines) and not parse_heading(lines[j].strip()):
            j += 1
        while j > i + 1 and not lines[j - 1].strip():
            j -= 1
        return j
    return None


# ---------------------------------------------------------------------------
# VaultCache
# ---------------------------------------------------------------------------

class VaultCache:
    """
    Thread-safe in-memory vault cache.

    Initialize with initialize(), then start the background worker with
    start_worker(). The watcher calls enqueue_refresh() to schedule file
    re-parses without blocking the watcher thread.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._lock = threading.RLock()
        self._clock = clock
        self._config = TimelineConfig()
        self._vault_root: Optional[Path] = None
        self._files: Dict[Path, CachedDocument] = {}
        self._tasks: Dict[str, Task] = {}
        self._hidden: int = 0
        self._events: List[Event] = []
        self._collapsed: Dict[str, bool] = {}
        self._fingerprint: Optional[str] = None
        self._update_queue: "queue.Queue[Optional[Path]]" = queue.Queue()
        self._worker_thread: Optional[threading.Thread] = None
        self._last_full_scan: Optional[datetime] = None
        self._last_rebuild: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def initialize(self, vault_root: Path, config: Optional[TimelineConfig] = None) -> None:
        """
        Full vault scan. Blocks until complete.
        Call once at server startup before starting the watcher.
        """
        self._vault_root = Path(vault_root).resolve()
        if config is not None:
            self._config = config
        log.info("Starting vault scan: %s", self._vault_root)
        with self._lock:
            self._files.clear()
            for path in self._walk_markdown_files(self._vault_root):
                self._load_file(path)
            self._fingerprint = None
            self._rebuild()
        self._last_full_scan = datetime.now()
        log.info(
            "Vault scan complete: %d files, %d tasks (%d not started)",
            len(self._files),
            len(self._tasks),
            self._hidden,
        )

    def start_worker(self) -> None:
        """Start the background queue-drain worker thread (daemon)."""
        self._worker_thread = threading.Thread(
            target=self._worker_loop, daemon=True, name="vault-cache-worker"
        )
        self._worker_thread.start()

    def stop_worker(self) -> None:
        """Signal the worker thread to stop and wait for it."""
        self._update_queue.put(None)  # sentinel
        if self._worker_thread:
            self._worker_thread.join(timeout=5)

    @property
    def vault_root(self) -> Optional[Path]:
        return self._vault_root

    @property
    def config(self) -> TimelineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Internal scanning
    # ------------------------------------------------------------------

    def is_tracked(self, path: Path) -> bool:
        """True for markdown files under the vault root that are not excluded."""
        if self._vault_root is None or path.suffix != ".md":
            return False
        try:
            rel = path.relative_to(self._vault_root)
        except ValueError:
            return False
        return not self._config.is_excluded(rel.as_posix())

    def _walk_markdown_files(self, root: Path) -> Iterator[Path]:
        """Yield all *.md paths under root, respecting exclusions."""
        for path in sorted(root.rglob("*.md")):
            if path.is_file() and self.is_tracked(path):
                yield path

    def _load_file(self, path: Path) -> None:
        """Scan a markdown file into the document store (no rebuild)."""
        try:
            mtime = path.stat().st_mtime
            doc = scan_file(path, self._vault_root)
            with self._lock:
                self._files[path] = CachedDocument(file_path=path, doc=doc, mtime=mtime)
        except Exception:
            log.exception("Failed to scan %s", path)

    def _today(self) -> str:
        return start_date_for(self._clock(), self._config.day_end).isoformat()

    def _rebuild(self) -> bool:
        """
        Re-derive the task map from the document store.
        Returns False when the fingerprint shows nothing changed.
        """
        with self._lock:
            today = self._today()
            documents = [self._files[p] for p in sorted(self._files)]
            fingerprint = _fingerprint(documents, today)
            if fingerprint == self._fingerprint:
                log.debug("Task map unchanged, skipping rebuild")
                return False

            tasks: Dict[str, Task] = {}
            for cached in documents:
                try:
                    parsed = tasks_from_document(
                        cached.doc, self._config.daily_note, self._config.field_format
                    )
                except Exception:
                    log.exception("Failed to parse tasks in %s", cached.file_path)
                    continue
                for task in parsed:
                    tasks[task.id] = task

            tasks = apply_queries(link_parents(tasks), today)
            visible = {
                tid: task for tid, task in tasks.items()
                if not (task.start and task.start[:10] > today)
            }

            self._hidden = len(tasks) - len(visible)
            self._tasks = visible
            self._fingerprint = fingerprint
            self._last_rebuild = datetime.now()
            log.debug("Rebuilt task map: %d tasks, %d hidden", len(visible), self._hidden)
            return True

    def reload(self) -> bool:
        """Rebuild the task map if anything (including the current day) changed."""
        return self._rebuild()

    # ------------------------------------------------------------------
    # Background worker
    # ------------------------------------------------------------------

    def _worker_loop(self) -> None:
        """Drain the update queue, re-scanning files as they arrive."""
        while True:
            item = self._update_queue.get()
            if item is None:  # sentinel → stop
                break
            try:
                self.refresh_file(item)
            except Exception:
                log.exception("Worker failed to refresh %s", item)

    # ------------------------------------------------------------------
    # Public cache refresh methods
    # ------------------------------------------------------------------

    def enqueue_refresh(self, path: Path) -> None:
        """
        Schedule a file re-scan from a watcher callback (non-blocking).
        """
        self._update_queue.put(path)

    def refresh_file(self, path: Path) -> None:
        """
        Re-scan a single markdown file and rebuild the task map.
        Thread-safe; blocks on _lock.
        """
        if path.suffix != ".md":
            return

        if not path.exists():
            self._remove_file(path)
            return

        try:
            mtime = path.stat().st_mtime
        except OSError:
            return

        with self._lock:
            existing = self._files.get(path)
            if existing and existing.mtime >= mtime:
                return  # Already up to date
            if not self.is_tracked(path):
                return
            self._load_file(path)
            self._rebuild()

    def _remove_file(self, path: Path) -> None:
        """Drop a deleted file from the document store."""
        with self._lock:
            if self._files.pop(path, None) is not None:
                self._rebuild()

    # ------------------------------------------------------------------
    # Task queries
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._tasks.get(task_id)

    def tasks(self) -> Dict[str, Task]:
        """A snapshot of the current task map (safe to hold across reloads)."""
        with self._lock:
            return dict(self._tasks)

    def query_tasks(
        self,
        *,
        path: Optional[str] = None,
        completed: Optional[bool] = None,
        tag: Optional[str] = None,
        scheduled_on: Optional[str] = None,
        due_before: Optional[str] = None,
        limit: int = 500,
    ) -> List[Task]:
        """
        Filter the task map.

        Args:
            path: Only tasks whose file path starts with this prefix
            completed: True for done tasks, False for open ones
            tag: Hashtag (with or without "#")
            scheduled_on: ISO date, matches date-only and timed schedules
            due_before: ISO date, tasks due on or before it
            limit: Max results

        Returns:
            Tasks in source order (file, then line)
        """
        if tag and not tag.startswith("#"):
            tag = "#" + tag
        with self._lock:
            candidates = list(self._tasks.values())

        found = []
        for task in sorted(candidates, key=lambda t: t.sort_key):
            if path and not task.file_path.startswith(path):
                continue
            if completed is not None and task.completed != completed:
                continue
            if tag and tag not in task.tags:
                continue
            if scheduled_on and not (task.scheduled and task.scheduled[:10] == scheduled_on[:10]):
                continue
            if due_before and not (task.due and task.due[:10] <= due_before[:10]):
                continue
            found.append(task)
            if len(found) >= limit:
                break
        return found

    def forest(self, path: Optional[str] = None) -> List[TaskNode]:
        """
        Task trees for the whole vault or one file prefix.

        Raises CyclicGraphError when the children links loop.
        """
        with self._lock:
            tasks = dict(self._tasks)
        if path:
            tasks = {tid: t for tid, t in tasks.items() if t.file_path.startswith(path)}
        return build_forest(tasks)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def set_events(self, events: Iterable[Event]) -> int:
        """Replace the calendar events used for layout."""
        with self._lock:
            self._events = list(events)
            count = len(self._events)
        log.info("Loaded %d calendar events", count)
        return count

    def events(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    def timeline(
        self,
        window: Window,
        now: Optional[datetime] = None,
        past_mode: bool = False,
        show_completed: Optional[bool] = None,
    ) -> Timeline:
        """
        Classify the current snapshot into ``window`` and resolve its blocks.

        Raises InvalidWindowError for malformed or reversed bounds.
        """
        moment = now or self._clock()
        if show_completed is None:
            show_completed = self._config.show_completed
        with self._lock:
            tasks = dict(self._tasks)
            events = list(self._events)

        window = validate_window(window)
        classification = classify(tasks, events, window, moment, past_mode, show_completed)
        blocks = resolve_blocks(
            classification.time_buckets, window.end_iso, self._config.extend_blocks
        )
        return Timeline(window=window, classification=classification, blocks=blocks)

    def day_timeline(
        self,
        day: Optional[date] = None,
        now: Optional[datetime] = None,
        past_mode: bool = False,
        show_completed: Optional[bool] = None,
    ) -> Timeline:
        """Timeline of one display day; today's window is the live one."""
        moment = now or self._clock()
        today = start_date_for(moment, self._config.day_end)
        day = day or today
        start, end = day_window(day, self._config.day_start, self._config.day_end)
        window = Window(start_iso=start, end_iso=end, is_now=day == today)
        return self.timeline(window, moment, past_mode, show_completed)

    # ------------------------------------------------------------------
    # Collapsed state
    # ------------------------------------------------------------------

    def set_collapsed(self, task_id: str, collapsed: bool) -> None:
        with self._lock:
            if collapsed:
                self._collapsed[task_id] = True
            else:
                self._collapsed.pop(task_id, None)

    def collapsed(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._collapsed)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _resolve_path(self, rel_path: str) -> Path:
        """Absolute path of a vault-relative markdown file; refuses to leave the vault."""
        if self._vault_root is None:
            raise TimelineError("Vault cache is not initialized")
        rel = rel_path.strip().lstrip("/")
        if not rel:
            raise ValueError("A file path is required")
        if not rel.endswith(".md"):
            rel += ".md"
        path = (self._vault_root / rel).resolve()
        if self._vault_root not in path.parents:
            raise ValueError(f"Path '{rel_path}' is outside the vault")
        return path

    @staticmethod
    def _read_lines(path: Path) -> List[str]:
        return path.read_text(encoding="utf-8").split("\n")

    def _write_lines(self, path: Path, lines: List[str]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines), encoding="utf-8")
        self._load_file(path)
        self._rebuild()

    def _task_line(self, task: Task, lines: List[str]):
        """The regex match for a task's source line, checking it has not moved."""
        line_no = task.position.line
        m = TASK_LINE.match(lines[line_no]) if line_no < len(lines) else None
        if not m or (task.original_text and m.group(3) != task.original_text.split("\n", 1)[0]):
            raise ValueError(
                f"Task '{task.id}' is no longer at {task.file_path}:{line_no + 1}; reload and retry"
            )
        return m

    def save_task(self, task: Task) -> Optional[Task]:
        """
        Write a task back to its document and return the re-parsed task.

        Line tasks have their first line re-serialized in place (notes and
        children are untouched); page tasks have their frontmatter rewritten.
        """
        with self._lock:
            if task.page:
                return self._save_page(task)
            path = self._resolve_path(task.file_path)
            lines = self._read_lines(path)
            indent = self._task_line(task, lines).group(1)
            lines[task.position.line] = indent + serialize_task(
                task, daily_note=self._config.daily_note
            )
            self._write_lines(path, lines)
            log.info("Saved task %s", task.id)
            return self._tasks.get(task.id)

    def _save_page(self, task: Task) -> Optional[Task]:
        path = self._resolve_path(task.file_path)
        lines = self._read_lines(path)
        _, body_start = extract_frontmatter(lines)
        cached = self._files.get(path)
        frontmatter = cached.doc.frontmatter if cached else {}
        data = task_to_frontmatter(task, frontmatter)
        dumped = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)
        lines = ["---"] + dumped.rstrip("\n").split("\n") + ["---"] + lines[body_start:]
        self._write_lines(path, lines)
        log.info("Saved page task %s", task.id)
        return self._tasks.get(task.id)

    def update_task(self, task_id: str, **changes) -> Optional[Task]:
        """
        Update task fields and write back to disk.

        Supported changes: see UPDATABLE_FIELDS. Returns the updated Task or
        None if not found.
        """
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return None
            return self.save_task(apply_changes(task, changes, self._today()))

    def create_task(
        self,
        path: str,
        title: str,
        heading: Optional[str] = None,
        **fields,
    ) -> Optional[Task]:
        """
        Add a new task line to a document (created if missing).

        With ``heading`` the line goes at the end of that section (the
        section is appended when absent); otherwise at the top of the body.
        The line is written in the configured default dialect.
        """
        with self._lock:
            file_path = self._resolve_path(path)
            rel = file_path.relative_to(self._vault_root).as_posix()
            draft = Task(id="", title="", field_format=self._config.field_format, path=rel)
            draft = apply_changes(draft, dict(fields, title=title), self._today())
            if not draft.original_title:
                raise ValueError("A task title is required")
            line = serialize_task(draft, daily_note=self._config.daily_note)

            lines = self._read_lines(file_path) if file_path.exists() else [""]
            _, body_start = extract_frontmatter(lines)
            index: Optional[int] = body_start
            if heading:
                index = _section_insert_index(lines, body_start, heading)
                if index is None:
                    # Append the section at the end of the document
                    while lines and not lines[-1].strip():
                        lines.pop()
                    if lines:
                        lines.append("")
                    lines.append(f"## {heading}")
                    index = len(lines)
                    lines.append("")
            lines.insert(index, line)
            self._write_lines(file_path, lines)

            new_id = make_task_id(rel, index)
            log.info("Created task %s", new_id)
            return self._tasks.get(new_id)

    def delete_task(self, task_id: str) -> Optional[List[str]]:
        """
        Remove a task and every line nested under it.

        Returns the removed task ids (the task plus its descendants), or
        None if not found. Raises CyclicGraphError if the children loop.
        """
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return None
            if task.page:
                raise ValueError(f"'{task_id}' is a page task; edit its frontmatter instead")
            removed = [task_id] + descendants(task_id, self._tasks)
            path = self._resolve_path(task.file_path)
            lines = self._read_lines(path)
            self._task_line(task, lines)
            start = task.position.line
            del lines[start:_block_end(lines, start, task.position.col)]
            self._write_lines(path, lines)
            log.info("Deleted task %s (%d total)", task_id, len(removed))
            return removed

    # ------------------------------------------------------------------
    # Status / diagnostics
    # ------------------------------------------------------------------

    def status(self) -> dict:
        with self._lock:
            return {
                "files_indexed": len(self._files),
                "tasks_indexed": len(self._tasks),
                "tasks_not_started": self._hidden,
                "events": len(self._events),
                "collapsed": len(self._collapsed),
                "fingerprint": self._fingerprint,
                "last_full_scan": self._last_full_scan.isoformat() if self._last_full_scan else None,
                "last_rebuild": self._last_rebuild.isoformat() if self._last_rebuild else None,
                "vault_root": str(self._vault_root) if self._vault_root else None,
                "exclude_dirs": sorted(self._config.exclude_dirs),
                "field_format": self._config.field_format,
            }

    def known_files(self) -> Dict[Path, float]:
        """{path: mtime} for every scanned file."""
        with self._lock:
            return {path: cached.mtime for path, cached in self._files.items()}
