"""
Tests for cache/vault_cache.py.

Covers:
- Initial scan, exclusions and the not-yet-started filter
- query_tasks filtering and forest building
- Day timelines with events
- Fingerprinted rebuilds and single-file refresh
- Writes: update, create, delete, page frontmatter
- apply_changes validation
"""

import os
import sys
from datetime import date, datetime
from pathlib import Path

# Add src to path so imports work without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from vault_timeline.cache.vault_cache import VaultCache, apply_changes
from vault_timeline.config import TimelineConfig
from vault_timeline.errors import TimelineError
from vault_timeline.models.event import Event
from vault_timeline.models.task import Length, Priority, Task
from vault_timeline.utils.dates import DailyNoteInfo

DAILY_NOTE = """# Plan

- [ ] Morning run [scheduled:: 2024-01-01T07:00] [length:: 30m] #health
- [ ] Buy milk
\t- [ ] Find wallet
- [x] Done thing
"""

PROJECT = """- [ ] Write report [due:: 2024-01-03] #work
- [ ] Future task [start:: 2024-02-01]
"""

MEETING = """---
scheduled: 2024-01-02
---
Agenda
"""

RUN = "Daily/2024-01-01::2"
MILK = "Daily/2024-01-01::3"
WALLET = "Daily/2024-01-01::4"
DONE = "Daily/2024-01-01::5"
REPORT = "Projects/work::0"


class Clock:
    def __init__(self, moment):
        self.moment = moment

    def __call__(self):
        return self.moment


@pytest.fixture
def vault(tmp_path):
    (tmp_path / "Daily").mkdir()
    (tmp_path / "Projects").mkdir()
    (tmp_path / "Notes").mkdir()
    (tmp_path / ".obsidian").mkdir()
    (tmp_path / "Daily" / "2024-01-01.md").write_text(DAILY_NOTE, encoding="utf-8")
    (tmp_path / "Projects" / "work.md").write_text(PROJECT, encoding="utf-8")
    (tmp_path / "Notes" / "Meeting.md").write_text(MEETING, encoding="utf-8")
    (tmp_path / ".obsidian" / "ignored.md").write_text("- [ ] Hidden\n", encoding="utf-8")
    (tmp_path / "todo.txt").write_text("- [ ] Not markdown\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def clock():
    return Clock(datetime(2024, 1, 1, 8, 0))


@pytest.fixture
def cache(vault, clock):
    c = VaultCache(clock=clock)
    c.initialize(vault, TimelineConfig(daily_note=DailyNoteInfo(folder="Daily")))
    return c


def _read(cache, rel):
    return (cache.vault_root / rel).read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------

class TestInitialize:
    def test_counts(self, cache):
        st = cache.status()
        assert st["files_indexed"] == 3
        assert st["tasks_indexed"] == 6
        assert st["tasks_not_started"] == 1
        assert st["field_format"] == "dataview"
        assert st["fingerprint"]

    def test_excluded_dirs_and_other_files(self, cache):
        titles = {t.title for t in cache.tasks().values()}
        assert "Hidden" not in titles
        assert "Not markdown" not in titles

    def test_future_start_hidden(self, cache):
        assert cache.get_task("Projects/work::1") is None

    def test_daily_note_dates(self, cache):
        assert cache.get_task(MILK).scheduled == "2024-01-01"
        assert cache.get_task(WALLET).scheduled is None
        assert cache.get_task(WALLET).parent == MILK

    def test_page_task(self, cache):
        page = cache.get_task("Notes/Meeting.md")
        assert page.page is True
        assert page.title == "Meeting"
        assert page.scheduled == "2024-01-02"

    def test_known_files(self, cache):
        names = sorted(p.name for p in cache.known_files())
        assert names == ["2024-01-01.md", "Meeting.md", "work.md"]


class TestQueries:
    def test_tag_without_hash(self, cache):
        assert [t.id for t in cache.query_tasks(tag="health")] == [RUN]

    def test_completed(self, cache):
        assert [t.id for t in cache.query_tasks(completed=True)] == [DONE]

    def test_scheduled_on(self, cache):
        assert [t.id for t in cache.query_tasks(scheduled_on="2024-01-01")] == [RUN, MILK, DONE]

    def test_due_before(self, cache):
        assert [t.id for t in cache.query_tasks(due_before="2024-01-05")] == [REPORT]

    def test_path_prefix_and_limit(self, cache):
        assert [t.id for t in cache.query_tasks(path="Projects")] == [REPORT]
        assert len(cache.query_tasks(limit=2)) == 2

    def test_forest(self, cache):
        roots = cache.forest("Daily")
        assert [n.id for n in roots] == [RUN, MILK, DONE]
        assert [n.id for n in roots[1].subtasks] == [WALLET]


class TestTimeline:
    def test_day_timeline(self, cache):
        timeline = cache.day_timeline(date(2024, 1, 1))
        assert timeline.window.is_now is True
        c = timeline.classification
        assert [t.id for t in c.all_day.tasks] == [MILK]
        assert [t.id for t in c.upcoming] == [REPORT]
        assert [(b.start_iso, b.end_iso) for b in timeline.blocks] == [
            ("2024-01-01T07:00", "2024-01-01T07:30"),
        ]

    def test_other_day_is_not_live(self, cache):
        assert cache.day_timeline(date(2024, 1, 2)).window.is_now is False

    def test_events(self, cache):
        assert cache.set_events([Event(id="e", start_iso="2024-01-01T09:00", end_iso="2024-01-01T10:00")]) == 1
        timeline = cache.day_timeline(date(2024, 1, 1))
        assert [b.start_iso for b in timeline.blocks] == ["2024-01-01T07:00", "2024-01-01T09:00"]
        assert timeline.blocks[1].end_iso == "2024-01-01T10:00"
        assert cache.status()["events"] == 1

    def test_show_completed(self, cache):
        timeline = cache.day_timeline(date(2024, 1, 1), show_completed=True)
        assert DONE in [t.id for t in timeline.classification.all_day.tasks]


# ---------------------------------------------------------------------------
# Rebuilds and refresh
# ---------------------------------------------------------------------------

class TestRebuild:
    def test_unchanged_reload_skipped(self, cache):
        assert cache.reload() is False

    def test_new_day_rebuilds(self, cache, clock):
        clock.moment = datetime(2024, 2, 1, 8, 0)
        assert cache.reload() is True
        assert cache.get_task("Projects/work::1").title == "Future task"

    def test_refresh_file(self, cache):
        path = cache.vault_root / "Projects" / "work.md"
        path.write_text("- [ ] Replaced\n", encoding="utf-8")
        mtime = path.stat().st_mtime + 10
        os.utime(path, (mtime, mtime))
        cache.refresh_file(path)
        assert cache.get_task(REPORT).title == "Replaced"

    def test_refresh_deleted_file(self, cache):
        path = cache.vault_root / "Projects" / "work.md"
        path.unlink()
        cache.refresh_file(path)
        assert cache.get_task(REPORT) is None
        assert cache.status()["files_indexed"] == 2

    def test_refresh_ignores_excluded(self, cache):
        cache.refresh_file(cache.vault_root / ".obsidian" / "ignored.md")
        assert cache.status()["files_indexed"] == 3

    def test_collapsed_survives_rebuild(self, cache, clock):
        cache.set_collapsed(MILK, True)
        clock.moment = datetime(2024, 1, 2, 8, 0)
        cache.reload()
        assert cache.collapsed() == {MILK: True}
        cache.set_collapsed(MILK, False)
        assert cache.collapsed() == {}


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

class TestUpdate:
    def test_update_rewrites_line(self, cache):
        task = cache.update_task(MILK, scheduled="2024-01-01T10:00", priority="high")
        assert task.scheduled == "2024-01-01T10:00"
        assert task.priority == Priority.HIGH
        lines = _read(cache, "Daily/2024-01-01.md").split("\n")
        assert lines[3] == "- [ ] Buy milk  [scheduled:: 2024-01-01T10:00]  [priority:: high]"
        assert lines[4] == "\t- [ ] Find wallet"

    def test_complete(self, cache):
        task = cache.update_task(RUN, completed=True)
        assert task.completed is True
        assert task.completion == "2024-01-01"
        assert task.tags == ["#health"]
        assert task.length == Length(minute=30)

    def test_due_time_dropped(self, cache):
        task = cache.update_task(REPORT, due="2024-01-04T10:00")
        assert task.due == "2024-01-04"
        assert "[due:: 2024-01-04]" in _read(cache, "Projects/work.md")

    def test_clear_field(self, cache):
        task = cache.update_task(REPORT, due="")
        assert task.due is None
        assert "due::" not in _read(cache, "Projects/work.md")

    def test_nested_task_keeps_indent(self, cache):
        cache.update_task(WALLET, title="Find keys")
        assert _read(cache, "Daily/2024-01-01.md").split("\n")[4] == "\t- [ ] Find keys"

    def test_not_found(self, cache):
        assert cache.update_task("Nope::0", title="x") is None

    def test_invalid_values(self, cache):
        with pytest.raises(ValueError):
            cache.update_task(MILK, due="tomorrow")
        with pytest.raises(ValueError):
            cache.update_task(MILK, colour="red")

    def test_stale_line(self, cache):
        path = cache.vault_root / "Daily" / "2024-01-01.md"
        path.write_text("Intro\n" + DAILY_NOTE, encoding="utf-8")
        with pytest.raises(ValueError):
            cache.update_task(MILK, title="Buy oat milk")

    def test_page_frontmatter(self, cache):
        task = cache.update_task("Notes/Meeting.md", scheduled="2024-01-03")
        assert task.scheduled == "2024-01-03"
        text = _read(cache, "Notes/Meeting.md")
        assert text.startswith("---\n")
        assert text.rstrip("\n").endswith("Agenda")


class TestCreate:
    def test_new_file(self, cache):
        task = cache.create_task("Inbox", "New idea")
        assert task.id == "Inbox::0"
        assert _read(cache, "Inbox.md") == "- [ ] New idea\n"

    def test_under_existing_heading(self, cache):
        task = cache.create_task("Daily/2024-01-01", "Stretch", heading="Plan")
        assert task.id == "Daily/2024-01-01::6"
        assert task.heading == "Plan"
        assert task.scheduled == "2024-01-01"

    def test_appends_missing_heading(self, cache):
        task = cache.create_task("Projects/work.md", "Call Bob", heading="Calls", due="2024-01-04")
        assert task.id == "Projects/work::4"
        assert task.due == "2024-01-04"
        lines = _read(cache, "Projects/work.md").split("\n")
        assert lines[2:5] == ["", "## Calls", "- [ ] Call Bob  [due:: 2024-01-04]"]

    def test_configured_dialect(self, vault, clock):
        cache = VaultCache(clock=clock)
        cache.initialize(vault, TimelineConfig(field_format="tasks"))
        cache.create_task("Inbox", "Pay rent", due="2024-01-05")
        assert _read(cache, "Inbox.md") == "- [ ] Pay rent 📅 2024-01-05\n"

    def test_not_started_is_written_but_hidden(self, cache):
        assert cache.create_task("Inbox", "Later", start="2024-03-01") is None
        assert "Later" in _read(cache, "Inbox.md")

    def test_requires_title(self, cache):
        with pytest.raises(ValueError):
            cache.create_task("Inbox", "  ")

    def test_outside_vault(self, cache):
        with pytest.raises(ValueError):
            cache.create_task("../escape", "Nope")

    def test_uninitialized(self):
        with pytest.raises(TimelineError):
            VaultCache().create_task("Inbox", "Nope")


class TestDelete:
    def test_removes_subtree(self, cache):
        assert cache.delete_task(MILK) == [MILK, WALLET]
        lines = _read(cache, "Daily/2024-01-01.md").split("\n")
        assert "- [ ] Buy milk" not in lines
        assert "\t- [ ] Find wallet" not in lines
        # Line ids shift with the text
        assert cache.get_task(MILK).title == "Done thing"

    def test_not_found(self, cache):
        assert cache.delete_task("Nope::0") is None

    def test_page_refused(self, cache):
        with pytest.raises(ValueError):
            cache.delete_task("Notes/Meeting.md")


# ---------------------------------------------------------------------------
# apply_changes
# ---------------------------------------------------------------------------

class TestApplyChanges:
    def _task(self, **fields):
        return Task(id="a::0", title="a", original_title="a", **fields)

    def test_title_with_links(self):
        task = apply_changes(self._task(), {"title": "Read [[Dune]]"}, "2024-01-01")
        assert task.original_title == "Read [[Dune]]"
        assert task.title == "Read Dune"

    def test_completion_toggles(self):
        done = apply_changes(self._task(), {"completed": True}, "2024-01-01")
        assert (done.status, done.completion) == ("x", "2024-01-01")
        undone = apply_changes(done, {"completed": False}, "2024-01-02")
        assert (undone.status, undone.completion) == (" ", None)

    def test_existing_completion_kept(self):
        task = apply_changes(self._task(completion="2023-12-31"), {"completed": True}, "2024-01-01")
        assert task.completion == "2023-12-31"

    def test_value_parsing(self):
        task = apply_changes(self._task(), {
            "reminder": "2024-01-01T08:00",
            "priority": "!!",
            "length": "1h",
            "query": "Projects",
            "repeat": " every week ",
        }, "2024-01-01")
        assert task.reminder == "2024-01-01 08:00"
        assert task.priority == Priority.HIGH
        assert task.length == Length(hour=1)
        assert task.query == '"Projects"'
        assert task.repeat == "every week"

    def test_empty_clears(self):
        task = apply_changes(self._task(due="2024-01-01", priority=Priority.LOW), {"due": "", "priority": ""}, "x")
        assert task.due is None
        assert task.priority == Priority.DEFAULT

    @pytest.mark.parametrize("changes", [
        {"priority": "urgent"},
        {"priority": 9},
        {"length": "forever"},
        {"scheduled": "soon"},
        {"colour": "red"},
    ])
    def test_rejects(self, changes):
        with pytest.raises(ValueError):
            apply_changes(self._task(), changes, "2024-01-01")
