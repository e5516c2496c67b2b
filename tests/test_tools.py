"""
Tests for tools/timeline_tools.py.

Uses a real VaultCache backed by a temporary vault on disk.
Exercises the MCP tool handler functions directly (bypasses transport).
"""

import json
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from vault_timeline.cache.vault_cache import VaultCache
from vault_timeline.config import TimelineConfig
from vault_timeline.tools.timeline_tools import register_timeline_tools


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_vault(tmp_path: Path) -> Path:
    vault = tmp_path / "vault"
    vault.mkdir()
    (vault / "Inbox.md").write_text(
        "## Today\n\n"
        "- [ ] Pay rent ⏫ ⏳ 2024-01-01 📅 2024-01-05\n"
        "- [ ] Errands [query:: #errand]\n"
        "- [ ] Post letter #errand\n",
        encoding="utf-8",
    )
    return vault


class _FakeMCP:
    """Minimal fake to capture tool registrations."""

    def __init__(self):
        self._tools = {}

    def tool(self, *args, **kwargs):
        """Decorator that records functions by name."""
        def decorator(fn):
            self._tools[fn.__name__] = fn
            return fn
        return decorator

    def get(self, name: str):
        return self._tools[name]


@pytest.fixture
def mcp(tmp_path):
    cache = VaultCache(clock=lambda: datetime(2024, 1, 1, 8, 0))
    cache.initialize(_make_vault(tmp_path), TimelineConfig())
    fake = _FakeMCP()
    register_timeline_tools(fake, cache)
    return fake


def _call(mcp, name, **kwargs):
    return json.loads(mcp.get(name)(**kwargs))


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class TestRegistration:
    def test_all_tools_registered(self, mcp):
        assert set(mcp._tools) == {
            "task_list", "task_get", "task_add", "task_update", "task_delete",
            "task_forest", "timeline", "events_set", "task_collapse",
            "task_parse", "task_convert", "cache_status",
        }


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

class TestTaskTools:
    def test_list(self, mcp):
        result = _call(mcp, "task_list")
        assert [t["title"] for t in result] == ["Pay rent", "Errands", "Post letter"]
        assert result[0]["priority"] == "high"
        assert result[0]["field_format"] == "tasks"

    def test_query_children(self, mcp):
        errands = _call(mcp, "task_get", task_id="Inbox::3")
        assert errands["query"] == "#errand"
        assert errands["query_children"] == ["Inbox::4"]

    def test_get_missing(self, mcp):
        assert "error" in _call(mcp, "task_get", task_id="Nope::0")

    def test_add_under_heading(self, mcp):
        result = _call(mcp, "task_add", title="Buy stamps #errand", file_path="Inbox", heading="Today")
        assert result["id"] == "Inbox::5"
        assert result["heading"] == "Today"
        assert result["query_parent"] == "Inbox::3"

    def test_add_error(self, mcp):
        result = _call(mcp, "task_add", title="x", file_path="Inbox", due="someday")
        assert "error" in result

    def test_update_keeps_dialect(self, mcp):
        result = _call(mcp, "task_update", task_id="Inbox::2", due="2024-01-06")
        assert result["due"] == "2024-01-06"
        text = _call(mcp, "task_get", task_id="Inbox::2")["text"]
        assert text == "- [ ] Pay rent ⏫ ⏳ 2024-01-01 📅 2024-01-06"

    def test_delete(self, mcp):
        assert _call(mcp, "task_delete", task_id="Inbox::4") == {"deleted": ["Inbox::4"]}

    def test_forest(self, mcp):
        roots = _call(mcp, "task_forest")
        assert len(roots) == 3
        assert all(r["subtasks"] == [] for r in roots)


# ---------------------------------------------------------------------------
# Timeline, events, codec
# ---------------------------------------------------------------------------

class TestTimelineTools:
    def test_timeline(self, mcp):
        result = _call(mcp, "timeline", day="2024-01-01")
        assert [t["title"] for t in result["all_day"]["tasks"]] == ["Pay rent"]

    def test_timeline_error(self, mcp):
        result = _call(mcp, "timeline", start="2024-01-02T00:00", end="2024-01-01T00:00")
        assert "error" in result

    def test_events(self, mcp):
        events = [{"id": "e1", "start_iso": "2024-01-01T12:00", "end_iso": "2024-01-01T13:00", "title": "Lunch"}]
        assert _call(mcp, "events_set", events=events) == {"events": 1}
        result = _call(mcp, "timeline", day="2024-01-01")
        assert result["blocks"][0]["events"][0]["title"] == "Lunch"

    def test_collapse(self, mcp):
        assert _call(mcp, "task_collapse", task_id="Inbox::3") == {"collapsed": {"Inbox::3": True}}
        assert _call(mcp, "task_collapse", task_id="Inbox::3", collapsed=False) == {"collapsed": {}}

    def test_parse(self, mcp):
        result = _call(mcp, "task_parse", text="- [ ] 9:00 - 10:00 Standup", path="Daily/2024-01-01.md")
        assert result["detected_format"] == "simple"
        assert result["title"] == "Standup"

    def test_convert(self, mcp):
        result = _call(mcp, "task_convert", text="- [ ] Pay rent ⏳ 2024-01-01", to_format="kanban")
        assert result == {"from_format": "tasks", "to_format": "kanban", "text": "- [ ] Pay rent @{2024-01-01}"}

    def test_status(self, mcp):
        assert _call(mcp, "cache_status")["tasks_indexed"] == 3
