"""
Tests for layout/blocks.py.

Covers:
- Natural ends from task lengths and event durations
- Absorption of overlapping buckets into nested blocks
- extend_blocks
- Merging buckets that share a start
- The parse → classify → resolve path for a single task
"""

import sys
from pathlib import Path

# Add src to path so imports work without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vault_timeline.layout.blocks import bucket_minutes, merge_buckets, natural_end, resolve_blocks
from vault_timeline.layout.classifier import classify
from vault_timeline.models.event import Event
from vault_timeline.models.task import Length, Task
from vault_timeline.models.timeline import Bucket, Window
from vault_timeline.parsers.task_codec import parse_line


def _bucket(start, *minutes, events=()):
    """A bucket at ``start`` holding one task per entry in ``minutes`` (0 = no length)."""
    tasks = [
        Task(id=f"{start}#{i}", title="t", scheduled=start, length=Length.from_minutes(m) if m else None)
        for i, m in enumerate(minutes)
    ]
    return Bucket(start_iso=start, tasks=tasks, events=list(events))


# ---------------------------------------------------------------------------
# Natural ends
# ---------------------------------------------------------------------------

class TestNaturalEnd:
    def test_sum_of_lengths(self):
        bucket = _bucket("2024-01-01T09:00", 30, 15)
        assert bucket_minutes(bucket) == 45
        assert natural_end(bucket) == "2024-01-01T09:45"

    def test_zero_width(self):
        assert natural_end(_bucket("2024-01-01T09:00", 0)) == "2024-01-01T09:00"

    def test_event_duration_counts(self):
        meeting = Event(id="m", start_iso="2024-01-01T10:00", end_iso="2024-01-01T11:00")
        assert natural_end(_bucket("2024-01-01T10:00", events=[meeting])) == "2024-01-01T11:00"

    def test_crosses_midnight(self):
        assert natural_end(_bucket("2024-01-01T23:30", 60)) == "2024-01-02T00:30"


# ---------------------------------------------------------------------------
# resolve_blocks
# ---------------------------------------------------------------------------

class TestResolveBlocks:
    def test_overlapping_buckets_nest(self):
        buckets = [
            _bucket("2024-01-01T09:00", 60),
            _bucket("2024-01-01T09:30", 0),
            _bucket("2024-01-01T09:45", 0),
        ]
        blocks = resolve_blocks(buckets, "2024-01-02T00:00")
        assert len(blocks) == 1
        assert blocks[0].end_iso == "2024-01-01T10:00"
        assert [b.start_iso for b in blocks[0].blocks] == ["2024-01-01T09:30", "2024-01-01T09:45"]

    def test_disjoint_buckets_are_siblings(self):
        buckets = [_bucket("2024-01-01T09:00", 30), _bucket("2024-01-01T09:30", 30)]
        blocks = resolve_blocks(buckets, "2024-01-02T00:00")
        assert [(b.start_iso, b.end_iso) for b in blocks] == [
            ("2024-01-01T09:00", "2024-01-01T09:30"),
            ("2024-01-01T09:30", "2024-01-01T10:00"),
        ]

    def test_nested_end_extends_block_but_not_absorption(self):
        buckets = [
            _bucket("2024-01-01T09:00", 30),
            _bucket("2024-01-01T09:15", 60),
            _bucket("2024-01-01T10:00", 0),
        ]
        blocks = resolve_blocks(buckets, "2024-01-02T00:00")
        assert [b.start_iso for b in blocks] == ["2024-01-01T09:00", "2024-01-01T10:00"]
        assert blocks[0].end_iso == "2024-01-01T10:15"

    def test_extend_blocks(self):
        buckets = [_bucket("2024-01-01T09:00", 0), _bucket("2024-01-01T10:00", 0)]
        blocks = resolve_blocks(buckets, "2024-01-01T12:00", extend_blocks=True)
        assert [b.end_iso for b in blocks] == ["2024-01-01T10:00", "2024-01-01T12:00"]

    def test_without_extension_blocks_stay_zero_width(self):
        buckets = [_bucket("2024-01-01T09:00", 0), _bucket("2024-01-01T10:00", 0)]
        blocks = resolve_blocks(buckets, "2024-01-01T12:00")
        assert [b.end_iso for b in blocks] == ["2024-01-01T09:00", "2024-01-01T10:00"]

    def test_extension_never_shrinks(self):
        buckets = [_bucket("2024-01-01T09:00", 90)]
        blocks = resolve_blocks(buckets, "2024-01-01T10:00", extend_blocks=True)
        assert blocks[0].end_iso == "2024-01-01T10:30"

    def test_same_start_merges(self):
        first = _bucket("2024-01-01T09:00", 30)
        second = _bucket("2024-01-01T09:00", 15)
        blocks = resolve_blocks([first, second], "2024-01-02T00:00")
        assert len(blocks) == 1
        assert len(blocks[0].tasks) == 2
        assert blocks[0].end_iso == "2024-01-01T09:45"
        assert len(first.tasks) == 1

    def test_empty_buckets_dropped(self):
        assert merge_buckets([Bucket(start_iso="2024-01-01T09:00")]) == []
        assert resolve_blocks({}, "2024-01-02T00:00") == []

    def test_accepts_mapping(self):
        bucket = _bucket("2024-01-01T09:00", 30)
        blocks = resolve_blocks({bucket.start_iso: bucket}, "2024-01-02T00:00")
        assert blocks[0].tasks == bucket.tasks


class TestSingleTaskLayout:
    def test_parse_classify_resolve(self):
        task = parse_line("- [ ] Buy milk [scheduled:: 2024-01-01T09:00] [length:: 30m]", default_format="dataview")
        assert task.scheduled == "2024-01-01T09:00"
        assert task.length == Length(hour=0, minute=30)

        window = Window(start_iso="2024-01-01T00:00", end_iso="2024-01-02T00:00")
        result = classify([task], [], window, "2024-01-01T00:00")
        assert list(result.time_buckets) == ["2024-01-01T09:00"]

        blocks = resolve_blocks(result.time_buckets, window.end_iso)
        assert blocks[0].end_iso == "2024-01-01T09:30"
        assert blocks[0].tasks[0].title == "Buy milk"
