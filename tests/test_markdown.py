"""
Tests for parsers/markdown.py.

Covers:
- scan_content: headings, nesting, notes, fences, bullets
- Inline fields and hashtags
- Frontmatter and page records
"""

import sys
from datetime import date, datetime, timedelta
from pathlib import Path

# Add src to path so imports work without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from vault_timeline.parsers.markdown import (
    coerce_field,
    extract_inline_fields,
    extract_tags,
    scan_content,
    scan_file,
)


SAMPLE = """---
tags: [work]
---
# Plan

- [ ] Parent task #work [due:: 2024-01-05]
    - [ ] Child one
        - [x] Grandchild
    - [ ] Child two
        remember the receipt

## Later
```
- [ ] Not a task
```
- [ ] Later task
"""


@pytest.fixture
def doc():
    return scan_content(SAMPLE, "Projects/plan.md")


def _by_line(doc):
    return {r.line: r for r in doc.records}


# ---------------------------------------------------------------------------
# scan_content
# ---------------------------------------------------------------------------

class TestScanContent:
    def test_finds_task_lines(self, doc):
        assert [r.line for r in doc.records] == [5, 6, 7, 8, 15]

    def test_fenced_code_skipped(self, doc):
        assert all("Not a task" not in r.text for r in doc.records)

    def test_path_on_records(self, doc):
        assert all(r.path == "Projects/plan.md" for r in doc.records)

    def test_headings(self, doc):
        records = _by_line(doc)
        assert records[5].heading == "Plan"
        assert records[8].heading == "Plan"
        assert records[15].heading == "Later"

    def test_nesting(self, doc):
        records = _by_line(doc)
        assert records[5].children == [6, 8]
        assert records[6].children == [7]
        assert records[7].parent == 6
        assert records[8].parent == 5
        assert records[5].parent is None

    def test_completed_status(self, doc):
        records = _by_line(doc)
        assert records[7].completed is True
        assert records[7].status == "x"
        assert records[6].completed is False

    def test_notes_appended(self, doc):
        records = _by_line(doc)
        assert records[8].text == "Child two\nremember the receipt"
        assert records[8].title_line == "Child two"

    def test_column(self, doc):
        records = _by_line(doc)
        assert records[5].col == 0
        assert records[6].col == 4

    def test_tags_and_fields(self, doc):
        record = _by_line(doc)[5]
        assert record.tags == ["#work"]
        assert record.fields["due"] == date(2024, 1, 5)

    def test_frontmatter_without_schedule_is_not_a_page(self, doc):
        assert doc.frontmatter == {"tags": ["work"]}
        assert doc.page is None
        assert doc.all_records() == doc.records

    def test_other_bullets(self):
        doc = scan_content("* [ ] Star\n+ [/] Plus\n", "a.md")
        assert [r.text for r in doc.records] == ["Star", "Plus"]
        assert doc.records[1].status == "/"

    def test_tab_indentation_nests(self):
        doc = scan_content("- [ ] Parent\n\t- [ ] Child\n", "a.md")
        assert doc.records[1].parent == 0

    def test_plain_text_closes_list(self):
        doc = scan_content("- [ ] One\nSome paragraph\n    - [ ] Two\n", "a.md")
        assert doc.records[1].parent is None

    def test_scan_file_relative_path(self, tmp_path):
        (tmp_path / "Daily").mkdir()
        path = tmp_path / "Daily" / "2024-01-01.md"
        path.write_text("- [ ] Task\n", encoding="utf-8")
        doc = scan_file(path, tmp_path)
        assert doc.path == "Daily/2024-01-01.md"
        assert doc.records[0].path == "Daily/2024-01-01.md"


# ---------------------------------------------------------------------------
# Inline fields and tags
# ---------------------------------------------------------------------------

class TestFieldsAndTags:
    def test_bracket_and_paren_fields(self):
        fields = extract_inline_fields("A (due:: 2024-01-05) [custom:: hello]")
        assert fields == {"due": date(2024, 1, 5), "custom": "hello"}

    def test_first_field_wins(self):
        fields = extract_inline_fields("[custom:: one] [custom:: two]")
        assert fields["custom"] == "one"

    def test_coerce_datetime(self):
        assert coerce_field("scheduled", "2024-01-01T09:00") == datetime(2024, 1, 1, 9, 0)

    def test_coerce_bad_date_stays_text(self):
        assert coerce_field("scheduled", "soon") == "soon"

    def test_coerce_duration(self):
        assert coerce_field("length", "90m") == timedelta(minutes=90)

    def test_coerce_boolean(self):
        assert coerce_field("allDay", "true") is True

    def test_coerce_other_keys_untouched(self):
        assert coerce_field("startTime", "09:00") == "09:00"

    def test_tags_skip_links_and_numbers(self):
        text = "See [[Note#Section]] and #real #123 [url](http://x#anchor) #real"
        assert extract_tags(text) == ["#real"]

    def test_nested_tags(self):
        assert extract_tags("Do it #area/home #next-up") == ["#area/home", "#next-up"]


# ---------------------------------------------------------------------------
# Frontmatter pages
# ---------------------------------------------------------------------------

class TestPages:
    def test_scheduled_page(self):
        doc = scan_content("---\nscheduled: 2024-01-03\nlength: 1h\n---\nBody\n", "Notes/Meeting.md")
        assert doc.page is not None
        assert doc.page.page is True
        assert doc.page.text == "Meeting"
        assert doc.page.fields["scheduled"] == date(2024, 1, 3)
        assert doc.page.fields["length"] == timedelta(hours=1)
        assert doc.all_records()[0] is doc.page

    def test_page_tags(self):
        doc = scan_content("---\ndue: 2024-01-03\ntags: one, two\n---\n", "x.md")
        assert doc.page.tags == ["#one", "#two"]

    def test_malformed_frontmatter_ignored(self):
        doc = scan_content("---\nkey: [unclosed\n---\n- [ ] Task\n", "x.md")
        assert doc.frontmatter == {}
        assert len(doc.records) == 1

    def test_unclosed_frontmatter_is_body(self):
        doc = scan_content("---\n- [ ] Task\n", "x.md")
        assert doc.frontmatter == {}
        assert doc.records[0].line == 1
