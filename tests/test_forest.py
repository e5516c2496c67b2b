"""
Tests for layout/forest.py.

Covers:
- Roots, nesting order and orphan promotion
- Descendants and ancestors
- Cycle detection
- link_parents
"""

import sys
from pathlib import Path

# Add src to path so imports work without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from vault_timeline.errors import CyclicGraphError
from vault_timeline.layout.forest import (
    ancestors,
    build_forest,
    descendant_map,
    descendants,
    link_parents,
)
from vault_timeline.models.task import Task


def _tasks(*pairs):
    """Build a task map from (id, [child ids]) pairs."""
    result = {}
    for task_id, children in pairs:
        result[task_id] = Task(id=task_id, title=task_id, children=list(children))
    return result


@pytest.fixture
def tree():
    return link_parents(_tasks(
        ("a", ["b", "c"]),
        ("b", ["d"]),
        ("c", []),
        ("d", []),
        ("e", []),
    ))


# ---------------------------------------------------------------------------
# build_forest
# ---------------------------------------------------------------------------

class TestBuildForest:
    def test_roots_in_map_order(self, tree):
        assert [n.id for n in build_forest(tree)] == ["a", "e"]

    def test_subtasks_follow_children_order(self, tree):
        root = build_forest(tree)[0]
        assert [n.id for n in root.subtasks] == ["b", "c"]
        assert [n.id for n in root.subtasks[0].subtasks] == ["d"]

    def test_all_tasks_flattens(self, tree):
        root = build_forest(tree)[0]
        assert [t.id for t in root.all_tasks()] == ["a", "b", "d", "c"]

    def test_missing_child_is_skipped(self):
        tasks = _tasks(("a", ["gone", "b"]), ("b", []))
        forest = build_forest(tasks)
        assert [n.id for n in forest] == ["a"]
        assert [n.id for n in forest[0].subtasks] == ["b"]

    def test_orphan_becomes_root(self):
        tasks = _tasks(("b", []))
        tasks["b"].parent = "gone"
        assert [n.id for n in build_forest(tasks)] == ["b"]

    def test_every_task_appears_once(self, tree):
        seen = [t.id for node in build_forest(tree) for t in node.all_tasks()]
        assert sorted(seen) == sorted(tree)

    def test_empty(self):
        assert build_forest({}) == []

    def test_cycle_raises(self):
        tasks = _tasks(("a", ["b"]), ("b", ["a"]))
        with pytest.raises(CyclicGraphError) as exc:
            build_forest(tasks)
        assert exc.value.cycle[0] == exc.value.cycle[-1]

    def test_self_reference_raises(self):
        with pytest.raises(CyclicGraphError):
            build_forest(_tasks(("a", ["a"])))


# ---------------------------------------------------------------------------
# Descendants and ancestors
# ---------------------------------------------------------------------------

class TestDescendants:
    def test_map(self, tree):
        below = descendant_map(tree)
        assert below["a"] == ["b", "d", "c"]
        assert below["b"] == ["d"]
        assert below["e"] == []

    def test_single_task(self, tree):
        assert descendants("b", tree) == ["d"]

    def test_unknown_task(self, tree):
        assert descendants("zzz", tree) == []

    def test_shared_child_listed_once(self):
        tasks = _tasks(("a", ["b", "c"]), ("b", ["d"]), ("c", ["d"]), ("d", []))
        assert descendant_map(tasks)["a"] == ["b", "d", "c"]

    def test_cycle_elsewhere_does_not_affect_subtree(self):
        tasks = _tasks(("a", ["b"]), ("b", []), ("x", ["y"]), ("y", ["x"]))
        assert descendants("a", tasks) == ["b"]

    def test_ancestors(self, tree):
        assert [t.id for t in ancestors(tree["d"], tree)] == ["b", "a"]
        assert ancestors(tree["a"], tree) == []

    def test_ancestor_cycle_raises(self):
        tasks = _tasks(("a", []), ("b", []))
        tasks["a"].parent = "b"
        tasks["b"].parent = "a"
        with pytest.raises(CyclicGraphError):
            ancestors(tasks["a"], tasks)


# ---------------------------------------------------------------------------
# link_parents
# ---------------------------------------------------------------------------

class TestLinkParents:
    def test_parents_from_children(self, tree):
        assert tree["b"].parent == "a"
        assert tree["d"].parent == "b"
        assert tree["a"].parent is None

    def test_dangling_parent_cleared(self):
        tasks = _tasks(("b", []))
        tasks["b"].parent = "gone"
        assert link_parents(tasks)["b"].parent is None

    def test_input_untouched(self):
        tasks = _tasks(("a", ["b"]), ("b", []))
        linked = link_parents(tasks)
        assert tasks["b"].parent is None
        assert linked["b"].parent == "a"
        assert linked["a"] is tasks["a"]
