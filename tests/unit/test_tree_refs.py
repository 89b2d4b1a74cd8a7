"""Tests for the immutable tree model and NodeRef resolution."""

import pytest

from codeshift.core.errors import StaleReference
from codeshift.core.schema.ref import NodeRef, parent_of, ref_for, resolve, root_ref, walk
from codeshift.core.schema.tree import Kind, Node, Span, SyntaxTree
from codeshift.python.parser import PythonParser

SOURCE = """import os

def main():
    x = 1
    return x
"""


@pytest.fixture
def tree():
    return PythonParser().parse(SOURCE)


class TestSpan:
    """Tests for Span overlap and containment."""

    def test_overlapping_spans(self):
        """Spans sharing a character overlap."""
        a = Span(1, 0, 1, 5, 0, 5)
        b = Span(1, 4, 1, 8, 4, 8)
        assert a.overlaps(b)
        assert b.overlaps(a)

    def test_adjacent_spans_do_not_overlap(self):
        """Spans that only touch do not overlap."""
        a = Span(1, 0, 1, 5, 0, 5)
        b = Span(1, 5, 1, 8, 5, 8)
        assert not a.overlaps(b)

    def test_identical_empty_spans_overlap(self):
        """Two empty spans at the same offset count as overlapping."""
        a = Span(1, 3, 1, 3, 3, 3)
        assert a.overlaps(Span(1, 3, 1, 3, 3, 3))

    def test_contains(self):
        outer = Span(1, 0, 3, 0, 0, 30)
        inner = Span(2, 0, 2, 4, 10, 14)
        assert outer.contains(inner)
        assert not inner.contains(outer)


class TestSyntaxTree:
    """Tests for SyntaxTree values."""

    def test_tree_is_immutable(self, tree):
        """Assigning an attribute on a tree fails."""
        with pytest.raises(AttributeError):
            tree.generation = 5

    def test_successor_keeps_lineage(self, tree):
        """The next generation shares the lineage and bumps the generation."""
        nxt = tree.successor(tree.root, tree.source)
        assert nxt.generation == tree.generation + 1
        assert nxt.lineage == tree.lineage

    def test_separate_parses_have_distinct_lineages(self):
        parser = PythonParser()
        assert parser.parse("x = 1\n").lineage != parser.parse("x = 1\n").lineage

    def test_line_helpers(self, tree):
        """Line offsets include the newline and line_of inverts line_start."""
        assert tree.line_count == 5
        assert tree.line_start(1) == 0
        assert tree.line_end(1) == len("import os\n")
        assert tree.line_of(tree.line_start(3)) == 3

    def test_empty_module(self):
        empty = PythonParser().parse("")
        assert empty.is_empty()
        assert empty.line_count == 0

    def test_node_accessors(self, tree):
        """Children are reachable by field and attributes by name."""
        function = tree.root.children[1]
        assert function.kind == Kind.FUNCTION_DEF
        assert function.attr("name") == "main"
        assert len(function.children_in("body")) == 2
        assert function.child("args").kind == Kind.ARGUMENTS
        assert function.is_statement
        assert not function.is_expression


class TestNodeRef:
    """Tests for NodeRef production and resolution."""

    def test_resolve_round_trip(self, tree):
        """Every walked path resolves back to the same node."""
        for path, node in walk(tree):
            ref = NodeRef(path, tree.generation, tree.lineage)
            assert resolve(tree, ref) is node

    def test_root_ref_resolves_to_module(self, tree):
        assert tree.resolve(root_ref(tree)).kind == Kind.MODULE

    def test_refs_are_hashable_values(self, tree):
        """Equal paths in the same generation are equal refs."""
        first = ref_for(tree, (1, 2))
        second = ref_for(tree, (1, 2))
        assert first == second
        assert len({first, second}) == 1

    def test_ref_for_missing_path(self, tree):
        with pytest.raises(StaleReference):
            ref_for(tree, (9,))

    def test_stale_generation_rejected(self, tree):
        """A ref from an older generation never resolves on a newer one."""
        ref = ref_for(tree, (0,))
        newer = tree.successor(tree.root, tree.source)
        with pytest.raises(StaleReference) as exc_info:
            newer.resolve(ref)
        assert exc_info.value.ref == ref
        assert exc_info.value.expected_generation == 1

    def test_other_lineage_rejected(self, tree):
        """A ref from an unrelated parse is rejected even at the same generation."""
        other = PythonParser().parse(SOURCE)
        with pytest.raises(StaleReference):
            other.resolve(ref_for(tree, (0,)))

    def test_non_ref_rejected(self, tree):
        with pytest.raises(TypeError):
            resolve(tree, (0,))

    def test_parent_and_ancestry(self, tree):
        """Parents are derived from the path, never stored on nodes."""
        assignment = ref_for(tree, (1, 1))
        function = assignment.parent
        assert function == ref_for(tree, (1,))
        assert function.is_ancestor_of(assignment)
        assert not assignment.is_ancestor_of(function)
        assert parent_of(tree, assignment).kind == Kind.FUNCTION_DEF
        assert parent_of(tree, root_ref(tree)) is None

    def test_synthetic_tree_resolution(self):
        """Trees built by hand resolve the same way as parsed ones."""
        leaf = Node(Kind.PASS, field="body")
        root = Node(Kind.MODULE, children=(leaf,))
        synthetic = SyntaxTree(root, "pass\n")
        assert synthetic.resolve(ref_for(synthetic, (0,))) is leaf
