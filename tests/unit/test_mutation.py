"""Tests for the mutation engine."""

import pytest

from codeshift.core.errors import ConflictingEdit, InvalidEdit, InvalidFragment, StaleReference
from codeshift.core.mutation import EditKind, MutationEngine, MutationState
from codeshift.core.schema.changes import ChangeKind
from codeshift.core.schema.ref import ref_for
from codeshift.python.parser import PythonParser


def engine_for(source):
    parser = PythonParser()
    return MutationEngine(parser.parse(source), parser)


def ref(engine, *path):
    return ref_for(engine.tree, path)


class TestReplace:
    """Tests for replace_node."""

    def test_replace_statement(self):
        engine = engine_for("x = 1\ny = 2\n")
        engine.replace_node(ref(engine, 0), "x = 42")
        result = engine.apply()
        assert result.tree.source == "x = 42\ny = 2\n"
        assert result.tree.generation == 1
        assert len(result.changes) == 1
        assert result.changes[0].kind == ChangeKind.REPLACED
        assert result.changes[0].generation == 1

    def test_replace_expression(self):
        engine = engine_for("y = a + b\n")
        engine.replace_node(ref(engine, 0, 1), "c")
        assert engine.apply().tree.source == "y = c\n"

    def test_loose_expression_is_parenthesized(self):
        """An operand replaced by a looser expression keeps its meaning."""
        engine = engine_for("y = a + b\n")
        engine.replace_node(ref(engine, 0, 1, 0), "x or z")
        assert engine.apply().tree.source == "y = (x or z) + b\n"

    def test_comments_outside_edit_survive(self):
        engine = engine_for("# header\nx = 1  # trailing\ny = 2\n")
        engine.replace_node(ref(engine, 0), "x = 2")
        assert engine.apply().tree.source == "# header\nx = 2  # trailing\ny = 2\n"

    def test_multiline_replacement_is_reindented(self):
        engine = engine_for("def f():\n    x = 1\n")
        engine.replace_node(ref(engine, 0, 1), "if a:\n    x = 2\nelse:\n    x = 3")
        assert engine.apply().tree.source == (
            "def f():\n    if a:\n        x = 2\n    else:\n        x = 3\n"
        )

    def test_default_description_and_location(self):
        engine = engine_for("x = 1\ny = 2\n")
        engine.replace_node(ref(engine, 1), "y = 3")
        change = engine.apply().changes[0]
        assert change.location.line == 2
        assert change.description == "Replaced assignment at line 2"

    def test_custom_description(self):
        engine = engine_for("x = 1\n")
        engine.replace_node(ref(engine, 0), "x = 2", "Bumped x")
        assert engine.apply().changes[0].description == "Bumped x"


class TestRemove:
    """Tests for remove_node."""

    def test_remove_statement_with_its_line(self):
        engine = engine_for("a = 1\nb = 2\nc = 3\n")
        engine.remove_node(ref(engine, 1))
        result = engine.apply()
        assert result.tree.source == "a = 1\nc = 3\n"
        assert result.changes[0].kind == ChangeKind.REMOVED

    def test_removing_last_statement_of_block_leaves_pass(self):
        engine = engine_for("def f():\n    return 1\n")
        engine.remove_node(ref(engine, 0, 1))
        assert engine.apply().tree.source == "def f():\n    pass\n"

    def test_inline_removal_first(self):
        engine = engine_for("a = 1; b = 2\n")
        engine.remove_node(ref(engine, 0))
        assert engine.apply().tree.source == "b = 2\n"

    def test_inline_removal_last(self):
        engine = engine_for("a = 1; b = 2\n")
        engine.remove_node(ref(engine, 1))
        assert engine.apply().tree.source == "a = 1\n"

    def test_expression_cannot_be_removed(self):
        engine = engine_for("y = a + b\n")
        with pytest.raises(InvalidEdit):
            engine.remove_node(ref(engine, 0, 1))


class TestInsert:
    """Tests for insert_before and insert_after."""

    def test_insert_before_uses_target_indentation(self):
        engine = engine_for("def f():\n    x = 1\n")
        engine.insert_before(ref(engine, 0, 1), "log()\ny = 0")
        result = engine.apply()
        assert result.tree.source == "def f():\n    log()\n    y = 0\n    x = 1\n"
        assert result.changes[0].kind == ChangeKind.INSERTED_BEFORE

    def test_insert_after_at_end_without_newline(self):
        engine = engine_for("x = 1")
        engine.insert_after(ref(engine, 0), "y = 2")
        assert engine.apply().tree.source == "x = 1\ny = 2"

    def test_insertions_around_same_node_do_not_conflict(self):
        engine = engine_for("b = 1\n")
        engine.insert_before(ref(engine, 0), "a = 0")
        engine.insert_after(ref(engine, 0), "c = 2")
        assert engine.apply().tree.source == "a = 0\nb = 1\nc = 2\n"

    def test_insertions_keep_staging_order(self):
        engine = engine_for("z = 9\n")
        engine.insert_before(ref(engine, 0), "first = 1")
        engine.insert_before(ref(engine, 0), "second = 2")
        assert engine.apply().tree.source == "first = 1\nsecond = 2\nz = 9\n"

    def test_empty_fragment_rejected(self):
        engine = engine_for("x = 1\n")
        with pytest.raises(InvalidFragment):
            engine.insert_after(ref(engine, 0), "   ")

    def test_insert_next_to_expression_rejected(self):
        engine = engine_for("x = f()\n")
        with pytest.raises(InvalidEdit):
            engine.insert_before(ref(engine, 0, 1), "y = 1")

    def test_insert_after_inline_block_body_rejected(self):
        """A statement sharing its line with a compound header has no line of its own to follow."""
        engine = engine_for("if flag: y = 1\nz = 2\n")
        with pytest.raises(InvalidEdit):
            engine.insert_after(ref(engine, 0, 1), "w = 3")
        assert engine.state == MutationState.CLEAN

    def test_insert_after_inline_statement_rejected(self):
        engine = engine_for("a = 1; b = 2\n")
        with pytest.raises(InvalidEdit):
            engine.insert_after(ref(engine, 1), "c = 3")


class TestReplaceRange:
    """Tests for line-range replacement."""

    def test_replace_single_line(self):
        engine = engine_for("a = 1\nb = 2\nc = 3\n")
        engine.replace_range(2, 2, "b = 20")
        result = engine.apply()
        assert result.tree.source == "a = 1\nb = 20\nc = 3\n"
        assert result.changes[0].kind == ChangeKind.RANGE_REPLACED
        assert result.changes[0].description == "Replaced lines 2-2"

    def test_range_outside_source(self):
        engine = engine_for("a = 1\n")
        with pytest.raises(InvalidEdit):
            engine.replace_range(1, 3, "a = 2")

    def test_range_and_node_edits_cannot_mix(self):
        engine = engine_for("a = 1\nb = 2\n")
        engine.replace_node(ref(engine, 0), "a = 3")
        with pytest.raises(ConflictingEdit):
            engine.replace_range(2, 2, "b = 3")
        assert len(engine.staged) == 1

    def test_overlapping_ranges_conflict(self):
        engine = engine_for("a = 1\nb = 2\nc = 3\n")
        engine.replace_range(1, 2, "x = 0")
        engine.replace_range(2, 3, "y = 0")
        with pytest.raises(ConflictingEdit):
            engine.apply()


class TestApply:
    """Tests for batch application and the state machine."""

    def test_state_transitions(self):
        engine = engine_for("x = 1\n")
        assert engine.state == MutationState.CLEAN
        edit = engine.replace_node(ref(engine, 0), "x = 2")
        assert edit.kind == EditKind.REPLACE
        assert engine.state == MutationState.STAGED
        engine.apply()
        assert engine.state == MutationState.CLEAN
        assert engine.staged == ()

    def test_empty_batch_keeps_generation(self):
        engine = engine_for("x = 1\n")
        result = engine.apply()
        assert result.tree is engine.tree
        assert result.tree.generation == 0
        assert result.changes == ()

    def test_remove_and_insert_on_same_node_conflict(self):
        """The batch is discarded and the generation kept."""
        engine = engine_for("x = 1\ny = 2\n")
        target = ref(engine, 0)
        engine.remove_node(target)
        engine.insert_after(target, "# note")
        with pytest.raises(ConflictingEdit):
            engine.apply()
        assert engine.tree.generation == 0
        assert engine.tree.source == "x = 1\ny = 2\n"
        assert engine.staged == ()
        assert engine.state == MutationState.CLEAN

    def test_nested_edits_conflict(self):
        engine = engine_for("y = a + b\n")
        engine.replace_node(ref(engine, 0), "y = 0")
        engine.replace_node(ref(engine, 0, 1), "c")
        with pytest.raises(ConflictingEdit):
            engine.apply()

    def test_disjoint_edits_in_one_batch(self):
        engine = engine_for("a = 1\nb = 2\nc = 3\n")
        engine.replace_node(ref(engine, 0), "a = 10")
        engine.remove_node(ref(engine, 1))
        engine.replace_node(ref(engine, 2, 1), "30")
        result = engine.apply()
        assert result.tree.source == "a = 10\nc = 30\n"
        assert [change.kind for change in result.changes] == [
            ChangeKind.REPLACED, ChangeKind.REMOVED, ChangeKind.REPLACED,
        ]

    def test_invalid_fragment_rejected_at_staging(self):
        engine = engine_for("x = 1\n")
        with pytest.raises(InvalidFragment):
            engine.replace_node(ref(engine, 0), "x = ")
        assert engine.staged == ()

    def test_statement_fragment_for_expression_rejected(self):
        engine = engine_for("y = f()\n")
        with pytest.raises(InvalidFragment):
            engine.replace_node(ref(engine, 0, 1), "z = 1")

    def test_unparseable_result_keeps_tree(self):
        engine = engine_for("a = 1\n")
        engine.replace_range(1, 1, "def broken(:")
        with pytest.raises(InvalidFragment) as exc_info:
            engine.apply()
        assert exc_info.value.category == "module"
        assert engine.tree.source == "a = 1\n"

    def test_refs_go_stale_after_apply(self):
        engine = engine_for("x = 1\n")
        old = ref(engine, 0)
        engine.replace_node(old, "x = 2")
        engine.apply()
        with pytest.raises(StaleReference):
            engine.replace_node(old, "x = 3")

    def test_discard(self):
        engine = engine_for("x = 1\ny = 2\n")
        engine.remove_node(ref(engine, 0))
        engine.remove_node(ref(engine, 1))
        assert engine.discard() == 2
        assert engine.state == MutationState.CLEAN
        assert engine.apply().tree.generation == 0
