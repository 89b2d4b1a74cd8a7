"""Mutation engine: staged, atomic edits against one tree generation.

Edits are staged against NodeRefs (or a line range) of the current
generation and validated immediately: refs must resolve, fragments must parse
as the right grammatical category. ``apply()`` then checks that no two edits
overlap, splices every edit into the source in one pass, re-parses the result
and produces the next generation together with one ChangeRecord per edit.

State machine::

    CLEAN --stage--> STAGED --apply()--> APPLYING --> CLEAN (new generation)
                                                 \\--> CLEAN (error, batch discarded)

Text outside the edited spans is copied verbatim, so formatting and comments
of untouched code survive.
"""

import logging
import textwrap
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from codeshift.core.errors import ConflictingEdit, InvalidEdit, InvalidFragment
from codeshift.core.query import line_indent
from codeshift.core.schema.changes import ChangeKind, ChangeRecord, SourceLocation
from codeshift.core.schema.parser import FragmentCategory, Parser
from codeshift.core.schema.ref import NodeRef, Path, parent_of, resolve
from codeshift.core.schema.tree import BLOCK_FIELDS, Kind, Node, Span, SyntaxTree

logger = logging.getLogger(__name__)


class MutationState(str, Enum):
    """Lifecycle state of a MutationEngine."""

    CLEAN = "clean"
    STAGED = "staged"
    APPLYING = "applying"

    def __str__(self) -> str:
        return self.value


class EditKind(str, Enum):
    """Kind of a staged edit."""

    REPLACE = "replace"
    REMOVE = "remove"
    INSERT_BEFORE = "insert-before"
    INSERT_AFTER = "insert-after"
    REPLACE_RANGE = "replace-range"

    def __str__(self) -> str:
        return self.value


_INSERT_KINDS = frozenset({EditKind.INSERT_BEFORE, EditKind.INSERT_AFTER})

_CHANGE_KINDS = {
    EditKind.REPLACE: ChangeKind.REPLACED,
    EditKind.REMOVE: ChangeKind.REMOVED,
    EditKind.INSERT_BEFORE: ChangeKind.INSERTED_BEFORE,
    EditKind.INSERT_AFTER: ChangeKind.INSERTED_AFTER,
    EditKind.REPLACE_RANGE: ChangeKind.RANGE_REPLACED,
}

# Splices sharing a start offset run highest rank first (see _splice)
_SPLICE_RANK = {
    EditKind.REPLACE: 3,
    EditKind.REMOVE: 3,
    EditKind.REPLACE_RANGE: 3,
    EditKind.INSERT_BEFORE: 2,
    EditKind.INSERT_AFTER: 1,
}

# Expression kinds that bind looser than any operand position
_LOOSE_EXPRESSION_KINDS = frozenset({
    Kind.BOOL_OP, Kind.NAMED_EXPR, Kind.BINARY_OP, Kind.UNARY_OP, Kind.LAMBDA,
    Kind.CONDITIONAL, Kind.COMPARE, Kind.TUPLE, Kind.AWAIT, Kind.YIELD,
    Kind.YIELD_FROM, Kind.STARRED,
})


@dataclass(frozen=True)
class Edit:
    """One staged mutation.

    Attributes:
        kind: What the edit does
        ref: Target node (None for range edits)
        fragment: Replacement or inserted source text
        start_line: First replaced line of a range edit (1-based, inclusive)
        end_line: Last replaced line of a range edit (1-based, inclusive)
        description: Optional summary recorded in the change log
    """
    kind: EditKind
    ref: Optional[NodeRef] = None
    fragment: str = ""
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    description: Optional[str] = None

    @property
    def is_range(self) -> bool:
        return self.kind == EditKind.REPLACE_RANGE

    def __str__(self) -> str:
        if self.is_range:
            return f"{self.kind} lines {self.start_line}-{self.end_line}"
        path = self.ref.path if self.ref is not None else ()
        return f"{self.kind} {path}"


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of a successful ``apply()``.

    Attributes:
        tree: The new generation (the current one if nothing was staged)
        changes: One ChangeRecord per applied edit, in staging order
    """
    tree: SyntaxTree
    changes: Tuple[ChangeRecord, ...] = ()


@dataclass(frozen=True)
class _Splice:
    start: int
    end: int
    text: str
    rank: int
    index: int


class MutationEngine:
    """Stages edits against one generation and applies them atomically.

    Attributes:
        tree: Current generation
        state: Current MutationState
        staged: Staged edits in staging order
    """

    def __init__(self, tree: SyntaxTree, parser: Parser):
        self._tree = tree
        self._parser = parser
        self._staged: List[Edit] = []
        self._state = MutationState.CLEAN

    @property
    def tree(self) -> SyntaxTree:
        return self._tree

    @property
    def state(self) -> MutationState:
        return self._state

    @property
    def staged(self) -> Tuple[Edit, ...]:
        return tuple(self._staged)

    def reset(self, tree: SyntaxTree) -> None:
        """Switch to another generation, discarding anything staged."""
        self.discard()
        self._tree = tree

    def replace_node(self, ref: NodeRef, fragment: str, description: Optional[str] = None) -> Edit:
        """Stage replacing a statement or expression with a fragment.

        A statement must be replaced by a statement sequence, an expression by
        a single expression.

        Raises:
            StaleReference: If ref is not from the current generation
            InvalidFragment: If the fragment does not parse as required
            InvalidEdit: If the node cannot be replaced
        """
        node = self._require_span(resolve(self._tree, ref))
        if node.is_statement or node.kind == Kind.MODULE:
            self._parser.parse_fragment(fragment, FragmentCategory.STATEMENT)
            if "\n" in fragment.strip() and not self._starts_line(node):
                raise InvalidEdit(f"Cannot replace inline {node.kind} at line {node.span.start_line} with several lines")
        elif node.is_expression:
            self._parser.parse_fragment(fragment, FragmentCategory.EXPRESSION)
        else:
            raise InvalidEdit(f"Cannot replace a '{node.kind}' node; replace its enclosing statement")
        return self._stage(Edit(EditKind.REPLACE, ref=ref, fragment=fragment, description=description))

    def remove_node(self, ref: NodeRef, description: Optional[str] = None) -> Edit:
        """Stage removing a statement.

        Removing the only statement of a block leaves ``pass`` behind.

        Raises:
            StaleReference: If ref is not from the current generation
            InvalidEdit: If the node is not a statement
        """
        node = self._require_span(resolve(self._tree, ref))
        if not node.is_statement:
            raise InvalidEdit(f"Cannot remove a '{node.kind}' node; only statements can be removed")
        return self._stage(Edit(EditKind.REMOVE, ref=ref, description=description))

    def insert_before(self, ref: NodeRef, fragment: str, description: Optional[str] = None) -> Edit:
        """Stage inserting statements before a statement, at its indentation."""
        return self._stage_insert(EditKind.INSERT_BEFORE, ref, fragment, description)

    def insert_after(self, ref: NodeRef, fragment: str, description: Optional[str] = None) -> Edit:
        """Stage inserting statements after a statement, at its indentation."""
        return self._stage_insert(EditKind.INSERT_AFTER, ref, fragment, description)

    def replace_range(self, start_line: int, end_line: int, text: str, description: Optional[str] = None) -> Edit:
        """Stage replacing whole lines ``start_line``..``end_line`` (1-based, inclusive).

        The text is spliced verbatim; the re-parse at apply time validates it.

        Raises:
            InvalidEdit: If the range is outside the source
            ConflictingEdit: If node edits are already staged
        """
        line_count = self._tree.line_count
        if not 1 <= start_line <= end_line <= line_count:
            raise InvalidEdit(f"Line range {start_line}-{end_line} is outside the source (1-{line_count})")
        return self._stage(Edit(
            EditKind.REPLACE_RANGE,
            fragment=text,
            start_line=start_line,
            end_line=end_line,
            description=description,
        ))

    def discard(self) -> int:
        """Drop every staged edit. Returns how many were dropped."""
        count = len(self._staged)
        self._staged = []
        self._state = MutationState.CLEAN
        if count:
            logger.debug(f"Discarded {count} staged edit(s)")
        return count

    def _stage_insert(self, kind: EditKind, ref: NodeRef, fragment: str, description: Optional[str]) -> Edit:
        node = self._require_span(resolve(self._tree, ref))
        if not node.is_statement:
            raise InvalidEdit(f"Cannot insert statements next to a '{node.kind}' node")
        if not fragment.strip():
            raise InvalidFragment(
                "Cannot insert an empty fragment",
                fragment=fragment,
                category=FragmentCategory.STATEMENT.value,
                diagnostic="empty fragment",
            )
        self._parser.parse_fragment(fragment, FragmentCategory.STATEMENT)
        if not self._starts_line(node):
            raise InvalidEdit(f"Cannot insert next to {node.kind} at line {node.span.start_line}: it does not start its line")
        if kind == EditKind.INSERT_AFTER and not self._ends_line(node):
            raise InvalidEdit(f"Cannot insert after {node.kind} at line {node.span.end_line}: it does not end its line")
        return self._stage(Edit(kind, ref=ref, fragment=fragment, description=description))

    def _stage(self, edit: Edit) -> Edit:
        for staged in self._staged:
            if staged.is_range != edit.is_range:
                raise ConflictingEdit(
                    f"Cannot mix line-range and node edits in one batch ({staged} vs {edit})",
                    first=staged,
                    second=edit,
                )
        self._staged.append(edit)
        self._state = MutationState.STAGED
        logger.debug(f"Staged {edit} against generation {self._tree.generation}")
        return edit

    def _require_span(self, node: Node) -> Node:
        if node.span is None:
            raise InvalidEdit(f"'{node.kind}' node has no source span and cannot be edited")
        return node

    def _starts_line(self, node: Node) -> bool:
        prefix = self._tree.source[self._tree.line_start(node.span.start_line):node.span.start]
        return not prefix.strip()

    def _ends_line(self, node: Node) -> bool:
        rest = self._tree.source[node.span.end:self._tree.line_end(node.span.end_line)].strip()
        return not rest or rest.startswith("#")

    def apply(self) -> ApplyResult:
        """Apply the staged batch atomically.

        Returns:
            ApplyResult with the new generation and its ChangeRecords

        Raises:
            ConflictingEdit: If two staged edits overlap
            InvalidFragment: If the edited source no longer parses

        On any error the batch is discarded and the current generation kept.
        """
        if not self._staged:
            return ApplyResult(self._tree, ())

        edits = list(self._staged)
        self._state = MutationState.APPLYING
        try:
            anchors = [self._anchor(edit) for edit in edits]
            self._check_conflicts(edits, anchors)
            splices = self._plan(edits)
            source = self._splice(splices)
            new_tree = self._reparse(source)
            changes = tuple(
                self._record(edit, anchor, new_tree.generation) for edit, anchor in zip(edits, anchors)
            )
            logger.info(
                f"Applied {len(edits)} edit(s): generation {self._tree.generation} -> {new_tree.generation}"
            )
            self._tree = new_tree
            return ApplyResult(new_tree, changes)
        finally:
            self._staged = []
            self._state = MutationState.CLEAN

    def _anchor(self, edit: Edit) -> Span:
        tree = self._tree
        if edit.is_range:
            start = tree.line_start(edit.start_line)
            end = tree.line_end(edit.end_line)
            return Span(edit.start_line, 0, edit.end_line, end - tree.line_start(edit.end_line), start, end)
        return resolve(tree, edit.ref).span

    @staticmethod
    def _check_conflicts(edits: List[Edit], anchors: List[Span]) -> None:
        for i in range(len(edits)):
            for j in range(i + 1, len(edits)):
                if edits[i].kind in _INSERT_KINDS and edits[j].kind in _INSERT_KINDS:
                    continue
                if anchors[i].overlaps(anchors[j]):
                    raise ConflictingEdit(
                        f"Staged edits overlap: {edits[i]} and {edits[j]}",
                        first=edits[i],
                        second=edits[j],
                    )

    def _plan(self, edits: List[Edit]) -> List[_Splice]:
        removed: Set[Path] = {edit.ref.path for edit in edits if edit.kind == EditKind.REMOVE}
        placeholders = self._pass_placeholders(removed)
        splices = []
        for index, edit in enumerate(edits):
            start, end, text = self._splice_for(edit, placeholders)
            splices.append(_Splice(start, end, text, _SPLICE_RANK[edit.kind], index))
        return splices

    def _pass_placeholders(self, removed: Set[Path]) -> Set[Path]:
        """Removed statements that must become ``pass`` to keep their block non-empty."""
        placeholders: Set[Path] = set()
        blocks: Dict[Tuple[Path, str], List[Path]] = {}
        for path in removed:
            parent_path = path[:-1]
            parent = resolve(self._tree, NodeRef(parent_path, self._tree.generation, self._tree.lineage))
            field = parent.children[path[-1]].field
            if parent.kind == Kind.MODULE or field not in BLOCK_FIELDS:
                continue
            siblings = [parent_path + (i,) for i, child in enumerate(parent.children) if child.field == field]
            if all(sibling in removed for sibling in siblings):
                blocks[(parent_path, field)] = siblings
        for siblings in blocks.values():
            placeholders.add(siblings[0])
        return placeholders

    def _splice_for(self, edit: Edit, placeholders: Set[Path]) -> Tuple[int, int, str]:
        tree = self._tree
        source = tree.source

        if edit.is_range:
            start = tree.line_start(edit.start_line)
            end = tree.line_end(edit.end_line)
            text = edit.fragment
            if text and source[start:end].endswith("\n") and not text.endswith("\n"):
                text += "\n"
            return start, end, text

        node = resolve(tree, edit.ref)
        span = node.span

        if edit.kind == EditKind.REPLACE:
            if node.kind == Kind.MODULE:
                text = _dedent_fragment(edit.fragment)
                return 0, len(source), text + "\n" if text else ""
            if node.is_statement:
                return span.start, span.end, _indent_continuation(_dedent_fragment(edit.fragment), line_indent(tree, node))
            return span.start, span.end, self._expression_text(edit.ref, edit.fragment)

        if edit.kind == EditKind.REMOVE:
            if edit.ref.path in placeholders:
                return span.start, span.end, "pass"
            if self._starts_line(node) and self._ends_line(node):
                return tree.line_start(span.start_line), tree.line_end(span.end_line), ""
            return _inline_removal(source, span)

        indent = line_indent(tree, node)
        block = "".join(
            (indent + line if line.strip() else "") + "\n"
            for line in _dedent_fragment(edit.fragment).split("\n")
        )
        if edit.kind == EditKind.INSERT_BEFORE:
            position = tree.line_start(span.start_line)
            return position, position, block
        position = tree.line_end(span.end_line)
        if position == len(source) and not source.endswith("\n"):
            return position, position, "\n" + block[:-1]
        return position, position, block

    def _expression_text(self, ref: NodeRef, fragment: str) -> str:
        text = fragment.strip()
        parent = parent_of(self._tree, ref)
        wrap = "\n" in text
        if not wrap and parent is not None and (parent.is_expression or parent.kind == Kind.KEYWORD):
            parsed = self._parser.parse_fragment(text, FragmentCategory.EXPRESSION)
            wrap = parsed[0].kind in _LOOSE_EXPRESSION_KINDS
        return f"({text})" if wrap else text

    def _splice(self, splices: List[_Splice]) -> str:
        # Descending start; at equal offsets higher rank first, later-staged first
        text = self._tree.source
        for splice in sorted(splices, key=lambda s: (s.start, s.rank, s.index), reverse=True):
            text = text[:splice.start] + splice.text + text[splice.end:]
        return text

    def _reparse(self, source: str) -> SyntaxTree:
        try:
            parsed = self._parser.parse(source)
        except InvalidFragment as e:
            raise InvalidFragment(
                f"Edited source no longer parses: {e.diagnostic or e}",
                fragment=source,
                category="module",
                diagnostic=e.diagnostic,
            ) from e
        return self._tree.successor(parsed.root, source)

    def _record(self, edit: Edit, anchor: Span, generation: int) -> ChangeRecord:
        location = SourceLocation(anchor.start_line, anchor.start_col)
        description = edit.description
        if description is None:
            if edit.is_range:
                description = f"Replaced lines {edit.start_line}-{edit.end_line}"
            else:
                kind = resolve(self._tree, edit.ref).kind
                verb = {
                    EditKind.REPLACE: "Replaced",
                    EditKind.REMOVE: "Removed",
                    EditKind.INSERT_BEFORE: "Inserted code before",
                    EditKind.INSERT_AFTER: "Inserted code after",
                }[edit.kind]
                description = f"{verb} {kind} at line {anchor.start_line}"
        return ChangeRecord(_CHANGE_KINDS[edit.kind], description, location, generation)


def _dedent_fragment(text: str) -> str:
    lines = textwrap.dedent(text).split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(line.rstrip() for line in lines)


def _indent_continuation(text: str, indent: str) -> str:
    lines = text.split("\n")
    rest = [(indent + line if line.strip() else "") for line in lines[1:]]
    return "\n".join([lines[0]] + rest)


def _inline_removal(source: str, span: Span) -> Tuple[int, int, str]:
    """Remove a statement sharing its line, along with one adjacent ``;``."""
    after = span.end
    while after < len(source) and source[after] in " \t":
        after += 1
    if after < len(source) and source[after] == ";":
        after += 1
        while after < len(source) and source[after] in " \t":
            after += 1
        return span.start, after, ""
    before = span.start
    while before > 0 and source[before - 1] in " \t":
        before -= 1
    if before > 0 and source[before - 1] == ";":
        return before - 1, span.end, ""
    return span.start, span.end, ""
