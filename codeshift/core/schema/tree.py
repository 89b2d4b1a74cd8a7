"""Immutable syntax tree model.

A SyntaxTree is produced once by a parser adapter and never mutated. Applying
a batch of edits produces a new tree value (the next *generation*) that
shares the lineage of the tree it came from.

Key invariant: parents are implied by tree shape and never stored, so a Node
can be shared freely between threads and between generations.
"""

import bisect
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple


class Kind(str, Enum):
    """Closed set of node kinds understood by the engine."""

    # Statements
    MODULE = "module"
    FUNCTION_DEF = "function-def"
    ASYNC_FUNCTION_DEF = "async-function-def"
    CLASS_DEF = "class-def"
    RETURN = "return"
    DELETE = "delete"
    ASSIGNMENT = "assignment"
    AUGMENTED_ASSIGNMENT = "augmented-assignment"
    ANNOTATED_ASSIGNMENT = "annotated-assignment"
    FOR_LOOP = "for-loop"
    ASYNC_FOR_LOOP = "async-for-loop"
    WHILE_LOOP = "while-loop"
    IF = "if"
    WITH = "with"
    ASYNC_WITH = "async-with"
    MATCH = "match"
    RAISE = "raise"
    TRY = "try"
    TRY_STAR = "try-star"
    ASSERT = "assert"
    IMPORT = "import"
    IMPORT_FROM = "import-from"
    GLOBAL = "global"
    NONLOCAL = "nonlocal"
    EXPRESSION_STATEMENT = "expression-statement"
    PASS = "pass"
    BREAK = "break"
    CONTINUE = "continue"

    # Expressions
    BOOL_OP = "bool-op"
    NAMED_EXPR = "named-expr"
    BINARY_OP = "binary-op"
    UNARY_OP = "unary-op"
    LAMBDA = "lambda"
    CONDITIONAL = "conditional"
    DICT = "dict"
    SET = "set"
    LIST_COMPREHENSION = "list-comprehension"
    SET_COMPREHENSION = "set-comprehension"
    DICT_COMPREHENSION = "dict-comprehension"
    GENERATOR_EXPRESSION = "generator-expression"
    AWAIT = "await"
    YIELD = "yield"
    YIELD_FROM = "yield-from"
    COMPARE = "compare"
    CALL = "call"
    FORMATTED_VALUE = "formatted-value"
    FORMATTED_STRING = "formatted-string"
    LITERAL = "literal"
    ATTRIBUTE = "attribute"
    SUBSCRIPT = "subscript"
    STARRED = "starred"
    NAME = "name"
    LIST = "list"
    TUPLE = "tuple"
    SLICE = "slice"

    # Components that are neither statements nor expressions
    EXCEPT_HANDLER = "except-handler"
    ARGUMENTS = "arguments"
    ARG = "arg"
    KEYWORD = "keyword"
    ALIAS = "alias"
    WITH_ITEM = "with-item"
    COMPREHENSION = "comprehension"
    MATCH_CASE = "match-case"

    # Synthesized / placeholder kinds
    FRAGMENT = "fragment"  # verbatim source text supplied by a caller
    EMPTY = "empty"  # absent slot in an ordered child list (e.g. a dict ``**`` key)
    OTHER = "other"

    def __str__(self) -> str:
        return self.value


STATEMENT_KINDS = frozenset({
    Kind.FUNCTION_DEF, Kind.ASYNC_FUNCTION_DEF, Kind.CLASS_DEF, Kind.RETURN,
    Kind.DELETE, Kind.ASSIGNMENT, Kind.AUGMENTED_ASSIGNMENT,
    Kind.ANNOTATED_ASSIGNMENT, Kind.FOR_LOOP, Kind.ASYNC_FOR_LOOP,
    Kind.WHILE_LOOP, Kind.IF, Kind.WITH, Kind.ASYNC_WITH, Kind.MATCH,
    Kind.RAISE, Kind.TRY, Kind.TRY_STAR, Kind.ASSERT, Kind.IMPORT,
    Kind.IMPORT_FROM, Kind.GLOBAL, Kind.NONLOCAL, Kind.EXPRESSION_STATEMENT,
    Kind.PASS, Kind.BREAK, Kind.CONTINUE,
})

EXPRESSION_KINDS = frozenset({
    Kind.BOOL_OP, Kind.NAMED_EXPR, Kind.BINARY_OP, Kind.UNARY_OP, Kind.LAMBDA,
    Kind.CONDITIONAL, Kind.DICT, Kind.SET, Kind.LIST_COMPREHENSION,
    Kind.SET_COMPREHENSION, Kind.DICT_COMPREHENSION,
    Kind.GENERATOR_EXPRESSION, Kind.AWAIT, Kind.YIELD, Kind.YIELD_FROM,
    Kind.COMPARE, Kind.CALL, Kind.FORMATTED_VALUE, Kind.FORMATTED_STRING,
    Kind.LITERAL, Kind.ATTRIBUTE, Kind.SUBSCRIPT, Kind.STARRED, Kind.NAME,
    Kind.LIST, Kind.TUPLE, Kind.SLICE,
})

# Kinds that open a new lexical scope
SCOPE_KINDS = frozenset({
    Kind.MODULE, Kind.FUNCTION_DEF, Kind.ASYNC_FUNCTION_DEF, Kind.CLASS_DEF,
})

# Child fields holding statement blocks
BLOCK_FIELDS = frozenset({"body", "orelse", "finalbody"})


@dataclass(frozen=True)
class Span:
    """Source location of a node.

    Attributes:
        start_line: 1-based first line
        start_col: 0-based character column on the first line
        end_line: 1-based last line
        end_col: 0-based character column just past the node on the last line
        start: Character offset of the first character in the source text
        end: Character offset just past the last character
    """
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    start: int
    end: int

    def overlaps(self, other: "Span") -> bool:
        """True if the two spans share at least one character.

        Identical empty spans also count as overlapping.
        """
        if self.start == self.end == other.start == other.end:
            return True
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Span") -> bool:
        return self.start <= other.start and other.end <= self.end


@dataclass(frozen=True)
class Node:
    """One element of a syntax tree.

    Attributes:
        kind: Discriminant of the node
        field: Role of the node inside its parent ("body", "targets", ...);
               None for the root
        attrs: Scalar attributes as (name, value) pairs, e.g. ("id", "x") for
               a name or ("op", "Add") for a binary operation
        children: Ordered child nodes
        span: Source location, if the node came from parsed source
    """
    kind: Kind
    field: Optional[str] = None
    attrs: Tuple[Tuple[str, Any], ...] = ()
    children: Tuple["Node", ...] = ()
    span: Optional[Span] = None

    def attr(self, name: str, default: Any = None) -> Any:
        """Return the value of a scalar attribute."""
        for key, value in self.attrs:
            if key == name:
                return value
        return default

    def children_in(self, field_name: str) -> Tuple["Node", ...]:
        """Children that sit in the given parent field, in order."""
        return tuple(child for child in self.children if child.field == field_name)

    def child(self, field_name: str) -> Optional["Node"]:
        """First child in the given field, or None."""
        for child in self.children:
            if child.field == field_name:
                return child
        return None

    @property
    def is_statement(self) -> bool:
        return self.kind in STATEMENT_KINDS

    @property
    def is_expression(self) -> bool:
        return self.kind in EXPRESSION_KINDS

    def depth_first(self) -> Iterator["Node"]:
        """Traverse depth-first, yielding self then children (pre-order)."""
        yield self
        for child in self.children:
            yield from child.depth_first()


class SyntaxTree:
    """One immutable generation of a parsed source file.

    Attributes:
        root: The module node
        source: The source text the tree was parsed from
        generation: 0 for a fresh parse, +1 per applied batch of edits
        lineage: Identifier shared by every generation of one parse
    """

    __slots__ = ("_root", "_source", "_generation", "_lineage", "_line_starts")

    def __init__(self, root: Node, source: str, generation: int = 0, lineage: Optional[str] = None):
        self._root = root
        self._source = source
        self._generation = generation
        self._lineage = lineage or uuid.uuid4().hex
        self._line_starts = _compute_line_starts(source)

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, "_line_starts"):
            raise AttributeError("SyntaxTree is immutable")
        object.__setattr__(self, name, value)

    @property
    def root(self) -> Node:
        return self._root

    @property
    def source(self) -> str:
        return self._source

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def lineage(self) -> str:
        return self._lineage

    @property
    def line_count(self) -> int:
        """Number of lines in the source (a trailing newline does not open a new line)."""
        if not self._source:
            return 0
        count = len(self._line_starts)
        if self._source.endswith("\n"):
            count -= 1
        return count

    def is_empty(self) -> bool:
        return not self._root.children

    def successor(self, root: Node, source: str) -> "SyntaxTree":
        """Create the next generation of this tree."""
        return SyntaxTree(root, source, generation=self._generation + 1, lineage=self._lineage)

    def slice(self, span: Span) -> str:
        """Return the verbatim source text covered by a span."""
        return self._source[span.start:span.end]

    def line_start(self, line: int) -> int:
        """Character offset where a 1-based line starts."""
        if line - 1 >= len(self._line_starts):
            return len(self._source)
        return self._line_starts[line - 1]

    def line_end(self, line: int) -> int:
        """Character offset just past a 1-based line, including its newline."""
        if line >= len(self._line_starts):
            return len(self._source)
        return self._line_starts[line]

    def line_of(self, offset: int) -> int:
        """1-based line containing a character offset."""
        return bisect.bisect_right(self._line_starts, offset)

    def resolve(self, ref: Any) -> Node:
        """Resolve a NodeRef against this tree (see codeshift.core.schema.ref)."""
        from codeshift.core.schema.ref import resolve

        return resolve(self, ref)

    def __repr__(self) -> str:
        return (
            f"SyntaxTree(statements={len(self._root.children)}, "
            f"generation={self._generation}, lineage={self._lineage[:8]})"
        )


def _compute_line_starts(source: str) -> List[int]:
    starts = [0]
    for index, char in enumerate(source):
        if char == "\n":
            starts.append(index + 1)
    return starts
