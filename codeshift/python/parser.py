"""Python parser adapter.

Parses Python using the stdlib ast module and converts the result into the
engine's immutable, Kind-tagged SyntaxTree. Scalar fields (identifiers,
operator names, literal values) become node attributes; AST-valued fields
become children tagged with the field name, in field order.

Spans are converted from ast's UTF-8 byte columns to character columns and
absolute character offsets, so the mutation engine can splice text directly.
"""

import ast
import logging
import textwrap
from typing import Any, Dict, List, Optional, Tuple

from codeshift.core.errors import InvalidFragment
from codeshift.core.schema.parser import FragmentCategory
from codeshift.core.schema.tree import Kind, Node, Span, SyntaxTree

logger = logging.getLogger(__name__)

_KIND_BY_CLASS: Dict[str, Kind] = {
    "Module": Kind.MODULE,
    "FunctionDef": Kind.FUNCTION_DEF,
    "AsyncFunctionDef": Kind.ASYNC_FUNCTION_DEF,
    "ClassDef": Kind.CLASS_DEF,
    "Return": Kind.RETURN,
    "Delete": Kind.DELETE,
    "Assign": Kind.ASSIGNMENT,
    "AugAssign": Kind.AUGMENTED_ASSIGNMENT,
    "AnnAssign": Kind.ANNOTATED_ASSIGNMENT,
    "For": Kind.FOR_LOOP,
    "AsyncFor": Kind.ASYNC_FOR_LOOP,
    "While": Kind.WHILE_LOOP,
    "If": Kind.IF,
    "With": Kind.WITH,
    "AsyncWith": Kind.ASYNC_WITH,
    "Match": Kind.MATCH,
    "Raise": Kind.RAISE,
    "Try": Kind.TRY,
    "TryStar": Kind.TRY_STAR,
    "Assert": Kind.ASSERT,
    "Import": Kind.IMPORT,
    "ImportFrom": Kind.IMPORT_FROM,
    "Global": Kind.GLOBAL,
    "Nonlocal": Kind.NONLOCAL,
    "Expr": Kind.EXPRESSION_STATEMENT,
    "Pass": Kind.PASS,
    "Break": Kind.BREAK,
    "Continue": Kind.CONTINUE,
    "BoolOp": Kind.BOOL_OP,
    "NamedExpr": Kind.NAMED_EXPR,
    "BinOp": Kind.BINARY_OP,
    "UnaryOp": Kind.UNARY_OP,
    "Lambda": Kind.LAMBDA,
    "IfExp": Kind.CONDITIONAL,
    "Dict": Kind.DICT,
    "Set": Kind.SET,
    "ListComp": Kind.LIST_COMPREHENSION,
    "SetComp": Kind.SET_COMPREHENSION,
    "DictComp": Kind.DICT_COMPREHENSION,
    "GeneratorExp": Kind.GENERATOR_EXPRESSION,
    "Await": Kind.AWAIT,
    "Yield": Kind.YIELD,
    "YieldFrom": Kind.YIELD_FROM,
    "Compare": Kind.COMPARE,
    "Call": Kind.CALL,
    "FormattedValue": Kind.FORMATTED_VALUE,
    "JoinedStr": Kind.FORMATTED_STRING,
    "Constant": Kind.LITERAL,
    "Attribute": Kind.ATTRIBUTE,
    "Subscript": Kind.SUBSCRIPT,
    "Starred": Kind.STARRED,
    "Name": Kind.NAME,
    "List": Kind.LIST,
    "Tuple": Kind.TUPLE,
    "Slice": Kind.SLICE,
    "ExceptHandler": Kind.EXCEPT_HANDLER,
    "arguments": Kind.ARGUMENTS,
    "arg": Kind.ARG,
    "keyword": Kind.KEYWORD,
    "alias": Kind.ALIAS,
    "withitem": Kind.WITH_ITEM,
    "comprehension": Kind.COMPREHENSION,
    "match_case": Kind.MATCH_CASE,
}

# AST classes stored as attribute names instead of child nodes
_OPERATOR_TYPES = (ast.operator, ast.unaryop, ast.boolop, ast.cmpop)

_SKIPPED_FIELDS = frozenset({"type_ignores", "type_comment"})

# Kinds whose verbatim source is kept as a "text" attribute
_TEXT_KINDS = frozenset({Kind.LITERAL, Kind.FORMATTED_STRING})


class _LineIndex:
    """Maps ast (line, utf-8 byte column) positions to character offsets."""

    def __init__(self, source: str):
        self.source = source
        self.lines = source.split("\n")
        self.starts: List[int] = []
        offset = 0
        for line in self.lines:
            self.starts.append(offset)
            offset += len(line) + 1
        self._encoded: Dict[int, bytes] = {}

    def char_col(self, line: int, byte_col: int) -> int:
        if line - 1 >= len(self.lines) or line < 1:
            return byte_col
        text = self.lines[line - 1]
        if text.isascii():
            return byte_col
        encoded = self._encoded.get(line)
        if encoded is None:
            encoded = text.encode("utf-8")
            self._encoded[line] = encoded
        return len(encoded[:byte_col].decode("utf-8", errors="replace"))

    def offset(self, line: int, char_col: int) -> int:
        if line - 1 >= len(self.starts):
            return len(self.source)
        return min(self.starts[line - 1] + char_col, len(self.source))

    def line_text(self, line: int) -> str:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1]
        return ""

    def end_position(self) -> Tuple[int, int]:
        """(line, col) just past the last character."""
        return len(self.lines), len(self.lines[-1])


class PythonParser:
    """Parser adapter backed by the stdlib ast module.

    Implements the Parser protocol.

    Example:
        >>> parser = PythonParser()
        >>> tree = parser.parse("import os\\n")
        >>> tree.root.children[0].kind
        <Kind.IMPORT: 'import'>
    """

    def parse(self, source: str) -> SyntaxTree:
        """Parse Python source into a generation-0 SyntaxTree.

        Raises:
            InvalidFragment: If the source does not parse (category "module")
        """
        module = self._ast_parse(source, "exec", "module")
        root = _Converter(source).convert_module(module)
        logger.debug(f"Parsed module with {len(root.children)} top-level statements")
        return SyntaxTree(root, source)

    def parse_fragment(self, text: str, category: FragmentCategory) -> Tuple[Node, ...]:
        """Parse a standalone fragment as statements or as one expression.

        Statement fragments are dedented first, so text sliced out of an
        indented block is accepted. Comment-only fragments parse to an empty
        statement sequence.

        Raises:
            InvalidFragment: If the text does not parse as the category
        """
        category = FragmentCategory(category)
        if category == FragmentCategory.STATEMENT:
            source = normalize_statement_fragment(text)
            module = self._ast_parse(source, "exec", category.value, fragment=text)
            root = _Converter(source).convert_module(module)
            return root.children

        source = text.strip()
        if not source:
            raise InvalidFragment(
                "Empty text is not an expression",
                fragment=text,
                category=category.value,
                diagnostic="empty expression",
            )
        expression = self._ast_parse(source, "eval", category.value, fragment=text)
        converter = _Converter(source)
        return (converter.convert(expression.body, None),)

    @staticmethod
    def _ast_parse(source: str, mode: str, category: str, fragment: Optional[str] = None) -> Any:
        try:
            return ast.parse(source, mode=mode)
        except (SyntaxError, ValueError) as e:
            diagnostic = _format_diagnostic(e)
            raise InvalidFragment(
                f"Text does not parse as a {category}: {diagnostic}",
                fragment=source if fragment is None else fragment,
                category=category,
                diagnostic=diagnostic,
            ) from e

    def __repr__(self) -> str:
        return "PythonParser()"


def normalize_statement_fragment(text: str) -> str:
    """Dedent a statement fragment and drop surrounding blank lines."""
    lines = textwrap.dedent(text).split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(line.rstrip() for line in lines)


def _format_diagnostic(error: Exception) -> str:
    if isinstance(error, SyntaxError):
        location = f"line {error.lineno}" if error.lineno else "unknown line"
        if error.offset:
            location += f", column {error.offset}"
        return f"{error.msg} ({location})"
    return str(error)


class _Converter:
    """One-shot converter from an ast tree to Nodes."""

    def __init__(self, source: str):
        self.index = _LineIndex(source)

    def convert_module(self, module: ast.Module) -> Node:
        children = tuple(self.convert(stmt, "body") for stmt in module.body)
        end_line, end_col = self.index.end_position()
        span = Span(1, 0, end_line, end_col, 0, len(self.index.source))
        return Node(kind=Kind.MODULE, field=None, attrs=(("node_type", "Module"),), children=children, span=span)

    def convert(self, node: ast.AST, field_name: Optional[str]) -> Node:
        class_name = type(node).__name__
        kind = _KIND_BY_CLASS.get(class_name, Kind.OTHER)
        attrs: List[Tuple[str, Any]] = [("node_type", class_name)]
        children: List[Node] = []

        for name, value in ast.iter_fields(node):
            if name in _SKIPPED_FIELDS:
                continue
            if isinstance(value, ast.AST):
                if isinstance(value, _OPERATOR_TYPES):
                    attrs.append((name, type(value).__name__))
                elif isinstance(value, ast.expr_context):
                    attrs.append(("ctx", type(value).__name__))
                else:
                    children.append(self.convert(value, name))
            elif isinstance(value, list):
                if value and all(isinstance(item, _OPERATOR_TYPES) for item in value):
                    attrs.append((name, tuple(type(item).__name__ for item in value)))
                elif all(item is None or isinstance(item, ast.AST) for item in value):
                    for item in value:
                        if item is None:
                            children.append(Node(kind=Kind.EMPTY, field=name))
                        else:
                            children.append(self.convert(item, name))
                else:
                    attrs.append((name, tuple(value)))
            else:
                attrs.append((name, value))

        span = self.span_of(node)
        if kind in _TEXT_KINDS and span is not None:
            attrs.append(("text", self.index.source[span.start:span.end]))

        return Node(kind=kind, field=field_name, attrs=tuple(attrs), children=tuple(children), span=span)

    def span_of(self, node: ast.AST) -> Optional[Span]:
        lineno = getattr(node, "lineno", None)
        end_lineno = getattr(node, "end_lineno", None)
        col = getattr(node, "col_offset", None)
        end_col = getattr(node, "end_col_offset", None)
        if lineno is None or end_lineno is None or col is None or end_col is None:
            return None

        start_line = lineno
        start_col = self.index.char_col(lineno, col)

        # Decorated definitions start at their first decorator
        decorators = getattr(node, "decorator_list", None)
        if decorators:
            first = decorators[0]
            start_line = first.lineno
            decorator_col = self.index.char_col(first.lineno, first.col_offset)
            at_sign = self.index.line_text(first.lineno).rfind("@", 0, decorator_col)
            start_col = at_sign if at_sign >= 0 else decorator_col

        stop_col = self.index.char_col(end_lineno, end_col)
        return Span(
            start_line=start_line,
            start_col=start_col,
            end_line=end_lineno,
            end_col=stop_col,
            start=self.index.offset(start_line, start_col),
            end=self.index.offset(end_lineno, stop_col),
        )
