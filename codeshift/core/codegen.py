"""Code generator: renders nodes back into Python source.

Generation is driven by two dispatch tables keyed by Kind, one for
statements and one for expressions. Kinds missing from both tables raise
UnsupportedConstruct before any text is returned, so output is never partial.

The fragment helpers (``create_import``, ``create_assignment``, ...) build
small node trees whose leaves are verbatim FRAGMENT nodes and render them
through the same tables, so every construct added here becomes available to
both whole-tree rendering and fragment synthesis.

Example:
    >>> gen = CodeGenerator()
    >>> gen.create_import("typing", ["List", "Dict"])
    'from typing import List, Dict'
    >>> gen.create_assignment("x", "42")
    'x = 42'
"""

import io
import logging
import re
import textwrap
import tokenize
from typing import Callable, Dict, List, Optional, Sequence, Union

from codeshift.core.config import get_int_config_value
from codeshift.core.errors import UnsupportedConstruct
from codeshift.core.schema.parser import FragmentCategory, Parser
from codeshift.core.schema.ref import NodeRef
from codeshift.core.schema.tree import Kind, Node, SyntaxTree

logger = logging.getLogger(__name__)

DEFAULT_INDENT_WIDTH = 4

BINARY_OPERATORS = {
    "Add": "+", "Sub": "-", "Mult": "*", "MatMult": "@", "Div": "/",
    "Mod": "%", "Pow": "**", "LShift": "<<", "RShift": ">>", "BitOr": "|",
    "BitXor": "^", "BitAnd": "&", "FloorDiv": "//",
}
UNARY_OPERATORS = {"Invert": "~", "Not": "not ", "UAdd": "+", "USub": "-"}
BOOL_OPERATORS = {"And": "and", "Or": "or"}
COMPARE_OPERATORS = {
    "Eq": "==", "NotEq": "!=", "Lt": "<", "LtE": "<=", "Gt": ">", "GtE": ">=",
    "Is": "is", "IsNot": "is not", "In": "in", "NotIn": "not in",
}

# Binding strength, loosest first
PREC_TUPLE = 0
PREC_NAMED = 1
PREC_LAMBDA = 2
PREC_CONDITIONAL = 3
PREC_OR = 4
PREC_AND = 5
PREC_NOT = 6
PREC_COMPARE = 7
PREC_BIT_OR = 8
PREC_BIT_XOR = 9
PREC_BIT_AND = 10
PREC_SHIFT = 11
PREC_ARITH = 12
PREC_TERM = 13
PREC_UNARY = 14
PREC_POWER = 15
PREC_AWAIT = 16
PREC_ATOM = 17

_BINARY_PRECEDENCE = {
    "BitOr": PREC_BIT_OR, "BitXor": PREC_BIT_XOR, "BitAnd": PREC_BIT_AND,
    "LShift": PREC_SHIFT, "RShift": PREC_SHIFT, "Add": PREC_ARITH,
    "Sub": PREC_ARITH, "Mult": PREC_TERM, "MatMult": PREC_TERM,
    "Div": PREC_TERM, "Mod": PREC_TERM, "FloorDiv": PREC_TERM, "Pow": PREC_POWER,
}

_KIND_PRECEDENCE = {
    Kind.TUPLE: PREC_TUPLE,
    Kind.NAMED_EXPR: PREC_NAMED,
    Kind.LAMBDA: PREC_LAMBDA,
    Kind.CONDITIONAL: PREC_CONDITIONAL,
    Kind.COMPARE: PREC_COMPARE,
    Kind.AWAIT: PREC_AWAIT,
    Kind.STARRED: PREC_BIT_OR,
    Kind.YIELD: PREC_TUPLE,
    Kind.YIELD_FROM: PREC_TUPLE,
}

_ATOM_TEXT = re.compile(r"[\w.]+(\([^()]*\)|\[[^\[\]]*\])?|'[^']*'|\"[^\"]*\"|\d[\w.]*")

# Non-statement, non-expression kinds the generator can render on their own
_COMPONENT_KINDS = frozenset({
    Kind.ALIAS, Kind.KEYWORD, Kind.ARG, Kind.ARGUMENTS, Kind.WITH_ITEM, Kind.EXCEPT_HANDLER,
})


class CodeGenerator:
    """Kind-dispatched source generator with fragment helpers.

    Attributes:
        parser: Optional parser used to validate caller-supplied code strings
        indent_width: Spaces per indentation level (config key
            ``generator.indent_width``, default 4)
    """

    def __init__(self, parser: Optional[Parser] = None, indent_width: Optional[int] = None):
        self.parser = parser
        if indent_width is None:
            indent_width = get_int_config_value(["generator", "indent_width"], DEFAULT_INDENT_WIDTH)
        self.indent_width = indent_width
        self._unit = " " * indent_width

        self._statements: Dict[Kind, Callable[[Node, int], List[str]]] = {
            Kind.IMPORT: self._simple(self._import),
            Kind.IMPORT_FROM: self._simple(self._import_from),
            Kind.ASSIGNMENT: self._simple(self._assignment),
            Kind.AUGMENTED_ASSIGNMENT: self._simple(self._augmented_assignment),
            Kind.ANNOTATED_ASSIGNMENT: self._simple(self._annotated_assignment),
            Kind.EXPRESSION_STATEMENT: self._simple(lambda n: self._expr(n.child("value"))),
            Kind.RETURN: self._simple(self._return),
            Kind.PASS: self._simple(lambda n: "pass"),
            Kind.BREAK: self._simple(lambda n: "break"),
            Kind.CONTINUE: self._simple(lambda n: "continue"),
            Kind.RAISE: self._simple(self._raise),
            Kind.ASSERT: self._simple(self._assert),
            Kind.DELETE: self._simple(lambda n: "del " + self._join(n.children_in("targets"))),
            Kind.GLOBAL: self._simple(lambda n: "global " + ", ".join(n.attr("names", ()))),
            Kind.NONLOCAL: self._simple(lambda n: "nonlocal " + ", ".join(n.attr("names", ()))),
            Kind.IF: self._if,
            Kind.FOR_LOOP: self._for,
            Kind.WHILE_LOOP: self._while,
            Kind.WITH: self._with,
            Kind.TRY: self._try,
            Kind.FUNCTION_DEF: self._function_def,
            Kind.ASYNC_FUNCTION_DEF: self._function_def,
            Kind.CLASS_DEF: self._class_def,
            Kind.FRAGMENT: self._statement_fragment,
        }

        self._expressions: Dict[Kind, Callable[[Node], str]] = {
            Kind.NAME: lambda n: n.attr("id"),
            Kind.LITERAL: self._literal,
            Kind.FORMATTED_STRING: self._formatted_string,
            Kind.ATTRIBUTE: self._attribute,
            Kind.SUBSCRIPT: self._subscript,
            Kind.SLICE: self._slice,
            Kind.CALL: self._call,
            Kind.STARRED: lambda n: "*" + self._expr(n.child("value"), PREC_BIT_OR),
            Kind.BINARY_OP: self._binary,
            Kind.UNARY_OP: self._unary,
            Kind.BOOL_OP: self._bool_op,
            Kind.COMPARE: self._compare,
            Kind.CONDITIONAL: self._conditional,
            Kind.AWAIT: lambda n: "await " + self._expr(n.child("value"), PREC_ATOM),
            Kind.LIST: lambda n: "[" + self._join(n.children_in("elts"), PREC_NAMED) + "]",
            Kind.SET: lambda n: "{" + self._join(n.children_in("elts"), PREC_NAMED) + "}",
            Kind.TUPLE: self._tuple,
            Kind.DICT: self._dict,
            Kind.FRAGMENT: self._expression_fragment,
        }

        self._components: Dict[Kind, Callable[[Node], str]] = {
            Kind.ALIAS: self._alias,
            Kind.KEYWORD: self._keyword,
            Kind.ARG: self._arg,
            Kind.ARGUMENTS: self._arguments,
            Kind.WITH_ITEM: self._with_item,
            Kind.EXCEPT_HANDLER: lambda n: "\n".join(self._handler(n, 0)),
        }

    @property
    def supported_kinds(self) -> frozenset:
        """Every Kind this generator renders."""
        return frozenset(self._statements) | frozenset(self._expressions) | {Kind.MODULE} | _COMPONENT_KINDS

    def supports(self, kind: Union[Kind, str]) -> bool:
        return Kind(kind) in self.supported_kinds

    def generate(self, target: Union[SyntaxTree, Node, NodeRef], tree: Optional[SyntaxTree] = None) -> str:
        """Render a tree, a node, or a referenced node as source text.

        Args:
            target: SyntaxTree, Node, or NodeRef (which needs ``tree``)
            tree: Generation to resolve a NodeRef against

        Returns:
            Source text. Modules end with a newline; single statements and
            expressions do not.

        Raises:
            UnsupportedConstruct: If any node in the subtree has no renderer
            StaleReference: If a NodeRef does not belong to ``tree``
        """
        if isinstance(target, SyntaxTree):
            node = target.root
        elif isinstance(target, NodeRef):
            if tree is None:
                raise ValueError("Generating from a NodeRef requires the tree it belongs to")
            node = tree.resolve(target)
        elif isinstance(target, Node):
            node = target
        else:
            raise TypeError(f"Cannot generate code from {type(target).__name__}")
        logger.debug(f"Generating source for {node.kind} node")
        return self._render(node)

    def _render(self, node: Node) -> str:
        if node.kind == Kind.MODULE:
            lines: List[str] = []
            for child in node.children:
                lines.extend(self._statement(child, 0))
            return "\n".join(lines) + "\n" if lines else ""
        if node.kind == Kind.FRAGMENT:
            return self._expression_fragment(node)
        if node.is_statement:
            return "\n".join(self._statement(node, 0))
        if node.is_expression:
            return self._expr(node)
        handler = self._components.get(node.kind)
        if handler is None:
            raise UnsupportedConstruct(node.kind)
        return handler(node)

    def create_import(self, module: str, items: Optional[Sequence[str]] = None, alias: Optional[str] = None) -> str:
        """Create ``import module [as alias]`` or ``from module import items``.

        With a single item, ``alias`` renames that item.

        Raises:
            ValueError: If an alias is combined with several items
        """
        if not items:
            names = (_alias_node(module, alias),)
            return self._checked(self._render(Node(Kind.IMPORT, children=names)))
        if alias and len(items) > 1:
            raise ValueError("An alias can only be applied to a single imported item")
        names = tuple(_alias_node(item, alias if len(items) == 1 else None) for item in items)
        stripped = module.lstrip(".")
        attrs = (("module", stripped or None), ("level", len(module) - len(stripped)))
        return self._checked(self._render(Node(Kind.IMPORT_FROM, attrs=attrs, children=names)))

    def create_assignment(self, target: str, value: str) -> str:
        """Create ``target = value``."""
        node = Node(Kind.ASSIGNMENT, children=(
            self._fragment(target, "targets"),
            self._fragment(value, "value"),
        ))
        return self._render(node)

    def create_augmented_assignment(self, target: str, op: str, value: str) -> str:
        """Create ``target op= value``; ``op`` is a symbol ("+") or a name ("Add")."""
        op_name = _operator_name(op)
        node = Node(Kind.AUGMENTED_ASSIGNMENT, attrs=(("op", op_name),), children=(
            self._fragment(target, "target"),
            self._fragment(value, "value"),
        ))
        return self._render(node)

    def create_function_call(
        self,
        func: str,
        args: Optional[Sequence[str]] = None,
        keywords: Optional[Dict[str, str]] = None,
    ) -> str:
        """Create ``func(args..., key=value...)``."""
        children = [self._fragment(func, "func")]
        children.extend(self._fragment(arg, "args") for arg in args or ())
        for name, value in (keywords or {}).items():
            children.append(Node(Kind.KEYWORD, field="keywords", attrs=(("arg", name),),
                                 children=(self._fragment(value, "value"),)))
        return self._render(Node(Kind.CALL, children=tuple(children)))

    def create_try_except(
        self,
        try_body: str,
        exception_type: Optional[str] = None,
        except_body: str = "pass",
        name: Optional[str] = None,
    ) -> str:
        """Create a try statement with one handler.

        Example:
            >>> CodeGenerator().create_try_except("x = f()", "ValueError", "x = None")
            'try:\\n    x = f()\\nexcept ValueError:\\n    x = None'
        """
        handler_children = []
        if exception_type:
            handler_children.append(self._fragment(exception_type, "type"))
        handler_children.append(self._fragment(except_body, "body", statement=True))
        handler = Node(Kind.EXCEPT_HANDLER, field="handlers", attrs=(("name", name),),
                       children=tuple(handler_children))
        node = Node(Kind.TRY, children=(self._fragment(try_body, "body", statement=True), handler))
        return self._render(node)

    def _fragment(self, text: str, field: str, statement: bool = False) -> Node:
        if self.parser is not None:
            category = FragmentCategory.STATEMENT if statement else FragmentCategory.EXPRESSION
            self.parser.parse_fragment(text, category)
        return Node(Kind.FRAGMENT, field=field, attrs=(("text", text),))

    def _checked(self, text: str) -> str:
        if self.parser is not None:
            self.parser.parse_fragment(text, FragmentCategory.STATEMENT)
        return text

    def _statement(self, node: Node, level: int) -> List[str]:
        handler = self._statements.get(node.kind)
        if handler is None:
            raise UnsupportedConstruct(node.kind)
        return handler(node, level)

    def _simple(self, render: Callable[[Node], str]) -> Callable[[Node, int], List[str]]:
        def handler(node: Node, level: int) -> List[str]:
            return [self._indent(level) + render(node)]
        return handler

    def _indent(self, level: int) -> str:
        return self._unit * level

    def _block(self, statements: Sequence[Node], level: int) -> List[str]:
        if not statements:
            return [self._indent(level) + "pass"]
        lines: List[str] = []
        for statement in statements:
            lines.extend(self._statement(statement, level))
        return lines

    def _statement_fragment(self, node: Node, level: int) -> List[str]:
        text = textwrap.dedent(node.attr("text", "")).strip("\n")
        if not text.strip():
            return [self._indent(level) + "pass"]
        return [self._indent(level) + line if line.strip() else "" for line in text.split("\n")]

    def _import(self, node: Node) -> str:
        return "import " + ", ".join(self._alias(alias) for alias in node.children_in("names"))

    def _import_from(self, node: Node) -> str:
        module = "." * (node.attr("level") or 0) + (node.attr("module") or "")
        names = ", ".join(self._alias(alias) for alias in node.children_in("names"))
        return f"from {module} import {names}"

    def _alias(self, node: Node) -> str:
        asname = node.attr("asname")
        return f"{node.attr('name')} as {asname}" if asname else node.attr("name")

    def _assignment(self, node: Node) -> str:
        parts = [self._expr(target) for target in node.children_in("targets")]
        parts.append(self._expr(node.child("value")))
        return " = ".join(parts)

    def _augmented_assignment(self, node: Node) -> str:
        op = BINARY_OPERATORS[node.attr("op")]
        return f"{self._expr(node.child('target'))} {op}= {self._expr(node.child('value'))}"

    def _annotated_assignment(self, node: Node) -> str:
        target = self._expr(node.child("target"), PREC_ATOM if not node.attr("simple", 1) else PREC_TUPLE)
        text = f"{target}: {self._expr(node.child('annotation'), PREC_NAMED)}"
        value = node.child("value")
        if value is not None:
            text += f" = {self._expr(value)}"
        return text

    def _return(self, node: Node) -> str:
        value = node.child("value")
        return "return" if value is None else f"return {self._expr(value)}"

    def _raise(self, node: Node) -> str:
        exc = node.child("exc")
        if exc is None:
            return "raise"
        text = f"raise {self._expr(exc, PREC_NAMED)}"
        cause = node.child("cause")
        if cause is not None:
            text += f" from {self._expr(cause, PREC_NAMED)}"
        return text

    def _assert(self, node: Node) -> str:
        text = f"assert {self._expr(node.child('test'), PREC_NAMED)}"
        msg = node.child("msg")
        if msg is not None:
            text += f", {self._expr(msg, PREC_NAMED)}"
        return text

    def _if(self, node: Node, level: int, keyword: str = "if") -> List[str]:
        indent = self._indent(level)
        lines = [f"{indent}{keyword} {self._expr(node.child('test'), PREC_NAMED)}:"]
        lines.extend(self._block(node.children_in("body"), level + 1))
        orelse = node.children_in("orelse")
        if len(orelse) == 1 and orelse[0].kind == Kind.IF:
            lines.extend(self._if(orelse[0], level, "elif"))
        elif orelse:
            lines.append(f"{indent}else:")
            lines.extend(self._block(orelse, level + 1))
        return lines

    def _for(self, node: Node, level: int) -> List[str]:
        indent = self._indent(level)
        header = f"for {self._expr(node.child('target'))} in {self._expr(node.child('iter'))}:"
        return [indent + header] + self._block(node.children_in("body"), level + 1) + self._else(node, level)

    def _while(self, node: Node, level: int) -> List[str]:
        header = f"{self._indent(level)}while {self._expr(node.child('test'), PREC_NAMED)}:"
        return [header] + self._block(node.children_in("body"), level + 1) + self._else(node, level)

    def _else(self, node: Node, level: int) -> List[str]:
        orelse = node.children_in("orelse")
        if not orelse:
            return []
        return [f"{self._indent(level)}else:"] + self._block(orelse, level + 1)

    def _with(self, node: Node, level: int) -> List[str]:
        items = ", ".join(self._with_item(item) for item in node.children_in("items"))
        return [f"{self._indent(level)}with {items}:"] + self._block(node.children_in("body"), level + 1)

    def _with_item(self, node: Node) -> str:
        text = self._expr(node.child("context_expr"), PREC_CONDITIONAL)
        optional = node.child("optional_vars")
        if optional is not None:
            text += f" as {self._expr(optional, PREC_ATOM)}"
        return text

    def _try(self, node: Node, level: int) -> List[str]:
        indent = self._indent(level)
        lines = [f"{indent}try:"]
        lines.extend(self._block(node.children_in("body"), level + 1))
        for handler in node.children_in("handlers"):
            lines.extend(self._handler(handler, level))
        orelse = node.children_in("orelse")
        if orelse:
            lines.append(f"{indent}else:")
            lines.extend(self._block(orelse, level + 1))
        finalbody = node.children_in("finalbody")
        if finalbody:
            lines.append(f"{indent}finally:")
            lines.extend(self._block(finalbody, level + 1))
        return lines

    def _handler(self, node: Node, level: int) -> List[str]:
        header = "except"
        type_node = node.child("type")
        if type_node is not None:
            header += " " + self._expr(type_node, PREC_NAMED)
            if node.attr("name"):
                header += f" as {node.attr('name')}"
        return [f"{self._indent(level)}{header}:"] + self._block(node.children_in("body"), level + 1)

    def _function_def(self, node: Node, level: int) -> List[str]:
        self._reject_type_params(node)
        indent = self._indent(level)
        lines = self._decorators(node, level)
        prefix = "async def" if node.kind == Kind.ASYNC_FUNCTION_DEF else "def"
        arguments = node.child("args")
        header = f"{prefix} {node.attr('name')}({self._arguments(arguments) if arguments else ''})"
        returns = node.child("returns")
        if returns is not None:
            header += f" -> {self._expr(returns, PREC_NAMED)}"
        lines.append(f"{indent}{header}:")
        lines.extend(self._block(node.children_in("body"), level + 1))
        return lines

    def _class_def(self, node: Node, level: int) -> List[str]:
        self._reject_type_params(node)
        lines = self._decorators(node, level)
        bases = [self._expr(base, PREC_NAMED) for base in node.children_in("bases")]
        bases.extend(self._keyword(keyword) for keyword in node.children_in("keywords"))
        header = f"class {node.attr('name')}"
        if bases:
            header += "(" + ", ".join(bases) + ")"
        lines.append(f"{self._indent(level)}{header}:")
        lines.extend(self._block(node.children_in("body"), level + 1))
        return lines

    def _decorators(self, node: Node, level: int) -> List[str]:
        return [
            f"{self._indent(level)}@{self._expr(decorator, PREC_NAMED)}"
            for decorator in node.children_in("decorator_list")
        ]

    @staticmethod
    def _reject_type_params(node: Node) -> None:
        for param in node.children_in("type_params"):
            raise UnsupportedConstruct(param.kind, f"Code generation does not support type parameters on '{node.kind}'")

    def _arguments(self, node: Node) -> str:
        positional = list(node.children_in("posonlyargs")) + list(node.children_in("args"))
        posonly_count = len(node.children_in("posonlyargs"))
        defaults = node.children_in("defaults")
        first_default = len(positional) - len(defaults)

        parts: List[str] = []
        for index, arg in enumerate(positional):
            default = defaults[index - first_default] if index >= first_default else None
            parts.append(self._arg_with_default(arg, default))
            if posonly_count and index == posonly_count - 1:
                parts.append("/")

        vararg = node.child("vararg")
        kwonly = node.children_in("kwonlyargs")
        if vararg is not None:
            parts.append("*" + self._arg(vararg))
        elif kwonly:
            parts.append("*")
        kw_defaults = node.children_in("kw_defaults")
        for index, arg in enumerate(kwonly):
            default = kw_defaults[index] if index < len(kw_defaults) else None
            if default is not None and default.kind == Kind.EMPTY:
                default = None
            parts.append(self._arg_with_default(arg, default))
        kwarg = node.child("kwarg")
        if kwarg is not None:
            parts.append("**" + self._arg(kwarg))
        return ", ".join(parts)

    def _arg_with_default(self, arg: Node, default: Optional[Node]) -> str:
        text = self._arg(arg)
        if default is None:
            return text
        separator = " = " if arg.child("annotation") is not None else "="
        return text + separator + self._expr(default, PREC_NAMED)

    def _arg(self, node: Node) -> str:
        annotation = node.child("annotation")
        if annotation is None:
            return node.attr("arg")
        return f"{node.attr('arg')}: {self._expr(annotation, PREC_NAMED)}"

    def _expr(self, node: Optional[Node], min_prec: int = PREC_TUPLE) -> str:
        if node is None:
            raise UnsupportedConstruct(Kind.EMPTY, "Code generation requires a node where none is present")
        handler = self._expressions.get(node.kind)
        if handler is None:
            raise UnsupportedConstruct(node.kind)
        text = handler(node)
        if node.kind == Kind.FRAGMENT:
            return self._wrap_fragment(text, min_prec)
        if node.kind == Kind.TUPLE:
            # "()" and "(x,)" carry their own parentheses
            if min_prec > PREC_TUPLE and not _is_parenthesized(text):
                return f"({text})"
            return text
        if self._precedence(node) < min_prec:
            return f"({text})"
        return text

    def _precedence(self, node: Node) -> int:
        if node.kind == Kind.BINARY_OP:
            return _BINARY_PRECEDENCE[node.attr("op")]
        if node.kind == Kind.BOOL_OP:
            return PREC_AND if node.attr("op") == "And" else PREC_OR
        if node.kind == Kind.UNARY_OP:
            return PREC_NOT if node.attr("op") == "Not" else PREC_UNARY
        return _KIND_PRECEDENCE.get(node.kind, PREC_ATOM)

    def _join(self, nodes: Sequence[Node], min_prec: int = PREC_NAMED) -> str:
        return ", ".join(self._expr(node, min_prec) for node in nodes)

    def _literal(self, node: Node) -> str:
        text = node.attr("text")
        if text is not None and ("\n" not in text or _is_triple_quoted(text)):
            return text
        return repr(node.attr("value"))

    def _formatted_string(self, node: Node) -> str:
        text = node.attr("text")
        if text is None or ("\n" in text and not _is_triple_quoted(text)):
            raise UnsupportedConstruct(node.kind, "Formatted strings can only be regenerated from their source text")
        return text

    def _attribute(self, node: Node) -> str:
        value = node.child("value")
        base = self._expr(value, PREC_ATOM)
        if value is not None and value.kind == Kind.LITERAL and isinstance(value.attr("value"), int):
            base = f"({base})"
        return f"{base}.{node.attr('attr')}"

    def _subscript(self, node: Node) -> str:
        index = node.child("slice")
        if index is not None and index.kind == Kind.TUPLE and index.children_in("elts"):
            elements = index.children_in("elts")
            inner = ", ".join(self._subscript_item(e) for e in elements)
            if len(elements) == 1:
                inner += ","
        else:
            inner = self._subscript_item(index)
        return f"{self._expr(node.child('value'), PREC_ATOM)}[{inner}]"

    def _subscript_item(self, node: Optional[Node]) -> str:
        if node is not None and node.kind == Kind.SLICE:
            return self._slice(node)
        return self._expr(node, PREC_NAMED)

    def _slice(self, node: Node) -> str:
        lower, upper, step = (node.child(name) for name in ("lower", "upper", "step"))
        text = (self._expr(lower, PREC_NAMED) if lower else "") + ":"
        text += self._expr(upper, PREC_NAMED) if upper else ""
        if step is not None:
            text += ":" + self._expr(step, PREC_NAMED)
        return text

    def _call(self, node: Node) -> str:
        arguments = [self._expr(arg, PREC_NAMED) for arg in node.children_in("args")]
        arguments.extend(self._keyword(keyword) for keyword in node.children_in("keywords"))
        return f"{self._expr(node.child('func'), PREC_ATOM)}({', '.join(arguments)})"

    def _keyword(self, node: Node) -> str:
        value = self._expr(node.child("value"), PREC_NAMED)
        name = node.attr("arg")
        return f"**{value}" if name is None else f"{name}={value}"

    def _binary(self, node: Node) -> str:
        op = node.attr("op")
        prec = _BINARY_PRECEDENCE[op]
        # ** is right-associative, everything else left-associative
        left_prec, right_prec = (prec + 1, prec) if op == "Pow" else (prec, prec + 1)
        left = self._expr(node.child("left"), left_prec)
        right = self._expr(node.child("right"), right_prec)
        return f"{left} {BINARY_OPERATORS[op]} {right}"

    def _unary(self, node: Node) -> str:
        op = node.attr("op")
        operand_prec = PREC_NOT if op == "Not" else PREC_UNARY
        return UNARY_OPERATORS[op] + self._expr(node.child("operand"), operand_prec)

    def _bool_op(self, node: Node) -> str:
        op = node.attr("op")
        prec = PREC_AND if op == "And" else PREC_OR
        return f" {BOOL_OPERATORS[op]} ".join(self._expr(value, prec + 1) for value in node.children_in("values"))

    def _compare(self, node: Node) -> str:
        parts = [self._expr(node.child("left"), PREC_COMPARE + 1)]
        for op, comparator in zip(node.attr("ops", ()), node.children_in("comparators")):
            parts.append(COMPARE_OPERATORS[op])
            parts.append(self._expr(comparator, PREC_COMPARE + 1))
        return " ".join(parts)

    def _conditional(self, node: Node) -> str:
        body = self._expr(node.child("body"), PREC_OR)
        test = self._expr(node.child("test"), PREC_OR)
        orelse = self._expr(node.child("orelse"), PREC_CONDITIONAL)
        return f"{body} if {test} else {orelse}"

    def _tuple(self, node: Node) -> str:
        elements = node.children_in("elts")
        if not elements:
            return "()"
        if len(elements) == 1:
            return f"({self._expr(elements[0], PREC_NAMED)},)"
        return self._join(elements)

    def _dict(self, node: Node) -> str:
        entries = []
        for key, value in zip(node.children_in("keys"), node.children_in("values")):
            if key.kind == Kind.EMPTY:
                entries.append("**" + self._expr(value, PREC_BIT_OR))
            else:
                entries.append(f"{self._expr(key, PREC_NAMED)}: {self._expr(value, PREC_NAMED)}")
        return "{" + ", ".join(entries) + "}"

    def _expression_fragment(self, node: Node) -> str:
        return node.attr("text", "").strip()

    def _wrap_fragment(self, text: str, min_prec: int) -> str:
        if min_prec <= PREC_TUPLE or _is_parenthesized(text):
            return text
        if "\n" not in text and _ATOM_TEXT.fullmatch(text):
            return text
        if self.parser is not None and "\n" not in text:
            parsed = self.parser.parse_fragment(text, FragmentCategory.EXPRESSION)[0]
            if parsed.kind != Kind.TUPLE and self._precedence(parsed) >= min_prec:
                return text
        return f"({text})"


def _alias_node(name: str, asname: Optional[str]) -> Node:
    return Node(Kind.ALIAS, field="names", attrs=(("name", name), ("asname", asname)))


def _operator_name(op: str) -> str:
    if op in BINARY_OPERATORS:
        return op
    symbol = op[:-1] if op.endswith("=") else op
    for name, text in BINARY_OPERATORS.items():
        if text == symbol:
            return name
    raise ValueError(f"Unknown operator: {op}")


def _is_triple_quoted(text: str) -> bool:
    stripped = text.lstrip("rRbBuUfF")
    return stripped.startswith('"""') or stripped.startswith("'''")


def _is_parenthesized(text: str) -> bool:
    """Whether the parenthesis opening ``text`` closes at its last character."""
    if not (text.startswith("(") and text.endswith(")")):
        return False
    try:
        brackets = [
            token.string
            for token in tokenize.generate_tokens(io.StringIO(text).readline)
            if token.type == tokenize.OP and token.string in "()[]{}"
        ]
    except (tokenize.TokenError, SyntaxError):
        return False
    depth = 0
    for position, bracket in enumerate(brackets):
        depth += 1 if bracket in "([{" else -1
        if depth == 0:
            return position == len(brackets) - 1
    return False
