"""Query engine: side-effect-free traversal returning node references.

Every query returns a NodeSequence, a lazy and restartable view over the
tree: each iteration re-walks the tree in pre-order and yields a NodeRef for
every node the query's predicate accepts. Traversal enters nested scopes.

Name matching policies:

- imports: exact-or-dotted-prefix on the module name. ``"os"`` matches
  ``import os.path`` and ``from os import sep`` but never ``import osx``.
  For from-imports the pattern may also name an imported member
  (``"pkg_resources.get_distribution"``). Relative modules keep their
  leading dots (``".models"``).
- calls and handled exceptions: an undotted name matches a bare name or the
  trailing attribute of a chain; a dotted name must equal the whole chain.
- assignments: prefix match on the textual target, so ``"__"`` matches both
  ``__version__`` and ``__author__``.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple, Union

from codeshift.core.schema.ref import NodeRef, walk
from codeshift.core.schema.tree import Kind, Node, SyntaxTree

logger = logging.getLogger(__name__)

Predicate = Callable[[Node], bool]

ASSIGNMENT_KINDS = frozenset({Kind.ASSIGNMENT, Kind.AUGMENTED_ASSIGNMENT, Kind.ANNOTATED_ASSIGNMENT})
IMPORT_KINDS = frozenset({Kind.IMPORT, Kind.IMPORT_FROM})
TRY_KINDS = frozenset({Kind.TRY, Kind.TRY_STAR})


class NodeSequence:
    """Lazy, finite, restartable sequence of NodeRefs in pre-order.

    Attributes:
        tree: Generation the refs are produced from
        description: Short text describing the query (used in logs and repr)
    """

    def __init__(self, tree: SyntaxTree, predicate: Predicate, description: str = "nodes"):
        self.tree = tree
        self.description = description
        self._predicate = predicate
        logger.debug(f"Query {description} on generation {tree.generation}")

    def __iter__(self) -> Iterator[NodeRef]:
        generation = self.tree.generation
        lineage = self.tree.lineage
        for path, node in walk(self.tree):
            if self._predicate(node):
                yield NodeRef(path, generation, lineage)

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return self.first() is not None

    def __getitem__(self, index: int) -> NodeRef:
        if index < 0:
            return self.to_list()[index]
        for position, ref in enumerate(self):
            if position == index:
                return ref
        raise IndexError(f"{self.description} index {index} out of range")

    def first(self) -> Optional[NodeRef]:
        """First matching ref, or None when nothing matches."""
        for ref in self:
            return ref
        return None

    def to_list(self) -> List[NodeRef]:
        return list(self)

    def nodes(self) -> Iterator[Node]:
        """Iterate the matching nodes themselves."""
        for ref in self:
            yield self.tree.resolve(ref)

    def __repr__(self) -> str:
        return f"NodeSequence({self.description}, generation={self.tree.generation})"


# ============================================================================
# Name helpers
# ============================================================================


def dotted_name(node: Optional[Node]) -> Optional[str]:
    """Render a Name/Attribute chain as dotted text, or None for anything else."""
    if node is None:
        return None
    if node.kind == Kind.NAME:
        return node.attr("id")
    if node.kind == Kind.ATTRIBUTE:
        base = dotted_name(node.child("value"))
        if base is None:
            return None
        return f"{base}.{node.attr('attr')}"
    return None


def matches_name(node: Optional[Node], name: str) -> bool:
    """Apply the call/exception naming policy to a callee or handler type."""
    if node is None:
        return False
    if "." in name:
        return dotted_name(node) == name
    if node.kind == Kind.NAME:
        return node.attr("id") == name
    if node.kind == Kind.ATTRIBUTE:
        return node.attr("attr") == name
    return False


def module_matches(module: str, pattern: str) -> bool:
    """Exact-or-dotted-prefix module matching."""
    if module == pattern:
        return True
    prefix = pattern if pattern.endswith(".") else pattern + "."
    return module.startswith(prefix)


def import_module_name(node: Node) -> str:
    """Module named by a from-import, with relative-import dots."""
    return "." * (node.attr("level") or 0) + (node.attr("module") or "")


def imported_modules(node: Node) -> List[str]:
    """Dotted names an import statement brings in.

    Plain imports yield the module names; from-imports yield the module and
    the qualified name of every member.
    """
    aliases = node.children_in("names")
    if node.kind == Kind.IMPORT:
        return [alias.attr("name") for alias in aliases]
    module = import_module_name(node)
    names = [module] if module else []
    for alias in aliases:
        member = alias.attr("name")
        if not module or module.endswith("."):
            names.append(f"{module}{member}")
        else:
            names.append(f"{module}.{member}")
    return names


def bound_names(node: Node) -> List[str]:
    """Local names an import statement binds."""
    result = []
    for alias in node.children_in("names"):
        name = alias.attr("name")
        if name == "*":
            continue
        asname = alias.attr("asname")
        if asname:
            result.append(asname)
        elif node.kind == Kind.IMPORT:
            result.append(name.split(".")[0])
        else:
            result.append(name)
    return result


def handler_type_names(handler: Node) -> List[str]:
    """Textual exception names of an except handler (empty for a bare except)."""
    type_node = handler.child("type")
    if type_node is None:
        return []
    if type_node.kind == Kind.TUPLE:
        elements = type_node.children_in("elts")
    else:
        elements = (type_node,)
    return [dotted_name(element) or "" for element in elements]


def handler_matches(handler: Node, exception_type: str) -> bool:
    type_node = handler.child("type")
    if type_node is None:
        return False
    if type_node.kind == Kind.TUPLE:
        return any(matches_name(element, exception_type) for element in type_node.children_in("elts"))
    return matches_name(type_node, exception_type)


def assignment_targets(node: Node) -> Tuple[Node, ...]:
    if node.kind == Kind.ASSIGNMENT:
        return node.children_in("targets")
    target = node.child("target")
    return (target,) if target is not None else ()


def target_texts(tree: SyntaxTree, target: Node) -> List[str]:
    """Textual names assigned by one target, flattening tuple/list unpacking."""
    if target.kind in (Kind.TUPLE, Kind.LIST):
        texts: List[str] = []
        for element in target.children_in("elts"):
            texts.extend(target_texts(tree, element))
        return texts
    if target.kind == Kind.STARRED:
        value = target.child("value")
        return target_texts(tree, value) if value is not None else []
    name = dotted_name(target)
    if name is not None:
        return [name]
    if target.span is not None:
        return [tree.slice(target.span)]
    return []


def node_text(tree: SyntaxTree, node: Node) -> str:
    """Verbatim source of a node, with block indentation removed.

    A statement sliced out of an indented block keeps its continuation
    lines' indentation; strip the shared block indent so the text reparses.
    """
    if node.span is None:
        return ""
    text = tree.slice(node.span)
    if "\n" not in text:
        return text
    indent = tree.source[tree.line_start(node.span.start_line):node.span.start]
    if not indent or indent.strip():
        return text
    lines = text.split("\n")
    if not all(line.startswith(indent) or not line.strip() for line in lines[1:]):
        return text
    return "\n".join([lines[0]] + [line[len(indent):] for line in lines[1:]])


def line_indent(tree: SyntaxTree, node: Node) -> str:
    """Leading whitespace of the line a node starts on."""
    if node.span is None:
        return ""
    line = tree.source[tree.line_start(node.span.start_line):tree.line_end(node.span.start_line)]
    return line[:len(line) - len(line.lstrip(" \t"))]


# ============================================================================
# Queries
# ============================================================================


def find_nodes(
    tree: SyntaxTree,
    kind: Optional[Union[Kind, str]] = None,
    predicate: Optional[Predicate] = None,
) -> NodeSequence:
    """All nodes of a kind (or all nodes) accepted by an optional predicate.

    Args:
        tree: Generation to search
        kind: Kind (or its string value) to select; None selects every kind
        predicate: Extra filter applied to each candidate node

    Returns:
        NodeSequence in pre-order
    """
    wanted = Kind(kind) if kind is not None else None

    def accept(node: Node) -> bool:
        if wanted is not None and node.kind != wanted:
            return False
        return predicate is None or predicate(node)

    return NodeSequence(tree, accept, f"{wanted or 'all'} nodes")


def find_imports(tree: SyntaxTree, module_pattern: Optional[str] = None) -> NodeSequence:
    """Import statements whose module matches the pattern.

    Example:
        >>> refs = find_imports(tree, "ConfigParser")
        >>> len(refs)
        1
    """

    def accept(node: Node) -> bool:
        if node.kind not in IMPORT_KINDS:
            return False
        if module_pattern is None:
            return True
        return any(module_matches(name, module_pattern) for name in imported_modules(node))

    return NodeSequence(tree, accept, f"imports of {module_pattern or '*'}")


def find_function_calls(tree: SyntaxTree, name: str) -> NodeSequence:
    """Call expressions whose callee matches ``name``."""

    def accept(node: Node) -> bool:
        return node.kind == Kind.CALL and matches_name(node.child("func"), name)

    return NodeSequence(tree, accept, f"calls to {name}")


def find_try_except_blocks(tree: SyntaxTree, exception_type: Optional[str] = None) -> NodeSequence:
    """Try statements, optionally only those with a handler for ``exception_type``.

    A try statement is yielded once even when several handlers match.
    """

    def accept(node: Node) -> bool:
        if node.kind not in TRY_KINDS:
            return False
        if exception_type is None:
            return True
        return any(handler_matches(h, exception_type) for h in node.children_in("handlers"))

    return NodeSequence(tree, accept, f"try blocks handling {exception_type or '*'}")


def find_assignments(tree: SyntaxTree, target_pattern: Optional[str] = None) -> NodeSequence:
    """Assignment statements with a target starting with ``target_pattern``."""

    def accept(node: Node) -> bool:
        if node.kind not in ASSIGNMENT_KINDS:
            return False
        if target_pattern is None:
            return True
        for target in assignment_targets(node):
            if any(text.startswith(target_pattern) for text in target_texts(tree, target)):
                return True
        return False

    return NodeSequence(tree, accept, f"assignments to {target_pattern or '*'}")


# ============================================================================
# Info views
# ============================================================================


@dataclass(frozen=True)
class ImportInfo:
    """Summary of an import statement.

    Attributes:
        ref: Reference to the import node
        module: Module of a from-import, or the first module of a plain import
        items: Imported members (from-import) or all imported modules (plain import)
        alias: ``as`` name of the first alias, if any
        is_from: True for ``from x import y``
        line: 1-based line of the statement
    """
    ref: NodeRef
    module: str
    items: Tuple[str, ...]
    alias: Optional[str]
    is_from: bool
    line: int


@dataclass(frozen=True)
class CallInfo:
    """Summary of a call expression."""
    ref: NodeRef
    function_name: str
    arguments: Tuple[str, ...]
    line: int


@dataclass(frozen=True)
class TryExceptInfo:
    """Summary of a try statement."""
    ref: NodeRef
    exception_types: Tuple[str, ...]
    has_else: bool
    has_finally: bool
    line: int


@dataclass(frozen=True)
class AssignmentInfo:
    """Summary of an assignment statement."""
    ref: NodeRef
    targets: Tuple[str, ...]
    value: Optional[str]
    line: int


Info = Union[ImportInfo, CallInfo, TryExceptInfo, AssignmentInfo]


def describe(tree: SyntaxTree, ref: NodeRef) -> Info:
    """Build the info view matching the referenced node's kind.

    Raises:
        StaleReference: If the ref does not belong to this generation
        ValueError: If the node is not an import, call, try or assignment
    """
    node = tree.resolve(ref)
    line = node.span.start_line if node.span is not None else 0

    if node.kind in IMPORT_KINDS:
        aliases = node.children_in("names")
        first_alias = aliases[0].attr("asname") if aliases else None
        names = tuple(alias.attr("name") for alias in aliases)
        if node.kind == Kind.IMPORT_FROM:
            return ImportInfo(ref, import_module_name(node), names, first_alias, True, line)
        return ImportInfo(ref, names[0] if names else "", names, first_alias, False, line)

    if node.kind == Kind.CALL:
        func = node.child("func")
        name = dotted_name(func) or (node_text(tree, func) if func is not None else "")
        arguments = tuple(
            node_text(tree, child) for child in node.children if child.field in ("args", "keywords")
        )
        return CallInfo(ref, name, arguments, line)

    if node.kind in TRY_KINDS:
        types: List[str] = []
        for handler in node.children_in("handlers"):
            types.extend(handler_type_names(handler))
        return TryExceptInfo(
            ref,
            tuple(types),
            has_else=bool(node.children_in("orelse")),
            has_finally=bool(node.children_in("finalbody")),
            line=line,
        )

    if node.kind in ASSIGNMENT_KINDS:
        targets: List[str] = []
        for target in assignment_targets(node):
            targets.extend(target_texts(tree, target))
        value = node.child("value")
        return AssignmentInfo(ref, tuple(targets), node_text(tree, value) if value is not None else None, line)

    raise ValueError(f"No description available for '{node.kind}' nodes")
