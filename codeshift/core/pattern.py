"""Composable structural patterns.

A PatternBuilder accumulates conditions fluently; each call returns a new
builder and never touches the one it was called on. ``build()`` freezes the
conditions into a Pattern, and ``find_matches`` evaluates the conjunction of
all conditions per enclosing scope (module, function, class).

Evaluation rules:

- Statements of a nested function or class belong to that scope only.
- Imports may come from the scope itself or any enclosing scope. A pattern
  made only of import conditions must find its imports in the scope itself,
  so a module-level import does not match every nested function again.
- Try conditions (``contains_try_except``, ``try_body_contains_call``,
  ``except_handles``) select individual try statements: each try of a scope
  that satisfies them yields its own match. ``contains_call`` and
  ``assigns_to`` are then searched inside that try statement; without try
  conditions they are searched in the whole scope.

Captures (names to NodeRef): ``scope``, ``import_<i>``, ``try``, ``handler``,
``call``, ``call_arg_<n>``, ``assignment``, ``target``, ``value``.

Example:
    >>> pattern = (
    ...     PatternBuilder()
    ...     .has_imports(["pkg_resources"])
    ...     .except_handles("DistributionNotFound")
    ...     .try_body_contains_call("get_distribution")
    ...     .build()
    ... )
    >>> for match in pattern.find_matches(tree):
    ...     print(match.text("call"))
"""

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from codeshift.core.query import (
    ASSIGNMENT_KINDS,
    IMPORT_KINDS,
    TRY_KINDS,
    handler_matches,
    imported_modules,
    matches_name,
    module_matches,
    node_text,
    target_texts,
)
from codeshift.core.schema.ref import NodeRef, Path, walk
from codeshift.core.schema.tree import SCOPE_KINDS, Kind, Node, SyntaxTree

logger = logging.getLogger(__name__)

HAS_IMPORTS = "has_imports"
CONTAINS_TRY_EXCEPT = "contains_try_except"
TRY_BODY_CONTAINS_CALL = "try_body_contains_call"
EXCEPT_HANDLES = "except_handles"
CONTAINS_CALL = "contains_call"
ASSIGNS_TO = "assigns_to"

TRY_CONDITIONS = frozenset({CONTAINS_TRY_EXCEPT, TRY_BODY_CONTAINS_CALL, EXCEPT_HANDLES})

Located = Tuple[Path, Node]


@dataclass(frozen=True)
class Condition:
    """One predicate of a pattern.

    Attributes:
        name: Condition name (e.g. "has_imports")
        argument: Condition argument (module names, call name, ...)
    """
    name: str
    argument: Any = None

    def __str__(self) -> str:
        if self.argument is None:
            return f"{self.name}()"
        return f"{self.name}({self.argument!r})"


@dataclass(frozen=True)
class MatchContext:
    """Result of one pattern match.

    Attributes:
        scope: Reference to the enclosing scope node
        capture_items: (name, NodeRef) pairs in capture order
        tree: Generation the match was produced from
    """
    scope: NodeRef
    capture_items: Tuple[Tuple[str, NodeRef], ...] = ()
    tree: Optional[SyntaxTree] = field(default=None, compare=False, repr=False)

    @property
    def captures(self) -> Mapping[str, NodeRef]:
        """Read-only view of the captures."""
        return MappingProxyType(dict(self.capture_items))

    def __getitem__(self, name: str) -> NodeRef:
        for key, ref in self.capture_items:
            if key == name:
                return ref
        raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        return any(key == name for key, _ in self.capture_items)

    def get(self, name: str, default: Optional[NodeRef] = None) -> Optional[NodeRef]:
        for key, ref in self.capture_items:
            if key == name:
                return ref
        return default

    def node(self, name: str) -> Node:
        """Resolve a capture against the generation the match came from."""
        return self._require_tree().resolve(self[name])

    def text(self, name: str) -> str:
        """Verbatim source text of a capture."""
        tree = self._require_tree()
        return node_text(tree, tree.resolve(self[name]))

    def _require_tree(self) -> SyntaxTree:
        if self.tree is None:
            raise ValueError("MatchContext was built without a tree")
        return self.tree


@dataclass(frozen=True)
class Pattern:
    """Immutable conjunction of conditions."""
    conditions: Tuple[Condition, ...] = ()

    def find_matches(self, tree: SyntaxTree) -> List[MatchContext]:
        """Evaluate the pattern against every scope of a tree.

        Returns:
            MatchContexts in pre-order of their scope (then of their try
            statement)
        """
        matches: List[MatchContext] = []
        scopes = _collect_scopes(tree)
        scope_nodes = dict(scopes)
        import_only = bool(self.conditions) and all(c.name == HAS_IMPORTS for c in self.conditions)
        has_try_conditions = any(c.name in TRY_CONDITIONS for c in self.conditions)

        for scope_path, scope_node in scopes:
            local = list(_scope_locals(scope_node, scope_path))
            captures: Dict[str, Path] = {"scope": scope_path}

            chain = [local]
            if not import_only:
                for depth in range(len(scope_path) - 1, -1, -1):
                    outer = scope_nodes.get(scope_path[:depth])
                    if outer is not None:
                        chain.append(list(_scope_locals(outer, scope_path[:depth])))
            if not self._match_imports(chain, captures):
                continue

            if has_try_conditions:
                for path, node in local:
                    if node.kind not in TRY_KINDS:
                        continue
                    try_captures = dict(captures)
                    if not self._match_try(path, node, try_captures):
                        continue
                    if self._match_content(tree, list(_walk_local(node, path)), try_captures):
                        matches.append(_make_context(tree, try_captures))
            elif self._match_content(tree, local, captures):
                matches.append(_make_context(tree, captures))

        logger.debug(f"Pattern {self} matched {len(matches)} time(s) in generation {tree.generation}")
        return matches

    def _match_imports(self, chain: List[List[Located]], captures: Dict[str, Path]) -> bool:
        index = 0
        for condition in self.conditions:
            if condition.name != HAS_IMPORTS:
                continue
            for module in condition.argument:
                found = _find_import(chain, module)
                if found is None:
                    return False
                captures[f"import_{index}"] = found
                index += 1
        return True

    def _match_try(self, path: Path, node: Node, captures: Dict[str, Path]) -> bool:
        captures["try"] = path
        for condition in self.conditions:
            if condition.name == EXCEPT_HANDLES:
                handler = _find_handler(node, path, condition.argument)
                if handler is None:
                    return False
                captures.setdefault("handler", handler)
            elif condition.name == TRY_BODY_CONTAINS_CALL:
                body = [
                    located
                    for index, child in enumerate(node.children)
                    if child.field == "body"
                    for located in _walk_local(child, path + (index,))
                ]
                call = _find_call(body, condition.argument)
                if call is None:
                    return False
                if "call" not in captures:
                    _capture_call(captures, call)
        if "handler" not in captures:
            for index, child in enumerate(node.children):
                if child.field == "handlers":
                    captures["handler"] = path + (index,)
                    break
        return True

    def _match_content(self, tree: SyntaxTree, nodes: List[Located], captures: Dict[str, Path]) -> bool:
        for condition in self.conditions:
            if condition.name == CONTAINS_CALL:
                call = _find_call(nodes, condition.argument)
                if call is None:
                    return False
                if "call" not in captures:
                    _capture_call(captures, call)
            elif condition.name == ASSIGNS_TO:
                if not _capture_assignment(tree, nodes, condition.argument, captures):
                    return False
        return True

    def __str__(self) -> str:
        return " & ".join(str(c) for c in self.conditions) or "<any scope>"


@dataclass(frozen=True)
class PatternBuilder:
    """Fluent, immutable builder for Patterns.

    Every method returns a new builder, so partially built patterns can be
    shared and extended independently.
    """
    conditions: Tuple[Condition, ...] = ()

    def _with(self, name: str, argument: Any = None) -> "PatternBuilder":
        return replace(self, conditions=self.conditions + (Condition(name, argument),))

    def has_imports(self, modules: Sequence[str]) -> "PatternBuilder":
        """Require every module to be imported (exact-or-dotted-prefix match)."""
        if isinstance(modules, str):
            modules = [modules]
        return self._with(HAS_IMPORTS, tuple(modules))

    def contains_try_except(self) -> "PatternBuilder":
        """Require a try statement."""
        return self._with(CONTAINS_TRY_EXCEPT)

    def try_body_contains_call(self, name: str) -> "PatternBuilder":
        """Require a call to ``name`` inside the try body."""
        return self._with(TRY_BODY_CONTAINS_CALL, name)

    def except_handles(self, exception_type: str) -> "PatternBuilder":
        """Require a handler naming ``exception_type``."""
        return self._with(EXCEPT_HANDLES, exception_type)

    def contains_call(self, name: str) -> "PatternBuilder":
        return self._with(CONTAINS_CALL, name)

    def assigns_to(self, target: str) -> "PatternBuilder":
        return self._with(ASSIGNS_TO, target)

    def build(self) -> Pattern:
        return Pattern(self.conditions)

    def find_matches(self, tree: SyntaxTree) -> List[MatchContext]:
        return self.build().find_matches(tree)


# ============================================================================
# Scope helpers
# ============================================================================


def _collect_scopes(tree: SyntaxTree) -> List[Located]:
    return [(path, node) for path, node in walk(tree) if node.kind in SCOPE_KINDS]


def _scope_locals(scope: Node, scope_path: Path) -> Iterator[Located]:
    """Nodes lexically owned by a scope, excluding nested scope interiors."""
    for index, child in enumerate(scope.children):
        if scope.kind == Kind.MODULE or child.field == "body":
            yield from _walk_local(child, scope_path + (index,))


def _walk_local(node: Node, path: Path) -> Iterator[Located]:
    """Pre-order walk that yields nested definitions but not their bodies.

    Decorators, defaults, annotations and class bases of a nested definition
    are evaluated in the enclosing scope, so they are walked.
    """
    stack = [(path, node)]
    while stack:
        current_path, current = stack.pop()
        yield current_path, current
        nested = current.kind in SCOPE_KINDS
        for index in range(len(current.children) - 1, -1, -1):
            child = current.children[index]
            if nested and child.field == "body":
                continue
            stack.append((current_path + (index,), child))


def _find_import(chain: List[List[Located]], module: str) -> Optional[Path]:
    for nodes in chain:
        for path, node in nodes:
            if node.kind in IMPORT_KINDS and any(module_matches(name, module) for name in imported_modules(node)):
                return path
    return None


def _find_handler(node: Node, path: Path, exception_type: str) -> Optional[Path]:
    for index, child in enumerate(node.children):
        if child.field == "handlers" and handler_matches(child, exception_type):
            return path + (index,)
    return None


def _find_call(nodes: List[Located], name: str) -> Optional[Located]:
    for path, node in nodes:
        if node.kind == Kind.CALL and matches_name(node.child("func"), name):
            return path, node
    return None


def _capture_call(captures: Dict[str, Path], call: Located) -> None:
    path, node = call
    captures["call"] = path
    position = 0
    for index, child in enumerate(node.children):
        if child.field == "args":
            captures[f"call_arg_{position}"] = path + (index,)
            position += 1


def _capture_assignment(tree: SyntaxTree, nodes: List[Located], target: str, captures: Dict[str, Path]) -> bool:
    for path, node in nodes:
        if node.kind not in ASSIGNMENT_KINDS:
            continue
        for index, child in enumerate(node.children):
            if child.field not in ("targets", "target"):
                continue
            if any(text.startswith(target) for text in target_texts(tree, child)):
                captures["assignment"] = path
                captures["target"] = path + (index,)
                for value_index, value in enumerate(node.children):
                    if value.field == "value":
                        captures["value"] = path + (value_index,)
                        break
                return True
    return False


def _make_context(tree: SyntaxTree, captures: Dict[str, Path]) -> MatchContext:
    def ref(path: Path) -> NodeRef:
        return NodeRef(path, tree.generation, tree.lineage)

    scope = ref(captures["scope"])
    items = tuple((name, ref(path)) for name, path in captures.items())
    return MatchContext(scope=scope, capture_items=items, tree=tree)
