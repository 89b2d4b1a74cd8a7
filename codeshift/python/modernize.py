"""High-level Python refactorings built on the query, pattern and mutation API.

Every function here takes a Refactor session, stages edits through it and
applies them, so each one produces ordinary ChangeRecords and new
generations. They return the number of edits they applied (0 when there was
nothing to do).
"""

import dataclasses
import logging
import re
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from codeshift.core.config import get_config_value
from codeshift.core.errors import RefactorError
from codeshift.core.query import (
    assignment_targets,
    bound_names,
    handler_matches,
    handler_type_names,
    import_module_name,
    module_matches,
    node_text,
)
from codeshift.core.schema.ref import NodeRef, Path, walk
from codeshift.core.schema.tree import Kind, Node, SyntaxTree
from codeshift.python.constants import (
    ALWAYS_USED_MODULES,
    DEFAULT_VERSION_FUNCTION,
    DEFAULT_VERSION_MODULE,
    IMPORT_MODERNIZATION_MAP,
    PKG_RESOURCES_LOOKUP,
    PKG_RESOURCES_MISSING,
    PKG_RESOURCES_MODULE,
)

if TYPE_CHECKING:
    from codeshift.core.refactor import Refactor

logger = logging.getLogger(__name__)


def replace_import(session: "Refactor", old_module: str, new_module: str) -> int:
    """Rename ``old_module`` (and its submodules) in every import statement.

    ``import ConfigParser`` becomes ``import configparser`` and
    ``from urllib2 import urlopen`` becomes ``from urllib.request import urlopen``.
    Code that refers to the module by name is not touched.

    Args:
        session: Refactor session to edit
        old_module: Module to replace (exact or dotted-prefix match)
        new_module: Replacement module name

    Returns:
        Number of import statements rewritten
    """
    tree = session.tree
    generator = session.code_generator()
    count = 0
    for ref in session.find_imports(old_module):
        node = tree.resolve(ref)
        updated = _rename_import(node, old_module, new_module)
        if updated is None:
            continue
        session.replace_node(ref, generator.generate(updated), f"Replaced import '{old_module}' with '{new_module}'")
        count += 1
    if count:
        session.apply()
        logger.info(f"Replaced {count} import(s) of {old_module} with {new_module}")
    return count


def _rename_import(node: Node, old_module: str, new_module: str) -> Optional[Node]:
    def renamed(name: str) -> str:
        return new_module + name[len(old_module):]

    if node.kind == Kind.IMPORT:
        changed = False
        aliases = []
        for alias in node.children:
            name = alias.attr("name")
            if alias.kind == Kind.ALIAS and module_matches(name, old_module):
                alias = _with_attr(alias, "name", renamed(name))
                changed = True
            aliases.append(alias)
        return dataclasses.replace(node, children=tuple(aliases)) if changed else None

    module = import_module_name(node)
    if node.attr("level") or not module_matches(module, old_module):
        return None
    return _with_attr(node, "module", renamed(module))


def _with_attr(node: Node, name: str, value: object) -> Node:
    attrs = tuple((key, value if key == name else current) for key, current in node.attrs)
    return dataclasses.replace(node, attrs=attrs)


def modernize_imports(session: "Refactor", mapping: Optional[Dict[str, str]] = None) -> int:
    """Replace deprecated module imports with their modern equivalents.

    The default table can be extended or overridden with the
    ``modernize.import_map`` config key.

    Returns:
        Number of import statements rewritten
    """
    if mapping is None:
        mapping = dict(IMPORT_MODERNIZATION_MAP)
        configured = get_config_value(["modernize", "import_map"])
        if isinstance(configured, dict):
            mapping.update(configured)

    total = 0
    for old_module, new_module in mapping.items():
        if session.find_imports(old_module):
            total += replace_import(session, old_module, new_module)
    if total:
        logger.info(f"Modernized {total} deprecated import(s)")
    return total


def rename_function(session: "Refactor", old_name: str, new_name: str) -> int:
    """Rename a function definition and every lexical reference to it.

    Raises:
        RefactorError: If no function named ``old_name`` is defined
    """
    return _rename_definition(session, old_name, new_name, "def", (Kind.FUNCTION_DEF, Kind.ASYNC_FUNCTION_DEF))


def rename_class(session: "Refactor", old_name: str, new_name: str) -> int:
    """Rename a class definition and every lexical reference to it.

    Raises:
        RefactorError: If no class named ``old_name`` is defined
    """
    return _rename_definition(session, old_name, new_name, "class", (Kind.CLASS_DEF,))


def _rename_definition(
    session: "Refactor", old_name: str, new_name: str, keyword: str, kinds: Tuple[Kind, ...]
) -> int:
    if not new_name.isidentifier():
        raise RefactorError(f"'{new_name}' is not a valid identifier")

    tree = session.tree
    definitions = [
        tree.resolve(ref)
        for ref in session.find_nodes(predicate=lambda n: n.kind in kinds and n.attr("name") == old_name)
    ]
    label = "Function" if keyword == "def" else "Class"
    if not definitions:
        raise RefactorError(f"{label} '{old_name}' not found")

    # Definition names are not nodes, so headers are rewritten by line first
    header = re.compile(rf"\b({keyword}\s+){re.escape(old_name)}\b")
    lines = tree.source.split("\n")
    for node in definitions:
        line_number = _header_line(lines, node, header)
        line = lines[line_number - 1]
        session.replace_range(
            line_number,
            line_number,
            header.sub(rf"\g<1>{new_name}", line, count=1),
            f"Renamed {label.lower()} '{old_name}' to '{new_name}'",
        )
    session.apply()
    count = len(definitions)

    tree = session.tree
    for ref in _name_references(tree, old_name):
        session.replace_node(ref, new_name, f"Renamed reference to '{old_name}' at line {tree.resolve(ref).span.start_line}")
        count += 1
    session.apply()
    logger.info(f"Renamed {label.lower()} {old_name} -> {new_name} ({count} edit(s))")
    return count


def _header_line(lines: List[str], node: Node, header: "re.Pattern") -> int:
    for line_number in range(node.span.start_line, node.span.end_line + 1):
        if header.search(lines[line_number - 1]):
            return line_number
    raise RefactorError(f"Could not locate the header of '{node.attr('name')}' at line {node.span.start_line}")


def _name_references(tree: SyntaxTree, name: str) -> List[NodeRef]:
    """Name nodes with the given id, skipping those inside f-strings."""
    refs = []
    inside_fstring: Set[Path] = set()
    for path, node in walk(tree):
        if node.kind == Kind.FORMATTED_STRING:
            inside_fstring.add(path)
            continue
        if node.kind != Kind.NAME or node.attr("id") != name or node.span is None:
            continue
        if any(path[:depth] in inside_fstring for depth in range(len(path))):
            continue
        refs.append(NodeRef(path, tree.generation, tree.lineage))
    return refs


def used_names(tree: SyntaxTree) -> Set[str]:
    """Names referenced lexically anywhere in the tree, plus ``__all__`` entries."""
    names: Set[str] = set()
    for _, node in walk(tree):
        if node.kind == Kind.NAME:
            names.add(node.attr("id"))
        elif node.kind in (Kind.ASSIGNMENT, Kind.AUGMENTED_ASSIGNMENT, Kind.ANNOTATED_ASSIGNMENT):
            if any(target.attr("id") == "__all__" for target in assignment_targets(node)):
                value = node.child("value")
                if value is not None:
                    for item in value.depth_first():
                        if item.kind == Kind.LITERAL and isinstance(item.attr("value"), str):
                            names.add(item.attr("value"))
    return names


def remove_unused_imports(session: "Refactor") -> int:
    """Remove imported names that are never referenced.

    Usage is lexical: any Name with the bound identifier (or a string in
    ``__all__``) keeps an import alive. ``__future__`` and star imports are
    always kept. Partially used from-imports are trimmed to the used names.

    Returns:
        Number of import statements removed or rewritten
    """
    tree = session.tree
    names = used_names(tree)
    generator = session.code_generator()
    count = 0
    for ref in session.find_imports():
        node = tree.resolve(ref)
        if node.kind == Kind.IMPORT_FROM and import_module_name(node) in ALWAYS_USED_MODULES:
            continue
        aliases = node.children_in("names")
        if any(alias.attr("name") == "*" for alias in aliases):
            continue
        kept = [alias for alias in aliases if _alias_binding(node, alias) in names]
        if len(kept) == len(aliases):
            continue
        unused = ", ".join(_alias_binding(node, alias) for alias in aliases if alias not in kept)
        if kept:
            updated = dataclasses.replace(node, children=tuple(kept))
            session.replace_node(ref, generator.generate(updated), f"Removed unused import(s) {unused}")
        else:
            session.remove_node(ref, f"Removed unused import(s) {unused}")
        count += 1
    if count:
        session.apply()
        logger.info(f"Removed unused imports from {count} statement(s)")
    return count


def _alias_binding(node: Node, alias: Node) -> str:
    single = dataclasses.replace(node, children=(alias,))
    bound = bound_names(single)
    return bound[0] if bound else alias.attr("name")


def modernize_pkg_resources_version(
    session: "Refactor",
    target_module: Optional[str] = None,
    target_function: Optional[str] = None,
) -> int:
    """Replace the pkg_resources version lookup idiom.

    Transforms::

        from pkg_resources import DistributionNotFound, get_distribution

        try:
            __version__ = get_distribution(__name__).version
        except DistributionNotFound:
            __version__ = "0.0.0"

    into::

        from importlib.metadata import version

        __version__ = version(__name__)

    The target defaults come from the ``modernize.version_module`` and
    ``modernize.version_function`` config keys. pkg_resources imports that
    are still used elsewhere are kept.

    Returns:
        Number of edits applied
    """
    if target_module is None:
        target_module = get_config_value(["modernize", "version_module"], DEFAULT_VERSION_MODULE)
    if target_function is None:
        target_function = get_config_value(["modernize", "version_function"], DEFAULT_VERSION_FUNCTION)

    pattern = (
        session.pattern_builder()
        .has_imports([PKG_RESOURCES_MODULE])
        .except_handles(PKG_RESOURCES_MISSING)
        .try_body_contains_call(PKG_RESOURCES_LOOKUP)
        .build()
    )
    generator = session.code_generator()
    description = f"Modernized pkg_resources version detection to use {target_module}.{target_function}"

    count = 0
    for match in session.find_matches(pattern):
        assignment = _version_assignment(match.tree, match["try"], match["call"])
        if assignment is None:
            logger.debug(f"Skipping try statement at {match['try'].path}: it does more than look up the version")
            continue
        target = node_text(match.tree, assignment.child("targets") or assignment.child("target"))
        argument = match.text("call_arg_0") if "call_arg_0" in match else "__name__"
        call = generator.create_function_call(target_function, [argument])
        session.replace_node(match["try"], generator.create_assignment(target, call), description)
        count += 1

    if not count:
        return 0
    session.apply()
    count += _rewrite_pkg_resources_imports(session, target_module, target_function)
    logger.info(f"Modernized {count} pkg_resources version edit(s)")
    return count


def _version_assignment(tree: SyntaxTree, try_ref: NodeRef, call_ref: NodeRef) -> Optional[Node]:
    """The ``x = get_distribution(...).version`` assignment a try statement wraps.

    Only a try whose body is that single assignment, whose handlers catch
    nothing but DistributionNotFound and that has no else or finally block
    qualifies.
    """
    try_node = tree.resolve(try_ref)
    call = tree.resolve(call_ref)
    if try_node.children_in("orelse") or try_node.children_in("finalbody"):
        return None
    for handler in try_node.children_in("handlers"):
        names = handler_type_names(handler)
        if len(names) != 1 or not handler_matches(handler, PKG_RESOURCES_MISSING):
            return None

    body = try_node.children_in("body")
    if len(body) != 1 or body[0].kind not in (Kind.ASSIGNMENT, Kind.ANNOTATED_ASSIGNMENT):
        return None
    value = body[0].child("value")
    if value is None or value.kind != Kind.ATTRIBUTE or value.attr("attr") != "version":
        return None
    looked_up = value.child("value")
    if looked_up is None or looked_up.span != call.span:
        return None
    return body[0]


def _rewrite_pkg_resources_imports(session: "Refactor", target_module: str, target_function: str) -> int:
    tree = session.tree
    generator = session.code_generator()
    names = used_names(tree)
    new_import = generator.create_import(target_module, [target_function])
    needs_import = not session.find_imports(f"{target_module}.{target_function}")

    refs = [ref for ref in session.find_imports(PKG_RESOURCES_MODULE) if tree.resolve(ref).span is not None]
    count = 0
    for position, ref in enumerate(refs):
        node = tree.resolve(ref)
        aliases = node.children_in("names")
        kept = [alias for alias in aliases if _alias_binding(node, alias) in names]
        is_last = position == len(refs) - 1
        description = f"Replaced pkg_resources import with {target_module}.{target_function}"
        if kept:
            text = generator.generate(dataclasses.replace(node, children=tuple(kept)))
            if needs_import and is_last:
                text += "\n" + new_import
                needs_import = False
            elif len(kept) == len(aliases):
                continue
            session.replace_node(ref, text, description)
        elif needs_import:
            session.replace_node(ref, new_import, description)
            needs_import = False
        else:
            session.remove_node(ref, "Removed unused pkg_resources import")
        count += 1
    if count:
        session.apply()
    return count
