"""Stable, generation-scoped node references.

A NodeRef names a node by its path of child indices from the root. It holds
no reference to the tree itself, so it can be copied, hashed and compared
freely. Resolution validates the lineage and generation first: a reference
never silently resolves to a different node of a newer generation.
"""

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from codeshift.core.errors import StaleReference
from codeshift.core.schema.tree import Node, SyntaxTree

Path = Tuple[int, ...]


@dataclass(frozen=True)
class NodeRef:
    """Address of one node in one generation of a tree.

    Attributes:
        path: Child indices from the root (the root itself is ``()``)
        generation: Generation of the tree the ref was produced from
        lineage: Lineage id of that tree
    """
    path: Path
    generation: int
    lineage: str

    @property
    def depth(self) -> int:
        return len(self.path)

    @property
    def parent(self) -> Optional["NodeRef"]:
        """Reference to the parent node, or None for the root."""
        if not self.path:
            return None
        return NodeRef(self.path[:-1], self.generation, self.lineage)

    def is_ancestor_of(self, other: "NodeRef") -> bool:
        """True if this ref addresses a strict ancestor of ``other``."""
        return (
            self.lineage == other.lineage
            and self.generation == other.generation
            and len(self.path) < len(other.path)
            and other.path[:len(self.path)] == self.path
        )

    def __repr__(self) -> str:
        return f"NodeRef(path={self.path}, generation={self.generation})"


def walk(tree: SyntaxTree) -> Iterator[Tuple[Path, Node]]:
    """Yield (path, node) for every node of the tree in pre-order."""
    yield from walk_from(tree.root, ())


def walk_from(node: Node, path: Path) -> Iterator[Tuple[Path, Node]]:
    """Pre-order walk of a subtree whose root sits at ``path``."""
    stack = [(path, node)]
    while stack:
        current_path, current = stack.pop()
        yield current_path, current
        for index in range(len(current.children) - 1, -1, -1):
            stack.append((current_path + (index,), current.children[index]))


def ref_for(tree: SyntaxTree, path: Path) -> NodeRef:
    """Produce a reference to the node at ``path``.

    Raises:
        StaleReference: If no node exists at that path
    """
    _node_at(tree.root, path)
    return NodeRef(tuple(path), tree.generation, tree.lineage)


def root_ref(tree: SyntaxTree) -> NodeRef:
    return NodeRef((), tree.generation, tree.lineage)


def parent_of(tree: SyntaxTree, ref: NodeRef) -> Optional[Node]:
    """Resolve the parent of a referenced node (None for the root)."""
    parent = ref.parent
    if parent is None:
        return None
    return resolve(tree, parent)


def resolve(tree: SyntaxTree, ref: NodeRef) -> Node:
    """Resolve a reference back to its node.

    Args:
        tree: The generation to resolve against
        ref: Reference produced from the same generation

    Returns:
        The addressed Node

    Raises:
        StaleReference: If the ref belongs to another lineage or generation
    """
    if not isinstance(ref, NodeRef):
        raise TypeError(f"Expected NodeRef, got {type(ref).__name__}")
    if ref.lineage != tree.lineage:
        raise StaleReference(
            "NodeRef belongs to a different tree",
            ref=ref,
            expected_generation=tree.generation,
        )
    if ref.generation != tree.generation:
        raise StaleReference(
            f"NodeRef from generation {ref.generation} used against generation {tree.generation}",
            ref=ref,
            expected_generation=tree.generation,
        )
    return _node_at(tree.root, ref.path, ref)


def _node_at(root: Node, path: Path, ref: Optional[NodeRef] = None) -> Node:
    node = root
    for depth, index in enumerate(path):
        if index < 0 or index >= len(node.children):
            raise StaleReference(
                f"No node at path {tuple(path[:depth + 1])}",
                ref=ref,
            )
        node = node.children[index]
    return node
