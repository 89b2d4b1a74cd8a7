"""
Core schema definitions for trees, references, parsers, changes and recipes.

These language-agnostic protocols and dataclasses form the foundation of
the codeshift engine.
"""

from codeshift.core.schema.changes import ChangeKind, ChangeRecord, SourceLocation
from codeshift.core.schema.parser import FragmentCategory, Parser
from codeshift.core.schema.recipe import Recipe, RecipeOp
from codeshift.core.schema.ref import NodeRef, ref_for, resolve, walk
from codeshift.core.schema.tree import Kind, Node, Span, SyntaxTree

__all__ = [
    "ChangeKind",
    "ChangeRecord",
    "FragmentCategory",
    "Kind",
    "Node",
    "NodeRef",
    "Parser",
    "Recipe",
    "RecipeOp",
    "SourceLocation",
    "Span",
    "SyntaxTree",
    "ref_for",
    "resolve",
    "walk",
]
