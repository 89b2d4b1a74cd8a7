"""
codeshift: structural refactoring for Python source.

Locate sub-trees of an immutable syntax tree with queries and composable
patterns, stage replace/insert/remove edits against stable node references,
and regenerate source text from the edited tree.
"""

from codeshift.core.codegen import CodeGenerator
from codeshift.core.errors import (
    ConflictingEdit,
    InvalidEdit,
    InvalidFragment,
    RefactorError,
    StaleReference,
    UnsupportedConstruct,
)
from codeshift.core.pattern import MatchContext, Pattern, PatternBuilder
from codeshift.core.refactor import Refactor
from codeshift.core.schema.ref import NodeRef
from codeshift.core.schema.tree import Kind, Node, Span, SyntaxTree
from codeshift.python.parser import PythonParser

__version__ = "0.1.0"

__all__ = [
    "CodeGenerator",
    "ConflictingEdit",
    "InvalidEdit",
    "InvalidFragment",
    "Kind",
    "MatchContext",
    "Node",
    "NodeRef",
    "Pattern",
    "PatternBuilder",
    "PythonParser",
    "Refactor",
    "RefactorError",
    "Span",
    "StaleReference",
    "SyntaxTree",
    "UnsupportedConstruct",
    "__version__",
]
