"""
Core language-agnostic engine for codeshift.

This package contains the tree model and node references, the query engine,
the pattern builder, the mutation engine, the code generator and the
refactor session that ties them together.
"""

__all__ = []
