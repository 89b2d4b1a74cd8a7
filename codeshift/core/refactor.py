"""Refactor session: the caller-facing facade over the engine.

A Refactor owns the current generation of one source file, the mutation
engine staging edits against it, and the append-only change log. Queries and
patterns run against ``session.tree``; edits are staged through the session
and committed with ``apply()``.

Example:
    >>> session = Refactor.from_source("import ConfigParser\\n")
    >>> ref = session.find_imports("ConfigParser").first()
    >>> _ = session.replace_node(ref, "import configparser")
    >>> _ = session.apply()
    >>> session.get_code()
    'import configparser\\n'
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from codeshift.core.codegen import CodeGenerator
from codeshift.core.errors import RefactorError
from codeshift.core.mutation import ApplyResult, Edit, MutationEngine, MutationState
from codeshift.core.pattern import MatchContext, Pattern, PatternBuilder
from codeshift.core.query import (
    Info,
    NodeSequence,
    Predicate,
    describe,
    find_assignments,
    find_function_calls,
    find_imports,
    find_nodes,
    find_try_except_blocks,
)
from codeshift.core.schema.changes import ChangeKind, ChangeRecord
from codeshift.core.schema.parser import Parser
from codeshift.core.schema.ref import NodeRef
from codeshift.core.schema.tree import Kind, SyntaxTree

logger = logging.getLogger(__name__)


class Refactor:
    """Refactoring session over one source file.

    Attributes:
        tree: Current generation
        parser: Parser adapter used for fragments and re-parsing
        changes: Every ChangeRecord produced so far, oldest first
    """

    def __init__(self, tree: SyntaxTree, parser: Optional[Parser] = None):
        if parser is None:
            # Local import so the core never depends on the adapter at import time
            from codeshift.python.parser import PythonParser

            parser = PythonParser()
        self._parser = parser
        self._engine = MutationEngine(tree, parser)
        self._changes: List[ChangeRecord] = []
        self._history: List[SyntaxTree] = []
        self._generator: Optional[CodeGenerator] = None

    @classmethod
    def from_source(cls, source: str, parser: Optional[Parser] = None) -> "Refactor":
        """Parse source text and open a session on it."""
        if parser is None:
            from codeshift.python.parser import PythonParser

            parser = PythonParser()
        return cls(parser.parse(source), parser)

    @classmethod
    def from_file(cls, path: Union[str, Path], parser: Optional[Parser] = None) -> "Refactor":
        """Read and parse a file and open a session on it."""
        source = Path(path).read_text(encoding="utf-8")
        logger.info(f"Loaded {path}")
        return cls.from_source(source, parser)

    @property
    def tree(self) -> SyntaxTree:
        return self._engine.tree

    @property
    def parser(self) -> Parser:
        return self._parser

    @property
    def state(self) -> MutationState:
        return self._engine.state

    @property
    def staged(self) -> Tuple[Edit, ...]:
        return self._engine.staged

    @property
    def changes(self) -> List[ChangeRecord]:
        return list(self._changes)

    # Queries

    def find_nodes(self, kind: Optional[Union[Kind, str]] = None, predicate: Optional[Predicate] = None) -> NodeSequence:
        return find_nodes(self.tree, kind, predicate)

    def find_imports(self, module_pattern: Optional[str] = None) -> NodeSequence:
        return find_imports(self.tree, module_pattern)

    def find_function_calls(self, name: str) -> NodeSequence:
        return find_function_calls(self.tree, name)

    def find_try_except_blocks(self, exception_type: Optional[str] = None) -> NodeSequence:
        return find_try_except_blocks(self.tree, exception_type)

    def find_assignments(self, target_pattern: Optional[str] = None) -> NodeSequence:
        return find_assignments(self.tree, target_pattern)

    def describe(self, ref: NodeRef) -> Info:
        return describe(self.tree, ref)

    def pattern_builder(self) -> PatternBuilder:
        return PatternBuilder()

    def find_matches(self, pattern: Union[Pattern, PatternBuilder]) -> List[MatchContext]:
        if isinstance(pattern, PatternBuilder):
            pattern = pattern.build()
        return pattern.find_matches(self.tree)

    # Edits

    def replace_node(self, ref: NodeRef, fragment: str, description: Optional[str] = None) -> Edit:
        return self._engine.replace_node(ref, fragment, description)

    def remove_node(self, ref: NodeRef, description: Optional[str] = None) -> Edit:
        return self._engine.remove_node(ref, description)

    def insert_before(self, ref: NodeRef, fragment: str, description: Optional[str] = None) -> Edit:
        return self._engine.insert_before(ref, fragment, description)

    def insert_after(self, ref: NodeRef, fragment: str, description: Optional[str] = None) -> Edit:
        return self._engine.insert_after(ref, fragment, description)

    def replace_range(self, start_line: int, end_line: int, text: str, description: Optional[str] = None) -> Edit:
        return self._engine.replace_range(start_line, end_line, text, description)

    replace_code_range = replace_range

    def apply(self) -> ApplyResult:
        """Apply the staged batch and log its ChangeRecords.

        Raises:
            ConflictingEdit: If staged edits overlap (batch discarded)
            InvalidFragment: If the edited source does not parse (batch discarded)
        """
        previous = self.tree
        result = self._engine.apply()
        if result.changes:
            self._history.append(previous)
            self._changes.extend(result.changes)
        return result

    def discard(self) -> int:
        return self._engine.discard()

    def code_generator(self) -> CodeGenerator:
        """Generator bound to this session's parser."""
        if self._generator is None:
            self._generator = CodeGenerator(parser=self._parser)
        return self._generator

    # Reporting and persistence

    def change_summary(self) -> str:
        if not self._changes:
            return "No changes made"
        lines = [f"Made {len(self._changes)} changes:\n"]
        for index, change in enumerate(self._changes, 1):
            lines.append(f"{index}. {change.description}\n")
        return "".join(lines)

    def get_code(self) -> str:
        return self.tree.source

    def undo_last_apply(self) -> SyntaxTree:
        """Restore the source from before the last applied batch.

        The restored text becomes a new generation (refs from every earlier
        generation stay stale) and a ``reverted`` record is logged.

        Raises:
            RefactorError: If nothing has been applied
        """
        if not self._history:
            raise RefactorError("No changes to undo")
        previous = self._history.pop()
        current = self.tree
        restored = current.successor(self._parser.parse(previous.source).root, previous.source)
        self._engine.reset(restored)
        self._changes.append(ChangeRecord(
            ChangeKind.REVERTED,
            f"Reverted to the source of generation {previous.generation}",
            generation=restored.generation,
        ))
        logger.info(f"Reverted generation {current.generation} to the source of generation {previous.generation}")
        return restored

    def save_to_file(self, path: Union[str, Path]) -> None:
        Path(path).write_text(self.get_code(), encoding="utf-8")
        logger.info(f"Saved generation {self.tree.generation} to {path}")

    # High-level refactorings

    def replace_import(self, old_module: str, new_module: str) -> int:
        """Rename an imported module everywhere it is imported. Returns edit count."""
        from codeshift.python.modernize import replace_import

        return replace_import(self, old_module, new_module)

    def modernize_imports(self, mapping: Optional[Dict[str, str]] = None) -> int:
        from codeshift.python.modernize import modernize_imports

        return modernize_imports(self, mapping)

    def rename_function(self, old_name: str, new_name: str) -> int:
        from codeshift.python.modernize import rename_function

        return rename_function(self, old_name, new_name)

    def rename_class(self, old_name: str, new_name: str) -> int:
        from codeshift.python.modernize import rename_class

        return rename_class(self, old_name, new_name)

    def remove_unused_imports(self) -> int:
        from codeshift.python.modernize import remove_unused_imports

        return remove_unused_imports(self)

    def modernize_pkg_resources_version(
        self, target_module: Optional[str] = None, target_function: Optional[str] = None
    ) -> int:
        from codeshift.python.modernize import modernize_pkg_resources_version

        return modernize_pkg_resources_version(self, target_module, target_function)

    def __repr__(self) -> str:
        return f"Refactor(generation={self.tree.generation}, changes={len(self._changes)})"
