"""Refactoring exceptions for error handling.

None of these errors is retried: every one of them is deterministic given the
same tree and the same edits, so callers are expected to change their inputs.
"""

from typing import Any, Optional


class RefactorError(Exception):
    """Base class for every error raised by the refactoring engine.

    High-level refactorings also raise it directly, e.g. when asked to rename
    a function that is not defined.
    """


class StaleReference(RefactorError):
    """Raised when a NodeRef is used against a tree it was not produced from.

    A reference is bound to one generation of one tree lineage. Using it after
    a batch of edits has been applied (or against an unrelated tree) is a
    programmer error and is always surfaced.

    Attributes:
        ref: The offending NodeRef
        expected_generation: Generation of the tree it was resolved against
    """

    def __init__(self, message: str, ref: Optional[Any] = None, expected_generation: Optional[int] = None) -> None:
        """Initialize StaleReference exception.

        Args:
            message: Error message describing the mismatch
            ref: The NodeRef that could not be resolved (optional)
            expected_generation: Generation of the tree in use (optional)
        """
        super().__init__(message)
        self.ref = ref
        self.expected_generation = expected_generation


class InvalidFragment(RefactorError):
    """Raised when replacement text does not parse as the expected category.

    The edit that carried the fragment is discarded and the tree is left
    unchanged. Also raised by ``apply()`` when the spliced source as a whole
    no longer parses.

    Attributes:
        fragment: The source text that failed to parse
        category: Grammatical category it was parsed as ("statement" or "expression")
        diagnostic: The parser's diagnostic message
    """

    def __init__(
        self,
        message: str,
        fragment: Optional[str] = None,
        category: Optional[str] = None,
        diagnostic: Optional[str] = None,
    ) -> None:
        """Initialize InvalidFragment exception.

        Args:
            message: Error message describing the failure
            fragment: Offending source text (optional)
            category: Expected grammatical category (optional)
            diagnostic: Parse diagnostic (optional)
        """
        super().__init__(message)
        self.fragment = fragment
        self.category = category
        self.diagnostic = diagnostic


class ConflictingEdit(RefactorError):
    """Raised when two staged edits overlap.

    The whole batch is aborted and the original generation retained.

    Attributes:
        first: The earlier staged edit
        second: The later staged edit that overlaps it
    """

    def __init__(self, message: str, first: Optional[Any] = None, second: Optional[Any] = None) -> None:
        super().__init__(message)
        self.first = first
        self.second = second


class UnsupportedConstruct(RefactorError):
    """Raised when the code generator is asked to render an unsupported kind.

    Attributes:
        kind: The node Kind with no entry in the generator's dispatch table
    """

    def __init__(self, kind: Any, message: Optional[str] = None) -> None:
        """Initialize UnsupportedConstruct exception.

        Args:
            kind: Kind that cannot be rendered
            message: Optional override for the default message
        """
        super().__init__(message or f"Code generation does not support '{kind}' nodes")
        self.kind = kind


class InvalidEdit(RefactorError):
    """Raised when an edit is structurally impossible.

    Examples: inserting a statement next to an expression, removing an
    expression, editing a node that carries no source span, or a line range
    outside the source.
    """
