"""Parser protocol for the external grammar parser.

The engine never tokenizes or parses text itself. It consumes trees from a
parser adapter and asks the same adapter to validate replacement fragments.
"""

from enum import Enum
from typing import Protocol, Tuple

from codeshift.core.schema.tree import Node, SyntaxTree


class FragmentCategory(str, Enum):
    """Grammatical category a fragment must parse as."""

    STATEMENT = "statement"
    EXPRESSION = "expression"

    def __str__(self) -> str:
        return self.value


class Parser(Protocol):
    """Language adapter producing immutable syntax trees.

    Implementations must raise InvalidFragment (never a parser-specific
    exception) when text does not parse.
    """

    def parse(self, source: str) -> SyntaxTree:
        """Parse a full source file into a fresh generation-0 tree."""
        ...

    def parse_fragment(self, text: str, category: FragmentCategory) -> Tuple[Node, ...]:
        """Parse a standalone fragment.

        Returns:
            The statements of a statement fragment (possibly empty for a
            comment-only fragment), or a single expression node.
        """
        ...
