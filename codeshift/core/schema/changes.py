"""Change log entries produced by applied edits."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ChangeKind(str, Enum):
    """Type of change recorded in the session log."""

    REPLACED = "replaced"
    REMOVED = "removed"
    INSERTED_BEFORE = "inserted-before"
    INSERTED_AFTER = "inserted-after"
    RANGE_REPLACED = "range-replaced"
    REVERTED = "reverted"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SourceLocation:
    """1-based line and 0-based column in the generation that was edited."""
    line: int
    column: int = 0


@dataclass(frozen=True)
class ChangeRecord:
    """One applied edit.

    Records are created once by the mutation engine and never modified. The
    refactor session keeps them in an append-only list.

    Attributes:
        kind: What the edit did
        description: Human-readable summary
        location: Where the edit happened in the edited generation
        generation: Generation produced by the batch containing the edit
    """
    kind: ChangeKind
    description: str
    location: Optional[SourceLocation] = None
    generation: int = 0

    def to_serializable(self) -> Dict[str, Any]:
        """Convert to a JSON/YAML friendly dict."""
        result: Dict[str, Any] = {
            "kind": self.kind.value,
            "description": self.description,
            "generation": self.generation,
        }
        if self.location is not None:
            result["line"] = self.location.line
            result["column"] = self.location.column
        return result
