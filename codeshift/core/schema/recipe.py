"""Recipe DSL for scripted refactorings.

A recipe is a sequence of named refactoring operations applied to a source
file in order. Each operation runs through the bottom-level query, mutation
and generation API and produces its own generation of the tree.

YAML Transport Format
---------------------

Example::

    ops:
      - op: replace_import
        args: {old: ConfigParser, new: configparser}
      - op: rename_function
        args: {old: getVersion, new: get_version}
      - op: pkg_resources_version
        args: {target_module: importlib.metadata, target_function: version}
    meta:
      description: py2 cleanup

The envelope contains:

- ops: List of refactoring operations to apply sequentially
- meta: Optional metadata (description, author, ...)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class RecipeOp:
    """Single refactoring operation.

    Attributes:
        op: Operation name (e.g., "replace_import")
        args: Operation-specific arguments as a dictionary
    """

    op: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Recipe:
    """Structured refactoring program.

    Attributes:
        ops: List of operations to apply sequentially
        meta: Optional metadata dictionary
    """

    ops: List[RecipeOp]
    meta: Optional[Dict[str, Any]] = None

    def to_serializable(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ops": [{"op": op.op, "args": dict(op.args)} for op in self.ops]
        }
        if self.meta:
            data["meta"] = dict(self.meta)
        return data

    @classmethod
    def from_serializable(cls, data: Dict[str, Any]) -> "Recipe":
        """Build a recipe from its dict form.

        Raises:
            ValueError: If the envelope has no ops list or an op has no name
        """
        if not isinstance(data, dict) or not isinstance(data.get("ops"), list):
            raise ValueError("Recipe must be a mapping with an 'ops' list")
        ops = []
        for index, op_data in enumerate(data["ops"]):
            if not isinstance(op_data, dict) or "op" not in op_data:
                raise ValueError(f"Recipe op #{index + 1} has no 'op' name")
            ops.append(RecipeOp(op=str(op_data["op"]), args=dict(op_data.get("args") or {})))
        meta = data.get("meta")
        return cls(ops=ops, meta=dict(meta) if meta else None)
