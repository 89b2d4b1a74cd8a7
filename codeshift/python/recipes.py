"""Recipe runner for scripted Python refactorings.

Recipes are stored as YAML (see codeshift.core.schema.recipe for the
envelope) and loaded with ruamel.yaml so hand-written recipe files keep
their quoting and layout when they are round-tripped.
"""

import io
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Union

from ruamel.yaml import YAML

from codeshift.core.schema.recipe import Recipe, RecipeOp

if TYPE_CHECKING:
    from codeshift.core.refactor import Refactor

logger = logging.getLogger(__name__)

RECIPE_OPS = (
    "replace_import",
    "modernize_imports",
    "rename_function",
    "rename_class",
    "remove_unused_imports",
    "pkg_resources_version",
    "replace_range",
)


def _create_yaml_instance() -> YAML:
    """Create configured ruamel.yaml instance for recipe files.

    Returns:
        YAML instance configured to:
        - Preserve quotes and formatting
        - Not wrap long strings (replacement code stays on one line)
        - Use block style (not flow style)
    """
    yaml = YAML()
    yaml.preserve_quotes = True
    yaml.width = 4096
    yaml.default_flow_style = False
    yaml.allow_unicode = True
    return yaml


def parse_recipe(text: str) -> Recipe:
    """Parse recipe YAML text.

    Raises:
        ValueError: If the document is not a valid recipe envelope
    """
    data = _create_yaml_instance().load(text)
    return Recipe.from_serializable(_plain(data))


def load_recipe(path: Union[str, Path]) -> Recipe:
    """Load a recipe from a YAML file."""
    recipe = parse_recipe(Path(path).read_text(encoding="utf-8"))
    logger.info(f"Loaded recipe {path} with {len(recipe.ops)} op(s)")
    return recipe


def dump_recipe(recipe: Recipe) -> str:
    """Serialize a recipe to YAML text."""
    stream = io.StringIO()
    _create_yaml_instance().dump(recipe.to_serializable(), stream)
    return stream.getvalue()


def _plain(value):
    # ruamel returns CommentedMap/CommentedSeq; recipes only need plain containers
    if isinstance(value, dict):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def apply_recipe(session: "Refactor", recipe: Recipe) -> Dict[str, int]:
    """Apply every operation of a recipe in order.

    Args:
        session: Refactor session to edit
        recipe: Recipe to run

    Returns:
        Dict mapping "<index>:<op>" to the number of edits the op made

    Raises:
        ValueError: If an operation name is unknown or misses an argument
    """
    results: Dict[str, int] = {}
    for index, op in enumerate(recipe.ops, 1):
        count = apply_recipe_op(session, op)
        results[f"{index}:{op.op}"] = count
        logger.info(f"Recipe op {index} ({op.op}) made {count} edit(s)")
    return results


def apply_recipe_op(session: "Refactor", op: RecipeOp) -> int:
    """Apply single recipe operation.

    Returns:
        Number of edits the operation made

    Raises:
        ValueError: If operation kind is unknown or a required argument is missing
    """
    args = op.args
    if op.op == "replace_import":
        return session.replace_import(_require(op, "old"), _require(op, "new"))
    elif op.op == "modernize_imports":
        return session.modernize_imports(args.get("mapping"))
    elif op.op == "rename_function":
        return session.rename_function(_require(op, "old"), _require(op, "new"))
    elif op.op == "rename_class":
        return session.rename_class(_require(op, "old"), _require(op, "new"))
    elif op.op == "remove_unused_imports":
        return session.remove_unused_imports()
    elif op.op == "pkg_resources_version":
        return session.modernize_pkg_resources_version(args.get("target_module"), args.get("target_function"))
    elif op.op == "replace_range":
        return _apply_replace_range(session, op)
    else:
        raise ValueError(f"Unknown recipe operation: {op.op}. Valid: {list(RECIPE_OPS)}")


def _apply_replace_range(session: "Refactor", op: RecipeOp) -> int:
    """Replace a line range.

    Args:
        session: Refactor session
        op: {start_line: int, end_line: int, text: str}
    """
    start_line = int(_require(op, "start_line"))
    end_line = int(op.args.get("end_line", start_line))
    session.replace_range(start_line, end_line, str(_require(op, "text")))
    session.apply()
    return 1


def _require(op: RecipeOp, name: str):
    if name not in op.args:
        raise ValueError(f"Recipe operation '{op.op}' requires argument '{name}'")
    return op.args[name]
