"""Tests for recipe loading and execution."""

import tempfile
from pathlib import Path

import pytest

from codeshift.core.refactor import Refactor
from codeshift.core.schema.recipe import Recipe, RecipeOp
from codeshift.python.recipes import apply_recipe, apply_recipe_op, dump_recipe, load_recipe, parse_recipe

RECIPE_YAML = """ops:
  - op: replace_import
    args: {old: ConfigParser, new: configparser}
  - op: rename_function
    args:
      old: getConfig
      new: "get_config"
meta:
  description: cleanup
"""


class TestRecipeLoading:
    """Tests for YAML transport."""

    def test_parse_recipe(self):
        recipe = parse_recipe(RECIPE_YAML)
        assert recipe.ops == [
            RecipeOp("replace_import", {"old": "ConfigParser", "new": "configparser"}),
            RecipeOp("rename_function", {"old": "getConfig", "new": "get_config"}),
        ]
        assert recipe.meta == {"description": "cleanup"}

    def test_load_recipe_from_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "recipe.yaml"
            path.write_text(RECIPE_YAML)
            assert len(load_recipe(path).ops) == 2

    def test_dump_then_parse(self):
        recipe = Recipe(ops=[RecipeOp("remove_unused_imports")], meta={"author": "ci"})
        assert parse_recipe(dump_recipe(recipe)) == recipe

    def test_ops_list_required(self):
        with pytest.raises(ValueError):
            parse_recipe("meta: {}\n")

    def test_op_name_required(self):
        with pytest.raises(ValueError):
            parse_recipe("ops:\n  - args: {old: a}\n")


class TestApplyRecipe:
    """Tests for recipe execution."""

    def test_apply_recipe(self):
        session = Refactor.from_source("import ConfigParser\n\ndef getConfig():\n    pass\n")
        results = apply_recipe(session, parse_recipe(RECIPE_YAML))
        assert results == {"1:replace_import": 1, "2:rename_function": 1}
        assert session.get_code() == "import configparser\n\ndef get_config():\n    pass\n"

    def test_replace_range_op(self):
        session = Refactor.from_source("a = 1\nb = 2\n")
        op = RecipeOp("replace_range", {"start_line": 2, "end_line": 2, "text": "b = 3"})
        assert apply_recipe_op(session, op) == 1
        assert session.get_code() == "a = 1\nb = 3\n"

    def test_unknown_op(self):
        session = Refactor.from_source("x = 1\n")
        with pytest.raises(ValueError, match="Unknown recipe operation"):
            apply_recipe_op(session, RecipeOp("explode"))

    def test_missing_argument(self):
        session = Refactor.from_source("x = 1\n")
        with pytest.raises(ValueError, match="requires argument 'new'"):
            apply_recipe_op(session, RecipeOp("replace_import", {"old": "x"}))
