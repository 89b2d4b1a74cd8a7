"""Tests for composable patterns."""

import pytest

from codeshift.core.pattern import Condition, MatchContext, Pattern, PatternBuilder
from codeshift.core.schema.tree import Kind
from codeshift.python.parser import PythonParser

PKG_SOURCE = '''from pkg_resources import DistributionNotFound, get_distribution

try:
    __version__ = get_distribution(__name__).version
except DistributionNotFound:
    __version__ = "0.0.0"


def plugin_version(name):
    try:
        return get_distribution(name).version
    except KeyError:
        return None
    except DistributionNotFound:
        return None


def unrelated():
    try:
        value = compute()
    except ValueError:
        value = 0
    return value
'''


@pytest.fixture
def tree():
    return PythonParser().parse(PKG_SOURCE)


def pkg_pattern():
    return (
        PatternBuilder()
        .has_imports(["pkg_resources"])
        .except_handles("DistributionNotFound")
        .try_body_contains_call("get_distribution")
        .build()
    )


class TestPatternBuilder:
    """Tests for the immutable fluent builder."""

    def test_builder_calls_return_new_builders(self):
        """Extending a builder never changes the original."""
        base = PatternBuilder().has_imports("os")
        extended = base.contains_call("getcwd")
        assert len(base.conditions) == 1
        assert len(extended.conditions) == 2
        assert base.build() != extended.build()

    def test_shared_prefix_can_branch(self):
        base = PatternBuilder().contains_try_except()
        left = base.except_handles("KeyError").build()
        right = base.except_handles("ValueError").build()
        assert left.conditions[0] == right.conditions[0]
        assert left.conditions[1] != right.conditions[1]

    def test_has_imports_accepts_single_module(self):
        pattern = PatternBuilder().has_imports("os").build()
        assert pattern.conditions == (Condition("has_imports", ("os",)),)

    def test_pattern_str(self):
        assert str(PatternBuilder().contains_call("f").build()) == "contains_call('f')"
        assert str(Pattern()) == "<any scope>"


class TestFindMatches:
    """Tests for pattern evaluation."""

    def test_pkg_resources_idiom(self, tree):
        """The module-level and function-level lookups both match."""
        matches = pkg_pattern().find_matches(tree)
        assert len(matches) == 2
        module_match, function_match = matches
        assert module_match.node("scope").kind == Kind.MODULE
        assert function_match.node("scope").attr("name") == "plugin_version"

    def test_captures(self, tree):
        match = pkg_pattern().find_matches(tree)[0]
        assert match.node("try").kind == Kind.TRY
        assert match.node("import_0").kind == Kind.IMPORT_FROM
        assert match.text("call") == "get_distribution(__name__)"
        assert match.text("call_arg_0") == "__name__"
        assert match.text("handler").startswith("except DistributionNotFound")

    def test_handler_capture_prefers_matching_handler(self, tree):
        """The handler capture names the handler that matched, not the first one."""
        function_match = pkg_pattern().find_matches(tree)[1]
        assert function_match.text("handler").startswith("except DistributionNotFound")

    def test_imports_visible_from_enclosing_scope(self, tree):
        """A nested function sees the module's imports."""
        matches = PatternBuilder().has_imports(["pkg_resources"]).contains_call("get_distribution").find_matches(tree)
        scopes = [match.node("scope").kind for match in matches]
        assert scopes == [Kind.MODULE, Kind.FUNCTION_DEF]

    def test_import_only_pattern_matches_owning_scope(self, tree):
        matches = PatternBuilder().has_imports(["pkg_resources"]).find_matches(tree)
        assert len(matches) == 1
        assert matches[0].node("scope").kind == Kind.MODULE

    def test_missing_import_fails(self, tree):
        pattern = PatternBuilder().has_imports(["importlib"]).contains_try_except().build()
        assert pattern.find_matches(tree) == []

    def test_contains_try_except_yields_every_try(self, tree):
        matches = PatternBuilder().contains_try_except().find_matches(tree)
        assert len(matches) == 3

    def test_assigns_to_within_try(self, tree):
        matches = PatternBuilder().except_handles("ValueError").assigns_to("value").find_matches(tree)
        assert len(matches) == 1
        match = matches[0]
        assert match.text("target") == "value"
        assert match.text("value") == "compute()"
        assert match.node("assignment").kind == Kind.ASSIGNMENT

    def test_calls_do_not_leak_from_nested_scopes(self, tree):
        """A call inside a function does not make the module match."""
        matches = PatternBuilder().contains_call("compute").find_matches(tree)
        assert [match.node("scope").attr("name") for match in matches] == ["unrelated"]

    def test_definition_headers_belong_to_enclosing_scope(self):
        """Decorators, defaults and bases are matched in the scope that evaluates them."""
        source = (
            "@app.route('/')\n"
            "def index(limit=default_limit()):\n"
            "    return render()\n"
            "\n"
            "\n"
            "class View(make_base()):\n"
            "    pass\n"
        )
        tree = PythonParser().parse(source)
        for name in ("route", "default_limit", "make_base"):
            matches = PatternBuilder().contains_call(name).find_matches(tree)
            assert [match.node("scope").kind for match in matches] == [Kind.MODULE]
        matches = PatternBuilder().contains_call("render").find_matches(tree)
        assert [match.node("scope").attr("name") for match in matches] == ["index"]

    def test_no_match_returns_empty_list(self, tree):
        assert PatternBuilder().contains_call("nothing_calls_this").find_matches(tree) == []


class TestMatchContext:
    """Tests for MatchContext accessors."""

    def test_mapping_access(self, tree):
        match = pkg_pattern().find_matches(tree)[0]
        assert "try" in match
        assert "target" not in match
        assert match.get("target") is None
        assert match["try"] == match.captures["try"]
        with pytest.raises(KeyError):
            match["target"]

    def test_captures_are_read_only(self, tree):
        match = pkg_pattern().find_matches(tree)[0]
        with pytest.raises(TypeError):
            match.captures["extra"] = match.scope

    def test_context_without_tree(self):
        context = MatchContext(scope=None)
        with pytest.raises(ValueError):
            context.text("scope")
