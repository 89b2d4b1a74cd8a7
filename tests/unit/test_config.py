"""Tests for configuration loading."""

import json
import tempfile
from pathlib import Path

from codeshift.core.config import env_var_name, get_config_value, get_int_config_value, load_config


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_gives_empty_config(self):
        assert load_config("/nonexistent/codeshift.json") == {}

    def test_reads_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "codeshift.json"
            path.write_text(json.dumps({"generator": {"indent_width": 2}}))
            assert load_config(str(path)) == {"generator": {"indent_width": 2}}

    def test_invalid_json_gives_empty_config(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "codeshift.json"
            path.write_text("{not json")
            assert load_config(str(path)) == {}

    def test_config_path_from_environment(self, monkeypatch):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "custom.json"
            path.write_text(json.dumps({"modernize": {"version_function": "version"}}))
            monkeypatch.setenv("CODESHIFT_CONFIG", str(path))
            assert load_config() == {"modernize": {"version_function": "version"}}


class TestGetConfigValue:
    """Tests for nested lookups and fallbacks."""

    def test_nested_value(self):
        config = {"modernize": {"version_module": "importlib_metadata"}}
        assert get_config_value(["modernize", "version_module"], config=config) == "importlib_metadata"

    def test_default_when_missing(self):
        assert get_config_value(["generator", "indent_width"], 4, config={}) == 4

    def test_env_var_name(self):
        assert env_var_name(["modernize", "version_module"]) == "CODESHIFT_MODERNIZE_VERSION_MODULE"

    def test_file_value_beats_environment(self, monkeypatch):
        monkeypatch.setenv("CODESHIFT_GENERATOR_INDENT_WIDTH", "8")
        assert get_config_value(["generator", "indent_width"], 4, config={"generator": {"indent_width": 2}}) == 2

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("CODESHIFT_GENERATOR_INDENT_WIDTH", "8")
        assert get_config_value(["generator", "indent_width"], 4, config={}) == "8"

    def test_int_value_coerced(self, monkeypatch):
        monkeypatch.setenv("CODESHIFT_GENERATOR_INDENT_WIDTH", "2")
        assert get_int_config_value(["generator", "indent_width"], 4, config={}) == 2

    def test_int_value_falls_back_on_garbage(self, monkeypatch):
        monkeypatch.setenv("CODESHIFT_GENERATOR_INDENT_WIDTH", "wide")
        assert get_int_config_value(["generator", "indent_width"], 4, config={}) == 4
