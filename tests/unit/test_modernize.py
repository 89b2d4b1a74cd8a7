"""Tests for the high-level Python refactorings."""

from unittest.mock import patch

import pytest

from codeshift.core.errors import RefactorError
from codeshift.core.refactor import Refactor
from codeshift.python.modernize import used_names


class TestReplaceImport:
    """Tests for replace_import."""

    def test_plain_import(self):
        session = Refactor.from_source("import ConfigParser\n")
        assert session.replace_import("ConfigParser", "configparser") == 1
        assert session.get_code() == "import configparser\n"
        assert session.changes[0].description == "Replaced import 'ConfigParser' with 'configparser'"

    def test_from_import(self):
        session = Refactor.from_source("from urllib2 import urlopen, Request\n")
        session.replace_import("urllib2", "urllib.request")
        assert session.get_code() == "from urllib.request import urlopen, Request\n"

    def test_alias_and_other_modules_kept(self):
        session = Refactor.from_source("import os, cPickle as pickle\n")
        session.replace_import("cPickle", "pickle")
        assert session.get_code() == "import os, pickle as pickle\n"

    def test_submodule_renamed_with_prefix(self):
        session = Refactor.from_source("import urllib2.error\n")
        session.replace_import("urllib2", "urllib")
        assert session.get_code() == "import urllib.error\n"

    def test_no_match_makes_no_generation(self):
        session = Refactor.from_source("import os\n")
        assert session.replace_import("ConfigParser", "configparser") == 0
        assert session.tree.generation == 0
        assert session.change_summary() == "No changes made"

    def test_nested_import_keeps_indentation(self):
        source = "def load():\n    import StringIO\n    return StringIO\n"
        session = Refactor.from_source(source)
        session.replace_import("StringIO", "io")
        assert session.get_code() == "def load():\n    import io\n    return StringIO\n"


class TestModernizeImports:
    """Tests for the deprecated module table."""

    def test_default_table(self):
        source = "import ConfigParser\nimport cPickle\nfrom urlparse import urljoin\nimport os\n"
        session = Refactor.from_source(source)
        assert session.modernize_imports() == 3
        assert session.get_code() == (
            "import configparser\nimport pickle\nfrom urllib.parse import urljoin\nimport os\n"
        )

    def test_explicit_mapping(self):
        session = Refactor.from_source("import simplejson\n")
        assert session.modernize_imports({"simplejson": "json"}) == 1
        assert session.get_code() == "import json\n"

    def test_configured_mapping_extends_table(self):
        session = Refactor.from_source("import simplejson\nimport imp\n")
        with patch("codeshift.python.modernize.get_config_value", return_value={"simplejson": "json"}):
            assert session.modernize_imports() == 2
        assert session.get_code() == "import json\nimport importlib\n"


class TestRename:
    """Tests for rename_function and rename_class."""

    def test_rename_function_and_references(self):
        source = (
            "def getVersion():\n"
            "    return '1'\n"
            "\n"
            "\n"
            "print(getVersion())\n"
            "current = getVersion\n"
            "other = obj.getVersion()\n"
        )
        session = Refactor.from_source(source)
        assert session.rename_function("getVersion", "get_version") == 3
        assert session.get_code() == (
            "def get_version():\n"
            "    return '1'\n"
            "\n"
            "\n"
            "print(get_version())\n"
            "current = get_version\n"
            "other = obj.getVersion()\n"
        )

    def test_rename_decorated_class(self):
        source = "@dataclass\nclass oldName:\n    x: int = 0\n\n\nitem = oldName()\n"
        session = Refactor.from_source(source)
        assert session.rename_class("oldName", "NewName") == 2
        assert session.get_code() == "@dataclass\nclass NewName:\n    x: int = 0\n\n\nitem = NewName()\n"

    def test_rename_missing_function(self):
        session = Refactor.from_source("x = 1\n")
        with pytest.raises(RefactorError, match="Function 'missing' not found"):
            session.rename_function("missing", "found")

    def test_rename_to_invalid_identifier(self):
        session = Refactor.from_source("def f():\n    pass\n")
        with pytest.raises(RefactorError):
            session.rename_function("f", "not valid")

    def test_class_rename_ignores_functions(self):
        session = Refactor.from_source("def Thing():\n    pass\n")
        with pytest.raises(RefactorError, match="Class 'Thing' not found"):
            session.rename_class("Thing", "Other")


class TestRemoveUnusedImports:
    """Tests for remove_unused_imports."""

    def test_removes_and_trims(self):
        source = (
            "from __future__ import annotations\n"
            "import os\n"
            "import sys\n"
            "from typing import List, Dict\n"
            "from module import *\n"
            "\n"
            "def f(x: List) -> None:\n"
            "    return sys.argv\n"
        )
        session = Refactor.from_source(source)
        assert session.remove_unused_imports() == 2
        assert session.get_code() == (
            "from __future__ import annotations\n"
            "import sys\n"
            "from typing import List\n"
            "from module import *\n"
            "\n"
            "def f(x: List) -> None:\n"
            "    return sys.argv\n"
        )

    def test_all_keeps_imports_alive(self):
        session = Refactor.from_source("import json\n__all__ = ['json']\n")
        assert session.remove_unused_imports() == 0

    def test_dotted_import_binds_first_name(self):
        session = Refactor.from_source("import os.path\nprint(os.sep)\n")
        assert session.remove_unused_imports() == 0

    def test_used_names(self):
        session = Refactor.from_source("a = b(c)\n__all__ = ['d']\n")
        assert used_names(session.tree) == {"a", "b", "c", "d", "__all__"}


class TestModernizePkgResourcesVersion:
    """Tests for the pkg_resources version lookup rewrite."""

    def test_attribute_style_lookup(self):
        source = (
            "import pkg_resources\n"
            "\n"
            "try:\n"
            "    __version__ = pkg_resources.get_distribution(__name__).version\n"
            "except pkg_resources.DistributionNotFound:\n"
            "    __version__ = 'dev'\n"
        )
        session = Refactor.from_source(source)
        assert session.modernize_pkg_resources_version() == 2
        assert session.get_code() == (
            "from importlib.metadata import version\n"
            "\n"
            "__version__ = version(__name__)\n"
        )

    def test_still_used_pkg_resources_import_is_kept(self):
        source = (
            "import pkg_resources\n"
            "from pkg_resources import DistributionNotFound, get_distribution\n"
            "\n"
            "try:\n"
            "    __version__ = get_distribution('mypkg').version\n"
            "except DistributionNotFound:\n"
            "    __version__ = 'unknown'\n"
            "\n"
            "DATA = pkg_resources.resource_filename('mypkg', 'data')\n"
        )
        session = Refactor.from_source(source)
        assert session.modernize_pkg_resources_version() == 2
        assert session.get_code() == (
            "import pkg_resources\n"
            "from importlib.metadata import version\n"
            "\n"
            "__version__ = version('mypkg')\n"
            "\n"
            "DATA = pkg_resources.resource_filename('mypkg', 'data')\n"
        )

    def test_custom_target(self):
        source = (
            "from pkg_resources import DistributionNotFound, get_distribution\n"
            "try:\n"
            "    __version__ = get_distribution(__name__).version\n"
            "except DistributionNotFound:\n"
            "    __version__ = None\n"
        )
        session = Refactor.from_source(source)
        session.modernize_pkg_resources_version("importlib_metadata", "version")
        assert session.get_code() == (
            "from importlib_metadata import version\n"
            "__version__ = version(__name__)\n"
        )

    def test_without_idiom_nothing_changes(self):
        session = Refactor.from_source("import pkg_resources\n")
        assert session.modernize_pkg_resources_version() == 0
        assert session.get_code() == "import pkg_resources\n"

    def test_try_doing_more_than_the_lookup_is_kept(self):
        """Statements beside the lookup and finally blocks would be lost, so the try stays."""
        source = (
            "from pkg_resources import DistributionNotFound, get_distribution\n"
            "\n"
            "try:\n"
            "    import extras\n"
            "    __version__ = get_distribution(__name__).version\n"
            "except DistributionNotFound:\n"
            "    __version__ = None\n"
            "finally:\n"
            "    cleanup()\n"
        )
        session = Refactor.from_source(source)
        assert session.modernize_pkg_resources_version() == 0
        assert session.get_code() == source

    def test_try_with_other_handlers_is_kept(self):
        source = (
            "from pkg_resources import DistributionNotFound, get_distribution\n"
            "try:\n"
            "    __version__ = get_distribution(__name__).version\n"
            "except DistributionNotFound:\n"
            "    __version__ = None\n"
            "except ValueError:\n"
            "    __version__ = 'bad'\n"
        )
        session = Refactor.from_source(source)
        assert session.modernize_pkg_resources_version() == 0
        assert session.get_code() == source

    def test_distribution_object_lookup_is_kept(self):
        """Only ``.version`` reads become a version() call."""
        source = (
            "from pkg_resources import DistributionNotFound, get_distribution\n"
            "try:\n"
            "    dist = get_distribution(__name__)\n"
            "except DistributionNotFound:\n"
            "    dist = None\n"
        )
        session = Refactor.from_source(source)
        assert session.modernize_pkg_resources_version() == 0
        assert session.get_code() == source
