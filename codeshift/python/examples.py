"""Example legacy sources and recipes for tests and demos."""

# Python 2 era module exercising every high-level refactoring
LEGACY_MODULE = '''"""Settings loader."""
import os
from ConfigParser import RawConfigParser
from pkg_resources import DistributionNotFound, get_distribution

try:
    __version__ = get_distribution(__name__).version
except DistributionNotFound:
    __version__ = "0.0.0"


def getConfig(path):
    parser = RawConfigParser()
    parser.read(path)
    return parser


class settingsLoader:
    def load(self, path):
        return getConfig(path)
'''

DEMO_RECIPE = """ops:
  - op: modernize_imports
  - op: pkg_resources_version
    args:
      target_module: importlib.metadata
      target_function: version
  - op: rename_function
    args: {old: getConfig, new: get_config}
  - op: rename_class
    args: {old: settingsLoader, new: SettingsLoader}
  - op: remove_unused_imports
meta:
  description: Python 2 cleanup demo
"""
