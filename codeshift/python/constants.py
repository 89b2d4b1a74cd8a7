"""Python modernization constants shared by the refactorings and the recipe runner.

Kept in a leaf module so the CLI, recipes and modernize code can import them
without pulling each other in.
"""

# Deprecated Python 2 era modules and their Python 3 replacements
IMPORT_MODERNIZATION_MAP = {
    "imp": "importlib",
    "optparse": "argparse",
    "ConfigParser": "configparser",
    "StringIO": "io",
    "cPickle": "pickle",
    "urllib2": "urllib.request",
    "urlparse": "urllib.parse",
}

# Default replacement for the pkg_resources version lookup idiom
DEFAULT_VERSION_MODULE = "importlib.metadata"
DEFAULT_VERSION_FUNCTION = "version"

PKG_RESOURCES_MODULE = "pkg_resources"
PKG_RESOURCES_LOOKUP = "get_distribution"
PKG_RESOURCES_MISSING = "DistributionNotFound"

# Imports that must never be reported as unused
ALWAYS_USED_MODULES = {"__future__"}
