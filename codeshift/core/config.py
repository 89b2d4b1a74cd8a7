"""Centralized configuration loading for codeshift.

This module provides utilities for loading and accessing configuration from
codeshift.json with support for environment variable fallbacks and default
values.

Recognised keys::

    {
      "generator": {"indent_width": 4},
      "modernize": {
        "import_map": {"ConfigParser": "configparser"},
        "version_module": "importlib.metadata",
        "version_function": "version"
      }
    }
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_CONFIG_PATH = "codeshift.json"
ENV_PREFIX = "CODESHIFT"


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from JSON file.

    Returns empty dict if file doesn't exist or is invalid.

    Args:
        config_path: Path to the config file (default: $CODESHIFT_CONFIG or "codeshift.json")

    Returns:
        Configuration dictionary, or empty dict if file not found/invalid
    """
    if config_path is None:
        config_path = os.environ.get(f"{ENV_PREFIX}_CONFIG", DEFAULT_CONFIG_PATH)
    path = Path(config_path)

    if not path.exists():
        return {}

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError):
        # Return empty dict on error, allowing code to use defaults
        return {}

    return data if isinstance(data, dict) else {}


def env_var_name(keys: List[str]) -> str:
    """Environment variable that overrides a missing config key.

    ``["modernize", "version_module"]`` maps to
    ``CODESHIFT_MODERNIZE_VERSION_MODULE``.
    """
    return "_".join([ENV_PREFIX] + [key.upper() for key in keys])


def get_config_value(
    keys: List[str], default: Any = None, config: Optional[Dict[str, Any]] = None
) -> Any:
    """Look up a codeshift setting by its key path.

    The JSON file wins; a key absent from it (or explicitly null) falls back
    to the variable named by env_var_name(), then to ``default``. Environment
    values are plain strings, so ``modernize.import_map`` can only come from
    the file.

    Args:
        keys: Key path, e.g. ["generator", "indent_width"]
        default: Value used when neither the file nor the environment sets it
        config: Already-loaded config (load_config() is called otherwise)

    Returns:
        The configured value, the environment string, or default
    """
    node: Any = load_config() if config is None else config
    for key in keys:
        node = node.get(key) if isinstance(node, dict) else None
        if node is None:
            break
    if node is not None:
        return node
    return os.environ.get(env_var_name(keys), default)


def get_int_config_value(keys: List[str], default: int, config: Optional[Dict[str, Any]] = None) -> int:
    """Like get_config_value, coercing the result to int.

    Environment fallbacks always arrive as strings; an unparseable value falls
    back to the default.
    """
    value = get_config_value(keys, default=default, config=config)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
