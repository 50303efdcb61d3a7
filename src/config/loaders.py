"""
Configuration file loaders and path resolution.

This module handles:
- Locating the tutor config file (explicit path, LIVE_TUTOR_CONFIG, or the default)
- YAML loading with ${VAR} / $VAR environment variable expansion
"""

import os
from pathlib import Path
from typing import Optional

import yaml


# Project root directory (parent of src/)
_PROJ_DIR = Path(__file__).parent.parent.parent.resolve()

DEFAULT_CONFIG_PATH = "config/tutor.yaml"
CONFIG_PATH_ENV = "LIVE_TUTOR_CONFIG"


def resolve_config_path(path: Optional[str] = None) -> str:
    """
    Resolve the configuration file path to an absolute path.

    Precedence: explicit ``path`` > ``LIVE_TUTOR_CONFIG`` > ``config/tutor.yaml``.
    Relative paths are resolved against the project root, so loading does not
    depend on the current working directory.
    """
    chosen = path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    if not os.path.isabs(chosen):
        return os.path.join(_PROJ_DIR, chosen)
    return chosen


def load_yaml_with_env_expansion(path: str) -> dict:
    """
    Load a YAML file after expanding environment variable references.

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        TypeError: If the document is not a mapping
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = f.read()
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found at: {path}")

    try:
        config_data = yaml.safe_load(os.path.expandvars(raw))
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Error parsing YAML configuration: {e}")

    if config_data is None:
        return {}
    if not isinstance(config_data, dict):
        raise TypeError(f"Configuration root must be a mapping, got {type(config_data).__name__}")
    return config_data
