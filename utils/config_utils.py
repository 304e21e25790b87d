# File: utils/config_utils.py
# YAML loading shared by the pipeline settings and user override files.

import logging
import os
from typing import Any, Dict, Optional

import yaml  # PyYAML parses the settings files

logger = logging.getLogger(__name__)


class ConfigLoaderError(Exception):
    """
    Raised when a settings file is absent, unparsable, or not a mapping of settings.
    """


def load_config(config_file_path: str, default_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Reads a YAML settings file into a dictionary.

    When default_config is given, a missing or malformed file falls back to it
    with a warning instead of failing; packaged defaults are loaded this way.

    Args:
        config_file_path (str): YAML file to read.
        default_config (Optional[Dict[str, Any]]): Fallback for a missing or malformed file.

    Returns:
        Dict[str, Any]: Top-level settings. An empty file yields an empty dict.

    Raises:
        ConfigLoaderError: If the file is missing or malformed without a fallback,
            or if its top level is not a mapping.
    """
    if not os.path.isfile(config_file_path):
        if default_config is None:
            raise ConfigLoaderError(f"Settings file '{config_file_path}' not found.")
        logger.warning(f"Settings file '{config_file_path}' not found; continuing with defaults.")
        return dict(default_config)

    try:
        with open(config_file_path, "r") as handle:
            loaded = yaml.safe_load(handle)
    except yaml.YAMLError as e:
        if default_config is None:
            raise ConfigLoaderError(f"Cannot parse settings file '{config_file_path}': {e}") from e
        logger.warning(f"Cannot parse settings file '{config_file_path}' ({e}); continuing with defaults.")
        return dict(default_config)

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigLoaderError(f"Settings file '{config_file_path}' must contain a mapping at the top level.")
    return loaded
