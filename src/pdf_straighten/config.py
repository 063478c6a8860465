"""Configuration loading for the command-line tools."""

import copy
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import ConfigError

# Try to import tomllib (Python 3.11+) or fallback to tomli
try:
    import tomllib
except ImportError:
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("config.toml")

DEFAULT_CONFIG: Dict[str, Any] = {
    "straighten": {
        "max_angle": 2.5,
        "include_90_degrees": True,
        "allow_90_degrees": False,
        "orient": False,
        "jpeg_quality": 95,
        "workers": 1,
        "output": "straightened.pdf",
    },
    "debug": {
        "log_target": "stdout",
    },
}


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` onto a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from a TOML file over the defaults.

    Without a path, ``config.toml`` in the working directory is used if it
    exists, otherwise the defaults are returned.
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return copy.deepcopy(DEFAULT_CONFIG)
        config_path = DEFAULT_CONFIG_PATH

    # Ensure it's a Path object
    config_path = Path(config_path)

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Error loading config {config_path}: {e}") from e

    return merge_config(DEFAULT_CONFIG, data)
