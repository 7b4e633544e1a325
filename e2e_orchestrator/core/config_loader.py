"""
Configuration file loading.

Reads a YAML (or JSON) configuration file and applies its settings on top
of the environment-derived defaults.
"""

import shlex
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .config import Config
from .exceptions import ConfigurationError

PATH_FIELDS = {
    "project_root",
    "tests_dir",
    "suites_dir",
    "results_dir",
    "allure_results_dir",
    "data_dir",
    "logs_dir",
}


def read_config_file(config_file: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a configuration file into a dictionary.

    Args:
        config_file: Path to a .yaml, .yml or .json file

    Returns:
        Parsed settings

    Raises:
        ConfigurationError: If the file is missing, unparsable or not a mapping
    """
    path = Path(config_file)
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {path}", source=str(path)
        )

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid configuration file {path}: {e}", source=str(path)
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration file must contain a mapping: {path}", source=str(path)
        )
    return data


def load_config(config_file: Optional[Union[str, Path]] = None) -> Config:
    """
    Build a Config from defaults, environment and an optional config file.

    Relative directory settings in the file are resolved against the
    file's project_root (or the current directory).

    Args:
        config_file: Optional path to a configuration file

    Returns:
        Loaded configuration
    """
    if config_file is None:
        return Config.from_env()

    settings = read_config_file(config_file)
    known = {f.name for f in fields(Config)}
    unknown = sorted(set(settings) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration keys: {', '.join(unknown)}",
            setting=unknown[0],
            source=str(config_file),
        )

    root = Path(settings.get("project_root") or Path.cwd())
    kwargs: Dict[str, Any] = {}
    for key, value in settings.items():
        if key in PATH_FIELDS and value is not None:
            value = Path(value)
            if key != "project_root" and not value.is_absolute():
                value = root / value
        elif key in ("runner_command", "report_command") and isinstance(value, str):
            value = shlex.split(value)
        kwargs[key] = value

    return Config(**kwargs)
