"""
Configuration for TreeVault

Settings live in ``<base_path>/config.yaml`` and are merged over built-in
defaults. Relative storage paths resolve against the base path.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)


DEFAULT_BASE_PATH = Path.home() / ".treevault"
CONFIG_FILENAME = "config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "storage": {
        "db_path": "treevault.sqlite",
        "photos_dir": "photos",
        "backups_dir": "backups",
    },
    "export": {
        "include_photos": True,
        "include_audit_logs": True,
        "audit_log_days": 90,
        "archive_format": "zip",
    },
    "import": {
        "strategy": "skip",
        "create_backup_before_import": True,
        "import_photos": True,
        "import_audit_logs": True,
        "max_archive_mb": 100,
    },
    "backups": {
        "keep_count": 5,
    },
}


def get_base_path(data_dir: Optional[Union[str, Path]] = None) -> Path:
    """Get the base path for TreeVault data.

    Priority: --data-dir flag > TREEVAULT_BASE_PATH env var > default path.
    """
    if data_dir:
        return Path(data_dir)
    env_path = os.getenv("TREEVAULT_BASE_PATH")
    if env_path:
        return Path(env_path)
    return DEFAULT_BASE_PATH


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(base_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load config.yaml from a base directory, merged over the defaults.

    A missing file yields the defaults.

    Raises:
        ValueError: If the file is not a YAML mapping
    """
    config_path = Path(base_path) / CONFIG_FILENAME
    if not config_path.exists():
        logger.debug(f"No config at {config_path}, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    data = yaml.safe_load(config_path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a mapping")
    return _deep_merge(DEFAULT_CONFIG, data)


def write_default_config(base_path: Union[str, Path]) -> Path:
    """Write the default config.yaml unless one already exists."""
    config_path = Path(base_path) / CONFIG_FILENAME
    config_path.parent.mkdir(parents=True, exist_ok=True)
    if not config_path.exists():
        config_path.write_text(yaml.dump(DEFAULT_CONFIG, default_flow_style=False, sort_keys=False))
    return config_path


def get_value(config: Dict[str, Any], key: str) -> Any:
    """
    Look up a dotted key such as ``import.strategy``.

    Raises:
        KeyError: If any part of the key is missing
    """
    current: Any = config
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            raise KeyError(key)
        current = current[part]
    return current


def set_value(config_path: Union[str, Path], key: str, value: Any) -> Dict[str, Any]:
    """
    Set a dotted key in a config file and write it back.

    String values are parsed as YAML scalars, so ``"true"`` becomes ``True``
    and ``"30"`` becomes ``30``.

    Returns:
        The updated file contents
    """
    config_path = Path(config_path)
    data = {}
    if config_path.exists():
        data = yaml.safe_load(config_path.read_text()) or {}

    if isinstance(value, str):
        value = yaml.safe_load(value) if value.strip() else value

    keys = key.split(".")
    current = data
    for part in keys[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[keys[-1]] = value

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return data


def resolve_path(base_path: Union[str, Path], value: Union[str, Path]) -> Path:
    """Resolve a configured path against the base directory."""
    path = Path(value).expanduser()
    return path if path.is_absolute() else Path(base_path) / path
