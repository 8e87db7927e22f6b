"""
Configuration loader for the remote healthcare registry.

Loads config.yaml and provides the settings used by the command-line tool
to open the registry.

Precedence (lowest to highest):
    1. Hardcoded Python fallbacks (always present)
    2. config.yaml registry:/notifications:/logging: sections
    3. Environment variables REMOTE_HEALTHCARE_*
    4. Command-line options
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.utils import resolve_env_vars


def _config_search_paths():
    return [
        os.environ.get("REMOTE_HEALTHCARE_CONFIG", ""),
        "config/config.yaml",
        str(Path(__file__).parent / "config.yaml"),
    ]


_cached_config: Optional[Dict] = None


def _find_config_file() -> Optional[Path]:
    """Find config.yaml from search paths."""
    for path_str in _config_search_paths():
        if not path_str:
            continue
        p = Path(path_str)
        if p.is_file():
            return p
    return None


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and cache the full config.yaml.

    Args:
        config_path: Optional explicit path. If None, uses search order.

    Returns:
        Full parsed YAML dict with ${VAR:default} values resolved.
        Returns empty dict if no config found.
    """
    global _cached_config

    if _cached_config is not None and config_path is None:
        return _cached_config

    if config_path:
        p = Path(config_path)
    else:
        p = _find_config_file()

    if p is None or not p.is_file():
        _cached_config = {}
        return _cached_config

    with open(p, "r", encoding="utf-8") as f:
        _cached_config = resolve_env_vars(yaml.safe_load(f) or {})

    return _cached_config


def reload_config():
    """Force reload of config (clears cache)."""
    global _cached_config
    _cached_config = None


def get_registry_settings(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Return a flat dict of registry settings.

    Returns:
        Dict with keys authority, db_path, caller, notification_log_path,
        log_level and log_format.
    """
    cfg = load_config(config_path)

    registry = cfg.get("registry") or {}
    notifications = cfg.get("notifications") or {}
    logging_cfg = cfg.get("logging") or {}

    defaults: Dict[str, Any] = {
        "authority": None,
        "db_path": "data/registry.db",
        "caller": None,
        "notification_log_path": None,
        "log_level": "WARNING",
        "log_format": "console",
    }

    yaml_mapping = {
        "authority": registry.get("authority"),
        "db_path": registry.get("db_path"),
        "caller": registry.get("caller"),
        "notification_log_path": notifications.get("log_path"),
        "log_level": logging_cfg.get("level"),
        "log_format": logging_cfg.get("format"),
    }

    for key, value in yaml_mapping.items():
        if value is not None:
            defaults[key] = value

    env_mapping = {
        "REMOTE_HEALTHCARE_AUTHORITY": "authority",
        "REMOTE_HEALTHCARE_DB_PATH": "db_path",
        "REMOTE_HEALTHCARE_CALLER": "caller",
        "REMOTE_HEALTHCARE_NOTIFICATION_LOG": "notification_log_path",
        "REMOTE_HEALTHCARE_LOG_LEVEL": "log_level",
        "REMOTE_HEALTHCARE_LOG_FORMAT": "log_format",
    }

    for env_var, key in env_mapping.items():
        val = os.environ.get(env_var)
        if val:
            defaults[key] = val

    defaults["log_level"] = str(defaults["log_level"]).upper()
    if defaults["log_format"] not in ("json", "console"):
        defaults["log_format"] = "console"

    return defaults
