"""Configuration management.

This module handles:
- Loading/saving the JSON configuration file
- Defaults and environment overrides for bridge credentials
- Mapping persistence (mappings live in the configuration file)
"""

import copy
import json
import logging
import os
from pathlib import Path

from core.errors import ConfigError
from models.mapping import Mapping, load_mappings

logger = logging.getLogger(__name__)

# Configuration file paths
CONFIG_ENV_VAR = 'LOXONE_HUE_CONFIG'
DEFAULT_CONFIG_FILE = Path.home() / '.loxone_hue' / 'config.json'

# Environment variables that override the stored bridge credentials
ENV_OVERRIDES = {
    'HUE_BRIDGE_IP': ('hue', 'bridge_ip'),
    'HUE_APPLICATION_KEY': ('hue', 'application_key'),
}

DEFAULT_CONFIG = {
    'server': {
        'host': '0.0.0.0',
        'port': 8080,
    },
    'hue': {
        'bridge_ip': '',
        'application_key': '',
    },
    'loxone': {
        'enabled': True,
        'miniserver_ip': '',
    },
    'logging': {
        'level': 'info',
        'format': 'console',
    },
    'gateway': {
        'allow_direct_ids': False,
        'client_queue_size': 100,
        'ping_interval': 30,
        'mapping_reload_interval': 2,
    },
    'mappings': [],
}


def config_path(path: str | Path | None = None) -> Path:
    """Resolve the configuration file path (argument, then environment, then default)."""
    if path:
        return Path(path).expanduser()
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_FILE


def _merge(defaults: dict, values: dict) -> dict:
    """Recursively merge values over a copy of defaults."""
    merged = copy.deepcopy(defaults)
    for key, value in values.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(config: dict, environ=None) -> dict:
    """Apply HUE_BRIDGE_IP / HUE_APPLICATION_KEY on top of the file values."""
    environ = os.environ if environ is None else environ
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            config.setdefault(section, {})[key] = value
    return config


def load_config(path: str | Path | None = None, environ=None) -> dict:
    """Load configuration, merged over the defaults.

    A missing file yields the defaults. Environment overrides are applied on
    top of the loaded values but are never written back by save_config
    unless the caller saves the returned dict.

    Returns:
        Configuration dict

    Raises:
        ConfigError: If the file exists but is not a valid JSON object
    """
    file = config_path(path)
    values = {}

    if file.exists():
        try:
            with open(file, 'r') as f:
                values = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(str(file), str(e)) from e
        if not isinstance(values, dict):
            raise ConfigError(str(file), "top level is not an object")

    config = _merge(DEFAULT_CONFIG, values)
    return apply_env_overrides(config, environ)


def save_config(config: dict, path: str | Path | None = None):
    """Save configuration to file.

    Args:
        config: Configuration dict to save
        path: Optional file path (defaults to config_path())
    """
    file = config_path(path)
    # Create config directory if it doesn't exist
    file.parent.mkdir(parents=True, exist_ok=True)

    with open(file, 'w') as f:
        json.dump(config, f, indent=2)
    logger.debug("Configuration saved to %s", file)


def mappings_from_config(config: dict) -> list[Mapping]:
    """Read the mapping list from a configuration dict, assigning missing ids."""
    return load_mappings(config.get('mappings') or [])


def save_mappings(config: dict, mappings: list[Mapping], path: str | Path | None = None):
    """Store mappings in the configuration dict and write it to disk."""
    config['mappings'] = [m.to_dict() for m in mappings]
    save_config(config, path)
