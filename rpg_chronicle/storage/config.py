"""Global app configuration (narrator and image connections, game defaults)."""

import copy
import json
import os
from pathlib import Path
from typing import Any

from .core import data_dir

_CONFIG_DEFAULTS: dict[str, Any] = {
    "narrator": {
        "provider_url": "http://localhost:5001",
        "api_key": "",
        "provider_format": "koboldcpp",
        "model": "",
        "timeout": 120,
    },
    "images": {
        "enabled": False,
        "provider_url": "",
        "api_key": "",
        "model": "",
        "size": "1024x1024",
        "timeout": 120,
    },
    "language": "en",
    "event_timer": 3,
}

# Environment variables win over config.json and are never written back
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "NARRATOR_URL": ("narrator", "provider_url"),
    "NARRATOR_API_KEY": ("narrator", "api_key"),
    "NARRATOR_MODEL": ("narrator", "model"),
    "IMAGE_URL": ("images", "provider_url"),
    "IMAGE_API_KEY": ("images", "api_key"),
}

_GROUPS = ("narrator", "images")
_SCALARS = ("language", "event_timer")


def _config_path() -> Path:
    return data_dir() / "config.json"


def _merge(config: dict[str, Any], fields: dict[str, Any]) -> None:
    for group in _GROUPS:
        if isinstance(fields.get(group), dict):
            config[group].update(
                {k: v for k, v in fields[group].items() if k in config[group]}
            )
    for key in _SCALARS:
        if key in fields:
            config[key] = fields[key]


def _stored_config() -> dict[str, Any]:
    config = copy.deepcopy(_CONFIG_DEFAULTS)
    path = _config_path()
    if path.is_file():
        _merge(config, json.loads(path.read_text()))
    return config


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values and env overrides."""
    config = _stored_config()
    for env_name, (group, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            config[group][key] = value
    return config


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config.

    Connection groups are merged key by key; scalars are overwritten.
    """
    config = _stored_config()
    _merge(config, fields)
    _config_path().write_text(json.dumps(config, indent=2))
    return get_config()
