"""YAML config loader and dotted-key lookup."""

import hashlib
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel

from orderbook.config.schema import TrackerConfig


def load_config(path: str | Path) -> TrackerConfig:
    """Load and validate config from a YAML file.

    A missing or empty file yields the defaults.
    """
    path = Path(path)
    if not path.exists():
        return TrackerConfig()
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return TrackerConfig(**raw)


def config_hash(config: TrackerConfig) -> str:
    """Compute a deterministic SHA256 hash of the config."""
    data = config.model_dump_json(indent=None)
    return hashlib.sha256(data.encode()).hexdigest()[:16]


def get_config_value(config: TrackerConfig, dotted_key: str) -> Any:
    """Get a config value by dotted key path. E.g. 'fetch.max_attempts'."""
    obj: Any = config
    for part in dotted_key.split("."):
        if isinstance(obj, dict):
            if part not in obj:
                raise KeyError(f"Config key not found: {dotted_key}")
            obj = obj[part]
        elif isinstance(obj, BaseModel) and part in type(obj).model_fields:
            obj = getattr(obj, part)
        else:
            raise KeyError(f"Config key not found: {dotted_key}")
    return obj
