"""
Configuration
=============

YAML configuration merged over DEFAULT_CONFIG. The file is looked up at
$SHIFTFSM_CONFIG, falling back to ./shiftfsm.yaml; a missing file yields
the defaults.

Components are built from the resulting dict with create_* factories:

    config = load_config()
    database = create_database(config)
    events = create_events_table(config, database.metadata)
    builder = create_builder(config)
"""

import copy
import os
from pathlib import Path
from typing import Optional, Union

import yaml

from .state.graph import GraphBuilder, IdKind


CONFIG_ENV = "SHIFTFSM_CONFIG"
DEFAULT_CONFIG_PATH = "shiftfsm.yaml"

DEFAULT_CONFIG = {
    "database": {
        "url": "sqlite:///./state/shiftfsm.db",
        "echo": False,
    },
    "events": {
        "table": "events",
        "id_kind": "integer",
        "notify": {
            "backend": "local",
            "redis_url": "redis://localhost:6379/0",
        },
    },
    "fsm": {
        "require_metadata": False,
        "require_validation": False,
    },
    "verify": {
        "seed": None,
    },
}


def load_config(path: Optional[Union[str, Path]] = None) -> dict:
    """Load configuration, merged over the defaults"""
    config_path = Path(path or os.environ.get(CONFIG_ENV) or DEFAULT_CONFIG_PATH)
    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path.exists():
        with open(config_path) as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"config file must contain a mapping: {config_path}")
        _merge(config, loaded)
    return config


def _merge(base: dict, override: dict) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


def create_builder(config: dict, strict: bool = False) -> GraphBuilder:
    """Create a graph builder with the configured options"""
    fsm_config = config.get("fsm", {})
    return GraphBuilder(
        id_kind=IdKind(config.get("events", {}).get("id_kind", IdKind.INTEGER.value)),
        require_metadata=fsm_config.get("require_metadata", False),
        require_validation=fsm_config.get("require_validation", False),
        strict=strict,
    )
