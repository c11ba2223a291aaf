"""Configuration loading.

Merges JSON config from:
1. ~/.config/col-terrain/col-terrain.json (global, loaded first)
2. ./col-terrain.json (local, overrides global)

Environment variables COL_TERRAIN_MODE and COL_TERRAIN_QUALITY fill in the
mode and quality when no config file sets them.
"""

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "col-terrain"
CONFIG_PATH = CONFIG_DIR / "col-terrain.json"
LOCAL_CONFIG_PATH = Path("col-terrain.json")

ENV_OVERRIDES = {
    "mode": "COL_TERRAIN_MODE",
    "quality": "COL_TERRAIN_QUALITY",
}

DEFAULTS = {
    "width_segments": 32,
    "horizontal_exaggeration": 1.0,
    "vertical_exaggeration": 1.5,
    "mode": "auto",
    "quality": "auto",
    "seed": None,
}


def load_config() -> dict:
    """Load merged configuration; an empty dict if no files or variables are set."""
    config = {}
    for config_path in [CONFIG_PATH, LOCAL_CONFIG_PATH]:
        if config_path.exists():
            try:
                with config_path.open() as f:
                    config.update(json.load(f))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Ignoring unreadable config %s: %s", config_path, e)
                continue

    for key, env_var in ENV_OVERRIDES.items():
        if key not in config and os.environ.get(env_var):
            config[key] = os.environ[env_var]
    return config


def get_setting(config: dict, key: str):
    """Value from config, falling back to DEFAULTS."""
    return config.get(key, DEFAULTS[key])
