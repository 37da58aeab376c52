"""
Configuration loading for the tracking manager.
"""

import copy
import logging
import os

import yaml

logger = logging.getLogger(__name__)


DEFAULT_CONFIG = {
    'tracker': {
        'window_size': 5,
        'gate_threshold': 2.0,
        'match_threshold': 0.3,
        'algorithm': 'KALMAN_CV',
        'assignment': 'min_cost',
        'on_update_failure': 'keep',
        'frame_order': 'nanosec',
        'gating_workers': 1
    },
    'track': {
        'max_missed': 10,
        'history_size': 16,
        'initial_position_var': 10.0,
        'initial_velocity_var': 100.0
    },
    'process_noise': {
        'position': 1.0,
        'velocity': 10.0
    },
    'measurement_noise': {
        'position': 4.0
    }
}


def load_config(config_path=None):
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, looks for config.yaml in:
                    1. Current directory
                    2. Parent directory

    Returns:
        Dict with configuration values, or defaults if no config found.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is None:
        for path in ('config.yaml', '../config.yaml'):
            if os.path.exists(path):
                config_path = path
                break

    if config_path and os.path.exists(config_path):
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
        # Merge with defaults, section by section
        for key in config:
            if key in loaded:
                config[key].update(loaded[key])
        logger.info("Loaded config from %s", config_path)

    return config


# Global config (loaded lazily or via set_config)
_config = None


def get_config():
    """Get current configuration, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config):
    """Set configuration dict."""
    global _config
    _config = config


def get_param(section, key, default=None, config=None):
    """Get parameter from config (the global one unless given)."""
    config = config if config is not None else get_config()
    return config.get(section, {}).get(key, default)
