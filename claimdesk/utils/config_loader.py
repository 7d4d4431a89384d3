"""Configuration file loader with validation"""

import yaml
import os
from pathlib import Path
from typing import Dict, Any
from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "engine.yaml"

REQUIRED_KEYS = ['version', 'matching', 'concurrency', 'fraud', 'challenge', 'notifications', 'settings_store']


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Load YAML configuration file with validation.
    Environment overrides are applied on top of the file contents.

    Args:
        config_path: Path to configuration file (defaults to CLAIMDESK_CONFIG
            or config/engine.yaml at the repository root)

    Returns:
        Dictionary with configuration

    Raises:
        ConfigurationError: If file doesn't exist or invalid YAML
    """
    config_path = config_path or os.getenv("CLAIMDESK_CONFIG") or str(DEFAULT_CONFIG_PATH)

    config_file = Path(config_path)
    if not config_file.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Error loading configuration: {e}")

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration file is empty or malformed: {config_path}")

    missing_keys = [key for key in REQUIRED_KEYS if key not in config]
    if missing_keys:
        raise ConfigurationError(f"Missing required configuration keys: {missing_keys}")

    return apply_env_overrides(config)


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Overlay environment variables on a loaded configuration

    Args:
        config: Configuration dictionary

    Returns:
        The same dictionary with overrides applied
    """
    try:
        if os.getenv("FRAUD_HIGH_RISK_THRESHOLD"):
            config['fraud']['high_risk_threshold'] = float(os.getenv("FRAUD_HIGH_RISK_THRESHOLD"))
        if os.getenv("FRAUD_MONTHLY_LIMIT"):
            config['fraud']['monthly_limit'] = int(os.getenv("FRAUD_MONTHLY_LIMIT"))
    except ValueError as e:
        raise ConfigurationError(f"Invalid numeric override in environment: {e}")

    if os.getenv("STATE_BACKEND"):
        config['settings_store']['backend'] = os.getenv("STATE_BACKEND")
    if os.getenv("NOTIFICATION_BACKEND"):
        config['notifications']['backend'] = os.getenv("NOTIFICATION_BACKEND")
    if os.getenv("REDIS_URL"):
        config['redis_url'] = os.getenv("REDIS_URL")

    return config


def get_section(config: Dict[str, Any], section: str) -> Dict[str, Any]:
    """
    Get one named configuration section

    Args:
        config: Full configuration dictionary
        section: Section name (e.g. "fraud")

    Returns:
        Section dictionary (empty if absent)
    """
    return config.get(section) or {}
