"""Utility modules"""

from .config_loader import load_config, get_section
from .errors import (
    ClaimDeskError,
    NotFoundError,
    ValidationError,
    ConflictError,
    AuthorizationError,
    ConfigurationError,
    SettingsStoreError,
    NotificationError
)

__all__ = [
    "load_config",
    "get_section",
    "ClaimDeskError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "AuthorizationError",
    "ConfigurationError",
    "SettingsStoreError",
    "NotificationError"
]
