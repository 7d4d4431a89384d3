"""Custom exceptions for the claims engine"""


class ClaimDeskError(Exception):
    """Base exception for claims engine errors"""
    pass


class NotFoundError(ClaimDeskError):
    """Missing item, lost report, claim, match or challenge"""
    pass


class ValidationError(ClaimDeskError):
    """Illegal state transition or invalid input"""
    pass


class ConflictError(ValidationError):
    """Record changed underneath the caller (lost race, item no longer available)"""
    pass


class AuthorizationError(ClaimDeskError):
    """Acting on another user's claim"""
    pass


class ConfigurationError(ClaimDeskError):
    """Configuration loading errors"""
    pass


class SettingsStoreError(ClaimDeskError):
    """Settings persistence errors"""
    pass


class NotificationError(ClaimDeskError):
    """Notification queue errors"""
    pass
