# share_guard/exceptions.py
"""
Exceptions raised by share_guard components.
"""

from typing import Any


class ShareGuardError(Exception):
    """Base exception for all share_guard errors."""

    status_code = 500
    error_code = "share_guard_error"

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# Config exceptions
class ConfigError(ShareGuardError):
    """Base exception for configuration-related errors."""

    error_code = "config_error"


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    status_code = 400
    error_code = "config_validation_error"

    def __init__(
        self, message: str, field: str | None = None, value: Any = None, **kwargs: Any
    ):
        details = {"field": field, "value": value, **kwargs}
        super().__init__(message, details)
        self.field = field
        self.value = value


# Ban ledger
class LedgerError(ShareGuardError):
    """The ban ledger cannot be used (backing store unusable)."""

    error_code = "ledger_error"


class LedgerPersistenceError(LedgerError):
    """Writing the ledger file failed; the in-memory change was kept."""

    error_code = "ledger_persistence_error"


# Activity log
class ActivityLogError(ShareGuardError):
    """The accumulated connection log could not be read."""

    error_code = "activity_log_error"


# Gateway panel
class PanelError(ShareGuardError):
    """A panel request failed or returned an unsuccessful response."""

    status_code = 502
    error_code = "panel_error"


class PanelAuthError(PanelError):
    """Login to the panel was rejected or returned no session."""

    status_code = 401
    error_code = "panel_auth_error"


class IdentityNotFoundError(PanelError):
    """The identity is not present on the panel."""

    status_code = 404
    error_code = "identity_not_found"


# Firewall
class FirewallError(ShareGuardError):
    """A firewall command failed."""

    error_code = "firewall_error"


class InvalidAddressError(FirewallError, ValueError):
    """The value is not an IP address and was never passed to the firewall.

    Subclasses ValueError so callers validating input can catch either.
    """

    status_code = 400
    error_code = "invalid_address"
