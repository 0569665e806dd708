"""Centralized error definitions for portalauth.

This module provides a unified error hierarchy and user-friendly error handling
for the credential lifecycle, the account configuration store and the HTTP
collaborators.

Usage:
    from portalauth.errors import (
        PortalAuthError,
        AppTokenError,
        handle_error,
    )

    try:
        token = await manager.get_token(account_id, app_id, ["crm.objects.read"])
    except PortalAuthError as e:
        user_message = handle_error(e)
        print(user_message)
"""

from __future__ import annotations

from typing import Any, Optional

from portalauth.errors.user_messages import (
    format_error_for_user,
    get_recovery_suggestion,
    get_user_message,
)


# =============================================================================
# Base Error
# =============================================================================


class PortalAuthError(Exception):
    """Base exception for all portalauth errors.

    Attributes:
        code: Error code for categorization
        user_message: User-friendly message (optional override)
        recoverable: Whether the error is potentially recoverable
        details: Additional error details for debugging
    """

    code: str = "PORTALAUTH_ERROR"
    default_message: str = "An unexpected error occurred"
    recoverable: bool = True

    def __init__(
        self,
        message: str | None = None,
        *,
        user_message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message or self.default_message
        self._user_message = user_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        """Get user-friendly message."""
        if self._user_message:
            return self._user_message
        return get_user_message(self)

    @property
    def recovery_suggestion(self) -> str:
        """Get recovery suggestion."""
        return get_recovery_suggestion(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


# =============================================================================
# Credential Errors
# =============================================================================


class AuthResolutionError(PortalAuthError):
    """Stored credentials for an account are missing or unusable."""

    code = "AUTH_RESOLUTION_ERROR"
    default_message = "Could not resolve credentials for account"
    recoverable = False

    def __init__(
        self,
        message: str | None = None,
        *,
        account_id: Optional[int] = None,
        auth_type: Optional[str] = None,
    ) -> None:
        self.account_id = account_id
        self.auth_type = auth_type
        details: dict[str, Any] = {}
        if account_id is not None:
            details["account_id"] = account_id
        if auth_type is not None:
            details["auth_type"] = auth_type
        super().__init__(message, details=details)


class TransportError(PortalAuthError):
    """Network or remote failure while talking to the API."""

    code = "TRANSPORT_ERROR"
    default_message = "Request to the remote API failed"
    recoverable = True

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: Optional[int] = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
        response_body: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.method = method
        self.url = url
        self.response_body = response_body
        details = {
            key: value
            for key, value in {
                "status_code": status_code,
                "method": method,
                "url": url,
                "response_body": response_body,
            }.items()
            if value is not None
        }
        super().__init__(message, details=details)


class ScopeInsufficientError(PortalAuthError):
    """The account or app lacks the requested scopes even after refresh."""

    code = "SCOPE_INSUFFICIENT"
    default_message = "Token does not cover the requested scopes"
    recoverable = False

    def __init__(
        self,
        missing: list[str],
        *,
        message: str | None = None,
    ) -> None:
        self.missing = sorted(missing)
        super().__init__(
            message or f"Missing scopes: {', '.join(self.missing)}",
            details={"missing_scopes": self.missing},
        )


class AppTokenError(PortalAuthError):
    """Obtaining an app-scoped token failed.

    Wraps the underlying error (available as ``__cause__``) together with the
    account and app the token was requested for.
    """

    code = "APP_TOKEN_ERROR"
    default_message = "Failed to obtain an app token"

    def __init__(
        self,
        account_id: int,
        app_id: int,
        detail: str,
        *,
        recoverable: bool = True,
    ) -> None:
        self.account_id = account_id
        self.app_id = app_id
        self.detail = detail
        self.recoverable = recoverable
        super().__init__(
            f"Error fetching app token for account {account_id}, app {app_id}: {detail}",
            details={"account_id": account_id, "app_id": app_id, "detail": detail},
        )


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PortalAuthError):
    """Base error for configuration issues."""

    code = "CONFIGURATION_ERROR"
    default_message = "Configuration error"
    recoverable = True


class InvalidConfigError(ConfigurationError):
    """Configuration is invalid."""

    code = "INVALID_CONFIG"
    default_message = "Invalid configuration"


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""

    code = "MISSING_CONFIG"
    default_message = "Missing required configuration"


class AccountNotFoundError(ConfigurationError):
    """No configured account matches the given name or id."""

    code = "ACCOUNT_NOT_FOUND"
    default_message = "Account not found in configuration"

    def __init__(self, name_or_id: Any, *, message: str | None = None) -> None:
        self.name_or_id = name_or_id
        super().__init__(
            message or f"No account matching '{name_or_id}' in configuration",
            details={"account": str(name_or_id)},
        )


class ConfigFileError(ConfigurationError):
    """Reading or writing the config file failed."""

    code = "CONFIG_FILE_ERROR"
    default_message = "Config file could not be accessed"

    def __init__(self, operation: str, path: Any, *, message: str | None = None) -> None:
        self.operation = operation
        self.path = str(path) if path is not None else None
        action = {"read": "reading from", "write": "writing to"}.get(
            operation, "accessing"
        )
        target = f'"{self.path}"' if self.path else "an unknown file"
        text = f"An error occurred while {action} {target}."
        if message:
            text = f"{text} {message}"
        super().__init__(text, details={"operation": operation, "path": self.path})


# =============================================================================
# Remote Content Errors
# =============================================================================


class GitHubFetchError(PortalAuthError):
    """Fetching content from GitHub failed."""

    code = "GITHUB_FETCH_ERROR"
    default_message = "Failed to fetch content from GitHub"
    recoverable = True


# =============================================================================
# Error Handler
# =============================================================================


def handle_error(error: Exception) -> str:
    """Handle an error and return a user-friendly message.

    Args:
        error: The exception to handle

    Returns:
        User-friendly error message with recovery suggestion
    """
    return format_error_for_user(error)


def is_recoverable(error: Exception) -> bool:
    """Check if an error is potentially recoverable.

    Args:
        error: The exception to check

    Returns:
        True if the error is recoverable
    """
    if isinstance(error, PortalAuthError):
        return error.recoverable
    return False


__all__ = [
    # Base
    "PortalAuthError",
    # Credentials
    "AuthResolutionError",
    "TransportError",
    "ScopeInsufficientError",
    "AppTokenError",
    # Configuration
    "ConfigurationError",
    "InvalidConfigError",
    "MissingConfigError",
    "AccountNotFoundError",
    "ConfigFileError",
    # Remote content
    "GitHubFetchError",
    # Handlers
    "handle_error",
    "is_recoverable",
]
