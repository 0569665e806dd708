"""User-friendly error messages for portalauth.

This module provides human-readable error messages and recovery suggestions
for all error types so CLI users never see raw technical errors.

Privacy Note:
- Error messages NEVER include secrets (API keys, access keys, tokens)
- Detail keys that may carry secrets are dropped from CLI output
"""

from __future__ import annotations

from typing import Any


# =============================================================================
# Error Message Catalog
# =============================================================================

ERROR_MESSAGES: dict[str, str] = {
    # Credential errors
    "AUTH_RESOLUTION_ERROR": "The stored credentials for this account are missing or invalid.",
    "TRANSPORT_ERROR": "The request to the remote API failed.",
    "SCOPE_INSUFFICIENT": "The token does not have the permissions this command needs.",
    "APP_TOKEN_ERROR": "We couldn't obtain a token for this app.",
    # Configuration errors
    "CONFIGURATION_ERROR": "There's a configuration issue.",
    "INVALID_CONFIG": "The configuration is invalid.",
    "MISSING_CONFIG": "Required configuration is missing.",
    "ACCOUNT_NOT_FOUND": "That account isn't in your configuration.",
    "CONFIG_FILE_ERROR": "The config file couldn't be read or written.",
    # Remote content errors
    "GITHUB_FETCH_ERROR": "We couldn't download the requested content from GitHub.",
    # Generic
    "PORTALAUTH_ERROR": "An unexpected error occurred. Please try again.",
    "UNKNOWN_ERROR": "Something went wrong. Please try again.",
}


# =============================================================================
# Recovery Suggestions
# =============================================================================

RECOVERY_SUGGESTIONS: dict[str, str] = {
    # Credential errors
    "AUTH_RESOLUTION_ERROR": "Re-authenticate the account and update its entry in the config file.",
    "TRANSPORT_ERROR": "Check your network connection and retry the command.",
    "SCOPE_INSUFFICIENT": "Generate a new personal access key that includes the required scopes.",
    "APP_TOKEN_ERROR": "Retry the command. If it keeps failing, check the app's permissions.",
    # Configuration errors
    "CONFIGURATION_ERROR": "List configured accounts: portalauth accounts list",
    "INVALID_CONFIG": "Fix the reported entry in the config file and retry.",
    "MISSING_CONFIG": "Create a config file or set PORTALAUTH_ACCOUNT_ID and a credential variable.",
    "ACCOUNT_NOT_FOUND": "Check the name or id with: portalauth accounts list",
    "CONFIG_FILE_ERROR": "Check that the config file exists and is readable and writable.",
    # Remote content errors
    "GITHUB_FETCH_ERROR": "Check the repository path and ref, or set GITHUB_TOKEN for private repositories.",
    # Generic
    "PORTALAUTH_ERROR": "If this persists, run the command again with --verbose and report the output.",
    "UNKNOWN_ERROR": "Run the command again with --verbose for more details.",
}

_SENSITIVE_DETAIL_KEYS = ("token", "api_key", "personal_access_key", "client_secret", "response_body")


# =============================================================================
# Helper Functions
# =============================================================================


def _error_code(error: Any) -> str:
    if hasattr(error, "code"):
        return error.code
    if isinstance(error, str):
        return error
    return type(error).__name__.upper()


def get_user_message(error: Any) -> str:
    """Get user-friendly message for an error.

    Args:
        error: The error (can be Exception or error code string)

    Returns:
        User-friendly error message
    """
    return ERROR_MESSAGES.get(_error_code(error), ERROR_MESSAGES["UNKNOWN_ERROR"])


def get_recovery_suggestion(error: Any) -> str:
    """Get recovery suggestion for an error.

    Args:
        error: The error (can be Exception or error code string)

    Returns:
        Recovery suggestion
    """
    return RECOVERY_SUGGESTIONS.get(
        _error_code(error), RECOVERY_SUGGESTIONS["UNKNOWN_ERROR"]
    )


def format_error_for_user(error: Any) -> str:
    """Format a complete user-friendly error message.

    Args:
        error: The error to format

    Returns:
        Complete error message with recovery suggestion
    """
    message = get_user_message(error)
    suggestion = get_recovery_suggestion(error)

    return f"{message}\n\nSuggestion: {suggestion}"


def format_error_for_cli(error: Any) -> str:
    """Format error for CLI output.

    Args:
        error: The error to format

    Returns:
        CLI-formatted error message
    """
    code = getattr(error, "code", "ERROR")
    lines = [
        f"Error [{code}]: {get_user_message(error)}",
    ]
    if isinstance(error, Exception) and str(error):
        lines.append(f"  {error}")
    lines.extend(["", f"Suggestion: {get_recovery_suggestion(error)}"])

    details = getattr(error, "details", None)
    if details:
        visible = {k: v for k, v in details.items() if k not in _SENSITIVE_DETAIL_KEYS}
        if visible:
            lines.append("")
            lines.append("Details:")
            for key, value in visible.items():
                lines.append(f"  {key}: {value}")

    return "\n".join(lines)


__all__ = [
    "ERROR_MESSAGES",
    "RECOVERY_SUGGESTIONS",
    "get_user_message",
    "get_recovery_suggestion",
    "format_error_for_user",
    "format_error_for_cli",
]
