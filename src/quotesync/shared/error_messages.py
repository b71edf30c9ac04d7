"""
quotesync Error Messages Module

This module provides user-friendly error messages for quotesync errors.
Classified API errors surface these messages to the application instead of
raw server text or stack traces.

The module follows these principles:
- One Source of Truth: All error messages are centralized here
- User-friendly: Messages are clear and actionable
- Contextual: Messages can include variable substitution
"""

from __future__ import annotations

from typing import Any

from .errors import ErrorCode

# Default language for error messages
DEFAULT_LANGUAGE = "en"

ERROR_MESSAGES: dict[str, dict[ErrorCode, str]] = {
    "en": {
        # API Errors
        ErrorCode.VALIDATION_ERROR: "Some of the submitted data is invalid. Please review it and try again.",
        ErrorCode.AUTHENTICATION_ERROR: "Your session is not authenticated. Please sign in.",
        ErrorCode.AUTHORIZATION_ERROR: "You do not have permission to perform this action.",
        ErrorCode.RESOURCE_NOT_FOUND: "The requested item could not be found.",
        ErrorCode.RATE_LIMIT_EXCEEDED: "Too many requests. Please wait a moment and try again.",
        ErrorCode.BUSINESS_LOGIC_ERROR: "This action is not allowed in the current state.",
        ErrorCode.EXTERNAL_SERVICE_ERROR: "A dependent service is unavailable. Please try again later.",
        ErrorCode.INTERNAL_SERVER_ERROR: "The server encountered an error. Please try again later.",
        # Transport Errors
        ErrorCode.NETWORK_ERROR: "Network error. Please check your connection.",
        ErrorCode.TIMEOUT_ERROR: "Request timeout. Please try again.",
        ErrorCode.INVALID_RESPONSE: "The server returned an unexpected response.",
        # Session Errors
        ErrorCode.SESSION_EXPIRED: "Your session has expired. Please sign in again.",
        ErrorCode.NO_REFRESH_TOKEN: "Your session has expired. Please sign in again.",
        # Cache Errors
        ErrorCode.CACHE_ERROR: "A local cache error occurred.",
        ErrorCode.QUERY_CANCELLED: "The request was cancelled.",
        # Storage Errors
        ErrorCode.STORAGE_READ_FAILED: "Local data could not be read: {key}",
        ErrorCode.STORAGE_WRITE_FAILED: "Local data could not be saved: {key}",
        ErrorCode.STORAGE_CORRUPTED: "Local data was corrupted and has been reset: {key}",
        # Offline Queue Errors
        ErrorCode.UNKNOWN_ACTION_TYPE: "Unknown offline action type: {action_type}",
        ErrorCode.MISSING_RESOURCE_ID: "The queued change is missing the id of its target.",
        # Configuration Errors
        ErrorCode.CONFIG_ERROR: "There is a problem with the configuration file: {config}",
        ErrorCode.CONFIGURATION_ERROR: "Configuration error: {setting}",
        # Application Errors
        ErrorCode.CLI_UNEXPECTED_ERROR: "An unexpected error occurred.",
    },
}


def get_error_message(
    error_code: ErrorCode,
    language: str = DEFAULT_LANGUAGE,
    **kwargs: Any,
) -> str:
    """Get a user-friendly error message for the given error code.

    Templates whose placeholders are not supplied are returned with the
    placeholder text removed, so callers without context still get a
    readable sentence.

    Args:
        error_code: The error code to get message for
        language: Language code, defaults to 'en'
        **kwargs: Variables to substitute in the message template

    Returns:
        User-friendly error message
    """
    if language not in ERROR_MESSAGES:
        language = DEFAULT_LANGUAGE

    messages = ERROR_MESSAGES[language]
    if error_code not in messages:
        return f"Unknown error occurred: {error_code.value}"

    message_template = messages[error_code]

    try:
        return message_template.format(**kwargs)
    except KeyError:
        return message_template.split(":")[0].rstrip() + "."


def validate_error_messages() -> dict[str, list[str]]:
    """Validate that all error codes have messages in all languages.

    Returns:
        Dictionary with the missing codes for each language
    """
    results = {}
    all_error_codes = set(ErrorCode)

    for language in ERROR_MESSAGES:
        missing_codes = all_error_codes - set(ERROR_MESSAGES[language])
        results[language] = sorted(code.value for code in missing_codes)

    return results
