# =============================================================================
# medbuddy_core/errors/__init__.py
# Centralized Error Handling for MedBuddy
# =============================================================================

from .exceptions import (
    MedBuddyError,
    DataValidationError,
    ImportRejectedError,
    ConfigurationError,
    SyncConfigMissing,
    RemoteError,
    RemoteUnavailableError,
    RemoteRejectedError,
    RemoteConflictError,
    MalformedRemoteContentError,
)

from .handlers import (
    handle_error,
    ErrorContext,
    error_boundary,
)

__all__ = [
    # Exceptions
    "MedBuddyError",
    "DataValidationError",
    "ImportRejectedError",
    "ConfigurationError",
    "SyncConfigMissing",
    "RemoteError",
    "RemoteUnavailableError",
    "RemoteRejectedError",
    "RemoteConflictError",
    "MalformedRemoteContentError",
    # Handlers
    "handle_error",
    "ErrorContext",
    "error_boundary",
]
