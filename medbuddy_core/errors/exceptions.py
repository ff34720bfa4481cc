# =============================================================================
# medbuddy_core/errors/exceptions.py
# Custom Exception Hierarchy for MedBuddy
# =============================================================================

from typing import Optional, Dict, Any


class MedBuddyError(Exception):
    """
    Base exception for all MedBuddy errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SYNC_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "MB_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# DATA LAYER EXCEPTIONS
# =============================================================================

class DataValidationError(MedBuddyError):
    """Raised when a record or payload fails validation checks"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if expected:
            details["expected"] = expected
        if actual:
            details["actual"] = actual

        super().__init__(
            message=message,
            code=kwargs.pop("code", "DATA_001"),
            details=details,
            **kwargs,
        )


class ImportRejectedError(DataValidationError):
    """Raised when a backup payload cannot be imported"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, code="DATA_002", **kwargs)


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(MedBuddyError):
    """Raised when configuration is invalid"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code=kwargs.pop("code", "CONFIG_001"),
            details=details,
            recoverable=kwargs.pop("recoverable", False),
            **kwargs,
        )


class SyncConfigMissing(ConfigurationError):
    """No cloud sync configuration is stored. Signals a no-op, not a failure."""

    def __init__(self, message: str = "Cloud sync is not configured", **kwargs):
        super().__init__(
            message=message,
            code="CONFIG_002",
            recoverable=True,
            **kwargs,
        )


# =============================================================================
# REMOTE / SYNC EXCEPTIONS
# =============================================================================

class RemoteError(MedBuddyError):
    """Base class for failures talking to the remote snapshot file"""

    default_code = "SYNC_000"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        self.status_code = status_code

        super().__init__(
            message=message,
            code=kwargs.pop("code", self.default_code),
            details=details,
            **kwargs,
        )


class RemoteUnavailableError(RemoteError):
    """Network failure, timeout or server-side error"""

    default_code = "SYNC_001"


class RemoteRejectedError(RemoteError):
    """Bad credential or missing permission on the repository"""

    default_code = "SYNC_002"


class RemoteConflictError(RemoteError):
    """The remote revision moved since it was read"""

    default_code = "SYNC_003"


class MalformedRemoteContentError(RemoteError):
    """Remote file exists but is not a well-formed snapshot"""

    default_code = "SYNC_004"
