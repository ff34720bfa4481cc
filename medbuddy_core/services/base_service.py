# =============================================================================
# medbuddy_core/services/base_service.py
# Service Results and Base Class
# =============================================================================

from __future__ import annotations
from abc import ABC
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from medbuddy_core.errors import MedBuddyError, handle_error
from medbuddy_core.logging import LogContext, get_logger


@dataclass
class ServiceResult:
    """
    Outcome of a service call. Truthy on success.

    Usage:
        result = service.save_user("Asha")
        if result:
            profile = result.data
        else:
            show(result.error)
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, metadata: Optional[Dict[str, Any]] = None) -> ServiceResult:
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult:
        return cls(success=False, error=error, error_code=error_code, metadata=metadata)

    @classmethod
    def from_exception(cls, e: Exception) -> ServiceResult:
        """Failure carrying a MedBuddyError's code and details."""
        if isinstance(e, MedBuddyError):
            return cls.fail(e.message, e.code, e.details or None)
        return cls.fail(str(e) or e.__class__.__name__, "EXCEPTION")


class BaseService(ABC):
    """
    Base for objects the UI calls. Public operations go through
    safe_execute so that failures come back as ServiceResult.
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def safe_execute(
        self,
        operation: str,
        func: Callable[..., Any],
        *args,
        **kwargs
    ) -> ServiceResult:
        """
        Call func and wrap the outcome.

        MedBuddyError keeps its code; any other exception is logged with its
        traceback and reported as UNKNOWN.
        """
        try:
            with LogContext(self.logger, operation):
                value = func(*args, **kwargs)
        except MedBuddyError as e:
            handle_error(e, show_user_message=False)
            return ServiceResult.from_exception(e)
        except Exception as e:
            self.logger.error(f"{operation} failed: {e}", exc_info=True)
            return ServiceResult.fail(str(e) or e.__class__.__name__)
        return ServiceResult.ok(value)
