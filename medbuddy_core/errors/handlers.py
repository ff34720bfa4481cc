# =============================================================================
# medbuddy_core/errors/handlers.py
# Showing Errors in the Streamlit UI
# =============================================================================

from __future__ import annotations
import functools
from typing import Optional, Callable, TypeVar, Any
import streamlit as st

from medbuddy_core.logging import get_logger
from .exceptions import MedBuddyError

logger = get_logger(__name__)

T = TypeVar("T")

# Error code prefix -> heading shown to the user
_HEADINGS = {
    "SYNC": "Cloud sync",
    "DATA": "Invalid data",
    "CONFIG": "Settings problem",
}


def _heading(error: Exception) -> str:
    if isinstance(error, MedBuddyError):
        return _HEADINGS.get(error.code.split("_")[0], "Error")
    return "Error"


def handle_error(
    error: Exception,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Log an error and optionally show it in the page.

    Expected failures (MedBuddyError marked recoverable) are logged as
    warnings without a traceback; anything else is logged with one.

    Args:
        error: The exception to handle
        show_user_message: Whether to display it via st.error
        log_error: Whether to log it
        user_message: Text to show instead of the exception message
    """
    expected = isinstance(error, MedBuddyError) and error.recoverable
    message = user_message or getattr(error, "message", None) or str(error)

    if log_error:
        if expected:
            logger.warning(f"{error}")
        else:
            logger.error(f"{error.__class__.__name__}: {error}", exc_info=error)

    if show_user_message:
        st.error(f"{_heading(error)}: {message}")


class ErrorContext:
    """
    Run a UI action and report its outcome in the page.

    Usage:
        with ErrorContext("Saving cloud sync settings"):
            service.save_sync_config(token, repo, path)
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        show_success: bool = False,
        success_message: Optional[str] = None,
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.show_success = show_success
        self.success_message = success_message

    def __enter__(self) -> ErrorContext:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            if self.show_success:
                st.success(self.success_message or f"{self.operation}: done")
            return False

        if not isinstance(exc_val, Exception):
            return False

        user_message = None if isinstance(exc_val, MedBuddyError) else f"{self.operation} failed"
        handle_error(exc_val, user_message=user_message)
        return self.recoverable


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
):
    """
    Decorator for render functions: a failure shows error_message and
    returns default_return instead of breaking the rest of the page.

    Usage:
        @error_boundary(error_message="Temperature chart unavailable")
        def render_trend(user_id: str) -> None:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                handle_error(
                    e,
                    show_user_message=error_message is not None,
                    log_error=log,
                    user_message=error_message,
                )
                return default_return

        return wrapper

    return decorator
