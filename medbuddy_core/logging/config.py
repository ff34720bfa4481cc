# =============================================================================
# medbuddy_core/logging/config.py
# Logging Configuration for MedBuddy
# =============================================================================

import logging
import re
import sys
import time
from datetime import date
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_DIR = Path("logs")

# Loggers that are chatty at INFO
QUIET_LOGGERS = ("urllib3", "requests", "streamlit", "watchdog")

# "Bearer <token>" headers and GitHub token prefixes
_SECRET_PATTERN = re.compile(r"(Bearer\s+)\S+|\b(gh[pousr]_|github_pat_)[A-Za-z0-9_]+")


class RedactSecretsFilter(logging.Filter):
    """Mask access tokens that end up in a log message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PATTERN.sub(_mask, message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


def _mask(match: "re.Match") -> str:
    return (match.group(1) or match.group(2)) + "***"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
) -> None:
    """
    Configure logging for the app process.

    Args:
        level: Level number or name such as "DEBUG" (unknown names mean INFO)
        log_to_file: Also write to logs/<log_filename>
        log_filename: Defaults to medbuddy_YYYY-MM-DD.log
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        LOG_DIR.mkdir(exist_ok=True)
        filename = log_filename or f"medbuddy_{date.today():%Y-%m-%d}.log"
        handlers.append(logging.FileHandler(LOG_DIR / filename, encoding="utf-8"))

    redact = RedactSecretsFilter()
    for handler in handlers:
        handler.addFilter(redact)

    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("medbuddy_core").info(
        f"Logging initialized at {logging.getLevelName(logging.getLogger().level)}"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Module logger.

    Usage:
        from medbuddy_core.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


class LogContext:
    """
    Time an operation and log how it ended.

    Usage:
        with LogContext(logger, "Importing backup"):
            ...
        # "Importing backup: started"
        # "Importing backup: done in 0.02s"
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self._started = 0.0

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self._started

    def __enter__(self) -> "LogContext":
        self._started = time.perf_counter()
        self.logger.debug(f"{self.operation}: started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.logger.info(f"{self.operation}: done in {self.elapsed:.2f}s")
        else:
            self.logger.warning(
                f"{self.operation}: failed after {self.elapsed:.2f}s "
                f"({exc_type.__name__}: {exc_val})"
            )
        return False
