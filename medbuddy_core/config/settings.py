# =============================================================================
# medbuddy_core/config/settings.py
# Application Settings
# =============================================================================
"""
Runtime settings read from the environment (and an optional .env file).

Environment variables:
    MEDBUDDY_DB_PATH             SQLite file for the local store
    MEDBUDDY_REMOTE_API_URL      Base URL of the repository file API
    MEDBUDDY_REMOTE_TIMEOUT      Seconds before a remote call is abandoned
    MEDBUDDY_AUTO_SYNC_INTERVAL  Seconds between background syncs (0 = off)
    MEDBUDDY_LOG_LEVEL           Logging level name
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from medbuddy_core.errors import ConfigurationError

DEFAULT_DB_PATH = Path("local_data") / "medbuddy.db"
DEFAULT_REMOTE_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class AppSettings:
    """Process-wide settings."""
    db_path: Path = DEFAULT_DB_PATH
    remote_api_url: str = DEFAULT_REMOTE_API_URL
    remote_timeout: float = 15.0
    auto_sync_interval: int = 300
    log_level: str = "INFO"


def _read_number(env: Mapping[str, str], key: str, default, cast, allow_zero: bool = True):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(
            f"{key} must be a number, got {raw!r}",
            config_key=key,
            expected_type=cast.__name__,
        )
    if not allow_zero and not value > 0:
        raise ConfigurationError(f"{key} must be greater than zero", config_key=key)
    if value < 0:
        raise ConfigurationError(f"{key} must not be negative", config_key=key)
    return value


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    dotenv: bool = True,
) -> AppSettings:
    """
    Build AppSettings from environment variables.

    Args:
        env: Mapping to read instead of os.environ (tests pass a dict)
        dotenv: Whether to load a .env file first (ignored when env is given)
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    return AppSettings(
        db_path=Path(env.get("MEDBUDDY_DB_PATH") or DEFAULT_DB_PATH),
        remote_api_url=(env.get("MEDBUDDY_REMOTE_API_URL") or DEFAULT_REMOTE_API_URL).rstrip("/"),
        remote_timeout=_read_number(env, "MEDBUDDY_REMOTE_TIMEOUT", 15.0, float, allow_zero=False),
        auto_sync_interval=_read_number(env, "MEDBUDDY_AUTO_SYNC_INTERVAL", 300, int),
        log_level=(env.get("MEDBUDDY_LOG_LEVEL") or "INFO").upper(),
    )
