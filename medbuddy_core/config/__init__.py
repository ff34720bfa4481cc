from .settings import AppSettings, load_settings, DEFAULT_DB_PATH, DEFAULT_REMOTE_API_URL

__all__ = ["AppSettings", "load_settings", "DEFAULT_DB_PATH", "DEFAULT_REMOTE_API_URL"]
