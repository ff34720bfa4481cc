# =============================================================================
# medbuddy_core/offline/local_database.py
# Local SQLite Key-Value Store for Offline Operation
# =============================================================================
"""
LocalDatabase - durable on-device storage for the three record collections
and the cloud sync configuration.

Features:
- One JSON document per stable key (users, feverLogs, prescriptions, sync_config)
- Whole-collection replace, optionally several collections in one transaction
- Re-entrant write lock so read-modify-replace sequences never interleave
- Thread-local connections
- Change notification after every committed write
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union
import logging

from medbuddy_core.config import DEFAULT_DB_PATH
from medbuddy_core.errors import DataValidationError
from medbuddy_core.models import COLLECTIONS, Snapshot, SyncConfig
from medbuddy_core.offline.change_notifier import ChangeNotifier

logger = logging.getLogger(__name__)

SYNC_CONFIG_KEY = "sync_config"


class LocalDatabase:
    """
    Local key-value store backed by SQLite.

    Every collection is stored and replaced as a whole, because a mutation
    is always "read the collection, change it, write it back".
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        notifier: Optional[ChangeNotifier] = None,
    ):
        """
        Initialize local database.

        Args:
            db_path: Path to SQLite database file
            notifier: Hub told about every committed write
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.notifier = notifier
        self._ensure_directory()
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._write_lock = threading.RLock()
        self._initialized = False

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            connection.row_factory = sqlite3.Row
            self._local.connection = connection
            with self._connections_lock:
                self._connections.append(connection)
        return self._local.connection

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> LocalDatabase:
        """Create the schema if needed."""
        if self._initialized:
            return self

        with self._transaction() as conn:
            conn.execute(self.SCHEMA)

        self._initialized = True
        logger.info(f"Local database initialized at: {self.db_path}")
        return self

    # =========================================================================
    # LOCKING
    # =========================================================================

    @contextmanager
    def locked(self) -> Iterator[LocalDatabase]:
        """
        Hold the single-writer lock across a read-modify-replace sequence.

        Usage:
            with store.locked():
                records = store.get("feverLogs")
                records.append(new_record)
                store.put_all("feverLogs", records)
        """
        with self._write_lock:
            yield self

    # =========================================================================
    # RAW KEY-VALUE ACCESS
    # =========================================================================

    def _read(self, key: str) -> Optional[Any]:
        row = self._get_connection().execute(
            "SELECT value FROM kv_store WHERE key = ?", [key]
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.error(f"Stored value for '{key}' is not valid JSON; treating as empty")
            return None

    def _write_many(self, values: Dict[str, Any]) -> None:
        now = datetime.now().isoformat()
        rows = [(key, json.dumps(value), now) for key, value in values.items()]
        with self._write_lock:
            with self._transaction() as conn:
                conn.executemany(
                    "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                    rows,
                )

    def _publish(self) -> None:
        if self.notifier is not None:
            self.notifier.publish()

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise DataValidationError(
                f"Unknown collection: {collection}",
                field="collection",
                expected=", ".join(COLLECTIONS),
                actual=collection,
            )

    def get(self, collection: str) -> List[Dict[str, Any]]:
        """Return the whole collection in stored order (empty if never written)."""
        self._check_collection(collection)
        value = self._read(collection)
        return value if isinstance(value, list) else []

    def put_all(
        self,
        collection: str,
        records: List[Dict[str, Any]],
        notify: bool = True,
    ) -> None:
        """Atomically replace a whole collection."""
        self.put_collections({collection: records}, notify=notify)

    def put_collections(
        self,
        collections: Dict[str, List[Dict[str, Any]]],
        notify: bool = True,
    ) -> None:
        """Atomically replace several collections in one transaction."""
        for name in collections:
            self._check_collection(name)
        self._write_many({name: list(records) for name, records in collections.items()})
        if notify:
            self._publish()

    def get_snapshot(self) -> Snapshot:
        """Read all three collections."""
        with self._write_lock:
            return Snapshot.from_collections({name: self.get(name) for name in COLLECTIONS})

    def replace_snapshot(self, snapshot: Snapshot, notify: bool = True) -> None:
        """Replace all three collections in one transaction."""
        self.put_collections(snapshot.to_dict(), notify=notify)

    # =========================================================================
    # SYNC CONFIGURATION
    # =========================================================================

    def get_config(self) -> Optional[SyncConfig]:
        """Return the stored sync configuration, or None when absent or incomplete."""
        value = self._read(SYNC_CONFIG_KEY)
        if not isinstance(value, dict):
            return None
        config = SyncConfig.from_dict(value)
        if not (config.token and config.repo and config.path):
            return None
        return config

    def set_config(self, config: SyncConfig) -> None:
        """Persist the whole sync configuration."""
        self._write_many({SYNC_CONFIG_KEY: config.to_dict()})
        logger.info(f"Sync configuration saved for {config.repo}:{config.path}")

    def clear_config(self) -> None:
        """Remove the sync configuration."""
        with self._write_lock:
            with self._transaction() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", [SYNC_CONFIG_KEY])
        logger.info("Sync configuration cleared")

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            for connection in self._connections:
                connection.close()
            self._connections.clear()
        self._local = threading.local()
