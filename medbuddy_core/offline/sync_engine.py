# =============================================================================
# medbuddy_core/offline/sync_engine.py
# Snapshot Synchronization Engine
# =============================================================================
"""
SyncEngine - reconciles the local store with the remote snapshot file.

Features:
- Pull, merge (local wins), write locally, push with the revision that was read
- One automatic re-fetch and retry when the push hits a revision conflict
- At most one attempt in flight; requests arriving meanwhile collapse into a
  single follow-up attempt
- Idle / Syncing / Error status published through the ChangeNotifier
- Optional periodic background sync with exponential backoff after failures
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Optional
import logging

from medbuddy_core.config import AppSettings
from medbuddy_core.errors import (
    ConfigurationError,
    RemoteConflictError,
    RemoteError,
    SyncConfigMissing,
)
from medbuddy_core.models import Snapshot, SyncConfig
from medbuddy_core.offline.change_notifier import ChangeNotifier
from medbuddy_core.offline.local_database import LocalDatabase
from medbuddy_core.offline.merge import merge_snapshots, same_content
from medbuddy_core.offline.remote_adapter import GitHubContentsAdapter, RemoteAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[SyncConfig], RemoteAdapter]


class SyncState(Enum):
    """Engine state."""
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


@dataclass
class SyncStatus:
    """Current sync status. Not persisted."""
    state: SyncState = SyncState.IDLE
    last_sync: Optional[datetime] = None
    last_attempt: Optional[datetime] = None
    error_message: Optional[str] = None
    consecutive_failures: int = 0
    revision: Optional[str] = None

    @property
    def is_syncing(self) -> bool:
        return self.state == SyncState.SYNCING

    @property
    def has_error(self) -> bool:
        return self.state == SyncState.ERROR


class SyncEngine:
    """
    Synchronization engine between the local store and one remote file.

    Usage:
        engine = SyncEngine(store, notifier)
        engine.request_sync()       # after a local change
        status = engine.sync_now()  # manual sync, waits for the outcome
    """

    # Configuration
    MAX_CONFLICT_RETRIES = 1    # Re-fetch/re-push rounds after a conflict
    BACKOFF_BASE = 2            # Exponential backoff base
    RETRY_BASE_DELAY = 15       # Seconds before the first retry after a failure
    MAX_BACKOFF = 900           # Upper bound for the retry delay

    def __init__(
        self,
        store: LocalDatabase,
        notifier: Optional[ChangeNotifier] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        settings: Optional[AppSettings] = None,
        background: bool = True,
    ):
        """
        Initialize sync engine.

        Args:
            store: Local store holding the dataset and the sync configuration
            notifier: Hub told about status changes
            adapter_factory: Builds a RemoteAdapter for a SyncConfig
            settings: Remote URL, timeout and auto-sync interval
            background: Run requested syncs on a worker thread
        """
        self._store = store
        self._notifier = notifier or store.notifier
        self._settings = settings or AppSettings()
        self._adapter_factory = adapter_factory or self._default_adapter
        self._background = background

        self._status = SyncStatus()
        self._state_lock = threading.Lock()
        self._running = False
        self._pending = False
        self._idle = threading.Event()
        self._idle.set()
        self._runner: Optional[threading.Thread] = None

        self._scheduler: Optional[threading.Thread] = None
        self._stop_scheduler = threading.Event()

    def _default_adapter(self, config: SyncConfig) -> RemoteAdapter:
        return GitHubContentsAdapter(
            config,
            base_url=self._settings.remote_api_url,
            timeout=self._settings.remote_timeout,
        )

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def status(self) -> SyncStatus:
        """Copy of the current status."""
        with self._state_lock:
            return replace(self._status)

    @property
    def is_syncing(self) -> bool:
        with self._state_lock:
            return self._running

    def _update_status(self, **changes) -> None:
        with self._state_lock:
            self._status = replace(self._status, **changes)
        self._publish()

    def _publish(self) -> None:
        if self._notifier is not None:
            self._notifier.publish()

    def reset(self) -> None:
        """Return to Idle and forget failures (used when the configuration is cleared)."""
        self._update_status(
            state=SyncState.IDLE,
            error_message=None,
            consecutive_failures=0,
            revision=None,
        )

    def make_adapter(self, config: SyncConfig) -> RemoteAdapter:
        """Build the remote adapter used for config."""
        return self._adapter_factory(config)

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    def _try_begin(self) -> bool:
        """Claim the single in-flight slot, or remember that another run is wanted."""
        with self._state_lock:
            if self._running:
                self._pending = True
                return False
            self._running = True
            self._pending = False
            self._idle.clear()
            return True

    def _release(self) -> None:
        """Give up the in-flight slot. Caller holds _state_lock."""
        self._running = False
        self._runner = None
        self._idle.set()

    def request_sync(self) -> bool:
        """
        Ask for a sync attempt.

        Returns:
            True if a new attempt was started, False if one is already in
            flight (a follow-up attempt is then queued)
        """
        if not self._try_begin():
            logger.debug("Sync already in progress; follow-up queued")
            return False

        if self._background:
            worker = threading.Thread(target=self._run, daemon=True, name="SyncEngine")
            worker.start()
        else:
            self._run()
        return True

    def sync_now(self, force: bool = False) -> SyncStatus:
        """
        Run a sync on the calling thread and return the resulting status.

        If an attempt is already in flight this waits for it (and its queued
        follow-up) instead of starting a parallel one.
        """
        if force:
            logger.info("Manual sync requested")
        if self._try_begin():
            self._run()
        else:
            self.wait()
        return self.status

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no attempt is in flight.

        Returns:
            True if the engine is idle, False on timeout
        """
        if self._runner is threading.current_thread():
            # Called from inside the running attempt (e.g. a listener)
            return False
        return self._idle.wait(timeout)

    def _run(self) -> None:
        """Run attempts until no follow-up is pending."""
        self._runner = threading.current_thread()
        released = False
        try:
            while True:
                self._attempt()
                # Follow-up check and release under one lock hold
                with self._state_lock:
                    if not self._pending:
                        self._release()
                        released = True
                        break
                    self._pending = False
                logger.info("Changes arrived during sync, running follow-up sync")
        finally:
            if not released:
                with self._state_lock:
                    self._release()

    # =========================================================================
    # ONE ATTEMPT
    # =========================================================================

    def _load_config(self) -> SyncConfig:
        config = self._store.get_config()
        if config is None:
            raise SyncConfigMissing()
        return config

    def _attempt(self) -> None:
        try:
            config = self._load_config()
        except SyncConfigMissing:
            logger.debug("No sync configuration, skipping sync")
            return

        logger.info("Sync started")
        self._update_status(
            state=SyncState.SYNCING,
            last_attempt=datetime.now(),
            error_message=None,
        )

        try:
            adapter = self.make_adapter(config)
            revision = self._pull_merge_push(adapter)
        except (RemoteError, ConfigurationError) as e:
            logger.error(f"Sync failed: {e}")
            self._fail(e.message)
        except Exception as e:
            logger.error(f"Unexpected sync failure: {e}", exc_info=True)
            self._fail(str(e) or e.__class__.__name__)
        else:
            self._update_status(
                state=SyncState.IDLE,
                last_sync=datetime.now(),
                error_message=None,
                consecutive_failures=0,
                revision=revision,
            )

    def _fail(self, message: str) -> None:
        with self._state_lock:
            failures = self._status.consecutive_failures + 1
        self._update_status(
            state=SyncState.ERROR,
            error_message=message,
            consecutive_failures=failures,
        )

    def _pull_merge_push(self, adapter: RemoteAdapter) -> Optional[str]:
        """
        Pull, merge, store and push, retrying once on a revision conflict.

        Returns:
            The remote revision after the attempt
        """
        for round_number in range(self.MAX_CONFLICT_RETRIES + 1):
            remote = adapter.fetch_snapshot()
            remote_content = remote.content if remote.content is not None else Snapshot()

            # Local writes wait here, so nothing slips between the read and the replace
            with self._store.locked():
                local = self._store.get_snapshot()
                merged, report = merge_snapshots(local, remote_content)
                changed_locally = report.remote_changed_local or not same_content(merged, local)
                if changed_locally:
                    self._store.replace_snapshot(merged, notify=False)
            if changed_locally:
                self._publish()

            logger.info(f"Merged with remote: {report.summary()}")

            # Order may differ between devices; only the records matter
            if remote.exists and same_content(merged, remote_content):
                logger.info("Remote already up to date, nothing to push")
                return remote.revision

            try:
                return adapter.write_snapshot(merged, remote.revision)
            except RemoteConflictError:
                if round_number >= self.MAX_CONFLICT_RETRIES:
                    raise
                logger.warning("Remote changed during sync, re-fetching and retrying once")

        return None

    # =========================================================================
    # PERIODIC BACKGROUND SYNC
    # =========================================================================

    def next_delay(self) -> float:
        """Seconds to wait before the next periodic attempt."""
        failures = self.status.consecutive_failures
        if failures == 0:
            return self._settings.auto_sync_interval
        delay = self.RETRY_BASE_DELAY * self.BACKOFF_BASE ** (failures - 1)
        return min(delay, self.MAX_BACKOFF)

    def start(self) -> None:
        """Start periodic background sync (no-op when the interval is 0)."""
        if self._settings.auto_sync_interval <= 0:
            logger.info("Periodic sync disabled")
            return
        if self._scheduler is not None and self._scheduler.is_alive():
            return

        self._stop_scheduler.clear()
        self._scheduler = threading.Thread(
            target=self._schedule_loop,
            daemon=True,
            name="SyncScheduler",
        )
        self._scheduler.start()
        logger.info("Periodic sync started")

    def stop(self) -> None:
        """Stop periodic background sync."""
        self._stop_scheduler.set()
        if self._scheduler:
            self._scheduler.join(timeout=10)
        logger.info("Periodic sync stopped")

    def _schedule_loop(self) -> None:
        while not self._stop_scheduler.is_set():
            if self._stop_scheduler.wait(timeout=self.next_delay()):
                break
            try:
                self.request_sync()
            except Exception as e:
                logger.error(f"Scheduled sync error: {e}")
