# =============================================================================
# medbuddy_core/offline/health_data_service.py
# Health Data Service - Single API for the Presentation Layer
# =============================================================================
"""
HealthDataService - the only object screens talk to.

Every mutation:
1. takes the store's write lock, reads the whole collection, applies the
   change and replaces the collection
2. publishes a change notification
3. asks the sync engine for an attempt

Mutations and imports return a ServiceResult instead of raising.

Usage:
------
from medbuddy_core.offline import get_data_service

service = get_data_service()
result = service.save_user("Asha", UserType.ADULT)
if result:
    service.save_fever_record(result.data.id, 100.4, notes="after nap")

unsubscribe = service.subscribe(refresh_screen)
print(service.get_sync_status().state)
"""

from __future__ import annotations
import json
import threading
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

import pandas as pd

from medbuddy_core.config import AppSettings, load_settings
from medbuddy_core.errors import DataValidationError, ImportRejectedError, SyncConfigMissing
from medbuddy_core.models import (
    FEVER_LOGS,
    PRESCRIPTIONS,
    USERS,
    FeverRecord,
    Prescription,
    Profile,
    Snapshot,
    SyncConfig,
    UserType,
    new_id,
    now_ms,
)
from medbuddy_core.offline.change_notifier import ChangeNotifier
from medbuddy_core.offline.local_database import LocalDatabase
from medbuddy_core.offline.sync_engine import AdapterFactory, SyncEngine, SyncStatus
from medbuddy_core.services import BaseService, ServiceResult

DEFAULT_ILLNESS = "General"


class HealthDataService(BaseService):
    """
    Profiles, fever logs and prescriptions with offline-first cloud sync.
    """

    def __init__(
        self,
        store: Optional[LocalDatabase] = None,
        engine: Optional[SyncEngine] = None,
        settings: Optional[AppSettings] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        background: bool = True,
    ):
        """
        Wire the store, notifier and engine together.

        Args:
            store: Local store (created from settings when omitted)
            engine: Sync engine (created around the store when omitted)
            settings: Application settings
            adapter_factory: Remote adapter builder passed to a new engine
            background: Whether a new engine syncs on a worker thread
        """
        super().__init__()
        self.settings = settings or AppSettings()
        if store is None:
            store = LocalDatabase(self.settings.db_path, notifier=ChangeNotifier())
        if store.notifier is None:
            store.notifier = ChangeNotifier()
        self._store = store.initialize()
        self._notifier = store.notifier
        self._engine = engine or SyncEngine(
            store,
            self._notifier,
            adapter_factory=adapter_factory,
            settings=self.settings,
            background=background,
        )
        self._initialized = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def store(self) -> LocalDatabase:
        return self._store

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    def initialize(self, sync_on_start: bool = True, start_periodic: bool = False) -> None:
        """
        Start up: sync once when a configuration is stored, optionally start
        the periodic sync loop.
        """
        if self._initialized:
            return

        if sync_on_start and self._store.get_config() is not None:
            self._engine.request_sync()
        if start_periodic:
            self._engine.start()

        self._initialized = True
        self.logger.info(f"HealthDataService initialized. Cloud sync configured: {self.is_sync_configured}")

    def cleanup(self) -> None:
        """Stop background work and close the store."""
        self._engine.stop()
        self._engine.wait(timeout=30)
        self._store.close()

    # =========================================================================
    # OBSERVERS & STATUS
    # =========================================================================

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a "data changed" listener. Returns the unsubscribe handle."""
        return self._notifier.subscribe(listener)

    def get_sync_status(self) -> SyncStatus:
        return self._engine.status

    @property
    def is_sync_configured(self) -> bool:
        return self._store.get_config() is not None

    # =========================================================================
    # INTERNAL MUTATION HELPERS
    # =========================================================================

    def _after_write(self) -> None:
        self._notifier.publish()
        self._engine.request_sync()

    def _append(self, collection: str, record: Dict[str, Any]) -> None:
        with self._store.locked():
            records = self._store.get(collection)
            if any(r.get("id") == record["id"] for r in records):
                raise DataValidationError(
                    f"A record with id {record['id']!r} already exists", field="id"
                )
            records.append(record)
            self._store.put_all(collection, records, notify=False)
        self._after_write()

    def _replace(self, collection: str, record: Dict[str, Any]) -> None:
        with self._store.locked():
            records = self._store.get(collection)
            for index, existing in enumerate(records):
                if existing.get("id") == record["id"]:
                    records[index] = record
                    break
            else:
                raise DataValidationError(
                    f"No record with id {record['id']!r} in {collection}", field="id"
                )
            self._store.put_all(collection, records, notify=False)
        self._after_write()

    def _remove(self, collection: str, record_id: str) -> int:
        with self._store.locked():
            records = self._store.get(collection)
            kept = [r for r in records if r.get("id") != record_id]
            removed = len(records) - len(kept)
            if removed:
                self._store.put_all(collection, kept, notify=False)
        if removed:
            self._after_write()
        return removed

    def _find(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        for record in self._store.get(collection):
            if record.get("id") == record_id:
                return record
        return None

    # =========================================================================
    # PROFILES
    # =========================================================================

    def list_users(self) -> List[Profile]:
        return [Profile.from_dict(r) for r in self._store.get(USERS)]

    def get_user(self, user_id: str) -> Optional[Profile]:
        record = self._find(USERS, user_id)
        return Profile.from_dict(record) if record else None

    def save_user(self, name: str, user_type: Union[UserType, str] = UserType.ADULT) -> ServiceResult:
        """Create a profile."""
        def create() -> Profile:
            clean = (name or "").strip()
            if not clean:
                raise DataValidationError("Profile name is required", field="name")
            profile = Profile(id=new_id(), name=clean, type=UserType(user_type), created_at=now_ms())
            self._append(USERS, profile.to_dict())
            return profile

        return self.safe_execute("Adding profile", create)

    def update_user(self, profile: Profile) -> ServiceResult:
        """Replace a profile by id."""
        def update() -> Profile:
            if not profile.name.strip():
                raise DataValidationError("Profile name is required", field="name")
            self._replace(USERS, profile.to_dict())
            return profile

        return self.safe_execute("Updating profile", update)

    def delete_user(self, user_id: str) -> ServiceResult:
        """
        Delete a profile together with its fever records and prescriptions,
        in one local transaction.
        """
        def cascade() -> Dict[str, int]:
            with self._store.locked():
                snapshot = self._store.get_snapshot()
                users = [r for r in snapshot.users if r.get("id") != user_id]
                fevers = [r for r in snapshot.fever_logs if r.get("userId") != user_id]
                meds = [r for r in snapshot.prescriptions if r.get("userId") != user_id]
                removed = {
                    USERS: len(snapshot.users) - len(users),
                    FEVER_LOGS: len(snapshot.fever_logs) - len(fevers),
                    PRESCRIPTIONS: len(snapshot.prescriptions) - len(meds),
                }
                if any(removed.values()):
                    self._store.put_collections(
                        {USERS: users, FEVER_LOGS: fevers, PRESCRIPTIONS: meds},
                        notify=False,
                    )
            if any(removed.values()):
                self._after_write()
            return removed

        return self.safe_execute("Deleting profile", cascade)

    # =========================================================================
    # FEVER RECORDS
    # =========================================================================

    def list_fever_records(self) -> List[FeverRecord]:
        return [FeverRecord.from_dict(r) for r in self._store.get(FEVER_LOGS)]

    def get_fever_records(self, user_id: str) -> List[FeverRecord]:
        """A profile's readings, newest first."""
        records = [r for r in self.list_fever_records() if r.user_id == user_id]
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def save_fever_record(
        self,
        user_id: str,
        temperature: float,
        timestamp: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> ServiceResult:
        """Log a temperature reading."""
        def create() -> FeverRecord:
            record = FeverRecord(
                id=new_id(),
                user_id=user_id,
                temperature=_parse_temperature(temperature),
                timestamp=timestamp if timestamp is not None else now_ms(),
                notes=notes or None,
            )
            self._append(FEVER_LOGS, record.to_dict())
            return record

        return self.safe_execute("Logging temperature", create)

    def update_fever_record(self, record: FeverRecord) -> ServiceResult:
        """Replace a reading by id."""
        def update() -> FeverRecord:
            record.temperature = _parse_temperature(record.temperature)
            self._replace(FEVER_LOGS, record.to_dict())
            return record

        return self.safe_execute("Updating temperature", update)

    def delete_fever_record(self, record_id: str) -> ServiceResult:
        return self.safe_execute("Deleting temperature", self._remove, FEVER_LOGS, record_id)

    def latest_temperature(self, user_id: str) -> Optional[float]:
        records = self.get_fever_records(user_id)
        return records[0].temperature if records else None

    def fever_dataframe(self, user_id: str) -> pd.DataFrame:
        """
        A profile's readings in chronological order for the trend chart.

        Returns:
            DataFrame with time, temperature and notes columns
        """
        records = sorted(
            (r for r in self.list_fever_records() if r.user_id == user_id),
            key=lambda r: r.timestamp,
        )
        timestamps = pd.Series([r.timestamp for r in records], dtype="int64")
        return pd.DataFrame(
            {
                "time": pd.to_datetime(timestamps, unit="ms"),
                "temperature": pd.Series([r.temperature for r in records], dtype="float64"),
                "notes": pd.Series([r.notes or "" for r in records], dtype="object"),
            }
        )

    # =========================================================================
    # PRESCRIPTIONS
    # =========================================================================

    def list_prescriptions(self) -> List[Prescription]:
        """All prescriptions, newest first."""
        records = [Prescription.from_dict(r) for r in self._store.get(PRESCRIPTIONS)]
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def get_prescriptions(self, user_id: str) -> List[Prescription]:
        return [p for p in self.list_prescriptions() if p.user_id == user_id]

    def search_prescriptions(self, query: str) -> List[Prescription]:
        """
        Case-insensitive match on medicine, illness, prescriber and the owning
        profile's name or type. A blank query returns everything.
        """
        prescriptions = self.list_prescriptions()
        needle = (query or "").strip().lower()
        if not needle:
            return prescriptions

        users = {u.id: u for u in self.list_users()}

        def matches(p: Prescription) -> bool:
            user = users.get(p.user_id)
            haystack = [
                p.medicine_name,
                p.illness,
                p.prescribed_by,
                user.name if user else "",
                user.type.value if user else "",
            ]
            return any(needle in (value or "").lower() for value in haystack)

        return [p for p in prescriptions if matches(p)]

    def save_prescription(
        self,
        user_id: str,
        medicine_name: str,
        illness: str = "",
        dosage: str = "",
        prescribed_by: str = "",
        notes: Optional[str] = None,
    ) -> ServiceResult:
        """Add an active prescription."""
        def create() -> Prescription:
            if not user_id:
                raise DataValidationError("Choose who the medicine is for", field="userId")
            medicine = (medicine_name or "").strip()
            if not medicine:
                raise DataValidationError("Medicine name is required", field="medicineName")
            prescription = Prescription(
                id=new_id(),
                user_id=user_id,
                illness=(illness or "").strip() or DEFAULT_ILLNESS,
                medicine_name=medicine,
                dosage=(dosage or "").strip(),
                prescribed_by=(prescribed_by or "").strip(),
                is_active=True,
                timestamp=now_ms(),
                notes=notes or None,
            )
            self._append(PRESCRIPTIONS, prescription.to_dict())
            return prescription

        return self.safe_execute("Adding prescription", create)

    def update_prescription(self, prescription: Prescription) -> ServiceResult:
        """Replace a prescription by id."""
        def update() -> Prescription:
            self._replace(PRESCRIPTIONS, prescription.to_dict())
            return prescription

        return self.safe_execute("Updating prescription", update)

    def toggle_prescription(self, prescription_id: str) -> ServiceResult:
        """Flip the active flag."""
        def toggle() -> Prescription:
            with self._store.locked():
                records = self._store.get(PRESCRIPTIONS)
                for index, record in enumerate(records):
                    if record.get("id") == prescription_id:
                        break
                else:
                    raise DataValidationError(
                        f"No prescription with id {prescription_id!r}", field="id"
                    )
                prescription = Prescription.from_dict(record)
                prescription.is_active = not prescription.is_active
                records[index] = prescription.to_dict()
                self._store.put_all(PRESCRIPTIONS, records, notify=False)
            self._after_write()
            return prescription

        return self.safe_execute("Toggling prescription", toggle)

    def delete_prescription(self, prescription_id: str) -> ServiceResult:
        return self.safe_execute("Deleting prescription", self._remove, PRESCRIPTIONS, prescription_id)

    # =========================================================================
    # CLOUD SYNC
    # =========================================================================

    def get_sync_config(self) -> Optional[SyncConfig]:
        return self._store.get_config()

    def save_sync_config(
        self,
        token: str,
        repo: str,
        path: str,
        branch: Optional[str] = None,
    ) -> ServiceResult:
        """Validate and store the cloud configuration, then sync."""
        def save() -> SyncConfig:
            config = SyncConfig(token=token, repo=repo, path=path, branch=branch).validate()
            self._store.set_config(config)
            self._engine.reset()
            self._engine.request_sync()
            return config

        return self.safe_execute("Saving cloud sync settings", save)

    def clear_sync_config(self) -> None:
        """Forget the cloud configuration; local data is kept."""
        self._store.clear_config()
        self._engine.reset()

    def sync_from_cloud(self, force: bool = False) -> SyncStatus:
        """
        Trigger a sync.

        Args:
            force: Run now and wait for the outcome instead of scheduling
        """
        if force:
            return self._engine.sync_now(force=True)
        self._engine.request_sync()
        return self._engine.status

    def test_sync_connection(self) -> ServiceResult:
        """
        Read the remote file once with the stored configuration.

        Nothing is merged or written. data is the adapter's report:
        {"status": "success" | "error", "message": ..., "counts": ...}
        """
        def check() -> Dict[str, Any]:
            config = self._store.get_config()
            if config is None:
                raise SyncConfigMissing()
            return self._engine.make_adapter(config).test_connection()

        return self.safe_execute("Testing cloud connection", check)

    # =========================================================================
    # BACKUP IMPORT / EXPORT
    # =========================================================================

    def export_data(self) -> str:
        """The whole dataset as {users, feverLogs, prescriptions} JSON."""
        return json.dumps(self._store.get_snapshot().to_dict())

    @staticmethod
    def backup_filename(today: Optional[date] = None) -> str:
        today = today or datetime.now().date()
        return f"medbuddy-backup-{today.isoformat()}.json"

    def import_data(self, payload: Union[str, bytes, Dict[str, Any]]) -> ServiceResult:
        """
        Replace all local data with a backup.

        Nothing is written unless the whole payload is valid.
        """
        def load() -> Dict[str, int]:
            snapshot = _parse_backup(payload)
            with self._store.locked():
                self._store.replace_snapshot(snapshot, notify=False)
            self._after_write()
            return snapshot.counts()

        return self.safe_execute("Importing backup", load)


def _parse_temperature(value: Any) -> float:
    try:
        temperature = float(value)
    except (TypeError, ValueError):
        raise DataValidationError("Temperature must be a number", field="temperature", actual=str(value))
    if temperature != temperature or temperature in (float("inf"), float("-inf")):
        raise DataValidationError("Temperature must be a finite number", field="temperature")
    return temperature


def _parse_backup(payload: Union[str, bytes, Dict[str, Any]]) -> Snapshot:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ImportRejectedError(f"Backup is not valid JSON: {e}")
    try:
        return Snapshot.from_payload(payload, require_users=True)
    except DataValidationError as e:
        raise ImportRejectedError(f"Invalid backup file: {e.message}", details=e.details)


# Singleton accessor
_data_service: Optional[HealthDataService] = None
_lock = threading.Lock()


def get_data_service() -> HealthDataService:
    """Get the process-wide HealthDataService, built from environment settings."""
    global _data_service
    if _data_service is None:
        with _lock:
            if _data_service is None:
                settings = load_settings()
                service = HealthDataService(settings=settings)
                service.initialize(start_periodic=settings.auto_sync_interval > 0)
                _data_service = service
    return _data_service
