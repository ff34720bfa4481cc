# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import copy
from typing import Callable, Optional
from unittest.mock import MagicMock

import pytest

from medbuddy_core.config import AppSettings
from medbuddy_core.errors import RemoteConflictError
from medbuddy_core.models import Snapshot, SyncConfig
from medbuddy_core.offline import (
    ChangeNotifier,
    FetchResult,
    HealthDataService,
    LocalDatabase,
    RemoteAdapter,
    SyncEngine,
)


# =============================================================================
# FAKE REMOTE
# =============================================================================

class FakeRemote(RemoteAdapter):
    """
    In-memory remote file with real revision checks.

    Attributes:
        conflicts: Number of upcoming writes to refuse with a conflict
        fetch_error / write_error: Exception raised by the next call(s)
        on_write: Called once at the start of the next write
    """

    def __init__(self, content: Optional[Snapshot] = None):
        self.content = content
        self._version = 0
        self.revision = None
        if content is not None:
            self._bump()
        self.fetch_calls = 0
        self.write_calls = 0
        self.writes = []
        self.conflicts = 0
        self.fetch_error: Optional[Exception] = None
        self.write_error: Optional[Exception] = None
        self.on_write: Optional[Callable[[], None]] = None

    def _bump(self) -> None:
        self._version += 1
        self.revision = f"rev-{self._version}"

    @property
    def calls(self) -> int:
        return self.fetch_calls + self.write_calls

    def put(self, snapshot: Snapshot) -> None:
        """Simulate another device replacing the file."""
        self.content = copy.deepcopy(snapshot)
        self._bump()

    def fetch_snapshot(self) -> FetchResult:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return FetchResult(content=copy.deepcopy(self.content), revision=self.revision)

    def write_snapshot(self, content: Snapshot, expected_revision: Optional[str]) -> str:
        self.write_calls += 1
        if self.on_write is not None:
            hook, self.on_write = self.on_write, None
            hook()
        if self.write_error is not None:
            raise self.write_error
        if self.conflicts > 0:
            self.conflicts -= 1
            raise RemoteConflictError("Remote file changed since it was read", status_code=409)
        if expected_revision != self.revision:
            raise RemoteConflictError("Remote file changed since it was read", status_code=409)

        self.writes.append((copy.deepcopy(content), expected_revision))
        self.content = copy.deepcopy(content)
        self._bump()
        return self.revision


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_config():
    """A valid sync configuration"""
    return SyncConfig(token="ghp_example_secret", repo="family/health", path="medbuddy/data.json")


@pytest.fixture
def asha_backup():
    """Minimal backup with one profile"""
    return {
        "users": [{"id": "u1", "name": "Asha", "type": "Adult", "createdAt": 0}],
        "feverLogs": [],
        "prescriptions": [],
    }


@pytest.fixture
def household_snapshot():
    """Two profiles with readings and prescriptions"""
    return Snapshot(
        users=[
            {"id": "u1", "name": "Asha", "type": "Adult", "createdAt": 1000},
            {"id": "u2", "name": "Ravi", "type": "Kid", "createdAt": 2000},
        ],
        fever_logs=[
            {"id": "f1", "userId": "u2", "temperature": 100.8, "timestamp": 1_700_000_000_000},
            {"id": "f2", "userId": "u2", "temperature": 99.1, "timestamp": 1_700_000_600_000, "notes": "after nap"},
            {"id": "f3", "userId": "u1", "temperature": 98.6, "timestamp": 1_700_000_300_000},
        ],
        prescriptions=[
            {
                "id": "p1", "userId": "u2", "illness": "Flu", "medicineName": "Paracetamol",
                "dosage": "5ml", "prescribedBy": "Dr. Mehta", "isActive": True, "timestamp": 3000,
            },
            {
                "id": "p2", "userId": "u1", "illness": "Allergy", "medicineName": "Cetirizine",
                "dosage": "10mg", "prescribedBy": "Dr. Rao", "isActive": False, "timestamp": 4000,
            },
        ],
    )


# =============================================================================
# OFFLINE STACK FIXTURES
# =============================================================================

@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def store(tmp_path, notifier):
    """Fresh SQLite store in a temp directory"""
    db = LocalDatabase(tmp_path / "medbuddy.db", notifier=notifier).initialize()
    yield db
    db.close()


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def remote_factory():
    """Build extra FakeRemote instances, optionally pre-populated"""
    return FakeRemote


@pytest.fixture
def test_settings(tmp_path):
    return AppSettings(db_path=tmp_path / "medbuddy.db", auto_sync_interval=0)


@pytest.fixture
def engine(store, notifier, fake_remote, test_settings):
    """Engine running attempts on the calling thread"""
    return SyncEngine(
        store,
        notifier,
        adapter_factory=lambda config: fake_remote,
        settings=test_settings,
        background=False,
    )


@pytest.fixture
def configured_engine(engine, store, sample_config):
    store.set_config(sample_config)
    return engine


@pytest.fixture
def service(store, fake_remote, test_settings):
    """Service with an inline engine and no sync configuration"""
    svc = HealthDataService(
        store=store,
        settings=test_settings,
        adapter_factory=lambda config: fake_remote,
        background=False,
    )
    yield svc
    svc.engine.stop()


@pytest.fixture
def configured_service(service, store, sample_config):
    store.set_config(sample_config)
    return service


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_session():
    """Mock requests session for the remote adapter"""
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def make_response():
    """Factory for fake requests.Response objects"""
    def _make(status_code=200, json_body=None, text="", headers=None):
        response = MagicMock()
        response.status_code = status_code
        response.headers = headers or {}
        response.text = text
        response.reason = ""
        if json_body is None:
            response.json.side_effect = ValueError("No JSON")
        else:
            response.json.return_value = json_body
        return response

    return _make
