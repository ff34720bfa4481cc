# =============================================================================
# medbuddy_core/models/records.py
# Household Health Records and Snapshot Shape
# =============================================================================
"""
Entity dataclasses and the snapshot container exchanged with backups and the
remote file.

Records travel as plain JSON dicts with camelCase keys. The dataclasses are
the typed view handed to the presentation layer; unknown keys survive a
round trip through ``extra``.
"""

from __future__ import annotations
import re
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from medbuddy_core.errors import ConfigurationError, DataValidationError

# Collection keys, shared by the local store, export format and remote file
USERS = "users"
FEVER_LOGS = "feverLogs"
PRESCRIPTIONS = "prescriptions"
COLLECTIONS = (USERS, FEVER_LOGS, PRESCRIPTIONS)


def new_id() -> str:
    """Generate a globally unique record id."""
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class UserType(Enum):
    """Profile category."""
    ADULT = "Adult"
    KID = "Kid"


class _Record:
    """Shared dict conversion for the entity dataclasses."""

    # dataclass attribute -> wire key
    WIRE_KEYS: Dict[str, str] = {}

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        for attr, key in self.WIRE_KEYS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            data[key] = value.value if isinstance(value, Enum) else value
        return data

    @classmethod
    def _split(cls, data: Dict[str, Any]) -> tuple:
        known = {attr: data.get(key) for attr, key in cls.WIRE_KEYS.items()}
        extra = {k: v for k, v in data.items() if k not in cls.WIRE_KEYS.values()}
        return known, extra


@dataclass
class Profile(_Record):
    """A household member."""
    id: str
    name: str
    type: UserType = UserType.ADULT
    created_at: int = field(default_factory=now_ms)
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    WIRE_KEYS = {"id": "id", "name": "name", "type": "type", "created_at": "createdAt"}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Profile:
        known, extra = cls._split(data)
        try:
            user_type = UserType(known["type"])
        except ValueError:
            user_type = UserType.ADULT
        return cls(
            id=known["id"],
            name=known["name"] or "",
            type=user_type,
            created_at=known["created_at"] or 0,
            extra=extra,
        )


@dataclass
class FeverRecord(_Record):
    """A single temperature reading (degrees Fahrenheit)."""
    id: str
    user_id: str
    temperature: float
    timestamp: int = field(default_factory=now_ms)
    notes: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    WIRE_KEYS = {
        "id": "id",
        "user_id": "userId",
        "temperature": "temperature",
        "timestamp": "timestamp",
        "notes": "notes",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FeverRecord:
        known, extra = cls._split(data)
        return cls(
            id=known["id"],
            user_id=known["user_id"],
            temperature=known["temperature"],
            timestamp=known["timestamp"] or 0,
            notes=known["notes"],
            extra=extra,
        )


@dataclass
class Prescription(_Record):
    """A medicine prescribed to a household member."""
    id: str
    user_id: str
    illness: str
    medicine_name: str
    dosage: str = ""
    prescribed_by: str = ""
    is_active: bool = True
    timestamp: int = field(default_factory=now_ms)
    notes: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    WIRE_KEYS = {
        "id": "id",
        "user_id": "userId",
        "illness": "illness",
        "medicine_name": "medicineName",
        "dosage": "dosage",
        "prescribed_by": "prescribedBy",
        "is_active": "isActive",
        "timestamp": "timestamp",
        "notes": "notes",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Prescription:
        known, extra = cls._split(data)
        return cls(
            id=known["id"],
            user_id=known["user_id"],
            illness=known["illness"] or "",
            medicine_name=known["medicine_name"] or "",
            dosage=known["dosage"] or "",
            prescribed_by=known["prescribed_by"] or "",
            is_active=bool(known["is_active"]) if known["is_active"] is not None else True,
            timestamp=known["timestamp"] or 0,
            notes=known["notes"],
            extra=extra,
        )


RECORD_TYPES = {
    USERS: Profile,
    FEVER_LOGS: FeverRecord,
    PRESCRIPTIONS: Prescription,
}


# =============================================================================
# SYNC CONFIGURATION
# =============================================================================

_REPO_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class SyncConfig:
    """Where the remote snapshot lives and how to authenticate."""
    token: str
    repo: str
    path: str
    branch: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"SyncConfig(token='***', repo={self.repo!r}, "
            f"path={self.path!r}, branch={self.branch!r})"
        )

    __str__ = __repr__

    def validate(self) -> SyncConfig:
        """Return a normalized copy or raise ConfigurationError."""
        token = (self.token or "").strip()
        repo = (self.repo or "").strip().strip("/")
        path = (self.path or "").strip().lstrip("/")
        branch = (self.branch or "").strip() or None

        if not token:
            raise ConfigurationError("Access token is required", config_key="token")
        if not _REPO_PATTERN.match(repo):
            raise ConfigurationError(
                "Repository must look like 'owner/name'",
                config_key="repo",
                expected_type="owner/name",
            )
        if not path or path.endswith("/"):
            raise ConfigurationError("File path is required", config_key="path")

        return SyncConfig(token=token, repo=repo, path=path, branch=branch)

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "repo": self.repo, "path": self.path, "branch": self.branch}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SyncConfig:
        return cls(
            token=data.get("token", ""),
            repo=data.get("repo", ""),
            path=data.get("path", ""),
            branch=data.get("branch"),
        )


# =============================================================================
# SNAPSHOT
# =============================================================================

@dataclass
class Snapshot:
    """
    The full dataset: {users, feverLogs, prescriptions}.

    Each collection is an ordered list of record dicts keyed by ``id``.
    """
    users: List[Dict[str, Any]] = field(default_factory=list)
    fever_logs: List[Dict[str, Any]] = field(default_factory=list)
    prescriptions: List[Dict[str, Any]] = field(default_factory=list)

    def get(self, collection: str) -> List[Dict[str, Any]]:
        return getattr(self, _ATTRS[collection])

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {name: [dict(r) for r in self.get(name)] for name in COLLECTIONS}

    @classmethod
    def from_collections(cls, collections: Dict[str, List[Dict[str, Any]]]) -> Snapshot:
        return cls(**{_ATTRS[name]: list(collections.get(name, [])) for name in COLLECTIONS})

    @classmethod
    def from_payload(cls, payload: Any, require_users: bool = False) -> Snapshot:
        """
        Validate a decoded JSON payload and build a Snapshot.

        Missing collections are treated as empty. Raises DataValidationError
        when the payload is not an object, a collection is not a list, a
        record is not an object, lacks an id, or repeats an id.
        """
        if not isinstance(payload, dict):
            raise DataValidationError(
                "Snapshot must be a JSON object",
                expected="object",
                actual=type(payload).__name__,
            )
        if require_users and not isinstance(payload.get(USERS), list):
            raise DataValidationError(
                "Snapshot has no 'users' list",
                field=USERS,
                expected="array",
            )

        collections = {}
        for name in COLLECTIONS:
            records = payload.get(name)
            if records is None:
                records = []
            if not isinstance(records, list):
                raise DataValidationError(
                    f"'{name}' must be a list",
                    field=name,
                    expected="array",
                    actual=type(records).__name__,
                )
            seen = set()
            for index, record in enumerate(records):
                if not isinstance(record, dict):
                    raise DataValidationError(
                        f"'{name}[{index}]' is not an object", field=name
                    )
                record_id = record.get("id")
                if isinstance(record_id, bool) or not isinstance(record_id, (str, int)) or record_id == "":
                    raise DataValidationError(
                        f"'{name}[{index}]' has no usable id", field=name
                    )
                if record_id in seen:
                    raise DataValidationError(
                        f"'{name}' repeats id {record_id!r}", field=name
                    )
                seen.add(record_id)
            collections[name] = [dict(r) for r in records]

        return cls.from_collections(collections)

    def counts(self) -> Dict[str, int]:
        return {name: len(self.get(name)) for name in COLLECTIONS}


_ATTRS = {
    USERS: "users",
    FEVER_LOGS: "fever_logs",
    PRESCRIPTIONS: "prescriptions",
}
