# =============================================================================
# medbuddy_core/models/__init__.py
# Data Model
# =============================================================================

from .records import (
    USERS,
    FEVER_LOGS,
    PRESCRIPTIONS,
    COLLECTIONS,
    RECORD_TYPES,
    UserType,
    Profile,
    FeverRecord,
    Prescription,
    SyncConfig,
    Snapshot,
    new_id,
    now_ms,
)

__all__ = [
    "USERS",
    "FEVER_LOGS",
    "PRESCRIPTIONS",
    "COLLECTIONS",
    "RECORD_TYPES",
    "UserType",
    "Profile",
    "FeverRecord",
    "Prescription",
    "SyncConfig",
    "Snapshot",
    "new_id",
    "now_ms",
]
