# =============================================================================
# medbuddy_core/offline/__init__.py
# Offline-First Architecture for MedBuddy
# =============================================================================
"""
Offline-First Architecture Module

Every screen reads and writes the local store. The household's data is
mirrored to one JSON file in a private GitHub repository whenever sync is
configured.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                    OFFLINE-FIRST ARCHITECTURE                    │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                 HealthDataService                         │  │
│   │         (Single API - Screens use this only)              │  │
│   └──────────────────────────────────────────────────────────┘  │
│              │                           │                      │
│              ▼                           ▼                      │
│   ┌──────────────────┐        ┌──────────────────┐             │
│   │  LocalDatabase   │───────►│  ChangeNotifier  │             │
│   │    (SQLite)      │        │ ("data changed") │             │
│   └──────────────────┘        └──────────────────┘             │
│              ▲                           ▲                      │
│              │                           │                      │
│   ┌──────────────────┐                   │                      │
│   │   SyncEngine     │───────────────────┘                      │
│   │ (pull/merge/push)│                                          │
│   └──────────────────┘                                          │
│              │                                                   │
│              ▼                                                   │
│   ┌──────────────────┐                                          │
│   │  RemoteAdapter   │  GitHub contents API, sha revisions      │
│   └──────────────────┘                                          │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from medbuddy_core.offline import get_data_service

service = get_data_service()
service.save_fever_record(user_id, 101.2)
print(service.get_sync_status().state)
"""

from medbuddy_core.offline.change_notifier import ChangeNotifier

from medbuddy_core.offline.local_database import (
    LocalDatabase,
    SYNC_CONFIG_KEY,
)

from medbuddy_core.offline.remote_adapter import (
    RemoteAdapter,
    GitHubContentsAdapter,
    FetchResult,
)

from medbuddy_core.offline.merge import (
    MergeReport,
    merge_records,
    merge_snapshots,
    same_content,
)

from medbuddy_core.offline.sync_engine import (
    SyncEngine,
    SyncState,
    SyncStatus,
)

from medbuddy_core.offline.health_data_service import (
    HealthDataService,
    get_data_service,
)

__all__ = [
    # Change notification
    "ChangeNotifier",
    # Local store
    "LocalDatabase",
    "SYNC_CONFIG_KEY",
    # Remote file
    "RemoteAdapter",
    "GitHubContentsAdapter",
    "FetchResult",
    # Merge
    "MergeReport",
    "merge_records",
    "merge_snapshots",
    "same_content",
    # Sync Engine
    "SyncEngine",
    "SyncState",
    "SyncStatus",
    # Unified Service (Main API)
    "HealthDataService",
    "get_data_service",
]
