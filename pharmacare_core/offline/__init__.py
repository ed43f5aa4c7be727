# =============================================================================
# pharmacare_core/offline/__init__.py
# Offline-First Persistence for PharmaCare
# =============================================================================
"""
Offline-First Persistence Module

Every read and write made by the pharmacy screens goes through this package.
The application behaves the same whether the backend answers or not.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                  OFFLINE-FIRST PERSISTENCE                       │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                 PersistenceRouter                         │  │
│   │      (read_all / create / update / delete)                │  │
│   └──────────────────────────────────────────────────────────┘  │
│         │                 │                     │                │
│         ▼                 ▼                     ▼                │
│ ┌───────────────┐ ┌───────────────┐ ┌──────────────────────┐    │
│ │ RemoteStore   │ │  LocalStore   │ │ ChangeNotificationBus│    │
│ │ (HTTP, 3s)    │ │ (SQLite KV)   │ │ (<collection>Updated)│    │
│ └───────────────┘ └───────────────┘ └──────────────────────┘    │
│         ▲                 ▲                                      │
│ ┌───────────────┐ ┌───────────────┐ ┌──────────────────────┐    │
│ │ Availability  │ │ Sequence      │ │ SyncEngine           │    │
│ │ Monitor       │ │ Generator     │ │ (push localOnly)     │    │
│ └───────────────┘ └───────────────┘ └──────────────────────┘    │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from pharmacare_core.offline import get_services

services = get_services()
records = await services.router.read_all("medicines")
number = services.generator.next_prescription_number()
"""

from pharmacare_core.offline.storage_backend import (
    KeyValueStore,
    MemoryKeyValueStore,
    SQLiteKeyValueStore,
)

from pharmacare_core.offline.event_bus import (
    ChangeNotificationBus,
    collection_topic,
    PRESCRIPTION_CREATED,
    SYNC_STATUS_CHANGED,
    CONNECTION_STATUS_CHANGED,
    SYNC_START,
    SYNC_COMPLETE,
)

from pharmacare_core.offline.local_store import (
    LocalStore,
    SyncState,
    LOCAL_ONLY_FLAG,
)

from pharmacare_core.offline.sequence_generator import (
    SequenceGenerator,
    DailyCounter,
    ParsedIdentifier,
    parse_identifier,
)

from pharmacare_core.offline.remote_client import RemoteStoreClient

from pharmacare_core.offline.availability_monitor import (
    AvailabilityMonitor,
    ConnectionState,
    ConnectionStatus,
)

from pharmacare_core.offline.persistence_router import PersistenceRouter

from pharmacare_core.offline.polling import CollectionPoller, PollingHandle

from pharmacare_core.offline.dashboard_cache import DashboardCache

from pharmacare_core.offline.sync_engine import SyncEngine, SyncReport

from pharmacare_core.offline.services import (
    COLLECTIONS,
    OfflineServices,
    ResourceAPI,
    get_services,
    reset_services,
)

__all__ = [
    # Storage
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
    # Events
    "ChangeNotificationBus",
    "collection_topic",
    "PRESCRIPTION_CREATED",
    "SYNC_STATUS_CHANGED",
    "CONNECTION_STATUS_CHANGED",
    "SYNC_START",
    "SYNC_COMPLETE",
    # Local Store
    "LocalStore",
    "SyncState",
    "LOCAL_ONLY_FLAG",
    # Identifiers
    "SequenceGenerator",
    "DailyCounter",
    "ParsedIdentifier",
    "parse_identifier",
    # Remote & Connectivity
    "RemoteStoreClient",
    "AvailabilityMonitor",
    "ConnectionState",
    "ConnectionStatus",
    # Routing (Main API)
    "PersistenceRouter",
    "CollectionPoller",
    "PollingHandle",
    "DashboardCache",
    "SyncEngine",
    "SyncReport",
    # Services
    "COLLECTIONS",
    "OfflineServices",
    "ResourceAPI",
    "get_services",
    "reset_services",
]
