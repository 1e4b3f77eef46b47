# =============================================================================
# indalo_core/offline/__init__.py
# Offline-First Architecture for the Indalo client
# =============================================================================
"""
Offline-First Architecture Module

Keeps product data and verification answers available when the network
is not, and replays scans recorded offline once it is back.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                    OFFLINE-FIRST ARCHITECTURE                    │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                    OfflineRuntime                         │  │
│   └──────────────────────────────────────────────────────────┘  │
│          │                   │                    │              │
│          ▼                   ▼                    ▼              │
│ ┌─────────────────┐ ┌─────────────────┐ ┌──────────────────┐    │
│ │ OfflineResource │ │  ServiceWorker  │ │  BackgroundSync  │    │
│ │ (network first, │ │ (HTTP policies, │ │ (sync-scans when │    │
│ │  cache fallback)│ │  precache)      │ │  back online)    │    │
│ └─────────────────┘ └─────────────────┘ └──────────────────┘    │
│          │                   │                    │              │
│          ▼                   ▼                    │              │
│ ┌─────────────────┐ ┌─────────────────┐          │              │
│ │  OfflineCache   │ │ response_cache  │◄─────────┘              │
│ │  (kv_store)     │ │ + scan_queue    │                          │
│ └─────────────────┘ └─────────────────┘                          │
│          └──────────────┬────┘                                   │
│                         ▼                                        │
│                ┌─────────────────┐    ┌─────────────────────┐   │
│                │   LocalStore    │    │ ConnectivityMonitor │   │
│                │    (SQLite)     │    │  (online/offline)   │   │
│                └─────────────────┘    └─────────────────────┘   │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from indalo_core.offline import get_offline_runtime

runtime = get_offline_runtime()
session = runtime.session()
print(runtime.is_online)
print(runtime.pending_scan_count)
"""

from indalo_core.offline.local_store import (
    LocalStore,
    get_local_store,
)

from indalo_core.offline.cache_manager import (
    OfflineCache,
    get_offline_cache,
    cache_data,
    get_cached_data,
    clear_cache,
    DEFAULT_MAX_AGE_MS,
    DEFAULT_PRESERVE_KEYS,
)

from indalo_core.offline.connection_manager import (
    ConnectivityMonitor,
    ConnectionState,
    ConnectionStatus,
    get_connectivity_monitor,
    is_online,
    is_offline,
)

from indalo_core.offline.offline_data import (
    OfflineResource,
    OfflineDataState,
    OfflineErrorKind,
)

from indalo_core.offline.service_worker import (
    ServiceWorker,
    ServiceWorkerAdapter,
    Strategy,
    SyncResult,
    WorkerState,
    SYNC_SCANS_TAG,
)

from indalo_core.offline.sync_engine import (
    BackgroundSync,
    SyncState,
)

from indalo_core.offline.runtime import (
    OfflineRuntime,
    get_offline_runtime,
)

__all__ = [
    # Local Store
    "LocalStore",
    "get_local_store",
    # Key-Value Cache
    "OfflineCache",
    "get_offline_cache",
    "cache_data",
    "get_cached_data",
    "clear_cache",
    "DEFAULT_MAX_AGE_MS",
    "DEFAULT_PRESERVE_KEYS",
    # Connectivity
    "ConnectivityMonitor",
    "ConnectionState",
    "ConnectionStatus",
    "get_connectivity_monitor",
    "is_online",
    "is_offline",
    # Offline Resources
    "OfflineResource",
    "OfflineDataState",
    "OfflineErrorKind",
    # Service Worker
    "ServiceWorker",
    "ServiceWorkerAdapter",
    "Strategy",
    "SyncResult",
    "WorkerState",
    "SYNC_SCANS_TAG",
    # Background Sync
    "BackgroundSync",
    "SyncState",
    # Runtime (Main API)
    "OfflineRuntime",
    "get_offline_runtime",
]
