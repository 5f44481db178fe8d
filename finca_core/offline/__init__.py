# =============================================================================
# finca_core/offline/__init__.py
# Offline-First Architecture for the Finca app
# =============================================================================
"""
Offline-First Architecture Module

Keeps the app accepting writes while Supabase is unreachable and reconciles
automatically when connectivity returns.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                    OFFLINE-FIRST ARCHITECTURE                    │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │          OfflineRepository (one per collection)          │  │
│   └──────────────────────────────────────────────────────────┘  │
│              │ online                      │ offline / error     │
│              ▼                             ▼                     │
│        ┌──────────┐                 ┌──────────────┐            │
│        │ Supabase │                 │ QueueManager │            │
│        │ (Remote) │                 └──────────────┘            │
│        └──────────┘                        │                     │
│              ▲                             ▼                     │
│              │   drain + refresh    ┌──────────────┐            │
│        ┌──────────────┐  ◄───────── │  LocalStore  │            │
│        │  SyncEngine  │  ─────────► │   (SQLite)   │            │
│        └──────────────┘             └──────────────┘            │
│              ▲                                                   │
│   ┌─────────────────────┐                                       │
│   │ ConnectivityMonitor │  (sync on reconnect, pending polling) │
│   └─────────────────────┘                                       │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from finca_core.offline import OfflineContext

with OfflineContext() as ctx:
    vacunas = ctx.repository("vacunas")
    vacunas.update("v-17", {"proxima_dosis": "2026-11-02"})
    print(ctx.get_status()["pending_count"])
"""

from finca_core.offline.operations import (
    NewOperation,
    OperationKind,
    PendingOperation,
)

from finca_core.offline.local_store import LocalStore

from finca_core.offline.remote import (
    Eq,
    Gte,
    ILikeAny,
    Lte,
    RemoteResult,
    RemoteStore,
    SupabaseRemoteStore,
)

from finca_core.offline.queue_manager import QueueManager

from finca_core.offline.sync_engine import (
    SyncEngine,
    SyncState,
    SyncStatus,
)

from finca_core.offline.repository import OfflineRepository

from finca_core.offline.connection_manager import (
    ConnectionState,
    ConnectivityMonitor,
    ConnectivityProvider,
    ManualConnectivityProvider,
    SocketConnectivityProvider,
)

from finca_core.offline.context import OfflineContext

__all__ = [
    # Operations
    "NewOperation",
    "OperationKind",
    "PendingOperation",
    # Local Store
    "LocalStore",
    # Remote Store
    "Eq",
    "Gte",
    "ILikeAny",
    "Lte",
    "RemoteResult",
    "RemoteStore",
    "SupabaseRemoteStore",
    # Queue & Sync
    "QueueManager",
    "SyncEngine",
    "SyncState",
    "SyncStatus",
    # Repositories
    "OfflineRepository",
    # Connectivity
    "ConnectionState",
    "ConnectivityMonitor",
    "ConnectivityProvider",
    "ManualConnectivityProvider",
    "SocketConnectivityProvider",
    # Application Context (Main API)
    "OfflineContext",
]
