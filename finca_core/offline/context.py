# =============================================================================
# finca_core/offline/context.py
# Application Context - wires the offline layer together
# =============================================================================
"""
OfflineContext - the object application code constructs once and passes around.

Owns the local store, queue manager, sync engine and connectivity monitor,
and hands out one OfflineRepository per collection.

Usage:
------
from finca_core.config import load_config
from finca_core.offline import OfflineContext

with OfflineContext(load_config()) as ctx:
    animales = ctx.repository("animales")
    animales.create({"nombre": "Lucero", "numero_arete": "A-102"})
    print(ctx.get_status())   # {"status": "offline", "pending_count": 1, ...}
    ctx.force_sync()
"""

from __future__ import annotations
import threading
import time
from typing import Any, Callable, Dict, Optional
import logging

from finca_core.config import OfflineConfig, load_config
from finca_core.logging import setup_logging
from finca_core.offline.connection_manager import (
    ConnectivityMonitor,
    ConnectivityProvider,
    SocketConnectivityProvider,
)
from finca_core.offline.local_store import LocalStore
from finca_core.offline.queue_manager import QueueManager
from finca_core.offline.remote import RemoteStore, SupabaseRemoteStore
from finca_core.offline.repository import OfflineRepository
from finca_core.offline.sync_engine import SyncEngine, SyncState, SyncStatus

logger = logging.getLogger(__name__)


class OfflineContext:
    """
    Explicitly constructed application context for offline-first data access.
    """

    def __init__(
        self,
        config: Optional[OfflineConfig] = None,
        remote: Optional[RemoteStore] = None,
        connectivity: Optional[ConnectivityProvider] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            config: Offline settings (loaded from secrets/env when omitted)
            remote: Remote store (Supabase from config when omitted)
            connectivity: Online signal (socket checks when omitted)
            sleep: Used for the settle delay between drain and refresh
        """
        self.config = config or load_config()
        self.remote = remote or SupabaseRemoteStore.from_config(self.config)
        self.connectivity = connectivity or SocketConnectivityProvider(self.config)

        self.store = LocalStore(self.config.db_path)
        self.sync_engine = SyncEngine(
            self.store,
            self.remote,
            self.config,
            is_online=self.connectivity.is_online,
            sleep=sleep,
        )
        self.queue = QueueManager(
            self.store,
            executor=self.sync_engine.process_operation,
            is_online=self.connectivity.is_online,
        )
        self.monitor = ConnectivityMonitor(
            self.connectivity,
            sync=self.sync_engine.sync,
            pending_count=self.queue.get_queue_length,
            config=self.config,
        )

        self._repositories: Dict[str, OfflineRepository] = {}
        self._repositories_lock = threading.Lock()
        self._unsubscribe_sync: Optional[Callable[[], None]] = None
        self._initialized = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def initialize(self, start_monitoring: bool = True) -> None:
        """
        Open the local store and start connectivity monitoring.

        Raises:
            StoreInitializationError: The local database cannot be opened
        """
        if self._initialized:
            return

        if self.config.log_level:
            setup_logging(self.config.log_level, log_file=self.config.log_file)

        self.store.initialize()
        self._unsubscribe_sync = self.sync_engine.subscribe(self._on_sync_state)
        self.monitor.start(poll=start_monitoring)

        if start_monitoring and isinstance(self.connectivity, SocketConnectivityProvider):
            self.connectivity.start_monitoring()

        self._initialized = True
        logger.info(f"OfflineContext initialized. Online: {self.is_online}")

    def close(self) -> None:
        """Stop background threads and close the local store."""
        if self._unsubscribe_sync is not None:
            self._unsubscribe_sync()
            self._unsubscribe_sync = None

        self.monitor.stop()
        if isinstance(self.connectivity, SocketConnectivityProvider):
            self.connectivity.stop_monitoring()

        self.store.close()
        self._initialized = False
        logger.info("OfflineContext closed")

    def __enter__(self) -> OfflineContext:
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    def _on_sync_state(self, state: SyncState) -> None:
        if state.status is SyncStatus.IDLE:
            self.queue.notify_listeners()

    # =========================================================================
    # PUBLIC SURFACE
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self.connectivity.is_online()

    def repository(self, collection: str) -> OfflineRepository:
        """Get the repository for a collection (one instance per collection)."""
        with self._repositories_lock:
            if collection not in self._repositories:
                self.sync_engine.track_collection(collection)
                self._repositories[collection] = OfflineRepository(
                    collection,
                    remote=self.remote,
                    store=self.store,
                    queue=self.queue,
                    is_online=self.connectivity.is_online,
                    search_fields=self.config.search_fields.get(collection, ("id",)),
                    order_by=self.config.order_by.get(collection),
                )
            return self._repositories[collection]

    def force_sync(self) -> bool:
        """Run a sync cycle now. Returns True if it completed."""
        return self.sync_engine.sync()

    def subscribe_queue(self, callback: Callable[[int], None]) -> Callable[[], None]:
        """Queue-length subscription for status indicators."""
        return self.queue.subscribe(callback)

    def get_status(self) -> Dict[str, Any]:
        """
        Coarse status for UI display.

        ``status`` is one of ``offline``, ``syncing``, ``error`` or ``online``.
        """
        sync_state = self.sync_engine.state

        if not self.is_online:
            status = "offline"
        elif sync_state.is_syncing:
            status = "syncing"
        elif sync_state.last_error:
            status = "error"
        else:
            status = "online"

        return {
            "status": status,
            "is_online": self.is_online,
            "was_offline": self.monitor.was_offline,
            "pending_count": self.queue.get_queue_length(),
            "last_sync": sync_state.last_sync.isoformat() if sync_state.last_sync else None,
            "last_error": sync_state.last_error,
        }
