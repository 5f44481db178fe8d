# =============================================================================
# finca_core/offline/sync_engine.py
# Reconciliation Engine: probe, drain, settle, refresh
# =============================================================================
"""
SyncEngine - replays queued mutations against Supabase and refreshes caches.

One ``sync()`` cycle:
1. Skip if offline or a cycle is already running
2. Probe the remote store with a one-row select
3. Drain pending operations in enqueue order (a failure leaves that
   operation pending and moves on)
4. Wait ``settle_delay`` seconds for read-after-write lag
5. Purge synced operations
6. Replace the cache of every configured, repository-backed or drained
   collection with the remote snapshot
7. Record the completion time (or the error) and notify subscribers
"""

from __future__ import annotations
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
import logging

from finca_core.config import OfflineConfig
from finca_core.errors import MissingIdentifierError, RemoteStoreError, SyncProbeError, handle_error
from finca_core.logging import LogContext
from finca_core.offline.broadcast import Broadcast
from finca_core.offline.local_store import LocalStore
from finca_core.offline.operations import OperationKind, PendingOperation, has_identifier, strip_local_fields
from finca_core.offline.remote import Eq, RemoteStore, call_remote

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Sync engine states."""
    IDLE = "idle"
    SYNCING = "syncing"


@dataclass
class SyncState:
    """Current sync state."""
    status: SyncStatus = SyncStatus.IDLE
    last_sync: Optional[datetime] = None
    last_error: Optional[str] = None
    synced_count: int = 0
    failed_count: int = 0

    @property
    def is_syncing(self) -> bool:
        return self.status is SyncStatus.SYNCING


class SyncEngine:
    """
    Reconciliation between the local store and the remote store.

    Usage:
        engine = SyncEngine(store, remote, config, is_online=provider.is_online)
        engine.subscribe(lambda state: print(state.status))
        engine.sync()
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        config: OfflineConfig,
        is_online: Optional[Callable[[], bool]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.remote = remote
        self.config = config
        self._is_online = is_online or (lambda: True)
        self._sleep = sleep
        self._state = SyncState()
        self._state_lock = threading.Lock()
        self._listeners = Broadcast("sync-state")
        self._collections = list(config.collections)

    @property
    def state(self) -> SyncState:
        """Snapshot of the current sync state."""
        return replace(self._state)

    @property
    def is_syncing(self) -> bool:
        return self._state.is_syncing

    @property
    def collections(self) -> Tuple[str, ...]:
        """Collections whose caches are replaced after every drain."""
        with self._state_lock:
            return tuple(self._collections)

    def track_collection(self, collection: str) -> None:
        """Include ``collection`` in future cache refreshes."""
        with self._state_lock:
            if collection not in self._collections:
                self._collections.append(collection)
                logger.debug(f"Tracking {collection} for cache refresh")

    def subscribe(self, callback: Callable[[SyncState], None]) -> Callable[[], None]:
        """Register a callback for sync state changes."""
        return self._listeners.subscribe(callback)

    def _notify(self) -> None:
        self._listeners.publish(self.state)

    # =========================================================================
    # SYNC CYCLE
    # =========================================================================

    def sync(self) -> bool:
        """
        Run one reconciliation cycle.

        Returns:
            True if the cycle completed, False if it was skipped or aborted
        """
        if not self._is_online():
            logger.debug("Cannot sync: offline")
            return False

        with self._state_lock:
            if self._state.is_syncing:
                logger.debug("Sync already in progress")
                return False
            self._state.status = SyncStatus.SYNCING
        self._notify()

        try:
            self._probe()

            with LogContext(logger, "Draining pending operations"):
                synced, failed = self._drain()

            if self.config.settle_delay:
                self._sleep(self.config.settle_delay)

            self.store.purge_synced()
            self.refresh_cache()

            self._state.synced_count = synced
            self._state.failed_count = failed
            self._state.last_sync = datetime.now(timezone.utc)
            self._state.last_error = None
            logger.info(f"Sync complete: {synced} synced, {failed} still pending")
            return True

        except SyncProbeError as e:
            logger.warning(f"Sync aborted, remote store unreachable: {e.message}")
            self._state.last_error = e.message
            return False

        except Exception as e:
            handle_error(e)
            self._state.last_error = str(e)
            return False

        finally:
            with self._state_lock:
                self._state.status = SyncStatus.IDLE
            self._notify()

    def _probe(self) -> None:
        """Minimal round trip proving the remote store answers."""
        collection = self.config.probe_collection
        result = call_remote(self.remote.select, collection, columns="id", limit=1)
        if not result.ok:
            raise SyncProbeError(
                f"No real connection to the remote store: {result.error}",
                collection=collection,
            )

    def _drain(self) -> Tuple[int, int]:
        synced = failed = 0
        for op in self.store.list_pending():
            self.track_collection(op.collection)
            try:
                self.process_operation(op)
            except Exception as e:
                failed += 1
                logger.error(
                    f"Operation #{op.id} ({op.kind.value}) on {op.collection} failed: {e}"
                )
                continue

            self.store.mark_synced(op.id)
            synced += 1
            logger.debug(f"Operation #{op.id} ({op.kind.value}) synced")
        return synced, failed

    def process_operation(self, op: PendingOperation) -> None:
        """
        Apply a single queued operation to the remote store.

        Raises:
            MissingIdentifierError: UPDATE/DELETE payload without an id
            RemoteStoreError: The remote store rejected the call
        """
        payload = strip_local_fields(op.payload)

        if op.kind.requires_id and not has_identifier(payload):
            raise MissingIdentifierError(
                f"Missing id for {op.kind.value.lower()}",
                collection=op.collection,
                kind=op.kind.value,
                operation_id=op.id,
            )

        if op.kind is OperationKind.INSERT:
            result = call_remote(self.remote.insert, op.collection, payload)
        elif op.kind is OperationKind.UPDATE:
            changes = {k: v for k, v in payload.items() if k != "id"}
            result = call_remote(
                self.remote.update, op.collection, changes, [Eq("id", payload["id"])]
            )
        else:
            result = call_remote(self.remote.delete, op.collection, [Eq("id", payload["id"])])

        if not result.ok:
            if isinstance(result.error, RemoteStoreError):
                raise result.error
            raise RemoteStoreError(
                str(result.error), collection=op.collection, operation=op.kind.value
            ) from result.error

    # =========================================================================
    # CACHE REFRESH
    # =========================================================================

    def refresh_cache(self, collections: Optional[Sequence[str]] = None) -> Dict[str, int]:
        """
        Replace each collection cache with the remote snapshot.

        A failing collection is logged and skipped.

        Returns:
            Mapping of refreshed collection -> record count
        """
        refreshed: Dict[str, int] = {}
        for collection in collections or self.collections:
            result = call_remote(self.remote.select, collection)
            if not result.ok:
                logger.warning(f"Could not refresh cache for {collection}: {result.error}")
                continue
            try:
                rows = result.rows()
                self.store.replace_collection(collection, rows)
                refreshed[collection] = len(rows)
            except Exception as e:
                logger.warning(f"Could not refresh cache for {collection}: {e}")
        return refreshed

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        state = self.state
        return {
            "is_syncing": state.is_syncing,
            "last_sync": state.last_sync.isoformat() if state.last_sync else None,
            "last_error": state.last_error,
            "synced_count": state.synced_count,
            "failed_count": state.failed_count,
        }
