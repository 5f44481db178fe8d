# =============================================================================
# finca_core/offline/queue_manager.py
# Pending-Operation Queue with Subscriber Notifications
# =============================================================================
"""
QueueManager - wraps the local store's operation log.

- ``add_to_queue`` persists an operation and tells subscribers the new length.
- ``process_queue`` drains the log once, in enqueue order, with a
  single-flight guard: a call made while a pass is running returns at once.
"""

from __future__ import annotations
import threading
from typing import Callable, Optional
import logging

from finca_core.offline.broadcast import Broadcast
from finca_core.offline.local_store import LocalStore
from finca_core.offline.operations import NewOperation, PendingOperation

logger = logging.getLogger(__name__)

Executor = Callable[[PendingOperation], None]


class QueueManager:
    """
    Usage:
        queue = QueueManager(store, executor=sync_engine.process_operation)
        queue.add_to_queue(NewOperation("animales", OperationKind.DELETE, {"id": "a1"}))
        unsubscribe = queue.subscribe(lambda count: print(f"{count} pending"))
        queue.process_queue()
    """

    def __init__(
        self,
        store: LocalStore,
        executor: Optional[Executor] = None,
        is_online: Optional[Callable[[], bool]] = None,
    ):
        self.store = store
        self._executor = executor
        self._is_online = is_online
        self._listeners = Broadcast("queue-length")
        self._state_lock = threading.Lock()
        self._processing = False

    def set_executor(self, executor: Executor) -> None:
        """Set the per-operation executor (normally SyncEngine.process_operation)."""
        self._executor = executor

    @property
    def is_processing(self) -> bool:
        return self._processing

    def add_to_queue(self, operation: NewOperation) -> int:
        """
        Validate and persist an operation, then notify subscribers.

        Raises:
            MissingIdentifierError: UPDATE/DELETE without an id
            LocalStoreError: The operation could not be persisted
        """
        operation.validate()
        op_id = self.store.enqueue(operation)
        logger.info(f"Queued {operation.kind.value} on {operation.collection} (#{op_id})")
        self.notify_listeners()
        return op_id

    def process_queue(self) -> bool:
        """
        Run one drain pass over the pending operations.

        Returns:
            True if a pass ran, False if skipped (already running or offline)
        """
        if self._is_online is not None and not self._is_online():
            logger.debug("Queue not processed: offline")
            return False

        if self._executor is None:
            raise RuntimeError("QueueManager has no executor configured")

        with self._state_lock:
            if self._processing:
                logger.debug("Queue already being processed")
                return False
            self._processing = True

        try:
            pending = self.store.list_pending()
            logger.info(f"Processing {len(pending)} queued operations")

            for op in pending:
                try:
                    self._executor(op)
                    self.store.mark_synced(op.id)
                    logger.debug(f"Operation #{op.id} ({op.kind.value}) processed")
                except Exception as e:
                    logger.error(f"Operation #{op.id} on {op.collection} failed: {e}")

            self.store.purge_synced()
        finally:
            with self._state_lock:
                self._processing = False
            self.notify_listeners()

        return True

    def get_queue_length(self) -> int:
        return self.store.count_pending()

    def subscribe(self, callback: Callable[[int], None]) -> Callable[[], None]:
        """
        Call ``callback`` now with the current length, then on every change.

        Returns:
            Function that removes the subscription
        """
        unsubscribe = self._listeners.subscribe(callback)
        try:
            callback(self.get_queue_length())
        except Exception as e:
            logger.error(f"Error in queue-length callback: {e}")
        return unsubscribe

    def notify_listeners(self) -> None:
        if len(self._listeners) == 0:
            return
        try:
            count = self.get_queue_length()
        except Exception as e:
            logger.error(f"Could not read queue length: {e}")
            return
        self._listeners.publish(count)
