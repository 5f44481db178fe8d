# =============================================================================
# finca_core/offline/repository.py
# Per-Collection Repository with Offline Fallback
# =============================================================================
"""
OfflineRepository - the CRUD surface application code uses for one collection.

Writes go to Supabase when online. If the remote call fails, or the app is
offline, the mutation is queued and applied optimistically to the local
cache, tagged ``pending=True`` until the next successful refresh.

Reads go to Supabase first and fall back to the cached snapshot.
"""

from __future__ import annotations
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging

from finca_core.errors import LocalStoreError
from finca_core.offline.local_store import LocalStore
from finca_core.offline.operations import NewOperation, OperationKind, strip_local_fields
from finca_core.offline.queue_manager import QueueManager
from finca_core.offline.remote import (
    Eq,
    Filter,
    Gte,
    ILikeAny,
    Lte,
    RemoteResult,
    RemoteStore,
    call_remote,
    matches_all,
)

logger = logging.getLogger(__name__)

class OfflineRepository:
    """
    Usage:
        animales = context.repository("animales")
        animal = animales.create({"nombre": "Lucero", "numero_arete": "A-102"})
        matches = animales.find_by_search_term("a-1")
    """

    def __init__(
        self,
        collection: str,
        remote: RemoteStore,
        store: LocalStore,
        queue: QueueManager,
        is_online: Callable[[], bool],
        search_fields: Sequence[str] = ("id",),
        order_by: Optional[str] = None,
    ):
        self.collection = collection
        self.remote = remote
        self.store = store
        self.queue = queue
        self._is_online = is_online
        self.search_fields = tuple(search_fields)
        self.order_by = order_by

    def _remote(self, func: Callable[..., RemoteResult], *args, **kwargs) -> RemoteResult:
        """Remote call, short-circuited to an error result while offline."""
        if not self._is_online():
            return RemoteResult(None, ConnectionError("offline"))
        return call_remote(func, *args, **kwargs)

    def _refresh_cache(self) -> Optional[List[Dict[str, Any]]]:
        """Re-read the full collection and replace the cached snapshot."""
        result = call_remote(self.remote.select, self.collection, order_by=self.order_by)
        if not result.ok:
            logger.warning(f"Could not re-read {self.collection} after write: {result.error}")
            return None

        rows = result.rows()
        try:
            self.store.replace_collection(self.collection, rows)
        except LocalStoreError as e:
            logger.warning(f"Could not cache {self.collection}: {e}")
        return rows

    # =========================================================================
    # READS
    # =========================================================================

    def find_all(self) -> List[Dict[str, Any]]:
        """All records; refreshes the cache on success."""
        result = self._remote(self.remote.select, self.collection, order_by=self.order_by)
        if result.ok:
            rows = result.rows()
            try:
                self.store.replace_collection(self.collection, rows)
            except LocalStoreError as e:
                logger.warning(f"Could not cache {self.collection}: {e}")
            return rows

        logger.warning(f"Offline mode: loading {self.collection} from local cache")
        return self.store.read_collection(self.collection)

    def find_by_id(self, record_id: Any) -> Optional[Dict[str, Any]]:
        result = self._remote(
            self.remote.select, self.collection, filters=[Eq("id", record_id)], limit=1
        )
        if result.ok:
            rows = result.rows()
            return rows[0] if rows else None

        return self.store.get_cached_record(self.collection, record_id)

    def _find_filtered(
        self, filters: Sequence[Filter], order_by: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Remote select with ``filters``; the cache answers with the same predicates."""
        result = self._remote(
            self.remote.select, self.collection, filters=filters, order_by=order_by or self.order_by
        )
        if result.ok:
            return result.rows()

        return [
            record for record in self.store.read_collection(self.collection)
            if matches_all(record, filters)
        ]

    def find_by_search_term(self, term: str) -> List[Dict[str, Any]]:
        """Case-insensitive substring search over ``search_fields``."""
        return self._find_filtered([ILikeAny(self.search_fields, term)])

    def find_by(self, column: str, value: Any) -> List[Dict[str, Any]]:
        """
        Records whose ``column`` equals ``value``.

        e.g. ``vacunas.find_by("animal_id", "a1")`` or
        ``contabilidad.find_by("tipo", "gasto")``
        """
        return self._find_filtered([Eq(column, value)])

    def find_by_range(
        self, column: str, start: Any = None, end: Any = None
    ) -> List[Dict[str, Any]]:
        """
        Records with ``start <= column <= end``; either bound may be omitted.
        Dates are compared as ISO strings. Results are ordered by ``column``.
        """
        filters: List[Filter] = []
        if start is not None:
            filters.append(Gte(column, start))
        if end is not None:
            filters.append(Lte(column, end))
        return self._find_filtered(filters, order_by=column)

    # =========================================================================
    # WRITES
    # =========================================================================

    def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a record.

        Offline, the record gets a client-generated UUID (unless the caller
        supplied an id). The same id goes into the queued INSERT and the
        cache, so later offline updates and deletes target the row the
        remote store will create.

        Returns:
            The remote row when online; otherwise the cached record with
            ``pending=True``
        """
        payload = strip_local_fields(record)

        result = self._remote(self.remote.insert, self.collection, payload)
        if result.ok:
            rows = result.rows()
            self._refresh_cache()
            return rows[0] if rows else payload

        logger.warning(f"Queueing offline insert on {self.collection}: {result.error}")
        if not payload.get("id"):
            payload["id"] = str(uuid.uuid4())
        self.queue.add_to_queue(NewOperation(self.collection, OperationKind.INSERT, payload))

        provisional = {**payload, "pending": True}
        self.store.put_cached_record(self.collection, provisional)
        return provisional

    def update(self, record_id: Any, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update a record.

        While offline only the fields in ``changes`` (plus the id) are
        reliable in the returned record until the next sync.
        """
        payload = {k: v for k, v in strip_local_fields(changes).items() if k != "id"}

        result = self._remote(
            self.remote.update, self.collection, payload, [Eq("id", record_id)]
        )
        if result.ok:
            rows = result.rows()
            self._refresh_cache()
            return rows[0] if rows else {"id": record_id, **payload}

        logger.warning(f"Queueing offline update of {record_id} on {self.collection}: {result.error}")
        self.queue.add_to_queue(
            NewOperation(self.collection, OperationKind.UPDATE, {"id": record_id, **payload})
        )
        self.store.put_cached_record(
            self.collection,
            {"id": record_id, **payload, "pending": True},
            create_missing=False,
        )
        return {"id": record_id, **payload, "pending": True}

    def delete(self, record_id: Any) -> None:
        result = self._remote(self.remote.delete, self.collection, [Eq("id", record_id)])
        if result.ok:
            self._refresh_cache()
            return

        logger.warning(f"Queueing offline delete of {record_id} on {self.collection}: {result.error}")
        self.queue.add_to_queue(
            NewOperation(self.collection, OperationKind.DELETE, {"id": record_id})
        )
        self.store.remove_cached_record(self.collection, record_id)
