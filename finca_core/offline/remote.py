# =============================================================================
# finca_core/offline/remote.py
# Remote Store Contract and Supabase Implementation
# =============================================================================
"""
Generic select/insert/update/delete contract consumed by the offline layer.

Every call returns a ``RemoteResult(data, error)`` pair. A non-null error
means "treat as offline": callers fall back to the queue and cache.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Protocol, Sequence, Union
import logging

from finca_core.config import OfflineConfig
from finca_core.errors import ConfigurationError, RemoteStoreError

logger = logging.getLogger(__name__)


class RemoteResult(NamedTuple):
    """Outcome of a remote call."""
    data: Any
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def rows(self) -> List[Dict[str, Any]]:
        """``data`` as a list of records (empty on error or no data)."""
        if not self.ok or self.data is None:
            return []
        if isinstance(self.data, list):
            return self.data
        return [self.data]


@dataclass(frozen=True)
class Eq:
    """``column = value``"""
    column: str
    value: Any


@dataclass(frozen=True)
class ILikeAny:
    """Case-insensitive substring match of ``term`` on any of ``columns``."""
    columns: Sequence[str]
    term: str


@dataclass(frozen=True)
class Gte:
    """``column >= value``"""
    column: str
    value: Any


@dataclass(frozen=True)
class Lte:
    """``column <= value``"""
    column: str
    value: Any


Filter = Union[Eq, ILikeAny, Gte, Lte]


class RemoteStore(Protocol):
    """What the offline layer needs from the remote database."""

    def select(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> RemoteResult: ...

    def insert(self, collection: str, record: Dict[str, Any]) -> RemoteResult: ...

    def update(
        self, collection: str, changes: Dict[str, Any], filters: Sequence[Filter]
    ) -> RemoteResult: ...

    def delete(self, collection: str, filters: Sequence[Filter]) -> RemoteResult: ...


def call_remote(func: Callable[..., RemoteResult], *args, **kwargs) -> RemoteResult:
    """
    Invoke a remote method, turning a raised exception into an error result.
    """
    try:
        result = func(*args, **kwargs)
    except Exception as e:
        logger.debug(f"Remote call {getattr(func, '__name__', func)} raised: {e}")
        return RemoteResult(None, e)
    if result is None:
        return RemoteResult(None, RemoteStoreError("Remote call returned no result"))
    return result


def matches_term(record: Dict[str, Any], columns: Sequence[str], term: str) -> bool:
    """Local mirror of ``ILikeAny``: case-insensitive substring on any column."""
    needle = term.lower()
    for column in columns:
        value = record.get(column)
        if value is not None and needle in str(value).lower():
            return True
    return False


def filter_value(value: Any) -> Any:
    """Dates travel as ISO strings, the same way Supabase stores them."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _compare(left: Any, right: Any) -> int:
    left, right = filter_value(left), filter_value(right)
    try:
        return (left > right) - (left < right)
    except TypeError:
        left, right = str(left), str(right)
        return (left > right) - (left < right)


def matches_filter(record: Dict[str, Any], condition: Filter) -> bool:
    """Evaluate one remote filter against a cached record."""
    if isinstance(condition, ILikeAny):
        return matches_term(record, condition.columns, condition.term)

    value = record.get(condition.column)
    if value is None:
        return False
    if isinstance(condition, Eq):
        return str(filter_value(value)) == str(filter_value(condition.value))
    if isinstance(condition, Gte):
        return _compare(value, condition.value) >= 0
    if isinstance(condition, Lte):
        return _compare(value, condition.value) <= 0
    raise TypeError(f"Unsupported filter: {condition!r}")


def matches_all(record: Dict[str, Any], filters: Sequence[Filter]) -> bool:
    return all(matches_filter(record, condition) for condition in filters)


class SupabaseRemoteStore:
    """
    RemoteStore backed by a supabase-py client.

    Usage:
        remote = SupabaseRemoteStore.from_config(config)
        result = remote.select("animales", order_by="nombre")
        if result.ok:
            rows = result.rows()
    """

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_config(cls, config: OfflineConfig) -> SupabaseRemoteStore:
        """Create the store with ``supabase.create_client``."""
        if not config.has_supabase:
            raise ConfigurationError(
                "Supabase url/key are not configured",
                config_key="supabase",
            )

        from supabase import create_client

        return cls(create_client(config.supabase_url, config.supabase_key))

    @staticmethod
    def _apply_filters(query, filters: Sequence[Filter]):
        for condition in filters:
            if isinstance(condition, Eq):
                query = query.eq(condition.column, filter_value(condition.value))
            elif isinstance(condition, ILikeAny):
                clauses = ",".join(
                    f"{column}.ilike.%{condition.term}%" for column in condition.columns
                )
                query = query.or_(clauses)
            elif isinstance(condition, Gte):
                query = query.gte(condition.column, filter_value(condition.value))
            elif isinstance(condition, Lte):
                query = query.lte(condition.column, filter_value(condition.value))
            else:
                raise TypeError(f"Unsupported filter: {condition!r}")
        return query

    def _execute(self, collection: str, operation: str, build) -> RemoteResult:
        try:
            response = build(self.client.table(collection)).execute()
            return RemoteResult(response.data)
        except Exception as e:
            logger.warning(f"Supabase {operation} on {collection} failed: {e}")
            return RemoteResult(
                None,
                RemoteStoreError(str(e), collection=collection, operation=operation),
            )

    def select(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> RemoteResult:
        def build(table):
            query = self._apply_filters(table.select(columns), filters)
            if order_by:
                query = query.order(order_by)
            if limit is not None:
                query = query.limit(limit)
            return query

        return self._execute(collection, "select", build)

    def insert(self, collection: str, record: Dict[str, Any]) -> RemoteResult:
        return self._execute(collection, "insert", lambda table: table.insert(record))

    def update(
        self, collection: str, changes: Dict[str, Any], filters: Sequence[Filter]
    ) -> RemoteResult:
        return self._execute(
            collection, "update",
            lambda table: self._apply_filters(table.update(changes), filters),
        )

    def delete(self, collection: str, filters: Sequence[Filter]) -> RemoteResult:
        return self._execute(
            collection, "delete",
            lambda table: self._apply_filters(table.delete(), filters),
        )
