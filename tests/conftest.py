# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import sys
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from finca_core.config import OfflineConfig
from finca_core.errors import RemoteStoreError
from finca_core.offline.connection_manager import ManualConnectivityProvider
from finca_core.offline.context import OfflineContext
from finca_core.offline.local_store import LocalStore
from finca_core.offline.remote import RemoteResult, matches_all


# =============================================================================
# FAKE REMOTE STORE
# =============================================================================

class FakeRemoteStore:
    """
    In-memory stand-in for Supabase.

    - ``calls`` records every call as (method, collection, payload)
    - ``offline = True`` makes every call fail
    - ``fail_when(method, collection, payload)`` fails selected calls
    - ``before_call(method, collection, payload)`` runs before each call
      (used to block a call and simulate a slow remote)
    - inserts without an id get a remote-assigned ``remote-N`` id
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.calls: List[Tuple[str, str, Any]] = []
        self.offline = False
        self.fail_when: Optional[Callable[[str, str, Any], bool]] = None
        self.before_call: Optional[Callable[[str, str, Any], None]] = None
        self._next_id = 1
        self._lock = threading.Lock()

    def mutations(self) -> List[Tuple[str, str, Any]]:
        return [call for call in self.calls if call[0] in ("insert", "update", "delete")]

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def _start(self, method: str, collection: str, payload: Any) -> Optional[RemoteResult]:
        with self._lock:
            self.calls.append((method, collection, payload))
        if self.before_call:
            self.before_call(method, collection, payload)
        if self.offline or (self.fail_when and self.fail_when(method, collection, payload)):
            return RemoteResult(
                None, RemoteStoreError("simulated failure", collection=collection, operation=method)
            )
        return None

    @staticmethod
    def _matches(row: Dict[str, Any], filters) -> bool:
        return matches_all(row, filters)

    def select(self, collection, filters=(), columns="*", order_by=None, limit=None):
        failed = self._start("select", collection, list(filters))
        if failed:
            return failed
        rows = [dict(r) for r in self.tables.get(collection, []) if self._matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by)))
        if limit is not None:
            rows = rows[:limit]
        if columns != "*":
            wanted = [c.strip() for c in columns.split(",")]
            rows = [{c: r.get(c) for c in wanted} for r in rows]
        return RemoteResult(rows)

    def insert(self, collection, record):
        failed = self._start("insert", collection, dict(record))
        if failed:
            return failed
        row = dict(record)
        if not row.get("id"):
            row["id"] = f"remote-{self._next_id}"
            self._next_id += 1
        self.tables.setdefault(collection, []).append(row)
        return RemoteResult([dict(row)])

    def update(self, collection, changes, filters):
        failed = self._start("update", collection, dict(changes))
        if failed:
            return failed
        updated = []
        for row in self.tables.get(collection, []):
            if self._matches(row, filters):
                row.update(changes)
                updated.append(dict(row))
        return RemoteResult(updated)

    def delete(self, collection, filters):
        failed = self._start("delete", collection, list(filters))
        if failed:
            return failed
        rows = self.tables.get(collection, [])
        removed = [dict(r) for r in rows if self._matches(r, filters)]
        self.tables[collection] = [r for r in rows if not self._matches(r, filters)]
        return RemoteResult(removed)


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_animales():
    """A small herd as stored in Supabase"""
    return [
        {"id": "a1", "nombre": "Lucero", "numero_arete": "ARE-100", "sexo": "Hembra"},
        {"id": "a2", "nombre": "Tormenta", "numero_arete": "ARE-101", "sexo": "Hembra"},
        {"id": "a3", "nombre": "Cabo", "numero_arete": "XYZ-777", "sexo": "Macho"},
    ]


@pytest.fixture
def offline_config(tmp_path):
    """Config pointing at a temp database with no settle delay or polling"""
    return OfflineConfig(
        db_path=tmp_path / "offline.db",
        settle_delay=0,
        pending_poll_interval=0,
        was_offline_window=0.05,
    )


@pytest.fixture
def local_store(offline_config):
    store = LocalStore(offline_config.db_path)
    yield store
    store.close()


@pytest.fixture
def fake_remote(sample_animales):
    return FakeRemoteStore({"animales": sample_animales})


@pytest.fixture
def connectivity():
    return ManualConnectivityProvider(online=True)


@pytest.fixture
def offline_context(offline_config, fake_remote, connectivity):
    """Fully wired context with the fake remote and manual connectivity"""
    ctx = OfflineContext(offline_config, remote=fake_remote, connectivity=connectivity)
    ctx.initialize(start_monitoring=False)
    yield ctx
    ctx.close()


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock Streamlit for testing"""
    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.cache_data = lambda f: f
    mock_st.cache_resource = lambda f: f

    monkeypatch.setitem(sys.modules, "streamlit", mock_st)
    monkeypatch.setattr("finca_core.errors.handlers.st", mock_st)
    monkeypatch.setattr("finca_core.ui.sync_indicator.st", mock_st)

    yield mock_st


@pytest.fixture
def mock_supabase():
    """Mock Supabase client"""
    mock_client = MagicMock()
    mock_client.table.return_value.select.return_value.execute.return_value.data = []
    mock_client.table.return_value.insert.return_value.execute.return_value = MagicMock()
    return mock_client
