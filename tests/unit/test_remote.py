# =============================================================================
# tests/unit/test_remote.py
# Unit Tests for the remote store contract and Supabase adapter
# =============================================================================

from datetime import date
from unittest.mock import MagicMock

import pytest

from finca_core.config import OfflineConfig
from finca_core.errors import ConfigurationError, RemoteStoreError
from finca_core.offline.remote import (
    Eq,
    Gte,
    ILikeAny,
    Lte,
    RemoteResult,
    SupabaseRemoteStore,
    call_remote,
    matches_all,
    matches_filter,
    matches_term,
)


class TestRemoteResult:
    """Test result helpers"""

    def test_rows_normalizes_data(self):
        assert RemoteResult([{"id": 1}]).rows() == [{"id": 1}]
        assert RemoteResult({"id": 1}).rows() == [{"id": 1}]
        assert RemoteResult(None).rows() == []
        assert RemoteResult([{"id": 1}], ValueError("x")).rows() == []

    def test_call_remote_wraps_exceptions(self):
        def explode(*args, **kwargs):
            raise ConnectionError("network down")

        result = call_remote(explode, "animales")

        assert not result.ok
        assert isinstance(result.error, ConnectionError)

    def test_call_remote_none_is_error(self):
        result = call_remote(lambda: None)
        assert isinstance(result.error, RemoteStoreError)

    def test_matches_term(self):
        record = {"nombre": "Lucero", "numero_arete": None}
        assert matches_term(record, ("nombre", "numero_arete"), "CER")
        assert not matches_term(record, ("numero_arete",), "cer")


class TestSupabaseRemoteStore:
    """Test query building against a mocked supabase client"""

    def test_select_with_filters(self, mock_supabase):
        query = MagicMock()
        mock_supabase.table.return_value.select.return_value = query
        query.eq.return_value = query
        query.or_.return_value = query
        query.order.return_value = query
        query.limit.return_value = query
        query.execute.return_value.data = [{"id": "a1"}]

        store = SupabaseRemoteStore(mock_supabase)
        result = store.select(
            "animales",
            filters=[Eq("sexo", "Hembra"), ILikeAny(("nombre", "numero_arete"), "luc")],
            order_by="nombre",
            limit=5,
        )

        assert result.ok
        assert result.rows() == [{"id": "a1"}]
        mock_supabase.table.assert_called_with("animales")
        mock_supabase.table.return_value.select.assert_called_with("*")
        query.eq.assert_called_with("sexo", "Hembra")
        query.or_.assert_called_with("nombre.ilike.%luc%,numero_arete.ilike.%luc%")
        query.order.assert_called_with("nombre")
        query.limit.assert_called_with(5)

    def test_insert(self, mock_supabase):
        mock_supabase.table.return_value.insert.return_value.execute.return_value.data = [
            {"id": "r-1", "nombre": "Brisa"}
        ]
        store = SupabaseRemoteStore(mock_supabase)

        result = store.insert("animales", {"nombre": "Brisa"})

        mock_supabase.table.return_value.insert.assert_called_with({"nombre": "Brisa"})
        assert result.rows()[0]["id"] == "r-1"

    def test_update_and_delete_filter_by_id(self, mock_supabase):
        store = SupabaseRemoteStore(mock_supabase)
        table = mock_supabase.table.return_value

        store.update("vacunas", {"dosis": 2}, [Eq("id", 9)])
        store.delete("vacunas", [Eq("id", 9)])

        table.update.assert_called_with({"dosis": 2})
        table.update.return_value.eq.assert_called_with("id", 9)
        table.delete.return_value.eq.assert_called_with("id", 9)

    def test_client_exception_becomes_error_result(self, mock_supabase):
        mock_supabase.table.side_effect = RuntimeError("timeout")
        store = SupabaseRemoteStore(mock_supabase)

        result = store.select("animales")

        assert not result.ok
        assert isinstance(result.error, RemoteStoreError)
        assert result.error.details == {"collection": "animales", "operation": "select"}

    def test_from_config_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            SupabaseRemoteStore.from_config(OfflineConfig())

    def test_from_config_creates_client(self, monkeypatch):
        import supabase

        created = MagicMock()
        monkeypatch.setattr(supabase, "create_client", lambda url, key: created)
        config = OfflineConfig(supabase_url="https://demo.supabase.co", supabase_key="anon")

        assert SupabaseRemoteStore.from_config(config).client is created


class TestFilterPredicates:
    """Test the local mirror of remote filters"""

    def test_eq_compares_as_text(self):
        assert matches_filter({"animal_id": 7}, Eq("animal_id", "7"))
        assert not matches_filter({"animal_id": None}, Eq("animal_id", "7"))

    def test_range_with_dates_and_iso_strings(self):
        record = {"fecha": "2024-02-03"}

        assert matches_filter(record, Gte("fecha", date(2024, 2, 3)))
        assert matches_filter(record, Lte("fecha", date(2024, 2, 3)))
        assert not matches_filter(record, Gte("fecha", date(2024, 2, 4)))

    def test_range_missing_value_excluded(self):
        assert not matches_filter({"monto": None}, Gte("monto", 0))
        assert not matches_filter({}, Lte("monto", 0))

    def test_matches_all(self):
        record = {"tipo": "gasto", "monto": 120}
        assert matches_all(record, [Eq("tipo", "gasto"), Gte("monto", 100), Lte("monto", 200)])
        assert not matches_all(record, [Eq("tipo", "gasto"), Gte("monto", 200)])
        assert matches_all(record, [])


class TestSupabaseRangeFilters:
    """Test gte/lte query building"""

    def test_range_filters_send_iso_dates(self, mock_supabase):
        query = MagicMock()
        mock_supabase.table.return_value.select.return_value = query
        query.gte.return_value = query
        query.lte.return_value = query
        query.order.return_value = query
        query.execute.return_value.data = []

        SupabaseRemoteStore(mock_supabase).select(
            "contabilidad",
            filters=[Gte("fecha", date(2024, 1, 1)), Lte("fecha", date(2024, 1, 31))],
            order_by="fecha",
        )

        query.gte.assert_called_with("fecha", "2024-01-01")
        query.lte.assert_called_with("fecha", "2024-01-31")
