# =============================================================================
# tests/unit/test_sync_engine.py
# Unit Tests for SyncEngine
# =============================================================================

import threading

from finca_core.offline.operations import NewOperation, OperationKind
from finca_core.offline.sync_engine import SyncEngine, SyncStatus


def make_engine(local_store, fake_remote, offline_config, online=True, sleep=None):
    return SyncEngine(
        local_store,
        fake_remote,
        offline_config,
        is_online=lambda: online,
        sleep=sleep or (lambda seconds: None),
    )


class TestSyncGuards:
    """Test when a cycle is skipped"""

    def test_offline_skips_without_remote_calls(self, local_store, fake_remote, offline_config):
        engine = make_engine(local_store, fake_remote, offline_config, online=False)

        assert engine.sync() is False
        assert fake_remote.calls == []

    def test_probe_failure_aborts_cycle(self, local_store, fake_remote, offline_config):
        local_store.enqueue(NewOperation("animales", OperationKind.INSERT, {"nombre": "A"}))
        fake_remote.offline = True
        engine = make_engine(local_store, fake_remote, offline_config)

        assert engine.sync() is False

        assert fake_remote.mutations() == []
        assert local_store.count_pending() == 1
        assert engine.state.last_error
        assert engine.state.status is SyncStatus.IDLE

    def test_probe_is_single_row_select(self, local_store, fake_remote, offline_config):
        engine = make_engine(local_store, fake_remote, offline_config)
        engine.sync()

        method, collection, _ = fake_remote.calls[0]
        assert (method, collection) == ("select", offline_config.probe_collection)

    def test_concurrent_sync_is_skipped(self, local_store, fake_remote, offline_config):
        """A sync requested during a running cycle does not start a second drain"""
        local_store.enqueue(NewOperation("animales", OperationKind.INSERT, {"nombre": "Slow"}))
        in_insert = threading.Event()
        release = threading.Event()

        def block_insert(method, collection, payload):
            if method == "insert":
                in_insert.set()
                release.wait(timeout=5)

        fake_remote.before_call = block_insert
        engine = make_engine(local_store, fake_remote, offline_config)

        results = []
        worker = threading.Thread(target=lambda: results.append(engine.sync()))
        worker.start()
        assert in_insert.wait(timeout=5)

        assert engine.is_syncing
        assert engine.sync() is False

        release.set()
        worker.join(timeout=5)

        assert results == [True]
        assert fake_remote.count("insert") == 1


class TestDrain:
    """Test replaying queued operations"""

    def test_applies_all_kinds_and_clears_queue(self, local_store, fake_remote, offline_config):
        local_store.enqueue(NewOperation("animales", OperationKind.INSERT, {"nombre": "Nueva"}))
        local_store.enqueue(NewOperation("animales", OperationKind.UPDATE, {"id": "a1", "peso": 410}))
        local_store.enqueue(NewOperation("animales", OperationKind.DELETE, {"id": "a3"}))
        engine = make_engine(local_store, fake_remote, offline_config)

        assert engine.sync() is True

        assert [m[0] for m in fake_remote.mutations()] == ["insert", "update", "delete"]
        assert local_store.count_pending() == 0
        names = {r["nombre"] for r in fake_remote.tables["animales"]}
        assert names == {"Lucero", "Tormenta", "Nueva"}
        assert engine.state.synced_count == 3
        assert engine.state.last_sync is not None

    def test_update_body_excludes_id_and_local_fields(self, local_store, fake_remote, offline_config):
        local_store.enqueue(NewOperation(
            "animales", OperationKind.UPDATE, {"id": "a1", "peso": 410, "pending": True}
        ))
        engine = make_engine(local_store, fake_remote, offline_config)

        engine.sync()

        assert fake_remote.mutations() == [("update", "animales", {"peso": 410})]
        assert fake_remote.tables["animales"][0]["peso"] == 410

    def test_failed_operation_isolated(self, local_store, fake_remote, offline_config):
        for name in ["A", "B", "C"]:
            local_store.enqueue(NewOperation("animales", OperationKind.INSERT, {"nombre": name}))
        fake_remote.fail_when = (
            lambda method, collection, payload: method == "insert" and payload["nombre"] == "B"
        )
        engine = make_engine(local_store, fake_remote, offline_config)

        assert engine.sync() is True

        inserted = [p["nombre"] for m, c, p in fake_remote.mutations()]
        assert inserted == ["A", "B", "C"]
        assert [op.payload["nombre"] for op in local_store.list_pending()] == ["B"]
        assert engine.state.synced_count == 2
        assert engine.state.failed_count == 1

    def test_missing_identifier_stays_pending(self, local_store, fake_remote, offline_config):
        """Legacy entries without an id are skipped, not sent"""
        bad_id = local_store.enqueue(NewOperation("vacunas", OperationKind.DELETE, {}))
        local_store.enqueue(NewOperation("vacunas", OperationKind.INSERT, {"vacuna": "Aftosa"}))
        engine = make_engine(local_store, fake_remote, offline_config)

        engine.sync()

        assert [op.id for op in local_store.list_pending()] == [bad_id]
        assert fake_remote.count("delete") == 0
        assert fake_remote.count("insert") == 1

    def test_insert_then_delete_not_compacted(self, local_store, fake_remote, offline_config):
        local_store.enqueue(NewOperation("animales", OperationKind.INSERT, {"id": "x1", "nombre": "X"}))
        local_store.enqueue(NewOperation("animales", OperationKind.DELETE, {"id": "x1"}))
        engine = make_engine(local_store, fake_remote, offline_config)

        engine.sync()

        assert [m[0] for m in fake_remote.mutations()] == ["insert", "delete"]
        assert all(r["id"] != "x1" for r in fake_remote.tables["animales"])


class TestRefresh:
    """Test settle delay and cache refresh"""

    def test_settle_delay_between_drain_and_refresh(self, local_store, fake_remote, offline_config):
        offline_config.settle_delay = 0.5
        local_store.enqueue(NewOperation("animales", OperationKind.INSERT, {"nombre": "A"}))
        sleeps = []

        def record_sleep(seconds):
            sleeps.append(seconds)
            fake_remote.calls.append(("sleep", None, seconds))

        engine = make_engine(local_store, fake_remote, offline_config, sleep=record_sleep)
        engine.sync()

        methods = [call[0] for call in fake_remote.calls]
        assert sleeps == [0.5]
        assert methods.index("insert") < methods.index("sleep")
        assert methods[methods.index("sleep") + 1:] == ["select"] * len(offline_config.collections)

    def test_refresh_replaces_every_collection(self, local_store, fake_remote, offline_config):
        local_store.replace_collection("animales", [{"id": "stale"}])
        local_store.replace_collection("vacunas", [{"id": "stale"}])
        engine = make_engine(local_store, fake_remote, offline_config)

        engine.sync()

        assert [r["id"] for r in local_store.read_collection("animales")] == ["a1", "a2", "a3"]
        assert local_store.read_collection("vacunas") == []

    def test_failing_collection_does_not_block_others(self, local_store, fake_remote, offline_config):
        local_store.replace_collection("contabilidad", [{"id": "kept"}])
        fake_remote.fail_when = (
            lambda method, collection, payload: method == "select" and collection == "contabilidad"
        )
        engine = make_engine(local_store, fake_remote, offline_config)

        refreshed = engine.refresh_cache()

        assert "contabilidad" not in refreshed
        assert refreshed["animales"] == 3
        assert local_store.read_collection("contabilidad") == [{"id": "kept"}]


class TestSyncState:
    """Test state notifications"""

    def test_subscribers_see_syncing_then_idle(self, local_store, fake_remote, offline_config):
        engine = make_engine(local_store, fake_remote, offline_config)
        statuses = []
        engine.subscribe(lambda state: statuses.append(state.status))

        engine.sync()

        assert statuses == [SyncStatus.SYNCING, SyncStatus.IDLE]

    def test_successful_sync_clears_error(self, local_store, fake_remote, offline_config):
        engine = make_engine(local_store, fake_remote, offline_config)
        fake_remote.offline = True
        engine.sync()
        assert engine.get_status_display()["last_error"]

        fake_remote.offline = False
        engine.sync()

        display = engine.get_status_display()
        assert display["last_error"] is None
        assert display["last_sync"] is not None
        assert display["is_syncing"] is False


class TestTrackedCollections:
    """Test refresh of collections beyond the configured ones"""

    def test_tracked_collection_is_refreshed(self, local_store, fake_remote, offline_config):
        fake_remote.tables["corrales"] = [{"id": "c1", "nombre": "Potrero norte"}]
        local_store.replace_collection("corrales", [{"id": "c1", "nombre": "Potrero", "pending": True}])
        engine = make_engine(local_store, fake_remote, offline_config)

        engine.track_collection("corrales")
        engine.track_collection("corrales")
        engine.sync()

        assert engine.collections.count("corrales") == 1
        assert local_store.read_collection("corrales") == [{"id": "c1", "nombre": "Potrero norte"}]

    def test_drained_collection_is_refreshed(self, local_store, fake_remote, offline_config):
        local_store.enqueue(NewOperation("corrales", OperationKind.INSERT, {"id": "c9", "nombre": "Nuevo"}))
        engine = make_engine(local_store, fake_remote, offline_config)

        engine.sync()

        assert "corrales" in engine.collections
        assert local_store.read_collection("corrales") == [{"id": "c9", "nombre": "Nuevo"}]
