"""
Engine tests - product and inventory flows between the two stores.

Platform clients are MagicMocks backed by FakePlatform; the document store is
a real in-memory SQLite store.
"""
import threading
import time

import pytest

from catalog_sync.errors import MappingNotFound, PersistenceError, TargetPlatformError
from catalog_sync.models import LogStatus, Operation, SyncRecord, SyncState
from catalog_sync.services.engine import KeyedLocks
from catalog_sync.stores import Store
from catalog_sync.utils.payload import generate_sync_id

from .factories import T1, T2, T3, shopify_product

A, B = Store.STORE_A, Store.STORE_B


def _create_a_to_b(engine, pid=111):
    product = shopify_product(pid, updated_at=T1)
    return product, engine.sync_product(A, product, Operation.CREATE)


# ============================================================================
# Create
# ============================================================================

def test_create_mirrors_product_and_stores_mapping(engine, store, clients):
    """Test a new store A product is created on B and both ids are recorded."""
    product, result = _create_a_to_b(engine)

    assert result.success and not result.skipped
    assert result.target_id == "222"
    assert result.sync_id == generate_sync_id("TEE-111-S", None)
    clients[B].create_product.assert_called_once()
    sent = clients[B].create_product.call_args.args[0]
    assert "id" not in sent
    assert all("id" not in v for v in sent["variants"])

    record = store.get(result.sync_id)
    assert record.storeA_id == "111"
    assert record.storeB_id == "222"
    assert record.last_updated_by_store is A
    assert record.updated_at == T1
    assert [v.sku for v in record.variants] == ["TEE-111-S", "TEE-111-M"]
    assert record.variants[0].storeB_id == "2221"
    assert record.variants[0].inventory_item_storeB_id == "7221"


def test_create_copies_initial_inventory(engine, store, clients):
    """Test the initial inventory pass pushes source availability to the target primary location."""
    _, result = _create_a_to_b(engine)

    assert result.details["syncState"] == SyncState.INVENTORY_SYNCED.value
    clients[B].set_inventory_level.assert_any_call("7221", "9002", 5)
    clients[B].set_inventory_level.assert_any_call("7222", "9002", 5)
    record = store.get(result.sync_id)
    assert record.sync_state is SyncState.INVENTORY_SYNCED
    assert record.variants[0].inventory_quantity_storeA == 5
    assert record.variants[0].inventory_quantity_storeB == 5


def test_failed_initial_inventory_leaves_partial_state_and_can_resume(engine, store, clients):
    """Test a per-variant inventory failure does not undo the create and can be resumed."""
    clients[B].set_inventory_level.side_effect = [TargetPlatformError("boom", 500), {}]
    _, result = _create_a_to_b(engine)

    assert result.success
    assert store.get(result.sync_id).sync_state is SyncState.INVENTORY_PARTIAL

    clients[B].set_inventory_level.side_effect = None
    resumed = engine.resume_inventory(result.sync_id)
    assert resumed.details["syncState"] == SyncState.INVENTORY_SYNCED.value
    assert store.get(result.sync_id).sync_state is SyncState.INVENTORY_SYNCED


def test_resume_inventory_copies_from_creating_store_after_reverse_edit(engine, store, clients):
    """Test resuming still reads from the store the product was created on, even after an edit on the other side."""
    _, result = _create_a_to_b(engine)
    edit = dict(clients[B].platform.products["222"], title="Edited on B", updated_at=T3)
    engine.sync_product(B, edit, Operation.UPDATE)
    assert store.get(result.sync_id).last_updated_by_store is B
    assert store.get(result.sync_id).origin_store is A
    for c in clients.values():
        c.get_inventory_level.reset_mock()
        c.set_inventory_level.reset_mock()

    engine.resume_inventory(result.sync_id)

    clients[A].get_inventory_level.assert_called()
    clients[B].set_inventory_level.assert_any_call("7221", "9002", 5)
    clients[A].set_inventory_level.assert_not_called()


def test_resume_inventory_unknown_sync_id(engine):
    with pytest.raises(MappingNotFound):
        engine.resume_inventory("nope")


def test_create_replay_does_not_duplicate(engine, clients):
    """Test a re-delivered create event never creates a second target product."""
    product, first = _create_a_to_b(engine)
    second = engine.sync_product(A, product, Operation.CREATE)

    assert second.skipped
    assert second.sync_id == first.sync_id
    assert clients[B].create_product.call_count == 1


def test_create_removes_target_product_when_mapping_cannot_be_saved(engine, store, clients, monkeypatch):
    """Test a failed mapping write deletes the new target product so a redelivery cannot duplicate it."""
    def fail(record):
        raise PersistenceError("UNIQUE constraint failed")

    monkeypatch.setattr(store, "save", fail)

    with pytest.raises(PersistenceError):
        _create_a_to_b(engine)

    clients[B].delete_product.assert_called_once_with("222")
    assert store.find_by_store_id(A, "111") is None


def test_failed_orphan_cleanup_still_reports_persistence_error(engine, store, clients, monkeypatch):
    def fail(record):
        raise PersistenceError("database is locked")

    monkeypatch.setattr(store, "save", fail)
    clients[B].delete_product.side_effect = TargetPlatformError("DELETE failed 500", 500)

    with pytest.raises(PersistenceError):
        _create_a_to_b(engine)


def test_missing_product_id_is_rejected(engine):
    with pytest.raises(ValueError):
        engine.sync_product(A, {"title": "No id"}, Operation.CREATE)


# ============================================================================
# Update, replay and echo
# ============================================================================

def test_update_is_idempotent_on_replay(engine, clients):
    """Test the second delivery of an identical update is skipped."""
    _create_a_to_b(engine)
    update = shopify_product(111, title="Classic Tee v2", updated_at=T2)

    first = engine.sync_product(A, update, Operation.UPDATE)
    second = engine.sync_product(A, update, Operation.UPDATE)

    assert not first.skipped
    assert second.skipped
    assert clients[B].update_product.call_count == 1


def test_update_edits_target_variants_in_place(engine, clients):
    """Test outgoing update payloads carry the known target variant ids."""
    _create_a_to_b(engine)
    engine.sync_product(A, shopify_product(111, updated_at=T2), Operation.UPDATE)

    target_id, payload = clients[B].update_product.call_args.args
    assert target_id == "222"
    assert [v["id"] for v in payload["variants"]] == [2221, 2222]


def test_echo_from_target_store_is_skipped(engine, store, clients):
    """Test the target store's webhook for our own write does not bounce back."""
    _, result = _create_a_to_b(engine)
    echo = clients[B].platform.products["222"]

    outcome = engine.sync_product(B, echo, Operation.UPDATE)

    assert outcome.skipped
    clients[A].update_product.assert_not_called()
    assert store.get(result.sync_id).last_updated_by_store is A


def test_genuine_edit_on_other_store_flows_back(engine, store, clients):
    """Test a later edit made on store B is applied to store A."""
    _, result = _create_a_to_b(engine)
    edit = dict(clients[B].platform.products["222"], title="Edited on B", updated_at=T3)

    outcome = engine.sync_product(B, edit, Operation.UPDATE)

    assert not outcome.skipped
    assert outcome.target_id == "111"
    clients[A].update_product.assert_called_once()
    record = store.get(result.sync_id)
    assert record.last_updated_by_store is B
    assert record.title == "Edited on B"


def test_force_resync_ignores_conflict_guard(engine, clients):
    """Test force resync pushes the current source product even when the guard would skip."""
    product, result = _create_a_to_b(engine)
    clients[A].get_product.return_value = product

    outcome = engine.force_resync(result.sync_id, A)

    assert not outcome.skipped
    clients[B].update_product.assert_called_once()


def test_force_resync_unknown_record(engine):
    with pytest.raises(MappingNotFound):
        engine.force_resync("missing", A)


def test_sync_product_by_id_fetches_from_source(engine, clients):
    clients[A].get_product.return_value = shopify_product(111)

    result = engine.sync_product_by_id(A, "111", Operation.CREATE)

    clients[A].get_product.assert_called_once_with("111")
    assert result.target_id == "222"


def test_sync_product_by_id_not_found(engine, clients):
    clients[A].get_product.return_value = None
    with pytest.raises(MappingNotFound):
        engine.sync_product_by_id(A, "404", Operation.UPDATE)


# ============================================================================
# Delete
# ============================================================================

def test_delete_removes_remote_then_record(engine, store, clients):
    _, result = _create_a_to_b(engine)

    outcome = engine.sync_product(A, {"id": 111}, Operation.DELETE)

    assert outcome.success and outcome.target_id == "222"
    clients[B].delete_product.assert_called_once_with("222")
    assert store.get(result.sync_id) is None


def test_delete_without_target_id_skips_remote_call(engine, store, clients):
    """Test a record that never reached the target is removed without a remote delete."""
    store.save(SyncRecord(sync_id="half", last_updated_by_store=A, storeA_id="555"))

    outcome = engine.sync_product(A, {"id": 555}, Operation.DELETE)

    assert outcome.success
    clients[B].delete_product.assert_not_called()
    assert store.get("half") is None


def test_delete_failure_keeps_record(engine, store, clients):
    """Test a failed remote delete leaves the mapping for the platform's retry."""
    _, result = _create_a_to_b(engine)
    clients[B].delete_product.side_effect = TargetPlatformError("DELETE failed 500", 500)

    with pytest.raises(TargetPlatformError):
        engine.sync_product(A, {"id": 111}, Operation.DELETE)

    assert store.get(result.sync_id) is not None
    failed = store.list_logs(operation="delete", status="failed")
    assert len(failed) == 1


def test_delete_unknown_product_is_skipped(engine, clients):
    outcome = engine.sync_product(A, {"id": 999}, Operation.DELETE)

    assert outcome.success and outcome.skipped
    clients[B].delete_product.assert_not_called()


# ============================================================================
# Inventory
# ============================================================================

def test_inventory_update_converges(engine, store, clients):
    """Test quantity 7 on store A is pushed to B and stored for both stores."""
    _, result = _create_a_to_b(engine)

    outcome = engine.sync_inventory(A, 6111, "9001", 7)

    assert outcome.success and not outcome.skipped
    assert outcome.details == {"variantSku": "TEE-111-S", "newQuantity": 7}
    clients[B].set_inventory_level.assert_called_with("7221", "9002", 7)
    variant = store.get(result.sync_id).variant_by_sku("TEE-111-S")
    assert variant.inventory_quantity_storeB == 7
    assert variant.inventory_quantity_storeA == 7


def test_inventory_echo_is_skipped(engine, clients):
    """Test the target's inventory webhook for our own write is not pushed back."""
    _create_a_to_b(engine)
    engine.sync_inventory(A, 6111, "9001", 7)

    echo = engine.sync_inventory(B, 7221, "9002", 7)

    assert echo.skipped
    clients[A].set_inventory_level.assert_not_called()


def test_forced_inventory_push_ignores_matching_quantities(engine, clients):
    """Test a forced push reaches the target even when both stored quantities already match."""
    _create_a_to_b(engine)
    clients[B].set_inventory_level.reset_mock()

    assert engine.sync_inventory(A, 6111, "9001", 5).skipped

    outcome = engine.sync_inventory(A, 6111, "9001", 5, force=True)

    assert not outcome.skipped
    clients[B].set_inventory_level.assert_called_once_with("7221", "9002", 5)


def test_inventory_unknown_item_is_not_found(engine, store):
    _create_a_to_b(engine)

    outcome = engine.sync_inventory(A, 424242, "9001", 3)

    assert not outcome.success
    assert outcome.error == "Variant not found"
    assert store.list_logs(operation="inventory_update", status="failed")


def test_inventory_platform_failure_propagates(engine, clients):
    _create_a_to_b(engine)
    clients[B].set_inventory_level.side_effect = TargetPlatformError("POST failed 500", 500)

    with pytest.raises(TargetPlatformError):
        engine.sync_inventory(A, 6111, "9001", 1)


# ============================================================================
# Bulk
# ============================================================================

def test_bulk_counts_partial_failure(engine, clients):
    """Test one failing product is counted and the rest of the batch continues."""
    clients[A].get_all_products.return_value = [
        shopify_product(301, title="One"),
        shopify_product(302, title="Broken"),
        shopify_product(303, title="Three"),
    ]

    def create(product):
        if product["title"] == "Broken":
            raise TargetPlatformError("POST /products.json failed 422", 422)
        return clients[B].platform.create(product)

    clients[B].create_product.side_effect = create

    result = engine.run_bulk(A, B, limit=50)

    assert (result.total, result.success, result.failed, result.skipped) == (3, 2, 1, 0)
    assert result.errors[0]["productId"] == 302


def test_bulk_skips_already_mapped_products(engine, clients):
    clients[A].get_all_products.return_value = [shopify_product(301, title="One"), shopify_product(302, title="Two")]
    engine.run_bulk(A, B)

    again = engine.run_bulk(A, B)

    assert (again.success, again.skipped) == (0, 2)
    assert clients[B].create_product.call_count == 2


def test_bulk_caps_page_size_and_sleeps_between_products(store, clients):
    from catalog_sync.services.engine import SyncEngine

    naps = []
    engine = SyncEngine(store, clients, bulk_delay_sec=0.5, sleep=naps.append)
    clients[A].get_all_products.return_value = [shopify_product(301, title="One"), shopify_product(302, title="Two")]

    engine.run_bulk(A, B, limit=1000)

    clients[A].get_all_products.assert_called_once_with(250)
    assert naps == [0.5, 0.5]


def test_bulk_rejects_same_store(engine):
    with pytest.raises(ValueError):
        engine.run_bulk(A, A)


# ============================================================================
# Audit log and locking
# ============================================================================

def test_every_operation_writes_one_log_entry(engine, store):
    _create_a_to_b(engine)
    engine.sync_product(A, shopify_product(111, updated_at=T1), Operation.UPDATE)

    logs = store.list_logs()
    assert [l["status"] for l in logs] == [LogStatus.SKIPPED.value, LogStatus.SUCCESS.value]
    assert logs[1]["operation"] == "create"
    assert logs[1]["target_id"] == "222"


def test_keyed_locks_are_released():
    locks = KeyedLocks()
    with locks.hold("storeA:1"):
        assert len(locks) == 1
    assert len(locks) == 0


def test_keyed_locks_serialize_same_key():
    locks = KeyedLocks()
    active, peak = [], []

    def work():
        with locks.hold("storeA:1"):
            active.append(1)
            peak.append(len(active))
            time.sleep(0.01)
            active.pop()

    threads = [threading.Thread(target=work) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert max(peak) == 1
    assert len(locks) == 0
