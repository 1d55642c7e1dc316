import pytest

from catalog_sync.errors import PersistenceError
from catalog_sync.models import LogStatus, Operation, SyncLogEntry, SyncRecord, SyncState, VariantMapping
from catalog_sync.stores import Store

A, B = Store.STORE_A, Store.STORE_B


def _record(sync_id="s1", a="111", b="222", skus=("TEE-S",)):
    return SyncRecord(
        sync_id=sync_id,
        last_updated_by_store=A,
        storeA_id=a,
        storeB_id=b,
        title="Classic Tee",
        variants=[VariantMapping(sku=s, storeA_id=f"{a}1", inventory_item_storeA_id=f"{a}9") for s in skus],
    )


def test_save_and_get_round_trip_preserves_enums(store):
    store.save(_record())

    got = store.get("s1")

    assert got.last_updated_by_store is A
    assert got.sync_state is SyncState.CREATED
    assert got.variants[0].sku == "TEE-S"
    assert store.get("missing") is None


def test_lookup_by_store_id_and_sku(store):
    store.save(_record())

    assert store.find_by_store_id(A, 111).sync_id == "s1"
    assert store.find_by_store_id(B, "222").sync_id == "s1"
    assert store.find_by_store_id(B, "111") is None
    assert store.find_by_sku("TEE-S").sync_id == "s1"
    assert store.find_by_sku("") is None


def test_store_ids_are_unique(store):
    """Test two records can never claim the same store A product."""
    store.save(_record("s1"))

    with pytest.raises(PersistenceError):
        store.save(_record("s2", b="333"))


def test_resave_replaces_sku_index(store):
    store.save(_record(skus=("OLD",)))
    store.save(_record(skus=("NEW",)))

    assert store.find_by_sku("OLD") is None
    assert store.find_by_sku("NEW").sync_id == "s1"


def test_mutate_is_read_modify_write_and_bumps_version(store):
    store.save(_record())

    def rename(r):
        r.title = "Renamed"

    updated = store.mutate("s1", rename)

    assert updated.version == 1
    assert store.get("s1").title == "Renamed"
    assert store.mutate("missing", rename) is None


def test_update_variant_inventory(store):
    store.save(_record())

    updated = store.update_variant_inventory("s1", "TEE-S", {A: 12, B: 12})

    assert updated.version == 1
    variant = store.get("s1").variants[0]
    assert variant.inventory_quantity_storeA == variant.inventory_quantity_storeB == 12
    assert store.update_variant_inventory("s1", "NOPE", {A: 1}).variants[0].inventory_quantity_storeA == 12


def test_delete(store):
    store.save(_record())

    assert store.delete("s1") is True
    assert store.delete("s1") is False
    assert store.find_by_sku("TEE-S") is None


def test_all_products_paginates(store):
    for i in range(5):
        store.save(_record(f"s{i}", a=str(100 + i), b=str(200 + i), skus=(f"SKU-{i}",)))

    first = store.all_products(limit=2, offset=0)
    rest = store.all_products(limit=10, offset=2)

    assert len(first) == 2 and len(rest) == 3
    assert {r.sync_id for r in first + rest} == {f"s{i}" for i in range(5)}


def test_iter_products_walks_every_batch(store):
    for i in range(5):
        store.save(_record(f"s{i}", a=str(100 + i), b=str(200 + i), skus=(f"SKU-{i}",)))

    assert len(list(store.iter_products(batch_size=2))) == 5


def test_logs_filter_and_newest_first(store):
    store.append_log(SyncLogEntry(Operation.CREATE, A, B, LogStatus.SUCCESS, sync_id="s1"))
    store.append_log(SyncLogEntry(Operation.UPDATE, A, B, LogStatus.FAILED, sync_id="s1", error="boom"))
    store.append_log(SyncLogEntry(Operation.UPDATE, B, A, LogStatus.SKIPPED, sync_id="s1"))

    assert [l["status"] for l in store.list_logs()] == ["skipped", "failed", "success"]
    assert len(store.list_logs(operation="update")) == 2
    failed = store.list_logs(status="failed")
    assert failed[0]["error"] == "boom"
    assert failed[0]["source_store"] == "storeA"
    assert len(store.list_logs(limit=1)) == 1


def test_config_values(store):
    assert store.get_config("health_check", "never") == "never"
    store.set_config("health_check", {"at": "now"})
    store.set_config("health_check", {"at": "later"})
    assert store.get_config("health_check") == {"at": "later"}
    assert store.ping()
