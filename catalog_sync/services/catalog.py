# catalog_sync/services/catalog.py
from typing import Optional

from ..clients.shopify import ShopifyClient
from ..errors import PersistenceError, TargetPlatformError
from ..models import Operation, SyncRecord, SyncResult, SyncState
from ..stores import Store
from ..storage import DocumentStore
from ..utils.logger import info, warn, error
from ..utils.payload import prepare_product_for_target, utcnow_iso
from .conflict import latest
from .inventory import InventoryReconciler
from .variants import mappings_for_create, merge_mappings, target_variant_payloads

CATALOG_FIELDS = ("title", "description", "vendor", "product_type", "status", "handle", "tags", "images", "options")


def _copy_catalog_fields(record: SyncRecord, product: dict) -> None:
    for f in CATALOG_FIELDS:
        setattr(record, f, product.get(f) if product.get(f) is not None else getattr(record, f))


class CatalogReconciler:
    """Applies create / update / delete on the target store and folds the outcome into the stored mapping."""

    def __init__(self, store: DocumentStore, clients: dict[Store, ShopifyClient], inventory: InventoryReconciler):
        self.store = store
        self.clients = clients
        self.inventory = inventory

    # =========================================================
    # Create
    # =========================================================

    def create(self, sync_id: str, source_store: Store, product: dict,
               record: Optional[SyncRecord] = None) -> SyncResult:
        target_store = source_store.other
        info(f"[{source_store} ➝ {target_store}] creating product for PID {product.get('id')}")

        created = self.clients[target_store].create_product(prepare_product_for_target(product)) or {}
        if not created.get("id"):
            raise TargetPlatformError(f"{target_store} returned no product id on create")
        target_id = str(created["id"])

        mappings, _ = mappings_for_create(product.get("variants") or [], created.get("variants") or [], source_store)

        if record is None:
            record = SyncRecord(sync_id=sync_id, last_updated_by_store=source_store,
                                origin_store=source_store,
                                created_at=product.get("created_at") or utcnow_iso())
        else:
            # repair of a record that lost its target side: keep variants we are not told about
            keep = [m for m in record.variants if m.sku and m.sku not in {n.sku for n in mappings}]
            mappings = keep + mappings
            record.origin_store = record.origin_store or source_store

        _copy_catalog_fields(record, product)
        record.set_id(source_store, product.get("id"))
        record.set_id(target_store, target_id)
        record.variants = mappings
        record.last_updated_by_store = source_store
        record.updated_at = product.get("updated_at")
        record.last_synced_at = utcnow_iso()
        record.stamp(source_store, product.get("updated_at"))
        record.stamp(target_store, latest(created.get("updated_at"), product.get("updated_at")))
        record.sync_state = SyncState.CREATED
        record.version += 1
        try:
            self.store.save(record)
        except PersistenceError:
            self._undo_create(target_store, target_id)
            raise

        state = self.inventory.initial_sync(record, source_store)
        info(f"[{source_store} ➝ {target_store}] created PID {target_id} (sync {sync_id}, {state.value})")
        return SyncResult(True, Operation.CREATE, sync_id=sync_id, target_id=target_id,
                          details={"syncState": state.value})

    def _undo_create(self, target_store: Store, target_id: str) -> None:
        """Remove a target product whose mapping could not be stored, so a retry cannot duplicate it."""
        warn(f"[{target_store}] mapping not stored, removing orphan PID {target_id}")
        try:
            self.clients[target_store].delete_product(target_id)
        except TargetPlatformError as e:
            error(f"[{target_store}] could not remove orphan PID {target_id}: {e}")

    # =========================================================
    # Update
    # =========================================================

    def update(self, sync_id: str, source_store: Store, product: dict,
               record: Optional[SyncRecord]) -> SyncResult:
        target_store = source_store.other
        target_id = record.id_for(target_store) if record else None
        if record is None or not target_id:
            warn(f"No {target_store} ID found for product {product.get('id')}, treating as create")
            return self.create(sync_id, source_store, product, record)

        payload = prepare_product_for_target(product)
        payload["variants"] = target_variant_payloads(payload.get("variants") or [], record.variants, target_store)
        info(f"[{source_store} ➝ {target_store}] updating PID {target_id}")
        updated = self.clients[target_store].update_product(target_id, payload) or {}

        def apply(r: SyncRecord):
            _copy_catalog_fields(r, product)
            r.variants = merge_mappings(r.variants, product.get("variants") or [],
                                        updated.get("variants") or [], source_store)
            r.set_id(source_store, product.get("id"))
            r.last_updated_by_store = source_store
            r.updated_at = product.get("updated_at")
            r.last_synced_at = utcnow_iso()
            r.stamp(source_store, product.get("updated_at"))
            r.stamp(target_store, latest(updated.get("updated_at"), product.get("updated_at")))

        if self.store.mutate(sync_id, apply) is None:
            # record vanished between resolve and write (concurrent delete)
            warn(f"[{source_store} ➝ {target_store}] sync {sync_id} disappeared during update")
        return SyncResult(True, Operation.UPDATE, sync_id=sync_id, target_id=str(target_id))

    # =========================================================
    # Delete
    # =========================================================

    def delete(self, source_store: Store, source_product_id) -> SyncResult:
        target_store = source_store.other
        record = self.store.find_by_store_id(source_store, source_product_id)
        if record is None:
            warn(f"Product {source_product_id} not found in store mapping for deletion")
            return SyncResult(True, Operation.DELETE, skipped=True)

        target_id = record.id_for(target_store)
        if target_id:
            # remote first: if this raises the mapping stays for the retry
            self.clients[target_store].delete_product(target_id)
            info(f"[{source_store} ➝ {target_store}] deleted PID {target_id}")

        self.store.delete(record.sync_id)
        return SyncResult(True, Operation.DELETE, sync_id=record.sync_id, target_id=target_id)
