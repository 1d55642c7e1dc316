# catalog_sync/services/inventory.py
import threading
from typing import Optional

from ..clients.shopify import ShopifyClient
from ..errors import MappingNotFound, SyncError
from ..models import Operation, SyncRecord, SyncResult, SyncState, VariantMapping
from ..stores import Store
from ..storage import DocumentStore
from ..utils.logger import info, warn, error


class InventoryReconciler:
    """
    Single inventory item, single location propagation. The target location
    is always the target store's primary location; there is no per-location
    mapping table.
    """

    def __init__(self, store: DocumentStore, clients: dict[Store, ShopifyClient],
                 location_overrides: Optional[dict[Store, str]] = None):
        self.store = store
        self.clients = clients
        self._locations: dict[Store, str] = dict(location_overrides or {})
        self._lock = threading.Lock()

    def primary_location(self, store: Store) -> Optional[str]:
        with self._lock:
            cached = self._locations.get(store)
        if cached:
            return cached
        loc = self.clients[store].primary_location_id()
        if loc:
            with self._lock:
                self._locations[store] = loc
        return loc

    def target_location_id(self, target_store: Store) -> Optional[str]:
        return self.primary_location(target_store)

    def find_variant(self, source_store: Store, inventory_item_id) -> tuple[Optional[SyncRecord], Optional[VariantMapping]]:
        for record in self.store.iter_products():
            variant = record.variant_by_inventory_item(source_store, inventory_item_id)
            if variant is not None:
                return record, variant
        return None, None

    def sync(self, source_store: Store, inventory_item_id, location_id, quantity, force: bool = False) -> SyncResult:
        target_store = source_store.other
        record, variant = self.find_variant(source_store, inventory_item_id)
        if record is None:
            warn(f"[inventory] no matching variant for {source_store} inventory item {inventory_item_id}")
            raise MappingNotFound("Variant not found")
        if not variant.sku:
            warn(f"[inventory] variant for item {inventory_item_id} has no SKU, cannot sync inventory")
            raise MappingNotFound("Variant has no SKU")

        quantity = int(quantity)
        in_step = variant.quantity_for(source_store) == quantity and variant.quantity_for(target_store) == quantity
        if in_step and not force:
            info(f"[inventory] {variant.sku} already at {quantity} on both stores, skip")
            return SyncResult(True, Operation.INVENTORY_UPDATE, sync_id=record.sync_id, skipped=True,
                              details={"variantSku": variant.sku, "newQuantity": quantity})

        target_item = variant.inventory_item_for(target_store)
        target_location = self.target_location_id(target_store)
        if not target_item or not target_location:
            warn(f"[inventory] missing target inventory item or location for {variant.sku}")
            raise MappingNotFound("Missing target mapping")

        self.clients[target_store].set_inventory_level(target_item, target_location, quantity)

        sku = variant.sku
        self.store.update_variant_inventory(record.sync_id, sku, {source_store: quantity, target_store: quantity})
        info(f"[inventory] {source_store} ➝ {target_store} {sku}: {quantity} (source location {location_id})")
        return SyncResult(True, Operation.INVENTORY_UPDATE, sync_id=record.sync_id, target_id=str(target_item),
                          details={"variantSku": sku, "newQuantity": quantity})

    def initial_sync(self, record: SyncRecord, source_store: Store) -> SyncState:
        """
        Copy the source store's current availability onto every mapped target
        variant. Per-variant failures are logged and leave the record in
        INVENTORY_PARTIAL so the step can be resumed later.
        """
        target_store = source_store.other
        source_client = self.clients[source_store]
        target_client = self.clients[target_store]

        try:
            source_location = self.primary_location(source_store)
            target_location = self.primary_location(target_store)
        except SyncError as e:
            error(f"[inventory] could not read locations: {e}")
            return self._finish(record, SyncState.INVENTORY_PARTIAL, {})
        if not source_location or not target_location:
            warn("[inventory] could not find primary locations for inventory sync")
            return self._finish(record, SyncState.INVENTORY_PARTIAL, {})

        done: dict[str, int] = {}
        complete = True
        for m in record.variants:
            src_item = m.inventory_item_for(source_store)
            tgt_item = m.inventory_item_for(target_store)
            if not (m.sku and src_item and tgt_item):
                warn(f"[inventory] skip initial sync for variant sku={m.sku!r}: incomplete mapping")
                complete = False
                continue
            try:
                level = source_client.get_inventory_level(src_item, source_location)
                if not level or level.get("available") is None:
                    continue
                available = int(level["available"])
                target_client.set_inventory_level(tgt_item, target_location, available)
                done[m.sku] = available
                info(f"[inventory] initial {m.sku}: {available} units {source_store} ➝ {target_store}")
            except (SyncError, ValueError, TypeError) as e:
                error(f"[inventory] initial sync failed for {m.sku}: {e}")
                complete = False

        state = SyncState.INVENTORY_SYNCED if complete else SyncState.INVENTORY_PARTIAL
        return self._finish(record, state, done, source_store)

    def _finish(self, record: SyncRecord, state: SyncState, done: dict[str, int],
                source_store: Optional[Store] = None) -> SyncState:
        def apply(r: SyncRecord):
            r.sync_state = state
            for v in r.variants:
                if v.sku in done:
                    v.set_quantity(source_store, done[v.sku])
                    v.set_quantity(source_store.other, done[v.sku])

        self.store.mutate(record.sync_id, apply)
        record.sync_state = state
        return state
