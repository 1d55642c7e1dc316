# catalog_sync/services/engine.py
"""
Entry points of the sync engine.

Every inbound change goes: identity resolution -> conflict guard ->
catalog or inventory reconciler -> one audit log entry. Events for the same
source product are serialized with a per-product lock; different products
run concurrently.
"""
import threading
import time
from contextlib import contextmanager
from typing import Callable, Optional

from ..clients.shopify import ShopifyClient
from ..config import Settings
from ..errors import MappingNotFound, PersistenceError
from ..models import BulkResult, LogStatus, Operation, SyncLogEntry, SyncResult
from ..stores import Store
from ..storage import DocumentStore
from ..utils.logger import info, error
from ..utils.payload import sanitize_product
from .bulk import BulkOrchestrator
from .catalog import CatalogReconciler
from .conflict import ConflictGuard, Decision
from .dedupe import WebhookDeduplicator
from .identity import IdentityResolver
from .inventory import InventoryReconciler


class KeyedLocks:
    """Per-key locks that only live while someone holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class SyncEngine:
    def __init__(self, store: DocumentStore, clients: dict[Store, ShopifyClient],
                 dedupe: Optional[WebhookDeduplicator] = None, bulk_delay_sec: float = 0.5,
                 sleep: Callable[[float], None] = time.sleep,
                 location_overrides: Optional[dict[Store, str]] = None):
        self.store = store
        self.clients = clients
        self.identity = IdentityResolver(store)
        self.guard = ConflictGuard()
        self.inventory = InventoryReconciler(store, clients, location_overrides)
        self.catalog = CatalogReconciler(store, clients, self.inventory)
        self.bulk = BulkOrchestrator(store, clients, self.sync_product, bulk_delay_sec, sleep)
        self.dedupe = dedupe or WebhookDeduplicator()
        self._locks = KeyedLocks()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncEngine":
        store = DocumentStore(settings.database_url)
        clients = {}
        overrides = {}
        for s in Store:
            cfg = settings.store(s)
            clients[s] = ShopifyClient(cfg.domain or "", cfg.token or "", settings.api_version,
                                       attempts=settings.retry_attempts)
            if cfg.location_id:
                overrides[s] = cfg.location_id
        dedupe = WebhookDeduplicator(settings.dedupe_ttl_sec, settings.dedupe_max_entries)
        return cls(store, clients, dedupe=dedupe, bulk_delay_sec=settings.bulk_delay_sec,
                   location_overrides=overrides)

    def close(self) -> None:
        self.dedupe.clear()
        self.store.close()

    # =========================================================
    # Products
    # =========================================================

    def sync_product(self, source_store, product_data: dict, operation=Operation.CREATE,
                     force: bool = False) -> SyncResult:
        source_store = Store.parse(source_store)
        operation = Operation(operation)
        target_store = source_store.other
        pid = product_data.get("id")
        if pid is None:
            raise ValueError("product payload has no id")

        info(f"Starting {operation.value} sync from {source_store} to {target_store} for product: {pid}")
        try:
            with self._locks.hold(f"{source_store.value}:{pid}"):
                result = self._sync_product_locked(source_store, product_data, operation, force)
        except Exception as e:
            error(f"Error syncing product {pid} from {source_store} to {target_store}: {e}")
            self._log(SyncLogEntry(operation, source_store, target_store, status=LogStatus.FAILED,
                                   source_id=str(pid), error=str(e)))
            raise

        self._log(SyncLogEntry(result.operation, source_store, target_store, result.log_status,
                               sync_id=result.sync_id, source_id=str(pid), target_id=result.target_id,
                               error=result.error))
        return result

    def _sync_product_locked(self, source_store: Store, product_data: dict, operation: Operation,
                             force: bool) -> SyncResult:
        if operation is Operation.DELETE:
            return self.catalog.delete(source_store, product_data.get("id"))

        product = sanitize_product(product_data)
        resolution = self.identity.resolve(source_store, product["id"], product)
        decision = self.guard.decide(resolution.record, source_store, product.get("updated_at"), force=force)

        if decision is Decision.SKIP:
            info(f"Skipping {operation.value} for product {product['id']} - already up to date")
            return SyncResult(True, operation, sync_id=resolution.sync_id,
                              target_id=resolution.record.id_for(source_store.other), skipped=True)
        if decision is Decision.TREAT_AS_CREATE:
            return self.catalog.create(resolution.sync_id, source_store, product, resolution.record)
        return self.catalog.update(resolution.sync_id, source_store, product, resolution.record)

    def sync_product_by_id(self, source_store, product_id, operation=Operation.CREATE) -> SyncResult:
        """Manual trigger: fetch the product from its store, then sync it."""
        source_store = Store.parse(source_store)
        operation = Operation(operation)
        if operation is Operation.DELETE:
            return self.sync_product(source_store, {"id": product_id}, operation)
        product = self.clients[source_store].get_product(product_id)
        if not product:
            raise MappingNotFound(f"Product {product_id} not found on {source_store}")
        return self.sync_product(source_store, product, operation)

    def force_resync(self, sync_id: str, source_store) -> SyncResult:
        """Push the source store's current product over the target, ignoring the conflict guard."""
        source_store = Store.parse(source_store)
        record = self.store.get(sync_id)
        if record is None:
            raise MappingNotFound(f"Product not found: {sync_id}")
        source_id = record.id_for(source_store)
        if not source_id:
            raise MappingNotFound(f"No {source_store} ID found for this product")
        product = self.clients[source_store].get_product(source_id)
        if not product:
            raise MappingNotFound(f"Product {source_id} not found on {source_store}")
        return self.sync_product(source_store, product, Operation.UPDATE, force=True)

    def resume_inventory(self, sync_id: str) -> SyncResult:
        """Re-run the initial inventory copy of a record left in a partial state."""
        record = self.store.get(sync_id)
        if record is None:
            raise MappingNotFound(f"Product not found: {sync_id}")
        # the copy always runs in the direction the product was first created
        source_store = record.origin_store or record.last_updated_by_store
        state = self.inventory.initial_sync(record, source_store)
        return SyncResult(True, Operation.INVENTORY_UPDATE, sync_id=sync_id,
                          target_id=record.id_for(source_store.other), details={"syncState": state.value})

    # =========================================================
    # Inventory
    # =========================================================

    def sync_inventory(self, source_store, inventory_item_id, location_id, quantity, force: bool = False) -> SyncResult:
        source_store = Store.parse(source_store)
        target_store = source_store.other
        try:
            result = self.inventory.sync(source_store, inventory_item_id, location_id, quantity, force=force)
        except MappingNotFound as e:
            result = SyncResult(False, Operation.INVENTORY_UPDATE, error=str(e))
        except Exception as e:
            error(f"Error syncing inventory for item {inventory_item_id}: {e}")
            self._log(SyncLogEntry(Operation.INVENTORY_UPDATE, source_store, target_store,
                                   LogStatus.FAILED,
                                   source_id=str(inventory_item_id), error=str(e)))
            raise

        self._log(SyncLogEntry(Operation.INVENTORY_UPDATE, source_store, target_store, result.log_status,
                               sync_id=result.sync_id, source_id=str(inventory_item_id),
                               target_id=result.target_id, error=result.error))
        return result

    # =========================================================
    # Bulk
    # =========================================================

    def run_bulk(self, source_store, target_store, limit: int = 50, skip_existing: bool = True) -> BulkResult:
        return self.bulk.run(Store.parse(source_store), Store.parse(target_store), limit, skip_existing)

    def _log(self, entry: SyncLogEntry) -> None:
        try:
            self.store.append_log(entry)
        except PersistenceError as e:
            error(f"[audit] could not write sync log entry: {e}")
