# catalog_sync/services/bulk.py
import time
from typing import Callable

from ..clients.shopify import ShopifyClient
from ..models import BulkResult, Operation, SyncResult
from ..stores import Store
from ..storage import DocumentStore
from ..utils.logger import info, error

MAX_PAGE_SIZE = 250


class BulkOrchestrator:
    """
    One-directional backfill of a whole catalog. Each product goes through
    the regular create path on its own, so one failure never stops the batch.
    """

    def __init__(self, store: DocumentStore, clients: dict[Store, ShopifyClient],
                 sync_product: Callable[..., SyncResult], delay_sec: float = 0.5,
                 sleep: Callable[[float], None] = time.sleep):
        self.store = store
        self.clients = clients
        self.sync_product = sync_product
        self.delay_sec = delay_sec
        self.sleep = sleep

    def run(self, source_store: Store, target_store: Store, limit: int = 50,
            skip_existing: bool = True) -> BulkResult:
        if source_store is target_store:
            raise ValueError("Source and target stores cannot be the same")
        limit = max(1, min(int(limit), MAX_PAGE_SIZE))

        info(f"[bulk] starting {source_store} ➝ {target_store} (page size {limit}, skip_existing={skip_existing})")
        products = self.clients[source_store].get_all_products(limit)
        result = BulkResult(total=len(products))

        for product in products:
            pid = product.get("id")
            if skip_existing:
                existing = self.store.find_by_store_id(source_store, pid)
                if existing and existing.id_for(target_store):
                    result.skipped += 1
                    continue
            try:
                outcome = self.sync_product(source_store, product, Operation.CREATE)
                if outcome.success and outcome.skipped:
                    result.skipped += 1
                elif outcome.success:
                    result.success += 1
                else:
                    result.failed += 1
                    result.errors.append({"productId": pid, "error": outcome.error})
            except Exception as e:
                result.failed += 1
                result.errors.append({"productId": pid, "error": str(e)})
                error(f"[bulk] product {pid} failed: {e}")

            if self.delay_sec:
                self.sleep(self.delay_sec)

        info(f"[bulk] completed: {result.success} success, {result.failed} failed, {result.skipped} skipped")
        return result
