# catalog_sync/services/identity.py
from dataclasses import dataclass
from typing import Optional

from ..models import SyncRecord
from ..stores import Store
from ..storage import DocumentStore
from ..utils.logger import debug
from ..utils.payload import generate_sync_id


@dataclass
class Resolution:
    sync_id: str
    record: Optional[SyncRecord]
    matched_by: str  # "store_id" | "sku" | "derived_key" | "new"

    @property
    def is_new(self) -> bool:
        return self.record is None


class IdentityResolver:
    def __init__(self, store: DocumentStore):
        self.store = store

    def resolve(self, source_store: Store, source_product_id, product: dict) -> Resolution:
        """
        Resolution order is strict: the source store's own id, then the SKU of
        the first variant, then a freshly derived sync id.
        """
        record = self.store.find_by_store_id(source_store, source_product_id)
        if record:
            return Resolution(record.sync_id, record, "store_id")

        variants = product.get("variants") or []
        first_sku = (variants[0].get("sku") or "") if variants else ""
        if first_sku:
            record = self.store.find_by_sku(first_sku)
            if record and self._claimable(record, source_store, source_product_id):
                debug(f"[identity] {source_store} PID {source_product_id} matched sync {record.sync_id} by SKU {first_sku}")
                return Resolution(record.sync_id, record, "sku")

        sync_id = generate_sync_id(first_sku, product.get("title"))
        existing = self.store.get(sync_id)
        if existing is not None:
            if self._claimable(existing, source_store, source_product_id):
                return Resolution(sync_id, existing, "derived_key")
            # derived key already belongs to another product on this store
            sync_id = generate_sync_id(f"{source_store.value}:{source_product_id}", None)
        return Resolution(sync_id, None, "new")

    @staticmethod
    def _claimable(record: SyncRecord, store: Store, product_id) -> bool:
        # a SKU match may only adopt a record whose slot for this store is free or already ours
        current = record.id_for(store)
        return current is None or current == str(product_id)
