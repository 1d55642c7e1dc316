# catalog_sync/models.py
"""
Documents persisted by the document store.

SyncRecord is the cross-store identity of one product; its variants are
VariantMapping rows joined by SKU. SyncLogEntry is the append-only audit trail.
"""
import enum
from dataclasses import dataclass, field, fields, asdict
from typing import Optional

from .stores import Store


class SyncState(str, enum.Enum):
    CREATED = "created"
    INVENTORY_PARTIAL = "inventory_partial"
    INVENTORY_SYNCED = "inventory_synced"


class Operation(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    INVENTORY_UPDATE = "inventory_update"


class LogStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class VariantMapping:
    sku: str
    storeA_id: Optional[str] = None
    storeB_id: Optional[str] = None
    inventory_item_storeA_id: Optional[str] = None
    inventory_item_storeB_id: Optional[str] = None
    inventory_quantity_storeA: int = 0
    inventory_quantity_storeB: int = 0
    price: Optional[str] = None
    compare_at_price: Optional[str] = None
    inventory_policy: Optional[str] = None
    fulfillment_service: Optional[str] = None
    inventory_management: Optional[str] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    position: Optional[int] = None
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    requires_shipping: bool = True
    taxable: bool = True

    def id_for(self, store: Store) -> Optional[str]:
        return getattr(self, store.id_field)

    def inventory_item_for(self, store: Store) -> Optional[str]:
        return getattr(self, store.inventory_item_field)

    def quantity_for(self, store: Store) -> int:
        return getattr(self, store.inventory_quantity_field)

    def set_quantity(self, store: Store, qty: int) -> None:
        setattr(self, store.inventory_quantity_field, int(qty))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "VariantMapping":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class SyncRecord:
    sync_id: str
    last_updated_by_store: Store
    origin_store: Optional[Store] = None
    storeA_id: Optional[str] = None
    storeB_id: Optional[str] = None
    updated_at: Optional[str] = None
    created_at: Optional[str] = None
    last_synced_at: Optional[str] = None
    version: int = 0
    # last platform updated_at seen per store, including the ones our own writes produced
    store_updated_at: dict = field(default_factory=dict)
    sync_state: SyncState = SyncState.CREATED
    title: str = ""
    description: str = ""
    vendor: str = ""
    product_type: str = ""
    status: str = ""
    handle: str = ""
    tags: str = ""
    images: list = field(default_factory=list)
    options: list = field(default_factory=list)
    variants: list[VariantMapping] = field(default_factory=list)

    def id_for(self, store: Store) -> Optional[str]:
        return getattr(self, store.id_field)

    def set_id(self, store: Store, value) -> None:
        setattr(self, store.id_field, None if value is None else str(value))

    def stamp(self, store: Store, updated_at) -> None:
        if updated_at:
            self.store_updated_at[store.value] = updated_at

    def stamp_for(self, store: Store):
        return self.store_updated_at.get(store.value)

    def variant_by_sku(self, sku: str) -> Optional[VariantMapping]:
        if not sku:
            return None
        for v in self.variants:
            if v.sku == sku:
                return v
        return None

    def variant_by_inventory_item(self, store: Store, inventory_item_id) -> Optional[VariantMapping]:
        wanted = str(inventory_item_id)
        for v in self.variants:
            if v.inventory_item_for(store) is not None and str(v.inventory_item_for(store)) == wanted:
                return v
        return None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_updated_by_store"] = self.last_updated_by_store.value
        data["origin_store"] = self.origin_store.value if self.origin_store else None
        data["sync_state"] = self.sync_state.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SyncRecord":
        names = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in names}
        kwargs["last_updated_by_store"] = Store.parse(kwargs["last_updated_by_store"])
        if kwargs.get("origin_store"):
            kwargs["origin_store"] = Store.parse(kwargs["origin_store"])
        kwargs["sync_state"] = SyncState(kwargs.get("sync_state") or SyncState.CREATED.value)
        kwargs["variants"] = [VariantMapping.from_dict(v) for v in (data.get("variants") or [])]
        return cls(**kwargs)


@dataclass
class SyncLogEntry:
    operation: Operation
    source_store: Store
    target_store: Store
    status: LogStatus
    sync_id: Optional[str] = None
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    error: Optional[str] = None
    timestamp: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "sync_id": self.sync_id,
            "operation": self.operation.value,
            "source_store": self.source_store.value,
            "target_store": self.target_store.value,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "status": self.status.value,
            "error": self.error,
            "timestamp": self.timestamp,
        }


@dataclass
class SyncResult:
    success: bool
    operation: Operation
    sync_id: Optional[str] = None
    target_id: Optional[str] = None
    skipped: bool = False
    error: Optional[str] = None
    details: dict = field(default_factory=dict)

    @property
    def log_status(self) -> LogStatus:
        if not self.success:
            return LogStatus.FAILED
        return LogStatus.SKIPPED if self.skipped else LogStatus.SUCCESS

    def to_dict(self) -> dict:
        out = {
            "success": self.success,
            "operation": self.operation.value,
            "syncId": self.sync_id,
            "targetProductId": self.target_id,
            "skipped": self.skipped,
        }
        if self.error:
            out["error"] = self.error
        out.update(self.details)
        return out


@dataclass
class BulkResult:
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
