# catalog_sync/stores.py
import enum


class Store(str, enum.Enum):
    STORE_A = "storeA"
    STORE_B = "storeB"

    @property
    def other(self) -> "Store":
        return Store.STORE_B if self is Store.STORE_A else Store.STORE_A

    @property
    def slug(self) -> str:
        # URL segment used by webhook routes: storeA -> store-a
        return "store-a" if self is Store.STORE_A else "store-b"

    @property
    def id_field(self) -> str:
        return f"{self.value}_id"

    @property
    def inventory_item_field(self) -> str:
        return f"inventory_item_{self.value}_id"

    @property
    def inventory_quantity_field(self) -> str:
        return f"inventory_quantity_{self.value}"

    @classmethod
    def parse(cls, value) -> "Store":
        if isinstance(value, Store):
            return value
        for store in cls:
            if value in (store.value, store.slug):
                return store
        raise ValueError(f"Invalid store {value!r}. Must be storeA or storeB")

    def __str__(self) -> str:
        return self.value
