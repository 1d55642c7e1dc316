# catalog_sync/webhooks.py
"""Webhook subscription management on both stores (used by the CLI and /register_webhooks)."""
from typing import Optional

from .clients.shopify import ShopifyClient
from .errors import ConfigurationMissing, TargetPlatformError
from .stores import Store
from .utils.logger import info, error

SYNC_TOPICS = (
    "products/create",
    "products/update",
    "products/delete",
    "inventory_levels/update",
)
TEST_TOPIC = "app/uninstalled"


def callback_address(base_url: str, store: Store, topic: str) -> str:
    return f"{base_url.rstrip('/')}/webhooks/{store.slug}/{topic}"


class WebhookManager:
    def __init__(self, clients: dict[Store, ShopifyClient], base_url: Optional[str]):
        self.clients = clients
        self.base_url = (base_url or "").rstrip("/")

    def _require_base(self):
        if not self.base_url:
            raise ConfigurationMissing(["WEBHOOK_BASE_URL"])

    def register_store(self, store: Store) -> dict:
        """Create missing subscriptions; repoint an existing one for the same topic instead of duplicating it."""
        self._require_base()
        api = self.clients[store]
        out = {"store": store.value, "registered": [], "updated": [], "existing": [], "errors": []}
        existing = api.list_webhooks()

        for topic in SYNC_TOPICS:
            address = callback_address(self.base_url, store, topic)
            found = [w for w in existing if w.get("topic") == topic]
            try:
                if any(w.get("address") == address for w in found):
                    out["existing"].append({"topic": topic, "address": address})
                    continue
                if found:
                    wid = found[0].get("id")
                    api.update_webhook(wid, address)
                    info(f"[webhooks] {store} updated {topic} -> {address}")
                    out["updated"].append({"topic": topic, "address": address, "id": wid})
                    continue
                created = api.create_webhook(topic, address) or {}
                info(f"[webhooks] {store} registered {topic} -> {address}")
                out["registered"].append({"topic": topic, "address": address, "id": created.get("id")})
            except TargetPlatformError as e:
                error(f"[webhooks] {store} failed registering {topic}: {e}")
                out["errors"].append({"topic": topic, "address": address, "error": str(e)})
        return out

    def list_store(self, store: Store) -> dict:
        try:
            hooks = self.clients[store].list_webhooks()
        except TargetPlatformError as e:
            return {"store": store.value, "error": str(e)}
        return {
            "store": store.value,
            "count": len(hooks),
            "webhooks": [
                {k: w.get(k) for k in ("id", "topic", "address", "format", "created_at", "updated_at")}
                for w in hooks
            ],
        }

    def delete_store(self, store: Store) -> dict:
        """Remove only our sync subscriptions: sync topics pointing at our base URL."""
        self._require_base()
        api = self.clients[store]
        out = {"store": store.value, "deleted": [], "errors": []}
        try:
            hooks = api.list_webhooks()
        except TargetPlatformError as e:
            return {"store": store.value, "error": str(e)}
        for w in hooks:
            if w.get("topic") not in SYNC_TOPICS or self.base_url not in (w.get("address") or ""):
                continue
            try:
                api.delete_webhook(w.get("id"))
                out["deleted"].append({"id": w.get("id"), "topic": w.get("topic"), "address": w.get("address")})
            except TargetPlatformError as e:
                out["errors"].append({"id": w.get("id"), "topic": w.get("topic"), "error": str(e)})
        return out

    def test_store(self, store: Store) -> dict:
        self._require_base()
        api = self.clients[store]
        try:
            hook = api.create_webhook(TEST_TOPIC, f"{self.base_url}/webhooks/test") or {}
            api.delete_webhook(hook.get("id"))
        except TargetPlatformError as e:
            return {"store": store.value, "success": False, "error": str(e)}
        return {"store": store.value, "success": True, "message": "Webhook connectivity test passed"}

    def register_all(self) -> dict:
        return {s.value: self.register_store(s) for s in Store}

    def list_all(self) -> dict:
        return {s.value: self.list_store(s) for s in Store}

    def delete_all(self) -> dict:
        return {s.value: self.delete_store(s) for s in Store}

    def test_all(self) -> dict:
        return {s.value: self.test_store(s) for s in Store}
