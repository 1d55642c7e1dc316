from typing import Iterator, Optional
from urllib.parse import urlparse, parse_qs

import requests

from ..errors import TargetPlatformError, TransientPlatformError, TargetPlatformRateLimited
from ..utils.logger import info, warn
from .retry import platform_retry, wait_retry_after_or_backoff

DEFAULT_API_VERSION = "2023-10"
TRANSIENT_STATUSES = (409, 500, 502, 503, 504)


def admin_base(domain: str, api_version: str = DEFAULT_API_VERSION) -> str:
    host = domain if "." in domain else f"{domain}.myshopify.com"
    return f"https://{host}/admin/api/{api_version}"


def rest_headers(token: str) -> dict:
    return {"Content-Type": "application/json", "X-Shopify-Access-Token": token}


def _retry_after(r: requests.Response) -> Optional[float]:
    raw = r.headers.get("Retry-After")
    try:
        return float(raw) if raw is not None else None
    except ValueError:
        return None


def page_info_from(r: requests.Response, rel: str = "next") -> Optional[str]:
    url = (r.links.get(rel) or {}).get("url")
    if not url:
        return None
    values = parse_qs(urlparse(url).query).get("page_info")
    return values[0] if values else None


class ShopifyClient:
    """Thin REST client for one store. Every call goes through the retry policy."""

    def __init__(self, domain: str, token: str, api_version: str = DEFAULT_API_VERSION,
                 attempts: int = 3, timeout: int = 30, session: requests.Session = None,
                 wait=wait_retry_after_or_backoff):
        self.domain = domain
        self.token = token
        self.base = admin_base(domain, api_version)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(rest_headers(token))
        self._send = platform_retry(attempts, wait=wait)(self._send_once)

    def _send_once(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            r = self.session.request(method, f"{self.base}{path}", timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientPlatformError(f"{method} {path} failed: {e}") from e
        if r.status_code == 429:
            retry_after = _retry_after(r)
            warn(f"[shopify] rate limited on {self.domain} {method} {path}, retry-after={retry_after}")
            raise TargetPlatformRateLimited(f"{method} {path} rate limited", retry_after=retry_after, body=r.text)
        if r.status_code in TRANSIENT_STATUSES:
            raise TransientPlatformError(f"{method} {path} failed {r.status_code}", r.status_code, r.text)
        if r.status_code >= 400:
            raise TargetPlatformError(f"{method} {path} failed {r.status_code}: {r.text}", r.status_code, r.text)
        return r

    # =========================================================
    # Products
    # =========================================================

    def get_product(self, product_id) -> Optional[dict]:
        try:
            r = self._send("GET", f"/products/{product_id}.json")
        except TargetPlatformError as e:
            if e.status_code == 404:
                return None
            raise
        return r.json().get("product")

    def create_product(self, product: dict) -> dict:
        r = self._send("POST", "/products.json", json={"product": product})
        return r.json().get("product")

    def update_product(self, product_id, product: dict) -> dict:
        body = dict(product, id=int(product_id)) if str(product_id).isdigit() else dict(product, id=product_id)
        r = self._send("PUT", f"/products/{product_id}.json", json={"product": body})
        return r.json().get("product")

    def delete_product(self, product_id) -> None:
        try:
            self._send("DELETE", f"/products/{product_id}.json")
        except TargetPlatformError as e:
            if e.status_code != 404:
                raise
            info(f"[shopify] product {product_id} already absent on {self.domain}")

    def iter_products(self, limit: int = 250) -> Iterator[dict]:
        params = {"limit": limit}
        while True:
            r = self._send("GET", "/products.json", params=params)
            yield from (r.json().get("products") or [])
            page_info = page_info_from(r)
            if not page_info:
                return
            params = {"limit": limit, "page_info": page_info}

    def get_all_products(self, limit: int = 250) -> list[dict]:
        return list(self.iter_products(limit))

    # =========================================================
    # Inventory & locations
    # =========================================================

    def get_inventory_level(self, inventory_item_id, location_id) -> Optional[dict]:
        params = {"inventory_item_ids": inventory_item_id, "location_ids": location_id}
        r = self._send("GET", "/inventory_levels.json", params=params)
        levels = r.json().get("inventory_levels") or []
        return levels[0] if levels else None

    def set_inventory_level(self, inventory_item_id, location_id, quantity: int) -> dict:
        payload = {
            "location_id": int(location_id),
            "inventory_item_id": int(inventory_item_id),
            "available": int(quantity),
        }
        r = self._send("POST", "/inventory_levels/set.json", json=payload)
        return r.json().get("inventory_level")

    def get_locations(self) -> list[dict]:
        r = self._send("GET", "/locations.json")
        return r.json().get("locations") or []

    def primary_location_id(self) -> Optional[str]:
        locs = self.get_locations()
        if not locs:
            return None
        for l in locs:
            if l.get("primary"):
                return str(l.get("id"))
        return str(locs[0].get("id"))

    # =========================================================
    # Webhook subscriptions
    # =========================================================

    def list_webhooks(self) -> list[dict]:
        r = self._send("GET", "/webhooks.json")
        return r.json().get("webhooks") or []

    def create_webhook(self, topic: str, address: str) -> dict:
        body = {"webhook": {"topic": topic, "address": address, "format": "json"}}
        r = self._send("POST", "/webhooks.json", json=body)
        return r.json().get("webhook")

    def update_webhook(self, webhook_id, address: str) -> dict:
        body = {"webhook": {"id": webhook_id, "address": address, "format": "json"}}
        r = self._send("PUT", f"/webhooks/{webhook_id}.json", json=body)
        return r.json().get("webhook")

    def delete_webhook(self, webhook_id) -> None:
        self._send("DELETE", f"/webhooks/{webhook_id}.json")
