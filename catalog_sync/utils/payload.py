# catalog_sync/utils/payload.py
import hashlib
import time
from datetime import datetime, timezone
from typing import Optional

VARIANT_FIELDS = (
    "sku", "price", "compare_at_price", "inventory_policy", "fulfillment_service",
    "inventory_management", "option1", "option2", "option3", "weight", "weight_unit",
    "requires_shipping", "taxable",
)


def _str_id(value) -> Optional[str]:
    return None if value is None or value == "" else str(value)


def generate_sync_id(sku: Optional[str], title: Optional[str]) -> str:
    seed = sku or title or str(int(time.time() * 1000))
    return hashlib.md5(seed.encode()).hexdigest()


def parse_timestamp(value) -> Optional[datetime]:
    """Shopify timestamps are ISO-8601 with offset; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def sanitize_product(product: dict) -> dict:
    """Normalize a Shopify product payload into the shape the engine works on."""
    return {
        "id": _str_id(product.get("id")),
        "title": product.get("title") or "",
        "description": product.get("body_html") or product.get("description") or "",
        "vendor": product.get("vendor") or "",
        "product_type": product.get("product_type") or "",
        "status": product.get("status") or "draft",
        "handle": product.get("handle") or "",
        "tags": product.get("tags") or "",
        "images": [
            {
                "id": _str_id(img.get("id")),
                "src": img.get("src"),
                "alt": img.get("alt") or "",
                "position": img.get("position") or 0,
            }
            for img in (product.get("images") or [])
        ],
        "variants": [
            {
                "id": _str_id(v.get("id")),
                "sku": (v.get("sku") or "").strip(),
                "price": v.get("price") or "0.00",
                "compare_at_price": v.get("compare_at_price") or None,
                "inventory_item_id": _str_id(v.get("inventory_item_id")),
                "inventory_quantity": v.get("inventory_quantity") or 0,
                "inventory_policy": v.get("inventory_policy") or "deny",
                "fulfillment_service": v.get("fulfillment_service") or "manual",
                "inventory_management": v.get("inventory_management") or None,
                "option1": v.get("option1") or None,
                "option2": v.get("option2") or None,
                "option3": v.get("option3") or None,
                "position": v.get("position") or 1,
                "weight": v.get("weight") or 0,
                "weight_unit": v.get("weight_unit") or "kg",
                "requires_shipping": v.get("requires_shipping") is not False,
                "taxable": v.get("taxable") is not False,
            }
            for v in (product.get("variants") or [])
        ],
        "options": [
            {
                "name": o.get("name"),
                "position": o.get("position"),
                "values": o.get("values") or [],
            }
            for o in (product.get("options") or [])
        ],
        "created_at": product.get("created_at"),
        "updated_at": product.get("updated_at"),
    }


def clean(obj):
    """Drop None values recursively; lists lose their None items."""
    if isinstance(obj, dict):
        return {k: clean(v) for k, v in obj.items() if v is not None}
    if isinstance(obj, list):
        return [clean(v) for v in obj if v is not None]
    return obj


def prepare_product_for_target(product: dict) -> dict:
    """Strip store-specific ids from a sanitized product, ready to POST/PUT on the other store."""
    return clean({
        "title": product.get("title"),
        "body_html": product.get("description"),
        "vendor": product.get("vendor"),
        "product_type": product.get("product_type"),
        "status": product.get("status"),
        "tags": product.get("tags"),
        "images": [
            {"src": img.get("src"), "alt": img.get("alt"), "position": img.get("position")}
            for img in (product.get("images") or [])
            if img.get("src")
        ],
        "variants": [
            {k: v.get(k) for k in VARIANT_FIELDS}
            for v in (product.get("variants") or [])
        ],
        "options": [
            {"name": o.get("name"), "values": o.get("values")}
            for o in (product.get("options") or [])
        ],
    })
