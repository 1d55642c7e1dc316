# catalog_sync/routes/webhooks.py
import json
from datetime import datetime, timezone

from flask import Blueprint, abort, request

from . import get_engine, get_settings
from ..errors import MappingNotFound, PersistenceError, SignatureInvalid, TargetPlatformError
from ..models import Operation
from ..services.dedupe import DUPLICATE
from ..stores import Store
from ..utils.logger import info, warn, error
from ..utils.security import verify_webhook_hmac

bp = Blueprint("webhooks", __name__)

PRODUCT_ACTIONS = {"create": Operation.CREATE, "update": Operation.UPDATE, "delete": Operation.DELETE}


def _store(slug: str) -> Store:
    try:
        return Store.parse(slug)
    except ValueError:
        abort(404)


def _meta() -> dict:
    meta = {
        "topic": request.headers.get("X-Shopify-Topic"),
        "shop": request.headers.get("X-Shopify-Shop-Domain"),
        "hook_id": request.headers.get("X-Shopify-Webhook-Id") or None,
    }
    info(f"Webhook received: topic={meta['topic']} shop={meta['shop']} id={meta['hook_id']}")
    return meta


def _verified_payload(store: Store):
    """Return (payload, None) or (None, error response)."""
    secret = get_settings().store(store).secret
    if not secret:
        error(f"Missing webhook secret for {store}")
        return None, ({"error": "Server configuration error"}, 500)
    try:
        raw = verify_webhook_hmac(secret)
    except SignatureInvalid as e:
        warn(f"[{store}] {e}")
        return None, ({"error": str(e)}, 401)
    try:
        return (json.loads(raw.decode("utf-8")) if raw else {}), None
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        error(f"Error parsing webhook JSON: {e}")
        return None, ({"error": "Invalid JSON"}, 400)


def _run(hook_id, fn):
    """
    Run the engine call. Platform and persistence failures answer 500 so the
    sending store re-delivers; the delivery id is forgotten so that
    re-delivery is not mistaken for a duplicate.
    """
    engine = get_engine()
    try:
        return fn(), None
    except (ValueError, MappingNotFound) as e:
        warn(f"Webhook not actionable: {e}")
        return None, ({"received": True, "synced": False, "error": str(e)}, 200)
    except (TargetPlatformError, PersistenceError) as e:
        engine.dedupe.forget(hook_id)
        return None, ({"received": False, "error": str(e)}, 500)
    except Exception:
        engine.dedupe.forget(hook_id)
        raise


@bp.post("/<store_slug>/products/<action>")
def products(store_slug, action):
    store = _store(store_slug)
    operation = PRODUCT_ACTIONS.get(action)
    if operation is None:
        abort(404)
    meta = _meta()

    payload, failure = _verified_payload(store)
    if failure:
        return failure
    if get_engine().dedupe.check(meta["hook_id"]) == DUPLICATE:
        info(f"Duplicate webhook detected: {meta['hook_id']}")
        return {"received": True, "duplicate": True}, 200

    info(f"Product {action} in {store}: {payload.get('id')} - {payload.get('title', '')}")
    result, failure = _run(meta["hook_id"], lambda: get_engine().sync_product(store, payload, operation))
    if failure:
        return failure
    return {
        "received": True,
        "synced": result.success,
        "syncId": result.sync_id,
        "skipped": result.skipped,
    }, 200


@bp.post("/<store_slug>/inventory_levels/update")
def inventory(store_slug):
    store = _store(store_slug)
    meta = _meta()

    payload, failure = _verified_payload(store)
    if failure:
        return failure
    if get_engine().dedupe.check(meta["hook_id"]) == DUPLICATE:
        info(f"Duplicate webhook detected: {meta['hook_id']}")
        return {"received": True, "duplicate": True}, 200

    item = payload.get("inventory_item_id")
    qty = payload.get("available")
    info(f"Inventory updated in {store}: {item} - {qty}")
    if item is None or qty is None:
        return {"received": True, "synced": False, "error": "Missing inventory_item_id or available"}, 200

    result, failure = _run(
        meta["hook_id"],
        lambda: get_engine().sync_inventory(store, item, payload.get("location_id"), qty),
    )
    if failure:
        return failure
    body = {"received": True, "synced": result.success, "syncId": result.sync_id}
    if result.error:
        body["error"] = result.error
    return body, 200


@bp.post("/test")
def test():
    info(f"Test webhook received: {request.get_data(as_text=True)[:500]}")
    return {
        "received": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "message": "Test webhook processed successfully",
    }, 200


@bp.get("/health")
def health():
    endpoints = {}
    for s in Store:
        endpoints[s.slug] = [f"/webhooks/{s.slug}/products/{a}" for a in PRODUCT_ACTIONS] + [
            f"/webhooks/{s.slug}/inventory_levels/update"
        ]
    return {
        "status": "healthy",
        "endpoints": endpoints,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }, 200
