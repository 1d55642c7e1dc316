# catalog_sync/routes/sync_api.py
"""Manual triggers and read-only views over the mapping store and the sync log."""
from flask import Blueprint, request

from . import get_engine
from ..errors import MappingNotFound, PersistenceError, TargetPlatformError
from ..models import LogStatus, Operation
from ..stores import Store
from ..utils.logger import error

bp = Blueprint("sync_api", __name__)

DIRECTIONS = {
    "storeA_to_storeB": Store.STORE_A,
    "storeB_to_storeA": Store.STORE_B,
}


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _bad(message: str):
    return {"error": message}, 400


def _int_arg(name: str, default: int, lo: int, hi: int) -> int:
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    return max(lo, min(value, hi))


def _failure(e: Exception):
    if isinstance(e, MappingNotFound):
        return {"error": str(e)}, 404
    if isinstance(e, (TargetPlatformError, PersistenceError)):
        error(f"[api] {e}")
        return {"error": str(e)}, 502 if isinstance(e, TargetPlatformError) else 500
    raise e


# =========================================================
# Manual triggers
# =========================================================

@bp.post("/product")
def sync_product():
    body = _body()
    try:
        source = Store.parse(body.get("sourceStore"))
        operation = Operation(body.get("operation") or Operation.CREATE.value)
    except ValueError as e:
        return _bad(str(e))
    if operation is Operation.INVENTORY_UPDATE:
        return _bad("operation must be create, update or delete")
    if not body.get("productId"):
        return _bad("productId is required")

    try:
        result = get_engine().sync_product_by_id(source, body["productId"], operation)
    except (MappingNotFound, TargetPlatformError, PersistenceError) as e:
        return _failure(e)
    return result.to_dict(), 200


@bp.post("/inventory")
def sync_inventory():
    body = _body()
    try:
        source = Store.parse(body.get("sourceStore"))
    except ValueError as e:
        return _bad(str(e))
    if body.get("inventoryItemId") is None or body.get("quantity") is None:
        return _bad("inventoryItemId and quantity are required")
    try:
        quantity = int(body["quantity"])
    except (TypeError, ValueError):
        return _bad("quantity must be an integer")

    try:
        result = get_engine().sync_inventory(source, body["inventoryItemId"], body.get("locationId"), quantity,
                                              force=True)
    except (TargetPlatformError, PersistenceError) as e:
        return _failure(e)
    return result.to_dict(), 200 if result.success else 404


@bp.post("/bulk")
def bulk():
    body = _body()
    try:
        source = Store.parse(body.get("sourceStore"))
        target = Store.parse(body.get("targetStore") or source.other.value)
        limit = int(body.get("limit", 50))
    except (TypeError, ValueError) as e:
        return _bad(str(e))
    if source is target:
        return _bad("Source and target stores cannot be the same")

    try:
        result = get_engine().run_bulk(source, target, limit, bool(body.get("skipExisting", True)))
    except (TargetPlatformError, PersistenceError) as e:
        return _failure(e)
    return result.to_dict(), 200


@bp.post("/force-resync")
def force_resync():
    body = _body()
    source = DIRECTIONS.get(body.get("direction"))
    if not body.get("syncId"):
        return _bad("syncId is required")
    if source is None:
        return _bad("direction must be storeA_to_storeB or storeB_to_storeA")

    try:
        result = get_engine().force_resync(body["syncId"], source)
    except (MappingNotFound, TargetPlatformError, PersistenceError) as e:
        return _failure(e)
    return result.to_dict(), 200


@bp.post("/resume-inventory")
def resume_inventory():
    body = _body()
    if not body.get("syncId"):
        return _bad("syncId is required")
    try:
        result = get_engine().resume_inventory(body["syncId"])
    except (MappingNotFound, TargetPlatformError, PersistenceError) as e:
        return _failure(e)
    return result.to_dict(), 200


# =========================================================
# Queries
# =========================================================

@bp.get("/status/<sync_id>")
def status(sync_id):
    record = get_engine().store.get(sync_id)
    if record is None:
        return {"error": "Product not found"}, 404
    return {
        "syncId": record.sync_id,
        "storeA_id": record.storeA_id,
        "storeB_id": record.storeB_id,
        "lastUpdatedByStore": record.last_updated_by_store.value,
        "syncState": record.sync_state.value,
        "version": record.version,
        "updatedAt": record.updated_at,
        "lastSyncedAt": record.last_synced_at,
        "variantCount": len(record.variants),
    }, 200


@bp.get("/products")
def products():
    limit = _int_arg("limit", 50, 1, 250)
    offset = _int_arg("offset", 0, 0, 10**9)
    records = get_engine().store.all_products(limit, offset)
    return {
        "products": [r.to_dict() for r in records],
        "count": len(records),
        "limit": limit,
        "offset": offset,
    }, 200


@bp.get("/logs")
def logs():
    limit = _int_arg("limit", 100, 1, 1000)
    operation = request.args.get("operation")
    status_ = request.args.get("status")
    if operation and operation not in {o.value for o in Operation}:
        return _bad(f"unknown operation {operation!r}")
    if status_ and status_ not in {s.value for s in LogStatus}:
        return _bad(f"unknown status {status_!r}")
    entries = get_engine().store.list_logs(limit, operation, status_)
    return {"logs": entries, "count": len(entries)}, 200
