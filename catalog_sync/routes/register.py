# catalog_sync/routes/register.py
from flask import Blueprint, abort, current_app

from ..errors import ConfigurationMissing, TargetPlatformError
from ..stores import Store

bp = Blueprint("register", __name__)


@bp.get("/<store_slug>")
def register(store_slug):
    try:
        store = Store.parse(store_slug)
    except ValueError:
        abort(404)

    ext = current_app.extensions["catalog_sync"]
    cfg = ext["settings"].store(store)
    if not (cfg.domain and cfg.token):
        return {"error": f"Missing domain/token for {store}"}, 500

    try:
        out = ext["webhooks"].register_store(store)
    except ConfigurationMissing as e:
        return {"error": str(e)}, 500
    except TargetPlatformError as e:
        return {"error": f"Failed to read existing webhooks: {e}"}, 502
    return out, 200 if not out["errors"] else 207
