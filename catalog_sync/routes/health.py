# catalog_sync/routes/health.py
from datetime import datetime, timezone

from flask import Blueprint

from . import get_engine, get_settings
from ..config import missing_config
from ..errors import PersistenceError
from ..utils.logger import info, error

bp = Blueprint("health", __name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@bp.get("")
def health():
    info("Health check endpoint called")
    return {"ok": True, "status": "healthy", "timestamp": _now()}, 200


@bp.get("/detailed")
def detailed():
    checks = {}
    healthy = True

    try:
        store = get_engine().store
        store.set_config("health_check", _now())
        store.get_config("health_check")
        checks["documentStore"] = {"status": "healthy"}
    except PersistenceError as e:
        error(f"[health] document store check failed: {e}")
        checks["documentStore"] = {"status": "unhealthy", "error": str(e)}
        healthy = False

    missing = missing_config(get_settings())
    if missing:
        checks["environment"] = {"status": "unhealthy", "missing": missing}
        healthy = False
    else:
        checks["environment"] = {"status": "healthy"}

    body = {"status": "healthy" if healthy else "unhealthy", "checks": checks, "timestamp": _now()}
    return body, 200 if healthy else 503
