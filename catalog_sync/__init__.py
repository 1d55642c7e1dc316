import logging
from typing import Optional

from flask import Flask
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from .config import Settings, load_settings, validate_config
from .utils import logger


def create_app(settings: Optional[Settings] = None, engine=None):
    load_dotenv()
    log = logger.configure()
    settings = settings or load_settings()

    app = Flask(__name__)

    # =========================================================
    # Configure logging so logs show up under gunicorn
    # =========================================================
    gunicorn_error = logging.getLogger("gunicorn.error")
    if gunicorn_error.handlers:
        app.logger.handlers = gunicorn_error.handlers
    app.logger.setLevel(log.level)

    for problem in validate_config(settings):
        logger.warn(f"[config] {problem}")

    # =========================================================
    # Engine
    # =========================================================
    from .services.engine import SyncEngine
    from .webhooks import WebhookManager

    engine = engine or SyncEngine.from_settings(settings)
    app.extensions["catalog_sync"] = {
        "settings": settings,
        "engine": engine,
        "webhooks": WebhookManager(engine.clients, settings.base_url),
    }

    # =========================================================
    # Blueprints
    # =========================================================
    from .routes.health import bp as health_bp
    from .routes.webhooks import bp as webhooks_bp
    from .routes.sync_api import bp as sync_api_bp
    from .routes.register import bp as register_bp

    app.register_blueprint(health_bp, url_prefix="/health")
    app.register_blueprint(webhooks_bp, url_prefix="/webhooks")
    app.register_blueprint(sync_api_bp, url_prefix="/api")
    app.register_blueprint(register_bp, url_prefix="/register_webhooks")

    @app.get("/")
    def index():
        return {
            "name": "catalog-sync",
            "endpoints": ["/health", "/health/detailed", "/webhooks", "/api", "/register_webhooks"],
        }, 200

    # =========================================================
    # Errors
    # =========================================================
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found"}, 404

    @app.errorhandler(Exception)
    def unhandled(e):
        if isinstance(e, HTTPException):
            return {"error": e.description}, e.code
        logger.get_logger().exception(f"Unhandled error: {e}")
        return {"error": "Internal server error"}, 500

    return app
