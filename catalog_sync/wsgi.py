# catalog_sync/wsgi.py
"""
Production entry point. Unlike ``create_app()``, which only warns about
missing configuration so ``/health/detailed`` can report it, this refuses
to start a server without the required environment.

    gunicorn -c gunicorn.conf.py
"""
from dotenv import load_dotenv

from . import create_app
from .config import load_settings, require_config
from .errors import ConfigurationMissing
from .utils.logger import error


def build():
    load_dotenv()
    settings = load_settings()
    try:
        require_config(settings)
    except ConfigurationMissing as e:
        error(f"[startup] {e}")
        raise
    return create_app(settings=settings)
