import json

import pytest

from catalog_sync import create_app
from catalog_sync.services.engine import SyncEngine
from catalog_sync.storage import DocumentStore
from catalog_sync.stores import Store
from catalog_sync.utils.security import compute_signature, HMAC_HEADER

from .factories import fake_client, make_settings

A, B = Store.STORE_A, Store.STORE_B


@pytest.fixture
def store():
    s = DocumentStore("sqlite://")
    yield s
    s.close()


@pytest.fixture
def clients():
    return {
        A: fake_client(A, first_id=111, clock="2024-05-01T10:00:03Z"),
        B: fake_client(B, first_id=222, clock="2024-05-01T10:00:05Z"),
    }


@pytest.fixture
def engine(store, clients):
    return SyncEngine(store, clients, bulk_delay_sec=0, sleep=lambda _: None)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(settings, engine):
    app = create_app(settings=settings, engine=engine)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def signed():
    """Build (body, headers) for a webhook signed with the given secret."""
    counter = iter(range(1, 10_000))

    def _signed(payload, secret="secret-a", topic="products/create", hook_id=None, raw=None):
        body = raw if raw is not None else json.dumps(payload).encode()
        headers = {
            HMAC_HEADER: compute_signature(secret, body),
            "X-Shopify-Topic": topic,
            "X-Shopify-Shop-Domain": "shop-a.myshopify.com",
            "X-Shopify-Webhook-Id": hook_id or f"wh-{next(counter)}",
            "Content-Type": "application/json",
        }
        return body, headers

    return _signed
