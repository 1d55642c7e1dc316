"""
Manual trigger, query, health and registration endpoints.
"""
from catalog_sync import create_app
from catalog_sync.errors import TargetPlatformError
from catalog_sync.stores import Store

from .factories import make_settings, shopify_product

A, B = Store.STORE_A, Store.STORE_B


def _seed(client, clients):
    clients[A].get_product.return_value = shopify_product(111)
    return client.post("/api/product", json={"sourceStore": "storeA", "productId": "111"}).get_json()


# ============================================================================
# Manual triggers
# ============================================================================

def test_product_trigger_syncs(client, clients):
    data = _seed(client, clients)

    assert data["success"] is True
    assert data["operation"] == "create"
    assert data["targetProductId"] == "222"
    assert data["syncState"] == "inventory_synced"


def test_product_trigger_validates_input(client):
    assert client.post("/api/product", json={"productId": "1"}).status_code == 400
    assert client.post("/api/product", json={"sourceStore": "storeA"}).status_code == 400
    bad_op = {"sourceStore": "storeA", "productId": "1", "operation": "inventory_update"}
    assert client.post("/api/product", json=bad_op).status_code == 400


def test_product_trigger_not_found(client, clients):
    clients[A].get_product.return_value = None

    resp = client.post("/api/product", json={"sourceStore": "storeA", "productId": "404"})

    assert resp.status_code == 404


def test_product_trigger_platform_error_is_502(client, clients):
    clients[A].get_product.side_effect = TargetPlatformError("GET failed 401", 401)

    resp = client.post("/api/product", json={"sourceStore": "storeA", "productId": "1"})

    assert resp.status_code == 502


def test_inventory_trigger(client, clients):
    _seed(client, clients)
    body = {"sourceStore": "storeA", "inventoryItemId": "6111", "locationId": "9001", "quantity": 7}

    resp = client.post("/api/inventory", json=body)

    assert resp.status_code == 200
    assert resp.get_json()["newQuantity"] == 7


def test_inventory_trigger_pushes_even_when_quantities_match(client, clients):
    """Test the manual trigger re-pushes a quantity the record already holds for both stores."""
    _seed(client, clients)
    clients[B].set_inventory_level.reset_mock()
    body = {"sourceStore": "storeA", "inventoryItemId": "6111", "locationId": "9001", "quantity": 5}

    resp = client.post("/api/inventory", json=body)

    assert resp.status_code == 200
    assert resp.get_json()["skipped"] is False
    clients[B].set_inventory_level.assert_called_once_with("7221", "9002", 5)


def test_inventory_trigger_validation_and_missing_mapping(client):
    assert client.post("/api/inventory", json={"sourceStore": "storeA"}).status_code == 400
    body = {"sourceStore": "storeA", "inventoryItemId": "1", "quantity": "many"}
    assert client.post("/api/inventory", json=body).status_code == 400

    body["quantity"] = 3
    resp = client.post("/api/inventory", json=body)
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "Variant not found"


def test_bulk_trigger(client, clients):
    clients[A].get_all_products.return_value = [shopify_product(301, title="One"), shopify_product(302, title="Two")]

    resp = client.post("/api/bulk", json={"sourceStore": "storeA", "targetStore": "storeB", "limit": 10})

    assert resp.status_code == 200
    assert resp.get_json() == {"total": 2, "success": 2, "failed": 0, "skipped": 0, "errors": []}


def test_bulk_rejects_same_store(client):
    resp = client.post("/api/bulk", json={"sourceStore": "storeA", "targetStore": "storeA"})

    assert resp.status_code == 400


def test_force_resync(client, clients):
    sync_id = _seed(client, clients)["syncId"]

    resp = client.post("/api/force-resync", json={"syncId": sync_id, "direction": "storeA_to_storeB"})

    assert resp.status_code == 200
    assert resp.get_json()["operation"] == "update"
    clients[B].update_product.assert_called_once()


def test_force_resync_validation(client):
    assert client.post("/api/force-resync", json={"syncId": "x", "direction": "sideways"}).status_code == 400
    assert client.post("/api/force-resync", json={"direction": "storeA_to_storeB"}).status_code == 400
    resp = client.post("/api/force-resync", json={"syncId": "x", "direction": "storeB_to_storeA"})
    assert resp.status_code == 404


def test_resume_inventory(client, clients):
    sync_id = _seed(client, clients)["syncId"]

    resp = client.post("/api/resume-inventory", json={"syncId": sync_id})

    assert resp.status_code == 200
    assert resp.get_json()["syncState"] == "inventory_synced"
    assert client.post("/api/resume-inventory", json={"syncId": "nope"}).status_code == 404


# ============================================================================
# Queries
# ============================================================================

def test_status(client, clients):
    sync_id = _seed(client, clients)["syncId"]

    data = client.get(f"/api/status/{sync_id}").get_json()

    assert data["storeA_id"] == "111"
    assert data["storeB_id"] == "222"
    assert data["lastUpdatedByStore"] == "storeA"
    assert data["variantCount"] == 2
    assert client.get("/api/status/unknown").status_code == 404


def test_products_listing(client, clients):
    _seed(client, clients)

    data = client.get("/api/products?limit=10&offset=0").get_json()

    assert data["count"] == 1
    assert data["products"][0]["storeB_id"] == "222"


def test_logs_listing_and_filters(client, clients):
    _seed(client, clients)

    assert client.get("/api/logs").get_json()["count"] == 1
    assert client.get("/api/logs?operation=delete").get_json()["count"] == 0
    assert client.get("/api/logs?status=success").get_json()["logs"][0]["operation"] == "create"
    assert client.get("/api/logs?status=weird").status_code == 400


# ============================================================================
# Health and registration
# ============================================================================

def test_health(client):
    assert client.get("/health").get_json()["ok"] is True


def test_detailed_health(client):
    resp = client.get("/health/detailed")

    assert resp.status_code == 200
    assert resp.get_json()["checks"]["documentStore"]["status"] == "healthy"


def test_detailed_health_reports_missing_env(engine):
    client = create_app(settings=make_settings(base_url=None), engine=engine).test_client()

    resp = client.get("/health/detailed")

    assert resp.status_code == 503
    assert resp.get_json()["checks"]["environment"]["missing"] == ["WEBHOOK_BASE_URL"]


def test_register_webhooks_route(client, clients):
    resp = client.get("/register_webhooks/store-a")

    assert resp.status_code == 200
    data = resp.get_json()
    assert len(data["registered"]) == 4
    addresses = {h["address"] for h in data["registered"]}
    assert "https://sync.example.com/webhooks/store-a/products/create" in addresses
    assert "https://sync.example.com/webhooks/store-a/inventory_levels/update" in addresses
    clients[B].create_webhook.assert_not_called()


def test_register_webhooks_unknown_store(client):
    assert client.get("/register_webhooks/store-z").status_code == 404


def test_unknown_path_is_json_404(client):
    resp = client.get("/nope")

    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Not found"}
