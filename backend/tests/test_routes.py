"""
HTTP surface tests: typed service errors map to status codes and JSON
bodies of the form {"error", "kind", "details"}.
"""

from sqlalchemy import text

from saripos.extensions import db


def _add_batch(client, product_id, quantity=10):
    resp = client.post("/api/batches", json={"product_id": product_id, "quantity": quantity, "cost_price": 20})
    assert resp.status_code == 201
    return resp.get_json()["id"]


def test_health(client):
    resp = client.get("/api/system/health")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["database"]["connection"]["journal_mode"] == "wal"


def test_batch_lifecycle_over_http(client, coke):
    batch_id = _add_batch(client, coke.id, quantity=10)

    resp = client.put(f"/api/batches/{batch_id}/quantity", json={"quantity": 7, "reason": "adjustment"})
    assert resp.status_code == 200
    assert resp.get_json()["change"] == -3

    resp = client.post(f"/api/batches/{batch_id}/adjust", json={"delta": 3, "reason": "restock"})
    assert resp.get_json()["quantity"] == 10

    resp = client.patch(f"/api/batches/{batch_id}", json={"cost_price": 21, "note": "Supplier price"})
    assert resp.get_json()["changed"] is True

    resp = client.delete(f"/api/batches/{batch_id}")
    assert resp.status_code == 200

    resp = client.get(f"/api/batches/{batch_id}")
    assert resp.status_code == 404
    assert resp.get_json()["kind"] == "not_found"


def test_list_batches_uses_page_size_setting(client, coke):
    for _ in range(7):
        _add_batch(client, coke.id, quantity=1)

    body = client.get(f"/api/batches?product_id={coke.id}").get_json()
    assert body["per_page"] == 5
    assert body["count"] == 5
    assert body["total"] == 7

    body = client.get(f"/api/batches?product_id={coke.id}&page=2").get_json()
    assert body["count"] == 2


def test_sale_error_mapping(client, coke):
    batch_id = _add_batch(client, coke.id, quantity=2)

    resp = client.post("/api/sales", json={
        "items": [{"batch_id": batch_id, "quantity": 5, "price_at_sale": 25.0}],
        "cash_received": 200.0,
        "total": 125.0,
        "change": 75.0,
    })
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["kind"] == "insufficient_stock"
    assert body["details"] == {"batch_id": batch_id, "requested": 5, "available": 2}

    resp = client.post("/api/sales", json={"items": [], "cash_received": 0, "total": 0, "change": 0})
    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "invalid_input"

    resp = client.post("/api/sales", json={
        "items": [{"batch_id": 9999, "quantity": 1, "price_at_sale": 1.0}],
        "cash_received": 1.0,
        "total": 1.0,
        "change": 0.0,
    })
    assert resp.status_code == 404


def test_sale_created(client, coke):
    batch_id = _add_batch(client, coke.id, quantity=5)

    resp = client.post("/api/sales", json={
        "items": [{"batch_id": batch_id, "quantity": 2, "price_at_sale": 25.0}],
        "cash_received": 50.0,
        "total": 50.0,
        "change": 0.0,
    })

    assert resp.status_code == 201
    sale = resp.get_json()["sale"]
    assert sale["items"][0]["line_total"] == 50.0
    assert client.get(f"/api/sales/{sale['id']}").status_code == 200


def test_product_upsert_routes(client):
    resp = client.post("/api/products", json={"name": "Skyflakes", "barcode": "4800016000001", "selling_price": 7})
    assert resp.status_code == 201
    product_id = resp.get_json()["id"]

    resp = client.post("/api/products", json={"name": "Skyflakes", "barcode": "4800016000001", "selling_price": 8})
    assert resp.status_code == 200
    assert resp.get_json()["action"] == "updated"

    resp = client.get("/api/products/by-barcode/4800016000001")
    assert resp.get_json()["product"]["selling_price"] == 8.0

    history = client.get(f"/api/history/products/{product_id}").get_json()
    assert [row["field"] for row in history["items"]] == ["multiple", "selling_price"]


def test_settings_routes(client):
    resp = client.put("/api/settings/shop_name", json={"value": "Tindahan ni Aling Nena"})
    assert resp.status_code == 200
    assert resp.get_json()["setting"]["value"] == "Tindahan ni Aling Nena"

    resp = client.put("/api/settings/page-size", json={"page_size": 7, "view": "inventory"})
    assert resp.status_code == 400

    resp = client.put("/api/settings/page-size", json={"page_size": 10, "view": "inventory"})
    assert resp.get_json()["key"] == "page_size_inventory"
    assert client.get("/api/settings/page-size?view=inventory").get_json()["page_size"] == 10

    assert client.get("/api/settings/does_not_exist").status_code == 404
    assert client.post("/api/settings/shop_name/reset").get_json()["setting"]["value"] == "My Retail Store"


def test_history_routes_and_reconcile(client, coke):
    batch_id = _add_batch(client, coke.id, quantity=4)

    resp = client.get(f"/api/history?batch_id={batch_id}")
    assert resp.get_json()["total"] == 1

    assert client.get("/api/history?order_by=note").status_code == 400
    assert "sale" in client.get("/api/history/reasons").get_json()["reasons"]

    assert client.get("/api/history/reconcile").get_json() == {"consistent": True, "mismatches": []}

    # bypass the ledger to simulate a corrupted row
    db.session.execute(text("UPDATE inventory_batches SET quantity = 99 WHERE id = :id"), {"id": batch_id})
    db.session.commit()

    body = client.get("/api/history/reconcile").get_json()
    assert body["consistent"] is False
    assert body["mismatches"] == [
        {"batch_id": batch_id, "quantity": 99, "history_total": 4, "is_consistent": False}
    ]


def test_ledger_verify_cli(app, coke, make_batch):
    runner = app.test_cli_runner()
    make_batch(coke, quantity=3)

    result = runner.invoke(args=["ledger", "verify"])
    assert result.exit_code == 0
    assert "All batches reconcile" in result.output
