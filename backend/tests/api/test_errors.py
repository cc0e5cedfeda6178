"""Integration Tests: global error handling.

Invariants:
    - Request validation failures return 400 with field-level errors
    - Unhandled exceptions return a generic 500 body
"""

from textile_erp.api.api_v1.endpoints import backup


async def test_validation_error_format(client):
    resp = await client.post("/api/vendors", json={"contact": "no name"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["errors"][0]["field"] == "name"
    assert body["errors"][0]["type"] == "missing"
    assert body["detail"] == body["errors"][0]["message"]


async def test_query_validation_error(client):
    resp = await client.get("/api/inventory", params={"product_type": "WOOL"})

    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "query.product_type"


async def test_not_found_keeps_detail(client):
    resp = await client.get("/api/sales/12345")

    assert resp.status_code == 404
    assert resp.json() == {"detail": "Sales order not found"}


async def test_unhandled_error_returns_500(raw_client, monkeypatch):
    def broken():
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(backup, "list_backups", broken)

    resp = await raw_client.get("/api/backup/list")

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Internal server error"}
