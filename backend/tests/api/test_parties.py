"""Integration Tests: vendors, customers and product types.

Invariants:
    - Vendors with purchases and customers with sales orders cannot be deleted
    - Vendor detail aggregates purchase statistics
    - Product type names are unique ignoring case
"""


# ==============================================================================
# Vendors
# ==============================================================================


async def test_create_and_get_vendor(client, create_vendor):
    vendor = await create_vendor(name="Indus Yarn", city="Karachi")

    resp = await client.get(f"/api/vendors/{vendor['id']}")

    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Indus Yarn"
    assert body["city"] == "Karachi"
    assert body["active_orders"] == 0
    assert body["recent_purchases"] == []


async def test_vendor_requires_contact(client):
    resp = await client.post("/api/vendors", json={"name": "No Contact"})

    assert resp.status_code == 400
    assert any(e["field"] == "contact" for e in resp.json()["errors"])


async def test_vendor_search(client, create_vendor):
    await create_vendor(name="Sunrise Spinning")
    await create_vendor(name="Indus Yarn")

    resp = await client.get("/api/vendors", params={"search": "indus"})

    assert resp.status_code == 200
    names = [v["name"] for v in resp.json()["data"]]
    assert names == ["Indus Yarn"]


async def test_vendor_stats_include_purchases(client, create_vendor, create_purchase):
    vendor = await create_vendor()
    await create_purchase(vendor_id=vendor["id"], quantity=100, unit_price=10)
    await create_purchase(vendor_id=vendor["id"], quantity=50, unit_price=10, received=False)

    body = (await client.get(f"/api/vendors/{vendor['id']}")).json()

    assert body["total_purchases"] == 1500
    assert body["active_orders"] == 1
    assert len(body["recent_purchases"]) == 2


async def test_update_vendor(client, create_vendor):
    vendor = await create_vendor()

    resp = await client.patch(f"/api/vendors/{vendor['id']}", json={"email": "ops@sunrise.example"})

    assert resp.status_code == 200
    assert resp.json()["email"] == "ops@sunrise.example"
    assert resp.json()["name"] == vendor["name"]


async def test_update_vendor_rejects_null_name_and_contact(client, create_vendor):
    vendor = await create_vendor()

    no_name = await client.patch(f"/api/vendors/{vendor['id']}", json={"name": None})
    no_contact = await client.patch(f"/api/vendors/{vendor['id']}", json={"contact": None})

    assert no_name.status_code == 400
    assert no_name.json()["detail"] == "name cannot be null"
    assert no_contact.status_code == 400
    assert (await client.get(f"/api/vendors/{vendor['id']}")).json()["contact"] == vendor["contact"]


async def test_delete_vendor_with_purchases_is_blocked(client, create_vendor, create_purchase):
    vendor = await create_vendor()
    await create_purchase(vendor_id=vendor["id"])

    resp = await client.delete(f"/api/vendors/{vendor['id']}")

    assert resp.status_code == 400
    assert "Cannot delete vendor" in resp.json()["detail"]


async def test_delete_vendor(client, create_vendor):
    vendor = await create_vendor()

    resp = await client.delete(f"/api/vendors/{vendor['id']}")

    assert resp.status_code == 200
    assert (await client.get(f"/api/vendors/{vendor['id']}")).status_code == 404


async def test_missing_vendor_returns_404(client):
    resp = await client.get("/api/vendors/999")

    assert resp.status_code == 404
    assert resp.json()["detail"] == "Vendor not found"


# ==============================================================================
# Customers
# ==============================================================================


async def test_customer_crud(client, create_customer):
    customer = await create_customer(name="Crescent Apparel")

    updated = await client.patch(f"/api/customers/{customer['id']}", json={"city": "Multan"})
    assert updated.status_code == 200
    assert updated.json()["city"] == "Multan"
    assert (await client.patch(f"/api/customers/{customer['id']}", json={"name": None})).status_code == 400

    listed = await client.get("/api/customers")
    assert listed.json()["total"] == 1

    deleted = await client.delete(f"/api/customers/{customer['id']}")
    assert deleted.status_code == 200
    assert (await client.get(f"/api/customers/{customer['id']}")).status_code == 404


async def test_delete_customer_with_sales_is_blocked(client, create_customer, create_purchase):
    customer = await create_customer()
    purchase = await create_purchase()
    sale = await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "items": [{"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 10, "unit_price": 60}],
    })
    assert sale.status_code == 201, sale.text

    resp = await client.delete(f"/api/customers/{customer['id']}")

    assert resp.status_code == 400
    assert (await client.get(f"/api/customers/{customer['id']}")).json()["order_count"] == 1


# ==============================================================================
# Product types
# ==============================================================================


async def test_thread_type_names_are_unique(client):
    first = await client.post("/api/thread-types", json={"name": "Cotton 20s"})
    duplicate = await client.post("/api/thread-types", json={"name": "cotton 20s"})

    assert first.status_code == 201
    assert duplicate.status_code == 400


async def test_fabric_types_listed_by_name(client):
    await client.post("/api/fabric-types", json={"name": "Twill"})
    await client.post("/api/fabric-types", json={"name": "Poplin"})

    resp = await client.get("/api/fabric-types")

    assert [t["name"] for t in resp.json()] == ["Poplin", "Twill"]


async def test_purchase_creates_thread_type(client, create_purchase):
    await create_purchase(thread_type="Polyester 150D")

    resp = await client.get("/api/thread-types")

    assert "Polyester 150D" in [t["name"] for t in resp.json()]
