"""Integration Tests: thread purchases and their cascades.

Invariants:
    - A received purchase lands in inventory with one PURCHASE transaction
    - Raw thread with create_dyeing_process gets a PENDING dyeing process
    - Purchase payments never exceed the remaining balance
    - Deleting a purchase reverses its inventory effect
"""

import pytest


async def test_received_purchase_is_added_to_inventory(client, create_purchase, purchase_inventory):
    purchase = await create_purchase(quantity=1000, unit_price=50)

    assert purchase["total_cost"] == 50000
    assert purchase["inventory_status"] == "IN_STOCK"
    assert purchase["received_at"] is not None

    inventory = await purchase_inventory(purchase["id"])
    assert inventory["current_quantity"] == 1000
    assert inventory["product_type"] == "THREAD"
    assert inventory["type_name"] == "Cotton 20s"
    assert inventory["cost_per_unit"] == 50
    assert inventory["sale_price"] == 60
    assert inventory["location"] == "Warehouse"


async def test_unreceived_purchase_stays_out_of_inventory(client, create_purchase):
    purchase = await create_purchase(received=False)

    assert purchase["inventory_status"] == "PENDING"
    resp = await client.get("/api/inventory")
    assert resp.json()["total"] == 0


async def test_order_alias_creates_purchase(client, create_vendor):
    vendor = await create_vendor()

    resp = await client.post("/api/thread/order", json={
        "vendor_id": vendor["id"], "thread_type": "Cotton 30s", "color_status": "COLORED",
        "color": "Red", "quantity": 10, "unit_price": 5,
    })

    assert resp.status_code == 201
    assert resp.json()["vendor_name"] == vendor["name"]


async def test_purchase_with_unknown_vendor_returns_404(client):
    resp = await client.post("/api/thread", json={
        "vendor_id": 42, "thread_type": "Cotton 20s", "color_status": "RAW", "quantity": 10, "unit_price": 5,
    })

    assert resp.status_code == 404


async def test_purchase_creates_pending_dyeing_process(client, create_purchase):
    purchase = await create_purchase(create_dyeing_process=True)

    assert len(purchase["dyeing_processes"]) == 1
    process = purchase["dyeing_processes"][0]
    assert process["result_status"] == "PENDING"
    assert process["dye_quantity"] == purchase["quantity"]


async def test_purchase_with_cheque_payment(client, create_purchase):
    purchase = await create_purchase(
        quantity=100, unit_price=10,
        payment_amount=400, payment_mode="CHEQUE", cheque_number="CHQ-1", bank="HBL",
    )

    assert purchase["payment_status"] == "PARTIAL"
    assert purchase["total_payments"] == 400
    assert purchase["remaining_balance"] == 600
    payment = purchase["payments"][0]
    assert payment["direction"] == "OUT"
    assert payment["cheque"]["cheque_number"] == "CHQ-1"
    assert payment["cheque"]["cheque_status"] == "PENDING"


async def test_cheque_payment_requires_bank(client, create_vendor):
    vendor = await create_vendor()

    resp = await client.post("/api/thread", json={
        "vendor_id": vendor["id"], "thread_type": "Cotton 20s", "color_status": "RAW",
        "quantity": 10, "unit_price": 5, "payment_amount": 10, "payment_mode": "CHEQUE",
        "cheque_number": "CHQ-2",
    })

    assert resp.status_code == 400
    assert "Cheque number and bank" in resp.json()["detail"]


async def test_overpayment_is_rejected(client, create_vendor):
    vendor = await create_vendor()

    resp = await client.post("/api/thread", json={
        "vendor_id": vendor["id"], "thread_type": "Cotton 20s", "color_status": "RAW",
        "quantity": 10, "unit_price": 5, "payment_amount": 51, "payment_mode": "CASH",
    })

    assert resp.status_code == 400
    assert (await client.get("/api/thread")).json()["total"] == 0


async def test_patch_receiving_purchase_adds_inventory(client, create_purchase, purchase_inventory):
    purchase = await create_purchase(received=False, quantity=300)

    resp = await client.patch(f"/api/thread/{purchase['id']}", json={"received": True})

    assert resp.status_code == 200
    assert resp.json()["inventory_status"] == "IN_STOCK"
    assert (await purchase_inventory(purchase["id"]))["current_quantity"] == 300


async def test_patch_appends_payment(client, create_purchase):
    purchase = await create_purchase(quantity=10, unit_price=10, payment_amount=40, payment_mode="CASH")

    resp = await client.patch(f"/api/thread/{purchase['id']}", json={"payment_amount": 60, "payment_mode": "ONLINE"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["payment_status"] == "PAID"
    assert len(body["payments"]) == 2


async def test_patch_quantity_or_price_recomputes_total_cost(client, create_purchase):
    purchase = await create_purchase(quantity=1000, unit_price=50)

    resp = await client.patch(f"/api/thread/{purchase['id']}", json={"quantity": 1200})
    assert resp.json()["total_cost"] == 60000

    resp = await client.patch(f"/api/thread/{purchase['id']}", json={"unit_price": 45})
    assert resp.json()["total_cost"] == 54000

    resp = await client.patch(f"/api/thread/{purchase['id']}", json={"unit_price": 40, "total_cost": 47000})
    assert resp.json()["total_cost"] == 47000


@pytest.mark.parametrize("field", ["quantity", "received", "unit_price", "thread_type", "vendor_id"])
async def test_patch_null_required_field_returns_400(client, create_purchase, field):
    purchase = await create_purchase()

    resp = await client.patch(f"/api/thread/{purchase['id']}", json={field: None})

    assert resp.status_code == 400
    assert resp.json()["detail"] == f"{field} cannot be null"
    assert (await client.get(f"/api/thread/{purchase['id']}")).json()[field] == purchase[field]


async def test_manual_inventory_requires_received(client, create_purchase):
    purchase = await create_purchase(received=False, add_to_inventory=False)

    resp = await client.post(f"/api/thread/{purchase['id']}/inventory")

    assert resp.status_code == 400


async def test_manual_inventory_only_once(client, create_purchase):
    purchase = await create_purchase(add_to_inventory=False)

    first = await client.post(f"/api/thread/{purchase['id']}/inventory")
    second = await client.post(f"/api/thread/{purchase['id']}/inventory")

    assert first.status_code == 200
    assert first.json()["inventory_status"] == "IN_STOCK"
    assert second.status_code == 400


async def test_list_filters_by_color_status(client, create_purchase):
    await create_purchase()
    await create_purchase(color_status="COLORED", color="Red")

    resp = await client.get("/api/thread", params={"color_status": "COLORED"})

    assert resp.json()["total"] == 1
    assert resp.json()["data"][0]["color"] == "Red"


async def test_delete_purchase_reverses_inventory(client, create_purchase, purchase_inventory):
    purchase = await create_purchase(payment_amount=100, payment_mode="CASH")
    inventory = await purchase_inventory(purchase["id"])

    resp = await client.delete(f"/api/thread/{purchase['id']}")

    assert resp.status_code == 200
    assert (await client.get(f"/api/thread/{purchase['id']}")).status_code == 404
    item = (await client.get(f"/api/inventory/{inventory['id']}")).json()
    assert item["current_quantity"] == 0
    assert (await client.get("/api/payments")).json()["total"] == 0


async def test_delete_purchase_used_in_fabric_is_blocked(client, create_purchase, create_fabric):
    purchase = await create_purchase()
    await create_fabric(source_thread_id=purchase["id"])

    resp = await client.delete(f"/api/thread/{purchase['id']}")

    assert resp.status_code == 400


async def test_bulk_delete_removes_purchases_and_dyeing(client, create_purchase, create_dyeing, purchase_inventory):
    first = await create_purchase(payment_amount=100, payment_mode="CASH")
    second = await create_purchase(quantity=500)
    await create_dyeing(second["id"], dye_quantity=300, output_quantity=280)
    first_inventory = await purchase_inventory(first["id"])
    second_inventory = await purchase_inventory(second["id"])

    resp = await client.post("/api/thread/bulk", json={"ids": [first["id"], second["id"]]})

    assert resp.status_code == 200
    assert resp.json()["deleted"] == 2
    assert (await client.get("/api/thread")).json()["total"] == 0
    assert (await client.get("/api/dyeing")).json()["total"] == 0
    assert (await client.get("/api/payments")).json()["total"] == 0
    assert (await client.get(f"/api/inventory/{first_inventory['id']}")).json()["current_quantity"] == 0
    assert (await client.get(f"/api/inventory/{second_inventory['id']}")).json()["current_quantity"] == 0
    dyed = (await client.get("/api/inventory", params={"search": "Dyed"})).json()["data"]
    assert [item["current_quantity"] for item in dyed] == [0]


async def test_bulk_delete_is_all_or_nothing(client, create_purchase, create_fabric):
    untouched = await create_purchase()
    used = await create_purchase()
    await create_fabric(source_thread_id=used["id"])

    blocked = await client.post("/api/thread/bulk", json={"ids": [untouched["id"], used["id"]]})
    missing = await client.post("/api/thread/bulk", json={"ids": [untouched["id"], 999]})

    assert blocked.status_code == 400
    assert blocked.json()["detail"] == "Cannot delete thread purchases that have been used in fabric production"
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Thread purchase #999 not found"
    assert (await client.get("/api/thread")).json()["total"] == 2


async def test_bulk_delete_requires_ids(client):
    resp = await client.post("/api/thread/bulk", json={"ids": []})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "No thread purchase IDs provided"
