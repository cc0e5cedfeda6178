"""Integration Tests: fabric production.

Invariants:
    - Production consumes thread from its source inventory
    - A completed production adds fabric inventory, merged per type and dimensions on request
    - Sold productions cannot be deleted
"""

import pytest


async def test_production_from_purchase(client, create_purchase, create_fabric, purchase_inventory):
    purchase = await create_purchase(quantity=1000)

    production = await create_fabric(source_thread_id=purchase["id"], thread_used=200, quantity_produced=150)

    assert production["status"] == "COMPLETED"
    assert production["inventory_status"] == "UPDATED"
    assert production["total_cost"] == 4500
    assert production["thread_type"] == "Cotton 20s"
    assert production["completion_date"] is not None
    assert (await purchase_inventory(purchase["id"]))["current_quantity"] == 800

    fabric = (await client.get(f"/api/inventory/{production['fabric_inventory_id']}")).json()
    assert fabric["product_type"] == "FABRIC"
    assert fabric["current_quantity"] == 150
    assert fabric["description"] == "Poplin 58 inch (Batch: B-001)"
    assert fabric["cost_per_unit"] == 30
    assert fabric["sale_price"] == 42
    assert fabric["type_name"] == "Poplin"


async def test_production_from_dyed_thread(client, create_purchase, create_dyeing, create_fabric):
    purchase = await create_purchase()
    process = (await create_dyeing(purchase["id"], output_quantity=380))["process"]

    production = await create_fabric(dyeing_process_id=process["id"], thread_used=300)

    assert production["source_thread_id"] == purchase["id"]
    assert production["color_name"] == "Navy"
    dyed = (await client.get("/api/inventory", params={"search": "Dyed"})).json()["data"][0]
    assert dyed["current_quantity"] == 80


async def test_production_from_inventory_item(client, create_fabric):
    item = (await client.post("/api/inventory", json={
        "item_code": "THR-X", "description": "Loose stock", "product_type": "THREAD", "current_quantity": 300,
    })).json()

    production = await create_fabric(inventory_id=item["id"], thread_used=250)

    assert production["source_thread_id"] is None
    assert (await client.get(f"/api/inventory/{item['id']}")).json()["current_quantity"] == 50


async def test_production_requires_a_source(client):
    resp = await client.post("/api/fabric/production", json={
        "fabric_type": "Poplin", "dimensions": "58 inch", "batch_number": "B-1",
        "quantity_produced": 10, "thread_used": 10,
    })

    assert resp.status_code == 400


async def test_insufficient_thread_is_rejected(client, create_purchase, purchase_inventory):
    purchase = await create_purchase(quantity=100)

    resp = await client.post("/api/fabric/production", json={
        "source_thread_id": purchase["id"], "fabric_type": "Poplin", "dimensions": "58 inch",
        "batch_number": "B-1", "quantity_produced": 100, "thread_used": 101,
    })

    assert resp.status_code == 400
    assert (await client.get("/api/fabric/production")).json()["total"] == 0
    assert (await purchase_inventory(purchase["id"]))["current_quantity"] == 100


async def test_dyeing_process_must_match_purchase(client, create_purchase, create_dyeing):
    purchase = await create_purchase()
    other = await create_purchase()
    process = (await create_dyeing(purchase["id"]))["process"]

    resp = await client.post("/api/fabric/production", json={
        "source_thread_id": other["id"], "dyeing_process_id": process["id"], "fabric_type": "Poplin",
        "dimensions": "58 inch", "batch_number": "B-1", "quantity_produced": 10, "thread_used": 10,
    })

    assert resp.status_code == 404


async def test_single_inventory_entry_merges_batches(client, create_purchase, create_fabric):
    purchase = await create_purchase()

    first = await create_fabric(source_thread_id=purchase["id"], batch_number="B-1", single_inventory_entry=True)
    second = await create_fabric(source_thread_id=purchase["id"], batch_number="B-2", single_inventory_entry=True)

    assert first["fabric_inventory_id"] == second["fabric_inventory_id"]
    fabric = (await client.get(f"/api/inventory/{first['fabric_inventory_id']}")).json()
    assert fabric["current_quantity"] == 300
    assert fabric["description"] == "Poplin 58 inch"


async def test_pending_production_adds_fabric_when_completed(client, create_purchase, create_fabric):
    purchase = await create_purchase()
    production = await create_fabric(source_thread_id=purchase["id"], status="IN_PROGRESS")
    assert production["fabric_inventory_id"] is None
    assert production["inventory_status"] == "PENDING"

    resp = await client.patch(f"/api/fabric/production/{production['id']}", json={"status": "COMPLETED"})

    assert resp.status_code == 200
    assert resp.json()["inventory_status"] == "UPDATED"
    assert resp.json()["fabric_inventory_id"] is not None


async def test_patch_adjusts_thread_and_fabric(client, create_purchase, create_fabric, purchase_inventory):
    purchase = await create_purchase(quantity=1000)
    production = await create_fabric(source_thread_id=purchase["id"], thread_used=200, quantity_produced=150)

    resp = await client.patch(f"/api/fabric/production/{production['id']}", json={
        "thread_used": 250, "quantity_produced": 180,
    })

    assert resp.status_code == 200
    assert (await purchase_inventory(purchase["id"]))["current_quantity"] == 750
    fabric = (await client.get(f"/api/inventory/{production['fabric_inventory_id']}")).json()
    assert fabric["current_quantity"] == 180


async def test_patch_output_after_fabric_sold_keeps_stock_at_zero(client, create_purchase, create_fabric,
                                                                  create_customer, purchase_inventory):
    purchase = await create_purchase(quantity=1000)
    production = await create_fabric(source_thread_id=purchase["id"], quantity_produced=150)
    customer = await create_customer()
    sale = await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "items": [{"product_type": "FABRIC", "product_id": production["id"], "quantity_sold": 120, "unit_price": 45}],
    })
    assert sale.status_code == 201, sale.text

    resp = await client.patch(f"/api/fabric/production/{production['id']}", json={"quantity_produced": 100})

    assert resp.status_code == 200
    fabric = (await client.get(f"/api/inventory/{production['fabric_inventory_id']}")).json()
    assert fabric["current_quantity"] == 0
    assert fabric["recent_transactions"][0]["quantity"] == -30

    # the difference is taken from the recorded output, not from the stock
    resp = await client.patch(f"/api/fabric/production/{production['id']}", json={"quantity_produced": 130})

    assert resp.status_code == 200
    fabric = (await client.get(f"/api/inventory/{production['fabric_inventory_id']}")).json()
    assert fabric["current_quantity"] == 30


@pytest.mark.parametrize("field", ["quantity_produced", "thread_used", "batch_number", "status"])
async def test_patch_null_required_field_returns_400(client, create_purchase, create_fabric, field):
    purchase = await create_purchase()
    production = await create_fabric(source_thread_id=purchase["id"])

    resp = await client.patch(f"/api/fabric/production/{production['id']}", json={field: None})

    assert resp.status_code == 400
    assert resp.json()["detail"] == f"{field} cannot be null"
    assert (await client.get(f"/api/fabric/production/{production['id']}")).json()[field] == production[field]


async def test_delete_production_reverses_inventory(client, create_purchase, create_fabric, purchase_inventory):
    purchase = await create_purchase(quantity=1000)
    production = await create_fabric(source_thread_id=purchase["id"])

    resp = await client.delete(f"/api/fabric/production/{production['id']}")

    assert resp.status_code == 200
    assert (await purchase_inventory(purchase["id"]))["current_quantity"] == 1000
    fabric = (await client.get(f"/api/inventory/{production['fabric_inventory_id']}")).json()
    assert fabric["current_quantity"] == 0


async def test_delete_sold_production_is_blocked(client, create_purchase, create_fabric, create_customer):
    purchase = await create_purchase()
    production = await create_fabric(source_thread_id=purchase["id"])
    customer = await create_customer()
    sale = await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "items": [{"product_type": "FABRIC", "product_id": production["id"], "quantity_sold": 10, "unit_price": 45}],
    })
    assert sale.status_code == 201, sale.text

    resp = await client.delete(f"/api/fabric/production/{production['id']}")

    assert resp.status_code == 400
