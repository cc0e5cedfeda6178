"""Integration Tests: sales orders.

Invariants:
    - Sale creation deducts inventory, records items and the first payment in one commit
    - Subtotals are recomputed server side; a client total outside the tolerance is rejected
    - Payment status is derived from effective payments
    - Deleting a sale restores the inventory it took
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from textile_erp.models.sales import SalesOrder


@pytest.fixture
def create_sale(client, create_purchase, create_customer):
    """Sale of 100 units from a 1000 @ 50 purchase."""
    async def _create(**overrides):
        if "customer_id" not in overrides and "customer_name" not in overrides:
            overrides["customer_id"] = (await create_customer())["id"]
        if "items" not in overrides:
            purchase = await create_purchase()
            overrides["items"] = [{
                "product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 100, "unit_price": 60,
            }]
        resp = await client.post("/api/sales", json=overrides)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _create


async def test_sale_deducts_inventory_and_records_payment(client, create_purchase, create_customer,
                                                          purchase_inventory):
    purchase = await create_purchase()
    customer = await create_customer()

    resp = await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "payment_mode": "CASH",
        "payment_status": "PARTIAL",
        "payment_amount": 2000,
        "items": [{"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 100, "unit_price": 60}],
    })

    assert resp.status_code == 201
    order = resp.json()
    assert order["order_number"].startswith(f"SO-{datetime.utcnow():%Y%m%d}-")
    assert order["customer_name"] == "Al-Noor Garments"
    assert order["total_sale"] == 6000
    assert order["payment_status"] == "PARTIAL"
    assert order["total_paid"] == 2000
    assert order["remaining_amount"] == 4000
    [item] = order["items"]
    assert item["subtotal"] == 6000
    assert item["item_description"] == "Cotton 20s - Raw"
    [payment] = order["payments"]
    assert payment["direction"] == "IN"
    assert payment["amount"] == 2000

    inventory = await purchase_inventory(purchase["id"])
    assert inventory["current_quantity"] == 900
    assert inventory["recent_transactions"][0]["transaction_type"] == "SALES"
    assert inventory["recent_transactions"][0]["quantity"] == -100


async def test_order_numbers_are_sequential(create_sale):
    first = await create_sale()
    second = await create_sale()

    assert int(second["order_number"][-3:]) == int(first["order_number"][-3:]) + 1


async def test_order_number_continues_past_999(test_db, create_sale, create_customer):
    customer = await create_customer(name="Bulk Buyer")
    prefix = f"SO-{datetime.utcnow():%Y%m%d}-"
    for seq in ("999", "1000"):
        test_db.add(SalesOrder(
            order_number=f"{prefix}{seq}", customer_id=customer["id"],
            total_sale=Decimal("100"), payment_status="PENDING",
        ))
    await test_db.commit()

    order = await create_sale()

    assert order["order_number"] == f"{prefix}1001"


async def test_subtotals_are_recomputed_with_rates(create_sale, create_purchase):
    purchase = await create_purchase()

    order = await create_sale(
        total_sale=947,
        items=[{
            "product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 10,
            "unit_price": 100, "discount": 10, "tax": 5, "subtotal": 999,
        }],
    )

    assert order["items"][0]["subtotal"] == 945
    assert order["total_sale"] == 945


async def test_total_outside_tolerance_is_rejected(client, create_purchase, create_customer, purchase_inventory):
    purchase = await create_purchase()
    customer = await create_customer()

    resp = await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "total_sale": 6010,
        "items": [{"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 100, "unit_price": 60}],
    })

    assert resp.status_code == 400
    assert "expected 6000" in resp.json()["detail"]
    assert (await client.get("/api/sales")).json()["total"] == 0
    assert (await purchase_inventory(purchase["id"]))["current_quantity"] == 1000


async def test_customer_found_or_created_by_name(client, create_sale, create_customer):
    customer = await create_customer()

    existing = await create_sale(customer_name="  al-noor garments ")
    created = await create_sale(customer_name="Madina Textiles", customer_contact="0321-0000000")

    assert existing["customer_id"] == customer["id"]
    assert created["customer_name"] == "Madina Textiles"
    assert (await client.get("/api/customers")).json()["total"] == 2


async def test_customer_is_required(client, create_purchase):
    purchase = await create_purchase()

    resp = await client.post("/api/sales", json={
        "items": [{"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 1, "unit_price": 60}],
    })

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Customer name is required"


async def test_duplicate_items_are_rejected(client, create_purchase, create_customer):
    purchase = await create_purchase()
    customer = await create_customer()
    line = {"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 1, "unit_price": 60}

    resp = await client.post("/api/sales", json={"customer_id": customer["id"], "items": [line, line]})

    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Duplicate item")


async def test_future_order_date_is_rejected(client, create_purchase, create_customer):
    purchase = await create_purchase()
    customer = await create_customer()

    resp = await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "order_date": (datetime.utcnow() + timedelta(days=2)).isoformat(),
        "items": [{"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 1, "unit_price": 60}],
    })

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Order date cannot be in the future"


async def test_unknown_product_is_rejected(client, create_customer):
    customer = await create_customer()

    resp = await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "items": [{"product_type": "FABRIC", "product_id": 999, "quantity_sold": 1, "unit_price": 60}],
    })

    assert resp.status_code == 404
    assert resp.json()["detail"] == "Fabric production #999 not found"


async def test_demand_on_one_inventory_item_is_combined(client, create_purchase, create_customer,
                                                        purchase_inventory):
    first = await create_purchase()
    second = await create_purchase()
    customer = await create_customer()
    shared = await purchase_inventory(first["id"])

    resp = await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "items": [
            {"product_type": "THREAD", "product_id": first["id"], "quantity_sold": 600, "unit_price": 60},
            {"product_type": "THREAD", "product_id": second["id"], "quantity_sold": 500, "unit_price": 60,
             "inventory_item_id": shared["id"]},
        ],
    })

    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Not enough thread")
    assert (await purchase_inventory(first["id"]))["current_quantity"] == 1000


async def test_payment_cannot_exceed_total(client, create_purchase, create_customer):
    purchase = await create_purchase()
    customer = await create_customer()

    resp = await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "payment_amount": 60.5,
        "items": [{"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 1, "unit_price": 60}],
    })

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Payment amount cannot exceed total sale"


async def test_cheque_sale_creates_pending_cheque(create_sale):
    order = await create_sale(payment_mode="CHEQUE", payment_amount=6000, cheque_number="CHQ-77", bank="HBL")

    assert order["payment_status"] == "PAID"
    cheque = order["payments"][0]["cheque"]
    assert cheque["cheque_number"] == "CHQ-77"
    assert cheque["cheque_status"] == "PENDING"


async def test_sale_without_inventory_update(create_sale, create_purchase, purchase_inventory):
    purchase = await create_purchase()

    await create_sale(update_inventory=False, items=[
        {"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 100, "unit_price": 60},
    ])

    assert (await purchase_inventory(purchase["id"]))["current_quantity"] == 1000


async def test_fabric_sale(client, create_purchase, create_fabric, create_sale):
    purchase = await create_purchase()
    production = await create_fabric(source_thread_id=purchase["id"])

    order = await create_sale(items=[
        {"product_type": "FABRIC", "product_id": production["id"], "quantity_sold": 50, "unit_price": 45},
    ])

    assert order["items"][0]["inventory_item_id"] == production["fabric_inventory_id"]
    fabric = (await client.get(f"/api/inventory/{production['fabric_inventory_id']}")).json()
    assert fabric["current_quantity"] == 100


async def test_submit_alias(client, create_purchase, create_customer):
    purchase = await create_purchase()
    customer = await create_customer()

    resp = await client.post("/api/sales/submit", json={
        "customer_id": customer["id"],
        "items": [{"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 1, "unit_price": 60}],
    })

    assert resp.status_code == 201
    assert resp.json()["payment_status"] == "PENDING"


async def test_patch_appends_payment(client, create_sale):
    order = await create_sale(payment_amount=2000)

    resp = await client.patch(f"/api/sales/{order['id']}", json={"payment_amount": 4000, "payment_mode": "ONLINE"})

    assert resp.status_code == 200
    assert resp.json()["payment_status"] == "PAID"
    assert resp.json()["remaining_amount"] == 0
    assert len(resp.json()["payments"]) == 2

    again = await client.patch(f"/api/sales/{order['id']}", json={"payment_amount": 1})
    assert again.status_code == 400


async def test_patch_discount_recomputes_total(client, create_sale):
    order = await create_sale(payment_amount=5400)
    assert order["payment_status"] == "PARTIAL"

    resp = await client.patch(f"/api/sales/{order['id']}", json={"discount": 10})

    assert resp.json()["total_sale"] == 5400
    assert resp.json()["payment_status"] == "PAID"


async def test_patch_explicit_status_without_payment(client, create_sale):
    order = await create_sale()

    resp = await client.patch(f"/api/sales/{order['id']}", json={"payment_status": "PARTIAL", "remarks": "agreed"})

    assert resp.json()["payment_status"] == "PARTIAL"
    assert resp.json()["remarks"] == "agreed"


@pytest.mark.parametrize("field", ["total_sale", "payment_status"])
async def test_patch_null_required_field_returns_400(client, create_sale, field):
    order = await create_sale()

    resp = await client.patch(f"/api/sales/{order['id']}", json={field: None})

    assert resp.status_code == 400
    assert resp.json()["detail"] == f"{field} cannot be null"
    assert (await client.get(f"/api/sales/{order['id']}")).json()[field] == order[field]


async def test_patch_null_discount_clears_it(client, create_sale):
    order = await create_sale(discount=10)
    assert order["total_sale"] == 5400

    resp = await client.patch(f"/api/sales/{order['id']}", json={"discount": None})

    assert resp.status_code == 200
    assert resp.json()["discount"] is None
    assert resp.json()["total_sale"] == 6000


async def test_list_filters(client, create_sale, create_customer):
    await create_sale(payment_amount=6000)
    other = await create_customer(name="Madina Textiles")
    await create_sale(customer_id=other["id"])

    paid = await client.get("/api/sales", params={"payment_status": "PAID"})
    search = await client.get("/api/sales", params={"search": "madina"})

    assert paid.json()["total"] == 1
    assert paid.json()["data"][0]["items"] == []
    assert [o["customer_name"] for o in search.json()["data"]] == ["Madina Textiles"]


async def test_delete_restores_inventory(client, create_sale, create_purchase, purchase_inventory):
    purchase = await create_purchase()
    order = await create_sale(payment_mode="CHEQUE", payment_amount=1000, cheque_number="C-1", bank="MCB", items=[
        {"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 100, "unit_price": 60},
    ])

    resp = await client.delete(f"/api/sales/{order['id']}")

    assert resp.status_code == 200
    assert (await client.get(f"/api/sales/{order['id']}")).status_code == 404
    assert (await purchase_inventory(purchase["id"]))["current_quantity"] == 1000
    assert (await client.get("/api/payments")).json()["total"] == 0
    assert (await client.get("/api/cheques")).json()["total"] == 0
