"""Integration Tests: per-module analytics.

Invariants:
    - Monthly trends cover the last six months, oldest first, with empty months as zero
    - Bounced cheques never count as paid or as cash flow
    - Range filters accept only 7days, 30days and 1year
"""

from datetime import datetime

import pytest


def this_month():
    return datetime.utcnow().strftime("%Y-%m")


# ==============================================================================
# Thread purchases and vendors
# ==============================================================================


async def test_thread_analytics(client, create_vendor, create_purchase, create_dyeing):
    sunrise = await create_vendor()
    indus = await create_vendor(name="Indus Yarn", city="Karachi")
    dyed = await create_purchase(vendor_id=sunrise["id"], payment_amount=10000, payment_mode="CASH")
    await create_purchase(
        vendor_id=indus["id"], thread_type="Polyester 150D", color_status="COLORED", color="Red",
        quantity=200, unit_price=100, received=False,
    )
    await create_dyeing(dyed["id"])

    body = (await client.get("/api/thread/analytics")).json()

    assert body["order_stats"] == {
        "total_orders": 2, "pending_orders": 1, "received_orders": 1, "dyed_orders": 1,
        "total_quantity": 1200, "total_value": 70000,
    }
    # dyeing flips the raw purchase to COLORED
    assert body["by_color_status"] == [{"name": "COLORED", "count": 2, "quantity": 1200, "value": 70000}]
    assert [t["name"] for t in body["top_thread_types"]] == ["Cotton 20s", "Polyester 150D"]
    assert [(v["name"], v["value"]) for v in body["top_vendors"]] == [
        ("Sunrise Spinning Mills", 50000), ("Indus Yarn", 20000),
    ]
    assert body["color_distribution"] == [{"color": "Red", "color_status": "COLORED", "count": 1, "quantity": 200}]

    trends = body["monthly_trends"]
    assert len(trends) == 6
    assert trends[-1] == {"month": this_month(), "count": 2, "quantity": 1200, "value": 70000}
    assert all(point["count"] == 0 for point in trends[:-1])

    metrics = body["payment_metrics"]
    assert metrics["total_purchased"] == 70000
    assert metrics["total_paid"] == 10000
    assert metrics["payment_percentage"] == 14.29
    assert metrics["payment_modes"] == [{"mode": "CASH", "count": 1, "amount": 10000, "percentage": 100}]


async def test_thread_analytics_ignores_bounced_cheques(client, create_purchase):
    purchase = await create_purchase(quantity=100, unit_price=100)
    payment = (await client.post("/api/payments", json={
        "thread_purchase_id": purchase["id"], "amount": 4000, "mode": "CHEQUE", "cheque_number": "P-1", "bank": "MCB",
    })).json()
    await client.patch(f"/api/cheques/{payment['cheque']['id']}", json={"status": "BOUNCED"})

    metrics = (await client.get("/api/thread/analytics")).json()["payment_metrics"]

    assert metrics["total_paid"] == 0
    assert metrics["payment_modes"] == []


async def test_thread_analytics_when_empty(client):
    resp = await client.get("/api/thread/analytics")

    assert resp.status_code == 200
    body = resp.json()
    assert body["order_stats"]["total_orders"] == 0
    assert body["payment_metrics"]["payment_percentage"] == 0
    assert [point["count"] for point in body["monthly_trends"]] == [0] * 6


async def test_vendor_analytics(client, create_vendor, create_purchase):
    sunrise = await create_vendor()
    indus = await create_vendor(name="Indus Yarn", city="Karachi")
    await create_vendor(name="Lahore Mills", city="Lahore")
    await create_purchase(vendor_id=sunrise["id"])
    await create_purchase(vendor_id=sunrise["id"], quantity=100, unit_price=10, received=False)
    await create_purchase(vendor_id=indus["id"], quantity=200, unit_price=100)

    body = (await client.get("/api/vendors/analytics")).json()

    assert body["vendor_stats"] == {"total_vendors": 3, "active_vendors": 2, "vendors_with_pending_orders": 1}
    assert [(v["name"], v["value"]) for v in body["top_vendors_by_value"]] == [
        ("Sunrise Spinning Mills", 51000), ("Indus Yarn", 20000),
    ]
    assert [(v["name"], v["count"]) for v in body["top_vendors_by_orders"]] == [
        ("Sunrise Spinning Mills", 2), ("Indus Yarn", 1),
    ]
    assert [(c["name"], c["count"]) for c in body["city_distribution"]] == [("Karachi", 1), ("Lahore", 1)]
    assert body["monthly_trends"][-1]["count"] == 3
    assert body["payment_metrics"]["total_purchased"] == 71000


async def test_vendor_analytics_does_not_shadow_vendor_detail(client, create_vendor):
    vendor = await create_vendor()

    resp = await client.get(f"/api/vendors/{vendor['id']}")

    assert resp.status_code == 200
    assert resp.json()["name"] == "Sunrise Spinning Mills"


# ==============================================================================
# Dyeing and fabric production
# ==============================================================================


async def test_dyeing_analytics(client, create_purchase, create_dyeing, create_fabric):
    navy_purchase = await create_purchase()
    navy = (await create_dyeing(navy_purchase["id"]))["process"]
    maroon_purchase = await create_purchase()
    await create_dyeing(maroon_purchase["id"], color_name="Maroon", dye_quantity=200, output_quantity=150,
                        result_status="PARTIAL")
    await create_purchase(quantity=500)
    await create_purchase(quantity=300, received=False)
    await create_fabric(dyeing_process_id=navy["id"], thread_used=100)

    body = (await client.get("/api/dyeing/analytics")).json()

    # navy output less what was woven; partial results are not stocked
    assert body["dyed_thread_in_stock"] == 280
    assert body["raw_thread_awaiting_dyeing"] == 500
    assert body["total_dye_quantity"] == 600
    assert body["total_output_quantity"] == 530
    assert body["wastage_percentage"] == 11.67
    assert [(c["name"], c["quantity"]) for c in body["popular_colors"]] == [("Navy", 380), ("Maroon", 150)]
    assert body["status_distribution"] == {"PENDING": 0, "COMPLETED": 1, "PARTIAL": 1, "FAILED": 0}
    assert body["monthly_trends"][-1] == {"month": this_month(), "count": 2, "quantity": 600, "value": 3800}
    assert body["fabric_from_dyed_thread"] == 1


async def test_fabric_analytics(client, create_purchase, create_dyeing, create_fabric):
    purchase = await create_purchase()
    await create_fabric(source_thread_id=purchase["id"])
    await create_fabric(source_thread_id=purchase["id"], fabric_type="Twill", batch_number="B-002",
                        quantity_produced=100, thread_used=120, status="IN_PROGRESS")
    dyed = await create_purchase()
    process = (await create_dyeing(dyed["id"]))["process"]
    await create_fabric(dyeing_process_id=process["id"], fabric_type="Twill", batch_number="B-003",
                        quantity_produced=200, thread_used=300, production_cost=1000, labor_cost=500)

    body = (await client.get("/api/fabric/production/analytics")).json()

    assert body["range"] == "30days"
    assert body["total_production"] == 350
    assert body["total_thread_used"] == 500
    assert body["total_cost"] == 6000
    assert body["cost_breakdown"] == {"production": 4000, "labor": 2000}
    assert body["monthly_production"] == [{"month": this_month(), "count": 2, "quantity": 350, "value": 6000}]
    assert [(t["name"], t["quantity"]) for t in body["fabric_type_distribution"]] == [("Twill", 200), ("Poplin", 150)]
    assert body["status_distribution"] == {"COMPLETED": 2, "IN_PROGRESS": 1}
    assert body["dyed_thread_batches"] == 1
    assert body["raw_thread_batches"] == 1
    assert body["fabric_in_stock"] == 350


@pytest.mark.parametrize("path", ["/api/fabric/production/analytics", "/api/sales/analytics"])
async def test_unknown_range_returns_400(client, path):
    resp = await client.get(path, params={"range": "90days"})

    assert resp.status_code == 400


# ==============================================================================
# Sales
# ==============================================================================


@pytest.fixture
async def two_sales(client, create_purchase, create_customer, create_fabric):
    """A 6000 thread sale paid in cash and a 1000 fabric sale paid online."""
    purchase = await create_purchase()
    production = await create_fabric(source_thread_id=purchase["id"])
    noor = await create_customer()
    crescent = await create_customer(name="Crescent Apparel")
    for payload in (
        {"customer_id": noor["id"], "items": [
            {"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 100, "unit_price": 60}]},
        {"customer_id": crescent["id"], "payment_mode": "ONLINE", "items": [
            {"product_type": "FABRIC", "product_id": production["id"], "quantity_sold": 20, "unit_price": 50}]},
    ):
        resp = await client.post("/api/sales", json=payload)
        assert resp.status_code == 201, resp.text


async def test_sales_analytics(client, two_sales):
    body = (await client.get("/api/sales/analytics", params={"range": "7days"})).json()

    assert body["order_count"] == 2
    assert body["total_revenue"] == 7000
    assert body["average_order_size"] == 3500
    assert body["payment_mode_distribution"] == {"CASH": 1, "ONLINE": 1}
    assert body["product_distribution"] == {"THREAD": 85.71, "FABRIC": 14.29}
    assert body["payment_status_distribution"] == {"PENDING": 2}
    assert [(c["name"], c["value"]) for c in body["top_customers"]] == [
        ("Al-Noor Garments", 6000), ("Crescent Apparel", 1000),
    ]

    days = body["sales_by_timeframe"]
    assert len(days) == 7
    assert days[-1] == {"label": datetime.utcnow().strftime("%a"), "order_count": 2, "revenue": 7000}


@pytest.mark.parametrize("range_, points, last_label", [
    ("30days", 4, "Week 4"),
    ("1year", 12, datetime.utcnow().strftime("%b")),
])
async def test_sales_timeframe_buckets(client, two_sales, range_, points, last_label):
    body = (await client.get("/api/sales/analytics", params={"range": range_})).json()

    timeframe = body["sales_by_timeframe"]
    assert len(timeframe) == points
    assert timeframe[-1]["label"] == last_label
    assert timeframe[-1]["revenue"] == 7000
    assert sum(point["order_count"] for point in timeframe) == 2


# ==============================================================================
# Cash flow
# ==============================================================================


async def test_cashflow_analytics(client, create_purchase, create_customer):
    purchase = await create_purchase()
    customer = await create_customer()
    sale = (await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "items": [{"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 100, "unit_price": 60}],
    })).json()
    await client.post("/api/payments", json={"sales_order_id": sale["id"], "amount": 3000, "mode": "CASH"})
    await client.post("/api/payments", json={"sales_order_id": sale["id"], "amount": 500, "mode": "ONLINE"})
    cheque = (await client.post("/api/payments", json={
        "sales_order_id": sale["id"], "amount": 1000, "mode": "CHEQUE", "cheque_number": "C-1", "bank": "HBL",
    })).json()["cheque"]
    await client.patch(f"/api/cheques/{cheque['id']}", json={"status": "BOUNCED"})
    await client.post("/api/payments", json={"thread_purchase_id": purchase["id"], "amount": 2500, "mode": "CASH"})

    body = (await client.get("/api/payments/analytics")).json()

    assert body["period_days"] == 30
    assert body["total_inflow"] == 3500
    assert body["total_outflow"] == 2500
    assert body["net_cashflow"] == 1000
    assert body["transaction_count"] == 3
    assert body["largest_inflow"] == 3000
    assert body["largest_outflow"] == 2500
    assert body["payment_modes"] == [
        {"mode": "CASH", "count": 2, "amount": 5500, "percentage": 91.67},
        {"mode": "ONLINE", "count": 1, "amount": 500, "percentage": 8.33},
    ]
    assert body["cheque_status"] == {"BOUNCED": 1}

    series = body["time_series"]
    assert len(series) == 30
    assert series[-1] == {
        "date": datetime.utcnow().date().isoformat(),
        "inflow": 3500, "outflow": 2500, "net": 1000, "balance": 1000,
    }
    assert all(point["balance"] == 0 for point in series[:-1])


async def test_cashflow_series_is_capped(client):
    long_period = await client.get("/api/payments/analytics", params={"period": 120})
    invalid = await client.get("/api/payments/analytics", params={"period": 0})

    assert long_period.status_code == 200
    assert long_period.json()["period_days"] == 120
    assert len(long_period.json()["time_series"]) == 90
    assert invalid.status_code == 400
