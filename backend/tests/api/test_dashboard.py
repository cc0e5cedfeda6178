"""Integration Tests: dashboard summary."""


async def test_empty_dashboard(client):
    resp = await client.get("/api/dashboard/summary")

    assert resp.status_code == 200
    summary = resp.json()
    assert summary["inventory"] == {"total_value": 0, "item_count": 0, "low_stock_count": 0}
    assert summary["sales"]["order_count"] == 0
    assert summary["top_product_types"] == []
    assert summary["ledger"] == {"outstanding_payables": 0, "outstanding_receivables": 0}


async def test_dashboard_aggregates(client, create_purchase, create_fabric, create_customer):
    purchase = await create_purchase()
    await create_fabric(source_thread_id=purchase["id"], thread_used=200, quantity_produced=150)
    customer = await create_customer()
    await client.post("/api/sales", json={
        "customer_id": customer["id"],
        "items": [{"product_type": "THREAD", "product_id": purchase["id"], "quantity_sold": 100, "unit_price": 60}],
    })
    await client.post("/api/ledger", json={
        "entry_type": "PAYABLE", "description": "Loom repair", "amount": 5000, "party_name": "Mechanic",
    })

    summary = (await client.get("/api/dashboard/summary")).json()

    # 700 thread @ 50 + 150 fabric @ 30
    assert summary["inventory"] == {"total_value": 39500, "item_count": 2, "low_stock_count": 0}
    assert summary["sales"] == {"total_sales": 6000, "order_count": 1, "pending_payments": 1}
    assert summary["top_product_types"] == [{"product_type": "THREAD", "total_quantity": 100, "total_value": 6000}]
    assert summary["production_stats"] == {"COMPLETED": 1}
    assert summary["dyeing_stats"] == {}
    assert summary["ledger"]["outstanding_payables"] == 5000
