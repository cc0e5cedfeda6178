"""
演示数据初始化脚本
- 重置数据库（保留表结构）
- 创建供应商、客户、纱线/布料类型
- 创建已收货的纱线采购单（原纱入库，原色纱附带待染色工序）
- 创建应付/应收账目

用法（在 backend 目录下）: python -m scripts.init_demo_data
"""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from textile_erp.db.session import SessionLocal
from textile_erp.db.init_db import ensure_tables_exist
from textile_erp.models import (
    Vendor, Customer, ThreadType, FabricType, ThreadPurchase, DyeingProcess,
    FabricProduction, Inventory, InventoryTransaction, SalesOrder, SalesOrderItem,
    Payment, ChequeTransaction, LedgerEntry, LedgerTransaction
)
from textile_erp.api.api_v1.endpoints.threads import add_purchase_to_inventory, create_pending_dyeing


async def clear_all_data(db: AsyncSession):
    """清除所有业务数据（保留表结构）"""
    print("🗑️  清除所有数据...")

    # 按照外键依赖顺序删除
    for model in (
        LedgerTransaction, LedgerEntry, ChequeTransaction, Payment,
        InventoryTransaction, SalesOrderItem, SalesOrder, FabricProduction,
        Inventory, DyeingProcess, ThreadPurchase, ThreadType, FabricType,
        Customer, Vendor,
    ):
        await db.execute(delete(model))
        print(f"   ✓ 清除 {model.__tablename__}")

    await db.commit()
    print("   完成！\n")


async def create_parties(db: AsyncSession) -> tuple:
    """创建供应商和客户"""
    print("🏢 创建往来单位...")

    vendors = [
        Vendor(name="Sunrise Spinning Mills", contact="0300-1112233", email="sales@sunrise.example", city="Faisalabad"),
        Vendor(name="Indus Yarn Traders", contact="0321-4445566", city="Karachi"),
    ]
    customers = [
        Customer(name="Al-Noor Garments", contact="0333-7778899", city="Lahore"),
        Customer(name="Crescent Apparel", contact="0345-1231234", email="buy@crescent.example", city="Multan"),
    ]
    for party in vendors + customers:
        db.add(party)
    await db.flush()
    for party in vendors + customers:
        print(f"   ✓ {party.__class__.__name__}: {party.name}")
    return vendors, customers


async def create_product_types(db: AsyncSession):
    print("📁 创建纱线/布料类型...")
    for name in ("Cotton 20s", "Polyester 150D"):
        db.add(ThreadType(name=name, units="meters", description=f"Thread type for {name}"))
        print(f"   ✓ 纱线: {name}")
    for name in ("Poplin", "Twill"):
        db.add(FabricType(name=name, units="meters", description=f"Fabric type for {name}"))
        print(f"   ✓ 布料: {name}")
    await db.flush()


async def create_thread_purchases(db: AsyncSession, vendors: list):
    """创建已收货的采购单并入库"""
    print("🧵 创建纱线采购单...")

    today = datetime.utcnow()
    purchase_data = [
        {"vendor": vendors[0], "thread_type": "Cotton 20s", "color": None, "color_status": "RAW",
         "quantity": 2000, "unit_price": Decimal("45.00"), "days_ago": 10},
        {"vendor": vendors[0], "thread_type": "Cotton 20s", "color": "Navy", "color_status": "COLORED",
         "quantity": 800, "unit_price": Decimal("62.50"), "days_ago": 6},
        {"vendor": vendors[1], "thread_type": "Polyester 150D", "color": None, "color_status": "RAW",
         "quantity": 1500, "unit_price": Decimal("38.00"), "days_ago": 3},
    ]

    for data in purchase_data:
        order_date = today - timedelta(days=data["days_ago"])
        purchase = ThreadPurchase(
            vendor_id=data["vendor"].id,
            order_date=order_date,
            thread_type=data["thread_type"],
            color=data["color"],
            color_status=data["color_status"],
            quantity=data["quantity"],
            unit_price=data["unit_price"],
            total_cost=data["unit_price"] * data["quantity"],
            unit_of_measure="meters",
            received=True,
            received_at=order_date + timedelta(days=1),
            inventory_status="PENDING",
            remarks="演示数据",
        )
        db.add(purchase)
        await db.flush()

        await add_purchase_to_inventory(db, purchase)
        if purchase.color_status == "RAW":
            create_pending_dyeing(db, purchase)
        print(f"   ✓ #{purchase.id} {purchase.thread_type} {purchase.color or 'Raw'} x {purchase.quantity}")

    await db.flush()


async def create_ledger_entries(db: AsyncSession, vendors: list, customers: list):
    print("📒 创建账目...")
    entries = [
        LedgerEntry(entry_type="PAYABLE", description="Dyeing chemicals (credit)", amount=Decimal("25000"),
                    remaining_amount=Decimal("25000"), status="PENDING", vendor_id=vendors[1].id,
                    due_date=datetime.utcnow() + timedelta(days=30)),
        LedgerEntry(entry_type="RECEIVABLE", description="Opening balance", amount=Decimal("40000"),
                    remaining_amount=Decimal("40000"), status="PENDING", customer_id=customers[0].id),
    ]
    for entry in entries:
        db.add(entry)
        print(f"   ✓ {entry.entry_type}: {entry.description} {entry.amount}")
    await db.flush()


async def main():
    """主函数"""
    print("=" * 60)
    print("🚀 纺织生产管理系统 - 演示数据初始化")
    print("=" * 60 + "\n")

    await ensure_tables_exist()

    async with SessionLocal() as db:
        try:
            await clear_all_data(db)
            vendors, customers = await create_parties(db)
            await create_product_types(db)
            await create_thread_purchases(db, vendors)
            await create_ledger_entries(db, vendors, customers)
            await db.commit()
        except Exception:
            await db.rollback()
            print("\n❌ 初始化失败")
            raise

    print("\n" + "=" * 60)
    print("✅ 演示数据初始化完成！")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
