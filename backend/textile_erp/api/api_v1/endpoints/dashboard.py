"""仪表盘API"""

from datetime import datetime, timedelta
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from textile_erp.core.deps import get_db
from textile_erp.models.inventory import Inventory
from textile_erp.models.sales import SalesOrder, SalesOrderItem
from textile_erp.models.fabric_production import FabricProduction
from textile_erp.models.dyeing_process import DyeingProcess
from textile_erp.models.ledger import LedgerEntry
from textile_erp.schemas.dashboard import (
    DashboardSummary, InventoryOverview, SalesOverview, TopProductType, LedgerOverview
)

router = APIRouter()

RECENT_SALES_DAYS = 30
TOP_PRODUCT_LIMIT = 5


@router.get("/summary", response_model=DashboardSummary)
async def get_dashboard_summary(
    *,
    db: AsyncSession = Depends(get_db)
) -> Any:
    """获取仪表盘汇总数据"""
    # 库存
    inventory_row = (await db.execute(
        select(
            func.coalesce(func.sum(Inventory.current_quantity * Inventory.cost_per_unit), 0),
            func.count(Inventory.id),
            func.coalesce(func.sum(case((Inventory.current_quantity <= Inventory.min_stock_level, 1), else_=0)), 0),
        )
    )).first()

    # 近30天销售
    since = datetime.utcnow() - timedelta(days=RECENT_SALES_DAYS)
    sales_row = (await db.execute(
        select(
            func.coalesce(func.sum(SalesOrder.total_sale), 0),
            func.count(SalesOrder.id),
        ).where(SalesOrder.order_date >= since)
    )).first()
    pending_payments = (await db.execute(
        select(func.count(SalesOrder.id)).where(SalesOrder.payment_status.in_(("PENDING", "PARTIAL")))
    )).scalar() or 0

    # 销量最高的产品类型
    top_result = await db.execute(
        select(
            SalesOrderItem.product_type,
            func.sum(SalesOrderItem.quantity_sold).label("total_quantity"),
            func.coalesce(func.sum(SalesOrderItem.subtotal), 0),
        )
        .group_by(SalesOrderItem.product_type)
        .order_by(func.sum(SalesOrderItem.quantity_sold).desc())
        .limit(TOP_PRODUCT_LIMIT)
    )
    top_product_types = [
        TopProductType(product_type=product_type, total_quantity=int(quantity or 0), total_value=float(value))
        for product_type, quantity, value in top_result.all()
    ]

    # 生产/染色状态分布
    production_result = await db.execute(
        select(FabricProduction.status, func.count(FabricProduction.id)).group_by(FabricProduction.status)
    )
    dyeing_result = await db.execute(
        select(DyeingProcess.result_status, func.count(DyeingProcess.id)).group_by(DyeingProcess.result_status)
    )

    # 未结账目
    ledger_result = await db.execute(
        select(LedgerEntry.entry_type, func.coalesce(func.sum(LedgerEntry.remaining_amount), 0))
        .where(LedgerEntry.status.in_(("PENDING", "PARTIAL")))
        .group_by(LedgerEntry.entry_type)
    )
    outstanding = {entry_type: float(amount) for entry_type, amount in ledger_result.all()}

    return DashboardSummary(
        inventory=InventoryOverview(
            total_value=round(float(inventory_row[0]), 2),
            item_count=int(inventory_row[1]),
            low_stock_count=int(inventory_row[2]),
        ),
        sales=SalesOverview(
            total_sales=round(float(sales_row[0]), 2),
            order_count=int(sales_row[1]),
            pending_payments=pending_payments,
        ),
        top_product_types=top_product_types,
        production_stats=dict(production_result.all()),
        dyeing_stats=dict(dyeing_result.all()),
        ledger=LedgerOverview(
            outstanding_payables=round(outstanding.get("PAYABLE", 0.0), 2),
            outstanding_receivables=round(outstanding.get("RECEIVABLE", 0.0), 2),
        ),
    )
