"""统计分析API

各业务模块的图表数据：采购、染色、布料生产、销售、供应商和资金流。
路由带完整路径（/thread/analytics 等），需在各模块路由之前注册，
避免被 /{id} 路由截获。

月份按 strftime('%Y-%m') 分组，只适用于 SQLite。
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, case, distinct
from sqlalchemy.ext.asyncio import AsyncSession

from textile_erp.core.deps import get_db
from textile_erp.core.logging_config import get_logger
from textile_erp.models.customer import Customer
from textile_erp.models.vendor import Vendor
from textile_erp.models.thread_purchase import ThreadPurchase
from textile_erp.models.dyeing_process import DyeingProcess
from textile_erp.models.fabric_production import FabricProduction
from textile_erp.models.inventory import Inventory, InventoryTransaction
from textile_erp.models.sales import SalesOrder, SalesOrderItem
from textile_erp.models.payment import Payment, ChequeTransaction
from textile_erp.schemas.analytics import (
    GroupTotal, MonthlyPoint, PaymentModeTotal, PurchasePaymentMetrics,
    ThreadOrderStats, ColorShare, ThreadAnalytics, DyeingAnalytics, FabricAnalytics,
    TimeframePoint, SalesAnalytics, VendorStats, VendorAnalytics, DailyCashflow, CashflowAnalytics
)
from .payments import effective_payments

router = APIRouter()
logger = get_logger(__name__)

TREND_MONTHS = 6
TOP_LIMIT = 5
COLOR_LIMIT = 10
MAX_SERIES_DAYS = 90
RANGE_DAYS = {"7days": 7, "30days": 30, "1year": 365}
RANGE_PATTERN = "^(7days|30days|1year)$"
DYEING_STATUSES = ("PENDING", "COMPLETED", "PARTIAL", "FAILED")


def month_keys(count: int, now: datetime = None) -> List[str]:
    """最近 count 个月（含本月），由远到近"""
    now = now or datetime.utcnow()
    year, month = now.year, now.month
    keys = []
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return keys[::-1]


def month_start(key: str) -> datetime:
    return datetime(int(key[:4]), int(key[5:7]), 1)


def percentage(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


async def purchase_monthly_trends(db: AsyncSession) -> List[MonthlyPoint]:
    """近6个月采购趋势，无数据的月份补 0"""
    keys = month_keys(TREND_MONTHS)
    month = func.strftime("%Y-%m", ThreadPurchase.order_date)
    result = await db.execute(
        select(
            month,
            func.count(ThreadPurchase.id),
            func.coalesce(func.sum(ThreadPurchase.quantity), 0),
            func.coalesce(func.sum(ThreadPurchase.total_cost), 0),
        )
        .where(ThreadPurchase.order_date >= month_start(keys[0]))
        .group_by(month)
    )
    rows = {key: (count, quantity, value) for key, count, quantity, value in result.all()}
    points = []
    for key in keys:
        count, quantity, value = rows.get(key, (0, 0, 0))
        points.append(MonthlyPoint(month=key, count=count, quantity=int(quantity), value=round(float(value), 2)))
    return points


async def purchase_payment_metrics(db: AsyncSession) -> PurchasePaymentMetrics:
    """采购付款情况（退票支票不计入已付）"""
    total_purchased = float((await db.execute(
        select(func.coalesce(func.sum(ThreadPurchase.total_cost), 0))
    )).scalar() or 0)

    result = await db.execute(
        select(Payment.mode, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .outerjoin(ChequeTransaction, ChequeTransaction.payment_id == Payment.id)
        .where(Payment.thread_purchase_id.isnot(None), effective_payments())
        .group_by(Payment.mode)
    )
    rows = result.all()
    total_paid = sum(float(amount) for _, _, amount in rows)
    modes = [
        PaymentModeTotal(mode=mode, count=count, amount=round(float(amount), 2),
                         percentage=percentage(float(amount), total_paid))
        for mode, count, amount in rows
    ]
    return PurchasePaymentMetrics(
        total_purchased=round(total_purchased, 2),
        total_paid=round(total_paid, 2),
        payment_percentage=percentage(total_paid, total_purchased),
        payment_modes=sorted(modes, key=lambda m: m.amount, reverse=True),
    )


async def vendor_totals(db: AsyncSession, order_by) -> List[GroupTotal]:
    result = await db.execute(
        select(
            Vendor.name,
            func.count(ThreadPurchase.id),
            func.coalesce(func.sum(ThreadPurchase.quantity), 0),
            func.coalesce(func.sum(ThreadPurchase.total_cost), 0),
        )
        .join(ThreadPurchase, ThreadPurchase.vendor_id == Vendor.id)
        .group_by(Vendor.id, Vendor.name)
        .order_by(order_by.desc())
        .limit(TOP_LIMIT)
    )
    return [
        GroupTotal(name=name, count=count, quantity=int(quantity), value=round(float(value), 2))
        for name, count, quantity, value in result.all()
    ]


@router.get("/thread/analytics", response_model=ThreadAnalytics)
async def get_thread_analytics(
    *,
    db: AsyncSession = Depends(get_db)
) -> Any:
    """纱线采购统计"""
    dyed_ids = select(distinct(DyeingProcess.thread_purchase_id))
    stats_row = (await db.execute(
        select(
            func.count(ThreadPurchase.id),
            func.coalesce(func.sum(case((ThreadPurchase.received.is_(False), 1), else_=0)), 0),
            func.coalesce(func.sum(case((ThreadPurchase.id.in_(dyed_ids), 1), else_=0)), 0),
            func.coalesce(func.sum(ThreadPurchase.quantity), 0),
            func.coalesce(func.sum(ThreadPurchase.total_cost), 0),
        )
    )).first()
    total_orders, pending = int(stats_row[0]), int(stats_row[1])

    status_result = await db.execute(
        select(
            ThreadPurchase.color_status,
            func.count(ThreadPurchase.id),
            func.coalesce(func.sum(ThreadPurchase.quantity), 0),
            func.coalesce(func.sum(ThreadPurchase.total_cost), 0),
        ).group_by(ThreadPurchase.color_status)
    )
    type_result = await db.execute(
        select(
            ThreadPurchase.thread_type,
            func.count(ThreadPurchase.id),
            func.sum(ThreadPurchase.quantity),
            func.coalesce(func.sum(ThreadPurchase.total_cost), 0),
        )
        .group_by(ThreadPurchase.thread_type)
        .order_by(func.sum(ThreadPurchase.quantity).desc())
        .limit(TOP_LIMIT)
    )
    color_result = await db.execute(
        select(
            ThreadPurchase.color,
            ThreadPurchase.color_status,
            func.count(ThreadPurchase.id),
            func.sum(ThreadPurchase.quantity),
        )
        .where(ThreadPurchase.color.isnot(None))
        .group_by(ThreadPurchase.color, ThreadPurchase.color_status)
        .order_by(func.sum(ThreadPurchase.quantity).desc())
        .limit(COLOR_LIMIT)
    )

    return ThreadAnalytics(
        order_stats=ThreadOrderStats(
            total_orders=total_orders,
            pending_orders=pending,
            received_orders=total_orders - pending,
            dyed_orders=int(stats_row[2]),
            total_quantity=int(stats_row[3]),
            total_value=round(float(stats_row[4]), 2),
        ),
        by_color_status=[
            GroupTotal(name=status, count=count, quantity=int(quantity), value=round(float(value), 2))
            for status, count, quantity, value in status_result.all()
        ],
        top_thread_types=[
            GroupTotal(name=name, count=count, quantity=int(quantity or 0), value=round(float(value), 2))
            for name, count, quantity, value in type_result.all()
        ],
        top_vendors=await vendor_totals(db, func.sum(ThreadPurchase.total_cost)),
        monthly_trends=await purchase_monthly_trends(db),
        payment_metrics=await purchase_payment_metrics(db),
        color_distribution=[
            ColorShare(color=color, color_status=status, count=count, quantity=int(quantity or 0))
            for color, status, count, quantity in color_result.all()
        ],
    )


@router.get("/dyeing/analytics", response_model=DyeingAnalytics)
async def get_dyeing_analytics(
    *,
    db: AsyncSession = Depends(get_db)
) -> Any:
    """染色统计

    染色纱库存取有染色产出流水的库存项目；待染色原纱为已收货、
    未建染色工序的原色采购。
    """
    dyed_inventory_ids = (
        select(distinct(InventoryTransaction.inventory_id))
        .where(InventoryTransaction.dyeing_process_id.isnot(None), InventoryTransaction.quantity > 0)
    )
    dyed_in_stock = (await db.execute(
        select(func.coalesce(func.sum(Inventory.current_quantity), 0))
        .where(Inventory.id.in_(dyed_inventory_ids))
    )).scalar() or 0

    awaiting = (await db.execute(
        select(func.coalesce(func.sum(ThreadPurchase.quantity), 0))
        .where(
            ThreadPurchase.color_status == "RAW",
            ThreadPurchase.received.is_(True),
            ThreadPurchase.id.notin_(select(DyeingProcess.thread_purchase_id)),
        )
    )).scalar() or 0

    totals_row = (await db.execute(
        select(
            func.coalesce(func.sum(DyeingProcess.dye_quantity), 0),
            func.coalesce(func.sum(DyeingProcess.output_quantity), 0),
        ).where(DyeingProcess.result_status.in_(("COMPLETED", "PARTIAL")))
    )).first()
    dye_total, output_total = int(totals_row[0]), int(totals_row[1])

    color = func.coalesce(DyeingProcess.color_name, "Unknown")
    color_result = await db.execute(
        select(color, func.count(DyeingProcess.id), func.coalesce(func.sum(DyeingProcess.output_quantity), 0))
        .group_by(color)
        .order_by(func.count(DyeingProcess.id).desc(), func.sum(DyeingProcess.output_quantity).desc())
        .limit(TOP_LIMIT)
    )

    status_result = await db.execute(
        select(DyeingProcess.result_status, func.count(DyeingProcess.id)).group_by(DyeingProcess.result_status)
    )
    status_distribution = {status: 0 for status in DYEING_STATUSES}
    status_distribution.update(dict(status_result.all()))

    keys = month_keys(TREND_MONTHS)
    month = func.strftime("%Y-%m", DyeingProcess.dye_date)
    month_result = await db.execute(
        select(
            month,
            func.count(DyeingProcess.id),
            func.coalesce(func.sum(DyeingProcess.dye_quantity), 0),
            func.coalesce(func.sum(DyeingProcess.total_cost), 0),
        )
        .where(DyeingProcess.dye_date >= month_start(keys[0]))
        .group_by(month)
    )
    months = {key: (count, quantity, value) for key, count, quantity, value in month_result.all()}
    monthly_trends = []
    for key in keys:
        count, quantity, value = months.get(key, (0, 0, 0))
        monthly_trends.append(MonthlyPoint(month=key, count=count, quantity=int(quantity), value=round(float(value), 2)))

    from_dyed = (await db.execute(
        select(func.count(FabricProduction.id)).where(FabricProduction.dyeing_process_id.isnot(None))
    )).scalar() or 0

    return DyeingAnalytics(
        dyed_thread_in_stock=int(dyed_in_stock),
        raw_thread_awaiting_dyeing=int(awaiting),
        total_dye_quantity=dye_total,
        total_output_quantity=output_total,
        wastage_percentage=percentage(dye_total - output_total, dye_total),
        popular_colors=[
            GroupTotal(name=name, count=count, quantity=int(quantity))
            for name, count, quantity in color_result.all()
        ],
        status_distribution=status_distribution,
        monthly_trends=monthly_trends,
        fabric_from_dyed_thread=from_dyed,
    )


@router.get("/fabric/production/analytics", response_model=FabricAnalytics)
async def get_fabric_analytics(
    *,
    db: AsyncSession = Depends(get_db),
    period: str = Query("30days", alias="range", pattern=RANGE_PATTERN),
) -> Any:
    """布料生产统计（时间范围内已完成的生产）"""
    since = datetime.utcnow() - timedelta(days=RANGE_DAYS[period])
    in_range = (FabricProduction.status == "COMPLETED", FabricProduction.production_date >= since)

    totals_row = (await db.execute(
        select(
            func.coalesce(func.sum(FabricProduction.quantity_produced), 0),
            func.coalesce(func.sum(FabricProduction.thread_used), 0),
            func.coalesce(func.sum(FabricProduction.total_cost), 0),
            func.coalesce(func.sum(FabricProduction.production_cost), 0),
            func.coalesce(func.sum(FabricProduction.labor_cost), 0),
            func.coalesce(func.sum(case((FabricProduction.dyeing_process_id.isnot(None), 1), else_=0)), 0),
            func.count(FabricProduction.id),
        ).where(*in_range)
    )).first()

    month = func.strftime("%Y-%m", FabricProduction.production_date)
    month_result = await db.execute(
        select(
            month,
            func.count(FabricProduction.id),
            func.sum(FabricProduction.quantity_produced),
            func.coalesce(func.sum(FabricProduction.total_cost), 0),
        )
        .where(*in_range)
        .group_by(month)
        .order_by(month)
    )
    type_result = await db.execute(
        select(
            FabricProduction.fabric_type,
            func.count(FabricProduction.id),
            func.sum(FabricProduction.quantity_produced),
            func.coalesce(func.sum(FabricProduction.total_cost), 0),
        )
        .where(*in_range)
        .group_by(FabricProduction.fabric_type)
        .order_by(func.sum(FabricProduction.quantity_produced).desc())
    )
    status_result = await db.execute(
        select(FabricProduction.status, func.count(FabricProduction.id)).group_by(FabricProduction.status)
    )
    in_stock = (await db.execute(
        select(func.coalesce(func.sum(Inventory.current_quantity), 0)).where(Inventory.product_type == "FABRIC")
    )).scalar() or 0

    dyed_batches, batch_count = int(totals_row[5]), int(totals_row[6])
    return FabricAnalytics(
        range=period,
        total_production=int(totals_row[0]),
        total_thread_used=int(totals_row[1]),
        total_cost=round(float(totals_row[2]), 2),
        cost_breakdown={
            "production": round(float(totals_row[3]), 2),
            "labor": round(float(totals_row[4]), 2),
        },
        monthly_production=[
            MonthlyPoint(month=key, count=count, quantity=int(quantity or 0), value=round(float(value), 2))
            for key, count, quantity, value in month_result.all()
        ],
        fabric_type_distribution=[
            GroupTotal(name=name, count=count, quantity=int(quantity or 0), value=round(float(value), 2))
            for name, count, quantity, value in type_result.all()
        ],
        status_distribution=dict(status_result.all()),
        dyed_thread_batches=dyed_batches,
        raw_thread_batches=batch_count - dyed_batches,
        fabric_in_stock=int(in_stock),
    )


def sales_timeframes(orders: List[SalesOrder], period: str, now: datetime) -> List[TimeframePoint]:
    """7天按日、30天按周（4周）、1年按月（12个月）汇总"""
    buckets: Dict[str, TimeframePoint] = {}
    if period == "7days":
        for offset in range(6, -1, -1):
            day = (now - timedelta(days=offset)).date()
            buckets[day.isoformat()] = TimeframePoint(label=day.strftime("%a"))
    elif period == "30days":
        for week in range(3, -1, -1):
            buckets[str(week)] = TimeframePoint(label=f"Week {4 - week}")
    else:
        for key in month_keys(12, now):
            buckets[key] = TimeframePoint(label=month_start(key).strftime("%b"))

    for order in orders:
        if period == "7days":
            key = order.order_date.date().isoformat()
        elif period == "30days":
            # 第29-30天并入最早一周
            key = str(min((now - order.order_date).days // 7, 3))
        else:
            key = order.order_date.strftime("%Y-%m")
        point = buckets.get(key)
        if point is not None:
            point.order_count += 1
            point.revenue = round(point.revenue + float(order.total_sale), 2)
    return list(buckets.values())


@router.get("/sales/analytics", response_model=SalesAnalytics)
async def get_sales_analytics(
    *,
    db: AsyncSession = Depends(get_db),
    period: str = Query("30days", alias="range", pattern=RANGE_PATTERN),
) -> Any:
    """销售统计"""
    now = datetime.utcnow()
    since = now - timedelta(days=RANGE_DAYS[period])
    orders = (await db.execute(
        select(SalesOrder).where(SalesOrder.order_date >= since).order_by(SalesOrder.order_date)
    )).scalars().all()
    order_ids = [order.id for order in orders]

    total_revenue = sum(float(order.total_sale) for order in orders)
    mode_counts: Dict[str, int] = defaultdict(int)
    status_counts: Dict[str, int] = defaultdict(int)
    for order in orders:
        if order.payment_mode:
            mode_counts[order.payment_mode] += 1
        status_counts[order.payment_status] += 1

    product_result = await db.execute(
        select(SalesOrderItem.product_type, func.coalesce(func.sum(SalesOrderItem.subtotal), 0))
        .where(SalesOrderItem.sales_order_id.in_(order_ids))
        .group_by(SalesOrderItem.product_type)
    )
    subtotals = {product_type: float(value) for product_type, value in product_result.all()}
    subtotal_sum = sum(subtotals.values())

    customer_result = await db.execute(
        select(
            Customer.name,
            func.count(SalesOrder.id),
            func.coalesce(func.sum(SalesOrder.total_sale), 0),
        )
        .join(SalesOrder, SalesOrder.customer_id == Customer.id)
        .where(SalesOrder.order_date >= since)
        .group_by(Customer.id, Customer.name)
        .order_by(func.sum(SalesOrder.total_sale).desc())
        .limit(TOP_LIMIT)
    )

    return SalesAnalytics(
        range=period,
        order_count=len(orders),
        total_revenue=round(total_revenue, 2),
        average_order_size=round(total_revenue / len(orders), 2) if orders else 0.0,
        sales_by_timeframe=sales_timeframes(orders, period, now),
        payment_mode_distribution=dict(mode_counts),
        product_distribution={
            product_type: percentage(value, subtotal_sum) for product_type, value in subtotals.items()
        },
        payment_status_distribution=dict(status_counts),
        top_customers=[
            GroupTotal(name=name, count=count, value=round(float(value), 2))
            for name, count, value in customer_result.all()
        ],
    )


@router.get("/vendors/analytics", response_model=VendorAnalytics)
async def get_vendor_analytics(
    *,
    db: AsyncSession = Depends(get_db)
) -> Any:
    """供应商统计"""
    active_since = month_start(month_keys(TREND_MONTHS)[0])
    total_vendors = (await db.execute(select(func.count(Vendor.id)))).scalar() or 0
    active = (await db.execute(
        select(func.count(distinct(ThreadPurchase.vendor_id))).where(ThreadPurchase.order_date >= active_since)
    )).scalar() or 0
    with_pending = (await db.execute(
        select(func.count(distinct(ThreadPurchase.vendor_id))).where(ThreadPurchase.received.is_(False))
    )).scalar() or 0

    city_result = await db.execute(
        select(Vendor.city, func.count(Vendor.id))
        .where(Vendor.city.isnot(None), Vendor.city != "")
        .group_by(Vendor.city)
        .order_by(func.count(Vendor.id).desc(), Vendor.city)
    )

    return VendorAnalytics(
        vendor_stats=VendorStats(
            total_vendors=total_vendors,
            active_vendors=active,
            vendors_with_pending_orders=with_pending,
        ),
        top_vendors_by_value=await vendor_totals(db, func.sum(ThreadPurchase.total_cost)),
        top_vendors_by_orders=await vendor_totals(db, func.count(ThreadPurchase.id)),
        monthly_trends=await purchase_monthly_trends(db),
        payment_metrics=await purchase_payment_metrics(db),
        city_distribution=[GroupTotal(name=city, count=count) for city, count in city_result.all()],
    )


@router.get("/payments/analytics", response_model=CashflowAnalytics)
async def get_cashflow_analytics(
    *,
    db: AsyncSession = Depends(get_db),
    period: int = Query(30, ge=1, le=365, description="统计天数"),
) -> Any:
    """资金流统计

    收入为销售收款，支出为采购付款，退票支票不计入。
    每日序列最多取最近90天，结余从序列首日起累计。
    """
    now = datetime.utcnow()
    since = now - timedelta(days=period)
    direction = case((Payment.sales_order_id.isnot(None), "IN"), else_="OUT")

    result = await db.execute(
        select(Payment.mode, direction, func.count(Payment.id),
               func.coalesce(func.sum(Payment.amount), 0), func.max(Payment.amount))
        .outerjoin(ChequeTransaction, ChequeTransaction.payment_id == Payment.id)
        .where(Payment.transaction_date >= since, effective_payments())
        .group_by(Payment.mode, direction)
    )
    totals = {"IN": 0.0, "OUT": 0.0}
    largest: Dict[str, float] = {}
    by_mode: Dict[str, List[float]] = defaultdict(lambda: [0, 0.0])
    transaction_count = 0
    for mode, flow, count, amount, biggest in result.all():
        totals[flow] += float(amount)
        largest[flow] = max(largest.get(flow, 0.0), float(biggest))
        by_mode[mode][0] += count
        by_mode[mode][1] += float(amount)
        transaction_count += count
    moved = totals["IN"] + totals["OUT"]

    cheque_result = await db.execute(
        select(ChequeTransaction.cheque_status, func.count(ChequeTransaction.id))
        .where(ChequeTransaction.issue_date >= since)
        .group_by(ChequeTransaction.cheque_status)
    )

    series_days = min(period, MAX_SERIES_DAYS)
    first_day = (now - timedelta(days=series_days - 1)).date()
    day = func.date(Payment.transaction_date)
    daily_result = await db.execute(
        select(day, direction, func.coalesce(func.sum(Payment.amount), 0))
        .outerjoin(ChequeTransaction, ChequeTransaction.payment_id == Payment.id)
        .where(Payment.transaction_date >= datetime.combine(first_day, datetime.min.time()), effective_payments())
        .group_by(day, direction)
    )
    series: Dict[str, DailyCashflow] = {}
    for offset in range(series_days):
        date = (first_day + timedelta(days=offset)).isoformat()
        series[date] = DailyCashflow(date=date)
    for date, flow, amount in daily_result.all():
        point = series.get(date)
        if point is None:
            continue
        if flow == "IN":
            point.inflow = round(point.inflow + float(amount), 2)
        else:
            point.outflow = round(point.outflow + float(amount), 2)
    balance = 0.0
    for point in series.values():
        point.net = round(point.inflow - point.outflow, 2)
        balance = round(balance + point.net, 2)
        point.balance = balance

    logger.debug(f"资金流统计 {period} 天：收入 {totals['IN']}，支出 {totals['OUT']}")
    return CashflowAnalytics(
        period_days=period,
        total_inflow=round(totals["IN"], 2),
        total_outflow=round(totals["OUT"], 2),
        net_cashflow=round(totals["IN"] - totals["OUT"], 2),
        transaction_count=transaction_count,
        payment_modes=sorted(
            (PaymentModeTotal(mode=mode, count=count, amount=round(amount, 2), percentage=percentage(amount, moved))
             for mode, (count, amount) in by_mode.items()),
            key=lambda m: m.amount, reverse=True,
        ),
        cheque_status=dict(cheque_result.all()),
        time_series=list(series.values()),
        largest_inflow=largest.get("IN"),
        largest_outflow=largest.get("OUT"),
    )
