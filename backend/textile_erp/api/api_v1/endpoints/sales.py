"""销售单API

创建销售单时在同一事务内完成：
1. 校正明细小计、核对整单总额
2. 按明细扣减库存（SALES 流水）
3. 登记首笔收款（支票方式附支票记录）
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from textile_erp.core.config import settings
from textile_erp.core.deps import get_db
from textile_erp.core.logging_config import get_logger
from textile_erp.models.customer import Customer
from textile_erp.models.thread_purchase import ThreadPurchase
from textile_erp.models.fabric_production import FabricProduction
from textile_erp.models.inventory import Inventory
from textile_erp.models.sales import SalesOrder, SalesOrderItem, derive_payment_status
from textile_erp.models.payment import Payment, ChequeTransaction
from textile_erp.schemas.sales import (
    SalesOrderCreate, SalesOrderUpdate, SalesOrderResponse, SalesOrderListResponse,
    SalesOrderItemResponse, SalesOrderItemCreate
)
from .inventory_ops import (
    ensure_available, record_movement, reverse_movements,
    find_purchase_inventory, find_fabric_inventory, list_movements, to_decimal
)
from .payment_ops import create_payment, get_paid_amount, refresh_sales_payment_status, build_payment_response

router = APIRouter()
logger = get_logger(__name__)

CENT = Decimal("0.01")


def apply_rates(amount: Decimal, discount, tax) -> Decimal:
    """先打折再计税"""
    factor = (1 - to_decimal(discount) / 100) * (1 + to_decimal(tax) / 100)
    return (amount * factor).quantize(CENT)


def calculate_subtotal(item: SalesOrderItemCreate) -> Decimal:
    return apply_rates(to_decimal(item.unit_price) * item.quantity_sold, item.discount, item.tax)


async def generate_order_number(db: AsyncSession) -> str:
    """生成销售单号，如 SO-20240315-001

    序号按数值取最大（超过 999 后位数变长，不能按字符串比较）。
    """
    prefix = f"SO-{datetime.utcnow().strftime('%Y%m%d')}-"
    result = await db.execute(
        select(SalesOrder.order_number).where(SalesOrder.order_number.like(f"{prefix}%"))
    )
    suffixes = [number[len(prefix):] for number in result.scalars()]
    seq = max((int(s) for s in suffixes if s.isdigit()), default=0) + 1
    return f"{prefix}{seq:03d}"


def base_order_query():
    return select(SalesOrder).options(
        selectinload(SalesOrder.customer),
        selectinload(SalesOrder.items).selectinload(SalesOrderItem.inventory_item),
        selectinload(SalesOrder.payments),
    )


async def load_order(db: AsyncSession, order_id: int) -> Optional[SalesOrder]:
    result = await db.execute(
        base_order_query()
        .where(SalesOrder.id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def build_order_response(order: SalesOrder, detail: bool = True) -> SalesOrderResponse:
    """构建销售单响应"""
    response = SalesOrderResponse(
        id=order.id,
        order_number=order.order_number,
        order_date=order.order_date,
        customer_id=order.customer_id,
        customer_name=order.customer.name if order.customer else "",
        payment_mode=order.payment_mode,
        payment_status=order.payment_status,
        delivery_date=order.delivery_date,
        delivery_address=order.delivery_address,
        remarks=order.remarks,
        discount=float(order.discount) if order.discount is not None else None,
        tax=float(order.tax) if order.tax is not None else None,
        total_sale=float(order.total_sale or 0),
        total_paid=float(order.total_paid),
        remaining_amount=float(order.remaining_amount),
        created_at=order.created_at,
        updated_at=order.updated_at,
    )
    if detail:
        items = []
        for item in order.items:
            item_response = SalesOrderItemResponse.model_validate(item)
            if item.inventory_item:
                item_response.item_description = item.inventory_item.description
            else:
                item_response.item_description = f"{item.product_type.title()} #{item.product_id}"
            items.append(item_response)
        response.items = items
        response.payments = [build_payment_response(p) for p in order.payments]
    return response


async def resolve_customer(db: AsyncSession, order_in: SalesOrderCreate) -> Customer:
    """按ID取客户；只给名称时按名称（不区分大小写）查找，找不到则新建"""
    if order_in.customer_id:
        customer = await db.get(Customer, order_in.customer_id)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    name = order_in.customer_name.strip()
    result = await db.execute(select(Customer).where(func.lower(Customer.name) == name.lower()))
    customer = result.scalars().first()
    if not customer:
        customer = Customer(name=name, contact=order_in.customer_contact, email=order_in.customer_email)
        db.add(customer)
        await db.flush()
        logger.info(f"销售单自动新建客户: {customer.name}")
    return customer


async def resolve_item_inventory(db: AsyncSession, item: SalesOrderItemCreate) -> Optional[Inventory]:
    """校验产品存在并找到出库的库存项目"""
    if item.product_type == "THREAD":
        if not await db.get(ThreadPurchase, item.product_id):
            raise HTTPException(status_code=404, detail=f"Thread purchase #{item.product_id} not found")
    elif not await db.get(FabricProduction, item.product_id):
        raise HTTPException(status_code=404, detail=f"Fabric production #{item.product_id} not found")

    if item.inventory_item_id:
        inventory = await db.get(Inventory, item.inventory_item_id)
        if not inventory:
            raise HTTPException(status_code=404, detail=f"Inventory item #{item.inventory_item_id} not found")
        return inventory
    if item.product_type == "THREAD":
        return await find_purchase_inventory(db, item.product_id)
    return await find_fabric_inventory(db, item.product_id)


@router.get("", response_model=SalesOrderListResponse)
async def list_sales_orders(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    customer_id: Optional[int] = Query(None),
    payment_status: Optional[str] = Query(None, pattern="^(PAID|PARTIAL|PENDING)$"),
    search: Optional[str] = Query(None, description="搜索单号/客户名称"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
) -> Any:
    """获取销售单列表"""
    query = base_order_query()
    conditions = []
    if customer_id:
        conditions.append(SalesOrder.customer_id == customer_id)
    if payment_status:
        conditions.append(SalesOrder.payment_status == payment_status)
    if search:
        keyword = f"%{search}%"
        query = query.join(Customer, Customer.id == SalesOrder.customer_id)
        conditions.append(or_(SalesOrder.order_number.ilike(keyword), Customer.name.ilike(keyword)))
    if start_date:
        conditions.append(SalesOrder.order_date >= start_date)
    if end_date:
        conditions.append(SalesOrder.order_date <= end_date)
    if conditions:
        query = query.where(*conditions)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    query = query.order_by(SalesOrder.order_date.desc(), SalesOrder.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    orders = (await db.execute(query)).scalars().unique().all()

    return SalesOrderListResponse(
        data=[build_order_response(o, detail=False) for o in orders],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=SalesOrderResponse, status_code=201)
@router.post("/submit", response_model=SalesOrderResponse, status_code=201, include_in_schema=False)
async def create_sales_order(
    *,
    db: AsyncSession = Depends(get_db),
    order_in: SalesOrderCreate,
) -> Any:
    """创建销售单（扣减库存、登记收款）"""
    # 1. 金额：以服务端计算为准
    subtotals = [calculate_subtotal(item) for item in order_in.items]
    for item, subtotal in zip(order_in.items, subtotals):
        if item.subtotal is not None and abs(to_decimal(item.subtotal) - subtotal) > CENT:
            logger.warning(
                f"销售明细小计已校正: {item.product_type} #{item.product_id} {item.subtotal} → {subtotal}"
            )
    total_sale = apply_rates(sum(subtotals, Decimal("0")), order_in.discount, order_in.tax)

    if order_in.total_sale is not None:
        difference = abs(to_decimal(order_in.total_sale) - total_sale)
        if difference > Decimal(str(settings.SALE_TOTAL_TOLERANCE)):
            raise HTTPException(
                status_code=400,
                detail=f"Total sale does not match item subtotals (expected {total_sale})"
            )
    if total_sale <= 0:
        raise HTTPException(status_code=400, detail="Total sale must be greater than 0")

    payment_amount = to_decimal(order_in.payment_amount)
    if payment_amount > total_sale:
        raise HTTPException(status_code=400, detail="Payment amount cannot exceed total sale")

    # 2. 产品和库存校验（同一库存项目的需求量合并计算）
    inventories: List[Optional[Inventory]] = []
    demand: Dict[int, int] = defaultdict(int)
    for item in order_in.items:
        inventory = await resolve_item_inventory(db, item)
        inventories.append(inventory)
        if inventory and order_in.update_inventory:
            demand[inventory.id] += item.quantity_sold
    for inventory in {inv.id: inv for inv in inventories if inv}.values():
        if inventory.id in demand:
            ensure_available(inventory, demand[inventory.id], label=inventory.product_type.lower())

    # 3. 写入
    customer = await resolve_customer(db, order_in)
    order = SalesOrder(
        order_number=await generate_order_number(db),
        order_date=order_in.order_date or datetime.utcnow(),
        customer_id=customer.id,
        payment_mode=order_in.payment_mode,
        payment_status=derive_payment_status(total_sale, payment_amount),
        delivery_date=order_in.delivery_date,
        delivery_address=order_in.delivery_address,
        remarks=order_in.remarks,
        discount=to_decimal(order_in.discount),
        tax=to_decimal(order_in.tax),
        total_sale=total_sale,
    )
    db.add(order)
    await db.flush()

    for item, subtotal, inventory in zip(order_in.items, subtotals, inventories):
        db.add(SalesOrderItem(
            sales_order_id=order.id,
            product_type=item.product_type,
            product_id=item.product_id,
            inventory_item_id=inventory.id if inventory else None,
            quantity_sold=item.quantity_sold,
            unit_price=to_decimal(item.unit_price),
            discount=to_decimal(item.discount),
            tax=to_decimal(item.tax),
            subtotal=subtotal,
        ))
        if inventory and order_in.update_inventory:
            record_movement(
                db, inventory, -item.quantity_sold, "SALES",
                unit_cost=to_decimal(item.unit_price),
                sales_order_id=order.id,
                reference_type="SalesOrder",
                reference_id=order.id,
                notes=f"Sold in order {order.order_number}",
            )

    if payment_amount > 0:
        await create_payment(
            db,
            amount=payment_amount,
            mode=order_in.payment_mode,
            sales_order_id=order.id,
            description=f"Payment for sales order {order.order_number}",
            cheque_number=order_in.cheque_number,
            bank=order_in.bank,
            branch=order_in.branch,
        )

    await db.commit()
    logger.info(
        f"新建销售单 {order.order_number}: 客户 {customer.name}，"
        f"{len(order_in.items)} 项，总额 {total_sale}，状态 {order.payment_status}"
    )

    order = await load_order(db, order.id)
    return build_order_response(order)


@router.get("/{order_id}", response_model=SalesOrderResponse)
async def get_sales_order(
    *,
    db: AsyncSession = Depends(get_db),
    order_id: int,
) -> Any:
    order = await load_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Sales order not found")
    return build_order_response(order)


@router.patch("/{order_id}", response_model=SalesOrderResponse)
async def update_sales_order(
    *,
    db: AsyncSession = Depends(get_db),
    order_id: int,
    order_in: SalesOrderUpdate,
) -> Any:
    """更新销售单

    payment_amount 会追加一笔收款，并按已收金额重新推导付款状态。
    """
    order = await load_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Sales order not found")

    update_data = order_in.model_dump(exclude_unset=True)
    payment_amount = to_decimal(update_data.pop("payment_amount", None))
    payment_mode = update_data.pop("payment_mode", None) or order.payment_mode or "CASH"
    cheque_number = update_data.pop("cheque_number", None)
    bank = update_data.pop("bank", None)
    branch = update_data.pop("branch", None)
    explicit_status = update_data.pop("payment_status", None)

    for field in ("discount", "tax", "total_sale"):
        if field in update_data and update_data[field] is not None:
            update_data[field] = to_decimal(update_data[field])
    for field, value in update_data.items():
        setattr(order, field, value)

    totals_changed = bool(update_data.keys() & {"discount", "tax", "total_sale"})
    if ("discount" in update_data or "tax" in update_data) and "total_sale" not in update_data:
        items_total = sum((to_decimal(i.subtotal) for i in order.items), Decimal("0"))
        order.total_sale = apply_rates(items_total, order.discount, order.tax)

    if payment_amount > 0:
        if payment_mode == "CHEQUE" and not (cheque_number and bank):
            raise HTTPException(status_code=400, detail="Cheque number and bank are required for cheque payments")
        remaining = to_decimal(order.total_sale) - await get_paid_amount(db, sales_order_id=order.id)
        if payment_amount > remaining:
            raise HTTPException(
                status_code=400,
                detail=f"Payment amount exceeds remaining balance ({max(remaining, Decimal('0'))})"
            )
        await create_payment(
            db,
            amount=payment_amount,
            mode=payment_mode,
            sales_order_id=order.id,
            description=f"Payment for sales order {order.order_number}",
            cheque_number=cheque_number,
            bank=bank,
            branch=branch,
        )
        order.payment_mode = payment_mode

    if explicit_status and payment_amount <= 0:
        order.payment_status = explicit_status
    elif payment_amount > 0 or totals_changed:
        await refresh_sales_payment_status(db, order)

    await db.commit()
    logger.info(f"更新销售单 {order.order_number}: 状态 {order.payment_status}")

    order = await load_order(db, order_id)
    return build_order_response(order)


@router.delete("/{order_id}")
async def delete_sales_order(
    *,
    db: AsyncSession = Depends(get_db),
    order_id: int,
) -> Any:
    """删除销售单：删除收款和明细，按 SALES 流水把库存加回"""
    order = await db.get(SalesOrder, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Sales order not found")

    await reverse_movements(db, await list_movements(db, sales_order_id=order_id))
    await db.flush()

    payment_ids = select(Payment.id).where(Payment.sales_order_id == order_id)
    await db.execute(delete(ChequeTransaction).where(ChequeTransaction.payment_id.in_(payment_ids)))
    await db.execute(delete(Payment).where(Payment.sales_order_id == order_id))
    await db.execute(delete(SalesOrderItem).where(SalesOrderItem.sales_order_id == order_id))
    await db.execute(delete(SalesOrder).where(SalesOrder.id == order_id))
    await db.commit()
    logger.info(f"删除销售单 {order.order_number}")
    return {"message": "Sales order deleted"}
