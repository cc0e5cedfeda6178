"""纱线采购API

采购单的创建和更新会按条件联动：
1. 已收货 + add_to_inventory → 原纱入库（库存项目 + PURCHASE 流水）
2. 原色纱 + create_dyeing_process → 创建待染色工序
3. 带付款信息 → 登记付款（支票方式附支票记录）

所有联动与采购单本身在同一事务内提交。
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from textile_erp.core.config import settings
from textile_erp.core.deps import get_db
from textile_erp.core.logging_config import get_logger
from textile_erp.models.vendor import Vendor
from textile_erp.models.thread_purchase import ThreadPurchase
from textile_erp.models.dyeing_process import DyeingProcess
from textile_erp.models.fabric_production import FabricProduction
from textile_erp.models.inventory import Inventory
from textile_erp.models.payment import Payment, ChequeTransaction
from textile_erp.schemas.thread_purchase import (
    ThreadPurchaseCreate, ThreadPurchaseUpdate, ThreadPurchaseResponse,
    ThreadPurchaseListResponse, DyeingBrief, PurchasePaymentFields, ThreadPurchaseBulkDelete
)
from .inventory_ops import (
    generate_item_code, get_or_create_thread_type, record_movement, reverse_movements,
    find_purchase_inventory, list_movements, to_decimal
)
from .payment_ops import create_payment, get_paid_amount, build_payment_response

router = APIRouter()
logger = get_logger(__name__)

CASCADE_FIELDS = {
    "add_to_inventory", "create_dyeing_process",
    "payment_amount", "payment_mode", "cheque_number", "bank", "branch",
}


def base_purchase_query():
    """包含常用关联的基础查询"""
    return select(ThreadPurchase).options(
        selectinload(ThreadPurchase.vendor),
        selectinload(ThreadPurchase.payments),
        selectinload(ThreadPurchase.dyeing_processes),
    )


async def load_purchase(db: AsyncSession, purchase_id: int) -> Optional[ThreadPurchase]:
    result = await db.execute(
        base_purchase_query()
        .where(ThreadPurchase.id == purchase_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def build_purchase_response(purchase: ThreadPurchase, detail: bool = False) -> ThreadPurchaseResponse:
    """构建采购单响应"""
    response = ThreadPurchaseResponse(
        id=purchase.id,
        vendor_id=purchase.vendor_id,
        vendor_name=purchase.vendor.name if purchase.vendor else "",
        order_date=purchase.order_date,
        thread_type=purchase.thread_type,
        color=purchase.color,
        color_status=purchase.color_status,
        quantity=purchase.quantity,
        unit_price=float(purchase.unit_price or 0),
        total_cost=float(purchase.total_cost or 0),
        unit_of_measure=purchase.unit_of_measure,
        delivery_date=purchase.delivery_date,
        remarks=purchase.remarks,
        reference=purchase.reference,
        received=purchase.received,
        received_at=purchase.received_at,
        inventory_status=purchase.inventory_status,
        created_at=purchase.created_at,
        updated_at=purchase.updated_at,
        payment_status=purchase.payment_status,
        total_payments=float(purchase.total_payments),
        remaining_balance=float(purchase.remaining_balance),
    )
    if detail:
        response.dyeing_processes = [DyeingBrief.model_validate(p) for p in purchase.dyeing_processes]
        response.payments = [build_payment_response(p) for p in purchase.payments]
    return response


async def add_purchase_to_inventory(db: AsyncSession, purchase: ThreadPurchase) -> Inventory:
    """原纱入库：新建库存项目并写入 PURCHASE 流水"""
    thread_type = await get_or_create_thread_type(db, purchase.thread_type, purchase.unit_of_measure)
    unit_price = to_decimal(purchase.unit_price)

    inventory = Inventory(
        item_code=generate_item_code("THR", purchase.id),
        description=f"{purchase.thread_type} - {purchase.color or 'Raw'}",
        product_type="THREAD",
        thread_type_id=thread_type.id,
        current_quantity=0,
        unit_of_measure=purchase.unit_of_measure,
        location="Warehouse",
        min_stock_level=settings.DEFAULT_MIN_STOCK_LEVEL,
        cost_per_unit=unit_price,
        sale_price=(unit_price * Decimal(str(settings.THREAD_MARKUP))).quantize(Decimal("0.01")),
        notes=f"Thread purchase #{purchase.id}",
    )
    db.add(inventory)
    await db.flush()

    record_movement(
        db, inventory, purchase.quantity, "PURCHASE",
        unit_cost=unit_price,
        thread_purchase_id=purchase.id,
        reference_type="ThreadPurchase",
        reference_id=purchase.id,
        notes=f"Thread purchase #{purchase.id} received",
    )
    purchase.inventory_status = "IN_STOCK"
    logger.info(f"采购单 #{purchase.id} 入库: {inventory.item_code} x {purchase.quantity}")
    return inventory


def create_pending_dyeing(db: AsyncSession, purchase: ThreadPurchase) -> DyeingProcess:
    """为原色纱创建待染色工序（不占用库存，完成时才扣减）"""
    process = DyeingProcess(
        thread_purchase_id=purchase.id,
        dye_date=datetime.utcnow(),
        color_name=purchase.color,
        dye_quantity=purchase.quantity,
        output_quantity=0,
        labor_cost=Decimal("0"),
        dye_material_cost=Decimal("0"),
        total_cost=Decimal("0"),
        result_status="PENDING",
        inventory_status="PENDING",
        remarks=f"Created from thread purchase #{purchase.id}",
    )
    db.add(process)
    return process


def check_payment_amount(payment_in: PurchasePaymentFields, remaining: Decimal) -> None:
    if payment_in.has_payment and to_decimal(payment_in.payment_amount) > remaining:
        raise HTTPException(
            status_code=400,
            detail=f"Payment amount exceeds remaining balance ({remaining})"
        )


async def record_purchase_payment(db: AsyncSession, purchase: ThreadPurchase, payment_in: PurchasePaymentFields) -> None:
    await create_payment(
        db,
        amount=payment_in.payment_amount,
        mode=payment_in.payment_mode,
        thread_purchase_id=purchase.id,
        description=f"Payment for thread purchase #{purchase.id}",
        cheque_number=payment_in.cheque_number,
        bank=payment_in.bank,
        branch=payment_in.branch,
    )


@router.get("", response_model=ThreadPurchaseListResponse)
async def list_thread_purchases(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    vendor_id: Optional[int] = Query(None),
    color_status: Optional[str] = Query(None, pattern="^(RAW|COLORED)$"),
    received: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="搜索纱线类型/颜色/供应商"),
) -> Any:
    """获取采购单列表"""
    query = base_purchase_query()
    conditions = []
    if vendor_id:
        conditions.append(ThreadPurchase.vendor_id == vendor_id)
    if color_status:
        conditions.append(ThreadPurchase.color_status == color_status)
    if received is not None:
        conditions.append(ThreadPurchase.received == received)
    if search:
        keyword = f"%{search}%"
        query = query.join(Vendor, Vendor.id == ThreadPurchase.vendor_id)
        conditions.append(or_(
            ThreadPurchase.thread_type.ilike(keyword),
            ThreadPurchase.color.ilike(keyword),
            Vendor.name.ilike(keyword),
        ))
    if conditions:
        query = query.where(*conditions)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    query = query.order_by(ThreadPurchase.order_date.desc(), ThreadPurchase.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    purchases = (await db.execute(query)).scalars().unique().all()

    return ThreadPurchaseListResponse(
        data=[build_purchase_response(p) for p in purchases],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=ThreadPurchaseResponse, status_code=201)
@router.post("/order", response_model=ThreadPurchaseResponse, status_code=201, include_in_schema=False)
async def create_thread_purchase(
    *,
    db: AsyncSession = Depends(get_db),
    purchase_in: ThreadPurchaseCreate,
) -> Any:
    """创建采购单（含入库、待染色工序、付款联动）"""
    vendor = await db.get(Vendor, purchase_in.vendor_id)
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")

    unit_price = to_decimal(purchase_in.unit_price)
    if purchase_in.total_cost is not None:
        total_cost = to_decimal(purchase_in.total_cost)
    else:
        total_cost = unit_price * purchase_in.quantity
    check_payment_amount(purchase_in, total_cost)

    data = purchase_in.model_dump(exclude=CASCADE_FIELDS | {"total_cost", "unit_price", "order_date"})
    purchase = ThreadPurchase(
        **data,
        unit_price=unit_price,
        total_cost=total_cost,
        order_date=purchase_in.order_date or datetime.utcnow(),
        received_at=datetime.utcnow() if purchase_in.received else None,
        inventory_status="PENDING",
    )
    db.add(purchase)
    await db.flush()

    if purchase.received and purchase_in.add_to_inventory:
        await add_purchase_to_inventory(db, purchase)
    if purchase.color_status == "RAW" and purchase_in.create_dyeing_process:
        create_pending_dyeing(db, purchase)
    if purchase_in.has_payment:
        await record_purchase_payment(db, purchase, purchase_in)

    await db.commit()
    logger.info(f"新建采购单 #{purchase.id}: {purchase.thread_type} x {purchase.quantity} ({vendor.name})")

    purchase = await load_purchase(db, purchase.id)
    return build_purchase_response(purchase, detail=True)


@router.get("/{purchase_id}", response_model=ThreadPurchaseResponse)
async def get_thread_purchase(
    *,
    db: AsyncSession = Depends(get_db),
    purchase_id: int,
) -> Any:
    """获取采购单详情（含染色工序和付款）"""
    purchase = await load_purchase(db, purchase_id)
    if not purchase:
        raise HTTPException(status_code=404, detail="Thread purchase not found")
    return build_purchase_response(purchase, detail=True)


@router.patch("/{purchase_id}", response_model=ThreadPurchaseResponse)
async def update_thread_purchase(
    *,
    db: AsyncSession = Depends(get_db),
    purchase_id: int,
    purchase_in: ThreadPurchaseUpdate,
) -> Any:
    """更新采购单，并按条件执行联动"""
    purchase = await load_purchase(db, purchase_id)
    if not purchase:
        raise HTTPException(status_code=404, detail="Thread purchase not found")

    update_data = purchase_in.model_dump(exclude_unset=True, exclude=CASCADE_FIELDS)
    if "vendor_id" in update_data and not await db.get(Vendor, update_data["vendor_id"]):
        raise HTTPException(status_code=404, detail="Vendor not found")

    was_received = purchase.received
    for field, value in update_data.items():
        if field in ("unit_price", "total_cost"):
            value = to_decimal(value)
        setattr(purchase, field, value)

    # 数量或单价变化时重算总成本（除非显式给出）
    if ("quantity" in update_data or "unit_price" in update_data) and "total_cost" not in update_data:
        purchase.total_cost = to_decimal(purchase.unit_price) * purchase.quantity
    if purchase.received and not was_received:
        purchase.received_at = datetime.utcnow()

    if purchase_in.has_payment:
        paid = await get_paid_amount(db, thread_purchase_id=purchase.id)
        check_payment_amount(purchase_in, max(Decimal("0"), to_decimal(purchase.total_cost) - paid))

    if purchase.received and purchase_in.add_to_inventory:
        if not await find_purchase_inventory(db, purchase.id):
            await add_purchase_to_inventory(db, purchase)

    if purchase.color_status == "RAW" and purchase_in.create_dyeing_process:
        process_count = (await db.execute(
            select(func.count(DyeingProcess.id)).where(DyeingProcess.thread_purchase_id == purchase.id)
        )).scalar() or 0
        if process_count == 0:
            create_pending_dyeing(db, purchase)

    if purchase_in.has_payment:
        await record_purchase_payment(db, purchase, purchase_in)

    await db.commit()
    purchase = await load_purchase(db, purchase_id)
    return build_purchase_response(purchase, detail=True)


@router.post("/{purchase_id}/inventory", response_model=ThreadPurchaseResponse)
async def add_thread_purchase_to_inventory(
    *,
    db: AsyncSession = Depends(get_db),
    purchase_id: int,
) -> Any:
    """已收货的采购单手动入库"""
    purchase = await load_purchase(db, purchase_id)
    if not purchase:
        raise HTTPException(status_code=404, detail="Thread purchase not found")
    if not purchase.received:
        raise HTTPException(status_code=400, detail="Thread purchase has not been received yet")
    if await find_purchase_inventory(db, purchase.id):
        raise HTTPException(status_code=400, detail="Thread purchase is already in inventory")

    await add_purchase_to_inventory(db, purchase)
    await db.commit()
    purchase = await load_purchase(db, purchase_id)
    return build_purchase_response(purchase, detail=True)


async def used_in_fabric(db: AsyncSession, purchase_ids: List[int], process_ids: List[int]) -> int:
    """统计引用这些采购单（或其染色工序）的布料生产数"""
    conditions = [FabricProduction.source_thread_id.in_(purchase_ids)]
    if process_ids:
        conditions.append(FabricProduction.dyeing_process_id.in_(process_ids))
    return (await db.execute(
        select(func.count(FabricProduction.id)).where(or_(*conditions))
    )).scalar() or 0


async def remove_purchase(db: AsyncSession, purchase: ThreadPurchase) -> int:
    """删除采购单及其染色工序、付款和库存流水，冲回库存；不提交

    返回删除的染色工序数。
    """
    purchase_id = purchase.id
    process_ids = [p.id for p in purchase.dyeing_processes]

    # 先冲回染色工序的库存影响，再冲回采购入库
    for process_id in process_ids:
        await reverse_movements(db, await list_movements(db, dyeing_process_id=process_id))
    await reverse_movements(db, await list_movements(db, thread_purchase_id=purchase_id))
    await db.flush()

    if process_ids:
        await db.execute(delete(DyeingProcess).where(DyeingProcess.id.in_(process_ids)))
    payment_ids = select(Payment.id).where(Payment.thread_purchase_id == purchase_id)
    await db.execute(delete(ChequeTransaction).where(ChequeTransaction.payment_id.in_(payment_ids)))
    await db.execute(delete(Payment).where(Payment.thread_purchase_id == purchase_id))
    await db.execute(delete(ThreadPurchase).where(ThreadPurchase.id == purchase_id))
    return len(process_ids)


@router.post("/bulk")
async def bulk_delete_thread_purchases(
    *,
    db: AsyncSession = Depends(get_db),
    payload: ThreadPurchaseBulkDelete,
) -> Any:
    """批量删除采购单

    全部校验通过才删除，任一采购单不存在或已用于布料生产则整体拒绝。
    """
    result = await db.execute(base_purchase_query().where(ThreadPurchase.id.in_(payload.ids)))
    purchases = result.scalars().all()
    missing = sorted(set(payload.ids) - {p.id for p in purchases})
    if missing:
        raise HTTPException(status_code=404, detail=f"Thread purchase #{missing[0]} not found")

    process_ids = [process.id for p in purchases for process in p.dyeing_processes]
    if await used_in_fabric(db, payload.ids, process_ids) > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete thread purchases that have been used in fabric production"
        )

    for purchase in purchases:
        await remove_purchase(db, purchase)
    await db.commit()
    logger.info(f"批量删除采购单 {payload.ids}（染色工序 {len(process_ids)} 个）")
    return {"message": f"{len(purchases)} thread purchases deleted", "deleted": len(purchases)}


@router.delete("/{purchase_id}")
async def delete_thread_purchase(
    *,
    db: AsyncSession = Depends(get_db),
    purchase_id: int,
) -> Any:
    """删除采购单

    已用于布料生产的不允许删除；否则一并删除染色工序、付款和库存流水，
    并冲回库存。
    """
    purchase = await load_purchase(db, purchase_id)
    if not purchase:
        raise HTTPException(status_code=404, detail="Thread purchase not found")

    process_ids = [p.id for p in purchase.dyeing_processes]
    if await used_in_fabric(db, [purchase_id], process_ids) > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete thread purchase that has been used in fabric production"
        )

    removed = await remove_purchase(db, purchase)
    await db.commit()
    logger.info(f"删除采购单 #{purchase_id}（染色工序 {removed} 个）")
    return {"message": "Thread purchase deleted"}
