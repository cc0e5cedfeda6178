"""库存管理API"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_, update, delete, case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from textile_erp.core.deps import get_db
from textile_erp.core.logging_config import get_logger
from textile_erp.models.inventory import Inventory, InventoryTransaction, INBOUND_TYPES
from textile_erp.models.product_type import ThreadType, FabricType
from textile_erp.models.sales import SalesOrderItem
from textile_erp.schemas.inventory import (
    InventoryCreate, InventoryUpdate, InventoryResponse, InventoryListResponse,
    InventoryTransactionCreate, InventoryTransactionResponse, InventoryTransactionListResponse,
    InventoryStats,
)
from .inventory_ops import (
    get_or_create_thread_type, get_or_create_fabric_type, record_movement, to_decimal
)

router = APIRouter()
logger = get_logger(__name__)

RECENT_TRANSACTION_LIMIT = 20


def base_inventory_query():
    return select(Inventory).options(
        selectinload(Inventory.thread_type),
        selectinload(Inventory.fabric_type),
    )


async def load_inventory(db: AsyncSession, inventory_id: int) -> Optional[Inventory]:
    result = await db.execute(
        base_inventory_query()
        .where(Inventory.id == inventory_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def build_transaction_response(transaction: InventoryTransaction) -> InventoryTransactionResponse:
    response = InventoryTransactionResponse.model_validate(transaction)
    if transaction.inventory:
        response.item_code = transaction.inventory.item_code
        response.item_description = transaction.inventory.description
    return response


def build_inventory_response(inventory: Inventory, transactions=None) -> InventoryResponse:
    response = InventoryResponse.model_validate(inventory)
    if inventory.product_type == "THREAD" and inventory.thread_type:
        response.type_name = inventory.thread_type.name
    elif inventory.product_type == "FABRIC" and inventory.fabric_type:
        response.type_name = inventory.fabric_type.name
    if transactions:
        response.recent_transactions = [
            InventoryTransactionResponse.model_validate(t).model_copy(
                update={"item_code": inventory.item_code, "item_description": inventory.description}
            )
            for t in transactions
        ]
    return response


async def check_item_code_unique(db: AsyncSession, item_code: str, exclude_id: Optional[int] = None):
    query = select(Inventory.id).where(Inventory.item_code == item_code)
    if exclude_id:
        query = query.where(Inventory.id != exclude_id)
    if (await db.execute(query)).first():
        raise HTTPException(status_code=400, detail=f"Item code '{item_code}' already exists")


@router.get("", response_model=InventoryListResponse)
async def list_inventory(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    product_type: Optional[str] = Query(None, pattern="^(THREAD|FABRIC)$"),
    search: Optional[str] = Query(None, description="搜索编码/描述"),
    in_stock: Optional[bool] = Query(None, description="仅显示有库存"),
    low_stock: Optional[bool] = Query(None, description="仅显示低库存"),
) -> Any:
    """获取库存列表"""
    query = base_inventory_query()
    conditions = []
    if product_type:
        conditions.append(Inventory.product_type == product_type)
    if search:
        keyword = f"%{search}%"
        conditions.append(or_(Inventory.item_code.ilike(keyword), Inventory.description.ilike(keyword)))
    if in_stock:
        conditions.append(Inventory.current_quantity > 0)
    if low_stock:
        conditions.append(Inventory.current_quantity <= Inventory.min_stock_level)
    if conditions:
        query = query.where(*conditions)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    query = query.order_by(Inventory.updated_at.desc(), Inventory.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    items = (await db.execute(query)).scalars().all()

    return InventoryListResponse(
        data=[build_inventory_response(i) for i in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=InventoryResponse, status_code=201)
async def create_inventory(
    *,
    db: AsyncSession = Depends(get_db),
    inventory_in: InventoryCreate,
) -> Any:
    """新建库存项目，初始数量记一条 ADJUSTMENT 流水"""
    await check_item_code_unique(db, inventory_in.item_code)

    thread_type_id = inventory_in.thread_type_id
    fabric_type_id = inventory_in.fabric_type_id
    if inventory_in.product_type == "THREAD":
        fabric_type_id = None
        if thread_type_id and not await db.get(ThreadType, thread_type_id):
            raise HTTPException(status_code=404, detail="Thread type not found")
        if not thread_type_id and inventory_in.type_name:
            thread_type = await get_or_create_thread_type(db, inventory_in.type_name, inventory_in.unit_of_measure)
            thread_type_id = thread_type.id
    else:
        thread_type_id = None
        if fabric_type_id and not await db.get(FabricType, fabric_type_id):
            raise HTTPException(status_code=404, detail="Fabric type not found")
        if not fabric_type_id and inventory_in.type_name:
            fabric_type = await get_or_create_fabric_type(db, inventory_in.type_name, inventory_in.unit_of_measure)
            fabric_type_id = fabric_type.id

    inventory = Inventory(
        **inventory_in.model_dump(exclude={
            "thread_type_id", "fabric_type_id", "type_name", "current_quantity",
            "cost_per_unit", "sale_price",
        }),
        thread_type_id=thread_type_id,
        fabric_type_id=fabric_type_id,
        current_quantity=0,
        cost_per_unit=to_decimal(inventory_in.cost_per_unit),
        sale_price=to_decimal(inventory_in.sale_price) if inventory_in.sale_price is not None else None,
    )
    db.add(inventory)
    await db.flush()

    if inventory_in.current_quantity > 0:
        record_movement(
            db, inventory, inventory_in.current_quantity, "ADJUSTMENT",
            reference_type="Inventory",
            reference_id=inventory.id,
            notes="Initial stock",
        )

    await db.commit()
    logger.info(f"新建库存项目: {inventory.item_code} 数量 {inventory.current_quantity}")

    inventory = await load_inventory(db, inventory.id)
    return build_inventory_response(inventory)


@router.get("/stats", response_model=InventoryStats)
async def get_inventory_stats(
    db: AsyncSession = Depends(get_db),
) -> Any:
    """库存统计"""
    by_type_result = await db.execute(
        select(Inventory.product_type, func.count(Inventory.id)).group_by(Inventory.product_type)
    )
    by_product_type = {"THREAD": 0, "FABRIC": 0}
    for product_type, count in by_type_result.all():
        by_product_type[product_type] = count

    row = (await db.execute(
        select(
            func.count(Inventory.id),
            func.sum(case((Inventory.current_quantity <= Inventory.min_stock_level, 1), else_=0)),
            func.sum(case((Inventory.current_quantity <= 0, 1), else_=0)),
            func.sum(Inventory.current_quantity),
            func.sum(Inventory.current_quantity * Inventory.cost_per_unit),
        )
    )).one()

    return InventoryStats(
        total_items=row[0] or 0,
        by_product_type=by_product_type,
        low_stock_count=row[1] or 0,
        out_of_stock_count=row[2] or 0,
        total_quantity=row[3] or 0,
        total_value=round(float(row[4] or 0), 2),
    )


@router.get("/transactions", response_model=InventoryTransactionListResponse)
async def list_transactions(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    inventory_id: Optional[int] = Query(None),
    transaction_type: Optional[str] = Query(None, pattern="^(PURCHASE|PRODUCTION|SALES|ADJUSTMENT|TRANSFER)$"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
) -> Any:
    """获取库存流水"""
    query = select(InventoryTransaction).options(selectinload(InventoryTransaction.inventory))
    conditions = []
    if inventory_id:
        conditions.append(InventoryTransaction.inventory_id == inventory_id)
    if transaction_type:
        conditions.append(InventoryTransaction.transaction_type == transaction_type)
    if start_date:
        conditions.append(InventoryTransaction.transaction_date >= start_date)
    if end_date:
        conditions.append(InventoryTransaction.transaction_date <= end_date)
    if conditions:
        query = query.where(*conditions)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    query = query.order_by(InventoryTransaction.transaction_date.desc(), InventoryTransaction.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    transactions = (await db.execute(query)).scalars().all()

    return InventoryTransactionListResponse(
        data=[build_transaction_response(t) for t in transactions],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("/transactions", response_model=InventoryTransactionResponse, status_code=201)
async def create_transaction(
    *,
    db: AsyncSession = Depends(get_db),
    transaction_in: InventoryTransactionCreate,
) -> Any:
    """手工登记库存流水（入库/出库）"""
    inventory = await db.get(Inventory, transaction_in.inventory_id)
    if not inventory:
        raise HTTPException(status_code=404, detail="Inventory item not found")

    quantity = transaction_in.quantity
    if transaction_in.transaction_type not in INBOUND_TYPES:
        if (inventory.current_quantity or 0) < quantity:
            raise HTTPException(
                status_code=400,
                detail=f"Insufficient quantity. Available: {inventory.current_quantity}, Requested: {quantity}"
            )
        quantity = -quantity

    transaction = record_movement(
        db, inventory, quantity, transaction_in.transaction_type,
        unit_cost=to_decimal(transaction_in.unit_cost) if transaction_in.unit_cost is not None else None,
        transaction_date=transaction_in.transaction_date,
        reference_type=transaction_in.reference_type,
        reference_id=transaction_in.reference_id,
        notes=transaction_in.notes,
    )
    await db.commit()
    await db.refresh(transaction)
    logger.info(f"库存流水: {inventory.item_code} {transaction.transaction_type} {quantity:+d}")

    response = InventoryTransactionResponse.model_validate(transaction)
    response.item_code = inventory.item_code
    response.item_description = inventory.description
    return response


@router.get("/{inventory_id}", response_model=InventoryResponse)
async def get_inventory(
    *,
    db: AsyncSession = Depends(get_db),
    inventory_id: int,
) -> Any:
    inventory = await load_inventory(db, inventory_id)
    if not inventory:
        raise HTTPException(status_code=404, detail="Inventory item not found")

    result = await db.execute(
        select(InventoryTransaction)
        .where(InventoryTransaction.inventory_id == inventory_id)
        .order_by(InventoryTransaction.transaction_date.desc(), InventoryTransaction.id.desc())
        .limit(RECENT_TRANSACTION_LIMIT)
    )
    return build_inventory_response(inventory, result.scalars().all())


@router.get("/{inventory_id}/transactions", response_model=InventoryTransactionListResponse)
async def get_inventory_transactions(
    *,
    db: AsyncSession = Depends(get_db),
    inventory_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
) -> Any:
    """获取单个库存项目的流水"""
    inventory = await db.get(Inventory, inventory_id)
    if not inventory:
        raise HTTPException(status_code=404, detail="Inventory item not found")

    conditions = [InventoryTransaction.inventory_id == inventory_id]
    total = (await db.execute(
        select(func.count(InventoryTransaction.id)).where(*conditions)
    )).scalar() or 0
    result = await db.execute(
        select(InventoryTransaction)
        .where(*conditions)
        .order_by(InventoryTransaction.transaction_date.desc(), InventoryTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    data = []
    for transaction in result.scalars().all():
        item = InventoryTransactionResponse.model_validate(transaction)
        item.item_code = inventory.item_code
        item.item_description = inventory.description
        data.append(item)
    return InventoryTransactionListResponse(data=data, total=total, page=page, limit=limit)


@router.patch("/{inventory_id}", response_model=InventoryResponse)
async def update_inventory(
    *,
    db: AsyncSession = Depends(get_db),
    inventory_id: int,
    inventory_in: InventoryUpdate,
) -> Any:
    """更新库存项目，数量变化记一条差额 ADJUSTMENT 流水"""
    inventory = await load_inventory(db, inventory_id)
    if not inventory:
        raise HTTPException(status_code=404, detail="Inventory item not found")

    update_data = inventory_in.model_dump(exclude_unset=True)
    if update_data.get("item_code") and update_data["item_code"] != inventory.item_code:
        await check_item_code_unique(db, update_data["item_code"], exclude_id=inventory_id)

    new_quantity = update_data.pop("current_quantity", None)
    for field, value in update_data.items():
        if field in ("cost_per_unit", "sale_price") and value is not None:
            value = to_decimal(value)
        setattr(inventory, field, value)

    if new_quantity is not None and new_quantity != inventory.current_quantity:
        record_movement(
            db, inventory, new_quantity - inventory.current_quantity, "ADJUSTMENT",
            reference_type="Inventory",
            reference_id=inventory.id,
            notes="Manual quantity adjustment",
        )

    await db.commit()
    inventory = await load_inventory(db, inventory_id)
    return build_inventory_response(inventory)


@router.delete("/{inventory_id}")
async def delete_inventory(
    *,
    db: AsyncSession = Depends(get_db),
    inventory_id: int,
) -> Any:
    """删除库存项目及其流水

    销售明细中的库存引用置空，销售记录本身保留。
    """
    inventory = await db.get(Inventory, inventory_id)
    if not inventory:
        raise HTTPException(status_code=404, detail="Inventory item not found")

    await db.execute(
        update(SalesOrderItem)
        .where(SalesOrderItem.inventory_item_id == inventory_id)
        .values(inventory_item_id=None)
    )
    await db.execute(delete(InventoryTransaction).where(InventoryTransaction.inventory_id == inventory_id))
    await db.execute(delete(Inventory).where(Inventory.id == inventory_id))
    await db.commit()
    logger.info(f"删除库存项目: {inventory.item_code}")
    return {"message": "Inventory item deleted"}
