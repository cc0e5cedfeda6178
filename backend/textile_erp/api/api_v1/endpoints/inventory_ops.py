"""库存联动操作

生产链上的每一步都通过这里改动库存：
- record_movement: 改数量并写一条带符号的流水（remaining_quantity 为变动后结存）
- ensure_available: 数量不足时抛 400，调用方须在任何写入之前调用
- reverse_movements: 删除业务单据时按流水反向冲回库存
"""

import uuid
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Optional

from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from textile_erp.core.logging_config import get_logger
from textile_erp.models.inventory import Inventory, InventoryTransaction
from textile_erp.models.product_type import ThreadType, FabricType

logger = get_logger(__name__)


def generate_item_code(prefix: str, ref_id: int) -> str:
    """生成库存编码，如 THR-12-5F3A9C"""
    return f"{prefix}-{ref_id}-{uuid.uuid4().hex[:6].upper()}"


def to_decimal(value) -> Decimal:
    return Decimal(str(value or 0))


async def get_or_create_thread_type(db: AsyncSession, name: str, units: str = "meters") -> ThreadType:
    """按名称（不区分大小写）查找纱线类型，不存在则创建"""
    result = await db.execute(
        select(ThreadType).where(func.lower(ThreadType.name) == name.strip().lower())
    )
    thread_type = result.scalars().first()
    if not thread_type:
        thread_type = ThreadType(
            name=name.strip(),
            units=units,
            description=f"Thread type for {name.strip()}",
        )
        db.add(thread_type)
        await db.flush()
        logger.info(f"新建纱线类型: {thread_type.name}")
    return thread_type


async def get_or_create_fabric_type(db: AsyncSession, name: str, units: str = "meters") -> FabricType:
    """按名称（不区分大小写）查找布料类型，不存在则创建"""
    result = await db.execute(
        select(FabricType).where(func.lower(FabricType.name) == name.strip().lower())
    )
    fabric_type = result.scalars().first()
    if not fabric_type:
        fabric_type = FabricType(
            name=name.strip(),
            units=units,
            description=f"Fabric type for {name.strip()}",
        )
        db.add(fabric_type)
        await db.flush()
        logger.info(f"新建布料类型: {fabric_type.name}")
    return fabric_type


def ensure_available(inventory: Inventory, quantity: int, label: str = "thread") -> None:
    """检查库存是否足够"""
    available = inventory.current_quantity or 0
    if available < quantity:
        raise HTTPException(
            status_code=400,
            detail=f"Not enough {label} in inventory. Available: {available}, Requested: {quantity}"
        )


def record_movement(
    db: AsyncSession,
    inventory: Inventory,
    quantity: int,
    transaction_type: str,
    *,
    unit_cost: Optional[Decimal] = None,
    notes: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
    thread_purchase_id: Optional[int] = None,
    dyeing_process_id: Optional[int] = None,
    fabric_production_id: Optional[int] = None,
    sales_order_id: Optional[int] = None,
    transaction_date: Optional[datetime] = None,
) -> InventoryTransaction:
    """变动库存并写流水

    quantity 带符号：正数入库，负数出库。结存不会低于 0，
    流水记录实际变动量（被截断时小于请求量）。
    """
    before = inventory.current_quantity or 0
    after = max(0, before + quantity)
    applied = after - before
    inventory.current_quantity = after
    if applied > 0:
        inventory.last_restocked = datetime.utcnow()
    if applied != quantity:
        logger.warning(f"库存 {inventory.item_code} 结存不足，请求变动 {quantity:+d}，实际 {applied:+d}")

    cost = to_decimal(unit_cost if unit_cost is not None else inventory.cost_per_unit)
    transaction = InventoryTransaction(
        inventory_id=inventory.id,
        transaction_type=transaction_type,
        transaction_date=transaction_date or datetime.utcnow(),
        quantity=applied,
        remaining_quantity=after,
        unit_cost=cost,
        total_cost=cost * abs(applied),
        reference_type=reference_type,
        reference_id=reference_id,
        thread_purchase_id=thread_purchase_id,
        dyeing_process_id=dyeing_process_id,
        fabric_production_id=fabric_production_id,
        sales_order_id=sales_order_id,
        notes=notes,
    )
    db.add(transaction)
    logger.debug(f"库存变动 {inventory.item_code}: {before} → {after} ({transaction_type} {applied:+d})")
    return transaction


async def reverse_movements(db: AsyncSession, transactions: Iterable[InventoryTransaction]) -> None:
    """冲回流水对库存的影响并删除流水

    同一库存的流水先合计净变动再一次冲回，结存最低到 0。
    """
    net: Dict[int, int] = defaultdict(int)
    for transaction in transactions:
        net[transaction.inventory_id] += transaction.quantity
        await db.delete(transaction)
    for inventory_id, quantity in net.items():
        inventory = await db.get(Inventory, inventory_id)
        if inventory:
            inventory.current_quantity = max(0, (inventory.current_quantity or 0) - quantity)


async def find_purchase_inventory(db: AsyncSession, thread_purchase_id: int) -> Optional[Inventory]:
    """通过采购入库流水找到采购单对应的原纱库存"""
    result = await db.execute(
        select(Inventory)
        .join(InventoryTransaction, InventoryTransaction.inventory_id == Inventory.id)
        .where(
            InventoryTransaction.thread_purchase_id == thread_purchase_id,
            InventoryTransaction.transaction_type == "PURCHASE",
            Inventory.product_type == "THREAD",
        )
        .order_by(InventoryTransaction.id)
        .limit(1)
    )
    return result.scalars().first()


async def find_dyed_inventory(db: AsyncSession, dyeing_process_id: int) -> Optional[Inventory]:
    """通过染色产出流水找到染色纱库存"""
    result = await db.execute(
        select(Inventory)
        .join(InventoryTransaction, InventoryTransaction.inventory_id == Inventory.id)
        .where(
            InventoryTransaction.dyeing_process_id == dyeing_process_id,
            InventoryTransaction.transaction_type == "PRODUCTION",
            InventoryTransaction.quantity > 0,
        )
        .order_by(InventoryTransaction.id)
        .limit(1)
    )
    return result.scalars().first()


async def find_fabric_inventory(db: AsyncSession, fabric_production_id: int) -> Optional[Inventory]:
    """通过布料产出流水找到布料库存"""
    result = await db.execute(
        select(Inventory)
        .join(InventoryTransaction, InventoryTransaction.inventory_id == Inventory.id)
        .where(
            InventoryTransaction.fabric_production_id == fabric_production_id,
            InventoryTransaction.quantity > 0,
            Inventory.product_type == "FABRIC",
        )
        .order_by(InventoryTransaction.id)
        .limit(1)
    )
    return result.scalars().first()


async def list_movements(db: AsyncSession, **links) -> list:
    """按业务关联查流水，如 list_movements(db, dyeing_process_id=3)"""
    conditions = [getattr(InventoryTransaction, key) == value for key, value in links.items()]
    result = await db.execute(
        select(InventoryTransaction).where(*conditions).order_by(InventoryTransaction.id)
    )
    return list(result.scalars().all())
