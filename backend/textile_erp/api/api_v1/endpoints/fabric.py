"""布料生产API

生产单消耗纱线库存（原纱或染色纱），完成时产出布料库存，
两边各写一条 PRODUCTION 流水（纱线为负，布料为正）。
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from textile_erp.core.config import settings
from textile_erp.core.deps import get_db
from textile_erp.core.logging_config import get_logger
from textile_erp.models.fabric_production import FabricProduction
from textile_erp.models.dyeing_process import DyeingProcess
from textile_erp.models.thread_purchase import ThreadPurchase
from textile_erp.models.inventory import Inventory
from textile_erp.models.sales import SalesOrderItem
from textile_erp.schemas.fabric import (
    FabricProductionCreate, FabricProductionUpdate, FabricProductionResponse, FabricProductionListResponse
)
from .inventory_ops import (
    generate_item_code, get_or_create_fabric_type, ensure_available, record_movement,
    reverse_movements, find_purchase_inventory, find_dyed_inventory, find_fabric_inventory,
    list_movements, to_decimal
)

router = APIRouter()
logger = get_logger(__name__)

COST_FIELDS = ("production_cost", "labor_cost", "total_cost")


def base_production_query():
    return select(FabricProduction).options(
        selectinload(FabricProduction.source_thread),
        selectinload(FabricProduction.dyeing_process),
    )


async def load_production(db: AsyncSession, production_id: int) -> Optional[FabricProduction]:
    result = await db.execute(
        base_production_query()
        .where(FabricProduction.id == production_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def build_production_response(
    production: FabricProduction, fabric_inventory: Optional[Inventory] = None
) -> FabricProductionResponse:
    response = FabricProductionResponse.model_validate(production)
    response.thread_type = production.source_thread.thread_type if production.source_thread else ""
    response.color_name = (production.dyeing_process.color_name or "") if production.dyeing_process else ""
    response.fabric_inventory_id = fabric_inventory.id if fabric_inventory else None
    return response


async def resolve_thread_source(
    db: AsyncSession, production_in: FabricProductionCreate
) -> Tuple[Inventory, Optional[int]]:
    """确定纱线来源库存，返回 (库存项目, 采购单ID)

    优先级：染色工序的染色纱 > 指定库存项目 > 采购单的原纱
    """
    source_thread_id = production_in.source_thread_id
    if source_thread_id and not await db.get(ThreadPurchase, source_thread_id):
        raise HTTPException(status_code=404, detail="Thread purchase not found")

    if production_in.dyeing_process_id:
        process = await db.get(DyeingProcess, production_in.dyeing_process_id)
        if not process:
            raise HTTPException(status_code=404, detail="Dyeing process not found")
        if source_thread_id and process.thread_purchase_id != source_thread_id:
            raise HTTPException(status_code=404, detail="Dyeing process not found for this thread purchase")
        inventory = await find_dyed_inventory(db, process.id)
        if not inventory:
            raise HTTPException(status_code=404, detail="No dyed thread inventory found for this dyeing process")
        return inventory, process.thread_purchase_id

    if production_in.inventory_id:
        inventory = await db.get(Inventory, production_in.inventory_id)
        if not inventory:
            raise HTTPException(status_code=404, detail="Inventory item not found")
        if inventory.product_type != "THREAD":
            raise HTTPException(status_code=400, detail="Fabric can only be produced from thread inventory")
        return inventory, source_thread_id

    inventory = await find_purchase_inventory(db, source_thread_id)
    if not inventory:
        raise HTTPException(status_code=404, detail="No inventory found for this thread purchase")
    return inventory, source_thread_id


async def add_fabric_to_inventory(
    db: AsyncSession, production: FabricProduction, merge: bool = False
) -> Inventory:
    """布料入库

    merge=True 时按 类型+规格 合并到同一库存项目，否则每批次单独建项目。
    """
    fabric_type = await get_or_create_fabric_type(db, production.fabric_type, production.unit_of_measure)
    if merge:
        description = f"{production.fabric_type} {production.dimensions}"
    else:
        description = f"{production.fabric_type} {production.dimensions} (Batch: {production.batch_number})"

    total_cost = to_decimal(production.total_cost)
    if total_cost > 0:
        cost_per_unit = (total_cost / production.quantity_produced).quantize(Decimal("0.01"))
    else:
        cost_per_unit = Decimal("0")

    inventory = None
    if merge:
        result = await db.execute(
            select(Inventory).where(
                Inventory.description == description,
                Inventory.product_type == "FABRIC",
            )
        )
        inventory = result.scalars().first()
    if not inventory:
        inventory = Inventory(
            item_code=generate_item_code("FAB", production.id),
            description=description,
            product_type="FABRIC",
            fabric_type_id=fabric_type.id,
            current_quantity=0,
            unit_of_measure=production.unit_of_measure,
            location="Production Department",
            min_stock_level=0,
            cost_per_unit=cost_per_unit,
            sale_price=(cost_per_unit * Decimal(str(settings.FABRIC_MARKUP))).quantize(Decimal("0.01")),
            notes=f"Fabric production #{production.id}",
        )
        db.add(inventory)
        await db.flush()

    record_movement(
        db, inventory, production.quantity_produced, "PRODUCTION",
        unit_cost=cost_per_unit,
        fabric_production_id=production.id,
        reference_type="FabricProduction",
        reference_id=production.id,
        notes=f"Fabric produced in batch {production.batch_number}",
    )
    production.inventory_status = "UPDATED"
    logger.info(f"布料入库: {inventory.item_code} +{production.quantity_produced}")
    return inventory


@router.get("", response_model=FabricProductionListResponse)
async def list_fabric_productions(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    fabric_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None, pattern="^(PENDING|IN_PROGRESS|COMPLETED|CANCELLED)$"),
    source_thread_id: Optional[int] = Query(None),
    dyeing_process_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, description="搜索批次号/布料类型/规格"),
) -> Any:
    """获取布料生产列表"""
    query = base_production_query()
    conditions = []
    if fabric_type:
        conditions.append(FabricProduction.fabric_type.ilike(f"%{fabric_type}%"))
    if status:
        conditions.append(FabricProduction.status == status)
    if source_thread_id:
        conditions.append(FabricProduction.source_thread_id == source_thread_id)
    if dyeing_process_id:
        conditions.append(FabricProduction.dyeing_process_id == dyeing_process_id)
    if search:
        keyword = f"%{search}%"
        conditions.append(or_(
            FabricProduction.batch_number.ilike(keyword),
            FabricProduction.fabric_type.ilike(keyword),
            FabricProduction.dimensions.ilike(keyword),
        ))
    if conditions:
        query = query.where(*conditions)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    query = query.order_by(FabricProduction.production_date.desc(), FabricProduction.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    productions = (await db.execute(query)).scalars().all()

    return FabricProductionListResponse(
        data=[build_production_response(p) for p in productions],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=FabricProductionResponse, status_code=201)
async def create_fabric_production(
    *,
    db: AsyncSession = Depends(get_db),
    production_in: FabricProductionCreate,
) -> Any:
    """创建布料生产单（扣减纱线，完成时布料入库）"""
    thread_inventory, source_thread_id = await resolve_thread_source(db, production_in)
    ensure_available(thread_inventory, production_in.thread_used)

    production_cost = to_decimal(production_in.production_cost)
    labor_cost = to_decimal(production_in.labor_cost)
    if production_in.total_cost is not None:
        total_cost = to_decimal(production_in.total_cost)
    else:
        total_cost = production_cost + labor_cost

    completion_date = production_in.completion_date
    if production_in.status == "COMPLETED" and not completion_date:
        completion_date = datetime.utcnow()

    production = FabricProduction(
        **production_in.model_dump(exclude={
            "source_thread_id", "inventory_id", "single_inventory_entry",
            "production_date", "completion_date", *COST_FIELDS,
        }),
        source_thread_id=source_thread_id,
        production_date=production_in.production_date or datetime.utcnow(),
        completion_date=completion_date,
        production_cost=production_cost,
        labor_cost=labor_cost,
        total_cost=total_cost,
        inventory_status="PENDING",
    )
    db.add(production)
    await db.flush()

    record_movement(
        db, thread_inventory, -production.thread_used, "PRODUCTION",
        fabric_production_id=production.id,
        reference_type="FabricProduction",
        reference_id=production.id,
        notes=f"Thread used for fabric batch {production.batch_number}",
    )

    fabric_inventory = None
    if production.status == "COMPLETED":
        fabric_inventory = await add_fabric_to_inventory(db, production, merge=production_in.single_inventory_entry)

    await db.commit()
    logger.info(
        f"新建布料生产 #{production.id}: {production.fabric_type} 批次 {production.batch_number}，"
        f"耗纱 {production.thread_used} 产出 {production.quantity_produced}"
    )

    production = await load_production(db, production.id)
    return build_production_response(production, fabric_inventory)


@router.get("/{production_id}", response_model=FabricProductionResponse)
async def get_fabric_production(
    *,
    db: AsyncSession = Depends(get_db),
    production_id: int,
) -> Any:
    production = await load_production(db, production_id)
    if not production:
        raise HTTPException(status_code=404, detail="Fabric production not found")
    return build_production_response(production, await find_fabric_inventory(db, production_id))


@router.patch("/{production_id}", response_model=FabricProductionResponse)
async def update_fabric_production(
    *,
    db: AsyncSession = Depends(get_db),
    production_id: int,
    production_in: FabricProductionUpdate,
) -> Any:
    """更新布料生产单，数量变化时按差额调整纱线和布料库存"""
    production = await load_production(db, production_id)
    if not production:
        raise HTTPException(status_code=404, detail="Fabric production not found")

    update_data = production_in.model_dump(exclude_unset=True)
    old_status = production.status
    old_produced = production.quantity_produced
    new_status = update_data.get("status", old_status)

    movements = await list_movements(db, fabric_production_id=production.id)
    fabric_inventory = await find_fabric_inventory(db, production.id)
    fabric_rows = [m for m in movements if fabric_inventory and m.inventory_id == fabric_inventory.id]
    thread_rows = [m for m in movements if m not in fabric_rows]

    # 耗纱变化：先校验库存
    thread_inventory = None
    thread_delta = 0
    if "thread_used" in update_data and thread_rows:
        thread_inventory = await db.get(Inventory, thread_rows[0].inventory_id)
        thread_delta = update_data["thread_used"] - (-sum(m.quantity for m in thread_rows))
        if thread_inventory and thread_delta > 0:
            ensure_available(thread_inventory, thread_delta)

    for field, value in update_data.items():
        if field in COST_FIELDS:
            value = to_decimal(value)
        setattr(production, field, value)
    if ("production_cost" in update_data or "labor_cost" in update_data) and "total_cost" not in update_data:
        production.total_cost = to_decimal(production.production_cost) + to_decimal(production.labor_cost)
    if new_status == "COMPLETED" and old_status != "COMPLETED" and not production.completion_date:
        production.completion_date = datetime.utcnow()

    if thread_inventory and thread_delta != 0:
        record_movement(
            db, thread_inventory, -thread_delta, "ADJUSTMENT",
            fabric_production_id=production.id,
            reference_type="FabricProduction",
            reference_id=production.id,
            notes=f"Thread usage adjusted for batch {production.batch_number}",
        )

    if production.status == "COMPLETED":
        produced = old_produced if fabric_rows else 0
        if fabric_inventory and production.quantity_produced != produced:
            record_movement(
                db, fabric_inventory, production.quantity_produced - produced, "ADJUSTMENT",
                fabric_production_id=production.id,
                reference_type="FabricProduction",
                reference_id=production.id,
                notes=f"Output adjusted for batch {production.batch_number}",
            )
        elif not fabric_inventory:
            fabric_inventory = await add_fabric_to_inventory(db, production)

    await db.commit()
    production = await load_production(db, production_id)
    return build_production_response(production, fabric_inventory)


@router.delete("/{production_id}")
async def delete_fabric_production(
    *,
    db: AsyncSession = Depends(get_db),
    production_id: int,
) -> Any:
    """删除布料生产单并冲回库存（已销售的不允许删除）"""
    production = await db.get(FabricProduction, production_id)
    if not production:
        raise HTTPException(status_code=404, detail="Fabric production not found")

    sold_count = (await db.execute(
        select(func.count(SalesOrderItem.id)).where(
            SalesOrderItem.product_type == "FABRIC",
            SalesOrderItem.product_id == production_id,
        )
    )).scalar() or 0
    if sold_count > 0:
        raise HTTPException(status_code=400, detail="Cannot delete fabric production that has been sold")

    await reverse_movements(db, await list_movements(db, fabric_production_id=production_id))
    await db.delete(production)
    await db.commit()
    logger.info(f"删除布料生产 #{production_id}")
    return {"message": "Fabric production deleted"}
