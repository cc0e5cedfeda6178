"""染色工序API

创建染色工序时（同一事务内）：
1. 校验原纱库存是否足够，不足返回 400 且不做任何写入
2. 扣减原纱库存，写 ADJUSTMENT 流水（负数）
3. 工序完成且 add_to_inventory 时，染色纱入库，写 PRODUCTION 流水（正数）
4. 工序完成时采购单颜色状态改为 COLORED
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from textile_erp.core.config import settings
from textile_erp.core.deps import get_db
from textile_erp.core.logging_config import get_logger
from textile_erp.models.dyeing_process import DyeingProcess
from textile_erp.models.thread_purchase import ThreadPurchase
from textile_erp.models.fabric_production import FabricProduction
from textile_erp.models.inventory import Inventory
from textile_erp.schemas.dyeing import (
    DyeingProcessCreate, DyeingProcessUpdate, DyeingProcessResponse, DyeingProcessListResponse,
    DyeingProcessCreateResponse, WastageInfo, InventoryUsage
)
from .inventory_ops import (
    generate_item_code, get_or_create_thread_type, ensure_available, record_movement,
    reverse_movements, find_purchase_inventory, find_dyed_inventory, list_movements, to_decimal
)

router = APIRouter()
logger = get_logger(__name__)

COST_FIELDS = ("labor_cost", "dye_material_cost", "total_cost")


def base_process_query():
    return select(DyeingProcess).options(
        selectinload(DyeingProcess.thread_purchase).selectinload(ThreadPurchase.vendor)
    )


async def load_process(db: AsyncSession, process_id: int) -> Optional[DyeingProcess]:
    result = await db.execute(
        base_process_query()
        .where(DyeingProcess.id == process_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def build_process_response(process: DyeingProcess) -> DyeingProcessResponse:
    purchase = process.thread_purchase
    response = DyeingProcessResponse.model_validate(process)
    response.thread_type = purchase.thread_type if purchase else ""
    response.unit_of_measure = purchase.unit_of_measure if purchase else ""
    response.vendor_name = purchase.vendor.name if purchase and purchase.vendor else ""
    response.wastage = process.wastage
    response.wastage_percentage = process.wastage_percentage
    return response


def consume_raw_thread(db: AsyncSession, process: DyeingProcess, raw_inventory: Inventory, quantity: int) -> None:
    """扣减原纱库存（调用前须已 ensure_available）"""
    record_movement(
        db, raw_inventory, -quantity, "ADJUSTMENT",
        dyeing_process_id=process.id,
        reference_type="DyeingProcess",
        reference_id=process.id,
        notes=f"Thread used in dyeing process #{process.id}",
    )


async def add_dyed_thread_to_inventory(
    db: AsyncSession, process: DyeingProcess, purchase: ThreadPurchase
) -> Inventory:
    """染色纱入库，同描述的库存项目已存在则累加"""
    thread_type = await get_or_create_thread_type(db, purchase.thread_type, purchase.unit_of_measure)
    description = f"Dyed {purchase.thread_type} ({process.color_name or 'Unknown'})"

    # 单位成本 = 染色总成本 / 产出；无成本时沿用采购单价
    total_cost = to_decimal(process.total_cost)
    if total_cost > 0 and process.output_quantity:
        cost_per_unit = (total_cost / process.output_quantity).quantize(Decimal("0.01"))
    else:
        cost_per_unit = to_decimal(purchase.unit_price)

    result = await db.execute(
        select(Inventory).where(
            Inventory.description == description,
            Inventory.product_type == "THREAD",
        )
    )
    inventory = result.scalars().first()
    if not inventory:
        inventory = Inventory(
            item_code=generate_item_code("DT", process.id),
            description=description,
            product_type="THREAD",
            thread_type_id=thread_type.id,
            current_quantity=0,
            unit_of_measure=purchase.unit_of_measure,
            location="Dye Facility",
            min_stock_level=settings.DEFAULT_MIN_STOCK_LEVEL,
            cost_per_unit=cost_per_unit,
            sale_price=(cost_per_unit * Decimal(str(settings.THREAD_MARKUP))).quantize(Decimal("0.01")),
            notes=f"Dyed thread from process #{process.id}, thread purchase #{purchase.id}",
        )
        db.add(inventory)
        await db.flush()

    record_movement(
        db, inventory, process.output_quantity, "PRODUCTION",
        unit_cost=cost_per_unit,
        dyeing_process_id=process.id,
        reference_type="DyeingProcess",
        reference_id=process.id,
        notes=f"Dyed thread produced in dyeing process #{process.id}",
    )
    process.inventory_status = "ADDED"
    purchase.color_status = "COLORED"
    logger.info(f"染色工序 #{process.id} 产出入库: {inventory.item_code} +{process.output_quantity}")
    return inventory


@router.get("", response_model=DyeingProcessListResponse)
async def list_dyeing_processes(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    thread_purchase_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, pattern="^(PENDING|COMPLETED|PARTIAL|FAILED)$"),
    search: Optional[str] = Query(None, description="搜索颜色名称/颜色代码/纱线类型"),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
) -> Any:
    """获取染色工序列表"""
    query = base_process_query()
    conditions = []
    if thread_purchase_id:
        conditions.append(DyeingProcess.thread_purchase_id == thread_purchase_id)
    if status:
        conditions.append(DyeingProcess.result_status == status)
    if from_date:
        conditions.append(DyeingProcess.dye_date >= from_date)
    if to_date:
        conditions.append(DyeingProcess.dye_date <= to_date)
    if search:
        keyword = f"%{search}%"
        query = query.join(ThreadPurchase, ThreadPurchase.id == DyeingProcess.thread_purchase_id)
        conditions.append(or_(
            DyeingProcess.color_name.ilike(keyword),
            DyeingProcess.color_code.ilike(keyword),
            ThreadPurchase.thread_type.ilike(keyword),
        ))
    if conditions:
        query = query.where(*conditions)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    query = query.order_by(DyeingProcess.dye_date.desc(), DyeingProcess.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    processes = (await db.execute(query)).scalars().unique().all()

    return DyeingProcessListResponse(
        data=[build_process_response(p) for p in processes],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/available", response_model=DyeingProcessListResponse)
async def list_available_dyed_thread(
    *,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """已完成但染色纱尚未入库的工序"""
    query = base_process_query().where(
        DyeingProcess.result_status == "COMPLETED",
        DyeingProcess.output_quantity > 0,
        or_(DyeingProcess.inventory_status.is_(None), DyeingProcess.inventory_status != "ADDED"),
    ).order_by(DyeingProcess.completion_date.desc(), DyeingProcess.id.desc())
    processes = (await db.execute(query)).scalars().all()
    return DyeingProcessListResponse(
        data=[build_process_response(p) for p in processes],
        total=len(processes),
        page=1,
        limit=len(processes),
    )


@router.post("", response_model=DyeingProcessCreateResponse, status_code=201)
async def create_dyeing_process(
    *,
    db: AsyncSession = Depends(get_db),
    process_in: DyeingProcessCreate,
) -> Any:
    """创建染色工序（扣减原纱库存，完成时染色纱入库）"""
    purchase = await db.get(ThreadPurchase, process_in.thread_purchase_id)
    if not purchase:
        raise HTTPException(status_code=404, detail="Thread purchase not found")
    if not purchase.received:
        raise HTTPException(status_code=400, detail="Thread purchase has not been received yet")
    if purchase.color_status != "RAW":
        raise HTTPException(status_code=400, detail="Only raw thread can be dyed")
    if process_in.output_quantity > process_in.dye_quantity:
        raise HTTPException(status_code=400, detail="Output quantity cannot exceed dye quantity")

    raw_inventory = await find_purchase_inventory(db, purchase.id)
    if not raw_inventory:
        raise HTTPException(status_code=404, detail="No inventory found for this thread purchase")
    # 库存不足时直接返回 400，此前未做任何写入
    ensure_available(raw_inventory, process_in.dye_quantity)

    labor_cost = to_decimal(process_in.labor_cost)
    material_cost = to_decimal(process_in.dye_material_cost)
    if process_in.total_cost is not None:
        total_cost = to_decimal(process_in.total_cost)
    else:
        total_cost = labor_cost + material_cost

    process = DyeingProcess(
        **process_in.model_dump(exclude={"add_to_inventory", "dye_date", *COST_FIELDS}),
        dye_date=process_in.dye_date or datetime.utcnow(),
        labor_cost=labor_cost,
        dye_material_cost=material_cost,
        total_cost=total_cost,
        inventory_status="PENDING",
    )
    db.add(process)
    await db.flush()

    before = raw_inventory.current_quantity
    consume_raw_thread(db, process, raw_inventory, process.dye_quantity)

    if process.is_completed:
        purchase.color_status = "COLORED"
        if process_in.add_to_inventory and process.output_quantity > 0:
            await add_dyed_thread_to_inventory(db, process, purchase)

    await db.commit()
    logger.info(
        f"新建染色工序 #{process.id}: 采购单 #{purchase.id} 投入 {process.dye_quantity} 产出 {process.output_quantity}"
    )

    process = await load_process(db, process.id)
    return DyeingProcessCreateResponse(
        process=build_process_response(process),
        wastage=WastageInfo(amount=process.wastage, percentage=process.wastage_percentage),
        inventory=InventoryUsage(
            before=before,
            used=process.dye_quantity,
            remaining=raw_inventory.current_quantity,
        ),
    )


@router.get("/{process_id}", response_model=DyeingProcessResponse)
async def get_dyeing_process(
    *,
    db: AsyncSession = Depends(get_db),
    process_id: int,
) -> Any:
    process = await load_process(db, process_id)
    if not process:
        raise HTTPException(status_code=404, detail="Dyeing process not found")
    return build_process_response(process)


@router.patch("/{process_id}", response_model=DyeingProcessResponse)
async def update_dyeing_process(
    *,
    db: AsyncSession = Depends(get_db),
    process_id: int,
    process_in: DyeingProcessUpdate,
) -> Any:
    """更新染色工序

    - 状态变为 COMPLETED：尚未扣减原纱的先扣减，染色纱按需入库
    - 投入/产出数量变化：按差额调整原纱和染色纱库存
    """
    process = await load_process(db, process_id)
    if not process:
        raise HTTPException(status_code=404, detail="Dyeing process not found")
    purchase = process.thread_purchase

    update_data = process_in.model_dump(exclude_unset=True, exclude={"add_to_inventory"})
    old_status = process.result_status
    new_status = update_data.get("result_status", old_status)
    new_dye = update_data.get("dye_quantity", process.dye_quantity)
    new_output = update_data.get("output_quantity", process.output_quantity)
    if new_output > new_dye:
        raise HTTPException(status_code=400, detail="Output quantity cannot exceed dye quantity")

    # 现有流水：染色纱库存上的为产出，其余为原纱消耗
    movements = await list_movements(db, dyeing_process_id=process.id)
    dyed_inventory = await find_dyed_inventory(db, process.id)
    dyed_rows = [m for m in movements if dyed_inventory and m.inventory_id == dyed_inventory.id]
    raw_rows = [m for m in movements if m not in dyed_rows]
    consumed = -sum(m.quantity for m in raw_rows)
    # 染色纱可能已售出，产出流水之和不一定等于登记的产出量
    produced = process.output_quantity if dyed_rows else 0

    becoming_completed = new_status == "COMPLETED" and old_status != "COMPLETED"
    raw_inventory = None
    raw_delta = 0
    if raw_rows:
        raw_inventory = await db.get(Inventory, raw_rows[0].inventory_id)
        raw_delta = new_dye - consumed
    elif becoming_completed:
        raw_inventory = await find_purchase_inventory(db, purchase.id)
        if not raw_inventory:
            raise HTTPException(status_code=404, detail="No inventory found for this thread purchase")
        raw_delta = new_dye
    if raw_inventory and raw_delta > 0:
        ensure_available(raw_inventory, raw_delta)

    # 写入
    for field, value in update_data.items():
        if field in COST_FIELDS:
            value = to_decimal(value)
        setattr(process, field, value)
    if ("labor_cost" in update_data or "dye_material_cost" in update_data) and "total_cost" not in update_data:
        process.total_cost = to_decimal(process.labor_cost) + to_decimal(process.dye_material_cost)
    if becoming_completed and not process.completion_date:
        process.completion_date = datetime.utcnow()

    if raw_inventory and raw_delta != 0:
        record_movement(
            db, raw_inventory, -raw_delta, "ADJUSTMENT",
            dyeing_process_id=process.id,
            reference_type="DyeingProcess",
            reference_id=process.id,
            notes=f"Thread used in dyeing process #{process.id}",
        )

    if process.is_completed:
        purchase.color_status = "COLORED"
        if dyed_inventory and new_output != produced:
            record_movement(
                db, dyed_inventory, new_output - produced, "ADJUSTMENT",
                dyeing_process_id=process.id,
                reference_type="DyeingProcess",
                reference_id=process.id,
                notes=f"Output adjusted for dyeing process #{process.id}",
            )
        elif not dyed_inventory and process_in.add_to_inventory and process.output_quantity > 0:
            await add_dyed_thread_to_inventory(db, process, purchase)

    await db.commit()
    logger.info(f"更新染色工序 #{process.id}: {old_status} → {process.result_status}")

    process = await load_process(db, process_id)
    return build_process_response(process)


@router.delete("/{process_id}")
async def delete_dyeing_process(
    *,
    db: AsyncSession = Depends(get_db),
    process_id: int,
) -> Any:
    """删除染色工序并冲回库存（已用于布料生产的不允许删除）"""
    process = await db.get(DyeingProcess, process_id)
    if not process:
        raise HTTPException(status_code=404, detail="Dyeing process not found")

    fabric_count = (await db.execute(
        select(func.count(FabricProduction.id)).where(FabricProduction.dyeing_process_id == process_id)
    )).scalar() or 0
    if fabric_count > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete dyeing process that has been used in fabric production"
        )

    await reverse_movements(db, await list_movements(db, dyeing_process_id=process_id))
    await db.delete(process)
    await db.commit()
    logger.info(f"删除染色工序 #{process_id}")
    return {"message": "Dyeing process deleted"}
