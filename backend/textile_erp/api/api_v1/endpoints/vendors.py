"""供应商管理API"""

from typing import Any, Optional, Dict, Tuple
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from textile_erp.core.deps import get_db
from textile_erp.core.logging_config import get_logger
from textile_erp.models.vendor import Vendor
from textile_erp.models.thread_purchase import ThreadPurchase
from textile_erp.schemas.party import (
    VendorCreate, VendorUpdate, VendorResponse, VendorListResponse, VendorPurchaseBrief
)

router = APIRouter()
logger = get_logger(__name__)

ORDER_BY_FIELDS = {
    "name": Vendor.name.asc(),
    "city": Vendor.city.asc(),
    "created_at": Vendor.created_at.desc(),
}


async def get_vendor_stats(db: AsyncSession, vendor_ids: list) -> Dict[int, Tuple[int, float]]:
    """批量统计供应商的 (未收货采购单数, 采购总额)"""
    if not vendor_ids:
        return {}
    result = await db.execute(
        select(
            ThreadPurchase.vendor_id,
            func.sum(case((ThreadPurchase.received.is_(False), 1), else_=0)),
            func.coalesce(func.sum(ThreadPurchase.total_cost), 0),
        )
        .where(ThreadPurchase.vendor_id.in_(vendor_ids))
        .group_by(ThreadPurchase.vendor_id)
    )
    return {row[0]: (int(row[1] or 0), float(row[2] or 0)) for row in result.all()}


def build_vendor_response(vendor: Vendor, stats: Optional[Tuple[int, float]] = None) -> VendorResponse:
    active_orders, total_purchases = stats or (0, 0.0)
    return VendorResponse(
        id=vendor.id,
        name=vendor.name,
        contact=vendor.contact,
        email=vendor.email,
        address=vendor.address,
        city=vendor.city,
        notes=vendor.notes,
        created_at=vendor.created_at,
        updated_at=vendor.updated_at,
        active_orders=active_orders,
        total_purchases=total_purchases,
    )


@router.get("", response_model=VendorListResponse)
async def list_vendors(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="搜索名称/联系方式/邮箱/城市"),
    order_by: str = Query("name", pattern="^(name|city|created_at)$"),
) -> Any:
    """获取供应商列表"""
    query = select(Vendor)
    if search:
        keyword = f"%{search}%"
        query = query.where(or_(
            Vendor.name.ilike(keyword),
            Vendor.contact.ilike(keyword),
            Vendor.email.ilike(keyword),
            Vendor.city.ilike(keyword),
        ))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

    query = query.order_by(ORDER_BY_FIELDS[order_by], Vendor.id)
    query = query.offset((page - 1) * limit).limit(limit)
    vendors = (await db.execute(query)).scalars().all()

    stats = await get_vendor_stats(db, [v.id for v in vendors])
    return VendorListResponse(
        data=[build_vendor_response(v, stats.get(v.id)) for v in vendors],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=VendorResponse, status_code=201)
async def create_vendor(
    *,
    db: AsyncSession = Depends(get_db),
    vendor_in: VendorCreate,
) -> Any:
    """创建供应商"""
    vendor = Vendor(**vendor_in.model_dump())
    db.add(vendor)
    await db.commit()
    await db.refresh(vendor)
    logger.info(f"新建供应商 #{vendor.id}: {vendor.name}")
    return build_vendor_response(vendor)


@router.get("/{vendor_id}", response_model=VendorResponse)
async def get_vendor(
    *,
    db: AsyncSession = Depends(get_db),
    vendor_id: int,
) -> Any:
    """获取供应商详情（含最近采购）"""
    vendor = await db.get(Vendor, vendor_id)
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")

    stats = await get_vendor_stats(db, [vendor.id])
    response = build_vendor_response(vendor, stats.get(vendor.id))

    recent = await db.execute(
        select(ThreadPurchase)
        .where(ThreadPurchase.vendor_id == vendor_id)
        .order_by(ThreadPurchase.order_date.desc(), ThreadPurchase.id.desc())
        .limit(10)
    )
    response.recent_purchases = [
        VendorPurchaseBrief(
            id=p.id,
            order_date=p.order_date,
            thread_type=p.thread_type,
            color=p.color,
            quantity=p.quantity,
            total_cost=float(p.total_cost or 0),
            received=p.received,
        )
        for p in recent.scalars().all()
    ]
    return response


@router.patch("/{vendor_id}", response_model=VendorResponse)
async def update_vendor(
    *,
    db: AsyncSession = Depends(get_db),
    vendor_id: int,
    vendor_in: VendorUpdate,
) -> Any:
    """更新供应商"""
    vendor = await db.get(Vendor, vendor_id)
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")

    for field, value in vendor_in.model_dump(exclude_unset=True).items():
        setattr(vendor, field, value)

    await db.commit()
    await db.refresh(vendor)
    stats = await get_vendor_stats(db, [vendor.id])
    return build_vendor_response(vendor, stats.get(vendor.id))


@router.delete("/{vendor_id}")
async def delete_vendor(
    *,
    db: AsyncSession = Depends(get_db),
    vendor_id: int,
) -> Any:
    """删除供应商（有采购记录时不允许删除）"""
    vendor = await db.get(Vendor, vendor_id)
    if not vendor:
        raise HTTPException(status_code=404, detail="Vendor not found")

    purchase_count = (await db.execute(
        select(func.count(ThreadPurchase.id)).where(ThreadPurchase.vendor_id == vendor_id)
    )).scalar() or 0
    if purchase_count > 0:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete vendor with thread purchases ({purchase_count}). Delete the purchases first."
        )

    await db.delete(vendor)
    await db.commit()
    logger.info(f"删除供应商 #{vendor_id}")
    return {"message": "Vendor deleted"}
