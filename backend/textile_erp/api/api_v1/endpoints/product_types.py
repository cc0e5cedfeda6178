"""纱线类型 / 布料类型 API"""

from typing import Any, List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from textile_erp.core.deps import get_db
from textile_erp.models.product_type import ThreadType, FabricType
from textile_erp.schemas.product_type import ProductTypeCreate, ProductTypeResponse

thread_types_router = APIRouter()
fabric_types_router = APIRouter()


async def _create_type(db: AsyncSession, model, type_in: ProductTypeCreate):
    exists = (await db.execute(
        select(model.id).where(func.lower(model.name) == type_in.name.strip().lower())
    )).scalar()
    if exists:
        raise HTTPException(status_code=400, detail=f"Type '{type_in.name}' already exists")

    obj = model(name=type_in.name.strip(), description=type_in.description, units=type_in.units)
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return obj


@thread_types_router.get("", response_model=List[ProductTypeResponse])
async def list_thread_types(*, db: AsyncSession = Depends(get_db)) -> Any:
    result = await db.execute(select(ThreadType).order_by(ThreadType.name))
    return result.scalars().all()


@thread_types_router.post("", response_model=ProductTypeResponse, status_code=201)
async def create_thread_type(
    *,
    db: AsyncSession = Depends(get_db),
    type_in: ProductTypeCreate,
) -> Any:
    return await _create_type(db, ThreadType, type_in)


@fabric_types_router.get("", response_model=List[ProductTypeResponse])
async def list_fabric_types(*, db: AsyncSession = Depends(get_db)) -> Any:
    result = await db.execute(select(FabricType).order_by(FabricType.name))
    return result.scalars().all()


@fabric_types_router.post("", response_model=ProductTypeResponse, status_code=201)
async def create_fabric_type(
    *,
    db: AsyncSession = Depends(get_db),
    type_in: ProductTypeCreate,
) -> Any:
    return await _create_type(db, FabricType, type_in)
