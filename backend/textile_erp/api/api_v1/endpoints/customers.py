"""客户管理API"""

from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from textile_erp.core.deps import get_db
from textile_erp.models.customer import Customer
from textile_erp.models.sales import SalesOrder
from textile_erp.schemas.party import (
    CustomerCreate, CustomerUpdate, CustomerResponse, CustomerListResponse
)

router = APIRouter()


async def build_customer_response(db: AsyncSession, customer: Customer) -> CustomerResponse:
    row = (await db.execute(
        select(func.count(SalesOrder.id), func.coalesce(func.sum(SalesOrder.total_sale), 0))
        .where(SalesOrder.customer_id == customer.id)
    )).one()
    response = CustomerResponse.model_validate(customer)
    response.order_count = int(row[0] or 0)
    response.total_sales = float(row[1] or 0)
    return response


@router.get("", response_model=CustomerListResponse)
async def list_customers(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="搜索名称/联系方式/城市"),
) -> Any:
    """获取客户列表"""
    query = select(Customer)
    if search:
        keyword = f"%{search}%"
        query = query.where(or_(
            Customer.name.ilike(keyword),
            Customer.contact.ilike(keyword),
            Customer.email.ilike(keyword),
            Customer.city.ilike(keyword),
        ))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    query = query.order_by(Customer.name, Customer.id).offset((page - 1) * limit).limit(limit)
    customers = (await db.execute(query)).scalars().all()

    return CustomerListResponse(
        data=[await build_customer_response(db, c) for c in customers],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=CustomerResponse, status_code=201)
async def create_customer(
    *,
    db: AsyncSession = Depends(get_db),
    customer_in: CustomerCreate,
) -> Any:
    """创建客户"""
    customer = Customer(**customer_in.model_dump())
    db.add(customer)
    await db.commit()
    await db.refresh(customer)
    return await build_customer_response(db, customer)


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    *,
    db: AsyncSession = Depends(get_db),
    customer_id: int,
) -> Any:
    customer = await db.get(Customer, customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return await build_customer_response(db, customer)


@router.patch("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    *,
    db: AsyncSession = Depends(get_db),
    customer_id: int,
    customer_in: CustomerUpdate,
) -> Any:
    customer = await db.get(Customer, customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    for field, value in customer_in.model_dump(exclude_unset=True).items():
        setattr(customer, field, value)

    await db.commit()
    await db.refresh(customer)
    return await build_customer_response(db, customer)


@router.delete("/{customer_id}")
async def delete_customer(
    *,
    db: AsyncSession = Depends(get_db),
    customer_id: int,
) -> Any:
    """删除客户（有销售单时不允许删除）"""
    customer = await db.get(Customer, customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    order_count = (await db.execute(
        select(func.count(SalesOrder.id)).where(SalesOrder.customer_id == customer_id)
    )).scalar() or 0
    if order_count > 0:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete customer with sales orders ({order_count})"
        )

    await db.delete(customer)
    await db.commit()
    return {"message": "Customer deleted"}
