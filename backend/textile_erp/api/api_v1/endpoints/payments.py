"""收付款与支票API

- 销售单收款为资金流入（IN），采购单付款为资金流出（OUT）
- 支票退票后不再计入已付金额，销售单付款状态随之重新推导
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from textile_erp.core.deps import get_db
from textile_erp.core.logging_config import get_logger
from textile_erp.models.payment import Payment, ChequeTransaction
from textile_erp.models.sales import SalesOrder
from textile_erp.models.thread_purchase import ThreadPurchase
from textile_erp.schemas.payment import (
    PaymentCreate, PaymentResponse, PaymentListResponse, CashflowSummary,
    ChequeResponse, ChequeListItem, ChequeListResponse, ChequeStatusUpdate
)
from .inventory_ops import to_decimal
from .payment_ops import create_payment, get_paid_amount, refresh_sales_payment_status, build_payment_response

router = APIRouter()
cheques_router = APIRouter()
logger = get_logger(__name__)


def effective_payments():
    """排除退票支票的条件"""
    return or_(ChequeTransaction.id.is_(None), ChequeTransaction.cheque_status != "BOUNCED")


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    mode: Optional[str] = Query(None, pattern="^(CASH|CHEQUE|ONLINE)$"),
    sales_order_id: Optional[int] = Query(None),
    thread_purchase_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
) -> Any:
    """获取收付款记录"""
    query = select(Payment)
    conditions = []
    if mode:
        conditions.append(Payment.mode == mode)
    if sales_order_id:
        conditions.append(Payment.sales_order_id == sales_order_id)
    if thread_purchase_id:
        conditions.append(Payment.thread_purchase_id == thread_purchase_id)
    if start_date:
        conditions.append(Payment.transaction_date >= start_date)
    if end_date:
        conditions.append(Payment.transaction_date <= end_date)
    if conditions:
        query = query.where(*conditions)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    query = query.order_by(Payment.transaction_date.desc(), Payment.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    payments = (await db.execute(query)).scalars().all()

    return PaymentListResponse(
        data=[build_payment_response(p) for p in payments],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=PaymentResponse, status_code=201)
async def create_payment_record(
    *,
    db: AsyncSession = Depends(get_db),
    payment_in: PaymentCreate,
) -> Any:
    """登记收付款（金额不能超过未付余额）"""
    amount = to_decimal(payment_in.amount)
    order = None
    if payment_in.sales_order_id:
        order = await db.get(SalesOrder, payment_in.sales_order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Sales order not found")
        remaining = to_decimal(order.total_sale) - await get_paid_amount(db, sales_order_id=order.id)
    else:
        purchase = await db.get(ThreadPurchase, payment_in.thread_purchase_id)
        if not purchase:
            raise HTTPException(status_code=404, detail="Thread purchase not found")
        remaining = to_decimal(purchase.total_cost) - await get_paid_amount(db, thread_purchase_id=purchase.id)

    if amount > remaining:
        raise HTTPException(
            status_code=400,
            detail=f"Payment amount exceeds remaining balance ({max(remaining, Decimal('0'))})"
        )

    payment = await create_payment(
        db,
        amount=amount,
        mode=payment_in.mode,
        sales_order_id=payment_in.sales_order_id,
        thread_purchase_id=payment_in.thread_purchase_id,
        description=payment_in.description,
        reference_number=payment_in.reference_number,
        remarks=payment_in.remarks,
        cheque_number=payment_in.cheque_number,
        bank=payment_in.bank,
        branch=payment_in.branch,
        transaction_date=payment_in.transaction_date,
    )
    if order:
        await refresh_sales_payment_status(db, order)

    await db.commit()
    result = await db.execute(
        select(Payment).where(Payment.id == payment.id).execution_options(populate_existing=True)
    )
    return build_payment_response(result.scalar_one())


@router.get("/summary", response_model=CashflowSummary)
async def get_cashflow_summary(
    *,
    db: AsyncSession = Depends(get_db),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
) -> Any:
    """资金流汇总（退票支票不计）"""
    conditions = [effective_payments()]
    if start_date:
        conditions.append(Payment.transaction_date >= start_date)
    if end_date:
        conditions.append(Payment.transaction_date <= end_date)

    result = await db.execute(
        select(
            Payment.sales_order_id.is_not(None).label("inflow"),
            Payment.mode,
            func.count(Payment.id),
            func.coalesce(func.sum(Payment.amount), 0),
        )
        .outerjoin(ChequeTransaction, ChequeTransaction.payment_id == Payment.id)
        .where(*conditions)
        .group_by("inflow", Payment.mode)
    )

    total_inflow = total_outflow = 0.0
    inflow_count = outflow_count = 0
    by_mode = {}
    for inflow, mode, count, amount in result.all():
        amount = float(amount or 0)
        if inflow:
            total_inflow += amount
            inflow_count += count
            by_mode[mode] = by_mode.get(mode, 0.0) + amount
        else:
            total_outflow += amount
            outflow_count += count
            by_mode[mode] = by_mode.get(mode, 0.0) - amount

    status_result = await db.execute(
        select(ChequeTransaction.cheque_status, func.count(ChequeTransaction.id))
        .group_by(ChequeTransaction.cheque_status)
    )
    cheque_counts = dict(status_result.all())

    return CashflowSummary(
        total_inflow=round(total_inflow, 2),
        total_outflow=round(total_outflow, 2),
        net_cashflow=round(total_inflow - total_outflow, 2),
        inflow_count=inflow_count,
        outflow_count=outflow_count,
        by_mode={mode: round(value, 2) for mode, value in by_mode.items()},
        pending_cheques=cheque_counts.get("PENDING", 0),
        bounced_cheques=cheque_counts.get("BOUNCED", 0),
    )


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    *,
    db: AsyncSession = Depends(get_db),
    payment_id: int,
) -> Any:
    payment = await db.get(Payment, payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return build_payment_response(payment)


@router.delete("/{payment_id}")
async def delete_payment(
    *,
    db: AsyncSession = Depends(get_db),
    payment_id: int,
) -> Any:
    """删除收付款（连同支票），销售单付款状态重新推导"""
    payment = await db.get(Payment, payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    sales_order_id = payment.sales_order_id

    await db.execute(delete(ChequeTransaction).where(ChequeTransaction.payment_id == payment_id))
    await db.execute(delete(Payment).where(Payment.id == payment_id))
    if sales_order_id:
        order = await db.get(SalesOrder, sales_order_id)
        if order:
            await refresh_sales_payment_status(db, order)

    await db.commit()
    logger.info(f"删除付款 #{payment_id}")
    return {"message": "Payment deleted"}


# ===== 支票 =====
def base_cheque_query():
    payment = selectinload(ChequeTransaction.payment)
    return select(ChequeTransaction).options(
        payment.selectinload(Payment.sales_order).selectinload(SalesOrder.customer),
        payment.selectinload(Payment.thread_purchase).selectinload(ThreadPurchase.vendor),
    )


def build_cheque_item(cheque: ChequeTransaction) -> ChequeListItem:
    """支票列表项，附带往来单位和关联单据"""
    payment = cheque.payment
    item = ChequeListItem(
        **ChequeResponse.model_validate(cheque).model_dump(),
        direction=payment.direction,
    )
    if payment.sales_order:
        order = payment.sales_order
        item.party_name = order.customer.name if order.customer else ""
        item.related_id = order.id
        item.related_identifier = order.order_number
    elif payment.thread_purchase:
        purchase = payment.thread_purchase
        item.party_name = purchase.vendor.name if purchase.vendor else ""
        item.related_id = purchase.id
        item.related_identifier = purchase.thread_type
    return item


async def load_cheque(db: AsyncSession, cheque_id: int) -> Optional[ChequeTransaction]:
    result = await db.execute(
        base_cheque_query()
        .where(ChequeTransaction.id == cheque_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@cheques_router.get("", response_model=ChequeListResponse)
async def list_cheques(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, pattern="^(PENDING|CLEARED|BOUNCED)$"),
    start_date: Optional[datetime] = Query(None, description="开票日期起"),
    end_date: Optional[datetime] = Query(None, description="开票日期止"),
) -> Any:
    """获取支票列表"""
    query = base_cheque_query()
    conditions = []
    if status:
        conditions.append(ChequeTransaction.cheque_status == status)
    if start_date:
        conditions.append(ChequeTransaction.issue_date >= start_date)
    if end_date:
        conditions.append(ChequeTransaction.issue_date <= end_date)
    if conditions:
        query = query.where(*conditions)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    query = query.order_by(ChequeTransaction.issue_date.desc(), ChequeTransaction.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    cheques = (await db.execute(query)).scalars().all()

    return ChequeListResponse(
        data=[build_cheque_item(c) for c in cheques],
        total=total,
        page=page,
        limit=limit,
    )


@cheques_router.patch("/{cheque_id}", response_model=ChequeListItem)
async def update_cheque_status(
    *,
    db: AsyncSession = Depends(get_db),
    cheque_id: int,
    status_in: ChequeStatusUpdate,
) -> Any:
    """更新支票状态

    - CLEARED: 记录兑现日期（未指定则为当前时间）
    - BOUNCED: 清空兑现日期，该笔款项不再计入已收
    """
    cheque = await load_cheque(db, cheque_id)
    if not cheque:
        raise HTTPException(status_code=404, detail="Cheque not found")

    old_status = cheque.cheque_status
    cheque.cheque_status = status_in.status
    if status_in.status == "CLEARED":
        cheque.clearance_date = status_in.clearance_date or datetime.utcnow()
    else:
        cheque.clearance_date = None
    if status_in.remarks is not None:
        cheque.remarks = status_in.remarks

    if cheque.payment.sales_order:
        await refresh_sales_payment_status(db, cheque.payment.sales_order)

    await db.commit()
    logger.info(f"支票 {cheque.cheque_number} 状态: {old_status} → {status_in.status}")

    cheque = await load_cheque(db, cheque_id)
    return build_cheque_item(cheque)
