"""收付款联动操作 - 采购单、销售单共用"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from textile_erp.core.logging_config import get_logger
from textile_erp.models.payment import Payment, ChequeTransaction
from textile_erp.models.sales import SalesOrder, derive_payment_status
from textile_erp.schemas.payment import PaymentResponse, ChequeResponse

logger = get_logger(__name__)


async def create_payment(
    db: AsyncSession,
    *,
    amount,
    mode: str,
    sales_order_id: Optional[int] = None,
    thread_purchase_id: Optional[int] = None,
    description: Optional[str] = None,
    reference_number: Optional[str] = None,
    remarks: Optional[str] = None,
    cheque_number: Optional[str] = None,
    bank: Optional[str] = None,
    branch: Optional[str] = None,
    transaction_date: Optional[datetime] = None,
) -> Payment:
    """登记一笔付款，支票方式同时生成支票记录"""
    amount = Decimal(str(amount))
    payment = Payment(
        sales_order_id=sales_order_id,
        thread_purchase_id=thread_purchase_id,
        transaction_date=transaction_date or datetime.utcnow(),
        amount=amount,
        mode=mode,
        description=description,
        reference_number=reference_number or (cheque_number if mode == "CHEQUE" else None),
        remarks=remarks,
    )
    db.add(payment)
    await db.flush()

    if mode == "CHEQUE":
        db.add(ChequeTransaction(
            payment_id=payment.id,
            cheque_number=cheque_number,
            bank=bank,
            branch=branch,
            cheque_amount=amount,
            issue_date=payment.transaction_date,
            cheque_status="PENDING",
        ))
        await db.flush()

    logger.info(f"登记付款 #{payment.id}: {amount} {mode} (销售单={sales_order_id}, 采购单={thread_purchase_id})")
    return payment


async def get_paid_amount(
    db: AsyncSession,
    *,
    sales_order_id: Optional[int] = None,
    thread_purchase_id: Optional[int] = None,
) -> Decimal:
    """已付金额合计（退票的支票不计）"""
    await db.flush()
    query = (
        select(func.coalesce(func.sum(Payment.amount), 0))
        .outerjoin(ChequeTransaction, ChequeTransaction.payment_id == Payment.id)
        .where(or_(ChequeTransaction.id.is_(None), ChequeTransaction.cheque_status != "BOUNCED"))
    )
    if sales_order_id is not None:
        query = query.where(Payment.sales_order_id == sales_order_id)
    if thread_purchase_id is not None:
        query = query.where(Payment.thread_purchase_id == thread_purchase_id)
    result = await db.execute(query)
    return Decimal(str(result.scalar() or 0))


async def refresh_sales_payment_status(db: AsyncSession, order: SalesOrder) -> str:
    """按已收金额重新推导销售单付款状态"""
    paid = await get_paid_amount(db, sales_order_id=order.id)
    order.payment_status = derive_payment_status(order.total_sale, paid)
    return order.payment_status


def build_payment_response(payment: Payment) -> PaymentResponse:
    """构建收付款响应（支票信息一并返回）"""
    cheque = payment.cheque_transaction
    return PaymentResponse(
        id=payment.id,
        sales_order_id=payment.sales_order_id,
        thread_purchase_id=payment.thread_purchase_id,
        transaction_date=payment.transaction_date,
        amount=float(payment.amount or 0),
        mode=payment.mode,
        description=payment.description,
        reference_number=payment.reference_number,
        remarks=payment.remarks,
        direction=payment.direction,
        cheque=ChequeResponse.model_validate(cheque) if cheque else None,
        created_at=payment.created_at,
    )
