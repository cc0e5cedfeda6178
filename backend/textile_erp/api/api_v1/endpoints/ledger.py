"""账本API - 应付/应收登记与结算"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from textile_erp.core.deps import get_db
from textile_erp.core.logging_config import get_logger
from textile_erp.models.ledger import LedgerEntry, LedgerTransaction, LEDGER_STATUSES
from textile_erp.models.vendor import Vendor
from textile_erp.models.customer import Customer
from textile_erp.schemas.ledger import (
    LedgerEntryCreate, LedgerEntryUpdate, LedgerEntryResponse, LedgerEntryListResponse,
    LedgerTransactionCreate, LedgerTransactionResponse, LedgerTransactionResult, LedgerSummary
)
from .inventory_ops import to_decimal

router = APIRouter()
logger = get_logger(__name__)

# 已结清或已作废的账目不再接受收付款
CLOSED_STATUSES = ("COMPLETED", "CANCELLED")


def base_entry_query():
    return select(LedgerEntry).options(
        selectinload(LedgerEntry.vendor),
        selectinload(LedgerEntry.customer),
        selectinload(LedgerEntry.transactions),
    )


async def load_entry(db: AsyncSession, entry_id: int) -> Optional[LedgerEntry]:
    result = await db.execute(
        base_entry_query()
        .where(LedgerEntry.id == entry_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def build_entry_response(entry: LedgerEntry, detail: bool = True) -> LedgerEntryResponse:
    response = LedgerEntryResponse.model_validate(entry)
    if detail:
        response.transactions = sorted(
            (LedgerTransactionResponse.model_validate(t) for t in entry.transactions),
            key=lambda t: (t.transaction_date, t.id),
            reverse=True,
        )
    else:
        response.transactions = []
    return response


@router.get("", response_model=LedgerEntryListResponse)
async def list_ledger_entries(
    *,
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    entry_type: Optional[str] = Query(None, pattern="^(PAYABLE|RECEIVABLE)$"),
    status: Optional[str] = Query(None, pattern="^(PENDING|PARTIAL|COMPLETED|CANCELLED)$"),
    vendor_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, description="搜索摘要/参考号/往来单位"),
) -> Any:
    """获取账目列表"""
    query = base_entry_query()
    conditions = []
    if entry_type:
        conditions.append(LedgerEntry.entry_type == entry_type)
    if status:
        conditions.append(LedgerEntry.status == status)
    if vendor_id:
        conditions.append(LedgerEntry.vendor_id == vendor_id)
    if customer_id:
        conditions.append(LedgerEntry.customer_id == customer_id)
    if search:
        keyword = f"%{search}%"
        query = (
            query.outerjoin(Vendor, Vendor.id == LedgerEntry.vendor_id)
            .outerjoin(Customer, Customer.id == LedgerEntry.customer_id)
        )
        conditions.append(or_(
            LedgerEntry.description.ilike(keyword),
            LedgerEntry.reference.ilike(keyword),
            LedgerEntry.party_name.ilike(keyword),
            Vendor.name.ilike(keyword),
            Customer.name.ilike(keyword),
        ))
    if conditions:
        query = query.where(*conditions)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    query = query.order_by(LedgerEntry.entry_date.desc(), LedgerEntry.id.desc())
    query = query.offset((page - 1) * limit).limit(limit)
    entries = (await db.execute(query)).scalars().unique().all()

    return LedgerEntryListResponse(
        data=[build_entry_response(e, detail=False) for e in entries],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=LedgerEntryResponse, status_code=201)
async def create_ledger_entry(
    *,
    db: AsyncSession = Depends(get_db),
    entry_in: LedgerEntryCreate,
) -> Any:
    """新建账目（应付对应供应商，应收对应客户）"""
    vendor_id = customer_id = None
    if entry_in.entry_type == "PAYABLE" and entry_in.vendor_id:
        if not await db.get(Vendor, entry_in.vendor_id):
            raise HTTPException(status_code=404, detail="Vendor not found")
        vendor_id = entry_in.vendor_id
    if entry_in.entry_type == "RECEIVABLE" and entry_in.customer_id:
        if not await db.get(Customer, entry_in.customer_id):
            raise HTTPException(status_code=404, detail="Customer not found")
        customer_id = entry_in.customer_id

    amount = to_decimal(entry_in.amount)
    entry = LedgerEntry(
        entry_type=entry_in.entry_type,
        entry_date=entry_in.entry_date or datetime.utcnow(),
        due_date=entry_in.due_date,
        description=entry_in.description,
        amount=amount,
        remaining_amount=amount,
        status="PENDING",
        vendor_id=vendor_id,
        customer_id=customer_id,
        party_name=entry_in.party_name,
        reference=entry_in.reference,
        notes=entry_in.notes,
    )
    db.add(entry)
    await db.commit()
    logger.info(f"新建账目 #{entry.id}: {entry.entry_type} {amount}")

    entry = await load_entry(db, entry.id)
    return build_entry_response(entry)


@router.get("/summary", response_model=LedgerSummary)
async def get_ledger_summary(
    db: AsyncSession = Depends(get_db),
) -> Any:
    """未结应付/应收汇总"""
    outstanding = await db.execute(
        select(LedgerEntry.entry_type, func.coalesce(func.sum(LedgerEntry.remaining_amount), 0))
        .where(LedgerEntry.status.in_(("PENDING", "PARTIAL")))
        .group_by(LedgerEntry.entry_type)
    )
    totals = {entry_type: float(amount or 0) for entry_type, amount in outstanding.all()}

    counts = await db.execute(
        select(LedgerEntry.status, func.count(LedgerEntry.id)).group_by(LedgerEntry.status)
    )
    status_counts = {status: 0 for status in LEDGER_STATUSES}
    status_counts.update(dict(counts.all()))

    payables = round(totals.get("PAYABLE", 0.0), 2)
    receivables = round(totals.get("RECEIVABLE", 0.0), 2)
    return LedgerSummary(
        total_payables=payables,
        total_receivables=receivables,
        net_position=round(receivables - payables, 2),
        status_counts=status_counts,
    )


@router.get("/{entry_id}", response_model=LedgerEntryResponse)
async def get_ledger_entry(
    *,
    db: AsyncSession = Depends(get_db),
    entry_id: int,
) -> Any:
    entry = await load_entry(db, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Ledger entry not found")
    return build_entry_response(entry)


@router.patch("/{entry_id}", response_model=LedgerEntryResponse)
async def update_ledger_entry(
    *,
    db: AsyncSession = Depends(get_db),
    entry_id: int,
    entry_in: LedgerEntryUpdate,
) -> Any:
    """更新账目信息，status 只允许作废"""
    entry = await load_entry(db, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Ledger entry not found")

    update_data = entry_in.model_dump(exclude_unset=True)
    if update_data.get("status") == "CANCELLED" and entry.status == "COMPLETED":
        raise HTTPException(status_code=400, detail="Cannot cancel a completed ledger entry")
    for field, value in update_data.items():
        setattr(entry, field, value)

    await db.commit()
    entry = await load_entry(db, entry_id)
    return build_entry_response(entry)


@router.delete("/{entry_id}")
async def delete_ledger_entry(
    *,
    db: AsyncSession = Depends(get_db),
    entry_id: int,
) -> Any:
    """删除账目（已有收付款记录的只能作废）"""
    entry = await db.get(LedgerEntry, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Ledger entry not found")

    transaction_count = (await db.execute(
        select(func.count(LedgerTransaction.id)).where(LedgerTransaction.ledger_entry_id == entry_id)
    )).scalar() or 0
    if transaction_count > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete ledger entry with transactions. Cancel it instead."
        )

    await db.execute(delete(LedgerEntry).where(LedgerEntry.id == entry_id))
    await db.commit()
    logger.info(f"删除账目 #{entry_id}")
    return {"message": "Ledger entry deleted"}


@router.post("/{entry_id}/transactions", response_model=LedgerTransactionResult, status_code=201)
async def create_ledger_transaction(
    *,
    db: AsyncSession = Depends(get_db),
    entry_id: int,
    transaction_in: LedgerTransactionCreate,
) -> Any:
    """登记一笔收付款，扣减未结金额"""
    entry = await load_entry(db, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Ledger entry not found")
    if entry.status in CLOSED_STATUSES:
        raise HTTPException(status_code=400, detail=f"Ledger entry is {entry.status.lower()}")

    amount = to_decimal(transaction_in.amount)
    if amount > to_decimal(entry.remaining_amount):
        raise HTTPException(
            status_code=400,
            detail=f"Payment amount exceeds remaining balance ({entry.remaining_amount})"
        )

    transaction = LedgerTransaction(
        ledger_entry_id=entry.id,
        transaction_date=transaction_in.transaction_date or datetime.utcnow(),
        amount=amount,
        payment_mode=transaction_in.payment_mode,
        cheque_number=transaction_in.cheque_number,
        bank_name=transaction_in.bank_name,
        reference_number=transaction_in.reference_number,
        notes=transaction_in.notes,
    )
    db.add(transaction)
    entry.apply_payment(amount)

    await db.commit()
    logger.info(f"账目 #{entry.id} 登记 {amount}，余额 {entry.remaining_amount}，状态 {entry.status}")

    entry = await load_entry(db, entry_id)
    return LedgerTransactionResult(
        transaction=LedgerTransactionResponse.model_validate(transaction),
        entry=build_entry_response(entry),
    )
