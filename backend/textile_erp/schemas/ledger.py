"""账本 Schema"""
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator
from datetime import datetime

from textile_erp.schemas.common import PAYMENT_MODE_PATTERN, reject_null, to_naive_utc


class LedgerEntryCreate(BaseModel):
    entry_type: str = Field(..., pattern="^(PAYABLE|RECEIVABLE)$")
    entry_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    description: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0)
    vendor_id: Optional[int] = None
    customer_id: Optional[int] = None
    party_name: Optional[str] = Field(None, max_length=100, description="未建档的往来单位")
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    @field_validator("entry_date", "due_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_party(self):
        # 应付对应供应商，应收对应客户
        if self.entry_type == "PAYABLE" and not (self.vendor_id or self.party_name):
            raise ValueError("Payable entries require a vendor")
        if self.entry_type == "RECEIVABLE" and not (self.customer_id or self.party_name):
            raise ValueError("Receivable entries require a customer")
        return self


class LedgerEntryUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    due_date: Optional[datetime] = None
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    # 仅支持手工作废
    status: Optional[str] = Field(None, pattern="^CANCELLED$")

    @field_validator("due_date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @field_validator("description", "status")
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        return reject_null(v, info.field_name)


class LedgerTransactionCreate(BaseModel):
    amount: float = Field(..., gt=0)
    payment_mode: str = Field(..., pattern=PAYMENT_MODE_PATTERN)
    transaction_date: Optional[datetime] = None
    cheque_number: Optional[str] = Field(None, max_length=50)
    bank_name: Optional[str] = Field(None, max_length=100)
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    @field_validator("transaction_date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_cheque(self):
        if self.payment_mode == "CHEQUE" and not self.cheque_number:
            raise ValueError("Cheque number is required for cheque payments")
        return self


class LedgerTransactionResponse(BaseModel):
    id: int
    ledger_entry_id: int
    transaction_date: datetime
    amount: float
    payment_mode: str
    cheque_number: Optional[str] = None
    bank_name: Optional[str] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LedgerEntryResponse(BaseModel):
    id: int
    entry_type: str
    entry_date: datetime
    due_date: Optional[datetime] = None
    description: str
    amount: float
    remaining_amount: float
    paid_amount: float
    status: str
    vendor_id: Optional[int] = None
    customer_id: Optional[int] = None
    party_name: Optional[str] = None
    display_party: str = ""
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    transactions: List[LedgerTransactionResponse] = []

    class Config:
        from_attributes = True


class LedgerEntryListResponse(BaseModel):
    data: List[LedgerEntryResponse]
    total: int
    page: int
    limit: int


class LedgerTransactionResult(BaseModel):
    transaction: LedgerTransactionResponse
    entry: LedgerEntryResponse


class LedgerSummary(BaseModel):
    total_payables: float  # 未结应付
    total_receivables: float  # 未结应收
    net_position: float  # 应收 - 应付
    status_counts: Dict[str, int]
