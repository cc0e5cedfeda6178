"""收付款 / 支票 Schema"""
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime

from textile_erp.schemas.common import PAYMENT_MODE_PATTERN, check_cheque_details, to_naive_utc


class PaymentCreate(BaseModel):
    """登记收付款（销售收款或采购付款二选一）"""
    sales_order_id: Optional[int] = None
    thread_purchase_id: Optional[int] = None
    amount: float = Field(..., gt=0)
    mode: str = Field(..., pattern=PAYMENT_MODE_PATTERN)
    transaction_date: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=200)
    reference_number: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = None

    # 支票信息
    cheque_number: Optional[str] = Field(None, max_length=50)
    bank: Optional[str] = Field(None, max_length=100)
    branch: Optional[str] = Field(None, max_length=100)

    @field_validator("transaction_date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_target(self):
        if bool(self.sales_order_id) == bool(self.thread_purchase_id):
            raise ValueError("Exactly one of sales_order_id or thread_purchase_id is required")
        check_cheque_details(self.mode, self.cheque_number, self.bank)
        return self


class ChequeResponse(BaseModel):
    id: int
    payment_id: int
    cheque_number: str
    bank: str
    branch: Optional[str] = None
    cheque_amount: float
    issue_date: datetime
    clearance_date: Optional[datetime] = None
    cheque_status: str
    remarks: Optional[str] = None

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    sales_order_id: Optional[int] = None
    thread_purchase_id: Optional[int] = None
    transaction_date: datetime
    amount: float
    mode: str
    description: Optional[str] = None
    reference_number: Optional[str] = None
    remarks: Optional[str] = None
    direction: str  # IN / OUT
    cheque: Optional[ChequeResponse] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    data: List[PaymentResponse]
    total: int
    page: int
    limit: int


class CashflowSummary(BaseModel):
    """资金流汇总"""
    total_inflow: float  # 销售收款
    total_outflow: float  # 采购付款
    net_cashflow: float
    inflow_count: int
    outflow_count: int
    by_mode: Dict[str, float] = {}  # 按付款方式汇总（流入为正，流出为负）
    pending_cheques: int = 0
    bounced_cheques: int = 0


# ===== 支票 =====
class ChequeListItem(ChequeResponse):
    direction: str  # IN: 收到客户支票; OUT: 开给供应商
    party_name: str = ""  # 客户或供应商名称
    related_id: Optional[int] = None  # 销售单ID或采购单ID
    related_identifier: Optional[str] = None  # 销售单号或纱线类型


class ChequeListResponse(BaseModel):
    data: List[ChequeListItem]
    total: int
    page: int
    limit: int


class ChequeStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(PENDING|CLEARED|BOUNCED)$")
    clearance_date: Optional[datetime] = None
    remarks: Optional[str] = None

    @field_validator("clearance_date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)
