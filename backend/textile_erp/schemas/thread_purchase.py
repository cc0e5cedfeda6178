"""纱线采购 Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator
from datetime import datetime

from textile_erp.schemas.common import PAYMENT_MODE_PATTERN, check_cheque_details, reject_null, to_naive_utc
from textile_erp.schemas.payment import PaymentResponse


class PurchasePaymentFields(BaseModel):
    """随采购单一起登记的付款"""
    payment_amount: Optional[float] = Field(None, ge=0, description="付款金额")
    payment_mode: Optional[str] = Field(None, pattern=PAYMENT_MODE_PATTERN)
    cheque_number: Optional[str] = Field(None, max_length=50)
    bank: Optional[str] = Field(None, max_length=100)
    branch: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def check_cheque(self):
        if self.payment_amount:
            check_cheque_details(self.payment_mode, self.cheque_number, self.bank)
        return self

    @property
    def has_payment(self) -> bool:
        return bool(self.payment_amount and self.payment_amount > 0 and self.payment_mode)


class ThreadPurchaseCreate(PurchasePaymentFields):
    vendor_id: int
    thread_type: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=50)
    color_status: str = Field(..., pattern="^(RAW|COLORED)$")
    quantity: int = Field(..., gt=0)
    unit_price: float = Field(..., gt=0)
    total_cost: Optional[float] = Field(None, ge=0, description="不填则按 数量×单价 计算")
    unit_of_measure: str = Field(default="meters", max_length=20)
    order_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    remarks: Optional[str] = None
    reference: Optional[str] = Field(None, max_length=100)
    received: bool = False

    # 联动操作
    add_to_inventory: bool = Field(default=True, description="已收货时自动入库")
    create_dyeing_process: bool = Field(default=False, description="原色纱自动创建待染色工序")

    @field_validator("order_date", "delivery_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class ThreadPurchaseUpdate(PurchasePaymentFields):
    vendor_id: Optional[int] = None
    thread_type: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=50)
    color_status: Optional[str] = Field(None, pattern="^(RAW|COLORED)$")
    quantity: Optional[int] = Field(None, gt=0)
    unit_price: Optional[float] = Field(None, gt=0)
    total_cost: Optional[float] = Field(None, ge=0)
    unit_of_measure: Optional[str] = Field(None, max_length=20)
    order_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    remarks: Optional[str] = None
    reference: Optional[str] = Field(None, max_length=100)
    received: Optional[bool] = None

    add_to_inventory: bool = True
    create_dyeing_process: bool = False

    @field_validator("order_date", "delivery_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @field_validator(
        "vendor_id", "thread_type", "color_status", "quantity", "unit_price", "total_cost",
        "unit_of_measure", "order_date", "received",
    )
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        return reject_null(v, info.field_name)


class DyeingBrief(BaseModel):
    id: int
    dye_date: datetime
    color_name: Optional[str] = None
    color_code: Optional[str] = None
    dye_quantity: int
    output_quantity: int
    result_status: str

    class Config:
        from_attributes = True


class ThreadPurchaseResponse(BaseModel):
    id: int
    vendor_id: int
    vendor_name: str = ""
    order_date: datetime
    thread_type: str
    color: Optional[str] = None
    color_status: str
    quantity: int
    unit_price: float
    total_cost: float
    unit_of_measure: str
    delivery_date: Optional[datetime] = None
    remarks: Optional[str] = None
    reference: Optional[str] = None
    received: bool
    received_at: Optional[datetime] = None
    inventory_status: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    # 付款情况（推导）
    payment_status: str = "PENDING"
    total_payments: float = 0
    remaining_balance: float = 0

    dyeing_processes: List[DyeingBrief] = []
    payments: List[PaymentResponse] = []

    class Config:
        from_attributes = True


class ThreadPurchaseListResponse(BaseModel):
    data: List[ThreadPurchaseResponse]
    total: int
    page: int
    limit: int


class ThreadPurchaseBulkDelete(BaseModel):
    """批量删除采购单"""
    ids: List[int] = Field(..., description="采购单ID列表")

    @field_validator("ids")
    @classmethod
    def check_ids(cls, v):
        if not v:
            raise ValueError("No thread purchase IDs provided")
        return list(dict.fromkeys(v))
