"""销售单 Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator
from datetime import datetime

from textile_erp.schemas.common import (
    PAYMENT_MODE_PATTERN, check_cheque_details, ensure_not_future, ensure_not_past, reject_null, to_naive_utc
)
from textile_erp.schemas.payment import PaymentResponse


class SalesOrderItemCreate(BaseModel):
    product_type: str = Field(..., pattern="^(THREAD|FABRIC)$")
    product_id: int = Field(..., description="THREAD: 采购单ID; FABRIC: 生产单ID")
    quantity_sold: int = Field(..., gt=0)
    unit_price: float = Field(..., gt=0)
    discount: float = Field(default=0, ge=0, le=100, description="折扣%")
    tax: float = Field(default=0, ge=0, le=100, description="税率%")
    subtotal: Optional[float] = Field(None, ge=0, description="客户端计算的小计，服务端会校正")
    inventory_item_id: Optional[int] = None


class SalesOrderCreate(BaseModel):
    # 客户：已有客户ID，或新客户名称（自动建档）
    customer_id: Optional[int] = None
    customer_name: Optional[str] = Field(None, max_length=100)
    customer_contact: Optional[str] = Field(None, max_length=100)
    customer_email: Optional[str] = Field(None, max_length=100)

    order_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    delivery_address: Optional[str] = Field(None, max_length=200)
    remarks: Optional[str] = None
    discount: float = Field(default=0, ge=0, le=100, description="整单折扣%")
    tax: float = Field(default=0, ge=0, le=100, description="整单税率%")
    total_sale: Optional[float] = Field(None, description="客户端计算的总额，误差超过容差则拒绝")

    payment_mode: str = Field(default="CASH", pattern=PAYMENT_MODE_PATTERN)
    payment_status: str = Field(default="PENDING", pattern="^(PAID|PARTIAL|PENDING)$")
    payment_amount: Optional[float] = Field(None, ge=0)
    cheque_number: Optional[str] = Field(None, max_length=50)
    bank: Optional[str] = Field(None, max_length=100)
    branch: Optional[str] = Field(None, max_length=100)

    update_inventory: bool = Field(default=True, description="按明细扣减库存")
    items: List[SalesOrderItemCreate] = Field(..., min_length=1)

    @field_validator("order_date")
    @classmethod
    def order_date_not_future(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_not_future(v, "Order date")

    @field_validator("delivery_date")
    @classmethod
    def delivery_date_not_past(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_not_past(v, "Delivery date")

    @model_validator(mode="after")
    def check_order(self):
        if not self.customer_id and not (self.customer_name and self.customer_name.strip()):
            raise ValueError("Customer name is required")

        seen = set()
        for item in self.items:
            key = (item.product_type, item.product_id)
            if key in seen:
                raise ValueError(f"Duplicate item: {item.product_type} #{item.product_id}")
            seen.add(key)

        if self.payment_status in ("PAID", "PARTIAL") and not self.payment_amount:
            raise ValueError("Payment amount is required when payment status is PAID or PARTIAL")
        if self.payment_amount:
            check_cheque_details(self.payment_mode, self.cheque_number, self.bank)
        return self


class SalesOrderUpdate(BaseModel):
    delivery_date: Optional[datetime] = None
    delivery_address: Optional[str] = Field(None, max_length=200)
    remarks: Optional[str] = None
    discount: Optional[float] = Field(None, ge=0, le=100)
    tax: Optional[float] = Field(None, ge=0, le=100)
    total_sale: Optional[float] = Field(None, gt=0)
    payment_status: Optional[str] = Field(None, pattern="^(PAID|PARTIAL|PENDING)$")

    # 追加收款
    payment_amount: Optional[float] = Field(None, ge=0)
    payment_mode: Optional[str] = Field(None, pattern=PAYMENT_MODE_PATTERN)
    cheque_number: Optional[str] = Field(None, max_length=50)
    bank: Optional[str] = Field(None, max_length=100)
    branch: Optional[str] = Field(None, max_length=100)

    @field_validator("delivery_date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @field_validator("total_sale", "payment_status")
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        return reject_null(v, info.field_name)

    @model_validator(mode="after")
    def check_payment(self):
        if self.payment_amount:
            check_cheque_details(self.payment_mode, self.cheque_number, self.bank)
        return self


class SalesOrderItemResponse(BaseModel):
    id: int
    product_type: str
    product_id: int
    inventory_item_id: Optional[int] = None
    quantity_sold: int
    unit_price: float
    discount: Optional[float] = None
    tax: Optional[float] = None
    subtotal: float
    item_description: str = ""

    class Config:
        from_attributes = True


class SalesOrderResponse(BaseModel):
    id: int
    order_number: str
    order_date: datetime
    customer_id: int
    customer_name: str = ""
    payment_mode: Optional[str] = None
    payment_status: str
    delivery_date: Optional[datetime] = None
    delivery_address: Optional[str] = None
    remarks: Optional[str] = None
    discount: Optional[float] = None
    tax: Optional[float] = None
    total_sale: float
    total_paid: float = 0
    remaining_amount: float = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    items: List[SalesOrderItemResponse] = []
    payments: List[PaymentResponse] = []

    class Config:
        from_attributes = True


class SalesOrderListResponse(BaseModel):
    data: List[SalesOrderResponse]
    total: int
    page: int
    limit: int
