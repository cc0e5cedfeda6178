"""供应商 / 客户 Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from datetime import datetime

from textile_erp.schemas.common import reject_null


# ===== 供应商 =====
class VendorBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="供应商名称")
    contact: str = Field(..., min_length=1, max_length=100, description="联系方式")
    email: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class VendorCreate(VendorBase):
    pass


class VendorUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    contact: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None

    @field_validator("name", "contact")
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        return reject_null(v, info.field_name)


class VendorPurchaseBrief(BaseModel):
    """供应商详情中的最近采购"""
    id: int
    order_date: datetime
    thread_type: str
    color: Optional[str] = None
    quantity: int
    total_cost: float
    received: bool

    class Config:
        from_attributes = True


class VendorResponse(VendorBase):
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    # 统计
    active_orders: int = 0  # 未收货的采购单
    total_purchases: float = 0  # 采购总额

    recent_purchases: List[VendorPurchaseBrief] = []

    class Config:
        from_attributes = True


class VendorListResponse(BaseModel):
    data: List[VendorResponse]
    total: int
    page: int
    limit: int


# ===== 客户 =====
class CustomerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="客户名称")
    contact: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    contact: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        return reject_null(v, info.field_name)


class CustomerResponse(CustomerBase):
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    order_count: int = 0
    total_sales: float = 0

    class Config:
        from_attributes = True


class CustomerListResponse(BaseModel):
    data: List[CustomerResponse]
    total: int
    page: int
    limit: int
