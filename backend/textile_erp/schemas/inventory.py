"""库存 Schema"""
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from datetime import datetime

from textile_erp.schemas.common import reject_null, to_naive_utc

PRODUCT_TYPE_PATTERN = "^(THREAD|FABRIC)$"
TRANSACTION_TYPE_PATTERN = "^(PURCHASE|PRODUCTION|SALES|ADJUSTMENT|TRANSFER)$"


# ===== 库存项目 =====
class InventoryCreate(BaseModel):
    item_code: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=200)
    product_type: str = Field(..., pattern=PRODUCT_TYPE_PATTERN)
    # 类型可以按ID指定，也可以按名称（不存在则自动创建）
    thread_type_id: Optional[int] = None
    fabric_type_id: Optional[int] = None
    type_name: Optional[str] = Field(None, max_length=100, description="纱线/布料类型名称")
    current_quantity: int = Field(default=0, ge=0)
    unit_of_measure: str = Field(default="meters", max_length=20)
    location: Optional[str] = Field(None, max_length=100)
    min_stock_level: int = Field(default=0, ge=0)
    cost_per_unit: float = Field(default=0, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class InventoryUpdate(BaseModel):
    item_code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    current_quantity: Optional[int] = Field(None, ge=0)
    unit_of_measure: Optional[str] = Field(None, max_length=20)
    location: Optional[str] = Field(None, max_length=100)
    min_stock_level: Optional[int] = Field(None, ge=0)
    cost_per_unit: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator(
        "item_code", "description", "current_quantity", "unit_of_measure", "min_stock_level", "cost_per_unit"
    )
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        return reject_null(v, info.field_name)


class InventoryTransactionResponse(BaseModel):
    id: int
    inventory_id: int
    transaction_type: str
    transaction_date: datetime
    quantity: int
    remaining_quantity: int
    unit_cost: Optional[float] = None
    total_cost: Optional[float] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    thread_purchase_id: Optional[int] = None
    dyeing_process_id: Optional[int] = None
    fabric_production_id: Optional[int] = None
    sales_order_id: Optional[int] = None
    notes: Optional[str] = None

    item_code: str = ""
    item_description: str = ""

    class Config:
        from_attributes = True


class InventoryResponse(BaseModel):
    id: int
    item_code: str
    description: str
    product_type: str
    thread_type_id: Optional[int] = None
    fabric_type_id: Optional[int] = None
    type_name: str = ""
    current_quantity: int
    unit_of_measure: str
    location: Optional[str] = None
    min_stock_level: int
    cost_per_unit: float
    sale_price: Optional[float] = None
    last_restocked: Optional[datetime] = None
    notes: Optional[str] = None
    is_low_stock: bool
    stock_value: float
    created_at: datetime
    updated_at: Optional[datetime] = None

    recent_transactions: List[InventoryTransactionResponse] = []

    class Config:
        from_attributes = True


class InventoryListResponse(BaseModel):
    data: List[InventoryResponse]
    total: int
    page: int
    limit: int


# ===== 库存流水 =====
class InventoryTransactionCreate(BaseModel):
    """手工登记库存流水

    quantity 填正数，方向由流水类型决定：
    PURCHASE/PRODUCTION/ADJUSTMENT 入库，SALES/TRANSFER 出库
    """
    inventory_id: int
    transaction_type: str = Field(..., pattern=TRANSACTION_TYPE_PATTERN)
    quantity: int = Field(..., gt=0)
    unit_cost: Optional[float] = Field(None, ge=0)
    transaction_date: Optional[datetime] = None
    reference_type: Optional[str] = Field(None, max_length=50)
    reference_id: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("transaction_date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class InventoryTransactionListResponse(BaseModel):
    data: List[InventoryTransactionResponse]
    total: int
    page: int
    limit: int


class InventoryStats(BaseModel):
    total_items: int
    by_product_type: Dict[str, int]
    low_stock_count: int
    out_of_stock_count: int
    total_quantity: int
    total_value: float
