"""布料生产 Schema"""
from typing import Optional, List
from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator
from datetime import datetime

from textile_erp.schemas.common import reject_null, to_naive_utc

PRODUCTION_STATUS_PATTERN = "^(PENDING|IN_PROGRESS|COMPLETED|CANCELLED)$"


class FabricProductionCreate(BaseModel):
    # 纱线来源（至少一项）：采购单 / 染色工序 / 库存项目
    source_thread_id: Optional[int] = None
    dyeing_process_id: Optional[int] = None
    inventory_id: Optional[int] = None

    production_date: Optional[datetime] = None
    fabric_type: str = Field(..., min_length=1, max_length=100)
    dimensions: str = Field(..., min_length=1, max_length=100)
    batch_number: str = Field(..., min_length=1, max_length=50)
    quantity_produced: int = Field(..., gt=0)
    thread_used: int = Field(..., gt=0)
    thread_wastage: int = Field(default=0, ge=0)
    unit_of_measure: str = Field(default="meters", max_length=20)
    production_cost: float = Field(default=0, ge=0)
    labor_cost: float = Field(default=0, ge=0)
    total_cost: Optional[float] = Field(None, ge=0)
    status: str = Field(default="COMPLETED", pattern=PRODUCTION_STATUS_PATTERN)
    completion_date: Optional[datetime] = None
    remarks: Optional[str] = None

    # 合并到同类型同规格的已有布料库存
    single_inventory_entry: bool = False

    @field_validator("production_date", "completion_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_source(self):
        if not (self.source_thread_id or self.dyeing_process_id or self.inventory_id):
            raise ValueError("A thread source is required: source_thread_id, dyeing_process_id or inventory_id")
        return self


class FabricProductionUpdate(BaseModel):
    production_date: Optional[datetime] = None
    fabric_type: Optional[str] = Field(None, min_length=1, max_length=100)
    dimensions: Optional[str] = Field(None, min_length=1, max_length=100)
    batch_number: Optional[str] = Field(None, min_length=1, max_length=50)
    quantity_produced: Optional[int] = Field(None, gt=0)
    thread_used: Optional[int] = Field(None, gt=0)
    thread_wastage: Optional[int] = Field(None, ge=0)
    production_cost: Optional[float] = Field(None, ge=0)
    labor_cost: Optional[float] = Field(None, ge=0)
    total_cost: Optional[float] = Field(None, ge=0)
    status: Optional[str] = Field(None, pattern=PRODUCTION_STATUS_PATTERN)
    completion_date: Optional[datetime] = None
    remarks: Optional[str] = None

    @field_validator("production_date", "completion_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @field_validator(
        "production_date", "fabric_type", "dimensions", "batch_number",
        "quantity_produced", "thread_used", "status",
    )
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        return reject_null(v, info.field_name)


class FabricProductionResponse(BaseModel):
    id: int
    source_thread_id: Optional[int] = None
    dyeing_process_id: Optional[int] = None
    production_date: datetime
    fabric_type: str
    dimensions: str
    batch_number: str
    quantity_produced: int
    thread_used: int
    thread_wastage: Optional[int] = None
    unit_of_measure: str
    production_cost: Optional[float] = None
    labor_cost: Optional[float] = None
    total_cost: Optional[float] = None
    status: str
    inventory_status: Optional[str] = None
    completion_date: Optional[datetime] = None
    remarks: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    thread_type: str = ""
    color_name: str = ""
    fabric_inventory_id: Optional[int] = None

    class Config:
        from_attributes = True


class FabricProductionListResponse(BaseModel):
    data: List[FabricProductionResponse]
    total: int
    page: int
    limit: int
