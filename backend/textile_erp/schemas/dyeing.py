"""染色工序 Schema"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator
from datetime import datetime

from textile_erp.schemas.common import ensure_not_future, reject_null, to_naive_utc

RESULT_STATUS_PATTERN = "^(PENDING|COMPLETED|PARTIAL|FAILED)$"
COLOR_CODE_PATTERN = "^#[0-9A-Fa-f]{6}$"


class DyeingProcessCreate(BaseModel):
    thread_purchase_id: int
    dye_date: Optional[datetime] = None
    dye_parameters: Optional[Dict[str, Any]] = None
    color_code: Optional[str] = Field(None, pattern=COLOR_CODE_PATTERN, description="#RRGGBB")
    color_name: Optional[str] = Field(None, max_length=50)
    dye_quantity: int = Field(..., gt=0, description="投入原纱数量")
    output_quantity: int = Field(..., ge=0, description="产出数量")
    labor_cost: float = Field(default=0, ge=0)
    dye_material_cost: float = Field(default=0, ge=0)
    total_cost: Optional[float] = Field(None, ge=0, description="不填则为 人工+染料")
    result_status: str = Field(..., pattern=RESULT_STATUS_PATTERN)
    completion_date: Optional[datetime] = None
    remarks: Optional[str] = None
    add_to_inventory: bool = Field(default=True, description="完成时染色纱自动入库")

    @field_validator("dye_date")
    @classmethod
    def dye_date_not_future(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_not_future(v, "Dye date")

    @field_validator("completion_date")
    @classmethod
    def normalize_completion(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_completion(self):
        if self.result_status == "COMPLETED" and self.completion_date is None:
            raise ValueError("Completion date is required for completed processes")
        return self


class DyeingProcessUpdate(BaseModel):
    dye_date: Optional[datetime] = None
    dye_parameters: Optional[Dict[str, Any]] = None
    color_code: Optional[str] = Field(None, pattern=COLOR_CODE_PATTERN)
    color_name: Optional[str] = Field(None, max_length=50)
    dye_quantity: Optional[int] = Field(None, gt=0)
    output_quantity: Optional[int] = Field(None, ge=0)
    labor_cost: Optional[float] = Field(None, ge=0)
    dye_material_cost: Optional[float] = Field(None, ge=0)
    total_cost: Optional[float] = Field(None, ge=0)
    result_status: Optional[str] = Field(None, pattern=RESULT_STATUS_PATTERN)
    completion_date: Optional[datetime] = None
    remarks: Optional[str] = None
    add_to_inventory: bool = True

    @field_validator("dye_date")
    @classmethod
    def dye_date_not_future(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_not_future(v, "Dye date")

    @field_validator("completion_date")
    @classmethod
    def normalize_completion(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @field_validator("dye_date", "dye_quantity", "output_quantity", "result_status")
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        return reject_null(v, info.field_name)


class DyeingProcessResponse(BaseModel):
    id: int
    thread_purchase_id: int
    dye_date: datetime
    dye_parameters: Optional[Dict[str, Any]] = None
    color_code: Optional[str] = None
    color_name: Optional[str] = None
    dye_quantity: int
    output_quantity: int
    labor_cost: Optional[float] = None
    dye_material_cost: Optional[float] = None
    total_cost: Optional[float] = None
    result_status: str
    inventory_status: Optional[str] = None
    completion_date: Optional[datetime] = None
    remarks: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    # 关联信息
    thread_type: str = ""
    vendor_name: str = ""
    unit_of_measure: str = ""
    wastage: int = 0
    wastage_percentage: float = 0

    class Config:
        from_attributes = True


class DyeingProcessListResponse(BaseModel):
    data: List[DyeingProcessResponse]
    total: int
    page: int
    limit: int


class WastageInfo(BaseModel):
    amount: int
    percentage: float


class InventoryUsage(BaseModel):
    """原纱库存变动"""
    before: int
    used: int
    remaining: int


class DyeingProcessCreateResponse(BaseModel):
    process: DyeingProcessResponse
    wastage: WastageInfo
    inventory: InventoryUsage
