"""纱线类型 / 布料类型 Schema"""
from typing import Optional
from pydantic import BaseModel, Field
from datetime import datetime


class ProductTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    units: str = Field(default="meters", max_length=20)


class ProductTypeResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    units: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
