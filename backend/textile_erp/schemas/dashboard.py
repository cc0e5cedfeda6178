"""仪表盘 Schema"""
from typing import Dict, List
from pydantic import BaseModel


class InventoryOverview(BaseModel):
    total_value: float
    item_count: int
    low_stock_count: int


class SalesOverview(BaseModel):
    total_sales: float  # 近30天
    order_count: int
    pending_payments: int


class TopProductType(BaseModel):
    product_type: str
    total_quantity: int
    total_value: float


class LedgerOverview(BaseModel):
    outstanding_payables: float
    outstanding_receivables: float


class DashboardSummary(BaseModel):
    inventory: InventoryOverview
    sales: SalesOverview
    top_product_types: List[TopProductType]
    production_stats: Dict[str, int]
    dyeing_stats: Dict[str, int]
    ledger: LedgerOverview
