"""统计分析 Schema"""
from typing import Dict, List, Optional
from pydantic import BaseModel


class GroupTotal(BaseModel):
    """按某一维度分组的笔数/数量/金额"""
    name: str
    count: int = 0
    quantity: int = 0
    value: float = 0


class MonthlyPoint(BaseModel):
    month: str  # YYYY-MM
    count: int = 0
    quantity: int = 0
    value: float = 0


class PaymentModeTotal(BaseModel):
    mode: str
    count: int
    amount: float
    percentage: float = 0


class PurchasePaymentMetrics(BaseModel):
    total_purchased: float
    total_paid: float
    payment_percentage: float
    payment_modes: List[PaymentModeTotal]


# ===== 纱线采购 =====
class ThreadOrderStats(BaseModel):
    total_orders: int
    pending_orders: int
    received_orders: int
    dyed_orders: int
    total_quantity: int
    total_value: float


class ColorShare(BaseModel):
    color: str
    color_status: str
    count: int
    quantity: int


class ThreadAnalytics(BaseModel):
    order_stats: ThreadOrderStats
    by_color_status: List[GroupTotal]
    top_thread_types: List[GroupTotal]
    top_vendors: List[GroupTotal]
    monthly_trends: List[MonthlyPoint]
    payment_metrics: PurchasePaymentMetrics
    color_distribution: List[ColorShare]


# ===== 染色 =====
class DyeingAnalytics(BaseModel):
    dyed_thread_in_stock: int
    raw_thread_awaiting_dyeing: int
    total_dye_quantity: int
    total_output_quantity: int
    wastage_percentage: float
    popular_colors: List[GroupTotal]
    status_distribution: Dict[str, int]
    monthly_trends: List[MonthlyPoint]
    fabric_from_dyed_thread: int


# ===== 布料生产 =====
class FabricAnalytics(BaseModel):
    range: str
    total_production: int
    total_thread_used: int
    total_cost: float
    cost_breakdown: Dict[str, float]
    monthly_production: List[MonthlyPoint]
    fabric_type_distribution: List[GroupTotal]
    status_distribution: Dict[str, int]
    dyed_thread_batches: int
    raw_thread_batches: int
    fabric_in_stock: int


# ===== 销售 =====
class TimeframePoint(BaseModel):
    label: str
    order_count: int = 0
    revenue: float = 0


class SalesAnalytics(BaseModel):
    range: str
    order_count: int
    total_revenue: float
    average_order_size: float
    sales_by_timeframe: List[TimeframePoint]
    payment_mode_distribution: Dict[str, int]
    product_distribution: Dict[str, float]  # 按小计占比 %
    payment_status_distribution: Dict[str, int]
    top_customers: List[GroupTotal]


# ===== 供应商 =====
class VendorStats(BaseModel):
    total_vendors: int
    active_vendors: int  # 近6个月有采购
    vendors_with_pending_orders: int


class VendorAnalytics(BaseModel):
    vendor_stats: VendorStats
    top_vendors_by_value: List[GroupTotal]
    top_vendors_by_orders: List[GroupTotal]
    monthly_trends: List[MonthlyPoint]
    payment_metrics: PurchasePaymentMetrics
    city_distribution: List[GroupTotal]


# ===== 资金流 =====
class DailyCashflow(BaseModel):
    date: str
    inflow: float = 0
    outflow: float = 0
    net: float = 0
    balance: float = 0


class CashflowAnalytics(BaseModel):
    period_days: int
    total_inflow: float
    total_outflow: float
    net_cashflow: float
    transaction_count: int
    payment_modes: List[PaymentModeTotal]
    cheque_status: Dict[str, int]
    time_series: List[DailyCashflow]
    largest_inflow: Optional[float] = None
    largest_outflow: Optional[float] = None
