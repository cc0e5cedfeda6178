"""
纱线采购模型

采购单是整条生产链的起点：
收货 → 入库（原纱库存） → 染色 → 织布 → 销售
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from textile_erp.db.base import Base


COLOR_STATUSES = ("RAW", "COLORED")


class ThreadPurchase(Base):
    __tablename__ = "thread_purchases"

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)

    order_date = Column(DateTime, nullable=False, default=datetime.utcnow, comment="下单日期")
    thread_type = Column(String(100), nullable=False, comment="纱线类型")
    color = Column(String(50), comment="颜色")
    # RAW: 原色纱，需要染色; COLORED: 已染色
    color_status = Column(String(20), nullable=False, default="RAW", comment="颜色状态")

    quantity = Column(Integer, nullable=False, comment="采购数量")
    unit_price = Column(DECIMAL(12, 2), nullable=False, comment="单价")
    total_cost = Column(DECIMAL(12, 2), nullable=False, comment="总成本")
    unit_of_measure = Column(String(20), nullable=False, default="meters", comment="计量单位")

    delivery_date = Column(DateTime, comment="预计交货日期")
    remarks = Column(Text, comment="备注")
    reference = Column(String(100), comment="外部单号")

    received = Column(Boolean, nullable=False, default=False, comment="是否已收货")
    received_at = Column(DateTime, comment="收货时间")
    # PENDING: 未入库; IN_STOCK: 已入库
    inventory_status = Column(String(20), comment="入库状态")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 关系
    vendor = relationship("Vendor", back_populates="thread_purchases")
    dyeing_processes = relationship("DyeingProcess", back_populates="thread_purchase")
    fabric_productions = relationship("FabricProduction", back_populates="source_thread")
    payments = relationship("Payment", back_populates="thread_purchase")
    inventory_transactions = relationship("InventoryTransaction", back_populates="thread_purchase")

    def __repr__(self):
        return f"<ThreadPurchase {self.id}: {self.thread_type} x {self.quantity}>"

    @property
    def total_payments(self) -> Decimal:
        """已付金额（退票的支票不计）"""
        return sum(
            (p.amount or Decimal("0") for p in (self.payments or []) if p.is_effective),
            Decimal("0"),
        )

    @property
    def remaining_balance(self) -> Decimal:
        return max(Decimal("0"), (self.total_cost or Decimal("0")) - self.total_payments)

    @property
    def payment_status(self) -> str:
        paid = self.total_payments
        if paid > 0 and paid >= (self.total_cost or Decimal("0")):
            return "PAID"
        if paid > 0:
            return "PARTIAL"
        return "PENDING"
