"""
销售单模型

销售单的付款状态由已收款项推导：
- 已收 >= 总额 → PAID
- 已收 > 0 → PARTIAL
- 否则 → PENDING
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from textile_erp.db.base import Base


PAYMENT_STATUSES = ("PAID", "PARTIAL", "PENDING")


class SalesOrder(Base):
    __tablename__ = "sales_orders"

    id = Column(Integer, primary_key=True, index=True)
    # 格式：SO-20240315-001
    order_number = Column(String(50), unique=True, nullable=False, index=True, comment="销售单号")
    order_date = Column(DateTime, nullable=False, default=datetime.utcnow, comment="下单日期")
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)

    payment_mode = Column(String(20), comment="付款方式")
    payment_status = Column(String(20), nullable=False, default="PENDING", comment="付款状态")

    delivery_date = Column(DateTime, comment="交货日期")
    delivery_address = Column(String(200), comment="交货地址")
    remarks = Column(Text, comment="备注")

    # 整单折扣/税率（百分比）
    discount = Column(DECIMAL(5, 2), comment="折扣%")
    tax = Column(DECIMAL(5, 2), comment="税率%")
    total_sale = Column(DECIMAL(12, 2), nullable=False, comment="销售总额")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="sales_orders")
    items = relationship("SalesOrderItem", back_populates="sales_order")
    payments = relationship("Payment", back_populates="sales_order")
    inventory_transactions = relationship("InventoryTransaction", back_populates="sales_order")

    def __repr__(self):
        return f"<SalesOrder {self.order_number}>"

    @property
    def total_paid(self) -> Decimal:
        """已收金额（退票的支票不计）"""
        return sum(
            (p.amount or Decimal("0") for p in (self.payments or []) if p.is_effective),
            Decimal("0"),
        )

    @property
    def remaining_amount(self) -> Decimal:
        return max(Decimal("0"), (self.total_sale or Decimal("0")) - self.total_paid)

    def derive_payment_status(self) -> str:
        return derive_payment_status(self.total_sale, self.total_paid)


def derive_payment_status(total, paid) -> str:
    """根据总额和已收金额推导付款状态"""
    total = Decimal(str(total or 0))
    paid = Decimal(str(paid or 0))
    if paid > 0 and paid >= total:
        return "PAID"
    if paid > 0:
        return "PARTIAL"
    return "PENDING"


class SalesOrderItem(Base):
    __tablename__ = "sales_order_items"

    id = Column(Integer, primary_key=True, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False, index=True)

    # THREAD: product_id 指向纱线采购单; FABRIC: product_id 指向布料生产单
    product_type = Column(String(20), nullable=False, comment="产品类型")
    product_id = Column(Integer, nullable=False, comment="产品ID")
    inventory_item_id = Column(Integer, ForeignKey("inventory.id"), index=True, comment="出库的库存项目")

    quantity_sold = Column(Integer, nullable=False, comment="销售数量")
    unit_price = Column(DECIMAL(12, 2), nullable=False, comment="单价")
    discount = Column(DECIMAL(5, 2), comment="折扣%")
    tax = Column(DECIMAL(5, 2), comment="税率%")
    subtotal = Column(DECIMAL(12, 2), nullable=False, comment="小计")

    created_at = Column(DateTime, default=datetime.utcnow)

    sales_order = relationship("SalesOrder", back_populates="items")
    inventory_item = relationship("Inventory")

    def __repr__(self):
        return f"<SalesOrderItem {self.product_type}:{self.product_id} x {self.quantity_sold}>"
