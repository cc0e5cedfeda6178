"""
库存模型

Inventory 记录每个库存项目（原纱、染色纱、布料）的当前数量；
InventoryTransaction 是库存流水，数量带符号：正数入库，负数出库，
remaining_quantity 为该笔流水发生后的结存。
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from textile_erp.db.base import Base


PRODUCT_TYPES = ("THREAD", "FABRIC")

TRANSACTION_TYPES = ("PURCHASE", "PRODUCTION", "SALES", "ADJUSTMENT", "TRANSFER")
# 入库类流水 / 出库类流水
INBOUND_TYPES = ("PURCHASE", "PRODUCTION", "ADJUSTMENT")
OUTBOUND_TYPES = ("SALES", "TRANSFER")


class Inventory(Base):
    __tablename__ = "inventory"

    id = Column(Integer, primary_key=True, index=True)
    item_code = Column(String(50), unique=True, nullable=False, index=True, comment="库存编码")
    description = Column(String(200), nullable=False, comment="描述")
    product_type = Column(String(20), nullable=False, index=True, comment="THREAD/FABRIC")

    thread_type_id = Column(Integer, ForeignKey("thread_types.id"), index=True)
    fabric_type_id = Column(Integer, ForeignKey("fabric_types.id"), index=True)

    current_quantity = Column(Integer, nullable=False, default=0, comment="当前数量")
    unit_of_measure = Column(String(20), nullable=False, default="meters", comment="计量单位")
    location = Column(String(100), comment="存放位置")
    min_stock_level = Column(Integer, nullable=False, default=0, comment="最低库存")

    cost_per_unit = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="单位成本")
    sale_price = Column(DECIMAL(12, 2), comment="建议售价")
    last_restocked = Column(DateTime, comment="最后入库时间")
    notes = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    thread_type = relationship("ThreadType", back_populates="inventory_items")
    fabric_type = relationship("FabricType", back_populates="inventory_items")
    transactions = relationship("InventoryTransaction", back_populates="inventory")

    def __repr__(self):
        return f"<Inventory {self.item_code} = {self.current_quantity}>"

    @property
    def is_low_stock(self) -> bool:
        """是否低于最低库存"""
        return (self.current_quantity or 0) <= (self.min_stock_level or 0)

    @property
    def stock_value(self) -> Decimal:
        return Decimal(self.current_quantity or 0) * (self.cost_per_unit or Decimal("0"))


class InventoryTransaction(Base):
    __tablename__ = "inventory_transactions"

    id = Column(Integer, primary_key=True, index=True)
    inventory_id = Column(Integer, ForeignKey("inventory.id"), nullable=False, index=True)

    transaction_type = Column(String(20), nullable=False, index=True, comment="流水类型")
    transaction_date = Column(DateTime, nullable=False, default=datetime.utcnow, comment="发生时间")
    quantity = Column(Integer, nullable=False, comment="变动数量（带符号）")
    remaining_quantity = Column(Integer, nullable=False, comment="变动后结存")
    unit_cost = Column(DECIMAL(12, 2), comment="单位成本")
    total_cost = Column(DECIMAL(12, 2), comment="总成本")

    # 通用引用（便于展示来源）
    reference_type = Column(String(50), comment="来源类型")
    reference_id = Column(Integer, comment="来源ID")

    # 业务关联
    thread_purchase_id = Column(Integer, ForeignKey("thread_purchases.id"), index=True)
    dyeing_process_id = Column(Integer, ForeignKey("dyeing_processes.id"), index=True)
    fabric_production_id = Column(Integer, ForeignKey("fabric_productions.id"), index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), index=True)

    notes = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    inventory = relationship("Inventory", back_populates="transactions")
    thread_purchase = relationship("ThreadPurchase", back_populates="inventory_transactions")
    dyeing_process = relationship("DyeingProcess", back_populates="inventory_transactions")
    fabric_production = relationship("FabricProduction", back_populates="inventory_transactions")
    sales_order = relationship("SalesOrder", back_populates="inventory_transactions")

    def __repr__(self):
        return f"<InventoryTransaction {self.transaction_type} {self.quantity:+d} -> {self.remaining_quantity}>"
