"""
客户模型 - 销售单的购买方
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship
from textile_erp.db.base import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True, comment="客户名称")
    contact = Column(String(100), comment="联系方式")
    email = Column(String(100), comment="邮箱")
    address = Column(String(200), comment="地址")
    city = Column(String(50), comment="城市")
    notes = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sales_orders = relationship("SalesOrder", back_populates="customer")
    ledger_entries = relationship("LedgerEntry", back_populates="customer")

    def __repr__(self):
        return f"<Customer {self.id}: {self.name}>"
