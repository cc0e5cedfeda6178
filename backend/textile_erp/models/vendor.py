"""
供应商模型 - 纱线采购的来源
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship
from textile_erp.db.base import Base


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True, comment="供应商名称")
    contact = Column(String(100), nullable=False, comment="联系方式")
    email = Column(String(100), comment="邮箱")
    address = Column(String(200), comment="地址")
    city = Column(String(50), comment="城市")
    notes = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 关系
    thread_purchases = relationship("ThreadPurchase", back_populates="vendor")
    ledger_entries = relationship("LedgerEntry", back_populates="vendor")

    def __repr__(self):
        return f"<Vendor {self.id}: {self.name}>"
