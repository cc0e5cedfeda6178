"""
纱线类型 / 布料类型 - 库存项目的分类
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship
from textile_erp.db.base import Base


class ThreadType(Base):
    __tablename__ = "thread_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, comment="类型名称")
    description = Column(Text, comment="描述")
    units = Column(String(20), default="meters", comment="计量单位")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    inventory_items = relationship("Inventory", back_populates="thread_type")

    def __repr__(self):
        return f"<ThreadType {self.name}>"


class FabricType(Base):
    __tablename__ = "fabric_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, comment="类型名称")
    description = Column(Text, comment="描述")
    units = Column(String(20), default="meters", comment="计量单位")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    inventory_items = relationship("Inventory", back_populates="fabric_type")

    def __repr__(self):
        return f"<FabricType {self.name}>"
