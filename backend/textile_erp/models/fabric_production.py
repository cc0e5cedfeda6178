"""
布料生产模型 - 消耗纱线库存，产出布料库存
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from textile_erp.db.base import Base


PRODUCTION_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED")


class FabricProduction(Base):
    __tablename__ = "fabric_productions"

    id = Column(Integer, primary_key=True, index=True)
    # 直接从库存取纱时可以没有采购单
    source_thread_id = Column(Integer, ForeignKey("thread_purchases.id"), index=True)
    dyeing_process_id = Column(Integer, ForeignKey("dyeing_processes.id"), index=True)

    production_date = Column(DateTime, nullable=False, default=datetime.utcnow, comment="生产日期")
    fabric_type = Column(String(100), nullable=False, comment="布料类型")
    dimensions = Column(String(100), nullable=False, comment="规格尺寸")
    batch_number = Column(String(50), nullable=False, index=True, comment="批次号")

    quantity_produced = Column(Integer, nullable=False, comment="产出数量")
    thread_used = Column(Integer, nullable=False, comment="耗用纱线")
    thread_wastage = Column(Integer, default=0, comment="纱线损耗")
    unit_of_measure = Column(String(20), nullable=False, default="meters", comment="计量单位")

    production_cost = Column(DECIMAL(12, 2), comment="生产成本")
    labor_cost = Column(DECIMAL(12, 2), comment="人工成本")
    total_cost = Column(DECIMAL(12, 2), comment="总成本")

    status = Column(String(20), nullable=False, default="COMPLETED", comment="生产状态")
    # PENDING: 未入库; UPDATED: 布料已入库
    inventory_status = Column(String(20), default="PENDING", comment="入库状态")
    completion_date = Column(DateTime, comment="完成日期")
    remarks = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    source_thread = relationship("ThreadPurchase", back_populates="fabric_productions")
    dyeing_process = relationship("DyeingProcess", back_populates="fabric_productions")
    inventory_transactions = relationship("InventoryTransaction", back_populates="fabric_production")

    def __repr__(self):
        return f"<FabricProduction {self.id}: {self.fabric_type} batch {self.batch_number}>"
