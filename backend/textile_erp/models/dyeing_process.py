"""
染色工序模型

一次染色消耗原纱库存（dye_quantity），产出染色纱（output_quantity），
两者之差即为损耗。
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL, JSON
from sqlalchemy.orm import relationship
from textile_erp.db.base import Base


RESULT_STATUSES = ("PENDING", "COMPLETED", "PARTIAL", "FAILED")


class DyeingProcess(Base):
    __tablename__ = "dyeing_processes"

    id = Column(Integer, primary_key=True, index=True)
    thread_purchase_id = Column(Integer, ForeignKey("thread_purchases.id"), nullable=False, index=True)

    dye_date = Column(DateTime, nullable=False, default=datetime.utcnow, comment="染色日期")
    dye_parameters = Column(JSON, comment="染色参数（温度、时间等）")
    color_code = Column(String(7), comment="颜色代码 #RRGGBB")
    color_name = Column(String(50), comment="颜色名称")

    dye_quantity = Column(Integer, nullable=False, comment="投入原纱数量")
    output_quantity = Column(Integer, nullable=False, default=0, comment="产出数量")

    labor_cost = Column(DECIMAL(12, 2), comment="人工成本")
    dye_material_cost = Column(DECIMAL(12, 2), comment="染料成本")
    total_cost = Column(DECIMAL(12, 2), comment="总成本")

    result_status = Column(String(20), nullable=False, default="PENDING", comment="结果状态")
    # PENDING: 未入库; ADDED: 染色纱已入库
    inventory_status = Column(String(20), default="PENDING", comment="入库状态")
    completion_date = Column(DateTime, comment="完成日期")
    remarks = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    thread_purchase = relationship("ThreadPurchase", back_populates="dyeing_processes")
    fabric_productions = relationship("FabricProduction", back_populates="dyeing_process")
    inventory_transactions = relationship("InventoryTransaction", back_populates="dyeing_process")

    def __repr__(self):
        return f"<DyeingProcess {self.id}: {self.color_name or self.color_code} [{self.result_status}]>"

    @property
    def is_completed(self) -> bool:
        return self.result_status == "COMPLETED"

    @property
    def wastage(self) -> int:
        return max(0, (self.dye_quantity or 0) - (self.output_quantity or 0))

    @property
    def wastage_percentage(self) -> float:
        if not self.dye_quantity:
            return 0.0
        return round(self.wastage / self.dye_quantity * 100, 2)
