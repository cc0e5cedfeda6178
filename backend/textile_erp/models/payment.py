"""
收付款模型

- Payment 关联销售单（收款，资金流入）或纱线采购单（付款，资金流出）
- ChequeTransaction 为支票付款的附加信息，退票（BOUNCED）的支票款项不计入已付金额
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from textile_erp.db.base import Base


PAYMENT_MODES = ("CASH", "CHEQUE", "ONLINE")
CHEQUE_STATUSES = ("PENDING", "CLEARED", "BOUNCED")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), index=True)
    thread_purchase_id = Column(Integer, ForeignKey("thread_purchases.id"), index=True)

    transaction_date = Column(DateTime, nullable=False, default=datetime.utcnow, comment="付款日期")
    amount = Column(DECIMAL(12, 2), nullable=False, comment="金额")
    mode = Column(String(20), nullable=False, comment="付款方式")
    description = Column(String(200), comment="说明")
    reference_number = Column(String(100), comment="参考号")
    remarks = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sales_order = relationship("SalesOrder", back_populates="payments")
    thread_purchase = relationship("ThreadPurchase", back_populates="payments")
    cheque_transaction = relationship(
        "ChequeTransaction", back_populates="payment", uselist=False, lazy="selectin"
    )

    def __repr__(self):
        return f"<Payment {self.id}: {self.amount} {self.mode}>"

    @property
    def direction(self) -> str:
        """IN: 销售收款; OUT: 采购付款"""
        return "IN" if self.sales_order_id else "OUT"

    @property
    def is_effective(self) -> bool:
        """退票的支票不算有效付款"""
        cheque = self.cheque_transaction
        return cheque is None or cheque.cheque_status != "BOUNCED"


class ChequeTransaction(Base):
    __tablename__ = "cheque_transactions"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), unique=True, nullable=False)

    cheque_number = Column(String(50), nullable=False, comment="支票号")
    bank = Column(String(100), nullable=False, comment="银行")
    branch = Column(String(100), comment="支行")
    cheque_amount = Column(DECIMAL(12, 2), nullable=False, comment="支票金额")
    issue_date = Column(DateTime, nullable=False, default=datetime.utcnow, comment="开票日期")
    clearance_date = Column(DateTime, comment="兑现日期")
    cheque_status = Column(String(20), nullable=False, default="PENDING", comment="支票状态")
    remarks = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    payment = relationship("Payment", back_populates="cheque_transaction")

    def __repr__(self):
        return f"<ChequeTransaction {self.cheque_number} [{self.cheque_status}]>"
