"""
账本模型 - 应付（欠供应商）与应收（客户欠款）

remaining_amount 随每笔 LedgerTransaction 递减：
- 余额 <= 0 → COMPLETED
- 否则 → PARTIAL
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship
from textile_erp.db.base import Base


ENTRY_TYPES = ("PAYABLE", "RECEIVABLE")
LEDGER_STATUSES = ("PENDING", "PARTIAL", "COMPLETED", "CANCELLED")


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    entry_type = Column(String(20), nullable=False, index=True, comment="PAYABLE/RECEIVABLE")
    entry_date = Column(DateTime, nullable=False, default=datetime.utcnow, comment="记账日期")
    due_date = Column(DateTime, comment="到期日")
    description = Column(String(200), nullable=False, comment="摘要")

    amount = Column(DECIMAL(12, 2), nullable=False, comment="金额")
    remaining_amount = Column(DECIMAL(12, 2), nullable=False, comment="未结金额")
    status = Column(String(20), nullable=False, default="PENDING", index=True, comment="状态")

    vendor_id = Column(Integer, ForeignKey("vendors.id"), index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), index=True)
    # 未建档的往来单位
    party_name = Column(String(100), comment="往来单位名称")

    reference = Column(String(100), comment="参考号")
    notes = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    vendor = relationship("Vendor", back_populates="ledger_entries")
    customer = relationship("Customer", back_populates="ledger_entries")
    transactions = relationship("LedgerTransaction", back_populates="ledger_entry")

    def __repr__(self):
        return f"<LedgerEntry {self.entry_type} {self.amount} [{self.status}]>"

    @property
    def paid_amount(self) -> Decimal:
        return (self.amount or Decimal("0")) - (self.remaining_amount or Decimal("0"))

    @property
    def display_party(self) -> str:
        if self.vendor:
            return self.vendor.name
        if self.customer:
            return self.customer.name
        return self.party_name or ""

    def apply_payment(self, amount: Decimal) -> None:
        """登记一笔收付款，更新余额和状态"""
        self.remaining_amount = (self.remaining_amount or Decimal("0")) - amount
        if self.remaining_amount <= 0:
            self.remaining_amount = Decimal("0")
            self.status = "COMPLETED"
        else:
            self.status = "PARTIAL"


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"

    id = Column(Integer, primary_key=True, index=True)
    ledger_entry_id = Column(Integer, ForeignKey("ledger_entries.id"), nullable=False, index=True)

    transaction_date = Column(DateTime, nullable=False, default=datetime.utcnow, comment="发生日期")
    amount = Column(DECIMAL(12, 2), nullable=False, comment="金额")
    payment_mode = Column(String(20), nullable=False, comment="付款方式")
    cheque_number = Column(String(50), comment="支票号")
    bank_name = Column(String(100), comment="银行")
    reference_number = Column(String(100), comment="参考号")
    notes = Column(Text, comment="备注")

    created_at = Column(DateTime, default=datetime.utcnow)

    ledger_entry = relationship("LedgerEntry", back_populates="transactions")

    def __repr__(self):
        return f"<LedgerTransaction {self.amount} {self.payment_mode}>"
