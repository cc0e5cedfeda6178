# 数据模型
# 生产链：供应商 → 纱线采购 → 染色 → 布料生产 → 销售，库存流水贯穿其中

from textile_erp.models.vendor import Vendor
from textile_erp.models.customer import Customer
from textile_erp.models.product_type import ThreadType, FabricType
from textile_erp.models.thread_purchase import ThreadPurchase
from textile_erp.models.dyeing_process import DyeingProcess
from textile_erp.models.inventory import Inventory, InventoryTransaction
from textile_erp.models.fabric_production import FabricProduction
from textile_erp.models.sales import SalesOrder, SalesOrderItem
from textile_erp.models.payment import Payment, ChequeTransaction
from textile_erp.models.ledger import LedgerEntry, LedgerTransaction

__all__ = [
    "Vendor",
    "Customer",
    "ThreadType",
    "FabricType",
    "ThreadPurchase",
    "DyeingProcess",
    "Inventory",
    "InventoryTransaction",
    "FabricProduction",
    "SalesOrder",
    "SalesOrderItem",
    "Payment",
    "ChequeTransaction",
    "LedgerEntry",
    "LedgerTransaction",
]
