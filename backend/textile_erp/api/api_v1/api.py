"""API 路由聚合"""
from fastapi import APIRouter

from textile_erp.api.api_v1.endpoints import (
    analytics, vendors, customers, product_types, threads, dyeing, inventory,
    fabric, sales, payments, ledger, dashboard, backup
)

api_router = APIRouter()

# 统计分析（完整路径，需先于各模块的 /{id} 路由注册）
api_router.include_router(analytics.router, tags=["统计分析"])

# 往来单位
api_router.include_router(vendors.router, prefix="/vendors", tags=["供应商"])
api_router.include_router(customers.router, prefix="/customers", tags=["客户"])

# 生产链
api_router.include_router(product_types.thread_types_router, prefix="/thread-types", tags=["纱线类型"])
api_router.include_router(product_types.fabric_types_router, prefix="/fabric-types", tags=["布料类型"])
api_router.include_router(threads.router, prefix="/thread", tags=["纱线采购"])
api_router.include_router(dyeing.router, prefix="/dyeing", tags=["染色工序"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["库存管理"])
api_router.include_router(fabric.router, prefix="/fabric/production", tags=["布料生产"])
api_router.include_router(sales.router, prefix="/sales", tags=["销售管理"])

# 资金
api_router.include_router(payments.router, prefix="/payments", tags=["收付款"])
api_router.include_router(payments.cheques_router, prefix="/cheques", tags=["支票管理"])
api_router.include_router(ledger.router, prefix="/ledger", tags=["账本"])

# 系统
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["仪表盘"])
api_router.include_router(backup.router, prefix="/backup", tags=["数据备份"])
