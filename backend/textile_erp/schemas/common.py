"""Schema 公共工具"""
from datetime import datetime, timezone
from typing import Optional

PAYMENT_MODE_PATTERN = "^(CASH|CHEQUE|ONLINE)$"


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """带时区的时间统一转换为 UTC 无时区时间（数据库存储格式）"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def ensure_not_future(value: Optional[datetime], label: str) -> Optional[datetime]:
    """按日期比较，当天任意时刻都允许"""
    value = to_naive_utc(value)
    if value is not None and value.date() > datetime.utcnow().date():
        raise ValueError(f"{label} cannot be in the future")
    return value


def ensure_not_past(value: Optional[datetime], label: str) -> Optional[datetime]:
    value = to_naive_utc(value)
    if value is not None and value.date() < datetime.utcnow().date():
        raise ValueError(f"{label} cannot be in the past")
    return value


def check_cheque_details(mode: Optional[str], cheque_number: Optional[str], bank: Optional[str]) -> None:
    """支票付款必须提供支票号和银行"""
    if mode == "CHEQUE" and not (cheque_number and bank):
        raise ValueError("Cheque number and bank are required for cheque payments")


def reject_null(value, field_name: str):
    """PATCH 中显式传 null 的必填字段"""
    if value is None:
        raise ValueError(f"{field_name} cannot be null")
    return value
