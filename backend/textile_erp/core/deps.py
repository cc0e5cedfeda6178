"""依赖注入"""
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession

from textile_erp.db.session import SessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    获取数据库会话依赖

    每个请求一个会话；处理函数最后统一 commit，
    中途抛出异常时会话关闭即回滚，不留下部分写入。
    """
    async with SessionLocal() as session:
        yield session
