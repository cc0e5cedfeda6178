"""数据库引擎与会话工厂"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from textile_erp.core.config import settings

SYNC_SQLITE_PREFIX = "sqlite:///"
ASYNC_SQLITE_PREFIX = "sqlite+aiosqlite:///"


def get_async_database_url(url: str) -> str:
    """同步 SQLite 地址换成 aiosqlite 驱动，已是异步地址的原样返回"""
    if url.startswith(SYNC_SQLITE_PREFIX):
        return ASYNC_SQLITE_PREFIX + url[len(SYNC_SQLITE_PREFIX):]
    return url


def build_engine(url: str) -> AsyncEngine:
    return create_async_engine(get_async_database_url(url), echo=settings.SQL_ECHO)


engine = build_engine(settings.SQLITE_DATABASE_URI)

# 每个请求一个会话，提交后对象仍可读取（响应构建在 commit 之后）
SessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)
