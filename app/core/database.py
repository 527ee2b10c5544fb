"""
本文件用于提供异步数据库引擎的惰性初始化与表结构创建。
主要函数:
- `create_store_engine`: 按连接串创建 `AsyncEngine`（主库与开发备用库共用）
- `get_engine`: 懒加载创建主库 `AsyncEngine`
- `get_sessionmaker`: 懒加载创建 `sessionmaker`
- `init_db`: 创建缓存表结构
- `dispose_engine`: 释放主库连接池
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.core.config import get_settings

settings = get_settings()

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[sessionmaker] = None


def create_store_engine(url: "str | URL") -> AsyncEngine:
    """
    输入:
    - `url`: SQLAlchemy 连接串或 `URL` 对象

    输出:
    - `AsyncEngine` 实例（尚未建立连接）

    作用:
    - 统一创建引擎参数；SQLite 下启用 WAL 并跳过连接池大小配置
    """

    is_sqlite = "sqlite" in str(url)
    if is_sqlite:
        engine = create_async_engine(url, echo=False)
    else:
        engine = create_async_engine(
            url,
            echo=False,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
        )

    # 针对 SQLite 启用 WAL 模式以提高并发稳定性
    if is_sqlite:
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    return engine


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is not None:
        return _engine
    if not (settings.DATABASE_URL or "").strip():
        raise RuntimeError("未配置 DATABASE_URL，数据库功能不可用")

    _engine = create_store_engine(settings.DATABASE_URL)
    return _engine


def get_sessionmaker() -> sessionmaker:
    global _sessionmaker
    if _sessionmaker is not None:
        return _sessionmaker

    engine = get_engine()
    _sessionmaker = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    return _sessionmaker


Base = declarative_base()


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """
    输入:
    - `engine`: 目标引擎（默认主库）

    输出:
    - 无

    作用:
    - 初始化报表缓存表结构（根据 ORM 模型创建表，已存在则跳过）
    """

    from app.models.report import ReportCacheEntry  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """
    输入:
    - 无

    输出:
    - 无

    作用:
    - 释放主库引擎的连接池，用于进程退出时归还连接
    """
    global _engine, _sessionmaker
    if _engine:
        await _engine.dispose()
        _engine = None
        _sessionmaker = None
