"""
本文件用于在主库（EDD 商店数据库）与开发模式备用库之间选择报表查询的数据源。
主要类/函数:
- `ResultKind`: 查询结果形态（行集/标量/单列）
- `StoreConnection`: 对单个数据库引擎的查询封装（附带表前缀）
- `connect_alternate`: 按开发配置建立备用库连接并做连通性校验
- `DataSourceSelector`: 数据源选择器（备用库惰性创建、进程内记忆、失败永久回退主库）
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.database import create_store_engine
from app.core.dev_config import DataSourceConfig
from app.core.exceptions import DataSourceUnavailableError, ReportQueryError
from app.core.logger import logger


class ResultKind(str, Enum):
    ROWS = "rows"
    SCALAR = "scalar"
    COLUMN = "column"


class StoreConnection:
    """
    输入:
    - `engine`: 异步数据库引擎
    - `table_prefix`: 拼接 SQL 时使用的表前缀（如 `wp_`）
    - `label`: 连接标识（primary/alternate），用于日志

    输出:
    - 可执行报表 SQL 的连接对象

    作用:
    - 按结果形态执行 SQL，并将数据库原生类型（Decimal/datetime）转换为可 JSON 序列化的值
    """

    def __init__(self, engine: AsyncEngine, table_prefix: str, label: str = "primary") -> None:
        self.engine = engine
        self.table_prefix = table_prefix
        self.label = label

    async def fetch(self, statement: str, kind: ResultKind = ResultKind.ROWS) -> Any:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(statement))
                if kind == ResultKind.SCALAR:
                    value = result.scalar()
                elif kind == ResultKind.COLUMN:
                    value = list(result.scalars().all())
                else:
                    value = [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            raise ReportQueryError(f"报表查询执行失败({self.label}): {e}") from e
        return jsonable_encoder(value)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ 数据库连接检查失败({self.label}): {e}")
            return False

    async def has_table(self, name: str) -> bool:
        try:
            async with self.engine.connect() as conn:
                return await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(name))
        except SQLAlchemyError as e:
            raise ReportQueryError(f"数据表检查失败({self.label}): {e}") from e

    async def dispose(self) -> None:
        await self.engine.dispose()


async def connect_alternate(config: DataSourceConfig) -> StoreConnection:
    """
    输入:
    - `config`: 开发模式数据源配置

    输出:
    - 已验证可用的备用库 `StoreConnection`

    作用:
    - 创建备用库引擎并执行一次 `SELECT 1`；失败时释放引擎并抛出 `DataSourceUnavailableError`
    """

    engine: Optional[AsyncEngine] = None
    try:
        engine = create_store_engine(config.to_url())
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        if engine is not None:
            await engine.dispose()
        raise DataSourceUnavailableError(str(e)) from e
    return StoreConnection(engine, config.db_prefix or "", label="alternate")


class DataSourceSelector:
    """
    输入:
    - `primary`: 主库连接（始终可用，由宿主环境提供）
    - `config_loader`: 读取开发配置的函数（每次调用重新读取）
    - `connector`: 建立备用库连接的协程函数

    输出:
    - 当前请求应使用的数据源与表前缀

    作用:
    - 开发模式开启时惰性创建备用库连接并在进程内记忆；
      创建失败只记录一次警告，之后永久使用主库，不再重试，也不做逐次健康检查
    """

    def __init__(
        self,
        primary: StoreConnection,
        config_loader: Callable[[], DataSourceConfig],
        connector: Callable[[DataSourceConfig], Awaitable[StoreConnection]] = connect_alternate,
    ) -> None:
        self._primary = primary
        self._config_loader = config_loader
        self._connector = connector
        self._alternate: Optional[StoreConnection] = None
        # 协程并发首次进入开发模式时只建立一个备用连接
        self._lock = asyncio.Lock()

    @property
    def primary(self) -> StoreConnection:
        return self._primary

    def is_dev_mode_enabled(self) -> bool:
        return self._config_loader().dev_mode

    async def get_connection(self) -> StoreConnection:
        if not self.is_dev_mode_enabled():
            return self._primary

        if self._alternate is None:
            async with self._lock:
                if self._alternate is None:
                    self._alternate = await self._open_alternate(self._config_loader())
        return self._alternate

    def get_table_prefix(self) -> str:
        config = self._config_loader()
        if config.dev_mode and config.db_prefix:
            return config.db_prefix
        return self._primary.table_prefix

    async def _open_alternate(self, config: DataSourceConfig) -> StoreConnection:
        try:
            conn = await self._connector(config)
        except DataSourceUnavailableError as e:
            logger.warning(f"⚠️ 开发数据库连接失败，已回退到主库: {e}")
            return self._primary

        logger.info(f"🔌 已连接开发数据库: {config.db_host}:{config.db_port}/{config.db_name}")
        return conn

    async def close(self) -> None:
        if self._alternate is not None and self._alternate is not self._primary:
            await self._alternate.dispose()
