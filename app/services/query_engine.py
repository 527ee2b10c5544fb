"""
本文件用于实现报表查询的统一入口：缓存键、缓存读取、数据源选择与查询执行。
主要类:
- `CacheKey`: 缓存键值类型（按渲染后 SQL 哈希 / 按字面量种子）
- `ReportQueryEngine`: 读穿缓存的查询引擎（所有报表查询都经过这里）

并发说明:
- 同一缓存键的并发未命中不会合并，每个请求都会各自执行一次查询并写入缓存（后写覆盖先写）
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from time import monotonic
from typing import Any, Optional

from app.core.exceptions import ReportQueryError
from app.core.logger import logger
from app.services.data_source import DataSourceSelector, ResultKind
from app.services.options_service import OptionsStore
from app.services.report_cache import MISSING, ReportCache

DEV_KEY_SUFFIX = "_dev"


@dataclass(frozen=True)
class CacheKey:
    value: str

    @classmethod
    def from_statement(cls, seed: str, statement: str) -> "CacheKey":
        """按完整渲染后的 SQL 文本取 md5；参数已作为字面量嵌入 SQL，SQL 相同即视为同一缓存项。"""
        digest = hashlib.md5(statement.encode("utf-8")).hexdigest()
        return cls(f"{seed}{digest}")

    @classmethod
    def literal(cls, seed: str) -> "CacheKey":
        return cls(seed)

    def for_dev_mode(self) -> "CacheKey":
        return CacheKey(f"{self.value}{DEV_KEY_SUFFIX}")

    def __str__(self) -> str:
        return self.value


class ReportQueryEngine:
    """
    输入:
    - `selector`: 数据源选择器
    - `cache`: 报表缓存
    - `options`: 管理端选项（缓存时长每次调用实时读取）
    - `slow_query_seconds`: 慢查询日志阈值

    输出:
    - 查询引擎实例

    作用:
    - 先查缓存，未命中时在当前数据源执行 SQL 并写回缓存；执行错误原样向上抛出，不重试、不写缓存
    """

    def __init__(
        self,
        selector: DataSourceSelector,
        cache: ReportCache,
        options: OptionsStore,
        slow_query_seconds: float = 0.5,
    ) -> None:
        self.selector = selector
        self.cache = cache
        self.options = options
        self.slow_query_seconds = slow_query_seconds

    async def run_cached(
        self,
        key: CacheKey,
        statement: str,
        kind: ResultKind = ResultKind.ROWS,
        ttl: Optional[int] = None,
    ) -> Any:
        """
        输入:
        - `key`: 调用方给出的最终缓存键
        - `statement`: 已渲染的 SQL
        - `kind`: 结果形态（rows/scalar/column）
        - `ttl`: 缓存秒数；为空时读取管理端“缓存时长”设置，0 表示不缓存

        输出:
        - 查询原始结果（行集为字典列表，标量为单值，单列为列表）

        作用:
        - 报表查询的唯一入口，负责缓存读写与数据源选择
        """

        ttl = self.options.get_cache_duration() if ttl is None else ttl

        if self.selector.is_dev_mode_enabled():
            key = key.for_dev_mode()

        if ttl > 0:
            cached = await self.cache.get(str(key))
            if cached is not MISSING:
                return cached

        conn = await self.selector.get_connection()
        t0 = monotonic()
        try:
            result = await conn.fetch(statement, kind)
        except ReportQueryError as e:
            e.cache_key = str(key)
            raise
        elapsed = monotonic() - t0
        if elapsed > self.slow_query_seconds:
            logger.info(f"报表慢查询: {elapsed:.2f}s | key={key} | source={conn.label}")

        if ttl > 0:
            await self.cache.put(str(key), result, ttl)
        return result
