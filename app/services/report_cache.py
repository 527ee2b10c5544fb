"""
本文件用于实现报表查询结果的 TTL 缓存（读穿缓存的存储层），支持内存与数据库两种后端。
主要类/对象:
- `MISSING`: 未命中哨兵值（区分“未命中”与“缓存了 0/空列表/None”）
- `MemoryCacheBackend`: 进程内字典存储（线程安全）
- `DatabaseCacheBackend`: 主库 `edd_stats_report_cache` 表存储
- `ReportCache`: 带命名空间前缀的缓存门面（get/put/clear_all）
"""

from __future__ import annotations

import time
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.logger import logger
from app.models.report import ReportCacheEntry


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


class MemoryCacheBackend:
    """
    输入:
    - 无

    输出:
    - 进程内缓存后端

    作用:
    - 用字典保存 `(过期时间, 值)`，读取时惰性剔除过期项
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._items: Dict[str, Tuple[float, Any]] = {}

    async def get(self, key: str, now: float) -> Any:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return MISSING
            expires_at, value = item
            if now >= expires_at:
                self._items.pop(key, None)
                return MISSING
            return value

    async def set(self, key: str, value: Any, expires_at: float) -> None:
        with self._lock:
            self._items[key] = (expires_at, value)

    async def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._items if k.startswith(prefix)]
            for k in keys:
                self._items.pop(k, None)
            return len(keys)

    def keys(self) -> list:
        with self._lock:
            return list(self._items)


class DatabaseCacheBackend:
    """
    输入:
    - `session_factory`: 绑定主库引擎的 `sessionmaker`

    输出:
    - 数据库缓存后端

    作用:
    - 将缓存持久化到主库，进程重启后仍可命中；过期条目在读取时删除
    - 缓存表不可用时降级为不缓存：读取视为未命中，写入与清除记录日志后跳过
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def get(self, key: str, now: float) -> Any:
        try:
            return await self._get(key, now)
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ 读取报表缓存失败，按未命中处理: {e}")
            return MISSING

    async def _get(self, key: str, now: float) -> Any:
        async with self._session_factory() as db:
            entry = (
                await db.execute(select(ReportCacheEntry).where(ReportCacheEntry.cache_key == key))
            ).scalar_one_or_none()
            if entry is None:
                return MISSING
            if now >= entry.expires_at:
                await db.execute(delete(ReportCacheEntry).where(ReportCacheEntry.cache_key == key))
                await db.commit()
                return MISSING
            return entry.value

    async def set(self, key: str, value: Any, expires_at: float) -> None:
        try:
            await self._set(key, value, expires_at)
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ 写入报表缓存失败，已跳过: {e}")

    async def _set(self, key: str, value: Any, expires_at: float) -> None:
        async with self._session_factory() as db:
            values = {"cache_key": key, "value": value, "expires_at": expires_at}
            dialect = db.get_bind().dialect.name
            if dialect == "mysql":
                stmt = mysql.insert(ReportCacheEntry).values(**values)
                stmt = stmt.on_duplicate_key_update(value=stmt.inserted.value, expires_at=stmt.inserted.expires_at)
            elif dialect in ("sqlite", "postgresql"):
                insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
                stmt = insert(ReportCacheEntry).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[ReportCacheEntry.cache_key],
                    set_={"value": stmt.excluded.value, "expires_at": stmt.excluded.expires_at},
                )
            else:
                await db.execute(delete(ReportCacheEntry).where(ReportCacheEntry.cache_key == key))
                db.add(ReportCacheEntry(**values))
                await db.commit()
                return
            await db.execute(stmt)
            await db.commit()

    async def delete_prefix(self, prefix: str) -> int:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    delete(ReportCacheEntry).where(ReportCacheEntry.cache_key.startswith(prefix, autoescape=True))
                )
                await db.commit()
                return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            logger.error(f"❌ 清除报表缓存失败: {e}")
            return 0


class ReportCache:
    """
    输入:
    - `backend`: 存储后端（内存/数据库）
    - `prefix`: 命名空间前缀（批量清除的范围）
    - `clock`: 时钟函数（秒），测试中可注入

    输出:
    - 报表缓存对象

    作用:
    - 为报表查询提供按键读写与整体失效；同键写入直接覆盖，`ttl <= 0` 时写入为空操作
    """

    def __init__(
        self,
        backend: Any,
        prefix: str = "edd_stats_",
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.backend = backend
        self.prefix = prefix
        self._clock = clock or time.time

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Any:
        return await self.backend.get(self._full_key(key), self._clock())

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        await self.backend.set(self._full_key(key), value, self._clock() + ttl_seconds)

    async def clear_all(self) -> int:
        count = await self.backend.delete_prefix(self.prefix)
        logger.info(f"🧹 报表缓存已清空: {count} 条")
        return count
