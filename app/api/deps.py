"""
本文件用于提供 FastAPI 依赖注入的集中出口：鉴权、日期参数校验与报表服务实例。
主要对象:
- `settings`: 全局配置对象
- `verify_admin_access`: 管理员鉴权依赖
- `DateRange` / `get_date_range`: 日期范围参数依赖
- `get_report_service`: 报表服务依赖（进程内单例）
- `get_health_service`: 健康检查用的报表服务（未配置数据库时为 None）
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import HTTPException, Query, Request, status

from app.core.config import get_settings
from app.core.database import get_engine, get_sessionmaker
from app.core.dev_config import load_dev_config
from app.services.admin_service import is_admin_request
from app.services.data_source import DataSourceSelector, StoreConnection
from app.services.options_service import OptionsStore
from app.services.query_engine import ReportQueryEngine
from app.services.report_cache import DatabaseCacheBackend, MemoryCacheBackend, ReportCache
from app.services.report_service import ReportService
from app.utils.tools import parse_report_date

settings = get_settings()


async def verify_admin_access(request: Request):
    """
    依赖项：校验当前请求是否包含有效的管理员 Token (Cookie)。
    若未通过校验，抛出 401 异常。
    """
    if not is_admin_request(request):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="未授权访问，请先登录",
        )


@dataclass(frozen=True)
class DateRange:
    start_date: Optional[str] = None
    end_date: Optional[str] = None


def get_date_range(
    start_date: Optional[str] = Query(None, description="开始日期 YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="结束日期 YYYY-MM-DD"),
) -> DateRange:
    try:
        return DateRange(parse_report_date(start_date), parse_report_date(end_date))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"日期参数无效: {e}")


@lru_cache()
def get_options_store() -> OptionsStore:
    return OptionsStore(settings.OPTIONS_PATH, default_cache_duration=settings.DEFAULT_CACHE_DURATION)


@lru_cache()
def get_selector() -> DataSourceSelector:
    if not (settings.DATABASE_URL or "").strip():
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="未配置 DATABASE_URL，报表不可用")

    primary = StoreConnection(get_engine(), settings.TABLE_PREFIX)
    return DataSourceSelector(primary, lambda: load_dev_config(settings.DEV_CONFIG_PATH))


@lru_cache()
def get_report_cache() -> ReportCache:
    if settings.CACHE_BACKEND == "memory":
        backend = MemoryCacheBackend()
    else:
        backend = DatabaseCacheBackend(get_sessionmaker())
    return ReportCache(backend, prefix=settings.CACHE_KEY_PREFIX)


@lru_cache()
def get_report_service() -> ReportService:
    engine = ReportQueryEngine(
        get_selector(),
        get_report_cache(),
        get_options_store(),
        slow_query_seconds=settings.SLOW_QUERY_SECONDS,
    )
    return ReportService(engine, plugin_name=settings.PLUGIN_NAME, version=settings.VERSION)


def get_health_service() -> Optional[ReportService]:
    # 未配置主库时健康检查仍需返回 disconnected，而不是 500
    if not (settings.DATABASE_URL or "").strip():
        return None
    return get_report_service()


__all__ = [
    "DateRange",
    "get_date_range",
    "get_health_service",
    "get_options_store",
    "get_report_cache",
    "get_report_service",
    "get_selector",
    "settings",
    "verify_admin_access",
]
