"""
本文件用于聚合各模块路由，并提供统一的 `api_router` 给主应用注册。
主要对象:
- `api_router`: API 路由聚合器（统一挂载在 `API_PREFIX` 下）
"""

from fastapi import APIRouter

from app.api.endpoints import reports, system
from app.core.config import get_settings

api_router = APIRouter(prefix=get_settings().API_PREFIX)
api_router.include_router(system.router)
api_router.include_router(reports.router)
