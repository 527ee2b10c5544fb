"""
本文件用于提供系统相关 API：健康检查、缓存清除、插件设置读写与运行日志。
主要函数:
- `api_health`: 健康检查（无需登录）
- `api_clear_cache`: 清空报表缓存
- `api_get_settings` / `api_update_settings`: 读取/更新缓存时长与默认日期范围
- `api_get_admin_logs` / `api_clear_admin_logs`: 读取/清空内存日志
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_health_service, get_options_store, get_report_service, settings, verify_admin_access
from app.core.logger import clear_cached_logs, get_cached_log_text
from app.schemas.system import SettingsUpdate
from app.services.options_service import OptionsStore
from app.services.report_service import ReportService, build_health_payload

router = APIRouter(tags=["system"])


@router.get("/health")
async def api_health(service: Optional[ReportService] = Depends(get_health_service)):
    if service is None:
        return build_health_payload(settings.PLUGIN_NAME, settings.VERSION)
    return await service.health_check()


@router.post("/cache/clear", dependencies=[Depends(verify_admin_access)])
async def api_clear_cache(service: ReportService = Depends(get_report_service)):
    """
    输入:
    - 无

    输出:
    - `{success, message}`

    作用:
    - 删除命名空间前缀下的全部报表缓存（其他缓存不受影响）
    """

    count = await service.clear_cache()
    return {"success": True, "message": f"缓存已清空，共 {count} 条"}


@router.get("/settings", dependencies=[Depends(verify_admin_access)])
async def api_get_settings(options: OptionsStore = Depends(get_options_store)):
    return {"success": True, "data": options.as_dict()}


@router.put("/settings", dependencies=[Depends(verify_admin_access)])
async def api_update_settings(payload: SettingsUpdate, options: OptionsStore = Depends(get_options_store)):
    data = options.update(cache_duration=payload.cache_duration, default_range=payload.default_range)
    return {"success": True, "data": data}


@router.get("/admin/logs", dependencies=[Depends(verify_admin_access)])
async def api_get_admin_logs(lines: Optional[int] = Query(None, ge=0, description="只返回最近 N 行")):
    return {"success": True, "logs": get_cached_log_text(lines)}


@router.delete("/admin/logs", dependencies=[Depends(verify_admin_access)])
async def api_clear_admin_logs():
    count = clear_cached_logs()
    return {"success": True, "cleared": count}
