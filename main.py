"""
本文件用于启动 FastAPI 应用并注册 API 路由、异常处理与生命周期任务。
主要函数/类:
- `lifespan`: 应用生命周期管理（初始化缓存表、退出时释放连接）
- `handle_report_query_error`: 报表执行失败统一转换为 500
- `handle_validation_error`: 参数校验失败统一转换为 400
- `handle_http_exception`: HTTP 异常统一输出 `{success: false, message}`
- `admin_login`: 管理登录（写入 Cookie 会话）
- `admin_logout`: 管理退出（清理 Cookie 会话）
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.api import api_router
from app.api.deps import get_selector, settings
from app.core.config import get_missing_config_keys
from app.core.database import dispose_engine, init_db
from app.core.exceptions import ReportQueryError
from app.core.logger import configure_logging, setup_logger
from app.schemas.system import AdminAuth
from app.services.admin_service import (
    create_admin_session_token,
    get_admin_cookie_name,
    get_admin_token_ttl,
    revoke_admin_session_token,
    verify_admin_password,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    输入:
    - `app`: FastAPI 应用实例

    输出:
    - 生命周期上下文（启动后进入、退出时清理）

    作用:
    - 应用启动时检查关键配置并创建缓存表；退出时释放主库与开发库连接
    """

    lifespan_logger = setup_logger("lifespan")
    missing_keys = get_missing_config_keys(settings)
    if missing_keys:
        lifespan_logger.warning("=" * 60)
        lifespan_logger.warning(f"⚠️  关键配置缺失: {', '.join(missing_keys)}")
        lifespan_logger.warning("⚠️  请在 .env 或 config.yaml 中补全后重启服务。")
        lifespan_logger.warning("=" * 60)

    if settings.CACHE_BACKEND == "database" and "DATABASE_URL" not in missing_keys:
        try:
            await init_db()
            lifespan_logger.info("✅ 报表缓存表已就绪")
        except (SQLAlchemyError, OSError) as e:
            lifespan_logger.error(f"❌ 初始化缓存表失败: {e}")

    yield

    if get_selector.cache_info().currsize:
        await get_selector().close()
    await dispose_engine()


configure_logging()
logger = setup_logger("api")
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
)
app.include_router(api_router)


@app.exception_handler(ReportQueryError)
async def handle_report_query_error(request: Request, exc: ReportQueryError):
    logger.error(f"❌ 报表查询失败: {request.url.path} | key={exc.cache_key or '-'} | {exc}")
    return JSONResponse(status_code=500, content={"success": False, "message": "报表查询失败，请稍后重试"})


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("query", "body"))
        messages.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"success": False, "message": "参数无效: " + "; ".join(messages)})


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.post("/admin/login")
async def admin_login(payload: AdminAuth):
    if not verify_admin_password(payload.password):
        return JSONResponse(status_code=403, content={"success": False, "message": "密码错误"})

    token = create_admin_session_token()
    resp = JSONResponse(content={"success": True})
    resp.set_cookie(
        key=get_admin_cookie_name(),
        value=token,
        max_age=get_admin_token_ttl(),
        httponly=True,
        samesite="lax",
    )
    return resp


@app.post("/admin/logout")
async def admin_logout(request: Request):
    revoke_admin_session_token(request.cookies.get(get_admin_cookie_name()))
    resp = JSONResponse(content={"success": True})
    resp.delete_cookie(get_admin_cookie_name())
    return resp


if __name__ == "__main__":
    log_level = (settings.LOG_LEVEL or "info").lower()
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        log_level=log_level,
        access_log=log_level in {"debug", "info"},
    )
