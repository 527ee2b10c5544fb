"""
本文件用于实现管理后台的认证会话。
主要函数:
- `create_admin_session_token`: 登录成功后生成会话 token
- `revoke_admin_session_token`: 退出登录时作废 token
- `is_admin_request`: 校验请求是否已登录
- `verify_admin_password`: 校验管理员口令
"""

from __future__ import annotations

import secrets
import time
from typing import Dict, Optional

from fastapi import Request

from app.core.config import get_settings

_ADMIN_COOKIE_NAME = "edd_stats_admin_token"
_TOKEN_TTL_SECONDS = 12 * 60 * 60
_TOKENS: Dict[str, float] = {}


def create_admin_session_token() -> str:
    token = secrets.token_urlsafe(32)
    _TOKENS[token] = time.time() + _TOKEN_TTL_SECONDS
    return token


def revoke_admin_session_token(token: Optional[str]) -> None:
    if token:
        _TOKENS.pop(token, None)


def _is_token_valid(token: Optional[str]) -> bool:
    if not token:
        return False
    exp = _TOKENS.get(token)
    if not exp:
        return False
    if exp < time.time():
        _TOKENS.pop(token, None)
        return False
    return True


def is_admin_request(request: Request) -> bool:
    token = request.cookies.get(_ADMIN_COOKIE_NAME)
    return _is_token_valid(token)


def get_admin_cookie_name() -> str:
    return _ADMIN_COOKIE_NAME


def get_admin_token_ttl() -> int:
    return _TOKEN_TTL_SECONDS


def verify_admin_password(password: str) -> bool:
    settings = get_settings()
    return bool(settings.ADMIN_PASSWORD) and secrets.compare_digest(password or "", settings.ADMIN_PASSWORD)
