"""
本文件用于定义系统相关的请求体/响应体数据模型。
主要类:
- `AdminAuth`: 管理接口鉴权请求体
- `SettingsUpdate`: 插件设置更新请求体
"""

from typing import Optional, Union

from pydantic import BaseModel


class AdminAuth(BaseModel):
    """
    输入:
    - `password`: 管理员口令

    输出:
    - 管理接口鉴权请求体模型

    作用:
    - 为管理端接口提供简单鉴权参数结构
    """

    password: str


class SettingsUpdate(BaseModel):
    """
    输入:
    - `cache_duration`: 缓存时长（秒），按非负整数规整
    - `default_range`: 默认日期范围（30/90/365/all）

    输出:
    - 设置更新请求体模型

    作用:
    - 字段均可省略，省略的字段保持原值；非法取值在写入时被规整而不是拒绝
    """

    cache_duration: Optional[Union[int, str]] = None
    default_range: Optional[str] = None
