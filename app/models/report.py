"""
本文件用于定义 `edd_stats_report_cache` 表的 ORM 模型，用于持久化报表查询结果缓存。
主要类:
- `ReportCacheEntry`: 报表缓存条目模型
"""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Double, String

from app.core.database import Base


class ReportCacheEntry(Base):
    """
    输入:
    - `cache_key`: 完整缓存键（含命名空间前缀，开发模式带 `_dev` 后缀）
    - `value`: 查询原始结果（行集/标量/单列）
    - `expires_at`: 过期时间戳（秒）

    输出:
    - 数据库 `edd_stats_report_cache` 表的 ORM 映射对象

    作用:
    - 作为报表查询的读穿缓存存储，按键覆盖写入、按前缀批量清除
    """

    __tablename__ = "edd_stats_report_cache"

    cache_key = Column(String(191), primary_key=True)
    value = Column(JSON, nullable=True)
    # 双精度：单精度在当前时间戳量级下误差超过一分钟
    expires_at = Column(Double, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)
