"""
本文件用于提供通用工具函数，当前主要用于解析报表接口的日期参数。
主要函数:
- `parse_report_date`: 校验 `YYYY-MM-DD` 日期参数（必须是真实存在的日历日期）
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_report_date(value: Optional[str]) -> Optional[str]:
    """
    输入:
    - `value`: 请求中的日期字符串（可为空）

    输出:
    - 规范化后的日期字符串；为空时返回 None（表示不限制该端）

    作用:
    - 拒绝格式错误或不存在的日期（如 `2024-02-30`），非法时抛出 `ValueError`
    """

    text = (value or "").strip()
    if not text:
        return None
    if not _DATE_PATTERN.match(text):
        raise ValueError(f"日期格式错误，应为 YYYY-MM-DD: {text}")
    # strptime 会拒绝 2 月 30 日这类不存在的日期
    datetime.strptime(text, "%Y-%m-%d")
    return text
