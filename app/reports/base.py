"""
本文件用于定义报表目录的公共协议与工具：报表查询描述、SQL 字面量渲染、日期条件与结果整形。
主要函数/类:
- `ReportQuery`: 报表查询描述（缓存键 + SQL + 结果形态）
- `sql_literal`: 将字符串渲染为带转义的 SQL 字面量
- `date_conditions`: 生成 `AND col >= '...' AND col <= '...'` 日期条件
- `percent_change`: 计算环比/同比变化百分比（前值为 0 时返回 0）
- `first_row_or`: 单行汇总结果为空时返回固定结构的零值记录
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import String, literal

from app.services.data_source import ResultKind
from app.services.query_engine import CacheKey

PAID_STATUSES = "('complete', 'edd_subscription')"


@dataclass(frozen=True)
class ReportQuery:
    key: CacheKey
    statement: str
    kind: ResultKind = ResultKind.ROWS


def hashed(seed: str, statement: str, kind: ResultKind = ResultKind.ROWS) -> ReportQuery:
    return ReportQuery(CacheKey.from_statement(seed, statement), statement, kind)


def keyed(seed: str, statement: str, kind: ResultKind = ResultKind.ROWS) -> ReportQuery:
    return ReportQuery(CacheKey.literal(seed), statement, kind)


def sql_literal(value: str) -> str:
    return str(literal(value, String()).compile(compile_kwargs={"literal_binds": True}))


def date_conditions(
    column: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    end_suffix: str = "",
) -> str:
    """
    输入:
    - `column`: 日期列（如 `o.date_created`）
    - `start_date`/`end_date`: 已校验的 `YYYY-MM-DD` 字符串（为空表示不限制）
    - `end_suffix`: 结束日期后缀（如 ` 23:59:59`）

    输出:
    - 以 ` AND` 开头的 SQL 片段，无条件时为空字符串
    """

    where = ""
    if start_date:
        where += f" AND {column} >= {sql_literal(start_date)}"
    if end_date:
        where += f" AND {column} <= {sql_literal(end_date + end_suffix)}"
    return where


def percent_change(current: float, previous: float, ndigits: int = 2) -> float:
    if previous > 0:
        return round((current - previous) / previous * 100, ndigits)
    return 0


def first_row_or(rows: Optional[List[Dict[str, Any]]], default: Dict[str, Any]) -> Dict[str, Any]:
    if not rows:
        return dict(default)
    return rows[0]


def as_list(rows: Optional[List[Any]]) -> List[Any]:
    return list(rows) if rows else []


def to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
