"""
本文件用于执行报表目录中的查询并对结果整形，是 API 层与查询引擎之间的服务层。
主要类/函数:
- `build_health_payload`: 组装健康检查输出（未配置数据库时也可直接使用）
- `ReportService`: 报表服务（每个方法对应一个报表，缓存保存原始结果，整形在缓存之后进行）

整形约定:
- 单行汇总类报表在无数据时返回固定结构的零值记录，而不是 None 或空列表
- 列表类报表在无数据时返回 `[]`
- 变化百分比在前值为 0 时返回 0
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from app.core.exceptions import ReportQueryError
from app.core.logger import logger
from app.reports import customers, licensing, products, revenue, subscriptions
from app.reports.base import ReportQuery, as_list, first_row_or, percent_change, to_float, to_int
from app.services.data_source import ResultKind, StoreConnection
from app.services.query_engine import ReportQueryEngine

HEALTH_TABLES = ("edd_customers", "edd_orders", "edd_subscriptions")

RUN_RATE_ZERO = {
    "last_month_revenue": 0,
    "annual_run_rate": 0,
    "avg_monthly_revenue_3mo": 0,
    "annual_run_rate_3mo": 0,
    "arr_from_subscriptions": 0,
    "mrr_from_subscriptions": 0,
}


def build_health_payload(
    plugin_name: str,
    version: str,
    db_ok: bool = False,
    edd_active: bool = False,
    tables_exist: Optional[Dict[str, bool]] = None,
) -> Dict[str, Any]:
    tables = tables_exist if tables_exist is not None else {name: False for name in HEALTH_TABLES}
    return {
        "success": db_ok and edd_active and all(tables.values()),
        "plugin": plugin_name,
        "version": version,
        "database": "connected" if db_ok else "disconnected",
        "edd_active": edd_active,
        "tables_exist": tables,
    }


class ReportService:
    """
    输入:
    - `engine`: 报表查询引擎

    输出:
    - 报表服务实例

    作用:
    - 根据当前数据源的表前缀渲染报表 SQL，经查询引擎（带缓存）执行后整形为 API 输出结构
    """

    def __init__(self, engine: ReportQueryEngine, plugin_name: str = "EDD Stats", version: str = "1.0.0") -> None:
        self.engine = engine
        self.plugin_name = plugin_name
        self.version = version

    @property
    def prefix(self) -> str:
        return self.engine.selector.get_table_prefix()

    async def _run(self, query: ReportQuery) -> Any:
        return await self.engine.run_cached(query.key, query.statement, query.kind)

    async def _rows(self, query: ReportQuery) -> List[Dict[str, Any]]:
        return as_list(await self._run(query))

    # =========================
    # 客户与收入
    # =========================

    async def get_new_customers_by_month(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        return await self._rows(customers.new_customers_by_month(self.prefix, start_date, end_date))

    async def get_new_customers_yoy_change(self) -> Dict[str, Any]:
        """
        输入:
        - 无

        输出:
        - `{current_year, last_year, change}`；无数据时全部为 0

        作用:
        - 统计今年与去年的新客户数量并计算同比变化百分比
        """

        rows = await self._run(customers.new_customers_yoy(self.prefix))
        if not rows:
            return {"current_year": 0, "last_year": 0, "change": 0}

        current = to_int(rows[0].get("current_year"))
        last = to_int(rows[0].get("last_year"))
        return {"current_year": current, "last_year": last, "change": percent_change(current, last)}

    async def get_revenue_by_month(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        return await self._rows(revenue.revenue_by_month(self.prefix, start_date, end_date))

    async def get_refunded_revenue_by_month(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        return await self._rows(revenue.refunded_revenue_by_month(self.prefix, start_date, end_date))

    # =========================
    # MRR 与增长
    # =========================

    async def get_mrr_by_month(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        return await self._rows(subscriptions.mrr_by_month(self.prefix, start_date, end_date))

    async def get_current_mrr_breakdown(self) -> Dict[str, float]:
        prefix = self.prefix
        new_mrr = to_float(await self._run(subscriptions.new_mrr_current(prefix)))
        churned_mrr = to_float(await self._run(subscriptions.churned_mrr_current(prefix)))
        existing_mrr = to_float(await self._run(subscriptions.existing_mrr_current(prefix)))
        return {
            "new_mrr": new_mrr,
            "existing_mrr": existing_mrr,
            "churned_mrr": churned_mrr,
            "net_mrr": new_mrr + existing_mrr - churned_mrr,
        }

    # =========================
    # 续费与退款
    # =========================

    async def get_renewal_rates_by_month(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        return await self._rows(subscriptions.renewal_rates_by_month(self.prefix, start_date, end_date))

    async def get_upcoming_renewals(self, days: int = 30) -> Dict[str, Any]:
        rows = await self._run(subscriptions.upcoming_renewals(self.prefix, days))
        if not rows:
            return dict(subscriptions.UPCOMING_RENEWALS_ZERO)
        return {
            "count": to_int(rows[0].get("count")),
            "estimated_revenue": to_float(rows[0].get("estimated_revenue")),
        }

    async def get_refund_rates_by_month(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        return await self._rows(revenue.refund_rates_by_month(self.prefix, start_date, end_date))

    # =========================
    # 软件授权
    # =========================

    async def get_top_licenses(self, limit: int = 20) -> List[Dict[str, Any]]:
        prefix = self.prefix
        conn = await self.engine.selector.get_connection()
        # 未安装授权扩展时没有授权表
        if not await conn.has_table(f"{prefix}{licensing.LICENSES_TABLE}"):
            return []
        return await self._rows(licensing.top_licenses(prefix, limit))

    # =========================
    # 客户价值与分群
    # =========================

    async def get_customer_lifetime_values(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None, limit: int = 100
    ):
        return await self._rows(customers.customer_lifetime_values(self.prefix, start_date, end_date, limit))

    async def get_clv_by_cohort(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        return await self._rows(customers.clv_by_cohort(self.prefix, start_date, end_date))

    async def get_clv_distribution(self):
        return await self._rows(customers.clv_distribution(self.prefix))

    async def get_rfm_segments(self):
        return await self._rows(customers.rfm_segments(self.prefix))

    async def get_segment_performance(self):
        return await self._rows(customers.segment_performance(self.prefix))

    async def get_customer_health_scores(self, limit: int = 100):
        return await self._rows(customers.customer_health_scores(self.prefix, limit))

    async def get_at_risk_customers(self, limit: int = 50):
        return await self._rows(customers.at_risk_customers(self.prefix, limit))

    async def get_churn_prediction_scores(self, limit: int = 100):
        return await self._rows(customers.churn_prediction_scores(self.prefix, limit))

    async def get_customer_activation_funnel(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        rows = await self._run(customers.activation_funnel(self.prefix, start_date, end_date))
        return first_row_or(rows, customers.ACTIVATION_FUNNEL_ZERO)

    # =========================
    # 收入分析与预测
    # =========================

    async def get_revenue_run_rate(self) -> Dict[str, Any]:
        rows = await self._run(revenue.revenue_run_rate(self.prefix))
        return first_row_or(rows, RUN_RATE_ZERO)

    async def get_revenue_forecast(self, months: int = 6):
        return await self._rows(revenue.revenue_forecast(self.prefix, months))

    async def get_seasonal_patterns(self):
        return await self._rows(revenue.seasonal_patterns(self.prefix))

    async def get_revenue_breakdown(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        return await self._rows(revenue.revenue_breakdown(self.prefix, start_date, end_date))

    async def get_revenue_concentration(self):
        return await self._rows(revenue.revenue_concentration(self.prefix))

    async def get_cash_flow_projection(self, days: int = 90):
        return await self._rows(revenue.cash_flow_projection(self.prefix, days))

    async def get_ltv_cac_ratio(self) -> Dict[str, Any]:
        rows = await self._run(revenue.ltv_cac_ratio(self.prefix))
        return first_row_or(rows, revenue.LTV_CAC_ZERO)

    # =========================
    # 产品
    # =========================

    async def get_top_products(self, start_date: Optional[str] = None, end_date: Optional[str] = None, limit: int = 20):
        return await self._rows(products.top_products(self.prefix, start_date, end_date, limit))

    async def get_product_growth_trends(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None, limit: int = 10
    ):
        return await self._rows(products.product_growth_trends(self.prefix, start_date, end_date, limit))

    async def get_product_performance_matrix(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        return await self._rows(products.product_performance_matrix(self.prefix, start_date, end_date))

    async def get_bundle_performance(self, start_date: Optional[str] = None, end_date: Optional[str] = None):
        return await self._rows(products.bundle_performance(self.prefix, start_date, end_date))

    async def get_product_lifecycle_stages(self):
        return await self._rows(products.product_lifecycle_stages(self.prefix))

    async def get_demand_forecast(self, days: int = 30, limit: int = 10):
        return await self._rows(products.demand_forecast(self.prefix, days, limit))

    # =========================
    # 缓存与健康检查
    # =========================

    async def clear_cache(self) -> int:
        return await self.engine.cache.clear_all()

    async def _is_edd_active(self, conn: StoreConnection, prefix: str) -> bool:
        # EDD 激活时会在 options 表中写入 edd_version
        statement = f"SELECT option_value FROM {prefix}options WHERE option_name = 'edd_version' LIMIT 1"
        try:
            version = await conn.fetch(statement, ResultKind.SCALAR)
        except ReportQueryError as e:
            logger.warning(f"⚠️ 检查 EDD 激活状态失败: {e}")
            return False
        return bool(version)

    async def health_check(self) -> Dict[str, Any]:
        """
        输入:
        - 无

        输出:
        - `{success, plugin, version, database, edd_active, tables_exist}`

        作用:
        - 检查主库连通性与 EDD 核心表是否存在（不经过缓存，也不受开发模式影响）
        """

        conn = self.engine.selector.primary
        prefix = conn.table_prefix
        db_ok = await conn.ping()

        tables_exist = {name: False for name in HEALTH_TABLES}
        edd_active = False
        if db_ok:
            try:
                for name in HEALTH_TABLES:
                    tables_exist[name] = await conn.has_table(f"{prefix}{name}")
            except ReportQueryError as e:
                logger.warning(f"⚠️ 健康检查读取表结构失败: {e}")
            edd_active = await self._is_edd_active(conn, prefix)

        return build_health_payload(self.plugin_name, self.version, db_ok, edd_active, tables_exist)
