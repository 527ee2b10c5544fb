"""
本文件用于构建产品相关报表 SQL：畅销产品、产品月度趋势、产品象限矩阵、捆绑包对比、产品生命周期与需求预测。
产品名称取自 WordPress `posts` 表（下载商品即文章类型 `download`）。
"""

from __future__ import annotations

from typing import Optional

from app.reports.base import PAID_STATUSES, ReportQuery, date_conditions, hashed, keyed

_PAID_WHERE = f" AND o.status IN {PAID_STATUSES}"


def _window_sum(months_from: int, months_to: Optional[int] = None, alias: str = "o", amount: str = "oi.total") -> str:
    # months_from 个月前至 months_to 个月前（不含）之间的金额合计
    cond = f"{alias}.date_created >= DATE_SUB(CURDATE(), INTERVAL {months_from} MONTH)"
    if months_to is not None:
        cond += f" AND {alias}.date_created < DATE_SUB(CURDATE(), INTERVAL {months_to} MONTH)"
    return f"SUM(CASE WHEN {cond} THEN {amount} ELSE 0 END)"


def top_products(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None, limit: int = 20) -> ReportQuery:
    where = _PAID_WHERE + date_conditions("o.date_created", start_date, end_date)
    query = f"""
        SELECT
            oi.product_id,
            d.post_title AS product_name,
            COUNT(DISTINCT o.id) AS order_count,
            SUM(oi.quantity) AS units_sold,
            ROUND(SUM(oi.total), 2) AS total_revenue,
            ROUND(AVG(oi.total / NULLIF(oi.quantity, 0)), 2) AS avg_price,
            ROUND(SUM(oi.total) / COUNT(DISTINCT o.id), 2) AS aov
        FROM {p}edd_order_items oi
        INNER JOIN {p}edd_orders o ON oi.order_id = o.id
        LEFT JOIN {p}posts d ON oi.product_id = d.ID
        WHERE 1=1
        {where}
        GROUP BY oi.product_id
        ORDER BY total_revenue DESC
        LIMIT {int(limit)}
    """
    return hashed("top_products_", query)


def product_growth_trends(
    p: str, start_date: Optional[str] = None, end_date: Optional[str] = None, limit: int = 10
) -> ReportQuery:
    where = _PAID_WHERE + date_conditions("o.date_created", start_date, end_date)
    # MySQL 不支持 IN 子查询中使用 LIMIT，改为与派生表连接
    query = f"""
        SELECT
            DATE_FORMAT(o.date_created, '%Y-%m-01') AS date,
            DATE_FORMAT(o.date_created, '%M %Y') AS label,
            oi.product_id,
            d.post_title AS product_name,
            SUM(oi.quantity) AS units_sold,
            ROUND(SUM(oi.total), 2) AS revenue,
            COUNT(DISTINCT o.id) AS order_count
        FROM {p}edd_order_items oi
        INNER JOIN {p}edd_orders o ON oi.order_id = o.id
        INNER JOIN (
            SELECT oi2.product_id
            FROM {p}edd_order_items oi2
            INNER JOIN {p}edd_orders o2 ON oi2.order_id = o2.id
            WHERE o2.status IN {PAID_STATUSES}
            GROUP BY oi2.product_id
            ORDER BY SUM(oi2.total) DESC
            LIMIT {int(limit)}
        ) AS leaders ON oi.product_id = leaders.product_id
        LEFT JOIN {p}posts d ON oi.product_id = d.ID
        WHERE 1=1
        {where}
        GROUP BY
            YEAR(o.date_created),
            MONTH(o.date_created),
            oi.product_id
        ORDER BY date, revenue DESC
    """
    return hashed("product_growth_trends_", query)


def product_performance_matrix(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    where = _PAID_WHERE + date_conditions("o.date_created", start_date, end_date)
    current = _window_sum(3)
    previous = _window_sum(6, 3)
    current2 = _window_sum(3, alias="o2", amount="oi2.total")
    previous2 = _window_sum(6, 3, alias="o2", amount="oi2.total")
    query = f"""
        SELECT
            product_id,
            product_name,
            current_revenue,
            previous_revenue,
            growth_rate,
            units_sold,
            CASE
                WHEN current_revenue >= avg_revenue AND growth_rate >= avg_growth THEN 'Star'
                WHEN current_revenue >= avg_revenue AND growth_rate < avg_growth THEN 'Cash Cow'
                WHEN current_revenue < avg_revenue AND growth_rate >= avg_growth THEN 'Question Mark'
                ELSE 'Dog'
            END AS quadrant
        FROM (
            SELECT
                oi.product_id,
                d.post_title AS product_name,
                ROUND({current}, 2) AS current_revenue,
                ROUND({previous}, 2) AS previous_revenue,
                ROUND(100.0 * ({current} - {previous}) / NULLIF({previous}, 0), 2) AS growth_rate,
                SUM(oi.quantity) AS units_sold,
                (SELECT AVG(product_revenue) FROM (
                    SELECT SUM(oi2.total) AS product_revenue
                    FROM {p}edd_order_items oi2
                    INNER JOIN {p}edd_orders o2 ON oi2.order_id = o2.id
                    WHERE o2.status IN {PAID_STATUSES}
                    AND o2.date_created >= DATE_SUB(CURDATE(), INTERVAL 3 MONTH)
                    GROUP BY oi2.product_id
                ) AS revenue_avg) AS avg_revenue,
                (SELECT AVG(product_growth) FROM (
                    SELECT 100.0 * ({current2} - {previous2}) / NULLIF({previous2}, 0) AS product_growth
                    FROM {p}edd_order_items oi2
                    INNER JOIN {p}edd_orders o2 ON oi2.order_id = o2.id
                    WHERE o2.status IN {PAID_STATUSES}
                    GROUP BY oi2.product_id
                ) AS growth_avg) AS avg_growth
            FROM {p}edd_order_items oi
            INNER JOIN {p}edd_orders o ON oi.order_id = o.id
            LEFT JOIN {p}posts d ON oi.product_id = d.ID
            WHERE 1=1
            {where}
            GROUP BY oi.product_id
            HAVING current_revenue > 0
        ) AS product_metrics
        ORDER BY current_revenue DESC
    """
    return hashed("product_performance_matrix_", query)


def bundle_performance(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    where = _PAID_WHERE + date_conditions("o.date_created", start_date, end_date)
    # EDD 捆绑包在 postmeta 中带有 _edd_bundled_products
    query = f"""
        SELECT
            CASE
                WHEN d.post_parent > 0 OR pm.meta_value IS NOT NULL THEN 'Bundle'
                ELSE 'Individual'
            END AS product_type,
            COUNT(DISTINCT oi.product_id) AS product_count,
            COUNT(DISTINCT o.id) AS order_count,
            SUM(oi.quantity) AS units_sold,
            ROUND(SUM(oi.total), 2) AS total_revenue,
            ROUND(AVG(oi.total), 2) AS avg_revenue_per_sale,
            ROUND(SUM(oi.total) / COUNT(DISTINCT o.customer_id), 2) AS revenue_per_customer
        FROM {p}edd_order_items oi
        INNER JOIN {p}edd_orders o ON oi.order_id = o.id
        LEFT JOIN {p}posts d ON oi.product_id = d.ID
        LEFT JOIN {p}postmeta pm ON d.ID = pm.post_id
            AND pm.meta_key = '_edd_bundled_products'
        WHERE 1=1
        {where}
        GROUP BY product_type
        ORDER BY total_revenue DESC
    """
    return hashed("bundle_performance_", query)


def product_lifecycle_stages(p: str) -> ReportQuery:
    current = _window_sum(1)
    previous = _window_sum(2, 1)
    query = f"""
        SELECT
            product_id,
            product_name,
            months_active,
            revenue_trend,
            current_revenue,
            peak_revenue,
            CASE
                WHEN months_active <= 3 AND revenue_trend > 20 THEN 'Introduction'
                WHEN revenue_trend > 10 THEN 'Growth'
                WHEN revenue_trend >= -10 AND revenue_trend <= 10 THEN 'Maturity'
                WHEN revenue_trend < -10 AND revenue_trend >= -30 THEN 'Decline'
                ELSE 'End of Life'
            END AS lifecycle_stage,
            last_sale_date
        FROM (
            SELECT
                oi.product_id,
                d.post_title AS product_name,
                TIMESTAMPDIFF(MONTH, MIN(o.date_created), CURDATE()) AS months_active,
                ROUND(100.0 * ({current} - {previous}) / NULLIF({previous}, 0), 2) AS revenue_trend,
                ROUND({current}, 2) AS current_revenue,
                ROUND(MAX(monthly_revenue.revenue), 2) AS peak_revenue,
                MAX(o.date_created) AS last_sale_date
            FROM {p}edd_order_items oi
            INNER JOIN {p}edd_orders o ON oi.order_id = o.id
            LEFT JOIN {p}posts d ON oi.product_id = d.ID
            LEFT JOIN (
                SELECT
                    oi2.product_id,
                    DATE_FORMAT(o2.date_created, '%Y-%m') AS month,
                    SUM(oi2.total) AS revenue
                FROM {p}edd_order_items oi2
                INNER JOIN {p}edd_orders o2 ON oi2.order_id = o2.id
                WHERE o2.status IN {PAID_STATUSES}
                GROUP BY oi2.product_id, DATE_FORMAT(o2.date_created, '%Y-%m')
            ) AS monthly_revenue ON oi.product_id = monthly_revenue.product_id
            WHERE o.status IN {PAID_STATUSES}
            GROUP BY oi.product_id
            HAVING months_active > 0
        ) AS product_metrics
        ORDER BY
            CASE lifecycle_stage
                WHEN 'Introduction' THEN 1
                WHEN 'Growth' THEN 2
                WHEN 'Maturity' THEN 3
                WHEN 'Decline' THEN 4
                WHEN 'End of Life' THEN 5
            END,
            current_revenue DESC
    """
    return keyed("product_lifecycle_stages", query)


def demand_forecast(p: str, days: int = 30, limit: int = 10) -> ReportQuery:
    days = int(days)
    limit = int(limit)
    recent_units = "AVG(CASE WHEN sale_date >= DATE_SUB(CURDATE(), INTERVAL 30 DAY) THEN daily_units END)"
    prior_units = (
        "AVG(CASE WHEN sale_date >= DATE_SUB(CURDATE(), INTERVAL 60 DAY) "
        "AND sale_date < DATE_SUB(CURDATE(), INTERVAL 30 DAY) THEN daily_units END)"
    )
    query = f"""
        SELECT
            product_id,
            product_name,
            ROUND(avg_daily_sales * {days}, 0) AS forecasted_units,
            ROUND(avg_daily_revenue * {days}, 2) AS forecasted_revenue,
            avg_daily_sales,
            avg_daily_revenue,
            trend_direction,
            CASE
                WHEN data_points >= 90 THEN 'High'
                WHEN data_points >= 30 THEN 'Medium'
                ELSE 'Low'
            END AS forecast_confidence
        FROM (
            SELECT
                daily_sales.product_id,
                d.post_title AS product_name,
                AVG(daily_units) AS avg_daily_sales,
                AVG(daily_revenue) AS avg_daily_revenue,
                COUNT(DISTINCT sale_date) AS data_points,
                CASE
                    WHEN {recent_units} > {prior_units} THEN 'Increasing'
                    WHEN {recent_units} < {prior_units} THEN 'Decreasing'
                    ELSE 'Stable'
                END AS trend_direction
            FROM (
                SELECT
                    oi.product_id,
                    DATE(o.date_created) AS sale_date,
                    SUM(oi.quantity) AS daily_units,
                    SUM(oi.total) AS daily_revenue
                FROM {p}edd_order_items oi
                INNER JOIN {p}edd_orders o ON oi.order_id = o.id
                WHERE o.status IN {PAID_STATUSES}
                AND o.date_created >= DATE_SUB(CURDATE(), INTERVAL 90 DAY)
                GROUP BY oi.product_id, DATE(o.date_created)
            ) AS daily_sales
            INNER JOIN (
                SELECT oi2.product_id, SUM(oi2.total) AS total_revenue
                FROM {p}edd_order_items oi2
                INNER JOIN {p}edd_orders o2 ON oi2.order_id = o2.id
                WHERE o2.status IN {PAID_STATUSES}
                AND o2.date_created >= DATE_SUB(CURDATE(), INTERVAL 90 DAY)
                GROUP BY oi2.product_id
                ORDER BY total_revenue DESC
                LIMIT {limit}
            ) AS leaders ON daily_sales.product_id = leaders.product_id
            LEFT JOIN {p}posts d ON daily_sales.product_id = d.ID
            GROUP BY daily_sales.product_id
        ) AS product_forecasts
        ORDER BY forecasted_revenue DESC
    """
    return keyed(f"demand_forecast_{days}_{limit}", query)
