"""
本文件用于构建收入相关报表 SQL：月度收入（新购/续费）、收入构成、退款金额与退款率、收入集中度、运行率、现金流预估、LTV/CAC、收入预测与季节性分析。
"""

from __future__ import annotations

from typing import Optional

from app.reports.base import PAID_STATUSES, ReportQuery, date_conditions, hashed, keyed, sql_literal

MAX_FORECAST_MONTHS = 6

LTV_CAC_ZERO = {"avg_ltv": 0, "ltv_cac_ratio": 0, "estimated_cac": 0, "customer_count": 0}


def revenue_by_month(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    where = f" AND o.status IN {PAID_STATUSES}" + date_conditions("o.date_created", start_date, end_date)
    query = f"""
        SELECT
            DATE_FORMAT(o.date_created, '%Y-%m-01') AS date,
            DATE_FORMAT(o.date_created, '%M %Y') AS label,
            SUM(CASE WHEN o.type = 'sale' THEN o.total ELSE 0 END) AS new_revenue,
            SUM(CASE WHEN o.type = 'renewal' THEN o.total ELSE 0 END) AS recurring_revenue,
            SUM(o.total) AS total_revenue
        FROM {p}edd_orders o
        WHERE o.type IN ('sale', 'renewal')
        {where}
        GROUP BY
            YEAR(o.date_created),
            MONTH(o.date_created)
        ORDER BY date
    """
    return hashed("revenue_by_month_", query)


def refunded_revenue_by_month(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    where = date_conditions("o.date_created", start_date, end_date)
    query = f"""
        SELECT
            DATE_FORMAT(o.date_created, '%Y-%m-01') AS date,
            DATE_FORMAT(o.date_created, '%M %Y') AS label,
            ABS(SUM(o.total)) AS value
        FROM {p}edd_orders o
        WHERE o.status = 'refunded'
        {where}
        GROUP BY
            YEAR(o.date_created),
            MONTH(o.date_created)
        ORDER BY date
    """
    return hashed("refunded_revenue_", query)


def refund_rates_by_month(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    # 按月份粒度过滤：只比较 YYYY-MM
    where = ""
    if start_date:
        where += f" AND DATE_FORMAT(date_created, '%Y-%m') >= {sql_literal(start_date[:7])}"
    if end_date:
        where += f" AND DATE_FORMAT(date_created, '%Y-%m') <= {sql_literal(end_date[:7])}"
    query = f"""
        SELECT
            month_year,
            DATE_FORMAT(STR_TO_DATE(CONCAT(month_year, '-01'), '%Y-%m-%d'), '%M %Y') AS label,
            ROUND(100.0 * SUM(CASE WHEN status = 'refunded' THEN 1 ELSE 0 END) / COUNT(*), 2) AS refund_rate
        FROM (
            SELECT
                DATE_FORMAT(date_created, '%Y-%m') AS month_year,
                status
            FROM {p}edd_orders
            WHERE type = 'sale'
            {where}
        ) AS orders
        GROUP BY month_year
        ORDER BY month_year
    """
    return hashed("refund_rates_", query)


def revenue_run_rate(p: str) -> ReportQuery:
    last_month = "SUM(CASE WHEN o.date_created >= DATE_SUB(CURDATE(), INTERVAL 1 MONTH) THEN o.total ELSE 0 END)"
    last_quarter = "SUM(CASE WHEN o.date_created >= DATE_SUB(CURDATE(), INTERVAL 3 MONTH) THEN o.total ELSE 0 END)"
    query = f"""
        SELECT
            ROUND({last_month}, 2) AS last_month_revenue,
            ROUND({last_month} * 12, 2) AS annual_run_rate,
            ROUND({last_quarter} / 3, 2) AS avg_monthly_revenue_3mo,
            ROUND(({last_quarter} / 3) * 12, 2) AS annual_run_rate_3mo,
            ROUND((SELECT SUM(recurring_amount * 12) FROM {p}edd_subscriptions WHERE status = 'active'), 2) AS arr_from_subscriptions,
            ROUND((SELECT SUM(recurring_amount) FROM {p}edd_subscriptions WHERE status = 'active'), 2) AS mrr_from_subscriptions
        FROM {p}edd_orders o
        WHERE o.status IN {PAID_STATUSES}
    """
    return keyed("revenue_run_rate", query)


def revenue_forecast(p: str, months: int = 6) -> ReportQuery:
    months = max(1, min(int(months), MAX_FORECAST_MONTHS))
    query = f"""
        SELECT
            forecast_date,
            forecast_label,
            ROUND(avg_revenue * (1 + (avg_growth_rate / 100)), 2) AS projected_revenue,
            ROUND(avg_revenue * (1 + ((avg_growth_rate - stddev_growth_rate) / 100)), 2) AS conservative_estimate,
            ROUND(avg_revenue * (1 + ((avg_growth_rate + stddev_growth_rate) / 100)), 2) AS optimistic_estimate,
            avg_growth_rate AS growth_rate,
            confidence_level
        FROM (
            SELECT
                DATE_ADD(DATE_FORMAT(CURDATE(), '%Y-%m-01'), INTERVAL n MONTH) AS forecast_date,
                DATE_FORMAT(DATE_ADD(CURDATE(), INTERVAL n MONTH), '%M %Y') AS forecast_label,
                AVG(monthly_revenue) AS avg_revenue,
                AVG(growth_rate) AS avg_growth_rate,
                STDDEV(growth_rate) AS stddev_growth_rate,
                CASE
                    WHEN COUNT(*) >= 12 THEN 'High'
                    WHEN COUNT(*) >= 6 THEN 'Medium'
                    ELSE 'Low'
                END AS confidence_level,
                n
            FROM (
                SELECT
                    DATE_FORMAT(o.date_created, '%Y-%m-01') AS month,
                    SUM(o.total) AS monthly_revenue,
                    100.0 * (SUM(o.total) - LAG(SUM(o.total)) OVER (ORDER BY DATE_FORMAT(o.date_created, '%Y-%m-01'))) /
                    NULLIF(LAG(SUM(o.total)) OVER (ORDER BY DATE_FORMAT(o.date_created, '%Y-%m-01')), 0) AS growth_rate
                FROM {p}edd_orders o
                WHERE o.status IN {PAID_STATUSES}
                AND o.date_created >= DATE_SUB(CURDATE(), INTERVAL 12 MONTH)
                GROUP BY DATE_FORMAT(o.date_created, '%Y-%m-01')
            ) AS monthly_data
            CROSS JOIN (
                SELECT 1 AS n UNION SELECT 2 UNION SELECT 3 UNION SELECT 4 UNION SELECT 5 UNION SELECT 6
            ) AS forecast_months
            WHERE n <= {months}
            GROUP BY n
        ) AS forecast_data
        ORDER BY forecast_date
    """
    return keyed(f"revenue_forecast_{months}", query)


def seasonal_patterns(p: str) -> ReportQuery:
    query = f"""
        SELECT
            month_number,
            month_name,
            ROUND(AVG(monthly_revenue), 2) AS avg_revenue,
            ROUND(AVG(order_count), 0) AS avg_orders,
            ROUND(AVG(customer_count), 0) AS avg_customers,
            ROUND(STDDEV(monthly_revenue), 2) AS revenue_volatility,
            ROUND(
                100.0 * (AVG(monthly_revenue) - overall_avg.avg_all_months) / NULLIF(overall_avg.avg_all_months, 0),
                2
            ) AS deviation_from_average,
            CASE
                WHEN AVG(monthly_revenue) >= overall_avg.avg_all_months * 1.2 THEN 'Peak Season'
                WHEN AVG(monthly_revenue) >= overall_avg.avg_all_months * 1.1 THEN 'High Season'
                WHEN AVG(monthly_revenue) >= overall_avg.avg_all_months * 0.9 THEN 'Normal Season'
                WHEN AVG(monthly_revenue) >= overall_avg.avg_all_months * 0.8 THEN 'Low Season'
                ELSE 'Off Season'
            END AS seasonality_classification
        FROM (
            SELECT
                MONTH(o.date_created) AS month_number,
                DATE_FORMAT(o.date_created, '%M') AS month_name,
                YEAR(o.date_created) AS year,
                SUM(o.total) AS monthly_revenue,
                COUNT(DISTINCT o.id) AS order_count,
                COUNT(DISTINCT o.customer_id) AS customer_count
            FROM {p}edd_orders o
            WHERE o.status IN {PAID_STATUSES}
            AND o.date_created >= DATE_SUB(CURDATE(), INTERVAL 2 YEAR)
            GROUP BY YEAR(o.date_created), MONTH(o.date_created)
        ) AS monthly_metrics
        CROSS JOIN (
            SELECT AVG(monthly_total) AS avg_all_months
            FROM (
                SELECT SUM(total) AS monthly_total
                FROM {p}edd_orders
                WHERE status IN {PAID_STATUSES}
                AND date_created >= DATE_SUB(CURDATE(), INTERVAL 2 YEAR)
                GROUP BY YEAR(date_created), MONTH(date_created)
            ) AS all_months
        ) AS overall_avg
        GROUP BY month_number, month_name
        ORDER BY month_number
    """
    return keyed("seasonal_patterns", query)


def revenue_breakdown(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    where = date_conditions("o.date_created", start_date, end_date)
    prior_orders = f"""
                    FROM {p}edd_orders prior
                    WHERE prior.customer_id = o.customer_id
                    AND prior.status IN {PAID_STATUSES}
                    AND prior.date_created < o.date_created"""
    query = f"""
        SELECT
            DATE_FORMAT(o.date_created, '%Y-%m-01') AS date,
            DATE_FORMAT(o.date_created, '%M %Y') AS label,
            ROUND(SUM(CASE WHEN o.type = 'sale' AND is_first_purchase = 1 THEN o.total ELSE 0 END), 2) AS new_customer_revenue,
            ROUND(SUM(CASE WHEN o.type = 'sale' AND is_first_purchase = 0 THEN o.total ELSE 0 END), 2) AS existing_customer_revenue,
            ROUND(SUM(CASE WHEN o.type = 'renewal' THEN o.total ELSE 0 END), 2) AS renewal_revenue,
            ROUND(SUM(CASE WHEN o.type = 'sale' AND upgrade_indicator = 1 THEN o.total ELSE 0 END), 2) AS upgrade_revenue,
            ROUND(SUM(o.total), 2) AS total_revenue
        FROM (
            SELECT
                o.*,
                CASE WHEN (SELECT COUNT(*) {prior_orders}) = 0 THEN 1 ELSE 0 END AS is_first_purchase,
                CASE WHEN o.total > (SELECT AVG(prior.total) {prior_orders}) THEN 1 ELSE 0 END AS upgrade_indicator
            FROM {p}edd_orders o
            WHERE o.status IN {PAID_STATUSES}
            {where}
        ) AS o
        GROUP BY
            YEAR(o.date_created),
            MONTH(o.date_created)
        ORDER BY date
    """
    return hashed("revenue_breakdown_", query)


def revenue_concentration(p: str) -> ReportQuery:
    # 前 N% 客户/产品贡献的收入占比；名次用窗口函数计算
    paid_total = f"(SELECT SUM(total) FROM {p}edd_orders WHERE status IN {PAID_STATUSES})"
    customer_totals = f"""
            SELECT
                total_spent,
                ROW_NUMBER() OVER (ORDER BY total_spent DESC) AS position,
                COUNT(*) OVER () AS population
            FROM (
                SELECT c.id, SUM(CASE WHEN o.status IN {PAID_STATUSES} THEN o.total ELSE 0 END) AS total_spent
                FROM {p}edd_customers c
                INNER JOIN {p}edd_orders o ON c.id = o.customer_id
                GROUP BY c.id
            ) AS spend"""
    query = f"""
        SELECT
            'Top 10% Customers' AS segment,
            COUNT(*) AS count,
            ROUND(SUM(total_spent), 2) AS revenue,
            ROUND(100.0 * SUM(total_spent) / {paid_total}, 2) AS revenue_percentage
        FROM ({customer_totals}
        ) AS ranked
        WHERE position <= FLOOR(population * 0.1)

        UNION ALL

        SELECT
            'Top 20% Customers' AS segment,
            COUNT(*) AS count,
            ROUND(SUM(total_spent), 2) AS revenue,
            ROUND(100.0 * SUM(total_spent) / {paid_total}, 2) AS revenue_percentage
        FROM ({customer_totals}
        ) AS ranked
        WHERE position <= FLOOR(population * 0.2)

        UNION ALL

        SELECT
            'Top 10% Products' AS segment,
            COUNT(*) AS count,
            ROUND(SUM(product_revenue), 2) AS revenue,
            ROUND(100.0 * SUM(product_revenue) / {paid_total}, 2) AS revenue_percentage
        FROM (
            SELECT
                product_revenue,
                ROW_NUMBER() OVER (ORDER BY product_revenue DESC) AS position,
                COUNT(*) OVER () AS population
            FROM (
                SELECT oi.product_id, SUM(oi.total) AS product_revenue
                FROM {p}edd_order_items oi
                INNER JOIN {p}edd_orders o ON oi.order_id = o.id
                WHERE o.status IN {PAID_STATUSES}
                GROUP BY oi.product_id
            ) AS product_totals
        ) AS ranked
        WHERE position <= FLOOR(population * 0.1)
    """
    return keyed("revenue_concentration", query)


def cash_flow_projection(p: str, days: int = 90) -> ReportQuery:
    days = int(days)
    recent_failure = f"""(
                SELECT COUNT(*) FROM {p}edd_orders fo
                WHERE fo.customer_id = s.customer_id
                AND fo.status = 'failed'
                AND fo.date_created >= DATE_SUB(CURDATE(), INTERVAL 60 DAY)
            ) > 0"""

    def confirmed(window: int) -> str:
        return f"ROUND(SUM(CASE WHEN s.expiration <= DATE_ADD(CURDATE(), INTERVAL {window} DAY) THEN s.recurring_amount ELSE 0 END), 2)"

    def projected(window: int) -> str:
        return (
            f"ROUND(AVG(CASE WHEN sale_date >= DATE_SUB(CURDATE(), INTERVAL {window} DAY) "
            f"THEN daily_revenue ELSE NULL END) * {window}, 2)"
        )

    def at_risk(window: int) -> str:
        return (
            f"ROUND(SUM(CASE WHEN s.expiration <= DATE_ADD(CURDATE(), INTERVAL {window} DAY) "
            f"AND {recent_failure} THEN s.recurring_amount ELSE 0 END), 2)"
        )

    query = f"""
        SELECT
            'Confirmed Revenue' AS category,
            {confirmed(30)} AS next_30_days,
            {confirmed(60)} AS next_60_days,
            {confirmed(90)} AS next_90_days
        FROM {p}edd_subscriptions s
        WHERE s.status = 'active'
        AND s.expiration >= CURDATE()
        AND s.expiration <= DATE_ADD(CURDATE(), INTERVAL {days} DAY)

        UNION ALL

        SELECT
            'Projected New Sales' AS category,
            {projected(30)} AS next_30_days,
            {projected(60)} AS next_60_days,
            {projected(90)} AS next_90_days
        FROM (
            SELECT DATE(date_created) AS sale_date, SUM(total) AS daily_revenue
            FROM {p}edd_orders
            WHERE status IN {PAID_STATUSES}
            AND type = 'sale'
            GROUP BY DATE(date_created)
        ) AS daily_sales

        UNION ALL

        SELECT
            'At-Risk Revenue' AS category,
            {at_risk(30)} AS next_30_days,
            {at_risk(60)} AS next_60_days,
            {at_risk(90)} AS next_90_days
        FROM {p}edd_subscriptions s
        WHERE s.status = 'active'
    """
    return keyed(f"cash_flow_projection_{days}", query)


def ltv_cac_ratio(p: str) -> ReportQuery:
    # 没有营销成本数据时，以近一年收入 / 近一年新客户数近似获客成本
    estimated_cac = f"""(
            SELECT SUM(o.total) FROM {p}edd_orders o
            WHERE o.status IN {PAID_STATUSES}
            AND o.date_created >= DATE_SUB(CURDATE(), INTERVAL 1 YEAR)
        ) / NULLIF((
            SELECT COUNT(DISTINCT id) FROM {p}edd_customers
            WHERE date_created >= DATE_SUB(CURDATE(), INTERVAL 1 YEAR)
        ), 0)"""
    query = f"""
        SELECT
            ROUND(AVG(customer_ltv), 2) AS avg_ltv,
            ROUND(AVG(customer_ltv) / NULLIF({estimated_cac}, 0), 2) AS ltv_cac_ratio,
            ROUND({estimated_cac}, 2) AS estimated_cac,
            COUNT(*) AS customer_count
        FROM (
            SELECT
                c.id,
                SUM(CASE WHEN o.status IN {PAID_STATUSES} THEN o.total ELSE 0 END) AS customer_ltv
            FROM {p}edd_customers c
            INNER JOIN {p}edd_orders o ON c.id = o.customer_id
            GROUP BY c.id
        ) AS customer_metrics
    """
    return keyed("ltv_cac_ratio", query)
