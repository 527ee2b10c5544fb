"""
本文件用于构建客户相关报表 SQL：新客户趋势、同比变化、客户终身价值及其分布、RFM 分群、客户健康度、流失风险与激活漏斗。
所有函数均为纯函数：输入表前缀与参数，输出 `ReportQuery`，不访问数据库。
"""

from __future__ import annotations

from typing import Optional

from app.reports.base import PAID_STATUSES, ReportQuery, date_conditions, hashed, keyed

_RECENCY_DAYS = "DATEDIFF(CURDATE(), MAX(o.date_created))"
_PAID_TOTAL = f"SUM(CASE WHEN o.status IN {PAID_STATUSES} THEN o.total ELSE 0 END)"

_RFM_SCORES = f"""
    CASE
        WHEN {_RECENCY_DAYS} <= 30 THEN 5
        WHEN {_RECENCY_DAYS} <= 60 THEN 4
        WHEN {_RECENCY_DAYS} <= 90 THEN 3
        WHEN {_RECENCY_DAYS} <= 180 THEN 2
        ELSE 1
    END AS recency_score,
    CASE
        WHEN COUNT(DISTINCT o.id) >= 10 THEN 5
        WHEN COUNT(DISTINCT o.id) >= 7 THEN 4
        WHEN COUNT(DISTINCT o.id) >= 4 THEN 3
        WHEN COUNT(DISTINCT o.id) >= 2 THEN 2
        ELSE 1
    END AS frequency_score,
    CASE
        WHEN {_PAID_TOTAL} >= 5000 THEN 5
        WHEN {_PAID_TOTAL} >= 2000 THEN 4
        WHEN {_PAID_TOTAL} >= 1000 THEN 3
        WHEN {_PAID_TOTAL} >= 500 THEN 2
        ELSE 1
    END AS monetary_score
"""

ACTIVATION_FUNNEL_ZERO = {
    "total_signups": 0,
    "made_purchase": 0,
    "repeat_purchase": 0,
    "became_subscriber": 0,
    "purchase_rate": 0,
    "repeat_rate": 0,
    "subscription_rate": 0,
}


def new_customers_by_month(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    where = date_conditions("date_created", start_date, end_date)
    query = f"""
        SELECT
            DATE_FORMAT(date_created, '%Y-%m-01') AS date,
            DATE_FORMAT(date_created, '%M %Y') AS label,
            COUNT(*) AS value
        FROM {p}edd_customers
        WHERE date_created IS NOT NULL
        {where}
        GROUP BY
            YEAR(date_created),
            MONTH(date_created)
        ORDER BY date
    """
    return hashed("customers_by_month_", query)


def new_customers_yoy(p: str) -> ReportQuery:
    query = f"""
        SELECT
            SUM(CASE WHEN YEAR(date_created) = YEAR(CURDATE()) THEN 1 ELSE 0 END) AS current_year,
            SUM(CASE WHEN YEAR(date_created) = YEAR(CURDATE()) - 1 THEN 1 ELSE 0 END) AS last_year
        FROM {p}edd_customers
        WHERE YEAR(date_created) IN (YEAR(CURDATE()), YEAR(CURDATE()) - 1)
    """
    return keyed("customers_yoy", query)


def customer_lifetime_values(
    p: str, start_date: Optional[str] = None, end_date: Optional[str] = None, limit: int = 100
) -> ReportQuery:
    where = date_conditions("c.date_created", start_date, end_date)
    query = f"""
        SELECT
            c.id AS customer_id,
            c.email,
            c.name,
            c.date_created AS signup_date,
            COUNT(DISTINCT o.id) AS purchase_count,
            ROUND({_PAID_TOTAL}, 2) AS total_spent,
            ROUND(AVG(CASE WHEN o.status IN {PAID_STATUSES} THEN o.total ELSE NULL END), 2) AS avg_order_value,
            DATEDIFF(CURDATE(), c.date_created) AS days_active,
            MAX(o.date_created) AS last_purchase_date
        FROM {p}edd_customers c
        LEFT JOIN {p}edd_orders o ON c.id = o.customer_id
        WHERE c.date_created IS NOT NULL
        {where}
        GROUP BY c.id
        HAVING purchase_count > 0
        ORDER BY total_spent DESC
        LIMIT {int(limit)}
    """
    return hashed("customer_clv_", query)


def clv_by_cohort(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    where = date_conditions("c.date_created", start_date, end_date)
    query = f"""
        SELECT
            DATE_FORMAT(c.date_created, '%Y-%m-01') AS cohort_date,
            DATE_FORMAT(c.date_created, '%M %Y') AS cohort_label,
            COUNT(DISTINCT c.id) AS customer_count,
            ROUND(AVG(customer_totals.total_spent), 2) AS avg_clv,
            ROUND(AVG(customer_totals.purchase_count), 2) AS avg_purchases,
            ROUND(AVG(customer_totals.days_active), 0) AS avg_days_active
        FROM {p}edd_customers c
        INNER JOIN (
            SELECT
                c2.id,
                {_PAID_TOTAL} AS total_spent,
                COUNT(DISTINCT o.id) AS purchase_count,
                DATEDIFF(CURDATE(), c2.date_created) AS days_active
            FROM {p}edd_customers c2
            LEFT JOIN {p}edd_orders o ON c2.id = o.customer_id
            GROUP BY c2.id
        ) AS customer_totals ON c.id = customer_totals.id
        WHERE c.date_created IS NOT NULL
        {where}
        GROUP BY
            YEAR(c.date_created),
            MONTH(c.date_created)
        ORDER BY cohort_date
    """
    return hashed("clv_by_cohort_", query)


def rfm_segments(p: str) -> ReportQuery:
    query = f"""
        SELECT
            c.id AS customer_id,
            c.email,
            c.name,
            {_RECENCY_DAYS} AS recency_days,
            COUNT(DISTINCT o.id) AS frequency,
            ROUND({_PAID_TOTAL}, 2) AS monetary,
            {_RFM_SCORES}
        FROM {p}edd_customers c
        INNER JOIN {p}edd_orders o ON c.id = o.customer_id
        WHERE o.status IN {PAID_STATUSES}
        GROUP BY c.id
        HAVING frequency > 0
        ORDER BY recency_score DESC, frequency_score DESC, monetary_score DESC
    """
    return keyed("rfm_segments", query)


def segment_performance(p: str) -> ReportQuery:
    query = f"""
        SELECT
            CASE
                WHEN (recency_score + frequency_score + monetary_score) >= 13 THEN 'Champions'
                WHEN (recency_score + frequency_score + monetary_score) >= 10 AND recency_score >= 4 THEN 'Loyal Customers'
                WHEN monetary_score >= 4 AND (recency_score + frequency_score) >= 6 THEN 'Big Spenders'
                WHEN recency_score >= 4 AND frequency_score <= 2 THEN 'Recent Customers'
                WHEN frequency_score >= 4 AND recency_score <= 2 THEN 'At Risk'
                WHEN recency_score <= 2 AND frequency_score <= 2 THEN 'Lost'
                ELSE 'Potential'
            END AS segment,
            COUNT(*) AS customer_count,
            ROUND(SUM(monetary), 2) AS total_revenue,
            ROUND(AVG(monetary), 2) AS avg_revenue,
            ROUND(AVG(frequency), 2) AS avg_purchases,
            ROUND(AVG(recency_days), 0) AS avg_days_since_purchase
        FROM (
            SELECT
                c.id,
                {_RECENCY_DAYS} AS recency_days,
                COUNT(DISTINCT o.id) AS frequency,
                {_PAID_TOTAL} AS monetary,
                {_RFM_SCORES}
            FROM {p}edd_customers c
            INNER JOIN {p}edd_orders o ON c.id = o.customer_id
            WHERE o.status IN {PAID_STATUSES}
            GROUP BY c.id
        ) AS rfm_data
        GROUP BY segment
        ORDER BY total_revenue DESC
    """
    return keyed("segment_performance", query)


def at_risk_customers(p: str, limit: int = 50) -> ReportQuery:
    recent_cancellations = f"""(SELECT COUNT(*) FROM {p}edd_subscriptions s
            WHERE s.customer_id = c.id
            AND s.status IN ('cancelled', 'expired')
            AND s.expiration >= DATE_SUB(CURDATE(), INTERVAL 90 DAY))"""
    query = f"""
        SELECT
            c.id AS customer_id,
            c.email,
            c.name,
            {_RECENCY_DAYS} AS days_since_purchase,
            COUNT(DISTINCT o.id) AS total_purchases,
            ROUND({_PAID_TOTAL}, 2) AS total_spent,
            MAX(o.date_created) AS last_purchase_date,
            {recent_cancellations} AS recent_cancellations,
            CASE
                WHEN {recent_cancellations} > 0 THEN 'High'
                WHEN {_RECENCY_DAYS} > 120 AND COUNT(DISTINCT o.id) >= 3 THEN 'Medium'
                ELSE 'Low'
            END AS churn_risk
        FROM {p}edd_customers c
        INNER JOIN {p}edd_orders o ON c.id = o.customer_id
        WHERE o.status IN {PAID_STATUSES}
        GROUP BY c.id
        HAVING
            (days_since_purchase > 90 AND total_purchases >= 2)
            OR recent_cancellations > 0
        ORDER BY
            CASE churn_risk WHEN 'High' THEN 1 WHEN 'Medium' THEN 2 WHEN 'Low' THEN 3 END,
            total_spent DESC
        LIMIT {int(limit)}
    """
    return keyed(f"at_risk_customers_{int(limit)}", query)


def churn_prediction_scores(p: str, limit: int = 100) -> ReportQuery:
    active_subscriptions = f"(SELECT COUNT(*) FROM {p}edd_subscriptions s WHERE s.customer_id = c.id AND s.status = 'active')"
    failed_payments = (
        f"(SELECT COUNT(*) FROM {p}edd_orders o2 WHERE o2.customer_id = c.id AND o2.status = 'failed' "
        f"AND o2.date_created >= DATE_SUB(CURDATE(), INTERVAL 3 MONTH))"
    )
    recent_cancellations = (
        f"(SELECT COUNT(*) FROM {p}edd_subscriptions s WHERE s.customer_id = c.id "
        f"AND s.status IN ('cancelled', 'expired') AND s.expiration >= DATE_SUB(CURDATE(), INTERVAL 3 MONTH))"
    )
    high_risk = f"({_RECENCY_DAYS} > 180 OR {failed_payments} >= 2 OR {recent_cancellations} > 0)"
    medium_risk = f"({_RECENCY_DAYS} > 90 OR {failed_payments} >= 1)"
    query = f"""
        SELECT
            c.id AS customer_id,
            c.email,
            c.name,
            {_RECENCY_DAYS} AS days_since_last_order,
            COUNT(DISTINCT o.id) AS total_orders,
            ROUND({_PAID_TOTAL}, 2) AS lifetime_value,
            {active_subscriptions} AS active_subscriptions,
            {failed_payments} AS recent_failed_payments,
            CASE WHEN {high_risk} THEN 'High' WHEN {medium_risk} THEN 'Medium' ELSE 'Low' END AS churn_risk,
            CASE WHEN {high_risk} THEN 85 WHEN {medium_risk} THEN 55 ELSE 20 END AS churn_score
        FROM {p}edd_customers c
        INNER JOIN {p}edd_orders o ON c.id = o.customer_id
        WHERE o.status IN ('complete', 'edd_subscription', 'failed')
        GROUP BY c.id
        HAVING total_orders > 0
        ORDER BY churn_score DESC, lifetime_value DESC
        LIMIT {int(limit)}
    """
    return keyed(f"churn_prediction_scores_{int(limit)}", query)


def activation_funnel(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    where = date_conditions("c.date_created", start_date, end_date)
    purchased = "COUNT(DISTINCT CASE WHEN o.id IS NOT NULL THEN c.id END)"
    repeated = "COUNT(DISTINCT CASE WHEN purchase_counts.purchase_count >= 2 THEN c.id END)"
    subscribed = "COUNT(DISTINCT CASE WHEN s.id IS NOT NULL THEN c.id END)"
    query = f"""
        SELECT
            COUNT(DISTINCT c.id) AS total_signups,
            {purchased} AS made_purchase,
            {repeated} AS repeat_purchase,
            {subscribed} AS became_subscriber,
            ROUND(100.0 * {purchased} / COUNT(DISTINCT c.id), 2) AS purchase_rate,
            ROUND(100.0 * {repeated} / NULLIF({purchased}, 0), 2) AS repeat_rate,
            ROUND(100.0 * {subscribed} / NULLIF({purchased}, 0), 2) AS subscription_rate
        FROM {p}edd_customers c
        LEFT JOIN {p}edd_orders o ON c.id = o.customer_id
            AND o.status IN {PAID_STATUSES}
        LEFT JOIN {p}edd_subscriptions s ON c.id = s.customer_id
            AND s.status != 'pending'
        LEFT JOIN (
            SELECT customer_id, COUNT(DISTINCT id) AS purchase_count
            FROM {p}edd_orders
            WHERE status IN {PAID_STATUSES}
            GROUP BY customer_id
        ) AS purchase_counts ON c.id = purchase_counts.customer_id
        WHERE c.date_created IS NOT NULL
        {where}
    """
    return hashed("activation_funnel_", query)


def clv_distribution(p: str) -> ReportQuery:
    # 按消费额百分位分档（只统计有过付费的客户）
    query = f"""
        SELECT
            CASE
                WHEN spend_rank >= 0.9 THEN 'Top 10%'
                WHEN spend_rank >= 0.75 THEN '75-90%'
                WHEN spend_rank >= 0.5 THEN '50-75%'
                WHEN spend_rank >= 0.25 THEN '25-50%'
                ELSE 'Bottom 25%'
            END AS segment,
            COUNT(*) AS customer_count,
            ROUND(AVG(total_spent), 2) AS avg_clv,
            ROUND(SUM(total_spent), 2) AS total_revenue
        FROM (
            SELECT
                total_spent,
                PERCENT_RANK() OVER (ORDER BY total_spent) AS spend_rank
            FROM (
                SELECT c.id, {_PAID_TOTAL} AS total_spent
                FROM {p}edd_customers c
                LEFT JOIN {p}edd_orders o ON c.id = o.customer_id
                GROUP BY c.id
                HAVING total_spent > 0
            ) AS customer_totals
        ) AS customer_clv
        GROUP BY segment
        ORDER BY
            CASE segment
                WHEN 'Top 10%' THEN 1
                WHEN '75-90%' THEN 2
                WHEN '50-75%' THEN 3
                WHEN '25-50%' THEN 4
                WHEN 'Bottom 25%' THEN 5
            END
    """
    return keyed("clv_distribution", query)


def customer_health_scores(p: str, limit: int = 100) -> ReportQuery:
    active_subscriptions = f"(SELECT COUNT(*) FROM {p}edd_subscriptions s WHERE s.customer_id = c.id AND s.status = 'active')"
    excellent = f"{_RECENCY_DAYS} <= 30 AND {active_subscriptions} > 0"
    good = f"{_RECENCY_DAYS} <= 60 AND COUNT(DISTINCT o.id) >= 2"
    query = f"""
        SELECT
            c.id AS customer_id,
            c.email,
            c.name,
            {_RECENCY_DAYS} AS days_since_purchase,
            COUNT(DISTINCT o.id) AS total_purchases,
            ROUND({_PAID_TOTAL}, 2) AS total_spent,
            {active_subscriptions} AS active_subscriptions,
            CASE
                WHEN {excellent} THEN 'Excellent'
                WHEN {good} THEN 'Good'
                WHEN {_RECENCY_DAYS} <= 90 THEN 'Fair'
                WHEN {_RECENCY_DAYS} <= 180 THEN 'At Risk'
                ELSE 'Poor'
            END AS health_status,
            CASE
                WHEN {excellent} THEN 95
                WHEN {good} THEN 75
                WHEN {_RECENCY_DAYS} <= 90 THEN 50
                WHEN {_RECENCY_DAYS} <= 180 THEN 25
                ELSE 10
            END AS health_score
        FROM {p}edd_customers c
        INNER JOIN {p}edd_orders o ON c.id = o.customer_id
        WHERE o.status IN {PAID_STATUSES}
        GROUP BY c.id
        ORDER BY health_score DESC, total_spent DESC
        LIMIT {int(limit)}
    """
    return keyed(f"customer_health_{int(limit)}", query)
