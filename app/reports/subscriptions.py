"""
本文件用于构建订阅相关报表 SQL：MRR 月度趋势、本月 MRR 构成、续费率与即将到期续费。
"""

from __future__ import annotations

from typing import Optional

from app.reports.base import PAID_STATUSES, ReportQuery, date_conditions, hashed, keyed
from app.services.data_source import ResultKind

UPCOMING_RENEWALS_ZERO = {"count": 0, "estimated_revenue": 0}


def mrr_by_month(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    where = " AND s.status != 'pending'" + date_conditions("s.created", start_date, end_date)
    query = f"""
        SELECT
            DATE_FORMAT(s.created, '%Y-%m-01') AS date,
            DATE_FORMAT(s.created, '%M %Y') AS label,
            COUNT(DISTINCT s.id) AS subscriptions,
            ROUND(SUM(s.initial_amount / 12), 2) AS mrr
        FROM {p}edd_subscriptions s
        WHERE 1=1
        {where}
        AND NOT EXISTS (
            SELECT 1
            FROM {p}edd_orders o
            WHERE ( o.parent = s.parent_payment_id OR o.id = s.parent_payment_id )
            AND o.status = 'refunded'
        )
        GROUP BY
            YEAR(s.created),
            MONTH(s.created)
        ORDER BY date
    """
    return hashed("mrr_by_month_", query)


def new_mrr_current(p: str) -> ReportQuery:
    query = f"""
        SELECT COALESCE(ROUND(SUM(initial_amount / 12), 2), 0) AS new_mrr
        FROM {p}edd_subscriptions
        WHERE DATE_FORMAT(created, '%Y-%m') = DATE_FORMAT(CURDATE(), '%Y-%m')
        AND status != 'pending'
    """
    return keyed("new_mrr_current", query, ResultKind.SCALAR)


def churned_mrr_current(p: str) -> ReportQuery:
    query = f"""
        SELECT COALESCE(ROUND(SUM(initial_amount / 12), 2), 0) AS churned_mrr
        FROM {p}edd_subscriptions
        WHERE DATE_FORMAT(expiration, '%Y-%m') = DATE_FORMAT(CURDATE(), '%Y-%m')
        AND status IN ('cancelled', 'expired')
    """
    return keyed("churned_mrr_current", query, ResultKind.SCALAR)


def existing_mrr_current(p: str) -> ReportQuery:
    query = f"""
        SELECT COALESCE(ROUND(SUM(initial_amount / 12), 2), 0) AS existing_mrr
        FROM {p}edd_subscriptions
        WHERE DATE_FORMAT(created, '%Y-%m') < DATE_FORMAT(CURDATE(), '%Y-%m')
        AND status = 'active'
    """
    return keyed("existing_mrr_current", query, ResultKind.SCALAR)


def renewal_rates_by_month(p: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> ReportQuery:
    where = date_conditions("c.date_created", start_date, end_date, end_suffix=" 23:59:59")
    query = f"""
        SELECT
            DATE_FORMAT(c.date_created, '%Y-%m-01') AS date,
            DATE_FORMAT(c.date_created, '%M %Y') AS label,
            ROUND(
                100.0 * COUNT(DISTINCT CASE
                    WHEN o.status IN {PAID_STATUSES}
                    AND o.type = 'renewal'
                    AND o.date_created >= DATE_ADD(c.date_created, INTERVAL 1 YEAR)
                    AND o.date_created <= DATE_ADD(c.date_created, INTERVAL 13 MONTH)
                    THEN o.customer_id
                END) / NULLIF(COUNT(DISTINCT c.id), 0),
                2
            ) AS renewal_rate
        FROM {p}edd_customers c
        LEFT JOIN {p}edd_orders o ON c.id = o.customer_id
        WHERE c.date_created >= '2017-01-01'
        AND c.date_created <= DATE_SUB(CURDATE(), INTERVAL 1 YEAR)
        {where}
        GROUP BY
            YEAR(c.date_created),
            MONTH(c.date_created)
        ORDER BY date
    """
    return hashed("renewal_rates_", query)


def upcoming_renewals(p: str, days: int = 30) -> ReportQuery:
    days = int(days)
    query = f"""
        SELECT
            COUNT(DISTINCT id) AS count,
            ROUND(SUM(recurring_amount), 2) AS estimated_revenue
        FROM {p}edd_subscriptions
        WHERE status = 'active'
        AND expiration >= CURDATE()
        AND expiration <= DATE_ADD(CURDATE(), INTERVAL {days} DAY)
    """
    return keyed(f"upcoming_renewals_{days}", query)
