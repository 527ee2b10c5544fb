"""
本文件用于构建软件授权（EDD Software Licensing 扩展）相关报表 SQL。
"""

from __future__ import annotations

from app.reports.base import ReportQuery, keyed

LICENSES_TABLE = "edd_licenses"


def top_licenses(p: str, limit: int = 20) -> ReportQuery:
    limit = int(limit)
    query = f"""
        SELECT
            l.id AS license_id,
            l.license_key,
            COUNT(la.site_name) AS activation_count,
            d.post_title AS download_name
        FROM {p}edd_licenses l
        LEFT JOIN {p}edd_license_activations la ON l.id = la.license_id
        LEFT JOIN {p}posts d ON l.download_id = d.ID
        WHERE l.status != 'disabled'
        GROUP BY l.id
        ORDER BY activation_count DESC
        LIMIT {limit}
    """
    return keyed(f"top_licenses_{limit}", query)
