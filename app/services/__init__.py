"""
本包用于集中导出服务层核心类，便于上层直接引用。
主要导出:
- `DataSourceSelector`
- `OptionsStore`
- `ReportCache`
- `ReportQueryEngine`

`ReportService` 依赖 `app.reports`（其又依赖本包的查询引擎），请直接从 `app.services.report_service` 导入。
"""

from app.services.data_source import DataSourceSelector
from app.services.options_service import OptionsStore
from app.services.query_engine import ReportQueryEngine
from app.services.report_cache import ReportCache

__all__ = ["DataSourceSelector", "OptionsStore", "ReportCache", "ReportQueryEngine"]
