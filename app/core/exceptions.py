"""
本文件用于定义项目统一的业务异常基类，便于上层统一处理。
主要类:
- `EDDStatsError`: 业务异常基类
- `DataSourceUnavailableError`: 备用（开发）数据源不可用
- `ReportQueryError`: 报表查询执行失败
"""


class EDDStatsError(Exception):
    """
    输入:
    - 业务错误信息

    输出:
    - 异常对象

    作用:
    - 作为项目统一的业务异常基类，便于 API 层集中捕获与转换
    """

    pass


class DataSourceUnavailableError(EDDStatsError):
    """
    输入:
    - 备用数据源连接错误信息

    输出:
    - 异常对象

    作用:
    - 标识开发模式下备用数据库无法连接，由数据源选择器捕获并降级到主库
    """
    pass


class ReportQueryError(EDDStatsError):
    """
    输入:
    - 查询执行错误信息、出错的缓存键

    输出:
    - 异常对象

    作用:
    - 标识报表 SQL 执行失败，原样向上传递给 API 层转换为 5xx 响应
    """

    def __init__(self, message: str, cache_key: str = "") -> None:
        super().__init__(message)
        self.cache_key = cache_key
