"""
本文件用于读取开发模式数据源配置（`dev-config.yaml`），决定报表查询是否改走备用数据库。
主要函数/类:
- `DataSourceConfig`: 开发模式数据源配置模型
- `load_dev_config`: 每次调用都重新读取配置文件（支持不重启进程切换开发模式）
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel
from sqlalchemy.engine import URL

from app.core.logger import logger
from app.utils.config_io import load_yaml_dict


class DataSourceConfig(BaseModel):
    """
    输入:
    - `dev-config.yaml` 中的键值（缺省项使用默认值）

    输出:
    - 开发模式数据源配置对象

    作用:
    - 描述备用（只读镜像）数据库的连接参数与表前缀
    """

    dev_mode: bool = False
    db_driver: str = "mysql+aiomysql"
    db_host: str = "localhost"
    db_port: Optional[int] = 3306
    db_name: str = "edd_stats_dev"
    db_user: str = "root"
    db_password: str = "root"
    db_prefix: Optional[str] = None

    def to_url(self) -> URL:
        if self.db_driver.startswith("sqlite"):
            return URL.create(self.db_driver, database=self.db_name)
        return URL.create(
            self.db_driver,
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )


def load_dev_config(path: Union[str, Path]) -> DataSourceConfig:
    """
    输入:
    - `path`: 开发配置文件路径

    输出:
    - `DataSourceConfig`；文件不存在时返回关闭开发模式的默认配置

    作用:
    - 读取开发模式开关与备用库参数；文件格式错误时视为未开启开发模式
    """

    try:
        data = load_yaml_dict(Path(path))
        return DataSourceConfig(**{str(k).lower(): v for k, v in data.items()})
    except (ValueError, yaml.YAMLError) as e:
        logger.warning(f"⚠️ 开发配置文件无效，按生产模式处理: {e}")
        return DataSourceConfig()
