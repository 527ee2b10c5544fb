"""
本文件用于读写管理端选项（`options.yaml`）：缓存时长与默认日期范围。
主要类/常量:
- `ALLOWED_RANGES`: 默认日期范围允许值
- `OptionsStore`: 选项读写（每次读取都重新加载文件，修改后无需重启即可生效）
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from app.core.logger import logger
from app.utils.config_io import load_yaml_dict, save_yaml_dict

CACHE_DURATION_KEY = "cache_duration"
DEFAULT_RANGE_KEY = "default_range"
ALLOWED_RANGES = ("30", "90", "365", "all")
FALLBACK_RANGE = "365"


def sanitize_cache_duration(value: Any) -> int:
    """非负整数；小数截断、负数取绝对值，无法解析时为 0（即关闭缓存）。"""
    try:
        return abs(int(float(str(value).strip())))
    except (TypeError, ValueError, OverflowError):
        return 0


def sanitize_default_range(value: Any) -> str:
    value = str(value).strip() if value is not None else ""
    return value if value in ALLOWED_RANGES else FALLBACK_RANGE


class OptionsStore:
    """
    输入:
    - `path`: 选项文件路径
    - `default_cache_duration`: 未设置时的缓存秒数

    输出:
    - 选项读写对象

    作用:
    - 为查询引擎提供实时的缓存时长，为前端提供默认日期范围
    """

    def __init__(self, path: Union[str, Path], default_cache_duration: int = 3600) -> None:
        self.path = Path(path)
        self.default_cache_duration = default_cache_duration

    def _load(self) -> Dict[str, Any]:
        try:
            return load_yaml_dict(self.path)
        except (ValueError, yaml.YAMLError) as e:
            logger.warning(f"⚠️ 选项文件格式错误，使用默认值: {e}")
            return {}

    def get_cache_duration(self) -> int:
        data = self._load()
        if data.get(CACHE_DURATION_KEY) is None:
            return self.default_cache_duration
        return sanitize_cache_duration(data[CACHE_DURATION_KEY])

    def get_default_range(self) -> str:
        return sanitize_default_range(self._load().get(DEFAULT_RANGE_KEY, FALLBACK_RANGE))

    def as_dict(self) -> Dict[str, Any]:
        return {
            CACHE_DURATION_KEY: self.get_cache_duration(),
            DEFAULT_RANGE_KEY: self.get_default_range(),
        }

    def update(self, cache_duration: Optional[Any] = None, default_range: Optional[Any] = None) -> Dict[str, Any]:
        data = self._load()
        if cache_duration is not None:
            data[CACHE_DURATION_KEY] = sanitize_cache_duration(cache_duration)
        if default_range is not None:
            data[DEFAULT_RANGE_KEY] = sanitize_default_range(default_range)
        save_yaml_dict(self.path, data)
        logger.info(f"⚙️ 管理端选项已更新: {data}")
        return self.as_dict()
