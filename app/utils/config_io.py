"""
本文件用于读取/写入项目中的 YAML 文件（`config.yaml`、`dev-config.yaml`、`options.yaml`），
并提供 YAML 文本与字典之间的转换工具。
主要函数:
- `load_yaml_dict`: 从 YAML 文件读取为字典（不存在则返回空字典）
- `dump_yaml_text`: 将字典序列化为 YAML 文本
- `save_yaml_dict`: 将字典写入 YAML 文件（自动创建父目录）
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml


def load_yaml_dict(file_path: Path) -> Dict[str, Any]:
    file_path = Path(file_path)
    if not file_path.exists():
        return {}

    raw_text = file_path.read_text(encoding="utf-8").strip()
    if not raw_text:
        return {}

    data = yaml.safe_load(raw_text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{file_path.name} 顶层必须为映射（key-value）结构")
    return data


def dump_yaml_text(data: Dict[str, Any]) -> str:
    return yaml.safe_dump(
        data,
        allow_unicode=True,
        sort_keys=False,
        default_flow_style=False,
    )


def save_yaml_dict(file_path: Path, data: Dict[str, Any]) -> None:
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(dump_yaml_text(data), encoding="utf-8")
