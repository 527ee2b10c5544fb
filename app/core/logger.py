"""
本文件用于配置 EDD Stats 服务日志：控制台输出、管理端可查看的内存日志缓冲，以及第三方库日志降噪。
主要类/函数:
- `LogBuffer`: 定长内存日志缓冲（供 `/admin/logs` 读取）
- `configure_logging`: 配置根 logger（可重复调用，不会重复挂载 handler）
- `setup_logger`: 获取项目命名 logger
- `get_cached_log_text` / `clear_cached_logs`: 读取/清空内存日志
"""

import logging
import sys
from collections import deque
from threading import Lock
from typing import List, Optional

from app.core.config import get_settings

settings = get_settings()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# 报表请求量大时这些库在 INFO 下会刷屏（每条 SQL、每次连接）
NOISY_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "aiomysql",
    "aiosqlite",
    "asyncio",
)


class LogBuffer:
    """
    输入:
    - `capacity`: 最多保留的日志行数

    输出:
    - 内存日志缓冲

    作用:
    - 保存最近的格式化日志行，超出容量时丢弃最旧的
    """

    def __init__(self, capacity: int = 1000) -> None:
        self._lock = Lock()
        self._lines = deque(maxlen=capacity)

    def append(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)

    def lines(self, limit: Optional[int] = None) -> List[str]:
        with self._lock:
            items = list(self._lines)
        if limit is not None and limit >= 0:
            items = items[-limit:] if limit else []
        return items

    def clear(self) -> int:
        with self._lock:
            count = len(self._lines)
            self._lines.clear()
        return count


class _BufferHandler(logging.Handler):
    def __init__(self, buffer: LogBuffer) -> None:
        super().__init__()
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.buffer.append(self.format(record))
        except (TypeError, ValueError):
            self.handleError(record)


log_buffer = LogBuffer()
_buffer_handler = _BufferHandler(log_buffer)


def _level_of(name: Optional[str]) -> int:
    level = logging.getLevelName((name or "").upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: Optional[str] = None) -> None:
    log_level = _level_of(level or settings.LOG_LEVEL)
    formatter = logging.Formatter(LOG_FORMAT)
    root = logging.getLogger()

    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        root.addHandler(console)
    if _buffer_handler not in root.handlers:
        root.addHandler(_buffer_handler)

    _buffer_handler.setFormatter(formatter)
    _buffer_handler.setLevel(log_level)
    root.setLevel(log_level)

    # DEBUG 时保留 SQL 日志便于排查报表语句
    noisy_level = log_level if log_level <= logging.DEBUG else max(log_level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


def setup_logger(name: str) -> logging.Logger:
    """获取命名 logger；首次调用时顺带完成根 logger 配置。"""
    if _buffer_handler not in logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


def get_cached_log_text(limit: Optional[int] = None) -> str:
    return "\n".join(log_buffer.lines(limit))


def clear_cached_logs() -> int:
    return log_buffer.clear()


logger = setup_logger(settings.APP_NAME)
