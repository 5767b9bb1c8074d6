"""
app.core.logging
~~~~~~~~~~~~~~~~

统一日志配置，根据环境自动设置日志级别和格式。

所有模块应通过 ``get_logger(__name__)`` 获取 logger 实例，
不要直接使用 ``print()`` 输出调试信息。

每条日志会带上当前处理中的连接 ID（``connection_id_ctx_var``），
WebSocket 端点在进入连接上下文时设置，离开时重置。
"""
from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

from app.core.settings import settings

# 日志格式：时间 | 级别 | 模块名 | [连接] 消息
_LOG_FORMAT: str = "%(asctime)s | %(levelname)-7s | %(name)s | [%(connection_id)s] %(message)s"
_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

connection_id_ctx_var: ContextVar[str] = ContextVar("connection_id", default="-")


class ConnectionIdFilter(logging.Filter):
    """把当前上下文中的连接 ID 注入到 LogRecord。"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.connection_id = connection_id_ctx_var.get()
        return True


def setup_logging() -> None:
    """根据当前环境配置全局日志。应在应用启动时调用一次。"""
    level = getattr(logging, settings.effective_log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    handler.addFilter(ConnectionIdFilter())

    logging.basicConfig(
        level=level,
        handlers=[handler],
        force=True,  # 覆盖可能已有的 basicConfig
    )

    # 第三方库只保留 WARNING 以上
    for noisy in ("httpcore", "httpx", "google_genai", "websockets"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """按模块名获取 logger，日志会自动带上连接 ID。"""
    return logging.getLogger(name)
