"""JSON 行格式日志。

用法::

    from zhouyi.logging_config import configure_logging
    configure_logging("debug")
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

# 业务代码通过 ``extra={}`` 附带的字段
_KNOWN_EXTRA_FIELDS = frozenset(
    {
        "session_id",
        "phase",
        "line_index",
        "value",
        "code",
        "path",
        "count",
    }
)


class JsonLineFormatter(logging.Formatter):
    """每条日志输出一个 JSON 对象。"""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        }
        for field in _KNOWN_EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str | int | None = None) -> None:
    """为 `zhouyi` 根日志器安装 JSON 输出，可重复调用。"""
    resolved = level or os.getenv("ZHOUYI_LOG_LEVEL", "INFO")
    if isinstance(resolved, str):
        resolved = resolved.upper()

    logger = logging.getLogger("zhouyi")
    logger.setLevel(resolved)
    for handler in list(logger.handlers):
        if getattr(handler, "_zhouyi_json", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonLineFormatter())
    handler._zhouyi_json = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
