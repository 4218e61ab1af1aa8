"""
日志配置
"""
import json
import logging
import logging.config
import sys
from typing import Any, Dict, Optional


class JsonFormatter(logging.Formatter):
    """单行 JSON 日志，消息中的引号和换行会被转义"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, self.datefmt),
            "name": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def get_logging_config(level: str = "INFO", fmt: str = "detailed") -> Dict[str, Any]:
    """获取日志配置"""
    level = level.upper()
    if fmt not in ("detailed", "json"):
        fmt = "detailed"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "[%(asctime)s] %(levelname)s %(name)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": JsonFormatter,
                "datefmt": "%Y-%m-%dT%H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": fmt,
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "src": {"level": level, "handlers": ["console"], "propagate": False},
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def setup_logging(level: str = "INFO", fmt: str = "detailed", verbose: bool = False):
    """初始化日志，verbose 时降为 DEBUG"""
    logging.config.dictConfig(get_logging_config("DEBUG" if verbose else level, fmt))

    # 第三方库降噪
    for name in ("httpx", "httpcore", "hpack", "h2", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def mask_token(token: Optional[str], keep: int = 10) -> str:
    """设备 token 掩码，日志中不输出完整 token"""
    if not token:
        return "<empty>"
    return f"{token[:keep]}..."
