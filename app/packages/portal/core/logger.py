"""日志配置模块：统一控制台/文件输出格式，并为每条日志注入请求与主体上下文。"""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Optional

from .config import get_settings

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_principal_ctx: ContextVar[Optional[int]] = ContextVar("principal_id", default=None)

# 服务层通过 ``extra=`` 传入、JSON 输出时保留的业务字段
CONTEXT_FIELDS = ("enterprise_id", "service_id", "folder_id", "document_id", "share_id", "path")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s/%(principal_id)s] %(message)s"


class _TZFormatter(logging.Formatter):
    """按 ``Settings.timezone`` 渲染时间；未指定 datefmt 时输出带毫秒的 ISO-8601。"""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: D401
        moment = datetime.fromtimestamp(record.created, get_settings().timezone_info)
        if datefmt:
            return moment.strftime(datefmt)
        return moment.isoformat(sep=" ", timespec="milliseconds")


class ColorFormatter(_TZFormatter):
    """终端输出时按级别着色。"""

    PALETTE = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "41",
    }

    def __init__(
        self,
        fmt: str,
        datefmt: Optional[str] = None,
        style: str = "%",
        use_colors: Optional[bool] = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self.use_colors = sys.stderr.isatty() if use_colors is None else use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        code = self.PALETTE.get(record.levelno) if self.use_colors else None
        return f"\033[{code}m{message}\033[0m" if code else message


class JsonFormatter(_TZFormatter):
    """每行一个 JSON 对象，附带请求/主体上下文与 ``CONTEXT_FIELDS`` 中出现的字段。"""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record),
            "logger": record.name,
            "level": record.levelname,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
            "principal_id": getattr(record, "principal_id", None),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class RequestContextFilter(logging.Filter):
    """把上下文变量中的请求 id 与主体 id 写入 LogRecord。"""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.request_id = _request_id_ctx.get()
        record.principal_id = _principal_ctx.get()
        return True


def _route(level: str) -> dict[str, Any]:
    return {"handlers": ["default", "file"], "level": level, "propagate": False}


def setup_logging() -> None:
    """初始化日志：控制台彩色或 JSON，文件按天轮转。"""
    settings = get_settings()
    settings.log_directory.mkdir(parents=True, exist_ok=True)
    level = settings.log_level
    console = "json" if settings.log_json else "standard"
    context_filter = "app.packages.portal.core.logger.RequestContextFilter"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {"()": "app.packages.portal.core.logger.ColorFormatter", "format": LOG_FORMAT},
                "plain": {"format": LOG_FORMAT},
                "json": {"()": "app.packages.portal.core.logger.JsonFormatter"},
            },
            "filters": {"context": {"()": context_filter}},
            "handlers": {
                "default": {
                    "level": level,
                    "class": "logging.StreamHandler",
                    "formatter": console,
                    "filters": ["context"],
                },
                "file": {
                    "level": level,
                    "class": "logging.handlers.TimedRotatingFileHandler",
                    "formatter": "json" if settings.log_json else "plain",
                    "filename": str(settings.log_file_path),
                    "when": "midnight",
                    "backupCount": 14,
                    "encoding": "utf-8",
                    "delay": True,
                    "filters": ["context"],
                },
            },
            "loggers": {
                "app": _route(level),
                "uvicorn": _route(level),
                "uvicorn.error": _route(level),
                "uvicorn.access": _route(level),
            },
            "root": {"handlers": ["default", "file"], "level": level},
        }
    )


logger = logging.getLogger("app")


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


def set_principal_id(principal_id: Optional[int]) -> None:
    _principal_ctx.set(principal_id)
