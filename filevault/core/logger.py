"""Logging setup: coloured console output, optional JSON lines, daily rotated file."""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Optional

from .config import get_settings


class _TZFormatter(logging.Formatter):
    """Formatter that renders timestamps in ``Settings.timezone``."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        dt = datetime.fromtimestamp(record.created, get_settings().timezone_info)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(sep=" ", timespec="milliseconds")


class ColorFormatter(_TZFormatter):
    """ANSI colours per level, only when attached to a terminal."""

    RESET = "\033[0m"
    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }

    def __init__(
        self,
        fmt: str,
        datefmt: Optional[str] = None,
        style: str = "%",
        use_colors: Optional[bool] = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        if use_colors is None:
            use_colors = sys.stderr.isatty()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelno) if self.use_colors else None
        if not color:
            return message
        return f"{color}{message}{self.RESET}"


class JsonFormatter(_TZFormatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "logger": record.name,
            "level": record.levelname,
            "msg": record.getMessage(),
            "operation_id": getattr(record, "operation_id", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


_operation_id_ctx: ContextVar[Optional[str]] = ContextVar("operation_id", default=None)


class OperationIdFilter(logging.Filter):
    """Copies the caller-supplied operation id onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation_id = _operation_id_ctx.get()
        return True


def setup_logging() -> None:
    """Install handlers for the ``filevault`` logger and the root logger."""
    settings = get_settings()
    settings.log_directory.mkdir(parents=True, exist_ok=True)

    formatter_name = "json" if settings.log_json else "standard"
    handlers = ["default", "file"]

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "()": "filevault.core.logger.ColorFormatter",
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(operation_id)s] %(message)s",
            },
            "plain": {
                "()": "filevault.core.logger._TZFormatter",
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(operation_id)s] %(message)s",
            },
            "json": {
                "()": "filevault.core.logger.JsonFormatter",
            },
        },
        "filters": {
            "operation_id": {"()": "filevault.core.logger.OperationIdFilter"},
        },
        "handlers": {
            "default": {
                "level": settings.log_level,
                "class": "logging.StreamHandler",
                "formatter": formatter_name,
                "filters": ["operation_id"],
            },
            "file": {
                "level": settings.log_level,
                "class": "logging.handlers.TimedRotatingFileHandler",
                "formatter": "json" if settings.log_json else "plain",
                "filename": str(settings.log_file_path),
                "when": "midnight",
                "backupCount": 14,
                "encoding": "utf-8",
                "delay": True,
                "filters": ["operation_id"],
            },
        },
        "loggers": {
            "filevault": {"handlers": handlers, "level": settings.log_level, "propagate": False},
            # boto's own retry chatter is noisy at INFO
            "botocore": {"handlers": handlers, "level": "WARNING", "propagate": False},
            "boto3": {"handlers": handlers, "level": "WARNING", "propagate": False},
        },
        "root": {"handlers": handlers, "level": settings.log_level},
    }
    logging.config.dictConfig(logging_config)


logger = logging.getLogger("filevault")


def set_operation_id(operation_id: Optional[str]) -> None:
    _operation_id_ctx.set(operation_id)


def get_operation_id() -> Optional[str]:
    return _operation_id_ctx.get()
