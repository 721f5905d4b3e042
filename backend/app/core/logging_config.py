"""
Structured logging setup: JSON formatting, request context and log counters
"""
import json
import logging
import re
import sys
from contextvars import ContextVar
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.config import get_settings

# Per-request values merged into every JSON record
request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

# LogRecord attributes that are never copied as "extra" fields
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "message", "pathname", "process",
    "processName", "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "taskName",
})

_ROTATION_WHEN = {"midnight", "W0", "W1", "W2", "W3", "W4", "W5", "W6"}


class SensitiveDataFilter(logging.Filter):
    """Mask credentials that end up in log messages"""

    SENSITIVE_PATTERNS = [
        (re.compile(r'password["\']?\s*[:=]\s*["\']?([^"\'\s&]+)', re.IGNORECASE), 'password": "***"'),
        (re.compile(r'token["\']?\s*[:=]\s*["\']?([^"\'\s&]+)', re.IGNORECASE), 'token": "***"'),
        (re.compile(r'secret["\']?\s*[:=]\s*["\']?([^"\'\s&]+)', re.IGNORECASE), 'secret": "***"'),
        (re.compile(r'Bearer\s+([^\s"]+)', re.IGNORECASE), "Bearer ***"),
        (re.compile(r'postgresql://([^:/@]+):([^@]+)@', re.IGNORECASE), r"postgresql://\1:***@"),
    ]

    def __init__(self, enabled: bool = True):
        super().__init__()
        self.enabled = enabled

    def _mask(self, value: str) -> str:
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            value = pattern.sub(replacement, value)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.enabled:
            return True
        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._mask(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class ContextualFormatter(logging.Formatter):
    """Render records as one JSON object per line, with request context"""

    def format(self, record: logging.LogRecord) -> str:
        log_dict = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        ctx = request_context.get({})
        if ctx:
            log_dict.update(ctx)

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        # Fields passed through extra=
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in log_dict:
                continue
            try:
                json.dumps(value)
                log_dict[key] = value
            except (TypeError, ValueError):
                log_dict[key] = str(value)

        return json.dumps(log_dict, ensure_ascii=False, default=str)


class LoggingConfig:
    """Centralized logging configuration"""

    _configured = False
    _module_levels: Dict[str, str] = {}
    _log_metrics: Dict[str, int] = {
        "DEBUG": 0,
        "INFO": 0,
        "WARNING": 0,
        "ERROR": 0,
        "CRITICAL": 0,
    }

    @classmethod
    def configure(cls, module_levels: Optional[Dict[str, str]] = None):
        """Configure logging once per process"""
        if cls._configured:
            return

        settings = get_settings()

        levels = {
            "sqlalchemy.engine": "INFO" if settings.log_sqlalchemy else "WARNING",
            "sqlalchemy.pool": "WARNING",
            "uvicorn.access": "INFO" if settings.log_uvicorn_access else "WARNING",
            "uvicorn.error": "INFO",
            "app": settings.log_level,
            "root": settings.log_level,
        }
        if settings.log_module_levels:
            try:
                levels.update(json.loads(settings.log_module_levels))
            except (json.JSONDecodeError, TypeError):
                sys.stderr.write("Ignoring malformed LOG_MODULE_LEVELS\n")
        if module_levels:
            levels.update(module_levels)
        cls._module_levels = levels

        if settings.log_format == "json":
            formatter: logging.Formatter = ContextualFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        sensitive_filter = SensitiveDataFilter(enabled=not settings.log_sensitive_data)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(sensitive_filter)
        handlers = [console_handler]

        if settings.log_file_enabled:
            log_path = Path(settings.log_file_path)
            if not log_path.is_absolute():
                log_path = Path(__file__).resolve().parent.parent.parent.parent / log_path
            log_path.parent.mkdir(parents=True, exist_ok=True)

            when = settings.log_file_rotation
            if when not in _ROTATION_WHEN:
                when = "midnight"
            file_handler = TimedRotatingFileHandler(
                filename=str(log_path),
                when=when,
                interval=1,
                backupCount=settings.log_file_retention,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            file_handler.addFilter(sensitive_filter)
            handlers.append(file_handler)

        logging.basicConfig(
            level=getattr(logging, levels["root"].upper()),
            handlers=handlers,
            force=True,
        )

        for module, level in levels.items():
            if module == "root":
                continue
            logger = logging.getLogger(module)
            logger.setLevel(getattr(logging, level.upper()))
            if module.startswith(("sqlalchemy", "uvicorn")):
                logger.propagate = False

        logging.getLogger().addHandler(cls._MetricsHandler(level=logging.DEBUG))
        cls._configured = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger for a module"""
        if not cls._configured:
            cls.configure()
        return logging.getLogger(name)

    @classmethod
    def set_module_level(cls, module: str, level: str):
        logging.getLogger(module).setLevel(getattr(logging, level.upper()))
        cls._module_levels[module] = level

    @classmethod
    def set_context(cls, **kwargs):
        """Add values to the per-request logging context"""
        ctx = request_context.get({}).copy()
        ctx.update(kwargs)
        request_context.set(ctx)

    @classmethod
    def clear_context(cls):
        request_context.set({})

    @classmethod
    def get_metrics(cls) -> Dict[str, int]:
        """Get log counts by level"""
        return cls._log_metrics.copy()

    @classmethod
    def reset_metrics(cls):
        cls._log_metrics = {level: 0 for level in cls._log_metrics}

    class _MetricsHandler(logging.Handler):
        """Counts records by level"""

        def emit(self, record: logging.LogRecord):
            if record.levelname in LoggingConfig._log_metrics:
                LoggingConfig._log_metrics[record.levelname] += 1
